"""
Read-through cache for the admin bulk-read endpoints.

Every (resource, format) pair is cached twice:
    cache:<resource>:<format>:raw   - the serialized snapshot
    cache:<resource>:<format>:gzip  - the same bytes gzipped, base64 encoded

A request is served from whichever representation the client can take. On a
miss the whole collection is read, serialized, compressed and both entries are
stored with the resource's TTL. Entries are never evicted by writes to the
primary store; a snapshot can be up to one TTL behind MongoDB.

The backing store is a plain key/value collection: string values with a
per-key expiry. A value that cannot be decoded is dropped and rebuilt. The
cache is best effort: if the store fails (unreachable, document too large)
the snapshot is still built from the primary store and served uncached.
"""

import base64
import binascii
import gzip
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidDocument
from pymongo import DESCENDING
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from intake.db.mongodb import get_collection, COLLECTIONS
from intake.utils.timestamps import utcnow

logger = logging.getLogger(__name__)

USERS = "users"
APPLICATIONS = "applications"
RESOURCES = (USERS, APPLICATIONS)

JSON = "json"
NDJSON = "ndjson"
MEDIA_TYPES = {
    JSON: "application/json",
    NDJSON: "application/x-ndjson",
}

GZIP_MAGIC = b"\x1f\x8b"

# InvalidDocument covers DocumentTooLarge, which is not a PyMongoError
CACHE_ERRORS = (PyMongoError, InvalidDocument)


# ============================================================
# KEY/VALUE STORE
# ============================================================

class KeyValueCache:
    """
    String key/value store with per-key TTL on a MongoDB collection.

    Expiry is checked on read, so an entry is gone the moment its TTL
    elapses even if Mongo's TTL monitor has not purged it yet.
    """

    def __init__(self, collection: Collection = None, clock: Callable[[], datetime] = utcnow):
        if collection is None:
            collection = get_collection(COLLECTIONS["cache"])
        self.collection = collection
        self.clock = clock

    def get(self, key: str) -> Optional[str]:
        doc = self.collection.find_one({"key": key})
        if not doc:
            return None
        if doc.get("expires_at") is None or doc["expires_at"] <= self.clock():
            return None
        value = doc.get("value")
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self.collection.update_one(
            {"key": key},
            {"$set": {
                "value": value,
                "expires_at": self.clock() + timedelta(seconds=ttl_seconds),
            }},
            upsert=True
        )

    def delete(self, key: str) -> None:
        self.collection.delete_one({"key": key})


# ============================================================
# SERIALIZATION
# ============================================================

def _json_default(value):
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat(timespec="milliseconds") + "Z"
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def serialize(docs: List[dict], fmt: str) -> str:
    if fmt == NDJSON:
        return "".join(json.dumps(doc, default=_json_default) + "\n" for doc in docs)
    return json.dumps(docs, default=_json_default)


def is_valid_snapshot(text: str, fmt: str) -> bool:
    """Check that a cached snapshot still parses in its format."""
    try:
        if fmt == NDJSON:
            for line in text.splitlines():
                if line:
                    json.loads(line)
            return True
        return isinstance(json.loads(text), list)
    except ValueError:
        return False


# ============================================================
# CACHE SERVICE
# ============================================================

@dataclass
class CachedPayload:
    body: bytes
    media_type: str
    gzipped: bool
    hit: bool


class CacheService:
    """Serves whole-collection snapshots of users and applications."""

    def __init__(
        self,
        cache: KeyValueCache,
        users: Collection,
        applications: Collection,
        ttl_seconds: Dict[str, int],
    ):
        self.cache = cache
        self.users = users
        self.applications = applications
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def key(resource: str, fmt: str, representation: str) -> str:
        return f"cache:{resource}:{fmt}:{representation}"

    def get(self, resource: str, fmt: str = JSON, accept_gzip: bool = False) -> CachedPayload:
        if resource not in RESOURCES:
            raise ValueError(f"Unknown cache resource: {resource}")
        if fmt not in MEDIA_TYPES:
            raise ValueError(f"Unknown export format: {fmt}")

        media_type = MEDIA_TYPES[fmt]
        if accept_gzip:
            blob = self._cached_gzip(resource, fmt)
            if blob is not None:
                return CachedPayload(blob, media_type, gzipped=True, hit=True)
        else:
            text = self._cached_raw(resource, fmt)
            if text is not None:
                return CachedPayload(text.encode("utf-8"), media_type, gzipped=False, hit=True)

        raw, blob = self.rebuild(resource, fmt)
        if accept_gzip:
            return CachedPayload(blob, media_type, gzipped=True, hit=False)
        return CachedPayload(raw, media_type, gzipped=False, hit=False)

    def _cached_raw(self, resource: str, fmt: str) -> Optional[str]:
        key = self.key(resource, fmt, "raw")
        text = self._read(key)
        if text is None:
            return None
        if not is_valid_snapshot(text, fmt):
            logger.warning("Corrupted cache entry %s, rebuilding", key)
            self._drop(key)
            return None
        return text

    def _cached_gzip(self, resource: str, fmt: str) -> Optional[bytes]:
        key = self.key(resource, fmt, "gzip")
        encoded = self._read(key)
        if encoded is None:
            return None
        try:
            blob = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError):
            blob = b""
        if not blob.startswith(GZIP_MAGIC):
            logger.warning("Corrupted cache entry %s, rebuilding", key)
            self._drop(key)
            return None
        return blob

    def rebuild(self, resource: str, fmt: str):
        """Read the collection, store both representations, return (raw, gzip) bytes."""
        docs = self.load_users() if resource == USERS else self.load_applications()
        raw = serialize(docs, fmt).encode("utf-8")
        blob = gzip.compress(raw)

        ttl = self.ttl_seconds[resource]
        self._store(self.key(resource, fmt, "raw"), raw.decode("utf-8"), ttl)
        self._store(self.key(resource, fmt, "gzip"), base64.b64encode(blob).decode("ascii"), ttl)
        logger.info("Cached %d %s (%s, %d bytes, %d gzipped)", len(docs), resource, fmt, len(raw), len(blob))
        return raw, blob

    def _read(self, key: str) -> Optional[str]:
        try:
            return self.cache.get(key)
        except CACHE_ERRORS as e:
            logger.warning("Cache read failed for %s: %s", key, e)
            return None

    def _store(self, key: str, value: str, ttl: int) -> None:
        try:
            self.cache.set(key, value, ttl)
        except CACHE_ERRORS as e:
            logger.warning("Cache write failed for %s: %s", key, e)

    def _drop(self, key: str) -> None:
        try:
            self.cache.delete(key)
        except CACHE_ERRORS as e:
            logger.warning("Cache delete failed for %s: %s", key, e)

    # ------------------------------------------------------------
    # Primary store reads (whole collection, not paginated)
    # ------------------------------------------------------------

    def load_users(self) -> List[dict]:
        return list(self.users.find().sort("createdAt", DESCENDING))

    def load_applications(self) -> List[dict]:
        """Applications, newest first, each with the matching user attached."""
        users_by_reg = {}
        for user in self.users.find():
            users_by_reg.setdefault(user.get("regNo"), user)

        apps = []
        for app in self.applications.find().sort("lastUpdated", DESCENDING):
            app["userDetails"] = users_by_reg.get(app.get("registrationNumber"))
            apps.append(app)
        return apps
