"""
Sync Checkpoint Store.

One document per sync stream in the sync_config collection:
    {"key": "mongoToSheet_users", "value": <datetime>}

Each stream bounds its "changed since" query with its own checkpoint, so the
users, applications and department streams never share a key.
"""

from datetime import datetime
from pymongo.collection import Collection

from intake.db.mongodb import get_collection, COLLECTIONS
from intake.utils.timestamps import EPOCH, truncate_ms

USERS_TO_SHEET = "mongoToSheet_users"
APPS_TO_SHEET = "mongoToSheet_apps"
DEPTS_TO_SHEET = "mongoToSheet_depts"


class CheckpointService:
    """Reads and advances per-stream sync timestamps."""

    def __init__(self, collection: Collection = None):
        if collection is None:
            collection = get_collection(COLLECTIONS["sync_config"])
        self.collection = collection

    def get(self, stream_key: str) -> datetime:
        """Last successful run of a stream, or the epoch if it never ran."""
        doc = self.collection.find_one({"key": stream_key})
        if not doc or not isinstance(doc.get("value"), datetime):
            return EPOCH
        return doc["value"]

    def set(self, stream_key: str, timestamp: datetime) -> bool:
        # $max keeps the checkpoint monotonic if a slow pass finishes late
        result = self.collection.update_one(
            {"key": stream_key},
            {"$max": {"value": truncate_ms(timestamp)}},
            upsert=True
        )
        return result.acknowledged
