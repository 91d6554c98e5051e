import base64
import gzip
import json
from datetime import datetime

import pytest
from bson import ObjectId
from pymongo.errors import DocumentTooLarge, ServerSelectionTimeoutError

from intake.db.mongodb import COLLECTIONS
from intake.services.cache_service import (
    APPLICATIONS, JSON, NDJSON, USERS, CacheService, KeyValueCache
)


@pytest.fixture
def kv(db, cache_clock):
    return KeyValueCache(db[COLLECTIONS["cache"]], clock=cache_clock)


@pytest.fixture
def cache(db, kv):
    return CacheService(kv, db.users, db.applications, ttl_seconds={USERS: 300, APPLICATIONS: 604800})


@pytest.fixture
def populated(db):
    db.users.insert_many([
        {"_id": ObjectId(), "userId": "u1", "regNo": "R1", "email": "a@example.com", "phone": "1",
         "createdAt": datetime(2025, 1, 1)},
        {"_id": ObjectId(), "userId": "u2", "regNo": "R2", "email": "b@example.com", "phone": "2",
         "createdAt": datetime(2025, 1, 2)},
    ])
    db.applications.insert_many([
        {"registrationNumber": "R1", "department": "dev", "answers": [], "lastUpdated": datetime(2025, 1, 3)},
        {"registrationNumber": "R1", "department": "photo", "answers": [], "lastUpdated": datetime(2025, 1, 5)},
        {"registrationNumber": "R7", "department": "video", "answers": [], "lastUpdated": datetime(2025, 1, 4)},
    ])


def test_key_value_get_set_delete(kv):
    assert kv.get("k") is None
    kv.set("k", "v", 60)
    assert kv.get("k") == "v"
    kv.delete("k")
    assert kv.get("k") is None


def test_key_value_entries_expire(kv, cache_clock):
    kv.set("k", "v", 60)
    cache_clock.advance(seconds=59)
    assert kv.get("k") == "v"
    cache_clock.advance(seconds=1)
    assert kv.get("k") is None


def test_miss_then_hit(cache, populated):
    first = cache.get(USERS)
    assert first.hit is False
    assert first.media_type == "application/json"
    second = cache.get(USERS)
    assert second.hit is True
    assert second.body == first.body


def test_users_are_newest_first_with_string_ids(cache, populated):
    users = json.loads(cache.get(USERS).body)
    assert [u["userId"] for u in users] == ["u2", "u1"]
    assert isinstance(users[0]["_id"], str)
    assert users[0]["createdAt"] == "2025-01-02T00:00:00.000Z"


def test_applications_carry_user_details(cache, populated):
    apps = json.loads(cache.get(APPLICATIONS).body)
    assert [(a["registrationNumber"], a["department"]) for a in apps] == [
        ("R1", "photo"), ("R7", "video"), ("R1", "dev"),
    ]
    assert apps[0]["userDetails"]["userId"] == "u1"
    assert apps[1]["userDetails"] is None


def test_miss_stores_both_representations(cache, kv, populated):
    cache.get(USERS, JSON)
    raw = kv.get("cache:users:json:raw")
    blob = base64.b64decode(kv.get("cache:users:json:gzip"))
    assert gzip.decompress(blob).decode("utf-8") == raw


def test_gzip_is_served_when_accepted(cache, populated):
    miss = cache.get(USERS, accept_gzip=True)
    assert miss.gzipped is True
    hit = cache.get(USERS, accept_gzip=True)
    assert hit.hit is True
    assert gzip.decompress(hit.body) == cache.get(USERS).body


def test_ndjson_format(cache, populated):
    payload = cache.get(USERS, NDJSON)
    assert payload.media_type == "application/x-ndjson"
    lines = payload.body.decode("utf-8").splitlines()
    assert [json.loads(line)["userId"] for line in lines] == ["u2", "u1"]


def test_formats_are_cached_separately(cache, kv, populated):
    cache.get(USERS, NDJSON)
    assert kv.get("cache:users:json:raw") is None
    assert kv.get("cache:users:ndjson:raw") is not None


def test_snapshot_is_stale_until_ttl(cache, cache_clock, db, populated):
    cache.get(USERS)
    db.users.insert_one({"userId": "u3", "regNo": "R3", "email": "c@example.com", "phone": "3",
                         "createdAt": datetime(2025, 1, 9)})

    assert len(json.loads(cache.get(USERS).body)) == 2
    cache_clock.advance(seconds=301)
    refreshed = cache.get(USERS)
    assert refreshed.hit is False
    assert len(json.loads(refreshed.body)) == 3


def test_applications_use_their_own_ttl(cache, cache_clock, populated):
    cache.get(APPLICATIONS)
    cache_clock.advance(days=6)
    assert cache.get(APPLICATIONS).hit is True
    cache_clock.advance(days=1, seconds=1)
    assert cache.get(APPLICATIONS).hit is False


def test_corrupted_raw_entry_is_rebuilt(cache, kv, populated):
    kv.set("cache:users:json:raw", "{not json", 300)
    payload = cache.get(USERS)
    assert payload.hit is False
    assert len(json.loads(payload.body)) == 2
    assert json.loads(kv.get("cache:users:json:raw"))


def test_corrupted_gzip_entry_is_rebuilt(cache, kv, populated):
    kv.set("cache:users:json:gzip", base64.b64encode(b"plain text").decode("ascii"), 300)
    payload = cache.get(USERS, accept_gzip=True)
    assert payload.hit is False
    assert len(json.loads(gzip.decompress(payload.body))) == 2


def test_invalid_base64_is_treated_as_corrupt(cache, kv, populated):
    kv.set("cache:users:json:gzip", "%%% not base64 %%%", 300)
    assert cache.get(USERS, accept_gzip=True).hit is False


def test_cache_write_failure_still_serves_snapshot(cache, kv, populated, mocker, caplog):
    mocker.patch.object(kv.collection, "update_one", side_effect=DocumentTooLarge("BSON document too large"))

    payload = cache.get(USERS)
    assert payload.hit is False
    assert [u["userId"] for u in json.loads(payload.body)] == ["u2", "u1"]

    gzipped = cache.get(USERS, accept_gzip=True)
    assert len(json.loads(gzip.decompress(gzipped.body))) == 2
    assert "Cache write failed" in caplog.text


def test_cache_read_failure_falls_back_to_primary(cache, kv, populated, mocker, caplog):
    mocker.patch.object(kv.collection, "find_one", side_effect=ServerSelectionTimeoutError("cache down"))

    payload = cache.get(USERS, accept_gzip=True)
    assert payload.hit is False
    assert len(json.loads(gzip.decompress(payload.body))) == 2
    assert "Cache read failed" in caplog.text


def test_failed_delete_of_corrupt_entry_is_ignored(cache, kv, populated, mocker):
    kv.set("cache:users:json:raw", "{not json", 300)
    mocker.patch.object(kv.collection, "delete_one", side_effect=ServerSelectionTimeoutError("cache down"))
    assert len(json.loads(cache.get(USERS).body)) == 2


def test_unknown_resource_or_format(cache):
    with pytest.raises(ValueError):
        cache.get("orders")
    with pytest.raises(ValueError):
        cache.get(USERS, "xml")

