"""
MongoDB Connection Utility

MongoDB is the primary store. It holds:
- users: registered applicants
- applications: one document per (registration number, department)
- sync_config: last-run timestamps of the sheet sync streams
- cache_entries: derived snapshots served to admin endpoints
"""
import logging

from pymongo import ASCENDING, MongoClient
from pymongo.database import Database
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from intake.core.config import get_settings

logger = logging.getLogger(__name__)

# Global client (connection pooling handled internally by pymongo)
_client: MongoClient = None
_db: Database = None


def get_mongo_client() -> MongoClient:
    """Get or create MongoDB client (singleton pattern)"""
    global _client
    if _client is None:
        _client = MongoClient(get_settings().mongodb_uri)
    return _client


def get_mongo_db() -> Database:
    """Get the intake database"""
    global _db
    if _db is None:
        client = get_mongo_client()
        _db = client[get_settings().mongodb_db]
    return _db


def get_collection(name: str, db: Database = None) -> Collection:
    """Get a specific collection (see COLLECTIONS)."""
    if db is None:
        db = get_mongo_db()
    return db[name]


def close_mongo_client() -> None:
    global _client, _db
    if _client is not None:
        _client.close()
    _client = None
    _db = None


def test_mongo_connection() -> bool:
    """
    Test if MongoDB is reachable.
    Returns True if connection successful, False otherwise.
    """
    try:
        client = get_mongo_client()
        # ping command checks connection
        client.admin.command('ping')
        return True
    except PyMongoError as e:
        logger.warning("MongoDB connection failed: %s", e)
        return False


# Collection name constants (avoid typos)
COLLECTIONS = {
    "users": "users",
    "applications": "applications",
    "sync_config": "sync_config",
    "cache": "cache_entries",
}


def init_mongo_indexes(db: Database = None):
    """
    Create indexes backing the uniqueness rules.
    Call this once during app startup.
    """
    if db is None:
        db = get_mongo_db()

    users = db[COLLECTIONS["users"]]
    users.create_index("userId", unique=True)
    users.create_index("regNo", unique=True)
    users.create_index("email", unique=True)
    users.create_index("phone", unique=True)
    users.create_index("lastModified")

    # A registration number can apply once per department
    applications = db[COLLECTIONS["applications"]]
    applications.create_index(
        [("registrationNumber", ASCENDING), ("department", ASCENDING)],
        unique=True
    )
    applications.create_index("lastUpdated")

    db[COLLECTIONS["sync_config"]].create_index("key", unique=True)

    cache = db[COLLECTIONS["cache"]]
    cache.create_index("key", unique=True)
    # Mongo's TTL monitor purges expired entries; reads still check expires_at
    cache.create_index("expires_at", expireAfterSeconds=0)

    logger.info("MongoDB indexes created successfully")
