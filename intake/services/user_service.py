"""
User Service - applicant registration and profile updates.

Registration is idempotent: a user whose email, phone or registration number
is already on file gets the existing record back instead of a duplicate.
Every profile change bumps `lastModified`, the watermark the sheet sync uses.
"""

import logging
import uuid
from typing import Any, Dict, Optional, Tuple

from pymongo import ReturnDocument
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError

from intake.core.exceptions import DuplicateRecordError, RecordNotFoundError
from intake.db.mongodb import get_collection, COLLECTIONS
from intake.utils.timestamps import utcnow

logger = logging.getLogger(__name__)


# ============================================================
# HELPER: Convert ObjectId to string for JSON serialization
# ============================================================

def serialize_doc(doc: dict) -> dict:
    """Convert MongoDB document to JSON-serializable dict."""
    if doc is None:
        return None
    if "_id" in doc:
        doc["_id"] = str(doc["_id"])
    return doc


class UserService:
    """Handles the users collection."""

    def __init__(self, collection: Collection = None):
        if collection is None:
            collection = get_collection(COLLECTIONS["users"])
        self.collection = collection

    def find_existing(self, email: str, phone: str, reg_no: str) -> Optional[dict]:
        """Any user sharing one of the unique fields."""
        return self.collection.find_one({
            "$or": [{"email": email}, {"phone": phone}, {"regNo": reg_no}]
        })

    def register(self, data: Dict[str, Any]) -> Tuple[dict, bool]:
        """
        Create a user, or return the one already registered.

        Returns (user, created).
        """
        existing = self.find_existing(data["email"], data["phone"], data["regNo"])
        if existing:
            logger.info("Registration for %s matched existing user %s", data["regNo"], existing.get("userId"))
            return serialize_doc(existing), False

        now = utcnow()
        doc = {
            "userId": str(uuid.uuid4()),
            "firstname": data["firstname"],
            "lastname": data["lastname"],
            "regNo": data["regNo"],
            "college": data["college"],
            "year": data["year"],
            "email": data["email"],
            "phone": data["phone"],
            "createdAt": now,
            "lastModified": now,
            "emailStatus": None,
            "lastEmailSentAt": None,
        }
        try:
            self.collection.insert_one(doc)
        except DuplicateKeyError:
            # lost a race with a concurrent registration
            existing = self.find_existing(data["email"], data["phone"], data["regNo"])
            if existing:
                return serialize_doc(existing), False
            raise DuplicateRecordError("User already exists")
        return serialize_doc(doc), True

    def get(self, user_id: str) -> dict:
        doc = self.collection.find_one({"userId": user_id})
        if not doc:
            raise RecordNotFoundError(f"User {user_id} not found")
        return serialize_doc(doc)

    def update_profile(self, user_id: str, changes: Dict[str, Any]) -> dict:
        """Apply non-empty changes and bump lastModified."""
        changes = {k: v for k, v in changes.items() if v is not None}
        if not changes:
            return self.get(user_id)
        changes["lastModified"] = utcnow()
        try:
            doc = self.collection.find_one_and_update(
                {"userId": user_id},
                {"$set": changes},
                return_document=ReturnDocument.AFTER
            )
        except DuplicateKeyError:
            raise DuplicateRecordError("Another user already has this email or phone")
        if not doc:
            raise RecordNotFoundError(f"User {user_id} not found")
        return serialize_doc(doc)

    def set_email_status(self, user_id: str, status: str, sent_at=None) -> bool:
        update = {"emailStatus": status}
        if sent_at is not None:
            update["lastEmailSentAt"] = sent_at
        result = self.collection.update_one({"userId": user_id}, {"$set": update})
        return result.matched_count > 0
