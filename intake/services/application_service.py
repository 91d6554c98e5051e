"""
Application Service - department application submissions.

One application per (registration number, department). Resubmissions are
compared by content hash: identical content is not written at all, so
`lastUpdated` only moves when something actually changed and the sheet
sync only sees real edits.
"""

import logging
from typing import Any, Dict, Optional, Tuple

from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError

from intake.core.exceptions import DuplicateRecordError, InvalidSubmissionError
from intake.db.mongodb import get_collection, COLLECTIONS
from intake.services.user_service import serialize_doc
from intake.utils.hashing import compute_application_hash
from intake.utils.timestamps import utcnow

logger = logging.getLogger(__name__)

CREATED = "created"
UPDATED = "updated"
UNCHANGED = "unchanged"

IDENTITY_FIELDS = ("userId", "name", "email", "phone", "college", "year")


def build_document(data: Dict[str, Any]) -> Dict[str, Any]:
    """Normalize a submission into the stored shape (without timestamps)."""
    doc = {
        "registrationNumber": str(data["registrationNumber"]).strip(),
        "department": getattr(data["department"], "value", data["department"]),
        "answers": [
            {"questionId": str(a["questionId"]).strip(), "answerText": a["answerText"]}
            for a in data["answers"]
        ],
    }
    for name in IDENTITY_FIELDS:
        value = data.get(name)
        if value is not None:
            doc[name] = str(value).strip()
    if doc.get("email"):
        doc["email"] = doc["email"].lower()
    doc["lastHash"] = compute_application_hash(doc)
    return doc


class ApplicationService:
    """Handles the applications collection."""

    def __init__(self, collection: Collection = None, users: Collection = None):
        if collection is None:
            collection = get_collection(COLLECTIONS["applications"])
        if users is None:
            users = get_collection(COLLECTIONS["users"])
        self.collection = collection
        self.users = users

    def resolve_applicant(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Fill the identity snapshot from the registered user when the
        submission carries a userId. Submitted values take precedence.

        Raises InvalidSubmissionError when no registration number can be found.
        """
        data = dict(data)
        user_id = (data.get("userId") or "").strip()
        if user_id:
            user = self.users.find_one({"userId": user_id})
            if user:
                snapshot = {
                    "registrationNumber": user.get("regNo"),
                    "name": " ".join(x for x in (user.get("firstname"), user.get("lastname")) if x) or None,
                    "email": user.get("email"),
                    "phone": user.get("phone"),
                    "college": user.get("college"),
                    "year": user.get("year"),
                }
                for name, value in snapshot.items():
                    if not data.get(name) and value:
                        data[name] = value
        if not (data.get("registrationNumber") or "").strip():
            raise InvalidSubmissionError(
                f"No registered user found for userId {user_id}" if user_id
                else "registrationNumber or userId is required"
            )
        return data

    def find(self, registration_number: str, department: str) -> Optional[dict]:
        return self.collection.find_one({
            "registrationNumber": registration_number,
            "department": department,
        })

    def create(self, data: Dict[str, Any]) -> dict:
        """Insert a new application. Raises DuplicateRecordError if one exists."""
        doc = build_document(data)
        doc["lastUpdated"] = utcnow()
        try:
            self.collection.insert_one(doc)
        except DuplicateKeyError:
            raise DuplicateRecordError(
                f"Application for {doc['registrationNumber']} in {doc['department']} already exists"
            )
        logger.info("Application saved: %s/%s", doc["registrationNumber"], doc["department"])
        return serialize_doc(doc)

    def submit(self, data: Dict[str, Any]) -> Tuple[str, dict]:
        """
        Create or update an application.

        Returns (status, application) where status is created, updated or
        unchanged. An unchanged submission performs no write.
        """
        data = self.resolve_applicant(data)
        incoming = build_document(data)
        existing = self.find(incoming["registrationNumber"], incoming["department"])
        if existing is None:
            return CREATED, self.create(data)

        if existing.get("lastHash") == incoming["lastHash"]:
            return UNCHANGED, serialize_doc(existing)

        incoming["lastUpdated"] = utcnow()
        self.collection.update_one({"_id": existing["_id"]}, {"$set": incoming})
        existing.update(incoming)
        logger.info("Application updated: %s/%s", incoming["registrationNumber"], incoming["department"])
        return UPDATED, serialize_doc(existing)
