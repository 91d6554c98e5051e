"""
Manual export of selected users to the review spreadsheet.

Unlike the sync job this is a one-shot append: the admin picks users, they
are appended to the export sheet, and each exported user is marked with
sheetStatus="success".
"""

import logging
from datetime import datetime
from typing import Any, Dict, List

from pymongo.collection import Collection

from intake.sheets.client import SheetsClient
from intake.utils.timestamps import format_short_date, parse_sheet_timestamp, utcnow

logger = logging.getLogger(__name__)

EXPORT_HEADERS = [
    "Firstname", "Lastname", "RegNo", "College", "Year",
    "Email", "Phone", "DateAdded", "Timestamp-sync",
]

# Export header -> user field
HEADER_KEYS = {
    "Firstname": "firstname",
    "Lastname": "lastname",
    "RegNo": "regNo",
    "College": "college",
    "Year": "year",
    "Email": "email",
    "Phone": "phone",
}


def _created_at(user: Dict[str, Any]) -> str:
    value = user.get("createdAt")
    if isinstance(value, str):
        value = parse_sheet_timestamp(value)
    return format_short_date(value) if isinstance(value, datetime) else ""


def export_row(user: Dict[str, Any], synced_at: datetime) -> List[str]:
    row = []
    for header in EXPORT_HEADERS:
        if header == "DateAdded":
            row.append(_created_at(user))
        elif header == "Timestamp-sync":
            row.append(synced_at.strftime("%d/%m/%Y, %H:%M:%S"))
        else:
            value = user.get(HEADER_KEYS[header])
            row.append("" if value is None else str(value))
    return row


class SheetExportService:
    """Appends users to the export sheet and records the export on each user."""

    def __init__(self, sheets: SheetsClient, users: Collection, sheet_name: str):
        self.sheets = sheets
        self.users = users
        self.sheet_name = sheet_name

    def add_users(self, users: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Raises SheetsError if the spreadsheet rejects the append."""
        now = utcnow()
        self.sheets.ensure_headers(self.sheet_name, EXPORT_HEADERS)
        self.sheets.append_rows(self.sheet_name, [export_row(u, now) for u in users])

        user_ids = [u["userId"] for u in users if u.get("userId")]
        if user_ids:
            self.users.update_many(
                {"userId": {"$in": user_ids}},
                {"$set": {"sheetStatus": "success", "lastSheetUpdateAt": now}}
            )
        logger.info("Exported %d users to %s", len(users), self.sheet_name)
        return [{"id": u.get("userId") or u.get("_id"), "status": "success"} for u in users]
