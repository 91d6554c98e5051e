"""
Conflict resolution between a sheet row and the primary store.

The policy is last-writer-wins on timestamps: the sheet overwrites MongoDB
only when its timestamp is strictly newer, or when MongoDB has no record.
Equal timestamps keep the stored record. There is no version tracking, so
two edits made in the same millisecond cannot be told apart.
"""

from datetime import datetime
from typing import Optional

NEWEST = "newest"
SKIP = "skip"
POLICIES = (NEWEST, SKIP)


def resolve_sheet_timestamp(parsed: Optional[datetime], now: datetime, policy: str = NEWEST) -> Optional[datetime]:
    """
    Timestamp to use for a sheet row.

    A missing or unparseable cell becomes `now` under the "newest" policy
    (the row then beats any stored record) and None under "skip".
    """
    if parsed is not None:
        return parsed
    if policy == SKIP:
        return None
    return now


def sheet_wins(sheet_ts: Optional[datetime], store_ts: Optional[datetime], exists: bool = True) -> bool:
    """Should the sheet's version replace the stored one?"""
    if sheet_ts is None:
        return False
    if not exists or store_ts is None:
        return True
    return sheet_ts > store_ts
