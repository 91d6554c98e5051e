"""
Bidirectional sync between MongoDB and the Google spreadsheet.

Mongo -> Sheet (incremental):
    1. Read the whole sheet and index its rows by natural key.
    2. Candidates = every record when the sheet has no data rows, otherwise
       records changed since the stream's checkpoint plus records whose key
       is missing from the sheet (e.g. a previous pass failed mid-way).
    3. Unchanged rows are skipped, changed rows are overwritten in place and
       new rows are appended.
    4. The checkpoint advances to the time captured *before* the pass, so
       records modified while the pass runs are picked up next time.

Sheet -> Mongo (last-writer-wins):
    Rows are grouped per record and upserted only when the sheet timestamp
    is newer than the stored one (see intake.sync.conflict).

A full pass pulls before it pushes so that a newer sheet edit is applied to
MongoDB before MongoDB's version is written back over it.

The row index is an in-memory dict rebuilt once per pass, O(rows) in memory.
It is meant for sheets of up to tens of thousands of rows.
"""

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Hashable, Iterable, List, Optional, Sequence, Tuple

from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError

from intake.schemas.schemas import Department
from intake.services.checkpoint_service import (
    CheckpointService, USERS_TO_SHEET, APPS_TO_SHEET, DEPTS_TO_SHEET
)
from intake.sheets.client import SheetsClient
from intake.sheets import projections as p
from intake.sync.conflict import NEWEST, resolve_sheet_timestamp, sheet_wins
from intake.utils.hashing import compute_application_hash
from intake.utils.timestamps import parse_sheet_timestamp, utcnow

logger = logging.getLogger(__name__)

USERS_FROM_SHEET = "sheetToMongo_users"
APPS_FROM_SHEET = "sheetToMongo_apps"

# (row number, row values); row number is None for rows appended this pass
RowIndex = Dict[Hashable, Tuple[Optional[int], List[str]]]


@dataclass
class StreamResult:
    """Counters for one sync stream."""
    stream: str
    appended: int = 0
    updated: int = 0
    unchanged: int = 0
    upserted: int = 0
    skipped: int = 0
    conflicts: int = 0
    cleared: int = 0

    @property
    def writes(self) -> int:
        return self.appended + self.updated + self.upserted + self.cleared


@dataclass
class SyncReport:
    started_at: datetime
    finished_at: Optional[datetime] = None
    streams: List[StreamResult] = field(default_factory=list)

    @property
    def writes(self) -> int:
        return sum(s.writes for s in self.streams)

    def as_dict(self) -> dict:
        return {
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "streams": [vars(s) for s in self.streams],
        }


def _union(*cursors: Iterable[dict]) -> List[dict]:
    """Concatenate query results, dropping documents already seen."""
    seen = set()
    docs = []
    for cursor in cursors:
        for doc in cursor:
            if doc["_id"] in seen:
                continue
            seen.add(doc["_id"])
            docs.append(doc)
    return docs


class SyncEngine:
    """
    Keeps the users/applications collections and the spreadsheet in step.

    Only one pass runs at a time; see run_full_pass.
    """

    def __init__(
        self,
        users: Collection,
        applications: Collection,
        sheets: SheetsClient,
        checkpoints: CheckpointService,
        unparseable_policy: str = NEWEST,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.users = users
        self.applications = applications
        self.sheets = sheets
        self.checkpoints = checkpoints
        self.unparseable_policy = unparseable_policy
        self.clock = clock
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    # ============================================================
    # FULL PASS
    # ============================================================

    def try_acquire(self) -> bool:
        """Reserve the engine for a pass that will be started with acquired=True."""
        return self._lock.acquire(blocking=False)

    def run_full_pass(self, acquired: bool = False) -> Optional[SyncReport]:
        """
        Run every stream once. Returns None without doing anything if
        another pass is still running. A failing stream aborts the rest of
        the pass; checkpoints of unfinished streams stay where they were.

        With acquired=True the caller already holds the lock (see
        try_acquire); it is released when the pass ends.
        """
        if not acquired and not self._lock.acquire(blocking=False):
            logger.warning("Sync pass already in progress, skipping this run")
            return None
        try:
            report = SyncReport(started_at=self.clock())
            logger.info("Starting sync pass")
            for step in (
                self.sync_users_from_sheet,
                self.sync_users_to_sheet,
                self.sync_applications_from_sheet,
                self.sync_applications_to_sheet,
                self.sync_departments_to_sheet,
            ):
                result = step()
                report.streams.append(result)
                logger.info("%s: %s", result.stream, vars(result))
            report.finished_at = self.clock()
            logger.info("Sync pass complete: %d writes", report.writes)
            return report
        finally:
            self._lock.release()

    # ============================================================
    # SHEET INDEX / DIFF
    # ============================================================

    def _load_index(self, sheet_name: str, headers: Sequence[str],
                    key_of: Callable[[Sequence[str]], Hashable]) -> RowIndex:
        """Ensure the sheet exists with headers, then index its data rows by key."""
        self.sheets.ensure_headers(sheet_name, headers)
        rows = self.sheets.read_range(sheet_name, p.data_range(headers))
        index: RowIndex = {}
        width = len(headers)
        # rows[0] is the header row; sheet row numbers are 1-based
        for row_number, row in enumerate(rows[1:], start=2):
            if not row:
                continue
            key = key_of(row)
            if not key or (isinstance(key, tuple) and not all(key)):
                continue
            if key in index:
                logger.warning("%s: duplicate key %s at row %d, keeping row %d",
                               sheet_name, key, row_number, index[key][0])
                continue
            index[key] = (row_number, p.pad_row(row, width))
        return index

    def _flush(self, sheet_name: str, headers: Sequence[str], index: RowIndex,
               keyed_rows: Iterable[Tuple[Hashable, List[str]]], result: StreamResult) -> None:
        """Compare candidate rows with the sheet and write the differences."""
        updates: List[Tuple[int, List[str]]] = []
        appends: List[List[str]] = []
        seen = set()
        for key, row in keyed_rows:
            if key in seen:
                continue
            seen.add(key)
            existing = index.get(key)
            if existing is None:
                appends.append(row)
                index[key] = (None, row)
            elif existing[1] == row:
                result.unchanged += 1
            else:
                updates.append((existing[0], row))
                index[key] = (existing[0], row)

        if updates:
            result.updated += self.sheets.batch_update_cells(sheet_name, updates)
        if appends:
            result.appended += self.sheets.append_rows(sheet_name, appends)

    def _clear_withdrawn(self, sheet_name: str, headers: Sequence[str], index: RowIndex,
                         candidates: Sequence[dict], result: StreamResult) -> None:
        """
        Blank answer rows of the given applications whose question is no
        longer among their answers. Rows of other applications are left alone.
        """
        expected = set()
        owners = set()
        for app in candidates:
            owners.add(p.application_key(app.get("registrationNumber"), app.get("department"), "")[:2])
            expected.update(key for key, _ in p.application_rows(app))

        stale = [
            key for key, (row_number, _) in index.items()
            if row_number is not None and key[:2] in owners and key not in expected
        ]
        if not stale:
            return
        blank = [""] * len(headers)
        result.cleared += self.sheets.batch_update_cells(
            sheet_name, [(index[key][0], blank) for key in stale]
        )
        for key in stale:
            del index[key]
        logger.info("%s: cleared %d withdrawn answer rows", sheet_name, len(stale))

    # ============================================================
    # USERS
    # ============================================================

    def sync_users_to_sheet(self) -> StreamResult:
        started_at = self.clock()
        result = StreamResult(USERS_TO_SHEET)
        index = self._load_index(p.USERS_SHEET, p.USERS_HEADERS, p.user_row_key)

        if not index:
            candidates = list(self.users.find().sort("createdAt", 1))
        else:
            since = self.checkpoints.get(USERS_TO_SHEET)
            candidates = _union(
                self.users.find({"lastModified": {"$gt": since}}).sort("lastModified", 1),
                self.users.find({"regNo": {"$nin": list(index)}}).sort("createdAt", 1),
            )

        keyed = []
        for user in candidates:
            key = p.user_key(user.get("regNo"))
            if not key:
                result.skipped += 1
                continue
            keyed.append((key, p.user_row(user)))

        self._flush(p.USERS_SHEET, p.USERS_HEADERS, index, keyed, result)
        self.checkpoints.set(USERS_TO_SHEET, started_at)
        return result

    def sync_users_from_sheet(self) -> StreamResult:
        result = StreamResult(USERS_FROM_SHEET)
        rows = self.sheets.read_range(p.USERS_SHEET, p.data_range(p.USERS_HEADERS))
        if len(rows) < 2:
            return result

        now = self.clock()
        width = len(p.USERS_HEADERS)
        for raw in rows[1:]:
            row = p.pad_row(raw, width)
            key = p.user_key(row[p.U_REG])
            if not key:
                result.skipped += 1
                continue
            sheet_ts = resolve_sheet_timestamp(
                parse_sheet_timestamp(row[p.U_MODIFIED]), now, self.unparseable_policy
            )
            if sheet_ts is None:
                result.skipped += 1
                continue

            stored = self.users.find_one({"regNo": key}, {"lastModified": 1})
            if not sheet_wins(sheet_ts, stored.get("lastModified") if stored else None,
                              exists=stored is not None):
                result.unchanged += 1
                continue

            self._upsert_user(row, key, sheet_ts, now, result)
        return result

    def _upsert_user(self, row: List[str], key: str, sheet_ts: datetime,
                     now: datetime, result: StreamResult) -> None:
        fields = {
            "firstname": row[p.U_FIRST].strip(),
            "lastname": row[p.U_LAST].strip(),
            "college": row[p.U_COLLEGE].strip(),
            "year": row[p.U_YEAR].strip(),
            "email": row[p.U_EMAIL].strip().lower(),
            "phone": row[p.U_PHONE].strip(),
        }
        # an empty cell never wipes a stored value
        update = {k: v for k, v in fields.items() if v}
        update["lastModified"] = sheet_ts
        try:
            self.users.update_one(
                {"regNo": key},
                {
                    "$set": update,
                    "$setOnInsert": {
                        "userId": row[p.U_USER_ID].strip() or str(uuid.uuid4()),
                        "createdAt": now,
                        "emailStatus": None,
                        "lastEmailSentAt": None,
                    },
                },
                upsert=True
            )
            result.upserted += 1
        except DuplicateKeyError as e:
            # email/phone/userId already belongs to another user
            result.conflicts += 1
            logger.warning("Users sheet row %s conflicts with an existing user: %s", key, e)

    # ============================================================
    # APPLICATIONS
    # ============================================================

    def _application_candidates(self, index: RowIndex, stream_key: str,
                                query: Optional[Dict[str, Any]] = None) -> List[dict]:
        query = dict(query or {})
        if not index:
            return list(self.applications.find(query).sort("lastUpdated", 1))

        since = self.checkpoints.get(stream_key)
        changed = self.applications.find(dict(query, lastUpdated={"$gt": since})).sort("lastUpdated", 1)
        missing = (
            app for app in self.applications.find(query).sort("lastUpdated", 1)
            if any(key not in index for key, _ in p.application_rows(app))
        )
        return _union(changed, missing)

    def sync_applications_to_sheet(self) -> StreamResult:
        started_at = self.clock()
        result = StreamResult(APPS_TO_SHEET)
        index = self._load_index(p.APPLICATIONS_SHEET, p.APPLICATIONS_HEADERS, p.application_row_key)

        candidates = self._application_candidates(index, APPS_TO_SHEET)
        keyed = [kr for app in candidates for kr in p.application_rows(app)]

        self._clear_withdrawn(p.APPLICATIONS_SHEET, p.APPLICATIONS_HEADERS, index, candidates, result)
        self._flush(p.APPLICATIONS_SHEET, p.APPLICATIONS_HEADERS, index, keyed, result)
        self.checkpoints.set(APPS_TO_SHEET, started_at)
        return result

    def sync_departments_to_sheet(self) -> StreamResult:
        """
        Fan applications out into one sheet per department so each
        department's reviewers only see their own applicants.
        """
        started_at = self.clock()
        result = StreamResult(DEPTS_TO_SHEET)

        for department in sorted(d for d in self.applications.distinct("department") if d):
            index = self._load_index(department, p.APPLICATIONS_HEADERS, p.application_row_key)
            candidates = self._application_candidates(
                index, DEPTS_TO_SHEET, {"department": department}
            )
            keyed = [kr for app in candidates for kr in p.application_rows(app)]
            self._clear_withdrawn(department, p.APPLICATIONS_HEADERS, index, candidates, result)
            self._flush(department, p.APPLICATIONS_HEADERS, index, keyed, result)

        self.checkpoints.set(DEPTS_TO_SHEET, started_at)
        return result

    def sync_applications_from_sheet(self) -> StreamResult:
        """Pull the main Applications sheet, then every department sheet."""
        result = StreamResult(APPS_FROM_SHEET)
        self._pull_applications(p.APPLICATIONS_SHEET, result)

        titles = set(self.sheets.sheet_titles())
        for department in Department:
            if department.value in titles:
                self._pull_applications(department.value, result)
        return result

    def _pull_applications(self, sheet_name: str, result: StreamResult) -> None:
        rows = self.sheets.read_range(sheet_name, p.data_range(p.APPLICATIONS_HEADERS))
        if len(rows) < 2:
            return

        now = self.clock()
        departments = {d.value for d in Department}
        width = len(p.APPLICATIONS_HEADERS)

        # (reg no, department) -> rows, in sheet order
        clusters: Dict[Tuple[str, str], List[List[str]]] = {}
        for raw in rows[1:]:
            row = p.pad_row(raw, width)
            reg_no, department, question_id = p.application_row_key(row)
            if not reg_no or not question_id or department not in departments:
                result.skipped += 1
                continue
            clusters.setdefault((reg_no, department), []).append(row)

        for (reg_no, department), cluster in clusters.items():
            stamps = [
                resolve_sheet_timestamp(parse_sheet_timestamp(r[p.A_UPDATED]), now, self.unparseable_policy)
                for r in cluster
            ]
            stamps = [s for s in stamps if s is not None]
            if not stamps:
                result.skipped += 1
                continue
            sheet_ts = max(stamps)

            query = {"registrationNumber": reg_no, "department": department}
            stored = self.applications.find_one(query, {"lastUpdated": 1})
            if not sheet_wins(sheet_ts, stored.get("lastUpdated") if stored else None,
                              exists=stored is not None):
                result.unchanged += 1
                continue

            self._upsert_application(query, cluster, sheet_ts, result)

    def _upsert_application(self, query: Dict[str, str], cluster: List[List[str]],
                            sheet_ts: datetime, result: StreamResult) -> None:
        first = cluster[0]
        answers: Dict[str, str] = {}
        for row in cluster:
            # a repeated question keeps its last answer, in first-seen order
            answers[row[p.A_QUESTION].strip()] = row[p.A_ANSWER]
        doc = {
            "name": first[p.A_NAME].strip(),
            "email": first[p.A_EMAIL].strip().lower(),
            "phone": first[p.A_PHONE].strip(),
            "college": first[p.A_COLLEGE].strip(),
            "year": first[p.A_YEAR].strip(),
            "registrationNumber": query["registrationNumber"],
            "department": query["department"],
            "answers": [{"questionId": q, "answerText": a} for q, a in answers.items()],
        }
        user_id = first[p.A_USER_ID].strip()
        if user_id:
            doc["userId"] = user_id
        doc["lastHash"] = compute_application_hash(doc)
        doc["lastUpdated"] = sheet_ts
        try:
            self.applications.update_one(query, {"$set": doc}, upsert=True)
            result.upserted += 1
        except DuplicateKeyError as e:
            result.conflicts += 1
            logger.warning("Applications row %s conflicts with an existing record: %s", query, e)
