"""
Google Sheets client.

Range-addressed reads and writes against one spreadsheet. Every call to the
Sheets API goes through `retry`, which backs off exponentially on rate limits
and transient server/network errors. Writes are split into fixed-size batches
with a pause between batches to stay under the per-minute quota.
"""

import json
import logging
import socket
import time
from functools import wraps
from typing import List, Sequence, Tuple

from google.oauth2.service_account import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from intake.core.exceptions import SheetsError

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]

TRANSIENT_STATUSES = {429, 500, 502, 503, 504}


def is_transient(exc: Exception) -> bool:
    """Rate limits, server errors and dropped connections are worth retrying."""
    if isinstance(exc, HttpError):
        return exc.resp.status in TRANSIENT_STATUSES
    return isinstance(exc, (socket.timeout, TimeoutError, ConnectionError))


def retry(operation: str):
    """Retry decorator with exponential backoff, configured per client."""
    def decorator(func):
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            delay = self.backoff_seconds
            attempt = 1
            while True:
                try:
                    return func(self, *args, **kwargs)
                except (HttpError, OSError) as e:
                    if not is_transient(e):
                        raise SheetsError(operation, e) from e
                    if attempt >= self.max_attempts:
                        logger.error("%s failed after %d attempts: %s", operation, attempt, e)
                        raise SheetsError(operation, e) from e
                    logger.warning(
                        "%s: %s, retrying in %.1fs (attempt %d/%d)",
                        operation, e, delay, attempt, self.max_attempts
                    )
                    time.sleep(delay)
                    attempt += 1
                    delay *= 2
        return wrapper
    return decorator


def col_letter(n: int) -> str:
    """1 -> A, 26 -> Z, 27 -> AA"""
    s = ""
    while n > 0:
        n, r = divmod(n - 1, 26)
        s = chr(65 + r) + s
    return s


def quote_sheet(name: str) -> str:
    """Sheet names with spaces or punctuation must be quoted in A1 notation."""
    return "'" + name.replace("'", "''") + "'"


def chunked(items: Sequence, size: int):
    for start in range(0, len(items), size):
        yield items[start:start + size]


class SheetsClient:
    """
    Thin wrapper over the Sheets v4 values API for one spreadsheet.

    Row indexes are 1-based sheet row numbers (row 1 holds the headers).
    """

    def __init__(
        self,
        service,
        spreadsheet_id: str,
        batch_size: int = 50,
        batch_delay_seconds: float = 1.0,
        max_attempts: int = 5,
        backoff_seconds: float = 0.5,
    ):
        self.service = service
        self.spreadsheet_id = spreadsheet_id
        self.batch_size = batch_size
        self.batch_delay_seconds = batch_delay_seconds
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds

    @classmethod
    def from_settings(cls, settings, spreadsheet_id: str = None) -> "SheetsClient":
        """Build a client authenticated with the configured service account."""
        if settings.google_credentials_json:
            creds = Credentials.from_service_account_info(
                json.loads(settings.google_credentials_json), scopes=SCOPES
            )
        else:
            creds = Credentials.from_service_account_file(
                settings.google_credentials_file, scopes=SCOPES
            )
        service = build("sheets", "v4", credentials=creds, cache_discovery=False)
        return cls(
            service,
            spreadsheet_id or settings.spreadsheet_id,
            batch_size=settings.sheets_batch_size,
            batch_delay_seconds=settings.sheets_batch_delay_seconds,
            max_attempts=settings.sheets_max_attempts,
            backoff_seconds=settings.sheets_backoff_seconds,
        )

    # ------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------

    def read_range(self, sheet_name: str, cell_range: str = "") -> List[List[str]]:
        """
        Read rows from `sheet_name!cell_range`.
        A sheet that does not exist yet reads as empty.
        """
        a1 = quote_sheet(sheet_name) + (f"!{cell_range}" if cell_range else "")
        try:
            return self._get_values(a1)
        except SheetsError as e:
            cause = e.cause
            if isinstance(cause, HttpError) and cause.resp.status == 400 \
                    and b"Unable to parse range" in (cause.content or b""):
                logger.info("Range %s does not exist, reading as empty", a1)
                return []
            raise

    @retry("values.get")
    def _get_values(self, a1: str) -> List[List[str]]:
        res = self.service.spreadsheets().values().get(
            spreadsheetId=self.spreadsheet_id, range=a1
        ).execute()
        return res.get("values", [])

    @retry("spreadsheets.get")
    def sheet_titles(self) -> List[str]:
        meta = self.service.spreadsheets().get(spreadsheetId=self.spreadsheet_id).execute()
        return [sh["properties"]["title"] for sh in meta.get("sheets", [])]

    # ------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------

    def ensure_sheet(self, name: str) -> bool:
        """Create the sheet if missing. Returns True when it was created."""
        if name in self.sheet_titles():
            return False
        logger.info("Creating sheet: %s", name)
        self._add_sheet(name)
        return True

    @retry("spreadsheets.batchUpdate")
    def _add_sheet(self, name: str) -> None:
        self.service.spreadsheets().batchUpdate(
            spreadsheetId=self.spreadsheet_id,
            body={"requests": [{"addSheet": {"properties": {"title": name}}}]}
        ).execute()

    def ensure_headers(self, name: str, headers: Sequence[str]) -> bool:
        """Write the header row if row 1 is empty. Returns True when written."""
        self.ensure_sheet(name)
        first_row = self.read_range(name, "1:1")
        if first_row and any(str(c).strip() for c in first_row[0]):
            return False
        logger.info("Adding headers to %s", name)
        self._update_values(
            f"{quote_sheet(name)}!A1:{col_letter(len(headers))}1", [list(headers)]
        )
        return True

    @retry("values.update")
    def _update_values(self, a1: str, values: List[List[str]]) -> None:
        self.service.spreadsheets().values().update(
            spreadsheetId=self.spreadsheet_id,
            range=a1,
            valueInputOption="RAW",
            body={"values": values}
        ).execute()

    def append_rows(self, name: str, rows: Sequence[Sequence[str]]) -> int:
        """Append rows below the last data row. Returns rows written."""
        written = 0
        for i, batch in enumerate(chunked(list(rows), self.batch_size)):
            if i:
                time.sleep(self.batch_delay_seconds)
            self._append(name, [list(r) for r in batch])
            written += len(batch)
        return written

    @retry("values.append")
    def _append(self, name: str, rows: List[List[str]]) -> None:
        self.service.spreadsheets().values().append(
            spreadsheetId=self.spreadsheet_id,
            range=f"{quote_sheet(name)}!A1",
            valueInputOption="RAW",
            insertDataOption="INSERT_ROWS",
            body={"values": rows}
        ).execute()

    def batch_update_cells(self, name: str, updates: Sequence[Tuple[int, Sequence[str]]]) -> int:
        """
        Overwrite whole rows in place.

        `updates` is a list of (row_index, values); each row is written to
        A<row>:<last column><row>. Returns rows written.
        """
        written = 0
        for i, batch in enumerate(chunked(list(updates), self.batch_size)):
            if i:
                time.sleep(self.batch_delay_seconds)
            data = []
            for row_index, values in batch:
                end = col_letter(max(1, len(values)))
                data.append({
                    "range": f"{quote_sheet(name)}!A{row_index}:{end}{row_index}",
                    "values": [list(values)],
                })
            self._batch_update(data)
            written += len(batch)
        return written

    @retry("values.batchUpdate")
    def _batch_update(self, data: List[dict]) -> None:
        self.service.spreadsheets().values().batchUpdate(
            spreadsheetId=self.spreadsheet_id,
            body={"valueInputOption": "RAW", "data": data}
        ).execute()

    @retry("values.clear")
    def clear_range(self, name: str, cell_range: str = "") -> None:
        a1 = quote_sheet(name) + (f"!{cell_range}" if cell_range else "")
        self.service.spreadsheets().values().clear(
            spreadsheetId=self.spreadsheet_id, range=a1, body={}
        ).execute()
