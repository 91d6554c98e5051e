import copy
from datetime import datetime, timedelta

import mongomock
import pytest
from fastapi.testclient import TestClient

from intake.core.config import Settings
from intake.core.container import ServiceContainer
from intake.db.mongodb import COLLECTIONS, init_mongo_indexes
from intake.main import create_app
from intake.services.checkpoint_service import CheckpointService
from intake.sync.engine import SyncEngine
from intake.utils.timestamps import utcnow


class FakeSheetsClient:
    """In-memory stand-in for SheetsClient. Sheets are lists of rows."""

    def __init__(self, spreadsheet_id="test-spreadsheet"):
        self.spreadsheet_id = spreadsheet_id
        self.sheets = {}
        self.appended = []
        self.updated = []

    def sheet_titles(self):
        return list(self.sheets)

    def ensure_sheet(self, name):
        if name in self.sheets:
            return False
        self.sheets[name] = []
        return True

    def ensure_headers(self, name, headers):
        self.ensure_sheet(name)
        rows = self.sheets[name]
        if rows and any(str(c).strip() for c in rows[0]):
            return False
        if rows:
            rows[0] = list(headers)
        else:
            rows.append(list(headers))
        return True

    def read_range(self, sheet_name, cell_range=""):
        rows = copy.deepcopy(self.sheets.get(sheet_name, []))
        # the API drops trailing empty cells
        trimmed = []
        for row in rows:
            row = list(row)
            while row and row[-1] == "":
                row.pop()
            trimmed.append(row)
        return trimmed

    def append_rows(self, name, rows):
        self.ensure_sheet(name)
        for row in rows:
            self.sheets[name].append(list(row))
            self.appended.append((name, list(row)))
        return len(rows)

    def batch_update_cells(self, name, updates):
        for row_index, values in updates:
            rows = self.sheets[name]
            while len(rows) < row_index:
                rows.append([])
            rows[row_index - 1] = list(values)
            self.updated.append((name, row_index, list(values)))
        return len(updates)

    def clear_range(self, name, cell_range=""):
        self.sheets[name] = []

    # test helpers

    def rows(self, name):
        """Data rows below the header."""
        return self.sheets.get(name, [])[1:]


class FakeClock:
    def __init__(self, start):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def db():
    database = mongomock.MongoClient()["intake_test"]
    init_mongo_indexes(database)
    return database


@pytest.fixture
def fake_sheets():
    return FakeSheetsClient()


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 1, 10, 12, 0, 0))


@pytest.fixture
def cache_clock():
    # the cache collection also expires entries against wall-clock time
    return FakeClock(utcnow())


@pytest.fixture
def checkpoints(db):
    return CheckpointService(db[COLLECTIONS["sync_config"]])


@pytest.fixture
def engine(db, fake_sheets, checkpoints, clock):
    return SyncEngine(
        db[COLLECTIONS["users"]],
        db[COLLECTIONS["applications"]],
        fake_sheets,
        checkpoints,
        clock=clock,
    )


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        spreadsheet_id="test-spreadsheet",
        sync_enabled=False,
        sheets_batch_delay_seconds=0,
        smtp_user="noreply@example.com",
        smtp_password="secret",
    )


@pytest.fixture
def container(settings, db, fake_sheets):
    return ServiceContainer.build(settings, db=db, sheets=fake_sheets, export_sheets=fake_sheets)


@pytest.fixture
def client(container):
    app = create_app(container=container)
    return TestClient(app)


@pytest.fixture
def registration():
    return {
        "firstname": "Asha",
        "lastname": "Rao",
        "regNo": "230905001",
        "college": "MIT",
        "year": "2",
        "email": "Asha.Rao@example.com",
        "phone": "9876543210",
    }


@pytest.fixture
def application_payload():
    return {
        "registrationNumber": "230905001",
        "department": "dev",
        "name": "Asha Rao",
        "email": "asha.rao@example.com",
        "phone": "9876543210",
        "college": "MIT",
        "year": "2",
        "answers": [
            {"questionId": "q1", "answerText": "I build things"},
            {"questionId": "q2", "answerText": "Python, Go"},
        ],
    }
