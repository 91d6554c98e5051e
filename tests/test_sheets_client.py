from unittest.mock import MagicMock

import httplib2
import pytest
from googleapiclient.errors import HttpError

from intake.core.exceptions import SheetsError
from intake.sheets.client import SheetsClient, col_letter, quote_sheet


def http_error(status, content=b"error"):
    return HttpError(httplib2.Response({"status": status}), content)


@pytest.fixture
def sleep(mocker):
    return mocker.patch("intake.sheets.client.time.sleep")


@pytest.fixture
def service():
    return MagicMock()


@pytest.fixture
def values(service):
    return service.spreadsheets.return_value.values.return_value


@pytest.fixture
def sheets(service):
    return SheetsClient(service, "sheet-id", batch_size=50, batch_delay_seconds=1.0,
                        max_attempts=5, backoff_seconds=0.5)


def test_col_letter():
    assert col_letter(1) == "A"
    assert col_letter(12) == "L"
    assert col_letter(26) == "Z"
    assert col_letter(27) == "AA"


def test_quote_sheet_escapes_quotes():
    assert quote_sheet("Final Users") == "'Final Users'"
    assert quote_sheet("Bob's") == "'Bob''s'"


def test_rate_limit_is_retried_with_backoff(sheets, values, sleep):
    values.get.return_value.execute.side_effect = [
        http_error(429), http_error(503), {"values": [["a", "b"]]},
    ]
    assert sheets.read_range("Users", "A1:B") == [["a", "b"]]
    assert [c.args[0] for c in sleep.call_args_list] == [0.5, 1.0]


def test_gives_up_after_max_attempts(sheets, values, sleep):
    values.get.return_value.execute.side_effect = http_error(429)
    with pytest.raises(SheetsError) as exc:
        sheets.read_range("Users")
    assert exc.value.operation == "values.get"
    assert values.get.return_value.execute.call_count == 5
    assert [c.args[0] for c in sleep.call_args_list] == [0.5, 1.0, 2.0, 4.0]


def test_permanent_errors_are_not_retried(sheets, values, sleep):
    values.get.return_value.execute.side_effect = http_error(403)
    with pytest.raises(SheetsError):
        sheets.read_range("Users")
    assert values.get.return_value.execute.call_count == 1
    sleep.assert_not_called()


def test_network_errors_are_retried(sheets, values, sleep):
    values.get.return_value.execute.side_effect = [ConnectionResetError("reset"), {"values": []}]
    assert sheets.read_range("Users") == []
    assert sleep.call_count == 1


def test_missing_sheet_reads_as_empty(sheets, values, sleep):
    values.get.return_value.execute.side_effect = http_error(
        400, b'{"error": {"message": "Unable to parse range: Missing!A1:J"}}'
    )
    assert sheets.read_range("Missing", "A1:J") == []


def test_read_range_addresses_quoted_sheet(sheets, values):
    values.get.return_value.execute.return_value = {}
    assert sheets.read_range("Final Users", "1:1") == []
    assert values.get.call_args.kwargs == {"spreadsheetId": "sheet-id", "range": "'Final Users'!1:1"}


def test_append_rows_is_chunked_with_pause(sheets, values, sleep):
    rows = [[str(i)] for i in range(120)]
    assert sheets.append_rows("Users", rows) == 120

    calls = values.append.call_args_list
    assert [len(c.kwargs["body"]["values"]) for c in calls] == [50, 50, 20]
    assert all(c.kwargs["valueInputOption"] == "RAW" for c in calls)
    assert all(c.kwargs["insertDataOption"] == "INSERT_ROWS" for c in calls)
    assert [c.args[0] for c in sleep.call_args_list] == [1.0, 1.0]


def test_batch_update_cells_writes_whole_rows(sheets, values, sleep):
    assert sheets.batch_update_cells("dev", [(2, ["a", "b", "c"]), (7, ["x"])]) == 2
    body = values.batchUpdate.call_args.kwargs["body"]
    assert body["valueInputOption"] == "RAW"
    assert body["data"] == [
        {"range": "'dev'!A2:C2", "values": [["a", "b", "c"]]},
        {"range": "'dev'!A7:A7", "values": [["x"]]},
    ]
    sleep.assert_not_called()


def test_ensure_headers_creates_sheet_and_header_row(sheets, service, values):
    service.spreadsheets.return_value.get.return_value.execute.return_value = {
        "sheets": [{"properties": {"title": "Users"}}]
    }
    values.get.return_value.execute.side_effect = http_error(400, b"Unable to parse range: dev!1:1")

    assert sheets.ensure_headers("dev", ["ID", "UserID", "Reg No"]) is True

    add = service.spreadsheets.return_value.batchUpdate.call_args.kwargs["body"]
    assert add == {"requests": [{"addSheet": {"properties": {"title": "dev"}}}]}
    update = values.update.call_args.kwargs
    assert update["range"] == "'dev'!A1:C1"
    assert update["body"] == {"values": [["ID", "UserID", "Reg No"]]}


def test_ensure_headers_keeps_existing_header(sheets, service, values):
    service.spreadsheets.return_value.get.return_value.execute.return_value = {
        "sheets": [{"properties": {"title": "Users"}}]
    }
    values.get.return_value.execute.return_value = {"values": [["ID", "UserID"]]}

    assert sheets.ensure_headers("Users", ["ID", "UserID"]) is False
    values.update.assert_not_called()
