"""
Sheet row projections.

Each record kind maps to a fixed header set. A row is a list of strings in
header order; rows are matched to records through a natural key read out of
the row itself, never through the row's position.

Users:         one row per user, keyed by Reg No
Applications:  one row per answer, keyed by (Reg No, Department, QuestionID)
"""

from typing import Any, Dict, List, Sequence, Tuple

from intake.sheets.client import col_letter
from intake.utils.timestamps import to_sheet_timestamp

USERS_SHEET = "Users"
APPLICATIONS_SHEET = "Applications"

USERS_HEADERS = [
    "ID", "UserID", "First Name", "Last Name", "Reg No",
    "College", "Year", "Email", "Phone", "Last Modified",
]
APPLICATIONS_HEADERS = [
    "ID", "UserID", "Reg No", "Name", "Email", "Phone", "College", "Year",
    "Department", "QuestionID", "Answer", "Last Updated",
]

# Column positions used to pull keys and fields back out of rows
U_ID, U_USER_ID, U_FIRST, U_LAST, U_REG, U_COLLEGE, U_YEAR, U_EMAIL, U_PHONE, U_MODIFIED = range(10)
(A_ID, A_USER_ID, A_REG, A_NAME, A_EMAIL, A_PHONE, A_COLLEGE, A_YEAR,
 A_DEPT, A_QUESTION, A_ANSWER, A_UPDATED) = range(12)


def data_range(headers: Sequence[str]) -> str:
    """A1:<last column>, open-ended downwards."""
    return f"A1:{col_letter(len(headers))}"


def _cell(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def pad_row(row: Sequence[Any], width: int) -> List[str]:
    """The API drops trailing empty cells; restore them for comparison."""
    row = [_cell(c) for c in row[:width]]
    return row + [""] * (width - len(row))


# ============================================================
# USERS
# ============================================================

def user_key(reg_no: Any) -> str:
    return _cell(reg_no).strip()


def user_row(user: Dict[str, Any]) -> List[str]:
    return [
        _cell(user.get("_id")),
        _cell(user.get("userId")),
        _cell(user.get("firstname")),
        _cell(user.get("lastname")),
        _cell(user.get("regNo")),
        _cell(user.get("college")),
        _cell(user.get("year")),
        _cell(user.get("email")),
        _cell(user.get("phone")),
        to_sheet_timestamp(user.get("lastModified")),
    ]


def user_row_key(row: Sequence[str]) -> str:
    return user_key(pad_row(row, len(USERS_HEADERS))[U_REG])


# ============================================================
# APPLICATIONS
# ============================================================

def application_key(reg_no: Any, department: Any, question_id: Any) -> Tuple[str, str, str]:
    return (_cell(reg_no).strip(), _cell(department).strip().lower(), _cell(question_id).strip())


def application_rows(app: Dict[str, Any]) -> List[Tuple[Tuple[str, str, str], List[str]]]:
    """One (key, row) pair per answer, in answer order."""
    rows = []
    for answer in app.get("answers") or []:
        row = [
            _cell(app.get("_id")),
            _cell(app.get("userId")),
            _cell(app.get("registrationNumber")),
            _cell(app.get("name")),
            _cell(app.get("email")),
            _cell(app.get("phone")),
            _cell(app.get("college")),
            _cell(app.get("year")),
            _cell(app.get("department")),
            _cell(answer.get("questionId")),
            _cell(answer.get("answerText")),
            to_sheet_timestamp(app.get("lastUpdated")),
        ]
        key = application_key(app.get("registrationNumber"), app.get("department"), answer.get("questionId"))
        rows.append((key, row))
    return rows


def application_row_key(row: Sequence[str]) -> Tuple[str, str, str]:
    row = pad_row(row, len(APPLICATIONS_HEADERS))
    return application_key(row[A_REG], row[A_DEPT], row[A_QUESTION])
