"""
Pydantic Schemas - Request/Response Validation

All API request and response schemas in one file for simplicity.
"""

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from typing import Optional, List, Any
from datetime import datetime
from enum import Enum


# ============================================================
# ENUMS
# ============================================================

class Department(str, Enum):
    writing = "writing"
    dev = "dev"
    ang = "ang"
    bdpr = "bdpr"
    photo = "photo"
    video = "video"


class EmailStatus(str, Enum):
    pending = "pending"
    success = "success"
    error = "error"


class ExportFormat(str, Enum):
    json = "json"
    ndjson = "ndjson"


# ============================================================
# USER SCHEMAS
# ============================================================

class UserRegister(BaseModel):
    firstname: str = Field(..., min_length=1)
    lastname: str = Field(..., min_length=1)
    regNo: str = Field(..., min_length=1)
    college: str = Field(..., min_length=1)
    year: str = Field(..., min_length=1)
    email: EmailStr
    phone: str = Field(..., min_length=1)

    @field_validator("firstname", "lastname", "regNo", "college", "year", "phone", mode="before")
    @classmethod
    def strip_text(cls, value: Any) -> Any:
        # numbers are common for year/phone in form posts
        if isinstance(value, (int, float)):
            value = str(value)
        return value.strip() if isinstance(value, str) else value

    @field_validator("email")
    @classmethod
    def lower_email(cls, value: str) -> str:
        return value.strip().lower()


class UserUpdate(BaseModel):
    firstname: Optional[str] = None
    lastname: Optional[str] = None
    college: Optional[str] = None
    year: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None

    @field_validator("email")
    @classmethod
    def lower_email(cls, value: Optional[str]) -> Optional[str]:
        return value.strip().lower() if value else value


class RegisterResponse(BaseModel):
    message: str
    data: dict


# ============================================================
# APPLICATION SCHEMAS
# ============================================================

class Answer(BaseModel):
    questionId: str = Field(..., min_length=1)
    answerText: str


class ApplicationSubmit(BaseModel):
    """Either registrationNumber or userId identifies the applicant."""
    registrationNumber: Optional[str] = None
    department: Department
    answers: List[Answer] = Field(..., min_length=1)
    userId: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    college: Optional[str] = None
    year: Optional[str] = None

    @field_validator("registrationNumber", mode="before")
    @classmethod
    def strip_reg_no(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @model_validator(mode="after")
    def require_applicant(self) -> "ApplicationSubmit":
        if not self.registrationNumber and not (self.userId or "").strip():
            raise ValueError("registrationNumber or userId is required")
        return self


class ApplicationResult(BaseModel):
    message: str
    lastHash: Optional[str] = None
    lastUpdated: Optional[datetime] = None


class ThankYouMail(BaseModel):
    email: Optional[str] = None
    name: Optional[str] = None


# ============================================================
# ADMIN / BATCH SCHEMAS
# ============================================================

class UserBatch(BaseModel):
    """Users as returned by GET /applicants/users (extra fields kept)."""
    model_config = ConfigDict(extra="allow")

    users: List[dict] = []


class ItemResult(BaseModel):
    id: Optional[str] = None
    status: str
    error: Optional[str] = None


class BatchResponse(BaseModel):
    success: bool
    results: List[ItemResult] = []


# ============================================================
# SYNC SCHEMAS
# ============================================================

class SyncTriggerResponse(BaseModel):
    started: bool
    message: str


# ============================================================
# GENERIC SCHEMAS
# ============================================================

class MessageResponse(BaseModel):
    message: str
    success: bool = True

