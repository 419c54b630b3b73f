"""
Pydantic schemas for API request/response models.
"""

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field

from app.auth.roles import Role
from app.models import ComplaintStatus, Priority
from app.services.complaint_service import (
    DESCRIPTION_MIN_LENGTH,
    LOCATION_MIN_LENGTH,
    TITLE_MIN_LENGTH,
)
from app.services.directory import NAME_MAX_LENGTH, NAME_MIN_LENGTH


# ── Pagination ──

class PaginatedResponse(BaseModel):
    total: int
    page: int
    size: int
    pages: int


# ── Errors ──

class ErrorResponse(BaseModel):
    detail: str | list
    error: str


# ── Reference directory ──

class ReferenceCreate(BaseModel):
    name: str = Field(..., min_length=NAME_MIN_LENGTH, max_length=NAME_MAX_LENGTH)
    description: str | None = Field(None, max_length=500)


class AgencySchema(BaseModel):
    id: int
    name: str
    description: str | None = None
    created_at: datetime | None = None


class CategorySchema(BaseModel):
    id: int
    name: str
    description: str | None = None
    created_at: datetime | None = None


# ── Complaints ──

class ComplaintCreate(BaseModel):
    title: str = Field(..., min_length=TITLE_MIN_LENGTH, max_length=200)
    description: str = Field(..., min_length=DESCRIPTION_MIN_LENGTH, max_length=5000)
    category_id: int
    agency_id: int
    location: str = Field(..., min_length=LOCATION_MIN_LENGTH, max_length=300)
    priority: Priority


class ComplaintSummary(BaseModel):
    id: int
    title: str
    status: ComplaintStatus
    priority: Priority
    agency_id: int
    agency_name: str | None = None
    category_id: int
    category_name: str | None = None
    location: str
    created_at: datetime | None = None


class ComplaintListResponse(PaginatedResponse):
    items: list[ComplaintSummary]


class ComplaintDetail(ComplaintSummary):
    description: str
    submitter_id: str
    updated_at: datetime | None = None
    allowed_transitions: list[ComplaintStatus] = []


class StatusUpdate(BaseModel):
    status: ComplaintStatus


# ── Responses ──

class ResponseCreate(BaseModel):
    content: str = Field(..., max_length=5000)
    status: ComplaintStatus | None = None


class ResponseSchema(BaseModel):
    id: int
    complaint_id: int
    author_id: str
    author_role: Role
    content: str
    previous_status: ComplaintStatus | None = None
    new_status: ComplaintStatus | None = None
    created_at: datetime | None = None


# ── Auth / users ──

class RegisterRequest(BaseModel):
    email: EmailStr
    full_name: str = Field(..., min_length=2, max_length=200)
    password: str


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class UserSchema(BaseModel):
    id: int
    email: str
    full_name: str
    role: Role
    agency_id: int | None = None
    is_active: bool = True
    permissions: list[str] = []
    created_at: datetime | None = None


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserSchema


class CreateUserRequest(BaseModel):
    email: EmailStr
    full_name: str = Field(..., min_length=2, max_length=200)
    role: Role = Role.CITIZEN
    agency_id: int | None = None
    password: str | None = None  # auto-generated if omitted


class UpdateUserRequest(BaseModel):
    full_name: str | None = Field(None, min_length=2, max_length=200)
    is_active: bool | None = None


# ── Audit ──

class AuditEntry(BaseModel):
    id: int
    event_id: str
    event_type: str
    actor: str
    action: str
    resource_type: str | None = None
    resource_id: str | None = None
    details: dict = {}
    previous_hash: str | None = None
    current_hash: str
    created_at: datetime | None = None


class AuditListResponse(PaginatedResponse):
    items: list[AuditEntry]


class IntegrityCheckResponse(BaseModel):
    valid: bool
    entries_checked: int
    first_invalid: str | None = None
    reason: str | None = None
