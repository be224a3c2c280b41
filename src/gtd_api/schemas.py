from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import List, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from .models import Priority, ProjectStatus, SystemList, TaskStatus

# Shared type for incoming dates which can be a date, datetime, or ISO8601 string
DueDateInput = Union[date, datetime, str]

_HEX_COLOR_RE = re.compile(r"^#[0-9a-fA-F]{6}$")


def _parse_due_date(value: Optional[DueDateInput]) -> Optional[datetime]:
    """
    Normalize due date input into an aware UTC datetime.
    - ISO strings are parsed as datetime first, then as a bare date (midnight).
    - A date (not datetime) becomes midnight UTC.
    - Naive datetimes are taken as UTC; aware ones are converted to UTC.
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        s = value.strip()
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(s)
        except ValueError:
            try:
                d = date.fromisoformat(s)
            except ValueError as e:
                raise ValueError(
                    "Invalid date format. Use ISO8601 date or datetime string (e.g., '2025-01-31' or '2025-01-31T13:45:00Z')."
                ) from e
            parsed = datetime(d.year, d.month, d.day)
    else:
        raise ValueError("Invalid type for date; expected date, datetime, or ISO8601 string.")

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _clean_name(value: Optional[str], max_len: int, what: str) -> Optional[str]:
    if value is None:
        return None
    s = value.strip()
    if not s:
        raise ValueError(f"{what} is required.")
    if len(s) > max_len:
        raise ValueError(f"{what} must not exceed {max_len} characters.")
    return s


def _not_null(value, what: str):
    if value is None:
        raise ValueError(f"{what} cannot be null.")
    return value


class ApiModel(BaseModel):
    """camelCase on the wire; snake_case also accepted on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Auth


# PUBLIC_INTERFACE
class RegisterRequest(ApiModel):
    email: EmailStr = Field(..., description="Account email (case-insensitive, unique)")
    password: str = Field(..., description="At least 8 chars with upper, lower case letters and a digit")
    display_name: str = Field(..., description="Name shown in the UI")

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower()

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        if not v:
            raise ValueError("Password is required")
        if len(v) < 8:
            raise ValueError("Password must be at least 8 characters")
        if not re.search(r"[A-Z]", v):
            raise ValueError("Password must contain at least one uppercase letter")
        if not re.search(r"[a-z]", v):
            raise ValueError("Password must contain at least one lowercase letter")
        if not re.search(r"[0-9]", v):
            raise ValueError("Password must contain at least one digit")
        return v

    @field_validator("display_name")
    @classmethod
    def validate_display_name(cls, v: str) -> str:
        s = v.strip()
        if not s:
            raise ValueError("Display name is required")
        if len(s) > 100:
            raise ValueError("Display name must not exceed 100 characters")
        return s


# PUBLIC_INTERFACE
class LoginRequest(ApiModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        s = v.strip()
        if not s:
            raise ValueError("Email is required")
        return s.lower()

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        if not v:
            raise ValueError("Password is required")
        return v


class UserOut(ApiModel):
    id: str
    email: str
    display_name: str


# PUBLIC_INTERFACE
class AuthResponse(ApiModel):
    """Returned by register and login."""

    token: str = Field(..., description="Bearer JWT")
    user: UserOut


class CurrentUserOut(ApiModel):
    id: str
    email: str
    display_name: str
    created_at: datetime


# Tasks


# PUBLIC_INTERFACE
class TaskCreate(ApiModel):
    """
    Schema for creating a task. Status is always Open; list, priority default
    to Inbox and P4.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Buy milk",
                "description": "Semi-skimmed",
                "priority": "P2",
                "systemList": "Next",
                "dueDate": "2025-02-01",
            }
        }
    )

    name: str = Field(..., description="Task name, 1..500 characters")
    description: Optional[str] = Field(default=None, max_length=4000)
    priority: Optional[Priority] = Field(default=None, description="P1..P4, defaults to P4")
    system_list: Optional[SystemList] = Field(default=None, description="Defaults to Inbox")
    due_date: Optional[datetime] = Field(
        default=None,
        description="ISO8601 date or datetime; dates are set to 00:00 UTC",
    )
    project_id: Optional[UUID] = Field(default=None, description="Project owned by the caller")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if v is None:
            raise ValueError("Task name is required.")
        return _clean_name(v, 500, "Task name")  # type: ignore[return-value]

    @field_validator("due_date", mode="before")
    @classmethod
    def parse_due_date(cls, v: Optional[DueDateInput]) -> Optional[datetime]:
        return _parse_due_date(v)


# PUBLIC_INTERFACE
class TaskUpdate(ApiModel):
    """
    Partial update of a task. Only fields present in the body are applied
    (``model_fields_set``); explicit null clears description, dueDate and
    projectId, and is rejected for name, priority and systemList.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"name": "Buy oat milk", "dueDate": None, "systemList": "Next"}
        }
    )

    name: Optional[str] = Field(default=None, description="Task name, 1..500 characters")
    description: Optional[str] = Field(default=None, max_length=4000)
    priority: Optional[Priority] = None
    system_list: Optional[SystemList] = None
    due_date: Optional[datetime] = None
    project_id: Optional[UUID] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        return _clean_name(_not_null(v, "Name"), 500, "Name")

    @field_validator("priority")
    @classmethod
    def validate_priority(cls, v: Optional[Priority]) -> Optional[Priority]:
        return _not_null(v, "Priority")

    @field_validator("system_list")
    @classmethod
    def validate_system_list(cls, v: Optional[SystemList]) -> Optional[SystemList]:
        return _not_null(v, "SystemList")

    @field_validator("due_date", mode="before")
    @classmethod
    def parse_due_date(cls, v: Optional[DueDateInput]) -> Optional[datetime]:
        return _parse_due_date(v)


# PUBLIC_INTERFACE
class ReorderRequest(ApiModel):
    system_list: SystemList
    task_ids: List[UUID] = Field(..., description="Task ids in their new order")

    @field_validator("task_ids")
    @classmethod
    def validate_task_ids(cls, v: List[UUID]) -> List[UUID]:
        if not v:
            raise ValueError("Task IDs array must not be empty.")
        if len(set(v)) != len(v):
            raise ValueError("Task IDs must not contain duplicates.")
        return v


class LabelSummary(ApiModel):
    id: str
    name: str
    color: Optional[str] = None


# PUBLIC_INTERFACE
class TaskOut(ApiModel):
    """A task as returned by the API, with its project name and labels resolved."""

    id: str
    name: str
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    priority: Priority
    status: TaskStatus
    system_list: SystemList
    sort_order: int
    project_id: Optional[str] = None
    project_name: Optional[str] = None
    is_archived: bool
    completed_at: Optional[datetime] = None
    labels: List[LabelSummary] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class TaskListOut(ApiModel):
    tasks: List[TaskOut]
    total_count: int


class ReorderedTask(ApiModel):
    id: str
    sort_order: int


class ReorderOut(ApiModel):
    reordered_tasks: List[ReorderedTask]


# Labels


def _validate_color(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    s = v.strip()
    if not _HEX_COLOR_RE.match(s):
        raise ValueError("Color must be a valid hex color (e.g., '#ff4040').")
    return s


# PUBLIC_INTERFACE
class LabelCreate(ApiModel):
    name: str
    color: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _clean_name(v, 100, "Label name")  # type: ignore[return-value]

    @field_validator("color")
    @classmethod
    def validate_color(cls, v: Optional[str]) -> Optional[str]:
        return _validate_color(v)


# PUBLIC_INTERFACE
class LabelUpdate(ApiModel):
    """Partial update; explicit null clears the color."""

    name: Optional[str] = None
    color: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        return _clean_name(_not_null(v, "Label name"), 100, "Label name")

    @field_validator("color")
    @classmethod
    def validate_color(cls, v: Optional[str]) -> Optional[str]:
        return _validate_color(v)


class LabelOut(ApiModel):
    id: str
    name: str
    color: Optional[str] = None
    task_count: int = 0
    created_at: datetime


class LabelListOut(ApiModel):
    labels: List[LabelOut]
    total_count: int


# Projects


# PUBLIC_INTERFACE
class ProjectCreate(ApiModel):
    name: str
    description: Optional[str] = Field(default=None, max_length=4000)
    due_date: Optional[datetime] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _clean_name(v, 200, "Project name")  # type: ignore[return-value]

    @field_validator("due_date", mode="before")
    @classmethod
    def parse_due_date(cls, v: Optional[DueDateInput]) -> Optional[datetime]:
        return _parse_due_date(v)


# PUBLIC_INTERFACE
class ProjectUpdate(ApiModel):
    name: Optional[str] = None
    description: Optional[str] = Field(default=None, max_length=4000)
    due_date: Optional[datetime] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        return _clean_name(_not_null(v, "Project name"), 200, "Project name")

    @field_validator("due_date", mode="before")
    @classmethod
    def parse_due_date(cls, v: Optional[DueDateInput]) -> Optional[datetime]:
        return _parse_due_date(v)


class ProjectOut(ApiModel):
    id: str
    name: str
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    status: ProjectStatus
    sort_order: int
    total_task_count: int = 0
    completed_task_count: int = 0
    completion_percentage: int = 0
    created_at: datetime
    updated_at: datetime


class ProjectListOut(ApiModel):
    projects: List[ProjectOut]
    total_count: int


class HealthOut(ApiModel):
    status: str
    timestamp: datetime
    backend: str
