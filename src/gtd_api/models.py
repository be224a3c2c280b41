from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, TypedDict


class _CaseInsensitiveEnum(str, Enum):
    """String enum that also accepts its values in any letter case."""

    @classmethod
    def _missing_(cls, value: object):
        if isinstance(value, str):
            needle = value.strip().lower()
            for member in cls:
                if member.value.lower() == needle:
                    return member
        return None


class SystemList(_CaseInsensitiveEnum):
    INBOX = "Inbox"
    NEXT = "Next"
    UPCOMING = "Upcoming"
    SOMEDAY = "Someday"


class Priority(_CaseInsensitiveEnum):
    P1 = "P1"
    P2 = "P2"
    P3 = "P3"
    P4 = "P4"


class TaskStatus(_CaseInsensitiveEnum):
    OPEN = "Open"
    DONE = "Done"


class StatusFilter(_CaseInsensitiveEnum):
    OPEN = "Open"
    DONE = "Done"
    ALL = "All"


class ProjectStatus(_CaseInsensitiveEnum):
    ACTIVE = "Active"
    COMPLETED = "Completed"


# PUBLIC_INTERFACE
class UserEntity(TypedDict):
    """
    A registered account. ``email`` is stored lower-cased so lookups are
    case-insensitive.
    """

    id: str
    email: str
    password_hash: str
    display_name: str
    created_at: datetime
    updated_at: datetime


# PUBLIC_INTERFACE
class TaskEntity(TypedDict):
    """
    A task as held by the storage backends.

    Fields:
    - id: UUID string
    - user_id: owner
    - name: 1..500 chars, trimmed on input via schemas
    - description: optional, up to 4000 chars
    - priority / status / system_list: enum values
    - due_date: optional aware UTC datetime
    - project_id: optional owning project
    - sort_order: manual position inside the system list
    - is_archived: True exactly when status is Done
    - completed_at: set exactly when archived
    """

    id: str
    user_id: str
    name: str
    description: Optional[str]
    priority: Priority
    status: TaskStatus
    system_list: SystemList
    due_date: Optional[datetime]
    project_id: Optional[str]
    sort_order: int
    is_archived: bool
    completed_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime


# PUBLIC_INTERFACE
class ProjectEntity(TypedDict):
    id: str
    user_id: str
    name: str
    description: Optional[str]
    due_date: Optional[datetime]
    status: ProjectStatus
    sort_order: int
    created_at: datetime
    updated_at: datetime


# PUBLIC_INTERFACE
class LabelEntity(TypedDict):
    id: str
    user_id: str
    name: str
    color: Optional[str]
    created_at: datetime


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


# PUBLIC_INTERFACE
def new_user(email: str, password_hash: str, display_name: str) -> UserEntity:
    """Build a fresh UserEntity with a new id and timestamps."""
    now = utcnow()
    return {
        "id": new_id(),
        "email": email.strip().lower(),
        "password_hash": password_hash,
        "display_name": display_name,
        "created_at": now,
        "updated_at": now,
    }


# PUBLIC_INTERFACE
def new_task(
    user_id: str,
    name: str,
    description: Optional[str] = None,
    system_list: SystemList = SystemList.INBOX,
    priority: Priority = Priority.P4,
    project_id: Optional[str] = None,
    due_date: Optional[datetime] = None,
) -> TaskEntity:
    """Build an Open, unarchived TaskEntity. Sort order is assigned on insert."""
    now = utcnow()
    return {
        "id": new_id(),
        "user_id": user_id,
        "name": name,
        "description": description,
        "priority": priority,
        "status": TaskStatus.OPEN,
        "system_list": system_list,
        "due_date": due_date,
        "project_id": project_id,
        "sort_order": 0,
        "is_archived": False,
        "completed_at": None,
        "created_at": now,
        "updated_at": now,
    }


# PUBLIC_INTERFACE
def new_project(
    user_id: str,
    name: str,
    description: Optional[str] = None,
    due_date: Optional[datetime] = None,
) -> ProjectEntity:
    now = utcnow()
    return {
        "id": new_id(),
        "user_id": user_id,
        "name": name,
        "description": description,
        "due_date": due_date,
        "status": ProjectStatus.ACTIVE,
        "sort_order": 0,
        "created_at": now,
        "updated_at": now,
    }


# PUBLIC_INTERFACE
def new_label(user_id: str, name: str, color: Optional[str] = None) -> LabelEntity:
    return {
        "id": new_id(),
        "user_id": user_id,
        "name": name,
        "color": color,
        "created_at": utcnow(),
    }


def complete_task(task: TaskEntity) -> TaskEntity:
    """Return a copy marked Done. A task that is already Done keeps its completion time."""
    now = utcnow()
    done = task.copy()
    if task["status"] != TaskStatus.DONE or task["completed_at"] is None:
        done["completed_at"] = now
    done["status"] = TaskStatus.DONE
    done["is_archived"] = True
    done["updated_at"] = now
    return done


def reopen_task(task: TaskEntity) -> TaskEntity:
    """Return a copy marked Open again, positioned at the head of its list."""
    reopened = task.copy()
    reopened["status"] = TaskStatus.OPEN
    reopened["is_archived"] = False
    reopened["completed_at"] = None
    reopened["sort_order"] = 0
    reopened["updated_at"] = utcnow()
    return reopened
