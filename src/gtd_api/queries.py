"""
Task list query composition.

``TaskQuery`` describes what ``GET /api/tasks`` asked for. The in-memory
backend evaluates it with ``filter_tasks``/``sort_tasks`` below; the SQLite
backend translates the same rules into SQL (see ``db.py``).
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import AbstractSet, Iterable, List, Optional

from .models import StatusFilter, SystemList, TaskEntity, TaskStatus

UPCOMING_WINDOW_DAYS = 14


@dataclass(frozen=True)
class TaskQuery:
    """
    Filter criteria for listing a user's tasks.

    ``upcoming`` switches to the derived Upcoming view and ignores every
    other criterion.
    """
    system_list: Optional[SystemList] = None
    project_id: Optional[str] = None
    label_id: Optional[str] = None
    status: StatusFilter = StatusFilter.OPEN
    archived: bool = False
    upcoming: bool = False

    @property
    def by_completion(self) -> bool:
        """Archived and Done listings are ordered by completion time, newest first."""
        return not self.upcoming and (self.archived or self.status == StatusFilter.DONE)


def upcoming_threshold(now: datetime) -> datetime:
    return now + timedelta(days=UPCOMING_WINDOW_DAYS)


def in_upcoming_view(task: TaskEntity, now: datetime) -> bool:
    if task["is_archived"] or task["status"] != TaskStatus.OPEN:
        return False
    if task["system_list"] == SystemList.UPCOMING:
        return True
    due = task["due_date"]
    return due is not None and due <= upcoming_threshold(now)


def matches(
    task: TaskEntity,
    query: TaskQuery,
    now: datetime,
    labelled: AbstractSet[str] = frozenset(),
) -> bool:
    """
    Return True when ``task`` belongs in the result of ``query``.

    ``labelled`` holds the ids of tasks carrying ``query.label_id``.
    """
    if query.upcoming:
        return in_upcoming_view(task, now)

    if query.archived:
        if not task["is_archived"]:
            return False
    elif query.status == StatusFilter.OPEN:
        if task["status"] != TaskStatus.OPEN or task["is_archived"]:
            return False
    elif query.status == StatusFilter.DONE:
        if task["status"] != TaskStatus.DONE or not task["is_archived"]:
            return False

    if query.system_list is not None and task["system_list"] != query.system_list:
        return False
    if query.project_id is not None and task["project_id"] != query.project_id:
        return False
    if query.label_id is not None and task["id"] not in labelled:
        return False
    return True


def filter_tasks(
    tasks: Iterable[TaskEntity],
    query: TaskQuery,
    now: datetime,
    labelled: AbstractSet[str] = frozenset(),
) -> List[TaskEntity]:
    return [t for t in tasks if matches(t, query, now, labelled)]


def _upcoming_key(now: datetime):
    def key(t: TaskEntity):
        due = t["due_date"]
        if due is None:
            # Upcoming-list tasks without a date go last
            return (2, datetime.max.replace(tzinfo=now.tzinfo), t["sort_order"], t["created_at"])
        bucket = 0 if due < now else 1
        return (bucket, due, t["sort_order"], t["created_at"])

    return key


def sort_tasks(tasks: Iterable[TaskEntity], query: TaskQuery, now: datetime) -> List[TaskEntity]:
    """
    Order a filtered result:
    - Upcoming view: overdue (oldest due first), then by due date, undated last
    - archived / Done: completion time descending
    - otherwise: manual sort order ascending, creation time as tie-breaker
    """
    if query.upcoming:
        return sorted(tasks, key=_upcoming_key(now))
    if query.by_completion:
        return sorted(
            tasks,
            key=lambda t: t["completed_at"] or t["updated_at"],
            reverse=True,
        )
    return sorted(tasks, key=lambda t: (t["sort_order"], t["created_at"]))
