from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from threading import RLock
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .errors import Conflict, ValidationFailed
from .models import (
    LabelEntity,
    ProjectEntity,
    SystemList,
    TaskEntity,
    TaskStatus,
    UserEntity,
)
from .queries import TaskQuery, filter_tasks, sort_tasks
from .settings import get_settings

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
class Repository(ABC):
    """
    Storage contract for users, tasks, projects and labels.

    Every read of a user-owned entity takes the owner id. An entity that
    exists but belongs to someone else is reported exactly like a missing
    one (``None`` / ``False``), which the API turns into a 404.
    """

    # Users

    @abstractmethod
    def add_user(self, user: UserEntity) -> UserEntity:
        """Insert a user. Raises Conflict if the email is already registered."""

    @abstractmethod
    def get_user(self, user_id: str) -> Optional[UserEntity]:
        """Return a user by id, or None."""

    @abstractmethod
    def get_user_by_email(self, email: str) -> Optional[UserEntity]:
        """Return a user by (case-insensitive) email, or None."""

    # Tasks

    @abstractmethod
    def add_task(self, task: TaskEntity) -> TaskEntity:
        """
        Insert a task at the head of its system list: it gets sort order 0 and
        the owner's other unarchived tasks in that list move down by one.
        """

    @abstractmethod
    def get_task(self, user_id: str, task_id: str) -> Optional[TaskEntity]:
        """Return the owner's task, or None."""

    @abstractmethod
    def save_task(self, task: TaskEntity, move_to_head: bool = False) -> TaskEntity:
        """
        Persist every field of an existing task. With ``move_to_head`` the task
        is placed at sort order 0 and the rest of its list shifts down.
        """

    @abstractmethod
    def delete_task(self, user_id: str, task_id: str) -> bool:
        """Delete a task and its label links. Return False if not found."""

    @abstractmethod
    def list_tasks(self, user_id: str, query: TaskQuery, now: datetime) -> Tuple[List[TaskEntity], int]:
        """Return the owner's tasks matching ``query`` in display order, plus the count."""

    @abstractmethod
    def reorder_tasks(
        self, user_id: str, system_list: SystemList, task_ids: Sequence[str]
    ) -> List[Tuple[str, int]]:
        """
        Assign sort order = position for each id, all or nothing.
        Raises ValidationFailed if any id is unknown, foreign, or in another list.
        """

    # Task labels

    @abstractmethod
    def labels_for_tasks(self, task_ids: Iterable[str]) -> Dict[str, List[LabelEntity]]:
        """Map task id -> its labels ordered by name. Tasks without labels are omitted."""

    @abstractmethod
    def add_task_label(self, task_id: str, label_id: str) -> bool:
        """Link a label to a task. Return False if the link already existed."""

    @abstractmethod
    def remove_task_label(self, task_id: str, label_id: str) -> bool:
        """Unlink a label from a task. Return False if there was no link."""

    # Projects

    @abstractmethod
    def add_project(self, project: ProjectEntity) -> ProjectEntity:
        """Insert a project at the tail of the owner's project ordering."""

    @abstractmethod
    def get_project(self, user_id: str, project_id: str) -> Optional[ProjectEntity]:
        """Return the owner's project, or None."""

    @abstractmethod
    def list_projects(self, user_id: str) -> List[ProjectEntity]:
        """Return the owner's projects by sort order."""

    @abstractmethod
    def save_project(self, project: ProjectEntity) -> ProjectEntity:
        """Persist every field of an existing project."""

    @abstractmethod
    def delete_project(self, user_id: str, project_id: str) -> bool:
        """Delete a project; its tasks stay with project_id cleared."""

    @abstractmethod
    def project_names(self, project_ids: Iterable[str]) -> Dict[str, str]:
        """Map project id -> name."""

    @abstractmethod
    def project_task_counts(self, project_ids: Iterable[str]) -> Dict[str, Tuple[int, int]]:
        """Map project id -> (total tasks, completed tasks)."""

    # Labels

    @abstractmethod
    def add_label(self, label: LabelEntity) -> LabelEntity:
        """Insert a label. Raises Conflict on a duplicate name for the owner."""

    @abstractmethod
    def get_label(self, user_id: str, label_id: str) -> Optional[LabelEntity]:
        """Return the owner's label, or None."""

    @abstractmethod
    def list_labels(self, user_id: str) -> List[LabelEntity]:
        """Return the owner's labels ordered by name (case-insensitive)."""

    @abstractmethod
    def save_label(self, label: LabelEntity) -> LabelEntity:
        """Persist a label. Raises Conflict on a duplicate name for the owner."""

    @abstractmethod
    def delete_label(self, user_id: str, label_id: str) -> bool:
        """Delete a label and its task links."""

    @abstractmethod
    def label_task_counts(self, label_ids: Iterable[str]) -> Dict[str, int]:
        """Map label id -> number of tasks carrying it."""


def duplicate_label_message(name: str) -> str:
    return f"A label named '{name}' already exists."


def reorder_violation(task_id: str, system_list: SystemList) -> ValidationFailed:
    return ValidationFailed(
        f"Task '{task_id}' was not found in list '{system_list.value}' for the current user."
    )


class InMemoryRepository(Repository):
    """
    Thread-safe in-memory repository suitable for testing and default runtime.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._users: Dict[str, UserEntity] = {}
        self._tasks: Dict[str, TaskEntity] = {}
        self._projects: Dict[str, ProjectEntity] = {}
        self._labels: Dict[str, LabelEntity] = {}
        self._task_labels: Set[Tuple[str, str]] = set()

    # Users

    def add_user(self, user: UserEntity) -> UserEntity:
        with self._lock:
            if self._find_user_by_email(user["email"]) is not None:
                raise Conflict("A user with this email already exists.")
            self._users[user["id"]] = user.copy()
            return user.copy()

    def get_user(self, user_id: str) -> Optional[UserEntity]:
        with self._lock:
            item = self._users.get(user_id)
            return None if item is None else item.copy()

    def get_user_by_email(self, email: str) -> Optional[UserEntity]:
        with self._lock:
            item = self._find_user_by_email(email)
            return None if item is None else item.copy()

    def _find_user_by_email(self, email: str) -> Optional[UserEntity]:
        needle = email.strip().lower()
        for u in self._users.values():
            if u["email"] == needle:
                return u
        return None

    # Tasks

    def _shift_list(self, user_id: str, system_list: SystemList, exclude_id: str) -> None:
        for t in self._tasks.values():
            if (
                t["user_id"] == user_id
                and t["system_list"] == system_list
                and not t["is_archived"]
                and t["id"] != exclude_id
            ):
                t["sort_order"] += 1

    def add_task(self, task: TaskEntity) -> TaskEntity:
        with self._lock:
            stored = task.copy()
            stored["sort_order"] = 0
            self._shift_list(stored["user_id"], stored["system_list"], stored["id"])
            self._tasks[stored["id"]] = stored
            return stored.copy()

    def get_task(self, user_id: str, task_id: str) -> Optional[TaskEntity]:
        with self._lock:
            item = self._tasks.get(task_id)
            if item is None or item["user_id"] != user_id:
                return None
            return item.copy()

    def save_task(self, task: TaskEntity, move_to_head: bool = False) -> TaskEntity:
        with self._lock:
            stored = task.copy()
            if move_to_head:
                stored["sort_order"] = 0
                self._shift_list(stored["user_id"], stored["system_list"], stored["id"])
            self._tasks[stored["id"]] = stored
            return stored.copy()

    def delete_task(self, user_id: str, task_id: str) -> bool:
        with self._lock:
            item = self._tasks.get(task_id)
            if item is None or item["user_id"] != user_id:
                return False
            del self._tasks[task_id]
            self._task_labels = {(t, l) for (t, l) in self._task_labels if t != task_id}
            return True

    def list_tasks(self, user_id: str, query: TaskQuery, now: datetime) -> Tuple[List[TaskEntity], int]:
        with self._lock:
            owned = [t for t in self._tasks.values() if t["user_id"] == user_id]
            labelled: Set[str] = set()
            if query.label_id is not None:
                labelled = {t for (t, l) in self._task_labels if l == query.label_id}
            items = sort_tasks(filter_tasks(owned, query, now, labelled), query, now)
            return [t.copy() for t in items], len(items)

    def reorder_tasks(
        self, user_id: str, system_list: SystemList, task_ids: Sequence[str]
    ) -> List[Tuple[str, int]]:
        with self._lock:
            # Validate the whole batch before touching anything
            for tid in task_ids:
                t = self._tasks.get(tid)
                if t is None or t["user_id"] != user_id or t["system_list"] != system_list:
                    raise reorder_violation(tid, system_list)
            result: List[Tuple[str, int]] = []
            for index, tid in enumerate(task_ids):
                self._tasks[tid]["sort_order"] = index
                result.append((tid, index))
            return result

    # Task labels

    def labels_for_tasks(self, task_ids: Iterable[str]) -> Dict[str, List[LabelEntity]]:
        wanted = set(task_ids)
        with self._lock:
            out: Dict[str, List[LabelEntity]] = {}
            for (tid, lid) in self._task_labels:
                if tid in wanted and lid in self._labels:
                    out.setdefault(tid, []).append(self._labels[lid].copy())
            for labels in out.values():
                labels.sort(key=lambda l: l["name"].lower())
            return out

    def add_task_label(self, task_id: str, label_id: str) -> bool:
        with self._lock:
            key = (task_id, label_id)
            if key in self._task_labels:
                return False
            self._task_labels.add(key)
            return True

    def remove_task_label(self, task_id: str, label_id: str) -> bool:
        with self._lock:
            key = (task_id, label_id)
            if key not in self._task_labels:
                return False
            self._task_labels.discard(key)
            return True

    # Projects

    def add_project(self, project: ProjectEntity) -> ProjectEntity:
        with self._lock:
            orders = [p["sort_order"] for p in self._projects.values() if p["user_id"] == project["user_id"]]
            stored = project.copy()
            stored["sort_order"] = max(orders) + 1 if orders else 0
            self._projects[stored["id"]] = stored
            return stored.copy()

    def get_project(self, user_id: str, project_id: str) -> Optional[ProjectEntity]:
        with self._lock:
            item = self._projects.get(project_id)
            if item is None or item["user_id"] != user_id:
                return None
            return item.copy()

    def list_projects(self, user_id: str) -> List[ProjectEntity]:
        with self._lock:
            items = [p for p in self._projects.values() if p["user_id"] == user_id]
            items.sort(key=lambda p: (p["sort_order"], p["created_at"]))
            return [p.copy() for p in items]

    def save_project(self, project: ProjectEntity) -> ProjectEntity:
        with self._lock:
            self._projects[project["id"]] = project.copy()
            return project.copy()

    def delete_project(self, user_id: str, project_id: str) -> bool:
        with self._lock:
            item = self._projects.get(project_id)
            if item is None or item["user_id"] != user_id:
                return False
            for t in self._tasks.values():
                if t["project_id"] == project_id:
                    t["project_id"] = None
            del self._projects[project_id]
            return True

    def project_names(self, project_ids: Iterable[str]) -> Dict[str, str]:
        with self._lock:
            return {pid: self._projects[pid]["name"] for pid in set(project_ids) if pid in self._projects}

    def project_task_counts(self, project_ids: Iterable[str]) -> Dict[str, Tuple[int, int]]:
        wanted = set(project_ids)
        with self._lock:
            counts: Dict[str, Tuple[int, int]] = {}
            for t in self._tasks.values():
                pid = t["project_id"]
                if pid not in wanted:
                    continue
                total, done = counts.get(pid, (0, 0))
                completed = t["is_archived"] and t["status"] == TaskStatus.DONE
                counts[pid] = (total + 1, done + (1 if completed else 0))
            return counts

    # Labels

    def _label_name_taken(self, label: LabelEntity) -> bool:
        needle = label["name"].lower()
        return any(
            l["user_id"] == label["user_id"] and l["id"] != label["id"] and l["name"].lower() == needle
            for l in self._labels.values()
        )

    def add_label(self, label: LabelEntity) -> LabelEntity:
        with self._lock:
            if self._label_name_taken(label):
                raise Conflict(duplicate_label_message(label["name"]))
            self._labels[label["id"]] = label.copy()
            return label.copy()

    def get_label(self, user_id: str, label_id: str) -> Optional[LabelEntity]:
        with self._lock:
            item = self._labels.get(label_id)
            if item is None or item["user_id"] != user_id:
                return None
            return item.copy()

    def list_labels(self, user_id: str) -> List[LabelEntity]:
        with self._lock:
            items = [l for l in self._labels.values() if l["user_id"] == user_id]
            items.sort(key=lambda l: l["name"].lower())
            return [l.copy() for l in items]

    def save_label(self, label: LabelEntity) -> LabelEntity:
        with self._lock:
            if self._label_name_taken(label):
                raise Conflict(duplicate_label_message(label["name"]))
            self._labels[label["id"]] = label.copy()
            return label.copy()

    def delete_label(self, user_id: str, label_id: str) -> bool:
        with self._lock:
            item = self._labels.get(label_id)
            if item is None or item["user_id"] != user_id:
                return False
            del self._labels[label_id]
            self._task_labels = {(t, l) for (t, l) in self._task_labels if l != label_id}
            return True

    def label_task_counts(self, label_ids: Iterable[str]) -> Dict[str, int]:
        wanted = set(label_ids)
        with self._lock:
            counts: Dict[str, int] = {}
            for (_, lid) in self._task_labels:
                if lid in wanted:
                    counts[lid] = counts.get(lid, 0) + 1
            return counts


_default_repository: Optional[Repository] = None


def build_repository() -> Repository:
    """
    Build the repository selected by settings.
    - memory: InMemoryRepository
    - sqlite: SQLiteRepository at SQLITE_DB_PATH
    """
    settings = get_settings()
    if settings.persistence_backend == "sqlite":
        from .db import SQLiteRepository

        logger.info("Using SQLite persistence at %s", settings.sqlite_db_path)
        return SQLiteRepository(settings.sqlite_db_path)
    logger.info("Using in-memory persistence")
    return InMemoryRepository()


# PUBLIC_INTERFACE
def get_repository() -> Repository:
    """
    Return the process-wide repository, creating it on first use.
    The app overrides this dependency when given an explicit repository.
    """
    global _default_repository
    if _default_repository is None:
        _default_repository = build_repository()
    return _default_repository
