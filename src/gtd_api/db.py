from __future__ import annotations

import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Generator, Iterable, List, Optional, Sequence, Tuple

from .errors import Conflict
from .models import (
    LabelEntity,
    Priority,
    ProjectEntity,
    ProjectStatus,
    StatusFilter,
    SystemList,
    TaskEntity,
    TaskStatus,
    UserEntity,
)
from .queries import TaskQuery, upcoming_threshold
from .repositories import Repository, duplicate_label_message, reorder_violation

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        email TEXT NOT NULL,
        password_hash TEXT NOT NULL,
        display_name TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE UNIQUE INDEX IF NOT EXISTS ux_users_email ON users(email)",
    """
    CREATE TABLE IF NOT EXISTS projects (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        name TEXT NOT NULL,
        description TEXT NULL,
        due_date TEXT NULL,
        status TEXT NOT NULL,
        sort_order INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_projects_user ON projects(user_id, sort_order)",
    """
    CREATE TABLE IF NOT EXISTS tasks (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        name TEXT NOT NULL,
        description TEXT NULL,
        priority TEXT NOT NULL,
        status TEXT NOT NULL,
        system_list TEXT NOT NULL,
        due_date TEXT NULL,
        project_id TEXT NULL REFERENCES projects(id) ON DELETE SET NULL,
        sort_order INTEGER NOT NULL DEFAULT 0,
        is_archived INTEGER NOT NULL DEFAULT 0,
        completed_at TEXT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_tasks_user_list ON tasks(user_id, system_list, sort_order)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_user_due ON tasks(user_id, due_date)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_project ON tasks(project_id)",
    """
    CREATE TABLE IF NOT EXISTS labels (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        name TEXT NOT NULL,
        color TEXT NULL,
        created_at TEXT NOT NULL
    )
    """,
    "CREATE UNIQUE INDEX IF NOT EXISTS ux_labels_user_name ON labels(user_id, name COLLATE NOCASE)",
    """
    CREATE TABLE IF NOT EXISTS task_labels (
        task_id TEXT NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
        label_id TEXT NOT NULL REFERENCES labels(id) ON DELETE CASCADE,
        PRIMARY KEY (task_id, label_id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_task_labels_label ON task_labels(label_id)",
)

_TASK_COLUMNS = (
    "id, user_id, name, description, priority, status, system_list, due_date, project_id, "
    "sort_order, is_archived, completed_at, created_at, updated_at"
)


def _to_db(dt: Optional[datetime]) -> Optional[str]:
    """Serialize as fixed-width UTC ISO text so string order matches time order."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_db(s: Optional[str]) -> Optional[datetime]:
    if s is None:
        return None
    return datetime.fromisoformat(s)


def _placeholders(n: int) -> str:
    return ", ".join("?" for _ in range(n))


class SQLiteRepository(Repository):
    """
    SQLite repository implementing the Repository interface.

    One connection per operation; multi-row writes run in a single
    transaction that is rolled back if anything raises.
    """

    def __init__(self, db_path: str) -> None:
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        self._init_db()

    @contextmanager
    def _conn(self) -> Generator[sqlite3.Connection, None, None]:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._conn() as conn:
            for statement in _SCHEMA:
                conn.execute(statement)

    # Row mapping

    def _row_to_user(self, row: sqlite3.Row) -> UserEntity:
        return {
            "id": row["id"],
            "email": row["email"],
            "password_hash": row["password_hash"],
            "display_name": row["display_name"],
            "created_at": _from_db(row["created_at"]),  # type: ignore[typeddict-item]
            "updated_at": _from_db(row["updated_at"]),  # type: ignore[typeddict-item]
        }

    def _row_to_task(self, row: sqlite3.Row) -> TaskEntity:
        return {
            "id": row["id"],
            "user_id": row["user_id"],
            "name": row["name"],
            "description": row["description"],
            "priority": Priority(row["priority"]),
            "status": TaskStatus(row["status"]),
            "system_list": SystemList(row["system_list"]),
            "due_date": _from_db(row["due_date"]),
            "project_id": row["project_id"],
            "sort_order": int(row["sort_order"]),
            "is_archived": bool(row["is_archived"]),
            "completed_at": _from_db(row["completed_at"]),
            "created_at": _from_db(row["created_at"]),  # type: ignore[typeddict-item]
            "updated_at": _from_db(row["updated_at"]),  # type: ignore[typeddict-item]
        }

    def _row_to_project(self, row: sqlite3.Row) -> ProjectEntity:
        return {
            "id": row["id"],
            "user_id": row["user_id"],
            "name": row["name"],
            "description": row["description"],
            "due_date": _from_db(row["due_date"]),
            "status": ProjectStatus(row["status"]),
            "sort_order": int(row["sort_order"]),
            "created_at": _from_db(row["created_at"]),  # type: ignore[typeddict-item]
            "updated_at": _from_db(row["updated_at"]),  # type: ignore[typeddict-item]
        }

    def _row_to_label(self, row: sqlite3.Row) -> LabelEntity:
        return {
            "id": row["id"],
            "user_id": row["user_id"],
            "name": row["name"],
            "color": row["color"],
            "created_at": _from_db(row["created_at"]),  # type: ignore[typeddict-item]
        }

    def _task_params(self, task: TaskEntity) -> Tuple[Any, ...]:
        return (
            task["name"],
            task["description"],
            task["priority"].value,
            task["status"].value,
            task["system_list"].value,
            _to_db(task["due_date"]),
            task["project_id"],
            task["sort_order"],
            1 if task["is_archived"] else 0,
            _to_db(task["completed_at"]),
            _to_db(task["updated_at"]),
        )

    # Users

    def add_user(self, user: UserEntity) -> UserEntity:
        try:
            with self._conn() as conn:
                conn.execute(
                    """
                    INSERT INTO users (id, email, password_hash, display_name, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        user["id"],
                        user["email"].strip().lower(),
                        user["password_hash"],
                        user["display_name"],
                        _to_db(user["created_at"]),
                        _to_db(user["updated_at"]),
                    ),
                )
        except sqlite3.IntegrityError as e:
            raise Conflict("A user with this email already exists.") from e
        found = self.get_user(user["id"])
        assert found is not None
        return found

    def get_user(self, user_id: str) -> Optional[UserEntity]:
        with self._conn() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
            return self._row_to_user(row) if row else None

    def get_user_by_email(self, email: str) -> Optional[UserEntity]:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ?", (email.strip().lower(),)
            ).fetchone()
            return self._row_to_user(row) if row else None

    # Tasks

    def _shift_list(self, conn: sqlite3.Connection, task: TaskEntity) -> None:
        conn.execute(
            """
            UPDATE tasks SET sort_order = sort_order + 1
            WHERE user_id = ? AND system_list = ? AND is_archived = 0 AND id != ?
            """,
            (task["user_id"], task["system_list"].value, task["id"]),
        )

    def _fetch_task(self, conn: sqlite3.Connection, task_id: str) -> Optional[TaskEntity]:
        row = conn.execute(f"SELECT {_TASK_COLUMNS} FROM tasks WHERE id = ?", (task_id,)).fetchone()
        return self._row_to_task(row) if row else None

    def add_task(self, task: TaskEntity) -> TaskEntity:
        stored = task.copy()
        stored["sort_order"] = 0
        with self._conn() as conn:
            self._shift_list(conn, stored)
            conn.execute(
                f"""
                INSERT INTO tasks ({_TASK_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    stored["id"],
                    stored["user_id"],
                    stored["name"],
                    stored["description"],
                    stored["priority"].value,
                    stored["status"].value,
                    stored["system_list"].value,
                    _to_db(stored["due_date"]),
                    stored["project_id"],
                    stored["sort_order"],
                    1 if stored["is_archived"] else 0,
                    _to_db(stored["completed_at"]),
                    _to_db(stored["created_at"]),
                    _to_db(stored["updated_at"]),
                ),
            )
            created = self._fetch_task(conn, stored["id"])
            assert created is not None
            return created

    def get_task(self, user_id: str, task_id: str) -> Optional[TaskEntity]:
        with self._conn() as conn:
            row = conn.execute(
                f"SELECT {_TASK_COLUMNS} FROM tasks WHERE id = ? AND user_id = ?",
                (task_id, user_id),
            ).fetchone()
            return self._row_to_task(row) if row else None

    def save_task(self, task: TaskEntity, move_to_head: bool = False) -> TaskEntity:
        stored = task.copy()
        with self._conn() as conn:
            if move_to_head:
                stored["sort_order"] = 0
                self._shift_list(conn, stored)
            conn.execute(
                """
                UPDATE tasks
                SET name = ?, description = ?, priority = ?, status = ?, system_list = ?,
                    due_date = ?, project_id = ?, sort_order = ?, is_archived = ?,
                    completed_at = ?, updated_at = ?
                WHERE id = ? AND user_id = ?
                """,
                (*self._task_params(stored), stored["id"], stored["user_id"]),
            )
            saved = self._fetch_task(conn, stored["id"])
            assert saved is not None
            return saved

    def delete_task(self, user_id: str, task_id: str) -> bool:
        with self._conn() as conn:
            cur = conn.execute("DELETE FROM tasks WHERE id = ? AND user_id = ?", (task_id, user_id))
            return cur.rowcount > 0

    def list_tasks(self, user_id: str, query: TaskQuery, now: datetime) -> Tuple[List[TaskEntity], int]:
        clauses = ["user_id = ?"]
        params: List[Any] = [user_id]

        if query.upcoming:
            clauses.append("is_archived = 0 AND status = ?")
            params.append(TaskStatus.OPEN.value)
            clauses.append("(system_list = ? OR (due_date IS NOT NULL AND due_date <= ?))")
            params.extend([SystemList.UPCOMING.value, _to_db(upcoming_threshold(now))])
            order_sql = (
                "ORDER BY CASE WHEN due_date IS NULL THEN 2 WHEN due_date < ? THEN 0 ELSE 1 END, "
                "due_date ASC, sort_order ASC, created_at ASC"
            )
            order_params: List[Any] = [_to_db(now)]
        else:
            if query.archived:
                clauses.append("is_archived = 1")
            elif query.status == StatusFilter.OPEN:
                clauses.append("status = ? AND is_archived = 0")
                params.append(TaskStatus.OPEN.value)
            elif query.status == StatusFilter.DONE:
                clauses.append("status = ? AND is_archived = 1")
                params.append(TaskStatus.DONE.value)

            if query.system_list is not None:
                clauses.append("system_list = ?")
                params.append(query.system_list.value)
            if query.project_id is not None:
                clauses.append("project_id = ?")
                params.append(query.project_id)
            if query.label_id is not None:
                clauses.append(
                    "EXISTS (SELECT 1 FROM task_labels tl WHERE tl.task_id = tasks.id AND tl.label_id = ?)"
                )
                params.append(query.label_id)

            if query.by_completion:
                order_sql = "ORDER BY COALESCE(completed_at, updated_at) DESC"
            else:
                order_sql = "ORDER BY sort_order ASC, created_at ASC"
            order_params = []

        where_sql = f"WHERE {' AND '.join(clauses)}"
        with self._conn() as conn:
            rows = conn.execute(
                f"SELECT {_TASK_COLUMNS} FROM tasks {where_sql} {order_sql}",
                [*params, *order_params],
            ).fetchall()
            items = [self._row_to_task(r) for r in rows]
            return items, len(items)

    def reorder_tasks(
        self, user_id: str, system_list: SystemList, task_ids: Sequence[str]
    ) -> List[Tuple[str, int]]:
        ids = list(task_ids)
        with self._conn() as conn:
            rows = conn.execute(
                f"SELECT id, user_id, system_list FROM tasks WHERE id IN ({_placeholders(len(ids))})",
                ids,
            ).fetchall()
            found = {r["id"]: r for r in rows}
            for tid in ids:
                r = found.get(tid)
                if r is None or r["user_id"] != user_id or r["system_list"] != system_list.value:
                    raise reorder_violation(tid, system_list)
            result: List[Tuple[str, int]] = []
            for index, tid in enumerate(ids):
                conn.execute("UPDATE tasks SET sort_order = ? WHERE id = ?", (index, tid))
                result.append((tid, index))
            return result

    # Task labels

    def labels_for_tasks(self, task_ids: Iterable[str]) -> Dict[str, List[LabelEntity]]:
        ids = list(set(task_ids))
        if not ids:
            return {}
        with self._conn() as conn:
            rows = conn.execute(
                f"""
                SELECT tl.task_id AS task_id, l.id, l.user_id, l.name, l.color, l.created_at
                FROM task_labels tl JOIN labels l ON l.id = tl.label_id
                WHERE tl.task_id IN ({_placeholders(len(ids))})
                ORDER BY l.name COLLATE NOCASE ASC
                """,
                ids,
            ).fetchall()
            out: Dict[str, List[LabelEntity]] = {}
            for r in rows:
                out.setdefault(r["task_id"], []).append(self._row_to_label(r))
            return out

    def add_task_label(self, task_id: str, label_id: str) -> bool:
        with self._conn() as conn:
            cur = conn.execute(
                "INSERT OR IGNORE INTO task_labels (task_id, label_id) VALUES (?, ?)",
                (task_id, label_id),
            )
            return cur.rowcount > 0

    def remove_task_label(self, task_id: str, label_id: str) -> bool:
        with self._conn() as conn:
            cur = conn.execute(
                "DELETE FROM task_labels WHERE task_id = ? AND label_id = ?", (task_id, label_id)
            )
            return cur.rowcount > 0

    # Projects

    def add_project(self, project: ProjectEntity) -> ProjectEntity:
        stored = project.copy()
        with self._conn() as conn:
            row = conn.execute(
                "SELECT MAX(sort_order) AS max_order FROM projects WHERE user_id = ?",
                (stored["user_id"],),
            ).fetchone()
            max_order = row["max_order"] if row else None
            stored["sort_order"] = 0 if max_order is None else int(max_order) + 1
            conn.execute(
                """
                INSERT INTO projects (id, user_id, name, description, due_date, status, sort_order,
                    created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    stored["id"],
                    stored["user_id"],
                    stored["name"],
                    stored["description"],
                    _to_db(stored["due_date"]),
                    stored["status"].value,
                    stored["sort_order"],
                    _to_db(stored["created_at"]),
                    _to_db(stored["updated_at"]),
                ),
            )
        return stored

    def get_project(self, user_id: str, project_id: str) -> Optional[ProjectEntity]:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT * FROM projects WHERE id = ? AND user_id = ?", (project_id, user_id)
            ).fetchone()
            return self._row_to_project(row) if row else None

    def list_projects(self, user_id: str) -> List[ProjectEntity]:
        with self._conn() as conn:
            rows = conn.execute(
                "SELECT * FROM projects WHERE user_id = ? ORDER BY sort_order ASC, created_at ASC",
                (user_id,),
            ).fetchall()
            return [self._row_to_project(r) for r in rows]

    def save_project(self, project: ProjectEntity) -> ProjectEntity:
        with self._conn() as conn:
            conn.execute(
                """
                UPDATE projects
                SET name = ?, description = ?, due_date = ?, status = ?, sort_order = ?, updated_at = ?
                WHERE id = ? AND user_id = ?
                """,
                (
                    project["name"],
                    project["description"],
                    _to_db(project["due_date"]),
                    project["status"].value,
                    project["sort_order"],
                    _to_db(project["updated_at"]),
                    project["id"],
                    project["user_id"],
                ),
            )
        return project.copy()

    def delete_project(self, user_id: str, project_id: str) -> bool:
        with self._conn() as conn:
            # Explicit as well as via ON DELETE SET NULL, for databases created without FKs
            conn.execute("UPDATE tasks SET project_id = NULL WHERE project_id = ?", (project_id,))
            cur = conn.execute(
                "DELETE FROM projects WHERE id = ? AND user_id = ?", (project_id, user_id)
            )
            if cur.rowcount == 0:
                conn.rollback()
                return False
            return True

    def project_names(self, project_ids: Iterable[str]) -> Dict[str, str]:
        ids = list(set(project_ids))
        if not ids:
            return {}
        with self._conn() as conn:
            rows = conn.execute(
                f"SELECT id, name FROM projects WHERE id IN ({_placeholders(len(ids))})", ids
            ).fetchall()
            return {r["id"]: r["name"] for r in rows}

    def project_task_counts(self, project_ids: Iterable[str]) -> Dict[str, Tuple[int, int]]:
        ids = list(set(project_ids))
        if not ids:
            return {}
        with self._conn() as conn:
            rows = conn.execute(
                f"""
                SELECT project_id,
                       COUNT(*) AS total,
                       SUM(CASE WHEN is_archived = 1 AND status = ? THEN 1 ELSE 0 END) AS done
                FROM tasks
                WHERE project_id IN ({_placeholders(len(ids))})
                GROUP BY project_id
                """,
                [TaskStatus.DONE.value, *ids],
            ).fetchall()
            return {r["project_id"]: (int(r["total"]), int(r["done"] or 0)) for r in rows}

    # Labels

    def _label_name_taken(self, conn: sqlite3.Connection, label: LabelEntity) -> bool:
        # NOCASE only folds ASCII; compare with str.lower() like the in-memory backend
        rows = conn.execute(
            "SELECT name FROM labels WHERE user_id = ? AND id != ?",
            (label["user_id"], label["id"]),
        ).fetchall()
        needle = label["name"].lower()
        return any(r["name"].lower() == needle for r in rows)

    def add_label(self, label: LabelEntity) -> LabelEntity:
        try:
            with self._conn() as conn:
                if self._label_name_taken(conn, label):
                    raise Conflict(duplicate_label_message(label["name"]))
                conn.execute(
                    "INSERT INTO labels (id, user_id, name, color, created_at) VALUES (?, ?, ?, ?, ?)",
                    (label["id"], label["user_id"], label["name"], label["color"], _to_db(label["created_at"])),
                )
        except sqlite3.IntegrityError as e:
            raise Conflict(duplicate_label_message(label["name"])) from e
        return label.copy()

    def get_label(self, user_id: str, label_id: str) -> Optional[LabelEntity]:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT * FROM labels WHERE id = ? AND user_id = ?", (label_id, user_id)
            ).fetchone()
            return self._row_to_label(row) if row else None

    def list_labels(self, user_id: str) -> List[LabelEntity]:
        with self._conn() as conn:
            rows = conn.execute("SELECT * FROM labels WHERE user_id = ?", (user_id,)).fetchall()
            labels = [self._row_to_label(r) for r in rows]
            labels.sort(key=lambda l: l["name"].lower())
            return labels

    def save_label(self, label: LabelEntity) -> LabelEntity:
        try:
            with self._conn() as conn:
                if self._label_name_taken(conn, label):
                    raise Conflict(duplicate_label_message(label["name"]))
                conn.execute(
                    "UPDATE labels SET name = ?, color = ? WHERE id = ? AND user_id = ?",
                    (label["name"], label["color"], label["id"], label["user_id"]),
                )
        except sqlite3.IntegrityError as e:
            raise Conflict(duplicate_label_message(label["name"])) from e
        return label.copy()

    def delete_label(self, user_id: str, label_id: str) -> bool:
        with self._conn() as conn:
            conn.execute("DELETE FROM task_labels WHERE label_id = ?", (label_id,))
            cur = conn.execute("DELETE FROM labels WHERE id = ? AND user_id = ?", (label_id, user_id))
            if cur.rowcount == 0:
                conn.rollback()
                return False
            return True

    def label_task_counts(self, label_ids: Iterable[str]) -> Dict[str, int]:
        ids = list(set(label_ids))
        if not ids:
            return {}
        with self._conn() as conn:
            rows = conn.execute(
                f"""
                SELECT label_id, COUNT(*) AS cnt FROM task_labels
                WHERE label_id IN ({_placeholders(len(ids))})
                GROUP BY label_id
                """,
                ids,
            ).fetchall()
            return {r["label_id"]: int(r["cnt"]) for r in rows}
