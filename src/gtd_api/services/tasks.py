"""Task service - query and mutation rules for tasks.

Sits between the routers and the repository: ownership checks, defaults,
the complete/reopen lifecycle, sort-order placement and label links.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Iterable, List, Optional

from ..errors import NotFound, ValidationFailed
from ..models import (
    Priority,
    SystemList,
    TaskEntity,
    complete_task,
    new_task,
    reopen_task,
    utcnow,
)
from ..queries import TaskQuery
from ..repositories import Repository
from ..schemas import (
    LabelSummary,
    ReorderedTask,
    ReorderOut,
    TaskCreate,
    TaskListOut,
    TaskOut,
    TaskUpdate,
)

logger = logging.getLogger(__name__)

TASK_NOT_FOUND = "Task not found or does not belong to the authenticated user."


class TaskService:
    """Service for task business logic.

    Every method takes the caller's user id; tasks, projects and labels of
    other users behave as if they did not exist.
    """

    def __init__(self, repository: Repository, clock: Callable[[], datetime] = utcnow):
        self.repository = repository
        self.clock = clock

    # Projection

    def to_out(self, tasks: Iterable[TaskEntity]) -> List[TaskOut]:
        """Resolve project names and labels for a batch of tasks."""
        items = list(tasks)
        project_ids = [t["project_id"] for t in items if t["project_id"]]
        names = self.repository.project_names(project_ids)
        labels = self.repository.labels_for_tasks(t["id"] for t in items)
        out: List[TaskOut] = []
        for t in items:
            out.append(
                TaskOut(
                    id=t["id"],
                    name=t["name"],
                    description=t["description"],
                    due_date=t["due_date"],
                    priority=t["priority"],
                    status=t["status"],
                    system_list=t["system_list"],
                    sort_order=t["sort_order"],
                    project_id=t["project_id"],
                    project_name=names.get(t["project_id"]) if t["project_id"] else None,
                    is_archived=t["is_archived"],
                    completed_at=t["completed_at"],
                    labels=[
                        LabelSummary(id=l["id"], name=l["name"], color=l["color"])
                        for l in labels.get(t["id"], [])
                    ],
                    created_at=t["created_at"],
                    updated_at=t["updated_at"],
                )
            )
        return out

    def _one_out(self, task: TaskEntity) -> TaskOut:
        return self.to_out([task])[0]

    def _require_task(self, user_id: str, task_id: str) -> TaskEntity:
        task = self.repository.get_task(user_id, task_id)
        if task is None:
            raise NotFound(TASK_NOT_FOUND)
        return task

    def _require_project(self, user_id: str, project_id: str) -> None:
        if self.repository.get_project(user_id, project_id) is None:
            raise NotFound(f"Project with ID '{project_id}' not found or does not belong to the user.")

    # Queries

    def list_tasks(self, user_id: str, query: TaskQuery) -> TaskListOut:
        items, total = self.repository.list_tasks(user_id, query, self.clock())
        return TaskListOut(tasks=self.to_out(items), total_count=total)

    def get_task(self, user_id: str, task_id: str) -> TaskOut:
        return self._one_out(self._require_task(user_id, task_id))

    # Mutations

    def create_task(self, user_id: str, payload: TaskCreate) -> TaskOut:
        project_id: Optional[str] = str(payload.project_id) if payload.project_id else None
        if project_id is not None:
            self._require_project(user_id, project_id)

        task = new_task(
            user_id=user_id,
            name=payload.name,
            description=payload.description,
            system_list=payload.system_list or SystemList.INBOX,
            priority=payload.priority or Priority.P4,
            project_id=project_id,
            due_date=payload.due_date,
        )
        created = self.repository.add_task(task)
        logger.info("Created task %s in %s for user %s", created["id"], created["system_list"].value, user_id)
        return self._one_out(created)

    def update_task(self, user_id: str, task_id: str, payload: TaskUpdate) -> TaskOut:
        task = self._require_task(user_id, task_id)
        fields = payload.model_fields_set

        if "project_id" in fields and payload.project_id is not None:
            self._require_project(user_id, str(payload.project_id))

        updated = task.copy()
        if "name" in fields and payload.name is not None:
            updated["name"] = payload.name
        if "description" in fields:
            updated["description"] = payload.description
        if "priority" in fields and payload.priority is not None:
            updated["priority"] = payload.priority
        if "due_date" in fields:
            updated["due_date"] = payload.due_date
        if "project_id" in fields:
            updated["project_id"] = str(payload.project_id) if payload.project_id else None

        moved = False
        if "system_list" in fields and payload.system_list is not None:
            moved = payload.system_list != task["system_list"]
            updated["system_list"] = payload.system_list

        updated["updated_at"] = self.clock()
        saved = self.repository.save_task(updated, move_to_head=moved and not updated["is_archived"])
        logger.info("Updated task %s (fields: %s)", task_id, ", ".join(sorted(fields)) or "none")
        return self._one_out(saved)

    def complete_task(self, user_id: str, task_id: str) -> TaskOut:
        task = self._require_task(user_id, task_id)
        saved = self.repository.save_task(complete_task(task))
        logger.info("Completed task %s", task_id)
        return self._one_out(saved)

    def reopen_task(self, user_id: str, task_id: str) -> TaskOut:
        task = self._require_task(user_id, task_id)
        saved = self.repository.save_task(reopen_task(task), move_to_head=True)
        logger.info("Reopened task %s into %s", task_id, saved["system_list"].value)
        return self._one_out(saved)

    def delete_task(self, user_id: str, task_id: str) -> None:
        if not self.repository.delete_task(user_id, task_id):
            raise NotFound(TASK_NOT_FOUND)
        logger.info("Deleted task %s", task_id)

    def reorder_tasks(self, user_id: str, system_list: SystemList, task_ids: List[str]) -> ReorderOut:
        try:
            pairs = self.repository.reorder_tasks(user_id, system_list, task_ids)
        except ValidationFailed:
            logger.warning("Rejected reorder of %d task(s) in %s for user %s", len(task_ids), system_list.value, user_id)
            raise
        logger.info("Reordered %d task(s) in %s", len(pairs), system_list.value)
        return ReorderOut(reordered_tasks=[ReorderedTask(id=tid, sort_order=order) for tid, order in pairs])

    # Labels

    def _require_label(self, user_id: str, label_id: str) -> None:
        if self.repository.get_label(user_id, label_id) is None:
            raise NotFound("Label not found or does not belong to the authenticated user.")

    def assign_label(self, user_id: str, task_id: str, label_id: str) -> TaskOut:
        task = self._require_task(user_id, task_id)
        self._require_label(user_id, label_id)
        if self.repository.add_task_label(task_id, label_id):
            logger.info("Assigned label %s to task %s", label_id, task_id)
        return self._one_out(task)

    def remove_label(self, user_id: str, task_id: str, label_id: str) -> TaskOut:
        task = self._require_task(user_id, task_id)
        self._require_label(user_id, label_id)
        if self.repository.remove_task_label(task_id, label_id):
            logger.info("Removed label %s from task %s", label_id, task_id)
        return self._one_out(task)
