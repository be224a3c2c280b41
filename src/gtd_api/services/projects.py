from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Tuple

from ..errors import NotFound
from ..models import ProjectEntity, ProjectStatus, new_project, utcnow
from ..repositories import Repository
from ..schemas import ProjectCreate, ProjectListOut, ProjectOut, ProjectUpdate

logger = logging.getLogger(__name__)

PROJECT_NOT_FOUND = "Project not found or does not belong to the authenticated user."


def completion_percentage(total: int, completed: int) -> int:
    if total <= 0:
        return 0
    return int(round(completed / total * 100))


class ProjectService:
    """Owner-scoped projects with task completion statistics."""

    def __init__(self, repository: Repository, clock: Callable[[], datetime] = utcnow):
        self.repository = repository
        self.clock = clock

    def _out(self, project: ProjectEntity, counts: Tuple[int, int] = (0, 0)) -> ProjectOut:
        total, completed = counts
        return ProjectOut(
            id=project["id"],
            name=project["name"],
            description=project["description"],
            due_date=project["due_date"],
            status=project["status"],
            sort_order=project["sort_order"],
            total_task_count=total,
            completed_task_count=completed,
            completion_percentage=completion_percentage(total, completed),
            created_at=project["created_at"],
            updated_at=project["updated_at"],
        )

    def _with_stats(self, project: ProjectEntity) -> ProjectOut:
        counts = self.repository.project_task_counts([project["id"]])
        return self._out(project, counts.get(project["id"], (0, 0)))

    def _require(self, user_id: str, project_id: str) -> ProjectEntity:
        project = self.repository.get_project(user_id, project_id)
        if project is None:
            raise NotFound(PROJECT_NOT_FOUND)
        return project

    def create_project(self, user_id: str, payload: ProjectCreate) -> ProjectOut:
        created = self.repository.add_project(
            new_project(user_id, payload.name, payload.description, payload.due_date)
        )
        logger.info("Created project %s for user %s", created["id"], user_id)
        return self._out(created)

    def list_projects(self, user_id: str) -> ProjectListOut:
        projects = self.repository.list_projects(user_id)
        counts = self.repository.project_task_counts(p["id"] for p in projects)
        items = [self._out(p, counts.get(p["id"], (0, 0))) for p in projects]
        return ProjectListOut(projects=items, total_count=len(items))

    def get_project(self, user_id: str, project_id: str) -> ProjectOut:
        return self._with_stats(self._require(user_id, project_id))

    def update_project(self, user_id: str, project_id: str, payload: ProjectUpdate) -> ProjectOut:
        project = self._require(user_id, project_id)
        fields = payload.model_fields_set
        updated = project.copy()
        if "name" in fields and payload.name is not None:
            updated["name"] = payload.name
        if "description" in fields:
            updated["description"] = payload.description
        if "due_date" in fields:
            updated["due_date"] = payload.due_date
        updated["updated_at"] = self.clock()
        return self._with_stats(self.repository.save_project(updated))

    def _set_status(self, user_id: str, project_id: str, status: ProjectStatus) -> ProjectOut:
        project = self._require(user_id, project_id)
        project["status"] = status
        project["updated_at"] = self.clock()
        saved = self.repository.save_project(project)
        logger.info("Project %s is now %s", project_id, status.value)
        return self._with_stats(saved)

    def complete_project(self, user_id: str, project_id: str) -> ProjectOut:
        return self._set_status(user_id, project_id, ProjectStatus.COMPLETED)

    def reopen_project(self, user_id: str, project_id: str) -> ProjectOut:
        return self._set_status(user_id, project_id, ProjectStatus.ACTIVE)

    def delete_project(self, user_id: str, project_id: str) -> None:
        if not self.repository.delete_project(user_id, project_id):
            raise NotFound(PROJECT_NOT_FOUND)
        logger.info("Deleted project %s; its tasks were detached", project_id)
