from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status

from ..auth import get_current_user
from ..errors import ValidationFailed
from ..models import StatusFilter, SystemList, UserEntity
from ..queries import TaskQuery
from ..repositories import Repository, get_repository
from ..schemas import ReorderOut, ReorderRequest, TaskCreate, TaskListOut, TaskOut, TaskUpdate
from ..services import TaskService

router = APIRouter(
    prefix="/api/tasks",
    tags=["tasks"],
)

UPCOMING_VIEW = "upcoming"


def _get_service(repo: Repository = Depends(get_repository)) -> TaskService:
    """
    Dependency wrapper building the task service on the request's repository.
    """
    return TaskService(repo)


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=TaskOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create Task",
    description="Create a task at the head of its system list (defaults: Open, Inbox, P4).",
    responses={
        201: {"description": "Task created successfully"},
        400: {"description": "Validation error"},
        401: {"description": "Not authenticated"},
        404: {"description": "Project not found"},
    },
)
def create_task(
    payload: TaskCreate,
    response: Response,
    user: UserEntity = Depends(get_current_user),
    service: TaskService = Depends(_get_service),
) -> TaskOut:
    """
    Create a new task for the caller.
    """
    created = service.create_task(user["id"], payload)
    response.headers["Location"] = f"/api/tasks/{created.id}"
    return created


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=TaskListOut,
    summary="List Tasks",
    description=(
        "List the caller's tasks.\n\n"
        "Query parameters:\n"
        "- systemList: Inbox, Next, Upcoming or Someday\n"
        "- projectId / labelId: restrict to a project or label\n"
        "- status: Open (default), Done or All\n"
        "- archived: true to list completed (archived) tasks\n"
        "- view: 'upcoming' for tasks due within 14 days or in the Upcoming list; "
        "overrides the other filters\n\n"
        "Returns the tasks and their total count."
    ),
    responses={
        200: {"description": "List retrieved successfully"},
        400: {"description": "Invalid query parameters"},
        401: {"description": "Not authenticated"},
    },
)
def list_tasks(
    system_list: Optional[SystemList] = Query(None, alias="systemList", description="System list filter"),
    project_id: Optional[UUID] = Query(None, alias="projectId", description="Project filter"),
    label_id: Optional[UUID] = Query(None, alias="labelId", description="Label filter"),
    task_status: StatusFilter = Query(StatusFilter.OPEN, alias="status", description="Open, Done or All"),
    archived: bool = Query(False, description="List archived tasks"),
    view: Optional[str] = Query(None, description="Special view; only 'upcoming' is supported"),
    user: UserEntity = Depends(get_current_user),
    service: TaskService = Depends(_get_service),
) -> TaskListOut:
    """
    List tasks with filters, or the derived Upcoming view.
    """
    upcoming = False
    if view is not None and view.strip():
        if view.strip().lower() != UPCOMING_VIEW:
            raise ValidationFailed.for_field("view", "View must be 'upcoming'.")
        upcoming = True

    query = TaskQuery(
        system_list=system_list,
        project_id=str(project_id) if project_id else None,
        label_id=str(label_id) if label_id else None,
        status=task_status,
        archived=archived,
        upcoming=upcoming,
    )
    return service.list_tasks(user["id"], query)


# PUBLIC_INTERFACE
@router.patch(
    "/reorder",
    response_model=ReorderOut,
    summary="Reorder Tasks",
    description=(
        "Set the manual order of tasks in one system list. Every id must belong to the caller "
        "and to that list; otherwise nothing is changed."
    ),
    responses={
        200: {"description": "Tasks reordered"},
        400: {"description": "Validation error or a task outside the list"},
        401: {"description": "Not authenticated"},
    },
)
def reorder_tasks(
    payload: ReorderRequest,
    user: UserEntity = Depends(get_current_user),
    service: TaskService = Depends(_get_service),
) -> ReorderOut:
    return service.reorder_tasks(user["id"], payload.system_list, [str(t) for t in payload.task_ids])


# PUBLIC_INTERFACE
@router.get(
    "/{task_id}",
    response_model=TaskOut,
    summary="Get Task",
    responses={
        200: {"description": "Task found"},
        404: {"description": "Task not found"},
    },
)
def get_task(
    task_id: UUID,
    user: UserEntity = Depends(get_current_user),
    service: TaskService = Depends(_get_service),
) -> TaskOut:
    """
    Retrieve a single task by its ID.
    """
    return service.get_task(user["id"], str(task_id))


# PUBLIC_INTERFACE
@router.put(
    "/{task_id}",
    response_model=TaskOut,
    summary="Update Task",
    description=(
        "Partially update a task: only fields present in the body change. "
        "null clears description, dueDate and projectId."
    ),
    responses={
        200: {"description": "Task updated"},
        400: {"description": "Validation error"},
        404: {"description": "Task or project not found"},
    },
)
def update_task(
    task_id: UUID,
    payload: TaskUpdate,
    user: UserEntity = Depends(get_current_user),
    service: TaskService = Depends(_get_service),
) -> TaskOut:
    return service.update_task(user["id"], str(task_id), payload)


# PUBLIC_INTERFACE
@router.patch(
    "/{task_id}/complete",
    response_model=TaskOut,
    summary="Complete Task",
    description="Mark a task Done and archive it. Idempotent.",
    responses={404: {"description": "Task not found"}},
)
def complete_task(
    task_id: UUID,
    user: UserEntity = Depends(get_current_user),
    service: TaskService = Depends(_get_service),
) -> TaskOut:
    return service.complete_task(user["id"], str(task_id))


# PUBLIC_INTERFACE
@router.patch(
    "/{task_id}/reopen",
    response_model=TaskOut,
    summary="Reopen Task",
    description="Reopen a task into the head of its original list. Idempotent.",
    responses={404: {"description": "Task not found"}},
)
def reopen_task(
    task_id: UUID,
    user: UserEntity = Depends(get_current_user),
    service: TaskService = Depends(_get_service),
) -> TaskOut:
    return service.reopen_task(user["id"], str(task_id))


# PUBLIC_INTERFACE
@router.delete(
    "/{task_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Task",
    description="Delete a task by ID.",
    responses={
        204: {"description": "Task deleted"},
        404: {"description": "Task not found"},
    },
)
def delete_task(
    task_id: UUID,
    user: UserEntity = Depends(get_current_user),
    service: TaskService = Depends(_get_service),
) -> None:
    """
    Delete a task. Returns 204 on success, 404 if not found (also on a repeat call).
    """
    service.delete_task(user["id"], str(task_id))
    return None


# PUBLIC_INTERFACE
@router.post(
    "/{task_id}/labels/{label_id}",
    response_model=TaskOut,
    summary="Assign Label",
    description="Attach a label to a task. Assigning it again is a no-op.",
    responses={404: {"description": "Task or label not found"}},
)
def assign_label(
    task_id: UUID,
    label_id: UUID,
    user: UserEntity = Depends(get_current_user),
    service: TaskService = Depends(_get_service),
) -> TaskOut:
    return service.assign_label(user["id"], str(task_id), str(label_id))


# PUBLIC_INTERFACE
@router.delete(
    "/{task_id}/labels/{label_id}",
    response_model=TaskOut,
    summary="Remove Label",
    description="Detach a label from a task. Removing an unassigned label is a no-op.",
    responses={404: {"description": "Task or label not found"}},
)
def remove_label(
    task_id: UUID,
    label_id: UUID,
    user: UserEntity = Depends(get_current_user),
    service: TaskService = Depends(_get_service),
) -> TaskOut:
    return service.remove_label(user["id"], str(task_id), str(label_id))
