from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Response, status

from ..auth import get_current_user
from ..models import UserEntity
from ..repositories import Repository, get_repository
from ..schemas import ProjectCreate, ProjectListOut, ProjectOut, ProjectUpdate
from ..services import ProjectService

router = APIRouter(
    prefix="/api/projects",
    tags=["projects"],
)


def _get_service(repo: Repository = Depends(get_repository)) -> ProjectService:
    return ProjectService(repo)


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=ProjectOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create Project",
    responses={400: {"description": "Validation error"}},
)
def create_project(
    payload: ProjectCreate,
    response: Response,
    user: UserEntity = Depends(get_current_user),
    service: ProjectService = Depends(_get_service),
) -> ProjectOut:
    created = service.create_project(user["id"], payload)
    response.headers["Location"] = f"/api/projects/{created.id}"
    return created


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=ProjectListOut,
    summary="List Projects",
    description="List the caller's projects in manual order with task completion statistics.",
)
def list_projects(
    user: UserEntity = Depends(get_current_user),
    service: ProjectService = Depends(_get_service),
) -> ProjectListOut:
    return service.list_projects(user["id"])


# PUBLIC_INTERFACE
@router.get(
    "/{project_id}",
    response_model=ProjectOut,
    summary="Get Project",
    responses={404: {"description": "Project not found"}},
)
def get_project(
    project_id: UUID,
    user: UserEntity = Depends(get_current_user),
    service: ProjectService = Depends(_get_service),
) -> ProjectOut:
    return service.get_project(user["id"], str(project_id))


# PUBLIC_INTERFACE
@router.put(
    "/{project_id}",
    response_model=ProjectOut,
    summary="Update Project",
    description="Partially update a project; null clears description and dueDate.",
    responses={404: {"description": "Project not found"}},
)
def update_project(
    project_id: UUID,
    payload: ProjectUpdate,
    user: UserEntity = Depends(get_current_user),
    service: ProjectService = Depends(_get_service),
) -> ProjectOut:
    return service.update_project(user["id"], str(project_id), payload)


# PUBLIC_INTERFACE
@router.patch(
    "/{project_id}/complete",
    response_model=ProjectOut,
    summary="Complete Project",
    responses={404: {"description": "Project not found"}},
)
def complete_project(
    project_id: UUID,
    user: UserEntity = Depends(get_current_user),
    service: ProjectService = Depends(_get_service),
) -> ProjectOut:
    return service.complete_project(user["id"], str(project_id))


# PUBLIC_INTERFACE
@router.patch(
    "/{project_id}/reopen",
    response_model=ProjectOut,
    summary="Reopen Project",
    responses={404: {"description": "Project not found"}},
)
def reopen_project(
    project_id: UUID,
    user: UserEntity = Depends(get_current_user),
    service: ProjectService = Depends(_get_service),
) -> ProjectOut:
    return service.reopen_project(user["id"], str(project_id))


# PUBLIC_INTERFACE
@router.delete(
    "/{project_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Project",
    description="Delete a project. Its tasks are kept and detached from it.",
    responses={404: {"description": "Project not found"}},
)
def delete_project(
    project_id: UUID,
    user: UserEntity = Depends(get_current_user),
    service: ProjectService = Depends(_get_service),
) -> None:
    service.delete_project(user["id"], str(project_id))
    return None
