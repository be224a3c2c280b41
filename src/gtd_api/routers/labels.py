from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status

from ..auth import get_current_user
from ..models import UserEntity
from ..repositories import Repository, get_repository
from ..schemas import LabelCreate, LabelListOut, LabelOut, LabelUpdate
from ..services import LabelService

router = APIRouter(
    prefix="/api/labels",
    tags=["labels"],
)


def _get_service(repo: Repository = Depends(get_repository)) -> LabelService:
    return LabelService(repo)


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=LabelOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create Label",
    responses={
        201: {"description": "Label created"},
        400: {"description": "Validation error"},
        409: {"description": "A label with this name already exists"},
    },
)
def create_label(
    payload: LabelCreate,
    user: UserEntity = Depends(get_current_user),
    service: LabelService = Depends(_get_service),
) -> LabelOut:
    return service.create_label(user["id"], payload)


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=LabelListOut,
    summary="List Labels",
    description="List the caller's labels by name, each with the number of tasks carrying it.",
)
def list_labels(
    user: UserEntity = Depends(get_current_user),
    service: LabelService = Depends(_get_service),
) -> LabelListOut:
    return service.list_labels(user["id"])


# PUBLIC_INTERFACE
@router.put(
    "/{label_id}",
    response_model=LabelOut,
    summary="Update Label",
    description="Partially update a label; null clears the color.",
    responses={
        404: {"description": "Label not found"},
        409: {"description": "A label with this name already exists"},
    },
)
def update_label(
    label_id: UUID,
    payload: LabelUpdate,
    user: UserEntity = Depends(get_current_user),
    service: LabelService = Depends(_get_service),
) -> LabelOut:
    return service.update_label(user["id"], str(label_id), payload)


# PUBLIC_INTERFACE
@router.delete(
    "/{label_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Label",
    description="Delete a label and detach it from every task.",
    responses={404: {"description": "Label not found"}},
)
def delete_label(
    label_id: UUID,
    user: UserEntity = Depends(get_current_user),
    service: LabelService = Depends(_get_service),
) -> None:
    service.delete_label(user["id"], str(label_id))
    return None
