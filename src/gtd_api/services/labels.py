from __future__ import annotations

import logging

from ..errors import NotFound
from ..models import LabelEntity, new_label
from ..repositories import Repository
from ..schemas import LabelCreate, LabelListOut, LabelOut, LabelUpdate

logger = logging.getLogger(__name__)

LABEL_NOT_FOUND = "Label not found or does not belong to the authenticated user."


class LabelService:
    """Owner-scoped label CRUD. Name uniqueness is enforced by the repository."""

    def __init__(self, repository: Repository):
        self.repository = repository

    def _out(self, label: LabelEntity, task_count: int = 0) -> LabelOut:
        return LabelOut(
            id=label["id"],
            name=label["name"],
            color=label["color"],
            task_count=task_count,
            created_at=label["created_at"],
        )

    def _require(self, user_id: str, label_id: str) -> LabelEntity:
        label = self.repository.get_label(user_id, label_id)
        if label is None:
            raise NotFound(LABEL_NOT_FOUND)
        return label

    def create_label(self, user_id: str, payload: LabelCreate) -> LabelOut:
        created = self.repository.add_label(new_label(user_id, payload.name, payload.color))
        logger.info("Created label %s for user %s", created["id"], user_id)
        return self._out(created)

    def list_labels(self, user_id: str) -> LabelListOut:
        labels = self.repository.list_labels(user_id)
        counts = self.repository.label_task_counts(l["id"] for l in labels)
        items = [self._out(l, counts.get(l["id"], 0)) for l in labels]
        return LabelListOut(labels=items, total_count=len(items))

    def update_label(self, user_id: str, label_id: str, payload: LabelUpdate) -> LabelOut:
        label = self._require(user_id, label_id)
        fields = payload.model_fields_set
        updated = label.copy()
        if "name" in fields and payload.name is not None:
            updated["name"] = payload.name
        if "color" in fields:
            updated["color"] = payload.color
        saved = self.repository.save_label(updated)
        counts = self.repository.label_task_counts([label_id])
        return self._out(saved, counts.get(label_id, 0))

    def delete_label(self, user_id: str, label_id: str) -> None:
        if not self.repository.delete_label(user_id, label_id):
            raise NotFound(LABEL_NOT_FOUND)
        logger.info("Deleted label %s", label_id)
