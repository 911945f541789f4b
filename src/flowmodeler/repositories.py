"""Session-scoped repositories over the modeler's domain types.

Repositories never commit; the surrounding transaction does::

    with tx.transaction() as session:
        repo = ModelRepository(session)
        repo.add(Model(name="Invoice", key="invoice", model_type=ModelType.BPMN))
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from sqlalchemy import select

from flowmodeler.domain import Model, ModelHistory, ModelRelation, ModelType

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


class ModelRepository:
    """Queries and updates for `Model` and its history and relations."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, model: Model) -> Model:
        self.session.add(model)
        self.session.flush()
        return model

    def get(self, model_id: str) -> Model | None:
        return self.session.get(Model, model_id)

    def find_by_key_and_type(self, key: str, model_type: ModelType) -> Model | None:
        """Return the model with `key` of the given type, if any."""
        return self.session.scalars(
            select(Model).where(Model.key == key, Model.model_type == int(model_type))
        ).first()

    def list_by_type(self, model_type: ModelType) -> Sequence[Model]:
        """All models of one type, most recently updated first."""
        return self.session.scalars(
            select(Model)
            .where(Model.model_type == int(model_type))
            .order_by(Model.last_updated.desc(), Model.name)
        ).all()

    def save_new_version(self, model: Model, *, editor_json: str, user: str) -> Model:
        """Archive the current state of `model` and bump its version."""
        self.session.add(model.snapshot())
        model.model_editor_json = editor_json
        model.last_updated_by = user
        model.version = (model.version or 0) + 1
        self.session.flush()
        return model

    def history_for(self, model_id: str) -> Sequence[ModelHistory]:
        """Archived versions of a model, newest first."""
        return self.session.scalars(
            select(ModelHistory)
            .where(ModelHistory.model_id == model_id)
            .order_by(ModelHistory.version.desc())
        ).all()

    def relations_for(self, parent_model_id: str) -> Sequence[ModelRelation]:
        """Models referenced by a parent model."""
        return self.session.scalars(
            select(ModelRelation).where(ModelRelation.parent_model_id == parent_model_id)
        ).all()

    def delete(self, model: Model) -> None:
        """Remove a model, marking its history rows as removed."""
        removed_at = datetime.now(timezone.utc)
        for row in self.history_for(model.id):
            row.removal_date = removed_at
        for relation in self.session.scalars(
            select(ModelRelation).where(
                (ModelRelation.parent_model_id == model.id)
                | (ModelRelation.model_id == model.id)
            )
        ):
            self.session.delete(relation)
        self.session.delete(model)
        self.session.flush()
