"""Links between models, e.g. an app definition and the processes it bundles."""

from __future__ import annotations

from enum import Enum

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from flowmodeler.infrastructure.db.metadata import Base

from .model import Model, new_id


class RelationType(str, Enum):
    """Why one model refers to another."""

    SUBPROCESS = "subprocess"
    FORM_MODEL = "form-model"
    DECISION_TABLE = "decision-table"
    APP_PROCESS = "app-process"


class ModelRelation(Base):
    """A directed reference from `parent_model` to `model`."""

    __tablename__ = "ACT_DE_MODEL_RELATION"

    id: Mapped[str] = mapped_column(String(255), primary_key=True, default=new_id)
    parent_model_id: Mapped[str | None] = mapped_column(
        String(255), ForeignKey("ACT_DE_MODEL.id")
    )
    model_id: Mapped[str | None] = mapped_column(String(255), ForeignKey("ACT_DE_MODEL.id"))
    relation_type: Mapped[str | None] = mapped_column(String(255))

    parent_model: Mapped[Model | None] = relationship(foreign_keys=[parent_model_id])
    model: Mapped[Model | None] = relationship(foreign_keys=[model_id])
