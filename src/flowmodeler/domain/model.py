"""Process models and their history.

A `Model` is the current version of something authored in the modeler
(a BPMN process, a form, an app definition or a decision table). Each time
a model is saved over, the previous version is kept as a `ModelHistory` row.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import IntEnum

from sqlalchemy import Index, Integer, LargeBinary, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from flowmodeler.infrastructure.db.metadata import Base
from flowmodeler.infrastructure.db.sa_types import UTCDateTime


class ModelType(IntEnum):
    """Kinds of model the modeler stores."""

    BPMN = 0
    FORM = 2
    APP = 3
    DECISION_TABLE = 4


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AbstractModel:  # pylint: disable=too-few-public-methods
    """Columns shared by models and their history rows."""

    id: Mapped[str] = mapped_column(String(255), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(400))
    key: Mapped[str] = mapped_column("model_key", String(400))
    description: Mapped[str | None] = mapped_column(String(4000))
    comment: Mapped[str | None] = mapped_column("model_comment", String(4000))
    created: Mapped[datetime | None] = mapped_column(UTCDateTime(), default=utcnow)
    created_by: Mapped[str | None] = mapped_column(String(255))
    last_updated: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), default=utcnow, onupdate=utcnow
    )
    last_updated_by: Mapped[str | None] = mapped_column(String(255))
    version: Mapped[int | None] = mapped_column(Integer, default=1)
    model_editor_json: Mapped[str | None] = mapped_column(Text)
    thumbnail: Mapped[bytes | None] = mapped_column(LargeBinary)
    model_type: Mapped[int | None] = mapped_column(Integer)

    @property
    def type(self) -> ModelType | None:
        return None if self.model_type is None else ModelType(self.model_type)


class Model(AbstractModel, Base):
    """The current version of a model."""

    __tablename__ = "ACT_DE_MODEL"
    __table_args__ = (Index("idx_proc_mod_created", "created_by"),)

    def snapshot(self) -> ModelHistory:
        """Copy this model into a history row, before it is overwritten."""
        return ModelHistory(
            model_id=self.id,
            name=self.name,
            key=self.key,
            description=self.description,
            comment=self.comment,
            created=self.created,
            created_by=self.created_by,
            last_updated=self.last_updated,
            last_updated_by=self.last_updated_by,
            version=self.version,
            model_editor_json=self.model_editor_json,
            thumbnail=self.thumbnail,
            model_type=self.model_type,
        )

    def __repr__(self) -> str:
        return f"Model(id={self.id!r}, key={self.key!r}, version={self.version!r})"


class ModelHistory(AbstractModel, Base):
    """A superseded version of a model."""

    __tablename__ = "ACT_DE_MODEL_HISTORY"
    __table_args__ = (Index("idx_proc_mod_history_proc", "model_id"),)

    model_id: Mapped[str] = mapped_column(String(400))
    removal_date: Mapped[datetime | None] = mapped_column(UTCDateTime())
