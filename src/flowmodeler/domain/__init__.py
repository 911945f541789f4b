"""Mapped domain types of the Flow Modeler.

Every module in this package is imported by the session factory, so a new
mapped class only has to live here to become part of the ORM (and of
autogenerated migrations).
"""

from .model import AbstractModel, Model, ModelHistory, ModelType
from .relation import ModelRelation, RelationType

__all__ = [
    "AbstractModel",
    "Model",
    "ModelHistory",
    "ModelRelation",
    "ModelType",
    "RelationType",
]
