"""Shared `MetaData` and declarative base for the modeler's mapped types.

Every mapped class in `flowmodeler.domain` derives from `Base`, so the
session factory can discover them through ``Base.registry`` and Alembic sees
one metadata. The naming convention keeps constraint names deterministic
across dialects:

    - Indexes:       ix_<table>_<col...>
    - Unique:        uq_<table>_<col...>
    - Check:         ck_<table>_<constraint_name>
    - Foreign keys:  fk_<table>_<col...>_<reftable>
    - Primary key:   pk_<table>
"""

from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase

metadata = MetaData(
    naming_convention={
        "ix": "ix_%(table_name)s_%(column_0_N_label)s",
        "uq": "uq_%(table_name)s_%(column_0_N_name)s",
        "ck": "ck_%(table_name)s_%(constraint_name)s",
        "fk": "fk_%(table_name)s_%(column_0_N_name)s_%(referred_table_name)s",
        "pk": "pk_%(table_name)s",
    }
)


class Base(DeclarativeBase):  # pylint: disable=too-few-public-methods
    """Declarative base bound to the shared metadata."""

    metadata = metadata
