"""Database dialect names recognised by the persistence layer.

Centralizes the dialect strings (``"postgresql"``, ``"sqlite"``, ...) so the
migration runner and session factory compare enum members rather than raw
literals. The set mirrors the databases the modeler ships changelogs for.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sqlalchemy.engine import Connection, Engine


class UnsupportedDialect(Exception):
    """Raised when a dialect name is not one the modeler supports."""


_ALIASES = {
    "postgres": "postgresql",
    "postgresql": "postgresql",
    "pg": "postgresql",
    "sqlite": "sqlite",
    "mysql": "mysql",
    "mariadb": "mysql",
    "mssql": "mssql",
    "sqlserver": "mssql",
    "oracle": "oracle",
    # the embedded in-memory database; SQLite plays that role here
    "h2": "sqlite",
}

# version and storage-engine tails of Hibernate class names: PostgreSQL95, MySQL57InnoDB
_VERSION_TAIL = re.compile(r"(\d\w*|innodb|myisam)$")


class DialectName(str, Enum):
    """Supported SQLAlchemy dialect names."""

    POSTGRES = "postgresql"
    SQLITE = "sqlite"
    MYSQL = "mysql"
    MSSQL = "mssql"
    ORACLE = "oracle"

    @property
    def supports_transactional_ddl(self) -> bool:
        """Whether DDL statements roll back with the surrounding transaction."""
        return self in (DialectName.POSTGRES, DialectName.SQLITE, DialectName.MSSQL)

    @classmethod
    def from_string(cls, dialect_str: str | None) -> DialectName:
        """Normalize a dialect string, tolerating aliases and driver suffixes.

        Accepts e.g. ``postgres``, ``postgresql+psycopg``, ``sqlite+pysqlite``,
        ``mariadb``, and Hibernate dialect class names such as
        ``org.hibernate.dialect.PostgreSQL95Dialect`` or
        ``org.hibernate.dialect.H2Dialect``.

        Raises:
            UnsupportedDialect: if the dialect is not recognized.
        """
        base = (dialect_str or "").strip().lower().split("+", 1)[0]
        base = base.rsplit(".", 1)[-1]
        if base.endswith("dialect"):
            base = base[: -len("dialect")]
        name = _ALIASES.get(base) or _ALIASES.get(_VERSION_TAIL.sub("", base))
        if name is None:
            raise UnsupportedDialect(f"Unsupported dialect: {dialect_str!r}")
        return cls(name)

    @classmethod
    def from_sqlalchemy(cls, obj: Engine | Connection) -> DialectName:
        """Detect the dialect of a SQLAlchemy Engine or Connection.

        Raises:
            UnsupportedDialect: if ``obj`` has no ``.dialect.name`` or the
                name is not recognized.
        """
        try:
            name = obj.dialect.name
        except AttributeError as e:
            raise UnsupportedDialect(
                f"Object {type(obj).__name__} does not expose .dialect.name"
            ) from e
        return cls.from_string(name)
