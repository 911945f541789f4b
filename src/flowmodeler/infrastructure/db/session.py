"""ORM session factory builder.

`build_session_factory` imports every module of the domain package so the
mapped classes register themselves on the declarative registry, configures
the mappers, and returns a `SessionFactory` bound to the connection source.

SQLAlchemy has no second-level entity cache, so there is nothing to disable
here; each session's identity map is its only cache.
"""

from __future__ import annotations

import importlib
import logging
import pkgutil
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session, sessionmaker

from flowmodeler.errors import SessionFactoryError
from flowmodeler.infrastructure.db.dialects import DialectName, UnsupportedDialect
from flowmodeler.infrastructure.db.metadata import Base
from flowmodeler.infrastructure.db.statistics import OrmStatistics, install_sql_logging

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

    from flowmodeler.config import OrmSettings

logger = logging.getLogger(__name__)

DOMAIN_PACKAGE = "flowmodeler.domain"


@dataclass(frozen=True)
class SessionFactory:
    """Entry point for opening ORM sessions against the mapped domain types.

    Calling the factory returns a new `Session`.
    """

    engine: Engine
    maker: sessionmaker[Session]
    mapped_classes: tuple[type, ...]
    statistics: OrmStatistics | None = None

    def __call__(self) -> Session:
        return self.maker()


def scan_package(package_name: str) -> tuple[type, ...]:
    """Import `package_name` and all its submodules; return their mapped classes.

    Args:
        package_name: Dotted name of the package holding mapped classes.

    Returns:
        Mapped classes defined in that package, sorted by qualified name.
    """
    package = importlib.import_module(package_name)
    for module_info in pkgutil.walk_packages(package.__path__, prefix=f"{package_name}."):
        importlib.import_module(module_info.name)

    prefix = f"{package_name}."
    found = {
        mapper.class_
        for mapper in Base.registry.mappers
        if mapper.class_.__module__ == package_name
        or mapper.class_.__module__.startswith(prefix)
    }
    return tuple(sorted(found, key=lambda cls: f"{cls.__module__}.{cls.__qualname__}"))


def _check_dialect(engine: Engine, configured: str) -> None:
    actual = engine.dialect.name
    try:
        expected = DialectName.from_string(configured)
    except UnsupportedDialect:
        logger.warning(
            "Configured ORM dialect %r is not recognised; using %r", configured, actual
        )
        return
    if expected.value != actual:
        logger.warning(
            "Configured ORM dialect %r does not match the connection source (%r); "
            "using %r",
            configured,
            actual,
            actual,
        )


def build_session_factory(
    engine: Engine | None,
    orm_settings: OrmSettings,
    *,
    package: str = DOMAIN_PACKAGE,
) -> SessionFactory:
    """Build the session factory over `engine`.

    Args:
        engine: Connection source. None means the source failed to build.
        orm_settings: Statistics, SQL logging and expected dialect.
        package: Package scanned for mapped classes.

    Returns:
        A ready-to-use `SessionFactory`.

    Raises:
        SessionFactoryError: If there is no connection source or the mappings
            cannot be configured.
    """
    logger.info("Configuring session factory")
    if engine is None:
        raise SessionFactoryError("No usable connection source to bind sessions to.")

    try:
        _check_dialect(engine, orm_settings.dialect)
        mapped = scan_package(package)
        Base.registry.configure()
    except Exception as e:  # pylint: disable=broad-except
        raise SessionFactoryError(f"Error creating session factory: {e}") from e

    maker = sessionmaker(bind=engine, expire_on_commit=False)
    statistics = None
    if orm_settings.generate_statistics:
        statistics = OrmStatistics()
        statistics.attach(engine, maker)
    if orm_settings.show_sql:
        install_sql_logging(engine)

    logger.info(
        "Session factory ready: %d mapped classes from %s", len(mapped), package
    )
    logger.debug("Mapped classes: %s", [cls.__name__ for cls in mapped])
    return SessionFactory(
        engine=engine, maker=maker, mapped_classes=mapped, statistics=statistics
    )
