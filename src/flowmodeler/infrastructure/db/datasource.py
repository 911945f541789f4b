"""Connection source builder.

Resolution order:

1. If a directory name is configured (``datasource.jndi.name``), the engine
   bound under that name in a `DataSourceDirectory` is returned unmodified.
   Pool-sizing settings are ignored entirely.
2. Otherwise a pooled engine is built from `PoolConfig`.

A driver that cannot be loaded is a fatal startup condition, but it is not
raised: `build_pooled_engine` logs it and returns ``None``, and whatever
needs the connection source next fails.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError, NoSuchModuleError

from flowmodeler.errors import DataSourceLookupError
from flowmodeler.infrastructure.db.engine import is_sqlite, is_sqlite_memory, make_engine
from flowmodeler.infrastructure.db.pool import (
    install_pool_listeners,
    pin_memory_database,
    prefill_pool,
)
from flowmodeler.redaction import Redactor

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

    from flowmodeler.config import DataSourceSettings, PoolConfig

logger = logging.getLogger(__name__)

ENV_NAMESPACE = "env:"  # pragma: no mutate


class DriverLoadError(Exception):
    """Raised internally when the configured driver cannot be loaded."""


class DataSourceDirectory:
    """A registry of named, externally managed engines.

    The hosting application binds engines it owns (``env:jdbc/modeler``);
    the bootstrapper only looks them up. Lookups are thread-safe.
    """

    def __init__(self) -> None:
        self._entries: dict[str, Engine] = {}
        self._lock = threading.Lock()

    def bind(self, name: str, engine: Engine) -> None:
        """Register `engine` under `name`, replacing any previous binding."""
        with self._lock:
            self._entries[name] = engine

    def unbind(self, name: str) -> None:
        """Remove the binding for `name`, if any."""
        with self._lock:
            self._entries.pop(name, None)

    def lookup(self, name: str, *, resource_ref: bool = True) -> Engine:
        """Find the engine bound under `name`.

        With `resource_ref`, a name without a namespace (no ``:``) is tried as
        ``env:<name>`` first, then as given.

        Raises:
            DataSourceLookupError: If nothing is bound under either name.
        """
        candidates = [name]
        if resource_ref and ":" not in name:
            candidates.insert(0, f"{ENV_NAMESPACE}{name}")
        with self._lock:
            for candidate in candidates:
                if (engine := self._entries.get(candidate)) is not None:
                    return engine
        raise DataSourceLookupError(candidates[0])


def resolve_url(pool_config: PoolConfig) -> URL:
    """Combine the configured driver, URL and credentials into one URL.

    The driver's backend must match the URL's backend, and the driver
    replaces whatever DBAPI the URL named. Credentials are added only when the
    URL carries no user name, and never for SQLite, which has no accounts.

    Raises:
        DriverLoadError: If the URL cannot be parsed or names another backend.
    """
    try:
        url = make_url(pool_config.url)
    except ArgumentError as e:
        raise DriverLoadError("the datasource URL could not be parsed") from e

    driver_backend = pool_config.driver.split("+", 1)[0]
    if url.get_backend_name() != driver_backend:
        raise DriverLoadError(
            f"driver {pool_config.driver!r} does not serve "
            f"{url.get_backend_name()!r} URLs"
        )
    url = url.set(drivername=pool_config.driver)

    if url.username is None and not is_sqlite(url):
        url = url.set(
            username=pool_config.username, password=pool_config.password or None
        )
    return url


def load_driver(url: URL) -> None:
    """Import the dialect and DBAPI module for `url`.

    Raises:
        DriverLoadError: If either cannot be imported.
    """
    try:
        dialect_cls = url.get_dialect()
        dialect_cls.import_dbapi()
    except (NoSuchModuleError, ImportError) as e:
        raise DriverLoadError(f"{type(e).__name__}: {e}") from e


def build_pooled_engine(
    pool_config: PoolConfig, *, redactor: Redactor | None = None
) -> Engine | None:
    """Build a pooled engine from `pool_config`.

    Logs the non-sensitive settings (driver, URL with password masked, user
    name, pool sizes), loads the driver, creates the engine, installs the
    pool maintenance listeners and pre-fills the pool.

    Returns:
        The engine, or None if the driver could not be loaded.
    """
    redactor = redactor or Redactor()
    logger.info("Configuring datasource (password omitted)")
    logger.info("datasource driver: %s", pool_config.driver)
    logger.info("datasource url: %s", redactor.sanitize_db_url(pool_config.url))
    logger.info("datasource user name: %s", pool_config.username)
    logger.info(
        "Min pool size | Max pool size | acquire increment: %d | %d | %d",
        pool_config.min_pool_size,
        pool_config.max_pool_size,
        pool_config.acquire_increment,
    )

    try:
        url = resolve_url(pool_config)
        load_driver(url)
    except DriverLoadError as e:
        logger.error(
            "Could not load database driver %r: %s",
            pool_config.driver,
            redactor.sanitize_db_url(str(e)),
        )
        return None

    engine = make_engine(url, pool=pool_config)
    if is_sqlite_memory(url):
        pin_memory_database(engine)
    install_pool_listeners(engine, pool_config)
    prefill_pool(engine, pool_config)
    return engine


def build_data_source(
    settings: DataSourceSettings,
    *,
    directory: DataSourceDirectory | None = None,
    redactor: Redactor | None = None,
) -> Engine | None:
    """Return the application's connection source.

    Args:
        settings: Datasource settings (directory name or pool configuration).
        directory: Where named engines are looked up.
        redactor: Used to mask secrets in log output.

    Returns:
        The directory-bound engine, a new pooled engine, or None when the
        driver could not be loaded.

    Raises:
        DataSourceLookupError: If a directory name is configured but not bound
            (or no directory was supplied).
    """
    logger.info("Configuring datasource")
    if settings.jndi_name:
        logger.info("Using directory datasource %r", settings.jndi_name)
        if directory is None:
            raise DataSourceLookupError(settings.jndi_name)
        return directory.lookup(settings.jndi_name, resource_ref=settings.jndi_resource_ref)
    return build_pooled_engine(settings.pool, redactor=redactor)
