"""Configuration for the Flow Modeler persistence layer.

Configuration arrives as a flat mapping of property names to strings (usually
read from a Java-style ``.properties`` file) and is resolved once, at startup,
into frozen dataclasses. Builders receive these values explicitly; nothing
below the entrypoints reads the environment.

Missing or unparseable values fall back to documented defaults. The only
hard validation is on the pool-sizing knobs (see `PoolConfig`).
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from pathlib import Path

from flowmodeler.errors import ConfigurationError, InvalidPoolConfigError

logger = logging.getLogger(__name__)

CONFIG_PATH_ENVVAR = "FLOWMODELER_CONFIG"  # pragma: no mutate

# ---------------------------------------------------------------------------
# Property keys
# ---------------------------------------------------------------------------

JNDI_NAME_KEY = "datasource.jndi.name"
JNDI_RESOURCE_REF_KEY = "datasource.jndi.resourceRef"
DRIVER_KEY = "datasource.driver"
URL_KEY = "datasource.url"
USERNAME_KEY = "datasource.username"
PASSWORD_KEY = "datasource.password"  # nosec B105
MIN_POOL_SIZE_KEY = "datasource.min-pool-size"
MAX_POOL_SIZE_KEY = "datasource.max-pool-size"
ACQUIRE_INCREMENT_KEY = "datasource.acquire-increment"
PREFERRED_TEST_QUERY_KEY = "datasource.preferred-test-query"
TEST_ON_CHECKIN_KEY = "datasource.test-connection-on-checkin"
TEST_ON_CHECKOUT_KEY = "datasource.test-connection-on-checkout"
MAX_IDLE_TIME_KEY = "datasource.max-idle-time"
MAX_IDLE_TIME_EXCESS_KEY = "datasource.max-idle-time-excess-connections"

# ORM keys: the ``orm.*`` spelling wins over the legacy ``hibernate.*`` one.
GENERATE_STATISTICS_KEYS = ("orm.generate_statistics", "hibernate.generate_statistics")
SHOW_SQL_KEYS = ("orm.show_sql", "hibernate.show_sql")
DIALECT_KEYS = ("orm.dialect", "hibernate.dialect")

SENSITIVE_KEYS = frozenset({PASSWORD_KEY})

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_DRIVER = "sqlite+pysqlite"
DEFAULT_URL = "sqlite+pysqlite:///file:flowmodeler?mode=memory&cache=shared&uri=true"
DEFAULT_USERNAME = "sa"
DEFAULT_PASSWORD = ""  # nosec B105
DEFAULT_MIN_POOL_SIZE = 10
DEFAULT_MAX_POOL_SIZE = 100
DEFAULT_ACQUIRE_INCREMENT = 5
DEFAULT_MAX_IDLE_TIME = 1800
DEFAULT_MAX_IDLE_TIME_EXCESS = 1800
DEFAULT_DIALECT = "sqlite"

_TRUE_VALUES = {"true", "on", "yes", "1"}
_FALSE_VALUES = {"false", "off", "no", "0"}

_ESCAPE_PATTERN = re.compile(r"\\(.)")
_ESCAPES = {"t": "\t", "n": "\n", "r": "\r", "f": "\f"}


@dataclass(frozen=True, slots=True)
class PoolConfig:  # pylint: disable=too-many-instance-attributes
    """Resolved connection parameters and pool-sizing knobs.

    Attributes:
        driver: SQLAlchemy ``dialect+dbapi`` identifier (e.g. ``sqlite+pysqlite``).
        url: SQLAlchemy database URL.
        username: Account name applied when the URL carries none.
        password: Account password. Never logged, never shown in ``repr``.
        min_pool_size: Connections kept in the pool.
        max_pool_size: Upper bound on open connections.
        acquire_increment: Batch size used when filling the pool.
        preferred_test_query: Statement used to validate connections, or None
            to use the dialect's own ping.
        test_connection_on_checkin: Validate connections when they are returned.
        test_connection_on_checkout: Validate connections before they are handed out.
        max_idle_time: Seconds a pooled connection may sit unused (0 disables).
        max_idle_time_excess_connections: Idle limit applied while the pool is
            above its minimum size (0 disables).

    Raises:
        InvalidPoolConfigError: If the sizes describe an impossible pool
            (negative values, an empty maximum, or ``min > max``).
    """

    driver: str = DEFAULT_DRIVER
    url: str = DEFAULT_URL
    username: str = DEFAULT_USERNAME
    password: str = field(default=DEFAULT_PASSWORD, repr=False)
    min_pool_size: int = DEFAULT_MIN_POOL_SIZE
    max_pool_size: int = DEFAULT_MAX_POOL_SIZE
    acquire_increment: int = DEFAULT_ACQUIRE_INCREMENT
    preferred_test_query: str | None = None
    test_connection_on_checkin: bool = True
    test_connection_on_checkout: bool = True
    max_idle_time: int = DEFAULT_MAX_IDLE_TIME
    max_idle_time_excess_connections: int = DEFAULT_MAX_IDLE_TIME_EXCESS

    def __post_init__(self) -> None:
        for name in (
            "min_pool_size",
            "max_idle_time",
            "max_idle_time_excess_connections",
        ):
            if getattr(self, name) < 0:
                raise InvalidPoolConfigError(name, "must not be negative")
        if self.max_pool_size < 1:
            raise InvalidPoolConfigError("max_pool_size", "must be at least 1")
        if self.acquire_increment < 1:
            raise InvalidPoolConfigError("acquire_increment", "must be at least 1")
        if self.min_pool_size > self.max_pool_size:
            raise InvalidPoolConfigError(
                "min_pool_size",
                f"{self.min_pool_size} exceeds max_pool_size {self.max_pool_size}",
            )

    def summary(self) -> dict[str, object]:
        """Return every non-sensitive field, for logging and display."""
        return {f.name: getattr(self, f.name) for f in fields(self) if f.name != "password"}

    @classmethod
    def from_properties(cls, props: Mapping[str, str]) -> PoolConfig:
        """Resolve a pool configuration from raw properties, applying defaults."""
        return cls(
            driver=get_str(props, DRIVER_KEY, DEFAULT_DRIVER),
            url=get_str(props, URL_KEY, DEFAULT_URL),
            username=get_str(props, USERNAME_KEY, DEFAULT_USERNAME),
            # the password is the one value where blank is meaningful
            password=props.get(PASSWORD_KEY, DEFAULT_PASSWORD),
            min_pool_size=get_int(props, MIN_POOL_SIZE_KEY, DEFAULT_MIN_POOL_SIZE),
            max_pool_size=get_int(props, MAX_POOL_SIZE_KEY, DEFAULT_MAX_POOL_SIZE),
            acquire_increment=get_int(
                props, ACQUIRE_INCREMENT_KEY, DEFAULT_ACQUIRE_INCREMENT
            ),
            preferred_test_query=get_str(props, PREFERRED_TEST_QUERY_KEY, None),
            test_connection_on_checkin=get_bool(props, TEST_ON_CHECKIN_KEY, True),
            test_connection_on_checkout=get_bool(props, TEST_ON_CHECKOUT_KEY, True),
            max_idle_time=get_int(props, MAX_IDLE_TIME_KEY, DEFAULT_MAX_IDLE_TIME),
            max_idle_time_excess_connections=get_int(
                props, MAX_IDLE_TIME_EXCESS_KEY, DEFAULT_MAX_IDLE_TIME_EXCESS
            ),
        )


@dataclass(frozen=True, slots=True)
class DataSourceSettings:
    """Where connections come from: a named directory entry or a new pool."""

    jndi_name: str | None = None
    jndi_resource_ref: bool = True
    pool: PoolConfig = field(default_factory=PoolConfig)

    @classmethod
    def from_properties(cls, props: Mapping[str, str]) -> DataSourceSettings:
        return cls(
            jndi_name=props.get(JNDI_NAME_KEY) or None,
            jndi_resource_ref=get_bool(props, JNDI_RESOURCE_REF_KEY, True),
            pool=PoolConfig.from_properties(props),
        )


@dataclass(frozen=True, slots=True)
class OrmSettings:
    """Session-factory switches."""

    generate_statistics: bool = False
    show_sql: bool = False
    dialect: str = DEFAULT_DIALECT

    @classmethod
    def from_properties(cls, props: Mapping[str, str]) -> OrmSettings:
        return cls(
            generate_statistics=get_bool(props, GENERATE_STATISTICS_KEYS, False),
            show_sql=get_bool(props, SHOW_SQL_KEYS, False),
            dialect=get_str(props, DIALECT_KEYS, DEFAULT_DIALECT),
        )


@dataclass(frozen=True, slots=True)
class Settings:
    """Everything the persistence bootstrapper needs, resolved once."""

    datasource: DataSourceSettings = field(default_factory=DataSourceSettings)
    orm: OrmSettings = field(default_factory=OrmSettings)

    @classmethod
    def from_properties(cls, props: Mapping[str, str]) -> Settings:
        """Build settings from a flat property mapping.

        Args:
            props: Property names (e.g. ``datasource.url``) to raw string values.

        Returns:
            Fully defaulted, immutable settings.

        Raises:
            InvalidPoolConfigError: If the pool-sizing knobs are inconsistent.
        """
        return cls(
            datasource=DataSourceSettings.from_properties(props),
            orm=OrmSettings.from_properties(props),
        )


# ---------------------------------------------------------------------------
# Typed getters
# ---------------------------------------------------------------------------


def _lookup(props: Mapping[str, str], keys: str | tuple[str, ...]) -> tuple[str, str | None]:
    """Return the first key present (with a non-blank value) and its value."""
    candidates = (keys,) if isinstance(keys, str) else keys
    for key in candidates:
        value = props.get(key)
        if value is not None and value.strip():
            return key, value.strip()
    return candidates[0], None


def get_str(
    props: Mapping[str, str], keys: str | tuple[str, ...], default: str | None
) -> str | None:
    """Return a stripped string value, or `default` if missing or blank."""
    _, value = _lookup(props, keys)
    return default if value is None else value


def get_int(props: Mapping[str, str], keys: str | tuple[str, ...], default: int) -> int:
    """Return an integer value, or `default` if missing or unparseable."""
    key, value = _lookup(props, keys)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning("Ignoring non-integer value for %s; using %s", key, default)
        return default


def get_bool(props: Mapping[str, str], keys: str | tuple[str, ...], default: bool) -> bool:
    """Return a boolean value, or `default` if missing or unparseable.

    Accepts ``true/false``, ``on/off``, ``yes/no`` and ``1/0`` (any case).
    """
    key, value = _lookup(props, keys)
    if value is None:
        return default
    lowered = value.lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    logger.warning("Ignoring non-boolean value for %s; using %s", key, default)
    return default


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------


def parse_properties(text: str) -> dict[str, str]:
    """Parse Java-style ``.properties`` content.

    Supports ``key=value``, ``key: value`` and ``key value`` separators,
    ``#``/``!`` comment lines, and backslash line continuations.

    Args:
        text: The file content.

    Returns:
        Property names mapped to their (unescaped) string values.
    """
    props: dict[str, str] = {}
    logical = ""
    for raw_line in text.splitlines():
        line = raw_line.lstrip()
        if not logical and (not line or line[0] in "#!"):
            continue
        # an odd number of trailing backslashes continues the line
        trailing = len(line) - len(line.rstrip("\\"))
        if trailing % 2 == 1:
            logical += line[:-1]
            continue
        key, value = _split_property(logical + line)
        props[key] = value
        logical = ""
    if logical:
        key, value = _split_property(logical)
        props[key] = value
    return props


def _split_property(line: str) -> tuple[str, str]:
    index = 0
    while index < len(line):
        char = line[index]
        if char == "\\":
            index += 2
            continue
        if char in "=: \t":
            break
        index += 1
    rest = line[index:].lstrip(" \t")
    if rest[:1] in ("=", ":"):
        rest = rest[1:]
    return _unescape(line[:index]), _unescape(rest.lstrip(" \t"))


def _unescape(value: str) -> str:
    return _ESCAPE_PATTERN.sub(lambda m: _ESCAPES.get(m.group(1), m.group(1)), value)


def load_properties(path: Path) -> dict[str, str]:
    """Read a ``.properties`` file.

    Raises:
        ConfigurationError: If the file cannot be read.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration file {str(path)!r}.") from e
    logger.debug("Loaded configuration from %s", path)
    return parse_properties(text)


def resolve_properties(
    path: Path | None = None,
    overrides: Mapping[str, str] | None = None,
    environ: Mapping[str, str] | None = None,
) -> tuple[dict[str, str], Path | None]:
    """Merge the properties file and overrides into one mapping.

    Precedence: `overrides` > properties file. The file is `path` if given,
    else the one named by ``FLOWMODELER_CONFIG`` (if set).

    Args:
        path: Explicit properties file.
        overrides: Individual properties that win over the file.
        environ: Environment mapping; defaults to ``os.environ``.

    Returns:
        The merged properties and the file they were read from (if any).
    """
    environ = os.environ if environ is None else environ
    if path is None and (env_path := environ.get(CONFIG_PATH_ENVVAR)):
        path = Path(env_path)
    props: dict[str, str] = load_properties(path) if path is not None else {}
    props.update(overrides or {})
    return props, path


def load_settings(
    path: Path | None = None,
    overrides: Mapping[str, str] | None = None,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Resolve settings for an entrypoint (see `resolve_properties`)."""
    props, _ = resolve_properties(path, overrides, environ)
    return Settings.from_properties(props)
