"""Startup error definitions for the persistence bootstrapper.

All of these are fatal at startup; there is no runtime recovery path once
the application is serving requests.
"""


class FlowModelerError(Exception):
    """Base class for persistence bootstrap errors."""


# ============================================================================
#                           Configuration errors
# ============================================================================


class ConfigurationError(FlowModelerError):
    """Raised when configuration cannot be turned into usable settings."""


class InvalidPoolConfigError(ConfigurationError):
    """Raised when pool-sizing knobs describe an impossible pool."""

    def __init__(self, field_name: str, message: str) -> None:
        super().__init__(f"Invalid pool configuration for {field_name!r}: {message}")
        self.field_name = field_name


# ============================================================================
#                           Builder errors
# ============================================================================


class DataSourceLookupError(FlowModelerError):
    """Raised when a named data source cannot be found in the directory."""

    def __init__(self, name: str) -> None:
        super().__init__(f"No data source bound under name {name!r}.")
        self.name = name


class SessionFactoryError(FlowModelerError):
    """Raised when the ORM session factory cannot be built."""


class MigrationError(FlowModelerError):
    """Raised when the schema migration run fails for any reason.

    The underlying exception, when there is one, is available as ``__cause__``.
    """


class MigrationLockTimeoutError(MigrationError):
    """Raised when the changelog lock is held by someone else for too long."""

    def __init__(self, table_name: str, locked_by: str | None, waited: float) -> None:
        super().__init__(
            f"Could not acquire changelog lock {table_name!r} after {waited:.0f}s "
            f"(currently locked by {locked_by or 'unknown'})."
        )
        self.table_name = table_name
        self.locked_by = locked_by
        self.waited = waited
