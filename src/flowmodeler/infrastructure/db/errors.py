"""Data-access error hierarchy and SQLAlchemy exception translation.

Callers of the transaction manager and SQL template catch these instead of
driver- or SQLAlchemy-specific exceptions. The original exception is always
kept as ``__cause__``.
"""

from __future__ import annotations

from sqlalchemy import exc as sa_exc
from sqlalchemy.orm import exc as orm_exc


class DataAccessError(Exception):
    """Base class for data-access failures."""


class DataIntegrityViolationError(DataAccessError):
    """A constraint (unique, foreign key, not-null, check) was violated."""


class DataAccessResourceFailureError(DataAccessError):
    """The database could not be reached or the connection was lost."""


class InvalidDataAccessUsageError(DataAccessError):
    """The statement or API usage was invalid (bad SQL, wrong arguments)."""


class EmptyResultError(DataAccessError):
    """Exactly one row was expected but none was found."""


class IncorrectResultSizeError(DataAccessError):
    """Exactly one row was expected but several were found."""


class OptimisticLockingFailureError(DataAccessError):
    """A row changed underneath an ORM flush (stale version)."""


class UnexpectedRollbackError(DataAccessError):
    """A joined block failed, so the outer transaction rolled back instead of committing."""


class UncategorizedDataAccessError(DataAccessError):
    """Any other SQLAlchemy failure."""


# order matters: subclasses before their bases
_TRANSLATIONS: tuple[tuple[type[Exception], type[DataAccessError]], ...] = (
    (sa_exc.IntegrityError, DataIntegrityViolationError),
    (sa_exc.OperationalError, DataAccessResourceFailureError),
    (sa_exc.InterfaceError, DataAccessResourceFailureError),
    (sa_exc.DisconnectionError, DataAccessResourceFailureError),
    (sa_exc.TimeoutError, DataAccessResourceFailureError),
    (sa_exc.ProgrammingError, InvalidDataAccessUsageError),
    (sa_exc.ArgumentError, InvalidDataAccessUsageError),
    (sa_exc.NoResultFound, EmptyResultError),
    (sa_exc.MultipleResultsFound, IncorrectResultSizeError),
    (orm_exc.StaleDataError, OptimisticLockingFailureError),
)


def translate(error: Exception) -> Exception:
    """Map a SQLAlchemy exception to its `DataAccessError` counterpart.

    Exceptions that are not SQLAlchemy errors are returned unchanged.
    The caller is expected to ``raise translate(e) from e``.
    """
    if isinstance(error, DataAccessError):
        return error
    for source, target in _TRANSLATIONS:
        if isinstance(error, source):
            return target(str(error))
    if isinstance(error, sa_exc.SQLAlchemyError):
        return UncategorizedDataAccessError(str(error))
    return error
