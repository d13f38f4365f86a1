"""Persistence layer exceptions.

All persistence exceptions inherit from PersistenceError so callers can catch
every database failure with a single except clause.
"""


class PersistenceError(Exception):
    """Base exception for all persistence layer errors."""

    pass


class DatabaseConnectionError(PersistenceError):
    """Raised when database connection or initialization fails.

    Examples:
    - Invalid or empty database URL
    - Database file not accessible
    - Database driver not available
    """

    pass


class RecordNotFoundError(PersistenceError):
    """Raised when a record an operation requires does not exist.

    Optional lookups return None instead of raising this.
    """

    pass


class DataIntegrityError(PersistenceError):
    """Raised when a database constraint is violated.

    Examples:
    - Duplicate owner email
    - Duplicate reset-token digest
    - Foreign key pointing at a missing owner
    """

    pass
