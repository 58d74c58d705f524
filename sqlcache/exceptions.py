"""
Custom exceptions for the sqlcache statement executor.
"""


class DatabaseError(Exception):
    """Base class for all sqlcache exceptions."""


class DBConnectionError(DatabaseError):
    """Raised when the database session cannot be established."""


class QueryError(DatabaseError):
    """Raised when the driver fails while preparing, binding or executing a query.

    The message is the driver's message, unmodified. The driver exception is
    available as ``__cause__``.
    """


class CacheDisabledError(DatabaseError):
    """Raised when a tag based accessor is used while the query cache is off."""

    def __init__(self, message: str = "You have to enable cache before tagging a query.") -> None:
        super().__init__(message)


class SettingsError(DatabaseError):
    """Raised when connection settings cannot be resolved."""
