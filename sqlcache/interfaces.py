"""Shared driver interface definitions.

This module provides lightweight typing Protocols for the DB-API objects the
executor consumes, so drivers and statements can depend on abstractions
instead of concrete ``sqlite3`` / ``psycopg2`` classes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, List, Mapping, Optional, Protocol, Sequence, Tuple, Union

if TYPE_CHECKING:
    from .statement import ErrorInfo

Params = Union[Mapping[str, object], Sequence[object]]


class CursorProtocol(Protocol):
    """Minimal DB-API cursor protocol used by statements."""

    rowcount: int

    def execute(self, query: str, params: Optional[Params] = ...) -> Any:
        """Execute a single SQL statement with optional parameters."""
        ...

    def fetchall(self) -> List[Tuple[object, ...]]:
        """Fetch all remaining rows of a query result."""
        ...

    def close(self) -> None:
        """Close the cursor."""
        ...

    @property
    def description(self) -> Optional[Sequence[Sequence[object]]]:
        """DB-API cursor description: column metadata or None before execution."""
        ...


class ConnectionProtocol(Protocol):
    """Minimal DB-API connection protocol used by drivers."""

    def cursor(self) -> CursorProtocol:
        """Return a new database cursor."""
        ...

    def commit(self) -> None:
        """Commit the current transaction."""
        ...

    def rollback(self) -> None:
        """Rollback the current transaction."""
        ...

    def close(self) -> None:
        """Close the underlying connection."""
        ...


class StatementDriver(Protocol):
    """What a prepared statement needs from the driver that created it.

    Implemented by ``sqlcache.drivers.Driver``.
    """

    def new_cursor(self) -> CursorProtocol:
        """Open a cursor on the driver connection."""
        ...

    def convert_query(self, query: str) -> str:
        """Rewrite ``:name`` placeholders into the driver's paramstyle."""
        ...

    def error_info(self, exc: BaseException) -> "ErrorInfo":
        """Build an error descriptor from a driver exception."""
        ...

    def record_error(self, info: "ErrorInfo") -> None:
        """Remember ``info`` as the last connection level error."""
        ...

    def record_success(self) -> None:
        """Reset the last connection level error."""
        ...
