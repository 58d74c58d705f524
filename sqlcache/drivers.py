"""Driver adapters for the statement executor.

Supports a local SQLite database (stdlib ``sqlite3``) and PostgreSQL
(``psycopg2``). A driver owns one DB-API connection and tracks the error
descriptor of the last operation performed through it.
"""

import enum
import logging
import re
import sqlite3
from typing import Callable, Dict, Optional, Tuple, TypeVar, cast

import psycopg2
from psycopg2 import extensions as psycopg2_extensions
from psycopg2 import pool as psycopg2_pool

from .exceptions import DBConnectionError
from .interfaces import ConnectionProtocol, CursorProtocol
from .statement import ErrorInfo, Statement

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Quoted literal, quoted identifier, a "::" cast, a ":name" placeholder or a bare percent
_PLACEHOLDER_RE = re.compile(r"""'(?:[^']|'')*'|"(?:[^"]|"")*"|::|:([A-Za-z_]\w*)|%""")

DEFAULT_POOL_MAX_SIZE = 10

_TRUE_TEXT = frozenset({"1", "t", "true"})
_FALSE_TEXT = frozenset({"0", "f", "false"})


def _convert_boolean(raw: bytes) -> object:
    """Decode a BOOLEAN column value; anything unrecognised comes back as text."""
    text = raw.decode("utf-8", errors="replace")
    flag = text.strip().lower()
    if flag in _TRUE_TEXT:
        return True
    if flag in _FALSE_TEXT:
        return False
    return text


# Process wide: every sqlite3 connection opened with PARSE_DECLTYPES uses it
sqlite3.register_converter("BOOLEAN", _convert_boolean)


class DriverType(enum.Enum):
    """Backend selected by the DSN scheme."""

    SQLITE = "sqlite"
    POSTGRES = "postgres"


class Driver:
    """Base driver: statement preparation, raw execution and error tracking."""

    driver_type: DriverType

    def __init__(self, conn: ConnectionProtocol) -> None:
        self._conn = conn
        self._last_error = ErrorInfo.ok()
        self.closed = False

    # --- error tracking ---
    def error_info(self, exc: BaseException) -> ErrorInfo:
        return ErrorInfo(None, "HY000", str(exc).strip())

    def record_error(self, info: ErrorInfo) -> None:
        self._last_error = info

    def record_success(self) -> None:
        self._last_error = ErrorInfo.ok()

    def last_error(self) -> ErrorInfo:
        return self._last_error

    def _tracked(self, operation: Callable[[], T]) -> T:
        """Run ``operation`` and record its outcome as the connection error state."""
        try:
            result = operation()
        except Exception as exc:
            self.record_error(self.error_info(exc))
            raise
        self.record_success()
        return result

    # --- statements ---
    def new_cursor(self) -> CursorProtocol:
        return self._conn.cursor()

    def convert_query(self, query: str) -> str:
        return query

    def prepare(self, query: str) -> Optional[Statement]:
        """Prepare ``query``; returns None when there is nothing to prepare."""
        if not query.strip():
            self.record_error(ErrorInfo(None, "42000", "Cannot prepare an empty query"))
            return None
        return self._tracked(lambda: Statement(self, query))

    def exec_raw(self, query: str) -> int:
        """Execute ``query`` without binding and return the affected row count."""

        def run() -> int:
            cursor = self.new_cursor()
            try:
                cursor.execute(query)
                return max(cursor.rowcount, 0)
            finally:
                cursor.close()

        return self._tracked(run)

    # --- transactions ---
    def in_transaction(self) -> bool:
        raise NotImplementedError

    def _execute_control(self, command: str) -> None:
        cursor = self.new_cursor()
        try:
            cursor.execute(command)
        finally:
            cursor.close()

    def begin(self) -> bool:
        self._tracked(lambda: self._execute_control("BEGIN"))
        return True

    def commit(self) -> bool:
        self._tracked(lambda: self._execute_control("COMMIT"))
        return True

    def rollback(self) -> bool:
        self._tracked(lambda: self._execute_control("ROLLBACK"))
        return True

    # --- misc ---
    def last_insert_id(self, sequence: Optional[str] = None) -> str:
        raise NotImplementedError

    def _scalar(self, query: str, params: Optional[Tuple[object, ...]] = None) -> object:
        cursor = self.new_cursor()
        try:
            if params is None:
                cursor.execute(query)
            else:
                cursor.execute(query, params)
            rows = cursor.fetchall()
            return rows[0][0] if rows else None
        finally:
            cursor.close()

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._conn.close()


class SQLiteDriver(Driver):
    """SQLite driver in autocommit mode with explicit transaction control.

    ``:name`` placeholders are native to sqlite3, so queries are used as-is.
    Columns declared BOOLEAN are read back as ``bool``.
    """

    driver_type = DriverType.SQLITE

    @classmethod
    def connect(cls, database: str) -> "SQLiteDriver":
        conn = sqlite3.connect(database, detect_types=sqlite3.PARSE_DECLTYPES, isolation_level=None)
        return cls(cast(ConnectionProtocol, conn))

    def error_info(self, exc: BaseException) -> ErrorInfo:
        code = getattr(exc, "sqlite_errorcode", None)
        return ErrorInfo(code, "HY000", str(exc).strip())

    def in_transaction(self) -> bool:
        return bool(cast(sqlite3.Connection, self._conn).in_transaction)

    def last_insert_id(self, sequence: Optional[str] = None) -> str:
        # SQLite has no sequences; the row id of the last insert is connection wide
        return str(self._tracked(lambda: self._scalar("SELECT last_insert_rowid()")))


class PostgresDriver(Driver):
    """PostgreSQL driver in autocommit mode with explicit transaction control."""

    driver_type = DriverType.POSTGRES

    def __init__(
        self,
        conn: ConnectionProtocol,
        pool: Optional[psycopg2_pool.AbstractConnectionPool] = None,
    ) -> None:
        super().__init__(conn)
        self._pool = pool
        cast(psycopg2_extensions.connection, conn).autocommit = True

    def convert_query(self, query: str) -> str:
        """Rewrite ``:name`` placeholders to ``%(name)s`` and escape every ``%``.

        Placeholder-like text inside quoted literals and identifiers is kept,
        and so are ``::`` casts.
        """

        def replace(match: "re.Match[str]") -> str:
            name = match.group(1)
            if name:
                return f"%({name})s"
            return match.group(0).replace("%", "%%")

        return _PLACEHOLDER_RE.sub(replace, query)

    def error_info(self, exc: BaseException) -> ErrorInfo:
        pgcode = getattr(exc, "pgcode", None)
        return ErrorInfo(pgcode, pgcode or "HY000", str(exc).strip())

    def in_transaction(self) -> bool:
        status = cast(psycopg2_extensions.connection, self._conn).info.transaction_status
        return status in (
            psycopg2_extensions.TRANSACTION_STATUS_INTRANS,
            psycopg2_extensions.TRANSACTION_STATUS_INERROR,
        )

    def last_insert_id(self, sequence: Optional[str] = None) -> str:
        if sequence:
            value = self._tracked(lambda: self._scalar("SELECT currval(%s)", (sequence,)))
        else:
            value = self._tracked(lambda: self._scalar("SELECT lastval()"))
        return str(value)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._pool is not None:
            # The pool rolls back any open transaction before reuse
            self._pool.putconn(self._conn)
        else:
            self._conn.close()


_pools: Dict[Tuple[Tuple[str, str], ...], psycopg2_pool.ThreadedConnectionPool] = {}


def _get_pool(params: Dict[str, str], max_size: int) -> psycopg2_pool.ThreadedConnectionPool:
    """Return the psycopg2 pool for ``params``, creating it on first use."""
    key = tuple(sorted(params.items()))
    pg_pool = _pools.get(key)
    if pg_pool is None or pg_pool.closed:
        logger.info("Creating PostgreSQL connection pool (max %s connections)", max_size)
        pg_pool = psycopg2_pool.ThreadedConnectionPool(1, max_size, **params)
        _pools[key] = pg_pool
    return pg_pool


def close_pools() -> None:
    """Close every PostgreSQL connection pool opened by this process."""
    for pg_pool in _pools.values():
        if not pg_pool.closed:
            pg_pool.closeall()
    _pools.clear()


def parse_dsn(dsn: str) -> Tuple[DriverType, Dict[str, str]]:
    """Split a DSN into the driver type and its connection parameters.

    Accepted forms:
        sqlite:<path>, sqlite::memory:, sqlite:///abs/path
        pgsql:host=...;port=...;dbname=...
        postgresql://... or postgres://...

    Raises:
        DBConnectionError: If the DSN is malformed or the scheme is unsupported.
    """
    scheme, sep, rest = dsn.partition(":")
    if not sep:
        raise DBConnectionError(f"Invalid DSN: {dsn!r}")
    scheme = scheme.strip().lower()

    if scheme == "sqlite":
        path = rest[2:] if rest.startswith("//") else rest
        return DriverType.SQLITE, {"database": path or ":memory:"}

    if scheme == "pgsql":
        params: Dict[str, str] = {}
        for part in rest.split(";"):
            if not part.strip():
                continue
            key, eq, value = part.partition("=")
            if not eq:
                raise DBConnectionError(f"Invalid DSN parameter {part!r} in {dsn!r}")
            params[key.strip()] = value.strip()
        return DriverType.POSTGRES, params

    if scheme in ("postgresql", "postgres"):
        return DriverType.POSTGRES, {"dsn": dsn}

    raise DBConnectionError(f"Unsupported DSN scheme '{scheme}'")


def open_driver(
    dsn: str,
    user: str = "",
    password: str = "",
    pool: bool = False,
    pool_max_size: int = DEFAULT_POOL_MAX_SIZE,
) -> Driver:
    """Connect to the database named by ``dsn``.

    Raises:
        DBConnectionError: For a bad DSN. Driver errors propagate unchanged.
    """
    driver_type, params = parse_dsn(dsn)

    if driver_type is DriverType.SQLITE:
        if pool:
            logger.debug("Connection pooling is not supported for SQLite; flag ignored")
        return SQLiteDriver.connect(params["database"])

    if user:
        params["user"] = user
    if password:
        params["password"] = password
    if pool:
        pg_pool = _get_pool(params, pool_max_size)
        return PostgresDriver(cast(ConnectionProtocol, pg_pool.getconn()), pool=pg_pool)
    return PostgresDriver(cast(ConnectionProtocol, psycopg2.connect(**params)))
