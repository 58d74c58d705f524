"""Statement executor: prepared statements, typed binding and a tag keyed cache.

Wraps one database connection. Statements are prepared per call, or reused
from an optional cache keyed by the md5 of the query text ("tag"). Results,
row counts and error descriptors can be read from the last executed statement
or from any tagged statement still held in the cache.
"""

from __future__ import annotations

import hashlib
import logging
from typing import TYPE_CHECKING, Callable, Dict, Iterable, List, Mapping, NoReturn, Optional, Set, Type

from .drivers import DEFAULT_POOL_MAX_SIZE, Driver, DriverType, open_driver
from .exceptions import CacheDisabledError, DBConnectionError, QueryError
from .statement import ErrorInfo, Row, Statement

if TYPE_CHECKING:
    from .settings import ConnectionSettings

logger = logging.getLogger(__name__)


def query_tag(sql: str) -> str:
    """Return the cache tag of a query: the md5 hex digest of its text."""
    return hashlib.md5(sql.encode("utf-8")).hexdigest()


class StatementExecutor:
    """Executes SQL through one connection with an optional statement cache.

    Not thread safe: callers sharing an executor must serialize access.
    """

    def __init__(
        self,
        dsn: str,
        user: str = "",
        password: str = "",
        pool: bool = False,
        *,
        pool_max_size: int = DEFAULT_POOL_MAX_SIZE,
        debug_util: Optional[object] = None,
    ) -> None:
        """Connect to the database named by ``dsn``.

        Args:
            dsn: ``sqlite:<path>``, ``pgsql:host=..;dbname=..`` or a ``postgresql://`` URL.
            user: Database user (ignored by SQLite).
            password: Database password (ignored by SQLite).
            pool: Ask the driver for a reusable pooled connection.
            pool_max_size: Upper bound of the driver pool when ``pool`` is set.
            debug_util: Optional DebugUtil instance for handling debug output.

        Raises:
            DBConnectionError: If the database connection cannot be established.
        """
        self.debug_util = debug_util
        self._statement: Optional[Statement] = None
        self._tag: Optional[str] = None
        self._cache: Optional[Dict[str, Statement]] = None
        self._last_query: Optional[str] = None
        self._driver: Optional[Driver] = None

        try:
            self._driver = open_driver(dsn, user, password, pool, pool_max_size)
        except DBConnectionError:
            raise
        except Exception as e:
            logger.error("Database connection failed: %s", e)
            raise DBConnectionError(str(e)) from e
        self._debug_message(f"Connected using {self._driver.driver_type.value} driver (pool={pool})")

    @classmethod
    def from_settings(
        cls, settings: "ConnectionSettings", debug_util: Optional[object] = None
    ) -> "StatementExecutor":
        """Build an executor from validated connection settings."""
        executor = cls(
            settings.dsn,
            settings.user,
            settings.password,
            settings.pool,
            pool_max_size=settings.pool_max_size,
            debug_util=debug_util,
        )
        if settings.cache:
            executor.cache_enable()
        return executor

    def _debug_message(self, *args: object) -> None:
        """Send debug message through DebugUtil if available, otherwise log it."""
        if self.debug_util and hasattr(self.debug_util, "debugMessage"):
            self.debug_util.debugMessage(*args)
        else:
            logger.debug(" ".join(str(arg) for arg in args))

    @property
    def driver(self) -> Driver:
        if self._driver is None or self._driver.closed:
            raise DBConnectionError("Database connection is not established")
        return self._driver

    @property
    def driver_type(self) -> DriverType:
        return self.driver.driver_type

    @property
    def last_query(self) -> Optional[str]:
        """Raw text of the last submitted query."""
        return self._last_query

    @property
    def cache_enabled(self) -> bool:
        return self._cache is not None

    # --- cache ---
    def cache_enable(self) -> None:
        """Enable the statement cache; existing entries are kept."""
        if self._cache is None:
            self._cache = {}

    def cache_disable(self) -> None:
        """Disable the statement cache, closing every cached statement.

        The last executed statement stays open so its results remain readable.
        """
        if self._cache is not None:
            for statement in self._cache.values():
                if statement is not self._statement:
                    statement.close()
        self._cache = None

    # --- transactions ---
    def transaction_begin(self) -> bool:
        """Start a transaction block; False when one is already active."""
        if self.driver.in_transaction():
            return False
        return self._run_driver(self.driver.begin)

    def transaction_active(self) -> bool:
        return self.driver.in_transaction()

    def transaction_commit(self) -> bool:
        """Commit the transaction block; False when none is active."""
        if self.driver.in_transaction():
            return self._run_driver(self.driver.commit)
        return False

    def transaction_rollback(self) -> bool:
        """Cancel the transaction block; False when none is active."""
        if self.driver.in_transaction():
            return self._run_driver(self.driver.rollback)
        return False

    # --- execution ---
    def _raise_query_error(self, e: Exception) -> NoReturn:
        self._debug_message(f"Query failed: {e}")
        raise QueryError(str(e)) from e

    def _run_driver(self, operation: Callable[[], bool]) -> bool:
        try:
            return operation()
        except Exception as e:
            self._raise_query_error(e)

    def _release_last_statement(self) -> None:
        """Close the last statement unless the cache still holds it."""
        last = self._statement
        if last is None:
            return
        if self._cache is not None and self._cache.get(query_tag(last.query)) is last:
            return
        self._statement = None
        last.close()

    def _prepare(self, sql: str) -> Optional[Statement]:
        """Prepare ``sql`` or reuse the cached statement for its tag."""
        if self._cache is None:
            self._release_last_statement()
            self._statement = self.driver.prepare(sql)
            return self._statement

        self._tag = query_tag(sql)
        cached = self._cache.get(self._tag)
        if cached is not None:
            self._debug_message(f"Statement cache hit for tag {self._tag}")
            if cached is not self._statement:
                self._release_last_statement()
            self._statement = cached
            return cached
        self._release_last_statement()
        self._statement = self.driver.prepare(sql)
        if self._statement is not None:
            self._debug_message(f"Statement cached under tag {self._tag}")
            self._cache[self._tag] = self._statement
        return self._statement

    def execute(self, sql: str, params: Optional[Mapping[str, object]] = None) -> bool:
        """Execute a SQL query with a single data set.

        Args:
            sql: SQL query with ``:name`` placeholders
            params: Mapping of placeholder => value

        Returns:
            The driver's success flag; False when the query could not be prepared.

        Raises:
            QueryError: If the driver fails while preparing, binding or executing.
        """
        self._last_query = sql
        self._debug_message(f"Executing SQL: {sql.strip()}; params={params}")
        try:
            statement = self._prepare(sql)
            if statement is None:
                return False
            if params:
                statement.bind(params)
            return statement.execute()
        except DBConnectionError:
            raise
        except Exception as e:
            self._raise_query_error(e)

    def execute_many(self, sql: str, param_sets: Iterable[Mapping[str, object]]) -> bool:
        """Execute a SQL query once per data set.

        The result is True when at least one execution succeeded, not when all
        of them did. An empty batch returns False.

        Raises:
            QueryError: If the driver fails while preparing, binding or executing.
        """
        self._last_query = sql
        self._debug_message(f"Executing SQL batch: {sql.strip()}")
        try:
            statement = self._prepare(sql)
            if statement is None:
                return False
            flag = False
            for params in param_sets:
                statement.bind(params)
                flag |= statement.execute()
            return flag
        except DBConnectionError:
            raise
        except Exception as e:
            self._raise_query_error(e)

    def raw(self, sql: str) -> int:
        """Execute a raw SQL query and return the number of affected rows.

        Raises:
            QueryError: If the driver fails.
        """
        self._last_query = sql
        self._debug_message(f"Executing raw SQL: {sql.strip()}")
        try:
            return self.driver.exec_raw(sql)
        except DBConnectionError:
            raise
        except Exception as e:
            self._raise_query_error(e)

    # --- diagnostics ---
    def last_connection_error(self) -> ErrorInfo:
        """Error descriptor of the last operation on the connection."""
        if self._driver is None:
            return ErrorInfo.ok()
        return self._driver.last_error()

    def _tagged(self, tag: str) -> Optional[Statement]:
        if self._cache is None:
            raise CacheDisabledError()
        return self._cache.get(tag)

    def last_statement_error(self, tag: Optional[str] = None) -> Optional[ErrorInfo]:
        """Error descriptor of the last operation on a statement.

        Raises:
            CacheDisabledError: If ``tag`` is given while the cache is disabled.
        """
        statement = self._statement if tag is None else self._tagged(tag)
        if statement is None:
            return None
        return statement.error_info()

    def last_id(self, sequence: Optional[str] = None) -> str:
        """Return the last inserted id, optionally for a named sequence."""
        driver = self.driver
        try:
            return driver.last_insert_id(sequence)
        except Exception as e:
            self._raise_query_error(e)

    def tag(self) -> Optional[str]:
        """Tag the last executed statement so its results survive later calls.

        Returns:
            The tag, or None when no statement has been executed yet.

        Raises:
            CacheDisabledError: If the cache is disabled.
        """
        if self._cache is None:
            raise CacheDisabledError()
        if self._statement is None:
            return None
        self._tag = query_tag(self._statement.query)
        if self._tag not in self._cache:
            self._cache[self._tag] = self._statement
        return self._tag

    def count(self, tag: Optional[str] = None) -> int:
        """Rows affected by INSERT/UPDATE/DELETE or returned by SELECT; -1 when none ran."""
        statement = self._statement if tag is None else self._tagged(tag)
        if statement is None:
            return -1
        return statement.row_count()

    def results(self, tag: Optional[str] = None) -> List[Row]:
        """Fetch all the remaining results of a SELECT query."""
        statement = self._statement if tag is None else self._tagged(tag)
        if statement is None:
            return []
        return statement.fetch_all()

    def next(self, tag: Optional[str] = None) -> Row:
        """Fetch the next result of a SELECT query; empty dict when exhausted."""
        statement = self._statement if tag is None else self._tagged(tag)
        if statement is None:
            return {}
        return statement.fetch()

    # --- lifecycle ---
    def _close_statements(self) -> None:
        statements: List[Statement] = list(self._cache.values()) if self._cache is not None else []
        if self._statement is not None:
            statements.append(self._statement)
        if self._cache is not None:
            self._cache.clear()
        self._statement = None
        closed: Set[int] = set()
        for statement in statements:
            if id(statement) not in closed:
                closed.add(id(statement))
                statement.close()

    def close(self) -> None:
        """Close every held statement cursor and release the connection."""
        try:
            self._close_statements()
        except Exception as e:
            logger.error("Error closing statement cursor: %s", e)
            raise
        finally:
            if self._driver is not None and not self._driver.closed:
                self._driver.close()
                self._debug_message("Database connection closed")

    def __enter__(self) -> "StatementExecutor":
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: object,
    ) -> None:
        self.close()

    def __del__(self) -> None:
        try:
            self.close()
        except Exception as e:
            logger.debug("Destructor cleanup failed: %s", e)
