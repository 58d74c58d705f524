"""Pytest configuration for the test suite."""

import contextlib
import sys
from pathlib import Path
from typing import Generator

import pytest

project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from sqlcache.drivers import close_pools
from sqlcache.executor import StatementExecutor
from tests.helpers.postgres_container import PostgresContainer, docker_available

TEST_TABLE_NAME = "t"
SQLITE_TABLE_DDL = (
    f"CREATE TABLE {TEST_TABLE_NAME} "
    "(id INTEGER PRIMARY KEY, str_field TEXT, bool_field BOOLEAN, int_field INTEGER)"
)
POSTGRES_TABLE_DDL = (
    f'CREATE TABLE "{TEST_TABLE_NAME}" '
    '("id" serial primary key, "str_field" text, "bool_field" boolean, "int_field" integer)'
)


@pytest.fixture(scope="function")
def executor() -> Generator[StatementExecutor, None, None]:
    """Provide an executor on a fresh in-memory SQLite database with table t."""
    db = StatementExecutor("sqlite::memory:")
    db.execute(SQLITE_TABLE_DDL)
    try:
        yield db
    finally:
        with contextlib.suppress(Exception):
            db.close()


@pytest.fixture(scope="function")
def cached_executor(executor: StatementExecutor) -> StatementExecutor:
    """Same as ``executor`` with the statement cache enabled."""
    executor.cache_enable()
    return executor


@pytest.fixture(scope="session")
def postgres_container() -> Generator[PostgresContainer, None, None]:
    """Launch a shared PostgreSQL Docker container for the test session."""
    if not docker_available():
        pytest.skip("Docker daemon not available")
    container = PostgresContainer()
    container.start()
    try:
        yield container
    finally:
        close_pools()
        container.stop()


@pytest.fixture(scope="function")
def pg_executor(postgres_container: PostgresContainer) -> Generator[StatementExecutor, None, None]:
    """Provide an executor bound to a per-test PostgreSQL database with table t."""
    tmp_db = postgres_container.add_tmp_db()
    params = postgres_container.connection_params
    db = StatementExecutor(postgres_container.dsn(tmp_db), params["user"], params["password"])
    db.execute(POSTGRES_TABLE_DDL)
    try:
        yield db
    finally:
        with contextlib.suppress(Exception):
            db.close()
        with contextlib.suppress(Exception):
            postgres_container.remove_tmp_db(tmp_db)
