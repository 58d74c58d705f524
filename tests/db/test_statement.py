"""Tests for typed parameter binding and the Statement handle."""

import decimal
from typing import Dict, List, Optional, Sequence, Tuple, cast

import pytest

from sqlcache.interfaces import CursorProtocol, StatementDriver
from sqlcache.statement import (
    ErrorInfo,
    ParamType,
    Statement,
    coerce_value,
    infer_param_type,
    is_numeric,
)


class FakeCursor:
    """Cursor returning canned rows, or raising a canned error."""

    def __init__(self, rows: Optional[List[Tuple[object, ...]]] = None, columns: Sequence[str] = ()) -> None:
        self._rows = rows
        self._columns = columns
        self.rowcount = -1
        self.description: Optional[List[Tuple[str]]] = None
        self.calls: List[Tuple[str, object]] = []
        self.error: Optional[Exception] = None
        self.closed = False

    def execute(self, query: str, params: object = None) -> None:
        self.calls.append((query, params))
        if self.error is not None:
            raise self.error
        if self._rows is None:
            self.description = None
            self.rowcount = 3
        else:
            self.description = [(c,) for c in self._columns]
            self.rowcount = -1

    def fetchall(self) -> List[Tuple[object, ...]]:
        return list(self._rows or [])

    def close(self) -> None:
        self.closed = True


class FakeDriver:
    """Driver stand-in that hands out one cursor and records error state."""

    def __init__(self, cursor: FakeCursor) -> None:
        self.cursor = cursor
        self.last_error = ErrorInfo.ok()
        self.successes = 0

    def new_cursor(self) -> CursorProtocol:
        return cast(CursorProtocol, self.cursor)

    def convert_query(self, query: str) -> str:
        return query.replace(":name", "%(name)s")

    def error_info(self, exc: BaseException) -> ErrorInfo:
        return ErrorInfo(7, "42P01", str(exc))

    def record_error(self, info: ErrorInfo) -> None:
        self.last_error = info

    def record_success(self) -> None:
        self.last_error = ErrorInfo.ok()
        self.successes += 1


def _statement(cursor: FakeCursor, query: str = "SELECT :name") -> Tuple[Statement, FakeDriver]:
    driver = FakeDriver(cursor)
    return Statement(cast(StatementDriver, driver), query), driver


class TestParamTypes:
    """Storage type inference."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            (None, ParamType.NULL),
            (True, ParamType.BOOL),
            (False, ParamType.BOOL),
            (10, ParamType.INT),
            (1.5, ParamType.INT),
            (decimal.Decimal("2.50"), ParamType.INT),
            ("42", ParamType.INT),
            (" -3.5e2 ", ParamType.INT),
            ("value", ParamType.STR),
            ("", ParamType.STR),
            ("12abc", ParamType.STR),
            (b"bytes", ParamType.STR),
        ],
    )
    def test_infer_param_type(self, value: object, expected: ParamType) -> None:
        assert infer_param_type(value) is expected

    def test_bool_is_not_numeric(self) -> None:
        assert is_numeric(True) is False
        assert is_numeric(0) is True

    def test_coerce_numeric_strings(self) -> None:
        assert coerce_value("42", ParamType.INT) == 42
        assert isinstance(coerce_value("42", ParamType.INT), int)
        assert coerce_value("-42", ParamType.INT) == -42
        assert coerce_value(7, ParamType.INT) == 7

    @pytest.mark.parametrize(
        "value",
        ["4.5", "1.50", "1e3", "007", "+15551234567", " 5 ", "123456789012345678901234567890"],
    )
    def test_non_canonical_numeric_strings_keep_their_text(self, value: str) -> None:
        assert coerce_value(value, ParamType.INT) == value

    def test_coerce_other_types(self) -> None:
        assert coerce_value(None, ParamType.NULL) is None
        assert coerce_value(1, ParamType.BOOL) is True
        assert coerce_value("text", ParamType.STR) == "text"


class TestStatement:
    """Statement execution, buffering and error recording."""

    def test_bind_strips_colon_and_records_types(self) -> None:
        statement, _ = _statement(FakeCursor())
        statement.bind({":name": "x", "flag": True, "n": "5", "missing": None})
        assert statement.bound_values == {"name": "x", "flag": True, "n": 5, "missing": None}
        assert statement.bound_types == {
            "name": ParamType.STR,
            "flag": ParamType.BOOL,
            "n": ParamType.INT,
            "missing": ParamType.NULL,
        }

    def test_execute_uses_converted_query_only_with_values(self) -> None:
        cursor = FakeCursor()
        statement, _ = _statement(cursor)
        statement.execute()
        statement.bind({"name": "x"})
        statement.execute()
        assert cursor.calls == [("SELECT :name", None), ("SELECT %(name)s", {"name": "x"})]

    def test_select_rows_are_buffered(self) -> None:
        cursor = FakeCursor(rows=[(1, "a"), (2, "b")], columns=["id", "name"])
        statement, driver = _statement(cursor)
        assert statement.execute() is True
        assert statement.row_count() == 2
        assert statement.fetch() == {"id": 1, "name": "a"}
        assert statement.fetch_all() == [{"id": 2, "name": "b"}]
        assert statement.fetch() == {}
        assert driver.successes == 1

    def test_re_execution_resets_cursor(self) -> None:
        cursor = FakeCursor(rows=[(1,)], columns=["id"])
        statement, _ = _statement(cursor)
        statement.execute()
        assert statement.fetch_all() == [{"id": 1}]
        statement.execute()
        assert statement.fetch() == {"id": 1}

    def test_dml_row_count(self) -> None:
        statement, _ = _statement(FakeCursor(rows=None))
        statement.execute()
        assert statement.row_count() == 3
        assert statement.fetch_all() == []

    def test_failure_is_recorded_and_propagated(self) -> None:
        cursor = FakeCursor()
        cursor.error = RuntimeError('relation "r" does not exist')
        statement, driver = _statement(cursor)
        with pytest.raises(RuntimeError):
            statement.execute()
        expected = ErrorInfo(7, "42P01", 'relation "r" does not exist')
        assert statement.error_info() == expected
        assert driver.last_error == expected
        assert expected.failed

    def test_close_closes_cursor(self) -> None:
        cursor = FakeCursor()
        statement, _ = _statement(cursor)
        statement.close()
        assert cursor.closed is True


def test_error_info_ok() -> None:
    ok: Dict[str, object] = ErrorInfo.ok()._asdict()
    assert ok == {"code": None, "sqlstate": "00000", "message": None}
    assert ErrorInfo.ok().failed is False
