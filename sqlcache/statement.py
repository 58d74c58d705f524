"""Prepared statement handle and typed parameter binding.

A ``Statement`` owns one driver cursor and keeps everything PDO-style callers
expect from a statement handle: the bound values, the buffered result rows
with a read position, the affected row count and its own last error.
"""

from __future__ import annotations

import decimal
import enum
import re
from typing import Dict, List, Mapping, NamedTuple, Optional, Tuple, Union, cast

from .interfaces import CursorProtocol, StatementDriver

# Leading/trailing blanks, optional sign, digits with optional fraction, optional exponent
_NUMERIC_RE = re.compile(r"^\s*[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?\s*$")
_INTEGER_RE = re.compile(r"^\s*[+-]?\d+\s*$")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1

Row = Dict[str, object]


class ErrorInfo(NamedTuple):
    """Error descriptor of the last operation on a connection or statement."""

    code: Optional[Union[int, str]]
    sqlstate: str
    message: Optional[str]

    @classmethod
    def ok(cls) -> "ErrorInfo":
        """Descriptor for an operation that did not fail."""
        return cls(None, "00000", None)

    @property
    def failed(self) -> bool:
        return self.sqlstate != "00000"


class ParamType(enum.Enum):
    """Storage type a parameter is bound with."""

    NULL = "null"
    INT = "int"
    BOOL = "bool"
    STR = "str"


def is_numeric(value: object) -> bool:
    """Return True for numbers and strings that look like numbers.

    Booleans are not numeric here, they get their own type.
    """
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float, decimal.Decimal)):
        return True
    if isinstance(value, str):
        return bool(_NUMERIC_RE.match(value))
    return False


def infer_param_type(value: object) -> ParamType:
    """Infer the storage type for a bound value."""
    if value is None:
        return ParamType.NULL
    if isinstance(value, bool):
        return ParamType.BOOL
    if is_numeric(value):
        return ParamType.INT
    return ParamType.STR


def coerce_value(value: object, param_type: ParamType) -> object:
    """Convert ``value`` to what the driver should receive for ``param_type``."""
    if param_type is ParamType.NULL:
        return None
    if param_type is ParamType.BOOL:
        return bool(value)
    if param_type is ParamType.INT and isinstance(value, str) and _INTEGER_RE.match(value):
        # Only canonical 64-bit integers; "007", "+1" or " 5 " keep their text
        number = int(value)
        if str(number) == value and _INT64_MIN <= number <= _INT64_MAX:
            return number
    return value


class Statement:
    """Prepared statement bound to the driver that created it."""

    def __init__(self, driver: StatementDriver, query: str) -> None:
        self.query = query
        self._driver = driver
        self._converted = driver.convert_query(query)
        self._cursor: CursorProtocol = driver.new_cursor()
        self._values: Dict[str, object] = {}
        self._types: Dict[str, ParamType] = {}
        self._rows: List[Row] = []
        self._position = 0
        self._row_count = 0
        self._error = ErrorInfo.ok()

    @property
    def bound_values(self) -> Dict[str, object]:
        return dict(self._values)

    @property
    def bound_types(self) -> Dict[str, ParamType]:
        return dict(self._types)

    def bind_value(self, name: str, value: object, param_type: ParamType) -> None:
        """Bind ``value`` to placeholder ``name`` (with or without the leading colon)."""
        key = name[1:] if name.startswith(":") else name
        self._values[key] = coerce_value(value, param_type)
        self._types[key] = param_type

    def bind(self, markers: Mapping[str, object]) -> None:
        """Bind every placeholder => value pair, inferring the storage type."""
        for marker, value in markers.items():
            self.bind_value(marker, value, infer_param_type(value))

    def execute(self) -> bool:
        """Run the statement with the currently bound values.

        Driver exceptions propagate after the error descriptor is recorded on
        both the statement and the driver.
        """
        self._rows = []
        self._position = 0
        self._row_count = 0
        try:
            if self._values:
                self._cursor.execute(self._converted, self._values)
            else:
                self._cursor.execute(self.query)
            description = self._cursor.description
            if description is not None:
                col_names = [cast(str, desc[0]) for desc in description]
                fetched = cast(List[Tuple[object, ...]], self._cursor.fetchall())
                self._rows = [dict(zip(col_names, row)) for row in fetched]
                self._row_count = len(self._rows)
            else:
                self._row_count = max(self._cursor.rowcount, 0)
        except Exception as exc:
            self._error = self._driver.error_info(exc)
            self._driver.record_error(self._error)
            raise
        self._error = ErrorInfo.ok()
        self._driver.record_success()
        return True

    def row_count(self) -> int:
        return self._row_count

    def fetch_all(self) -> List[Row]:
        """Return the remaining rows and move the cursor to the end."""
        rows = self._rows[self._position :]
        self._position = len(self._rows)
        return rows

    def fetch(self) -> Row:
        """Return the next row, or an empty dict when the cursor is exhausted."""
        if self._position >= len(self._rows):
            return {}
        row = self._rows[self._position]
        self._position += 1
        return row

    def error_info(self) -> ErrorInfo:
        return self._error

    def close(self) -> None:
        self._rows = []
        self._cursor.close()

    def __repr__(self) -> str:
        return f"Statement({self.query!r})"
