"""Cursor over a warehouse query response.

The response is the JSON document returned by the query endpoint:

    {
        "jobComplete": true,
        "schema": {"fields": [{"name": "...", "type": "..."}]},
        "rows": [{"f": [{"v": "..."}]}]
    }

Scalars arrive string-encoded; the typed getters coerce them.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from ..errors import (
    DeserializeError,
    InvalidColumnNameError,
    InvalidColumnTypeError,
    NoDataError,
)


logger = logging.getLogger(__name__)


def _json_type(value: Any) -> str:
    if value is None:
        return "Null"
    if isinstance(value, bool):
        return "Bool"
    if isinstance(value, (int, float)):
        return "Number"
    if isinstance(value, str):
        return "String"
    if isinstance(value, list):
        return "Array"
    return "Object"


class ResultSet:
    """Forward-only cursor over the rows of one query response.

    The cursor starts before the first row. Each `next_row()` call moves it
    forward; once it returns False the cursor sits after the last row and
    every accessor raises NoDataError. A ResultSet is not restartable.
    """

    def __init__(self, query_response: dict):
        self.query_response = query_response
        self._cursor = -1
        self._rows: list = []
        self._fields: dict[str, int] = {}

        if not query_response.get("jobComplete", False):
            logger.warning("Warehouse job not complete; treating as empty result set")
            return

        schema = query_response.get("schema") or {}
        fields = schema.get("fields")
        if not fields:
            raise DeserializeError("Completed query response is missing its schema")

        try:
            self._fields = {field["name"]: pos for pos, field in enumerate(fields)}
        except (KeyError, TypeError) as exc:
            raise DeserializeError(f"Malformed schema fields: {exc}") from exc

        self._rows = query_response.get("rows") or []

    def next_row(self) -> bool:
        """Advance to the next row. Returns False once the rows are exhausted."""
        if self._cursor >= len(self._rows) - 1:
            self._cursor = len(self._rows)
            return False
        self._cursor += 1
        return True

    def row_count(self) -> int:
        return len(self._rows)

    def column_names(self) -> list[str]:
        return list(self._fields)

    def _cell(self, col_name: str) -> Any:
        col_index = self._fields.get(col_name)
        if col_index is None:
            raise InvalidColumnNameError(col_name)

        if self._cursor < 0 or self._cursor >= len(self._rows):
            raise NoDataError(
                "No data available. The result set is positioned before the first "
                "or after the last row."
            )

        row = self._rows[self._cursor]
        cells = (row.get("f") or []) if isinstance(row, dict) else None
        if not isinstance(cells, list):
            raise NoDataError(f"Malformed row at position {self._cursor} (col_name: {col_name})")
        if col_index >= len(cells):
            return None
        cell = cells[col_index]
        return cell.get("v") if isinstance(cell, dict) else None

    def get_json_by_name(self, col_name: str) -> Optional[Any]:
        return self._cell(col_name)

    def get_int_by_name(self, col_name: str) -> Optional[int]:
        value = self._cell(col_name)
        if value is None:
            return None
        if isinstance(value, bool):
            raise InvalidColumnTypeError(col_name, _json_type(value), "Int")
        if isinstance(value, int):
            return value
        if isinstance(value, float):
            return int(value)
        if isinstance(value, str):
            try:
                return int(value)
            except ValueError:
                pass
            try:
                return int(float(value))
            except (ValueError, OverflowError):
                pass
        raise InvalidColumnTypeError(col_name, _json_type(value), "Int")

    def get_float_by_name(self, col_name: str) -> Optional[float]:
        value = self._cell(col_name)
        if value is None:
            return None
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
        if isinstance(value, str):
            try:
                return float(value)
            except ValueError:
                pass
        raise InvalidColumnTypeError(col_name, _json_type(value), "Float")

    def get_bool_by_name(self, col_name: str) -> Optional[bool]:
        value = self._cell(col_name)
        if value is None:
            return None
        if isinstance(value, bool):
            return value
        if value == "true":
            return True
        if value == "false":
            return False
        raise InvalidColumnTypeError(col_name, _json_type(value), "Bool")

    def get_string_by_name(self, col_name: str) -> Optional[str]:
        value = self._cell(col_name)
        if value is None:
            return None
        if isinstance(value, str):
            return value
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (int, float)):
            return str(value)
        raise InvalidColumnTypeError(col_name, _json_type(value), "String")

    # require_* raise NoDataError when the cell is null

    @staticmethod
    def _required(col_name: str, value: Any) -> Any:
        if value is None:
            raise NoDataError(f"Required column is null (col_name: {col_name})")
        return value

    def require_json_by_name(self, col_name: str) -> Any:
        return self._required(col_name, self.get_json_by_name(col_name))

    def require_int_by_name(self, col_name: str) -> int:
        return self._required(col_name, self.get_int_by_name(col_name))

    def require_float_by_name(self, col_name: str) -> float:
        return self._required(col_name, self.get_float_by_name(col_name))

    def require_bool_by_name(self, col_name: str) -> bool:
        return self._required(col_name, self.get_bool_by_name(col_name))

    def require_string_by_name(self, col_name: str) -> str:
        return self._required(col_name, self.get_string_by_name(col_name))

    def require_timestamp_by_name(self, col_name: str) -> datetime:
        """Epoch seconds as an aware UTC datetime."""
        seconds = self.require_int_by_name(col_name)
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as exc:
            raise InvalidColumnTypeError(col_name, "Number", "Timestamp") from exc

    def require_comma_separated_by_name(self, col_name: str) -> str:
        """A repeated string column joined with commas.

        Accepts a plain JSON array of strings or the warehouse's repeated
        cell form [{"v": "..."}, ...].
        """
        value = self.require_json_by_name(col_name)
        if not isinstance(value, list):
            raise InvalidColumnTypeError(col_name, _json_type(value), "CommaSeparated")

        items = []
        for item in value:
            if isinstance(item, dict):
                item = item.get("v")
            if not isinstance(item, str):
                raise InvalidColumnTypeError(col_name, _json_type(item), "CommaSeparated")
            items.append(item)
        return ",".join(items)
