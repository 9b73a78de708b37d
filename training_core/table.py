"""Search / sort / paginate state over any list of result rows.

`DataTable` is the stateful controller used by interactive front ends;
`table_payload` replays a `TableQuery` against a fresh table for stateless
callers such as the HTTP API.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

Row = Dict[str, Any]


class SortDirection(str, Enum):
    ASCENDING = "ascending"
    DESCENDING = "descending"


class ColumnType(str, Enum):
    NUMBER = "number"
    TEXT = "text"
    DATE = "date"


SORT_KEYS: Dict[ColumnType, Callable[[Any], Any]] = {
    ColumnType.NUMBER: float,
    ColumnType.TEXT: str,
    ColumnType.DATE: pd.Timestamp,
}


def is_missing(value: Any) -> bool:
    if value is None or value is pd.NaT:
        return True
    return isinstance(value, float) and math.isnan(value)


def infer_column_type(value: Any) -> ColumnType:
    if isinstance(value, (bool, int, float, np.number)):
        return ColumnType.NUMBER
    if isinstance(value, (datetime, date, np.datetime64)):
        return ColumnType.DATE
    return ColumnType.TEXT


def _cell_text(value: Any) -> str:
    if is_missing(value):
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (datetime, date)):
        return value.strftime("%a %b %d %Y")
    return str(value)


def row_text(row: Mapping[str, Any]) -> str:
    return " ".join(_cell_text(v) for v in row.values()).lower()


class DataTable:
    def __init__(
        self,
        items: Sequence[Row],
        initial_sort_key: Optional[str] = None,
        rows_per_page: int = 10,
        column_types: Optional[Mapping[str, ColumnType]] = None,
    ) -> None:
        if rows_per_page < 1:
            raise ValueError("rows_per_page must be at least 1")
        self._items: List[Row] = list(items)
        self.rows_per_page = rows_per_page
        self.column_types: Dict[str, ColumnType] = dict(column_types or {})
        self.search_term = ""
        self.sort_key = initial_sort_key
        self.sort_direction = SortDirection.DESCENDING
        self._current_page = 1

    # ----- derived state -----
    @property
    def items(self) -> List[Row]:
        return list(self._items)

    @property
    def filtered_items(self) -> List[Row]:
        if not self.search_term:
            return list(self._items)
        needle = self.search_term.lower()
        return [row for row in self._items if needle in row_text(row)]

    def column_type(self, key: str, rows: Sequence[Row]) -> ColumnType:
        if key in self.column_types:
            return self.column_types[key]
        for row in rows:
            value = row.get(key)
            if not is_missing(value):
                return infer_column_type(value)
        return ColumnType.TEXT

    @property
    def sorted_items(self) -> List[Row]:
        rows = self.filtered_items
        key = self.sort_key
        if key is None:
            return rows
        present = [row for row in rows if not is_missing(row.get(key))]
        missing = [row for row in rows if is_missing(row.get(key))]
        sort_value = SORT_KEYS[self.column_type(key, present)]
        present.sort(key=lambda row: sort_value(row[key]), reverse=self.sort_direction == SortDirection.DESCENDING)
        return present + missing

    @property
    def total_items(self) -> int:
        return len(self.filtered_items)

    @property
    def page_count(self) -> int:
        return max(1, math.ceil(self.total_items / self.rows_per_page))

    @property
    def current_page(self) -> int:
        return max(1, min(self._current_page, self.page_count))

    @property
    def paginated_items(self) -> List[Row]:
        start = (self.current_page - 1) * self.rows_per_page
        return self.sorted_items[start : start + self.rows_per_page]

    # ----- operations -----
    def set_items(self, items: Sequence[Row]) -> None:
        self._items = list(items)
        self._current_page = self.current_page

    def set_search(self, term: str) -> None:
        self.search_term = term or ""
        self._current_page = 1

    def request_sort(self, key: str) -> None:
        direction = SortDirection.ASCENDING
        if self.sort_key == key and self.sort_direction == SortDirection.ASCENDING:
            direction = SortDirection.DESCENDING
        self.set_sort(key, direction)

    def set_sort(self, key: Optional[str], direction: SortDirection | str = SortDirection.ASCENDING) -> None:
        self.sort_key = key
        self.sort_direction = SortDirection(direction)
        self._current_page = 1

    def next_page(self) -> None:
        self._current_page = min(self.current_page + 1, self.page_count)

    def prev_page(self) -> None:
        self._current_page = max(self.current_page - 1, 1)

    def set_page(self, page: int) -> None:
        self._current_page = max(1, min(int(page), self.page_count))

    def snapshot(self) -> Dict[str, Any]:
        return {
            "items": self.paginated_items,
            "total_items": self.total_items,
            "current_page": self.current_page,
            "page_count": self.page_count,
            "rows_per_page": self.rows_per_page,
            "sort": {"key": self.sort_key, "direction": self.sort_direction.value},
            "search": self.search_term,
        }


@dataclass(frozen=True)
class TableQuery:
    table: Optional[str] = None
    search: str = ""
    sort_key: Optional[str] = None
    sort_direction: SortDirection = SortDirection.ASCENDING
    page: int = 1

    def for_table(self, name: str) -> Optional["TableQuery"]:
        return self if self.table in (None, name) else None


def table_payload(
    rows: Sequence[Row],
    query: Optional[TableQuery] = None,
    *,
    initial_sort_key: Optional[str] = None,
    rows_per_page: int = 10,
    column_types: Optional[Mapping[str, ColumnType]] = None,
) -> Dict[str, Any]:
    table = DataTable(rows, initial_sort_key=initial_sort_key, rows_per_page=rows_per_page, column_types=column_types)
    if query is not None:
        table.set_search(query.search)
        if query.sort_key:
            table.set_sort(query.sort_key, query.sort_direction)
        table.set_page(query.page)
    return table.snapshot()
