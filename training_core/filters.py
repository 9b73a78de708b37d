from __future__ import annotations

import re
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Tuple

import pandas as pd


COURSE_TYPES = ["Mandatory", "Optional"]

# Filter field -> record column.
SELECTION_COLUMNS = {
    "selected_branches": "branch",
    "selected_district_heads": "district_head",
    "selected_supervisors": "supervisor",
    "selected_courses": "course_title",
    "selected_course_types": "course_type",
}


def _parse_int(value: object) -> int:
    """Read a form value the way a numeric threshold input does: leading integer, else 0."""
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return 0 if value != value else int(value)
    match = re.match(r"\s*([+-]?\d+)", str(value))
    return int(match.group(1)) if match else 0


@dataclass(frozen=True)
class Thresholds:
    at_risk_completion: int = 30
    at_risk_score: int = 50
    course_attention_completion: int = 60
    course_attention_score: int = 60

    def updated(self, name: str, raw_value: object) -> "Thresholds":
        if name not in {f.name for f in fields(self)}:
            raise KeyError(f"Unknown threshold: {name}")
        return replace(self, **{name: _parse_int(raw_value)})


@dataclass(frozen=True)
class TimePeriod:
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    @property
    def is_bounded(self) -> bool:
        return self.start is not None or self.end is not None


@dataclass(frozen=True)
class DashboardFilters:
    selected_branches: List[str] = field(default_factory=list)
    selected_district_heads: List[str] = field(default_factory=list)
    selected_supervisors: List[str] = field(default_factory=list)
    selected_courses: List[str] = field(default_factory=list)
    selected_course_types: List[str] = field(default_factory=list)
    time_period: TimePeriod = field(default_factory=TimePeriod)
    thresholds: Thresholds = field(default_factory=Thresholds)

    def selections(self) -> List[Tuple[str, List[str]]]:
        return [(column, getattr(self, name)) for name, column in SELECTION_COLUMNS.items()]


def _as_str_list(values: Optional[Iterable[object]]) -> List[str]:
    if not values:
        return []
    if isinstance(values, str):
        values = [values]
    return [str(v) for v in values if v is not None and str(v) != ""]


def _as_datetime(value: object) -> Optional[datetime]:
    if value is None or value == "":
        return None
    try:
        ts = pd.Timestamp(value)
    except (TypeError, ValueError):
        return None
    if pd.isna(ts):
        return None
    if ts.tzinfo is not None:
        # completion dates are naive; compare in UTC wall time
        ts = ts.tz_convert(None)
    return ts.to_pydatetime()


def normalize_filters(raw: dict) -> DashboardFilters:
    raw = raw or {}
    period = raw.get("time_period") or {}
    t = raw.get("thresholds") or {}
    defaults = Thresholds()
    thresholds = Thresholds(
        at_risk_completion=_parse_int(t.get("at_risk_completion", defaults.at_risk_completion)),
        at_risk_score=_parse_int(t.get("at_risk_score", defaults.at_risk_score)),
        course_attention_completion=_parse_int(
            t.get("course_attention_completion", defaults.course_attention_completion)
        ),
        course_attention_score=_parse_int(t.get("course_attention_score", defaults.course_attention_score)),
    )
    return DashboardFilters(
        selected_branches=_as_str_list(raw.get("selected_branches")),
        selected_district_heads=_as_str_list(raw.get("selected_district_heads")),
        selected_supervisors=_as_str_list(raw.get("selected_supervisors")),
        selected_courses=_as_str_list(raw.get("selected_courses")),
        selected_course_types=_as_str_list(raw.get("selected_course_types")),
        time_period=TimePeriod(start=_as_datetime(period.get("start")), end=_as_datetime(period.get("end"))),
        thresholds=thresholds,
    )


def apply_filters(records: pd.DataFrame, filters: DashboardFilters) -> pd.DataFrame:
    """Return the records passing every active filter, in input order.

    An empty selection means "no restriction" for that dimension.
    """
    if records.empty:
        return records
    mask = pd.Series(True, index=records.index)
    for column, selected in filters.selections():
        if selected:
            mask &= records[column].isin(selected)
    if filters.time_period.start is not None:
        mask &= records["completion_date"] >= pd.Timestamp(filters.time_period.start)
    if filters.time_period.end is not None:
        mask &= records["completion_date"] <= pd.Timestamp(filters.time_period.end)
    return records[mask]


def filters_active(filters: DashboardFilters) -> bool:
    return any(selected for _, selected in filters.selections()) or filters.time_period.is_bounded


def active_filter_summary(filters: DashboardFilters) -> str:
    active = []
    if filters.selected_branches:
        active.append(f"Branch ({len(filters.selected_branches)})")
    if filters.selected_district_heads:
        active.append("District")
    if filters.selected_supervisors:
        active.append("Supervisor")
    if filters.selected_courses:
        active.append(f"Course ({len(filters.selected_courses)})")
    if filters.selected_course_types:
        active.append("Type")
    if filters.time_period.is_bounded:
        active.append("Date")
    if not active:
        return "No active filters"
    if len(active) <= 3:
        return f"Active: {', '.join(active)}"
    return f"{len(active)} filters active"


def quick_select_period(period: str, now: Optional[datetime] = None) -> TimePeriod:
    """Date range for the quick-select buttons (last7, last30, thisMonth)."""
    now = now or datetime.now()
    end = now.replace(hour=23, minute=59, second=59, microsecond=999000)
    if period == "last7":
        start = end - timedelta(days=7)
    elif period == "last30":
        start = end - timedelta(days=30)
    elif period == "thisMonth":
        start = end.replace(day=1)
    else:
        return TimePeriod()
    return TimePeriod(start=start.replace(hour=0, minute=0, second=0, microsecond=0), end=end)


def toggle_single_selection(current: List[str], value: str) -> List[str]:
    """Chart click drill-down: select only `value`, or clear if it is already the sole selection."""
    if len(current) == 1 and current[0] == value:
        return []
    return [value]
