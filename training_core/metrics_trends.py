from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List, Optional, Sequence

import altair as alt
import pandas as pd

from training_core.charts import BRAND_BLUE, STATUS_HIGH, STATUS_MID, to_vega_spec
from training_core.filters import DashboardFilters

MOVING_AVERAGE_WINDOW = 3
MIN_TREND_MONTHS = 2


def moving_average(values: Sequence[float], window: int = MOVING_AVERAGE_WINDOW) -> List[Optional[float]]:
    """Trailing mean; the first ``window - 1`` positions have no value."""
    if len(values) < window:
        return [None] * len(values)
    out: List[Optional[float]] = []
    for i in range(len(values)):
        if i < window - 1:
            out.append(None)
        else:
            out.append(sum(values[i - window + 1 : i + 1]) / window)
    return out


def monthly_trends(records: pd.DataFrame, *, window: int = MOVING_AVERAGE_WINDOW) -> List[Dict[str, Any]]:
    """Calendar-month buckets of completion_date in chronological order, keyed like ``Jan 2024``."""
    if records.empty:
        return []
    month_start = records["completion_date"].dt.to_period("M").dt.to_timestamp()
    monthly = (
        records.assign(month_start=month_start)
        .groupby("month_start", sort=True)
        .agg(
            avg_completion=("completion_rate", "mean"),
            training_hours=("training_hours", "sum"),
        )
        .reset_index()
    )
    monthly["month"] = monthly["month_start"].dt.strftime("%b %Y")
    rows = monthly[["month", "avg_completion", "training_hours"]].to_dict(orient="records")
    for row, ma in zip(rows, moving_average([r["avg_completion"] for r in rows], window)):
        row["moving_average"] = ma
    return rows


def _month_axis(order: List[str]) -> alt.X:
    return alt.X("month:N", title=None, sort=order, axis=alt.Axis(grid=False, labelAngle=0))


def completion_trend_chart(rows: List[Dict[str, Any]], *, show_moving_average: bool = True) -> Dict[str, Any]:
    df = pd.DataFrame(rows)
    order = list(df["month"])
    hover = alt.selection_point(fields=["month"], on="mouseover", empty="all")
    line = (
        alt.Chart(df)
        .mark_line(point={"filled": True, "size": 60}, color=BRAND_BLUE)
        .encode(
            x=_month_axis(order),
            y=alt.Y(
                "avg_completion:Q",
                title="Avg Completion Rate (%)",
                scale=alt.Scale(domain=[0, 100]),
                axis=alt.Axis(gridDash=[4, 4], domain=False, ticks=False),
            ),
            opacity=alt.condition(hover, alt.value(1), alt.value(0.4)),
            tooltip=["month", alt.Tooltip("avg_completion:Q", title="Avg Completion", format=".1f")],
        )
        .add_params(hover)
    )
    if not show_moving_average:
        return to_vega_spec(line)
    ma_line = (
        alt.Chart(df)
        .transform_filter("isValid(datum.moving_average)")
        .mark_line(strokeDash=[5, 5], color=STATUS_HIGH)
        .encode(
            x=_month_axis(order),
            y="moving_average:Q",
            tooltip=["month", alt.Tooltip("moving_average:Q", title="3-Month Moving Avg", format=".1f")],
        )
    )
    return to_vega_spec(alt.layer(line, ma_line))


def hours_trend_chart(rows: List[Dict[str, Any]]) -> Dict[str, Any]:
    df = pd.DataFrame(rows)
    chart = (
        alt.Chart(df)
        .mark_line(point={"filled": True, "size": 60}, color=STATUS_MID)
        .encode(
            x=_month_axis(list(df["month"])),
            y=alt.Y("training_hours:Q", title="Training Hours", axis=alt.Axis(gridDash=[4, 4], domain=False, ticks=False)),
            tooltip=["month", alt.Tooltip("training_hours:Q", title="Hours", format=",.1f")],
        )
    )
    return to_vega_spec(chart)


def compute_trends(filters: DashboardFilters, ctx: Dict[str, Any], *, show_moving_average: bool = True) -> Dict[str, Any]:
    df: pd.DataFrame = ctx.get("filtered", pd.DataFrame())
    rows = monthly_trends(df)
    enough = len(rows) >= MIN_TREND_MONTHS
    charts: Dict[str, Any] = {}
    if enough:
        charts = {
            "completion": completion_trend_chart(rows, show_moving_average=show_moving_average),
            "hours": hours_trend_chart(rows),
        }
    return {
        "filters": asdict(filters),
        "enough_data": enough,
        "months": rows,
        "charts": charts,
    }
