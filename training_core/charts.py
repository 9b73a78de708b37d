from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Tuple

import altair as alt
import pandas as pd

alt.data_transformers.disable_max_rows()

STATUS_LOW = "#dc3545"
STATUS_MID = "#F58220"
STATUS_HIGH = "#00A99D"
BRAND_BLUE = "#0072BC"


def to_vega_spec(chart: alt.Chart) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def status_color(value: float, bands: Tuple[float, float]) -> str:
    low, mid = bands
    if value < low:
        return STATUS_LOW
    if value < mid:
        return STATUS_MID
    return STATUS_HIGH


def status_bar_chart(
    rows: List[Dict[str, Any]],
    value_key: str,
    bands: Tuple[float, float],
    *,
    title: str,
    selected: Sequence[str] = (),
    label_key: str = "name",
    percent: bool = True,
) -> Dict[str, Any]:
    """Horizontal bars colored red/orange/teal against (low, mid) bands.

    Rows keep their given order top to bottom; labels outside ``selected`` are dimmed
    when a selection is active.
    """
    df = pd.DataFrame(rows)
    if df.empty:
        return {}
    df["status_color"] = df[value_key].map(lambda v: status_color(float(v), bands))
    chosen = set(selected)
    df["highlight"] = df[label_key].map(lambda n: not chosen or n in chosen)
    x_axis = alt.X(f"{value_key}:Q", title=title)
    if percent:
        x_axis = alt.X(f"{value_key}:Q", title=title, scale=alt.Scale(domain=[0, 100]))
    hover = alt.selection_point(fields=[label_key], on="mouseover", empty="all")
    chart = (
        alt.Chart(df)
        .mark_bar()
        .encode(
            y=alt.Y(f"{label_key}:N", title=None, sort=list(df[label_key])),
            x=x_axis,
            color=alt.Color("status_color:N", scale=None),
            opacity=alt.condition(alt.datum.highlight, alt.value(1.0), alt.value(0.4)),
            tooltip=[label_key, alt.Tooltip(f"{value_key}:Q", title=title, format=".1f")],
        )
        .add_params(hover)
    )
    return to_vega_spec(chart)


def sparkline_chart(values: List[float], *, color: str = BRAND_BLUE) -> Dict[str, Any]:
    if len(values) < 2:
        return {}
    df = pd.DataFrame({"step": range(len(values)), "value": values})
    chart = (
        alt.Chart(df)
        .mark_line(color=color, strokeWidth=2)
        .encode(
            x=alt.X("step:Q", axis=None),
            y=alt.Y("value:Q", axis=None, scale=alt.Scale(zero=False)),
        )
        .properties(height=40, width=120)
    )
    return to_vega_spec(chart)


def reference_rule(value: float, *, axis: str = "y", color: str = "gray", label: Optional[str] = None) -> alt.Chart:
    df = pd.DataFrame({axis: [value], "label": [label or ""]})
    return (
        alt.Chart(df)
        .mark_rule(color=color, strokeDash=[4, 4])
        .encode(**{axis: f"{axis}:Q"}, tooltip=["label:N"])
    )
