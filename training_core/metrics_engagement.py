from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List

import altair as alt
import pandas as pd

from training_core.charts import BRAND_BLUE, reference_rule, to_vega_spec
from training_core.filters import DashboardFilters

BUBBLE_SIZE_PER_RECORD = 50


def engagement_scatter(records: pd.DataFrame) -> List[Dict[str, Any]]:
    """One point per trainee name: total hours (x), mean post score (y), bubble size (z)."""
    if records.empty:
        return []
    points = (
        records.groupby("trainee_name", sort=False)
        .agg(
            x=("training_hours", "sum"),
            y=("post_assessment_score", "mean"),
            record_count=("post_assessment_score", "size"),
        )
        .reset_index()
        .rename(columns={"trainee_name": "name"})
    )
    points = points[points["y"].notna()]
    points = points.assign(z=points["record_count"] * BUBBLE_SIZE_PER_RECORD)
    return points[["name", "x", "y", "z", "record_count"]].to_dict(orient="records")


def engagement_averages(points: List[Dict[str, Any]]) -> Dict[str, float]:
    if not points:
        return {"avg_engagement": 0.0, "avg_performance": 0.0}
    return {
        "avg_engagement": sum(p["x"] for p in points) / len(points),
        "avg_performance": sum(p["y"] for p in points) / len(points),
    }


def compute_engagement(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    df: pd.DataFrame = ctx.get("filtered", pd.DataFrame())
    points = engagement_scatter(df)
    averages = engagement_averages(points)

    charts: Dict[str, Any] = {}
    if points:
        hover = alt.selection_point(fields=["name"], on="mouseover", empty="all")
        scatter = (
            alt.Chart(pd.DataFrame(points))
            .mark_circle(color=BRAND_BLUE)
            .encode(
                x=alt.X("x:Q", title="Total Training Hours"),
                y=alt.Y("y:Q", title="Avg Post-Assessment Score (%)", scale=alt.Scale(domain=[0, 100])),
                size=alt.Size("z:Q", legend=None),
                opacity=alt.condition(hover, alt.value(0.9), alt.value(0.3)),
                tooltip=[
                    alt.Tooltip("name:N", title="Learner"),
                    alt.Tooltip("x:Q", title="Hours", format=".1f"),
                    alt.Tooltip("y:Q", title="Avg Score", format=".1f"),
                    alt.Tooltip("record_count:Q", title="Courses"),
                ],
            )
            .add_params(hover)
        )
        chart = alt.layer(
            scatter,
            reference_rule(averages["avg_engagement"], axis="x", label="Avg Engagement"),
            reference_rule(averages["avg_performance"], axis="y", label="Avg Performance"),
        )
        charts["engagement"] = to_vega_spec(chart)

    return {
        "filters": asdict(filters),
        **averages,
        "points": points,
        "charts": charts,
    }
