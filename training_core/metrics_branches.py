from __future__ import annotations

import re
from dataclasses import asdict
from typing import Any, Dict, List, Literal

import altair as alt
import pandas as pd

from training_core.charts import to_vega_spec
from training_core.data import safe_div
from training_core.filters import DashboardFilters

SortBy = Literal["completion_rate", "quiz_score"]
View = Literal["all", "top5", "bottom5"]

_BRANCH_SUFFIXES = re.compile(r" Pharmacy| Pharma| Health| Meds| Drugs")


def display_branch_name(branch: str) -> str:
    return _BRANCH_SUFFIXES.sub("", branch)


def company_averages(records: pd.DataFrame) -> Dict[str, float]:
    """Completion and quiz-score means over the unfiltered record store."""
    if records.empty:
        return {"completion": 0.0, "score": 0.0}
    return {
        "completion": float(records["completion_rate"].mean()),
        "score": float(records["average_quiz_score"].mean()),
    }


def branch_stats(records: pd.DataFrame, *, sort_by: SortBy = "completion_rate", view: View = "all") -> List[Dict[str, Any]]:
    if records.empty:
        return []
    base = records[records["branch"] != ""]
    if base.empty:
        return []
    stats = (
        base.groupby("branch", sort=False)
        .agg(
            completion_total=("completion_rate", "sum"),
            score_total=("average_quiz_score", "sum"),
            record_count=("completion_rate", "size"),
        )
        .reset_index()
        .rename(columns={"branch": "name"})
    )
    stats["display_name"] = stats["name"].map(display_branch_name)
    stats["completion_rate"] = [safe_div(t, c) for t, c in zip(stats["completion_total"], stats["record_count"])]
    stats["quiz_score"] = [safe_div(t, c) for t, c in zip(stats["score_total"], stats["record_count"])]
    stats = stats.sort_values(sort_by, ascending=False, kind="mergesort")
    if view == "top5":
        stats = stats.head(5)
    elif view == "bottom5":
        stats = stats.tail(5)
    return stats[["name", "display_name", "completion_rate", "quiz_score", "record_count"]].to_dict(orient="records")


def compute_branch_comparison(
    filters: DashboardFilters,
    ctx: Dict[str, Any],
    *,
    sort_by: SortBy = "completion_rate",
    view: View = "all",
) -> Dict[str, Any]:
    df: pd.DataFrame = ctx.get("filtered", pd.DataFrame())
    all_records: pd.DataFrame = ctx.get("records", pd.DataFrame())
    averages = company_averages(all_records)
    rows = branch_stats(df, sort_by=sort_by, view=view)

    charts: Dict[str, Any] = {}
    if rows:
        selected = set(filters.selected_branches)
        long_df = pd.DataFrame(rows).melt(
            id_vars=["name", "display_name", "record_count"],
            value_vars=["completion_rate", "quiz_score"],
            var_name="metric",
            value_name="value",
        )
        long_df["metric"] = long_df["metric"].map({"completion_rate": "Completion Rate", "quiz_score": "Avg. Quiz Score"})
        long_df["highlight"] = long_df["name"].map(lambda n: not selected or n in selected)
        order = [r["display_name"] for r in rows]
        bars = (
            alt.Chart(long_df)
            .mark_bar()
            .encode(
                x=alt.X("display_name:N", title=None, sort=order, axis=alt.Axis(labelAngle=-45, grid=False)),
                xOffset="metric:N",
                y=alt.Y("value:Q", title="Percentage (%)", scale=alt.Scale(domain=[0, 100])),
                color=alt.Color("metric:N", scale=alt.Scale(range=["#0072BC", "#F58220"]), title=None),
                opacity=alt.condition(alt.datum.highlight, alt.value(1.0), alt.value(0.3)),
                tooltip=[
                    alt.Tooltip("name:N", title="Branch"),
                    alt.Tooltip("record_count:Q", title="Records"),
                    alt.Tooltip("metric:N", title="Metric"),
                    alt.Tooltip("value:Q", title="Value", format=".1f"),
                ],
            )
            .properties(height=420)
        )
        charts["branch_performance"] = to_vega_spec(bars)

    return {
        "filters": asdict(filters),
        "sort_by": sort_by,
        "view": view,
        "company_averages": averages,
        "branches": rows,
        "charts": charts,
    }
