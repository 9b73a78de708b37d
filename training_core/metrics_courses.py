from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List, Literal, Tuple

import altair as alt
import pandas as pd

from training_core.charts import status_bar_chart, to_vega_spec
from training_core.data import CourseType
from training_core.filters import DashboardFilters

LowPerfSortBy = Literal["completion", "score", "learners"]

# (low, mid) color bands per metric
STATUS_BANDS: Dict[str, Tuple[float, float]] = {
    "top_completion": (70, 85),
    "completion": (60, 75),
    "score": (60, 75),
    "learners": (10, 20),
    "avg_score": (65, 80),
}


def course_stats(records: pd.DataFrame) -> List[Dict[str, Any]]:
    """Per-course means of completion rate and average quiz score, in first-seen order."""
    if records.empty:
        return []
    stats = (
        records.groupby("course_title", sort=False)
        .agg(
            completion=("completion_rate", "mean"),
            score=("average_quiz_score", "mean"),
            learners=("trainee_name", "nunique"),
        )
        .reset_index()
        .rename(columns={"course_title": "name"})
    )
    return stats[["name", "completion", "score", "learners"]].to_dict(orient="records")


def course_type_counts(records: pd.DataFrame) -> List[Dict[str, Any]]:
    counts = []
    for course_type in CourseType:
        ids = records.loc[records["course_type"] == course_type.value, "id"] if not records.empty else []
        counts.append({"name": course_type.value, "training_records": int(pd.Series(ids).nunique())})
    return counts


def _sorted(rows: List[Dict[str, Any]], key: str, *, descending: bool) -> List[Dict[str, Any]]:
    return sorted(rows, key=lambda r: r[key], reverse=descending)


def top_courses_by_completion(rows: List[Dict[str, Any]], limit: int = 5) -> List[Dict[str, Any]]:
    return _sorted(rows, "completion", descending=True)[:limit]


def low_performing_courses(rows: List[Dict[str, Any]], sort_by: LowPerfSortBy = "completion", limit: int = 5) -> List[Dict[str, Any]]:
    return _sorted(rows, sort_by, descending=False)[:limit]


def avg_scores_per_course(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return _sorted(rows, "score", descending=True)


def compute_course_analysis(
    filters: DashboardFilters,
    ctx: Dict[str, Any],
    *,
    low_perf_sort_by: LowPerfSortBy = "completion",
) -> Dict[str, Any]:
    df: pd.DataFrame = ctx.get("filtered", pd.DataFrame())
    courses = course_stats(df)
    type_counts = course_type_counts(df)
    top = top_courses_by_completion(courses)
    low = low_performing_courses(courses, low_perf_sort_by)
    by_score = avg_scores_per_course(courses)

    charts: Dict[str, Any] = {}
    if courses:
        selected_courses = filters.selected_courses
        selected_types = filters.selected_course_types
        types_df = pd.DataFrame(type_counts)
        types_df["highlight"] = types_df["name"].map(lambda n: not selected_types or n in selected_types)
        type_chart = (
            alt.Chart(types_df)
            .mark_bar()
            .encode(
                y=alt.Y("name:N", title=None),
                x=alt.X("training_records:Q", title="Training Records"),
                color=alt.Color("name:N", scale=alt.Scale(range=["#0072BC", "#F58220"]), legend=None),
                opacity=alt.condition(alt.datum.highlight, alt.value(1.0), alt.value(0.4)),
                tooltip=["name", alt.Tooltip("training_records:Q", title="Records")],
            )
        )
        low_band = "learners" if low_perf_sort_by == "learners" else "completion"
        charts = {
            "course_types": to_vega_spec(type_chart),
            "top_courses": status_bar_chart(
                top, "completion", STATUS_BANDS["top_completion"], title="Completion Rate", selected=selected_courses
            ),
            "low_performing": status_bar_chart(
                low,
                low_perf_sort_by,
                STATUS_BANDS[low_band],
                title=f"Avg {low_perf_sort_by}",
                selected=selected_courses,
                percent=low_perf_sort_by != "learners",
            ),
            "avg_scores": status_bar_chart(
                by_score, "score", STATUS_BANDS["avg_score"], title="Avg. Score", selected=selected_courses
            ),
        }

    return {
        "filters": asdict(filters),
        "low_perf_sort_by": low_perf_sort_by,
        "course_types": type_counts,
        "top_courses": top,
        "low_performing_courses": low,
        "avg_scores_per_course": by_score,
        "charts": charts,
    }
