from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List, Optional

import altair as alt
import pandas as pd

from training_core.charts import BRAND_BLUE, STATUS_MID, to_vega_spec
from training_core.filters import DashboardFilters
from training_core.table import ColumnType, TableQuery, table_payload

TOP_PERFORMER_SCORE = 90
COMPLETED_ROWS_PER_PAGE = 5
COMPLETED_COLUMN_TYPES = {
    "course_title": ColumnType.TEXT,
    "completion_date": ColumnType.DATE,
    "post_assessment_score": ColumnType.NUMBER,
}


def learner_directory(records: pd.DataFrame) -> List[Dict[str, str]]:
    """email -> first-seen trainee name, sorted by name."""
    if records.empty:
        return []
    base = records[records["email"] != ""]
    firsts = base.drop_duplicates("email", keep="first")
    learners = [{"email": e, "name": n} for e, n in zip(firsts["email"], firsts["trainee_name"])]
    return sorted(learners, key=lambda l: l["name"].casefold())


def learner_name(directory: List[Dict[str, str]], email: Optional[str]) -> str:
    for learner in directory:
        if learner["email"] == email:
            return learner["name"]
    return ""


def learner_progress(records: pd.DataFrame, email1: Optional[str], email2: Optional[str] = None) -> List[Dict[str, Any]]:
    """Post scores for up to two learners on the union of their completion dates."""
    if records.empty or not (email1 or email2):
        return []
    first = records[records["email"] == email1] if email1 else records.iloc[0:0]
    second = records[records["email"] == email2] if email2 else records.iloc[0:0]
    dates = sorted(set(first["completion_date"]) | set(second["completion_date"]))

    def on_date(df: pd.DataFrame, when: pd.Timestamp):
        match = df[df["completion_date"] == when]
        if match.empty:
            return None, None
        row = match.iloc[0]
        return float(row["post_assessment_score"]), row["course_title"]

    points = []
    for when in dates:
        score1, course1 = on_date(first, when)
        score2, course2 = on_date(second, when)
        points.append(
            {
                "date": when.strftime("%Y-%m-%d"),
                "learner1_score": score1,
                "learner1_course": course1,
                "learner2_score": score2,
                "learner2_course": course2,
            }
        )
    return points


def completed_courses(records: pd.DataFrame, email: Optional[str]) -> List[Dict[str, Any]]:
    if records.empty or not email:
        return []
    done = records[(records["email"] == email) & (records["post_assessment_score"] > 0)]
    return [
        {"course_title": t, "completion_date": d.to_pydatetime(), "post_assessment_score": float(s)}
        for t, d, s in zip(done["course_title"], done["completion_date"], done["post_assessment_score"])
    ]


def learner_average_score(courses: List[Dict[str, Any]]) -> float:
    if not courses:
        return 0.0
    return sum(c["post_assessment_score"] for c in courses) / len(courses)


def company_average_score(records: pd.DataFrame) -> float:
    # every record counts here, zero scores included
    if records.empty:
        return 0.0
    return float(records["post_assessment_score"].mean())


def progress_chart(points: List[Dict[str, Any]], names: Dict[str, str]) -> Dict[str, Any]:
    rows = []
    for key in ("learner1", "learner2"):
        if not names.get(key):
            continue
        for p in points:
            if p[f"{key}_score"] is None:
                continue
            rows.append(
                {"date": p["date"], "learner": names[key], "score": p[f"{key}_score"], "course": p[f"{key}_course"]}
            )
    if not rows:
        return {}
    hover = alt.selection_point(fields=["learner"], on="mouseover", empty="all")
    chart = (
        alt.Chart(pd.DataFrame(rows))
        .mark_line(point={"filled": True, "size": 60})
        .encode(
            x=alt.X("date:T", title="Completion Date", axis=alt.Axis(grid=False)),
            y=alt.Y("score:Q", title="Post-Assessment Score (%)", scale=alt.Scale(domain=[0, 100])),
            color=alt.Color("learner:N", scale=alt.Scale(range=[BRAND_BLUE, STATUS_MID]), title=None),
            opacity=alt.condition(hover, alt.value(1), alt.value(0.3)),
            tooltip=["learner", "course", alt.Tooltip("date:T"), alt.Tooltip("score:Q", format=".0f")],
        )
        .add_params(hover)
    )
    return to_vega_spec(chart)


def compute_learner_performance(
    filters: DashboardFilters,
    ctx: Dict[str, Any],
    *,
    email: Optional[str] = None,
    compare_email: Optional[str] = None,
    query: Optional[TableQuery] = None,
) -> Dict[str, Any]:
    # learner view always reads the unfiltered store
    records: pd.DataFrame = ctx.get("records", pd.DataFrame())
    directory = learner_directory(records)
    names = {"learner1": learner_name(directory, email), "learner2": learner_name(directory, compare_email)}
    points = learner_progress(records, email, compare_email)
    courses = completed_courses(records, email)
    average = learner_average_score(courses)
    q = query.for_table("completed_courses") if query else None

    return {
        "filters": asdict(filters),
        "learners": directory,
        "selected": {"email": email, "name": names["learner1"]},
        "compare": {"email": compare_email, "name": names["learner2"]},
        "progress": points,
        "learner_average": average,
        "is_top_performer": average > TOP_PERFORMER_SCORE,
        "company_average": company_average_score(records),
        "tables": {
            "completed_courses": table_payload(
                courses,
                q,
                initial_sort_key="completion_date",
                rows_per_page=COMPLETED_ROWS_PER_PAGE,
                column_types=COMPLETED_COLUMN_TYPES,
            ),
        },
        "charts": {"progress": progress_chart(points, names)},
    }
