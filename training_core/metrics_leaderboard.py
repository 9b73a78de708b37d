from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List, Optional

import pandas as pd

from training_core.data import rank_by, round_half_up
from training_core.filters import DashboardFilters
from training_core.table import TableQuery, table_payload

LEADERBOARD_ROWS_PER_PAGE = 5


def top_trainees(records: pd.DataFrame) -> List[Dict[str, Any]]:
    """Learners ranked by average post-assessment score, keyed on email."""
    if records.empty:
        return []
    base = records[(records["post_assessment_score"] > 0) & (records["email"] != "")]
    if base.empty:
        return []
    top = (
        base.groupby("email", sort=False)
        .agg(
            name=("trainee_name", "first"),
            total_score=("post_assessment_score", "sum"),
            course_count=("post_assessment_score", "size"),
        )
        .reset_index()
    )
    top["avg_score"] = [round_half_up(t / c, 1) for t, c in zip(top["total_score"], top["course_count"])]
    top["course_info"] = top["course_count"].map(lambda c: f"({c} courses)")
    top = rank_by(top, "avg_score")
    return top[["rank", "email", "name", "avg_score", "course_count", "course_info"]].to_dict(orient="records")


def _top_groups_by_completion(records: pd.DataFrame, key: str) -> List[Dict[str, Any]]:
    if records.empty:
        return []
    base = records[records[key] != ""]
    if base.empty:
        return []
    top = (
        base.groupby(key, sort=False)
        .agg(
            total_rate=("completion_rate", "sum"),
            record_count=("completion_rate", "size"),
            trainee_count=("trainee_name", "nunique"),
        )
        .reset_index()
        .rename(columns={key: "name"})
    )
    top["avg_rate"] = [round_half_up(t / c, 1) for t, c in zip(top["total_rate"], top["record_count"])]
    top["trainee_info"] = top["trainee_count"].map(lambda c: f"({c} trainees)")
    top = rank_by(top, "avg_rate")
    return top[["rank", "name", "avg_rate", "trainee_count", "trainee_info"]].to_dict(orient="records")


def top_branches(records: pd.DataFrame) -> List[Dict[str, Any]]:
    return _top_groups_by_completion(records, "branch")


def top_supervisors(records: pd.DataFrame) -> List[Dict[str, Any]]:
    return _top_groups_by_completion(records, "supervisor")


def compute_leaderboard(
    filters: DashboardFilters,
    ctx: Dict[str, Any],
    *,
    query: Optional[TableQuery] = None,
) -> Dict[str, Any]:
    df: pd.DataFrame = ctx.get("filtered", pd.DataFrame())
    trainees = top_trainees(df)
    branches = top_branches(df)
    supervisors = top_supervisors(df)

    def table(name: str, rows: List[Dict[str, Any]], sort_key: str) -> Dict[str, Any]:
        q = query.for_table(name) if query else None
        return table_payload(rows, q, initial_sort_key=sort_key, rows_per_page=LEADERBOARD_ROWS_PER_PAGE)

    return {
        "filters": asdict(filters),
        "record_count": int(len(df)),
        "tables": {
            "top_trainees": table("top_trainees", trainees, "avg_score"),
            "top_branches": table("top_branches", branches, "avg_rate"),
            "top_supervisors": table("top_supervisors", supervisors, "avg_rate"),
        },
    }
