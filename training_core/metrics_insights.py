from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List, Optional

import pandas as pd

from training_core.data import rank_by, round_half_up, safe_div
from training_core.filters import DashboardFilters, Thresholds
from training_core.table import TableQuery, table_payload

TOP_COURSES_LIMIT = 5


def _record_reasons(row, thresholds: Thresholds) -> List[str]:
    reasons = []
    if row.completion_rate < thresholds.at_risk_completion:
        reasons.append(f"Completion < {thresholds.at_risk_completion}%")
    if 0 < row.post_assessment_score < thresholds.at_risk_score:
        reasons.append(f"Score < {thresholds.at_risk_score}%")
    return [f"{r} on '{row.course_title}'" for r in reasons]


def at_risk_trainees(records: pd.DataFrame, thresholds: Thresholds) -> List[Dict[str, Any]]:
    """Trainees (keyed on name) with at least one record below the at-risk thresholds.

    Branch, supervisor and email come from the trainee's first flagged record.
    """
    if records.empty:
        return []
    risk: Dict[str, Dict[str, Any]] = {}
    for row in records.itertuples(index=False):
        reasons = _record_reasons(row, thresholds)
        if not reasons:
            continue
        if row.trainee_name not in risk:
            risk[row.trainee_name] = {
                "trainee_name": row.trainee_name,
                "branch": row.branch,
                "supervisor": row.supervisor,
                "email": row.email,
                "reasons": [],
            }
        risk[row.trainee_name]["reasons"].extend(reasons)
    return [
        {**entry, "reasons": "; ".join(entry["reasons"]), "reason_count": len(entry["reasons"])}
        for entry in risk.values()
    ]


def _course_rollup(records: pd.DataFrame) -> pd.DataFrame:
    scored = records["post_assessment_score"] > 0
    base = records.assign(
        scored_total=records["post_assessment_score"].where(scored, 0.0),
        scored_count=scored.astype(int),
    )
    return (
        base.groupby("course_title", sort=False)
        .agg(
            total_completion=("completion_rate", "sum"),
            record_count=("completion_rate", "size"),
            total_score=("scored_total", "sum"),
            score_count=("scored_count", "sum"),
            learner_count=("trainee_name", "nunique"),
        )
        .reset_index()
        .rename(columns={"course_title": "title"})
    )


def courses_needing_attention(records: pd.DataFrame, thresholds: Thresholds) -> List[Dict[str, Any]]:
    if records.empty:
        return []
    rollup = _course_rollup(records)
    rows = []
    for r in rollup.itertuples(index=False):
        avg_completion = round_half_up(safe_div(r.total_completion, r.record_count), 1)
        avg_score = round_half_up(r.total_score / r.score_count, 1) if r.score_count > 0 else 0.0
        low_completion = avg_completion < thresholds.course_attention_completion
        low_score = 0 < avg_score < thresholds.course_attention_score
        if low_completion or low_score:
            rows.append(
                {
                    "title": r.title,
                    "avg_completion": avg_completion,
                    "avg_score": avg_score,
                    "learner_count": int(r.learner_count),
                    "low_completion": bool(low_completion),
                    "low_score": bool(low_score),
                }
            )
    return rows


def top_improvers(records: pd.DataFrame) -> List[Dict[str, Any]]:
    """Learners (keyed on email) ranked by average positive pre-to-post improvement."""
    if records.empty:
        return []
    pre = records["pre_assessment_score"]
    post = records["post_assessment_score"]
    base = records[(pre > 0) & (post > 0) & (records["email"] != "")]
    if base.empty:
        return []
    improvement = (base["post_assessment_score"] - base["pre_assessment_score"]) / base["pre_assessment_score"] * 100
    base = base.assign(positive_improvement=improvement.where(improvement > 0))
    stats = (
        base.groupby("email", sort=False)
        .agg(
            name=("trainee_name", "first"),
            total_improvement=("positive_improvement", "sum"),
            course_count=("positive_improvement", "count"),
        )
        .reset_index()
    )
    stats = stats[stats["course_count"] > 0]
    if stats.empty:
        return []
    stats = stats.assign(
        avg_improvement=[round_half_up(t / c, 1) for t, c in zip(stats["total_improvement"], stats["course_count"])]
    )
    stats = rank_by(stats, "avg_improvement")
    return stats[["rank", "email", "name", "avg_improvement", "course_count"]].to_dict(orient="records")


def top_performing_courses(records: pd.DataFrame, limit: int = TOP_COURSES_LIMIT) -> List[Dict[str, Any]]:
    if records.empty:
        return []
    rollup = _course_rollup(records)
    rollup["avg_completion"] = [safe_div(t, c) for t, c in zip(rollup["total_completion"], rollup["record_count"])]
    rollup["avg_score"] = [safe_div(t, c) for t, c in zip(rollup["total_score"], rollup["score_count"])]
    rollup["performance_score"] = rollup["avg_completion"] * 0.6 + rollup["avg_score"] * 0.4
    top = rank_by(rollup, "performance_score").head(limit)
    return top[["rank", "title", "avg_completion", "avg_score", "performance_score", "record_count"]].to_dict(
        orient="records"
    )


def compute_insights(
    filters: DashboardFilters,
    ctx: Dict[str, Any],
    *,
    query: Optional[TableQuery] = None,
) -> Dict[str, Any]:
    df: pd.DataFrame = ctx.get("filtered", pd.DataFrame())
    thresholds = filters.thresholds
    at_risk = at_risk_trainees(df, thresholds)
    attention = courses_needing_attention(df, thresholds)
    improvers = top_improvers(df)
    top_courses = top_performing_courses(df)

    def table(name: str, rows: List[Dict[str, Any]], sort_key: Optional[str]) -> Dict[str, Any]:
        q = query.for_table(name) if query else None
        return table_payload(rows, q, initial_sort_key=sort_key)

    return {
        "filters": asdict(filters),
        "thresholds": asdict(thresholds),
        "kpis": {
            "at_risk_trainees": len(at_risk),
            "courses_needing_attention": len(attention),
            "improvers": len(improvers),
        },
        "tables": {
            "at_risk_trainees": table("at_risk_trainees", at_risk, None),
            "courses_needing_attention": table("courses_needing_attention", attention, "avg_completion"),
            "top_improvers": table("top_improvers", improvers, "avg_improvement"),
            "top_performing_courses": table("top_performing_courses", top_courses, "performance_score"),
        },
    }
