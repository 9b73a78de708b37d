from __future__ import annotations

import math
from dataclasses import asdict
from typing import Any, Dict, List

import pandas as pd

from training_core.charts import BRAND_BLUE, STATUS_HIGH, STATUS_MID, sparkline_chart
from training_core.data import round_half_up
from training_core.filters import DashboardFilters
from training_core.metrics_branches import company_averages
from training_core.metrics_comparison import aggregate_improvement

SPARKLINE_POINTS = 30


def round_half_toward_positive(value: float) -> int:
    return int(math.floor(value + 0.5))


def sparkline(records: pd.DataFrame, column: str, points: int = SPARKLINE_POINTS) -> List[float]:
    """Last ``points`` values of ``column`` ordered by completion date; empty when fewer than 2."""
    if len(records) < 2:
        return []
    ordered = records.sort_values("completion_date", kind="mergesort")
    values = [float(v) for v in ordered[column].tail(points)]
    return values if len(values) > 1 else []


def record_improvement(records: pd.DataFrame) -> pd.Series:
    pre = records["pre_assessment_score"]
    post = records["post_assessment_score"]
    return ((post - pre) / pre * 100).where(pre > 0, 0.0)


def completion_change(diff: float) -> Dict[str, str]:
    fixed = f"{round_half_up(diff, 1):.1f}"
    if fixed == "0.0":
        text = "Matches company avg"
    else:
        text = f"{'+' if diff > 0 else ''}{fixed}% vs company avg"
    if diff > 0.1:
        direction = "up"
    elif diff < -0.1:
        direction = "down"
    else:
        direction = "neutral"
    return {"text": text, "direction": direction}


def overview_stats(records: pd.DataFrame, all_records: pd.DataFrame) -> Dict[str, Any]:
    if records.empty:
        return {
            "total_learners": 0,
            "avg_completion": 0,
            "active_learners": 0,
            "inactive_learners": 0,
            "improvement": 0,
            "avg_completion_change": {"text": "N/A", "direction": "neutral"},
            "sparklines": {"learners": [], "completion": [], "improvement": []},
        }
    total_learners = int(records["trainee_name"].nunique())
    active_learners = int(records.loc[records["completion_rate"] > 0, "trainee_name"].nunique())
    avg_completion = float(records["completion_rate"].mean())
    diff = avg_completion - company_averages(all_records)["completion"]
    with_improvement = records.assign(improvement=record_improvement(records))
    return {
        "total_learners": total_learners,
        "avg_completion": round_half_toward_positive(avg_completion),
        "active_learners": active_learners,
        "inactive_learners": total_learners - active_learners,
        "improvement": round_half_toward_positive(aggregate_improvement(records)),
        "avg_completion_change": completion_change(diff),
        "sparklines": {
            "learners": sparkline(records, "id"),
            "completion": sparkline(records, "completion_rate"),
            "improvement": sparkline(with_improvement, "improvement"),
        },
    }


def compute_overview(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    df: pd.DataFrame = ctx.get("filtered", pd.DataFrame())
    all_records: pd.DataFrame = ctx.get("records", pd.DataFrame())
    stats = overview_stats(df, all_records)
    lines = stats["sparklines"]
    return {
        "filters": asdict(filters),
        "kpis": {k: v for k, v in stats.items() if k != "sparklines"},
        "sparklines": lines,
        "charts": {
            "learners": sparkline_chart(lines["learners"], color=BRAND_BLUE),
            "completion": sparkline_chart(lines["completion"], color=STATUS_HIGH),
            "improvement": sparkline_chart(lines["improvement"], color=STATUS_MID),
        },
    }
