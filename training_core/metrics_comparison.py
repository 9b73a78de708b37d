from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

import pandas as pd

from training_core.data import safe_div
from training_core.filters import DashboardFilters

COMPARISON_CATEGORIES = ("branch", "district_head", "supervisor")


@dataclass(frozen=True)
class ComparisonGroup:
    category: Optional[str] = None
    value: Optional[str] = None


def select_group(records: pd.DataFrame, group: ComparisonGroup) -> pd.DataFrame:
    """Records whose ``category`` column equals ``value``; empty when either is unset."""
    if records.empty or not group.category or not group.value:
        return records.iloc[0:0]
    if group.category not in COMPARISON_CATEGORIES:
        raise ValueError(f"Unknown comparison category: {group.category}")
    return records[records[group.category] == group.value]


def aggregate_improvement(records: pd.DataFrame) -> float:
    scored = records[records["post_assessment_score"] > 0]
    total_pre = float(scored["pre_assessment_score"].sum())
    total_post = float(scored["post_assessment_score"].sum())
    if total_pre == 0:
        return 0.0
    return (total_post - total_pre) / total_pre * 100


def group_kpis(records: pd.DataFrame) -> Dict[str, Any]:
    if records.empty:
        return {
            "total_learners": 0,
            "avg_completion": 0.0,
            "avg_post_score": 0.0,
            "improvement": 0.0,
            "total_hours": 0.0,
            "record_count": 0,
        }
    scored = records.loc[records["post_assessment_score"] > 0, "post_assessment_score"]
    return {
        "total_learners": int(records["trainee_name"].nunique()),
        "avg_completion": float(records["completion_rate"].mean()),
        "avg_post_score": safe_div(float(scored.sum()), len(scored)),
        "improvement": aggregate_improvement(records),
        "total_hours": float(records["training_hours"].sum()),
        "record_count": int(len(records)),
    }


def group_values(records: pd.DataFrame, category: str) -> List[str]:
    if records.empty or category not in COMPARISON_CATEGORIES:
        return []
    return sorted(v for v in records[category].unique() if v)


def compute_comparison(
    filters: DashboardFilters,
    ctx: Dict[str, Any],
    *,
    group_a: ComparisonGroup,
    group_b: ComparisonGroup,
) -> Dict[str, Any]:
    # compares against the whole record store, not the filtered view
    records: pd.DataFrame = ctx.get("records", pd.DataFrame())
    groups = {}
    for key, group in (("group_a", group_a), ("group_b", group_b)):
        groups[key] = {**asdict(group), "kpis": group_kpis(select_group(records, group))}
    return {
        "filters": asdict(filters),
        "categories": {c: group_values(records, c) for c in COMPARISON_CATEGORIES},
        **groups,
    }
