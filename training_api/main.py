from __future__ import annotations

import logging
import math
from typing import Any, Callable, Dict, List, Literal, Optional, Tuple

import numpy as np
import pandas as pd
from fastapi import FastAPI, Query
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from training_api.schemas import ComparisonRequest, DashboardFiltersModel, MetaOptionsResponse
from training_core.data import load_dashboard_data, prepare_context
from training_core.export import frame_to_csv, rows_to_csv
from training_core.filters import DashboardFilters, normalize_filters
from training_core.metrics_branches import branch_stats, compute_branch_comparison
from training_core.metrics_comparison import ComparisonGroup, compute_comparison
from training_core.metrics_courses import compute_course_analysis
from training_core.metrics_engagement import compute_engagement
from training_core.metrics_insights import (
    at_risk_trainees,
    compute_insights,
    courses_needing_attention,
    top_improvers,
    top_performing_courses,
)
from training_core.metrics_leaderboard import compute_leaderboard, top_branches, top_supervisors, top_trainees
from training_core.metrics_learner import COMPLETED_COLUMN_TYPES, completed_courses, compute_learner_performance
from training_core.metrics_overview import compute_overview
from training_core.metrics_trends import compute_trends, monthly_trends
from training_core.table import DataTable, SortDirection, TableQuery


app = FastAPI(title="Training Insights API", version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000", "http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# table name -> (rows builder over a prepared context, initial sort key)
EXPORT_TABLES: Dict[str, Tuple[Callable[[Dict[str, Any]], List[Dict[str, Any]]], Optional[str]]] = {
    "top_trainees": (lambda ctx: top_trainees(ctx["filtered"]), "avg_score"),
    "top_branches": (lambda ctx: top_branches(ctx["filtered"]), "avg_rate"),
    "top_supervisors": (lambda ctx: top_supervisors(ctx["filtered"]), "avg_rate"),
    "at_risk_trainees": (lambda ctx: at_risk_trainees(ctx["filtered"], ctx["filters"].thresholds), None),
    "courses_needing_attention": (
        lambda ctx: courses_needing_attention(ctx["filtered"], ctx["filters"].thresholds),
        "avg_completion",
    ),
    "top_improvers": (lambda ctx: top_improvers(ctx["filtered"]), "avg_improvement"),
    "top_performing_courses": (lambda ctx: top_performing_courses(ctx["filtered"]), "performance_score"),
    "branches": (lambda ctx: branch_stats(ctx["filtered"]), None),
    "trends": (lambda ctx: monthly_trends(ctx["filtered"]), None),
}


def _filters_from_model(model: DashboardFiltersModel) -> DashboardFilters:
    raw = model.model_dump()
    return normalize_filters(raw)


def _table_query(
    table: Optional[str], search: str, sort_key: Optional[str], sort_direction: str, page: int
) -> Optional[TableQuery]:
    if not (table or search or sort_key or page > 1):
        return None
    return TableQuery(
        table=table,
        search=search,
        sort_key=sort_key,
        sort_direction=SortDirection(sort_direction),
        page=page,
    )


def _json(data: object) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
                pd.Timestamp: lambda ts: ts.isoformat(),
            },
        )
    )


def _error(exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=500, content={"error": str(exc), "type": type(exc).__name__})


@app.get("/meta/options")
def meta_options():
    try:
        data_ctx = load_dashboard_data()
        options = MetaOptionsResponse(**data_ctx["options"])
        return _json(options.model_dump())
    except Exception as exc:
        logger.exception("meta_options failed")
        return _error(exc)


@app.post("/overview")
def overview(filters: DashboardFiltersModel):
    try:
        f = _filters_from_model(filters)
        ctx = prepare_context(f, load_dashboard_data())
        return _json(compute_overview(f, ctx))
    except Exception as exc:
        logger.exception("overview failed")
        return _error(exc)


@app.post("/leaderboard")
def leaderboard(
    filters: DashboardFiltersModel,
    table: Optional[str] = Query(default=None),
    search: str = Query(default=""),
    sort_key: Optional[str] = Query(default=None),
    sort_direction: Literal["ascending", "descending"] = Query(default="ascending"),
    page: int = Query(default=1, ge=1),
):
    try:
        f = _filters_from_model(filters)
        ctx = prepare_context(f, load_dashboard_data())
        query = _table_query(table, search, sort_key, sort_direction, page)
        return _json(compute_leaderboard(f, ctx, query=query))
    except Exception as exc:
        logger.exception("leaderboard failed")
        return _error(exc)


@app.post("/insights")
def insights(
    filters: DashboardFiltersModel,
    table: Optional[str] = Query(default=None),
    search: str = Query(default=""),
    sort_key: Optional[str] = Query(default=None),
    sort_direction: Literal["ascending", "descending"] = Query(default="ascending"),
    page: int = Query(default=1, ge=1),
):
    try:
        f = _filters_from_model(filters)
        ctx = prepare_context(f, load_dashboard_data())
        query = _table_query(table, search, sort_key, sort_direction, page)
        return _json(compute_insights(f, ctx, query=query))
    except Exception as exc:
        logger.exception("insights failed")
        return _error(exc)


@app.post("/branch-comparison")
def branch_comparison(
    filters: DashboardFiltersModel,
    sort_by: Literal["completion_rate", "quiz_score"] = Query(default="completion_rate"),
    view: Literal["all", "top5", "bottom5"] = Query(default="all"),
):
    try:
        f = _filters_from_model(filters)
        ctx = prepare_context(f, load_dashboard_data())
        return _json(compute_branch_comparison(f, ctx, sort_by=sort_by, view=view))
    except Exception as exc:
        logger.exception("branch_comparison failed")
        return _error(exc)


@app.post("/comparison")
def comparison(request: ComparisonRequest):
    try:
        f = _filters_from_model(request.filters)
        ctx = prepare_context(f, load_dashboard_data())
        group_a = ComparisonGroup(**request.group_a.model_dump())
        group_b = ComparisonGroup(**request.group_b.model_dump())
        return _json(compute_comparison(f, ctx, group_a=group_a, group_b=group_b))
    except Exception as exc:
        logger.exception("comparison failed")
        return _error(exc)


@app.post("/course-analysis")
def course_analysis(
    filters: DashboardFiltersModel,
    low_perf_sort_by: Literal["completion", "score", "learners"] = Query(default="completion"),
):
    try:
        f = _filters_from_model(filters)
        ctx = prepare_context(f, load_dashboard_data())
        return _json(compute_course_analysis(f, ctx, low_perf_sort_by=low_perf_sort_by))
    except Exception as exc:
        logger.exception("course_analysis failed")
        return _error(exc)


@app.post("/learner")
def learner(
    filters: DashboardFiltersModel,
    email: Optional[str] = Query(default=None),
    compare_email: Optional[str] = Query(default=None),
    search: str = Query(default=""),
    sort_key: Optional[str] = Query(default=None),
    sort_direction: Literal["ascending", "descending"] = Query(default="ascending"),
    page: int = Query(default=1, ge=1),
):
    try:
        f = _filters_from_model(filters)
        ctx = prepare_context(f, load_dashboard_data())
        query = _table_query(None, search, sort_key, sort_direction, page)
        return _json(compute_learner_performance(f, ctx, email=email, compare_email=compare_email, query=query))
    except Exception as exc:
        logger.exception("learner failed")
        return _error(exc)


@app.post("/trends")
def trends(filters: DashboardFiltersModel, show_moving_average: bool = Query(default=True)):
    try:
        f = _filters_from_model(filters)
        ctx = prepare_context(f, load_dashboard_data())
        return _json(compute_trends(f, ctx, show_moving_average=show_moving_average))
    except Exception as exc:
        logger.exception("trends failed")
        return _error(exc)


@app.post("/engagement")
def engagement(filters: DashboardFiltersModel):
    try:
        f = _filters_from_model(filters)
        ctx = prepare_context(f, load_dashboard_data())
        return _json(compute_engagement(f, ctx))
    except Exception as exc:
        logger.exception("engagement failed")
        return _error(exc)


@app.post("/export/{page}")
def export_page(
    page: str,
    filters: DashboardFiltersModel,
    table: Optional[str] = Query(default=None),
    email: Optional[str] = Query(default=None),
    search: str = Query(default=""),
    sort_key: Optional[str] = Query(default=None),
    sort_direction: Literal["ascending", "descending"] = Query(default="ascending"),
):
    """CSV export: ``records`` dumps the filtered store; other pages export one named table."""
    f = _filters_from_model(filters)
    ctx = prepare_context(f, load_dashboard_data())

    filename = f"{table or page}.csv"
    if page == "records":
        csv_bytes = frame_to_csv(ctx["filtered"])
    else:
        if page == "learner":
            rows = completed_courses(ctx["records"], email)
            initial_sort, column_types = "completion_date", COMPLETED_COLUMN_TYPES
        elif table in EXPORT_TABLES:
            build, initial_sort = EXPORT_TABLES[table]
            rows, column_types = build(ctx), None
        else:
            rows, initial_sort, column_types = [], None, None
        grid = DataTable(rows, initial_sort_key=initial_sort, column_types=column_types)
        grid.set_search(search)
        if sort_key:
            grid.set_sort(sort_key, sort_direction)
        csv_bytes = rows_to_csv(grid.sorted_items)
    return Response(content=csv_bytes, media_type="text/csv", headers={"Content-Disposition": f"attachment; filename={filename}"})
