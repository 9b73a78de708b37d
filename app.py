import altair as alt
import pandas as pd
import streamlit as st
from contextlib import contextmanager
from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from training_core.data import DataSourceError, load_dashboard_data, prepare_context
from training_core.export import frame_to_csv, rows_to_csv
from training_core.filters import (
    SELECTION_COLUMNS,
    Thresholds,
    active_filter_summary,
    filters_active,
    normalize_filters,
    quick_select_period,
    toggle_single_selection,
)
from training_core.metrics_branches import compute_branch_comparison
from training_core.metrics_comparison import COMPARISON_CATEGORIES, ComparisonGroup, compute_comparison
from training_core.metrics_courses import compute_course_analysis
from training_core.metrics_engagement import compute_engagement
from training_core.metrics_insights import (
    at_risk_trainees,
    compute_insights,
    courses_needing_attention,
    top_improvers,
    top_performing_courses,
)
from training_core.metrics_leaderboard import LEADERBOARD_ROWS_PER_PAGE, top_branches, top_supervisors, top_trainees
from training_core.metrics_learner import (
    COMPLETED_COLUMN_TYPES,
    COMPLETED_ROWS_PER_PAGE,
    completed_courses,
    compute_learner_performance,
)
from training_core.metrics_overview import compute_overview
from training_core.metrics_trends import compute_trends
from training_core.table import ColumnType, DataTable, SortDirection

alt.data_transformers.disable_max_rows()

PAGES = [
    "Overview",
    "Leaderboard",
    "Actionable Insights",
    "Branch Comparison",
    "Course Analysis",
    "Comparison Tool",
    "Learner Performance",
    "Trend Analysis",
    "Engagement vs Performance",
]

THRESHOLD_INPUTS = [
    ("at_risk_completion", "At-risk completion below (%)"),
    ("at_risk_score", "At-risk score below (%)"),
    ("course_attention_completion", "Course attention completion below (%)"),
    ("course_attention_score", "Course attention score below (%)"),
]


# ---------- filter state ----------
def clear_filters():
    for name in SELECTION_COLUMNS:
        st.session_state[name] = []
    st.session_state["time_period_quick"] = "All time"
    st.session_state["time_period_start"] = None
    st.session_state["time_period_end"] = None


def drill_down(filter_name: str, value_key: str):
    """Chart drill-down: narrow one filter to the chosen value, or clear it when chosen again."""
    value = st.session_state.get(value_key)
    if value:
        st.session_state[filter_name] = toggle_single_selection(st.session_state.get(filter_name, []), value)


def render_drill_down(filter_name: str, label: str, values: List[str]):
    if not values:
        return
    c1, c2 = st.columns([4, 1])
    value_key = f"{filter_name}_drill"
    c1.selectbox(f"Drill into {label}", values, key=value_key)
    c2.button("Apply / clear", key=f"{value_key}_apply", on_click=drill_down, args=(filter_name, value_key))


# ---------- UI / layout helpers ----------
def inject_base_styles():
    if st.session_state.get("_base_css_injected"):
        return
    st.markdown(
        """
        <style>
        .app-top-bar {padding: 6px 0 4px;border-bottom: 1px solid #e5e7eb;margin-bottom: 10px;}
        .app-top-bar .breadcrumb {color: #6b7280;font-size: 0.9rem;margin-bottom: 2px;}
        .app-top-bar .page-title {font-size: 1.4rem;font-weight: 700;color: #0072BC;}
        .card {border: 1px solid #e5e7eb;border-radius: 12px;padding: 16px;background: #ffffff;
               box-shadow: 0 1px 2px rgba(0,0,0,0.04); margin-bottom: 12px;}
        .card-title {font-weight: 600;font-size: 1.0rem;color: #111827;}
        .chip {background: #f3f4f6;border: 1px solid #e5e7eb;border-radius: 14px;padding: 4px 10px;font-size: 0.85rem;color: #374151;}
        </style>
        """,
        unsafe_allow_html=True,
    )
    st.session_state["_base_css_injected"] = True


@contextmanager
def card(title: str):
    container = st.container()
    container.markdown(f"<div class='card-title'>{title}</div>", unsafe_allow_html=True)
    body = container.container()
    with body:
        yield body


def render_page_header(title: str, export_df: Optional[pd.DataFrame] = None, export_name: str = "training_data.csv"):
    inject_base_styles()
    c1, c2 = st.columns([8, 2])
    with c1:
        st.markdown(
            f"<div class='app-top-bar'><div class='breadcrumb'>Dashboard / {title}</div><div class='page-title'>{title}</div></div>",
            unsafe_allow_html=True,
        )
    with c2:
        if export_df is not None and not export_df.empty:
            st.download_button("Export CSV", data=frame_to_csv(export_df), file_name=export_name, mime="text/csv")
    chip, reset = st.columns([8, 2])
    chip.markdown(f"<span class='chip'>{active_filter_summary(filters)}</span>", unsafe_allow_html=True)
    if filters_active(filters):
        reset.button("Clear filters", key=f"clear_filters_{title}", on_click=clear_filters)


def render_chart(spec: Optional[Dict[str, Any]], empty_message: str = "No data available for the selected filters."):
    if spec:
        st.vega_lite_chart(spec, use_container_width=True)
    else:
        st.info(empty_message)


def render_table(
    name: str,
    rows: List[Dict[str, Any]],
    *,
    initial_sort_key: Optional[str] = None,
    rows_per_page: int = 10,
    column_types: Optional[Mapping[str, ColumnType]] = None,
    labels: Optional[Dict[str, str]] = None,
):
    """Search / sort / paginate controls over a DataTable kept in session state."""
    key = f"table_{name}"
    table: DataTable = st.session_state.get(key)
    if table is None:
        table = DataTable(rows, initial_sort_key=initial_sort_key, rows_per_page=rows_per_page, column_types=column_types)
        st.session_state[key] = table
    else:
        table.set_items(rows)

    search = st.text_input("Search", value=table.search_term, key=f"{key}_search")
    if search != table.search_term:
        table.set_search(search)

    columns = list(rows[0].keys()) if rows else []
    sort_cols = st.columns([4, 2, 2, 2])
    if columns:
        sort_options = [None] + columns
        current = sort_options.index(table.sort_key) if table.sort_key in columns else 0
        sort_key = sort_cols[0].selectbox(
            "Sort by",
            sort_options,
            index=current,
            key=f"{key}_sort",
            format_func=lambda c: "Unsorted" if c is None else (labels or {}).get(c, c),
        )
        if sort_key != table.sort_key:
            table.set_sort(sort_key, SortDirection.ASCENDING)
        arrow = "▲" if table.sort_direction == SortDirection.ASCENDING else "▼"
        if sort_key and sort_cols[1].button(f"Toggle {arrow}", key=f"{key}_toggle"):
            table.request_sort(sort_key)
    if sort_cols[2].button("Prev", key=f"{key}_prev"):
        table.prev_page()
    if sort_cols[3].button("Next", key=f"{key}_next"):
        table.next_page()

    page_rows = table.paginated_items
    if not page_rows:
        st.info("No results found.")
    else:
        st.dataframe(pd.DataFrame(page_rows).rename(columns=labels or {}), hide_index=True, use_container_width=True)
    st.caption(f"Page {table.current_page} of {table.page_count} ({table.total_items} rows)")
    if table.total_items:
        st.download_button(
            "Export table",
            data=rows_to_csv(table.sorted_items),
            file_name=f"{name}.csv",
            mime="text/csv",
            key=f"{key}_export",
        )


# ---------- UI setup ----------
st.set_page_config(page_title="Training Insights Dashboard", layout="wide")
inject_base_styles()
st.title("Training Insights Dashboard")
st.caption("Completion, assessment and engagement analytics across branches, supervisors and courses.")

try:
    data_ctx = load_dashboard_data()
except DataSourceError as exc:
    st.error(str(exc))
    st.stop()

records: pd.DataFrame = data_ctx["records"]
if records.empty:
    st.error("The training data source has no rows.")
    st.stop()
options = data_ctx["options"]

# ----- Sidebar: navigation + filters -----
with st.sidebar:
    st.markdown("### Navigate")
    current_page = st.radio("Navigate", PAGES, index=0)

    st.markdown("---")
    st.markdown("### Filters")
    selected_branches = st.multiselect("Branch", options=options["branches"], key="selected_branches")
    selected_district_heads = st.multiselect("District Head", options=options["district_heads"], key="selected_district_heads")
    selected_supervisors = st.multiselect("Supervisor", options=options["supervisors"], key="selected_supervisors")
    selected_courses = st.multiselect("Course", options=options["courses"], key="selected_courses")
    selected_course_types = st.multiselect("Course Type", options=options["course_types"], key="selected_course_types")

    quick = st.selectbox(
        "Time period",
        ["All time", "last7", "last30", "thisMonth", "Custom"],
        format_func=lambda v: {"last7": "Last 7 days", "last30": "Last 30 days", "thisMonth": "This month"}.get(v, v),
        key="time_period_quick",
    )
    period = {"start": None, "end": None}
    if quick == "Custom":
        start = st.date_input("Start", value=None, key="time_period_start")
        end = st.date_input("End", value=None, key="time_period_end")
        period = {
            "start": datetime.combine(start, datetime.min.time()) if start else None,
            "end": datetime.combine(end, datetime.max.time()) if end else None,
        }
    elif quick != "All time":
        chosen = quick_select_period(quick)
        period = {"start": chosen.start, "end": chosen.end}

    st.markdown("---")
    thresholds = Thresholds()
    with st.expander("Thresholds", expanded=False):
        for name, label in THRESHOLD_INPUTS:
            raw = st.number_input(label, min_value=0, max_value=100, value=getattr(thresholds, name), step=5, key=name)
            thresholds = thresholds.updated(name, raw)

filters = normalize_filters(
    {
        "selected_branches": selected_branches,
        "selected_district_heads": selected_district_heads,
        "selected_supervisors": selected_supervisors,
        "selected_courses": selected_courses,
        "selected_course_types": selected_course_types,
        "time_period": period,
        "thresholds": asdict(thresholds),
    }
)
ctx = prepare_context(filters, data_ctx)
filtered: pd.DataFrame = ctx["filtered"]


def render_overview_page():
    render_page_header("Overview", export_df=filtered)
    payload = compute_overview(filters, ctx)
    kpis = payload["kpis"]
    change = kpis["avg_completion_change"]
    cols = st.columns(4)
    cols[0].metric("Total Learners", f"{kpis['total_learners']:,}")
    cols[1].metric(
        "Avg. Completion",
        f"{kpis['avg_completion']}%",
        delta=change["text"],
        delta_color="off" if change["direction"] == "neutral" else "normal",
    )
    cols[2].metric("Active / Inactive", f"{kpis['active_learners']} / {kpis['inactive_learners']}")
    cols[3].metric("Score Improvement", f"{kpis['improvement']}%")
    spark_cols = st.columns(3)
    for col, key in zip(spark_cols, ["learners", "completion", "improvement"]):
        with col:
            if payload["charts"][key]:
                st.vega_lite_chart(payload["charts"][key])


def render_leaderboard_page():
    render_page_header("Leaderboard", export_df=filtered)
    cols = st.columns(3)
    with cols[0]:
        with card("Top Trainees"):
            render_table("top_trainees", top_trainees(filtered), initial_sort_key="avg_score", rows_per_page=LEADERBOARD_ROWS_PER_PAGE)
    with cols[1]:
        with card("Top Branches"):
            render_table("top_branches", top_branches(filtered), initial_sort_key="avg_rate", rows_per_page=LEADERBOARD_ROWS_PER_PAGE)
    with cols[2]:
        with card("Top Supervisors"):
            render_table("top_supervisors", top_supervisors(filtered), initial_sort_key="avg_rate", rows_per_page=LEADERBOARD_ROWS_PER_PAGE)


def render_insights_page():
    render_page_header("Actionable Insights", export_df=filtered)
    thresholds = filters.thresholds
    kpis = compute_insights(filters, ctx)["kpis"]
    cols = st.columns(3)
    cols[0].metric("At-Risk Trainees", kpis["at_risk_trainees"])
    cols[1].metric("Courses Needing Attention", kpis["courses_needing_attention"])
    cols[2].metric("Improvers", kpis["improvers"])
    with card(f"At-Risk Trainees (completion < {thresholds.at_risk_completion}% or score < {thresholds.at_risk_score}%)"):
        render_table("at_risk_trainees", at_risk_trainees(filtered, thresholds))
    with card("Courses Needing Attention"):
        render_table("courses_needing_attention", courses_needing_attention(filtered, thresholds), initial_sort_key="avg_completion")
    cols = st.columns(2)
    with cols[0]:
        with card("Top Improvers"):
            render_table("top_improvers", top_improvers(filtered), initial_sort_key="avg_improvement")
    with cols[1]:
        with card("Top Performing Courses"):
            render_table("top_performing_courses", top_performing_courses(filtered), initial_sort_key="performance_score")


def render_branch_page():
    render_page_header("Branch Comparison", export_df=filtered)
    c1, c2 = st.columns(2)
    sort_by = c1.radio(
        "Sort by", ["completion_rate", "quiz_score"], horizontal=True,
        format_func=lambda v: "Completion Rate" if v == "completion_rate" else "Quiz Score",
    )
    view = c2.radio(
        "View", ["all", "top5", "bottom5"], horizontal=True,
        format_func=lambda v: {"all": "All", "top5": "Top 5", "bottom5": "Bottom 5"}[v],
    )
    payload = compute_branch_comparison(filters, ctx, sort_by=sort_by, view=view)
    averages = payload["company_averages"]
    cols = st.columns(2)
    cols[0].metric("Company Avg. Completion", f"{averages['completion']:.1f}%")
    cols[1].metric("Company Avg. Quiz Score", f"{averages['score']:.1f}%")
    with card("Branch Performance"):
        render_chart(payload["charts"].get("branch_performance"))
        render_drill_down("selected_branches", "branch", [row["name"] for row in payload["branches"]])


def render_course_page():
    render_page_header("Course Analysis", export_df=filtered)
    low_sort = st.radio(
        "Low performing courses by", ["completion", "score", "learners"], horizontal=True,
        format_func=str.capitalize,
    )
    payload = compute_course_analysis(filters, ctx, low_perf_sort_by=low_sort)
    charts = payload["charts"]
    cols = st.columns(2)
    with cols[0]:
        with card("Course Type Distribution"):
            render_chart(charts.get("course_types"))
        with card("Top 5 Courses by Completion"):
            render_chart(charts.get("top_courses"))
            render_drill_down("selected_courses", "course", [row["name"] for row in payload["top_courses"]])
    with cols[1]:
        with card("Low Performing Courses"):
            render_chart(charts.get("low_performing"))
        with card("Average Scores per Course"):
            render_chart(charts.get("avg_scores"))


def render_comparison_page():
    render_page_header("Comparison Tool")
    labels = {"branch": "Branch", "district_head": "District Head", "supervisor": "Supervisor"}
    groups = {}
    cols = st.columns(2)
    for col, key in zip(cols, ["group_a", "group_b"]):
        with col:
            category = st.selectbox(f"{key[-1].upper()}: category", COMPARISON_CATEGORIES, format_func=labels.get, key=f"{key}_cat")
            values = sorted(v for v in records[category].unique() if v)
            value = st.selectbox(f"{key[-1].upper()}: value", [""] + values, key=f"{key}_val")
            groups[key] = ComparisonGroup(category=category, value=value or None)
    payload = compute_comparison(filters, ctx, group_a=groups["group_a"], group_b=groups["group_b"])
    for col, key in zip(cols, ["group_a", "group_b"]):
        kpis = payload[key]["kpis"]
        with col:
            with card(payload[key]["value"] or "Select a group"):
                st.metric("Total Learners", kpis["total_learners"])
                st.metric("Avg. Completion", f"{kpis['avg_completion']:.1f}%")
                st.metric("Avg. Post Score", f"{kpis['avg_post_score']:.1f}%")
                st.metric("Score Improvement", f"{kpis['improvement']:.1f}%")
                st.metric("Training Hours", f"{kpis['total_hours']:,.1f}")


def render_learner_page():
    render_page_header("Learner Performance")
    directory = compute_learner_performance(filters, ctx)["learners"]
    choices = [""] + [l["email"] for l in directory]
    names = {l["email"]: f"{l['name']} ({l['email']})" for l in directory}
    cols = st.columns(2)
    email = cols[0].selectbox("Learner", choices, format_func=lambda e: names.get(e, "Select a learner"))
    compare_email = cols[1].selectbox("Compare with", choices, format_func=lambda e: names.get(e, "None"), key="compare")
    payload = compute_learner_performance(filters, ctx, email=email or None, compare_email=compare_email or None)
    if not email:
        st.info("Select a learner to see their progress.")
        return
    cols = st.columns(3)
    cols[0].metric("Learner Avg. Score", f"{payload['learner_average']:.1f}%")
    cols[1].metric("Company Avg. Score", f"{payload['company_average']:.1f}%")
    cols[2].metric("Top Performer", "Yes" if payload["is_top_performer"] else "No")
    with card("Progress Over Time"):
        render_chart(payload["charts"]["progress"])
    with card("Completed Courses"):
        render_table(
            f"completed_courses_{email}",
            completed_courses(records, email),
            initial_sort_key="completion_date",
            rows_per_page=COMPLETED_ROWS_PER_PAGE,
            column_types=COMPLETED_COLUMN_TYPES,
            labels={"course_title": "Course Title", "completion_date": "Completion Date", "post_assessment_score": "Score (%)"},
        )


def render_trends_page():
    render_page_header("Trend Analysis", export_df=filtered)
    show_ma = st.checkbox("Show 3-Month MA", value=True)
    payload = compute_trends(filters, ctx, show_moving_average=show_ma)
    if filtered.empty:
        st.info("No data available for the selected filters.")
        return
    if not payload["enough_data"]:
        st.info("Not enough data for a trend. At least two months of records are needed.")
        return
    with card("Completion Rate Over Time"):
        render_chart(payload["charts"]["completion"])
    with card("Training Hours Over Time"):
        render_chart(payload["charts"]["hours"])


def render_engagement_page():
    render_page_header("Engagement vs Performance", export_df=filtered)
    payload = compute_engagement(filters, ctx)
    cols = st.columns(2)
    cols[0].metric("Avg. Training Hours", f"{payload['avg_engagement']:.1f}")
    cols[1].metric("Avg. Post Score", f"{payload['avg_performance']:.1f}%")
    with card("Hours vs Post-Assessment Score"):
        render_chart(payload["charts"].get("engagement"))


RENDERERS = {
    "Overview": render_overview_page,
    "Leaderboard": render_leaderboard_page,
    "Actionable Insights": render_insights_page,
    "Branch Comparison": render_branch_page,
    "Course Analysis": render_course_page,
    "Comparison Tool": render_comparison_page,
    "Learner Performance": render_learner_page,
    "Trend Analysis": render_trends_page,
    "Engagement vs Performance": render_engagement_page,
}

RENDERERS.get(current_page, render_overview_page)()
