"""Unit tests for branch, course, comparison, trend, engagement, overview and learner views."""

import unittest
from datetime import datetime

from training_core.charts import STATUS_HIGH, STATUS_LOW, STATUS_MID, status_color
from training_core.filters import DashboardFilters, normalize_filters
from training_core.data import prepare_context
from training_core.metrics_branches import branch_stats, company_averages, compute_branch_comparison, display_branch_name
from training_core.metrics_comparison import ComparisonGroup, compute_comparison, group_kpis, select_group
from training_core.metrics_courses import (
    compute_course_analysis,
    course_stats,
    course_type_counts,
    low_performing_courses,
    top_courses_by_completion,
)
from training_core.metrics_engagement import compute_engagement, engagement_scatter
from training_core.metrics_learner import (
    company_average_score,
    completed_courses,
    compute_learner_performance,
    learner_directory,
    learner_progress,
)
from training_core.metrics_overview import overview_stats, round_half_toward_positive, sparkline
from training_core.metrics_trends import compute_trends, monthly_trends, moving_average
from tests.fixtures.sample_data import make_frame, sample_data_ctx, sample_frame


class TestBranchComparison(unittest.TestCase):
    def test_display_name_strips_suffixes(self):
        self.assertEqual(display_branch_name("North Pharmacy"), "North")
        self.assertEqual(display_branch_name("Eastside Health Meds"), "Eastside")
        self.assertEqual(display_branch_name("Central"), "Central")

    def test_branch_stats(self):
        rows = branch_stats(sample_frame())
        self.assertEqual([r["display_name"] for r in rows], ["North", "South"])
        self.assertEqual(rows[0]["completion_rate"], 90.0)
        self.assertEqual(rows[1]["quiz_score"], 47.5)

    def test_views(self):
        records = make_frame(*[{"branch": f"B{i}", "completion_rate": i * 10} for i in range(1, 8)])
        top = branch_stats(records, view="top5")
        bottom = branch_stats(records, view="bottom5")
        self.assertEqual([r["name"] for r in top], ["B7", "B6", "B5", "B4", "B3"])
        self.assertEqual([r["name"] for r in bottom], ["B5", "B4", "B3", "B2", "B1"])

    def test_company_averages(self):
        self.assertEqual(company_averages(make_frame()), {"completion": 0.0, "score": 0.0})
        self.assertEqual(company_averages(sample_frame())["completion"], 52.0)

    def test_compute_uses_unfiltered_averages(self):
        ctx = prepare_context({"selected_branches": ["North Pharmacy"]}, sample_data_ctx())
        payload = compute_branch_comparison(ctx["filters"], ctx, sort_by="quiz_score")
        self.assertEqual(payload["company_averages"]["completion"], 52.0)
        self.assertEqual([b["name"] for b in payload["branches"]], ["North Pharmacy"])
        self.assertIn("branch_performance", payload["charts"])


class TestCourseAnalysis(unittest.TestCase):
    def test_course_stats_first_seen_order(self):
        rows = course_stats(sample_frame())
        self.assertEqual([r["name"] for r in rows], ["Safety 101", "Ethics"])
        self.assertEqual(rows[0]["completion"], 40.0)
        self.assertEqual(rows[0]["learners"], 3)
        self.assertEqual(rows[1]["score"], 60.0)

    def test_blank_course_title_is_its_own_course(self):
        rows = course_stats(make_frame({"course_title": ""}, {"course_title": "A"}))
        self.assertEqual([r["name"] for r in rows], ["", "A"])

    def test_course_type_counts_always_list_both(self):
        self.assertEqual(
            course_type_counts(make_frame({"course_type": "Mandatory"})),
            [{"name": "Mandatory", "training_records": 1}, {"name": "Optional", "training_records": 0}],
        )
        counts = course_type_counts(sample_frame())
        self.assertEqual([c["training_records"] for c in counts], [3, 2])

    def test_rankings(self):
        rows = [
            {"name": "a", "completion": 50.0, "score": 90.0, "learners": 3},
            {"name": "b", "completion": 90.0, "score": 40.0, "learners": 1},
            {"name": "c", "completion": 70.0, "score": 60.0, "learners": 2},
        ]
        self.assertEqual([r["name"] for r in top_courses_by_completion(rows)], ["b", "c", "a"])
        self.assertEqual([r["name"] for r in low_performing_courses(rows, "score")], ["b", "c", "a"])
        self.assertEqual([r["name"] for r in low_performing_courses(rows, "learners")], ["b", "c", "a"])
        self.assertEqual([r["name"] for r in low_performing_courses(rows, "completion", limit=1)], ["a"])

    def test_status_colors(self):
        self.assertEqual(status_color(59, (60, 75)), STATUS_LOW)
        self.assertEqual(status_color(60, (60, 75)), STATUS_MID)
        self.assertEqual(status_color(75, (60, 75)), STATUS_HIGH)

    def test_compute_course_analysis(self):
        records = sample_frame()
        payload = compute_course_analysis(DashboardFilters(), {"filtered": records}, low_perf_sort_by="learners")
        self.assertEqual(payload["low_performing_courses"][0]["name"], "Ethics")
        self.assertEqual(set(payload["charts"]), {"course_types", "top_courses", "low_performing", "avg_scores"})

    def test_empty_course_analysis(self):
        payload = compute_course_analysis(DashboardFilters(), {"filtered": make_frame()})
        self.assertEqual(payload["top_courses"], [])
        self.assertEqual(payload["charts"], {})


class TestComparison(unittest.TestCase):
    def test_group_kpis(self):
        group = select_group(sample_frame(), ComparisonGroup("branch", "South Health"))
        kpis = group_kpis(group)
        self.assertEqual(kpis["total_learners"], 2)
        self.assertEqual(kpis["avg_completion"], 40.0)
        self.assertEqual(kpis["avg_post_score"], 45.0)
        self.assertEqual(kpis["improvement"], 12.5)
        self.assertEqual(kpis["total_hours"], 5.0)
        self.assertEqual(kpis["record_count"], 2)

    def test_unset_group_is_empty(self):
        self.assertTrue(select_group(sample_frame(), ComparisonGroup("branch", None)).empty)
        self.assertEqual(group_kpis(select_group(sample_frame(), ComparisonGroup()))["record_count"], 0)

    def test_unknown_category(self):
        with self.assertRaises(ValueError):
            select_group(sample_frame(), ComparisonGroup("course_title", "Ethics"))

    def test_compute_comparison_ignores_filters(self):
        ctx = prepare_context({"selected_branches": ["North Pharmacy"]}, sample_data_ctx())
        payload = compute_comparison(
            ctx["filters"],
            ctx,
            group_a=ComparisonGroup("supervisor", "Sue Super"),
            group_b=ComparisonGroup("district_head", "Dana Head"),
        )
        self.assertEqual(payload["group_a"]["kpis"]["record_count"], 2)
        self.assertEqual(payload["group_b"]["kpis"]["record_count"], 3)
        self.assertEqual(payload["categories"]["branch"], ["North Pharmacy", "South Health"])


class TestTrends(unittest.TestCase):
    def test_moving_average(self):
        self.assertEqual(moving_average([50, 60, 70, 80, 90]), [None, None, 60, 70, 80])
        self.assertEqual(moving_average([50, 60]), [None, None])

    def test_monthly_buckets_are_chronological(self):
        rows = monthly_trends(sample_frame())
        self.assertEqual([r["month"] for r in rows], ["Dec 2023", "Jan 2024", "Feb 2024"])
        self.assertEqual([r["avg_completion"] for r in rows], [100.0, 50.0, 30.0])
        self.assertEqual([r["training_hours"] for r in rows], [3.0, 3.0, 4.0])
        self.assertEqual([r["moving_average"] for r in rows], [None, None, 60.0])

    def test_not_enough_data(self):
        payload = compute_trends(DashboardFilters(), {"filtered": make_frame({})})
        self.assertFalse(payload["enough_data"])
        self.assertEqual(payload["charts"], {})
        self.assertEqual(payload["months"][0]["moving_average"], None)


class TestEngagement(unittest.TestCase):
    def test_points_average_in_zero_scores(self):
        records = make_frame(
            {"trainee_name": "A", "post_assessment_score": 0, "training_hours": 1},
            {"trainee_name": "A", "post_assessment_score": 80, "training_hours": 2},
        )
        points = engagement_scatter(records)
        self.assertEqual(points, [{"name": "A", "x": 3.0, "y": 40.0, "z": 100, "record_count": 2}])

    def test_compute_engagement_averages(self):
        records = sample_frame()
        payload = compute_engagement(DashboardFilters(), {"filtered": records})
        self.assertEqual(payload["avg_engagement"], 2.5)
        self.assertEqual(payload["avg_performance"], 31.25)
        self.assertIn("engagement", payload["charts"])

    def test_empty(self):
        payload = compute_engagement(DashboardFilters(), {"filtered": make_frame()})
        self.assertEqual((payload["avg_engagement"], payload["avg_performance"]), (0.0, 0.0))


class TestOverview(unittest.TestCase):
    def test_stats_against_itself(self):
        records = sample_frame()
        stats = overview_stats(records, records)
        self.assertEqual(stats["total_learners"], 4)
        self.assertEqual(stats["avg_completion"], 52)
        self.assertEqual((stats["active_learners"], stats["inactive_learners"]), (3, 1))
        self.assertEqual(stats["improvement"], 37)
        self.assertEqual(stats["avg_completion_change"], {"text": "Matches company avg", "direction": "neutral"})
        self.assertEqual(stats["sparklines"]["completion"], [100.0, 80.0, 20.0, 60.0, 0.0])

    def test_change_against_company(self):
        records = sample_frame()
        filtered = records[records["branch"] == "North Pharmacy"]
        change = overview_stats(filtered, records)["avg_completion_change"]
        self.assertEqual(change, {"text": "+38.0% vs company avg", "direction": "up"})
        south = records[records["branch"] == "South Health"]
        self.assertEqual(overview_stats(south, records)["avg_completion_change"]["text"], "-12.0% vs company avg")

    def test_empty(self):
        stats = overview_stats(make_frame(), sample_frame())
        self.assertEqual(stats["avg_completion_change"]["text"], "N/A")
        self.assertEqual(stats["sparklines"]["learners"], [])

    def test_sparkline_needs_two_points(self):
        self.assertEqual(sparkline(make_frame({}), "completion_rate"), [])

    def test_rounding_matches_display(self):
        self.assertEqual(round_half_toward_positive(2.5), 3)
        self.assertEqual(round_half_toward_positive(-2.5), -2)


class TestLearnerPerformance(unittest.TestCase):
    def test_directory(self):
        records = make_frame(
            {"email": "z@x.com", "trainee_name": "Zed"},
            {"email": "a@x.com", "trainee_name": "amy"},
            {"email": "z@x.com", "trainee_name": "Zeddy"},
            {"email": "", "trainee_name": "Nobody"},
        )
        self.assertEqual(
            learner_directory(records),
            [{"email": "a@x.com", "name": "amy"}, {"email": "z@x.com", "name": "Zed"}],
        )

    def test_progress_union_of_dates(self):
        points = learner_progress(sample_frame(), "alice@example.com", "bob@example.com")
        self.assertEqual([p["date"] for p in points], ["2023-12-05", "2024-01-10", "2024-01-20"])
        self.assertEqual(points[0]["learner1_score"], 90.0)
        self.assertIsNone(points[0]["learner2_score"])
        self.assertEqual(points[2]["learner2_course"], "Safety 101")
        self.assertEqual(learner_progress(sample_frame(), None), [])

    def test_completed_courses_and_averages(self):
        records = sample_frame()
        courses = completed_courses(records, "alice@example.com")
        self.assertEqual([c["course_title"] for c in courses], ["Safety 101", "Ethics"])
        self.assertEqual(completed_courses(records, "bob@example.com"), [])
        self.assertEqual(company_average_score(records), 41.0)

    def test_compute_learner_performance_reads_all_records(self):
        ctx = prepare_context(normalize_filters({"selected_branches": ["South Health"]}), sample_data_ctx())
        payload = compute_learner_performance(ctx["filters"], ctx, email="alice@example.com")
        self.assertEqual(payload["selected"]["name"], "Alice")
        self.assertEqual(payload["learner_average"], 80.0)
        self.assertFalse(payload["is_top_performer"])
        table = payload["tables"]["completed_courses"]
        self.assertEqual(table["rows_per_page"], 5)
        self.assertEqual(table["items"][0]["course_title"], "Ethics")
        self.assertEqual(table["items"][0]["completion_date"], datetime(2024, 1, 10))


if __name__ == "__main__":
    unittest.main()
