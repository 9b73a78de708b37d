"""API tests through FastAPI's TestClient with the data loader patched."""

import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient

from training_api.main import app
from training_core.data import DataSourceError
from tests.fixtures.sample_data import sample_data_ctx


class TestApi(unittest.TestCase):
    def setUp(self):
        patcher = patch("training_api.main.load_dashboard_data", return_value=sample_data_ctx())
        self.loader = patcher.start()
        self.addCleanup(patcher.stop)
        self.client = TestClient(app)

    def test_meta_options(self):
        response = self.client.get("/meta/options")
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["branches"], ["North Pharmacy", "South Health"])
        self.assertEqual(body["course_types"], ["Mandatory", "Optional"])

    def test_overview(self):
        response = self.client.post("/overview", json={})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["kpis"]["total_learners"], 4)

    def test_overview_with_utc_period(self):
        response = self.client.post("/overview", json={"time_period": {"start": "2024-01-20T00:00:00Z"}})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["kpis"]["total_learners"], 3)

    def test_leaderboard_with_table_query(self):
        response = self.client.post(
            "/leaderboard",
            json={"selected_branches": ["South Health"]},
            params={"table": "top_trainees", "sort_key": "name", "sort_direction": "ascending"},
        )
        self.assertEqual(response.status_code, 200)
        table = response.json()["tables"]["top_trainees"]
        self.assertEqual([r["name"] for r in table["items"]], ["Cara"])
        self.assertEqual(table["sort"], {"key": "name", "direction": "ascending"})

    def test_insights_thresholds(self):
        response = self.client.post("/insights", json={"thresholds": {"at_risk_completion": 10, "at_risk_score": 0}})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["kpis"]["at_risk_trainees"], 1)

    def test_comparison(self):
        response = self.client.post(
            "/comparison",
            json={"group_a": {"category": "branch", "value": "North Pharmacy"}, "group_b": {}},
        )
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["group_a"]["kpis"]["record_count"], 2)
        self.assertEqual(body["group_b"]["kpis"]["record_count"], 0)

    def test_trends_payload_encodes_missing_average(self):
        response = self.client.post("/trends", json={})
        self.assertEqual(response.status_code, 200)
        months = response.json()["months"]
        self.assertIsNone(months[0]["moving_average"])
        self.assertEqual(months[2]["moving_average"], 60.0)

    def test_other_pages(self):
        for path in ("/branch-comparison", "/course-analysis", "/engagement", "/learner"):
            with self.subTest(path=path):
                self.assertEqual(self.client.post(path, json={}).status_code, 200)

    def test_learner(self):
        response = self.client.post("/learner", json={}, params={"email": "alice@example.com"})
        body = response.json()
        self.assertEqual(body["selected"]["name"], "Alice")
        self.assertEqual(body["tables"]["completed_courses"]["total_items"], 2)

    def test_export_records(self):
        response = self.client.post("/export/records", json={"selected_course_types": ["Optional"]})
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.headers["content-type"].startswith("text/csv"))
        lines = response.text.splitlines()
        self.assertTrue(lines[0].startswith("id,trainee_name"))
        self.assertEqual(len(lines), 3)

    def test_export_table(self):
        response = self.client.post("/export/leaderboard", json={}, params={"table": "top_trainees"})
        lines = response.text.splitlines()
        self.assertEqual(lines[0], "rank,email,name,avg_score,course_count,course_info")
        self.assertTrue(lines[1].startswith("1,alice@example.com,Alice,80"))
        self.assertIn("top_trainees.csv", response.headers["content-disposition"])

    def test_loader_failure_returns_error_body(self):
        self.loader.side_effect = DataSourceError("no data")
        with self.assertLogs("training_api.main", level="ERROR"):
            response = self.client.post("/overview", json={})
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"error": "no data", "type": "DataSourceError"})


if __name__ == "__main__":
    unittest.main()
