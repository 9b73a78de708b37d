"""Unit tests for record loading and shared helpers in training_core.data."""

import io
import os
import shutil
import tempfile
import unittest
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

import pandas as pd

from training_core import data
from training_core.data import (
    DataSourceError,
    TrainingRecord,
    CourseType,
    filter_options,
    load_dashboard_data,
    load_training_records,
    parse_training_frame,
    rank_by,
    records_to_frame,
    round_half_up,
    safe_div,
)
from tests.fixtures.sample_data import sample_frame

HEADER = (
    "Trainee Name,Email,Branch,District Head,Supervisor,Course Title,Completion Rate (%),"
    "Pre-Assessment Score,Post-Assessment Score,Average Quiz Score,Course Type,Completion Date,Training Hours\n"
)
SHEET = HEADER + (
    "Ann,ann@example.com,North,Dana,Sam,Safety,85%,40,abc,70,Mandatory,2024-01-15,1.5\n"
    "Bob,bob@example.com,South,Dana,Sue,Ethics,100,,90,80,mandatory,not a date,2\n"
)


def _raw(text):
    return pd.read_csv(io.StringIO(text), dtype=str, keep_default_na=False)


class TestParseTrainingFrame(unittest.TestCase):
    def setUp(self):
        self.now = datetime(2024, 6, 1, 12, 0)
        with self.assertLogs("training_core.data", level="WARNING") as logs:
            self.records = parse_training_frame(_raw(SHEET), now=self.now)
        self.logs = logs.output

    def test_ids_assigned_in_order(self):
        self.assertEqual(self.records["id"].tolist(), [1, 2])

    def test_numeric_fields_use_leading_number(self):
        self.assertEqual(self.records["completion_rate"].tolist(), [85.0, 100.0])
        self.assertEqual(self.records["post_assessment_score"].tolist(), [0.0, 90.0])
        self.assertEqual(self.records["pre_assessment_score"].tolist(), [40.0, 0.0])

    def test_course_type_is_mandatory_only_on_exact_match(self):
        self.assertEqual(self.records["course_type"].tolist(), ["Mandatory", "Optional"])

    def test_invalid_date_falls_back_to_load_time(self):
        self.assertEqual(self.records["completion_date"].iloc[0], pd.Timestamp(2024, 1, 15))
        self.assertEqual(self.records["completion_date"].iloc[1], pd.Timestamp(self.now))
        self.assertTrue(any("Invalid completion date" in line for line in self.logs))

    def test_missing_columns_become_defaults(self):
        raw = _raw("Trainee Name,Email\nZed,zed@example.com\n")
        records = parse_training_frame(raw, now=self.now)
        self.assertEqual(records["branch"].tolist(), [""])
        self.assertEqual(records["training_hours"].tolist(), [0.0])
        self.assertEqual(records["course_type"].tolist(), ["Optional"])


class TestLoaders(unittest.TestCase):
    def setUp(self):
        self.test_dir = Path(tempfile.mkdtemp())

    def tearDown(self):
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def test_load_training_records_from_file(self):
        path = self.test_dir / "training.csv"
        path.write_text(HEADER + "Ann,ann@example.com,North,Dana,Sam,Safety,85,40,60,70,Mandatory,2024-01-15,1.5\n")
        with self.assertLogs("training_core.data", level="INFO"):
            records = load_training_records(str(path))
        self.assertEqual(len(records), 1)
        self.assertEqual(records["trainee_name"].iloc[0], "Ann")

    def test_missing_file_raises_data_source_error(self):
        with self.assertRaises(DataSourceError):
            load_training_records(str(self.test_dir / "missing.csv"))

    def test_data_dir_fallback(self):
        (self.test_dir / "export.csv").write_text(HEADER)
        with patch.dict(os.environ, {"TRAINING_DATA_URL": "", "TRAINING_DATA_DIR": str(self.test_dir)}):
            self.assertEqual(data.get_data_source(), str(self.test_dir / "export.csv"))

    def test_url_takes_precedence(self):
        with patch.dict(os.environ, {"TRAINING_DATA_URL": "https://example.com/sheet.csv"}):
            self.assertEqual(data.get_data_source(), "https://example.com/sheet.csv")

    def test_no_source_configured(self):
        with patch("training_core.data.get_data_source", return_value=None):
            with self.assertRaises(DataSourceError) as context:
                load_dashboard_data()
        self.assertIn("TRAINING_DATA_URL", str(context.exception))


class TestHelpers(unittest.TestCase):
    def test_round_half_up_uses_exact_binary_value(self):
        self.assertEqual(round_half_up(0.25, 1), 0.3)
        self.assertEqual(round_half_up(2.675, 2), 2.67)
        self.assertEqual(round_half_up(85.0, 1), 85.0)
        self.assertIsNone(round_half_up(None))

    def test_safe_div(self):
        self.assertEqual(safe_div(5, 0), 0.0)
        self.assertEqual(safe_div(5, 2), 2.5)

    def test_rank_by_keeps_tie_order(self):
        df = pd.DataFrame({"name": ["a", "b", "c"], "score": [95.0, 80.0, 95.0]})
        ranked = rank_by(df, "score")
        self.assertEqual(ranked["name"].tolist(), ["a", "c", "b"])
        self.assertEqual(ranked["rank"].tolist(), [1, 2, 3])

    def test_records_to_frame_accepts_dataclasses(self):
        record = TrainingRecord(
            id=7,
            trainee_name="Ann",
            email="ann@example.com",
            branch="North",
            district_head="Dana",
            supervisor="Sam",
            course_title="Safety",
            completion_rate=90.0,
            pre_assessment_score=40.0,
            post_assessment_score=80.0,
            average_quiz_score=70.0,
            course_type=CourseType.OPTIONAL,
            completion_date=datetime(2024, 1, 1),
            training_hours=1.0,
        )
        df = records_to_frame([record])
        self.assertEqual(df["course_type"].iloc[0], "Optional")
        self.assertEqual(df["id"].iloc[0], 7)

    def test_filter_options(self):
        options = filter_options(sample_frame())
        self.assertEqual(options["branches"], ["North Pharmacy", "South Health"])
        self.assertEqual(options["supervisors"], ["Sam Super", "Sue Super"])
        self.assertEqual(options["courses"], ["Ethics", "Safety 101"])
        self.assertEqual(options["course_types"], ["Mandatory", "Optional"])


if __name__ == "__main__":
    unittest.main()
