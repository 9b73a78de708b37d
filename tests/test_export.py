"""Unit tests for CSV export."""

import unittest
from datetime import datetime

from training_core.export import frame_to_csv, rows_to_csv
from tests.fixtures.sample_data import make_frame


class TestRowsToCsv(unittest.TestCase):
    def test_formats_cells(self):
        rows = [
            {"name": "Ann", "score": 85.0, "ratio": 0.5, "date": datetime(2024, 1, 5), "note": None},
        ]
        text = rows_to_csv(rows).decode("utf-8")
        self.assertEqual(text, "name,score,ratio,date,note\nAnn,85,0.5,1/5/2024,\n")

    def test_empty_rows(self):
        self.assertEqual(rows_to_csv([]), b"")

    def test_callable_columns_dropped(self):
        rows = [{"name": "Ann", "action": print}]
        self.assertEqual(rows_to_csv(rows).decode("utf-8"), "name\nAnn\n")

    def test_explicit_columns(self):
        rows = [{"a": 1, "b": 2}]
        self.assertEqual(rows_to_csv(rows, ["b"]).decode("utf-8"), "b\n2\n")

    def test_values_with_commas_are_quoted(self):
        rows = [{"reasons": "Completion < 30% on 'X'; Score < 50% on 'Y, Z'"}]
        self.assertIn('"Completion < 30% on \'X\'; Score < 50% on \'Y, Z\'"', rows_to_csv(rows).decode("utf-8"))

    def test_frame_to_csv(self):
        text = frame_to_csv(make_frame({"trainee_name": "Ann"})).decode("utf-8")
        header, first = text.splitlines()[:2]
        self.assertTrue(header.startswith("id,trainee_name,email"))
        self.assertIn("1/15/2024", first)


if __name__ == "__main__":
    unittest.main()
