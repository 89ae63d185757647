"""
Unit tests for DataManager class.
"""
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from quiz_runner.data_manager import DataManager
from quiz_runner.models import Question
from tests.test_fixtures import TestFixtures


class TestDataManager(unittest.TestCase):
    """Test cases for DataManager functionality."""

    def setUp(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        TestFixtures.write_source(self.temp_dir, "one.json", [
            TestFixtures.create_record("Q1?", difficulty="easy"),
            TestFixtures.create_record("Q2?", difficulty="Hard"),
        ])
        TestFixtures.write_source(self.temp_dir, "two.json", [
            TestFixtures.create_record("Q3?", difficulty="medium"),
            TestFixtures.create_record("Flag?", kind="image_mcq"),
        ])

    def tearDown(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def make_manager(self, sources, allow_partial=False):
        return DataManager(self.temp_dir, sources, allow_partial=allow_partial)

    def test_load_concatenates_sources_in_order(self):
        """Test that every source is read and kept in order."""
        dm = self.make_manager(["one.json", "two.json"])

        questions = dm.load_all()

        self.assertEqual([q.question for q in questions], ["Q1?", "Q2?", "Q3?"])
        self.assertFalse(dm.has_load_errors())
        self.assertIsInstance(questions[0], Question)
        self.assertEqual(questions[0].options, ("A", "B", "C"))

    def test_other_question_kinds_are_discarded(self):
        dm = self.make_manager(["two.json"])

        questions = dm.load_all()

        self.assertEqual([q.question for q in questions], ["Q3?"])
        self.assertEqual(dm.skipped_records, 0)

    def test_missing_source_empties_result(self):
        """Test that one failing source fails the whole load by default."""
        dm = self.make_manager(["one.json", "missing.json"])

        questions = dm.load_all()

        self.assertEqual(questions, [])
        self.assertEqual(dm.get_questions(), [])
        self.assertTrue(dm.has_load_errors())
        self.assertIn("missing.json", dm.get_load_errors()[0])

    def test_partial_load_keeps_healthy_sources(self):
        dm = self.make_manager(["one.json", "missing.json", "two.json"], allow_partial=True)

        questions = dm.load_all()

        self.assertEqual(len(questions), 3)
        self.assertEqual(len(dm.get_load_errors()), 1)

    def test_invalid_json_is_a_load_error(self):
        TestFixtures.write_source(self.temp_dir, "broken.json", "{ invalid json ")
        dm = self.make_manager(["broken.json"])

        self.assertEqual(dm.load_all(), [])
        self.assertIn("Invalid JSON", dm.get_load_errors()[0])

    def test_badly_encoded_source_is_a_load_error(self):
        """Test that non-UTF-8 bytes fail the source instead of raising."""
        with open(Path(self.temp_dir) / "latin.json", 'wb') as f:
            f.write(b'[{"question": "\xff\xfe"}]')
        dm = self.make_manager(["one.json", "latin.json"])

        self.assertEqual(dm.load_all(), [])
        self.assertEqual(len(dm.get_load_errors()), 1)
        self.assertIn("Invalid encoding", dm.get_load_errors()[0])

    def test_badly_encoded_source_with_partial_load(self):
        with open(Path(self.temp_dir) / "latin.json", 'wb') as f:
            f.write(b'\xff\xfe[]')
        dm = self.make_manager(["one.json", "latin.json"], allow_partial=True)

        self.assertEqual(len(dm.load_all()), 2)
        self.assertTrue(dm.has_load_errors())

    def test_non_array_source_is_a_load_error(self):
        TestFixtures.write_source(self.temp_dir, "object.json", {"quiz": []})
        dm = self.make_manager(["object.json"])

        self.assertEqual(dm.load_all(), [])
        self.assertIn("JSON array", dm.get_load_errors()[0])

    def test_oversized_source_is_rejected(self):
        dm = self.make_manager(["one.json"])

        with patch("quiz_runner.data_manager.MAX_SOURCE_SIZE", 16):
            self.assertEqual(dm.load_all(), [])
        self.assertIn("too large", dm.get_load_errors()[0])

    def test_malformed_text_mcq_records_are_skipped(self):
        """Test that bad records are dropped without failing the source."""
        bad_correct = TestFixtures.create_record("Bad?", correct_answer="Z")
        missing_options = TestFixtures.create_record("Missing?")
        del missing_options["options"]
        TestFixtures.write_source(self.temp_dir, "mixed.json", [
            TestFixtures.create_record("Good?"),
            bad_correct,
            missing_options,
            "not an object",
        ])
        dm = self.make_manager(["mixed.json"])

        questions = dm.load_all()

        self.assertEqual([q.question for q in questions], ["Good?"])
        self.assertEqual(dm.skipped_records, 3)
        self.assertFalse(dm.has_load_errors())

    def test_validate_record(self):
        record = TestFixtures.create_record()
        self.assertIsNone(DataManager().validate_record(record))

        problems = [
            dict(record, question=""),
            dict(record, options="A,B"),
            dict(record, options=["A"], correct_answer="A"),
            dict(record, options=["A", "A"]),
            dict(record, correct_answer="D"),
            dict(record, category=3),
        ]
        for bad in problems:
            with self.subTest(bad=bad):
                self.assertIsNotNone(DataManager().validate_record(bad))

    def test_no_sources_configured(self):
        dm = self.make_manager([])

        self.assertEqual(dm.load_all(), [])
        self.assertTrue(dm.has_load_errors())

    def test_absolute_source_path(self):
        path = str(Path(self.temp_dir) / "one.json")
        dm = DataManager("/nonexistent", [path])

        self.assertEqual(len(dm.load_all()), 2)

    def test_available_difficulties(self):
        dm = self.make_manager(["one.json", "two.json"])
        dm.load_all()

        self.assertEqual(dm.available_difficulties(), ["easy", "hard", "medium"])

    def test_reload_resets_errors(self):
        dm = self.make_manager(["missing.json"])
        dm.load_all()
        dm.sources = ["one.json"]

        dm.load_all()

        self.assertFalse(dm.has_load_errors())
        self.assertEqual(len(dm.get_questions()), 2)

    def test_loading_summary(self):
        dm = self.make_manager(["one.json", "missing.json"], allow_partial=True)
        dm.load_all()

        summary = dm.get_loading_summary()

        self.assertEqual(summary['total_questions'], 2)
        self.assertTrue(summary['has_errors'])
        self.assertEqual(summary['error_count'], 1)
        self.assertEqual(summary['sources'], ["one.json", "missing.json"])
        self.assertEqual(summary['difficulties'], ["easy", "hard"])

    def test_unicode_content(self):
        TestFixtures.write_source(self.temp_dir, "unicode.json", [
            TestFixtures.create_record("¿Cuál es la capital de España? 🇪🇸", options=("Madrid", "Sevilla"),
                                       correct_answer="Madrid"),
        ])
        dm = self.make_manager(["unicode.json"])

        questions = dm.load_all()

        self.assertEqual(questions[0].question, "¿Cuál es la capital de España? 🇪🇸")


if __name__ == '__main__':
    unittest.main()
