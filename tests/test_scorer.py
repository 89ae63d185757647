"""
Unit tests for scoring and answer review.
"""
import unittest

from quiz_runner.quiz_session import QuizSession
from quiz_runner.scorer import percentage, review_options, summarize
from tests.test_fixtures import FakeClock, TestFixtures


class TestPercentage(unittest.TestCase):

    def test_whole_results(self):
        self.assertEqual(percentage(7, 10), 70)
        self.assertEqual(percentage(0, 5), 0)
        self.assertEqual(percentage(5, 5), 100)

    def test_rounding(self):
        """Test that halves round up and everything else to nearest."""
        self.assertEqual(percentage(1, 3), 33)
        self.assertEqual(percentage(2, 3), 67)
        self.assertEqual(percentage(1, 8), 13)
        self.assertEqual(percentage(1, 200), 1)

    def test_zero_total_is_rejected(self):
        with self.assertRaises(ValueError):
            percentage(0, 0)


class TestSummarize(unittest.TestCase):

    def test_summary_of_finished_session(self):
        clock = FakeClock()
        session = QuizSession(clock=clock)
        prepared = TestFixtures.create_prepared_questions()[:3]
        session.start(prepared, 10)
        session.submit_answer("4")
        session.advance()
        session.submit_answer("Paris")
        session.advance()
        session.expire()
        session.advance()

        summary = summarize(session)

        self.assertEqual(summary.percentage, 67)
        self.assertEqual(summary.correct_count, 2)
        self.assertEqual(summary.incorrect_count, 1)
        self.assertEqual(summary.total_questions, 3)
        self.assertEqual(summary.fraction, "2/3")
        self.assertEqual(summary.review, session.answers)
        self.assertEqual([r.question_text for r in summary.review], [p.text for p in prepared])

    def test_unanswered_count_as_incorrect(self):
        session = QuizSession(clock=FakeClock())
        session.start(TestFixtures.create_prepared_questions(), 10)
        session.finish()

        summary = summarize(session)

        self.assertEqual(summary.percentage, 0)
        self.assertEqual(summary.incorrect_count, 5)


class TestReviewOptions(unittest.TestCase):

    def test_correct_answer_marked(self):
        record = TestFixtures.create_answer_record(user_answer="4")

        options = review_options(record)

        self.assertEqual([o.text for o in options], ["3", "4", "5"])
        self.assertEqual([o.mark for o in options], [None, "correct", None])
        self.assertTrue(options[1].is_user_answer)
        self.assertTrue(options[1].is_correct_answer)

    def test_wrong_answer_marked(self):
        record = TestFixtures.create_answer_record(user_answer="5")

        options = review_options(record)

        self.assertEqual([o.mark for o in options], [None, "correct", "wrong"])
        self.assertTrue(options[2].is_user_answer)
        self.assertFalse(options[1].is_user_answer)

    def test_unanswered_marks_only_correct_option(self):
        record = TestFixtures.create_answer_record(user_answer=None)

        options = review_options(record)

        self.assertEqual([o.mark for o in options], [None, "correct", None])
        self.assertFalse(any(o.is_user_answer for o in options))


if __name__ == '__main__':
    unittest.main()
