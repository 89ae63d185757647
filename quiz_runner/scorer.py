"""
Scoring and review derived from a quiz session.
"""
from typing import List

from .models import AnswerRecord, QuizSummary, ReviewOption
from .quiz_session import QuizSession


def percentage(correct: int, total: int) -> int:
    """
    Whole-number percentage with halves rounded up.

    Integer arithmetic keeps 1/8 at 13 rather than banker's-rounding to 12.
    """
    if total <= 0:
        raise ValueError("Percentage is undefined for zero questions")
    return (200 * correct + total) // (2 * total)


def summarize(session: QuizSession) -> QuizSummary:
    """
    Build the results of a quiz session.

    Args:
        session: A started session, normally finished

    Returns:
        QuizSummary with the review in original question order

    Raises:
        ValueError: If the session has no questions
    """
    total = len(session.questions)
    correct = session.score
    return QuizSummary(
        percentage=percentage(correct, total),
        correct_count=correct,
        incorrect_count=total - correct,
        total_questions=total,
        review=session.answers,
    )


def review_options(record: AnswerRecord) -> List[ReviewOption]:
    """Mark each presented option of a reviewed question."""
    marked = []
    for option in record.options:
        is_correct_answer = option == record.correct_answer
        is_user_answer = record.user_answer is not None and option == record.user_answer
        if is_correct_answer:
            mark = "correct"
        elif is_user_answer and not record.is_correct:
            mark = "wrong"
        else:
            mark = None
        marked.append(ReviewOption(
            text=option,
            is_correct_answer=is_correct_answer,
            is_user_answer=is_user_answer,
            mark=mark,
        ))
    return marked
