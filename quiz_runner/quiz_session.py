"""
Quiz session state machine.

A session walks a prepared question list one question at a time. Each
question is settled exactly once, either by an accepted answer or by expiry,
and a settled question never changes again.
"""
import logging
import math
import threading
import time
from typing import Callable, List, Optional, Sequence, Tuple

from .models import AnswerRecord, PreparedQuestion, SessionSnapshot, SessionState
from .quiz_engine import timer_level


logger = logging.getLogger(__name__)


class QuizSessionError(Exception):
    """Base exception for quiz session errors."""
    pass


class EmptyQuestionSetError(QuizSessionError):
    """Raised when a session is started without questions."""
    pass


class InvalidSessionStateError(QuizSessionError):
    """Raised when a transition is requested from the wrong state."""
    pass


class QuizSession:
    """
    Owns the run-time sequencing of one quiz attempt.

    All transitions and queries take the same lock, so the "is the current
    question still open" check and the settlement that follows are atomic
    even when answers and timer expiry arrive from different threads.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        """
        Initialize an idle session.

        Args:
            clock: Monotonic time source in seconds
        """
        self._clock = clock
        self._lock = threading.RLock()
        self._state = SessionState.IDLE
        self._questions: Tuple[PreparedQuestion, ...] = ()
        self._answers: List[AnswerRecord] = []
        self._current_index = 0
        self._score = 0
        self._time_per_question = 0
        self._deadline: Optional[float] = None
        self._opened_at: Optional[float] = None

    def start(self, prepared_questions: Sequence[PreparedQuestion], time_per_question_seconds: int) -> None:
        """
        Reset the session and open the first question.

        Args:
            prepared_questions: Questions in presentation order
            time_per_question_seconds: Answer window for every question

        Raises:
            EmptyQuestionSetError: If no questions are given
            ValueError: If the time per question is not positive
        """
        if not prepared_questions:
            raise EmptyQuestionSetError("Cannot start a quiz session without questions")
        if time_per_question_seconds <= 0:
            raise ValueError(
                f"Time per question must be positive, got {time_per_question_seconds}"
            )

        with self._lock:
            self._questions = tuple(prepared_questions)
            self._answers = []
            self._current_index = 0
            self._score = 0
            self._time_per_question = time_per_question_seconds
            self._open_current()

        logger.info(
            f"Quiz session started with {len(self._questions)} questions, "
            f"{time_per_question_seconds}s per question",
            extra={
                'event_type': 'session_started',
                'total_questions': len(self._questions),
                'time_per_question': time_per_question_seconds,
            }
        )

    def submit_answer(self, answer: Optional[str], submitted_at: Optional[float] = None) -> Optional[AnswerRecord]:
        """
        Settle the open question with the user's answer.

        A submission stamped exactly at the deadline is still accepted.

        Args:
            answer: The chosen option text
            submitted_at: Clock reading when the user answered, now if None

        Returns:
            The new AnswerRecord, or None if the question was already closed
        """
        with self._lock:
            if self._state != SessionState.QUESTION_OPEN:
                self._log_ignored("submit_answer", "question already settled")
                return None

            stamp = self._clock() if submitted_at is None else submitted_at
            if stamp > self._deadline:
                self._log_ignored(
                    "submit_answer",
                    f"submitted {stamp - self._deadline:.3f}s after deadline"
                )
                return None

            return self._settle(answer)

    def expire(self) -> Optional[AnswerRecord]:
        """
        Settle the open question as unanswered.

        Returns:
            The new AnswerRecord, or None if the question was already closed
        """
        with self._lock:
            if self._state != SessionState.QUESTION_OPEN:
                self._log_ignored("expire", "question already settled")
                return None
            return self._settle(None)

    def check_deadline(self, now: Optional[float] = None) -> Optional[AnswerRecord]:
        """Expire the open question if its deadline has passed."""
        with self._lock:
            if self._state != SessionState.QUESTION_OPEN:
                return None
            now = self._clock() if now is None else now
            if now > self._deadline:
                return self._settle(None)
            return None

    def restart_answer_window(self) -> None:
        """
        Give the open question its full time again, starting now.

        Used once the question is actually visible to the user.

        Raises:
            InvalidSessionStateError: If no question is open
        """
        with self._lock:
            if self._state != SessionState.QUESTION_OPEN:
                raise InvalidSessionStateError(
                    f"Cannot restart the answer window from state '{self._state.value}'"
                )
            self._open_current()

    def advance(self) -> bool:
        """
        Move past the settled question.

        Returns:
            True if the next question was opened, False if the quiz finished

        Raises:
            InvalidSessionStateError: If the current question is not settled
        """
        with self._lock:
            if self._state != SessionState.QUESTION_CLOSED:
                raise InvalidSessionStateError(
                    f"Cannot advance from state '{self._state.value}'"
                )

            self._current_index += 1
            if self._current_index < len(self._questions):
                self._open_current()
                logger.debug(
                    f"Advanced to question {self._current_index + 1}/{len(self._questions)}"
                )
                return True

            self._mark_finished()
            return False

    def finish(self) -> None:
        """
        End the session, recording every unsettled question as unanswered.

        Raises:
            InvalidSessionStateError: If the session was never started
        """
        with self._lock:
            if self._state == SessionState.FINISHED:
                return
            if self._state == SessionState.IDLE:
                raise InvalidSessionStateError("Cannot finish a session that was never started")

            if self._state == SessionState.QUESTION_OPEN:
                self._settle(None)
            # Questions after the current one were never shown
            for question in self._questions[self._current_index + 1:]:
                self._answers.append(self._make_record(question, None))
            self._current_index = len(self._questions)
            self._mark_finished()

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def questions(self) -> Tuple[PreparedQuestion, ...]:
        return self._questions

    @property
    def answers(self) -> Tuple[AnswerRecord, ...]:
        with self._lock:
            return tuple(self._answers)

    @property
    def score(self) -> int:
        with self._lock:
            return self._score

    @property
    def current_index(self) -> int:
        with self._lock:
            return self._current_index

    @property
    def deadline(self) -> Optional[float]:
        with self._lock:
            return self._deadline

    @property
    def time_per_question(self) -> int:
        return self._time_per_question

    @property
    def current_question(self) -> Optional[PreparedQuestion]:
        with self._lock:
            if self._state in (SessionState.IDLE, SessionState.FINISHED):
                return None
            return self._questions[self._current_index]

    def is_open(self, now: Optional[float] = None) -> bool:
        """Check whether the current question still accepts an answer."""
        with self._lock:
            if self._state != SessionState.QUESTION_OPEN:
                return False
            now = self._clock() if now is None else now
            return now <= self._deadline

    def time_left(self, now: Optional[float] = None) -> float:
        """Seconds until the open question's deadline, 0 once it is settled."""
        with self._lock:
            if self._state != SessionState.QUESTION_OPEN:
                return 0.0
            now = self._clock() if now is None else now
            return max(0.0, self._deadline - now)

    def remaining_seconds(self, now: Optional[float] = None) -> int:
        """Whole seconds left on the open question, rounded up."""
        return math.ceil(self.time_left(now))

    def elapsed_seconds(self, now: Optional[float] = None) -> float:
        """Seconds since the current question was opened."""
        with self._lock:
            if self._opened_at is None or self._state in (SessionState.IDLE, SessionState.FINISHED):
                return 0.0
            now = self._clock() if now is None else now
            return max(0.0, now - self._opened_at)

    def snapshot(self, now: Optional[float] = None) -> SessionSnapshot:
        """Capture a consistent read-only view of the session."""
        with self._lock:
            now = self._clock() if now is None else now
            remaining = self.remaining_seconds(now)
            return SessionSnapshot(
                state=self._state,
                current_index=self._current_index,
                total_questions=len(self._questions),
                score=self._score,
                answered=len(self._answers),
                current_question=self.current_question,
                remaining_seconds=remaining,
                elapsed_seconds=self.elapsed_seconds(now),
                timer_level=timer_level(remaining),
            )

    def _open_current(self) -> None:
        now = self._clock()
        self._opened_at = now
        self._deadline = now + self._time_per_question
        self._state = SessionState.QUESTION_OPEN

    def _settle(self, answer: Optional[str]) -> AnswerRecord:
        question = self._questions[self._current_index]
        record = self._make_record(question, answer)
        self._answers.append(record)
        if record.is_correct:
            self._score += 1
        self._state = SessionState.QUESTION_CLOSED

        logger.debug(
            f"Question {self._current_index + 1} settled: "
            f"{'expired' if answer is None else 'answered'}, correct={record.is_correct}",
            extra={
                'event_type': 'question_settled',
                'question_index': self._current_index,
                'expired': answer is None,
                'is_correct': record.is_correct,
                'score': self._score,
            }
        )
        return record

    @staticmethod
    def _make_record(question: PreparedQuestion, answer: Optional[str]) -> AnswerRecord:
        return AnswerRecord(
            question_text=question.text,
            category=question.category,
            type=question.type,
            user_answer=answer,
            correct_answer=question.correct_answer,
            options=question.shuffled_options,
            is_correct=answer is not None and answer == question.correct_answer,
        )

    def _mark_finished(self) -> None:
        self._state = SessionState.FINISHED
        self._deadline = None
        logger.info(
            f"Quiz session finished with score {self._score}/{len(self._questions)}",
            extra={
                'event_type': 'session_finished',
                'score': self._score,
                'total_questions': len(self._questions),
            }
        )

    def _log_ignored(self, operation: str, reason: str) -> None:
        logger.debug(
            f"Ignored {operation} on question {self._current_index + 1}: {reason}",
            extra={
                'event_type': 'settlement_ignored',
                'operation': operation,
                'question_index': self._current_index,
                'reason': reason,
            }
        )
