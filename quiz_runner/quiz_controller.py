"""
Quiz run controller.
Drives quiz sessions per channel: selection, countdown, answer collection and results.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from .config_manager import ConfigManager
from .data_manager import DataManager
from .models import AnswerRecord, QuizConfig, QuizSummary, SessionSnapshot, TimerLevel
from .quiz_engine import NoMatchingQuestionsError, QuizEngine, timer_level
from .quiz_session import EmptyQuestionSetError, InvalidSessionStateError, QuizSession
from .scorer import summarize


DEFAULT_ADVANCE_DELAY = 0.5

ANSWER_EVENT = "answer"
EXPIRED_EVENT = "expired"


class QuizControllerError(Exception):
    """Base exception for quiz controller errors."""
    pass


class SessionNotFoundError(QuizControllerError):
    """Raised when attempting to operate on a non-existent session."""
    pass


class QuizPresenter:
    """
    Receives what a quiz run wants shown. Every hook is optional.

    Presenters only read the values they are given; they feed user intent
    back through QuizController.submit_answer.
    """

    async def show_question(self, snapshot: SessionSnapshot) -> None:
        pass

    async def update_timer(self, remaining_seconds: int, level: TimerLevel) -> None:
        pass

    async def show_answer_recorded(self, record: AnswerRecord, snapshot: SessionSnapshot) -> None:
        pass

    async def show_results(self, summary: QuizSummary) -> None:
        pass


@dataclass(frozen=True)
class QuizEvent:
    """One input waiting to be applied to a run's session."""
    kind: str
    question_index: int
    answer: Optional[str] = None
    stamped_at: Optional[float] = None


class QuizRun:
    """A session together with everything driving it in one channel."""

    def __init__(
        self,
        channel_id: int,
        session: QuizSession,
        config: QuizConfig,
        presenter: QuizPresenter,
        owner_id: Optional[int] = None
    ):
        self.channel_id = channel_id
        self.session = session
        self.config = config
        self.presenter = presenter
        self.owner_id = owner_id
        self.events: "asyncio.Queue[QuizEvent]" = asyncio.Queue()
        self.task: Optional[asyncio.Task] = None
        self.start_time = datetime.now()

    @property
    def timer_key(self) -> str:
        return str(self.channel_id)


class QuizController:
    """
    Orchestrates quiz runs, at most one per channel.

    Answers and timer expiry for a run are queued and applied by a single
    consumer task, so exactly one of them settles each question. When the
    timer fires, answers already queued are applied first: user input wins
    ties with the deadline.
    """

    def __init__(
        self,
        data_manager: DataManager,
        config_manager: ConfigManager,
        quiz_engine: Optional[QuizEngine] = None,
        advance_delay: float = DEFAULT_ADVANCE_DELAY,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize the quiz controller.

        Args:
            data_manager: Source of loaded questions
            config_manager: Source of the current quiz configuration
            quiz_engine: Selection and timer engine, a default one if None
            advance_delay: Pause in seconds between settling and the next question
            clock: Monotonic time source shared with sessions
        """
        self.logger = logging.getLogger(__name__)
        self.data_manager = data_manager
        self.config_manager = config_manager
        self.quiz_engine = quiz_engine or QuizEngine()
        self.advance_delay = advance_delay
        self._clock = clock

        self._runs: Dict[int, QuizRun] = {}
        self._last_summaries: Dict[int, QuizSummary] = {}

        self.logger.info("QuizController initialized")

    async def start_quiz(
        self,
        channel_id: int,
        presenter: QuizPresenter,
        owner_id: Optional[int] = None,
        config: Optional[QuizConfig] = None
    ) -> Dict[str, Any]:
        """
        Select questions and start a timed run in a channel.

        A run already going in the channel is abandoned.

        Args:
            channel_id: Channel identifier
            presenter: Receiver of question, timer and result updates
            owner_id: The only user allowed to answer, anyone if None
            config: Quiz configuration, the config manager's current one if None

        Returns:
            Dictionary with operation results and error information
        """
        try:
            if channel_id in self._runs:
                self.logger.info(f"Abandoning running quiz in channel {channel_id} for a new one")
                await self._abandon(channel_id)

            config = config or self.config_manager.get_quiz_config()
            questions = self.data_manager.get_questions()
            prepared = self.quiz_engine.select_questions(questions, config)

            session = QuizSession(clock=self._clock)
            session.start(prepared, config.time_per_question_seconds)

            run = QuizRun(channel_id, session, config, presenter, owner_id)
            self._runs[channel_id] = run
            self._last_summaries.pop(channel_id, None)
            run.task = asyncio.create_task(self._run_quiz(run))

            self.logger.info(
                f"Started quiz in channel {channel_id}: questions={len(prepared)}, "
                f"time={config.time_per_question_seconds}s, difficulty={config.difficulty}",
                extra={
                    'event_type': 'quiz_started',
                    'channel_id': channel_id,
                    'total_questions': len(prepared),
                    'requested_questions': config.num_questions,
                    'timestamp': time.time()
                }
            )
            return {
                'success': True,
                'message': f"Started quiz with {len(prepared)} questions",
                'session_info': self.get_session_progress(channel_id)
            }

        except Exception as e:
            return self._handle_session_error(channel_id, e, "start_quiz")

    def submit_answer(
        self,
        channel_id: int,
        answer: str,
        user_id: Optional[int] = None,
        question_index: Optional[int] = None
    ) -> bool:
        """
        Queue a user's answer for the run in a channel.

        The answer is stamped now; whether it settles the question is decided
        by the run's consumer task.

        Args:
            channel_id: Channel identifier
            answer: Chosen option text
            user_id: Who answered
            question_index: Question the answer was given for, current if None

        Returns:
            True if the answer was queued, False if it was ignored outright
        """
        run = self._runs.get(channel_id)
        if run is None:
            self.logger.debug(f"Ignoring answer in channel {channel_id}: no running quiz")
            return False

        if run.owner_id is not None and user_id != run.owner_id:
            self.logger.debug(f"Ignoring answer from user {user_id} in channel {channel_id}: not the quiz owner")
            return False

        index = run.session.current_index if question_index is None else question_index
        if index != run.session.current_index or not run.session.is_open():
            self.logger.debug(
                f"Ignoring answer for question {index + 1} in channel {channel_id}: question closed"
            )
            return False

        run.events.put_nowait(QuizEvent(
            kind=ANSWER_EVENT,
            question_index=index,
            answer=answer,
            stamped_at=self._clock()
        ))
        return True

    async def finish_quiz(self, channel_id: int) -> Dict[str, Any]:
        """
        End a run early and show its results.

        Unanswered questions count as incorrect.

        Returns:
            Dictionary with operation results and the summary
        """
        try:
            run = self._runs.get(channel_id)
            if run is None:
                raise SessionNotFoundError(f"No running quiz to finish in channel {channel_id}")

            await self._abandon(channel_id)
            run.session.finish()
            summary = self._record_summary(run)
            await self._notify(run, run.presenter.show_results, summary)
            return {
                'success': True,
                'message': "Quiz finished early",
                'summary': summary
            }

        except Exception as e:
            return self._handle_session_error(channel_id, e, "finish_quiz")

    async def stop_quiz(self, channel_id: int) -> Dict[str, Any]:
        """
        Abandon the run in a channel without results.

        Returns:
            Dictionary with operation results
        """
        session_info = self.get_session_progress(channel_id)
        if session_info is None:
            return {
                'success': False,
                'message': "No active quiz to stop in this channel",
                'user_message': "ℹ️ No active quiz found in this channel"
            }

        await self._abandon(channel_id)
        self.logger.info(
            f"Stopped quiz in channel {channel_id}",
            extra={
                'event_type': 'quiz_stopped',
                'channel_id': channel_id,
                'timestamp': time.time()
            }
        )
        return {
            'success': True,
            'message': "Quiz stopped successfully",
            'session_info': session_info
        }

    async def shutdown(self) -> None:
        """Abandon every running quiz."""
        for channel_id in list(self._runs):
            await self._abandon(channel_id)

    def has_active_session(self, channel_id: int) -> bool:
        """Check if a channel has a running quiz."""
        return channel_id in self._runs

    def get_session(self, channel_id: int) -> Optional[QuizSession]:
        """Get the session of the running quiz in a channel."""
        run = self._runs.get(channel_id)
        return run.session if run else None

    def get_snapshot(self, channel_id: int) -> Optional[SessionSnapshot]:
        """Get a read-only view of the running quiz in a channel."""
        run = self._runs.get(channel_id)
        return run.session.snapshot() if run else None

    def get_last_summary(self, channel_id: int) -> Optional[QuizSummary]:
        """Get the results of the last quiz finished in a channel."""
        return self._last_summaries.get(channel_id)

    def get_session_progress(self, channel_id: int) -> Optional[Dict[str, Any]]:
        """
        Get progress information for a running quiz.

        Returns:
            Dictionary with progress info, None if no quiz is running
        """
        run = self._runs.get(channel_id)
        if run is None:
            return None

        snapshot = run.session.snapshot()
        return {
            'state': snapshot.state.value,
            'current_question': min(snapshot.question_number, snapshot.total_questions),
            'total_questions': snapshot.total_questions,
            'answered': snapshot.answered,
            'score': snapshot.score,
            'remaining_seconds': snapshot.remaining_seconds,
            'owner_id': run.owner_id,
            'start_time': run.start_time,
            'settings': {
                'num_questions': run.config.num_questions,
                'time_per_question_seconds': run.config.time_per_question_seconds,
                'difficulty': run.config.difficulty
            }
        }

    def get_session_status_summary(self, channel_id: int) -> str:
        """
        Get a human-readable summary of the quiz status.

        Returns:
            Formatted string describing the quiz status
        """
        info = self.get_session_progress(channel_id)
        if info is None:
            return "No active quiz in this channel."

        duration = datetime.now() - info['start_time']
        minutes = int(duration.total_seconds() // 60)
        seconds = int(duration.total_seconds() % 60)
        return " | ".join([
            f"Progress: {info['current_question']}/{info['total_questions']}",
            f"Score: {info['score']}",
            f"Time left: {info['remaining_seconds']}s",
            f"Difficulty: {info['settings']['difficulty']}",
            f"Duration: {minutes}m {seconds}s",
        ])

    async def _run_quiz(self, run: QuizRun) -> None:
        """Present, time and settle each question, then publish results."""
        try:
            while True:
                await self._present_current(run)
                record = await self._collect_settlement(run)
                await self.quiz_engine.cancel_timer(run.timer_key)
                await self._notify(run, run.presenter.show_answer_recorded, record, run.session.snapshot())

                if self.advance_delay > 0:
                    await asyncio.sleep(self.advance_delay)
                if not run.session.advance():
                    break

            summary = self._record_summary(run)
            if self._runs.get(run.channel_id) is run:
                del self._runs[run.channel_id]
            await self._notify(run, run.presenter.show_results, summary)

        except asyncio.CancelledError:
            self.logger.debug(f"Quiz run cancelled in channel {run.channel_id}")
            raise
        except Exception as e:
            self.logger.error(f"Quiz run failed in channel {run.channel_id}: {e}", exc_info=True)
            if self._runs.get(run.channel_id) is run:
                del self._runs[run.channel_id]
        finally:
            await self.quiz_engine.cancel_timer(run.timer_key)

    async def _present_current(self, run: QuizRun) -> None:
        index = run.session.current_index
        await self._notify(run, run.presenter.show_question, run.session.snapshot())
        # The answer window starts once the question is on screen
        run.session.restart_answer_window()

        async def on_tick(remaining: int) -> None:
            await self._notify(run, run.presenter.update_timer, remaining, timer_level(remaining))

        async def on_expired() -> None:
            run.events.put_nowait(QuizEvent(kind=EXPIRED_EVENT, question_index=index))

        # Display and expiry both follow the session's own deadline
        self.quiz_engine.start_question_timer(
            run.timer_key,
            run.session.time_left,
            on_tick,
            on_expired
        )

    async def _collect_settlement(self, run: QuizRun) -> AnswerRecord:
        """Apply queued events until the current question settles."""
        index = run.session.current_index
        while True:
            event = await run.events.get()
            if event.question_index != index:
                continue

            if event.kind == ANSWER_EVENT:
                record = run.session.submit_answer(event.answer, event.stamped_at)
            else:
                record = self._apply_pending_answers(run, index) or run.session.expire()

            if record is not None:
                return record

    def _apply_pending_answers(self, run: QuizRun, index: int) -> Optional[AnswerRecord]:
        """Apply answers already queued when the timer fired."""
        while True:
            try:
                event = run.events.get_nowait()
            except asyncio.QueueEmpty:
                return None
            if event.kind != ANSWER_EVENT or event.question_index != index:
                continue
            record = run.session.submit_answer(event.answer, event.stamped_at)
            if record is not None:
                self.logger.debug(
                    f"Answer queued before expiry settled question {index + 1} in channel {run.channel_id}",
                    extra={
                        'event_type': 'expiry_tie_user_won',
                        'channel_id': run.channel_id,
                        'question_index': index,
                        'timestamp': time.time()
                    }
                )
                return record

    async def _abandon(self, channel_id: int) -> None:
        run = self._runs.pop(channel_id, None)
        if run is None:
            return
        if run.task is not None and not run.task.done() and run.task is not asyncio.current_task():
            run.task.cancel()
            await asyncio.wait({run.task})
        await self.quiz_engine.cancel_timer(run.timer_key)

    def _record_summary(self, run: QuizRun) -> QuizSummary:
        summary = summarize(run.session)
        self._last_summaries[run.channel_id] = summary
        self.logger.info(
            f"Quiz finished in channel {run.channel_id}: {summary.fraction} ({summary.percentage}%)",
            extra={
                'event_type': 'quiz_finished',
                'channel_id': run.channel_id,
                'percentage': summary.percentage,
                'correct_count': summary.correct_count,
                'total_questions': summary.total_questions,
                'timestamp': time.time()
            }
        )
        return summary

    async def _notify(self, run: QuizRun, hook: Callable[..., Any], *args: Any) -> None:
        try:
            await hook(*args)
        except Exception as e:
            self.logger.error(
                f"Presenter {getattr(hook, '__name__', hook)} failed in channel {run.channel_id}: {e}",
                exc_info=True
            )

    def _handle_session_error(self, channel_id: int, error: Exception, operation: str) -> Dict[str, Any]:
        """
        Log an operation failure and build the result dictionary.

        Returns:
            Dictionary with error handling results
        """
        if isinstance(error, (NoMatchingQuestionsError, EmptyQuestionSetError, SessionNotFoundError)):
            self.logger.warning(f"{operation} rejected for channel {channel_id}: {error}")
        else:
            self.logger.error(f"Error in {operation} for channel {channel_id}: {error}", exc_info=True)

        return {
            'success': False,
            'error': str(error),
            'operation': operation,
            'user_message': self._get_user_friendly_error_message(error, operation)
        }

    def _get_user_friendly_error_message(self, error: Exception, operation: str) -> str:
        """Generate user-friendly error messages."""
        if isinstance(error, NoMatchingQuestionsError):
            if error.available == 0:
                return "❌ No questions are available. Check the question files and try again."
            return (
                f"❌ No questions match difficulty **{error.difficulty}**. "
                "Please adjust your settings with `/set_difficulty`."
            )

        elif isinstance(error, EmptyQuestionSetError):
            return "❌ The quiz has no questions. Please adjust your settings and try again."

        elif isinstance(error, SessionNotFoundError):
            return "❌ No active quiz found in this channel. Start a quiz with `/start`."

        elif isinstance(error, InvalidSessionStateError):
            return "❌ The quiz is in an invalid state. Please stop it and start a new one."

        else:
            return f"❌ An unexpected error occurred during {operation}. Please try again."
