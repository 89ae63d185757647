"""
Quiz engine core logic for the quiz runner.
Handles question selection, option shuffling, and question countdown timing.
"""
import random
import asyncio
import logging
import math
import time
from typing import Dict, List, Optional, Callable, Any

from .models import (
    DIFFICULTY_ALL,
    PreparedQuestion,
    Question,
    QuizConfig,
    TimerLevel,
)

# Set up logger for timer operations
logger = logging.getLogger(__name__)

WARNING_THRESHOLD_SECONDS = 10
DANGER_THRESHOLD_SECONDS = 5


class NoMatchingQuestionsError(ValueError):
    """Raised when no question in the bank matches the quiz configuration."""

    def __init__(self, difficulty: str, available: int = 0):
        self.difficulty = difficulty
        self.available = available
        super().__init__(
            f"No questions match difficulty '{difficulty}' "
            f"({available} questions in the bank)"
        )


def timer_level(remaining_seconds: int) -> TimerLevel:
    """Map remaining seconds to the display level of the countdown."""
    if remaining_seconds <= DANGER_THRESHOLD_SECONDS:
        return TimerLevel.DANGER
    if remaining_seconds <= WARNING_THRESHOLD_SECONDS:
        return TimerLevel.WARNING
    return TimerLevel.NORMAL


def log_timer_event(event_type: str, channel_id: Optional[str], message: str,
                    level: int = logging.DEBUG, **fields: Any) -> None:
    """Log a timer lifecycle event with structured fields."""
    logger.log(
        level,
        f"Timer {event_type} - Channel {channel_id}: {message}",
        extra={
            'event_type': f"timer_{event_type}",
            'channel_id': channel_id,
            'timestamp': time.time(),
            **fields
        }
    )


class QuizTimer:
    """
    Counts down to a deadline owned by someone else.

    The time left is read from a callable on every step, so slow display
    updates never push expiry past the deadline.
    """

    def __init__(self, channel_id: str = None, tick_seconds: float = 1.0):
        """
        Initialize the timer.

        Args:
            channel_id: Identifier used in log records
            tick_seconds: Wall-clock length of one countdown second
        """
        self._task: Optional[asyncio.Task] = None
        self._remaining_time = 0
        self._is_cancelled = False
        self._channel_id = channel_id
        self._tick_seconds = tick_seconds

    async def start_countdown(
        self,
        time_left: Callable[[], float],
        update_callback: Callable[[int], Any],
        completion_callback: Callable[[], Any]
    ) -> None:
        """
        Count down until ``time_left()`` reaches zero.

        Args:
            time_left: Seconds until the deadline, read at every step
            update_callback: Awaited whenever the whole seconds left change
            completion_callback: Awaited once when the deadline is reached
        """
        self._is_cancelled = False
        duration = math.ceil(max(0.0, time_left()))
        log_timer_event("start", self._channel_id, f"{duration}s to deadline", duration=duration)

        last_shown = None
        try:
            while not self._is_cancelled:
                left = time_left()
                if left <= 0:
                    break

                shown = math.ceil(left)
                if shown != last_shown:
                    last_shown = self._remaining_time = shown
                    try:
                        # A display update may not hold expiry past the deadline
                        await asyncio.wait_for(update_callback(shown), left * self._tick_seconds)
                    except asyncio.TimeoutError:
                        log_timer_event("update_overrun", self._channel_id,
                                        f"display update still running at {shown}s")
                    continue

                # Wake when the whole seconds left change
                await asyncio.sleep((left - (shown - 1)) * self._tick_seconds)

            self._remaining_time = 0
            if self._is_cancelled:
                log_timer_event("completed", self._channel_id, "cancelled", completion_type="cancelled")
            else:
                log_timer_event("completed", self._channel_id, "deadline reached",
                                level=logging.INFO, completion_type="deadline")
                await completion_callback()

        except asyncio.CancelledError:
            self._is_cancelled = True
            log_timer_event("completed", self._channel_id, "task cancelled", completion_type="asyncio_cancelled")
            raise
        except Exception as e:
            log_timer_event("error", self._channel_id, str(e), level=logging.ERROR, operation="start_countdown")
            raise

    def cancel(self) -> None:
        """Cancel the countdown timer."""
        self._is_cancelled = True
        if self._task and not self._task.done():
            self._task.cancel()

    @property
    def is_cancelled(self) -> bool:
        """Check if timer is cancelled."""
        return self._is_cancelled

    @property
    def is_running(self) -> bool:
        """Check if the countdown task is still going."""
        return self._task is not None and not self._task.done()

    @property
    def remaining_time(self) -> int:
        """Whole seconds left at the last step."""
        return self._remaining_time


class QuizEngine:
    """Core quiz engine that handles question selection and timing."""

    def __init__(self, rng: Optional[random.Random] = None, tick_seconds: float = 1.0):
        """
        Initialize the quiz engine.

        Args:
            rng: Randomness source for shuffling, a fresh Random if None
            tick_seconds: Wall-clock length of one countdown second for its timers
        """
        self._rng = rng or random.Random()
        self._tick_seconds = tick_seconds
        self._timers: Dict[str, QuizTimer] = {}  # Channel ID -> Timer mapping

    def select_questions(
        self,
        questions: List[Question],
        config: QuizConfig,
        rng: Optional[random.Random] = None
    ) -> List[PreparedQuestion]:
        """
        Filter, order, limit and prepare questions for a quiz run.

        Args:
            questions: Every question in the bank
            config: Quiz configuration
            rng: Optional randomness source overriding the engine's own

        Returns:
            Prepared questions in presentation order

        Raises:
            NoMatchingQuestionsError: If nothing matches the difficulty
        """
        rng = rng or self._rng

        matching = self.filter_by_difficulty(questions, config.difficulty)
        if not matching:
            raise NoMatchingQuestionsError(config.difficulty, len(questions))

        if len(matching) < config.num_questions:
            logger.info(
                f"Requested {config.num_questions} questions but only {len(matching)} "
                f"match difficulty '{config.difficulty}', using all of them"
            )

        selected = self.limit_question_count(
            self.shuffle_questions(matching, rng),
            config.num_questions
        )
        return [self.prepare_question(question, rng) for question in selected]

    def filter_by_difficulty(self, questions: List[Question], difficulty: str) -> List[Question]:
        """
        Keep only questions of the given difficulty.

        Args:
            questions: Questions to filter
            difficulty: Difficulty label, or "all" for no filtering

        Returns:
            New list of matching questions, original order kept
        """
        wanted = (difficulty or DIFFICULTY_ALL).strip().lower()
        if wanted == DIFFICULTY_ALL:
            return list(questions)
        return [q for q in questions if q.difficulty.strip().lower() == wanted]

    def shuffle_questions(self, questions: List[Question], rng: Optional[random.Random] = None) -> List[Question]:
        """
        Shuffle questions randomly.

        Args:
            questions: List of questions to shuffle
            rng: Optional randomness source

        Returns:
            New list with questions in random order
        """
        shuffled = list(questions)
        (rng or self._rng).shuffle(shuffled)
        return shuffled

    def limit_question_count(self, questions: List[Question], count: int) -> List[Question]:
        """
        Limit the number of questions to the specified count.

        Note:
            If count is greater than available questions, returns all questions.
            If count is less than 1, returns empty list.
        """
        if count < 1:
            return []

        return questions[:count]

    def prepare_question(self, question: Question, rng: Optional[random.Random] = None) -> PreparedQuestion:
        """Fix a random option order for one question."""
        options = list(question.options)
        (rng or self._rng).shuffle(options)
        return PreparedQuestion(question=question, shuffled_options=tuple(options))


    def start_question_timer(
        self,
        channel_id: str,
        time_left: Callable[[], float],
        update_callback: Callable[[int], Any],
        completion_callback: Callable[[], Any]
    ) -> QuizTimer:
        """
        Start a countdown for the current question of a channel.

        Any timer still registered for the channel is cancelled first.

        Args:
            channel_id: Channel identifier
            time_left: Seconds until the question's deadline
            update_callback: Awaited with the whole seconds left
            completion_callback: Awaited when the deadline is reached

        Returns:
            The running timer
        """
        previous = self._timers.get(channel_id)
        if previous is not None and previous.is_running:
            log_timer_event("replaced", channel_id, "active timer replaced by a new question timer")
            previous.cancel()

        timer = QuizTimer(channel_id, self._tick_seconds)
        self._timers[channel_id] = timer
        timer._task = asyncio.create_task(
            timer.start_countdown(time_left, update_callback, completion_callback)
        )
        log_timer_event("created", channel_id, "countdown task scheduled", level=logging.INFO)
        return timer

    async def cancel_timer(self, channel_id: str) -> bool:
        """
        Cancel the timer for a channel and wait for its task to finish.

        Args:
            channel_id: Channel identifier

        Returns:
            True if a timer was cancelled, False if none was registered
        """
        timer = self._timers.pop(channel_id, None)
        if timer is None:
            logger.debug(f"No active timer found for channel {channel_id}")
            return False

        task = timer._task
        timer.cancel()
        if task is not None and task is not asyncio.current_task():
            # wait() lets the caller's own cancellation through
            await asyncio.wait({task})
            if not task.cancelled() and task.exception() is not None:
                log_timer_event("error", channel_id, str(task.exception()),
                                level=logging.ERROR, operation="cancel_timer")
        return True

    def has_timer(self, channel_id: str) -> bool:
        """Check whether a channel has a running timer."""
        timer = self._timers.get(channel_id)
        return timer is not None and timer.is_running
