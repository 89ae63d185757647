"""
Core data models for the quiz runner.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple


DIFFICULTY_ALL = "all"
TEXT_MCQ = "text_mcq"


@dataclass(frozen=True)
class Question:
    """A single multiple-choice question from the question bank."""
    question: str
    options: Tuple[str, ...]
    correct_answer: str
    category: str = "General"
    difficulty: str = ""
    type: str = TEXT_MCQ

    @property
    def id(self) -> str:
        return self.question


@dataclass(frozen=True)
class PreparedQuestion:
    """A question with its options shuffled once for a quiz run."""
    question: Question
    shuffled_options: Tuple[str, ...]

    @property
    def text(self) -> str:
        return self.question.question

    @property
    def category(self) -> str:
        return self.question.category

    @property
    def difficulty(self) -> str:
        return self.question.difficulty

    @property
    def type(self) -> str:
        return self.question.type

    @property
    def correct_answer(self) -> str:
        return self.question.correct_answer


@dataclass(frozen=True)
class QuizConfig:
    """Settings chosen on the configuration screen before a quiz starts."""
    num_questions: int = 10
    time_per_question_seconds: int = 30
    difficulty: str = DIFFICULTY_ALL


@dataclass(frozen=True)
class AnswerRecord:
    """Outcome of one settled question."""
    question_text: str
    category: str
    type: str
    user_answer: Optional[str]
    correct_answer: str
    options: Tuple[str, ...]
    is_correct: bool


class SessionState(Enum):
    """Enumeration of quiz session states."""
    IDLE = "idle"
    QUESTION_OPEN = "question_open"
    QUESTION_CLOSED = "question_closed"
    FINISHED = "finished"


class TimerLevel(Enum):
    """Presentation level of the countdown display."""
    NORMAL = "normal"
    WARNING = "warning"
    DANGER = "danger"


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only projection of a session at one instant."""
    state: SessionState
    current_index: int
    total_questions: int
    score: int
    answered: int
    current_question: Optional[PreparedQuestion] = None
    remaining_seconds: int = 0
    elapsed_seconds: float = 0.0
    timer_level: TimerLevel = TimerLevel.NORMAL

    @property
    def question_number(self) -> int:
        return self.current_index + 1


@dataclass(frozen=True)
class ReviewOption:
    """One option of a reviewed question, pre-marked for rendering."""
    text: str
    is_correct_answer: bool
    is_user_answer: bool
    mark: Optional[str] = None


@dataclass(frozen=True)
class QuizSummary:
    """Aggregate result of a finished quiz."""
    percentage: int
    correct_count: int
    incorrect_count: int
    total_questions: int
    review: Tuple[AnswerRecord, ...] = field(default_factory=tuple)

    @property
    def fraction(self) -> str:
        return f"{self.correct_count}/{self.total_questions}"
