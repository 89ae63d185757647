"""
Configuration manager for quiz settings and parameters.
"""
import dataclasses
import logging
from typing import Any, Dict, Iterable, List

from .models import DIFFICULTY_ALL, QuizConfig


class ConfigManager:
    """Manages the quiz configuration chosen before a quiz starts."""

    # Default configuration values
    DEFAULT_QUESTION_COUNT = 10
    DEFAULT_TIME_PER_QUESTION = 30
    DEFAULT_DIFFICULTY = DIFFICULTY_ALL

    # Validation limits
    MIN_QUESTION_COUNT = 1
    MAX_QUESTION_COUNT = 50
    MIN_TIME_PER_QUESTION = 5
    MAX_TIME_PER_QUESTION = 120

    def __init__(self):
        """Initialize ConfigManager with default settings."""
        self.logger = logging.getLogger(__name__)
        self._config = QuizConfig(
            num_questions=self.DEFAULT_QUESTION_COUNT,
            time_per_question_seconds=self.DEFAULT_TIME_PER_QUESTION,
            difficulty=self.DEFAULT_DIFFICULTY
        )
        self._known_difficulties: List[str] = []

    def get_quiz_config(self) -> QuizConfig:
        """
        Get current quiz configuration.

        Returns:
            Immutable QuizConfig; later setter calls do not affect it
        """
        return self._config

    def set_question_count(self, count: int) -> Dict[str, Any]:
        """
        Set the number of questions for the next quiz.

        Args:
            count: Number of questions

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(count, int) or isinstance(count, bool):
            error_msg = f"Question count must be an integer, got {type(count).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(count).__name__}"
            }

        if count < self.MIN_QUESTION_COUNT:
            error_msg = f"Question count must be at least {self.MIN_QUESTION_COUNT}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Too few questions: Minimum is {self.MIN_QUESTION_COUNT}"
            }

        if count > self.MAX_QUESTION_COUNT:
            error_msg = f"Question count cannot exceed {self.MAX_QUESTION_COUNT}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Too many questions: Maximum is {self.MAX_QUESTION_COUNT}"
            }

        self._config = dataclasses.replace(self._config, num_questions=count)
        self.logger.info(f"Question count set to {count}")
        return {
            'success': True,
            'message': f"Question count set to {count}",
            'user_message': f"✅ Question count set to {count}"
        }

    def set_time_per_question(self, seconds: int) -> Dict[str, Any]:
        """
        Set the answer window for each question.

        Args:
            seconds: Time per question in seconds

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(seconds, int) or isinstance(seconds, bool):
            error_msg = f"Time per question must be an integer, got {type(seconds).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(seconds).__name__}"
            }

        if seconds < self.MIN_TIME_PER_QUESTION:
            error_msg = f"Time per question must be at least {self.MIN_TIME_PER_QUESTION} seconds"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Timer too short: Minimum is {self.MIN_TIME_PER_QUESTION} seconds"
            }

        if seconds > self.MAX_TIME_PER_QUESTION:
            error_msg = f"Time per question cannot exceed {self.MAX_TIME_PER_QUESTION} seconds"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Timer too long: Maximum is {self.MAX_TIME_PER_QUESTION} seconds"
            }

        self._config = dataclasses.replace(self._config, time_per_question_seconds=seconds)
        self.logger.info(f"Time per question set to {seconds} seconds")
        return {
            'success': True,
            'message': f"Time per question set to {seconds} seconds",
            'user_message': f"✅ Timer set to {seconds} seconds"
        }

    def set_difficulty(self, difficulty: str) -> Dict[str, Any]:
        """
        Set the difficulty filter for the next quiz.

        Args:
            difficulty: "all" or a difficulty label found in the question bank

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(difficulty, str) or not difficulty.strip():
            error_msg = "Difficulty must be a non-empty string"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ Invalid input: Expected a difficulty name"
            }

        normalized = difficulty.strip().lower()
        allowed = self.get_difficulty_choices()
        if self._known_difficulties and normalized not in allowed:
            error_msg = f"Unknown difficulty '{difficulty}'"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Unknown difficulty: choose one of {', '.join(allowed)}"
            }

        self._config = dataclasses.replace(self._config, difficulty=normalized)
        self.logger.info(f"Difficulty set to {normalized}")
        return {
            'success': True,
            'message': f"Difficulty set to {normalized}",
            'user_message': f"✅ Difficulty set to {normalized}"
        }

    def set_known_difficulties(self, difficulties: Iterable[str]) -> None:
        """Record the difficulty labels present in the loaded question bank."""
        self._known_difficulties = sorted({d.strip().lower() for d in difficulties if d and d.strip()})
        self.logger.debug(f"Known difficulties: {self._known_difficulties}")

    def get_difficulty_choices(self) -> List[str]:
        """Difficulties a user may pick, "all" first."""
        return [DIFFICULTY_ALL] + [d for d in self._known_difficulties if d != DIFFICULTY_ALL]

    def apply_config_dict(self, quiz_config: Dict[str, Any]) -> List[str]:
        """
        Apply the "quiz" section of config.json.

        Invalid values are logged and skipped so defaults stay in effect.

        Returns:
            User-friendly messages for every rejected value
        """
        problems = []
        setters = (
            ('default_question_count', self.set_question_count),
            ('default_time_per_question', self.set_time_per_question),
            ('default_difficulty', self.set_difficulty),
        )
        for key, setter in setters:
            if quiz_config.get(key) is None:
                continue
            result = setter(quiz_config[key])
            if not result['success']:
                self.logger.warning(f"Ignoring config value {key}={quiz_config[key]!r}: {result['error']}")
                problems.append(result['user_message'])
        return problems

    def reset_to_defaults(self) -> None:
        """Reset all settings to their default values."""
        self._config = QuizConfig(
            num_questions=self.DEFAULT_QUESTION_COUNT,
            time_per_question_seconds=self.DEFAULT_TIME_PER_QUESTION,
            difficulty=self.DEFAULT_DIFFICULTY
        )
        self.logger.info("All settings reset to default values")

    def validate_settings(self) -> Dict[str, Any]:
        """
        Validate current settings and return validation results.

        Returns:
            Dictionary with validation results and any issues found
        """
        validation_result = {
            "valid": True,
            "issues": []
        }

        count = self._config.num_questions
        if not (self.MIN_QUESTION_COUNT <= count <= self.MAX_QUESTION_COUNT):
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid question count: {count}")

        seconds = self._config.time_per_question_seconds
        if not (self.MIN_TIME_PER_QUESTION <= seconds <= self.MAX_TIME_PER_QUESTION):
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid time per question: {seconds}")

        if self._known_difficulties and self._config.difficulty not in self.get_difficulty_choices():
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid difficulty: {self._config.difficulty}")

        return validation_result

    def get_settings_summary(self) -> str:
        """
        Get a formatted summary of current settings.

        Returns:
            Human-readable string describing current settings
        """
        return (
            f"Quiz Settings:\n"
            f"• Questions: {self._config.num_questions}\n"
            f"• Timer: {self._config.time_per_question_seconds} seconds per question\n"
            f"• Difficulty: {self._config.difficulty}"
        )
