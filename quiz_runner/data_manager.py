"""
Data manager for question bank files and record validation.
"""
import json
import os
import logging
from typing import Any, Dict, List, Optional, Sequence
from pathlib import Path

from .models import Question, TEXT_MCQ


DEFAULT_QUESTION_DIRECTORY = "./questions/"
DEFAULT_QUESTION_SOURCES = ("questions.json", "question2.json", "question3.json")
REQUIRED_FIELDS = ("question", "options", "correct_answer", "category", "difficulty", "type")
MAX_SOURCE_SIZE = 10 * 1024 * 1024  # 10MB limit


class DataManager:
    """Loads question records from JSON sources and keeps the usable ones."""

    def __init__(
        self,
        question_directory: str = DEFAULT_QUESTION_DIRECTORY,
        sources: Sequence[str] = DEFAULT_QUESTION_SOURCES,
        allow_partial: bool = False
    ):
        """
        Initialize DataManager with question source locations.

        Args:
            question_directory: Directory the source file names are relative to
            sources: Source file names (or absolute paths), read in order
            allow_partial: Keep questions from healthy sources when another fails
        """
        self.question_directory = Path(question_directory)
        self.sources: List[str] = list(sources)
        self.allow_partial = allow_partial
        self.questions: List[Question] = []
        self.logger = logging.getLogger(__name__)
        self.load_errors: List[str] = []  # Track loading errors for user feedback
        self.skipped_records = 0

    def load_all(self) -> List[Question]:
        """
        Load every source, concatenate them and keep text MCQ records.

        Any failing source empties the result unless partial loading is
        allowed; the failure is recorded in load_errors either way.

        Returns:
            List of usable Question objects
        """
        self.questions = []
        self.load_errors.clear()
        self.skipped_records = 0

        if not self.sources:
            self.load_errors.append("No question sources configured")
            self.logger.warning("No question sources configured")
            return []

        loaded: List[Question] = []
        for source in self.sources:
            path = self._resolve(source)
            result = self._load_source_safely(path)
            if result['success']:
                loaded.extend(result['questions'])
            else:
                self.load_errors.append(f"{path.name}: {result['error']}")
                self.logger.error(f"Failed to load question source {path}: {result['error']}")

        if self.load_errors and not self.allow_partial:
            self.logger.error(
                f"Question loading failed for {len(self.load_errors)} source(s); no questions available"
            )
            return []

        self.questions = loaded
        self.logger.info(
            f"Loaded {len(loaded)} questions from {len(self.sources) - len(self.load_errors)} source(s)"
        )
        if self.skipped_records:
            self.logger.warning(f"Skipped {self.skipped_records} malformed question records")
        return list(self.questions)

    def get_questions(self) -> List[Question]:
        """Get the questions from the last load."""
        return list(self.questions)

    def available_difficulties(self) -> List[str]:
        """
        Get the difficulty labels present in the loaded questions.

        Returns:
            Sorted, de-duplicated lower-case labels
        """
        return sorted({q.difficulty.strip().lower() for q in self.questions if q.difficulty.strip()})

    def _resolve(self, source: str) -> Path:
        path = Path(source)
        if path.is_absolute():
            return path
        return self.question_directory / path

    def _load_source_safely(self, path: Path) -> Dict[str, Any]:
        """
        Load a single source file with comprehensive error handling.

        Args:
            path: Path to the JSON file to load

        Returns:
            Dictionary with success status, questions and error message
        """
        try:
            if not path.exists():
                return {'success': False, 'error': "File not found"}

            if not os.access(path, os.R_OK):
                return {'success': False, 'error': "Permission denied: Cannot read file"}

            file_size = path.stat().st_size
            if file_size > MAX_SOURCE_SIZE:
                return {
                    'success': False,
                    'error': f"File too large ({file_size / 1024 / 1024:.1f}MB). Maximum size is {MAX_SOURCE_SIZE / 1024 / 1024}MB"
                }

            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)

            if not isinstance(data, list):
                return {'success': False, 'error': "Question source must be a JSON array"}

            questions = self._parse_questions(data, path.name)
            self.logger.info(f"Loaded {len(questions)} text MCQ questions from '{path.name}'")
            return {'success': True, 'questions': questions}

        except json.JSONDecodeError as e:
            return {'success': False, 'error': f"Invalid JSON: {e}"}
        except UnicodeDecodeError as e:
            return {'success': False, 'error': f"Invalid encoding, expected UTF-8: {e}"}
        except PermissionError:
            return {'success': False, 'error': "Permission denied"}
        except OSError as e:
            return {'success': False, 'error': f"System error: {e}"}
        except Exception as e:
            self.logger.error(f"Unexpected error loading {path}: {e}", exc_info=True)
            return {'success': False, 'error': f"Unexpected error: {e}"}

    def _parse_questions(self, records: List[Any], source_name: str) -> List[Question]:
        """
        Turn raw records into Questions, dropping other kinds and bad records.

        Args:
            records: Parsed JSON array
            source_name: File name used in log messages

        Returns:
            List of Question objects
        """
        questions = []
        other_kinds = 0

        for i, record in enumerate(records):
            if not isinstance(record, dict):
                self.logger.warning(f"{source_name}: record {i} is not an object")
                self.skipped_records += 1
                continue

            if record.get("type") != TEXT_MCQ:
                other_kinds += 1
                continue

            problem = self.validate_record(record)
            if problem:
                self.logger.warning(f"{source_name}: record {i} skipped: {problem}")
                self.skipped_records += 1
                continue

            questions.append(Question(
                question=record["question"],
                options=tuple(record["options"]),
                correct_answer=record["correct_answer"],
                category=record["category"],
                difficulty=record["difficulty"],
                type=record["type"],
            ))

        if other_kinds:
            self.logger.debug(f"{source_name}: discarded {other_kinds} records of unsupported kinds")
        return questions

    def validate_record(self, record: Dict[str, Any]) -> Optional[str]:
        """
        Check a text MCQ record.

        Expected structure:
        {
            "question": str,
            "options": [str, str, ...],
            "correct_answer": str,  # one of options
            "category": str,
            "difficulty": str,
            "type": "text_mcq"
        }

        Returns:
            None if the record is usable, otherwise a description of the problem
        """
        for name in REQUIRED_FIELDS:
            if name not in record:
                return f"missing '{name}' field"

        for name in ("question", "correct_answer", "category", "difficulty"):
            if not isinstance(record[name], str):
                return f"'{name}' field must be a string"

        if not record["question"].strip():
            return "'question' field cannot be empty"

        options = record["options"]
        if not isinstance(options, list) or not all(isinstance(o, str) for o in options):
            return "'options' field must be an array of strings"
        if len(options) < 2:
            return "at least two options are required"
        if len(set(options)) != len(options):
            return "options must be distinct"
        if record["correct_answer"] not in options:
            return "'correct_answer' must be one of the options"

        return None

    def get_load_errors(self) -> List[str]:
        """
        Get list of errors encountered during the last load operation.

        Returns:
            List of error messages
        """
        return self.load_errors.copy()

    def has_load_errors(self) -> bool:
        """Check if there were any errors during the last load operation."""
        return len(self.load_errors) > 0

    def get_loading_summary(self) -> Dict[str, Any]:
        """
        Get a comprehensive summary of the loading operation.

        Returns:
            Dictionary with loading statistics and status
        """
        return {
            'total_questions': len(self.questions),
            'has_errors': self.has_load_errors(),
            'error_count': len(self.load_errors),
            'errors': self.get_load_errors(),
            'skipped_records': self.skipped_records,
            'question_directory': str(self.question_directory),
            'sources': list(self.sources),
            'difficulties': self.available_difficulties()
        }
