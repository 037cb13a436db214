"""
Data manager for JSON question-bank files and quiz data validation.
"""
import json
import os
import logging
from typing import Any, Dict, List, Optional
from pathlib import Path

from .exceptions import EmptyQuestionBankError, MalformedQuestionError
from .models import Difficulty, Question, QuestionBank


def parse_question_bank(data: Any, name: str = "quiz", default_time_limit: int = 30) -> QuestionBank:
    """
    Build a QuestionBank from parsed quiz JSON.

    Expected structure:
    {
        "quizTitle": str,            # Optional, defaults to name
        "questions": [
            {
                "id": int | str,      # Optional, defaults to position
                "question": str,
                "options": [str, ...],
                "correctAnswer": int,
                "difficulty": "easy" | "medium" | "hard",
                "timeLimit": int      # Optional, defaults to default_time_limit
            }
        ]
    }

    Args:
        data: Parsed JSON data
        name: Quiz name, usually the file stem
        default_time_limit: Seconds used when a question has no timeLimit

    Returns:
        Validated QuestionBank

    Raises:
        EmptyQuestionBankError: If the quiz has no questions
        MalformedQuestionError: If the structure or any question is invalid
    """
    if not isinstance(data, dict):
        raise MalformedQuestionError("Quiz data must be a JSON object")

    if "questions" not in data:
        raise MalformedQuestionError("Quiz data must contain a 'questions' key")

    questions_data = data["questions"]
    if not isinstance(questions_data, list):
        raise MalformedQuestionError("'questions' value must be an array")

    if not questions_data:
        raise EmptyQuestionBankError(f"Quiz '{name}' has no questions")

    title = data.get("quizTitle", name)
    if not isinstance(title, str) or not title.strip():
        title = name

    questions = []
    for i, question_data in enumerate(questions_data):
        if not isinstance(question_data, dict):
            raise MalformedQuestionError(f"Question {i} must be an object")

        for required in ("question", "options", "correctAnswer", "difficulty"):
            if required not in question_data:
                raise MalformedQuestionError(f"Question {i} missing '{required}' field")

        if not isinstance(question_data["question"], str):
            raise MalformedQuestionError(f"Question {i} 'question' field must be a string")

        options = question_data["options"]
        if not isinstance(options, list) or not all(isinstance(option, str) for option in options):
            raise MalformedQuestionError(f"Question {i} 'options' field must be an array of strings")

        difficulty = question_data["difficulty"]
        if difficulty not in [d.value for d in Difficulty]:
            raise MalformedQuestionError(
                f"Question {i} 'difficulty' must be one of easy, medium, hard, got {difficulty!r}"
            )

        try:
            question = Question(
                id=question_data.get("id", i),
                text=question_data["question"],
                options=options,
                correct_answer_index=question_data["correctAnswer"],
                difficulty=Difficulty(difficulty),
                time_limit_seconds=question_data.get("timeLimit") or default_time_limit
            )
        except MalformedQuestionError as e:
            raise MalformedQuestionError(f"Question {i}: {e}") from e

        questions.append(question)

    return QuestionBank(name=name, title=title, questions=questions)


class DataManager:
    """Manages loading and validation of JSON question-bank files."""

    MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB

    def __init__(self, quiz_directory: str = "./quizzes/", default_time_limit: int = 30):
        """
        Initialize DataManager with quiz directory path.

        Args:
            quiz_directory: Path to directory containing JSON quiz files
            default_time_limit: Seconds used for questions without a timeLimit
        """
        self.quiz_directory = Path(quiz_directory)
        self.default_time_limit = default_time_limit
        self.loaded_quizzes: Dict[str, QuestionBank] = {}
        self.logger = logging.getLogger(__name__)
        self.load_errors: List[str] = []  # Track loading errors for user feedback
        self.sample_quiz_created = False

    def load_quiz_files(self) -> Dict[str, QuestionBank]:
        """
        Load all JSON files from the quiz directory.

        Files that fail validation are skipped and reported in load_errors.

        Returns:
            Dictionary mapping quiz names to QuestionBank objects
        """
        self.loaded_quizzes.clear()
        self.load_errors.clear()
        self.sample_quiz_created = False

        try:
            self.quiz_directory.mkdir(parents=True, exist_ok=True)
            json_files = sorted(self.quiz_directory.glob("*.json"))
        except OSError as e:
            error = f"Cannot access quiz directory {self.quiz_directory}: {e}"
            self.logger.error(error)
            self.load_errors.append(error)
            return self.loaded_quizzes

        # If no files found, create sample quiz and provide guidance
        if not json_files:
            self.logger.warning(f"No JSON files found in {self.quiz_directory}")
            self.load_errors.append(f"No quiz files found in {self.quiz_directory}")
            return self._create_sample_quiz()

        for json_file in json_files:
            error = self._load_quiz_file_safely(json_file)
            if error:
                self.load_errors.append(f"{json_file.name}: {error}")

        if not self.loaded_quizzes:
            self.logger.error("No quiz files could be loaded successfully")
        else:
            self.logger.info(f"Successfully loaded {len(self.loaded_quizzes)} quiz files")
        if self.load_errors:
            self.logger.warning(f"Encountered {len(self.load_errors)} loading errors")

        return self.loaded_quizzes

    def load_quiz_file(self, file_path: Path) -> QuestionBank:
        """
        Load and validate a single quiz file.

        Args:
            file_path: Path to the JSON file

        Returns:
            The validated QuestionBank

        Raises:
            EmptyQuestionBankError: If the file holds no questions
            MalformedQuestionError: If the file content is invalid
            OSError: If the file cannot be read
        """
        file_path = Path(file_path)
        with open(file_path, 'r', encoding='utf-8') as f:
            try:
                data = json.load(f)
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise MalformedQuestionError(f"Invalid JSON: {e}") from e

        return parse_question_bank(data, name=file_path.stem, default_time_limit=self.default_time_limit)

    def _load_quiz_file_safely(self, json_file: Path) -> Optional[str]:
        """
        Load one quiz file into loaded_quizzes.

        Returns:
            Error message, or None if the file loaded
        """
        try:
            if not os.access(json_file, os.R_OK):
                return "Permission denied: Cannot read file"

            file_size = json_file.stat().st_size
            if file_size > self.MAX_FILE_SIZE:
                return (f"File too large ({file_size / 1024 / 1024:.1f}MB). "
                        f"Maximum size is {self.MAX_FILE_SIZE / 1024 / 1024}MB")

            bank = self.load_quiz_file(json_file)
        except (EmptyQuestionBankError, MalformedQuestionError) as e:
            self.logger.error(f"Invalid quiz file {json_file}: {e}")
            return str(e)
        except OSError as e:
            self.logger.error(f"Failed to read quiz file {json_file}: {e}")
            return f"System error: {e}"

        self.loaded_quizzes[bank.name] = bank
        self.logger.info(f"Loaded quiz '{bank.name}' with {len(bank.questions)} questions")
        return None

    def get_available_quizzes(self) -> List[str]:
        """Names of loaded quizzes (file stems)."""
        return list(self.loaded_quizzes.keys())

    def get_quiz(self, quiz_name: str) -> Optional[QuestionBank]:
        return self.loaded_quizzes.get(quiz_name)

    def get_quiz_questions(self, quiz_name: str) -> Optional[List[Question]]:
        """
        Retrieve questions for a specific quiz.

        Args:
            quiz_name: Name of the quiz (without file extension)

        Returns:
            List of Question objects for the quiz, or None if quiz not found
        """
        bank = self.loaded_quizzes.get(quiz_name)
        return list(bank.questions) if bank else None

    def quiz_exists(self, quiz_name: str) -> bool:
        return quiz_name in self.loaded_quizzes

    def get_quiz_count(self) -> int:
        return len(self.loaded_quizzes)

    def get_question_count(self, quiz_name: str) -> int:
        """
        Get the number of questions in a specific quiz.

        Returns:
            Number of questions in the quiz, or 0 if quiz not found
        """
        bank = self.loaded_quizzes.get(quiz_name)
        return len(bank.questions) if bank else 0

    def get_difficulty_counts(self, quiz_name: str) -> Dict[str, int]:
        """Number of questions per difficulty in a quiz."""
        counts = {difficulty.value: 0 for difficulty in Difficulty}
        bank = self.loaded_quizzes.get(quiz_name)
        if bank:
            for question in bank.questions:
                counts[question.difficulty.value] += 1
        return counts

    def _create_sample_quiz(self) -> Dict[str, QuestionBank]:
        """
        Create a sample quiz file when no quiz files are found.

        Returns:
            Dictionary with the sample quiz loaded
        """
        sample_quiz_data = {
            "quizTitle": "Sample Quiz",
            "questions": [
                {
                    "question": "What is the capital of France?",
                    "options": ["Berlin", "Paris", "Madrid", "Rome"],
                    "correctAnswer": 1,
                    "difficulty": "easy",
                    "timeLimit": 30
                },
                {
                    "question": "What is 7 x 8?",
                    "options": ["56", "54", "64", "48"],
                    "correctAnswer": 0,
                    "difficulty": "medium",
                    "timeLimit": 20
                },
                {
                    "question": "Which planet has the most moons?",
                    "options": ["Earth", "Mars", "Saturn", "Venus"],
                    "correctAnswer": 2,
                    "difficulty": "hard",
                    "timeLimit": 15
                }
            ]
        }

        sample_file_path = self.quiz_directory / "sample_quiz.json"
        try:
            if not sample_file_path.exists():
                with open(sample_file_path, 'w', encoding='utf-8') as f:
                    json.dump(sample_quiz_data, f, indent=2, ensure_ascii=False)
                self.logger.info(f"Created sample quiz file: {sample_file_path}")
        except OSError as e:
            self.logger.error(f"Failed to write sample quiz: {e}")
            self.load_errors.append(f"Failed to write sample quiz: {e}")

        bank = parse_question_bank(sample_quiz_data, name="sample_quiz",
                                   default_time_limit=self.default_time_limit)
        self.loaded_quizzes[bank.name] = bank
        self.sample_quiz_created = True
        self.logger.info(f"Loaded sample quiz with {len(bank.questions)} questions")

        return self.loaded_quizzes

    def get_load_errors(self) -> List[str]:
        return self.load_errors.copy()

    def has_load_errors(self) -> bool:
        return len(self.load_errors) > 0

    def get_loading_summary(self) -> Dict[str, Any]:
        """
        Get a summary of the last loading operation.

        Returns:
            Dictionary with loading statistics and status
        """
        return {
            'total_quizzes': len(self.loaded_quizzes),
            'has_errors': self.has_load_errors(),
            'error_count': len(self.load_errors),
            'errors': self.get_load_errors(),
            'sample_quiz_created': self.sample_quiz_created,
            'quiz_directory': str(self.quiz_directory),
            'available_quizzes': list(self.loaded_quizzes.keys())
        }
