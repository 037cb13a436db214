"""
Core data models for the MCQ Quiz Bot.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from .exceptions import EmptyQuestionBankError, MalformedQuestionError


class Difficulty(str, Enum):
    """Difficulty tag carried by every question."""
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class _Timeout:
    """Selection recorded when a question runs out of time."""

    def __repr__(self) -> str:
        return "TIMEOUT"


TIMEOUT = _Timeout()

# Longest display name kept on an attempt
MAX_USER_NAME_LENGTH = 50

Selection = Union[None, int, _Timeout]


@dataclass(frozen=True)
class Question:
    """Represents a single multiple-choice question."""
    id: Union[int, str]
    text: str
    options: Tuple[str, ...]
    correct_answer_index: int
    difficulty: Difficulty = Difficulty.MEDIUM
    time_limit_seconds: int = 30

    def __post_init__(self):
        # Store options as a tuple
        object.__setattr__(self, 'options', tuple(self.options))
        try:
            object.__setattr__(self, 'difficulty', Difficulty(self.difficulty))
        except ValueError:
            raise MalformedQuestionError(
                f"Question {self.id!r} has unknown difficulty {self.difficulty!r}"
            )
        self.validate()

    def validate(self) -> None:
        """
        Check the question invariant.

        Raises:
            MalformedQuestionError: If the question cannot be asked
        """
        if len(self.options) < 2:
            raise MalformedQuestionError(
                f"Question {self.id!r} needs at least 2 options, got {len(self.options)}"
            )
        if (isinstance(self.correct_answer_index, bool) or
                not isinstance(self.correct_answer_index, int) or
                not 0 <= self.correct_answer_index < len(self.options)):
            raise MalformedQuestionError(
                f"Question {self.id!r} has correct answer index {self.correct_answer_index!r} "
                f"outside 0..{len(self.options) - 1}"
            )
        if (isinstance(self.time_limit_seconds, bool) or
                not isinstance(self.time_limit_seconds, int) or
                self.time_limit_seconds <= 0):
            raise MalformedQuestionError(
                f"Question {self.id!r} time limit must be a positive integer, "
                f"got {self.time_limit_seconds!r}"
            )

    @property
    def correct_option(self) -> str:
        """Text of the correct option."""
        return self.options[self.correct_answer_index]


def validate_question_bank(questions: Sequence[Question]) -> None:
    """
    Verify a question sequence can be run as a quiz.

    Raises:
        EmptyQuestionBankError: If there are no questions
        MalformedQuestionError: If any question breaks its invariant
    """
    if not questions:
        raise EmptyQuestionBankError("Cannot start a quiz without questions")
    for question in questions:
        if not isinstance(question, Question):
            raise MalformedQuestionError(f"Not a question record: {question!r}")
        question.validate()


@dataclass
class QuestionBank:
    """An ordered, named set of questions loaded from one quiz file."""
    name: str
    title: str
    questions: List[Question] = field(default_factory=list)


@dataclass(frozen=True)
class DifficultyStats:
    """Correct/total tally for one difficulty bucket."""
    correct: int = 0
    total: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {'correct': self.correct, 'total': self.total}


@dataclass(frozen=True)
class AttemptRecord:
    """Summary of one completed quiz session."""
    id: int
    user_name: str
    score: int
    total_questions: int
    percentage: int
    timestamp: datetime
    difficulty_breakdown: Dict[str, DifficultyStats] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Serialise to the JSON layout used by the history file."""
        return {
            'id': self.id,
            'userName': self.user_name,
            'score': self.score,
            'totalQuestions': self.total_questions,
            'percentage': self.percentage,
            'timestamp': self.timestamp.isoformat(),
            'difficultyBreakdown': {
                difficulty: stats.to_dict()
                for difficulty, stats in self.difficulty_breakdown.items()
            }
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AttemptRecord':
        """
        Build a record from its serialised form.

        Raises:
            ValueError: If required fields are missing or have the wrong type
        """
        try:
            breakdown = {
                str(difficulty): DifficultyStats(
                    correct=int(stats['correct']),
                    total=int(stats['total'])
                )
                for difficulty, stats in data.get('difficultyBreakdown', {}).items()
            }
            record = cls(
                id=int(data['id']),
                user_name=str(data['userName']),
                score=int(data['score']),
                total_questions=int(data['totalQuestions']),
                percentage=int(data['percentage']),
                timestamp=datetime.fromisoformat(data['timestamp']),
                difficulty_breakdown=breakdown
            )
        except (KeyError, TypeError, AttributeError) as e:
            raise ValueError(f"Invalid attempt record: {e}") from e

        if not 0 <= record.score <= record.total_questions:
            raise ValueError(
                f"Invalid attempt record: score {record.score} outside 0..{record.total_questions}"
            )
        return record


@dataclass
class QuizSettings:
    """Configuration settings for quiz sessions and history."""
    default_time_limit: int = 30
    history_limit: int = 10
    default_user_name: str = "Anonymous"
    tick_interval: float = 1.0
    history_file: Optional[str] = "./data/quiz_attempts.json"
