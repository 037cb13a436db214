"""
Scoring rules for quiz sessions.
All functions are pure and have no side effects.
"""
import math
from typing import Dict, Optional, Sequence

from .models import Difficulty, DifficultyStats, Question, Selection


def is_correct(selected: Selection, correct_index: int, option_count: Optional[int] = None) -> bool:
    """
    Check whether a selection matches the correct option.

    Args:
        selected: Selected option index, TIMEOUT, or None
        correct_index: Index of the correct option
        option_count: Number of options, used to reject out-of-range indices

    Returns:
        True only for a valid option index equal to correct_index
    """
    if isinstance(selected, bool) or not isinstance(selected, int):
        return False
    if option_count is not None and not 0 <= selected < option_count:
        return False
    return selected == correct_index


def percentage(score: int, total: int) -> int:
    """
    Convert a score to a whole percentage, rounding halves up.

    Returns 0 when total is 0.
    """
    if total == 0:
        return 0
    return int(math.floor(100 * score / total + 0.5))


def difficulty_breakdown(
    questions: Sequence[Question],
    correctness: Sequence[Optional[bool]]
) -> Dict[str, DifficultyStats]:
    """
    Tally correct and total counts per difficulty.

    Args:
        questions: Questions of the session, in order
        correctness: Per-question result; False or None counts as incorrect

    Returns:
        Mapping of difficulty value to DifficultyStats, with every difficulty present
    """
    tallies = {difficulty.value: [0, 0] for difficulty in Difficulty}

    for position, question in enumerate(questions):
        bucket = tallies[Difficulty(question.difficulty).value]
        bucket[1] += 1
        if position < len(correctness) and correctness[position]:
            bucket[0] += 1

    return {
        difficulty: DifficultyStats(correct=correct, total=total)
        for difficulty, (correct, total) in tallies.items()
    }


def performance_label(score: int, total: int) -> str:
    """Short verdict shown next to a result."""
    if total > 0 and score == total:
        return "🎉 Perfect!"
    if score * 100 >= total * 80 and total > 0:
        return "👍 Excellent!"
    if score * 100 >= total * 60 and total > 0:
        return "😊 Good!"
    if score * 100 >= total * 40 and total > 0:
        return "📚 Keep Learning!"
    return "💪 Practice More!"
