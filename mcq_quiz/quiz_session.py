"""
Quiz session state machine for the MCQ Quiz Bot.
Drives question progression, answer locking, the per-question countdown
and scoring for one run through a question bank.
"""
import logging
import time
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from .models import (
    MAX_USER_NAME_LENGTH,
    TIMEOUT,
    AttemptRecord,
    Question,
    Selection,
    validate_question_bank,
)
from .quiz_engine import QuizTimer
from . import scoring


class SessionPhase(Enum):
    """Enumeration of quiz session phases."""
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class QuizSession:
    """
    One player's run through an ordered list of questions.

    All transitions are synchronous: the guard check and the state change
    happen without yielding to the event loop, so a timer tick can never
    interleave with a user selection.
    """

    def __init__(
        self,
        questions: Sequence[Question],
        timer: Optional[QuizTimer] = None,
        attempt_store=None,
        default_user_name: str = "Anonymous",
        on_tick: Optional[Callable[['QuizSession', int], Any]] = None,
        on_time_up: Optional[Callable[['QuizSession'], Any]] = None,
        on_complete: Optional[Callable[['QuizSession', AttemptRecord], Any]] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        """
        Initialize the session.

        Args:
            questions: Ordered questions, validated when the session starts
            timer: Countdown timer, a new QuizTimer if None
            attempt_store: Store that receives the AttemptRecord on completion
            default_user_name: Name recorded when the player gives none
            on_tick: Called with the remaining seconds after every timer tick
            on_time_up: Called after a question is locked by timeout
            on_complete: Called with the AttemptRecord when the quiz finishes
            clock: Source of completion timestamps
        """
        self.logger = logging.getLogger(__name__)
        self._questions: List[Question] = list(questions)
        self._timer = timer or QuizTimer()
        self._attempt_store = attempt_store
        self._default_user_name = default_user_name
        self._on_tick = on_tick
        self._on_time_up = on_time_up
        self._on_complete = on_complete
        self._clock = clock

        self._reset_state()

    def _reset_state(self) -> None:
        self._phase = SessionPhase.NOT_STARTED
        self._current_index = 0
        self._score = 0
        self._selected_answer: Selection = None
        self._answered = False
        self._timer_active = False
        self._user_name = ""
        self._results: List[Optional[bool]] = [None] * len(self._questions)
        self._last_attempt: Optional[AttemptRecord] = None
        self._start_time: Optional[datetime] = None
        # Items are only validated on start
        if self._questions and isinstance(self._questions[0], Question):
            self._timer.reseed(self._questions[0].time_limit_seconds)
        else:
            self._timer.reseed(0)

    # Read-only state

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def questions(self) -> List[Question]:
        return list(self._questions)

    @property
    def total_questions(self) -> int:
        return len(self._questions)

    @property
    def current_index(self) -> int:
        return self._current_index

    @property
    def current_question(self) -> Optional[Question]:
        if not self._questions:
            return None
        return self._questions[self._current_index]

    @property
    def score(self) -> int:
        return self._score

    @property
    def selected_answer(self) -> Selection:
        return self._selected_answer

    @property
    def answered(self) -> bool:
        return self._answered

    @property
    def timed_out(self) -> bool:
        return self._selected_answer is TIMEOUT

    @property
    def timer_remaining(self) -> int:
        return self._timer.remaining_time

    @property
    def timer_active(self) -> bool:
        return self._timer_active

    @property
    def user_name(self) -> str:
        return self._user_name

    @property
    def start_time(self) -> Optional[datetime]:
        return self._start_time

    @property
    def last_attempt(self) -> Optional[AttemptRecord]:
        """Record built when the session last completed."""
        return self._last_attempt

    @property
    def is_last_question(self) -> bool:
        return self._current_index == len(self._questions) - 1

    def last_answer_correct(self) -> bool:
        """Whether the current question was locked with the correct option."""
        question = self.current_question
        if question is None or not self._answered:
            return False
        return scoring.is_correct(
            self._selected_answer,
            question.correct_answer_index,
            len(question.options)
        )

    def progress(self) -> Dict[str, Any]:
        """
        Snapshot of the session for presentation.

        Returns:
            Dictionary with phase, position, score and timer state
        """
        question = self.current_question
        return {
            'phase': self._phase.value,
            'user_name': self._user_name,
            'current_question': self._current_index + 1,
            'total_questions': len(self._questions),
            'score': self._score,
            'answered': self._answered,
            'timed_out': self.timed_out,
            'timer_remaining': self.timer_remaining,
            'timer_active': self._timer_active,
            'time_limit': question.time_limit_seconds if question else 0,
            'difficulty': question.difficulty.value if question else None,
            'start_time': self._start_time
        }

    # Transitions

    def start(self, user_name: str = "") -> bool:
        """
        Begin the quiz at the first question and start its countdown.

        Args:
            user_name: Display name recorded in the attempt

        Returns:
            True if the session started, False if it was not in NOT_STARTED

        Raises:
            EmptyQuestionBankError: If there are no questions
            MalformedQuestionError: If a question breaks its invariant
        """
        validate_question_bank(self._questions)

        if self._phase is not SessionPhase.NOT_STARTED:
            self._log_ignored("start", "session already started")
            return False

        # Arm first so a scheduling failure leaves the session NOT_STARTED
        self._open_question(0)
        self._user_name = (user_name or "").strip()[:MAX_USER_NAME_LENGTH]
        self._phase = SessionPhase.IN_PROGRESS
        self._start_time = self._clock()

        self.logger.info(
            f"Quiz session started for '{self._user_name or self._default_user_name}' "
            f"with {len(self._questions)} questions",
            extra={
                'event_type': 'session_started',
                'total_questions': len(self._questions),
                'timestamp': time.time()
            }
        )
        return True

    def select_answer(self, index: int) -> bool:
        """
        Lock the current question with the chosen option.

        Calls made after the question is locked, or with an index that is not
        an option of the current question, change nothing.

        Args:
            index: Zero-based option index

        Returns:
            True if this call locked the question, False otherwise
        """
        question = self.current_question
        if (question is None or isinstance(index, bool) or not isinstance(index, int)
                or not 0 <= index < len(question.options)):
            self._log_ignored("select_answer", f"invalid option index {index!r}")
            return False

        if not self._lock_current(index):
            return False

        if scoring.is_correct(index, question.correct_answer_index, len(question.options)):
            self._score += 1
            self._results[self._current_index] = True
        else:
            self._results[self._current_index] = False

        self.logger.debug(
            f"Question {self._current_index + 1} answered with option {index}, score {self._score}",
            extra={
                'event_type': 'answer_selected',
                'question_index': self._current_index,
                'selected': index,
                'score': self._score,
                'timestamp': time.time()
            }
        )
        return True

    def time_up(self) -> bool:
        """
        Lock the current question as timed out.

        Returns:
            True if this call locked the question, False otherwise
        """
        if not self._lock_current(TIMEOUT):
            return False

        self._results[self._current_index] = False
        self.logger.debug(
            f"Question {self._current_index + 1} timed out",
            extra={
                'event_type': 'question_timed_out',
                'question_index': self._current_index,
                'timestamp': time.time()
            }
        )

        if self._on_time_up is not None:
            self._on_time_up(self)
        return True

    def next_question(self) -> bool:
        """
        Move past a locked question, completing the quiz after the last one.

        Returns:
            True if the session advanced or completed, False if the current
            question is not locked yet
        """
        if self._phase is not SessionPhase.IN_PROGRESS or not self._answered:
            self._log_ignored("next_question", "current question not answered")
            return False

        if self._current_index + 1 < len(self._questions):
            self._open_question(self._current_index + 1)
            self.logger.debug(f"Advanced to question {self._current_index + 1} of {len(self._questions)}")
            return True

        self._complete()
        return True

    def restart(self) -> None:
        """Return to NOT_STARTED, discarding progress. History is untouched."""
        self._timer.cancel()
        previous_phase = self._phase
        self._reset_state()
        self.logger.info(
            f"Quiz session restarted from {previous_phase.value}",
            extra={
                'event_type': 'session_restarted',
                'previous_phase': previous_phase.value,
                'timestamp': time.time()
            }
        )

    def stop(self) -> None:
        """Cancel the countdown without changing session state."""
        self._timer.cancel()
        self._timer_active = False

    # Internals

    def _lock_current(self, selection: Selection) -> bool:
        """Guarded Open -> Locked transition shared by selection and timeout."""
        if self._phase is not SessionPhase.IN_PROGRESS:
            self._log_ignored("lock", f"session is {self._phase.value}")
            return False
        if self._answered or not self._timer_active:
            self._log_ignored("lock", "question already locked")
            return False

        self._selected_answer = selection
        self._answered = True
        self._timer_active = False
        if self._timer.is_active:
            self._timer.cancel()
        return True

    def _open_question(self, index: int) -> None:
        self._timer.arm(
            self._questions[index].time_limit_seconds,
            on_expire=self.time_up,
            on_tick=self._handle_tick
        )
        self._current_index = index
        self._selected_answer = None
        self._answered = False
        self._timer_active = True

    def _handle_tick(self, remaining: int) -> None:
        if self._on_tick is not None:
            self._on_tick(self, remaining)

    def _complete(self) -> None:
        self._phase = SessionPhase.COMPLETED
        self._timer_active = False
        self._timer.cancel()

        total = len(self._questions)
        attempt = AttemptRecord(
            id=int(time.time() * 1000),
            user_name=self._user_name or self._default_user_name,
            score=self._score,
            total_questions=total,
            percentage=scoring.percentage(self._score, total),
            timestamp=self._clock(),
            difficulty_breakdown=scoring.difficulty_breakdown(self._questions, self._results)
        )

        if self._attempt_store is not None:
            attempt = self._attempt_store.record(attempt)
        self._last_attempt = attempt

        self.logger.info(
            f"Quiz completed by '{attempt.user_name}': {attempt.score}/{total} ({attempt.percentage}%)",
            extra={
                'event_type': 'session_completed',
                'score': attempt.score,
                'total_questions': total,
                'percentage': attempt.percentage,
                'timestamp': time.time()
            }
        )

        if self._on_complete is not None:
            self._on_complete(self, attempt)

    def _log_ignored(self, operation: str, reason: str) -> None:
        self.logger.debug(
            f"Ignored {operation}: {reason}",
            extra={
                'event_type': 'transition_ignored',
                'operation': operation,
                'reason': reason,
                'phase': self._phase.value,
                'timestamp': time.time()
            }
        )
