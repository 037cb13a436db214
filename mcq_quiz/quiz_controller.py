"""
Quiz session controller for the MCQ Quiz Bot.
Manages one quiz session per player and the shared attempt history.
"""
import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .attempt_store import AttemptStore, JsonHistoryStorage, MemoryHistoryStorage
from .config_manager import ConfigManager
from .data_manager import DataManager
from .exceptions import InvalidTransitionError, QuizError
from .models import AttemptRecord
from .quiz_engine import QuizTimer, TickScheduler
from .quiz_session import QuizSession, SessionPhase


class QuizControllerError(QuizError):
    """Base exception for quiz controller errors."""
    pass


class SessionConflictError(QuizControllerError):
    """Raised when a player already has a quiz in progress."""
    pass


class SessionNotFoundError(InvalidTransitionError):
    """Raised when operating on a player without a session."""
    pass


class QuizNotFoundError(QuizControllerError):
    """Raised when the requested quiz is not loaded."""
    pass


class QuizController:
    """
    Orchestrates quiz sessions and the attempt history.

    Each player owns at most one session. All sessions record into the same
    AttemptStore, which is loaded once when the controller is created.
    """

    def __init__(
        self,
        data_manager: DataManager,
        config_manager: ConfigManager,
        attempt_store: Optional[AttemptStore] = None,
        scheduler: Optional[TickScheduler] = None
    ):
        """
        Initialize the quiz controller.

        Args:
            data_manager: Instance for loading quiz data
            config_manager: Instance for managing configuration
            attempt_store: History store, built from configuration if None
            scheduler: Tick scheduler shared by all session timers
        """
        self.logger = logging.getLogger(__name__)
        self.data_manager = data_manager
        self.config_manager = config_manager
        self.scheduler = scheduler or TickScheduler()
        self.attempt_store = attempt_store or self._build_attempt_store()

        # Sessions mapped by player ID
        self._sessions: Dict[int, QuizSession] = {}
        self._quiz_names: Dict[int, str] = {}

        self.logger.info("QuizController initialized")

    def _build_attempt_store(self) -> AttemptStore:
        settings = self.config_manager.get_quiz_settings()
        if settings.history_file:
            storage = JsonHistoryStorage(Path(settings.history_file))
        else:
            storage = MemoryHistoryStorage()
        return AttemptStore(storage, max_records=settings.history_limit)

    def create_session(
        self,
        player_id: int,
        quiz_name: str,
        on_tick: Optional[Callable[[QuizSession, int], Any]] = None,
        on_time_up: Optional[Callable[[QuizSession], Any]] = None,
        on_complete: Optional[Callable[[QuizSession, AttemptRecord], Any]] = None
    ) -> QuizSession:
        """
        Create a new, not yet started session for a player.

        A finished or not-started session of the same player is replaced.

        Args:
            player_id: Player identifier
            quiz_name: Name of the quiz to load
            on_tick: Presentation hook for timer ticks
            on_time_up: Presentation hook for timeouts
            on_complete: Presentation hook for completion

        Returns:
            The new QuizSession

        Raises:
            SessionConflictError: If the player has a quiz in progress
            QuizNotFoundError: If the quiz is not loaded
        """
        if self.has_active_session(player_id):
            self.logger.warning(f"Attempted to create session for player {player_id} "
                                f"but a quiz is already in progress")
            raise SessionConflictError(f"Quiz already in progress for player {player_id}")

        questions = self.data_manager.get_quiz_questions(quiz_name)
        if questions is None:
            available_quizzes = self.data_manager.get_available_quizzes()
            if not available_quizzes:
                raise QuizNotFoundError("No quiz files available. Please add quiz files to the quizzes directory.")
            raise QuizNotFoundError(f"Quiz '{quiz_name}' not found. Available quizzes: {', '.join(available_quizzes)}")

        self._discard_session(player_id)

        settings = self.config_manager.get_quiz_settings()
        timer = QuizTimer(
            scheduler=self.scheduler,
            tick_interval=settings.tick_interval,
            label=f"player-{player_id}"
        )
        session = QuizSession(
            questions,
            timer=timer,
            attempt_store=self.attempt_store,
            default_user_name=settings.default_user_name,
            on_tick=on_tick,
            on_time_up=on_time_up,
            on_complete=on_complete
        )

        self._sessions[player_id] = session
        self._quiz_names[player_id] = quiz_name
        self.logger.info(f"Created quiz session for player {player_id}: "
                         f"quiz='{quiz_name}', questions={len(questions)}")
        return session

    def start_session(self, player_id: int, user_name: str = "") -> bool:
        """
        Start the player's session.

        Raises:
            SessionNotFoundError: If the player has no session
            EmptyQuestionBankError: If the quiz has no questions
            MalformedQuestionError: If a question is invalid
        """
        return self._require_session(player_id).start(user_name)

    def get_session(self, player_id: int) -> Optional[QuizSession]:
        return self._sessions.get(player_id)

    def get_quiz_name(self, player_id: int) -> Optional[str]:
        return self._quiz_names.get(player_id)

    def has_active_session(self, player_id: int) -> bool:
        """True if the player has a session in progress."""
        session = self._sessions.get(player_id)
        return session is not None and session.phase is SessionPhase.IN_PROGRESS

    def select_answer(self, player_id: int, index: int) -> bool:
        return self._require_session(player_id).select_answer(index)

    def time_up(self, player_id: int) -> bool:
        return self._require_session(player_id).time_up()

    def next_question(self, player_id: int) -> bool:
        return self._require_session(player_id).next_question()

    def restart_session(self, player_id: int) -> None:
        """Reset the player's session to NOT_STARTED. History is kept."""
        self._require_session(player_id).restart()

    def end_session(self, player_id: int) -> bool:
        """
        Stop and forget the player's session.

        Returns:
            True if a session was removed, False if there was none
        """
        if player_id not in self._sessions:
            self.logger.warning(
                f"Cannot end session for player {player_id}: no session exists",
                extra={
                    'event_type': 'session_end_no_session',
                    'player_id': player_id,
                    'timestamp': time.time()
                }
            )
            return False

        self._discard_session(player_id)
        self.logger.info(
            f"Ended session for player {player_id}",
            extra={
                'event_type': 'session_ended',
                'player_id': player_id,
                'timestamp': time.time()
            }
        )
        return True

    def get_session_progress(self, player_id: int) -> Optional[Dict[str, Any]]:
        """
        Get progress information for a player's session.

        Returns:
            Dictionary with progress info, None if the player has no session
        """
        session = self._sessions.get(player_id)
        if session is None:
            return None

        progress = session.progress()
        progress['quiz_name'] = self._quiz_names.get(player_id)
        bank = self.data_manager.get_quiz(progress['quiz_name'])
        progress['quiz_title'] = bank.title if bank else progress['quiz_name']
        return progress

    def get_history(self) -> List[AttemptRecord]:
        """Retained attempts, newest first."""
        return self.attempt_store.attempts

    def get_history_stats(self) -> Dict[str, int]:
        return self.attempt_store.aggregate()

    def clear_history(self) -> None:
        self.attempt_store.clear()

    def shutdown(self) -> None:
        """Stop every session and flush the history."""
        for player_id in list(self._sessions):
            self._discard_session(player_id)
        self.attempt_store.close()
        self.logger.info("QuizController shut down")

    def _require_session(self, player_id: int) -> QuizSession:
        session = self._sessions.get(player_id)
        if session is None:
            raise SessionNotFoundError(f"No quiz session for player {player_id}")
        return session

    def _discard_session(self, player_id: int) -> None:
        session = self._sessions.pop(player_id, None)
        self._quiz_names.pop(player_id, None)
        if session is not None:
            session.stop()
