"""
Unit tests for QuizController session management.
"""
import unittest
from unittest.mock import Mock

from mcq_quiz.attempt_store import AttemptStore, JsonHistoryStorage, MemoryHistoryStorage
from mcq_quiz.config_manager import ConfigManager
from mcq_quiz.data_manager import DataManager
from mcq_quiz.models import QuestionBank, QuizSettings
from mcq_quiz.quiz_controller import (
    QuizController,
    QuizNotFoundError,
    SessionConflictError,
    SessionNotFoundError,
)
from mcq_quiz.quiz_session import SessionPhase
from tests.test_fixtures import ManualScheduler, TestFixtures


class TestQuizControllerSessions(unittest.TestCase):
    """Test cases for per-player session management."""

    def setUp(self):
        """Set up test fixtures."""
        self.mock_data_manager = Mock(spec=DataManager)
        self.mock_config_manager = Mock(spec=ConfigManager)

        self.sample_questions = TestFixtures.create_sample_questions()
        self.mock_data_manager.get_quiz_questions.return_value = self.sample_questions
        self.mock_data_manager.get_available_quizzes.return_value = ["test_quiz"]
        self.mock_data_manager.get_quiz.return_value = QuestionBank(
            name="test_quiz", title="Test Quiz", questions=self.sample_questions
        )
        self.mock_config_manager.get_quiz_settings.return_value = QuizSettings(history_file=None)

        self.scheduler = ManualScheduler()
        self.store = AttemptStore(MemoryHistoryStorage())
        self.controller = QuizController(
            self.mock_data_manager,
            self.mock_config_manager,
            attempt_store=self.store,
            scheduler=self.scheduler
        )
        self.player_id = 12345

    def test_create_session(self):
        session = self.controller.create_session(self.player_id, "test_quiz")

        self.assertEqual(session.phase, SessionPhase.NOT_STARTED)
        self.assertIs(self.controller.get_session(self.player_id), session)
        self.assertEqual(self.controller.get_quiz_name(self.player_id), "test_quiz")
        self.assertFalse(self.controller.has_active_session(self.player_id))
        self.mock_data_manager.get_quiz_questions.assert_called_once_with("test_quiz")

    def test_create_session_unknown_quiz(self):
        self.mock_data_manager.get_quiz_questions.return_value = None

        with self.assertRaises(QuizNotFoundError) as ctx:
            self.controller.create_session(self.player_id, "missing")

        self.assertIn("test_quiz", str(ctx.exception))
        self.assertIsNone(self.controller.get_session(self.player_id))

    def test_create_session_no_quizzes_loaded(self):
        self.mock_data_manager.get_quiz_questions.return_value = None
        self.mock_data_manager.get_available_quizzes.return_value = []

        with self.assertRaises(QuizNotFoundError) as ctx:
            self.controller.create_session(self.player_id, "missing")
        self.assertIn("No quiz files", str(ctx.exception))

    def test_create_session_while_in_progress_conflicts(self):
        self.controller.create_session(self.player_id, "test_quiz")
        self.controller.start_session(self.player_id, "Alice")

        with self.assertRaises(SessionConflictError):
            self.controller.create_session(self.player_id, "test_quiz")

    def test_create_session_replaces_finished_session(self):
        first = self.controller.create_session(self.player_id, "test_quiz")
        self.controller.start_session(self.player_id, "Alice")
        for index in (1, 0, 2):
            self.controller.select_answer(self.player_id, index)
            self.controller.next_question(self.player_id)
        self.assertEqual(first.phase, SessionPhase.COMPLETED)

        second = self.controller.create_session(self.player_id, "test_quiz")

        self.assertIsNot(first, second)
        self.assertEqual(second.phase, SessionPhase.NOT_STARTED)

    def test_players_are_isolated(self):
        self.controller.create_session(1, "test_quiz")
        self.controller.create_session(2, "test_quiz")
        self.controller.start_session(1, "One")
        self.controller.start_session(2, "Two")

        self.controller.select_answer(1, 1)

        self.assertTrue(self.controller.get_session(1).answered)
        self.assertFalse(self.controller.get_session(2).answered)
        self.assertEqual(len(self.scheduler.pending), 1)

    def test_timer_drives_session(self):
        on_time_up = Mock()
        self.controller.create_session(self.player_id, "test_quiz", on_time_up=on_time_up)
        self.controller.start_session(self.player_id, "Alice")

        self.scheduler.tick(30)

        session = self.controller.get_session(self.player_id)
        self.assertTrue(session.timed_out)
        on_time_up.assert_called_once_with(session)

    def test_operations_without_session_raise(self):
        for operation, args in (
            (self.controller.start_session, ("Alice",)),
            (self.controller.select_answer, (0,)),
            (self.controller.time_up, ()),
            (self.controller.next_question, ()),
            (self.controller.restart_session, ()),
        ):
            with self.subTest(operation=operation.__name__):
                with self.assertRaises(SessionNotFoundError):
                    operation(self.player_id, *args)

    def test_restart_session(self):
        self.controller.create_session(self.player_id, "test_quiz")
        self.controller.start_session(self.player_id, "Alice")
        self.controller.select_answer(self.player_id, 1)

        self.controller.restart_session(self.player_id)

        session = self.controller.get_session(self.player_id)
        self.assertEqual(session.phase, SessionPhase.NOT_STARTED)
        self.assertEqual(session.score, 0)
        self.assertEqual(self.controller.get_quiz_name(self.player_id), "test_quiz")

    def test_end_session(self):
        self.controller.create_session(self.player_id, "test_quiz")
        self.controller.start_session(self.player_id, "Alice")

        self.assertTrue(self.controller.end_session(self.player_id))

        self.assertIsNone(self.controller.get_session(self.player_id))
        self.assertEqual(self.scheduler.pending, [])
        self.assertFalse(self.controller.end_session(self.player_id))

    def test_session_progress(self):
        self.assertIsNone(self.controller.get_session_progress(self.player_id))

        self.controller.create_session(self.player_id, "test_quiz")
        self.controller.start_session(self.player_id, "Alice")
        progress = self.controller.get_session_progress(self.player_id)

        self.assertEqual(progress['quiz_name'], "test_quiz")
        self.assertEqual(progress['quiz_title'], "Test Quiz")
        self.assertEqual(progress['phase'], "in_progress")
        self.assertEqual(progress['timer_remaining'], 30)

    def test_shutdown_stops_sessions(self):
        self.controller.create_session(1, "test_quiz")
        self.controller.create_session(2, "test_quiz")
        self.controller.start_session(1, "One")
        self.controller.start_session(2, "Two")

        self.controller.shutdown()

        self.assertIsNone(self.controller.get_session(1))
        self.assertIsNone(self.controller.get_session(2))
        self.assertEqual(self.scheduler.pending, [])


class TestQuizControllerHistory(unittest.TestCase):
    """Test cases for the shared attempt history."""

    def setUp(self):
        self.mock_data_manager = Mock(spec=DataManager)
        self.mock_data_manager.get_quiz_questions.return_value = TestFixtures.create_short_questions(count=2)
        self.mock_data_manager.get_quiz.return_value = None
        self.config_manager = ConfigManager()
        self.config_manager.set_history_file(None)
        self.scheduler = ManualScheduler()
        self.controller = QuizController(
            self.mock_data_manager,
            self.config_manager,
            scheduler=self.scheduler
        )

    def play(self, player_id, name, answers):
        self.controller.create_session(player_id, "short")
        self.controller.start_session(player_id, name)
        for index in answers:
            self.controller.select_answer(player_id, index)
            self.controller.next_question(player_id)
        return self.controller.get_session(player_id).last_attempt

    def test_memory_store_built_from_settings(self):
        self.assertIsInstance(self.controller.attempt_store.storage, MemoryHistoryStorage)
        self.assertEqual(self.controller.attempt_store.max_records, 10)

    def test_json_store_built_from_settings(self):
        config_manager = ConfigManager()
        config_manager.set_history_limit(3)
        controller = QuizController(
            self.mock_data_manager,
            config_manager,
            attempt_store=None,
            scheduler=self.scheduler
        )
        # No attempts recorded, so nothing is written to the default location
        self.assertIsInstance(controller.attempt_store.storage, JsonHistoryStorage)
        self.assertEqual(controller.attempt_store.max_records, 3)

    def test_completed_sessions_recorded_newest_first(self):
        first = self.play(1, "Alice", [0, 0])
        second = self.play(2, "Bob", [0, 1])

        history = self.controller.get_history()

        self.assertEqual([a.user_name for a in history], ["Bob", "Alice"])
        self.assertEqual(history[0], second)
        self.assertNotEqual(first.id, second.id)

    def test_history_stats(self):
        self.play(1, "Alice", [0, 0])
        self.play(1, "Alice", [0, 1])

        stats = self.controller.get_history_stats()

        self.assertEqual(stats, {'count': 2, 'best_score': 2, 'average_percentage': 75})

    def test_default_user_name_from_settings(self):
        self.config_manager.set_default_user_name("Guest")
        attempt = self.play(1, "", [0, 0])
        self.assertEqual(attempt.user_name, "Guest")

    def test_clear_history(self):
        self.play(1, "Alice", [0, 0])

        self.controller.clear_history()

        self.assertEqual(self.controller.get_history(), [])
        self.assertEqual(self.controller.get_history_stats()['count'], 0)


if __name__ == '__main__':
    unittest.main()
