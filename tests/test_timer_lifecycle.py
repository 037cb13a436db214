"""
Unit tests for the countdown timer lifecycle.
Covers arming, ticking, expiry, cancellation and re-arming.
"""
import unittest
import asyncio
from unittest.mock import Mock, patch

from mcq_quiz.quiz_engine import QuizTimer, TickScheduler, TimerLifecycleLogger
from tests.test_fixtures import FailingScheduler, ManualScheduler


class TestQuizTimerCountdown(unittest.TestCase):
    """Test cases for countdown behaviour on a manual scheduler."""

    def setUp(self):
        self.scheduler = ManualScheduler()
        self.timer = QuizTimer(scheduler=self.scheduler, label="test")
        self.on_expire = Mock()
        self.on_tick = Mock()

    def test_arm_seeds_countdown(self):
        self.timer.arm(3, self.on_expire, self.on_tick)

        self.assertTrue(self.timer.is_active)
        self.assertEqual(self.timer.remaining_time, 3)
        self.assertEqual(self.timer.total_duration, 3)
        self.assertEqual(len(self.scheduler.pending), 1)
        self.assertEqual(self.scheduler.pending[0].delay, 1.0)

    def test_arm_rejects_non_positive_duration(self):
        with self.assertRaises(ValueError):
            self.timer.arm(0, self.on_expire)
        with self.assertRaises(ValueError):
            self.timer.arm(-5, self.on_expire)

    def test_arm_scheduling_failure_leaves_timer_inactive(self):
        timer = QuizTimer(scheduler=FailingScheduler(), label="unscheduled")

        with self.assertRaises(RuntimeError):
            timer.arm(10, self.on_expire)

        self.assertFalse(timer.is_active)
        self.on_expire.assert_not_called()

    def test_tick_decrements_and_reports(self):
        self.timer.arm(3, self.on_expire, self.on_tick)

        self.scheduler.tick()

        self.assertEqual(self.timer.remaining_time, 2)
        self.on_tick.assert_called_once_with(2)
        self.on_expire.assert_not_called()

    def test_expires_once_at_zero(self):
        self.timer.arm(3, self.on_expire, self.on_tick)

        fired = self.scheduler.tick(10)

        self.assertEqual(fired, 3)
        self.assertEqual(self.timer.remaining_time, 0)
        self.assertFalse(self.timer.is_active)
        self.on_expire.assert_called_once_with()
        self.assertEqual([c.args[0] for c in self.on_tick.call_args_list], [2, 1, 0])
        self.assertEqual(self.scheduler.pending, [])

    def test_remaining_never_negative(self):
        self.timer.arm(1, self.on_expire)
        self.scheduler.tick(5)
        self.assertEqual(self.timer.remaining_time, 0)

    def test_cancel_stops_expiry(self):
        self.timer.arm(2, self.on_expire)
        self.scheduler.tick()

        self.timer.cancel()
        self.scheduler.tick(5)

        self.assertFalse(self.timer.is_active)
        self.assertTrue(self.timer.is_cancelled)
        self.assertEqual(self.timer.remaining_time, 1)
        self.on_expire.assert_not_called()

    def test_late_tick_after_cancel_is_ignored(self):
        self.timer.arm(2, self.on_expire)
        handle = self.scheduler.pending[0]

        self.timer.cancel()
        handle.callback()

        self.assertEqual(self.timer.remaining_time, 2)
        self.on_expire.assert_not_called()

    def test_rearm_replaces_pending_tick(self):
        self.timer.arm(5, self.on_expire)
        self.scheduler.tick(2)

        second_expire = Mock()
        self.timer.arm(2, second_expire)

        self.assertEqual(len(self.scheduler.pending), 1)
        self.assertEqual(self.timer.remaining_time, 2)
        self.scheduler.tick(5)
        self.on_expire.assert_not_called()
        second_expire.assert_called_once_with()

    def test_reseed_sets_remaining_without_ticking(self):
        self.timer.arm(5, self.on_expire)

        self.timer.reseed(30)

        self.assertFalse(self.timer.is_active)
        self.assertEqual(self.timer.remaining_time, 30)
        self.assertEqual(self.scheduler.pending, [])

    def test_tick_callback_error_is_logged_and_countdown_continues(self):
        self.on_tick.side_effect = RuntimeError("boom")
        self.timer.arm(2, self.on_expire, self.on_tick)

        with patch.object(TimerLifecycleLogger, 'log_timer_error') as mock_log_error:
            self.scheduler.tick(2)

        self.assertEqual(mock_log_error.call_count, 2)
        self.on_expire.assert_called_once_with()

    def test_tick_callback_may_cancel_timer(self):
        self.on_tick.side_effect = lambda remaining: self.timer.cancel()
        self.timer.arm(1, self.on_expire, self.on_tick)

        self.scheduler.tick()

        self.on_expire.assert_not_called()
        self.assertEqual(self.scheduler.pending, [])

    def test_custom_tick_interval(self):
        timer = QuizTimer(scheduler=self.scheduler, tick_interval=0.25)
        timer.arm(1, self.on_expire)
        self.assertEqual(self.scheduler.pending[0].delay, 0.25)

    def test_get_status(self):
        self.timer.arm(4, self.on_expire)
        self.scheduler.tick()

        status = self.timer.get_status()

        self.assertEqual(status, {
            'remaining_time': 3,
            'total_duration': 4,
            'is_active': True,
            'is_cancelled': False
        })


class TestTimerLifecycleLogging(unittest.TestCase):
    """Test cases for lifecycle log events."""

    def setUp(self):
        self.scheduler = ManualScheduler()
        self.timer = QuizTimer(scheduler=self.scheduler, label="logged")

    @patch.object(TimerLifecycleLogger, 'log_timer_completion')
    @patch.object(TimerLifecycleLogger, 'log_timer_armed')
    def test_natural_expiry_logged(self, mock_armed, mock_completion):
        self.timer.arm(1, Mock())
        self.scheduler.tick()

        mock_armed.assert_called_once_with("logged", 1)
        mock_completion.assert_called_once_with("logged", "natural_expiry", 1)

    @patch.object(TimerLifecycleLogger, 'log_timer_completion')
    def test_cancellation_logged(self, mock_completion):
        self.timer.arm(3, Mock())
        self.timer.cancel()
        mock_completion.assert_called_once_with("logged", "cancelled", 3)

    @patch.object(TimerLifecycleLogger, 'log_timer_state_transition')
    def test_cancel_without_countdown_logged_as_transition(self, mock_transition):
        self.timer.cancel()
        mock_transition.assert_called_once()

    def test_update_logging_is_throttled(self):
        with patch('mcq_quiz.quiz_engine.logger') as mock_logger:
            TimerLifecycleLogger.log_timer_update("t", 17, 30)
            mock_logger.debug.assert_not_called()
            TimerLifecycleLogger.log_timer_update("t", 20, 30)
            TimerLifecycleLogger.log_timer_update("t", 3, 30)
            self.assertEqual(mock_logger.debug.call_count, 2)


class TestQuizTimerOnEventLoop(unittest.IsolatedAsyncioTestCase):
    """Test cases for the timer running on the asyncio loop."""

    async def test_expires_on_running_loop(self):
        expired = asyncio.Event()
        ticks = []
        timer = QuizTimer(tick_interval=0.01)

        timer.arm(3, expired.set, ticks.append)
        await asyncio.wait_for(expired.wait(), timeout=2.0)

        self.assertEqual(ticks, [2, 1, 0])
        self.assertFalse(timer.is_active)

    async def test_cancel_on_running_loop(self):
        on_expire = Mock()
        timer = QuizTimer(scheduler=TickScheduler(asyncio.get_running_loop()), tick_interval=0.01)

        timer.arm(3, on_expire)
        timer.cancel()
        await asyncio.sleep(0.1)

        on_expire.assert_not_called()
        self.assertEqual(timer.remaining_time, 3)


if __name__ == '__main__':
    unittest.main()
