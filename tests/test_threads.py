"""
Tests for the timer and launcher threads.

Tests cover:
- Minute boundary computation
- Timer sleeping (never short) and ticking
- Launchers matching patterns against the tick in registration order
- Failing task sources and cancellation
"""

import threading
import time
import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock
import os

# Add parent directory to path for imports
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from crontick.cron_parser import SchedulingPattern
from crontick.task import RunnableTask
from crontick.task_source import MemoryTaskSource, TaskTable
from crontick.threads import (
    LauncherThread,
    TimerThread,
    join_until_dead,
    next_minute_boundary,
)


def noop(context):
    pass


class TestHelpers(unittest.TestCase):
    """Test the module helpers."""

    def test_next_minute_boundary(self):
        """The boundary is the next whole minute, strictly later."""
        self.assertEqual(next_minute_boundary(119.5), 120.0)
        self.assertEqual(next_minute_boundary(120.0), 180.0)
        self.assertEqual(next_minute_boundary(0.0), 60.0)

    def test_join_until_dead(self):
        """join_until_dead returns only once the thread has exited."""
        thread = threading.Thread(target=time.sleep, args=(0.1,))
        thread.start()
        join_until_dead(thread)
        self.assertFalse(thread.is_alive())

    def test_join_until_dead_not_started_thread_is_noop(self):
        """A thread that is not alive is returned from immediately."""
        join_until_dead(threading.Thread(target=noop))


class TestTimerThread(unittest.TestCase):
    """Test the scheduler heartbeat."""

    def test_sleep_until_never_sleeps_short(self):
        """An early wake-up should lead to sleeping again."""
        readings = iter([110.0, 119.999, 120.0])
        timer = TimerThread(Mock(), clock=lambda: next(readings))
        timer._cancelled = Mock()
        timer._cancelled.wait.return_value = False
        timer._cancelled.is_set.return_value = False

        self.assertTrue(timer._sleep_until(120.0))

        waits = [call.args[0] for call in timer._cancelled.wait.call_args_list]
        self.assertEqual(len(waits), 2)
        self.assertAlmostEqual(waits[0], 10.0)
        self.assertAlmostEqual(waits[1], 0.001, places=6)

    def test_sleep_until_cancelled(self):
        """Cancellation should interrupt the sleep."""
        timer = TimerThread(Mock(), clock=lambda: 100.0)
        timer.cancel()
        self.assertTrue(timer.is_cancelled())
        self.assertFalse(timer._sleep_until(120.0))

    def test_ticks_at_minute_boundary(self):
        """The timer should spawn a launcher once the boundary is reached."""
        now = time.time()
        boundary = next_minute_boundary(now)
        # Pretend the wall clock is half a second before a minute boundary
        shift = boundary - 0.5 - now

        scheduler = Mock()
        ticked = threading.Event()
        scheduler._spawn_launcher.side_effect = lambda ts: ticked.set()

        timer = TimerThread(scheduler, clock=lambda: time.time() + shift)
        timer.start()
        try:
            self.assertTrue(ticked.wait(5))
        finally:
            timer.cancel()
            join_until_dead(timer)

        self.assertFalse(timer.is_alive())
        scheduler._spawn_launcher.assert_called_once()
        tick = scheduler._spawn_launcher.call_args.args[0]
        self.assertGreaterEqual(tick, boundary)
        self.assertLess(tick - boundary, 1.0)

    def test_spawn_failure_does_not_stop_timer(self):
        """A failing launch request is logged and the timer keeps running."""
        now = time.time()
        shift = next_minute_boundary(now) - 0.5 - now

        scheduler = Mock()
        called = threading.Event()

        def fail(ts):
            called.set()
            raise RuntimeError("cannot start thread")

        scheduler._spawn_launcher.side_effect = fail

        timer = TimerThread(scheduler, clock=lambda: time.time() + shift)
        timer.start()
        try:
            self.assertTrue(called.wait(5))
            time.sleep(0.05)
            self.assertTrue(timer.is_alive())
        finally:
            timer.cancel()
            join_until_dead(timer)

    def test_cancel_exits_promptly(self):
        """A cancelled timer exits without waiting for the next tick."""
        timer = TimerThread(Mock(), daemon=True)
        timer.start()
        began = time.time()
        timer.cancel()
        join_until_dead(timer)
        self.assertLess(time.time() - began, 5)
        self.assertTrue(timer.daemon)


class TestLauncherThread(unittest.TestCase):
    """Test per-tick launching."""

    # 2024-01-01 12:00 UTC
    TICK = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc).timestamp()

    def setUp(self):
        self.scheduler = Mock()
        self.scheduler.get_timezone.return_value = timedelta(0)
        self.source = MemoryTaskSource()
        self.noon = RunnableTask(noop)
        self.half_past = RunnableTask(noop)
        self.always = RunnableTask(noop)
        self.source.add(SchedulingPattern("0 12 * * *"), self.noon)
        self.source.add(SchedulingPattern("30 12 * * *"), self.half_past)
        self.source.add(SchedulingPattern("* * * * *"), self.always)

    def run_launcher(self, sources, reference_time=None):
        launcher = LauncherThread(
            self.scheduler, sources, reference_time or self.TICK
        )
        launcher.start()
        join_until_dead(launcher)
        return launcher

    def spawned(self):
        return [call.args[0] for call in self.scheduler._spawn_executor.call_args_list]

    def test_launches_matching_tasks_in_order(self):
        """Only matching tasks are launched, in registration order."""
        launcher = self.run_launcher([self.source])

        self.assertEqual(self.spawned(), [self.noon, self.always])
        self.assertEqual(launcher.launched, 2)
        self.scheduler._notify_launcher_completed.assert_called_once_with(launcher)

    def test_uses_scheduler_timezone(self):
        """Patterns are matched in the scheduler's timezone."""
        self.scheduler.get_timezone.return_value = timedelta(minutes=30)
        self.run_launcher([self.source])
        self.assertEqual(self.spawned(), [self.half_past, self.always])

    def test_sources_in_order(self):
        """Sources are queried in the order given."""
        other = MemoryTaskSource()
        extra = RunnableTask(noop)
        other.add(SchedulingPattern("0 * * * *"), extra)

        self.run_launcher([other, self.source])

        self.assertEqual(self.spawned(), [extra, self.noon, self.always])

    def test_failing_source_is_skipped(self):
        """A source that raises does not prevent the others from launching."""
        broken = Mock()
        broken.get_tasks.side_effect = RuntimeError("source down")

        launcher = self.run_launcher([broken, self.source])

        self.assertEqual(self.spawned(), [self.noon, self.always])
        self.scheduler._notify_launcher_completed.assert_called_once_with(launcher)

    def test_custom_task_table(self):
        """Any TaskSource returning a TaskTable is supported."""
        table = TaskTable()
        task = RunnableTask(noop)
        table.add(SchedulingPattern("0 12 1 1 *"), task)
        source = Mock()
        source.get_tasks.return_value = table

        self.run_launcher([source])

        self.assertEqual(self.spawned(), [task])

    def test_cancelled_launcher_launches_nothing(self):
        """A cancelled launcher still deregisters itself."""
        launcher = LauncherThread(self.scheduler, [self.source], self.TICK)
        launcher.cancel()
        launcher.start()
        join_until_dead(launcher)

        self.scheduler._spawn_executor.assert_not_called()
        self.scheduler._notify_launcher_completed.assert_called_once_with(launcher)

    def test_sources_are_snapshotted(self):
        """Changing the caller's list after creation has no effect."""
        sources = [self.source]
        launcher = LauncherThread(self.scheduler, sources, self.TICK)
        sources.clear()
        launcher.start()
        join_until_dead(launcher)
        self.assertEqual(launcher.launched, 2)


if __name__ == "__main__":
    unittest.main()
