"""
Tests for the Predictor.

Tests cover:
- Next matching date across hour, day, month and year boundaries
- Multi-group patterns (earliest group wins)
- Last day of month and leap years
- Monotonicity and agreement with matching
- Unsatisfiable patterns and the search horizon
"""

import unittest
from datetime import datetime, timedelta, timezone
import os

# Add parent directory to path for imports
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from crontick.cron_parser import SchedulingPattern
from crontick.errors import InvalidPatternError, PredictionError
from crontick.predictor import Predictor


def brute_force(pattern: str, start: datetime, count: int):
    """The first ``count`` matching minutes after ``start``, found by stepping."""
    parsed = SchedulingPattern(pattern)
    found = []
    moment = start.replace(second=0, microsecond=0)
    while len(found) < count:
        moment += timedelta(minutes=1)
        if parsed.match(moment):
            found.append(moment)
    return found


class TestPredictorBasics(unittest.TestCase):
    """Test simple predictions."""

    def test_every_minute(self):
        """"* * * * *" should advance one minute at a time."""
        predictor = Predictor("* * * * *", start=datetime(2024, 1, 1, 10, 7))
        self.assertEqual(predictor.next_matching_date(), datetime(2024, 1, 1, 10, 8))
        self.assertEqual(predictor.next_matching_date(), datetime(2024, 1, 1, 10, 9))

    def test_start_is_truncated_to_minute(self):
        """Seconds of the start moment should be ignored."""
        predictor = Predictor("* * * * *", start=datetime(2024, 1, 1, 10, 7, 42, 500))
        self.assertEqual(predictor.cursor, datetime(2024, 1, 1, 10, 7))
        self.assertEqual(predictor.next_matching_date(), datetime(2024, 1, 1, 10, 8))

    def test_year_roll_over(self):
        """From Dec 31 23:59, "0 12 1 1 *" predicts Jan 1 12:00 of the next year."""
        predictor = Predictor("0 12 1 1 *", start=datetime(2023, 12, 31, 23, 59))
        self.assertEqual(predictor.next_matching_date(), datetime(2024, 1, 1, 12, 0))
        self.assertEqual(predictor.next_matching_date(), datetime(2025, 1, 1, 12, 0))

    def test_next_hour(self):
        """A fixed minute should roll into the next hour."""
        predictor = Predictor("5 * * * *", start=datetime(2024, 5, 5, 23, 30))
        self.assertEqual(predictor.next_matching_date(), datetime(2024, 5, 6, 0, 5))

    def test_wrapped_hours(self):
        """Wrapped hour ranges should be predicted in time order."""
        predictor = Predictor("0 22-1 * * *", start=datetime(2024, 5, 5, 12, 0))
        dates = [predictor.next_matching_date() for _ in range(5)]
        self.assertEqual(
            dates,
            [
                datetime(2024, 5, 5, 22, 0),
                datetime(2024, 5, 5, 23, 0),
                datetime(2024, 5, 6, 0, 0),
                datetime(2024, 5, 6, 1, 0),
                datetime(2024, 5, 6, 22, 0),
            ],
        )

    def test_day_of_week(self):
        """Weekday constraints should skip to the next accepted day."""
        # 2024-03-09 is a Saturday
        predictor = Predictor("0 9 * * mon", start=datetime(2024, 3, 9, 12, 0))
        self.assertEqual(predictor.next_matching_date(), datetime(2024, 3, 11, 9, 0))
        self.assertEqual(predictor.next_matching_date(), datetime(2024, 3, 18, 9, 0))

    def test_month_constraint(self):
        """Month constraints should jump to the first day of the next accepted month."""
        predictor = Predictor("0 0 1 jun,sep *", start=datetime(2024, 6, 1, 0, 0))
        self.assertEqual(predictor.next_matching_date(), datetime(2024, 9, 1, 0, 0))
        self.assertEqual(predictor.next_matching_date(), datetime(2025, 6, 1, 0, 0))

    def test_day_of_month_and_day_of_week_both_apply(self):
        """Both day fields must accept (Friday the 13th)."""
        predictor = Predictor("0 0 13 * fri", start=datetime(2024, 1, 1))
        self.assertEqual(predictor.next_matching_date(), datetime(2024, 9, 13))
        self.assertEqual(predictor.next_matching_date(), datetime(2024, 12, 13))

    def test_pattern_object_accepted(self):
        """A parsed SchedulingPattern can be passed instead of text."""
        pattern = SchedulingPattern("30 6 * * *")
        predictor = Predictor(pattern, start=datetime(2024, 1, 1, 7, 0))
        self.assertIs(predictor.pattern, pattern)
        self.assertEqual(predictor.next_matching_date(), datetime(2024, 1, 2, 6, 30))

    def test_invalid_pattern(self):
        """Pattern text is parsed eagerly."""
        with self.assertRaises(InvalidPatternError):
            Predictor("* * *")


class TestPredictorGroups(unittest.TestCase):
    """Test multi-group patterns."""

    def test_earliest_group_wins(self):
        """The earliest candidate across groups should be returned."""
        predictor = Predictor("0 5 * * *|8 10 * * *", start=datetime(2024, 1, 1, 6, 0))
        self.assertEqual(predictor.next_matching_date(), datetime(2024, 1, 1, 10, 8))
        self.assertEqual(predictor.next_matching_date(), datetime(2024, 1, 2, 5, 0))
        self.assertEqual(predictor.next_matching_date(), datetime(2024, 1, 2, 10, 8))

    def test_unsatisfiable_group_is_ignored(self):
        """A group that never matches should not prevent the others."""
        predictor = Predictor("0 0 30 2 *|0 12 * * *", start=datetime(2024, 1, 1))
        self.assertEqual(predictor.next_matching_date(), datetime(2024, 1, 1, 12, 0))


class TestPredictorLastDay(unittest.TestCase):
    """Test last-day-of-month predictions."""

    def test_last_day_every_month(self):
        """"0 0 L * *" should visit the last day of every month."""
        predictor = Predictor("0 0 L * *", start=datetime(2023, 12, 15))
        dates = [predictor.next_matching_date() for _ in range(4)]
        self.assertEqual(
            dates,
            [
                datetime(2023, 12, 31),
                datetime(2024, 1, 31),
                datetime(2024, 2, 29),
                datetime(2024, 3, 31),
            ],
        )

    def test_last_day_of_february(self):
        """L in February follows leap years."""
        predictor = Predictor("0 0 L 2 *", start=datetime(2023, 3, 1))
        self.assertEqual(predictor.next_matching_date(), datetime(2024, 2, 29))
        self.assertEqual(predictor.next_matching_date(), datetime(2025, 2, 28))

    def test_last_day_with_explicit_day(self):
        """Explicit days and L combine."""
        predictor = Predictor("0 0 15,L 4 *", start=datetime(2024, 1, 1))
        self.assertEqual(predictor.next_matching_date(), datetime(2024, 4, 15))
        self.assertEqual(predictor.next_matching_date(), datetime(2024, 4, 30))
        self.assertEqual(predictor.next_matching_date(), datetime(2025, 4, 15))


class TestPredictorProperties(unittest.TestCase):
    """Test monotonicity and agreement with matching."""

    PATTERNS = [
        "*/15 9-17 * * *",
        "0 5 * * *|8 10 * * *",
        "30 */6 * * mon,wed",
        "0,30 22-2 * * sat-mon",
    ]

    def test_strictly_increasing_and_matching(self):
        """Successive predictions increase strictly and each one matches."""
        for text in self.PATTERNS:
            pattern = SchedulingPattern(text)
            predictor = Predictor(pattern, start=datetime(2024, 2, 27, 13, 37))
            previous = predictor.cursor
            for _ in range(40):
                moment = predictor.next_matching_date()
                self.assertGreater(moment, previous, text)
                self.assertEqual(moment.second, 0)
                self.assertEqual(moment.microsecond, 0)
                self.assertTrue(pattern.match(moment), (text, moment))
                previous = moment

    def test_agrees_with_minute_stepping(self):
        """Prediction should find exactly the matches minute stepping finds."""
        start = datetime(2024, 2, 27, 13, 37)
        for text in self.PATTERNS:
            predictor = Predictor(text, start=start)
            expected = brute_force(text, start, 15)
            actual = [predictor.next_matching_date() for _ in range(15)]
            self.assertEqual(actual, expected, text)


class TestPredictorTimestamps(unittest.TestCase):
    """Test timestamp inputs and outputs."""

    def test_next_matching_time_with_offset(self):
        """next_matching_time should honour the offset."""
        predictor = Predictor(
            "0 12 1 1 *",
            start=datetime(2023, 12, 31, 23, 59),
            timezone_offset=timedelta(hours=2),
        )
        expected = datetime(2024, 1, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))
        self.assertEqual(predictor.next_matching_time(), expected.timestamp())

    def test_timestamp_start_with_offset(self):
        """A timestamp start should be read in the given offset."""
        start = datetime(2024, 6, 1, 8, 0, tzinfo=timezone.utc).timestamp()
        predictor = Predictor("0 * * * *", start=start, timezone_offset=timedelta(0))
        self.assertEqual(predictor.next_matching_date(), datetime(2024, 6, 1, 9, 0))


class TestPredictorHorizon(unittest.TestCase):
    """Test patterns that can never match."""

    def test_february_thirtieth(self):
        """A date that does not exist should raise PredictionError."""
        predictor = Predictor("0 0 30 2 *", start=datetime(2024, 1, 1))
        with self.assertRaises(PredictionError) as cm:
            predictor.next_matching_date()
        self.assertIn("0 0 30 2 *", str(cm.exception))

    def test_cursor_unchanged_after_failure(self):
        """A failed prediction should not move the cursor."""
        predictor = Predictor("0 0 31 4,6,9,11 *", start=datetime(2024, 1, 1))
        with self.assertRaises(PredictionError):
            predictor.next_matching_date()
        self.assertEqual(predictor.cursor, datetime(2024, 1, 1))

    def test_near_datetime_max(self):
        """Running off the end of the calendar should raise, not crash."""
        predictor = Predictor("0 0 1 1 *", start=datetime(9999, 6, 1))
        with self.assertRaises(PredictionError):
            predictor.next_matching_date()


if __name__ == "__main__":
    unittest.main()
