"""
Prediction of the moments at which a scheduling pattern will match.

    predictor = Predictor("0 3 * jan-jun,sep-dec mon-fri")
    for _ in range(5):
        print(predictor.next_matching_date())
"""

import calendar
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from colored_logger import get_colored_logger

from .cron_parser import MatcherGroup, Moment, SchedulingPattern, cron_weekday, to_wall_clock
from .errors import PredictionError
from .matchers import DayOfMonthValueMatcher

logger = get_colored_logger(__name__)

# One full Gregorian cycle: weekday/date alignment repeats after 400 years,
# so a group with no match inside this window never matches.
MAX_SEARCH_YEARS = 400

ONE_MINUTE = timedelta(minutes=1)


def _add_years(moment: datetime, years: int) -> datetime:
    try:
        return moment.replace(year=moment.year + years)
    except ValueError:
        return datetime.max


def _next_day(moment: datetime) -> datetime:
    return (moment + timedelta(days=1)).replace(hour=0, minute=0)


def _first_of_next_month(moment: datetime) -> datetime:
    if moment.month == 12:
        return datetime(moment.year + 1, 1, 1)
    return datetime(moment.year, moment.month + 1, 1)


class Predictor:
    """
    Computes the next moments matching a scheduling pattern.

    The predictor keeps a cursor: every call to ``next_matching_date``
    returns a moment strictly later than the previous one.
    """

    def __init__(
        self,
        pattern: Union[str, SchedulingPattern],
        start: Optional[Moment] = None,
        timezone_offset: Optional[timedelta] = None,
    ):
        """
        Args:
            pattern: Pattern text or a parsed SchedulingPattern
            start: Moment the prediction starts from (default: now)
            timezone_offset: Offset used to read timestamps and to compute
                "now"; None means local time

        Raises:
            InvalidPatternError: If ``pattern`` is text and cannot be parsed
        """
        if not isinstance(pattern, SchedulingPattern):
            pattern = SchedulingPattern(pattern)
        self.pattern = pattern
        self.timezone_offset = timezone_offset

        if start is None:
            if timezone_offset is None:
                start = datetime.now()
            else:
                start = datetime.now(timezone(timezone_offset))
        self._time = to_wall_clock(start, timezone_offset).replace(
            second=0, microsecond=0
        )

    @property
    def cursor(self) -> datetime:
        return self._time

    def next_matching_date(self) -> datetime:
        """
        Return the next matching moment after the cursor and move the cursor there.

        Raises:
            PredictionError: If no matcher group can match within the search horizon
        """
        candidate = self._time + ONE_MINUTE
        if self.pattern.match(candidate):
            self._time = candidate
            return candidate

        found = []
        for group in self.pattern.groups:
            moment = self._search_group(group, candidate)
            if moment is not None:
                found.append(moment)

        if not found:
            raise PredictionError(
                f"Pattern '{self.pattern}' has no matching date within "
                f"{MAX_SEARCH_YEARS} years of {candidate.isoformat()}"
            )

        self._time = min(found)
        return self._time

    def next_matching_time(self) -> float:
        """Like ``next_matching_date`` but returns a POSIX timestamp."""
        moment = self.next_matching_date()
        if self.timezone_offset is None:
            return moment.timestamp()
        return moment.replace(tzinfo=timezone(self.timezone_offset)).timestamp()

    def _search_group(self, group: MatcherGroup, start: datetime) -> Optional[datetime]:
        """
        Earliest moment >= ``start`` accepted by every matcher of ``group``.

        Fields are settled from the minute up; whenever a field rejects, it
        is advanced and every lower field is reset before searching again.
        """
        limit = _add_years(start, MAX_SEARCH_YEARS)
        current = start
        try:
            while current <= limit:
                minute = group.minute.next_accepted(current.minute)
                if minute is None:
                    current = current.replace(minute=0) + timedelta(hours=1)
                    continue
                current = current.replace(minute=minute)

                if not group.hour.match(current.hour):
                    hour = group.hour.next_accepted(current.hour + 1)
                    if hour is None:
                        current = _next_day(current)
                    else:
                        current = current.replace(hour=hour, minute=0)
                    continue

                if not group.match_day_of_month(current):
                    current = self._skip_days_of_month(group, current)
                    continue

                if not group.month.match(current.month):
                    month = group.month.next_accepted(current.month + 1)
                    if month is None:
                        current = datetime(current.year + 1, 1, 1)
                    else:
                        current = datetime(current.year, month, 1)
                    continue

                if not group.day_of_week.match(cron_weekday(current)):
                    current = _next_day(current)
                    continue

                return current
        except (OverflowError, ValueError):
            # Ran past datetime.max
            pass

        logger.debug(
            "Matcher group of '%s' never matches after %s", self.pattern, start
        )
        return None

    @staticmethod
    def _skip_days_of_month(group: MatcherGroup, current: datetime) -> datetime:
        """Jump to the next day the day-of-month matcher can accept."""
        days_in_month = calendar.monthrange(current.year, current.month)[1]
        matcher = group.day_of_month
        day = matcher.next_accepted(current.day + 1)
        if isinstance(matcher, DayOfMonthValueMatcher) and matcher.has_last_day:
            day = days_in_month if day is None else min(day, days_in_month)
        if day is None or day > days_in_month:
            return _first_of_next_month(current)
        return current.replace(day=day, hour=0, minute=0)
