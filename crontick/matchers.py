"""
Value matchers: predicates over a single integer field of a moment.

Each matcher group of a SchedulingPattern holds one matcher per field
(minute, hour, day of month, month, day of week).
"""

import bisect
from typing import FrozenSet, Iterable, Optional, Tuple

# Value stored in a day-of-month matcher when the pattern used "L"
LAST_DAY_OF_MONTH = 32

_MONTH_LENGTHS = (31, 28, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31)


def is_last_day_of_month(day: int, month: int, is_leap_year: bool) -> bool:
    """True if ``day`` is the last calendar day of ``month``."""
    if is_leap_year and month == 2:
        return day == 29
    return day == _MONTH_LENGTHS[month - 1]


class ValueMatcher:
    """Accepts or rejects a single field value."""

    def match(self, value: int) -> bool:
        raise NotImplementedError

    def next_accepted(self, value: int) -> Optional[int]:
        """Smallest accepted value >= ``value``, or None if there is none."""
        raise NotImplementedError

    @property
    def values(self) -> Optional[Tuple[int, ...]]:
        """Sorted accepted values, or None for the always-true matcher."""
        raise NotImplementedError


class AlwaysTrueValueMatcher(ValueMatcher):
    """Matcher built from "*"."""

    def match(self, value: int) -> bool:
        return True

    def next_accepted(self, value: int) -> Optional[int]:
        return value

    @property
    def values(self) -> Optional[Tuple[int, ...]]:
        return None

    def __repr__(self) -> str:
        return "AlwaysTrueValueMatcher()"


class IntArrayValueMatcher(ValueMatcher):
    """Matcher over an explicit set of integers."""

    def __init__(self, values: Iterable[int]):
        self._sorted: Tuple[int, ...] = tuple(sorted(set(values)))
        self._set: FrozenSet[int] = frozenset(self._sorted)

    def match(self, value: int) -> bool:
        return value in self._set

    def next_accepted(self, value: int) -> Optional[int]:
        index = bisect.bisect_left(self._sorted, value)
        if index < len(self._sorted):
            return self._sorted[index]
        return None

    @property
    def values(self) -> Optional[Tuple[int, ...]]:
        return self._sorted

    def __repr__(self) -> str:
        return f"{type(self).__name__}({list(self._sorted)!r})"


class DayOfMonthValueMatcher(IntArrayValueMatcher):
    """
    Day-of-month matcher that also understands the last-day-of-month marker.

    A plain ``match(day)`` only checks the explicit values; use
    ``match_day`` when the month and year of the moment are known.
    """

    @property
    def has_last_day(self) -> bool:
        return LAST_DAY_OF_MONTH in self._set

    def match_day(self, day: int, month: int, is_leap_year: bool) -> bool:
        if self.match(day):
            return True
        return (
            day > 27
            and self.has_last_day
            and is_last_day_of_month(day, month, is_leap_year)
        )
