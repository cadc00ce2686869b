"""
Cron pattern parser and matcher.

Supports the 5-field format: minute hour day-of-month month day-of-week.
Several patterns can be combined with "|"; the result matches when any of
them matches.

Field syntax:
- Wildcards: *
- Lists: 1,3,5
- Ranges: 1-5 (a reversed range such as 22-2 wraps around the field)
- Steps: */15, 1-10/2, 5/3
- Month aliases: jan..dec
- Day-of-week aliases: sun..sat (7 is also accepted for Sunday)
- Last day of month: L (day-of-month field only)
"""

import calendar
from datetime import datetime, timedelta, timezone
from typing import List, NamedTuple, Optional, Sequence, Union

from colored_logger import get_colored_logger

from .errors import InvalidPatternError
from .matchers import (
    LAST_DAY_OF_MONTH,
    AlwaysTrueValueMatcher,
    DayOfMonthValueMatcher,
    IntArrayValueMatcher,
    ValueMatcher,
)

logger = get_colored_logger(__name__)

GROUP_SEPARATOR = "|"

Moment = Union[datetime, int, float]


def is_number(text: str) -> bool:
    """True for a plain run of ASCII digits."""
    return text.isascii() and text.isdigit()


class ValueParser:
    """Parses single values of one pattern field."""

    def __init__(self, name: str, min_value: int, max_value: int):
        self.name = name
        self.min_value = min_value
        self.max_value = max_value

    def parse(self, value: str) -> int:
        if not is_number(value):
            raise ValueError(f'invalid int value "{value}"')
        number = int(value)
        if not self.min_value <= number <= self.max_value:
            raise ValueError(
                f"value {number} out of range [{self.min_value}-{self.max_value}]"
            )
        return number

    def build_matcher(self, values: List[int]) -> ValueMatcher:
        return IntArrayValueMatcher(values)


class AliasValueParser(ValueParser):
    """Value parser that also accepts case-insensitive name aliases."""

    def __init__(
        self, name: str, min_value: int, max_value: int, aliases: Sequence[str], offset: int
    ):
        super().__init__(name, min_value, max_value)
        self.aliases = {alias: offset + i for i, alias in enumerate(aliases)}

    def parse(self, value: str) -> int:
        if is_number(value):
            return super().parse(value)
        try:
            return self.aliases[value.lower()]
        except KeyError:
            raise ValueError(f'invalid alias "{value}"') from None


class DayOfMonthValueParser(ValueParser):
    """Days of month, plus "L" for the last day of the month."""

    def __init__(self):
        super().__init__("days of month", 1, 31)

    def parse(self, value: str) -> int:
        if value.upper() == "L":
            return LAST_DAY_OF_MONTH
        return super().parse(value)

    def build_matcher(self, values: List[int]) -> ValueMatcher:
        return DayOfMonthValueMatcher(values)


class DayOfWeekValueParser(AliasValueParser):
    """Days of week; 0 and 7 both mean Sunday."""

    def __init__(self):
        super().__init__(
            "days of week",
            0,
            7,
            ("sun", "mon", "tue", "wed", "thu", "fri", "sat"),
            0,
        )

    def parse(self, value: str) -> int:
        return super().parse(value) % 7

    def build_matcher(self, values: List[int]) -> ValueMatcher:
        # "*" and wrapped ranges still expand over 0-7; 7 is not a weekday
        return IntArrayValueMatcher([value for value in values if value < 7])


MINUTE_PARSER = ValueParser("minutes", 0, 59)
HOUR_PARSER = ValueParser("hours", 0, 23)
DAY_OF_MONTH_PARSER = DayOfMonthValueParser()
MONTH_PARSER = AliasValueParser(
    "months",
    1,
    12,
    ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"),
    1,
)
DAY_OF_WEEK_PARSER = DayOfWeekValueParser()

FIELD_PARSERS = (
    MINUTE_PARSER,
    HOUR_PARSER,
    DAY_OF_MONTH_PARSER,
    MONTH_PARSER,
    DAY_OF_WEEK_PARSER,
)


def cron_weekday(moment: datetime) -> int:
    """Day of week in cron numbering (0 = Sunday)."""
    return moment.isoweekday() % 7


class MatcherGroup(NamedTuple):
    """One alternative rule set: exactly one matcher per field."""

    minute: ValueMatcher
    hour: ValueMatcher
    day_of_month: ValueMatcher
    month: ValueMatcher
    day_of_week: ValueMatcher

    def match_day_of_month(self, moment: datetime) -> bool:
        if isinstance(self.day_of_month, DayOfMonthValueMatcher):
            return self.day_of_month.match_day(
                moment.day, moment.month, calendar.isleap(moment.year)
            )
        return self.day_of_month.match(moment.day)

    def matches(self, moment: datetime) -> bool:
        return (
            self.minute.match(moment.minute)
            and self.hour.match(moment.hour)
            and self.match_day_of_month(moment)
            and self.month.match(moment.month)
            and self.day_of_week.match(cron_weekday(moment))
        )


class CronParser:
    """
    Turns pattern text into matcher groups.

    Every parse error is reported as an InvalidPatternError naming the
    offending group and field.
    """

    def parse(self, expression: str) -> "SchedulingPattern":
        """Parse ``expression`` into a SchedulingPattern."""
        return SchedulingPattern(expression)

    def validate_expression(self, expression: str) -> bool:
        """True if ``expression`` is a valid scheduling pattern."""
        try:
            self.parse_groups(expression)
            return True
        except InvalidPatternError:
            return False

    def parse_groups(self, expression: str) -> List[MatcherGroup]:
        if expression is None or not expression.strip():
            raise InvalidPatternError("Empty scheduling pattern")

        groups = []
        for group_text in expression.split(GROUP_SEPARATOR):
            fields = group_text.split()
            if len(fields) != len(FIELD_PARSERS):
                raise InvalidPatternError(
                    f'invalid pattern "{group_text.strip()}": expected exactly '
                    f"{len(FIELD_PARSERS)} fields, got {len(fields)}"
                )

            matchers = []
            for field, parser in zip(fields, FIELD_PARSERS):
                try:
                    matchers.append(self._parse_field(field, parser))
                except ValueError as e:
                    raise InvalidPatternError(
                        f'invalid pattern "{group_text.strip()}". '
                        f"Error parsing {parser.name} field: {e}"
                    ) from e
            groups.append(MatcherGroup(*matchers))

        logger.trace("Parsed pattern '%s' into %d group(s)", expression, len(groups))
        return groups

    def _parse_field(self, field: str, parser: ValueParser) -> ValueMatcher:
        """
        Parse a single field of a pattern group.

        Args:
            field: The field string (e.g., "*/15", "1-5", "mon,wed,fri")
            parser: Value parser for the field

        Returns:
            Matcher accepting the values described by the field
        """
        if field == "*":
            return AlwaysTrueValueMatcher()

        values: List[int] = []
        seen = set()
        for element in field.split(","):
            try:
                expanded = self._parse_element(element, parser)
            except ValueError as e:
                raise ValueError(
                    f'invalid field "{field}", invalid element "{element}", {e}'
                ) from None
            for value in expanded:
                if value not in seen:
                    seen.add(value)
                    values.append(value)

        if not values:
            raise ValueError(f'invalid field "{field}"')

        return parser.build_matcher(values)

    def _parse_element(self, element: str, parser: ValueParser) -> List[int]:
        """Expand one list element, applying its "/step" if present."""
        parts = element.split("/")
        if len(parts) > 2:
            raise ValueError("syntax error")

        try:
            values = self._parse_range(parts[0], parser)
        except ValueError as e:
            raise ValueError(f"invalid range, {e}") from None

        if len(parts) == 1:
            return values

        step_str = parts[1]
        if not is_number(step_str):
            raise ValueError(f'invalid divisor "{step_str}"')
        step = int(step_str)
        if step < 1:
            raise ValueError(f'non positive divisor "{step}"')

        return values[::step]

    def _parse_range(self, text: str, parser: ValueParser) -> List[int]:
        """Expand "*", a single value, or an "a-b" range (wrapping when a > b)."""
        if text == "*":
            return list(range(parser.min_value, parser.max_value + 1))

        bounds = text.split("-")
        if len(bounds) > 2:
            raise ValueError("syntax error")

        try:
            start = parser.parse(bounds[0])
        except ValueError as e:
            raise ValueError(f'invalid value "{bounds[0]}", {e}') from None
        if len(bounds) == 1:
            return [start]

        try:
            end = parser.parse(bounds[1])
        except ValueError as e:
            raise ValueError(f'invalid value "{bounds[1]}", {e}') from None

        if start <= end:
            return list(range(start, end + 1))

        # Wrap around: start..max, then min..end
        return list(range(start, parser.max_value + 1)) + list(
            range(parser.min_value, end + 1)
        )


_PARSER = CronParser()


def to_wall_clock(moment: Moment, timezone_offset: Optional[timedelta] = None) -> datetime:
    """
    Convert a moment to the naive wall-clock datetime whose fields are matched.

    Timestamps use ``timezone_offset`` when given, local time otherwise.
    Naive datetimes are taken as already being wall-clock time.
    """
    if isinstance(moment, datetime):
        if moment.tzinfo is not None and timezone_offset is not None:
            moment = moment.astimezone(timezone(timezone_offset))
        return moment.replace(tzinfo=None)

    if timezone_offset is None:
        return datetime.fromtimestamp(moment)
    return datetime.fromtimestamp(moment, timezone(timezone_offset)).replace(tzinfo=None)


class SchedulingPattern:
    """
    A parsed, immutable scheduling pattern.

    Examples:
        "5 * * * *"            every hour at minute 5
        "*/15 9-17 * * mon-fri" every quarter hour during office hours
        "0 0 L * *"            midnight on the last day of every month
        "0 5 * * *|8 10 * * *" 05:00 and 10:08 every day
    """

    def __init__(self, pattern: str):
        self._text = pattern
        self._groups = tuple(_PARSER.parse_groups(pattern))

    @staticmethod
    def validate(pattern: str) -> bool:
        """True if ``pattern`` is a valid scheduling pattern."""
        return _PARSER.validate_expression(pattern)

    @property
    def groups(self):
        return self._groups

    def match(self, moment: Moment, timezone_offset: Optional[timedelta] = None) -> bool:
        """
        Check whether ``moment`` matches any matcher group of the pattern.

        Args:
            moment: A datetime or a POSIX timestamp
            timezone_offset: Fixed offset used to read timestamps and aware
                datetimes; None means local time

        Returns:
            True if some group accepts all five fields of the moment
        """
        wall_clock = to_wall_clock(moment, timezone_offset)
        return any(group.matches(wall_clock) for group in self._groups)

    def __str__(self) -> str:
        return self._text

    def __repr__(self) -> str:
        return f"SchedulingPattern({self._text!r})"
