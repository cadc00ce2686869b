"""
Exceptions raised by the scheduler and the pattern engine.
"""


class CronError(Exception):
    """Base class for every error raised by crontick."""


class InvalidPatternError(CronError, ValueError):
    """A scheduling pattern could not be parsed."""


class IllegalStateError(CronError, RuntimeError):
    """The operation is not valid in the current scheduler or executor state."""


class UnsupportedOperationError(IllegalStateError):
    """The task does not declare support for the requested control operation."""


class PredictionError(CronError, RuntimeError):
    """No matcher group of a pattern can ever match again."""
