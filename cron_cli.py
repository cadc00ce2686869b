"""
Command-line interface for the crontick scheduler.

Provides command-line tools for:
- Validating scheduling patterns
- Listing the next matching dates of a pattern
- Checking whether a moment matches a pattern
- Running a scheduler in the foreground
"""

import argparse
import logging
import sys
import time
from datetime import datetime
from typing import List, Optional

from colored_logger import get_colored_logger, parse_level, setup_colored_logging

from crontick import (
    InvalidPatternError,
    PredictionError,
    Predictor,
    SchedulingPattern,
    Task,
    create_scheduler,
)
from settings import Settings

logger = get_colored_logger(__name__)

DATE_FORMAT = "%Y-%m-%d %H:%M (%a)"


class HeartbeatTask(Task):
    """Task used by the ``run`` command: logs every launch."""

    def __init__(self, name: str, pattern: str):
        self.name = name
        self.pattern = pattern
        self.runs = 0

    def execute(self, context) -> None:
        self.runs += 1
        logger.info(
            "[%s] launched by '%s' (run #%d)", self.name, self.pattern, self.runs
        )

    def can_be_stopped(self) -> bool:
        return True

    def __repr__(self) -> str:
        return f"HeartbeatTask({self.name!r})"


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {value}")
    return number


def _parse_moment(value: str):
    """A POSIX timestamp or an ISO 8601 date/time."""
    try:
        return float(value)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"expected an ISO date/time or a timestamp, got {value!r}"
        ) from None


class CronCLI:
    """Command-line interface for patterns and the scheduler."""

    def create_parser(self) -> argparse.ArgumentParser:
        """Create the argument parser for crontick commands."""
        parser = argparse.ArgumentParser(
            prog="crontick", description="Cron-style task scheduler"
        )
        parser.add_argument(
            "--log-level",
            default=None,
            help="Logging level (TRACE, DEBUG, INFO, ...)",
        )

        subparsers = parser.add_subparsers(dest="command", help="Available commands")

        validate_parser = subparsers.add_parser(
            "validate", help="Validate a scheduling pattern"
        )
        validate_parser.add_argument("pattern", help="Pattern, e.g. '0 12 * * mon-fri'")

        next_parser = subparsers.add_parser(
            "next", help="Show the next dates matching a pattern"
        )
        next_parser.add_argument("pattern", help="Scheduling pattern")
        next_parser.add_argument(
            "--count", type=_positive_int, default=5, help="Number of dates to show"
        )
        next_parser.add_argument(
            "--from",
            dest="start",
            type=datetime.fromisoformat,
            default=None,
            help="Start from this ISO date/time instead of now",
        )

        match_parser = subparsers.add_parser(
            "match", help="Check whether a moment matches a pattern"
        )
        match_parser.add_argument("pattern", help="Scheduling pattern")
        match_parser.add_argument(
            "moment", type=_parse_moment, help="ISO date/time or POSIX timestamp"
        )

        run_parser = subparsers.add_parser(
            "run", help="Run a scheduler in the foreground until Ctrl+C"
        )
        run_parser.add_argument(
            "patterns", nargs="*", help="Patterns to schedule a heartbeat task for"
        )
        run_parser.add_argument("--settings", help="Path to a JSON settings file")

        return parser

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run the CLI with given arguments."""
        parser = self.create_parser()
        parsed_args = parser.parse_args(args)

        if parsed_args.log_level:
            try:
                logging.getLogger().setLevel(parse_level(parsed_args.log_level))
            except ValueError as e:
                logger.error("%s", e)
                return 1

        if not parsed_args.command:
            parser.print_help()
            return 0

        try:
            return self._execute_command(parsed_args)
        except Exception as e:
            logger.error("Command failed: %s", e)
            return 1

    def _execute_command(self, args: argparse.Namespace) -> int:
        """Execute the requested command."""
        command_map = {
            "validate": self._cmd_validate,
            "next": self._cmd_next,
            "match": self._cmd_match,
            "run": self._cmd_run,
        }

        handler = command_map.get(args.command)
        if not handler:
            logger.error("Unknown command: %s", args.command)
            return 1

        return handler(args)

    def _cmd_validate(self, args: argparse.Namespace) -> int:
        """Validate a scheduling pattern and show its next execution."""
        try:
            pattern = SchedulingPattern(args.pattern)
        except InvalidPatternError as e:
            logger.error("Invalid scheduling pattern: %s", e)
            return 1

        print(f"Valid scheduling pattern: {pattern}")
        try:
            next_run = Predictor(pattern).next_matching_date()
        except PredictionError as e:
            logger.warning("%s", e)
            return 0
        print(f"Next execution: {next_run.strftime(DATE_FORMAT)}")
        return 0

    def _cmd_next(self, args: argparse.Namespace) -> int:
        """Show the next dates matching a pattern."""
        try:
            predictor = Predictor(args.pattern, start=args.start)
            dates = [predictor.next_matching_date() for _ in range(args.count)]
        except (InvalidPatternError, PredictionError) as e:
            logger.error("%s", e)
            return 1

        for moment in dates:
            print(moment.strftime(DATE_FORMAT))
        return 0

    def _cmd_match(self, args: argparse.Namespace) -> int:
        """Exit 0 if the moment matches the pattern, 1 otherwise."""
        try:
            pattern = SchedulingPattern(args.pattern)
        except InvalidPatternError as e:
            logger.error("Invalid scheduling pattern: %s", e)
            return 1

        if pattern.match(args.moment):
            print("match")
            return 0
        print("no match")
        return 1

    def _cmd_run(self, args: argparse.Namespace) -> int:
        """Run a scheduler with heartbeat tasks until interrupted."""
        settings = Settings(args.settings)
        if not args.log_level:
            try:
                logging.getLogger().setLevel(parse_level(settings.log_level))
            except ValueError:
                logger.warning("Unknown log level in settings: %s", settings.log_level)

        entries = [
            {"pattern": pattern, "name": f"cli-{index + 1}"}
            for index, pattern in enumerate(args.patterns)
        ] + settings.scheduled_tasks
        if not entries:
            logger.error("Nothing to schedule: give patterns or 'scheduled_tasks'")
            return 1

        scheduler = create_scheduler(settings)
        try:
            for entry in entries:
                scheduler.schedule(
                    entry["pattern"], HeartbeatTask(entry["name"], entry["pattern"])
                )
        except InvalidPatternError as e:
            logger.error("Invalid scheduling pattern: %s", e)
            return 1

        scheduler.start()
        logger.notice("Scheduler running with %d task(s). Press Ctrl+C to stop.", len(entries))
        try:
            self._wait_for_interrupt()
        except KeyboardInterrupt:
            logger.info("Stopping scheduler...")
        finally:
            scheduler.stop()
        return 0

    def _wait_for_interrupt(self) -> None:
        while True:
            time.sleep(1)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the crontick CLI."""
    setup_colored_logging()
    cli = CronCLI()
    return cli.run(argv)


if __name__ == "__main__":
    sys.exit(main())
