import json
import logging
import os
import sys
from datetime import timedelta
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

ENV_PREFIX = "CRONTICK_"
DEFAULT_ENV_FILES = [".env", "../.env"]

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")

# datetime.timezone only accepts offsets strictly within one day
MAX_OFFSET_MINUTES = 24 * 60 - 1


def _load_env_file(env_path: str) -> bool:
    """
    Simple .env file parser that doesn't require external dependencies.
    Loads key=value pairs from .env file into os.environ.

    :return: True if the file existed and was read.
    """
    if not os.path.isfile(env_path):
        return False

    try:
        with open(env_path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()

                # Skip empty lines and comments
                if not line or line.startswith("#"):
                    continue

                if "=" in line:
                    key, value = line.split("=", 1)  # Split on first = only
                    key = key.strip()
                    value = value.strip()

                    # Remove quotes if present
                    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
                        value = value[1:-1]

                    # .env file takes precedence over system environment variables
                    if key:
                        os.environ[key] = value

        logger.info(".env file '%s' loaded (built-in parser)", env_path)
        return True

    except (IOError, OSError, UnicodeDecodeError) as e:
        logger.warning("Failed to load .env file '%s': %s", env_path, e)
        return False


def _parse_bool(value: str) -> Optional[bool]:
    value = value.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    return None


class Settings:
    """
    Scheduler configuration.

    Values come from an optional JSON settings file and are overridden by
    ``CRONTICK_*`` environment variables (which a ``.env`` file may set).
    Recognized JSON keys:

        timezone_offset_minutes  int or null (null: local time)
        daemon                   bool
        log_level                str, e.g. "INFO" or "DEBUG"
        scheduled_tasks          list of {"pattern": str, "name": str}
    """

    def __init__(
        self, settings_file: Optional[str] = None, env_file: Optional[str] = None
    ) -> None:
        """
        Loads the .env file and the settings file, then populates instance variables.
        Exits the program if a named settings file is missing or invalid.

        :param settings_file: Path to a JSON settings file. Defaults are used when None.
        :param env_file: Path to a .env file. ".env" and "../.env" are tried when None.
        """
        if env_file is not None:
            _load_env_file(env_file)
        else:
            for env_path in DEFAULT_ENV_FILES:
                if _load_env_file(env_path):
                    break

        self.raw: Dict[str, Any] = {}
        if settings_file is not None:
            if not os.path.isfile(settings_file):
                logger.critical(
                    "Settings file not found at '%s'. Exiting...", settings_file
                )
                sys.exit(1)

            self.raw = self._load_json(settings_file)
            if not isinstance(self.raw, dict):
                logger.critical(
                    "Settings file '%s' appears to be empty or invalid. Exiting...",
                    settings_file,
                )
                sys.exit(1)

        try:
            self.timezone_offset_minutes: Optional[int] = self._offset_minutes(
                self.raw.get("timezone_offset_minutes")
            )
        except ValueError as e:
            logger.critical("Invalid settings file '%s': %s. Exiting...", settings_file, e)
            sys.exit(1)
        self.daemon: bool = bool(self.raw.get("daemon", False))
        self.log_level: str = str(self.raw.get("log_level", "INFO"))
        self.scheduled_tasks: List[Dict[str, str]] = self._scheduled_tasks(
            self.raw.get("scheduled_tasks", [])
        )

        self._apply_env_overrides()

        if settings_file is not None:
            logger.info("Settings loaded from '%s'.", settings_file)

    @property
    def timezone_offset(self) -> Optional[timedelta]:
        """The configured offset from UTC, or None for local time."""
        if self.timezone_offset_minutes is None:
            return None
        return timedelta(minutes=self.timezone_offset_minutes)

    def _apply_env_overrides(self) -> None:
        offset = os.environ.get(ENV_PREFIX + "TIMEZONE_OFFSET_MINUTES")
        if offset is not None:
            if offset.strip().lower() in ("", "none", "null", "local"):
                self.timezone_offset_minutes = None
            else:
                try:
                    self.timezone_offset_minutes = self._offset_minutes(int(offset))
                except ValueError:
                    logger.warning(
                        "Ignoring invalid %sTIMEZONE_OFFSET_MINUTES: %r",
                        ENV_PREFIX,
                        offset,
                    )

        daemon = os.environ.get(ENV_PREFIX + "DAEMON")
        if daemon is not None:
            parsed = _parse_bool(daemon)
            if parsed is None:
                logger.warning("Ignoring invalid %sDAEMON: %r", ENV_PREFIX, daemon)
            else:
                self.daemon = parsed

        log_level = os.environ.get(ENV_PREFIX + "LOG_LEVEL")
        if log_level:
            self.log_level = log_level.strip()

    @staticmethod
    def _offset_minutes(value: Any) -> Optional[int]:
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"timezone offset must be an integer, got {value!r}")
        if abs(value) > MAX_OFFSET_MINUTES:
            raise ValueError(
                f"timezone offset {value} out of range (max {MAX_OFFSET_MINUTES} minutes)"
            )
        return value

    @staticmethod
    def _scheduled_tasks(entries: Any) -> List[Dict[str, str]]:
        if not isinstance(entries, list):
            logger.warning("'scheduled_tasks' must be a list, ignoring it")
            return []

        tasks = []
        for index, entry in enumerate(entries):
            if not isinstance(entry, dict) or not entry.get("pattern"):
                logger.warning("Skipping scheduled task #%d without a pattern", index)
                continue
            tasks.append(
                {
                    "pattern": str(entry["pattern"]),
                    "name": str(entry.get("name") or f"task-{index + 1}"),
                }
            )
        return tasks

    def _load_json(self, path: str) -> Any:
        """
        Loads JSON from the given file path.

        :param path: The path to the JSON file.
        :return: The parsed JSON (dictionary or list) if valid, otherwise None.
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (json.JSONDecodeError, IOError, OSError) as e:
            logger.error("Error loading JSON file '%s': %s", path, e)
            return None
