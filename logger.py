"""Structured logging infrastructure, progress tracking and the per-run log."""

import copy
import json
import logging
import logging.handlers
import os
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import colorlog

from errors import SyncToolError

LOGGER_NAME = 'posts_markdown_sync'

LEVEL_NAMES = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')

DEFAULT_FORMAT = '%(asctime)s %(levelname)-8s %(name)s: %(message)s'
DEFAULT_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

LEVEL_COLORS = {
    'DEBUG': 'blue',
    'INFO': 'white',
    'WARNING': 'yellow',
    'ERROR': 'red',
    'CRITICAL': 'bold_red',
}

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5


def _resolve_level(verbosity: int, level: Optional[str]) -> int:
    if level:
        name = str(level).upper()
        if name not in LEVEL_NAMES:
            raise ValueError(f"Unknown log level '{level}', expected one of {', '.join(LEVEL_NAMES)}")
        return getattr(logging, name)
    return {0: logging.WARNING, 1: logging.INFO}.get(verbosity, logging.DEBUG)


def setup_logging(
    verbosity: int = 0,
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    date_format: Optional[str] = None,
    level: Optional[str] = None
) -> logging.Logger:
    """
    Configure the ``posts_markdown_sync`` logger tree.

    An explicit ``level`` wins over ``verbosity`` (0 = WARNING, 1 = INFO,
    2 or more = DEBUG). Console output is colored with colorlog; ``log_file``
    adds a rotating plain-text file.

    Raises:
        ValueError: For an unknown level name
    """
    log_level = _resolve_level(verbosity, level)
    log_format = log_format or DEFAULT_FORMAT
    date_format = date_format or DEFAULT_DATE_FORMAT

    # Third-party loggers (requests, urllib3) stay at WARNING on the root
    logging.basicConfig(level=logging.WARNING, format=log_format, datefmt=date_format)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(log_level)
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler()
    console.setFormatter(colorlog.ColoredFormatter(
        '%(log_color)s' + log_format, datefmt=date_format, log_colors=LEVEL_COLORS
    ))
    logger.addHandler(console)

    if not log_file:
        return logger

    try:
        directory = os.path.dirname(os.path.abspath(log_file))
        os.makedirs(directory, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS, encoding='utf-8'
        )
    except OSError as e:
        logger.warning(f"File logging disabled, cannot open {log_file}: {e}")
        return logger

    file_handler.setFormatter(logging.Formatter(log_format, datefmt=date_format))
    logger.addHandler(file_handler)
    logger.debug(f"Writing log file {log_file}")
    return logger


class RunLog:
    """Collects the debug log of a single run.

    Lines are prefixed with a ``[HH:MM:SS UTC]`` timestamp and forwarded to
    the module logger as they arrive. The caller flushes the collected lines
    exactly once when the run ends.
    """

    def __init__(
        self,
        logger: Optional[logging.Logger] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.logger = logger or logging.getLogger(f'{LOGGER_NAME}.run')
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lines: List[str] = []
        self._flushed = False

    @property
    def lines(self) -> List[str]:
        return list(self._lines)

    @property
    def flushed(self) -> bool:
        return self._flushed

    def _append(self, message: str) -> str:
        stamp = self._clock().strftime('%H:%M:%S')
        line = f"[{stamp} UTC] {message}"
        self._lines.append(line)
        return line

    def log(self, message: str) -> None:
        """Record an informational line."""
        self._append(message)
        self.logger.info(message)

    def debug(self, message: str) -> None:
        self._append(message)
        self.logger.debug(message)

    def warning(self, message: str) -> None:
        self._append(f"WARNING: {message}")
        self.logger.warning(message)

    def record_error(self, error: SyncToolError) -> None:
        """Record a typed failure as a structured ``ErrorClass: message`` line."""
        description = error.describe()
        self._append(description)
        self.logger.error(description)

    def flush(self, sink: 'RunLogStore') -> bool:
        """Hand the collected lines to ``sink``; later calls are no-ops."""
        if self._flushed:
            return False
        self._flushed = True
        if self._lines:
            sink.write(self._lines)
        return True


class RunLogStore:
    """Keeps the last run's log on disk for a short time so the operator can read it."""

    DEFAULT_TTL_SECONDS = 300

    def __init__(self, path: str, ttl_seconds: int = DEFAULT_TTL_SECONDS):
        self.path = path
        self.ttl_seconds = ttl_seconds

    def write(self, lines: List[str]) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        payload = {'created': time.time(), 'lines': list(lines)}
        with open(self.path, 'w', encoding='utf-8') as f:
            json.dump(payload, f, indent=2)

    def read(self, clear: bool = True) -> List[str]:
        """Return the stored lines if they have not expired, optionally clearing them."""
        if not os.path.exists(self.path):
            return []

        with open(self.path, 'r', encoding='utf-8') as f:
            payload = json.load(f)

        lines = payload.get('lines', [])
        if time.time() - payload.get('created', 0) > self.ttl_seconds:
            lines = []
            clear = True

        if clear:
            os.remove(self.path)

        return lines


class ProgressTracker:
    """Counts successes and failures of a batch and logs a one-line summary on exit."""

    def __init__(self, total_items: int, item_type: str = "items", logger: Optional[logging.Logger] = None):
        self.total_items = total_items
        self.item_type = item_type
        self.successful_items = 0
        self.failed_items = 0
        self.logger = logger or logging.getLogger(f'{LOGGER_NAME}.progress')
        self._started: Optional[float] = None

    @property
    def processed_items(self) -> int:
        return self.successful_items + self.failed_items

    def __enter__(self) -> 'ProgressTracker':
        self._started = time.monotonic()
        self.logger.debug(f"{self.item_type}: {self.total_items} queued")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._started is None:
            return
        elapsed = time.monotonic() - self._started

        if not self.failed_items:
            level = logging.INFO
        elif self.successful_items:
            level = logging.WARNING
        else:
            level = logging.ERROR
        self.logger.log(
            level,
            f"{self.item_type}: {self.successful_items} ok, {self.failed_items} failed "
            f"of {self.total_items} ({elapsed:.1f}s)"
        )

    def increment(self, success: bool = True) -> None:
        if success:
            self.successful_items += 1
            return
        self.failed_items += 1
        self.logger.debug(f"{self.item_type}: item {self.processed_items}/{self.total_items} failed")


def log_section(title: str) -> None:
    """Log a banner line for ``title``."""
    logging.getLogger(LOGGER_NAME).info(f"---- {title} ----")


SECRET_KEY_PARTS = ('password', 'secret', 'token', 'api_key')
REDACTED = '***REDACTED***'


def _sanitize_config(config: Any) -> Any:
    """Deep copy of ``config`` with credential values replaced by a marker."""
    if isinstance(config, list):
        return [_sanitize_config(value) for value in config]
    if not isinstance(config, dict):
        return copy.deepcopy(config)

    sanitized = {}
    for key, value in config.items():
        secret = any(part in str(key).lower() for part in SECRET_KEY_PARTS)
        sanitized[key] = REDACTED if secret and isinstance(value, str) and value \
            else _sanitize_config(value)
    return sanitized


def log_config(config: Dict[str, Any]) -> None:
    """Log the effective settings at DEBUG level with credentials masked."""
    logger = logging.getLogger(f'{LOGGER_NAME}.config')
    sanitized = _sanitize_config(config)

    repository = sanitized.get('repository', {})
    logger.debug(f"repository: type={repository.get('type', 'json')} "
                 f"location={repository.get('base_url') or repository.get('json_path')}")

    sync = sanitized.get('sync', {})
    for target in ('github', 'drive'):
        settings = sync.get(target, {})
        state = 'on' if settings.get('enabled') else 'off'
        logger.debug(f"sync.{target}: {state} {json.dumps(settings, sort_keys=True, default=str)}")
    logger.debug(f"sync.auto_sync: {sync.get('auto_sync', False)} "
                 f"every {sync.get('interval_minutes', 15)} min")

    logger.debug(f"export: {json.dumps(sanitized.get('export', {}), sort_keys=True, default=str)}")


__all__ = [
    'LOGGER_NAME',
    'setup_logging',
    'RunLog',
    'RunLogStore',
    'ProgressTracker',
    'log_section',
    'log_config'
]
