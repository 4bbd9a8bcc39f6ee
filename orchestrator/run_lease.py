"""File lease that keeps a scheduled sync and a manual run from interleaving."""

import json
import logging
import os
import time
from typing import Optional

from errors import PreconditionError

logger = logging.getLogger('posts_markdown_sync.orchestrator.lease')


class RunLease:
    """
    Exclusive lock file with a time-to-live.

    The file is created with ``O_CREAT | O_EXCL``; a lease older than
    ``ttl_seconds`` is treated as abandoned and broken.
    """

    def __init__(self, path: str, ttl_seconds: int = 3600, operation: str = 'run'):
        self.path = path
        self.ttl_seconds = ttl_seconds
        self.operation = operation
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def acquire(self) -> None:
        """
        Take the lease.

        Raises:
            PreconditionError: When another live run holds it
        """
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)

        for _ in range(2):
            try:
                fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                if self._break_if_stale():
                    continue
                holder = self._read_holder()
                raise PreconditionError(
                    "Another run is in progress",
                    details={'lease': self.path, **holder}
                )

            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump({'pid': os.getpid(), 'operation': self.operation,
                           'acquired': time.time()}, f)
            self._held = True
            logger.debug(f"Lease acquired for {self.operation}: {self.path}")
            return

        raise PreconditionError("Could not acquire the run lease", details={'lease': self.path})

    def release(self) -> None:
        if not self._held:
            return
        self._held = False
        if os.path.exists(self.path):
            os.remove(self.path)
        logger.debug(f"Lease released: {self.path}")

    def _read_holder(self) -> dict:
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError):
            return {}
        return data if isinstance(data, dict) else {}

    def _break_if_stale(self) -> bool:
        try:
            age = time.time() - os.path.getmtime(self.path)
        except FileNotFoundError:
            return True

        if age <= self.ttl_seconds:
            return False

        logger.warning(f"Breaking stale lease {self.path} ({int(age)}s old)")
        try:
            os.remove(self.path)
        except FileNotFoundError:
            pass
        return True

    def __enter__(self) -> 'RunLease':
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> Optional[bool]:
        self.release()
        return None


__all__ = ['RunLease']
