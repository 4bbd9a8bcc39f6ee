"""Fans export and import payloads out to the enabled remote targets."""

import logging
import os
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from config_loader import SettingsStore
from errors import RemoteSyncError, UserInputError
from logger import ProgressTracker, RunLog
from models import FetchedFile, SyncOverrides, SyncTarget

from .drive_target import DriveTarget
from .github_target import GitHubTarget, commit_message

FileContent = Union[str, bytes]


class SyncAdapter:
    """Pushes files to GitHub and Drive and pulls single files back.

    Enablement comes from ``sync.<target>.enabled`` unless a per-call
    ``SyncOverrides`` value says otherwise. Every failed push is recorded in
    the run log and the batch moves on to the next file.
    """

    def __init__(
        self,
        settings: SettingsStore,
        run_log: Optional[RunLog] = None,
        github: Optional[GitHubTarget] = None,
        drive: Optional[DriveTarget] = None,
        logger: logging.Logger = None
    ):
        self.settings = settings
        self.logger = logger or logging.getLogger('posts_markdown_sync.sync')
        self.run_log = run_log or RunLog(self.logger)
        self.github = github or GitHubTarget.from_config(settings.config)
        self.drive = drive or DriveTarget.from_config(settings)

    def _target(self, target: SyncTarget):
        return self.github if target == SyncTarget.GITHUB else self.drive

    def is_enabled(self, target: SyncTarget, overrides: Optional[SyncOverrides] = None) -> bool:
        override = overrides.for_target(target) if overrides else None
        if override is not None:
            return bool(override)
        return bool(self.settings.get(f'sync.{target.value}.enabled', False))

    def fully_configured(self, target: SyncTarget) -> bool:
        """Enabled in configuration and holding every credential the target needs."""
        return bool(self.settings.get(f'sync.{target.value}.enabled', False)) and \
            self._target(target).is_configured()

    def scheduled_overrides(self) -> SyncOverrides:
        """Overrides for the scheduled job: a target runs only when fully configured."""
        return SyncOverrides(
            github_enabled=self.fully_configured(SyncTarget.GITHUB),
            drive_enabled=self.fully_configured(SyncTarget.DRIVE)
        )

    def push_export_files(
        self,
        files: Iterable[Tuple[str, FileContent]],
        filters: Optional[Dict[str, Any]] = None,
        overrides: Optional[SyncOverrides] = None
    ) -> Dict[str, int]:
        """
        Push each exported document to every enabled target.

        Args:
            files: ``(archive path, content)`` pairs
            filters: Export filter summary for the commit message
            overrides: Per-call target enablement

        Returns:
            Number of successful pushes per enabled target
        """
        files = [(path, _as_bytes(content)) for path, content in files if path]
        if not files:
            return {}

        results: Dict[str, int] = {}
        if self.is_enabled(SyncTarget.GITHUB, overrides):
            message = commit_message(filters)
            results[SyncTarget.GITHUB.value] = self._push_github(files, message)
        if self.is_enabled(SyncTarget.DRIVE, overrides):
            results[SyncTarget.DRIVE.value] = self._push_drive(files)
        return results

    def push_archive(
        self,
        file_path: str,
        name: str,
        meta: Optional[Dict[str, Any]] = None,
        overrides: Optional[SyncOverrides] = None
    ) -> Dict[str, int]:
        """Push one file from disk under ``name`` to every enabled target."""
        if not os.path.isfile(file_path) or not os.access(file_path, os.R_OK):
            self.run_log.log(f"Sync skipped: {name} missing or unreadable.")
            return {}

        with open(file_path, 'rb') as f:
            content = f.read()
        return self.push_export_files([(os.path.basename(name), content)], meta, overrides)

    def push_import(
        self,
        file_path: str,
        name: str,
        stats: Optional[Dict[str, Any]] = None,
        overrides: Optional[SyncOverrides] = None
    ) -> Dict[str, int]:
        """Push an imported upload, tagging the commit message with the import stats."""
        meta = dict({'context': 'import'}, **(stats or {}))
        return self.push_archive(file_path, name, meta, overrides)

    def fetch(self, target: SyncTarget, reference: str) -> FetchedFile:
        """
        Download one file from a remote target.

        Args:
            target: Store to read from
            reference: Path (GitHub) or file id (Drive)

        Returns:
            FetchedFile; use it as a context manager to remove the temp file

        Raises:
            UserInputError: For an unknown target
            RemoteSyncError: When the download fails
        """
        if not isinstance(target, SyncTarget):
            try:
                target = SyncTarget(str(target).lower())
            except ValueError:
                raise UserInputError(f"Unknown sync target: {target}")

        fetched = self._target(target).fetch(reference)
        self.run_log.log(f"Fetched {fetched.name} ({fetched.size} bytes) from {target.value}.")
        return fetched

    def _push_github(self, files: List[Tuple[str, bytes]], message: str) -> int:
        if not self.github.is_configured():
            self.run_log.warning("GitHub sync skipped: repo or token missing.")
            return 0

        with ProgressTracker(total_items=len(files), item_type='GitHub pushes') as tracker:
            for path, content in files:
                try:
                    self.github.push_file(path, content, message)
                except RemoteSyncError as e:
                    self.run_log.record_error(e)
                    tracker.increment(success=False)
                    continue
                tracker.increment()

        pushed = tracker.successful_items
        self.run_log.log(f"GitHub sync pushed {pushed}/{len(files)} file(s).")
        return pushed

    def _push_drive(self, files: List[Tuple[str, bytes]]) -> int:
        try:
            token = self.drive.access_token()
        except RemoteSyncError as e:
            self.run_log.warning(f"Drive sync skipped: {e.describe()}")
            return 0

        with ProgressTracker(total_items=len(files), item_type='Drive uploads') as tracker:
            for path, content in files:
                try:
                    self.drive.upload(path, content, token)
                except RemoteSyncError as e:
                    self.run_log.record_error(e)
                    tracker.increment(success=False)
                    continue
                tracker.increment()

        pushed = tracker.successful_items
        self.run_log.log(f"Drive sync uploaded {pushed}/{len(files)} file(s).")
        return pushed


def _as_bytes(content: FileContent) -> bytes:
    return content if isinstance(content, bytes) else str(content).encode('utf-8')


__all__ = ['SyncAdapter']
