"""
Run orchestrator for the export, import and scheduled sync operations.

Each run takes the run lease, builds its components around a fresh
``RunLog``, catches any ``SyncToolError`` once, persists a file-backed
repository and flushes the run log exactly once.
"""

import logging
import os
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple

from config_loader import SettingsStore, get_nested
from errors import NoContentError, PersistenceError, SyncToolError, UserInputError
from exporters import ArchiveStreamer, DirectoryStreamer, MarkdownExporter
from importers import MarkdownImporter
from logger import RunLog, RunLogStore, log_section
from models import ExportFilter, RunReport, SyncOverrides, SyncTarget
from repository import InMemoryRepository, create_repository
from repository.base import ContentRepository
from sync_targets import DriveTarget, GitHubTarget, SyncAdapter

from .run_lease import RunLease

logger = logging.getLogger('posts_markdown_sync.orchestrator')

RunAction = Callable[[RunLog, ContentRepository], Tuple[Dict[str, Any], str]]


class RunOrchestrator:
    """Entry point for every operator-visible operation."""

    def __init__(
        self,
        config: Dict[str, Any],
        config_path: Optional[str] = None,
        repository: Optional[ContentRepository] = None,
        streamer: Optional[ArchiveStreamer] = None,
        github: Optional[GitHubTarget] = None,
        drive: Optional[DriveTarget] = None,
        clock: Optional[Callable[[], datetime]] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Validated configuration dictionary
            config_path: YAML file refreshed settings are written back to
            repository: Repository to use instead of ``repository.*`` settings
            streamer: Archive destination; defaults to ``export.output_directory``
            github: GitHub target to use instead of ``sync.github.*`` settings
            drive: Drive target to use instead of ``sync.drive.*`` settings
            clock: Returns the current UTC time
            logger: Logger instance
        """
        self.config = config
        self.settings = SettingsStore(config, config_path)
        self.logger = logger or logging.getLogger('posts_markdown_sync.orchestrator')
        self._repository = repository
        self._owns_repository = repository is None
        self.streamer = streamer
        self.github = github
        self.drive = drive
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self.log_store = RunLogStore(
            get_nested(config, 'logging.run_log_path', './.posts-markdown-sync/last-run.json')
        )

    @property
    def repository(self) -> ContentRepository:
        if self._repository is None:
            self._repository = create_repository(self.config, logger=self.logger)
        return self._repository

    def _sync_adapter(self, run_log: RunLog) -> SyncAdapter:
        return SyncAdapter(self.settings, run_log, github=self.github, drive=self.drive,
                           logger=self.logger)

    def _streamer(self) -> ArchiveStreamer:
        if self.streamer is None:
            self.streamer = DirectoryStreamer(
                get_nested(self.config, 'export.output_directory', './exports'),
                logger=self.logger
            )
        return self.streamer

    def run_export(
        self,
        filters: Optional[ExportFilter] = None,
        overrides: Optional[SyncOverrides] = None,
        stream: bool = True,
        sync: Optional[bool] = None
    ) -> RunReport:
        """
        Export matching items to a ZIP archive.

        Args:
            filters: Selection criteria; defaults to published items
            overrides: Per-call sync target enablement
            stream: Write the archive to the streamer
            sync: Push documents to remote targets; ``None`` uses ``sync.auto_sync``
        """
        if sync is None:
            sync = bool(get_nested(self.config, 'sync.auto_sync', False))

        def action(run_log: RunLog, repository: ContentRepository):
            exporter = MarkdownExporter(
                repository,
                self.config,
                run_log=run_log,
                sync=self._sync_adapter(run_log),
                streamer=self._streamer() if stream else None,
                clock=self._clock,
                logger=self.logger
            )
            result = exporter.export(filters, overrides, stream=stream, sync=sync)
            return result.to_dict(), f"Exported {result.item_count} item(s) as {result.download_name}"

        return self._run('export', action)

    def run_import(self, file_path: str, name: Optional[str] = None,
                   overrides: Optional[SyncOverrides] = None) -> RunReport:
        """Import a local ``.zip`` or ``.md`` file."""
        name = name or os.path.basename(file_path)

        def action(run_log: RunLog, repository: ContentRepository):
            importer = MarkdownImporter(repository, self.config, run_log=run_log,
                                        sync=self._sync_adapter(run_log), logger=self.logger)
            stats = importer.import_file(file_path, name, overrides)
            return stats.as_dict(), f"Imported {name}"

        return self._run('import', action)

    def run_remote_import(self, target: SyncTarget, reference: str,
                          overrides: Optional[SyncOverrides] = None) -> RunReport:
        """
        Download a document or archive from a remote target and import it.

        The downloaded file is not pushed back to the target it came from.
        """
        def action(run_log: RunLog, repository: ContentRepository):
            adapter = self._sync_adapter(run_log)
            try:
                source = target if isinstance(target, SyncTarget) else SyncTarget(str(target).lower())
            except ValueError:
                raise UserInputError(f"Unknown sync target: {target}")
            push_overrides = replace(overrides or SyncOverrides(), **{f'{source.value}_enabled': False})

            with adapter.fetch(source, reference) as fetched:
                importer = MarkdownImporter(repository, self.config, run_log=run_log,
                                            sync=adapter, logger=self.logger)
                stats = importer.import_file(fetched.tmp_path, fetched.name, push_overrides)
            return stats.as_dict(), f"Imported {fetched.name} from {source.value}"

        return self._run('remote_import', action)

    def run_scheduled_sync(self) -> RunReport:
        """
        Export items not yet exported and push them to every fully configured target.

        Nothing is streamed. An empty result is not a failure.
        """
        def action(run_log: RunLog, repository: ContentRepository):
            adapter = self._sync_adapter(run_log)
            overrides = adapter.scheduled_overrides()
            if not (overrides.github_enabled or overrides.drive_enabled):
                run_log.log("Scheduled sync skipped: no sync target is enabled and configured.")
                return {}, "No sync target configured"

            exporter = MarkdownExporter(repository, self.config, run_log=run_log, sync=adapter,
                                        clock=self._clock, logger=self.logger)
            filters = ExportFilter(exclude_exported=True)
            try:
                result = exporter.export(filters, overrides, stream=False, sync=True)
            except NoContentError:
                run_log.log("Scheduled sync found no new items.")
                return {}, "No new items"
            return result.to_dict(), f"Synced {result.item_count} item(s)"

        return self._run('scheduled_sync', action)

    def read_last_log(self, clear: bool = True):
        """Lines from the most recent run, if they have not expired."""
        return self.log_store.read(clear=clear)

    def _run(self, operation: str, action: RunAction) -> RunReport:
        log_section(f"Run: {operation}")
        run_log = RunLog(self.logger, clock=self._clock)
        lease = RunLease(
            get_nested(self.config, 'advanced.lock_path', './.posts-markdown-sync/run.lock'),
            ttl_seconds=get_nested(self.config, 'advanced.lease_ttl_seconds', 3600),
            operation=operation
        )

        try:
            with lease:
                repository = self.repository
                try:
                    stats, message = action(run_log, repository)
                finally:
                    self._persist(repository, run_log)
            report = RunReport(operation=operation, success=True, message=message, stats=stats)
        except SyncToolError as e:
            run_log.record_error(e)
            report = RunReport(operation=operation, success=False, message=e.message)
        except OSError as e:
            error = PersistenceError(e.strerror or str(e), filename=e.filename,
                                     details={'errno': e.errno})
            run_log.record_error(error)
            message = f"{error.message}: {e.filename}" if e.filename else error.message
            report = RunReport(operation=operation, success=False, message=message)
        finally:
            run_log.flush(self.log_store)

        report.log_lines = run_log.lines
        self.logger.info(f"{operation} finished: success={report.success} {report.message}")
        return report

    def _persist(self, repository: ContentRepository, run_log: RunLog) -> None:
        """Save a file-backed repository this orchestrator created."""
        if not self._owns_repository or not isinstance(repository, InMemoryRepository):
            return
        json_path = get_nested(self.config, 'repository.json_path')
        if json_path:
            repository.save(json_path)
            run_log.debug(f"Repository saved to {json_path}.")


__all__ = ['RunOrchestrator']
