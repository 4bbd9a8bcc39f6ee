"""Export pipeline: filtered items to a ZIP of Markdown documents."""

import logging
import os
import tempfile
import zipfile
from datetime import datetime, time, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from tqdm import tqdm

from converters.front_matter import FrontMatterCodec
from converters.markdown_converter import MarkdownConverter
from errors import NoContentError, PersistenceError, PreconditionError, UserInputError
from logger import RunLog
from models import (
    EXPORTED_AT_KEY,
    EXPORTED_FLAG_KEY,
    EXPORTED_FLAG_VALUE,
    ContentItem,
    ExportFilter,
    ExportResult,
    ItemQuery,
    ItemStatus,
    SyncOverrides,
)
from repository.base import ContentRepository

from .document_builder import DocumentBuilder
from .path_builder import ExportPathBuilder
from .streamers import ArchiveStreamer

ANY_STATUS = 'any'


def build_item_query(filters: ExportFilter) -> ItemQuery:
    """
    Translate operator filters into a repository query.

    Date bounds are inclusive: the start date begins at 00:00:00 and the
    end date runs through 23:59:59.999999. ``exclude_exported`` becomes
    "sync flag absent or not ``yes``".

    Raises:
        UserInputError: For an unknown status or an inverted date range
    """
    statuses: Tuple[str, ...] = ()
    if filters.status and str(filters.status).lower() != ANY_STATUS:
        status = ItemStatus.parse(filters.status)
        if status is None:
            raise UserInputError(f"Unknown status filter: {filters.status}")
        statuses = (status.value,)

    if filters.start_date and filters.end_date and filters.start_date > filters.end_date:
        raise UserInputError("Export start date is after the end date")

    return ItemQuery(
        statuses=statuses,
        author_id=filters.author_id,
        date_after=datetime.combine(filters.start_date, time.min) if filters.start_date else None,
        date_before=datetime.combine(filters.end_date, time.max) if filters.end_date else None,
        exclude_meta=(EXPORTED_FLAG_KEY, EXPORTED_FLAG_VALUE) if filters.exclude_exported else None
    )


class MarkdownExporter:
    """
    Exports repository items as a ZIP of Markdown documents.

    One run:
    1. Queries the repository with the filter criteria
    2. Renders each item and assigns it a unique archive path
    3. Writes the archive to a temporary file
    4. Flags each exported item with the sync marker
    5. Streams the archive and/or pushes the documents to remote targets

    The temporary archive is deleted on every exit path.
    """

    def __init__(
        self,
        repository: ContentRepository,
        config: Optional[Dict[str, Any]] = None,
        run_log: Optional[RunLog] = None,
        sync=None,
        streamer: Optional[ArchiveStreamer] = None,
        clock: Optional[Callable[[], datetime]] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the exporter.

        Args:
            repository: Source of content items
            config: Configuration dictionary with export settings
            run_log: Per-run log collector
            sync: ``SyncAdapter`` used when a run asks for a remote push
            streamer: Destination used when a run asks for a download
            clock: Returns the current UTC time
            logger: Logger instance
        """
        self.repository = repository
        self.config = config or {}
        self.logger = logger or logging.getLogger('posts_markdown_sync.exporters')
        self.run_log = run_log or RunLog(self.logger)
        self.sync = sync
        self.streamer = streamer
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        export_config = self.config.get('export', {})
        self.show_progress = export_config.get('progress_bars', True)
        self.document_builder = DocumentBuilder(
            repository,
            codec=FrontMatterCodec(list_style=export_config.get('list_style', 'inline'), logger=self.logger),
            converter=MarkdownConverter(logger=self.logger, config=export_config),
            title_heading=export_config.get('title_heading', True),
            logger=self.logger
        )

    def export(
        self,
        filters: Optional[ExportFilter] = None,
        overrides: Optional[SyncOverrides] = None,
        stream: bool = True,
        sync: bool = False
    ) -> ExportResult:
        """
        Run one export.

        Args:
            filters: Selection criteria; defaults to published items
            overrides: Per-call sync target enablement
            stream: Hand the archive to the configured streamer
            sync: Push the documents to the enabled remote targets

        Returns:
            ExportResult describing the archive and pushes

        Raises:
            UserInputError: For invalid filters
            NoContentError: When no item matches
            PreconditionError: When streaming is requested without a streamer
        """
        filters = filters or ExportFilter()
        if stream and self.streamer is None:
            raise PreconditionError("No archive destination configured for the download")

        query = build_item_query(filters)
        items = self.repository.query_items(query)
        if not items:
            self.run_log.log(f"No items returned by query {filters.to_dict()}.")
            raise NoContentError()

        previously = sum(1 for item in items if item.is_exported())
        self.run_log.log(f"Found {len(items)} item(s) to export.")
        if previously:
            self.run_log.debug(f"{previously} of them were exported before.")

        now = self._clock()
        download_name = f"markdown-export-{now.strftime('%Y%m%d-%H%M%S')}.zip"
        result = ExportResult(download_name=download_name)

        fd, tmp_path = tempfile.mkstemp(prefix='pmsync_export_', suffix='.zip')
        os.close(fd)
        self.run_log.debug(f"Temporary file created at {tmp_path}.")

        try:
            files = self._write_archive(tmp_path, items, result)
            result.archive_size = os.path.getsize(tmp_path)
            self.run_log.log(f"Added {len(files)} Markdown file(s) to the archive "
                             f"({result.archive_size} bytes).")

            self._mark_exported(items, now)

            if stream:
                self.run_log.log(f"Preparing download: {download_name}.")
                result.streamed_to = self.streamer.stream(tmp_path, download_name)

            if sync and self.sync is not None:
                result.pushed = self.sync.push_export_files(files, filters.to_dict(), overrides)
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
                self.run_log.debug("Temporary archive removed.")

        self.run_log.log("Export completed successfully.")
        return result

    def _write_archive(self, tmp_path: str, items: List[ContentItem], result: ExportResult) -> List[Tuple[str, str]]:
        path_builder = ExportPathBuilder(self.repository.get_ancestors, logger=self.logger)
        files: List[Tuple[str, str]] = []

        with zipfile.ZipFile(tmp_path, 'w', compression=zipfile.ZIP_DEFLATED) as archive:
            for item in tqdm(items, desc="Exporting items", unit="item",
                             disable=not self.show_progress):
                path = path_builder.build(item)
                document = self.document_builder.build(item, path_builder.folder_path(item))
                archive.writestr(path, document)
                files.append((path, document))
                result.paths.append(path)
                result.item_ids.append(item.id)

        return files

    def _mark_exported(self, items: List[ContentItem], now: datetime) -> None:
        """Set the sync flag on each item; a refused write is logged and skipped."""
        stamp = now.replace(microsecond=0).isoformat()
        for item in items:
            try:
                self.repository.set_item_meta(item.id, EXPORTED_FLAG_KEY, EXPORTED_FLAG_VALUE)
                self.repository.set_item_meta(item.id, EXPORTED_AT_KEY, stamp)
            except PersistenceError as e:
                e.filename = e.filename or f'item {item.id}'
                self.run_log.record_error(e)


__all__ = ['MarkdownExporter', 'build_item_query']
