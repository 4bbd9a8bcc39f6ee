"""Resolves ``_images/`` references in imported archives to repository assets."""

import logging
import posixpath
import zipfile
from typing import Dict, Iterable, Optional

from converters.media_paths import (
    is_image_path,
    is_media_path,
    is_remote_reference,
    lookup_media,
    normalize_media_path,
)
from errors import PersistenceError
from logger import RunLog
from models import MediaAsset
from repository.base import ContentRepository

logger = logging.getLogger('posts_markdown_sync.importers.media')

MediaMap = Dict[str, MediaAsset]


class MediaResolver:
    """
    Uploads archive images once and maps their normalized paths to assets.

    An image whose normalized path is already recorded as an asset's source
    path is reused, so importing the same archive twice creates no
    duplicate assets.
    """

    def __init__(self, repository: ContentRepository, run_log: Optional[RunLog] = None,
                 logger: logging.Logger = None):
        self.repository = repository
        self.logger = logger or logging.getLogger('posts_markdown_sync.importers.media')
        self.run_log = run_log or RunLog(self.logger)
        self.stats = {'reused': 0, 'uploaded': 0, 'failed': 0}

    def prepare_archive_media_map(self, archive: zipfile.ZipFile,
                                  names: Optional[Iterable[str]] = None) -> MediaMap:
        """
        Build the media map for one archive.

        Args:
            archive: Open archive
            names: Entry names to consider; defaults to every entry

        Returns:
            Mapping keyed by normalized path, both with and without a leading ``/``
        """
        media_map: MediaMap = {}
        names = list(names) if names is not None else archive.namelist()

        for entry_name in names:
            if entry_name.endswith('/') or not is_media_path(entry_name):
                continue

            normalized = normalize_media_path(entry_name)
            if not is_image_path(normalized) or normalized in media_map:
                continue

            asset = self.repository.find_asset_by_source_path(normalized)
            if asset is not None:
                self.stats['reused'] += 1
                self.run_log.debug(f"Reusing asset {asset.id} for {normalized}.")
            else:
                asset = self._upload(archive, entry_name, normalized)
                if asset is None:
                    continue

            media_map[normalized] = asset
            media_map['/' + normalized] = asset

        if media_map:
            self.run_log.log(f"Media map ready: {len(media_map) // 2} image(s) "
                             f"({self.stats['uploaded']} uploaded, {self.stats['reused']} reused).")
        return media_map

    def _upload(self, archive: zipfile.ZipFile, entry_name: str, normalized: str) -> Optional[MediaAsset]:
        try:
            data = archive.read(entry_name)
        except (KeyError, zipfile.BadZipFile, OSError) as e:
            self.stats['failed'] += 1
            self.run_log.warning(f"Failed to read media file {entry_name} from archive: {e}")
            return None

        try:
            asset = self.repository.create_asset(data, posixpath.basename(normalized), source_path=normalized)
        except PersistenceError as e:
            self.stats['failed'] += 1
            e.filename = e.filename or entry_name
            self.run_log.record_error(e)
            return None

        self.stats['uploaded'] += 1
        self.run_log.debug(f"Uploaded {normalized} as asset {asset.id}.")
        return asset

    def set_featured_image(self, item_id: int, source: str, media_map: Optional[MediaMap] = None) -> bool:
        """
        Attach the featured image named in front matter.

        Remote URLs are never fetched. The reference must normalize to an
        ``_images/`` path; an asset already carrying that source path wins
        over the current archive's map.

        Returns:
            True when a featured asset was set
        """
        source = (source or '').strip()
        if not source:
            return False

        if is_remote_reference(source):
            self.run_log.log(f"Remote featured_image URLs are not supported: {source}")
            return False

        if not is_media_path(source):
            self.run_log.log(f"featured_image not under _images/: {source}")
            return False

        normalized = normalize_media_path(source)
        asset = self.repository.find_asset_by_source_path(normalized)
        if asset is None:
            asset = lookup_media(media_map, normalized)

        if asset is None:
            hint = ''
            if media_map:
                hint = f" (media_map keys: {', '.join(list(media_map)[:5])})"
            self.run_log.log(f"Could not resolve featured_image for {source}; "
                             f"normalized={normalized}{hint}")
            return False

        self.repository.set_featured_asset(item_id, asset.id)
        return True


__all__ = ['MediaResolver', 'MediaMap']
