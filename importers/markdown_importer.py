"""Import pipeline: Markdown documents and archives into the repository."""

import logging
import os
import posixpath
import tempfile
import zipfile
from typing import Any, Dict, List, Optional, Tuple

from tqdm import tqdm

from converters.front_matter import FrontMatterCodec
from converters.html_renderer import HtmlRenderer
from errors import PersistenceError, UserInputError
from exporters.path_builder import sanitize_segment
from logger import RunLog
from models import (
    FOLDER_PATH_KEY,
    ORIGINAL_ID_KEY,
    PAGE_TEMPLATE_KEY,
    SEO_DESCRIPTION_KEY,
    SEO_KEYWORD_KEYS,
    ImportStats,
    ItemStatus,
    SyncOverrides,
)
from repository.base import ContentRepository

from .front_matter_validator import validate_front_matter
from .media_resolver import MediaMap, MediaResolver

DEFAULT_TITLE = 'Imported Markdown'
INDEX_DOCUMENT = 'index.md'


def folder_title(folder: str) -> str:
    """``release-notes_2024`` -> ``Release Notes 2024``."""
    words = posixpath.basename(folder).replace('-', ' ').replace('_', ' ').split()
    return ' '.join(word[:1].upper() + word[1:] for word in words)


class MarkdownImporter:
    """
    Imports ``.md`` documents and ``.zip`` archives.

    For each document the importer:
    1. Parses and validates the front matter
    2. Updates the item named by ``id`` when it exists, otherwise creates one
    3. Applies taxonomy, custom fields, provenance, SEO meta, featured
       image, page template and sticky state

    A repository failure for one document is logged with its filename and
    counted as skipped; the run continues with the next document.
    """

    def __init__(
        self,
        repository: ContentRepository,
        config: Optional[Dict[str, Any]] = None,
        run_log: Optional[RunLog] = None,
        sync=None,
        media_resolver: Optional[MediaResolver] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the importer.

        Args:
            repository: Destination repository
            config: Configuration dictionary with import settings
            run_log: Per-run log collector
            sync: ``SyncAdapter`` receiving the uploaded file after import
            media_resolver: Resolver for archive images
            logger: Logger instance
        """
        self.repository = repository
        self.config = config or {}
        self.logger = logger or logging.getLogger('posts_markdown_sync.importers')
        self.run_log = run_log or RunLog(self.logger)
        self.sync = sync
        self.media_resolver = media_resolver or MediaResolver(repository, self.run_log, self.logger)
        self.codec = FrontMatterCodec(logger=self.logger)
        self.renderer = HtmlRenderer(logger=self.logger)

        import_config = self.config.get('import', {})
        self.default_author_id = import_config.get('default_author_id')
        self.link_parents = import_config.get('link_parents', True)
        self.show_progress = import_config.get('progress_bars', True)

    def import_file(self, file_path: str, name: str,
                    overrides: Optional[SyncOverrides] = None) -> ImportStats:
        """
        Import an uploaded file.

        Args:
            file_path: Local file holding the upload
            name: Declared name; its extension selects archive or document mode
            overrides: Per-call sync target enablement for the post-import push

        Returns:
            ImportStats for the run

        Raises:
            UserInputError: For unsupported extensions and unreadable uploads
        """
        extension = os.path.splitext(name)[1].lower()
        self.run_log.log(f"Uploaded file detected: {name} ({extension or 'no extension'}).")

        if extension == '.zip':
            stats = self._import_archive(file_path)
        elif extension == '.md':
            try:
                with open(file_path, 'r', encoding='utf-8', errors='replace') as f:
                    text = f.read()
            except OSError as e:
                raise UserInputError(f"Could not read the uploaded Markdown file: {e}")
            stats = ImportStats()
            stats.record(self.import_markdown(text, name))
        else:
            raise UserInputError("Only ZIP archives or .md files are supported for import.")

        self.run_log.log(f"Import finished: {stats.as_dict()}.")

        if self.sync is not None:
            self.sync.push_import(file_path, name, stats.as_dict(), overrides)

        return stats

    def import_bytes(self, data: bytes, name: str,
                     overrides: Optional[SyncOverrides] = None) -> ImportStats:
        """Import an in-memory upload through a temporary file."""
        fd, tmp_path = tempfile.mkstemp(prefix='pmsync_import_', suffix=os.path.splitext(name)[1])
        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(data)
            return self.import_file(tmp_path, name, overrides)
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)

    def _import_archive(self, file_path: str) -> ImportStats:
        try:
            archive = zipfile.ZipFile(file_path)
        except (zipfile.BadZipFile, OSError) as e:
            raise UserInputError(f"Could not open the uploaded ZIP file: {e}")

        stats = ImportStats()
        with archive:
            names = [name for name in archive.namelist() if not name.endswith('/')]
            documents = [name for name in names if name.lower().endswith('.md')]
            media_map = self.media_resolver.prepare_archive_media_map(
                archive, [name for name in names if name not in documents]
            )

            folders: Dict[str, None] = {}
            indexed = set()
            imported: List[Tuple[int, str]] = []

            for entry_name in tqdm(documents, desc="Importing documents", unit="file",
                                   disable=not self.show_progress):
                directory = posixpath.dirname(entry_name.replace('\\', '/')).strip('/')
                for depth in range(1, len(directory.split('/')) + 1 if directory else 0):
                    folders.setdefault('/'.join(directory.split('/')[:depth]), None)
                is_index = posixpath.basename(entry_name).lower() == INDEX_DOCUMENT
                if is_index:
                    indexed.add(directory)

                try:
                    text = archive.read(entry_name).decode('utf-8', errors='replace')
                except (KeyError, zipfile.BadZipFile, OSError) as e:
                    self.run_log.warning(f"Failed to read {entry_name} from archive: {e}")
                    stats.skipped += 1
                    continue

                outcome, item_id = self._import_document(text, entry_name, media_map, directory)
                stats.record(outcome)
                if item_id is not None:
                    parent_folder = posixpath.dirname(directory) if is_index else directory
                    imported.append((item_id, parent_folder))

            placeholders = self._create_folder_items(folders, indexed)
            if self.link_parents:
                self._link_parents(imported + placeholders)

        return stats

    def import_markdown(self, text: str, filename: str, media_map: Optional[MediaMap] = None,
                        folder: Optional[str] = None) -> str:
        """
        Import one document.

        Returns:
            ``created``, ``updated`` or ``skipped``
        """
        outcome, _ = self._import_document(text, filename, media_map or {}, folder)
        return outcome

    def _import_document(self, text: str, filename: str, media_map: MediaMap,
                         folder: Optional[str]) -> Tuple[str, Optional[int]]:
        parsed = self.codec.parse(text)
        meta = validate_front_matter(parsed.meta, filename, self.run_log)

        if str(meta.get('skip_file', '')).lower() == 'yes':
            self.run_log.log(f"Skipping import for {filename} due to skip_file flag.")
            return 'skipped', None

        original_id = meta.get('id')
        title = meta.get('title') or DEFAULT_TITLE
        fields: Dict[str, Any] = {
            'title': title,
            'status': meta.get('status', ItemStatus.DRAFT.value),
            'body': self.renderer.render(self._strip_title_heading(parsed.body, title), media_map),
        }
        for key in ('slug', 'date', 'excerpt', 'menu_order', 'comment_status'):
            if key in meta:
                fields[key] = meta[key]

        author_id = self._resolve_author(meta.get('author'), filename)
        if author_id is not None:
            fields['author_id'] = author_id

        try:
            existing = self.repository.get_item(original_id) if original_id else None
            if existing is not None:
                item_id = existing.id
                self.repository.update_item(item_id, fields)
                outcome = 'updated'
                self.run_log.log(f"Updated item {item_id} from {filename}.")
            else:
                item_id = self.repository.create_item(fields)
                outcome = 'created'
                self.run_log.log(f"Created new item {item_id} from {filename}.")
                if original_id:
                    self.repository.set_item_meta(item_id, ORIGINAL_ID_KEY, original_id)
                    self.run_log.log(f"Original id {original_id} stored as provenance; "
                                     f"no matching item was found.")
        except PersistenceError as e:
            e.filename = filename
            self.run_log.record_error(e)
            return 'skipped', None

        try:
            self._apply_post_steps(item_id, meta, media_map, folder)
        except PersistenceError as e:
            e.filename = filename
            self.run_log.record_error(e)

        return outcome, item_id

    def _apply_post_steps(self, item_id: int, meta: Dict[str, Any], media_map: MediaMap,
                          folder: Optional[str]) -> None:
        self._assign_terms(item_id, meta)

        for entry in meta.get('custom_fields', []):
            key, value = (part.strip() for part in entry.split(':', 1))
            if key:
                self.repository.set_item_meta(item_id, key, value)

        folder_path = meta.get('folder_path') or folder
        if folder_path:
            self.repository.set_item_meta(item_id, FOLDER_PATH_KEY, folder_path)

        if meta.get('meta_description'):
            self.repository.set_item_meta(item_id, SEO_DESCRIPTION_KEY, meta['meta_description'])
        if meta.get('meta_keywords'):
            for key in SEO_KEYWORD_KEYS:
                self.repository.set_item_meta(item_id, key, meta['meta_keywords'])

        self.media_resolver.set_featured_image(item_id, meta.get('featured_image', ''), media_map)

        if meta.get('page_template'):
            self.repository.set_item_meta(item_id, PAGE_TEMPLATE_KEY, meta['page_template'])

        if meta.get('stick_post'):
            self.repository.set_sticky(item_id, meta['stick_post'] == 'yes')

    def _assign_terms(self, item_id: int, meta: Dict[str, Any]) -> None:
        if meta.get('categories'):
            self.repository.assign_taxonomy(item_id, 'category', meta['categories'], append=False)
        if meta.get('tags'):
            self.repository.assign_taxonomy(item_id, 'post_tag', meta['tags'], append=False)

        for assignment in meta.get('taxonomy', []):
            taxonomy, term = (part.strip() for part in assignment.split(':', 1))
            if not taxonomy or not term:
                continue
            try:
                self.repository.assign_taxonomy(item_id, taxonomy, [term], append=True)
            except PersistenceError as e:
                self.run_log.log(f"Taxonomy assignment failed for {taxonomy}: {e.message}")

    def _resolve_author(self, author: Optional[str], filename: str) -> Optional[int]:
        if author:
            author_id = self.repository.find_author(author)
            if author_id is not None:
                return author_id
            self.run_log.log(f"Author {author!r} in {filename} not found; using the default author.")
        return self.default_author_id

    @staticmethod
    def _strip_title_heading(body: str, title: str) -> str:
        """Drop a leading ``# Title`` line that repeats the title."""
        lines = body.split('\n')
        for index, line in enumerate(lines):
            if not line.strip():
                continue
            if line.strip() == f'# {title}':
                return '\n'.join(lines[index + 1:]).strip('\n')
            break
        return body

    def _create_folder_items(self, folders: Dict[str, None], indexed: set) -> List[Tuple[int, str]]:
        """Create a draft placeholder for each folder without an ``index.md``."""
        created: List[Tuple[int, str]] = []
        for folder in folders:
            if folder in indexed:
                continue

            slug = sanitize_segment(posixpath.basename(folder))
            if not slug:
                continue

            if self.repository.find_item_by_slug(slug) is not None:
                self.run_log.debug(f"Folder item exists for {folder} (slug {slug}). Skipping creation.")
                continue

            try:
                item_id = self.repository.create_item({
                    'title': folder_title(folder),
                    'status': ItemStatus.DRAFT.value,
                    'body': '',
                    'slug': slug,
                })
            except PersistenceError as e:
                e.filename = folder
                self.run_log.record_error(e)
                continue

            self.run_log.log(f"Created folder item for {folder} as ID {item_id}.")
            created.append((item_id, posixpath.dirname(folder)))
        return created

    def _link_parents(self, imported: List[Tuple[int, str]]) -> None:
        """Point each item at the item whose slug matches its folder's last segment."""
        for item_id, folder in imported:
            if not folder:
                continue
            parent = self.repository.find_item_by_slug(sanitize_segment(posixpath.basename(folder)))
            if parent is None or parent.id == item_id:
                continue
            try:
                self.repository.update_item(item_id, {'parent_id': parent.id})
            except PersistenceError as e:
                e.filename = e.filename or folder
                self.run_log.record_error(e)


__all__ = ['MarkdownImporter', 'folder_title']
