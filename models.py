"""Data models for the Markdown export/import and sync pipelines."""

import logging
import os
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger('posts_markdown_sync')

# Per-item metadata keys owned by this tool.
EXPORTED_FLAG_KEY = '_md_exported'
EXPORTED_AT_KEY = '_md_exported_at'
ORIGINAL_ID_KEY = '_md_original_id'
FOLDER_PATH_KEY = '_md_folder_path'
SOURCE_PATH_KEY = '_md_source_path'
PAGE_TEMPLATE_KEY = '_wp_page_template'
SEO_DESCRIPTION_KEY = 'rank_math_description'
SEO_KEYWORD_KEYS = ('rank_math_focus_keyword', 'rank_math_focus_keywords')

EXPORTED_FLAG_VALUE = 'yes'


class ItemStatus(Enum):
    """Publication status of a content item."""
    PUBLISH = "publish"
    DRAFT = "draft"
    PENDING = "pending"
    FUTURE = "future"

    @classmethod
    def parse(cls, value: Any) -> Optional['ItemStatus']:
        """Resolve a status string, accepting the long-form aliases."""
        if isinstance(value, ItemStatus):
            return value
        if value is None:
            return None
        normalized = str(value).strip().lower()
        normalized = STATUS_ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            return None


STATUS_ALIASES = {
    'published': 'publish',
    'scheduled': 'future',
}


class SyncTarget(Enum):
    """Remote stores an export or import can be pushed to."""
    GITHUB = "github"
    DRIVE = "drive"


@dataclass
class ContentItem:
    """A post or page held by the content repository."""

    id: int
    title: str = ''
    body: str = ''  # HTML
    status: str = ItemStatus.DRAFT.value
    slug: str = ''
    author_id: Optional[int] = None
    excerpt: str = ''
    featured_asset_id: Optional[int] = None
    date: Optional[datetime] = None
    modified: Optional[datetime] = None
    categories: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    taxonomy: List[str] = field(default_factory=list)  # "taxonomy:term"
    meta: Dict[str, Any] = field(default_factory=dict)
    parent_id: Optional[int] = None
    menu_order: int = 0
    comment_status: Optional[str] = None
    sticky: bool = False
    link: Optional[str] = None

    def is_exported(self) -> bool:
        """Check the per-item sync flag."""
        return self.meta.get(EXPORTED_FLAG_KEY) == EXPORTED_FLAG_VALUE

    def to_dict(self) -> Dict[str, Any]:
        """Serialize item to a JSON-friendly dictionary."""
        return {
            'id': self.id,
            'title': self.title,
            'body': self.body,
            'status': self.status,
            'slug': self.slug,
            'author_id': self.author_id,
            'excerpt': self.excerpt,
            'featured_asset_id': self.featured_asset_id,
            'date': self.date.isoformat() if self.date else None,
            'modified': self.modified.isoformat() if self.modified else None,
            'categories': list(self.categories),
            'tags': list(self.tags),
            'taxonomy': list(self.taxonomy),
            'meta': dict(self.meta),
            'parent_id': self.parent_id,
            'menu_order': self.menu_order,
            'comment_status': self.comment_status,
            'sticky': self.sticky,
            'link': self.link
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ContentItem':
        """Deserialize from dictionary."""
        return cls(
            id=int(data['id']),
            title=data.get('title', ''),
            body=data.get('body', ''),
            status=data.get('status', ItemStatus.DRAFT.value),
            slug=data.get('slug', ''),
            author_id=data.get('author_id'),
            excerpt=data.get('excerpt', ''),
            featured_asset_id=data.get('featured_asset_id'),
            date=_parse_iso(data.get('date')),
            modified=_parse_iso(data.get('modified')),
            categories=list(data.get('categories') or []),
            tags=list(data.get('tags') or []),
            taxonomy=list(data.get('taxonomy') or []),
            meta=dict(data.get('meta') or {}),
            parent_id=data.get('parent_id'),
            menu_order=int(data.get('menu_order') or 0),
            comment_status=data.get('comment_status'),
            sticky=bool(data.get('sticky', False)),
            link=data.get('link')
        )


@dataclass
class MediaAsset:
    """An uploaded media file known to the repository."""

    id: int
    url: str
    filename: str = ''
    source_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize asset to dictionary."""
        return {
            'id': self.id,
            'url': self.url,
            'filename': self.filename,
            'source_path': self.source_path
        }


@dataclass(frozen=True)
class ExportFilter:
    """Operator-chosen selection criteria for an export run."""

    status: Optional[str] = ItemStatus.PUBLISH.value
    author_id: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    exclude_exported: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Serialize filter for commit messages and reports."""
        return {
            'status': self.status,
            'author': self.author_id,
            'start_date': self.start_date.isoformat() if self.start_date else None,
            'end_date': self.end_date.isoformat() if self.end_date else None,
            'exclude_exported': self.exclude_exported
        }


@dataclass(frozen=True)
class ItemQuery:
    """Repository query built from an ``ExportFilter``.

    ``exclude_meta`` is a ``(key, value)`` pair: items match when the meta
    key is absent or holds anything other than ``value``.
    """

    statuses: tuple = ()
    author_id: Optional[int] = None
    date_after: Optional[datetime] = None
    date_before: Optional[datetime] = None
    exclude_meta: Optional[tuple] = None

    def matches(self, item: ContentItem) -> bool:
        """Evaluate the query against an in-memory item."""
        if self.statuses and item.status not in self.statuses:
            return False
        if self.author_id is not None and item.author_id != self.author_id:
            return False
        if self.date_after is not None:
            if item.date is None or item.date < self.date_after:
                return False
        if self.date_before is not None:
            if item.date is None or item.date > self.date_before:
                return False
        if self.exclude_meta is not None:
            key, value = self.exclude_meta
            if item.meta.get(key) == value:
                return False
        return True


@dataclass
class SyncOverrides:
    """Per-call target enablement; ``None`` defers to configuration."""

    github_enabled: Optional[bool] = None
    drive_enabled: Optional[bool] = None

    def for_target(self, target: SyncTarget) -> Optional[bool]:
        return getattr(self, f'{target.value}_enabled')


@dataclass
class ImportStats:
    """Aggregate counters for an import run."""

    processed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0

    def record(self, outcome: str) -> None:
        """Count one processed document by its outcome."""
        self.processed += 1
        if outcome == 'created':
            self.created += 1
        elif outcome == 'updated':
            self.updated += 1
        else:
            self.skipped += 1

    def as_dict(self) -> Dict[str, int]:
        return {
            'processed': self.processed,
            'created': self.created,
            'updated': self.updated,
            'skipped': self.skipped
        }


@dataclass
class ExportResult:
    """Outcome of an export run."""

    download_name: str
    paths: List[str] = field(default_factory=list)
    item_ids: List[int] = field(default_factory=list)
    archive_size: int = 0
    streamed_to: Optional[str] = None
    pushed: Dict[str, int] = field(default_factory=dict)

    @property
    def item_count(self) -> int:
        return len(self.item_ids)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'download_name': self.download_name,
            'paths': list(self.paths),
            'item_count': self.item_count,
            'archive_size': self.archive_size,
            'streamed_to': self.streamed_to,
            'pushed': dict(self.pushed)
        }


@dataclass
class FetchedFile:
    """A remote document or archive downloaded to a temporary file.

    Use as a context manager; the temporary file is removed on exit.
    """

    tmp_path: str
    name: str
    size: int = 0

    def cleanup(self) -> None:
        if self.tmp_path and os.path.exists(self.tmp_path):
            os.remove(self.tmp_path)

    def __enter__(self) -> 'FetchedFile':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.cleanup()


@dataclass
class RunReport:
    """Summary handed back to the operator after a run."""

    operation: str
    success: bool
    message: str = ''
    stats: Dict[str, Any] = field(default_factory=dict)
    log_lines: List[str] = field(default_factory=list)
    timestamp: Optional[str] = None

    def __post_init__(self) -> None:
        """Set timestamp if not provided."""
        if self.timestamp is None:
            self.timestamp = datetime.utcnow().isoformat()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'operation': self.operation,
            'success': self.success,
            'message': self.message,
            'stats': self.stats,
            'log_lines': list(self.log_lines),
            'timestamp': self.timestamp
        }


def _parse_iso(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


__all__ = [
    'ItemStatus',
    'SyncTarget',
    'ContentItem',
    'MediaAsset',
    'ExportFilter',
    'ItemQuery',
    'SyncOverrides',
    'ImportStats',
    'ExportResult',
    'FetchedFile',
    'RunReport',
    'EXPORTED_FLAG_KEY',
    'EXPORTED_AT_KEY',
    'EXPORTED_FLAG_VALUE',
    'ORIGINAL_ID_KEY',
    'FOLDER_PATH_KEY',
    'SOURCE_PATH_KEY',
    'PAGE_TEMPLATE_KEY',
    'SEO_DESCRIPTION_KEY',
    'SEO_KEYWORD_KEYS'
]
