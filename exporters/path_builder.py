"""Derives unique hierarchical archive paths for exported items."""

import logging
import re
import unicodedata
from typing import Callable, List, Optional, Set

from models import ContentItem

logger = logging.getLogger('posts_markdown_sync.exporters.paths')

DOCUMENT_EXTENSION = '.md'


def sanitize_segment(value: str, max_len: int = 100) -> str:
    """
    Convert a slug or title to a filesystem-safe path segment.

    Args:
        value: Raw slug

    Returns:
        Lowercase ASCII segment of ``[a-z0-9_-]``, possibly empty
    """
    if not value:
        return ''

    normalized = unicodedata.normalize('NFKD', str(value))
    sanitized = normalized.encode('ascii', 'ignore').decode('ascii').lower()
    sanitized = re.sub(r'[^a-z0-9\-_]', '-', sanitized)
    sanitized = re.sub(r'-+', '-', sanitized).strip('-')
    return sanitized[:max_len].strip('-')


class ExportPathBuilder:
    """Assigns every item of one export run a distinct ``.md`` path.

    Paths join the sanitized slugs of the item's ancestors, root first, with
    the item's own slug. A collision appends ``-2``, ``-3`` ... to the leaf.
    Used names are tracked across the whole run, not per directory.
    """

    def __init__(self, ancestors: Callable[[ContentItem], List[ContentItem]],
                 logger: logging.Logger = None):
        """
        Args:
            ancestors: Returns an item's ancestors ordered root first
        """
        self.ancestors = ancestors
        self.logger = logger or logging.getLogger('posts_markdown_sync.exporters.paths')
        self.used: Set[str] = set()

    @staticmethod
    def segment_for(item: ContentItem) -> str:
        return sanitize_segment(item.slug) or f'item-{item.id}'

    def directory_for(self, item: ContentItem) -> str:
        return '/'.join(self.segment_for(ancestor) for ancestor in self.ancestors(item))

    def build(self, item: ContentItem) -> str:
        """Return the next unused path for ``item`` and reserve it."""
        directory = self.directory_for(item)
        base = self.segment_for(item)
        prefix = f'{directory}/' if directory else ''

        path = f'{prefix}{base}{DOCUMENT_EXTENSION}'
        counter = 1
        while path in self.used:
            counter += 1
            path = f'{prefix}{base}-{counter}{DOCUMENT_EXTENSION}'

        if counter > 1:
            self.logger.debug(f"Path collision for item {item.id}, using {path}")
        self.used.add(path)
        return path

    def folder_path(self, item: ContentItem) -> Optional[str]:
        """Directory portion of the item's path, or ``None`` at the archive root."""
        return self.directory_for(item) or None


__all__ = ['ExportPathBuilder', 'sanitize_segment', 'DOCUMENT_EXTENSION']
