"""Abstract content repository interface shared by every storage backend."""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from models import ContentItem, ItemQuery, MediaAsset


class ContentRepository(ABC):
    """Storage for content items, taxonomy assignments and media assets.

    Every write that the backend refuses raises ``PersistenceError``.
    """

    def __init__(self, logger: logging.Logger = None):
        self.logger = logger or logging.getLogger('posts_markdown_sync.repository')

    @abstractmethod
    def query_items(self, query: ItemQuery) -> List[ContentItem]:
        """
        Return every item matching ``query``, oldest first.

        Args:
            query: Status, author, inclusive date bounds and meta exclusion

        Returns:
            Matching items
        """
        pass

    @abstractmethod
    def get_item(self, item_id: int) -> Optional[ContentItem]:
        """Return the item with ``item_id`` or ``None``."""
        pass

    @abstractmethod
    def create_item(self, fields: Dict[str, Any]) -> int:
        """
        Create an item from a field mapping.

        Args:
            fields: ``ContentItem`` attribute names and values

        Returns:
            The new item id
        """
        pass

    @abstractmethod
    def update_item(self, item_id: int, fields: Dict[str, Any]) -> None:
        """Update the given attributes of an existing item."""
        pass

    @abstractmethod
    def set_item_meta(self, item_id: int, key: str, value: Any) -> None:
        pass

    @abstractmethod
    def get_item_meta(self, item_id: int, key: str) -> Any:
        pass

    @abstractmethod
    def assign_taxonomy(self, item_id: int, taxonomy: str, terms: List[str], append: bool) -> None:
        """
        Attach terms to an item, creating missing terms.

        Args:
            item_id: Target item
            taxonomy: ``category``, ``post_tag`` or any custom taxonomy name
            terms: Term names
            append: Keep existing assignments when True, replace them otherwise
        """
        pass

    @abstractmethod
    def find_asset_by_source_path(self, source_path: str) -> Optional[MediaAsset]:
        """Return the asset whose recorded source path equals ``source_path``."""
        pass

    @abstractmethod
    def create_asset(self, data: bytes, filename: str, source_path: Optional[str] = None) -> MediaAsset:
        """Store a binary asset, recording ``source_path`` as provenance when given."""
        pass

    @abstractmethod
    def get_asset(self, asset_id: int) -> Optional[MediaAsset]:
        pass

    @abstractmethod
    def set_featured_asset(self, item_id: int, asset_id: int) -> None:
        pass

    @abstractmethod
    def find_item_by_slug(self, slug: str) -> Optional[ContentItem]:
        """Return any item, in any status, whose slug equals ``slug``."""
        pass

    @abstractmethod
    def find_author(self, name: str) -> Optional[int]:
        """Resolve an author by login, slug or display name."""
        pass

    @abstractmethod
    def get_author_name(self, author_id: Optional[int]) -> str:
        """Display name for an author id, or an empty string."""
        pass

    @abstractmethod
    def set_sticky(self, item_id: int, sticky: bool) -> None:
        pass

    def get_ancestors(self, item: ContentItem) -> List[ContentItem]:
        """
        Walk parent references from ``item`` to the root.

        Stops on missing parents and on cycles.

        Returns:
            Ancestors ordered root first
        """
        ancestors: List[ContentItem] = []
        seen = {item.id}
        parent_id = item.parent_id

        while parent_id and parent_id not in seen:
            seen.add(parent_id)
            parent = self.get_item(parent_id)
            if parent is None:
                break
            ancestors.append(parent)
            parent_id = parent.parent_id

        ancestors.reverse()
        return ancestors


__all__ = ['ContentRepository']
