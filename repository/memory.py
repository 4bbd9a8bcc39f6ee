"""In-memory content repository with optional JSON file persistence."""

import json
import logging
import os
import re
from dataclasses import fields as dataclass_fields
from datetime import datetime
from typing import Any, Dict, List, Optional

from errors import PersistenceError
from models import (
    ContentItem,
    ItemQuery,
    ItemStatus,
    MediaAsset,
    SOURCE_PATH_KEY,
)

from .base import ContentRepository

ITEM_FIELDS = frozenset(f.name for f in dataclass_fields(ContentItem)) - {'id'}
SLUG_RE = re.compile(r'[^a-z0-9]+')


class InMemoryRepository(ContentRepository):
    """Keeps items, terms, authors and assets in dictionaries.

    ``save``/``load`` persist everything except asset bytes, which are
    written to ``media_directory`` when one is configured.
    """

    def __init__(
        self,
        base_url: str = '',
        media_directory: Optional[str] = None,
        logger: logging.Logger = None
    ):
        super().__init__(logger)
        self.base_url = base_url.rstrip('/')
        self.media_directory = media_directory
        self.items: Dict[int, ContentItem] = {}
        self.assets: Dict[int, MediaAsset] = {}
        self.asset_meta: Dict[int, Dict[str, Any]] = {}
        self.blobs: Dict[int, bytes] = {}
        self.authors: Dict[int, Dict[str, str]] = {}
        self.terms: Dict[str, List[str]] = {}
        self._next_item_id = 1
        self._next_asset_id = 1

    def add_author(self, author_id: int, login: str, display_name: str = '', slug: str = '') -> None:
        self.authors[author_id] = {
            'login': login,
            'display_name': display_name or login,
            'slug': slug or SLUG_RE.sub('-', login.lower()).strip('-')
        }

    def add_item(self, item: ContentItem) -> ContentItem:
        """Insert a fully built item, keeping its id."""
        if not item.link and item.slug:
            item.link = self._permalink(item.slug)
        self.items[item.id] = item
        self._next_item_id = max(self._next_item_id, item.id + 1)
        return item

    def query_items(self, query: ItemQuery) -> List[ContentItem]:
        matches = [item for item in self.items.values() if query.matches(item)]
        return sorted(matches, key=lambda item: (item.date or datetime.min, item.id))

    def get_item(self, item_id: int) -> Optional[ContentItem]:
        try:
            return self.items.get(int(item_id))
        except (TypeError, ValueError):
            return None

    def create_item(self, fields: Dict[str, Any]) -> int:
        self._check_fields(fields)
        item = ContentItem(id=self._next_item_id)
        self._apply_fields(item, fields)
        if not item.slug:
            item.slug = SLUG_RE.sub('-', item.title.lower()).strip('-')
        item.link = self._permalink(item.slug)
        item.modified = datetime.utcnow().replace(microsecond=0)
        if item.date is None:
            item.date = item.modified

        self.items[item.id] = item
        self._next_item_id += 1
        self.logger.debug(f"Created item {item.id} ({item.title!r})")
        return item.id

    def update_item(self, item_id: int, fields: Dict[str, Any]) -> None:
        item = self._require_item(item_id)
        self._check_fields(fields)
        self._apply_fields(item, fields)
        if 'slug' in fields:
            item.link = self._permalink(item.slug)
        item.modified = datetime.utcnow().replace(microsecond=0)
        self.logger.debug(f"Updated item {item.id}")

    def set_item_meta(self, item_id: int, key: str, value: Any) -> None:
        self._require_item(item_id).meta[key] = value

    def get_item_meta(self, item_id: int, key: str) -> Any:
        item = self.get_item(item_id)
        return item.meta.get(key) if item else None

    def assign_taxonomy(self, item_id: int, taxonomy: str, terms: List[str], append: bool) -> None:
        item = self._require_item(item_id)
        known = self.terms.setdefault(taxonomy, [])
        for term in terms:
            if term not in known:
                known.append(term)

        if taxonomy == 'category':
            item.categories = self._merge(item.categories, terms, append)
        elif taxonomy == 'post_tag':
            item.tags = self._merge(item.tags, terms, append)
        else:
            prefix = f'{taxonomy}:'
            pairs = [f'{prefix}{term}' for term in terms]
            kept = item.taxonomy if append else [
                pair for pair in item.taxonomy if not pair.startswith(prefix)
            ]
            item.taxonomy = self._merge(kept, pairs, True)

    def find_asset_by_source_path(self, source_path: str) -> Optional[MediaAsset]:
        for asset_id, meta in self.asset_meta.items():
            if meta.get(SOURCE_PATH_KEY) == source_path:
                return self.assets[asset_id]
        return None

    def create_asset(self, data: bytes, filename: str, source_path: Optional[str] = None) -> MediaAsset:
        if not filename:
            raise PersistenceError("Asset filename is required")

        asset_id = self._next_asset_id
        self._next_asset_id += 1

        url = f"{self.base_url}/media/{asset_id}/{filename}"
        if self.media_directory:
            os.makedirs(self.media_directory, exist_ok=True)
            target = os.path.join(self.media_directory, f'{asset_id}-{filename}')
            try:
                with open(target, 'wb') as f:
                    f.write(data)
            except OSError as e:
                raise PersistenceError(f"Could not store asset {filename}: {e}", filename=filename)

        asset = MediaAsset(id=asset_id, url=url, filename=filename, source_path=source_path)
        self.assets[asset_id] = asset
        self.blobs[asset_id] = data
        self.asset_meta[asset_id] = {SOURCE_PATH_KEY: source_path} if source_path else {}
        return asset

    def get_asset(self, asset_id: int) -> Optional[MediaAsset]:
        return self.assets.get(asset_id)

    def set_featured_asset(self, item_id: int, asset_id: int) -> None:
        if asset_id not in self.assets:
            raise PersistenceError(f"Unknown asset {asset_id}")
        self._require_item(item_id).featured_asset_id = asset_id

    def find_item_by_slug(self, slug: str) -> Optional[ContentItem]:
        for item in self.items.values():
            if item.slug == slug:
                return item
        return None

    def find_author(self, name: str) -> Optional[int]:
        if not name:
            return None
        wanted = str(name).strip().lower()
        for author_id, author in self.authors.items():
            if wanted in (author['login'].lower(), author['slug'].lower(),
                          author['display_name'].lower()):
                return author_id
        return None

    def get_author_name(self, author_id: Optional[int]) -> str:
        author = self.authors.get(author_id) if author_id is not None else None
        return author['display_name'] if author else ''

    def set_sticky(self, item_id: int, sticky: bool) -> None:
        self._require_item(item_id).sticky = bool(sticky)

    def save(self, path: str) -> None:
        """Write items, authors, terms and asset records to a JSON file."""
        payload = {
            'base_url': self.base_url,
            'items': [item.to_dict() for item in self.items.values()],
            'assets': [
                dict(asset.to_dict(), meta=self.asset_meta.get(asset.id, {}))
                for asset in self.assets.values()
            ],
            'authors': [dict(author, id=author_id) for author_id, author in self.authors.items()],
            'terms': self.terms,
        }
        directory = os.path.dirname(os.path.abspath(path))
        os.makedirs(directory, exist_ok=True)
        try:
            with open(path, 'w', encoding='utf-8') as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
        except OSError as e:
            raise PersistenceError(f"Could not save repository: {e}", filename=path)

    @classmethod
    def load(cls, path: str, media_directory: Optional[str] = None,
             logger: logging.Logger = None) -> 'InMemoryRepository':
        """Load a repository saved with ``save``; a missing file yields an empty repository."""
        if not os.path.exists(path):
            return cls(media_directory=media_directory, logger=logger)

        with open(path, 'r', encoding='utf-8') as f:
            payload = json.load(f)

        repository = cls(base_url=payload.get('base_url', ''),
                         media_directory=media_directory, logger=logger)
        for data in payload.get('items', []):
            repository.add_item(ContentItem.from_dict(data))
        for data in payload.get('assets', []):
            asset = MediaAsset(
                id=int(data['id']),
                url=data['url'],
                filename=data.get('filename', ''),
                source_path=data.get('source_path')
            )
            repository.assets[asset.id] = asset
            repository.asset_meta[asset.id] = dict(data.get('meta') or {})
            repository._next_asset_id = max(repository._next_asset_id, asset.id + 1)
        for data in payload.get('authors', []):
            repository.add_author(int(data['id']), data['login'],
                                  data.get('display_name', ''), data.get('slug', ''))
        repository.terms = {key: list(values) for key, values in payload.get('terms', {}).items()}
        return repository

    def _require_item(self, item_id: int) -> ContentItem:
        item = self.get_item(item_id)
        if item is None:
            raise PersistenceError(f"Item {item_id} does not exist")
        return item

    @staticmethod
    def _check_fields(fields: Dict[str, Any]) -> None:
        unknown = set(fields) - ITEM_FIELDS
        if unknown:
            raise PersistenceError(f"Unknown item fields: {', '.join(sorted(unknown))}")
        if 'status' in fields and ItemStatus.parse(fields['status']) is None:
            raise PersistenceError(f"Invalid status: {fields['status']}")

    @staticmethod
    def _apply_fields(item: ContentItem, fields: Dict[str, Any]) -> None:
        for key, value in fields.items():
            if key == 'status':
                value = ItemStatus.parse(value).value
            setattr(item, key, value)

    @staticmethod
    def _merge(current: List[str], terms: List[str], append: bool) -> List[str]:
        merged = list(current) if append else []
        for term in terms:
            if term not in merged:
                merged.append(term)
        return merged

    def _permalink(self, slug: str) -> Optional[str]:
        if not slug:
            return None
        return f"{self.base_url}/{slug}/" if self.base_url else f"/{slug}/"


__all__ = ['InMemoryRepository']
