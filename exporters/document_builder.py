"""Builds the Markdown document for one content item."""

import logging
import re
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup

from converters.front_matter import FrontMatterCodec
from converters.markdown_converter import MarkdownConverter
from models import (
    ContentItem,
    PAGE_TEMPLATE_KEY,
    SEO_DESCRIPTION_KEY,
    SEO_KEYWORD_KEYS,
)
from repository.base import ContentRepository

logger = logging.getLogger('posts_markdown_sync.exporters.document')

WHITESPACE_RE = re.compile(r'\s+')

# Meta keys written as dedicated front matter fields rather than custom_fields.
DEDICATED_META_KEYS = frozenset({SEO_DESCRIPTION_KEY, *SEO_KEYWORD_KEYS})


def plain_text(value: str) -> str:
    """Strip markup and collapse whitespace to single spaces."""
    if not value:
        return ''
    text = BeautifulSoup(value, 'lxml').get_text(' ') if '<' in value else value
    return WHITESPACE_RE.sub(' ', text).strip()


class DocumentBuilder:
    """Renders a ``ContentItem`` as front matter plus a Markdown body."""

    def __init__(
        self,
        repository: ContentRepository,
        codec: FrontMatterCodec = None,
        converter: MarkdownConverter = None,
        title_heading: bool = True,
        logger: logging.Logger = None
    ):
        self.repository = repository
        self.logger = logger or logging.getLogger('posts_markdown_sync.exporters.document')
        self.codec = codec or FrontMatterCodec(logger=self.logger)
        self.converter = converter or MarkdownConverter(logger=self.logger)
        self.title_heading = title_heading

    def front_matter(self, item: ContentItem, folder_path: Optional[str] = None) -> Dict[str, Any]:
        """
        Collect the front matter fields for ``item``.

        Empty values are left out so the document only carries what the
        item actually has.
        """
        meta: Dict[str, Any] = {
            'title': item.title,
            'date': item.date,
            'status': item.status,
            'slug': item.slug or None,
            'permalink': item.link or None,
            'id': item.id,
            'author': self.repository.get_author_name(item.author_id) or None,
            'categories': list(item.categories) or None,
            'tags': list(item.tags) or None,
            'taxonomy': list(item.taxonomy) or None,
            'custom_fields': self._custom_fields(item) or None,
            'excerpt': plain_text(item.excerpt) or None,
            'featured_image': self._featured_image(item),
            'folder_path': folder_path,
            'menu_order': item.menu_order or None,
            'comment_status': item.comment_status or None,
        }

        template = item.meta.get(PAGE_TEMPLATE_KEY)
        if template and template != 'default':
            meta['page_template'] = template
        if item.sticky:
            meta['stick_post'] = True

        description = item.meta.get(SEO_DESCRIPTION_KEY)
        if description:
            meta['meta_description'] = str(description)
        keywords = next((item.meta[key] for key in SEO_KEYWORD_KEYS if item.meta.get(key)), None)
        if keywords:
            meta['meta_keywords'] = str(keywords)

        return meta

    def build(self, item: ContentItem, folder_path: Optional[str] = None) -> str:
        """
        Render the complete document text.

        Args:
            item: Item to render
            folder_path: Archive directory the document is written to

        Returns:
            Front matter, optional ``# Title`` heading and converted body
        """
        body = self.converter.convert(item.body or '')
        if self.title_heading and item.title:
            body = f'# {item.title}\n\n{body}' if body else f'# {item.title}'
        return self.codec.serialize(self.front_matter(item, folder_path), body)

    @staticmethod
    def _custom_fields(item: ContentItem) -> List[str]:
        """``key:value`` entries for public scalar meta values."""
        fields = []
        for key, value in item.meta.items():
            if key.startswith('_') or key in DEDICATED_META_KEYS:
                continue
            if isinstance(value, (dict, list, tuple)) or value is None or value == '':
                continue
            fields.append(f'{key}:{value}')
        return fields

    def _featured_image(self, item: ContentItem) -> Optional[str]:
        if not item.featured_asset_id:
            return None
        asset = self.repository.get_asset(item.featured_asset_id)
        if asset is None:
            self.logger.debug(f"Featured asset {item.featured_asset_id} of item {item.id} not found")
            return None
        return asset.source_path or asset.url or None


__all__ = ['DocumentBuilder', 'plain_text']
