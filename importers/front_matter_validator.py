"""Re-sanitizes parsed front matter before it is applied to an item.

Validation never raises: a rejected value is reported as a run log warning
and left out of the result.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from dateutil import parser as date_parser

from converters.front_matter import clean_list, strip_tags
from exporters.path_builder import sanitize_segment
from logger import RunLog
from models import ItemStatus

logger = logging.getLogger('posts_markdown_sync.importers.validator')

ALLOWED_COMMENT_STATUSES = ('open', 'closed')
ALLOWED_STICKY_FLAGS = ('yes', 'no')

# Legacy key -> canonical key; the canonical key wins when both are present.
FIELD_ALIASES = {
    'post_status': 'status',
    'post_date': 'date',
    'post_excerpt': 'excerpt',
}
DESCRIPTION_ALIASES = ('meta_description', 'metadata')
KEYWORD_ALIASES = ('meta_keywords', 'keyword', 'keywords')

RECOGNIZED_KEYS = frozenset({
    'title', 'date', 'status', 'slug', 'permalink', 'id', 'author', 'categories',
    'tags', 'taxonomy', 'custom_fields', 'excerpt', 'featured_image', 'folder_path',
    'menu_order', 'comment_status', 'page_template', 'stick_post', 'skip_file',
    *FIELD_ALIASES, *DESCRIPTION_ALIASES, *KEYWORD_ALIASES
})


def _as_list(value: Any) -> List[Any]:
    if value is None or value == '':
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _parse_date(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = date_parser.parse(str(value))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _parse_int(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError("boolean is not a number")
    return int(str(value).strip())


def validate_front_matter(meta: Dict[str, Any], filename: str,
                          run_log: Optional[RunLog] = None) -> Dict[str, Any]:
    """
    Validate parsed front matter.

    Args:
        meta: Normalized key/value pairs from ``FrontMatterCodec.parse``
        filename: Source document name, used in warnings
        run_log: Collector receiving one warning per rejected value

    Returns:
        Canonical fields: ``date`` as datetime, ``id`` and ``menu_order`` as
        int, lists deduplicated, SEO aliases folded into ``meta_description``
        and ``meta_keywords``
    """
    meta = dict(meta or {})

    def warn(message: str) -> None:
        if run_log is not None:
            run_log.warning(message)
        else:
            logger.warning(message)

    for alias, canonical in FIELD_ALIASES.items():
        if meta.get(alias) not in (None, '') and meta.get(canonical) in (None, ''):
            meta[canonical] = meta[alias]

    validated: Dict[str, Any] = {}

    title = strip_tags(meta.get('title'))
    if title:
        validated['title'] = title

    slug = sanitize_segment(meta.get('slug') or '')
    if slug:
        validated['slug'] = slug

    if meta.get('status'):
        status = ItemStatus.parse(meta['status'])
        if status is not None:
            validated['status'] = status.value
        else:
            warn(f"Invalid status in front matter for {filename}: {meta['status']}")

    if meta.get('date'):
        try:
            validated['date'] = _parse_date(meta['date'])
        except (ValueError, OverflowError):
            warn(f"Invalid date in front matter for {filename}: {meta['date']}")

    if meta.get('menu_order') not in (None, ''):
        try:
            validated['menu_order'] = _parse_int(meta['menu_order'])
        except ValueError:
            warn(f"Invalid menu_order in front matter for {filename}: {meta['menu_order']}")

    if meta.get('id') not in (None, ''):
        try:
            item_id = _parse_int(meta['id'])
        except ValueError:
            item_id = 0
        if item_id > 0:
            validated['id'] = item_id
        else:
            warn(f"Invalid id in front matter for {filename}: {meta['id']}")

    author = strip_tags(meta.get('author'))
    if author:
        validated['author'] = author

    excerpt = strip_tags(meta.get('excerpt'))
    if excerpt:
        validated['excerpt'] = excerpt

    if meta.get('comment_status'):
        comment_status = str(meta['comment_status']).strip().lower()
        if comment_status in ALLOWED_COMMENT_STATUSES:
            validated['comment_status'] = comment_status
        else:
            warn(f"Invalid comment_status in front matter for {filename}: {meta['comment_status']}")

    page_template = strip_tags(meta.get('page_template'))
    if page_template:
        validated['page_template'] = page_template

    if meta.get('stick_post'):
        stick = str(meta['stick_post']).strip().lower()
        if stick in ALLOWED_STICKY_FLAGS:
            validated['stick_post'] = stick
        else:
            warn(f"Invalid stick_post in front matter for {filename}: {meta['stick_post']}")

    for list_key in ('categories', 'tags'):
        values = clean_list(_as_list(meta.get(list_key)))
        if values:
            validated[list_key] = values

    for list_key in ('taxonomy', 'custom_fields'):
        entries = []
        for entry in clean_list(_as_list(meta.get(list_key))):
            if ':' not in entry:
                warn(f"Invalid {list_key} format in front matter for {filename}: {entry}")
                continue
            entries.append(entry)
        if entries:
            validated[list_key] = entries

    for key in ('featured_image', 'folder_path'):
        value = str(meta.get(key) or '').strip()
        if value:
            validated[key] = value

    description = next((meta[key] for key in DESCRIPTION_ALIASES if meta.get(key)), None)
    if description:
        validated['meta_description'] = strip_tags(description)

    keywords = next((meta[key] for key in KEYWORD_ALIASES if meta.get(key)), None)
    if keywords:
        if isinstance(keywords, (list, tuple)):
            keywords = ', '.join(clean_list(keywords))
        else:
            keywords = strip_tags(keywords)
        if keywords:
            validated['meta_keywords'] = keywords

    if 'skip_file' in meta:
        validated['skip_file'] = str(meta['skip_file']).strip()

    ignored = sorted(key for key in meta if key not in RECOGNIZED_KEYS)
    if ignored:
        logger.debug(f"Ignoring unrecognized front matter keys in {filename}: {', '.join(ignored)}")

    return validated


__all__ = ['validate_front_matter', 'ALLOWED_COMMENT_STATUSES', 'ALLOWED_STICKY_FLAGS']
