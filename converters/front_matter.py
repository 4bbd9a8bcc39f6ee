"""Front-matter codec for Markdown documents.

A document is a ``---`` delimited block of ``key: value`` lines followed by
a blank line and the Markdown body. Values are emitted and read with PyYAML:
strings are always written as single-line double-quoted scalars, so a value
can never form a delimiter line of its own.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

import yaml

logger = logging.getLogger('posts_markdown_sync.converters.frontmatter')

DELIMITER = '---'

FIELD_ORDER = (
    'title', 'date', 'status', 'slug', 'permalink', 'id', 'author',
    'categories', 'tags', 'taxonomy', 'custom_fields', 'excerpt',
    'featured_image', 'folder_path', 'menu_order', 'comment_status',
    'page_template', 'stick_post', 'meta_description', 'meta_keywords'
)

# Written without quotes when the value is a plain token.
BARE_FIELDS = frozenset({'date', 'permalink', 'id', 'featured_image', 'menu_order'})

KEY_NORMALIZE_RE = re.compile(r'[^a-z0-9_]+')
TAG_RE = re.compile(r'<[^>]+>')
BARE_VALUE_RE = re.compile(r'^[^\s"\'\[\]#,&*!|>%@`{}-][^\s"#]*(?: [^\s"#]+)*$')
BLOCK_ITEM_RE = re.compile(r'^\s*-(?:\s+(.*))?$')


class _StringLoader(yaml.SafeLoader):
    """SafeLoader that keeps every plain scalar as a string."""


# No implicit typing: ``yes``, ``42`` and ``2024-01-02`` stay text for the validator.
_StringLoader.yaml_implicit_resolvers = {}


def dump_value(value: Any) -> str:
    """Render a string or list of strings as one line of double-quoted flow YAML."""
    text = yaml.safe_dump(
        value,
        default_style='"',
        default_flow_style=True,
        allow_unicode=True,
        width=float('inf')
    ).rstrip('\n')
    if text.endswith('\n...'):
        text = text[:-len('\n...')]
    return text


def load_value(raw: str, allow_list: bool = True) -> Any:
    """
    Decode one front-matter value.

    Returns a string, or a list of strings for a ``[...]`` flow sequence.
    Anything PyYAML rejects, or decodes to another shape, is returned as the
    raw text.
    """
    raw = raw.strip()
    if not raw:
        return ''
    try:
        loaded = yaml.load(raw, Loader=_StringLoader)
    except yaml.YAMLError:
        return raw

    if isinstance(loaded, str):
        return loaded
    if isinstance(loaded, list) and allow_list and raw.startswith('['):
        return [item for item in loaded if isinstance(item, str) and item]
    if loaded is None:
        return ''
    return raw


@dataclass
class ParsedDocument:
    """Result of splitting a document into metadata and body."""

    meta: Dict[str, Any] = field(default_factory=dict)
    body: str = ''
    has_front_matter: bool = False


def normalize_key(key: str) -> str:
    """Lowercase a key and collapse runs of non-identifier characters to ``_``."""
    return KEY_NORMALIZE_RE.sub('_', str(key).strip().lower()).strip('_')


def strip_tags(value: Any) -> str:
    """Remove markup tags and surrounding whitespace."""
    if value is None:
        return ''
    return TAG_RE.sub('', str(value)).strip()


def clean_list(values: Iterable[Any]) -> List[str]:
    """Strip markup, trim, drop empties and deduplicate while keeping order."""
    cleaned: List[str] = []
    seen = set()
    for value in values or []:
        if value is None:
            continue
        text = strip_tags(value)
        if not text or text in seen:
            continue
        seen.add(text)
        cleaned.append(text)
    return cleaned


class FrontMatterCodec:
    """Serializes and parses document front matter."""

    def __init__(self, list_style: str = 'inline', logger: logging.Logger = None):
        """
        Initialize codec.

        Args:
            list_style: ``inline`` for ``["a", "b"]`` or ``block`` for indented items
            logger: Optional logger instance
        """
        if list_style not in ('inline', 'block'):
            raise ValueError("list_style must be 'inline' or 'block'")
        self.list_style = list_style
        self.logger = logger or logging.getLogger('posts_markdown_sync.converters.frontmatter')

    def serialize(self, meta: Mapping[str, Any], body: str = '') -> str:
        """
        Render front matter and body as one document.

        Known fields are written in ``FIELD_ORDER``; other keys follow in
        insertion order. ``None`` values are omitted.

        Args:
            meta: Field name to value mapping
            body: Markdown body

        Returns:
            Complete document text ending with a newline
        """
        ordered_keys = [key for key in FIELD_ORDER if key in meta]
        ordered_keys += [key for key in meta if key not in FIELD_ORDER]

        lines = [DELIMITER]
        for raw_key in ordered_keys:
            value = meta[raw_key]
            if value is None:
                continue
            key = normalize_key(raw_key)
            if not key:
                raise ValueError(f"Front matter key {raw_key!r} has no usable characters")
            lines.extend(self._render_field(key, value))
        lines.append(DELIMITER)

        return '\n'.join(lines) + '\n\n' + (body or '').strip('\n') + '\n'

    def _render_field(self, key: str, value: Any) -> List[str]:
        if isinstance(value, (list, tuple, set)):
            items = [_fold_cr(item) for item in clean_list(value)]
            if not items:
                return [f'{key}: []']
            if self.list_style == 'block':
                return [f'{key}:'] + [f'  - {dump_value(item)}' for item in items]
            return [f'{key}: {dump_value(items)}']

        return [f'{key}: {self._render_scalar(key, value)}']

    @staticmethod
    def _render_scalar(key: str, value: Any) -> str:
        if isinstance(value, bool):
            return 'yes' if value else 'no'
        if isinstance(value, int):
            return str(value)
        if isinstance(value, datetime):
            if value.time() == datetime.min.time():
                return value.strftime('%Y-%m-%d')
            return value.strftime('%Y-%m-%d %H:%M:%S')
        if isinstance(value, date):
            return value.isoformat()

        text = _fold_cr(value)
        if key in BARE_FIELDS and BARE_VALUE_RE.match(text):
            return text
        return dump_value(text)

    def parse(self, text: str) -> ParsedDocument:
        """
        Split a document into parsed metadata and body.

        Lines without a colon are skipped. A value written as ``[...]`` or as
        an indented block of ``- item`` lines becomes a list. Text without a
        leading delimiter line has no front matter and is returned as body.

        Args:
            text: Full document text

        Returns:
            ParsedDocument with normalized keys
        """
        text = (text or '').replace('\r\n', '\n').replace('\r', '\n')
        if text.startswith('\ufeff'):
            text = text[1:]

        lines = text.split('\n')
        if not lines or lines[0].strip() != DELIMITER:
            return ParsedDocument(meta={}, body=text.strip('\n'), has_front_matter=False)

        closing = None
        for index in range(1, len(lines)):
            if lines[index].strip() == DELIMITER:
                closing = index
                break

        if closing is None:
            self.logger.debug("Opening front matter delimiter has no closing line")
            return ParsedDocument(meta={}, body=text.strip('\n'), has_front_matter=False)

        meta = self._parse_lines(lines[1:closing])
        body = '\n'.join(lines[closing + 1:]).strip('\n')
        return ParsedDocument(meta=meta, body=body, has_front_matter=True)

    def _parse_lines(self, lines: List[str]) -> Dict[str, Any]:
        meta: Dict[str, Any] = {}
        list_key: Optional[str] = None

        for line in lines:
            if not line.strip():
                continue

            item = BLOCK_ITEM_RE.match(line)
            if item and list_key is not None:
                current = meta.get(list_key)
                if not isinstance(current, list):
                    current = []
                    meta[list_key] = current
                value = load_value(item.group(1) or '', allow_list=False)
                if value:
                    current.append(value)
                continue

            if ':' not in line:
                self.logger.debug(f"Skipping front matter line without a colon: {line!r}")
                list_key = None
                continue

            raw_key, raw_value = line.split(':', 1)
            key = normalize_key(raw_key)
            if not key:
                list_key = None
                continue

            if not raw_value.strip():
                meta[key] = ''
                list_key = key
                continue

            list_key = None
            meta[key] = load_value(raw_value)

        return meta


def _fold_cr(value: Any) -> str:
    return str(value).replace('\r\n', ' ').replace('\r', ' ')


__all__ = [
    'DELIMITER',
    'FIELD_ORDER',
    'FrontMatterCodec',
    'ParsedDocument',
    'normalize_key',
    'dump_value',
    'load_value',
    'strip_tags',
    'clean_list'
]
