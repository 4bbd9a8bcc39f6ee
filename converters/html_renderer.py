"""Renderer from Markdown document bodies to post markup.

Block structure is handled by a single-pass line state machine; inline
markup by ``InlineTokenizer``, which splits a line into code spans, images,
links and plain text before emphasis is applied. Code span contents and
URLs are therefore never re-parsed as emphasis.
"""

import html
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .media_paths import lookup_media

logger = logging.getLogger('posts_markdown_sync.converters.htmlrenderer')


class BlockState(Enum):
    """Open block while scanning Markdown lines."""
    NONE = "none"
    PARAGRAPH = "paragraph"
    CODE_BLOCK = "code_block"
    LIST = "list"
    BLOCKQUOTE = "blockquote"


FENCE_RE = re.compile(r'^```\s*([\w+#.-]*)\s*$')
HEADING_RE = re.compile(r'^(#{1,6}) +(.*?)(?: +#+)?$')
RULE_RE = re.compile(r'^(?:-{3}|\*{3})$')
LIST_ITEM_RE = re.compile(r'^- (.*)$')

IMAGE_RE = re.compile(r'!\[([^\]]*)\]\(\s*<?([^)\s>]+)>?(?:\s+"([^"]*)")?\s*\)')
LINK_RE = re.compile(r'\[([^\]]+)\]\(\s*<?([^)\s>]+)>?(?:\s+"([^"]*)")?\s*\)')
BOLD_RE = re.compile(r'\*\*(?=\S)(.+?)(?<=\S)\*\*')
ITALIC_RE = re.compile(r'(?<![*\w])\*(?=[^\s*])(.+?)(?<=[^\s*])\*(?![*\w])')
PLACEHOLDER_RE = re.compile(r'\x00(\d+)\x00')


@dataclass
class InlineToken:
    """A piece of an inline run: ``text``, ``code``, ``image`` or ``link``."""

    kind: str
    text: str
    target: str = ''
    title: str = ''


class InlineTokenizer:
    """Splits an inline run into atomic tokens in precedence order.

    Code spans win over everything, then images, then links; the rest is
    plain text on which emphasis is resolved later.
    """

    def tokenize(self, text: str) -> List[InlineToken]:
        tokens: List[InlineToken] = []
        buffer: List[str] = []
        position = 0
        length = len(text)

        def flush_text():
            if buffer:
                tokens.append(InlineToken('text', ''.join(buffer)))
                buffer.clear()

        while position < length:
            char = text[position]

            if char == '`':
                closing = text.find('`', position + 1)
                if closing > position + 1:
                    flush_text()
                    tokens.append(InlineToken('code', text[position + 1:closing]))
                    position = closing + 1
                    continue

            if char == '!' and text.startswith('![', position):
                match = IMAGE_RE.match(text, position)
                if match:
                    flush_text()
                    tokens.append(InlineToken('image', match.group(1), match.group(2), match.group(3) or ''))
                    position = match.end()
                    continue

            if char == '[':
                match = LINK_RE.match(text, position)
                if match:
                    flush_text()
                    tokens.append(InlineToken('link', match.group(1), match.group(2), match.group(3) or ''))
                    position = match.end()
                    continue

            buffer.append(char)
            position += 1

        flush_text()
        return tokens


@dataclass
class _BlockBuffer:
    state: BlockState = BlockState.NONE
    paragraph: List[Tuple[str, bool]] = field(default_factory=list)
    items: List[str] = field(default_factory=list)
    quote: List[List[Tuple[str, bool]]] = field(default_factory=list)
    code: List[str] = field(default_factory=list)
    language: str = ''


class HtmlRenderer:
    """Renders the Markdown dialect produced by ``MarkdownConverter`` back to markup."""

    def __init__(self, logger: logging.Logger = None):
        self.logger = logger or logging.getLogger('posts_markdown_sync.converters.htmlrenderer')
        self.tokenizer = InlineTokenizer()

    def render(self, markdown: str, media_map: Optional[Dict[str, Any]] = None) -> str:
        """
        Render a Markdown body to markup.

        Never raises for string input; empty input renders as an empty string.

        Args:
            markdown: Markdown body (front matter already removed)
            media_map: Normalized media path to asset mapping for ``_images/`` references

        Returns:
            Markup with one block element per line
        """
        if not markdown:
            return ''

        text = str(markdown).replace('\x00', '').replace('\r\n', '\n').replace('\r', '\n')
        output: List[str] = []
        block = _BlockBuffer()

        for raw_line in text.split('\n'):
            line = raw_line.strip()

            if block.state == BlockState.CODE_BLOCK:
                if line.startswith('```'):
                    self._flush(block, output, media_map)
                else:
                    block.code.append(raw_line)
                continue

            fence = FENCE_RE.match(line)
            if fence:
                self._flush(block, output, media_map)
                block.state = BlockState.CODE_BLOCK
                block.language = fence.group(1)
                continue

            if not line:
                self._flush(block, output, media_map)
                continue

            heading = HEADING_RE.match(line)
            if heading:
                self._flush(block, output, media_map)
                level = len(heading.group(1))
                content = self.render_inline(heading.group(2), media_map)
                output.append(f'<h{level}>{content}</h{level}>')
                continue

            if RULE_RE.match(line):
                self._flush(block, output, media_map)
                output.append('<hr />')
                continue

            if line == '>' or line.startswith('> '):
                if block.state != BlockState.BLOCKQUOTE:
                    self._flush(block, output, media_map)
                    block.state = BlockState.BLOCKQUOTE
                    block.quote = [[]]
                if line == '>':
                    if block.quote[-1]:
                        block.quote.append([])
                else:
                    content = raw_line.lstrip()[2:]
                    block.quote[-1].append((content.strip(), content.endswith('  ')))
                continue

            item = LIST_ITEM_RE.match(line)
            if item:
                if block.state != BlockState.LIST:
                    self._flush(block, output, media_map)
                    block.state = BlockState.LIST
                block.items.append(item.group(1).strip())
                continue

            if block.state != BlockState.PARAGRAPH:
                self._flush(block, output, media_map)
                block.state = BlockState.PARAGRAPH
            block.paragraph.append((line, raw_line.endswith('  ')))

        if block.state == BlockState.CODE_BLOCK:
            self.logger.debug("Unterminated code fence closed at end of document")
        self._flush(block, output, media_map)

        return '\n'.join(output)

    def _flush(self, block: _BlockBuffer, output: List[str], media_map) -> None:
        """Close the open block, if any, and append its markup to ``output``."""
        if block.state == BlockState.PARAGRAPH and block.paragraph:
            output.append(f'<p>{self._render_lines(block.paragraph, media_map)}</p>')
        elif block.state == BlockState.LIST and block.items:
            items = ''.join(f'<li>{self.render_inline(item, media_map)}</li>' for item in block.items)
            output.append(f'<ul>{items}</ul>')
        elif block.state == BlockState.BLOCKQUOTE:
            paragraphs = [
                f'<p>{self._render_lines(lines, media_map)}</p>'
                for lines in block.quote if lines
            ]
            if paragraphs:
                output.append(f"<blockquote>{''.join(paragraphs)}</blockquote>")
        elif block.state == BlockState.CODE_BLOCK:
            code = html.escape('\n'.join(block.code), quote=False)
            class_attr = f' class="language-{html.escape(block.language)}"' if block.language else ''
            output.append(f'<pre><code{class_attr}>{code}</code></pre>')

        block.state = BlockState.NONE
        block.paragraph = []
        block.items = []
        block.quote = []
        block.code = []
        block.language = ''

    def _render_lines(self, lines: List[Tuple[str, bool]], media_map) -> str:
        """Join soft-wrapped lines with spaces and hard-broken ones with ``<br />``."""
        segments = []
        current: List[str] = []
        for index, (content, hard_break) in enumerate(lines):
            current.append(content)
            if hard_break and index < len(lines) - 1:
                segments.append(' '.join(current))
                current = []
        if current:
            segments.append(' '.join(current))
        return '<br />'.join(self.render_inline(segment, media_map) for segment in segments)

    def render_inline(self, text: str, media_map: Optional[Dict[str, Any]] = None) -> str:
        """
        Apply inline transforms: code, bold, italic, image, link.

        Args:
            text: One inline run of Markdown
            media_map: Media mapping used to resolve ``_images/`` references

        Returns:
            Escaped markup for the run
        """
        if not text:
            return ''

        fragments: List[str] = []

        def placeholder(fragment: str) -> str:
            fragments.append(fragment)
            return f'\x00{len(fragments) - 1}\x00'

        pieces = []
        for token in self.tokenizer.tokenize(text.replace('\x00', '')):
            if token.kind == 'code':
                pieces.append(placeholder(f'<code>{html.escape(token.text, quote=False)}</code>'))
            elif token.kind == 'image':
                pieces.append(placeholder(self._render_image(token, media_map)))
            elif token.kind == 'link':
                pieces.append(placeholder(self._render_link(token, media_map)))
            else:
                pieces.append(html.escape(token.text, quote=False))

        rendered = self._apply_emphasis(''.join(pieces))
        while PLACEHOLDER_RE.search(rendered):
            rendered = PLACEHOLDER_RE.sub(lambda m: fragments[int(m.group(1))], rendered)
        return rendered

    @staticmethod
    def _apply_emphasis(text: str) -> str:
        text = BOLD_RE.sub(r'<strong>\1</strong>', text)
        return ITALIC_RE.sub(r'<em>\1</em>', text)

    def _render_image(self, token: InlineToken, media_map) -> str:
        src = html.escape(self._resolve(token.target, media_map), quote=True)
        alt = html.escape(token.text, quote=True)
        image = f'<img src="{src}" alt="{alt}" />'
        if token.title:
            caption = html.escape(token.title, quote=False)
            return f'<figure class="md-image">{image}<figcaption>{caption}</figcaption></figure>'
        return image

    def _render_link(self, token: InlineToken, media_map) -> str:
        href = html.escape(self._resolve(token.target, media_map), quote=True)
        label = self.render_inline(token.text, media_map)
        return f'<a href="{href}">{label}</a>'

    @staticmethod
    def _resolve(reference: str, media_map) -> str:
        asset = lookup_media(media_map, reference)
        if asset is None:
            return reference
        if isinstance(asset, dict):
            return asset.get('url') or reference
        return asset.url or reference


__all__ = ['HtmlRenderer', 'InlineTokenizer', 'InlineToken', 'BlockState']
