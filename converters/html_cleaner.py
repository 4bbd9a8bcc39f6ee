"""HTML cleaner that prepares stored post markup for Markdown conversion."""

import logging
import re

from bs4 import BeautifulSoup, Comment

logger = logging.getLogger('posts_markdown_sync.converters.htmlcleaner')

BLOCK_TAGS = (
    'address', 'article', 'aside', 'blockquote', 'details', 'div', 'dl', 'dd', 'dt',
    'fieldset', 'figcaption', 'figure', 'footer', 'form', 'h[1-6]', 'header', 'hr',
    'li', 'main', 'nav', 'ol', 'p', 'pre', 'section', 'summary', 'table', 'tbody',
    'td', 'tfoot', 'th', 'thead', 'tr', 'ul', 'script', 'style'
)

BLOCK_START_RE = re.compile(r'^<(?:%s)(?:[\s/>]|$)' % '|'.join(BLOCK_TAGS), re.IGNORECASE)
PRE_BLOCK_RE = re.compile(r'<pre[\s>].*?</pre>', re.IGNORECASE | re.DOTALL)
PARAGRAPH_SPLIT_RE = re.compile(r'\n[ \t]*\n')
PLACEHOLDER_RE = re.compile(r'\x02(\d+)\x02')


class HtmlCleaner:
    """Normalizes stored post markup before conversion."""

    def __init__(self, logger: logging.Logger = None):
        self.logger = logger or logging.getLogger('posts_markdown_sync.converters.htmlcleaner')

    def autop(self, html: str) -> str:
        """
        Wrap bare text blocks into paragraphs.

        Post bodies are often stored without ``<p>`` tags, using blank lines
        as paragraph separators and single newlines as line breaks. Chunks
        that already start with a block-level tag are left alone, as is the
        content of ``<pre>`` blocks.

        Args:
            html: Stored post markup

        Returns:
            Markup where every bare text chunk is a ``<p>`` element
        """
        if not html or not html.strip():
            return ''

        html = html.replace('\r\n', '\n').replace('\r', '\n')

        preserved = []

        def stash(match):
            preserved.append(match.group(0))
            return f'\n\n\x02{len(preserved) - 1}\x02\n\n'

        html = PRE_BLOCK_RE.sub(stash, html)

        chunks = []
        for chunk in PARAGRAPH_SPLIT_RE.split(html):
            chunk = chunk.strip()
            if not chunk:
                continue
            if PLACEHOLDER_RE.fullmatch(chunk) or BLOCK_START_RE.match(chunk):
                chunks.append(chunk)
            else:
                lines = [line.strip() for line in chunk.split('\n')]
                chunks.append('<p>' + '<br />\n'.join(lines) + '</p>')

        result = '\n\n'.join(chunks)
        return PLACEHOLDER_RE.sub(lambda m: preserved[int(m.group(1))], result)

    def clean(self, soup: BeautifulSoup) -> BeautifulSoup:
        """
        Drop markup that never carries visible content.

        Args:
            soup: Parsed post markup

        Returns:
            The same soup, cleaned in place
        """
        removed = 0
        for element in soup.find_all(['script', 'style', 'noscript', 'template']):
            element.decompose()
            removed += 1

        for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
            comment.extract()
            removed += 1

        if removed:
            self.logger.debug(f"Removed {removed} non-content nodes")

        return soup


__all__ = ['HtmlCleaner']
