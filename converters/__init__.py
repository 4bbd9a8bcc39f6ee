"""Converters between stored post markup and Markdown documents."""

import logging

from .front_matter import FrontMatterCodec, ParsedDocument
from .html_cleaner import HtmlCleaner
from .html_renderer import HtmlRenderer, InlineTokenizer
from .markdown_converter import MarkdownConverter
from .media_paths import normalize_media_path

logger = logging.getLogger('posts_markdown_sync.converters')


def html_to_markdown(html, config=None, logger=None):
    """
    Convenience function to convert post markup to a Markdown body.

    Example:
        >>> from converters import html_to_markdown
        >>> html_to_markdown('<p>Hello <strong>world</strong></p>')
        'Hello **world**'
    """
    if logger is None:
        logger = logging.getLogger('posts_markdown_sync.converters')
    return MarkdownConverter(logger=logger, config=config).convert(html)


def markdown_to_html(markdown, media_map=None, logger=None):
    """Convenience function to render a Markdown body to post markup."""
    if logger is None:
        logger = logging.getLogger('posts_markdown_sync.converters')
    return HtmlRenderer(logger=logger).render(markdown, media_map)


__all__ = [
    'html_to_markdown',
    'markdown_to_html',
    'MarkdownConverter',
    'HtmlRenderer',
    'InlineTokenizer',
    'HtmlCleaner',
    'FrontMatterCodec',
    'ParsedDocument',
    'normalize_media_path'
]
