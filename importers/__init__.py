"""Markdown import package.

Package Structure:
- markdown_importer: Imports ``.md`` documents and ``.zip`` archives
- front_matter_validator: Re-sanitizes parsed front matter
- media_resolver: Uploads or reuses ``_images/`` assets and featured images

Configuration Referenced:
- import.default_author_id: Author used when ``author`` is missing or unknown
- import.link_parents: Rebuild parent links from archive folders
- import.progress_bars: Show tqdm progress while importing
"""

from .front_matter_validator import validate_front_matter
from .markdown_importer import MarkdownImporter
from .media_resolver import MediaResolver

__all__ = [
    'MarkdownImporter',
    'MediaResolver',
    'validate_front_matter'
]
