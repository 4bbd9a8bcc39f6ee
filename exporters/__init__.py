"""Markdown export package.

Package Structure:
- archive_exporter: Runs an export from filter criteria to a ZIP archive
- document_builder: Renders one item as front matter plus Markdown body
- path_builder: Derives unique hierarchical archive paths
- streamers: Destinations for the finished archive

Configuration Referenced:
- export.output_directory: Where ``DirectoryStreamer`` writes archives
- export.title_heading: Prepend ``# Title`` to each body
- export.list_style: ``inline`` or ``block`` front matter lists
"""

from .archive_exporter import MarkdownExporter, build_item_query
from .document_builder import DocumentBuilder
from .path_builder import ExportPathBuilder, sanitize_segment
from .streamers import ArchiveStreamer, DirectoryStreamer, StdoutStreamer

__all__ = [
    'MarkdownExporter',
    'build_item_query',
    'DocumentBuilder',
    'ExportPathBuilder',
    'sanitize_segment',
    'ArchiveStreamer',
    'DirectoryStreamer',
    'StdoutStreamer'
]
