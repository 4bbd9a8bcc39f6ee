"""Destinations an export archive can be streamed to."""

import logging
import os
import shutil
import sys
from abc import ABC, abstractmethod
from typing import BinaryIO, Optional

logger = logging.getLogger('posts_markdown_sync.exporters.streamers')


class ArchiveStreamer(ABC):
    """Delivers a finished archive to the operator."""

    @abstractmethod
    def stream(self, archive_path: str, download_name: str) -> str:
        """
        Deliver the archive.

        Args:
            archive_path: Temporary archive file; the caller deletes it afterwards
            download_name: Suggested file name for the download

        Returns:
            Description of where the archive went
        """
        pass


class DirectoryStreamer(ArchiveStreamer):
    """Copies the archive into an output directory."""

    def __init__(self, output_directory: str, logger: logging.Logger = None):
        self.output_directory = output_directory
        self.logger = logger or logging.getLogger('posts_markdown_sync.exporters.streamers')

    def stream(self, archive_path: str, download_name: str) -> str:
        os.makedirs(self.output_directory, exist_ok=True)
        destination = os.path.join(self.output_directory, download_name)
        shutil.copyfile(archive_path, destination)
        self.logger.info(f"Archive written to {destination}")
        return destination


class StdoutStreamer(ArchiveStreamer):
    """Writes the raw archive bytes to standard output."""

    def __init__(self, output: Optional[BinaryIO] = None):
        self.output = output

    def stream(self, archive_path: str, download_name: str) -> str:
        output = self.output or sys.stdout.buffer
        with open(archive_path, 'rb') as f:
            shutil.copyfileobj(f, output)
        output.flush()
        return '<stdout>'


__all__ = ['ArchiveStreamer', 'DirectoryStreamer', 'StdoutStreamer']
