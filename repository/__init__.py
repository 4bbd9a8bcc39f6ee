"""Content repository backends.

- base: ``ContentRepository`` interface used by the export and import pipelines
- memory: dictionary-backed repository persisted as a JSON file
- wordpress_client: WordPress REST API repository
"""

import logging
import os
from typing import Any, Dict

from .base import ContentRepository
from .memory import InMemoryRepository
from .wordpress_client import WordPressRepository


def create_repository(config: Dict[str, Any], logger: logging.Logger = None) -> ContentRepository:
    """
    Build the repository selected by ``repository.type``.

    Args:
        config: Loaded configuration dictionary

    Returns:
        A ``json`` (file-backed in-memory) or ``wordpress`` repository
    """
    repository_config = config.get('repository', {})
    repo_type = repository_config.get('type', 'json')

    if repo_type == 'wordpress':
        return WordPressRepository.from_config(config)
    if repo_type == 'json':
        json_path = repository_config.get('json_path', './content.json')
        media_directory = repository_config.get('media_directory') or os.path.join(
            os.path.dirname(os.path.abspath(json_path)), 'media'
        )
        return InMemoryRepository.load(json_path, media_directory=media_directory, logger=logger)

    raise ValueError(f"Unsupported repository type: {repo_type}")


__all__ = [
    'ContentRepository',
    'InMemoryRepository',
    'WordPressRepository',
    'create_repository'
]
