"""Helpers for the ``_images/`` media path convention used inside archives."""

import posixpath
from typing import Any, Dict, Optional
from urllib.parse import unquote

MEDIA_PREFIX = '_images/'
IMAGE_EXTENSIONS = frozenset({'png', 'jpg', 'jpeg', 'gif', 'webp', 'svg'})


def normalize_media_path(path: str) -> str:
    """
    Normalize a media reference so it starts at the ``_images/`` segment.

    ``../_images/a.png``, ``/docs/_images/a.png`` and ``_images\\a.png`` all
    normalize to ``_images/a.png``. References without the segment are
    returned cleaned but otherwise unchanged.

    Args:
        path: Archive entry name or document reference

    Returns:
        Normalized path without a leading separator
    """
    if not path:
        return ''

    cleaned = unquote(str(path).strip()).replace('\\', '/')
    cleaned = cleaned.split('?', 1)[0].split('#', 1)[0]

    marker = cleaned.find(MEDIA_PREFIX)
    if marker != -1:
        cleaned = cleaned[marker:]

    cleaned = posixpath.normpath(cleaned) if cleaned else ''
    if cleaned == '.':
        return ''
    return cleaned.lstrip('/')


def is_media_path(path: str) -> bool:
    return normalize_media_path(path).startswith(MEDIA_PREFIX)


def is_image_path(path: str) -> bool:
    """Check the extension against the supported image types."""
    extension = posixpath.splitext(path or '')[1].lstrip('.').lower()
    return extension in IMAGE_EXTENSIONS


def is_remote_reference(path: str) -> bool:
    lowered = (path or '').strip().lower()
    return lowered.startswith(('http://', 'https://', '//'))


def lookup_media(media_map: Optional[Dict[str, Any]], reference: str) -> Optional[Any]:
    """
    Find the map entry for a document reference.

    The map is keyed with and without a leading ``/``; the raw reference is
    tried first, then its normalized form.
    """
    if not media_map or not reference:
        return None

    for key in (reference, normalize_media_path(reference)):
        if not key:
            continue
        if key in media_map:
            return media_map[key]
        alternate = key[1:] if key.startswith('/') else '/' + key
        if alternate in media_map:
            return media_map[alternate]
    return None


__all__ = [
    'MEDIA_PREFIX',
    'IMAGE_EXTENSIONS',
    'normalize_media_path',
    'is_media_path',
    'is_image_path',
    'is_remote_reference',
    'lookup_media'
]
