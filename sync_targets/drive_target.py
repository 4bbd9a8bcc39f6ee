"""Google Drive target: multipart uploads with refresh-token recovery."""

import json
import logging
import mimetypes
import posixpath
import re
import uuid
from typing import Any, Dict, Optional
from urllib.parse import quote

import requests

from config_loader import SettingsStore
from errors import RemoteSyncError
from models import FetchedFile

from .base import RemoteTarget

CONTENT_DISPOSITION_RE = re.compile(r'filename="?([^";]+)"?', re.IGNORECASE)

CONTENT_TYPES = {
    '.md': 'text/markdown',
    '.zip': 'application/zip',
}


class DriveTarget(RemoteTarget):
    """Uploads files into a Drive folder and downloads files by id.

    Credentials are read from the ``sync.drive`` settings on every call. A
    static ``token`` wins; otherwise ``client_id``, ``client_secret`` and
    ``refresh_token`` are exchanged for an access token, which is written
    back through the ``SettingsStore``.
    """

    name = 'drive'
    UPLOAD_URL = 'https://www.googleapis.com/upload/drive/v3/files?uploadType=multipart'
    FILES_URL = 'https://www.googleapis.com/drive/v3/files'
    TOKEN_URL = 'https://accounts.google.com/o/oauth2/token'

    def __init__(
        self,
        settings: SettingsStore,
        timeout: int = 30,
        verify_ssl: bool = True,
        session: Optional[requests.Session] = None,
        logger: logging.Logger = None
    ):
        super().__init__(timeout=timeout, verify_ssl=verify_ssl, session=session, logger=logger)
        self.settings = settings

    def _setting(self, key: str) -> str:
        return self.settings.get(f'sync.drive.{key}') or ''

    @property
    def folder_id(self) -> str:
        return self._setting('folder_id')

    def can_refresh(self) -> bool:
        return all(self._setting(key) for key in ('client_id', 'client_secret', 'refresh_token'))

    def is_configured(self) -> bool:
        return bool(self._setting('token')) or self.can_refresh()

    def access_token(self) -> str:
        """
        Return a usable bearer token.

        Raises:
            RemoteSyncError: When no credentials are stored or the refresh fails
        """
        token = self._setting('token')
        if token:
            return token

        if not self.can_refresh():
            raise RemoteSyncError("Drive token is missing and refresh credentials are incomplete",
                                  target=self.name)

        response = self._request('POST', self.TOKEN_URL, data={
            'grant_type': 'refresh_token',
            'client_id': self._setting('client_id'),
            'client_secret': self._setting('client_secret'),
            'refresh_token': self._setting('refresh_token'),
        })
        if response.status_code != 200:
            raise RemoteSyncError(f"Drive token refresh HTTP {response.status_code}",
                                  target=self.name, status_code=response.status_code)

        try:
            token = response.json().get('access_token') or ''
        except ValueError:
            token = ''
        if not token:
            raise RemoteSyncError("Drive token refresh returned no access_token", target=self.name)

        self.settings.update('sync.drive.token', token)
        self.logger.info("Refreshed Drive access token")
        return token

    @staticmethod
    def content_type_for(name: str) -> str:
        extension = posixpath.splitext(name)[1].lower()
        return CONTENT_TYPES.get(extension) or mimetypes.guess_type(name)[0] or 'application/octet-stream'

    def build_multipart(self, name: str, content: bytes, boundary: str) -> bytes:
        """Compose a ``multipart/related`` body: JSON metadata part, then the file."""
        metadata: Dict[str, Any] = {'name': name}
        if self.folder_id:
            metadata['parents'] = [self.folder_id]

        return b''.join([
            f'--{boundary}\r\n'.encode('ascii'),
            b'Content-Type: application/json; charset=UTF-8\r\n\r\n',
            json.dumps(metadata).encode('utf-8'),
            f'\r\n--{boundary}\r\n'.encode('ascii'),
            f'Content-Type: {self.content_type_for(name)}\r\n\r\n'.encode('ascii'),
            content,
            f'\r\n--{boundary}--'.encode('ascii'),
        ])

    def upload(self, name: str, content: bytes, token: Optional[str] = None) -> Optional[str]:
        """
        Upload one file as a new Drive object.

        Args:
            name: File name; ``/`` separated paths are kept as the object name
            content: File bytes
            token: Bearer token, fetched when omitted

        Returns:
            The created file id

        Raises:
            RemoteSyncError: On token, transport or HTTP failures
        """
        token = token or self.access_token()
        boundary = uuid.uuid4().hex
        response = self._request(
            'POST', self.UPLOAD_URL, path=name,
            headers={
                'Authorization': f'Bearer {token}',
                'Content-Type': f'multipart/related; boundary={boundary}',
            },
            data=self.build_multipart(name, content, boundary)
        )
        if response.status_code not in (200, 201):
            raise RemoteSyncError(f"Drive HTTP {response.status_code} for {name}",
                                  target=self.name, path=name, status_code=response.status_code)

        try:
            file_id = response.json().get('id')
        except ValueError:
            file_id = None
        self.logger.debug(f"Drive upload ok: {name} (id={file_id or 'n/a'})")
        return file_id

    def fetch(self, file_id: str) -> FetchedFile:
        """
        Download a Drive object by id.

        The display name comes from ``Content-Disposition`` when present,
        otherwise the id with an extension inferred from the content type.
        """
        file_id = (file_id or '').strip()
        if not file_id:
            raise RemoteSyncError("Drive file ID is empty", target=self.name)

        token = self.access_token()
        response = self._request(
            'GET', f"{self.FILES_URL}/{quote(file_id, safe='')}", path=file_id,
            headers={'Authorization': f'Bearer {token}'},
            params={'alt': 'media'}
        )
        if response.status_code != 200:
            raise RemoteSyncError(f"Drive HTTP {response.status_code} for file {file_id}",
                                  target=self.name, path=file_id, status_code=response.status_code)
        if not response.content:
            raise RemoteSyncError("Empty response from Drive", target=self.name, path=file_id)

        return self._write_temp(response.content, self.infer_name(file_id, response.headers))

    @staticmethod
    def infer_name(file_id: str, headers) -> str:
        disposition = headers.get('content-disposition') or ''
        match = CONTENT_DISPOSITION_RE.search(disposition)
        if match:
            return posixpath.basename(match.group(1).replace('\\', '/'))

        content_type = (headers.get('content-type') or '').lower()
        if 'zip' in content_type:
            return f'{file_id}.zip'
        if 'markdown' in content_type or 'text/plain' in content_type:
            return f'{file_id}.md'
        return file_id

    @classmethod
    def from_config(cls, settings: SettingsStore, session: Optional[requests.Session] = None) -> 'DriveTarget':
        return cls(
            settings=settings,
            timeout=settings.get('advanced.request_timeout', 30),
            verify_ssl=settings.get('advanced.verify_ssl', True),
            session=session
        )


__all__ = ['DriveTarget']
