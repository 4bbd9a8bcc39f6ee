"""GitHub contents API target: content-addressed upserts and raw downloads."""

import base64
import json
import logging
import posixpath
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import quote

import requests

from errors import RemoteSyncError
from models import FetchedFile

from .base import RemoteTarget

USER_AGENT = 'posts-markdown-sync'


def commit_message(filters: Optional[Dict[str, Any]] = None, now: Optional[datetime] = None) -> str:
    """Build ``Export <UTC time> UTC | filters: <json>``."""
    now = now or datetime.now(timezone.utc)
    parts = [f"Export {now.strftime('%Y-%m-%d %H:%M:%S')} UTC"]
    if filters:
        parts.append(f"filters: {json.dumps(filters, sort_keys=False)}")
    return ' | '.join(parts)


class GitHubTarget(RemoteTarget):
    """Pushes files to ``repos/{owner}/{repo}/contents/{prefix}/{path}``.

    Each push reads the stored blob ``sha`` first and sends it with the PUT
    when present, so re-pushing an existing path updates instead of
    conflicting. Content is never diffed.
    """

    name = 'github'
    API_URL = 'https://api.github.com'

    def __init__(
        self,
        repo: str,
        token: str,
        branch: str = 'main',
        path_prefix: str = '',
        timeout: int = 30,
        verify_ssl: bool = True,
        session: Optional[requests.Session] = None,
        logger: logging.Logger = None
    ):
        super().__init__(timeout=timeout, verify_ssl=verify_ssl, session=session, logger=logger)
        self.repo = (repo or '').strip()
        self.token = token or ''
        self.branch = branch or 'main'
        self.path_prefix = (path_prefix or '').strip().strip('/')

    def is_configured(self) -> bool:
        owner, _, repo = self.repo.partition('/')
        return bool(owner and repo and '/' not in repo and self.token)

    @property
    def headers(self) -> Dict[str, str]:
        return {
            'Authorization': f'token {self.token}',
            'User-Agent': USER_AGENT,
        }

    def content_path(self, path: str) -> str:
        path = path.strip().lstrip('/')
        return f'{self.path_prefix}/{path}' if self.path_prefix else path

    def contents_url(self, content_path: str) -> str:
        owner, _, repo = self.repo.partition('/')
        encoded = '/'.join(quote(segment, safe='') for segment in content_path.split('/'))
        return f"{self.API_URL}/repos/{quote(owner, safe='')}/{quote(repo, safe='')}/contents/{encoded}"

    def _require_configured(self, path: str) -> None:
        if not self.is_configured():
            raise RemoteSyncError("GitHub settings are missing or repo is not in owner/repo format",
                                  target=self.name, path=path)

    def get_sha(self, content_path: str) -> Optional[str]:
        """Return the stored blob sha for ``content_path`` or ``None`` when absent."""
        try:
            response = self._request('GET', self.contents_url(content_path), path=content_path,
                                     headers=self.headers, params={'ref': self.branch})
        except RemoteSyncError as e:
            self.logger.debug(f"Could not read current sha: {e.message}")
            return None

        if response.status_code != 200:
            return None
        try:
            return response.json().get('sha') or None
        except ValueError:
            return None

    def push_file(self, path: str, content: bytes, message: str) -> Optional[str]:
        """
        Create or update one file.

        Args:
            path: Path relative to the configured prefix
            content: File bytes
            message: Commit message

        Returns:
            The new blob sha reported by GitHub, if any

        Raises:
            RemoteSyncError: On transport failures and non-2xx responses
        """
        content_path = self.content_path(path)
        self._require_configured(content_path)

        payload = {
            'message': message,
            'content': base64.b64encode(content).decode('ascii'),
            'branch': self.branch,
        }
        sha = self.get_sha(content_path)
        if sha:
            payload['sha'] = sha

        response = self._request('PUT', self.contents_url(content_path), path=content_path,
                                 headers=dict(self.headers, **{'Content-Type': 'application/json'}),
                                 data=json.dumps(payload))

        if response.status_code not in (200, 201):
            raise RemoteSyncError(
                f"GitHub HTTP {response.status_code} for {content_path} ({self.branch})",
                target=self.name,
                path=content_path,
                status_code=response.status_code,
                details={'payload_keys': sorted(payload), 'response': response.text[:500]}
            )

        try:
            new_sha = (response.json().get('content') or {}).get('sha')
        except ValueError:
            new_sha = None
        self.logger.debug(f"GitHub sync ok: {content_path} ({self.branch}), sha={new_sha or 'n/a'}")
        return new_sha

    def fetch(self, path: str) -> FetchedFile:
        """
        Download one file in raw form.

        Raises:
            RemoteSyncError: For empty paths, non-200 responses and empty bodies
        """
        path = (path or '').strip().lstrip('/')
        if not path:
            raise RemoteSyncError("GitHub path is empty", target=self.name)

        content_path = self.content_path(path)
        self._require_configured(content_path)

        response = self._request(
            'GET', self.contents_url(content_path), path=content_path,
            headers=dict(self.headers, Accept='application/vnd.github.raw'),
            params={'ref': self.branch}
        )
        if response.status_code != 200:
            raise RemoteSyncError(f"GitHub HTTP {response.status_code} for {content_path}",
                                  target=self.name, path=content_path,
                                  status_code=response.status_code)
        if not response.content:
            raise RemoteSyncError("Empty response from GitHub", target=self.name, path=content_path)

        return self._write_temp(response.content, posixpath.basename(path))

    @classmethod
    def from_config(cls, config: Dict[str, Any], session: Optional[requests.Session] = None) -> 'GitHubTarget':
        github = config.get('sync', {}).get('github', {})
        advanced = config.get('advanced', {})
        return cls(
            repo=github.get('repo', ''),
            token=github.get('token', ''),
            branch=github.get('branch', 'main'),
            path_prefix=github.get('path', ''),
            timeout=advanced.get('request_timeout', 30),
            verify_ssl=advanced.get('verify_ssl', True),
            session=session
        )


__all__ = ['GitHubTarget', 'commit_message', 'USER_AGENT']
