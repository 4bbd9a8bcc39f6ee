"""Shared HTTP plumbing for remote sync targets."""

import logging
import os
import tempfile
from typing import Optional

import requests
import urllib3
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from errors import RemoteSyncError
from models import FetchedFile


class RemoteTarget:
    """Base class for a remote store reached over HTTPS.

    Calls are made exactly once: the mounted adapter never retries, and a
    failed call surfaces as ``RemoteSyncError`` for the caller to log.
    """

    name = 'remote'

    def __init__(
        self,
        timeout: int = 30,
        verify_ssl: bool = True,
        session: Optional[requests.Session] = None,
        logger: logging.Logger = None
    ):
        self.timeout = timeout
        self.logger = logger or logging.getLogger(f'posts_markdown_sync.sync.{self.name}')

        if session is None:
            session = requests.Session()
            adapter = HTTPAdapter(max_retries=Retry(total=0, raise_on_status=False))
            session.mount('http://', adapter)
            session.mount('https://', adapter)
            session.verify = verify_ssl
            if not verify_ssl:
                urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
        self.session = session

    def _request(self, method: str, url: str, path: Optional[str] = None, **kwargs) -> requests.Response:
        """
        Issue one HTTP request.

        Raises:
            RemoteSyncError: On connection failures and timeouts
        """
        self.logger.debug(f"API Request: {method} {url}")
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.Timeout:
            raise RemoteSyncError(f"Request timeout after {self.timeout}s: {method} {url}",
                                  target=self.name, path=path)
        except requests.exceptions.RequestException as e:
            raise RemoteSyncError(f"Request error: {method} {url} - {str(e)}",
                                  target=self.name, path=path)

        self.logger.debug(f"API Response: {response.status_code} {url}")
        return response

    def _write_temp(self, body: bytes, name: str) -> FetchedFile:
        """Persist a downloaded payload to a temporary file."""
        suffix = os.path.splitext(name)[1]
        fd, tmp_path = tempfile.mkstemp(prefix='pmsync_', suffix=suffix)
        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(body)
        except OSError:
            os.remove(tmp_path)
            raise
        return FetchedFile(tmp_path=tmp_path, name=name, size=len(body))


__all__ = ['RemoteTarget']
