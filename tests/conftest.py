"""Shared fixtures: an in-memory repository, an isolated configuration and fake HTTP responses."""

import io
import json
import zipfile
from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from config_loader import ConfigLoader
from exporters.streamers import ArchiveStreamer
from logger import RunLog
from models import ContentItem
from repository.memory import InMemoryRepository

FIXED_NOW = datetime(2024, 3, 15, 10, 30, 0, tzinfo=timezone.utc)


def fixed_clock():
    return FIXED_NOW


def make_response(status_code=200, json_data=None, content=b'', headers=None):
    """Build a stand-in for ``requests.Response``."""
    response = Mock()
    response.status_code = status_code
    if json_data is None:
        response.json.side_effect = ValueError("No JSON object could be decoded")
    else:
        response.json.return_value = json_data
    response.content = content
    response.text = content.decode('utf-8', 'replace') if content else json.dumps(json_data or {})
    response.headers = headers or {}
    return response


def build_zip(entries):
    """Return archive bytes for a ``{name: str | bytes}`` mapping."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, 'w') as archive:
        for name, content in entries.items():
            archive.writestr(name, content)
    return buffer.getvalue()


class CapturingStreamer(ArchiveStreamer):
    """Reads the archive while it still exists and keeps its entries."""

    def __init__(self):
        self.download_name = None
        self.entries = {}
        self.archive_bytes = b''
        self.calls = 0

    def stream(self, archive_path, download_name):
        self.calls += 1
        self.download_name = download_name
        with open(archive_path, 'rb') as f:
            self.archive_bytes = f.read()
        with zipfile.ZipFile(archive_path) as archive:
            self.entries = {name: archive.read(name).decode('utf-8') for name in archive.namelist()}
        return f'captured:{download_name}'


@pytest.fixture
def config(tmp_path):
    config = ConfigLoader.defaults()
    config['repository']['json_path'] = str(tmp_path / 'content.json')
    config['export']['output_directory'] = str(tmp_path / 'exports')
    config['export']['progress_bars'] = False
    config['import']['progress_bars'] = False
    config['logging']['run_log_path'] = str(tmp_path / 'state' / 'last-run.json')
    config['advanced']['lock_path'] = str(tmp_path / 'state' / 'run.lock')
    return config


@pytest.fixture
def repository():
    repo = InMemoryRepository(base_url='https://blog.example.com')
    repo.add_author(1, 'jdoe', 'Jane Doe')
    repo.add_author(2, 'rsmith', 'Rob Smith')
    return repo


@pytest.fixture
def run_log():
    return RunLog(clock=fixed_clock)


@pytest.fixture
def streamer():
    return CapturingStreamer()


@pytest.fixture
def isolated_tempdir(tmp_path, monkeypatch):
    """Route ``tempfile`` into a directory the test can inspect."""
    import tempfile

    directory = tmp_path / 'tmp'
    directory.mkdir()
    monkeypatch.setattr(tempfile, 'tempdir', str(directory))
    return directory


def add_item(repo, item_id, title, **fields):
    fields.setdefault('slug', title.lower().replace(' ', '-'))
    fields.setdefault('status', 'publish')
    fields.setdefault('date', datetime(2024, 1, item_id % 28 + 1, 9, 0, 0))
    return repo.add_item(ContentItem(id=item_id, title=title, **fields))
