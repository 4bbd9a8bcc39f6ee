"""Remote sync targets for exported and imported documents.

- github_target: GitHub contents API (sha-aware upserts, raw downloads)
- drive_target: Google Drive multipart uploads with OAuth refresh
- sync_adapter: per-target enablement and batch pushes
"""

from .drive_target import DriveTarget
from .github_target import GitHubTarget, commit_message
from .sync_adapter import SyncAdapter

__all__ = [
    'SyncAdapter',
    'GitHubTarget',
    'DriveTarget',
    'commit_message'
]
