"""Configuration loader with YAML support and environment variable substitution."""

import copy
import logging
import os
import re
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import yaml

logger = logging.getLogger('posts_markdown_sync.config')

MIN_SYNC_INTERVAL_MINUTES = 5

DEFAULT_CONFIG: Dict[str, Any] = {
    'repository': {
        'type': 'json',
        'json_path': './content.json',
    },
    'export': {
        'output_directory': './exports',
        'title_heading': True,
        'list_style': 'inline',
        'progress_bars': True,
    },
    'import': {
        'default_author_id': None,
        'link_parents': True,
        'progress_bars': True,
    },
    'sync': {
        'auto_sync': False,
        'interval_minutes': 15,
        'github': {
            'enabled': False,
            'repo': '',
            'token': '',
            'branch': 'main',
            'path': '',
        },
        'drive': {
            'enabled': False,
            'folder_id': '',
            'token': '',
            'client_id': '',
            'client_secret': '',
            'refresh_token': '',
        },
    },
    'logging': {
        'level': None,
        'file': None,
        'run_log_path': './.posts-markdown-sync/last-run.json',
    },
    'advanced': {
        'request_timeout': 30,
        'verify_ssl': True,
        'lock_path': './.posts-markdown-sync/run.lock',
        'lease_ttl_seconds': 3600,
    },
}


class ConfigLoader:
    """Handles loading and validation of configuration files."""

    ENV_VAR_PATTERN = re.compile(r'\$\{([A-Za-z_][A-Za-z0-9_]*)\}')

    @classmethod
    def load(cls, config_path: str) -> Dict[str, Any]:
        """
        Read ``config_path``, expand ``${NAME}`` references and fill gaps from ``DEFAULT_CONFIG``.

        Raises:
            FileNotFoundError: When the file does not exist
            ValueError: When the document is not a mapping
            yaml.YAMLError: On malformed YAML
        """
        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f) or {}

        if not isinstance(config_data, dict):
            raise ValueError("Configuration file must contain a dictionary")

        config_data = cls._expand(config_data)
        return deep_merge(DEFAULT_CONFIG, config_data)

    @classmethod
    def defaults(cls) -> Dict[str, Any]:
        return copy.deepcopy(DEFAULT_CONFIG)

    @classmethod
    def validate(cls, config: Dict[str, Any]) -> None:
        """Raise ``ValueError`` naming the first setting that is missing or out of range."""
        repo_type = get_nested(config, 'repository.type', 'json')
        if repo_type not in ['json', 'wordpress']:
            raise ValueError("repository.type must be 'json' or 'wordpress'")

        if repo_type == 'wordpress':
            cls._require(config, 'repository.base_url')
            cls._require(config, 'repository.username')
            cls._require(config, 'repository.application_password')
            cls._validate_url(get_nested(config, 'repository.base_url'), 'repository.base_url')
        else:
            cls._require(config, 'repository.json_path')

        list_style = get_nested(config, 'export.list_style', 'inline')
        if list_style not in ['inline', 'block']:
            raise ValueError("export.list_style must be 'inline' or 'block'")

        interval = get_nested(config, 'sync.interval_minutes', 15)
        if not isinstance(interval, int) or isinstance(interval, bool):
            raise ValueError("sync.interval_minutes must be an integer")
        if interval < MIN_SYNC_INTERVAL_MINUTES:
            raise ValueError(
                f"sync.interval_minutes must be at least {MIN_SYNC_INTERVAL_MINUTES}"
            )

        if get_nested(config, 'sync.github.enabled', False):
            cls._require(config, 'sync.github.repo')
            cls._require(config, 'sync.github.token')
            repo = get_nested(config, 'sync.github.repo')
            if repo.count('/') != 1:
                raise ValueError("sync.github.repo must look like 'owner/repository'")

        if get_nested(config, 'sync.drive.enabled', False):
            has_token = bool(get_nested(config, 'sync.drive.token'))
            has_refresh = all(
                get_nested(config, f'sync.drive.{key}')
                for key in ('client_id', 'client_secret', 'refresh_token')
            )
            if not has_token and not has_refresh:
                raise ValueError(
                    "sync.drive requires either token or client_id, client_secret and refresh_token"
                )

        timeout = get_nested(config, 'advanced.request_timeout', 30)
        if not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ValueError("advanced.request_timeout must be a positive number")

        ttl = get_nested(config, 'advanced.lease_ttl_seconds', 3600)
        if not isinstance(ttl, int) or ttl <= 0:
            raise ValueError("advanced.lease_ttl_seconds must be a positive integer")

    @classmethod
    def merge_with_args(cls, config: Dict[str, Any], args) -> Dict[str, Any]:
        """Overlay the global command line flags on a copy of ``config``."""
        merged = copy.deepcopy(config)
        for section in ('repository', 'export', 'logging', 'sync'):
            merged.setdefault(section, {})

        if getattr(args, 'repository_file', None):
            merged['repository']['type'] = 'json'
            merged['repository']['json_path'] = args.repository_file

        if getattr(args, 'output_dir', None):
            merged['export']['output_directory'] = args.output_dir

        if getattr(args, 'interval', None):
            merged['sync']['interval_minutes'] = args.interval

        if getattr(args, 'log_file', None):
            merged['logging']['file'] = args.log_file

        if getattr(args, 'log_level', None):
            merged['logging']['level'] = args.log_level

        return merged

    @classmethod
    def _expand(cls, data: Any) -> Any:
        """Replace ``${NAME}`` references with environment values, leaving unknown names as-is."""
        if isinstance(data, dict):
            return {key: cls._expand(value) for key, value in data.items()}
        if isinstance(data, list):
            return [cls._expand(value) for value in data]
        if not isinstance(data, str):
            return data
        return cls.ENV_VAR_PATTERN.sub(lambda m: os.environ.get(m.group(1), m.group(0)), data)

    @classmethod
    def _require(cls, config: dict, field: str) -> None:
        value = get_nested(config, field)
        if value in (None, ''):
            raise ValueError(f"Missing required configuration: {field}")

        unresolved = cls.ENV_VAR_PATTERN.search(value) if isinstance(value, str) else None
        if unresolved:
            raise ValueError(
                f"{field} still references ${{{unresolved.group(1)}}}; "
                f"export {unresolved.group(1)} or write the value into the config file"
            )

    @staticmethod
    def _validate_url(url: str, field_name: str) -> None:
        parsed = urlparse(url)
        if parsed.scheme not in ('http', 'https'):
            raise ValueError(f"{field_name} must use http or https: {url}")
        if not parsed.netloc:
            raise ValueError(f"{field_name} has no host: {url}")


class SettingsStore:
    """Writes individual settings back to the YAML configuration file.

    Used to persist values learned at run time, such as a refreshed Drive
    access token, so later runs can reuse them.
    """

    def __init__(self, config: Dict[str, Any], config_path: Optional[str] = None):
        self.config = config
        self.config_path = config_path

    def get(self, path: str, default: Any = None) -> Any:
        return get_nested(self.config, path, default)

    def update(self, path: str, value: Any) -> None:
        """Set ``path`` in the live configuration and in the file, if one is attached."""
        set_nested(self.config, path, value)

        if not self.config_path:
            return

        stored: Dict[str, Any] = {}
        if os.path.exists(self.config_path):
            with open(self.config_path, 'r', encoding='utf-8') as f:
                stored = yaml.safe_load(f) or {}

        set_nested(stored, path, value)
        with open(self.config_path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(stored, f, default_flow_style=False, sort_keys=False)

        logger.debug(f"Persisted setting {path} to {self.config_path}")


def get_nested(config: dict, path: str, default: Any = None) -> Any:
    """Safely retrieve nested configuration values using dot notation.

    Args:
        config: Configuration dictionary
        path: Dot-separated path (e.g., "sync.github.repo")
        default: Default value if path doesn't exist

    Returns:
        Value at the nested path or default
    """
    value = config
    for key in path.split('.'):
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default
    return value


def set_nested(config: dict, path: str, value: Any) -> None:
    """Set a nested configuration value using dot notation, creating sections."""
    keys = path.split('.')
    current = config
    for key in keys[:-1]:
        if not isinstance(current.get(key), dict):
            current[key] = {}
        current = current[key]
    current[keys[-1]] = value


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of ``base`` with ``override`` merged in recursively."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


__all__ = [
    'ConfigLoader',
    'SettingsStore',
    'DEFAULT_CONFIG',
    'MIN_SYNC_INTERVAL_MINUTES',
    'get_nested',
    'set_nested',
    'deep_merge'
]
