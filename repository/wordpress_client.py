"""WordPress REST API repository with application-password authentication."""

import logging
import mimetypes
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import requests
import urllib3
from dateutil import parser as date_parser
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from errors import PersistenceError
from models import ContentItem, ItemQuery, MediaAsset, SOURCE_PATH_KEY

from .base import ContentRepository

logger = logging.getLogger('posts_markdown_sync.repository.wordpress')

BUILTIN_TAXONOMIES = {'category': 'categories', 'post_tag': 'tags'}
ALL_STATUSES = 'publish,draft,pending,future,private'

# ContentItem attribute -> REST field
FIELD_MAP = {
    'title': 'title',
    'body': 'content',
    'status': 'status',
    'slug': 'slug',
    'author_id': 'author',
    'excerpt': 'excerpt',
    'featured_asset_id': 'featured_media',
    'date': 'date',
    'meta': 'meta',
    'parent_id': 'parent',
    'menu_order': 'menu_order',
    'comment_status': 'comment_status',
    'sticky': 'sticky',
}


class WordPressRepository(ContentRepository):
    """Content repository backed by the ``/wp-json/wp/v2`` endpoints.

    Requests are never retried; every non-2xx response becomes a
    ``PersistenceError``.
    """

    PER_PAGE = 100

    def __init__(
        self,
        base_url: str,
        username: str,
        application_password: str,
        post_type: str = 'posts',
        taxonomies: Optional[Dict[str, str]] = None,
        verify_ssl: bool = True,
        timeout: int = 30,
        logger: logging.Logger = None
    ):
        """
        Initialize the REST repository.

        Args:
            base_url: Site URL (e.g., "https://blog.example.com")
            username: Login of the user owning the application password
            application_password: WordPress application password
            post_type: REST base of the content type (``posts`` or ``pages``)
            taxonomies: Custom taxonomy name to REST base mapping
            verify_ssl: Whether to verify SSL certificates
            timeout: HTTP request timeout in seconds
            logger: Optional logger instance
        """
        super().__init__(logger or logging.getLogger('posts_markdown_sync.repository.wordpress'))
        if not username or not application_password:
            raise ValueError("WordPress repository requires username and application_password")

        self.base_url = base_url.rstrip('/')
        self.api_url = f"{self.base_url}/wp-json/wp/v2"
        self.post_type = post_type
        self.taxonomies = dict(BUILTIN_TAXONOMIES, **(taxonomies or {}))
        self.timeout = timeout

        self.session = requests.Session()
        self.session.auth = (username, application_password)
        self.session.headers['Accept'] = 'application/json'
        self.session.verify = verify_ssl
        if not verify_ssl:
            self.logger.warning("SSL verification disabled - this is insecure!")
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

        adapter = HTTPAdapter(max_retries=Retry(total=0, raise_on_status=False))
        self.session.mount('http://', adapter)
        self.session.mount('https://', adapter)

        self._term_names: Dict[str, Dict[int, str]] = {}
        self._author_names: Dict[int, str] = {}

        self.logger.info(f"Initialized WordPress repository for {self.base_url}")

    def _make_request(self, method: str, endpoint: str, **kwargs) -> requests.Response:
        """
        Make an HTTP request against the REST API.

        Raises:
            PersistenceError: On transport failures and non-2xx responses
        """
        url = f"{self.api_url}/{endpoint.lstrip('/')}"
        self.logger.debug(f"API Request: {method} {url}")

        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            self.logger.error(f"Request error: {method} {url} - {str(e)}")
            raise PersistenceError(f"{method} {endpoint} failed: {e}")

        self.logger.debug(f"API Response: {response.status_code} {url}")
        if not 200 <= response.status_code < 300:
            message = response.text[:200]
            try:
                message = response.json().get('message', message)
            except ValueError:
                pass
            raise PersistenceError(
                f"{method} {endpoint} returned HTTP {response.status_code}: {message}",
                details={'status_code': response.status_code}
            )
        return response

    def _get_paginated(self, endpoint: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        results: List[Dict[str, Any]] = []
        page = 1
        while True:
            response = self._make_request(
                'GET', endpoint, params=dict(params, page=page, per_page=self.PER_PAGE)
            )
            batch = response.json()
            results.extend(batch)
            total_pages = int(response.headers.get('X-WP-TotalPages', '1') or 1)
            if page >= total_pages or not batch:
                return results
            page += 1

    def query_items(self, query: ItemQuery) -> List[ContentItem]:
        params: Dict[str, Any] = {
            'context': 'edit',
            'orderby': 'date',
            'order': 'asc',
            'status': ','.join(query.statuses) if query.statuses else ALL_STATUSES,
        }
        if query.author_id is not None:
            params['author'] = query.author_id
        # after/before are exclusive on the server: widen by a second, matches() trims back
        if query.date_after is not None:
            after = query.date_after.replace(microsecond=0) - timedelta(seconds=1)
            params['after'] = after.isoformat()
        if query.date_before is not None:
            before = query.date_before.replace(microsecond=0) + timedelta(seconds=1)
            params['before'] = before.isoformat()

        posts = self._get_paginated(self.post_type, params)
        items = [self._to_item(post) for post in posts]
        return [item for item in items if query.matches(item)]

    def get_item(self, item_id: int) -> Optional[ContentItem]:
        try:
            response = self._make_request('GET', f'{self.post_type}/{int(item_id)}',
                                          params={'context': 'edit'})
        except PersistenceError as e:
            if e.details.get('status_code') == 404:
                return None
            raise
        except (TypeError, ValueError):
            return None
        return self._to_item(response.json())

    def create_item(self, fields: Dict[str, Any]) -> int:
        response = self._make_request('POST', self.post_type, json=self._to_payload(fields))
        return int(response.json()['id'])

    def update_item(self, item_id: int, fields: Dict[str, Any]) -> None:
        self._make_request('POST', f'{self.post_type}/{item_id}', json=self._to_payload(fields))

    def set_item_meta(self, item_id: int, key: str, value: Any) -> None:
        self._make_request('POST', f'{self.post_type}/{item_id}', json={'meta': {key: value}})

    def get_item_meta(self, item_id: int, key: str) -> Any:
        item = self.get_item(item_id)
        return item.meta.get(key) if item else None

    def assign_taxonomy(self, item_id: int, taxonomy: str, terms: List[str], append: bool) -> None:
        rest_base = self.taxonomies.get(taxonomy, taxonomy)
        term_ids = [self._ensure_term(rest_base, term) for term in terms]

        if append:
            current = self._make_request('GET', f'{self.post_type}/{item_id}',
                                         params={'context': 'edit'}).json()
            existing = current.get(rest_base) or []
            term_ids = existing + [term_id for term_id in term_ids if term_id not in existing]

        self._make_request('POST', f'{self.post_type}/{item_id}', json={rest_base: term_ids})

    def _ensure_term(self, rest_base: str, name: str) -> int:
        """Return the id of the term called ``name``, creating it when missing."""
        matches = self._make_request('GET', rest_base,
                                     params={'search': name, 'per_page': self.PER_PAGE}).json()
        for term in matches:
            if term.get('name', '').lower() == name.lower():
                return int(term['id'])

        created = self._make_request('POST', rest_base, json={'name': name}).json()
        self.logger.debug(f"Created term {name!r} in {rest_base}")
        self._term_names.setdefault(rest_base, {})[int(created['id'])] = name
        return int(created['id'])

    def _term_name(self, rest_base: str, term_id: int) -> str:
        names = self._term_names.setdefault(rest_base, {})
        if term_id not in names:
            names[term_id] = self._make_request('GET', f'{rest_base}/{term_id}').json().get('name', '')
        return names[term_id]

    def find_asset_by_source_path(self, source_path: str) -> Optional[MediaAsset]:
        media = self._get_paginated('media', {'context': 'edit', 'search': source_path.rsplit('/', 1)[-1]})
        for entry in media:
            if (entry.get('meta') or {}).get(SOURCE_PATH_KEY) == source_path:
                return self._to_asset(entry)
        return None

    def create_asset(self, data: bytes, filename: str, source_path: Optional[str] = None) -> MediaAsset:
        content_type = mimetypes.guess_type(filename)[0] or 'application/octet-stream'
        response = self._make_request(
            'POST', 'media',
            data=data,
            headers={
                'Content-Disposition': f'attachment; filename="{filename}"',
                'Content-Type': content_type,
            }
        )
        entry = response.json()
        if source_path:
            self._make_request('POST', f"media/{entry['id']}",
                               json={'meta': {SOURCE_PATH_KEY: source_path}})
        asset = self._to_asset(entry)
        asset.source_path = source_path
        return asset

    def get_asset(self, asset_id: int) -> Optional[MediaAsset]:
        try:
            entry = self._make_request('GET', f'media/{asset_id}', params={'context': 'edit'}).json()
        except PersistenceError as e:
            if e.details.get('status_code') == 404:
                return None
            raise
        return self._to_asset(entry)

    def set_featured_asset(self, item_id: int, asset_id: int) -> None:
        self._make_request('POST', f'{self.post_type}/{item_id}', json={'featured_media': asset_id})

    def find_item_by_slug(self, slug: str) -> Optional[ContentItem]:
        posts = self._make_request(
            'GET', self.post_type,
            params={'slug': slug, 'status': ALL_STATUSES, 'context': 'edit'}
        ).json()
        return self._to_item(posts[0]) if posts else None

    def find_author(self, name: str) -> Optional[int]:
        if not name:
            return None
        wanted = str(name).strip().lower()
        users = self._make_request('GET', 'users', params={'search': wanted, 'context': 'edit'}).json()
        for user in users:
            candidates = (user.get('username', ''), user.get('slug', ''), user.get('name', ''))
            if wanted in (candidate.lower() for candidate in candidates):
                self._author_names[int(user['id'])] = user.get('name', '')
                return int(user['id'])
        return None

    def get_author_name(self, author_id: Optional[int]) -> str:
        if not author_id:
            return ''
        if author_id not in self._author_names:
            try:
                user = self._make_request('GET', f'users/{author_id}').json()
            except PersistenceError as e:
                self.logger.warning(f"Could not look up author {author_id}: {e.message}")
                return ''
            self._author_names[author_id] = user.get('name', '')
        return self._author_names[author_id]

    def set_sticky(self, item_id: int, sticky: bool) -> None:
        self._make_request('POST', f'{self.post_type}/{item_id}', json={'sticky': bool(sticky)})

    def _to_payload(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        for key, value in fields.items():
            if key in ('categories', 'tags'):
                rest_base = BUILTIN_TAXONOMIES['category' if key == 'categories' else 'post_tag']
                payload[rest_base] = [self._ensure_term(rest_base, name) for name in value]
                continue
            if key not in FIELD_MAP:
                raise PersistenceError(f"Field {key!r} is not supported by the WordPress repository")
            if isinstance(value, datetime):
                value = value.replace(microsecond=0).isoformat()
            payload[FIELD_MAP[key]] = value
        return payload

    def _to_item(self, post: Dict[str, Any]) -> ContentItem:
        def rendered(field: str) -> str:
            value = post.get(field) or {}
            if isinstance(value, dict):
                return value.get('raw', value.get('rendered', ''))
            return str(value)

        taxonomy = []
        for name, rest_base in self.taxonomies.items():
            if name in BUILTIN_TAXONOMIES:
                continue
            taxonomy.extend(f'{name}:{self._term_name(rest_base, term_id)}'
                            for term_id in post.get(rest_base) or [])

        return ContentItem(
            id=int(post['id']),
            title=rendered('title'),
            body=rendered('content'),
            status=post.get('status', 'draft'),
            slug=post.get('slug', ''),
            author_id=post.get('author'),
            excerpt=rendered('excerpt'),
            featured_asset_id=post.get('featured_media') or None,
            date=date_parser.parse(post['date']) if post.get('date') else None,
            modified=date_parser.parse(post['modified']) if post.get('modified') else None,
            categories=[self._term_name('categories', term_id) for term_id in post.get('categories') or []],
            tags=[self._term_name('tags', term_id) for term_id in post.get('tags') or []],
            taxonomy=taxonomy,
            meta=dict(post.get('meta') or {}),
            parent_id=post.get('parent') or None,
            menu_order=int(post.get('menu_order') or 0),
            comment_status=post.get('comment_status'),
            sticky=bool(post.get('sticky', False)),
            link=post.get('link')
        )

    @staticmethod
    def _to_asset(entry: Dict[str, Any]) -> MediaAsset:
        meta = entry.get('meta') or {}
        return MediaAsset(
            id=int(entry['id']),
            url=entry.get('source_url', ''),
            filename=(entry.get('media_details') or {}).get('file', '').rsplit('/', 1)[-1],
            source_path=meta.get(SOURCE_PATH_KEY)
        )

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'WordPressRepository':
        """
        Initialize the repository from a configuration dictionary.

        Args:
            config: Configuration dictionary with repository and advanced settings

        Returns:
            WordPressRepository instance
        """
        repository_config = config.get('repository', {})
        advanced_config = config.get('advanced', {})

        return cls(
            base_url=repository_config.get('base_url'),
            username=repository_config.get('username'),
            application_password=repository_config.get('application_password'),
            post_type=repository_config.get('post_type', 'posts'),
            taxonomies=repository_config.get('taxonomies') or {},
            verify_ssl=advanced_config.get('verify_ssl', True),
            timeout=advanced_config.get('request_timeout', 30)
        )


__all__ = ['WordPressRepository']
