"""Tests for the JSON-backed and WordPress REST repositories."""

from datetime import datetime
from unittest.mock import Mock

import pytest

from conftest import add_item, make_response
from errors import PersistenceError
from models import ItemQuery, SOURCE_PATH_KEY
from repository import InMemoryRepository, WordPressRepository, create_repository


class TestInMemoryRepository:
    def test_create_derives_slug_and_link(self, repository):
        item_id = repository.create_item({'title': 'Hello World!', 'status': 'published'})

        item = repository.get_item(item_id)
        assert item.slug == 'hello-world'
        assert item.link == 'https://blog.example.com/hello-world/'
        assert item.status == 'publish'
        assert item.date is not None

    def test_rejects_unknown_fields_and_status(self, repository):
        with pytest.raises(PersistenceError):
            repository.create_item({'title': 'x', 'colour': 'red'})
        with pytest.raises(PersistenceError):
            repository.create_item({'title': 'x', 'status': 'archived'})
        with pytest.raises(PersistenceError):
            repository.set_item_meta(404, 'key', 'value')

    def test_query_is_oldest_first(self, repository):
        add_item(repository, 1, 'Newer', date=datetime(2024, 5, 1))
        add_item(repository, 2, 'Older', date=datetime(2023, 5, 1))
        add_item(repository, 3, 'Draft', status='draft')

        items = repository.query_items(ItemQuery(statuses=('publish',)))

        assert [item.title for item in items] == ['Older', 'Newer']

    def test_custom_taxonomy_replace_keeps_other_taxonomies(self, repository):
        add_item(repository, 1, 'Post', taxonomy=['genre:Fiction', 'level:Beginner'])

        repository.assign_taxonomy(1, 'genre', ['Drama'], append=False)

        assert repository.get_item(1).taxonomy == ['level:Beginner', 'genre:Drama']
        assert repository.terms['genre'] == ['Drama']

    def test_find_author(self, repository):
        assert repository.find_author('JDOE') == 1
        assert repository.find_author('Rob Smith') == 2
        assert repository.find_author('nobody') is None
        assert repository.get_author_name(2) == 'Rob Smith'

    def test_save_and_load(self, repository, tmp_path):
        asset = repository.create_asset(b'png', 'a.png', source_path='_images/a.png')
        add_item(repository, 4, 'Saved', meta={'color': 'blue'}, featured_asset_id=asset.id)
        path = str(tmp_path / 'content.json')

        repository.save(path)
        loaded = InMemoryRepository.load(path)

        item = loaded.get_item(4)
        assert item.title == 'Saved'
        assert item.meta == {'color': 'blue'}
        assert item.date == datetime(2024, 1, 5, 9, 0, 0)
        assert loaded.find_asset_by_source_path('_images/a.png').id == asset.id
        assert loaded.find_author('jdoe') == 1
        assert loaded.create_item({'title': 'Next'}) == 5

    def test_assets_written_to_media_directory(self, tmp_path):
        media = tmp_path / 'media'
        repository = InMemoryRepository(media_directory=str(media))

        asset = repository.create_asset(b'bytes', 'a.png')

        assert (media / f'{asset.id}-a.png').read_bytes() == b'bytes'
        assert asset.url == f'/media/{asset.id}/a.png'

    def test_create_repository_from_config(self, config):
        repository = create_repository(config)
        assert isinstance(repository, InMemoryRepository)
        assert repository.items == {}

        config['repository']['type'] = 'sqlite'
        with pytest.raises(ValueError):
            create_repository(config)


def wp_post(post_id=10, **fields):
    post = {
        'id': post_id,
        'title': {'raw': 'Hello', 'rendered': 'Hello'},
        'content': {'raw': '<p>Hi</p>', 'rendered': '<p>Hi</p>'},
        'excerpt': {'raw': ''},
        'status': 'publish',
        'slug': 'hello',
        'author': 1,
        'date': '2024-01-02T09:00:00',
        'modified': '2024-01-03T09:00:00',
        'categories': [],
        'tags': [],
        'meta': {},
        'link': 'https://wp.example.com/hello/',
    }
    post.update(fields)
    return post


@pytest.fixture
def wordpress():
    repository = WordPressRepository('https://wp.example.com/', 'admin', 'app pass',
                                     taxonomies={'genre': 'genres'})
    repository.session = Mock()
    return repository


class TestWordPressRepository:
    def test_requires_credentials(self):
        with pytest.raises(ValueError):
            WordPressRepository('https://wp.example.com', 'admin', '')

    def test_query_items_follows_pages(self, wordpress):
        wordpress.session.request.side_effect = [
            make_response(200, [wp_post(10)], headers={'X-WP-TotalPages': '2'}),
            make_response(200, [wp_post(11, slug='second')], headers={'X-WP-TotalPages': '2'}),
        ]

        items = wordpress.query_items(ItemQuery(statuses=('publish',), author_id=1,
                                                date_after=datetime(2024, 1, 1)))

        assert [item.id for item in items] == [10, 11]
        first_call = wordpress.session.request.call_args_list[0]
        assert first_call[0] == ('GET', 'https://wp.example.com/wp-json/wp/v2/posts')
        params = first_call[1]['params']
        assert params['status'] == 'publish'
        assert params['author'] == 1
        assert params['after'] == '2023-12-31T23:59:59'
        assert params['page'] == 1
        assert wordpress.session.request.call_args_list[1][1]['params']['page'] == 2

    def test_date_bounds_include_boundary_posts(self, wordpress):
        wordpress.session.request.return_value = make_response(200, [
            wp_post(1, date='2024-01-02T00:00:00'),
            wp_post(2, date='2024-01-02T23:59:59'),
            wp_post(3, date='2024-01-03T00:00:00'),
        ], headers={'X-WP-TotalPages': '1'})

        items = wordpress.query_items(ItemQuery(
            date_after=datetime(2024, 1, 2),
            date_before=datetime(2024, 1, 2, 23, 59, 59, 999999)
        ))

        params = wordpress.session.request.call_args[1]['params']
        assert params['after'] == '2024-01-01T23:59:59'
        assert params['before'] == '2024-01-03T00:00:00'
        assert [item.id for item in items] == [1, 2]

    def test_item_terms_resolved_by_name(self, wordpress):
        wordpress.session.request.side_effect = [
            make_response(200, wp_post(10, categories=[5], genres=[8])),
            make_response(200, {'id': 8, 'name': 'Fiction'}),
            make_response(200, {'id': 5, 'name': 'News'}),
        ]

        item = wordpress.get_item(10)

        assert item.title == 'Hello'
        assert item.body == '<p>Hi</p>'
        assert item.categories == ['News']
        assert item.taxonomy == ['genre:Fiction']
        assert item.date == datetime(2024, 1, 2, 9, 0)

    def test_missing_item(self, wordpress):
        wordpress.session.request.return_value = make_response(404, {'message': 'Invalid post ID.'})
        assert wordpress.get_item(99) is None

    def test_create_item_creates_missing_terms(self, wordpress):
        wordpress.session.request.side_effect = [
            make_response(200, []),
            make_response(201, {'id': 7, 'name': 'News'}),
            make_response(201, {'id': 11}),
        ]

        item_id = wordpress.create_item({'title': 'T', 'categories': ['News'],
                                         'date': datetime(2024, 1, 2, 9, 0, 0, 500)})

        assert item_id == 11
        create_call = wordpress.session.request.call_args_list[2]
        assert create_call[0] == ('POST', 'https://wp.example.com/wp-json/wp/v2/posts')
        assert create_call[1]['json'] == {'title': 'T', 'categories': [7], 'date': '2024-01-02T09:00:00'}

    def test_unsupported_field(self, wordpress):
        with pytest.raises(PersistenceError):
            wordpress.update_item(1, {'link': 'https://elsewhere/'})
        wordpress.session.request.assert_not_called()

    def test_error_message_from_response(self, wordpress):
        wordpress.session.request.return_value = make_response(
            403, {'code': 'rest_forbidden', 'message': 'Sorry, you are not allowed to do that.'}
        )

        with pytest.raises(PersistenceError) as excinfo:
            wordpress.set_item_meta(1, 'color', 'blue')

        assert 'HTTP 403: Sorry, you are not allowed to do that.' in excinfo.value.message
        assert excinfo.value.details == {'status_code': 403}

    def test_append_custom_taxonomy(self, wordpress):
        wordpress.session.request.side_effect = [
            make_response(200, [{'id': 3, 'name': 'fiction'}]),
            make_response(200, {'id': 1, 'genres': [1]}),
            make_response(200, {'id': 1}),
        ]

        wordpress.assign_taxonomy(1, 'genre', ['Fiction'], append=True)

        update_call = wordpress.session.request.call_args_list[2]
        assert update_call[1]['json'] == {'genres': [1, 3]}

    def test_asset_source_path_lookup(self, wordpress):
        wordpress.session.request.return_value = make_response(200, [
            {'id': 4, 'source_url': 'https://wp.example.com/a.png', 'meta': {}},
            {'id': 5, 'source_url': 'https://wp.example.com/a-1.png',
             'media_details': {'file': '2024/01/a-1.png'},
             'meta': {SOURCE_PATH_KEY: '_images/a.png'}},
        ], headers={'X-WP-TotalPages': '1'})

        asset = wordpress.find_asset_by_source_path('_images/a.png')

        assert asset.id == 5
        assert asset.filename == 'a-1.png'
        assert asset.source_path == '_images/a.png'

    def test_find_author(self, wordpress):
        wordpress.session.request.return_value = make_response(200, [
            {'id': 2, 'username': 'jdoe', 'slug': 'jdoe', 'name': 'Jane Doe'}
        ])

        assert wordpress.find_author('Jane Doe') == 2
        assert wordpress.get_author_name(2) == 'Jane Doe'
        assert wordpress.session.request.call_count == 1
