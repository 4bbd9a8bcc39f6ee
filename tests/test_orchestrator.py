"""Tests for runs end to end: lease, run log, scheduled sync, round trips and the CLI."""

import os
import time
from datetime import datetime
from unittest.mock import Mock

import pytest
import yaml

import migrate
from conftest import CapturingStreamer, add_item, fixed_clock, make_response
from errors import PreconditionError
from models import EXPORTED_FLAG_KEY, ORIGINAL_ID_KEY, SyncTarget
from orchestrator import RunLease, RunOrchestrator
from repository.memory import InMemoryRepository
from sync_targets import GitHubTarget

PNG_BYTES = b'\x89PNG\r\n\x1a\nfake-image'


def seed_site(repository):
    """A small site: a parent page, a child with rich metadata and a draft."""
    asset = repository.create_asset(PNG_BYTES, 'hero.png', source_path='_images/hero.png')
    guides = add_item(repository, 1, 'Guides', body='<p>All guides.</p>')
    add_item(
        repository, 2, 'Install',
        body='<h2>Steps</h2><p>Run <code>make</code> then <em>relax</em>.</p><ul><li>One</li><li>Two</li></ul>',
        parent_id=guides.id,
        author_id=1,
        categories=['Docs'],
        tags=['setup', 'linux'],
        taxonomy=['level:Beginner'],
        featured_asset_id=asset.id,
        menu_order=3,
        comment_status='closed',
        sticky=True,
        meta={'color': 'blue', 'rank_math_description': 'How to install'}
    )
    add_item(repository, 3, 'Unfinished', status='draft')


class TestRunLease:
    def test_second_holder_is_refused(self, tmp_path):
        path = str(tmp_path / 'state' / 'run.lock')
        with RunLease(path, operation='export') as lease:
            assert lease.held
            with pytest.raises(PreconditionError) as excinfo:
                RunLease(path).acquire()
            assert excinfo.value.details['operation'] == 'export'

        assert not os.path.exists(path)

    def test_stale_lease_is_broken(self, tmp_path):
        path = tmp_path / 'run.lock'
        path.write_text('{}', encoding='utf-8')
        old = time.time() - 120
        os.utime(path, (old, old))

        lease = RunLease(str(path), ttl_seconds=60)
        lease.acquire()

        assert lease.held
        lease.release()
        assert not path.exists()


class TestRunOrchestrator:
    def make_orchestrator(self, config, repository, streamer=None, **kwargs):
        return RunOrchestrator(config, repository=repository, streamer=streamer,
                               clock=fixed_clock, **kwargs)

    def test_export_flushes_run_log(self, config, repository, streamer):
        add_item(repository, 1, 'Hello', body='<p>Hi</p>')
        orchestrator = self.make_orchestrator(config, repository, streamer)

        report = orchestrator.run_export()

        assert report.success
        assert report.stats['item_count'] == 1
        assert report.message == 'Exported 1 item(s) as markdown-export-20240315-103000.zip'
        assert streamer.download_name == 'markdown-export-20240315-103000.zip'
        stored = orchestrator.read_last_log()
        assert stored == report.log_lines
        assert any('Found 1 item(s) to export.' in line for line in stored)
        assert orchestrator.read_last_log() == []
        assert not os.path.exists(config['advanced']['lock_path'])

    def test_no_content_is_reported(self, config, repository, streamer):
        report = self.make_orchestrator(config, repository, streamer).run_export()

        assert not report.success
        assert report.message == 'No content items matched the export filters'
        assert any('NoContentError: No content items matched' in line for line in report.log_lines)

    def test_file_system_error_fails_run(self, config, repository):
        class DeniedStreamer(CapturingStreamer):
            def stream(self, archive_path, download_name):
                raise PermissionError(13, 'Permission denied', '/srv/exports/x.zip')

        add_item(repository, 1, 'Hello')

        report = self.make_orchestrator(config, repository, DeniedStreamer()).run_export()

        assert not report.success
        assert report.message == 'Permission denied: /srv/exports/x.zip'
        assert any('PersistenceError: Permission denied (/srv/exports/x.zip)' in line
                   for line in report.log_lines)
        assert not os.path.exists(config['advanced']['lock_path'])

    def test_busy_lease_fails_run(self, config, repository, streamer):
        add_item(repository, 1, 'Hello')
        lock_path = config['advanced']['lock_path']
        os.makedirs(os.path.dirname(lock_path))
        with open(lock_path, 'w', encoding='utf-8') as f:
            f.write('{"operation": "scheduled_sync"}')

        report = self.make_orchestrator(config, repository, streamer).run_export()

        assert not report.success
        assert report.message == 'Another run is in progress'
        assert streamer.calls == 0
        assert os.path.exists(lock_path)

    def test_scheduled_sync_pushes_new_items_once(self, config, repository):
        config['sync']['github'].update(enabled=True, repo='octo/docs', token='gh-token')
        session = Mock()
        session.request.side_effect = [make_response(404, {'message': 'Not Found'}),
                                       make_response(201, {'content': {'sha': 'abc'}})]
        add_item(repository, 1, 'Hello', body='<p>Hi</p>')
        orchestrator = self.make_orchestrator(
            config, repository, github=GitHubTarget.from_config(config, session=session)
        )

        first = orchestrator.run_scheduled_sync()
        second = orchestrator.run_scheduled_sync()

        assert first.success
        assert first.stats['pushed'] == {'github': 1}
        assert first.stats['streamed_to'] is None
        assert second.success
        assert second.message == 'No new items'
        assert session.request.call_count == 2
        put_call = session.request.call_args_list[1]
        assert put_call[0][1].endswith('/contents/hello.md')

    def test_scheduled_sync_without_targets(self, config, repository):
        add_item(repository, 1, 'Hello')
        report = self.make_orchestrator(config, repository).run_scheduled_sync()

        assert report.success
        assert report.message == 'No sync target configured'
        assert EXPORTED_FLAG_KEY not in repository.get_item(1).meta

    def test_import_saves_owned_repository(self, config, tmp_path):
        document = tmp_path / 'note.md'
        document.write_text('---\ntitle: "Note"\nstatus: "publish"\n---\n\nHello\n', encoding='utf-8')
        orchestrator = RunOrchestrator(config, clock=fixed_clock)

        report = orchestrator.run_import(str(document))

        assert report.success
        assert report.stats == {'processed': 1, 'created': 1, 'updated': 0, 'skipped': 0}
        saved = InMemoryRepository.load(config['repository']['json_path'])
        assert [item.title for item in saved.items.values()] == ['Note']
        assert saved.get_item(1).body == '<p>Hello</p>'

    def test_unsupported_upload_fails_run(self, config, repository, tmp_path):
        upload = tmp_path / 'notes.txt'
        upload.write_text('hello', encoding='utf-8')

        report = self.make_orchestrator(config, repository).run_import(str(upload))

        assert not report.success
        assert report.message == 'Only ZIP archives or .md files are supported for import.'

    def test_remote_import_does_not_push_back(self, config, repository):
        config['sync']['github'].update(enabled=True, repo='octo/docs', token='gh-token')
        session = Mock()
        session.request.return_value = make_response(
            200, content=b'---\ntitle: "Remote"\n---\n\nFrom GitHub\n'
        )
        orchestrator = self.make_orchestrator(
            config, repository, github=GitHubTarget.from_config(config, session=session)
        )

        report = orchestrator.run_remote_import(SyncTarget.GITHUB, 'notes/remote.md')

        assert report.success
        assert report.message == 'Imported remote.md from github'
        assert report.stats['created'] == 1
        assert session.request.call_count == 1
        assert repository.find_item_by_slug('remote').title == 'Remote'

    def test_remote_import_unknown_target(self, config, repository):
        report = self.make_orchestrator(config, repository).run_remote_import('dropbox', 'x')

        assert not report.success
        assert report.message == 'Unknown sync target: dropbox'


class TestRoundTrip:
    def export_archive(self, config, repository, tmp_path, name):
        streamer = CapturingStreamer()
        report = RunOrchestrator(config, repository=repository, streamer=streamer,
                                 clock=fixed_clock).run_export()
        assert report.success
        archive = tmp_path / name
        archive.write_bytes(streamer.archive_bytes)
        return streamer.entries, str(archive)

    def test_reimport_into_same_repository_is_stable(self, config, repository, tmp_path):
        seed_site(repository)
        first_entries, archive = self.export_archive(config, repository, tmp_path, 'first.zip')
        assert sorted(first_entries) == ['guides.md', 'guides/install.md']

        report = RunOrchestrator(config, repository=repository, clock=fixed_clock).run_import(archive)

        assert report.stats == {'processed': 2, 'created': 0, 'updated': 2, 'skipped': 0}
        assert len(repository.items) == 3
        assert len(repository.assets) == 1

        second_entries, _ = self.export_archive(config, repository, tmp_path, 'second.zip')
        assert second_entries == first_entries

    def test_import_into_fresh_repository(self, config, repository, tmp_path):
        seed_site(repository)
        _, archive = self.export_archive(config, repository, tmp_path, 'export.zip')

        fresh = InMemoryRepository(base_url='https://copy.example.com')
        add_item(fresh, 50, 'Existing')
        report = RunOrchestrator(config, repository=fresh, clock=fixed_clock).run_import(archive)

        assert report.stats['created'] == 2
        guides = fresh.find_item_by_slug('guides')
        install = fresh.find_item_by_slug('install')
        assert guides.meta[ORIGINAL_ID_KEY] == 1
        assert install.meta[ORIGINAL_ID_KEY] == 2
        assert install.parent_id == guides.id
        assert install.title == 'Install'
        assert install.date == datetime(2024, 1, 3, 9, 0, 0)
        assert install.categories == ['Docs']
        assert install.taxonomy == ['level:Beginner']
        assert install.sticky is True
        assert install.featured_asset_id is None
        assert any('Could not resolve featured_image' in line for line in report.log_lines)


class TestCli:
    def write_config(self, config, tmp_path):
        path = tmp_path / 'config.yaml'
        path.write_text(yaml.safe_dump(config), encoding='utf-8')
        return str(path)

    def test_export_arguments(self):
        args = migrate.create_argument_parser().parse_args(
            ['export', '--status', 'draft', '--start-date', '2024-01-01', '--no-github', '--sync']
        )

        assert args.status == 'draft'
        assert args.start_date.isoformat() == '2024-01-01'
        assert args.github_enabled is False
        assert args.drive_enabled is None
        assert args.sync is True
        assert migrate._overrides(args).github_enabled is False

    def test_invalid_date_rejected(self):
        with pytest.raises(SystemExit):
            migrate.create_argument_parser().parse_args(['export', '--end-date', 'someday'])

    def test_show_log(self, config, tmp_path, capsys):
        assert migrate.main(['--config', self.write_config(config, tmp_path), 'show-log']) == 0
        assert 'No run log available' in capsys.readouterr().out

    def test_import_missing_file(self, config, tmp_path):
        path = self.write_config(config, tmp_path)
        assert migrate.main(['--config', path, 'import', str(tmp_path / 'missing.md')]) == 2

    def test_invalid_configuration(self, config, tmp_path):
        config['sync']['interval_minutes'] = 1
        assert migrate.main(['--config', self.write_config(config, tmp_path), 'show-log']) == 2

    def test_export_writes_archive(self, config, tmp_path):
        source = InMemoryRepository(base_url='https://blog.example.com')
        add_item(source, 1, 'Hello', body='<p>Hi</p>')
        repository_file = str(tmp_path / 'site.json')
        source.save(repository_file)
        output = tmp_path / 'out'

        code = migrate.main(['--config', self.write_config(config, tmp_path),
                             '--repository-file', repository_file,
                             'export', '--output', str(output)])

        assert code == 0
        archives = os.listdir(output)
        assert len(archives) == 1 and archives[0].endswith('.zip')
        saved = InMemoryRepository.load(repository_file)
        assert saved.get_item(1).meta[EXPORTED_FLAG_KEY] == 'yes'
