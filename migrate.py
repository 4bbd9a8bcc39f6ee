#!/usr/bin/env python3
"""
Posts Markdown Sync - Main CLI Entry Point

Exports repository items to a ZIP of Markdown documents, imports Markdown
documents and archives back, and keeps GitHub and Google Drive copies in
sync on a schedule.
"""

import argparse
import logging
import os
import sys
import time
from datetime import date
from typing import Optional

from dateutil import parser as date_parser

from config_loader import ConfigLoader, get_nested
from exporters import StdoutStreamer
from logger import RunLogStore, log_config, log_section, setup_logging
from models import ExportFilter, RunReport, SyncOverrides, SyncTarget
from orchestrator import RunOrchestrator

__version__ = "1.0.0"

DEFAULT_CONFIG_PATH = 'config.yaml'


def _parse_date(value: str) -> date:
    try:
        return date_parser.parse(value).date()
    except (ValueError, OverflowError):
        raise argparse.ArgumentTypeError(f"Invalid date: {value}")


def create_argument_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for CLI."""
    parser = argparse.ArgumentParser(
        description="Export posts to Markdown archives, import them back and sync copies to GitHub or Drive",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Export published posts to ./exports
  python migrate.py export

  # Export drafts from 2024 and push them to GitHub only
  python migrate.py export --status draft --start-date 2024-01-01 --end-date 2024-12-31 --sync --no-drive

  # Import an archive produced by an export
  python migrate.py import markdown-export-20240101-120000.zip

  # Import a document stored in the GitHub repository
  python migrate.py pull github posts/hello-world.md

  # Run the scheduled sync every sync.interval_minutes
  python migrate.py sync --loop

  # Print the log of the last run
  python migrate.py show-log
        """
    )

    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument(
        '--config',
        type=str,
        default=DEFAULT_CONFIG_PATH,
        help=f'Path to configuration YAML file (default: {DEFAULT_CONFIG_PATH})'
    )
    parser.add_argument(
        '--repository-file',
        type=str,
        help='Use this JSON repository file instead of the configured repository'
    )
    parser.add_argument('--log-file', type=str, help='Also write logs to this file')
    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        help='Explicit log level (overrides -v)'
    )
    parser.add_argument(
        '-v', '--verbose',
        action='count',
        default=0,
        help='Increase verbosity (-v for INFO, -vv for DEBUG)'
    )

    subparsers = parser.add_subparsers(dest='command', required=True)

    export_parser = subparsers.add_parser('export', help='Export items to a ZIP of Markdown documents')
    export_parser.add_argument(
        '--status',
        default='publish',
        help="Status filter: publish, draft, pending, future or 'any' (default: publish)"
    )
    export_parser.add_argument('--author', type=int, dest='author_id', help='Author id filter')
    export_parser.add_argument('--start-date', type=_parse_date, help='Earliest item date (inclusive)')
    export_parser.add_argument('--end-date', type=_parse_date, help='Latest item date (inclusive)')
    export_parser.add_argument(
        '--exclude-exported',
        action='store_true',
        help='Skip items already flagged as exported'
    )
    export_parser.add_argument('--output', dest='output_dir', help='Directory the archive is written to')
    export_parser.add_argument(
        '--no-download',
        action='store_true',
        help='Do not write the archive anywhere (useful with --sync)'
    )
    export_parser.add_argument(
        '--stdout',
        action='store_true',
        help='Write the archive bytes to standard output'
    )
    _add_sync_arguments(export_parser)
    export_parser.add_argument(
        '--sync',
        action=argparse.BooleanOptionalAction,
        default=None,
        help='Push documents to enabled targets (default: sync.auto_sync)'
    )

    import_parser = subparsers.add_parser('import', help='Import a .zip archive or .md document')
    import_parser.add_argument('file', help='Archive or document to import')
    _add_sync_arguments(import_parser)

    pull_parser = subparsers.add_parser('pull', help='Download and import a file from a sync target')
    pull_parser.add_argument('target', choices=[target.value for target in SyncTarget])
    pull_parser.add_argument('reference', help='Repository path (github) or file id (drive)')

    sync_parser = subparsers.add_parser('sync', help='Export new items to every fully configured target')
    sync_parser.add_argument(
        '--loop',
        action='store_true',
        help='Repeat every sync.interval_minutes until interrupted'
    )
    sync_parser.add_argument('--interval', type=int, help='Override sync.interval_minutes')

    subparsers.add_parser('show-log', help='Print and clear the log of the last run')

    return parser


def _add_sync_arguments(subparser: argparse.ArgumentParser) -> None:
    for target in SyncTarget:
        subparser.add_argument(
            f'--{target.value}',
            dest=f'{target.value}_enabled',
            action=argparse.BooleanOptionalAction,
            default=None,
            help=f'Enable or disable {target.value} sync for this run'
        )


def _overrides(args: argparse.Namespace) -> SyncOverrides:
    return SyncOverrides(
        github_enabled=getattr(args, 'github_enabled', None),
        drive_enabled=getattr(args, 'drive_enabled', None)
    )


def load_configuration(args: argparse.Namespace, logger: logging.Logger) -> dict:
    """Load, merge and validate configuration; a missing default file falls back to defaults."""
    if args.config == DEFAULT_CONFIG_PATH and not os.path.exists(args.config):
        logger.info(f"{args.config} not found, using default configuration")
        config = ConfigLoader.defaults()
    else:
        logger.info(f"Loading configuration from {args.config}")
        config = ConfigLoader.load(args.config)

    config = ConfigLoader.merge_with_args(config, args)
    ConfigLoader.validate(config)
    return config


def print_report(report: RunReport, stream=None) -> None:
    """Print a run summary."""
    stream = stream or sys.stdout
    status = "OK" if report.success else "FAILED"
    print(f"\n[{status}] {report.operation}: {report.message}", file=stream)
    for key, value in report.stats.items():
        if key == 'paths':
            continue
        print(f"  {key}: {value}", file=stream)


def run_command(args: argparse.Namespace, config: dict, logger: logging.Logger) -> int:
    """Dispatch the selected subcommand and return the exit code."""
    if args.command == 'show-log':
        store = RunLogStore(get_nested(config, 'logging.run_log_path'))
        lines = store.read(clear=True)
        if not lines:
            print("No run log available (it may have expired).")
        for line in lines:
            print(line)
        return 0

    config_path = args.config if os.path.exists(args.config) else None

    if args.command == 'export':
        streamer = StdoutStreamer() if args.stdout else None
        orchestrator = RunOrchestrator(config, config_path, streamer=streamer)
        filters = ExportFilter(
            status=args.status,
            author_id=args.author_id,
            start_date=args.start_date,
            end_date=args.end_date,
            exclude_exported=args.exclude_exported
        )
        report = orchestrator.run_export(filters, _overrides(args), stream=not args.no_download,
                                         sync=args.sync)
        print_report(report, sys.stderr if args.stdout else None)
        return 0 if report.success else 1

    orchestrator = RunOrchestrator(config, config_path)

    if args.command == 'import':
        if not os.path.isfile(args.file):
            logger.error(f"File not found: {args.file}")
            return 2
        report = orchestrator.run_import(args.file, overrides=_overrides(args))
    elif args.command == 'pull':
        report = orchestrator.run_remote_import(SyncTarget(args.target), args.reference)
    elif args.command == 'sync':
        return _run_sync(orchestrator, config, args.loop, logger)
    else:
        logger.error(f"Unknown command: {args.command}")
        return 2

    print_report(report)
    return 0 if report.success else 1


def _run_sync(orchestrator: RunOrchestrator, config: dict, loop: bool,
              logger: logging.Logger) -> int:
    interval = get_nested(config, 'sync.interval_minutes', 15)
    while True:
        report = orchestrator.run_scheduled_sync()
        print_report(report)
        if not loop:
            return 0 if report.success else 1
        logger.info(f"Next sync in {interval} minutes")
        time.sleep(interval * 60)


def main(argv: Optional[list] = None) -> int:
    """Main entry point for the CLI."""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    try:
        setup_logging(verbosity=args.verbose, level=args.log_level)
        logger = logging.getLogger('posts_markdown_sync.cli')

        log_section("Posts Markdown Sync")
        logger.info(f"Version: {__version__}")

        config = load_configuration(args, logger)

        setup_logging(
            verbosity=args.verbose,
            log_file=get_nested(config, 'logging.file'),
            level=get_nested(config, 'logging.level')
        )
        log_config(config)

        return run_command(args, config, logger)

    except FileNotFoundError as e:
        print(f"ERROR: File not found: {e}", file=sys.stderr)
        return 2
    except ValueError as e:
        print(f"ERROR: Configuration error: {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
