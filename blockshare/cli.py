"""
Command-line entry point for publishing documents.

Subcommands publish a document, unpublish it, purge its stored assets, or
list the shares recorded locally or on the share server.
"""

import argparse
import logging
import os
import sys
from typing import Dict, Optional

from tqdm import tqdm

from blockshare import __version__
from blockshare.config_loader import ConfigLoader, get_nested
from blockshare.errors import ConfigurationError, PublisherError
from blockshare.logger import log_config, log_section, setup_logging
from blockshare.models import PublishOptions, UploadProgress, UploadStatus
from blockshare.orchestrator import PublishOrchestrator

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2
EXIT_INTERRUPTED = 130


class UploadProgressBars:
    """Renders upload progress events as one tqdm bar per file."""

    def __init__(self, disable: bool = False):
        self.disable = disable
        self._bars: Dict[str, tqdm] = {}

    def __call__(self, event: UploadProgress) -> None:
        bar = self._bars.get(event.file_name)
        if bar is None:
            bar = tqdm(
                total=event.total_bytes,
                desc=os.path.basename(event.file_name),
                unit='B',
                unit_scale=True,
                leave=True,
                disable=self.disable,
            )
            self._bars[event.file_name] = bar

        if event.status in (UploadStatus.PENDING, UploadStatus.UPLOADING):
            bar.update(event.bytes_sent - bar.n)
        elif event.status == UploadStatus.SUCCESS:
            bar.update(event.total_bytes - bar.n)
            bar.close()
            del self._bars[event.file_name]
        else:
            bar.set_postfix_str(f"failed: {event.error}")
            bar.close()
            del self._bars[event.file_name]


def create_argument_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for CLI."""
    parser = argparse.ArgumentParser(
        prog='blockshare',
        description="Publish SiYuan documents to a share server with assets on S3-compatible storage",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Publish a document for 7 days
  blockshare publish 20240101120000-abcdefg --title "Release notes"

  # Password-protected, private, 30 days
  blockshare publish 20240101120000-abcdefg --password s3cret --private --expire-days 30

  # Remove the share and its uploaded assets
  blockshare unpublish 20240101120000-abcdefg

  # Remove several shares with one registry call
  blockshare unpublish 20240101120000-abcdefg 20240101120000-hijklmn

  # Refresh local records from the share server
  blockshare list --sync

  # Verbose logging
  blockshare -vv list
        """
    )

    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument(
        '-c', '--config',
        type=str,
        default='config.yaml',
        help='Path to configuration YAML file (default: config.yaml)'
    )
    parser.add_argument(
        '-v', '--verbose',
        action='count',
        default=0,
        help='Increase verbosity (-v for INFO, -vv for DEBUG)'
    )
    parser.add_argument('--log-file', type=str, help='Also write logs to this file')
    parser.add_argument('--kernel-url', type=str, help='Kernel base URL (overrides config)')
    parser.add_argument('--server-url', type=str, help='Share server URL (overrides config)')

    subparsers = parser.add_subparsers(dest='command', required=True)

    publish = subparsers.add_parser('publish', help='Publish a document')
    publish.add_argument('doc_id', help='Document block id')
    publish.add_argument('--title', type=str, help='Document title (defaults to the id)')
    publish.add_argument('--password', type=str, help='Require this password to view')
    publish.add_argument('--expire-days', type=int, help='Days until the share expires')
    publish.add_argument('--private', action='store_true', help='Do not list the share publicly')
    publish.add_argument('--no-assets', action='store_true', help='Keep local asset links, upload nothing')
    publish.add_argument('--no-progress', action='store_true', help='Disable upload progress bars')
    publish.add_argument('--refresh', action='store_true', help='Ignore cached document content')

    unpublish = subparsers.add_parser('unpublish', help='Delete shares and their uploaded assets')
    unpublish.add_argument('doc_ids', nargs='+', metavar='doc_id', help='Document block ids')

    purge = subparsers.add_parser('purge-assets', help='Delete the uploaded assets of a document')
    purge.add_argument('doc_id', help='Document block id')

    list_parser = subparsers.add_parser('list', help='List recorded shares')
    list_parser.add_argument('--sync', action='store_true', help='Refresh local records from the share server first')

    return parser


def run_publish(orchestrator: PublishOrchestrator, config: dict, args: argparse.Namespace) -> int:
    expire_days = args.expire_days or get_nested(config, 'share.default_expire_days', 7)
    is_public = False if args.private else get_nested(config, 'share.default_public', True)
    options = PublishOptions(
        doc_id=args.doc_id,
        doc_title=args.title or args.doc_id,
        password=args.password,
        expire_days=expire_days,
        is_public=is_public,
    )

    progress = UploadProgressBars(disable=args.no_progress)
    result = orchestrator.publish(options, progress_callback=progress, use_cache=not args.refresh)

    print(result.record.share_url)
    for warning in result.warnings:
        print(f"WARNING: {warning}", file=sys.stderr)
    return EXIT_OK


def run_delete(orchestrator: PublishOrchestrator, args: argparse.Namespace) -> int:
    if args.command == 'unpublish' and len(args.doc_ids) > 1:
        outcome, result = orchestrator.unpublish_many(args.doc_ids)
        print(f"Deleted {len(outcome['deleted'])} share(s), {len(outcome['notFound'])} already gone")
    elif args.command == 'unpublish':
        result = orchestrator.unpublish(args.doc_ids[0])
    else:
        result = orchestrator.purge_assets(args.doc_id)

    print(f"Deleted {len(result.success)} object(s)")
    for failure in result.failed:
        print(f"FAILED: {failure['key']}: {failure['error']}", file=sys.stderr)
    return EXIT_FAILURE if result.failed else EXIT_OK


def run_list(orchestrator: PublishOrchestrator, sync: bool = False) -> int:
    records = orchestrator.list_shares(sync=sync)
    if not records:
        print("No shares recorded")
        return EXIT_OK
    for record in records:
        flags = []
        if record.require_password:
            flags.append('password')
        if not record.is_public:
            flags.append('private')
        suffix = f" [{', '.join(flags)}]" if flags else ''
        print(f"{record.doc_id}  {record.share_url}  expires {record.expire_at or '-'}{suffix}")
    return EXIT_OK


def main(argv: Optional[list] = None) -> int:
    """Main entry point for the CLI."""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    try:
        setup_logging(verbosity=args.verbose)
        logger = logging.getLogger('blockshare.cli')
        log_section("SiYuan Share Publisher")
        logger.info(f"Version: {__version__}")

        config = ConfigLoader.load(args.config)
        config = ConfigLoader.merge_with_args(config, args)
        ConfigLoader.validate(config)

        setup_logging(
            verbosity=args.verbose,
            log_file=get_nested(config, 'logging.file'),
            level=get_nested(config, 'logging.level') if not args.verbose else None,
        )
        log_config(config)

        orchestrator = PublishOrchestrator.from_config(config)

        if args.command == 'publish':
            return run_publish(orchestrator, config, args)
        if args.command in ('unpublish', 'purge-assets'):
            return run_delete(orchestrator, args)
        return run_list(orchestrator, sync=args.sync)

    except FileNotFoundError as e:
        print(f"ERROR: File not found: {e}", file=sys.stderr)
        return EXIT_CONFIG
    except (ValueError, ConfigurationError) as e:
        print(f"ERROR: Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG
    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        return EXIT_INTERRUPTED
    except PublisherError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
