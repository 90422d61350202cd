"""
Command line interface for Archivist.

    archivist file urls.txt        # archive every URL listed in a file
    archivist url https://...      # archive a single URL
    archivist batch URL1,URL2      # archive a comma-separated list
    archivist check https://...    # only ask whether a URL is archived
    archivist stats                # summary of the last run
"""

import argparse
import logging
import sys
from typing import List, Optional

from archivist import __version__
from archivist.core.controller import Archivist, load_run_config
from archivist.core.logger import initialize_logging
from archivist.core.models import BatchSummary, RunStatus
from archivist.utils.validators import load_urls_from_file, parse_url_list, validate_url


EPILOG = """
Examples:
    archivist file urls.txt
    archivist url https://example.com/page
    archivist batch https://example.com/a,https://example.com/b
    archivist check https://example.com/page
    archivist stats
"""


class ArchivistArgumentParser(argparse.ArgumentParser):
    """Prints the full help on any usage error and exits with status 1."""

    def error(self, message):
        sys.stderr.write(f"Error: {message}\n\n")
        self.print_help(sys.stderr)
        sys.exit(1)


def build_parser() -> ArchivistArgumentParser:
    parser = ArchivistArgumentParser(
        prog='archivist',
        description='Archivist - batch archiving to the Wayback Machine',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=EPILOG,
    )
    parser.add_argument('-v', '--version', action='version', version=f'archivist v{__version__}')
    parser.add_argument('--data-dir', type=str, default=None,
                        help='Directory for the results file and attempt log (default: data)')
    parser.add_argument('--docs-dir', type=str, default=None,
                        help='Directory for text reports (default: docs)')
    parser.add_argument('--settings', type=str, default=None,
                        help='JSON settings file overriding the defaults')
    parser.add_argument('--headed', action='store_true',
                        help='Show the browser window')
    parser.add_argument('--log-dir', type=str, default='logs',
                        help='Directory for log files (default: logs)')
    parser.add_argument('--debug', action='store_true',
                        help='Show debug messages on the console')

    commands = parser.add_subparsers(dest='command', metavar='command')

    file_cmd = commands.add_parser('file', help='Archive every URL listed in a file (one per line)')
    file_cmd.add_argument('path', help='Path to the URL file')

    url_cmd = commands.add_parser('url', help='Archive a single URL')
    url_cmd.add_argument('url', help='URL to archive')

    batch_cmd = commands.add_parser('batch', help='Archive a comma-separated list of URLs')
    batch_cmd.add_argument('urls', help='URL1,URL2,...')

    check_cmd = commands.add_parser('check', help='Check whether a URL is already archived')
    check_cmd.add_argument('url', help='URL to check')

    commands.add_parser('stats', help='Show statistics of the last run')

    return parser


def print_summary(summary: BatchSummary, report_path: Optional[str] = None):
    print("")
    print("=" * 50)
    print("ARCHIVING SUMMARY")
    print("=" * 50)
    print(f"Total:    {summary.total}")
    print(f"Archived: {summary.archived}")
    print(f"Failed:   {summary.failed}")
    print(f"Pending:  {summary.pending}")
    print(f"Status:   {summary.status.value}")
    if summary.status == RunStatus.LIMIT_REACHED:
        print("Daily capture limit reached. Run again tomorrow for the pending URLs.")
    if report_path:
        print(f"Report:   {report_path}")


def print_stats(stats: dict):
    if stats['status'] == RunStatus.NO_DATA.value:
        print("No archiving data found. Run a batch first.")
        return
    summary = stats['summary']
    print("ARCHIVING STATISTICS")
    print("=" * 50)
    print(f"Last run: {stats['timestamp']}")
    print(f"Status:   {stats['status']}")
    print(f"Total:    {summary['total']}")
    print(f"Archived: {summary['archived']}")
    print(f"Failed:   {summary['failed']}")
    print(f"Pending:  {summary['pending']}")
    print(f"Success rate: {stats['success_rate']:.1f}%")
    if stats['successful_urls']:
        print("")
        print("Archived URLs:")
        for url in stats['successful_urls']:
            print(f"  {url}")


def _collect_urls(args) -> List[str]:
    """
    URLs named on the command line or in the URL file.

    Raises:
        OSError: If the URL file cannot be read
        ValueError: If no valid URL was given
    """
    if args.command == 'file':
        urls = load_urls_from_file(args.path)
        if not urls:
            raise ValueError(f"no valid URLs found in {args.path}")
        return urls

    if args.command == 'url':
        ok, url, err = validate_url(args.url)
        if not ok:
            raise ValueError(f"invalid URL '{args.url}': {err}")
        return [url]

    urls = parse_url_list(args.urls)
    if not urls:
        raise ValueError("no valid URLs in the list")
    return urls


def _run_batch(app: Archivist, args) -> int:
    try:
        urls = _collect_urls(args)
    except (OSError, ValueError) as e:
        print(f"Error: {e}")
        return 1

    print("Testing connection to the Wayback Machine...")
    if not app.test_connection():
        print("Error: the Wayback Machine is not reachable. Check your connection and try again.")
        return 1

    print(f"Archiving {len(urls)} URLs")
    summary = app.archive_urls(urls)

    print_summary(summary, app.report_path)
    return 1 if summary.status == RunStatus.ERROR else 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    initialize_logging(args.log_dir, logging.DEBUG if args.debug else logging.INFO)

    try:
        config = load_run_config(
            args.settings,
            data_dir=args.data_dir,
            docs_dir=args.docs_dir,
            headless=False if args.headed else None,
        )
    except (OSError, ValueError) as e:
        print(f"Error: could not load settings: {e}")
        return 1

    app = Archivist(config)
    try:
        if args.command == 'stats':
            print_stats(app.stats())
            return 0

        if args.command == 'check':
            ok, url, err = validate_url(args.url)
            if not ok:
                print(f"Error: invalid URL '{args.url}': {err}")
                return 1
            outcome = app.check(url)
            if outcome.archived:
                print(f"Archived: {outcome.snapshot_url}")
            elif outcome.error:
                print(f"Could not determine archive status: {outcome.error.message}")
                return 1
            else:
                print("Not archived yet")
            return 0

        return _run_batch(app, args)
    finally:
        app.close()


if __name__ == '__main__':
    sys.exit(main())
