"""Main CLI entry point for lockbuddy."""

import argparse
import logging
import sys
from typing import Optional

from . import __version__
from .commands.duplicates import handle_duplicates
from .commands.list import handle_list
from .errors import LockBuddyError

logger = logging.getLogger(__name__)

LOG_LEVELS = ['TRACE', 'DEBUG', 'INFO', 'WARN', 'ERROR']


def setup_logging(verbose: bool = False, log_level: Optional[str] = None):
    """Configure logging based on verbosity flags."""
    if log_level:
        # TRACE has no stdlib level; treat it as DEBUG
        name = {'TRACE': 'DEBUG', 'WARN': 'WARNING'}.get(log_level.upper(), log_level.upper())
        level = getattr(logging, name, logging.WARNING)
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format='%(levelname)s: %(message)s'
    )


def positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be a positive integer: {value}")
    return number


def add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument('-f', '--file',
                        help='Path to pnpm-lock.yaml (default: $PNPM_LOCK_PATH or ./pnpm-lock.yaml)')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Verbose output')
    parser.add_argument('--loglevel', choices=LOG_LEVELS,
                        help='Set log level')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='lockbuddy',
        description='Find duplicate and mis-hoisted packages in pnpm lockfiles'
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

    subparsers = parser.add_subparsers(dest='command', help='Subcommands')

    # List command
    list_parser = subparsers.add_parser('list', aliases=['search'],
                                        help='Show where a package appears in the lockfile')
    list_parser.add_argument('package', nargs='?',
                             help='Package name, optionally with a version or range (e.g. react@^18)')
    add_common_arguments(list_parser)
    list_parser.add_argument('-e', '--exact', action='store_true',
                             help='Match versions literally instead of as ranges')
    list_parser.add_argument('-p', '--project', action='append',
                             help='Only search the declarations of this project (repeatable)')
    list_parser.add_argument('-o', '--output', dest='output_format', default='tree',
                             choices=['tree', 'json', 'list', 'sbom'],
                             help='Output format (tree, json, list, sbom). Default: tree')
    list_parser.set_defaults(func=handle_list)

    # Duplicates command
    dupes_parser = subparsers.add_parser('duplicates', aliases=['dupes'],
                                         help='Find packages resolved to more than one instance')
    dupes_parser.add_argument('packages', nargs='*',
                              help='Package names or globs to check (e.g. react "@types/*")')
    add_common_arguments(dupes_parser)
    dupes_parser.add_argument('-a', '--all', action='store_true',
                              help='Show every package, not only duplicates')
    dupes_parser.add_argument('-p', '--per-project', action='store_true',
                              help='Group duplicates by project')
    dupes_parser.add_argument('--project', action='append',
                              help='Only consider this project (repeatable)')
    dupes_parser.add_argument('--omit', action='append', choices=['dev', 'optional', 'peer'],
                              help='Leave out a dependency kind (repeatable)')
    dupes_parser.add_argument('--deps', action='store_true',
                              help='Show dependency paths for each instance')
    dupes_parser.add_argument('--deps-depth', type=positive_int,
                              help='Shorten dependency paths longer than this')
    dupes_parser.add_argument('--max-depth', type=positive_int, default=10,
                              help='Maximum dependency tree depth. Default: 10')
    dupes_parser.add_argument('--hoist', action='store_true',
                              help='Compare with hoisted packages in node_modules/.modules.yaml')
    dupes_parser.add_argument('--modules-dir',
                              help='node_modules directory for --hoist (default: next to the lockfile)')
    dupes_parser.add_argument('--lockfile-only', action='store_true',
                              help='Build trees from the lockfile even if pnpm is installed')
    dupes_parser.add_argument('--exit-code', action='store_true',
                              help='Exit with status 1 when duplicates are found')
    dupes_parser.add_argument('-o', '--output', dest='output_format', default='tree',
                              choices=['tree', 'json'],
                              help='Output format (tree, json). Default: tree')
    dupes_parser.set_defaults(func=handle_duplicates)

    return parser


def main(argv=None):
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    setup_logging(args.verbose, args.loglevel)

    # Execute command
    try:
        return args.func(args)
    except LockBuddyError as e:
        logger.debug(f"{type(e).__name__}: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
