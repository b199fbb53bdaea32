#!/usr/bin/env python3
"""
pledger CLI - personal ledger command line interface.

Main entry point for managing the ledger and networth files and pushing
them to Firefly III.

Usage:
    pledger configure
    pledger create [--networth]
    pledger book [--networth] [-a VALUE ...]
    pledger edit [--networth] [--line N]
    pledger sort [--networth]
    pledger push
"""

import argparse
import logging
import os
import subprocess
import sys
from pathlib import Path
from typing import List, Optional

from pledger.core.config import Config, config_path, load_config
from pledger.core.exceptions import ExistingFileError, PledgerError, UndefinedEditorError
from pledger.core.models import Mode, build_line
from pledger.core.resource import Resource
from pledger.services.firefly import FireflyClient
from pledger.services.sync.push import Push

logger = logging.getLogger(__name__)

MISSING_KEY = "There is no key set up: add a 'firefly' section to the configuration"
EXIT_MISSING_KEY = 2


def setup_logging(verbose: bool = False, debug: bool = False):
    """Configure logging."""
    if debug or os.environ.get("PLEDGER_DEBUG"):
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


def get_mode(args) -> Mode:
    return Mode.NETWORTH if getattr(args, "networth", False) else Mode.LEDGER


def open_resource(config: Config, mode: Mode) -> Resource:
    return Resource.open(config.filepath(mode), mode, config.passphrase)


# ============================================================================
# Command Handlers
# ============================================================================

def cmd_configure(args, config_file: Optional[Path]):
    """Handle configure command - write the default configuration."""
    target = Path(config_file) if config_file else config_path()
    if target.exists() and not args.force:
        raise ExistingFileError(str(target))

    Config.default(target).save(target)
    print(f"Generated default configuration on {target}")
    return 0


def cmd_create(args, config: Config):
    """Handle create command - write a file holding only the headers."""
    mode = get_mode(args)

    with open_resource(config, mode) as resource:
        if resource.exists() and not args.force:
            raise ExistingFileError(str(resource.filepath))
        resource.create()
        print(f"Generated default file on {resource.filepath}")
    return 0


def collect_attributes(headers: List[str]) -> List[str]:
    """Prompt for each column, in order."""
    values = []
    for name in headers:
        try:
            values.append(input(f"{name}: "))
        except EOFError:
            values.append("")
    return values


def cmd_book(args, config: Config):
    """Handle book command - append one line to the file."""
    mode = get_mode(args)

    with open_resource(config, mode) as resource:
        values = list(args.attributes or [])
        if not values:
            values = collect_attributes([h for h in resource.headers() if h != "Id"])

        try:
            line = build_line(values, mode)
        except ValueError as e:
            print(f"Invalid {mode.value} line: {e}", file=sys.stderr)
            return 1

        resource.book([line])
        logger.info("Booked %s line dated %s", mode.value, line.date)
    return 0


def cmd_edit(args, config: Config):
    """Handle edit command - open the decrypted copy in $EDITOR."""
    editor = os.environ.get("EDITOR")
    if not editor:
        raise UndefinedEditorError()

    mode = get_mode(args)

    def run_editor(path: Path):
        target = f"{path}:{args.line}" if args.line else str(path)
        subprocess.run([editor, target], check=False)

    with open_resource(config, mode) as resource:
        resource.apply(run_editor)
        # Validate after saving so manual changes are never lost
        count = len(resource.lines())

    print(f"{count} {mode.value} line(s) validated")
    return 0


def cmd_sort(args, config: Config):
    """Handle sort command - rewrite the file ordered by date."""
    mode = get_mode(args)

    with open_resource(config, mode) as resource:
        lines = sorted(resource.lines(), key=lambda line: line.date)
        resource.create_with(lines)

    print(f"Sorted {len(lines)} {mode.value} line(s)")
    return 0


def cmd_push(args, config: Config):
    """Handle push command - reconcile both files with Firefly III."""
    if config.firefly is None:
        print(MISSING_KEY, file=sys.stderr)
        return EXIT_MISSING_KEY

    client = FireflyClient(config.firefly.base_path, config.firefly.token)
    summary = Push(client, config).perform()

    for mode, count in summary.synced.items():
        print(f"{mode.value}: pushed {count} of {summary.reconcilable.get(mode, 0)} line(s)")
    print(f"Pushed {summary.total_synced()} line(s) in total")
    return 0


# ============================================================================
# Main
# ============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='pledger',
        description='pledger - personal ledger and networth tracker',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  pledger configure
  pledger create --networth
  pledger book -a Bank 2024-06-15 Groceries Supermarket 1 Shop -12.50 EUR ""
  pledger edit --line 42
  pledger sort
  pledger push
        """
    )

    # Global arguments
    parser.add_argument('--verbose', '-v', action='store_true', help='Verbose output')
    parser.add_argument('--debug', action='store_true', help='Debug output')
    parser.add_argument('--config', '-c', help='Configuration file')

    # Subcommands
    subparsers = parser.add_subparsers(dest='command', help='Command')

    configure_parser = subparsers.add_parser(
        'configure', help='Write the default configuration file')
    configure_parser.add_argument('--force', '-f', action='store_true',
                                  help='Overwrite an existing configuration')

    create_parser = subparsers.add_parser('create', help='Create a new ledger/networth file')
    create_parser.add_argument('--networth', '-n', action='store_true',
                               help='Create networth CSV instead of ledger CSV')
    create_parser.add_argument('--force', '-f', action='store_true',
                               help='Override the existing file')

    book_parser = subparsers.add_parser('book', help='Add a line to the ledger or networth')
    book_parser.add_argument('--networth', '-n', action='store_true',
                             help='Add an entry to networth CSV instead of ledger CSV')
    book_parser.add_argument('--attributes', '-a', nargs='+',
                             help='Values of the line, in column order')

    edit_parser = subparsers.add_parser('edit', help='Open ledger/networth file in $EDITOR')
    edit_parser.add_argument('--networth', '-n', action='store_true',
                             help='Open networth CSV instead of ledger CSV')
    edit_parser.add_argument('--line', '-l', type=int, help='Line in which to open the file')

    sort_parser = subparsers.add_parser('sort', help='Sort the entries by date')
    sort_parser.add_argument('--networth', '-n', action='store_true',
                             help='Sort networth CSV instead of ledger CSV')

    subparsers.add_parser('push', help='Push local changes to Firefly III')

    return parser


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    setup_logging(args.verbose, args.debug)

    config_file = Path(args.config).expanduser() if args.config else None

    try:
        if args.command == 'configure':
            return cmd_configure(args, config_file)

        config = load_config(config_file)

        if args.command == 'create':
            return cmd_create(args, config)
        elif args.command == 'book':
            return cmd_book(args, config)
        elif args.command == 'edit':
            return cmd_edit(args, config)
        elif args.command == 'sort':
            return cmd_sort(args, config)
        elif args.command == 'push':
            return cmd_push(args, config)
        else:
            parser.print_help()
            return 1

    except KeyboardInterrupt:
        print("\nOperation cancelled", file=sys.stderr)
        return 130
    except PledgerError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        if args.debug:
            import traceback
            traceback.print_exc()
        return 1
    except Exception as e:
        print(f"\nError: {e}", file=sys.stderr)
        if args.debug:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
