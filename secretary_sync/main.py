#!/usr/bin/env python3
"""
secretary-sync - local-first task store with remote synchronization.

Command line entry point.
"""

import argparse
import logging
import sys

from secretary_sync.context import AppContext
from secretary_sync.core.config import get_default_config_path, load_config
from secretary_sync.core.exceptions import SecretarySyncError
from secretary_sync.core.models import Priority, Section
from secretary_sync.commands import (
    AddCommand,
    CompleteCommand,
    DedupCommand,
    DeleteCommand,
    ExportCommand,
    ImportCommand,
    ListCommand,
    SearchCommand,
    StatusCommand,
    SweepCommand,
)

SECTION_CHOICES = [s.value for s in Section]
PRIORITY_CHOICES = [p.value for p in Priority]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="secretary-sync",
        description="Local-first task store with remote synchronization",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  secretary-sync add "Buy milk" --section today --priority high
  secretary-sync list --section today --completed pending
  secretary-sync search milk
  secretary-sync sweep                 # Push pending records
  secretary-sync sweep --watch         # Keep sweeping in the background
  secretary-sync dedup --apply         # Remove duplicate tasks
        """
    )

    default_config = get_default_config_path()

    parser.add_argument(
        '--config',
        help=f'Path to configuration file (default: {default_config})',
        default=None
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Verbose output'
    )

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # Status command
    status_parser = subparsers.add_parser('status', help='Show sync status')
    status_parser.add_argument('--json', action='store_true', help='Print status as JSON')

    # Sweep command
    sweep_parser = subparsers.add_parser('sweep', help='Push pending records to the remote store')
    sweep_parser.add_argument(
        '--retry-errors',
        action='store_true',
        help='Re-queue records that exhausted their retry attempts first'
    )
    sweep_parser.add_argument(
        '--watch',
        action='store_true',
        help='Keep sweeping every sweep_interval seconds until interrupted'
    )

    # Add command
    add_parser = subparsers.add_parser('add', help='Create a task')
    add_parser.add_argument('text', help='Task description')
    add_parser.add_argument('--section', choices=SECTION_CHOICES, default='undated')
    add_parser.add_argument('--priority', choices=PRIORITY_CHOICES, default='medium')
    add_parser.add_argument('--date', help='Due date (YYYY-MM-DD)')

    # List command
    list_parser = subparsers.add_parser('list', help='List tasks')
    list_parser.add_argument('--section', choices=SECTION_CHOICES + ['all'])
    list_parser.add_argument('--priority', choices=PRIORITY_CHOICES + ['all'])
    list_parser.add_argument('--completed', choices=['completed', 'pending', 'all'])
    list_parser.add_argument('--page-size', type=int, help='Tasks per page')
    list_parser.add_argument('--cursor', help='Cursor printed by the previous page')

    # Search command
    search_parser = subparsers.add_parser('search', help='Search task text')
    search_parser.add_argument('query', help='Words or word prefixes to match')

    # Complete command
    complete_parser = subparsers.add_parser('complete', help='Mark a task completed')
    complete_parser.add_argument('task_id', help='Task id')
    complete_parser.add_argument('--undo', action='store_true', help='Mark the task not completed')

    # Delete command
    delete_parser = subparsers.add_parser('delete', help='Delete a task')
    delete_parser.add_argument('task_id', help='Task id')

    # Dedup command
    dedup_parser = subparsers.add_parser('dedup', help='Find duplicate tasks')
    dedup_parser.add_argument(
        '--apply',
        action='store_true',
        help='Remove duplicates (default is dry-run)'
    )

    # Backup commands
    export_parser = subparsers.add_parser('export', help='Export local records to a JSON file')
    export_parser.add_argument('path', help='Backup file to write')
    import_parser = subparsers.add_parser('import', help='Import local records from a JSON file')
    import_parser.add_argument('path', help='Backup file to read')

    return parser


def main(argv=None, remote=None):
    """Main entry point for secretary-sync."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Configure logging if verbose mode is enabled
    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    # Show help if no command specified
    if not args.command:
        parser.print_help()
        return 1

    try:
        config = load_config(args.config)

        if args.verbose:
            actual_config_path = args.config if args.config else get_default_config_path()
            print(f"Using config: {actual_config_path}")

        context = AppContext.create(config, remote=remote)

        if args.command == 'status':
            success = StatusCommand(context, verbose=args.verbose).run(as_json=args.json)

        elif args.command == 'sweep':
            success = SweepCommand(context, verbose=args.verbose).run(
                retry_errors=args.retry_errors, watch=args.watch
            )

        elif args.command == 'add':
            cmd = AddCommand(context, verbose=args.verbose)
            success = cmd.run(args.text, section=args.section, priority=args.priority, date=args.date)

        elif args.command == 'list':
            cmd = ListCommand(context, verbose=args.verbose)
            success = cmd.run(
                section=args.section,
                priority=args.priority,
                completed=args.completed,
                page_size=args.page_size,
                cursor=args.cursor,
            )

        elif args.command == 'search':
            success = SearchCommand(context, verbose=args.verbose).run(args.query)

        elif args.command == 'complete':
            success = CompleteCommand(context, verbose=args.verbose).run(args.task_id, undo=args.undo)

        elif args.command == 'delete':
            success = DeleteCommand(context, verbose=args.verbose).run(args.task_id)

        elif args.command == 'dedup':
            success = DedupCommand(context, verbose=args.verbose).run(apply_changes=args.apply)

        elif args.command == 'export':
            success = ExportCommand(context, verbose=args.verbose).run(args.path)

        elif args.command == 'import':
            success = ImportCommand(context, verbose=args.verbose).run(args.path)

        else:
            print(f"Unknown command '{args.command}'.")
            return 1

        return 0 if success else 1

    except KeyboardInterrupt:
        print("\nOperation cancelled by user.")
        return 130
    except SecretarySyncError as e:
        print(f"Error: {e}")
        return 1
    except ValueError as e:
        print(f"Error: {e}")
        return 2


if __name__ == '__main__':
    sys.exit(main())
