#!/usr/bin/env python3
"""
Folder Inventory - Recursive folder size, date and permission report

Walks a folder tree and writes a CSV with one row per file and folder
(or one row per permission entry): path, type, size, access/modify dates,
the latest access/modify date anywhere below each folder, and who has
which rights on it.

Usage:
    # Full inventory of a share
    python folder_inventory.py --path /srv/share -o share.csv

    # Folders only, explicit permissions only
    python folder_inventory.py --path D:\\Shares --only-folders --only-explicit-permissions

    # Resolve account types against Entra ID (client secret MUST be env var)
    export MS365_TENANT_ID="your-tenant-id"
    export MS365_CLIENT_ID="your-client-id"
    export MS365_CLIENT_SECRET="your-client-secret"
    python folder_inventory.py --path D:\\Shares --directory graph
"""

import os
import sys
import logging
import argparse
from typing import List, Optional

from acl_inventory.acl import default_acl_reader
from acl_inventory.config import (
    generate_sample_config,
    load_config,
    options_from_config,
    validate_options,
    InventoryOptions,
)
from acl_inventory.constants import DIRECTORY_BACKENDS
from acl_inventory.directory import AccountClassifier, build_directory
from acl_inventory.inventory import NodeVisitor, TreeWalker, build_header
from acl_inventory.models import InventorySummary
from acl_inventory.utils import (
    ConfigError,
    CsvSink,
    ProgressTracker,
    default_output_path,
    setup_logging,
)

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Folder Inventory - sizes, dates and permissions of a folder tree',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python folder_inventory.py --path /srv/share
    python folder_inventory.py --path /srv/share --no-permissions -o sizes.csv
    python folder_inventory.py --path /srv/share --only-folders --no-dates
    python folder_inventory.py --config inventory-config.yaml

Security Note:
    The Graph client secret must be provided via the MS365_CLIENT_SECRET
    environment variable to avoid exposing secrets in shell history.
        """
    )

    # Flags default to None so unset flags don't override config/env values
    parser.add_argument('--path', '-p',
                        help='Root folder to inventory (or set INVENTORY_PATH)')
    parser.add_argument('--output', '-o',
                        help='CSV file to write, "-" for stdout '
                             '(default: folder_inventory_<timestamp>.csv)')
    parser.add_argument('--config',
                        help='YAML config file (default: ./inventory-config.yaml if present)')
    parser.add_argument('--generate-config', action='store_true',
                        help='Print a sample config file and exit')

    rows = parser.add_argument_group('row selection')
    rows.add_argument('--only-files', action='store_true', default=None,
                      help='Write file rows only (folder totals are still computed)')
    rows.add_argument('--only-folders', action='store_true', default=None,
                      help='Write folder rows only')

    columns = parser.add_argument_group('column selection')
    columns.add_argument('--no-size', action='store_true', default=None,
                         help='Omit the Size column')
    columns.add_argument('--no-dates', action='store_true', default=None,
                         help='Omit the four date columns')
    columns.add_argument('--no-permissions', action='store_true', default=None,
                         help='Omit permissions entirely (one row per file/folder)')
    columns.add_argument('--only-explicit-permissions', action='store_true', default=None,
                         help='Drop inherited permission entries and the isInherited column')

    directory = parser.add_argument_group('account types')
    directory.add_argument('--directory', choices=DIRECTORY_BACKENDS,
                           help='Where account types are looked up (default: local)')
    directory.add_argument('--tenant-id',
                           help='Azure AD tenant ID for --directory graph (or set MS365_TENANT_ID)')
    directory.add_argument('--client-id',
                           help='Azure AD application (client) ID for --directory graph (or set MS365_CLIENT_ID)')
    # Client secret is env-var only for security (no CLI arg to avoid shell history exposure)

    parser.add_argument('--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Logging level (default: INFO)')
    parser.add_argument('--log-dir',
                        help='Also write a log file to this directory')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Enable verbose logging (same as --log-level DEBUG)')
    parser.add_argument('--no-progress', action='store_true',
                        help='Disable the progress display')
    return parser


def run_inventory(options: InventoryOptions, output: str,
                  show_progress: bool = True, directory=None) -> InventorySummary:
    """
    Validate options and write the inventory CSV.

    Raises ConfigError before the output file is created if the options
    are unusable.
    """
    validate_options(options)

    acl_reader = None
    classifier = None
    if not options.no_permissions:
        if directory is None:
            directory = build_directory(
                options.directory,
                tenant_id=options.tenant_id,
                client_id=options.client_id,
                client_secret=os.environ.get('MS365_CLIENT_SECRET'),
            )
        acl_reader = default_acl_reader()
        classifier = AccountClassifier(directory)

    try:
        visitor = NodeVisitor(options, acl_reader=acl_reader, classifier=classifier)
        with ProgressTracker(options.path, show_progress=show_progress) as tracker:
            with CsvSink(output, build_header(options)) as sink:
                walker = TreeWalker(options, visitor, sink, on_folder=tracker.folder_done)
                walker.walk(options.path)
            tracker.set_summary(walker.summary)
    finally:
        if classifier is not None:
            classifier.close()

    return walker.summary


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.generate_config:
        print(generate_sample_config())
        return 0

    if args.verbose:
        args.log_level = 'DEBUG'

    try:
        config = load_config(args)
        options = options_from_config(config)
    except ConfigError as e:
        setup_logging()
        logger.error(str(e))
        return 1

    setup_logging(options.log_level, options.log_dir)

    output = options.output or default_output_path()
    show_progress = not args.no_progress and output != '-'

    try:
        run_inventory(options, output, show_progress=show_progress)
    except ConfigError as e:
        logger.error(str(e))
        print("\nRun with --help for more information.", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logger.error("Interrupted, output file is incomplete")
        return 130

    return 0


if __name__ == '__main__':
    sys.exit(main())
