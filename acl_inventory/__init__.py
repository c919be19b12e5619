"""
Folder ACL inventory library.
"""
# Import constants module for easy access
from . import constants
from .acl import PosixAclReader, WindowsAclReader, default_acl_reader
from .config import InventoryOptions, load_config, options_from_config, validate_options
from .directory import (
    AccountClassifier,
    GraphDirectory,
    LocalDirectory,
    NullDirectory,
    build_directory,
)
from .inventory import NodeVisitor, TreeWalker, build_header, expand_acl_rows
from .models import AccessControlEntry, FileSystemNode, InventorySummary
from .utils import (
    AclReadError,
    ConfigError,
    CsvSink,
    InventoryError,
    ProgressTracker,
    format_date,
    setup_logging,
)

__all__ = [
    # Constants
    'constants',
    # Models
    'FileSystemNode',
    'AccessControlEntry',
    'InventorySummary',
    # ACL readers
    'WindowsAclReader',
    'PosixAclReader',
    'default_acl_reader',
    # Directory
    'AccountClassifier',
    'LocalDirectory',
    'GraphDirectory',
    'NullDirectory',
    'build_directory',
    # Config
    'InventoryOptions',
    'load_config',
    'options_from_config',
    'validate_options',
    # Inventory
    'TreeWalker',
    'NodeVisitor',
    'build_header',
    'expand_acl_rows',
    # Utils
    'InventoryError',
    'ConfigError',
    'AclReadError',
    'CsvSink',
    'ProgressTracker',
    'format_date',
    'setup_logging',
]
