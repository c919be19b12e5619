"""
Constants for the folder ACL inventory.

This module defines the column names, category strings and defaults used
across the package so the CSV header, the classifier and the tests all
agree on the same spelling.
"""

# =============================================================================
# Node Kinds
# =============================================================================

KIND_FILE = "File"
KIND_FOLDER = "Folder"

# =============================================================================
# CSV Columns (fixed order)
# =============================================================================

COLUMN_NAME = "Name"
COLUMN_TYPE = "Type"
COLUMN_SIZE = "Size"

COLUMN_DATE_ACCESSED = "DateAccessed"
COLUMN_DATE_MODIFIED = "DateModified"
COLUMN_MAX_DATE_ACCESSED = "MaxDateAccessed"
COLUMN_MAX_DATE_MODIFIED = "MaxDateModified"

COLUMN_ACCOUNT = "Account"
COLUMN_ACCOUNT_TYPE = "AccountType"
COLUMN_PERMISSION = "Permission"
COLUMN_PERMISSION_TYPE = "PermissionType"
COLUMN_IS_INHERITED = "isInherited"

DATE_COLUMNS = [
    COLUMN_DATE_ACCESSED,
    COLUMN_DATE_MODIFIED,
    COLUMN_MAX_DATE_ACCESSED,
    COLUMN_MAX_DATE_MODIFIED,
]

PERMISSION_COLUMNS = [
    COLUMN_ACCOUNT,
    COLUMN_ACCOUNT_TYPE,
    COLUMN_PERMISSION,
    COLUMN_PERMISSION_TYPE,
]

# Dates are written as yyyy-MM-dd
DATE_FORMAT = "%Y-%m-%d"

# =============================================================================
# Account Types
# =============================================================================

ACCOUNT_TYPE_USER = "User"
ACCOUNT_TYPE_LOCAL_GROUP = "LocalGroup"
ACCOUNT_TYPE_UNKNOWN = "Unknown"

# Directory object classes returned by the lookups
OBJECT_CLASS_USER = "user"
OBJECT_CLASS_GROUP = "group"

DOMAIN_SEPARATOR = "\\"

# Reserved domains that never hit the directory
RESERVED_DOMAINS = {
    "NT AUTHORITY": ACCOUNT_TYPE_USER,
    "BUILTIN": ACCOUNT_TYPE_LOCAL_GROUP,
}

# =============================================================================
# Access Types
# =============================================================================

ACCESS_ALLOW = "Allow"
ACCESS_DENY = "Deny"

# Principal used for the POSIX "other" entry
POSIX_OTHER_PRINCIPAL = "Everyone"

# =============================================================================
# Directory Backends
# =============================================================================

DIRECTORY_LOCAL = "local"
DIRECTORY_GRAPH = "graph"
DIRECTORY_NONE = "none"
DIRECTORY_BACKENDS = [DIRECTORY_LOCAL, DIRECTORY_GRAPH, DIRECTORY_NONE]

GRAPH_SCOPES = ['https://graph.microsoft.com/.default']

# =============================================================================
# Defaults
# =============================================================================

DEFAULT_OUTPUT_PREFIX = "folder_inventory"
DEFAULT_LOG_LEVEL = "INFO"
STDOUT_OUTPUT = "-"

# Seconds before a PowerShell Get-Acl or getfacl call is abandoned
ACL_COMMAND_TIMEOUT = 60
