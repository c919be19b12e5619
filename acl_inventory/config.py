"""
Folder Inventory - Configuration Management

Supports loading configuration from:
1. YAML config file (--config)
2. Environment variables (INVENTORY_*, MS365_*)
3. Command-line arguments (highest priority)

Config file example:
```yaml
path: "D:\\Shares\\Finance"
output: "./finance_inventory.csv"
only_explicit_permissions: true
directory: graph

graph:
  tenant_id: ${MS365_TENANT_ID}
  client_id: ${MS365_CLIENT_ID}
```
"""
import os
import re
import logging
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, Optional

import yaml  # type: ignore[import-untyped]

from .constants import DEFAULT_LOG_LEVEL, DIRECTORY_BACKENDS, DIRECTORY_LOCAL
from .utils import ConfigError

logger = logging.getLogger(__name__)


# Default config file locations (checked in order)
DEFAULT_CONFIG_PATHS = [
    './inventory-config.yaml',
    './inventory-config.yml',
    '~/.folder-inventory/config.yaml',
    '~/.folder-inventory/config.yml',
]

# Mapping from config keys to env vars
ENV_VAR_MAPPING = {
    'path': 'INVENTORY_PATH',
    'output': 'INVENTORY_OUTPUT',
    'log_level': 'INVENTORY_LOG_LEVEL',
    'log_dir': 'INVENTORY_LOG_DIR',
    'directory': 'INVENTORY_DIRECTORY',
    'only_files': 'INVENTORY_ONLY_FILES',
    'only_folders': 'INVENTORY_ONLY_FOLDERS',
    'no_size': 'INVENTORY_NO_SIZE',
    'no_dates': 'INVENTORY_NO_DATES',
    'no_permissions': 'INVENTORY_NO_PERMISSIONS',
    'only_explicit_permissions': 'INVENTORY_ONLY_EXPLICIT_PERMISSIONS',
    'graph.tenant_id': 'MS365_TENANT_ID',
    'graph.client_id': 'MS365_CLIENT_ID',
}

BOOLEAN_KEYS = (
    'only_files',
    'only_folders',
    'no_size',
    'no_dates',
    'no_permissions',
    'only_explicit_permissions',
)


@dataclass
class InventoryOptions:
    """Resolved options for one inventory run."""
    path: str = ""
    output: Optional[str] = None
    only_files: bool = False
    only_folders: bool = False
    no_size: bool = False
    no_dates: bool = False
    no_permissions: bool = False
    only_explicit_permissions: bool = False
    directory: str = DIRECTORY_LOCAL
    log_level: str = DEFAULT_LOG_LEVEL
    log_dir: Optional[str] = None
    tenant_id: Optional[str] = None
    client_id: Optional[str] = None


def _substitute_env_vars(value: Any) -> Any:
    """Substitute ${ENV_VAR} patterns in string values."""
    if isinstance(value, str):
        # Pattern: ${VAR_NAME} or ${VAR_NAME:-default}
        pattern = r'\$\{([^}:]+)(?::-([^}]*))?\}'

        def replace(match):
            var_name = match.group(1)
            default = match.group(2) or ''
            return os.environ.get(var_name, default)

        return re.sub(pattern, replace, value)
    elif isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_substitute_env_vars(item) for item in value]
    return value


def _get_nested(data: Dict, key_path: str, default: Any = None) -> Any:
    """Get a nested value from a dict using dot notation."""
    keys = key_path.split('.')
    value = data
    for key in keys:
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default
    return value


def _set_nested(data: Dict, key_path: str, value: Any) -> None:
    """Set a nested value in a dict using dot notation."""
    keys = key_path.split('.')
    for key in keys[:-1]:
        data = data.setdefault(key, {})
    data[keys[-1]] = value


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('true', '1', 'yes', 'on')


def load_config_file(config_path: str) -> Dict[str, Any]:
    """Load configuration from a YAML file."""
    path = Path(config_path).expanduser()

    if not path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    # Warn if config file has loose permissions
    file_mode = path.stat().st_mode
    if file_mode & (stat.S_IRWXG | stat.S_IRWXO):
        logger.warning(f"Config file {config_path} has loose permissions. "
                       f"Consider: chmod 600 {config_path}")

    logger.info(f"Loading config from {path}")

    try:
        with open(path) as f:
            config = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read config file {config_path}: {e}") from e

    if not isinstance(config, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping")

    return _substitute_env_vars(config)


def find_default_config() -> Optional[str]:
    """Find a config file in default locations."""
    for path in DEFAULT_CONFIG_PATHS:
        expanded = Path(path).expanduser()
        if expanded.exists():
            return str(expanded)
    return None


def load_env_config() -> Dict[str, Any]:
    """Load configuration from environment variables."""
    config: Dict[str, Any] = {}

    for config_key, env_var in ENV_VAR_MAPPING.items():
        value = os.environ.get(env_var)
        if value is not None:
            if config_key in BOOLEAN_KEYS:
                value = _parse_bool(value)
            _set_nested(config, config_key, value)

    return config


def merge_configs(*configs: Dict[str, Any]) -> Dict[str, Any]:
    """Merge multiple config dicts. Later configs override earlier ones."""
    result: Dict[str, Any] = {}

    for config in configs:
        for key, value in config.items():
            if isinstance(value, dict) and isinstance(result.get(key), dict):
                result[key] = merge_configs(result[key], value)
            elif value is not None:
                result[key] = value

    return result


def args_to_config(args) -> Dict[str, Any]:
    """Convert argparse args to config dict format.

    Flags left at None were not given and do not override lower layers.
    """
    config: Dict[str, Any] = {}

    arg_mapping = {
        'path': 'path',
        'output': 'output',
        'log_level': 'log_level',
        'log_dir': 'log_dir',
        'directory': 'directory',
        'tenant_id': 'graph.tenant_id',
        'client_id': 'graph.client_id',
    }
    for key in BOOLEAN_KEYS:
        arg_mapping[key] = key

    for arg_name, config_key in arg_mapping.items():
        value = getattr(args, arg_name, None)
        if value is not None:
            _set_nested(config, config_key, value)

    return config


def load_config(args) -> Dict[str, Any]:
    """
    Load configuration from all sources and merge them.

    Priority (highest to lowest):
    1. CLI arguments
    2. Config file (--config or default location)
    3. Environment variables

    Returns merged config dict.
    """
    configs = []

    # 1. Environment variables (lowest priority)
    env_config = load_env_config()
    if env_config:
        logger.debug("Loaded config from environment variables")
        configs.append(env_config)

    # 2. Config file
    config_path = getattr(args, 'config', None)
    if config_path:
        configs.append(load_config_file(config_path))
    else:
        default_config = find_default_config()
        if default_config:
            logger.info(f"Found default config file: {default_config}")
            configs.append(load_config_file(default_config))

    # 3. CLI arguments (highest priority)
    configs.append(args_to_config(args))

    return merge_configs(*configs)


def options_from_config(config: Dict[str, Any]) -> InventoryOptions:
    """Build InventoryOptions from a merged config dict."""
    options = InventoryOptions(
        path=str(config.get('path') or ''),
        output=config.get('output') or None,
        directory=str(config.get('directory') or DIRECTORY_LOCAL).lower(),
        log_level=str(config.get('log_level') or DEFAULT_LOG_LEVEL).upper(),
        log_dir=config.get('log_dir') or None,
        tenant_id=_get_nested(config, 'graph.tenant_id') or None,
        client_id=_get_nested(config, 'graph.client_id') or None,
    )
    for key in BOOLEAN_KEYS:
        setattr(options, key, _parse_bool(config.get(key, False)))
    return options


def validate_options(options: InventoryOptions) -> None:
    """
    Pre-flight checks. Raises ConfigError before anything is written.
    """
    if options.only_files and options.only_folders:
        raise ConfigError("--only-files and --only-folders cannot be used together")

    if not options.path:
        raise ConfigError("No root path given (use --path or INVENTORY_PATH)")

    if not os.path.exists(options.path):
        raise ConfigError(f"Root path does not exist: {options.path}")

    if not os.path.isdir(options.path):
        raise ConfigError(f"Root path is not a folder: {options.path}")

    if options.directory not in DIRECTORY_BACKENDS:
        raise ConfigError(
            f"Unknown directory backend '{options.directory}' "
            f"(choose from {', '.join(DIRECTORY_BACKENDS)})"
        )


def generate_sample_config() -> str:
    """Generate a sample config file content."""
    return '''# Folder Inventory Configuration
#
# Environment variable substitution supported:
#   ${VAR_NAME}           - required env var
#   ${VAR_NAME:-default}  - env var with default value

# Folder to inventory
path: "/srv/share"

# CSV output file ("-" for stdout, default: folder_inventory_<timestamp>.csv)
# output: "./share_inventory.csv"

# Logging level: DEBUG, INFO, WARNING, ERROR
log_level: INFO

# Also write a log file to this directory
# log_dir: "./logs"

# Row selection (only_files and only_folders are mutually exclusive)
only_files: false
only_folders: false

# Column selection
no_size: false
no_dates: false
no_permissions: false

# Drop inherited permission entries (also removes the isInherited column)
only_explicit_permissions: false

# Where account types are looked up: local, graph, none
directory: local


# =============================================================================
# Microsoft Graph (directory: graph)
# =============================================================================
# Client secret MUST be set via MS365_CLIENT_SECRET for security.
#
# Required API permissions (Application type):
#   - User.Read.All
#   - Group.Read.All
graph:
  tenant_id: ${MS365_TENANT_ID}
  client_id: ${MS365_CLIENT_ID}
'''
