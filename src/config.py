"""Operator configuration management.

Configuration is loaded from an optional YAML file plus environment
overrides:
- operator.yaml: Operator settings (path given explicitly or via
  $SERVING_OPERATOR_CONFIG)
- $KO_DATA_PATH: Directory holding the bundled manifests
  (knative-serving/ below it)

The merge order is: defaults → YAML file → environment. A set
$KO_DATA_PATH replaces a manifest_path read from the file.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from version import VERSION

# Manifest directory name below KO_DATA_PATH
MANIFEST_DIR_NAME = 'knative-serving'

CONFIG_ENV = 'SERVING_OPERATOR_CONFIG'
RECURSIVE_ENV = 'SERVING_OPERATOR_RECURSIVE'
VERSION_ENV = 'SERVING_OPERATOR_VERSION'
KO_DATA_ENV = 'KO_DATA_PATH'


class ConfigError(Exception):
    """Configuration error."""


@dataclass
class OperatorConfig:
    """Settings for the serving reconciler.

    Attributes:
        manifest_path: File or directory with the resource templates
        recursive: Descend into subdirectories of manifest_path
        version: Version string recorded in status after a successful install
        status_update_retries: Attempts for a status write that hits a conflict
        requeue_interval: Seconds between passes of the run loop
        kubeconfig: Optional kubeconfig path (in-cluster config otherwise)
        context: Optional kubeconfig context name
    """
    manifest_path: Path = field(default_factory=lambda: get_ko_data_dir() / MANIFEST_DIR_NAME)
    recursive: bool = False
    version: str = VERSION
    status_update_retries: int = 3
    requeue_interval: float = 30.0
    kubeconfig: Optional[str] = None
    context: Optional[str] = None

    def __post_init__(self):
        if isinstance(self.manifest_path, str):
            self.manifest_path = Path(self.manifest_path)
        if self.status_update_retries < 1:
            raise ConfigError(
                f"status_update_retries must be at least 1, got {self.status_update_retries}"
            )
        if self.requeue_interval < 0:
            raise ConfigError(
                f"requeue_interval must not be negative, got {self.requeue_interval}"
            )

    @classmethod
    def from_dict(cls, data: dict) -> 'OperatorConfig':
        """Create OperatorConfig from a parsed YAML mapping."""
        unknown = set(data) - {
            'manifest_path', 'recursive', 'version', 'status_update_retries',
            'requeue_interval', 'kubeconfig', 'context',
        }
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(sorted(unknown))}")

        kwargs: dict[str, Any] = {}
        if 'manifest_path' in data:
            kwargs['manifest_path'] = Path(str(data['manifest_path']))
        if 'recursive' in data:
            kwargs['recursive'] = _parse_bool(data['recursive'], 'recursive')
        if 'version' in data:
            kwargs['version'] = str(data['version'])
        if 'status_update_retries' in data:
            kwargs['status_update_retries'] = _parse_int(
                data['status_update_retries'], 'status_update_retries')
        if 'requeue_interval' in data:
            try:
                kwargs['requeue_interval'] = float(data['requeue_interval'])
            except (TypeError, ValueError) as e:
                raise ConfigError(f"Invalid requeue_interval: {data['requeue_interval']!r}") from e
        if data.get('kubeconfig'):
            kwargs['kubeconfig'] = str(data['kubeconfig'])
        if data.get('context'):
            kwargs['context'] = str(data['context'])
        return cls(**kwargs)

    def to_dict(self) -> dict:
        """Convert to dictionary (for JSON output)."""
        return {
            'manifest_path': str(self.manifest_path),
            'recursive': self.recursive,
            'version': self.version,
            'status_update_retries': self.status_update_retries,
            'requeue_interval': self.requeue_interval,
            'kubeconfig': self.kubeconfig,
            'context': self.context,
        }


def _parse_yaml(path: Path) -> dict:
    """Parse a YAML file and return contents."""
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config {path} must be a YAML object (dict)")
    return data


def _parse_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ('1', 'true', 'yes', 'on'):
        return True
    if text in ('0', 'false', 'no', 'off', ''):
        return False
    raise ConfigError(f"Invalid boolean for {name}: {value!r}")


def _parse_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"Invalid integer for {name}: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid integer for {name}: {value!r}") from e


def get_base_dir() -> Path:
    """Get the repository directory."""
    return Path(__file__).parent.parent  # src/ -> repo/


def get_ko_data_dir() -> Path:
    """Discover the directory holding bundled manifests.

    Resolution order:
    1. $KO_DATA_PATH environment variable
    2. kodata/ in the repository (dev workspace)
    """
    if env_path := os.environ.get(KO_DATA_ENV):
        return Path(env_path)
    return get_base_dir() / 'kodata'


def load_operator_config(path: Optional[str] = None) -> OperatorConfig:
    """Load operator configuration.

    Args:
        path: Optional YAML config file. Falls back to $SERVING_OPERATOR_CONFIG.

    Returns:
        OperatorConfig with environment overrides applied

    Raises:
        ConfigError: If the config file is missing or invalid
    """
    config_path = path or os.environ.get(CONFIG_ENV)
    if config_path:
        file_path = Path(config_path)
        if not file_path.exists():
            raise ConfigError(f"Config file not found: {file_path}")
        config = OperatorConfig.from_dict(_parse_yaml(file_path))
    else:
        config = OperatorConfig()

    # Environment wins over file values
    if recursive := os.environ.get(RECURSIVE_ENV):
        config.recursive = _parse_bool(recursive, RECURSIVE_ENV)
    if version := os.environ.get(VERSION_ENV):
        config.version = version
    if os.environ.get(KO_DATA_ENV):
        config.manifest_path = get_ko_data_dir() / MANIFEST_DIR_NAME

    return config
