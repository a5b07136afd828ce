"""YAML configuration loading for Broadcastr.

Used by [BaseService.from_yaml()][broadcastr.core.base_service.BaseService.from_yaml]
and the CLI to read service configuration files. Only ``yaml.safe_load`` is
used, so YAML tags cannot instantiate arbitrary Python objects.

Examples:
    ```python
    from broadcastr.core.yaml import load_yaml

    config = load_yaml("config/services/backup.yaml")
    ```
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigurationError


def load_yaml(config_path: str) -> dict[str, Any]:
    """Load and parse a YAML configuration file.

    Args:
        config_path: Path to the YAML file (absolute or relative).

    Returns:
        Parsed configuration as a dictionary. An empty file yields ``{}``.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigurationError: If the file is not valid YAML or its top level
            is not a mapping.

    Warning:
        The returned dictionary is not validated. Pass it to the service's
        Pydantic config model for schema validation.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with path.open(encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Config root must be a mapping, got {type(data).__name__}: {config_path}"
        )
    return data
