"""
inventory_config -- single public entrypoint for inventory configuration.

Responsibility:
    Provides the only way to obtain configuration at runtime through
    ``get_active_config()``.  Other components receive the resulting
    frozen ``InventoryConfig`` and never read files or environment
    variables themselves.

Architecture position:
    Configuration -- sits above ``inventory_kernel`` and below
    ``inventory_services``.  The kernel never imports from this package.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` -- unknown keys or out-of-range values.

Audit relevance:
    Every successful ``get_active_config()`` call emits an
    ``inventory_config_loaded`` log entry with the config_id, version and
    checksum.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from inventory_config.loader import load_yaml_file, merge_overrides, parse_config
from inventory_config.schema import (
    CodeConfig,
    DatabaseConfig,
    InventoryConfig,
    QrConfig,
    WarrantyConfig,
)

_logger = logging.getLogger("inventory_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"
DATABASE_URL_ENV = "INVENTORY_DATABASE_URL"


def get_active_config(
    path: Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> InventoryConfig:
    """The only public configuration entrypoint.

    Precedence, lowest first: the YAML file, ``INVENTORY_DATABASE_URL``,
    then ``overrides``.

    Args:
        path: YAML file to load.  Defaults to inventory_config/defaults.yaml.
        overrides: Nested dict merged over the file contents.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ValueError: If the configuration is invalid.
    """
    data = load_yaml_file(path or DEFAULT_CONFIG_PATH)

    env_url = os.environ.get(DATABASE_URL_ENV)
    if env_url:
        data = merge_overrides(data, {"database": {"url": env_url}})
    if overrides:
        data = merge_overrides(data, overrides)

    config = parse_config(data)
    _logger.info(
        "inventory_config_loaded",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "code_format": config.codes.current_format,
        },
    )
    return config


__all__ = [
    "CodeConfig",
    "DatabaseConfig",
    "InventoryConfig",
    "QrConfig",
    "WarrantyConfig",
    "get_active_config",
]
