"""
Configuration Loader (``inventory_config.loader``).

Responsibility
--------------
Reads the YAML configuration file, applies overrides and parses the
result into the frozen ``inventory_config.schema`` dataclasses.  Runtime
callers go through ``inventory_config.get_active_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown section or key  -> ``ValueError``.
* Out-of-range value  -> ``ValueError`` from the schema dataclass.
"""

from __future__ import annotations

import copy
import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from inventory_config.schema import (
    CodeConfig,
    DatabaseConfig,
    InventoryConfig,
    QrConfig,
    WarrantyConfig,
)

_SECTIONS = {
    "codes": CodeConfig,
    "warranty": WarrantyConfig,
    "qr": QrConfig,
    "database": DatabaseConfig,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file and return its contents as a dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def merge_overrides(data: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Deep-merge ``overrides`` into a copy of ``data``."""
    merged = copy.deepcopy(data)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_overrides(merged[key], value)
        else:
            merged[key] = value
    return merged


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 over the canonical JSON form of ``data``."""
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _section(name: str, data: dict[str, Any]):
    cls = _SECTIONS[name]
    raw = data.get(name) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Section {name!r} must be a mapping, got {type(raw).__name__}")
    allowed = set(cls.__dataclass_fields__)
    unknown = set(raw) - allowed
    if unknown:
        raise ValueError(f"Unknown keys in section {name!r}: {sorted(unknown)}")
    return cls(**raw)


def parse_config(data: dict[str, Any]) -> InventoryConfig:
    """
    Parse an ``InventoryConfig`` from a dict.

    Raises:
        ValueError: unknown section or key, or an invalid value.
    """
    unknown = set(data) - set(_SECTIONS) - {"config_id", "version"}
    if unknown:
        raise ValueError(f"Unknown configuration sections: {sorted(unknown)}")
    if "url" not in (data.get("database") or {}):
        raise ValueError("database.url is required")

    return InventoryConfig(
        config_id=str(data.get("config_id", "inventory")),
        version=int(data.get("version", 1)),
        database=_section("database", data),
        codes=_section("codes", data),
        warranty=_section("warranty", data),
        qr=_section("qr", data),
        checksum=compute_checksum(data),
    )
