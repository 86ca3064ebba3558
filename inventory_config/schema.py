"""
Inventory configuration schema.

Frozen dataclasses parsed from YAML by the loader.  Validation lives in
``__post_init__`` so an InventoryConfig can never exist in an invalid
state, whether it came from a file or was built in a test.
"""

from __future__ import annotations

from dataclasses import dataclass, field

KNOWN_CODE_FORMATS = ("v1", "v2")


@dataclass(frozen=True)
class CodeConfig:
    """Code generation and scanned-input parsing."""

    current_format: str = "v2"
    length: int = 10
    attempt_factor: int = 3
    max_batch_size: int = 10_000
    url_marker: str = "/p/"

    def __post_init__(self) -> None:
        if self.current_format not in KNOWN_CODE_FORMATS:
            raise ValueError(
                f"codes.current_format must be one of {KNOWN_CODE_FORMATS}, "
                f"got {self.current_format!r}"
            )
        if self.length < 6:
            raise ValueError(f"codes.length must be >= 6, got {self.length}")
        if self.attempt_factor < 1:
            raise ValueError(f"codes.attempt_factor must be >= 1, got {self.attempt_factor}")
        if self.max_batch_size < 1:
            raise ValueError(f"codes.max_batch_size must be >= 1, got {self.max_batch_size}")
        if not self.url_marker:
            raise ValueError("codes.url_marker must not be empty")


@dataclass(frozen=True)
class WarrantyConfig:
    default_months: int = 12

    def __post_init__(self) -> None:
        if self.default_months < 0:
            raise ValueError(
                f"warranty.default_months must be >= 0, got {self.default_months}"
            )


@dataclass(frozen=True)
class QrConfig:
    """Public URL encoded in printed QR labels."""

    base_url: str = "https://inventory.example.com"

    def __post_init__(self) -> None:
        if not self.base_url.startswith(("http://", "https://")):
            raise ValueError(f"qr.base_url must be an http(s) URL, got {self.base_url!r}")


@dataclass(frozen=True)
class DatabaseConfig:
    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30

    def __post_init__(self) -> None:
        if not self.url:
            raise ValueError("database.url must not be empty")
        if self.pool_size < 1:
            raise ValueError(f"database.pool_size must be >= 1, got {self.pool_size}")


@dataclass(frozen=True)
class InventoryConfig:
    """The complete runtime configuration."""

    config_id: str
    version: int
    database: DatabaseConfig
    codes: CodeConfig = field(default_factory=CodeConfig)
    warranty: WarrantyConfig = field(default_factory=WarrantyConfig)
    qr: QrConfig = field(default_factory=QrConfig)
    checksum: str = ""
