"""Tests for configuration loading, overrides and validation."""

import pytest

from inventory_config import (
    DATABASE_URL_ENV,
    DEFAULT_CONFIG_PATH,
    CodeConfig,
    DatabaseConfig,
    QrConfig,
    WarrantyConfig,
    get_active_config,
)
from inventory_config.loader import compute_checksum, merge_overrides, parse_config


@pytest.fixture(autouse=True)
def _no_env_url(monkeypatch):
    monkeypatch.delenv(DATABASE_URL_ENV, raising=False)


class TestDefaults:

    def test_shipped_defaults(self):
        config = get_active_config()
        assert config.config_id == "inventory-default"
        assert config.codes.current_format == "v2"
        assert config.codes.length == 10
        assert config.codes.url_marker == "/p/"
        assert config.warranty.default_months == 12
        assert config.database.url.startswith("postgresql+psycopg2://")
        assert len(config.checksum) == 64

    def test_default_path_exists(self):
        assert DEFAULT_CONFIG_PATH.is_file()

    def test_load_is_traced(self, captured_logs):
        config = get_active_config()
        loaded = [r for r in captured_logs() if r["message"] == "inventory_config_loaded"]
        assert loaded[0]["checksum"] == config.checksum
        assert loaded[0]["code_format"] == "v2"


class TestPrecedence:

    def test_environment_sets_database_url(self, monkeypatch):
        monkeypatch.setenv(DATABASE_URL_ENV, "postgresql+psycopg2://db.internal/stock")
        assert get_active_config().database.url == "postgresql+psycopg2://db.internal/stock"

    def test_overrides_win_over_environment(self, monkeypatch):
        monkeypatch.setenv(DATABASE_URL_ENV, "postgresql+psycopg2://db.internal/stock")
        config = get_active_config(overrides={"database": {"url": "sqlite://"}})
        assert config.database.url == "sqlite://"
        assert config.database.pool_size == 20

    def test_nested_override_keeps_siblings(self):
        config = get_active_config(overrides={"codes": {"current_format": "v1"}})
        assert config.codes.current_format == "v1"
        assert config.codes.max_batch_size == 10_000

    def test_checksum_tracks_content(self):
        base = get_active_config()
        changed = get_active_config(overrides={"warranty": {"default_months": 24}})
        assert base.checksum != changed.checksum

    def test_custom_file(self, tmp_path):
        path = tmp_path / "site.yaml"
        path.write_text(
            "config_id: site-7\n"
            "version: 3\n"
            "database:\n"
            "  url: sqlite:///site.db\n"
            "qr:\n"
            "  base_url: https://scan.example.org\n"
        )
        config = get_active_config(path)
        assert (config.config_id, config.version) == ("site-7", 3)
        assert config.qr.base_url == "https://scan.example.org"
        assert config.codes == CodeConfig()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")


class TestValidation:

    def test_unknown_section(self):
        with pytest.raises(ValueError, match="sections"):
            get_active_config(overrides={"printing": {"dpi": 300}})

    def test_unknown_key(self):
        with pytest.raises(ValueError, match="codes"):
            get_active_config(overrides={"codes": {"checksum_digit": True}})

    def test_database_url_required(self):
        with pytest.raises(ValueError, match="database.url"):
            parse_config({"config_id": "x", "version": 1})

    @pytest.mark.parametrize(
        "build",
        [
            lambda: CodeConfig(current_format="v3"),
            lambda: CodeConfig(length=4),
            lambda: CodeConfig(attempt_factor=0),
            lambda: CodeConfig(url_marker=""),
            lambda: WarrantyConfig(default_months=-1),
            lambda: QrConfig(base_url="ftp://labels"),
            lambda: DatabaseConfig(url=""),
            lambda: DatabaseConfig(url="sqlite://", pool_size=0),
        ],
    )
    def test_out_of_range_values(self, build):
        with pytest.raises(ValueError):
            build()


class TestHelpers:

    def test_merge_does_not_mutate(self):
        data = {"codes": {"length": 10, "url_marker": "/p/"}}
        merged = merge_overrides(data, {"codes": {"length": 12}})
        assert merged == {"codes": {"length": 12, "url_marker": "/p/"}}
        assert data["codes"]["length"] == 10

    def test_checksum_ignores_key_order(self):
        assert compute_checksum({"a": 1, "b": {"c": 2}}) == compute_checksum({"b": {"c": 2}, "a": 1})
