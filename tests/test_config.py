"""Tests for CanopySettings defaults and environment parsing."""

from __future__ import annotations

from pathlib import Path

import pytest

from canopy import CanopySettings
from canopy.tree.traversal import DEFAULT_MAX_DEPTH


class TestDefaults:
    def test_defaults(self) -> None:
        s = CanopySettings()
        assert s.database_url.startswith("sqlite+aiosqlite:///")
        assert s.database_url.endswith("canopy.db")
        assert s.blob_dir.name == "blobs"
        assert s.base_url == ""
        assert s.max_depth == DEFAULT_MAX_DEPTH
        assert s.echo_sql is False

    def test_blob_dir_coerced_to_path(self) -> None:
        s = CanopySettings(blob_dir="/srv/blobs")  # type: ignore[arg-type]
        assert s.blob_dir == Path("/srv/blobs")

    def test_non_positive_depth(self) -> None:
        with pytest.raises(ValueError, match="max_depth"):
            CanopySettings(max_depth=0)


class TestFromEnv:
    def test_empty_environ_uses_defaults(self) -> None:
        assert CanopySettings.from_env({}) == CanopySettings()

    def test_reads_all_variables(self) -> None:
        s = CanopySettings.from_env(
            {
                "CANOPY_DATABASE_URL": "postgresql+asyncpg://db/canopy",
                "CANOPY_BLOB_DIR": "/data/blobs",
                "CANOPY_BASE_URL": "https://files.example.com",
                "CANOPY_MAX_DEPTH": "64",
                "CANOPY_ECHO_SQL": "yes",
            }
        )
        assert s.database_url == "postgresql+asyncpg://db/canopy"
        assert s.blob_dir == Path("/data/blobs")
        assert s.base_url == "https://files.example.com"
        assert s.max_depth == 64
        assert s.echo_sql is True

    def test_blob_dir_expands_user(self) -> None:
        s = CanopySettings.from_env({"CANOPY_BLOB_DIR": "~/blobs"})
        assert s.blob_dir == Path.home() / "blobs"

    @pytest.mark.parametrize("value", ["0", "false", "off", "nope"])
    def test_echo_falsy(self, value: str) -> None:
        assert CanopySettings.from_env({"CANOPY_ECHO_SQL": value}).echo_sql is False

    def test_invalid_depth(self) -> None:
        with pytest.raises(ValueError, match="CANOPY_MAX_DEPTH"):
            CanopySettings.from_env({"CANOPY_MAX_DEPTH": "-1"})

    def test_non_numeric_depth(self) -> None:
        with pytest.raises(ValueError):
            CanopySettings.from_env({"CANOPY_MAX_DEPTH": "deep"})

    def test_reads_process_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CANOPY_BASE_URL", "https://env.test")
        assert CanopySettings.from_env().base_url == "https://env.test"
