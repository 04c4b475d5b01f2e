"""Unit tests for scaffoldkit.config."""

from __future__ import annotations

from pathlib import Path

import pytest

from scaffoldkit.config import Config
from scaffoldkit.errors import ScaffoldError


class TestConfigDefaults:
    @pytest.mark.unit
    def test_default_store_uses_xdg_data_home(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "xdg"))
        config = Config()
        assert config.store_dir == tmp_path / "xdg" / "scaffoldkit"

    @pytest.mark.unit
    def test_default_store_falls_back_to_home(self, tmp_path: Path, monkeypatch):
        monkeypatch.delenv("XDG_DATA_HOME", raising=False)
        monkeypatch.setenv("HOME", str(tmp_path))
        config = Config()
        assert config.store_dir == tmp_path / ".local" / "share" / "scaffoldkit"

    @pytest.mark.unit
    def test_defaults(self, tmp_path: Path):
        config = Config(store_dir=tmp_path)
        assert config.state_dir_name == ".scaffoldkit"
        assert config.command_timeout == 600
        assert config.fetch_timeout == 120


class TestDerivedPaths:
    @pytest.mark.unit
    def test_paths_live_under_store(self, tmp_path: Path):
        config = Config(store_dir=tmp_path)
        assert config.packs_dir == tmp_path / "packs"
        assert config.registry_file == tmp_path / "registry.json"
        assert config.staging_dir == tmp_path / ".staging"
        assert config.install_tmp_dir == tmp_path / ".tmp"
        assert config.locks_dir == tmp_path / "locks"
        assert config.cache_dir == tmp_path / "cache"

    @pytest.mark.unit
    def test_ensure_directories(self, tmp_path: Path):
        config = Config(store_dir=tmp_path / "store")
        config.ensure_directories()
        for path in (config.packs_dir, config.staging_dir, config.install_tmp_dir, config.locks_dir):
            assert path.is_dir()


class TestValidation:
    @pytest.mark.unit
    def test_relative_store_dir_is_programming_error(self):
        with pytest.raises(ScaffoldError) as exc_info:
            Config(store_dir=Path("relative/store"))
        assert exc_info.value.is_operational is False

    @pytest.mark.unit
    def test_timeout_must_be_positive(self, tmp_path: Path):
        with pytest.raises(ValueError):
            Config(store_dir=tmp_path, command_timeout=0)


class TestFromEnv:
    @pytest.mark.unit
    def test_reads_overrides(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("SCAFFOLDKIT_STORE_DIR", str(tmp_path / "custom"))
        monkeypatch.setenv("SCAFFOLDKIT_COMMAND_TIMEOUT", "42")
        monkeypatch.setenv("SCAFFOLDKIT_FETCH_TIMEOUT", "7")
        monkeypatch.setenv("SCAFFOLDKIT_STATE_DIR", ".meta")
        config = Config.from_env()
        assert config.store_dir == tmp_path / "custom"
        assert config.command_timeout == 42
        assert config.fetch_timeout == 7
        assert config.state_dir_name == ".meta"
