"""Unit tests for the content-addressed pack store (scaffoldkit.store.pack_store)."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from scaffoldkit.config import Config
from scaffoldkit.errors import (
    ErrorCode,
    ManifestError,
    PackNotFoundError,
    ScaffoldError,
    VersionNotFoundError,
)
from scaffoldkit.store.pack_store import InstallStatus, PackStore
from scaffoldkit.utils import sanitize_pack_id


@pytest.fixture
def store(store_config: Config) -> PackStore:
    return PackStore(store_config)


class TestInstall:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_install_copies_into_hash_directory(self, store, store_config, make_pack):
        source = make_pack(name="demo", version="1.0.0")
        result = await store.install(source)

        assert result.status is InstallStatus.INSTALLED
        assert result.pack_id == "demo"
        assert len(result.hash) == 64
        assert result.dest_dir == store_config.packs_dir / "demo" / result.hash
        assert (result.dest_dir / "scaffoldkit.yaml").is_file()
        assert (result.dest_dir / "templates" / "README.md").read_text(encoding="utf-8") == "# {{ name }}\n"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_reinstall_is_idempotent(self, store, make_pack):
        first = await store.install(make_pack(name="demo", version="1.0.0"))
        second = await store.install(make_pack(name="demo", version="1.0.0"))

        assert second.status is InstallStatus.ALREADY_INSTALLED
        assert second.hash == first.hash
        assert second.dest_dir == first.dest_dir
        entry = await store.get_pack("demo")
        assert len(entry.installs) == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_ignored_names_are_not_copied(self, store, make_pack):
        source = make_pack(name="demo")
        (source / ".git").mkdir()
        (source / ".git" / "HEAD").write_text("ref: refs/heads/main\n", encoding="utf-8")
        (source / "node_modules" / "x").mkdir(parents=True)
        (source / ".DS_Store").write_bytes(b"\x00")

        result = await store.install(source)
        names = {p.name for p in result.dest_dir.iterdir()}
        assert ".git" not in names
        assert "node_modules" not in names
        assert ".DS_Store" not in names

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_scoped_id_uses_flat_directory(self, store, store_config, make_pack):
        result = await store.install(make_pack(name="@org/pack"))
        assert result.dest_dir.parent == store_config.packs_dir / sanitize_pack_id("@org/pack")
        assert result.dest_dir.parent.parent == store_config.packs_dir

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_invalid_manifest_leaves_store_untouched(self, store, store_config, make_pack):
        source = make_pack(archetypes=[])
        with pytest.raises(ManifestError) as exc_info:
            await store.install(source)
        assert exc_info.value.code is ErrorCode.MANIFEST_SCHEMA_ERROR
        assert not store_config.registry_file.exists()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_no_staging_leftovers(self, store, store_config, make_pack):
        await store.install(make_pack())
        assert list(store_config.install_tmp_dir.iterdir()) == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_registry_records_local_origin(self, store, store_config, make_pack):
        source = make_pack(name="demo")
        await store.install(source)
        raw = json.loads(store_config.registry_file.read_text(encoding="utf-8"))
        assert raw["packs"]["demo"]["origin"] == {"type": "local", "localPath": str(source.resolve())}


class TestInstallFailure:
    @staticmethod
    def _assert_nothing_installed(exc_info, store_config: Config) -> None:
        assert exc_info.value.code is ErrorCode.PACK_STORE_FAILED
        assert not Path(exc_info.value.details["destDir"]).exists()
        assert list(store_config.install_tmp_dir.iterdir()) == []
        assert not store_config.registry_file.exists()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_rename_failure(self, store, store_config, make_pack):
        source = make_pack(name="demo")
        with patch("scaffoldkit.store.pack_store.os.rename", side_effect=OSError("disk full")):
            with pytest.raises(ScaffoldError) as exc_info:
                await store.install(source)

        self._assert_nothing_installed(exc_info, store_config)
        assert "disk full" in exc_info.value.hint

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_partial_copy_is_discarded(self, store, store_config, make_pack):
        source = make_pack(name="demo")

        def partial_copy(src, dst, **kwargs):
            Path(dst).mkdir(parents=True)
            (Path(dst) / "scaffoldkit.yaml").write_text("half", encoding="utf-8")
            raise OSError("no space left on device")

        with patch("scaffoldkit.store.pack_store.shutil.copytree", side_effect=partial_copy):
            with pytest.raises(ScaffoldError) as exc_info:
                await store.install(source)

        self._assert_nothing_installed(exc_info, store_config)
        with pytest.raises(PackNotFoundError):
            await store.get_pack("demo")


class TestRemove:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_remove_one_version(self, store, make_pack):
        old = await store.install(make_pack(name="demo", version="1.0.0"))
        new = await store.install(make_pack(name="demo", version="2.0.0"))

        result = await store.remove("demo", "2.0.0")

        assert [r.version for r in result.removed] == ["2.0.0"]
        assert result.remaining is not None
        assert result.remaining.current_version == "1.0.0"
        assert not new.dest_dir.exists()
        assert old.dest_dir.exists()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_remove_all_versions(self, store, store_config, make_pack):
        await store.install(make_pack(name="demo", version="1.0.0"))
        await store.install(make_pack(name="demo", version="2.0.0"))

        result = await store.remove("demo")

        assert len(result.removed) == 2
        assert result.remaining is None
        assert not (store_config.packs_dir / "demo").exists()
        with pytest.raises(PackNotFoundError):
            await store.get_pack("demo")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_remove_unknown_version(self, store, make_pack):
        await store.install(make_pack(name="demo", version="1.0.0"))
        with pytest.raises(VersionNotFoundError) as exc_info:
            await store.remove("demo", "9.9.9")
        assert exc_info.value.details["availableVersions"] == ["1.0.0"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_remove_unknown_pack(self, store):
        with pytest.raises(PackNotFoundError):
            await store.remove("missing")


class TestList:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_list_packs(self, store, make_pack):
        await store.install(make_pack(name="beta"))
        await store.install(make_pack(name="alpha"))
        assert [entry.id for entry in await store.list_packs()] == ["alpha", "beta"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_empty_store(self, store):
        assert await store.list_packs() == []
