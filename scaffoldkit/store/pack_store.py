"""Content-addressed pack store.

Installed packs live at ``<store>/packs/<sanitized id>/<manifest hash>/``.
A store directory is never edited in place: new content means a new hash and
a new directory.  Installs are copied into a private staging directory first
and renamed into place in one step, so a partial copy is never visible, and
the registry is only updated once the rename has succeeded.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import uuid
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field

from scaffoldkit.config import Config
from scaffoldkit.errors import ErrorCode, PackNotFoundError, ScaffoldError, VersionNotFoundError
from scaffoldkit.manifest import ManifestLoader, compute_manifest_hash
from scaffoldkit.store.registry import (
    GitOrigin,
    LocalOrigin,
    NpmOrigin,
    PackInstallRecord,
    PackRegistryEntry,
    RegistryService,
    ZipOrigin,
)
from scaffoldkit.store.versions import sort_versions_desc
from scaffoldkit.utils import sanitize_pack_id

logger = logging.getLogger(__name__)

# VCS metadata, dependency caches and OS artifacts never belong in a pack.
IGNORED_NAMES: tuple[str, ...] = (
    ".git",
    ".hg",
    ".svn",
    "node_modules",
    "__pycache__",
    ".DS_Store",
    "Thumbs.db",
    ".Trashes",
    "desktop.ini",
)


class InstallStatus(str, Enum):
    INSTALLED = "installed"
    ALREADY_INSTALLED = "already_installed"


class InstallResult(BaseModel):
    pack_id: str
    version: str
    hash: str
    dest_dir: Path
    status: InstallStatus


class RemoveResult(BaseModel):
    pack_id: str
    removed: list[PackInstallRecord] = Field(default_factory=list)
    remaining: PackRegistryEntry | None = None


class PackStore:
    """Installs, lists and removes packs in the local store."""

    def __init__(self, config: Config, registry: RegistryService | None = None) -> None:
        self.config = config
        self.registry = registry or RegistryService(config.registry_file)
        self.loader = ManifestLoader()

    def pack_dir(self, pack_id: str, hash_: str) -> Path:
        return self.config.packs_dir / sanitize_pack_id(pack_id) / hash_

    # ------------------------------------------------------------------
    # Install
    # ------------------------------------------------------------------

    async def install(
        self,
        source_dir: str | Path,
        origin: LocalOrigin | GitOrigin | ZipOrigin | NpmOrigin | None = None,
    ) -> InstallResult:
        """Install the pack at *source_dir* into the store.

        Installing identical manifest content twice is a no-op that returns
        ``already_installed`` with the same hash and destination.
        """
        source = Path(source_dir).resolve()
        manifest = await self.loader.load_from_dir(source)
        pack_id = manifest.pack.name
        version = manifest.pack.version
        hash_ = await asyncio.to_thread(compute_manifest_hash, manifest.manifest_path)
        dest = self.pack_dir(pack_id, hash_)
        origin = origin or LocalOrigin(local_path=str(source))

        await asyncio.to_thread(self.config.ensure_directories)

        if dest.exists():
            # Store content is present; make sure the registry knows about it.
            await self.registry.register_pack(pack_id, version, hash_, origin)
            logger.info("Pack %s@%s already installed at %s", pack_id, version, dest)
            return InstallResult(
                pack_id=pack_id,
                version=version,
                hash=hash_,
                dest_dir=dest,
                status=InstallStatus.ALREADY_INSTALLED,
            )

        staging = self.config.install_tmp_dir / f"install-{uuid.uuid4().hex}"
        try:
            raced = await asyncio.to_thread(self._copy_and_rename, source, staging, dest)
        except OSError as exc:
            shutil.rmtree(staging, ignore_errors=True)
            raise ScaffoldError(
                f"Failed to store pack '{pack_id}'",
                ErrorCode.PACK_STORE_FAILED,
                hint=f"Could not copy {source} into the store: {exc}",
                details={"packId": pack_id, "source": str(source), "destDir": str(dest)},
            ) from exc

        await self.registry.register_pack(pack_id, version, hash_, origin)
        status = InstallStatus.ALREADY_INSTALLED if raced else InstallStatus.INSTALLED
        logger.info("Installed %s@%s -> %s", pack_id, version, dest)
        return InstallResult(
            pack_id=pack_id, version=version, hash=hash_, dest_dir=dest, status=status
        )

    @staticmethod
    def _copy_and_rename(source: Path, staging: Path, dest: Path) -> bool:
        """Copy *source* to *staging* then rename it to *dest*.

        Returns ``True`` when another install created *dest* first, in which
        case the staging copy is discarded.
        """
        shutil.copytree(
            source,
            staging,
            symlinks=True,
            ignore=shutil.ignore_patterns(*IGNORED_NAMES),
        )
        dest.parent.mkdir(parents=True, exist_ok=True)
        if dest.exists():
            shutil.rmtree(staging, ignore_errors=True)
            return True
        try:
            os.rename(staging, dest)
        except OSError:
            if dest.exists():
                shutil.rmtree(staging, ignore_errors=True)
                return True
            raise
        return False

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def list_packs(self) -> list[PackRegistryEntry]:
        return await self.registry.list_packs()

    async def get_pack(self, pack_id: str) -> PackRegistryEntry:
        entry = await self.registry.get_pack(pack_id)
        if entry is None:
            raise PackNotFoundError(pack_id)
        return entry

    # ------------------------------------------------------------------
    # Remove
    # ------------------------------------------------------------------

    async def remove(self, pack_id: str, version: str | None = None) -> RemoveResult:
        """Remove one installed version of a pack, or all of them.

        Store directories are deleted and the registry's current fields are
        recomputed from whatever installs remain.
        """
        entry = await self.get_pack(pack_id)

        if version is None:
            doomed = list(entry.installs)
        else:
            doomed = [r for r in entry.installs if r.version == version]
            if not doomed:
                available = sort_versions_desc(sorted({r.version for r in entry.installs}))
                raise VersionNotFoundError(pack_id, version, available)

        hashes = {r.hash for r in doomed}
        for hash_ in hashes:
            await asyncio.to_thread(shutil.rmtree, self.pack_dir(pack_id, hash_), True)

        remaining = await self.registry.unregister(
            pack_id, None if version is None else hashes
        )
        if remaining is None:
            pack_root = self.config.packs_dir / sanitize_pack_id(pack_id)
            await asyncio.to_thread(shutil.rmtree, pack_root, True)

        logger.info("Removed %d install(s) of %s", len(doomed), pack_id)
        return RemoveResult(pack_id=pack_id, removed=doomed, remaining=remaining)
