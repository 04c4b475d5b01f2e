"""Registry of installed packs (``<store>/registry.json``).

The registry maps pack ids to their install history.  Each entry keeps
``currentVersion``/``currentHash`` in sync with the highest parsed version
among its installs.  Writes are atomic (temp file + rename) so a crash never
leaves a truncated registry behind.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from scaffoldkit.errors import ErrorCode, RegistryError, ScaffoldError
from scaffoldkit.store.versions import version_key
from scaffoldkit.utils import save_json

logger = logging.getLogger(__name__)

REGISTRY_SCHEMA_VERSION = 1


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class _RegistryModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Pack origins
# ---------------------------------------------------------------------------


class LocalOrigin(_RegistryModel):
    type: Literal["local"] = "local"
    local_path: str = Field(..., min_length=1)


class GitOrigin(_RegistryModel):
    type: Literal["git"] = "git"
    git_url: str = Field(..., min_length=1)
    ref: str | None = None
    commit: str | None = None


class ZipOrigin(_RegistryModel):
    type: Literal["zip"] = "zip"
    zip_url: str = Field(..., min_length=1)


class NpmOrigin(_RegistryModel):
    type: Literal["npm"] = "npm"
    package_name: str = Field(..., min_length=1)
    registry: str | None = None


PackOrigin = Annotated[
    Union[LocalOrigin, GitOrigin, ZipOrigin, NpmOrigin],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------


class PackInstallRecord(_RegistryModel):
    version: str = Field(..., min_length=1)
    hash: str = Field(..., pattern=r"^[a-f0-9]{64}$")
    origin: PackOrigin
    installed_at: str


class PackRegistryEntry(_RegistryModel):
    """Install history of a single pack id."""
    id: str = Field(..., min_length=1)
    current_version: str
    current_hash: str
    origin: PackOrigin
    installs: list[PackInstallRecord] = Field(default_factory=list)
    installed_at: str

    def find_install(self, hash_: str) -> PackInstallRecord | None:
        for record in self.installs:
            if record.hash == hash_:
                return record
        return None

    def refresh_current(self) -> None:
        """Point ``current*`` at the highest parsed version.

        Ties on version (same version string, different content) go to the
        most recently installed record.
        """
        if not self.installs:
            return
        _, best = max(
            enumerate(self.installs),
            key=lambda item: (version_key(item[1].version), item[0]),
        )
        self.current_version = best.version
        self.current_hash = best.hash
        self.origin = best.origin


class RegistryData(_RegistryModel):
    schema_version: int = Field(default=REGISTRY_SCHEMA_VERSION, ge=1)
    packs: dict[str, PackRegistryEntry] = Field(default_factory=dict)


class RegisterResult(BaseModel):
    entry: PackRegistryEntry
    created: bool = Field(default=False, description="True when the install record is new")


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class RegistryService:
    """Reads and writes the registry file."""

    def __init__(self, registry_file: str | Path) -> None:
        path = Path(registry_file)
        if not path.is_absolute():
            raise ScaffoldError(
                "Registry file path must be absolute",
                hint=f"Got '{path}'.",
                details={"registryFile": str(path)},
                is_operational=False,
            )
        self.registry_file = path

    # -- Persistence --------------------------------------------------------

    async def load(self) -> RegistryData:
        return await asyncio.to_thread(self._load_sync)

    def _load_sync(self) -> RegistryData:
        if not self.registry_file.exists():
            return RegistryData()

        raw = self.registry_file.read_text(encoding="utf-8")
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise RegistryError(
                "Registry file contains invalid JSON",
                ErrorCode.REGISTRY_INVALID_JSON,
                hint=(
                    f"The registry at {self.registry_file} is corrupted. "
                    "Restore it from a backup or delete it and re-install your packs."
                ),
                details={"registryFile": str(self.registry_file), "reason": str(exc)},
            ) from exc

        try:
            return RegistryData.model_validate(parsed)
        except ValidationError as exc:
            raise RegistryError(
                "Registry file has an invalid schema",
                ErrorCode.REGISTRY_INVALID_SCHEMA,
                hint=f"The registry at {self.registry_file} does not match the expected format.",
                details={
                    "registryFile": str(self.registry_file),
                    "issues": [
                        {"path": ".".join(str(p) for p in e["loc"]), "message": e["msg"]}
                        for e in exc.errors()
                    ],
                },
            ) from exc

    async def save(self, data: RegistryData) -> None:
        await save_json(data.model_dump(by_alias=True, mode="json"), self.registry_file)

    # -- Queries ------------------------------------------------------------

    async def get_pack(self, pack_id: str) -> PackRegistryEntry | None:
        data = await self.load()
        return data.packs.get(pack_id)

    async def list_packs(self) -> list[PackRegistryEntry]:
        data = await self.load()
        return [data.packs[key] for key in sorted(data.packs)]

    # -- Mutations ----------------------------------------------------------

    async def register_pack(
        self,
        pack_id: str,
        version: str,
        hash_: str,
        origin: LocalOrigin | GitOrigin | ZipOrigin | NpmOrigin,
    ) -> RegisterResult:
        """Record an install.  Registering an already-known hash is a no-op."""
        data = await self.load()
        entry = data.packs.get(pack_id)
        now = utc_now_iso()
        record = PackInstallRecord(version=version, hash=hash_, origin=origin, installed_at=now)

        if entry is None:
            entry = PackRegistryEntry(
                id=pack_id,
                current_version=version,
                current_hash=hash_,
                origin=origin,
                installs=[record],
                installed_at=now,
            )
            data.packs[pack_id] = entry
        elif entry.find_install(hash_) is not None:
            return RegisterResult(entry=entry, created=False)
        else:
            entry.installs.append(record)
            entry.refresh_current()

        await self.save(data)
        logger.debug("Registered %s@%s (%s)", pack_id, version, hash_[:12])
        return RegisterResult(entry=entry, created=True)

    async def unregister(
        self, pack_id: str, hashes: set[str] | None = None
    ) -> PackRegistryEntry | None:
        """Drop install records for *pack_id*.

        With ``hashes=None`` the whole entry is removed.  Returns the updated
        entry, or ``None`` when no installs remain.
        """
        data = await self.load()
        entry = data.packs.get(pack_id)
        if entry is None:
            return None

        if hashes is None:
            del data.packs[pack_id]
            remaining = None
        else:
            entry.installs = [r for r in entry.installs if r.hash not in hashes]
            if entry.installs:
                entry.refresh_current()
                remaining = entry
            else:
                del data.packs[pack_id]
                remaining = None

        await self.save(data)
        return remaining
