"""Version resolution against the pack registry."""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import BaseModel

from scaffoldkit.errors import PackNotFoundError, VersionNotFoundError
from scaffoldkit.store.registry import PackRegistryEntry, RegistryService
from scaffoldkit.store.versions import sort_versions_desc, version_key
from scaffoldkit.utils import sanitize_pack_id

logger = logging.getLogger(__name__)


class ResolvedPack(BaseModel):
    pack_id: str
    version: str
    hash: str


class PackResolver:
    """Picks the concrete stored pack for ``(pack_id, version?)``.

    Without a version the highest parsed version wins, regardless of the
    order in which versions were installed.  Prereleases never outrank the
    release with the same ``MAJOR.MINOR.PATCH``.
    """

    def __init__(self, registry: RegistryService) -> None:
        self.registry = registry

    async def _entry(self, pack_id: str) -> PackRegistryEntry:
        entry = await self.registry.get_pack(pack_id)
        if entry is None or not entry.installs:
            raise PackNotFoundError(pack_id)
        return entry

    async def list_versions(self, pack_id: str) -> list[str]:
        """Distinct installed versions, highest first."""
        entry = await self._entry(pack_id)
        return sort_versions_desc(list(dict.fromkeys(r.version for r in entry.installs)))

    async def resolve(self, pack_id: str, version: str | None = None) -> ResolvedPack:
        entry = await self._entry(pack_id)
        indexed = list(enumerate(entry.installs))

        if version is None:
            _, record = max(indexed, key=lambda item: (version_key(item[1].version), item[0]))
        else:
            matches = [item for item in indexed if item[1].version == version]
            if not matches:
                available = sort_versions_desc(
                    list(dict.fromkeys(r.version for r in entry.installs))
                )
                raise VersionNotFoundError(pack_id, version, available)
            # Same version installed with different content: latest install wins.
            _, record = matches[-1]

        logger.debug("Resolved %s@%s -> %s", pack_id, version or "latest", record.version)
        return ResolvedPack(pack_id=pack_id, version=record.version, hash=record.hash)


def resolve_store_path(packs_dir: Path, resolved: ResolvedPack) -> Path:
    return packs_dir / sanitize_pack_id(resolved.pack_id) / resolved.hash
