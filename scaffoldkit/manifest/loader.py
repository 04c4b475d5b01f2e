"""Load and validate pack manifests from disk.

Given a pack root directory the loader looks for, in order,
``scaffoldkit.yaml``, ``archetype.yaml`` and ``pack.yaml`` and uses the
first one found.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from scaffoldkit.errors import ErrorCode, ManifestError
from scaffoldkit.manifest.models import ManifestData, PackManifest

logger = logging.getLogger(__name__)

MANIFEST_FILENAMES: tuple[str, ...] = ("scaffoldkit.yaml", "archetype.yaml", "pack.yaml")


def find_manifest_file(pack_root_dir: Path) -> Path:
    """Return the manifest path inside *pack_root_dir*.

    Raises:
        ManifestError: ``MANIFEST_NOT_FOUND`` when no candidate exists.
    """
    for filename in MANIFEST_FILENAMES:
        candidate = pack_root_dir / filename
        if candidate.is_file():
            return candidate

    expected = " or ".join(MANIFEST_FILENAMES)
    raise ManifestError(
        "Pack manifest not found",
        ErrorCode.MANIFEST_NOT_FOUND,
        hint=f"No manifest file found in {pack_root_dir}. Expected {expected} in the pack root.",
        details={"packRootDir": str(pack_root_dir), "expectedFiles": list(MANIFEST_FILENAMES)},
    )


def _parse_yaml(content: str, manifest_path: Path) -> Any:
    try:
        return yaml.safe_load(content)
    except yaml.YAMLError as exc:
        details: dict[str, Any] = {"manifestPath": str(manifest_path), "reason": str(exc)}
        location = ""
        mark = getattr(exc, "problem_mark", None)
        if mark is not None:
            details["line"] = mark.line + 1
            details["column"] = mark.column + 1
            location = f" at line {mark.line + 1}, column {mark.column + 1}"
        raise ManifestError(
            "Invalid YAML in manifest",
            ErrorCode.MANIFEST_YAML_ERROR,
            hint=f"The manifest {manifest_path} has a YAML syntax error{location}.",
            details=details,
        ) from exc


def _validate(parsed: Any, manifest_path: Path) -> ManifestData:
    try:
        return ManifestData.model_validate(parsed)
    except ValidationError as exc:
        issues = [
            {"path": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
            for err in exc.errors()
        ]
        summary = "; ".join(f"{i['path'] or '(root)'}: {i['message']}" for i in issues[:5])
        raise ManifestError(
            "Manifest validation failed",
            ErrorCode.MANIFEST_SCHEMA_ERROR,
            hint=f"Fix the manifest at {manifest_path}: {summary}",
            details={"manifestPath": str(manifest_path), "issues": issues},
        ) from exc


class ManifestLoader:
    """Loads and validates pack manifests.

    Example::

        manifest = await ManifestLoader().load_from_dir(Path("/abs/pack"))
        manifest.pack.name          # "my-pack"
        manifest.archetypes[0].id   # "default"
    """

    async def load_from_dir(self, pack_root_dir: str | Path) -> PackManifest:
        root = Path(pack_root_dir)
        if not root.is_absolute():
            raise ManifestError(
                "Pack root directory must be an absolute path",
                hint=f"The path '{root}' is not absolute.",
                details={"packRootDir": str(root)},
                is_operational=False,
            )
        return await asyncio.to_thread(self._load_sync, root)

    def _load_sync(self, root: Path) -> PackManifest:
        manifest_path = find_manifest_file(root)
        content = manifest_path.read_text(encoding="utf-8")
        parsed = _parse_yaml(content, manifest_path)
        data = _validate(parsed, manifest_path)
        logger.debug("Loaded manifest %s (%d archetypes)", manifest_path, len(data.archetypes))
        return PackManifest(
            **data.model_dump(by_alias=False),
            manifest_path=manifest_path,
            pack_root_dir=root,
        )
