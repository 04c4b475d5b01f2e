"""Pack manifest models, loader and canonical hashing."""

from scaffoldkit.manifest.hashing import canonical_manifest_bytes, compute_manifest_hash
from scaffoldkit.manifest.loader import MANIFEST_FILENAMES, ManifestLoader, find_manifest_file
from scaffoldkit.manifest.models import (
    AppendIfMissingPatch,
    Archetype,
    Compatibility,
    ManifestData,
    ManifestPatch,
    MarkerInsertPatch,
    MarkerReplacePatch,
    PackInfo,
    PackManifest,
)

__all__ = [
    "AppendIfMissingPatch",
    "Archetype",
    "Compatibility",
    "MANIFEST_FILENAMES",
    "ManifestData",
    "ManifestLoader",
    "ManifestPatch",
    "MarkerInsertPatch",
    "MarkerReplacePatch",
    "PackInfo",
    "PackManifest",
    "canonical_manifest_bytes",
    "compute_manifest_hash",
    "find_manifest_file",
]
