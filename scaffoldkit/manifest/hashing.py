"""Canonical manifest bytes and the content hash derived from them.

The hash identifies a pack version in the store.  It is computed over the
*parsed* manifest rather than the raw file, so whitespace, comments, key
order and line endings do not change it.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from scaffoldkit.utils import sha256_hex


def canonical_manifest_bytes(data: Any) -> bytes:
    """Serialise parsed manifest data as compact JSON with sorted keys."""
    return json.dumps(
        data, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str
    ).encode("utf-8")


def compute_manifest_hash(manifest_path: str | Path) -> str:
    """Return the SHA-256 hex digest of a manifest file's canonical form."""
    text = Path(manifest_path).read_text(encoding="utf-8")
    parsed = yaml.safe_load(text)
    return sha256_hex(canonical_manifest_bytes(parsed))
