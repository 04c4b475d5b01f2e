"""Check the running scaffoldkit version against a pack's constraints."""

from __future__ import annotations

from dataclasses import dataclass

from scaffoldkit.errors import ErrorCode, ScaffoldError
from scaffoldkit.manifest.models import Compatibility
from scaffoldkit.store.versions import compare_versions


@dataclass
class CompatibilityResult:
    compatible: bool
    reason: str = ""


def check_compatibility(tool_version: str, compatibility: Compatibility | None) -> CompatibilityResult:
    if compatibility is None:
        return CompatibilityResult(compatible=True)

    if compatibility.min_version and compare_versions(tool_version, compatibility.min_version) < 0:
        return CompatibilityResult(False, f"Requires minimum scaffoldkit version {compatibility.min_version}")
    if compatibility.max_version and compare_versions(tool_version, compatibility.max_version) > 0:
        return CompatibilityResult(False, f"Requires maximum scaffoldkit version {compatibility.max_version}")
    if tool_version in compatibility.incompatible:
        return CompatibilityResult(
            False, f"scaffoldkit version {tool_version} is explicitly marked as incompatible"
        )
    return CompatibilityResult(compatible=True)


def format_constraints(compatibility: Compatibility | None) -> str:
    """Human-readable summary, e.g. ``">=0.3.0, <=1.0.0, not 0.3.2"``."""
    if compatibility is None:
        return ""
    parts: list[str] = []
    if compatibility.min_version:
        parts.append(f">={compatibility.min_version}")
    if compatibility.max_version:
        parts.append(f"<={compatibility.max_version}")
    if compatibility.incompatible:
        parts.append("not " + ", ".join(compatibility.incompatible))
    return ", ".join(parts)


def ensure_compatible(
    pack_id: str, pack_version: str, tool_version: str, compatibility: Compatibility | None
) -> None:
    """Raise ``PACK_INCOMPATIBLE`` when the running version is excluded."""
    result = check_compatibility(tool_version, compatibility)
    if result.compatible:
        return
    raise ScaffoldError(
        f"Pack '{pack_id}@{pack_version}' is not compatible with scaffoldkit {tool_version}",
        ErrorCode.PACK_INCOMPATIBLE,
        hint=f"{result.reason}. Supported: {format_constraints(compatibility)}.",
        details={
            "packId": pack_id,
            "packVersion": pack_version,
            "toolVersion": tool_version,
            "constraints": compatibility.model_dump(by_alias=True) if compatibility else None,
        },
    )
