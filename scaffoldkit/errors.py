"""Error taxonomy for scaffoldkit.

Every failure a user can act on is raised as a :class:`ScaffoldError` carrying
a stable machine-readable :class:`ErrorCode`, a human hint and structured
details.  Programming errors (for example a relative path handed to a
component that requires an absolute one) use the same class with
``is_operational=False`` so the CLI can tell the two apart.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Stable public error codes, grouped by domain prefix."""

    # Packs / store
    PACK_NOT_FOUND = "PACK_NOT_FOUND"
    VERSION_NOT_FOUND = "VERSION_NOT_FOUND"
    PACK_STORE_MISSING = "PACK_STORE_MISSING"
    PACK_STORE_FAILED = "PACK_STORE_FAILED"
    PACK_FETCH_FAILED = "PACK_FETCH_FAILED"
    PACK_INCOMPATIBLE = "PACK_INCOMPATIBLE"
    REGISTRY_INVALID_JSON = "REGISTRY_INVALID_JSON"
    REGISTRY_INVALID_SCHEMA = "REGISTRY_INVALID_SCHEMA"

    # Manifest / archetype
    MANIFEST_NOT_FOUND = "MANIFEST_NOT_FOUND"
    MANIFEST_YAML_ERROR = "MANIFEST_YAML_ERROR"
    MANIFEST_SCHEMA_ERROR = "MANIFEST_SCHEMA_ERROR"
    ARCHETYPE_NOT_FOUND = "ARCHETYPE_NOT_FOUND"
    INVALID_ARCHETYPE_REF = "INVALID_ARCHETYPE_REF"

    # Generation
    TEMPLATE_DIR_NOT_FOUND = "TEMPLATE_DIR_NOT_FOUND"
    TEMPLATE_RENDER_FAILED = "TEMPLATE_RENDER_FAILED"
    RENDER_PATH_TRAVERSAL = "RENDER_PATH_TRAVERSAL"
    GENERATE_CONFLICT = "GENERATE_CONFLICT"
    STAGING_FAILED = "STAGING_FAILED"
    STAGING_COMMIT_FAILED = "STAGING_COMMIT_FAILED"
    STAGING_TARGET_CHANGED = "STAGING_TARGET_CHANGED"
    TARGET_LOCKED = "TARGET_LOCKED"

    # Patches
    PATCH_MARKER_NOT_FOUND = "PATCH_MARKER_NOT_FOUND"
    PATCH_MARKER_ORDER = "PATCH_MARKER_ORDER"
    PATCH_FILE_NOT_FOUND = "PATCH_FILE_NOT_FOUND"
    PATCH_APPLICATION_FAILED = "PATCH_APPLICATION_FAILED"
    PATCH_CONTENT_MISSING = "PATCH_CONTENT_MISSING"
    PATCH_RENDER_ERROR = "PATCH_RENDER_ERROR"

    # Lifecycle commands
    HOOK_EXECUTION_FAILED = "HOOK_EXECUTION_FAILED"
    CHECK_FAILED = "CHECK_FAILED"

    # Project state
    STATE_INVALID_JSON = "STATE_INVALID_JSON"
    STATE_INVALID_SCHEMA = "STATE_INVALID_SCHEMA"
    STATE_VERSION_UNSUPPORTED = "STATE_VERSION_UNSUPPORTED"

    INTERNAL_ERROR = "INTERNAL_ERROR"


# CLI exit codes by range: 10-19 packs, 20-29 manifest, 30-39 generation,
# 40-49 patches, 50-59 hooks/checks, 60-69 state, 1 internal.
_EXIT_CODES: dict[ErrorCode, int] = {
    ErrorCode.PACK_NOT_FOUND: 10,
    ErrorCode.VERSION_NOT_FOUND: 11,
    ErrorCode.PACK_STORE_MISSING: 12,
    ErrorCode.PACK_STORE_FAILED: 13,
    ErrorCode.PACK_FETCH_FAILED: 14,
    ErrorCode.PACK_INCOMPATIBLE: 15,
    ErrorCode.REGISTRY_INVALID_JSON: 16,
    ErrorCode.REGISTRY_INVALID_SCHEMA: 17,
    ErrorCode.MANIFEST_NOT_FOUND: 20,
    ErrorCode.MANIFEST_YAML_ERROR: 21,
    ErrorCode.MANIFEST_SCHEMA_ERROR: 22,
    ErrorCode.ARCHETYPE_NOT_FOUND: 23,
    ErrorCode.INVALID_ARCHETYPE_REF: 24,
    ErrorCode.TEMPLATE_DIR_NOT_FOUND: 30,
    ErrorCode.TEMPLATE_RENDER_FAILED: 31,
    ErrorCode.RENDER_PATH_TRAVERSAL: 32,
    ErrorCode.GENERATE_CONFLICT: 33,
    ErrorCode.STAGING_FAILED: 34,
    ErrorCode.STAGING_COMMIT_FAILED: 35,
    ErrorCode.TARGET_LOCKED: 36,
    ErrorCode.STAGING_TARGET_CHANGED: 37,
    ErrorCode.PATCH_MARKER_NOT_FOUND: 40,
    ErrorCode.PATCH_MARKER_ORDER: 41,
    ErrorCode.PATCH_FILE_NOT_FOUND: 42,
    ErrorCode.PATCH_APPLICATION_FAILED: 43,
    ErrorCode.PATCH_CONTENT_MISSING: 44,
    ErrorCode.PATCH_RENDER_ERROR: 45,
    ErrorCode.HOOK_EXECUTION_FAILED: 50,
    ErrorCode.CHECK_FAILED: 51,
    ErrorCode.STATE_INVALID_JSON: 60,
    ErrorCode.STATE_INVALID_SCHEMA: 61,
    ErrorCode.STATE_VERSION_UNSUPPORTED: 62,
    ErrorCode.INTERNAL_ERROR: 1,
}


def exit_code_for(code: ErrorCode | str) -> int:
    """Return the CLI exit code for an error code (``1`` when unknown)."""
    try:
        return _EXIT_CODES.get(ErrorCode(code), 1)
    except ValueError:
        return 1


class ScaffoldError(Exception):
    """Base class for every scaffoldkit failure.

    Args:
        message: Short description of what went wrong.
        code: Machine-readable error code.
        hint: What the user can do about it.
        details: Structured context for tooling (paths, commands, output).
        is_operational: ``False`` for programming errors.
    """

    default_code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        code: ErrorCode | None = None,
        *,
        hint: str = "",
        details: dict[str, Any] | None = None,
        is_operational: bool = True,
    ) -> None:
        self.message = message
        self.code = code or self.default_code
        self.hint = hint
        self.details = details or {}
        self.is_operational = is_operational
        super().__init__(message)

    @property
    def exit_code(self) -> int:
        return exit_code_for(self.code)

    def to_dict(self) -> dict[str, Any]:
        """Serialisable payload for ``--json`` output and logs."""
        payload: dict[str, Any] = {
            "code": self.code.value,
            "message": self.message,
            "hint": self.hint,
            "details": self.details,
            "operational": self.is_operational,
        }
        if self.__cause__ is not None:
            payload["cause"] = str(self.__cause__)
        return payload

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}"


# ---------------------------------------------------------------------------
# Frequently caught subclasses
# ---------------------------------------------------------------------------


class PackNotFoundError(ScaffoldError):
    default_code = ErrorCode.PACK_NOT_FOUND

    def __init__(self, pack_id: str) -> None:
        self.pack_id = pack_id
        super().__init__(
            f"Pack '{pack_id}' not found",
            hint=f"Pack '{pack_id}' is not installed. Run `scaffoldkit pack list` to see installed packs.",
            details={"packId": pack_id},
        )


class VersionNotFoundError(ScaffoldError):
    default_code = ErrorCode.VERSION_NOT_FOUND

    def __init__(self, pack_id: str, requested: str, available: list[str]) -> None:
        self.pack_id = pack_id
        self.requested = requested
        self.available = list(available)
        super().__init__(
            f"Version '{requested}' of pack '{pack_id}' not found",
            hint=(
                f"Version '{requested}' is not installed for pack '{pack_id}'. "
                f"Available versions: {', '.join(self.available) or '(none)'}."
            ),
            details={
                "packId": pack_id,
                "requestedVersion": requested,
                "availableVersions": self.available,
            },
        )


class ManifestError(ScaffoldError):
    """Raised by the manifest loader (not found, YAML, schema)."""

    default_code = ErrorCode.MANIFEST_SCHEMA_ERROR


class RegistryError(ScaffoldError):
    default_code = ErrorCode.REGISTRY_INVALID_SCHEMA


class RenderError(ScaffoldError):
    default_code = ErrorCode.TEMPLATE_RENDER_FAILED


class GenerateConflictError(ScaffoldError):
    """Raised when generation would overwrite existing files without ``force``."""

    default_code = ErrorCode.GENERATE_CONFLICT

    def __init__(self, target_dir: str, modifies: list[str]) -> None:
        self.modifies = list(modifies)
        shown = "\n".join(f"  - {path}" for path in self.modifies[:10])
        more = len(self.modifies) - 10
        if more > 0:
            shown += f"\n  ... and {more} more"
        super().__init__(
            f"Generation would overwrite {len(self.modifies)} existing file(s)",
            hint=(
                f"Conflicting files:\n{shown}\n\n"
                "Choose a different target directory, move the conflicting files "
                "away, or re-run with --force to overwrite them."
            ),
            details={
                "targetDir": target_dir,
                "count": len(self.modifies),
                "conflictingFiles": self.modifies,
            },
        )


class PatchError(ScaffoldError):
    """Fatal patch failure (missing marker, marker order, missing file)."""

    default_code = ErrorCode.PATCH_APPLICATION_FAILED


class LifecycleCommandError(ScaffoldError):
    """A postGenerate hook or check command exited non-zero."""

    default_code = ErrorCode.HOOK_EXECUTION_FAILED

    def __init__(
        self,
        message: str,
        *,
        command: str,
        cwd: str,
        exit_code: int,
        stdout: str = "",
        stderr: str = "",
        index: int = 1,
        total: int = 1,
        hint: str = "",
    ) -> None:
        self.command = command
        self.exit_code_value = exit_code
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(
            message,
            hint=hint
            or (
                f'Command failed: "{command}" (exit code {exit_code}). '
                f'Run it manually to debug: cd "{cwd}" && {command}'
            ),
            details={
                "command": command,
                "cwd": cwd,
                "exitCode": exit_code,
                "stdout": stdout,
                "stderr": stderr,
                "index": index,
                "total": total,
            },
        )


class HookExecutionError(LifecycleCommandError):
    default_code = ErrorCode.HOOK_EXECUTION_FAILED


class CheckFailedError(LifecycleCommandError):
    default_code = ErrorCode.CHECK_FAILED


class StagingError(ScaffoldError):
    default_code = ErrorCode.STAGING_FAILED


class StateError(ScaffoldError):
    default_code = ErrorCode.STATE_INVALID_SCHEMA


class StateVersionError(StateError):
    """The state file was written by a newer scaffoldkit."""

    default_code = ErrorCode.STATE_VERSION_UNSUPPORTED

    def __init__(self, found: int, supported: int, path: str = "") -> None:
        self.found = found
        self.supported = supported
        super().__init__(
            f'Unsupported state version "{found}"',
            hint=(
                "This project state was written by a newer version of scaffoldkit. "
                "Upgrade scaffoldkit before generating into this directory."
            ),
            details={"stateVersion": found, "maxSupportedVersion": supported, "path": path},
        )


class FetchError(ScaffoldError):
    default_code = ErrorCode.PACK_FETCH_FAILED
