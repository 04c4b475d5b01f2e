"""Idempotent textual patching of generated files."""

from scaffoldkit.patch.engine import (
    STAMP_PREFIX,
    AppendIfMissing,
    MarkerInsert,
    MarkerReplace,
    PatchBatchResult,
    PatchEngine,
    PatchOperation,
    PatchResult,
    PatchStatus,
    SkipReason,
    detect_line_ending,
    has_stamp,
    make_stamp,
)
from scaffoldkit.patch.resolver import PatchResolver

__all__ = [
    "AppendIfMissing",
    "MarkerInsert",
    "MarkerReplace",
    "PatchBatchResult",
    "PatchEngine",
    "PatchOperation",
    "PatchResolver",
    "PatchResult",
    "PatchStatus",
    "STAMP_PREFIX",
    "SkipReason",
    "detect_line_ending",
    "has_stamp",
    "make_stamp",
]
