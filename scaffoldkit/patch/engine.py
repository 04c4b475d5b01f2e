"""Idempotent, marker-delimited textual patches.

Every applied patch leaves a one-line stamp next to its content::

    // SCAFFOLDKIT_PATCH:<idempotencyKey>

The stamp's presence in the target file is the only idempotency signal: a
patch whose stamp is already there is skipped without touching the file.

Patch life cycle, per operation:

1. StampCheck -- already stamped => ``skipped(already_applied)``.
2. Locate -- marker kinds find ``marker_start`` and then ``marker_end``
   strictly after it.  A missing marker is fatal in strict mode and a
   ``skipped(marker_missing)`` otherwise; an end marker that only occurs
   before the start marker is always fatal.
3. Apply -- insert after the start marker, replace between the markers, or
   append at end of file.
4. Commit -- temp file in the same directory + ``os.replace``.  The file's
   dominant line ending (LF or CRLF) is used for everything inserted.

A batch applies operations strictly in order and stops at the first fatal
failure.  Operations applied before the failure stay applied: atomicity is
per file, not per batch.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Literal, Union, assert_never

from pydantic import BaseModel, Field

from scaffoldkit.errors import ErrorCode, PatchError
from scaffoldkit.utils import atomic_write_text

logger = logging.getLogger(__name__)

STAMP_PREFIX = "SCAFFOLDKIT_PATCH:"


def make_stamp(idempotency_key: str) -> str:
    return f"// {STAMP_PREFIX}{idempotency_key}"


def has_stamp(text: str, idempotency_key: str) -> bool:
    """True if the stamp for *idempotency_key* occurs as a whole line ending.

    ``k1`` does not match a ``k10`` stamp.
    """
    pattern = re.escape(make_stamp(idempotency_key)) + r"(?=\r?\n|\Z)"
    return re.search(pattern, text) is not None


def detect_line_ending(text: str) -> str:
    crlf = text.count("\r\n")
    bare_lf = text.count("\n") - crlf
    return "\r\n" if crlf > bare_lf else "\n"


def _normalize_body(content: str, eol: str) -> str:
    body = content.replace("\r\n", "\n").rstrip("\n")
    return body.replace("\n", eol) if eol != "\n" else body


# ---------------------------------------------------------------------------
# Operations (closed set, dispatched exhaustively)
# ---------------------------------------------------------------------------


class _Operation(BaseModel):
    file: str = Field(..., description="Path relative to the engine root")
    idempotency_key: str
    content: str = Field(..., description="Already-rendered content to insert")
    strict: bool = True
    description: str | None = None


class MarkerInsert(_Operation):
    kind: Literal["marker_insert"] = "marker_insert"
    marker_start: str
    marker_end: str


class MarkerReplace(_Operation):
    kind: Literal["marker_replace"] = "marker_replace"
    marker_start: str
    marker_end: str


class AppendIfMissing(_Operation):
    kind: Literal["append_if_missing"] = "append_if_missing"


PatchOperation = Annotated[
    Union[MarkerInsert, MarkerReplace, AppendIfMissing],
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class PatchStatus(str, Enum):
    APPLIED = "applied"
    SKIPPED = "skipped"
    FAILED = "failed"


class SkipReason(str, Enum):
    ALREADY_APPLIED = "already_applied"
    MARKER_MISSING = "marker_missing"
    FILE_NOT_FOUND = "file_not_found"


class PatchResult(BaseModel):
    kind: str
    file: str
    idempotency_key: str
    status: PatchStatus
    reason: SkipReason | None = None
    error_code: str | None = None
    message: str | None = None
    description: str | None = None

    def report_line(self) -> str:
        line = f"[{self.status.value.upper()}] {self.kind} {self.file} ({self.idempotency_key})"
        if self.reason is not None:
            line += f" {self.reason.value}"
        elif self.message:
            line += f" {self.message}"
        return line


@dataclass
class PatchBatchResult:
    applied: int = 0
    skipped: int = 0
    failed: int = 0
    results: list[PatchResult] = field(default_factory=list)
    error: PatchError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def summary(self) -> dict[str, Any]:
        return {
            "applied": self.applied,
            "skipped": self.skipped,
            "failed": self.failed,
            "results": [r.model_dump(mode="json", exclude_none=True) for r in self.results],
        }


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class PatchEngine:
    """Applies patch operations to files under *root_dir*."""

    def __init__(self, root_dir: str | Path) -> None:
        self.root_dir = Path(root_dir)

    async def apply(self, op: MarkerInsert | MarkerReplace | AppendIfMissing) -> PatchResult:
        """Apply a single operation.

        Raises:
            PatchError: on a fatal failure (strict missing marker/file,
                marker order).
        """
        return await asyncio.to_thread(self._apply_sync, op)

    async def apply_all(
        self, ops: list[MarkerInsert | MarkerReplace | AppendIfMissing]
    ) -> PatchBatchResult:
        batch = PatchBatchResult()
        for op in ops:
            try:
                result = await self.apply(op)
            except PatchError as exc:
                batch.failed += 1
                batch.results.append(
                    PatchResult(
                        kind=op.kind,
                        file=op.file,
                        idempotency_key=op.idempotency_key,
                        status=PatchStatus.FAILED,
                        error_code=exc.code.value,
                        message=exc.message,
                        description=op.description,
                    )
                )
                batch.error = exc
                logger.debug("Patch batch stopped at %s: %s", op.idempotency_key, exc)
                break

            batch.results.append(result)
            if result.status is PatchStatus.APPLIED:
                batch.applied += 1
            else:
                batch.skipped += 1
        return batch

    # -- Internals ---------------------------------------------------------

    def _resolve(self, relative: str) -> Path:
        root = self.root_dir.resolve()
        path = (root / relative).resolve()
        if path != root and root not in path.parents:
            raise PatchError(
                f"Patch target escapes the project directory: {relative}",
                ErrorCode.PATCH_APPLICATION_FAILED,
                details={"file": relative},
            )
        return path

    def _result(
        self,
        op: MarkerInsert | MarkerReplace | AppendIfMissing,
        status: PatchStatus,
        reason: SkipReason | None = None,
    ) -> PatchResult:
        return PatchResult(
            kind=op.kind,
            file=op.file,
            idempotency_key=op.idempotency_key,
            status=status,
            reason=reason,
            description=op.description,
        )

    def _apply_sync(self, op: MarkerInsert | MarkerReplace | AppendIfMissing) -> PatchResult:
        path = self._resolve(op.file)

        if not path.is_file():
            if isinstance(op, AppendIfMissing) and not op.strict:
                text = ""
            elif op.strict:
                raise PatchError(
                    f"Patch target file not found: {op.file}",
                    ErrorCode.PATCH_FILE_NOT_FOUND,
                    hint=f"Patch '{op.idempotency_key}' targets {op.file}, which does not exist.",
                    details={"file": op.file, "idempotencyKey": op.idempotency_key},
                )
            else:
                return self._result(op, PatchStatus.SKIPPED, SkipReason.FILE_NOT_FOUND)
        else:
            with open(path, encoding="utf-8", newline="") as handle:
                text = handle.read()

        if has_stamp(text, op.idempotency_key):
            logger.debug("Patch %s already applied to %s", op.idempotency_key, op.file)
            return self._result(op, PatchStatus.SKIPPED, SkipReason.ALREADY_APPLIED)

        eol = detect_line_ending(text)
        body = _normalize_body(op.content, eol)
        stamp = make_stamp(op.idempotency_key)

        if isinstance(op, MarkerInsert):
            span = self._locate(text, op)
            if span is None:
                return self._result(op, PatchStatus.SKIPPED, SkipReason.MARKER_MISSING)
            insert_at, _ = span
            before, rest = text[:insert_at], text[insert_at:]
            tail = rest if rest.startswith(("\n", "\r\n")) else eol + rest
            new_text = before + eol + body + eol + stamp + tail
        elif isinstance(op, MarkerReplace):
            span = self._locate(text, op)
            if span is None:
                return self._result(op, PatchStatus.SKIPPED, SkipReason.MARKER_MISSING)
            insert_at, end = span
            new_text = text[:insert_at] + eol + body + eol + stamp + eol + text[end:]
        elif isinstance(op, AppendIfMissing):
            separator = eol if text and not text.endswith("\n") else ""
            new_text = text + separator + body + eol + stamp + eol
        else:
            assert_never(op)

        atomic_write_text(path, new_text, newline="")
        logger.debug("Applied %s %s to %s", op.kind, op.idempotency_key, op.file)
        return self._result(op, PatchStatus.APPLIED)

    def _locate(self, text: str, op: MarkerInsert | MarkerReplace) -> tuple[int, int] | None:
        """Return ``(end of start marker, start of end marker)``.

        ``None`` means a marker is missing and the op is non-strict.
        """
        start = text.find(op.marker_start)
        end = -1
        if start != -1:
            end = text.find(op.marker_end, start + len(op.marker_start))
            if end == -1 and text.find(op.marker_end) != -1:
                raise PatchError(
                    "Patch end marker appears before start marker",
                    ErrorCode.PATCH_MARKER_ORDER,
                    hint=(
                        f"In {op.file}, '{op.marker_end}' must come after "
                        f"'{op.marker_start}'."
                    ),
                    details={
                        "file": op.file,
                        "idempotencyKey": op.idempotency_key,
                        "markerStart": op.marker_start,
                        "markerEnd": op.marker_end,
                    },
                )

        if start == -1 or end == -1:
            missing = op.marker_start if start == -1 else op.marker_end
            if not op.strict:
                return None
            raise PatchError(
                f"Patch marker not found: {missing}",
                ErrorCode.PATCH_MARKER_NOT_FOUND,
                hint=(
                    f"Add '{op.marker_start}' and '{op.marker_end}' to {op.file}, "
                    "or mark the patch `strict: false` to skip it."
                ),
                details={
                    "file": op.file,
                    "idempotencyKey": op.idempotency_key,
                    "missingMarker": missing,
                },
            )
        return start + len(op.marker_start), end
