"""Turn manifest patch declarations into ready-to-apply engine operations.

Content comes either from an inline ``contentTemplate`` or from a file in
the installed pack (``path``, relative to the pack root).  Both are rendered
with the same data as the templates.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, assert_never

from jinja2 import TemplateError

from scaffoldkit.errors import ErrorCode, PatchError
from scaffoldkit.generator.renderer import TemplateRenderer
from scaffoldkit.manifest.models import AppendIfMissingPatch, MarkerInsertPatch, MarkerReplacePatch
from scaffoldkit.patch.engine import AppendIfMissing, MarkerInsert, MarkerReplace


class PatchResolver:
    def __init__(self, renderer: TemplateRenderer | None = None) -> None:
        self.renderer = renderer or TemplateRenderer()

    async def resolve_all(
        self,
        patches: list[MarkerInsertPatch | MarkerReplacePatch | AppendIfMissingPatch],
        data: dict[str, Any],
        pack_dir: Path,
    ) -> list[MarkerInsert | MarkerReplace | AppendIfMissing]:
        return [await self.resolve(patch, data, pack_dir) for patch in patches]

    async def resolve(
        self,
        patch: MarkerInsertPatch | MarkerReplacePatch | AppendIfMissingPatch,
        data: dict[str, Any],
        pack_dir: Path,
    ) -> MarkerInsert | MarkerReplace | AppendIfMissing:
        content = await self._content(patch, data, pack_dir)
        common = {
            "file": patch.file,
            "idempotency_key": patch.idempotency_key,
            "content": content,
            "strict": patch.strict,
            "description": patch.description,
        }

        if isinstance(patch, MarkerInsertPatch):
            return MarkerInsert(marker_start=patch.marker_start, marker_end=patch.marker_end, **common)
        elif isinstance(patch, MarkerReplacePatch):
            return MarkerReplace(marker_start=patch.marker_start, marker_end=patch.marker_end, **common)
        elif isinstance(patch, AppendIfMissingPatch):
            return AppendIfMissing(**common)
        else:
            assert_never(patch)

    async def _content(
        self,
        patch: MarkerInsertPatch | MarkerReplacePatch | AppendIfMissingPatch,
        data: dict[str, Any],
        pack_dir: Path,
    ) -> str:
        if patch.content_template is not None:
            template = patch.content_template
        elif patch.path is not None:
            source = pack_dir / patch.path
            try:
                template = await asyncio.to_thread(source.read_text, "utf-8")
            except OSError as exc:
                raise PatchError(
                    f"Patch content file not found: {patch.path}",
                    ErrorCode.PATCH_FILE_NOT_FOUND,
                    hint=f"Patch '{patch.idempotency_key}' references {patch.path}, which is missing from the pack.",
                    details={"path": patch.path, "packDir": str(pack_dir), "idempotencyKey": patch.idempotency_key},
                ) from exc
        else:
            raise PatchError(
                "Patch has no content source",
                ErrorCode.PATCH_CONTENT_MISSING,
                hint=f"Patch '{patch.idempotency_key}' needs either contentTemplate or path.",
                details={"idempotencyKey": patch.idempotency_key},
            )

        try:
            return self.renderer.render_string(template, data)
        except TemplateError as exc:
            raise PatchError(
                "Failed to render patch template",
                ErrorCode.PATCH_RENDER_ERROR,
                hint=f"Patch '{patch.idempotency_key}' failed to render: {exc}",
                details={"idempotencyKey": patch.idempotency_key},
            ) from exc
