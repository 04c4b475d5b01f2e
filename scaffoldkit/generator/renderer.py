"""Jinja2 rendering of a pack's template tree.

Every file under an archetype's template root is mirrored into the target
directory.  Text files are rendered as Jinja2 templates with the generation
data; binary files (a NUL byte within the first 8 KiB) are copied verbatim.
File modes are preserved.  Rename rules rewrite destination paths, e.g.
``{"__Entity__": "User"}`` turns ``__Entity__/__Entity__Repo.ts`` into
``User/UserRepo.ts``.
"""

from __future__ import annotations

import asyncio
import logging
import re
import shutil
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Any

from jinja2 import Environment, TemplateError, TemplateSyntaxError
from pydantic import BaseModel, Field

from scaffoldkit.errors import ErrorCode, RenderError

logger = logging.getLogger(__name__)

BINARY_CHECK_SIZE = 8192


class FileMode(str, Enum):
    RENDERED = "rendered"
    COPIED = "copied"


class PlannedFile(BaseModel):
    src_relative_path: str
    dest_relative_path: str
    mode: FileMode


class RenderResult(BaseModel):
    dry_run: bool = False
    files_planned: list[PlannedFile] = Field(default_factory=list)
    files_written: list[PlannedFile] = Field(default_factory=list)

    @property
    def files(self) -> list[PlannedFile]:
        return self.files_planned if self.dry_run else self.files_written


# ---------------------------------------------------------------------------
# TemplateRenderer
# ---------------------------------------------------------------------------


class TemplateRenderer:
    """Renders template trees and inline template strings.

    Missing variables render as empty strings.
    """

    def __init__(self) -> None:
        self.env = Environment(
            autoescape=False,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters["slugify"] = _slugify_filter
        self.env.filters["pascal_case"] = _pascal_case_filter
        self.env.filters["snake_case"] = _snake_case_filter
        self.env.filters["camel_case"] = _camel_case_filter
        # Jinja2 normalises newlines; CRLF templates render through this overlay.
        self.crlf_env = self.env.overlay(newline_sequence="\r\n")

    # -- Inline rendering --------------------------------------------------

    def render_string(self, template_string: str, context: dict[str, Any]) -> str:
        """Render an inline template string with the provided context.

        Raises:
            TemplateError: Jinja2 syntax or runtime errors are left to the
                caller, which knows how to report them.
        """
        env = self.crlf_env if "\r\n" in template_string else self.env
        return env.from_string(template_string).render(**context)

    # -- Planning ----------------------------------------------------------

    def plan(
        self,
        template_root: str | Path,
        data: dict[str, Any] | None = None,
        rename_rules: dict[str, str] | None = None,
    ) -> list[PlannedFile]:
        """List every file the template tree would produce, sorted by source path."""
        root = Path(template_root)
        if not root.is_dir():
            raise RenderError(
                f"Template directory not found: {root}",
                ErrorCode.TEMPLATE_DIR_NOT_FOUND,
                details={"templateRoot": str(root)},
            )

        planned: list[PlannedFile] = []
        for src in sorted(p for p in root.rglob("*") if p.is_file()):
            rel = src.relative_to(root).as_posix()
            dest = apply_rename_rules(rel, rename_rules or {})
            mode = FileMode.COPIED if is_binary_file(src) else FileMode.RENDERED
            planned.append(PlannedFile(src_relative_path=rel, dest_relative_path=dest, mode=mode))
        return planned

    # -- Rendering ---------------------------------------------------------

    async def render(
        self,
        template_root: str | Path,
        target_dir: str | Path,
        data: dict[str, Any],
        rename_rules: dict[str, str] | None = None,
        dry_run: bool = False,
    ) -> RenderResult:
        """Render *template_root* into *target_dir*.

        In dry-run mode nothing is written and ``files_planned`` is filled;
        otherwise ``files_written`` lists what was produced.
        """
        planned = await asyncio.to_thread(self.plan, template_root, data, rename_rules)
        if dry_run:
            return RenderResult(dry_run=True, files_planned=planned)

        await asyncio.to_thread(self._write_all, Path(template_root), Path(target_dir), data, planned)
        logger.debug("Rendered %d file(s) into %s", len(planned), target_dir)
        return RenderResult(dry_run=False, files_written=planned)

    def _write_all(
        self,
        root: Path,
        target: Path,
        data: dict[str, Any],
        planned: list[PlannedFile],
    ) -> None:
        for item in planned:
            src = root / item.src_relative_path
            dest = target / item.dest_relative_path
            dest.parent.mkdir(parents=True, exist_ok=True)

            if item.mode is FileMode.COPIED:
                shutil.copyfile(src, dest)
            else:
                with open(src, encoding="utf-8", errors="surrogateescape", newline="") as handle:
                    source_text = handle.read()
                try:
                    rendered = self.render_string(source_text, data)
                except TemplateSyntaxError as exc:
                    raise RenderError(
                        f"Template syntax error in {item.src_relative_path}",
                        hint=f"Line {exc.lineno}: {exc.message}",
                        details={"file": item.src_relative_path, "line": exc.lineno},
                    ) from exc
                except TemplateError as exc:
                    raise RenderError(
                        f"Failed to render {item.src_relative_path}",
                        hint=str(exc),
                        details={"file": item.src_relative_path},
                    ) from exc
                with open(dest, "w", encoding="utf-8", errors="surrogateescape", newline="") as handle:
                    handle.write(rendered)
            shutil.copymode(src, dest)


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------


def apply_rename_rules(relative_path: str, rename_rules: dict[str, str]) -> str:
    """Apply plain substring rename rules, longest key first.

    Raises:
        RenderError: ``RENDER_PATH_TRAVERSAL`` if the result is absolute or
            climbs out of the target directory.
    """
    result = relative_path
    for key in sorted(rename_rules, key=len, reverse=True):
        if key:
            result = result.replace(key, rename_rules[key])

    pure = PurePosixPath(result.replace("\\", "/"))
    if pure.is_absolute() or ".." in pure.parts or not pure.parts:
        raise RenderError(
            "Path traversal detected in rename rules",
            ErrorCode.RENDER_PATH_TRAVERSAL,
            hint=f"'{relative_path}' was renamed to '{result}', which escapes the target directory.",
            details={"source": relative_path, "destination": result},
        )
    return pure.as_posix()


def is_binary_file(path: Path) -> bool:
    with open(path, "rb") as handle:
        return b"\x00" in handle.read(BINARY_CHECK_SIZE)


# ---------------------------------------------------------------------------
# Jinja2 custom filters
# ---------------------------------------------------------------------------


def _slugify_filter(value: str) -> str:
    """Convert a string to a URL/filename-safe slug."""
    slug = re.sub(r"[^a-z0-9]+", "-", str(value).lower().strip())
    return slug.strip("-")


def _pascal_case_filter(value: str) -> str:
    """Convert ``some-thing`` or ``some_thing`` to ``SomeThing``."""
    parts = re.split(r"[-_\s]+", str(value))
    return "".join(word[:1].upper() + word[1:] for word in parts if word)


def _snake_case_filter(value: str) -> str:
    """Convert ``SomeThing``, ``some-thing`` or ``Some Thing`` to ``some_thing``."""
    s0 = re.sub(r"[-\s]+", "_", str(value).strip())
    s1 = re.sub(r"(.)([A-Z][a-z]+)", r"\1_\2", s0)
    s2 = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", s1)
    return re.sub(r"_+", "_", s2).lower()


def _camel_case_filter(value: str) -> str:
    """Convert ``some-thing`` or ``some_thing`` to ``someThing``."""
    pascal = _pascal_case_filter(value)
    if pascal:
        return pascal[0].lower() + pascal[1:]
    return ""
