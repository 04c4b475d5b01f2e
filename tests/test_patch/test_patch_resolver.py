"""Tests for turning manifest patches into engine operations (scaffoldkit.patch.resolver)."""

from __future__ import annotations

from pathlib import Path

import pytest

from scaffoldkit.errors import ErrorCode, PatchError
from scaffoldkit.manifest.models import AppendIfMissingPatch, MarkerInsertPatch, MarkerReplacePatch
from scaffoldkit.patch.engine import AppendIfMissing, MarkerInsert, MarkerReplace
from scaffoldkit.patch.resolver import PatchResolver


@pytest.fixture
def resolver() -> PatchResolver:
    return PatchResolver()


class TestResolve:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_inline_template_rendered(self, resolver, tmp_path: Path):
        patch = MarkerInsertPatch(
            kind="marker_insert",
            file="src/routes.ts",
            idempotency_key="route",
            content_template="router.use('/{{ name | slugify }}')",
            marker_start="<S>",
            marker_end="<E>",
            description="register route",
        )
        op = await resolver.resolve(patch, {"name": "User Profile"}, tmp_path)

        assert isinstance(op, MarkerInsert)
        assert op.content == "router.use('/user-profile')"
        assert op.marker_start == "<S>"
        assert op.strict is True
        assert op.description == "register route"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_content_from_pack_file(self, resolver, tmp_path: Path):
        (tmp_path / "patches").mkdir()
        (tmp_path / "patches" / "ignore.txt").write_text("{{ out }}/\n", encoding="utf-8")
        patch = AppendIfMissingPatch(
            kind="append_if_missing",
            file=".gitignore",
            idempotency_key="ignore",
            path="patches/ignore.txt",
            strict=False,
        )
        op = await resolver.resolve(patch, {"out": "dist"}, tmp_path)

        assert isinstance(op, AppendIfMissing)
        assert op.content == "dist/\n"
        assert op.strict is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_resolve_all_keeps_order(self, resolver, tmp_path: Path):
        patches = [
            MarkerReplacePatch(
                kind="marker_replace", file="a", idempotency_key="1", content_template="a",
                marker_start="<S>", marker_end="<E>",
            ),
            AppendIfMissingPatch(kind="append_if_missing", file="b", idempotency_key="2", content_template="b"),
        ]
        ops = await resolver.resolve_all(patches, {}, tmp_path)
        assert [type(op) for op in ops] == [MarkerReplace, AppendIfMissing]
        assert [op.idempotency_key for op in ops] == ["1", "2"]


class TestResolveErrors:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_content_file(self, resolver, tmp_path: Path):
        patch = AppendIfMissingPatch(
            kind="append_if_missing", file="a", idempotency_key="k", path="patches/missing.txt"
        )
        with pytest.raises(PatchError) as exc_info:
            await resolver.resolve(patch, {}, tmp_path)
        assert exc_info.value.code is ErrorCode.PATCH_FILE_NOT_FOUND

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_template_syntax_error(self, resolver, tmp_path: Path):
        patch = AppendIfMissingPatch(
            kind="append_if_missing", file="a", idempotency_key="k", content_template="{% if %}"
        )
        with pytest.raises(PatchError) as exc_info:
            await resolver.resolve(patch, {}, tmp_path)
        assert exc_info.value.code is ErrorCode.PATCH_RENDER_ERROR
