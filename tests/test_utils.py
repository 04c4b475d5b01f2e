"""Unit tests for utility functions (scaffoldkit.utils).

Tests cover:
- run_command (success, failure, timeout, list vs string)
- sanitize_pack_id
- atomic_write_text / save_json / load_json
- format_duration
- Rich output helpers
"""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest

from scaffoldkit.utils import (
    atomic_write_text,
    format_duration,
    load_json,
    print_error,
    print_success,
    print_summary_table,
    print_warning,
    run_command,
    sanitize_pack_id,
    save_json,
)


# ---------------------------------------------------------------------------
# run_command
# ---------------------------------------------------------------------------


class TestRunCommand:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_successful_command_string(self):
        returncode, stdout, stderr = await run_command("echo hello")
        assert returncode == 0
        assert stdout == "hello"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_successful_command_list(self):
        returncode, stdout, _ = await run_command(["echo", "hello"])
        assert returncode == 0
        assert "hello" in stdout

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failed_command(self):
        returncode, _, stderr = await run_command("echo oops >&2; exit 3")
        assert returncode == 3
        assert stderr == "oops"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_command_with_cwd(self, tmp_path: Path):
        returncode, stdout, _ = await run_command("pwd", cwd=tmp_path)
        assert returncode == 0
        assert Path(stdout).resolve() == tmp_path.resolve()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_timeout_kills_process(self, mock_subprocess):
        proc = mock_subprocess()
        with patch("asyncio.create_subprocess_shell", return_value=proc), patch(
            "asyncio.wait_for", side_effect=asyncio.TimeoutError
        ):
            returncode, _, stderr = await run_command("sleep 100", timeout=1)
        assert returncode == -1
        assert "timed out" in stderr
        proc.kill.assert_called_once()


# ---------------------------------------------------------------------------
# sanitize_pack_id
# ---------------------------------------------------------------------------


class TestSanitizePackId:
    @pytest.mark.unit
    def test_plain_id_unchanged(self):
        assert sanitize_pack_id("my-pack") == "my-pack"

    @pytest.mark.unit
    def test_separators_flattened_with_digest(self):
        result = sanitize_pack_id("@org/pack")
        assert result.startswith("@org__pack-")
        assert len(result) == len("@org__pack-") + 8
        assert "/" not in result

    @pytest.mark.unit
    def test_distinct_ids_never_collide(self):
        # Both flatten to "a__b" before the digest is appended.
        assert sanitize_pack_id("a/b") != sanitize_pack_id("a__b")

    @pytest.mark.unit
    def test_invalid_characters_replaced(self):
        result = sanitize_pack_id('we:ird*name')
        assert result.startswith("we_ird_name-")


# ---------------------------------------------------------------------------
# File I/O
# ---------------------------------------------------------------------------


class TestAtomicWrite:
    @pytest.mark.unit
    def test_writes_verbatim_line_endings(self, tmp_path: Path):
        path = tmp_path / "file.txt"
        atomic_write_text(path, "a\r\nb\r\n")
        assert path.read_bytes() == b"a\r\nb\r\n"

    @pytest.mark.unit
    def test_preserves_existing_mode(self, tmp_path: Path):
        path = tmp_path / "run.sh"
        path.write_text("old", encoding="utf-8")
        os.chmod(path, 0o755)
        atomic_write_text(path, "new")
        assert path.read_text(encoding="utf-8") == "new"
        assert path.stat().st_mode & 0o777 == 0o755

    @pytest.mark.unit
    def test_leaves_no_temp_files(self, tmp_path: Path):
        atomic_write_text(tmp_path / "nested" / "file.txt", "x")
        assert [p.name for p in (tmp_path / "nested").iterdir()] == ["file.txt"]


class TestJson:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_save_and_load(self, tmp_path: Path):
        path = tmp_path / "data.json"
        await save_json({"b": 1, "a": [1, 2]}, path)
        assert load_json(path) == {"b": 1, "a": [1, 2]}
        assert path.read_text(encoding="utf-8").endswith("\n")

    @pytest.mark.unit
    def test_load_invalid_json_raises(self, tmp_path: Path):
        path = tmp_path / "bad.json"
        path.write_text("{nope", encoding="utf-8")
        with pytest.raises(json.JSONDecodeError):
            load_json(path)


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


class TestFormatDuration:
    @pytest.mark.unit
    @pytest.mark.parametrize(
        "seconds,expected",
        [(0.25, "250ms"), (3.7, "3.7s"), (65.2, "1m 5s"), (-1, "0ms")],
    )
    def test_format(self, seconds, expected):
        assert format_duration(seconds) == expected


class TestRichHelpers:
    @pytest.mark.unit
    def test_helpers_print(self, capsys):
        print_success("done")
        print_error("failed")
        print_warning("careful")
        print_summary_table({"Pack": "demo"}, title="Result")
        out = capsys.readouterr().out
        assert "done" in out
        assert "failed" in out
        assert "careful" in out
        assert "demo" in out
