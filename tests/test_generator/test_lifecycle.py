"""Tests for postGenerate hooks and checks (scaffoldkit.generator.lifecycle)."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from scaffoldkit.errors import CheckFailedError, ErrorCode, HookExecutionError
from scaffoldkit.generator.lifecycle import (
    CheckRunner,
    CommandResult,
    HookRunner,
    ShellCommandRunner,
)


class TestHookRunner:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_runs_in_order(self, fake_runner, tmp_path: Path):
        summary = await HookRunner(fake_runner).run_all(["npm install", "npm run build"], tmp_path)

        assert fake_runner.commands == ["npm install", "npm run build"]
        assert all(cwd == tmp_path for _, cwd in fake_runner.calls)
        assert summary.total == 2
        assert summary.succeeded == 2
        assert [c.exit_code for c in summary.commands] == [0, 0]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_stops_at_first_failure(self, make_runner, tmp_path: Path):
        runner = make_runner({"two": CommandResult(exit_code=2, stdout="partial", stderr="bad")})

        with pytest.raises(HookExecutionError) as exc_info:
            await HookRunner(runner).run_all(["one", "two", "three"], tmp_path)

        assert runner.commands == ["one", "two"]
        err = exc_info.value
        assert err.code is ErrorCode.HOOK_EXECUTION_FAILED
        assert err.details["command"] == "two"
        assert err.details["exitCode"] == 2
        assert err.details["stdout"] == "partial"
        assert err.details["stderr"] == "bad"
        assert err.details["cwd"] == str(tmp_path)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_empty_list(self, fake_runner, tmp_path: Path):
        summary = await HookRunner(fake_runner).run_all([], tmp_path)
        assert summary.total == 0
        assert fake_runner.calls == []


class TestCheckRunner:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failure_raises_check_failed(self, make_runner, tmp_path: Path):
        runner = make_runner({"npm test": CommandResult(exit_code=1, stderr="1 failing")})
        with pytest.raises(CheckFailedError) as exc_info:
            await CheckRunner(runner).run_all(["npm test"], tmp_path)
        assert exc_info.value.code is ErrorCode.CHECK_FAILED
        assert "npm test" in exc_info.value.message

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_timeout_passed_through(self, tmp_path: Path):
        runner = AsyncMock()
        runner.run.return_value = CommandResult(exit_code=0)
        await CheckRunner(runner, timeout=42).run_all(["lint"], tmp_path)
        runner.run.assert_awaited_once_with("lint", tmp_path, 42)


class TestShellCommandRunner:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_wraps_run_command(self, tmp_path: Path):
        with patch(
            "scaffoldkit.generator.lifecycle.run_command",
            AsyncMock(return_value=(3, "out", "err")),
        ) as mock_run:
            result = await ShellCommandRunner().run("make", tmp_path, 10)

        mock_run.assert_awaited_once_with("make", cwd=tmp_path, timeout=10)
        assert result.exit_code == 3
        assert result.stdout == "out"
        assert result.stderr == "err"
        assert result.duration >= 0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_real_shell(self, tmp_path: Path):
        result = await ShellCommandRunner().run("echo hi > made.txt", tmp_path, 30)
        assert result.exit_code == 0
        assert (tmp_path / "made.txt").read_text().strip() == "hi"
