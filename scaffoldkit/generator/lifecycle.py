"""Lifecycle commands: ``postGenerate`` hooks and ``checks``.

Commands run one at a time, in declared order, through a
:class:`CommandRunner`.  The first non-zero exit stops the list and raises
with the command, working directory, exit code and captured output.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, Field

from scaffoldkit.errors import CheckFailedError, HookExecutionError
from scaffoldkit.utils import run_command

logger = logging.getLogger(__name__)


class CommandResult(BaseModel):
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    duration: float = Field(default=0.0, description="Wall-clock seconds")


class CommandRunner(Protocol):
    """Executes one shell command.  Tests substitute a fake."""

    async def run(self, command: str, cwd: Path, timeout: float) -> CommandResult: ...


class ShellCommandRunner:
    """Runs commands through the system shell with a timeout."""

    async def run(self, command: str, cwd: Path, timeout: float) -> CommandResult:
        started = time.monotonic()
        returncode, stdout, stderr = await run_command(command, cwd=cwd, timeout=timeout)
        return CommandResult(
            exit_code=returncode,
            stdout=stdout,
            stderr=stderr,
            duration=time.monotonic() - started,
        )


class CommandOutcome(BaseModel):
    command: str
    exit_code: int
    duration: float


class LifecycleSummary(BaseModel):
    total: int = 0
    succeeded: int = 0
    commands: list[CommandOutcome] = Field(default_factory=list)
    duration: float = 0.0


class _SequentialRunner:
    label = "command"
    error_cls: type[HookExecutionError] | type[CheckFailedError] = HookExecutionError

    def __init__(self, runner: CommandRunner | None = None, timeout: float = 600) -> None:
        self.runner = runner or ShellCommandRunner()
        self.timeout = timeout

    async def run_all(self, commands: list[str], cwd: Path) -> LifecycleSummary:
        summary = LifecycleSummary(total=len(commands))
        started = time.monotonic()

        for index, command in enumerate(commands, start=1):
            logger.info("Running %s %d/%d: %s", self.label, index, len(commands), command)
            result = await self.runner.run(command, cwd, self.timeout)
            summary.commands.append(
                CommandOutcome(command=command, exit_code=result.exit_code, duration=result.duration)
            )
            if result.exit_code != 0:
                summary.duration = time.monotonic() - started
                raise self.error_cls(
                    f"{self.label.capitalize()} failed: {command}",
                    command=command,
                    cwd=str(cwd),
                    exit_code=result.exit_code,
                    stdout=result.stdout,
                    stderr=result.stderr,
                    index=index,
                    total=len(commands),
                )
            summary.succeeded += 1

        summary.duration = time.monotonic() - started
        return summary


class HookRunner(_SequentialRunner):
    label = "hook"
    error_cls = HookExecutionError


class CheckRunner(_SequentialRunner):
    label = "check"
    error_cls = CheckFailedError
