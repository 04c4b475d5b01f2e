"""Shared pytest fixtures for the scaffoldkit test suite.

Provides reusable fixtures for:
- An isolated store configuration under ``tmp_path``
- A pack builder that writes manifests and template trees to disk
- A fake lifecycle command runner
- Mock asyncio subprocess helpers
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable
from unittest.mock import AsyncMock, MagicMock

import pytest
import yaml

from scaffoldkit.config import Config
from scaffoldkit.generator.lifecycle import CommandResult


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

@pytest.fixture
def store_config(tmp_path: Path) -> Config:
    """Config whose store lives in a temporary directory."""
    return Config(store_dir=tmp_path / "store", command_timeout=30)


@pytest.fixture
def target_dir(tmp_path: Path) -> Path:
    """Empty directory to generate into."""
    target = tmp_path / "project"
    target.mkdir()
    return target


# ---------------------------------------------------------------------------
# Pack builder
# ---------------------------------------------------------------------------

def _default_archetypes() -> list[dict[str, Any]]:
    return [{"id": "app", "templateRoot": "templates"}]


def _default_files() -> dict[str, str | bytes]:
    return {
        "templates/README.md": "# {{ name }}\n",
        "templates/src/main.py": "print('{{ name | snake_case }}')\n",
    }


@pytest.fixture
def make_pack(tmp_path: Path) -> Callable[..., Path]:
    """Factory that writes a pack source directory and returns its path.

    Usage:
        def test_install(make_pack):
            pack_dir = make_pack(name="demo", version="1.2.0")
    """
    counter = {"n": 0}

    def factory(
        name: str = "demo-pack",
        version: str = "1.0.0",
        archetypes: list[dict[str, Any]] | None = None,
        files: dict[str, str | bytes] | None = None,
        compatibility: dict[str, Any] | None = None,
        manifest_name: str = "scaffoldkit.yaml",
    ) -> Path:
        counter["n"] += 1
        pack_dir = tmp_path / "sources" / f"pack-{counter['n']}"
        pack_dir.mkdir(parents=True)

        manifest: dict[str, Any] = {
            "pack": {"name": name, "version": version},
            "archetypes": archetypes if archetypes is not None else _default_archetypes(),
        }
        if compatibility is not None:
            manifest["compatibility"] = compatibility
        (pack_dir / manifest_name).write_text(yaml.safe_dump(manifest, sort_keys=False), encoding="utf-8")

        for rel, content in (files if files is not None else _default_files()).items():
            path = pack_dir / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, bytes):
                path.write_bytes(content)
            else:
                path.write_text(content, encoding="utf-8")
        return pack_dir

    return factory


# ---------------------------------------------------------------------------
# Lifecycle commands
# ---------------------------------------------------------------------------

class FakeCommandRunner:
    """Records commands instead of running them.

    ``results`` maps a command string to the ``CommandResult`` it returns;
    unknown commands succeed.  ``on_run`` is called with ``(command, cwd)``
    before returning, so tests can simulate commands that write files.
    """

    def __init__(
        self,
        results: dict[str, CommandResult] | None = None,
        on_run: Callable[[str, Path], None] | None = None,
    ) -> None:
        self.results = results or {}
        self.on_run = on_run
        self.calls: list[tuple[str, Path]] = []

    async def run(self, command: str, cwd: Path, timeout: float) -> CommandResult:
        self.calls.append((command, cwd))
        if self.on_run is not None:
            self.on_run(command, cwd)
        return self.results.get(command, CommandResult(exit_code=0, stdout="ok"))

    @property
    def commands(self) -> list[str]:
        return [command for command, _ in self.calls]


@pytest.fixture
def fake_runner() -> FakeCommandRunner:
    return FakeCommandRunner()


@pytest.fixture
def make_runner() -> Callable[..., FakeCommandRunner]:
    """Factory for runners with scripted results.

    Usage:
        runner = make_runner({"npm test": CommandResult(exit_code=1, stderr="boom")})
    """
    return FakeCommandRunner


# ---------------------------------------------------------------------------
# Mock subprocess
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_subprocess():
    """Mock asyncio subprocess for testing command execution.

    Returns a factory that creates mock subprocess instances with configurable
    stdout, stderr, and return codes.

    Usage:
        def test_command(mock_subprocess):
            proc = mock_subprocess(stdout="output", returncode=0)
            with patch("asyncio.create_subprocess_exec", return_value=proc):
                ...
    """
    def factory(
        stdout: str = "",
        stderr: str = "",
        returncode: int = 0,
    ) -> AsyncMock:
        mock_proc = AsyncMock()
        mock_proc.communicate = AsyncMock(
            return_value=(stdout.encode("utf-8"), stderr.encode("utf-8"))
        )
        mock_proc.returncode = returncode
        mock_proc.pid = 99999
        mock_proc.kill = MagicMock()
        mock_proc.wait = AsyncMock(return_value=returncode)
        return mock_proc

    return factory
