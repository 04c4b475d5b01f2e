"""scaffoldkit configuration.

Centralised, typed configuration for the store and the generation pipeline.
Settings are a Pydantic v2 model so they are validated at construction time
and can be serialised to/from JSON or built from environment variables.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

from scaffoldkit.errors import ScaffoldError


def _default_store_dir() -> Path:
    xdg = os.environ.get("XDG_DATA_HOME")
    base = Path(xdg) if xdg else Path.home() / ".local" / "share"
    return base / "scaffoldkit"


class Config(BaseModel):
    """Global scaffoldkit configuration.

    Holds the store location and the tuning knobs of the generation
    pipeline.  Instances are created once by the CLI (or by a caller
    embedding the library) and passed to the store and the orchestrator.
    """

    store_dir: Path = Field(default_factory=_default_store_dir)
    state_dir_name: str = Field(
        default=".scaffoldkit", description="Project-local directory holding state.json"
    )
    command_timeout: int = Field(
        default=600, ge=1, description="Timeout in seconds for each hook/check command"
    )
    fetch_timeout: int = Field(
        default=120, ge=1, description="Timeout in seconds for git/zip pack fetches"
    )

    @field_validator("store_dir")
    @classmethod
    def _store_dir_absolute(cls, value: Path) -> Path:
        value = value.expanduser()
        if not value.is_absolute():
            raise ScaffoldError(
                "Store directory path must be absolute",
                hint=f"Got '{value}'. Pass an absolute store directory.",
                details={"storeDir": str(value)},
                is_operational=False,
            )
        return value

    # ------------------------------------------------------------------
    # Derived paths (read-only properties)
    # ------------------------------------------------------------------

    @property
    def packs_dir(self) -> Path:
        """Content-addressed pack directories: ``<packs>/<id>/<hash>/``."""
        return self.store_dir / "packs"

    @property
    def registry_file(self) -> Path:
        return self.store_dir / "registry.json"

    @property
    def staging_dir(self) -> Path:
        """Parent of the per-generation staging directories."""
        return self.store_dir / ".staging"

    @property
    def install_tmp_dir(self) -> Path:
        """Parent of the per-install staging directories."""
        return self.store_dir / ".tmp"

    @property
    def locks_dir(self) -> Path:
        return self.store_dir / "locks"

    @property
    def cache_dir(self) -> Path:
        """Scratch space for fetched (git/zip) pack sources."""
        return self.store_dir / "cache"

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------

    @classmethod
    def from_env(cls) -> "Config":
        """Build a ``Config`` from environment variables.

        Recognised variables (all optional):
            SCAFFOLDKIT_STORE_DIR, SCAFFOLDKIT_STATE_DIR,
            SCAFFOLDKIT_COMMAND_TIMEOUT, SCAFFOLDKIT_FETCH_TIMEOUT.
        """
        kwargs: dict[str, Any] = {}
        if os.environ.get("SCAFFOLDKIT_STORE_DIR"):
            kwargs["store_dir"] = Path(os.environ["SCAFFOLDKIT_STORE_DIR"])
        if os.environ.get("SCAFFOLDKIT_STATE_DIR"):
            kwargs["state_dir_name"] = os.environ["SCAFFOLDKIT_STATE_DIR"]
        if os.environ.get("SCAFFOLDKIT_COMMAND_TIMEOUT"):
            kwargs["command_timeout"] = int(os.environ["SCAFFOLDKIT_COMMAND_TIMEOUT"])
        if os.environ.get("SCAFFOLDKIT_FETCH_TIMEOUT"):
            kwargs["fetch_timeout"] = int(os.environ["SCAFFOLDKIT_FETCH_TIMEOUT"])
        return cls(**kwargs)

    def ensure_directories(self) -> None:
        """Create every store directory that must exist before installs run."""
        for directory in (
            self.store_dir,
            self.packs_dir,
            self.staging_dir,
            self.install_tmp_dir,
            self.locks_dir,
            self.cache_dir,
        ):
            directory.mkdir(parents=True, exist_ok=True)
