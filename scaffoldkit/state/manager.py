"""Project state manager: ``<target>/.scaffoldkit/state.json``.

State is append-only: each successful generation adds a record and
``lastGeneration`` always mirrors the last one.  Older files are migrated in
memory on read; the migrated form is written back only together with the
next appended generation.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from scaffoldkit.errors import ErrorCode, StateError
from scaffoldkit.state.migrations import run_migrations
from scaffoldkit.state.models import CURRENT_STATE_VERSION, GenerationRecord, ProjectState
from scaffoldkit.utils import save_json

logger = logging.getLogger(__name__)

STATE_FILENAME = "state.json"


class ProjectStateManager:
    def __init__(self, state_dir_name: str = ".scaffoldkit") -> None:
        self.state_dir_name = state_dir_name

    def state_path(self, target_dir: str | Path) -> Path:
        return Path(target_dir) / self.state_dir_name / STATE_FILENAME

    async def read(self, target_dir: str | Path) -> ProjectState | None:
        """Return the (migrated) state, or ``None`` if the project has none."""
        return await asyncio.to_thread(self._read_sync, self.state_path(target_dir))

    def _read_sync(self, path: Path) -> ProjectState | None:
        if not path.exists():
            return None

        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise StateError(
                "Project state file contains invalid JSON",
                ErrorCode.STATE_INVALID_JSON,
                hint=f"Fix or delete {path} to reset project state.",
                details={"path": str(path), "reason": str(exc)},
            ) from exc

        if not isinstance(raw, dict):
            raise StateError(
                "Project state file must contain a JSON object",
                ErrorCode.STATE_INVALID_SCHEMA,
                hint=f"Fix or delete {path} to reset project state.",
                details={"path": str(path)},
            )

        migration = run_migrations(raw, str(path))
        if migration.migrated:
            logger.info("Migrated %s (%s)", path, ", ".join(migration.applied))

        try:
            return ProjectState.model_validate(migration.state)
        except ValidationError as exc:
            raise StateError(
                "Project state file has an invalid schema",
                ErrorCode.STATE_INVALID_SCHEMA,
                hint=f"Fix or delete {path} to reset project state.",
                details={
                    "path": str(path),
                    "issues": [
                        {"path": ".".join(str(p) for p in e["loc"]), "message": e["msg"]}
                        for e in exc.errors()
                    ],
                },
            ) from exc

    @staticmethod
    def next_state(prior: ProjectState | None, record: GenerationRecord) -> ProjectState:
        """Return *prior* (or a fresh state) with *record* appended.

        *prior* is not modified.
        """
        state = prior.model_copy(deep=True) if prior is not None else ProjectState()
        state.schema_version = CURRENT_STATE_VERSION
        state.generations.append(record)
        state.last_generation = record
        state.updated_at = datetime.now(timezone.utc).isoformat()
        return state

    async def write(self, target_dir: str | Path, state: ProjectState) -> Path:
        path = self.state_path(target_dir)
        await save_json(state.to_json_dict(), path)
        return path

    async def append_generation(
        self, target_dir: str | Path, record: GenerationRecord
    ) -> ProjectState:
        state = self.next_state(await self.read(target_dir), record)
        path = await self.write(target_dir, state)
        logger.debug("Recorded generation %s in %s", record.id, path)
        return state
