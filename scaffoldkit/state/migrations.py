"""Schema migrations for the project state file.

Each migration is a pure function from version ``n`` data to version
``n + 1`` data.  ``run_migrations`` applies them in order; data without a
``schemaVersion`` is treated as version 1.  Versions newer than
``CURRENT_STATE_VERSION`` are refused.

History:

* v1 -- a single ``lastGeneration`` object.
* v2 -- ``generations`` list; ``lastGeneration`` kept for old readers.
* v3 -- summary fields renamed to ``patchesSummary``/``hooksSummary``/
  ``checksSummary``; status ``failure`` renamed to ``failed``.
"""

from __future__ import annotations

import copy
import json
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from scaffoldkit.errors import ErrorCode, StateError, StateVersionError
from scaffoldkit.state.models import CURRENT_STATE_VERSION
from scaffoldkit.utils import sha256_hex

StateDict = dict[str, Any]


@dataclass(frozen=True)
class StateMigration:
    from_version: int
    to_version: int
    description: str
    migrate: Callable[[StateDict], StateDict]


@dataclass
class MigrationResult:
    state: StateDict
    migrated: bool = False
    applied: list[str] = field(default_factory=list)


def _migrated_id(generation: StateDict) -> str:
    # Derived from content so the migration stays deterministic.
    digest = sha256_hex(json.dumps(generation, sort_keys=True, default=str))
    return f"migrated-{digest[:16]}"


def _v1_to_v2(state: StateDict) -> StateDict:
    last = state.get("lastGeneration")
    if not isinstance(last, dict):
        raise StateError(
            "Invalid v1 state: missing lastGeneration field",
            ErrorCode.STATE_INVALID_SCHEMA,
            hint="The state file is missing required fields. Delete it to reset project state.",
            details={"schemaVersion": 1},
        )
    record = {
        "id": _migrated_id(last),
        "timestamp": last.get("timestamp"),
        "packId": last.get("packId"),
        "packVersion": last.get("packVersion"),
        "archetypeId": last.get("archetypeId"),
        "inputs": last.get("inputs") or {},
        "status": "success",
    }
    return {
        "schemaVersion": 2,
        "updatedAt": state.get("updatedAt") or last.get("timestamp"),
        "generations": [record],
        "lastGeneration": dict(record),
    }


_V3_RENAMES = {"patches": "patchesSummary", "hooks": "hooksSummary", "checks": "checksSummary"}


def _v2_to_v3(state: StateDict) -> StateDict:
    generations: list[StateDict] = []
    for old in state.get("generations") or []:
        record = {_V3_RENAMES.get(key, key): value for key, value in old.items()}
        if record.get("status") == "failure":
            record["status"] = "failed"
        generations.append(record)
    return {
        "schemaVersion": 3,
        "updatedAt": state.get("updatedAt"),
        "generations": generations,
        "lastGeneration": dict(generations[-1]) if generations else None,
    }


MIGRATIONS: tuple[StateMigration, ...] = (
    StateMigration(1, 2, "Convert lastGeneration to generations array", _v1_to_v2),
    StateMigration(2, 3, "Rename summary fields and failure status", _v2_to_v3),
)


def state_version(state: StateDict) -> int:
    version = state.get("schemaVersion")
    if version is None:
        return 1
    if isinstance(version, bool) or not isinstance(version, int) or version < 1:
        raise StateError(
            f"Invalid schemaVersion: {version!r}",
            ErrorCode.STATE_INVALID_SCHEMA,
            hint="The state file has a corrupted schemaVersion field. Delete it to reset project state.",
            details={"schemaVersion": version},
        )
    return version


def run_migrations(state: StateDict, path: str = "") -> MigrationResult:
    """Bring *state* up to ``CURRENT_STATE_VERSION``.

    The input is not modified.  Already-current data is returned unchanged
    with ``migrated=False``.
    """
    version = state_version(state)
    if version > CURRENT_STATE_VERSION:
        raise StateVersionError(version, CURRENT_STATE_VERSION, path)

    result = MigrationResult(state=copy.deepcopy(state))
    for migration in MIGRATIONS:
        if version == migration.from_version:
            result.state = migration.migrate(result.state)
            result.applied.append(f"{migration.from_version}->{migration.to_version}")
            version = migration.to_version
    result.migrated = bool(result.applied)
    return result
