"""Tests for state schema migrations (scaffoldkit.state.migrations)."""

from __future__ import annotations

import copy

import pytest

from scaffoldkit.errors import ErrorCode, StateError, StateVersionError
from scaffoldkit.state.migrations import run_migrations, state_version
from scaffoldkit.state.models import CURRENT_STATE_VERSION, ProjectState

V1_STATE = {
    "lastGeneration": {
        "timestamp": "2024-03-01T10:00:00+00:00",
        "packId": "demo",
        "packVersion": "1.0.0",
        "archetypeId": "app",
        "inputs": {"name": "x"},
    }
}

V2_STATE = {
    "schemaVersion": 2,
    "updatedAt": "2024-04-01T00:00:00+00:00",
    "generations": [
        {
            "id": "g1",
            "timestamp": "2024-04-01T00:00:00+00:00",
            "packId": "demo",
            "packVersion": "1.0.0",
            "archetypeId": "app",
            "status": "failure",
            "patches": {"applied": 1},
            "checks": {"total": 1},
        }
    ],
}


class TestStateVersion:
    @pytest.mark.unit
    def test_missing_is_v1(self):
        assert state_version({}) == 1

    @pytest.mark.unit
    @pytest.mark.parametrize("bad", ["3", 0, True, 1.5])
    def test_invalid_values(self, bad):
        with pytest.raises(StateError) as exc_info:
            state_version({"schemaVersion": bad})
        assert exc_info.value.code is ErrorCode.STATE_INVALID_SCHEMA


class TestRunMigrations:
    @pytest.mark.unit
    def test_v1_to_current(self):
        result = run_migrations(V1_STATE)

        assert result.migrated is True
        assert result.applied == ["1->2", "2->3"]
        state = ProjectState.model_validate(result.state)
        assert state.schema_version == CURRENT_STATE_VERSION
        assert len(state.generations) == 1
        assert state.generations[0].pack_id == "demo"
        assert state.generations[0].id.startswith("migrated-")
        assert state.last_generation == state.generations[0]

    @pytest.mark.unit
    def test_v1_migration_is_deterministic(self):
        first = run_migrations(V1_STATE).state
        second = run_migrations(V1_STATE).state
        assert first == second

    @pytest.mark.unit
    def test_v1_without_last_generation(self):
        with pytest.raises(StateError) as exc_info:
            run_migrations({"updatedAt": "x"})
        assert exc_info.value.code is ErrorCode.STATE_INVALID_SCHEMA

    @pytest.mark.unit
    def test_v2_renames(self):
        result = run_migrations(V2_STATE)
        record = result.state["generations"][0]

        assert result.applied == ["2->3"]
        assert record["status"] == "failed"
        assert record["patchesSummary"] == {"applied": 1}
        assert record["checksSummary"] == {"total": 1}
        assert "patches" not in record
        assert result.state["lastGeneration"] == record

    @pytest.mark.unit
    def test_input_not_mutated(self):
        before = copy.deepcopy(V2_STATE)
        run_migrations(V2_STATE)
        assert V2_STATE == before

    @pytest.mark.unit
    def test_current_version_untouched(self):
        current = {"schemaVersion": CURRENT_STATE_VERSION, "generations": []}
        result = run_migrations(current)
        assert result.migrated is False
        assert result.state == current

    @pytest.mark.unit
    def test_future_version_refused(self):
        with pytest.raises(StateVersionError) as exc_info:
            run_migrations({"schemaVersion": 99}, "/p/state.json")
        err = exc_info.value
        assert err.code is ErrorCode.STATE_VERSION_UNSUPPORTED
        assert err.details["stateVersion"] == 99
        assert err.details["path"] == "/p/state.json"
