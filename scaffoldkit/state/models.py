"""Pydantic models for the per-project state file (schema version 3)."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

CURRENT_STATE_VERSION = 3


class _StateModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GenerationStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


class GenerationRecord(_StateModel):
    """One past generation.  Never modified after it is written."""
    id: str
    timestamp: str
    pack_id: str
    pack_version: str
    archetype_id: str
    inputs: dict[str, Any] = Field(default_factory=dict)
    status: GenerationStatus = GenerationStatus.SUCCESS
    patches_summary: dict[str, Any] | None = None
    hooks_summary: dict[str, Any] | None = None
    checks_summary: dict[str, Any] | None = None


class ProjectState(_StateModel):
    schema_version: int = CURRENT_STATE_VERSION
    generations: list[GenerationRecord] = Field(default_factory=list)
    last_generation: GenerationRecord | None = None
    updated_at: str | None = None

    @model_validator(mode="after")
    def _last_mirrors_tail(self) -> "ProjectState":
        if self.generations and self.last_generation != self.generations[-1]:
            self.last_generation = self.generations[-1]
        return self

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")
