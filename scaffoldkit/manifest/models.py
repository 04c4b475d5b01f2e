"""Pydantic v2 models for pack manifests.

The YAML manifest uses camelCase keys (``templateRoot``, ``idempotencyKey``);
the models expose snake_case attributes and accept either spelling.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class _ManifestModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Patches
# ---------------------------------------------------------------------------


class _PatchBase(_ManifestModel):
    file: str = Field(..., min_length=1, description="Target file, relative to the project root")
    idempotency_key: str = Field(..., min_length=1, description="Stamp key proving the patch ran")
    content_template: str | None = Field(default=None, description="Inline Jinja2 content")
    path: str | None = Field(default=None, description="Content file, relative to the pack root")
    description: str | None = None
    strict: bool = Field(default=True, description="Fail instead of skipping when markers/file are missing")

    @model_validator(mode="after")
    def _exactly_one_content_source(self) -> "_PatchBase":
        if (self.content_template is None) == (self.path is None):
            raise ValueError("exactly one of 'contentTemplate' or 'path' must be provided")
        return self


class MarkerInsertPatch(_PatchBase):
    kind: Literal["marker_insert"]
    marker_start: str = Field(..., min_length=1)
    marker_end: str = Field(..., min_length=1)


class MarkerReplacePatch(_PatchBase):
    kind: Literal["marker_replace"]
    marker_start: str = Field(..., min_length=1)
    marker_end: str = Field(..., min_length=1)


class AppendIfMissingPatch(_PatchBase):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    kind: Literal["append_if_missing"]


ManifestPatch = Annotated[
    Union[MarkerInsertPatch, MarkerReplacePatch, AppendIfMissingPatch],
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Archetypes & pack
# ---------------------------------------------------------------------------


class Archetype(_ManifestModel):
    """One named template configuration within a pack."""
    id: str = Field(..., description="Unique id within the pack")
    template_root: str = Field(..., description="Template directory, relative to the pack root")
    description: str | None = None
    patches: list[ManifestPatch] = Field(default_factory=list)
    post_generate: list[str] = Field(default_factory=list, description="Hook commands run after rendering")
    checks: list[str] = Field(default_factory=list, description="Check commands run after hooks")

    @field_validator("id", "template_root")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value


class PackInfo(_ManifestModel):
    name: str
    version: str

    @field_validator("name", "version")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value


class Compatibility(_ManifestModel):
    """Range of scaffoldkit versions the pack supports."""
    min_version: str | None = None
    max_version: str | None = None
    incompatible: list[str] = Field(default_factory=list)


class ManifestData(_ManifestModel):
    """The validated content of a manifest file."""
    pack: PackInfo
    archetypes: list[Archetype] = Field(..., min_length=1)
    compatibility: Compatibility | None = None

    @model_validator(mode="after")
    def _unique_archetype_ids(self) -> "ManifestData":
        seen: set[str] = set()
        for archetype in self.archetypes:
            if archetype.id in seen:
                raise ValueError(f"duplicate archetype id '{archetype.id}'")
            seen.add(archetype.id)
        return self


class PackManifest(ManifestData):
    """Validated manifest plus where it was loaded from."""
    manifest_path: Path
    pack_root_dir: Path

    def get_archetype(self, archetype_id: str) -> Archetype | None:
        for archetype in self.archetypes:
            if archetype.id == archetype_id:
                return archetype
        return None

    @property
    def archetype_ids(self) -> list[str]:
        return [a.id for a in self.archetypes]
