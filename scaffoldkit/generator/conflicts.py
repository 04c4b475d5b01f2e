"""Classify planned files as CREATE or MODIFY before anything is written."""

from __future__ import annotations

import asyncio
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field

from scaffoldkit.generator.renderer import PlannedFile


class ChangeType(str, Enum):
    CREATE = "create"
    MODIFY = "modify"


class FileChange(BaseModel):
    path: str
    change: ChangeType


class ConflictReport(BaseModel):
    """Result of comparing a render plan with the live target directory.

    ``count`` is the number of MODIFY entries; every planned path appears in
    exactly one of ``creates``/``modifies``.
    """

    has_conflicts: bool = False
    count: int = 0
    creates: list[str] = Field(default_factory=list)
    modifies: list[str] = Field(default_factory=list)

    @property
    def changes(self) -> list[FileChange]:
        return [FileChange(path=p, change=ChangeType.CREATE) for p in self.creates] + [
            FileChange(path=p, change=ChangeType.MODIFY) for p in self.modifies
        ]


class ConflictDetector:
    async def detect(self, plan: list[PlannedFile], target_dir: str | Path) -> ConflictReport:
        return await asyncio.to_thread(self.detect_sync, plan, Path(target_dir))

    def detect_sync(self, plan: list[PlannedFile], target_dir: Path) -> ConflictReport:
        creates: list[str] = []
        modifies: list[str] = []
        seen: set[str] = set()
        for item in plan:
            rel = item.dest_relative_path
            if rel in seen:
                continue
            seen.add(rel)
            dest = target_dir / rel
            if dest.exists() or dest.is_symlink():
                modifies.append(rel)
            else:
                creates.append(rel)
        return ConflictReport(
            has_conflicts=bool(modifies),
            count=len(modifies),
            creates=creates,
            modifies=modifies,
        )
