"""Generation pipeline: rendering, conflict detection, staging, lifecycle commands."""

from scaffoldkit.generator.renderer import FileMode, PlannedFile, RenderResult, TemplateRenderer
from scaffoldkit.generator.conflicts import ConflictDetector, ConflictReport
from scaffoldkit.generator.staging import CommitResult, StagedFilesystem
from scaffoldkit.generator.lifecycle import (
    CheckRunner,
    CommandResult,
    CommandRunner,
    HookRunner,
    LifecycleSummary,
    ShellCommandRunner,
)
from scaffoldkit.generator.trace import ExecutionContext, PhaseRecord, PhaseStatus
from scaffoldkit.generator.lock import TargetLock
from scaffoldkit.generator.compatibility import check_compatibility, ensure_compatible
from scaffoldkit.generator.orchestrator import (
    DryRunPreview,
    GenerateRequest,
    GenerationOrchestrator,
    GenerationResult,
    parse_archetype_ref,
)

__all__ = [
    "CheckRunner",
    "CommandResult",
    "CommandRunner",
    "CommitResult",
    "ConflictDetector",
    "ConflictReport",
    "DryRunPreview",
    "ExecutionContext",
    "FileMode",
    "GenerateRequest",
    "GenerationOrchestrator",
    "GenerationResult",
    "HookRunner",
    "LifecycleSummary",
    "PhaseRecord",
    "PhaseStatus",
    "PlannedFile",
    "RenderResult",
    "ShellCommandRunner",
    "StagedFilesystem",
    "TargetLock",
    "TemplateRenderer",
    "check_compatibility",
    "ensure_compatible",
    "parse_archetype_ref",
]
