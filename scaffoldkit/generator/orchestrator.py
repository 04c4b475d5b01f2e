"""Generation orchestrator.

Runs one generation as a strict sequence of steps::

    ResolvePack -> LoadManifest -> CheckCompatibility -> ComputeRenderPlan
    -> DetectConflicts -> [dry run: Preview, stop] -> StageRender
    -> StagePatches -> RunPostGenerate -> RunChecks -> CommitStaging
    -> PersistState

Any failure aborts the generation.  Until ``CommitStaging`` the target
directory is never written to; rendering, patches, hooks and checks all
happen in a private staging directory that is removed whether the
generation succeeds or fails.  The existing project state is read and
validated before staging; the updated ``state.json`` is written into the
staging tree and committed together with the generated files, so a failed
generation never leaves a partial result or a new ``GenerationRecord``.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from scaffoldkit.config import Config
from scaffoldkit.errors import ErrorCode, GenerateConflictError, PatchError, ScaffoldError
from scaffoldkit.generator.compatibility import ensure_compatible
from scaffoldkit.generator.conflicts import ConflictDetector, ConflictReport
from scaffoldkit.generator.lifecycle import (
    CheckRunner,
    CommandRunner,
    HookRunner,
    LifecycleSummary,
    ShellCommandRunner,
)
from scaffoldkit.generator.lock import TargetLock
from scaffoldkit.generator.renderer import PlannedFile, TemplateRenderer
from scaffoldkit.generator.staging import CommitResult, StagedFilesystem
from scaffoldkit.generator.trace import ExecutionContext
from scaffoldkit.manifest import ManifestLoader
from scaffoldkit.manifest.models import Archetype, PackManifest
from scaffoldkit.patch import PatchBatchResult, PatchEngine, PatchResolver
from scaffoldkit.state import GenerationRecord, GenerationStatus, ProjectStateManager
from scaffoldkit.store.registry import RegistryService
from scaffoldkit.store.resolver import PackResolver, ResolvedPack, resolve_store_path
from scaffoldkit.version import __version__

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Request / result
# ---------------------------------------------------------------------------


class GenerateRequest(BaseModel):
    """What to generate and where."""
    ref: str = Field(..., description="Archetype reference 'packId:archetypeId'")
    target_dir: Path
    version: str | None = Field(default=None, description="Exact pack version; highest if omitted")
    data: dict[str, Any] = Field(default_factory=dict, description="Template variables")
    rename_rules: dict[str, str] = Field(default_factory=dict)
    force: bool = False
    dry_run: bool = False


class PatchPreview(BaseModel):
    kind: str
    file: str
    idempotency_key: str
    description: str | None = None


class DryRunPreview(BaseModel):
    creates: list[str] = Field(default_factory=list)
    modifies: list[str] = Field(default_factory=list)
    patches: list[PatchPreview] = Field(default_factory=list)
    post_generate: list[str] = Field(default_factory=list)
    checks: list[str] = Field(default_factory=list)


@dataclass
class GenerationResult:
    pack_id: str
    pack_version: str
    archetype_id: str
    target_dir: Path
    dry_run: bool
    conflicts: ConflictReport
    files: list[PlannedFile]
    trace: ExecutionContext
    preview: DryRunPreview | None = None
    patches: PatchBatchResult | None = None
    hooks: LifecycleSummary | None = None
    checks: LifecycleSummary | None = None
    commit: CommitResult | None = None
    record: GenerationRecord | None = None


def parse_archetype_ref(ref: str) -> tuple[str, str]:
    """Split ``packId:archetypeId`` at the last colon.

    Scoped ids such as ``@org/pack:api`` keep their own colons intact.
    """
    pack_id, sep, archetype_id = ref.rpartition(":")
    if not sep or not pack_id.strip() or not archetype_id.strip():
        raise ScaffoldError(
            f"Invalid archetype reference '{ref}'",
            ErrorCode.INVALID_ARCHETYPE_REF,
            hint="Use the form <packId>:<archetypeId>, e.g. my-pack:service.",
            details={"ref": ref},
        )
    return pack_id.strip(), archetype_id.strip()


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class GenerationOrchestrator:
    """Sequences a generation from archetype reference to committed files.

    Every collaborator can be replaced, which is how tests substitute a fake
    command runner or a failing staging area.
    """

    def __init__(
        self,
        config: Config,
        *,
        registry: RegistryService | None = None,
        loader: ManifestLoader | None = None,
        renderer: TemplateRenderer | None = None,
        command_runner: CommandRunner | None = None,
        state_manager: ProjectStateManager | None = None,
        staging_factory: Callable[..., StagedFilesystem] | None = None,
        tool_version: str = __version__,
    ) -> None:
        self.config = config
        self.registry = registry or RegistryService(config.registry_file)
        self.resolver = PackResolver(self.registry)
        self.loader = loader or ManifestLoader()
        self.renderer = renderer or TemplateRenderer()
        self.patch_resolver = PatchResolver(self.renderer)
        self.conflict_detector = ConflictDetector()
        self.command_runner = command_runner or ShellCommandRunner()
        self.state_manager = state_manager or ProjectStateManager(config.state_dir_name)
        self.staging_factory = staging_factory or StagedFilesystem
        self.tool_version = tool_version

    async def generate(self, request: GenerateRequest) -> GenerationResult:
        ctx = ExecutionContext()
        target = request.target_dir.expanduser().resolve()
        pack_id, archetype_id = parse_archetype_ref(request.ref)
        logger.info("[%s] Generating %s into %s", ctx.correlation_id, request.ref, target)

        with ctx.phase("ResolvePack"):
            resolved = await self.resolver.resolve(pack_id, request.version)
            pack_dir = self._pack_dir(resolved)

        with ctx.phase("LoadManifest"):
            manifest = await self.loader.load_from_dir(pack_dir)
            archetype = self._archetype(manifest, archetype_id)
            template_root = self._template_root(pack_dir, archetype)

        with ctx.phase("CheckCompatibility"):
            ensure_compatible(
                resolved.pack_id, resolved.version, self.tool_version, manifest.compatibility
            )

        with ctx.phase("ComputeRenderPlan"):
            plan = await asyncio.to_thread(
                self.renderer.plan, template_root, request.data, request.rename_rules
            )

        with ctx.phase("DetectConflicts"):
            report = await self.conflict_detector.detect(plan, target)
            if report.has_conflicts and not request.force and not request.dry_run:
                raise GenerateConflictError(str(target), report.modifies)

        result = GenerationResult(
            pack_id=resolved.pack_id,
            pack_version=resolved.version,
            archetype_id=archetype.id,
            target_dir=target,
            dry_run=request.dry_run,
            conflicts=report,
            files=plan,
            trace=ctx,
        )

        if request.dry_run:
            with ctx.phase("Preview"):
                result.preview = self._preview(report, archetype)
            return result

        with TargetLock(self.config.locks_dir, target):
            await self._run_staged(ctx, request, result, archetype, pack_dir, template_root, target)

        with ctx.phase("PersistState"):
            # state.json was written into staging and committed with the files.
            logger.debug(
                "[%s] Project state committed to %s",
                ctx.correlation_id,
                self.state_manager.state_path(target),
            )

        logger.info("[%s] Generation of %s complete", ctx.correlation_id, request.ref)
        return result

    async def _run_staged(
        self,
        ctx: ExecutionContext,
        request: GenerateRequest,
        result: GenerationResult,
        archetype: Archetype,
        pack_dir: Path,
        template_root: Path,
        target: Path,
    ) -> None:
        staged = self.staging_factory(
            self.config.staging_dir, target, exclude=(self.config.store_dir,)
        )
        try:
            with ctx.phase("StageRender"):
                # Unreadable or newer state must fail before anything is staged.
                prior_state = await self.state_manager.read(target)
                staging_path = await staged.stage()
                await self.renderer.render(
                    template_root, staging_path, request.data, request.rename_rules
                )

            with ctx.phase("StagePatches"):
                ops = await self.patch_resolver.resolve_all(archetype.patches, request.data, pack_dir)
                batch = await PatchEngine(staging_path).apply_all(ops)
                result.patches = batch
                if batch.error is not None:
                    raise PatchError(
                        f"Patch application failed: {batch.error.message}",
                        ErrorCode.PATCH_APPLICATION_FAILED,
                        hint=batch.error.hint,
                        details={
                            "cause": batch.error.code.value,
                            **batch.error.details,
                            **batch.summary(),
                        },
                    ) from batch.error

            with ctx.phase("RunPostGenerate"):
                result.hooks = await HookRunner(
                    self.command_runner, self.config.command_timeout
                ).run_all(archetype.post_generate, staging_path)

            with ctx.phase("RunChecks"):
                result.checks = await CheckRunner(
                    self.command_runner, self.config.command_timeout
                ).run_all(archetype.checks, staging_path)

            with ctx.phase("CommitStaging"):
                record = self._record(request, result)
                await self.state_manager.write(
                    staging_path, self.state_manager.next_state(prior_state, record)
                )
                result.commit = await staged.commit()
                result.record = record
        finally:
            await staged.rollback()

    # -- Step helpers -------------------------------------------------------

    @staticmethod
    def _record(request: GenerateRequest, result: GenerationResult) -> GenerationRecord:
        return GenerationRecord(
            id=uuid.uuid4().hex,
            timestamp=datetime.now(timezone.utc).isoformat(),
            pack_id=result.pack_id,
            pack_version=result.pack_version,
            archetype_id=result.archetype_id,
            inputs=request.data,
            status=GenerationStatus.SUCCESS,
            patches_summary=result.patches.summary() if result.patches else None,
            hooks_summary=result.hooks.model_dump(mode="json") if result.hooks else None,
            checks_summary=result.checks.model_dump(mode="json") if result.checks else None,
        )

    def _pack_dir(self, resolved: ResolvedPack) -> Path:
        pack_dir = resolve_store_path(self.config.packs_dir, resolved)
        if not pack_dir.is_dir():
            raise ScaffoldError(
                f"Stored files for '{resolved.pack_id}@{resolved.version}' are missing",
                ErrorCode.PACK_STORE_MISSING,
                hint=(
                    f"The registry references {pack_dir}, which no longer exists. "
                    f"Re-install the pack with `scaffoldkit pack add`."
                ),
                details={"packId": resolved.pack_id, "hash": resolved.hash, "packDir": str(pack_dir)},
            )
        return pack_dir

    @staticmethod
    def _archetype(manifest: PackManifest, archetype_id: str) -> Archetype:
        archetype = manifest.get_archetype(archetype_id)
        if archetype is None:
            raise ScaffoldError(
                f"Archetype '{archetype_id}' not found in pack '{manifest.pack.name}'",
                ErrorCode.ARCHETYPE_NOT_FOUND,
                hint=f"Available archetypes: {', '.join(manifest.archetype_ids)}.",
                details={
                    "packId": manifest.pack.name,
                    "archetypeId": archetype_id,
                    "availableArchetypes": manifest.archetype_ids,
                },
            )
        return archetype

    @staticmethod
    def _template_root(pack_dir: Path, archetype: Archetype) -> Path:
        template_root = (pack_dir / archetype.template_root).resolve()
        if not template_root.is_dir():
            raise ScaffoldError(
                f"Template directory not found for archetype '{archetype.id}'",
                ErrorCode.TEMPLATE_DIR_NOT_FOUND,
                hint=f"templateRoot '{archetype.template_root}' does not exist in the stored pack.",
                details={"templateRoot": str(template_root), "archetypeId": archetype.id},
            )
        return template_root

    @staticmethod
    def _preview(report: ConflictReport, archetype: Archetype) -> DryRunPreview:
        return DryRunPreview(
            creates=report.creates,
            modifies=report.modifies,
            patches=[
                PatchPreview(
                    kind=patch.kind,
                    file=patch.file,
                    idempotency_key=patch.idempotency_key,
                    description=patch.description,
                )
                for patch in archetype.patches
            ],
            post_generate=list(archetype.post_generate),
            checks=list(archetype.checks),
        )
