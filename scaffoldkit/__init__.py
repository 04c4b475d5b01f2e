"""scaffoldkit -- scaffold projects from versioned packs.

A pack bundles templates, idempotent file patches and lifecycle commands.
scaffoldkit installs packs into a content-addressed store, resolves the
version to use, and generates into a target directory through an isolated
staging area so the target is only touched once everything has succeeded.

Quick usage::

    from scaffoldkit import Config, GenerateRequest, GenerationOrchestrator

    config = Config.from_env()
    orchestrator = GenerationOrchestrator(config)
    result = await orchestrator.generate(
        GenerateRequest(ref="my-pack:service", target_dir=Path("./out"))
    )
"""

from scaffoldkit.version import __version__

from scaffoldkit.config import Config
from scaffoldkit.errors import ErrorCode, ScaffoldError
from scaffoldkit.generator.orchestrator import (
    GenerateRequest,
    GenerationOrchestrator,
    GenerationResult,
)

__all__ = [
    "Config",
    "ErrorCode",
    "GenerateRequest",
    "GenerationOrchestrator",
    "GenerationResult",
    "ScaffoldError",
    "__version__",
]
