"""Per-project generation history and its schema migrations."""

from scaffoldkit.state.manager import STATE_FILENAME, ProjectStateManager
from scaffoldkit.state.migrations import MIGRATIONS, MigrationResult, StateMigration, run_migrations
from scaffoldkit.state.models import (
    CURRENT_STATE_VERSION,
    GenerationRecord,
    GenerationStatus,
    ProjectState,
)

__all__ = [
    "CURRENT_STATE_VERSION",
    "GenerationRecord",
    "GenerationStatus",
    "MIGRATIONS",
    "MigrationResult",
    "ProjectState",
    "ProjectStateManager",
    "STATE_FILENAME",
    "StateMigration",
    "run_migrations",
]
