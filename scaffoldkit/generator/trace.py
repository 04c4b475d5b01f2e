"""Per-generation execution context.

An :class:`ExecutionContext` is created for each generation and handed to
every step.  It carries a correlation id and records when each phase
started and ended and whether it succeeded.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class PhaseStatus(str, Enum):
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


class PhaseRecord(BaseModel):
    name: str
    started_at: str
    ended_at: str | None = None
    duration: float | None = None
    status: PhaseStatus = PhaseStatus.RUNNING
    error_code: str | None = None


class ExecutionContext(BaseModel):
    correlation_id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    operation: str = "generate"
    phases: list[PhaseRecord] = Field(default_factory=list)

    @contextmanager
    def phase(self, name: str) -> Iterator[PhaseRecord]:
        """Time a phase; the record is marked failed if the body raises."""
        record = PhaseRecord(name=name, started_at=datetime.now(timezone.utc).isoformat())
        self.phases.append(record)
        started = time.monotonic()
        logger.debug("[%s] %s started", self.correlation_id, name)
        try:
            yield record
        except BaseException as exc:
            record.status = PhaseStatus.FAILED
            code = getattr(exc, "code", None)
            record.error_code = getattr(code, "value", None)
            raise
        else:
            record.status = PhaseStatus.SUCCESS
        finally:
            record.duration = time.monotonic() - started
            record.ended_at = datetime.now(timezone.utc).isoformat()
            logger.debug(
                "[%s] %s %s in %.3fs",
                self.correlation_id,
                name,
                record.status.value,
                record.duration,
            )

    @property
    def failed_phase(self) -> str | None:
        for record in self.phases:
            if record.status is PhaseStatus.FAILED:
                return record.name
        return None
