"""Advisory lock preventing two generations into the same target at once.

The lock file lives in the store (``<store>/locks/<sha256(target)>.lock``)
so locking never writes into the target directory.  It is created with
``O_CREAT | O_EXCL``; a second generation fails fast with
``TARGET_LOCKED`` instead of waiting.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from types import TracebackType

from scaffoldkit.errors import ErrorCode, ScaffoldError
from scaffoldkit.utils import load_json, sha256_hex

logger = logging.getLogger(__name__)


class TargetLock:
    def __init__(self, locks_dir: Path, target_dir: Path) -> None:
        self.target_dir = target_dir.resolve()
        self.path = locks_dir / f"{sha256_hex(str(self.target_dir))}.lock"
        self._held = False

    def acquire(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError as exc:
            raise ScaffoldError(
                "Another generation is already running for this target",
                ErrorCode.TARGET_LOCKED,
                hint=(
                    f"Wait for it to finish. If no generation is running, delete the stale lock "
                    f"file {self.path}."
                ),
                details={"targetDir": str(self.target_dir), "lockFile": str(self.path), **self._owner()},
            ) from exc

        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(
                {
                    "pid": os.getpid(),
                    "target": str(self.target_dir),
                    "acquiredAt": datetime.now(timezone.utc).isoformat(),
                },
                handle,
            )
        self._held = True
        logger.debug("Acquired lock %s", self.path)

    def release(self) -> None:
        if self._held:
            self.path.unlink(missing_ok=True)
            self._held = False
            logger.debug("Released lock %s", self.path)

    def _owner(self) -> dict[str, object]:
        try:
            data = load_json(self.path)
        except (OSError, ValueError):
            return {}
        return {"ownerPid": data.get("pid"), "acquiredAt": data.get("acquiredAt")}

    def __enter__(self) -> "TargetLock":
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()
