"""Staged filesystem: prepare everything privately, then commit in one pass.

``stage()`` creates a private working directory under the store and seeds it
with a copy of the current target tree, so that patches and lifecycle
commands see the project exactly as it will look after generation.  Every
seeded entry is fingerprinted at that moment.

``commit()`` overlays onto the real target only the entries the generation
actually produced or changed: staged entries whose fingerprint still matches
the seed are left alone, so edits made to the target in the meantime are
never reverted.  If the target itself changed under an entry the generation
wants to write, the commit is refused before anything is written
(``STAGING_TARGET_CHANGED``).  New files are created, changed files are
replaced through a temp file + ``os.replace``, and nothing in the target is
deleted.  If the commit fails part-way, overwritten files are restored from
backups and newly created files are removed.  ``rollback()`` discards the
staging directory and is safe to call any number of times.
"""

from __future__ import annotations

import asyncio
import filecmp
import hashlib
import logging
import os
import secrets
import shutil
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from scaffoldkit.errors import ErrorCode, StagingError

logger = logging.getLogger(__name__)


@dataclass
class CommitResult:
    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    unchanged: int = 0


def _same_entry(src: Path, dest: Path) -> bool:
    if src.is_symlink() or dest.is_symlink():
        return src.is_symlink() and dest.is_symlink() and os.readlink(src) == os.readlink(dest)
    if not dest.is_file():
        return False
    if (src.stat().st_mode & 0o7777) != (dest.stat().st_mode & 0o7777):
        return False
    return filecmp.cmp(src, dest, shallow=False)


def fingerprint(path: Path) -> str | None:
    """Content + mode fingerprint of a file or symlink; ``None`` if absent."""
    if path.is_symlink():
        return f"link:{os.readlink(path)}"
    if not path.is_file():
        return None
    digest = hashlib.sha256()
    with open(path, "rb") as handle:
        for chunk in iter(lambda: handle.read(65536), b""):
            digest.update(chunk)
    return f"{path.stat().st_mode & 0o7777:o}:{digest.hexdigest()}"


def _place(src: Path, dest: Path) -> None:
    """Put *src* at *dest* atomically (temp sibling + ``os.replace``)."""
    tmp = dest.with_name(f".{dest.name}.{secrets.token_hex(4)}.tmp")
    try:
        if src.is_symlink():
            os.symlink(os.readlink(src), tmp)
        else:
            shutil.copy2(src, tmp)
        os.replace(tmp, dest)
    except BaseException:
        if tmp.is_symlink() or tmp.exists():
            tmp.unlink()
        raise


class StagedFilesystem:
    """Owns one staging directory for one generation against *target_dir*.

    Directories listed in *exclude* (and the staging root itself) are never
    copied into staging, which matters when the store lives inside the
    target.
    """

    def __init__(
        self,
        staging_root: Path,
        target_dir: Path,
        exclude: Iterable[Path] = (),
    ) -> None:
        self.staging_root = staging_root
        self.target_dir = target_dir
        self.exclude = {Path(p).resolve() for p in (staging_root, *exclude)}
        self.path: Path | None = None
        self.baseline: dict[str, str] = {}
        self._backup_dir: Path | None = None

    # -- stage -------------------------------------------------------------

    async def stage(self) -> Path:
        return await asyncio.to_thread(self._stage_sync)

    def _stage_sync(self) -> Path:
        name = f"{int(time.time() * 1000)}-{secrets.token_hex(4)}"
        path = self.staging_root / name
        try:
            self.staging_root.mkdir(parents=True, exist_ok=True)
            if self.target_dir.is_dir():
                shutil.copytree(self.target_dir, path, symlinks=True, ignore=self._ignore)
            else:
                path.mkdir()
            baseline = {
                entry.relative_to(path).as_posix(): fingerprint(entry)
                for entry in self._walk(path)
            }
        except OSError as exc:
            shutil.rmtree(path, ignore_errors=True)
            raise StagingError(
                "Failed to create staging directory",
                ErrorCode.STAGING_FAILED,
                hint=str(exc),
                details={"stagingDir": str(path), "targetDir": str(self.target_dir)},
            ) from exc
        self.path = path
        self.baseline = {rel: fp for rel, fp in baseline.items() if fp is not None}
        logger.debug("Staging %s at %s (%d entries)", self.target_dir, path, len(self.baseline))
        return path

    def _ignore(self, directory: str, names: list[str]) -> list[str]:
        base = Path(directory)
        return [name for name in names if (base / name).resolve() in self.exclude]

    # -- commit ------------------------------------------------------------

    async def commit(self) -> CommitResult:
        return await asyncio.to_thread(self._commit_sync)

    def _pending(self, staged_root: Path) -> tuple[list[tuple[str, Path, Path]], int]:
        """Entries to write, plus the count of entries left untouched.

        Raises ``STAGING_TARGET_CHANGED`` if any entry to write was changed
        in the target since ``stage()``.
        """
        pending: list[tuple[str, Path, Path]] = []
        unchanged = 0
        changed_under_us: list[str] = []

        for src in sorted(self._walk(staged_root)):
            rel = src.relative_to(staged_root).as_posix()
            dest = self.target_dir / rel
            seeded = self.baseline.get(rel)
            if seeded is not None and fingerprint(src) == seeded:
                unchanged += 1
                continue
            if (dest.exists() or dest.is_symlink()) and _same_entry(src, dest):
                unchanged += 1
                continue
            if fingerprint(dest) != seeded:
                changed_under_us.append(rel)
                continue
            pending.append((rel, src, dest))

        if changed_under_us:
            raise StagingError(
                f"{len(changed_under_us)} target file(s) changed during generation",
                ErrorCode.STAGING_TARGET_CHANGED,
                hint=(
                    "These files were modified in the target while the generation was "
                    f"running: {', '.join(changed_under_us)}. Nothing was written; "
                    "re-run the generation."
                ),
                details={"targetDir": str(self.target_dir), "changedFiles": changed_under_us},
            )
        return pending, unchanged

    def _commit_sync(self) -> CommitResult:
        if self.path is None:
            raise StagingError(
                "commit() called before stage()",
                ErrorCode.STAGING_COMMIT_FAILED,
                is_operational=False,
            )

        pending, unchanged = self._pending(self.path)
        result = CommitResult(unchanged=unchanged)
        backups: list[tuple[Path, Path]] = []
        created_dirs: list[Path] = []
        self._backup_dir = self.path.with_name(self.path.name + ".backup")

        try:
            if not self.target_dir.exists():
                self.target_dir.mkdir(parents=True)
                created_dirs.append(self.target_dir)

            for rel, src, dest in pending:
                if dest.exists() or dest.is_symlink():
                    backup = self._backup_dir / rel
                    backup.parent.mkdir(parents=True, exist_ok=True)
                    shutil.copy2(dest, backup, follow_symlinks=False)
                    backups.append((dest, backup))
                    _place(src, dest)
                    result.updated.append(rel)
                else:
                    for parent in reversed(Path(rel).parents[:-1]):
                        directory = self.target_dir / parent
                        if not directory.exists():
                            directory.mkdir()
                            created_dirs.append(directory)
                    _place(src, dest)
                    result.created.append(rel)
        except OSError as exc:
            self._undo(result, backups, created_dirs)
            raise StagingError(
                "Failed to commit staged files to the target directory",
                ErrorCode.STAGING_COMMIT_FAILED,
                hint=f"{exc}. The target directory was restored to its previous state.",
                details={"targetDir": str(self.target_dir), "stagingDir": str(self.path)},
            ) from exc

        logger.debug(
            "Committed %d new, %d updated file(s) to %s",
            len(result.created),
            len(result.updated),
            self.target_dir,
        )
        return result

    @staticmethod
    def _walk(root: Path) -> list[Path]:
        entries: list[Path] = []
        for dirpath, dirnames, filenames in os.walk(root):
            base = Path(dirpath)
            for name in filenames:
                entries.append(base / name)
            # os.walk lists symlinked directories under dirnames without
            # descending into them; they are committed as links.
            for name in dirnames:
                if (base / name).is_symlink():
                    entries.append(base / name)
        return entries

    def _undo(
        self,
        result: CommitResult,
        backups: list[tuple[Path, Path]],
        created_dirs: list[Path],
    ) -> None:
        for rel in result.created:
            created = self.target_dir / rel
            if created.is_symlink() or created.exists():
                created.unlink()
        for dest, backup in backups:
            shutil.copy2(backup, dest, follow_symlinks=False)
        for directory in reversed(created_dirs):
            try:
                directory.rmdir()
            except OSError:
                logger.warning("Could not remove directory %s during commit rollback", directory)

    # -- rollback / cleanup --------------------------------------------------

    async def rollback(self) -> None:
        await asyncio.to_thread(self.cleanup)

    def cleanup(self) -> None:
        """Remove the staging directory and any commit backups."""
        for directory in (self.path, self._backup_dir):
            if directory is not None:
                shutil.rmtree(directory, ignore_errors=True)
        self.path = None
        self._backup_dir = None
