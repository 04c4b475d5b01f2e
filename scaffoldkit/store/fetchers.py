"""Pack-source fetchers.

Turn a source descriptor (local directory, git URL, zip URL) into a local
directory that the pack store can install from, together with the origin
metadata recorded in the registry.
"""

from __future__ import annotations

import asyncio
import io
import logging
import shutil
import tempfile
import zipfile
from dataclasses import dataclass
from pathlib import Path

import httpx

from scaffoldkit.errors import ErrorCode, FetchError
from scaffoldkit.store.registry import GitOrigin, LocalOrigin, NpmOrigin, ZipOrigin

logger = logging.getLogger(__name__)


@dataclass
class FetchedPack:
    """A pack source materialised on local disk."""

    path: Path
    origin: LocalOrigin | GitOrigin | ZipOrigin | NpmOrigin
    cleanup_dir: Path | None = None

    def cleanup(self) -> None:
        """Remove the scratch directory of a remote fetch (no-op for local)."""
        if self.cleanup_dir is not None:
            shutil.rmtree(self.cleanup_dir, ignore_errors=True)


# ---------------------------------------------------------------------------
# Local
# ---------------------------------------------------------------------------


class LocalFetcher:
    async def fetch(self, source: str | Path) -> FetchedPack:
        path = Path(source).expanduser().resolve()
        if not path.is_dir():
            raise FetchError(
                f"Pack source directory not found: {path}",
                hint="Pass the path of a directory containing a pack manifest.",
                details={"source": str(source)},
            )
        return FetchedPack(path=path, origin=LocalOrigin(local_path=str(path)))


# ---------------------------------------------------------------------------
# Git
# ---------------------------------------------------------------------------


async def _run_git(
    *args: str,
    cwd: str | Path | None = None,
    timeout: float = 120.0,
) -> str:
    """Run a git command asynchronously and return its stdout.

    Raises FetchError if the command exits non-zero or times out.
    """
    cmd = ["git", *args]
    cmd_str = " ".join(cmd)

    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd) if cwd else None,
        )
    except FileNotFoundError as exc:
        raise FetchError(
            "git executable not found",
            hint="Install git and make sure it is on PATH to add packs from git URLs.",
            details={"command": cmd_str},
        ) from exc

    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(
            process.communicate(), timeout=timeout
        )
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        raise FetchError(
            f"Git command timed out after {timeout}s: {cmd_str}",
            details={"command": cmd_str},
        )

    stdout = (stdout_bytes or b"").decode("utf-8", errors="replace").strip()
    stderr = (stderr_bytes or b"").decode("utf-8", errors="replace").strip()

    if process.returncode != 0:
        raise FetchError(
            f"Git command failed (exit {process.returncode}): {cmd_str}",
            hint=stderr or "Check the repository URL and ref.",
            details={"command": cmd_str, "exitCode": process.returncode, "stderr": stderr},
        )
    return stdout


class GitFetcher:
    """Shallow-clones a repository into the store cache."""

    def __init__(self, cache_dir: Path, timeout: float = 120.0) -> None:
        self.cache_dir = cache_dir
        self.timeout = timeout

    async def fetch(self, url: str, ref: str | None = None) -> FetchedPack:
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        scratch = Path(tempfile.mkdtemp(prefix="git-", dir=self.cache_dir))
        dest = scratch / "repo"

        args = ["clone", "--depth", "1"]
        if ref:
            args += ["--branch", ref]
        args += [url, str(dest)]

        try:
            await _run_git(*args, timeout=self.timeout)
            commit = await _run_git("rev-parse", "HEAD", cwd=dest, timeout=self.timeout)
        except BaseException:
            shutil.rmtree(scratch, ignore_errors=True)
            raise

        logger.info("Cloned %s at %s", url, commit[:12])
        return FetchedPack(
            path=dest,
            origin=GitOrigin(git_url=url, ref=ref, commit=commit or None),
            cleanup_dir=scratch,
        )


# ---------------------------------------------------------------------------
# Zip
# ---------------------------------------------------------------------------


def _safe_extract(archive: zipfile.ZipFile, dest: Path) -> None:
    root = dest.resolve()
    for member in archive.infolist():
        target = (root / member.filename).resolve()
        if target != root and root not in target.parents:
            raise FetchError(
                "Zip archive contains a path outside the extraction directory",
                details={"member": member.filename},
            )
    archive.extractall(root)


def _unwrap_single_dir(path: Path) -> Path:
    entries = [p for p in path.iterdir() if p.name != "__MACOSX"]
    if len(entries) == 1 and entries[0].is_dir():
        return entries[0]
    return path


class ZipFetcher:
    """Downloads a zip archive over HTTP(S) and extracts it."""

    def __init__(self, cache_dir: Path, timeout: float = 120.0) -> None:
        self.cache_dir = cache_dir
        self.timeout = timeout

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout, connect=10.0),
            follow_redirects=True,
        )

    async def fetch(self, url: str) -> FetchedPack:
        try:
            async with self._client() as client:
                response = await client.get(url)
                response.raise_for_status()
                payload = response.content
        except httpx.HTTPStatusError as exc:
            raise FetchError(
                f"Download failed with HTTP {exc.response.status_code}: {url}",
                details={"url": url, "status": exc.response.status_code},
            ) from exc
        except httpx.HTTPError as exc:
            raise FetchError(
                f"Download failed: {url}",
                hint=str(exc) or "Check the URL and your network connection.",
                details={"url": url},
            ) from exc

        self.cache_dir.mkdir(parents=True, exist_ok=True)
        scratch = Path(tempfile.mkdtemp(prefix="zip-", dir=self.cache_dir))
        try:
            with zipfile.ZipFile(io.BytesIO(payload)) as archive:
                await asyncio.to_thread(_safe_extract, archive, scratch)
        except zipfile.BadZipFile as exc:
            shutil.rmtree(scratch, ignore_errors=True)
            raise FetchError(
                f"Downloaded file is not a valid zip archive: {url}",
                details={"url": url},
            ) from exc
        except BaseException:
            shutil.rmtree(scratch, ignore_errors=True)
            raise

        return FetchedPack(
            path=_unwrap_single_dir(scratch),
            origin=ZipOrigin(zip_url=url),
            cleanup_dir=scratch,
        )


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def classify_source(source: str) -> str:
    """Return ``"npm"``, ``"zip"``, ``"git"`` or ``"local"`` for a source string."""
    lowered = source.lower()
    if lowered.startswith("npm:"):
        return "npm"
    if lowered.startswith(("http://", "https://")) and lowered.split("?", 1)[0].endswith(".zip"):
        return "zip"
    if lowered.startswith(("git@", "git://", "ssh://", "git+", "http://", "https://")):
        return "git"
    if lowered.endswith(".git") and not Path(source).is_dir():
        return "git"
    return "local"


async def fetch_source(
    source: str,
    *,
    cache_dir: Path,
    ref: str | None = None,
    timeout: float = 120.0,
) -> FetchedPack:
    """Fetch *source* with the fetcher matching its shape."""
    kind = classify_source(source)
    logger.debug("Fetching %s source %s", kind, source)
    if kind == "npm":
        raise FetchError(
            "npm pack sources are not supported",
            ErrorCode.PACK_FETCH_FAILED,
            hint="Install the package locally and add it with `scaffoldkit pack add <dir>`.",
            details={"source": source},
        )
    if kind == "zip":
        return await ZipFetcher(cache_dir, timeout).fetch(source)
    if kind == "git":
        url = source[len("git+"):] if source.startswith("git+") else source
        return await GitFetcher(cache_dir, timeout).fetch(url, ref)
    return await LocalFetcher().fetch(source)
