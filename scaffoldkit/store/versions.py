"""Simplified semantic version parsing and ordering.

Only ``MAJOR.MINOR.PATCH[-PRERELEASE]`` is understood.  There is no
build-metadata handling and no range matching; selection is limited to an
exact match or the highest parsed version.  Strings that do not match the
pattern parse as ``0.0.0`` with the whole string as prerelease, so they
sort below every real release.
"""

from __future__ import annotations

import re
from typing import NamedTuple

_VERSION_RE = re.compile(r"^(\d+)\.(\d+)\.(\d+)(?:-(.+))?$")


class ParsedVersion(NamedTuple):
    major: int
    minor: int
    patch: int
    prerelease: str | None

    @property
    def sort_key(self) -> tuple[int, int, int, int, str]:
        # A release (no prerelease) outranks any prerelease of the same triple.
        return (
            self.major,
            self.minor,
            self.patch,
            0 if self.prerelease else 1,
            self.prerelease or "",
        )


def parse_version(version: str) -> ParsedVersion:
    match = _VERSION_RE.match(version.strip())
    if match is None:
        return ParsedVersion(0, 0, 0, version)
    major, minor, patch, pre = match.groups()
    return ParsedVersion(int(major), int(minor), int(patch), pre)


def version_key(version: str) -> tuple[int, int, int, int, str]:
    """Sort key usable with ``sorted``/``max``."""
    return parse_version(version).sort_key


def compare_versions(a: str, b: str) -> int:
    """Return ``-1``, ``0`` or ``1`` as *a* is lower, equal or higher than *b*."""
    ka, kb = version_key(a), version_key(b)
    return (ka > kb) - (ka < kb)


def sort_versions_desc(versions: list[str]) -> list[str]:
    return sorted(versions, key=version_key, reverse=True)
