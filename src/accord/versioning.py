"""
Semantic version matching.

Finds the best spec version for a requested version string when an exact
version is not available.
"""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

_VERSION_RE = re.compile(r"^(\d+)\.(\d+)\.(\d+)")


@dataclass
class VersionCandidate:
    """A version the caller can choose from; ``metadata`` is passed through."""

    id: str
    version: str
    metadata: dict[str, Any] = field(default_factory=dict)


def parse_version(version: str) -> Optional[tuple[int, int, int]]:
    """Parse the leading ``major.minor.patch`` of a version string."""
    match = _VERSION_RE.match(version or "")
    if not match:
        return None
    return int(match.group(1)), int(match.group(2)), int(match.group(3))


def _parsed(available: Sequence[VersionCandidate]) -> list[tuple[VersionCandidate, tuple[int, int, int]]]:
    parsed = []
    for candidate in available:
        parts = parse_version(candidate.version)
        if parts is not None:
            parsed.append((candidate, parts))
    return parsed


def _highest(
    parsed: list[tuple[VersionCandidate, tuple[int, int, int]]],
) -> Optional[VersionCandidate]:
    if not parsed:
        return None
    # sorted() is stable, so equal versions keep insertion order
    ordered = sorted(parsed, key=lambda item: item[1], reverse=True)
    best = ordered[0][1]
    for candidate, parts in parsed:
        if parts == best:
            return candidate
    return None


def find_best_semver_match(
    requested: str,
    available: Sequence[VersionCandidate],
) -> Optional[VersionCandidate]:
    """
    Find the best semantic version match for a requested version.

    Matching strategy:
    1. Exact string match wins over everything else
    2. Non-semver requests only match exactly
    3. Same-major candidates, preferring the requested minor, then higher
       minors; within a minor the requested patch, then higher patches
    4. Otherwise the globally highest version, ignoring major compatibility
    """
    if not available:
        return None

    for candidate in available:
        if candidate.version == requested:
            return candidate

    requested_parts = parse_version(requested)
    if requested_parts is None:
        return None

    req_major, req_minor, req_patch = requested_parts
    parsed = _parsed(available)
    compatible = [item for item in parsed if item[1][0] == req_major]

    def compare(
        a: tuple[VersionCandidate, tuple[int, int, int]],
        b: tuple[VersionCandidate, tuple[int, int, int]],
    ) -> int:
        _, a_minor, a_patch = a[1]
        _, b_minor, b_patch = b[1]

        if a_minor != b_minor:
            if a_minor == req_minor:
                return -1
            if b_minor == req_minor:
                return 1
            return b_minor - a_minor

        if a_patch != b_patch:
            if a_patch == req_patch:
                return -1
            if b_patch == req_patch:
                return 1
            return b_patch - a_patch

        return 0

    if compatible:
        compatible.sort(key=functools.cmp_to_key(compare))
        return compatible[0][0]

    return _highest(parsed)


def get_latest_version(available: Sequence[VersionCandidate]) -> Optional[VersionCandidate]:
    """
    Get the latest version from a list of versions.

    Non-semver versions are only considered when nothing parses, in which
    case the first entry wins.
    """
    if not available:
        return None

    latest = _highest(_parsed(available))
    if latest is not None:
        return latest

    return available[0]
