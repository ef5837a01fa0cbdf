"""
Service identity and source-control lookups.

Consumer and provider names/versions come from explicit arguments, then
settings, then the project's ``pyproject.toml``. When nothing resolves the
placeholders ``unknown-service``/``0.0.0`` are used and the identity is
flagged as a fallback; callers turn their broker side effects into no-ops.
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import structlog

logger = structlog.get_logger()

FALLBACK_NAME = "unknown-service"
FALLBACK_VERSION = "0.0.0"
GIT_SHA_ENV_VARS = ("COMMIT_SHA", "GITHUB_SHA", "GIT_COMMIT")


@dataclass(frozen=True)
class ResolvedIdentity:
    name: str
    version: str
    is_fallback: bool = False


def find_project_file(start: Optional[Path] = None) -> Optional[Path]:
    """Walk up from ``start`` looking for pyproject.toml."""
    current = (start or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        candidate = directory / "pyproject.toml"
        if candidate.is_file():
            return candidate
    return None


def read_project_metadata(project_file: Optional[Path]) -> tuple[Optional[str], Optional[str]]:
    if project_file is None or not project_file.is_file():
        return None, None
    try:
        with project_file.open("rb") as fh:
            data = tomllib.load(fh)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        logger.warning("project_file_unreadable", path=str(project_file), error=str(exc))
        return None, None

    project = data.get("project") or {}
    return project.get("name"), project.get("version")


def resolve_identity(
    name: Optional[str] = None,
    version: Optional[str] = None,
    project_file: Optional[Path] = None,
) -> ResolvedIdentity:
    """
    Resolve a service name and version.

    Explicit values win; missing ones are read from ``pyproject.toml``.
    """
    if not name or not version:
        file_name, file_version = read_project_metadata(project_file or find_project_file())
        name = name or file_name
        version = version or file_version

    if name and version:
        return ResolvedIdentity(name=name, version=version)

    logger.warning(
        "identity_unresolved",
        name=name or FALLBACK_NAME,
        version=version or FALLBACK_VERSION,
        hint="Set the name and version explicitly or add them to pyproject.toml",
    )
    return ResolvedIdentity(
        name=name or FALLBACK_NAME,
        version=version or FALLBACK_VERSION,
        is_fallback=True,
    )


def _read_ref(git_dir: Path, head: str) -> Optional[str]:
    if not head.startswith("ref:"):
        return head or None

    ref = head[len("ref:") :].strip()
    ref_file = git_dir / ref
    if ref_file.is_file():
        return ref_file.read_text().strip() or None

    packed = git_dir / "packed-refs"
    if packed.is_file():
        for line in packed.read_text().splitlines():
            if line.endswith(f" {ref}"):
                return line.split(" ", 1)[0]
    return None


def get_git_sha(start: Optional[Path] = None) -> Optional[str]:
    """Current commit SHA from CI env vars, else from the nearest .git directory."""
    for var in GIT_SHA_ENV_VARS:
        value = os.environ.get(var)
        if value:
            return value

    current = (start or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        head_file = directory / ".git" / "HEAD"
        if head_file.is_file():
            try:
                return _read_ref(directory / ".git", head_file.read_text().strip())
            except OSError as exc:
                logger.debug("git_sha_unreadable", path=str(head_file), error=str(exc))
                return None
    return None
