"""
CLI command that shows how a requested provider version resolves.
"""

from __future__ import annotations

import argparse

from accord.cli.ux import console, error
from accord.versioning import VersionCandidate, find_best_semver_match, get_latest_version


def resolve_version_command(requested: str, available: list[str]) -> int:
    """Print the version ``requested`` resolves to; exit 1 when nothing matches."""
    candidates = [VersionCandidate(id=version, version=version) for version in available]
    if requested == "latest":
        resolved = get_latest_version(candidates)
    else:
        resolved = find_best_semver_match(requested, candidates)

    if resolved is None:
        error(f"No version matches {requested}")
        console.print(f"[muted]Available versions: {', '.join(available) or 'none'}[/muted]")
        return 1

    console.print(resolved.version)
    return 0


def register_versions_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register resolve-version subcommand parser."""
    parser = subparsers.add_parser(
        "resolve-version",
        help="Resolve a requested version against the available ones",
    )
    parser.add_argument("requested", help="Requested version (exact, semver, or 'latest')")
    parser.add_argument("available", nargs="*", help="Available versions")


def handle_versions_command(args: argparse.Namespace) -> int:
    """Handle resolve-version subcommand."""
    return resolve_version_command(args.requested, list(args.available))
