"""
Accord command line.

Usage:
    accord <command> [args]
"""

from __future__ import annotations

import argparse
import sys
from typing import Sequence

from accord.cli.mock import handle_mock_command, register_mock_parser
from accord.cli.verify import handle_verify_command, register_verify_parser
from accord.cli.versions import handle_versions_command, register_versions_parser
from accord.core.errors import main_with_error_handling
from accord.logging import configure_logging, resolve_level

HANDLERS = {
    "verify": handle_verify_command,
    "mock": handle_mock_command,
    "resolve-version": handle_versions_command,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="accord", description="Accord contract testing CLI")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command")

    register_verify_parser(subparsers)
    register_mock_parser(subparsers)
    register_versions_parser(subparsers)
    return parser


@main_with_error_handling()
def run(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(resolve_level(debug=args.debug))

    handler = HANDLERS.get(args.command)
    if handler is None:
        parser.print_help()
        return 0
    return handler(args)


def main(argv: Sequence[str] | None = None) -> None:
    sys.exit(run(argv))


if __name__ == "__main__":
    main()
