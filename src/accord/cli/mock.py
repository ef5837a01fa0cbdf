"""
CLI command that serves a local spec through the mock server.
"""

from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path
from typing import Any, Optional

import structlog
import yaml

from accord.cli.ux import console, header, info, print_table, success
from accord.core.errors import ConfigurationError
from accord.fixtures.local import convert_mock_data_to_fixtures
from accord.fixtures.models import Fixture
from accord.mock.engine import MockResponseEngine
from accord.mock.server import MockServer

logger = structlog.get_logger()

SDL_SUFFIXES = (".graphql", ".gql")


def load_document(path: str) -> Any:
    """Load a JSON or YAML document; GraphQL SDL files are returned as text."""
    file_path = Path(path)
    if not file_path.is_file():
        raise ConfigurationError(f"File not found: {path}", details={"path": path})

    text = file_path.read_text(encoding="utf-8")
    if file_path.suffix.lower() in SDL_SUFFIXES:
        return text
    try:
        if file_path.suffix.lower() == ".json":
            return json.loads(text)
        return yaml.safe_load(text)
    except (ValueError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Could not parse {path}: {exc}", details={"path": path}) from exc


def _service_name(spec: Any, spec_file: str) -> str:
    if isinstance(spec, dict):
        title = (spec.get("info") or {}).get("title")
        if title:
            return str(title)
    return Path(spec_file).stem


def build_engine(
    spec_file: str,
    fixtures_file: Optional[str] = None,
    strict: bool = False,
) -> MockResponseEngine:
    """
    Build an engine for a local spec.

    The fixtures file holds either a list of fixtures or local mock data
    (``{operation: {scenario: {status, headers, body}}}``).
    """
    spec = load_document(spec_file)
    engine = MockResponseEngine(spec, strict=strict)
    if not fixtures_file:
        return engine

    data = load_document(fixtures_file)
    if isinstance(data, list):
        fixtures = [Fixture.from_dict(item) for item in data]
    elif isinstance(data, dict):
        version = str((spec.get("info") or {}).get("version", "0.0.0")) if isinstance(spec, dict) else "0.0.0"
        fixtures = convert_mock_data_to_fixtures(
            data,
            _service_name(spec, spec_file),
            version,
            engine.get_operations(),
            engine.spec_type,
        )
    else:
        raise ConfigurationError(
            f"Fixtures file must hold a list or a mapping: {fixtures_file}",
            details={"path": fixtures_file},
        )

    return MockResponseEngine(spec, fixtures, spec_type=engine.spec_type, strict=strict)


async def _serve(engine: MockResponseEngine, host: str, port: int) -> None:
    async with MockServer(engine, host=host, port=port) as server:
        success(f"Mock server listening on {server.url}")
        console.print("[muted]Press Ctrl+C to stop[/muted]")
        await asyncio.Event().wait()


def mock_command(
    spec_file: str,
    fixtures_file: Optional[str] = None,
    port: int = 0,
    strict: bool = False,
    host: str = "127.0.0.1",
) -> int:
    engine = build_engine(spec_file, fixtures_file, strict)

    header(f"Mock Server: {spec_file}")
    info(f"Spec type: {engine.spec_type.value}")
    operations = engine.get_operations()
    if operations:
        print_table(
            "Operations",
            ["Operation", "Method", "Path"],
            [[op.id, op.method or op.kind, op.path or op.field_name or ""] for op in operations],
        )
    console.print(f"[muted]{len(engine.fixtures)} fixtures loaded[/muted]")

    try:
        asyncio.run(_serve(engine, host, port))
    except KeyboardInterrupt:
        logger.info("mock_server_interrupted")
    return 0


def register_mock_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register mock subcommand parser."""
    mock_parser = subparsers.add_parser("mock", help="Serve a local spec through the mock server")
    mock_parser.add_argument("spec_file", help="Path to an OpenAPI/Swagger (JSON or YAML) or GraphQL spec")
    mock_parser.add_argument("--fixtures", dest="fixtures_file", help="Fixtures or local mock data file")
    mock_parser.add_argument("--port", type=int, default=0, help="Port to listen on (default: ephemeral)")
    mock_parser.add_argument("--host", default="127.0.0.1", help="Interface to bind (default: 127.0.0.1)")
    mock_parser.add_argument(
        "--strict",
        action="store_true",
        help="Answer 400 to requests that violate the spec",
    )


def handle_mock_command(args: argparse.Namespace) -> int:
    """Handle mock subcommand."""
    return mock_command(
        spec_file=args.spec_file,
        fixtures_file=args.fixtures_file,
        port=args.port,
        strict=args.strict,
        host=args.host,
    )
