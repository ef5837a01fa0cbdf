"""
CLI command for provider verification.

Replays the interactions consumers recorded against a running provider and
reports which ones no longer match.
"""

from __future__ import annotations

import argparse
import asyncio
import json
from typing import Any, Optional

from accord.cli.ux import console, error, header, info, print_key_value, spinner, success
from accord.clients.broker import BrokerClient
from accord.config import get_settings
from accord.verification.models import ProviderVerificationResults, VerificationResult
from accord.verification.replay import Provider


def _format_value(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True)
    return str(value)


def verify_command(
    provider: str,
    provider_version: str,
    base_url: str,
    environment: Optional[str] = None,
    service_url: Optional[str] = None,
    api_key: Optional[str] = None,
) -> int:
    """
    Verify a provider against every open task in the broker.

    Exit codes:
        0 = All interactions verified (or nothing to verify)
        1 = At least one interaction failed
    """
    settings = get_settings()
    broker = BrokerClient(
        service_url or settings.service_url,
        api_key or settings.api_key,
        timeout=settings.http_timeout,
        max_retries=settings.http_max_retries,
    )
    runner = Provider(provider, provider_version, settings=settings, broker=broker)

    header(f"Provider Verification: {provider}@{provider_version}")
    print_key_value({"Target": base_url, "Environment": environment or settings.environment})
    console.print()

    with spinner("Replaying recorded interactions"):
        results = asyncio.run(runner.verify(base_url, environment=environment))

    if not results.task_ids:
        info("No open verification tasks")
        return 0

    _print_verification_results(results)
    return results.exit_code


def _print_failure(result: VerificationResult) -> None:
    console.print(f"  [error]✗[/error] {result.interaction_id}")
    console.print(f"      [muted]{result.error}[/muted]")

    details = result.error_details
    if details is None:
        return
    if details.field:
        console.print(f"      [cyan]Field:[/cyan] {details.field}")
    if details.expected is not None:
        console.print(f"      [cyan]Expected:[/cyan] {_format_value(details.expected)}")
    if details.actual is not None:
        console.print(f"      [cyan]Actual:[/cyan] {_format_value(details.actual)}")


def _print_verification_results(results: ProviderVerificationResults) -> None:
    console.print(f"[bold]Interactions ({len(results.task_ids)} tasks):[/bold]")
    for result in results.results:
        if result.success:
            console.print(f"  [success]✓[/success] {result.interaction_id}")
        else:
            _print_failure(result)
    console.print()

    console.print("[bold]Summary:[/bold]")
    console.print(f"  [muted]Total:[/muted] {len(results.results)} interactions")
    console.print(f"  [success]✓[/success] Passed: {len(results.passed)}")
    if results.failed:
        console.print(f"  [error]✗[/error] Failed: {len(results.failed)}")
    console.print()

    if results.all_passed:
        success("All interactions verified")
    else:
        error("Contract verification failed")


def register_verify_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register verify subcommand parser."""
    verify_parser = subparsers.add_parser(
        "verify",
        help="Replay recorded consumer interactions against a running provider",
    )
    verify_parser.add_argument("--provider", required=True, help="Provider service name")
    verify_parser.add_argument("--provider-version", required=True, help="Provider version under test")
    verify_parser.add_argument("--base-url", required=True, help="Base URL of the running provider")
    verify_parser.add_argument(
        "--env",
        "--environment",
        dest="environment",
        help="Environment to fetch tasks for (default: ACCORD_ENVIRONMENT)",
    )
    verify_parser.add_argument("--service-url", help="Broker URL (or set ACCORD_SERVICE_URL)")
    verify_parser.add_argument("--api-key", help="Broker API key (or set ACCORD_API_KEY)")


def handle_verify_command(args: argparse.Namespace) -> int:
    """Handle verify subcommand."""
    return verify_command(
        provider=args.provider,
        provider_version=args.provider_version,
        base_url=args.base_url,
        environment=getattr(args, "environment", None),
        service_url=getattr(args, "service_url", None),
        api_key=getattr(args, "api_key", None),
    )
