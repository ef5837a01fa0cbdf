"""
Provider-side verification: replay recorded consumer requests against a
running provider and compare the responses structurally.

Tasks are processed one after another, and so are the interactions inside
a task: the cleanup for interaction N finishes before the state handler for
interaction N+1 starts. Per-interaction failures (network errors, timeouts,
hook errors, mismatches) become failed results; they never abort the task.
"""

from __future__ import annotations

import asyncio
import inspect
import json
from pathlib import Path
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

import httpx
import structlog

from accord.clients.broker import BrokerClient
from accord.config import Settings, get_settings
from accord.core.errors import BrokerError
from accord.identity import get_git_sha, resolve_identity
from accord.logging import bind_context, bound_identity
from accord.models import HTTPRequest, HTTPResponse, get_header
from accord.verification.comparator import validate_response
from accord.verification.models import (
    ProviderVerificationResults,
    TaskState,
    VerificationResult,
    VerificationTask,
)

logger = structlog.get_logger()

Hook = Callable[[], Union[Awaitable[Any], Any]]

JSON_RESPONSE_TYPES = ("application/json", "application/graphql-response+json")
SKIPPED_REPLAY_HEADERS = {"host", "content-length", "connection", "transfer-encoding"}


async def _run_hook(hook: Hook) -> None:
    outcome = hook()
    if inspect.isawaitable(outcome):
        await outcome


def _request_content(request: HTTPRequest) -> tuple[Optional[str], dict[str, str]]:
    headers = {k: v for k, v in request.headers.items() if k.lower() not in SKIPPED_REPLAY_HEADERS}
    if request.body is None:
        return None, headers
    if isinstance(request.body, str):
        return request.body, headers

    if not get_header(headers, "content-type"):
        headers["content-type"] = "application/json"
    return json.dumps(request.body), headers


async def replay_request(client: httpx.AsyncClient, base_url: str, request: HTTPRequest) -> HTTPResponse:
    """Send a recorded request to ``base_url`` and capture the response."""
    content, headers = _request_content(request)
    response = await client.request(
        request.method,
        f"{base_url.rstrip('/')}{request.path}",
        params=request.query or None,
        headers=headers,
        content=content,
    )

    content_type = response.headers.get("content-type", "")
    body: Any = response.text
    if any(t in content_type for t in JSON_RESPONSE_TYPES):
        try:
            body = response.json()
        except ValueError:
            body = response.text

    return HTTPResponse(status=response.status_code, headers=dict(response.headers), body=body)


class VerificationReplayEngine:
    """Runs verification tasks for one provider version."""

    def __init__(
        self,
        broker: BrokerClient,
        *,
        provider: str,
        provider_version: str,
        environment: str = "test",
        provider_git_sha: Optional[str] = None,
        timeout: float = 30.0,
    ) -> None:
        self._broker = broker
        self._provider = provider
        self._provider_version = provider_version
        self._environment = environment
        self._provider_git_sha = provider_git_sha
        self._timeout = timeout

    async def verify(
        self,
        base_url: str,
        state_handlers: Optional[Mapping[str, Hook]] = None,
        cleanup: Optional[Hook] = None,
        environment: Optional[str] = None,
    ) -> ProviderVerificationResults:
        """Fetch open tasks and replay every interaction in them."""
        environment = environment or self._environment
        tasks = await self._broker.get_verification_tasks(self._provider, environment)
        logger.info(
            "verification_tasks_fetched",
            provider=self._provider,
            environment=environment,
            tasks=len(tasks),
        )

        summary = ProviderVerificationResults(
            provider_version=self._provider_version,
            provider_git_sha=self._provider_git_sha,
        )
        for task in tasks:
            results = await self.run_task(task, base_url, state_handlers, cleanup)
            summary.results.extend(results)
            summary.task_ids.append(task.id)

        logger.info(
            "verification_complete",
            provider=self._provider,
            passed=len(summary.passed),
            failed=len(summary.failed),
        )
        return summary

    def _transition(self, task: VerificationTask, state: TaskState) -> None:
        log = bind_context(task_id=task.id, provider=task.provider or self._provider)
        log.info("verification_task_state", previous=task.state.value, state=state.value)
        task.state = state

    async def run_task(
        self,
        task: VerificationTask,
        base_url: str,
        state_handlers: Optional[Mapping[str, Hook]] = None,
        cleanup: Optional[Hook] = None,
    ) -> list[VerificationResult]:
        """Replay one task's interactions in order, then submit its results."""
        self._transition(task, TaskState.PROCESSING)

        results: list[VerificationResult] = []
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            for interaction in task.interactions:
                handler = (state_handlers or {}).get(interaction.operation)
                results.append(
                    await self.verify_interaction(client, base_url, interaction, handler, cleanup)
                )

        try:
            await self._broker.submit_results(
                task,
                results,
                provider_version=self._provider_version,
                provider_git_sha=self._provider_git_sha,
            )
        except BrokerError as exc:
            bind_context(task_id=task.id, provider=self._provider).warning(
                "verification_submit_failed", error=exc.message
            )
            return results

        self._transition(task, TaskState.SUBMITTED)
        return results

    async def verify_interaction(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        interaction: Any,
        state_handler: Optional[Hook] = None,
        cleanup: Optional[Hook] = None,
    ) -> VerificationResult:
        """Replay a single interaction; any error becomes a failed result."""
        try:
            if state_handler is not None:
                await _run_hook(state_handler)

            actual = await asyncio.wait_for(
                replay_request(client, base_url, interaction.request),
                timeout=self._timeout,
            )
            outcome = validate_response(interaction.response, actual)
            return VerificationResult(
                interaction_id=interaction.id,
                success=outcome.success,
                error=outcome.error,
                error_details=outcome.error_details,
                actual_response=actual,
            )
        except asyncio.TimeoutError:
            logger.warning("replay_timeout", interaction_id=interaction.id, timeout=self._timeout)
            return VerificationResult(
                interaction_id=interaction.id,
                success=False,
                error=f"Replay timed out after {self._timeout}s",
            )
        except Exception as exc:
            logger.warning(
                "replay_failed",
                interaction_id=interaction.id,
                operation=interaction.operation,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return VerificationResult(
                interaction_id=interaction.id,
                success=False,
                error=str(exc) or type(exc).__name__,
            )
        finally:
            if cleanup is not None:
                try:
                    await _run_hook(cleanup)
                except Exception as exc:
                    logger.warning("replay_cleanup_failed", interaction_id=interaction.id, error=str(exc))


class Provider:
    """
    Provider-side entry point.

    Identity comes from arguments, then settings, then pyproject.toml. With a
    fallback identity every operation is a no-op so placeholder names never
    reach the broker.
    """

    def __init__(
        self,
        provider: Optional[str] = None,
        provider_version: Optional[str] = None,
        *,
        settings: Optional[Settings] = None,
        broker: Optional[BrokerClient] = None,
        project_file: Optional[Path] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._identity = resolve_identity(
            provider or self._settings.provider,
            provider_version or self._settings.provider_version,
            project_file,
        )
        self._broker = broker or BrokerClient.from_settings(self._settings)

    @property
    def name(self) -> str:
        return self._identity.name

    @property
    def version(self) -> str:
        return self._identity.version

    @property
    def has_identity(self) -> bool:
        return not self._identity.is_fallback

    async def get_verification_tasks(self, environment: Optional[str] = None) -> list[VerificationTask]:
        if not self.has_identity:
            logger.warning("verification_skipped", reason="provider identity unresolved")
            return []
        return await self._broker.get_verification_tasks(self.name, environment or self._settings.environment)

    async def verify(
        self,
        base_url: str,
        state_handlers: Optional[Mapping[str, Hook]] = None,
        cleanup: Optional[Hook] = None,
        environment: Optional[str] = None,
    ) -> ProviderVerificationResults:
        git_sha = get_git_sha()
        if not self.has_identity:
            logger.warning("verification_skipped", reason="provider identity unresolved")
            return ProviderVerificationResults(provider_version=self.version, provider_git_sha=git_sha)

        engine = VerificationReplayEngine(
            self._broker,
            provider=self.name,
            provider_version=self.version,
            environment=environment or self._settings.environment,
            provider_git_sha=git_sha,
            timeout=self._settings.replay_timeout,
        )
        with bound_identity("provider", self.name, self.version):
            return await engine.verify(base_url, state_handlers, cleanup, environment)
