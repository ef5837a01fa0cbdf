"""
Contract broker API client.

The broker stores specs, fixtures, recorded interactions and verification
tasks. Every call is authenticated with a bearer token; payloads use the
broker's camelCase keys.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Sequence
from urllib.parse import quote

import structlog

from accord.cache import SpecCache
from accord.clients.base import BaseHTTPClient, PermanentHTTPError, RetryableHTTPError
from accord.core.errors import BrokerError, SpecNotFoundError
from accord.detection import detect_spec_type
from accord.fixtures.models import Fixture, FixtureProposal
from accord.fixtures.prioritizer import prioritize
from accord.models import ClientInteraction, SpecType, format_timestamp, utcnow
from accord.verification.models import VerificationResult, VerificationTask

logger = structlog.get_logger()


@dataclass
class FetchedSpec:
    """A spec document plus the version the broker resolved it to."""

    spec: Any
    spec_type: SpecType
    provider_version: str
    requested_version: str
    resolved_from_latest: bool = False
    is_deployed: Optional[bool] = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class UploadResult:
    """Counts returned by the broker's batch endpoints."""

    created: int = 0
    duplicates: int = 0


def _segment(value: str) -> str:
    return quote(value, safe="")


class BrokerClient(BaseHTTPClient):
    """Broker API client with retry logic and circuit breaker."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        *,
        spec_cache: SpecCache | None = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        backoff_factor: float = 2.0,
    ) -> None:
        super().__init__(
            base_url,
            timeout=timeout,
            max_retries=max_retries,
            backoff_factor=backoff_factor,
        )
        self._api_key = api_key
        self._spec_cache = spec_cache

    @classmethod
    def from_settings(cls, settings: Any, spec_cache: SpecCache | None = None) -> BrokerClient:
        return cls(
            settings.service_url,
            settings.api_key,
            spec_cache=spec_cache,
            timeout=settings.http_timeout,
            max_retries=settings.http_max_retries,
        )

    def _headers(self) -> dict[str, str]:
        headers = super()._headers()
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def fetch_spec(
        self,
        service: str,
        provider_version: str,
        environment: str,
        branch: str = "main",
    ) -> FetchedSpec:
        """
        Fetch the spec a provider version resolves to.

        ``provider_version`` may be an exact version, a semver-compatible one,
        or ``latest`` (the version deployed to ``environment``).

        Raises:
            SpecNotFoundError: no spec matches; the broker's available versions
                and suggestion are carried on the error
            BrokerError: any other broker failure
        """
        cache_key = SpecCache.key(service, provider_version, environment, branch)
        if self._spec_cache is not None:
            cached = self._spec_cache.get(cache_key)
            if cached is not None:
                return cached

        try:
            payload = await self.get(
                f"/api/specs/{_segment(service)}/by-provider-version",
                params={
                    "providerVersion": provider_version,
                    "environment": environment,
                    "branch": branch,
                },
            )
        except PermanentHTTPError as exc:
            if exc.status_code == 404:
                body = exc.payload if isinstance(exc.payload, dict) else {}
                raise SpecNotFoundError(
                    body.get("message")
                    or f"Spec not found for {service}@{provider_version} in {environment}",
                    service=service,
                    provider_version=provider_version,
                    available_versions=body.get("availableVersions"),
                    suggestion=body.get("suggestion"),
                ) from exc
            raise BrokerError(
                f"Failed to fetch spec for {service}@{provider_version}: {exc}",
                details={"service": service, "status_code": exc.status_code},
            ) from exc
        except RetryableHTTPError as exc:
            raise BrokerError(
                f"Failed to fetch spec for {service}@{provider_version}: {exc}",
                details={"service": service},
            ) from exc

        fetched = self._parse_spec_payload(payload, provider_version)
        if fetched.resolved_from_latest:
            logger.info(
                "spec_resolved_from_latest",
                service=service,
                environment=environment,
                provider_version=fetched.provider_version,
                is_deployed=fetched.is_deployed,
            )
        else:
            logger.debug(
                "spec_fetched",
                service=service,
                requested=provider_version,
                provider_version=fetched.provider_version,
            )

        if self._spec_cache is not None:
            self._spec_cache.set(cache_key, fetched)
        return fetched

    @staticmethod
    def _parse_spec_payload(payload: Any, requested_version: str) -> FetchedSpec:
        # Older brokers return the raw document without the metadata envelope
        if isinstance(payload, dict) and "spec" in payload and "metadata" in payload:
            spec = payload["spec"]
            metadata = payload.get("metadata") or {}
        else:
            spec = payload
            metadata = {}

        spec_type_name = metadata.get("specType")
        try:
            spec_type = SpecType(spec_type_name) if spec_type_name else detect_spec_type(spec)
        except ValueError:
            spec_type = detect_spec_type(spec)

        return FetchedSpec(
            spec=spec,
            spec_type=spec_type,
            provider_version=metadata.get("providerVersion") or requested_version,
            requested_version=requested_version,
            resolved_from_latest=bool(metadata.get("resolvedFromLatest", False)),
            is_deployed=metadata.get("isDeployed"),
            metadata=metadata,
        )

    async def fetch_fixtures(self, service: str, version: str) -> list[Fixture]:
        """Fetch approved fixtures for a service version, prioritized."""
        try:
            payload = await self.get(
                f"/api/fixtures/service/{_segment(service)}",
                params={"version": version, "status": "approved"},
            )
        except (PermanentHTTPError, RetryableHTTPError) as exc:
            raise BrokerError(
                f"Failed to fetch fixtures for {service}@{version}: {exc}",
                details={"service": service, "version": version},
            ) from exc

        items = payload if isinstance(payload, list) else (payload or {}).get("fixtures", [])
        return prioritize(Fixture.from_dict(item) for item in items)

    async def propose_fixture(self, proposal: FixtureProposal) -> Fixture:
        """Propose a single fixture for review."""
        try:
            payload = await self.post("/api/fixtures", json=proposal.to_dict())
        except (PermanentHTTPError, RetryableHTTPError) as exc:
            raise BrokerError(
                f"Failed to propose fixture for {proposal.operation}: {exc}",
                details={"service": proposal.service, "operation": proposal.operation},
            ) from exc
        return Fixture.from_dict(payload)

    async def upload_fixtures(self, proposals: Sequence[FixtureProposal]) -> UploadResult:
        """Propose a batch of fixtures; duplicates are counted, not created."""
        try:
            payload = await self.post(
                "/api/fixtures/batch",
                json={"fixtures": [p.to_dict() for p in proposals]},
            )
        except (PermanentHTTPError, RetryableHTTPError) as exc:
            raise BrokerError(
                f"Failed to upload {len(proposals)} fixtures: {exc}",
                details={"count": len(proposals)},
            ) from exc

        payload = payload or {}
        return UploadResult(
            created=int(payload.get("created", 0)),
            duplicates=int(payload.get("duplicates", 0)),
        )

    async def upload_interactions(self, interactions: Sequence[ClientInteraction]) -> UploadResult:
        """Upload recorded interactions as one batch."""
        try:
            payload = await self.post(
                "/api/interactions/batch",
                json=[i.to_dict() for i in interactions],
            )
        except (PermanentHTTPError, RetryableHTTPError) as exc:
            raise BrokerError(
                f"Failed to upload {len(interactions)} interactions: {exc}",
                details={"count": len(interactions)},
            ) from exc

        results = (payload or {}).get("results") or {}
        return UploadResult(
            created=int(results.get("recorded", 0)),
            duplicates=int(results.get("duplicates", 0)),
        )

    async def get_verification_tasks(self, provider: str, environment: str) -> list[VerificationTask]:
        """Fetch open verification tasks for a provider."""
        try:
            payload = await self.get(
                f"/api/verification/{_segment(provider)}",
                params={"environment": environment},
            )
        except (PermanentHTTPError, RetryableHTTPError) as exc:
            raise BrokerError(
                f"Failed to fetch verification tasks for {provider}: {exc}",
                details={"provider": provider, "environment": environment},
            ) from exc

        items = payload if isinstance(payload, list) else (payload or {}).get("tasks", [])
        return [VerificationTask.from_dict(item) for item in items]

    async def submit_results(
        self,
        task: VerificationTask,
        results: Sequence[VerificationResult],
        *,
        provider_version: str,
        provider_git_sha: str | None = None,
    ) -> Any:
        """Submit the results of one verification task as a single batch."""
        body = {
            "taskId": task.id,
            "providerVersion": provider_version,
            "providerGitSha": provider_git_sha,
            "consumer": task.consumer,
            "consumerVersion": task.consumer_version,
            "consumerGitSha": task.consumer_git_sha,
            "specType": task.spec_type.value if task.spec_type else None,
            "results": [r.to_dict() for r in results],
        }
        try:
            return await self.post(f"/api/verification/{_segment(task.provider)}", json=body)
        except (PermanentHTTPError, RetryableHTTPError) as exc:
            raise BrokerError(
                f"Failed to submit results for task {task.id}: {exc}",
                details={"task_id": task.id, "provider": task.provider},
            ) from exc

    async def upload_spec(
        self,
        service: str,
        version: str,
        spec: Any,
        *,
        branch: str = "main",
        environment: str | None = None,
        uploaded_by: str | None = None,
    ) -> Any:
        """Upload a spec document for a service version."""
        metadata: dict[str, Any] = {
            "service": service,
            "version": version,
            "branch": branch,
            "uploadedAt": format_timestamp(utcnow()),
        }
        if environment:
            metadata["environment"] = environment
        if uploaded_by:
            metadata["uploadedBy"] = uploaded_by

        try:
            result = await self.post(
                f"/api/specs/{_segment(service)}",
                json={"spec": spec, "metadata": metadata},
            )
        except (PermanentHTTPError, RetryableHTTPError) as exc:
            raise BrokerError(
                f"Failed to upload spec for {service}@{version}: {exc}",
                details={"service": service, "version": version},
            ) from exc

        logger.info("spec_uploaded", service=service, version=version, branch=branch)
        return result
