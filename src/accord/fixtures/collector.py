"""
Collection of consumer-observed responses as fixture proposals.

During a CI test run every successful response the mock serves is kept
(deduplicated by fixture hash) and proposed to the broker when the mock
closes. Reviewers then approve or reject the proposals.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Optional

import structlog

from accord.clients.broker import BrokerClient
from accord.core.errors import BrokerError
from accord.fixtures.hashing import fixture_hash
from accord.fixtures.models import FixtureCreation, FixtureData, FixtureProposal, FixtureSource
from accord.models import SpecType

logger = structlog.get_logger()


@dataclass
class UploadOutcome:
    """What happened when collected fixtures were proposed."""

    created: int = 0
    duplicates: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def is_success_status(status: Any) -> bool:
    try:
        return 200 <= int(status) < 300
    except (TypeError, ValueError):
        return False


class FixtureCollector:
    """Buffers fixture proposals under a lock, keyed by content hash."""

    def __init__(
        self,
        broker: BrokerClient,
        *,
        service: str,
        service_version: str,
        consumer: str,
        test_run: str = "local",
        spec_type: SpecType = SpecType.OPENAPI,
        enabled: bool = True,
    ) -> None:
        self._broker = broker
        self._service = service
        self._service_version = service_version
        self._consumer = consumer
        self._test_run = test_run
        self._spec_type = spec_type
        self._enabled = enabled
        self._lock = asyncio.Lock()
        self._collected: dict[str, FixtureProposal] = {}

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def collected_count(self) -> int:
        return len(self._collected)

    async def collect(self, operation: str, request: Any, response: Any) -> bool:
        """
        Keep a served request/response pair as a proposal.

        Returns True when a new proposal was buffered. Non-2xx responses and
        duplicates are ignored.
        """
        if not self._enabled:
            return False

        status = response.get("status") if isinstance(response, dict) else getattr(response, "status", None)
        if not is_success_status(status):
            return False

        data = FixtureData(request=request, response=response)
        key = fixture_hash(operation, data)

        async with self._lock:
            if key in self._collected:
                return False
            self._collected[key] = FixtureProposal(
                service=self._service,
                service_version=self._service_version,
                operation=operation,
                data=data,
                source=FixtureSource.CONSUMER,
                spec_type=self._spec_type,
                created_from=FixtureCreation(
                    type="test_output",
                    generated_by="consumer-test",
                    test_run=self._test_run,
                    consumer=self._consumer,
                ),
            )
        logger.debug("fixture_collected", operation=operation, hash=key[:12])
        return True

    async def upload_collected(self) -> UploadOutcome:
        """Propose everything collected so far, then forget it."""
        async with self._lock:
            proposals = list(self._collected.values())
            self._collected.clear()

        if not proposals:
            return UploadOutcome()

        try:
            result = await self._broker.upload_fixtures(proposals)
        except BrokerError as exc:
            logger.warning("fixture_upload_failed", count=len(proposals), error=exc.message)
            return UploadOutcome(error=exc.message)

        logger.info(
            "fixtures_uploaded",
            service=self._service,
            created=result.created,
            duplicates=result.duplicates,
        )
        return UploadOutcome(created=result.created, duplicates=result.duplicates)
