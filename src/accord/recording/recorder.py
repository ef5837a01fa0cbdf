"""
Interaction recorder.

Buffers every request/response pair the mock serves and uploads them to
the broker in batches. Recording is idempotent per session: an interaction
whose hash was already seen is dropped.

Flushing is at-most-once: the buffer and the seen-hash set are cleared after
every flush attempt, whether or not the upload succeeded. The caller gets a
``FlushOutcome`` describing what happened.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass
from typing import Any, Optional

import structlog

from accord.clients.broker import BrokerClient
from accord.core.errors import BrokerError
from accord.fixtures.hashing import interaction_hash
from accord.models import ClientInfo, ClientInteraction, HTTPRequest, HTTPResponse, SpecType, utcnow

logger = structlog.get_logger()

DEFAULT_FLUSH_THRESHOLD = 10


@dataclass
class FlushOutcome:
    """What happened when the buffer was flushed."""

    attempted: int = 0
    uploaded: bool = False
    recorded: int = 0
    duplicates: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def new_interaction_id() -> str:
    return f"int_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class InteractionRecorder:
    """Concurrency-safe buffer of recorded interactions for one consumer/provider pair."""

    def __init__(
        self,
        broker: BrokerClient,
        *,
        service: str,
        consumer: str,
        consumer_version: str,
        provider_version: str,
        environment: str,
        consumer_git_sha: Optional[str] = None,
        client_info: Optional[ClientInfo] = None,
        auto_flush: bool = False,
        flush_threshold: int = DEFAULT_FLUSH_THRESHOLD,
    ) -> None:
        self._broker = broker
        self._service = service
        self._consumer = consumer
        self._consumer_version = consumer_version
        self._provider_version = provider_version
        self._environment = environment
        self._consumer_git_sha = consumer_git_sha
        self._client_info = client_info or ClientInfo(commit=consumer_git_sha)
        self._auto_flush = auto_flush
        self._flush_threshold = max(1, flush_threshold)
        self._lock = asyncio.Lock()
        self._buffer: list[ClientInteraction] = []
        self._seen: set[str] = set()

    @property
    def pending_count(self) -> int:
        return len(self._buffer)

    @property
    def pending(self) -> list[ClientInteraction]:
        return list(self._buffer)

    async def record(
        self,
        operation: str,
        request: HTTPRequest,
        response: HTTPResponse,
        *,
        duration: float = 0.0,
        spec_type: Optional[SpecType] = None,
        match_context: Optional[dict[str, Any]] = None,
    ) -> Optional[ClientInteraction]:
        """
        Buffer an interaction unless an identical one was already recorded.

        Returns the buffered interaction, or None for a duplicate.
        """
        key = interaction_hash(
            self._service,
            self._consumer,
            self._consumer_version,
            operation,
            request,
            response,
        )

        async with self._lock:
            if key in self._seen:
                logger.debug("interaction_duplicate", operation=operation, hash=key[:12])
                return None
            self._seen.add(key)

            interaction = ClientInteraction(
                id=new_interaction_id(),
                service=self._service,
                consumer=self._consumer,
                consumer_version=self._consumer_version,
                consumer_git_sha=self._consumer_git_sha,
                provider_version=self._provider_version,
                environment=self._environment,
                operation=operation,
                request=request,
                response=response,
                timestamp=utcnow(),
                duration=duration,
                client_info=self._client_info,
                spec_type=spec_type,
                match_context=match_context,
            )
            self._buffer.append(interaction)
            should_flush = self._auto_flush and len(self._buffer) >= self._flush_threshold

        if should_flush:
            outcome = await self.flush()
            if not outcome.ok:
                logger.warning("interaction_auto_flush_failed", error=outcome.error)

        return interaction

    async def flush(self) -> FlushOutcome:
        """Upload the whole buffer as one batch, then clear it."""
        async with self._lock:
            batch = self._buffer
            self._buffer = []
            self._seen.clear()

        if not batch:
            return FlushOutcome()

        try:
            result = await self._broker.upload_interactions(batch)
        except BrokerError as exc:
            logger.warning(
                "interaction_upload_failed",
                service=self._service,
                count=len(batch),
                error=exc.message,
            )
            return FlushOutcome(attempted=len(batch), error=exc.message)

        logger.info(
            "interactions_uploaded",
            service=self._service,
            recorded=result.created,
            duplicates=result.duplicates,
        )
        return FlushOutcome(
            attempted=len(batch),
            uploaded=True,
            recorded=result.created,
            duplicates=result.duplicates,
        )
