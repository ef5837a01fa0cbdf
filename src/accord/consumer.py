"""
Consumer-side entry point.

``ConsumerClient.create_mock`` fetches the provider's spec and fixtures from
the broker, starts a local mock server, and wires recording and fixture
collection to it. Closing the mock flushes both before the listener stops.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, Optional, Union

import structlog

from accord.cache import SpecCache
from accord.clients.broker import BrokerClient, FetchedSpec
from accord.config import Settings, get_settings
from accord.core.errors import BrokerError
from accord.fixtures.collector import FixtureCollector, UploadOutcome
from accord.fixtures.local import convert_mock_data_to_fixtures
from accord.fixtures.models import Fixture, FixtureCreation, FixtureData, FixtureProposal, FixtureSource
from accord.identity import ResolvedIdentity, get_git_sha, resolve_identity
from accord.mock.engine import MockResponseEngine, RequestHandledEvent
from accord.mock.openapi import extract_operation_from_path
from accord.mock.operations import Operation, ResponseSource
from accord.mock.server import MockServer
from accord.models import ClientInfo, SpecType
from accord.recording.recorder import FlushOutcome, InteractionRecorder

logger = structlog.get_logger()

LIBRARY_NAME = "accord"
LIBRARY_VERSION = "0.1.0"

FixtureInput = Union[Fixture, dict[str, Any]]


def _as_fixture(item: FixtureInput) -> Fixture:
    return item if isinstance(item, Fixture) else Fixture.from_dict(item)


class Mock:
    """Handle on a running mock server for one provider."""

    def __init__(
        self,
        server: MockServer,
        broker: BrokerClient,
        fetched: FetchedSpec,
        *,
        service: str,
        consumer: ResolvedIdentity,
        recorder: Optional[InteractionRecorder] = None,
        collector: Optional[FixtureCollector] = None,
    ) -> None:
        self._server = server
        self._broker = broker
        self._fetched = fetched
        self._service = service
        self._consumer = consumer
        self._recorder = recorder
        self._collector = collector
        self._closed = False
        self.last_flush: Optional[FlushOutcome] = None
        self.last_upload: Optional[UploadOutcome] = None

    @property
    def url(self) -> str:
        return self._server.url

    @property
    def port(self) -> int:
        return self._server.port

    @property
    def provider_version(self) -> str:
        return self._fetched.provider_version

    @property
    def spec_type(self) -> SpecType:
        return self._fetched.spec_type

    @property
    def recorder(self) -> Optional[InteractionRecorder]:
        return self._recorder

    @property
    def collector(self) -> Optional[FixtureCollector]:
        return self._collector

    @property
    def operations(self) -> list[Operation]:
        return self._server.engine.get_operations()

    def get_fixtures(self) -> list[Fixture]:
        return list(self._server.engine.fixtures)

    async def propose_fixture(
        self,
        operation: str,
        data: Union[FixtureData, dict[str, Any]],
        *,
        notes: Optional[str] = None,
    ) -> Optional[Fixture]:
        """Propose a hand-written fixture for review. Returns None without a consumer identity."""
        if self._consumer.is_fallback:
            logger.warning("fixture_proposal_skipped", reason="consumer identity unresolved", operation=operation)
            return None

        if not isinstance(data, FixtureData):
            data = FixtureData.from_dict(data)
        proposal = FixtureProposal(
            service=self._service,
            service_version=self.provider_version,
            operation=operation,
            data=data,
            source=FixtureSource.MANUAL,
            spec_type=self.spec_type,
            created_from=FixtureCreation(type="manual", consumer=self._consumer.name),
            notes=notes,
        )
        return await self._broker.propose_fixture(proposal)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._server.close()

    async def __aenter__(self) -> Mock:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()


class ConsumerClient:
    """Creates mocks of providers and manages their specs and fixtures."""

    def __init__(
        self,
        consumer: Optional[str] = None,
        consumer_version: Optional[str] = None,
        *,
        settings: Optional[Settings] = None,
        broker: Optional[BrokerClient] = None,
        spec_cache: Optional[SpecCache] = None,
        project_file: Optional[Path] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._identity = resolve_identity(
            consumer or self._settings.consumer,
            consumer_version or self._settings.consumer_version,
            project_file,
        )
        if spec_cache is None:
            spec_cache = SpecCache(maxsize=self._settings.spec_cache_size, ttl=self._settings.spec_cache_ttl)
        self._broker = broker or BrokerClient.from_settings(self._settings, spec_cache)

    @property
    def identity(self) -> ResolvedIdentity:
        return self._identity

    @property
    def broker(self) -> BrokerClient:
        return self._broker

    async def create_mock(
        self,
        service: str,
        provider_version: str = "latest",
        *,
        branch: str = "main",
        port: int = 0,
        use_fixtures: bool = True,
        validate_requests: bool = True,
        validate_responses: bool = True,
        local_fixtures: Optional[Iterable[FixtureInput]] = None,
        local_mock_data: Optional[dict[str, dict[str, dict[str, Any]]]] = None,
        strict: bool = False,
    ) -> Mock:
        """
        Start a mock server for ``service`` at ``provider_version``.

        Raises:
            SpecNotFoundError: the broker has no spec for the requested version
            ConfigurationError: the listener could not be started
        """
        environment = self._settings.environment
        fetched = await self._broker.fetch_spec(service, provider_version, environment, branch)

        fixtures = await self._load_fixtures(service, fetched, use_fixtures, local_fixtures)
        engine = MockResponseEngine(
            fetched.spec,
            fixtures,
            spec_type=fetched.spec_type,
            validate_request=validate_requests,
            validate_response=validate_responses,
            strict=strict,
        )
        if not fixtures and local_mock_data:
            engine = MockResponseEngine(
                fetched.spec,
                convert_mock_data_to_fixtures(
                    local_mock_data,
                    service,
                    fetched.provider_version,
                    engine.get_operations(),
                    fetched.spec_type,
                ),
                spec_type=fetched.spec_type,
                validate_request=validate_requests,
                validate_response=validate_responses,
                strict=strict,
            )

        server = MockServer(engine, port=port)
        recorder = self._build_recorder(service, fetched)
        collector = self._build_collector(service, fetched)
        self._subscribe(engine, recorder, collector)

        mock = Mock(
            server,
            self._broker,
            fetched,
            service=service,
            consumer=self._identity,
            recorder=recorder,
            collector=collector,
        )
        if collector is not None:

            async def upload_fixtures() -> None:
                mock.last_upload = await collector.upload_collected()

            server.add_close_hook(upload_fixtures)
        if recorder is not None:

            async def flush_interactions() -> None:
                mock.last_flush = await recorder.flush()

            server.add_close_hook(flush_interactions)

        await server.start()
        logger.info(
            "mock_created",
            service=service,
            requested_version=provider_version,
            provider_version=fetched.provider_version,
            spec_type=fetched.spec_type.value,
            fixtures=len(engine.fixtures),
            url=server.url,
        )
        return mock

    async def _load_fixtures(
        self,
        service: str,
        fetched: FetchedSpec,
        use_fixtures: bool,
        local_fixtures: Optional[Iterable[FixtureInput]],
    ) -> list[Fixture]:
        if local_fixtures is not None:
            return [_as_fixture(item) for item in local_fixtures]
        if not use_fixtures:
            return []
        try:
            return await self._broker.fetch_fixtures(service, fetched.provider_version)
        except BrokerError as exc:
            logger.warning("fixtures_unavailable", service=service, error=exc.message)
            return []

    def _build_recorder(self, service: str, fetched: FetchedSpec) -> Optional[InteractionRecorder]:
        if not self._settings.recording_enabled:
            return None
        if self._identity.is_fallback:
            logger.warning("recording_disabled", reason="consumer identity unresolved", service=service)
            return None

        git_sha = get_git_sha()
        return InteractionRecorder(
            self._broker,
            service=service,
            consumer=self._identity.name,
            consumer_version=self._identity.version,
            provider_version=fetched.provider_version,
            environment=self._settings.environment,
            consumer_git_sha=git_sha,
            client_info=ClientInfo(
                library=LIBRARY_NAME,
                version=LIBRARY_VERSION,
                build_id=self._settings.build_id,
                commit=git_sha,
            ),
            auto_flush=self._settings.in_ci,
            flush_threshold=self._settings.flush_threshold,
        )

    def _build_collector(self, service: str, fetched: FetchedSpec) -> Optional[FixtureCollector]:
        if not self._settings.in_ci or self._identity.is_fallback:
            return None
        return FixtureCollector(
            self._broker,
            service=service,
            service_version=fetched.provider_version,
            consumer=self._identity.name,
            test_run=self._settings.test_run,
            spec_type=fetched.spec_type,
        )

    @staticmethod
    def _subscribe(
        engine: MockResponseEngine,
        recorder: Optional[InteractionRecorder],
        collector: Optional[FixtureCollector],
    ) -> None:
        if recorder is None and collector is None:
            return

        async def on_request(event: RequestHandledEvent) -> None:
            if event.result.source is ResponseSource.NOT_FOUND:
                return
            operation = event.operation or extract_operation_from_path(event.request.method, event.request.path)
            if recorder is not None:
                await recorder.record(
                    operation,
                    event.request,
                    event.response,
                    duration=event.duration,
                    spec_type=event.spec_type,
                    match_context={"source": event.result.source.value, "fixtureId": event.result.fixture_id},
                )
            if collector is not None:
                await collector.collect(operation, event.request.to_dict(), event.response.to_dict())

        engine.on_request(on_request)

    async def download_fixtures(self, service: str, version: str) -> list[Fixture]:
        """Fetch approved fixtures for a provider version."""
        return await self._broker.fetch_fixtures(service, version)

    async def upload_spec(
        self,
        service: str,
        version: str,
        spec: Any,
        *,
        branch: str = "main",
        environment: Optional[str] = None,
    ) -> Any:
        return await self._broker.upload_spec(
            service,
            version,
            spec,
            branch=branch,
            environment=environment,
            uploaded_by=None if self._identity.is_fallback else self._identity.name,
        )
