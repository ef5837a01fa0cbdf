"""Tests for the consumer entry point and the mocks it creates."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from accord.clients.broker import FetchedSpec, UploadResult
from accord.config import Settings
from accord.consumer import ConsumerClient
from accord.core.errors import BrokerError, SpecNotFoundError
from accord.fixtures.models import FixtureSource
from accord.models import SpecType


@pytest.fixture
def broker(user_spec, make_fixture):
    mock = MagicMock()
    mock.fetch_spec = AsyncMock(
        return_value=FetchedSpec(
            spec=user_spec,
            spec_type=SpecType.OPENAPI,
            provider_version="1.2.3",
            requested_version="latest",
            resolved_from_latest=True,
        )
    )
    mock.fetch_fixtures = AsyncMock(
        return_value=[make_fixture(response={"status": 200, "body": {"id": "1", "name": "Ada"}})]
    )
    mock.upload_interactions = AsyncMock(return_value=UploadResult(created=1))
    mock.upload_fixtures = AsyncMock(return_value=UploadResult(created=1))
    mock.propose_fixture = AsyncMock(side_effect=lambda proposal: proposal)
    mock.upload_spec = AsyncMock(return_value={"id": "spec-1"})
    return mock


@pytest.fixture
def ci_settings(settings):
    return settings.model_copy(update={"ci": True, "build_id": "build-7"})


async def fetch(mock, path):
    async with httpx.AsyncClient() as http:
        return await http.get(f"{mock.url}{path}")


class TestCreateMock:
    @pytest.mark.asyncio
    async def test_serves_fixtures_and_records(self, settings, broker):
        client = ConsumerClient(settings=settings, broker=broker)

        async with await client.create_mock("user-service") as mock:
            assert mock.port != 0
            assert mock.provider_version == "1.2.3"
            assert mock.spec_type is SpecType.OPENAPI
            assert mock.collector is None

            found = await fetch(mock, "/users/1")
            missing = await fetch(mock, "/nope")

        assert found.status_code == 200
        assert found.json() == {"id": "1", "name": "Ada"}
        assert missing.status_code == 404

        broker.fetch_spec.assert_awaited_once_with("user-service", "latest", "test", "main")
        broker.fetch_fixtures.assert_awaited_once_with("user-service", "1.2.3")

        interactions = broker.upload_interactions.await_args.args[0]
        assert len(interactions) == 1
        assert interactions[0].operation == "getUser"
        assert interactions[0].consumer == "web-app"
        assert interactions[0].provider_version == "1.2.3"
        assert interactions[0].match_context == {"source": "fixture", "fixtureId": "fx-1"}
        assert mock.last_flush.uploaded
        broker.upload_fixtures.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, settings, broker):
        mock = await ConsumerClient(settings=settings, broker=broker).create_mock("user-service")
        await fetch(mock, "/users/1")

        await mock.close()
        await mock.close()

        broker.upload_interactions.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_ci_collects_fixtures_before_flushing(self, ci_settings, broker):
        order = []
        broker.upload_fixtures.side_effect = lambda proposals: order.append("fixtures") or UploadResult(created=1)
        broker.upload_interactions.side_effect = lambda batch: order.append("interactions") or UploadResult()

        async with await ConsumerClient(settings=ci_settings, broker=broker).create_mock("user-service") as mock:
            await fetch(mock, "/users/me")

        assert order == ["fixtures", "interactions"]
        proposal = broker.upload_fixtures.await_args.args[0][0]
        assert proposal.operation == "getCurrentUser"
        assert proposal.created_from.test_run == "build-7"
        assert mock.last_upload.created == 1

    @pytest.mark.asyncio
    async def test_fixture_failure_falls_back_to_spec(self, settings, broker):
        broker.fetch_fixtures.side_effect = BrokerError("broker down")

        async with await ConsumerClient(settings=settings, broker=broker).create_mock("user-service") as mock:
            response = await fetch(mock, "/users/1")

        assert mock.get_fixtures() == []
        assert response.json()["name"] == "string"

    @pytest.mark.asyncio
    async def test_local_fixtures_replace_broker_fixtures(self, settings, broker):
        local = [
            {
                "id": "local-1",
                "operation": "getUser",
                "status": "approved",
                "data": {"response": {"status": 200, "body": {"id": "9", "name": "Local"}}},
            }
        ]

        async with await ConsumerClient(settings=settings, broker=broker).create_mock(
            "user-service", local_fixtures=local
        ) as mock:
            response = await fetch(mock, "/users/9")

        broker.fetch_fixtures.assert_not_awaited()
        assert response.json() == {"id": "9", "name": "Local"}

    @pytest.mark.asyncio
    async def test_local_mock_data_when_no_fixtures(self, settings, broker):
        broker.fetch_fixtures.return_value = []
        mock_data = {
            "getUser": {
                "success": {"status": 200, "body": {"id": "550e8400-e29b-41d4-a716-446655440000", "name": "Mocked"}},
                "notFound": {"status": 404, "body": {"error": "missing"}},
            }
        }

        async with await ConsumerClient(settings=settings, broker=broker).create_mock(
            "user-service", local_mock_data=mock_data
        ) as mock:
            found = await fetch(mock, "/users/550e8400-e29b-41d4-a716-446655440000")
            not_found = await fetch(mock, "/users/non-existent-id")

        assert [f.operation for f in mock.get_fixtures()] == ["getUser", "getUser"]
        assert found.json()["name"] == "Mocked"
        assert not_found.status_code == 404

    @pytest.mark.asyncio
    async def test_missing_spec_propagates(self, settings, broker):
        broker.fetch_spec.side_effect = SpecNotFoundError(
            "not deployed",
            service="user-service",
            provider_version="latest",
        )

        with pytest.raises(SpecNotFoundError):
            await ConsumerClient(settings=settings, broker=broker).create_mock("user-service")


class TestIdentity:
    @pytest.mark.asyncio
    async def test_fallback_identity_disables_broker_writes(self, tmp_path, broker):
        settings = Settings(service_url="https://broker.example.com", ci=True)
        client = ConsumerClient(settings=settings, broker=broker, project_file=tmp_path / "pyproject.toml")

        assert client.identity.is_fallback

        async with await client.create_mock("user-service") as mock:
            assert mock.recorder is None
            assert mock.collector is None
            await fetch(mock, "/users/1")
            assert await mock.propose_fixture("getUser", {"response": {"status": 200}}) is None

        broker.upload_interactions.assert_not_awaited()
        broker.upload_fixtures.assert_not_awaited()
        broker.propose_fixture.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_identity_from_project_file(self, tmp_path, broker):
        project = tmp_path / "pyproject.toml"
        project.write_text('[project]\nname = "checkout"\nversion = "4.5.6"\n')

        client = ConsumerClient(settings=Settings(), broker=broker, project_file=project)

        assert client.identity.name == "checkout"
        assert client.identity.version == "4.5.6"
        assert not client.identity.is_fallback


class TestBrokerOperations:
    @pytest.mark.asyncio
    async def test_propose_fixture(self, settings, broker):
        async with await ConsumerClient(settings=settings, broker=broker).create_mock("user-service") as mock:
            proposal = await mock.propose_fixture(
                "getUser",
                {"request": {"method": "GET", "path": "/users/5"}, "response": {"status": 200}},
                notes="edge case",
            )

        assert proposal.source is FixtureSource.MANUAL
        assert proposal.service_version == "1.2.3"
        assert proposal.created_from.consumer == "web-app"
        assert proposal.notes == "edge case"

    @pytest.mark.asyncio
    async def test_upload_spec_names_uploader(self, settings, broker):
        client = ConsumerClient(settings=settings, broker=broker)

        await client.upload_spec("web-app-api", "1.0.0", {"openapi": "3.0.0"}, environment="staging")

        broker.upload_spec.assert_awaited_once_with(
            "web-app-api",
            "1.0.0",
            {"openapi": "3.0.0"},
            branch="main",
            environment="staging",
            uploaded_by="web-app",
        )

    @pytest.mark.asyncio
    async def test_download_fixtures(self, settings, broker):
        fixtures = await ConsumerClient(settings=settings, broker=broker).download_fixtures("user-service", "1.2.3")
        assert [f.id for f in fixtures] == ["fx-1"]
