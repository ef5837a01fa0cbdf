"""Tests for the interaction recorder."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from accord.clients.broker import UploadResult
from accord.core.errors import BrokerError
from accord.models import HTTPRequest, HTTPResponse, SpecType
from accord.recording.recorder import InteractionRecorder


@pytest.fixture
def broker():
    mock = MagicMock()
    mock.upload_interactions = AsyncMock(return_value=UploadResult(created=1, duplicates=0))
    return mock


def make_recorder(broker, **kwargs):
    return InteractionRecorder(
        broker,
        service="user-service",
        consumer="web-app",
        consumer_version="1.0.0",
        provider_version="1.2.3",
        environment="test",
        consumer_git_sha="abc123",
        **kwargs,
    )


def exchange(user_id="1"):
    return (
        HTTPRequest(method="GET", path=f"/users/{user_id}"),
        HTTPResponse(status=200, body={"id": user_id}),
    )


class TestRecord:
    @pytest.mark.asyncio
    async def test_interaction_fields(self, broker):
        recorder = make_recorder(broker)
        request, response = exchange()

        interaction = await recorder.record(
            "getUser",
            request,
            response,
            duration=1.5,
            spec_type=SpecType.OPENAPI,
            match_context={"source": "fixture", "fixtureId": "fx-1"},
        )

        assert interaction.id.startswith("int_")
        assert interaction.service == "user-service"
        assert interaction.consumer_git_sha == "abc123"
        assert interaction.client_info.commit == "abc123"
        assert interaction.match_context == {"source": "fixture", "fixtureId": "fx-1"}
        assert recorder.pending_count == 1

    @pytest.mark.asyncio
    async def test_duplicates_dropped(self, broker):
        recorder = make_recorder(broker)

        first = await recorder.record("getUser", *exchange())
        second = await recorder.record("getUser", *exchange())
        other = await recorder.record("getUser", *exchange("2"))

        assert first is not None
        assert second is None
        assert other is not None
        assert recorder.pending_count == 2

    @pytest.mark.asyncio
    async def test_concurrent_duplicates_recorded_once(self, broker):
        recorder = make_recorder(broker)

        results = await asyncio.gather(*(recorder.record("getUser", *exchange()) for _ in range(10)))

        assert sum(r is not None for r in results) == 1
        assert recorder.pending_count == 1

    @pytest.mark.asyncio
    async def test_auto_flush_at_threshold(self, broker):
        recorder = make_recorder(broker, auto_flush=True, flush_threshold=2)

        await recorder.record("getUser", *exchange("1"))
        broker.upload_interactions.assert_not_awaited()
        await recorder.record("getUser", *exchange("2"))

        broker.upload_interactions.assert_awaited_once()
        assert len(broker.upload_interactions.await_args.args[0]) == 2
        assert recorder.pending_count == 0

    @pytest.mark.asyncio
    async def test_no_auto_flush_by_default(self, broker):
        recorder = make_recorder(broker, flush_threshold=1)
        await recorder.record("getUser", *exchange())
        broker.upload_interactions.assert_not_awaited()


class TestFlush:
    @pytest.mark.asyncio
    async def test_empty_flush_skips_upload(self, broker):
        outcome = await make_recorder(broker).flush()

        assert outcome.attempted == 0
        assert outcome.ok
        broker.upload_interactions.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_successful_flush(self, broker):
        broker.upload_interactions.return_value = UploadResult(created=1, duplicates=1)
        recorder = make_recorder(broker)
        await recorder.record("getUser", *exchange("1"))
        await recorder.record("getUser", *exchange("2"))

        outcome = await recorder.flush()

        assert outcome.attempted == 2
        assert outcome.uploaded
        assert outcome.recorded == 1
        assert outcome.duplicates == 1

    @pytest.mark.asyncio
    async def test_failed_flush_clears_buffer(self, broker):
        broker.upload_interactions.side_effect = BrokerError("broker down")
        recorder = make_recorder(broker)
        await recorder.record("getUser", *exchange())

        outcome = await recorder.flush()

        assert not outcome.ok
        assert outcome.error == "broker down"
        assert not outcome.uploaded
        assert recorder.pending_count == 0

    @pytest.mark.asyncio
    async def test_flush_resets_dedup(self, broker):
        recorder = make_recorder(broker)
        await recorder.record("getUser", *exchange())
        await recorder.flush()

        assert await recorder.record("getUser", *exchange()) is not None
