"""Tests for provider-side replay and verification."""

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import respx
from httpx import Response

from accord.config import Settings
from accord.core.errors import BrokerError
from accord.models import ClientInteraction, HTTPRequest, HTTPResponse
from accord.verification.models import MismatchType, TaskState, VerificationTask
from accord.verification.replay import Provider, VerificationReplayEngine, replay_request

PROVIDER_URL = "http://provider.test"


def make_interaction(interaction_id, path, body, status=200, operation="getUser"):
    return ClientInteraction(
        id=interaction_id,
        service="user-service",
        consumer="web-app",
        consumer_version="1.0.0",
        provider_version="1.2.3",
        environment="test",
        operation=operation,
        request=HTTPRequest(method="GET", path=path),
        response=HTTPResponse(status=status, body=body),
    )


def make_task(*interactions):
    return VerificationTask(
        id="task-1",
        provider="user-service",
        provider_version="1.2.3",
        consumer="web-app",
        consumer_version="1.0.0",
        environment="test",
        interactions=list(interactions),
    )


@pytest.fixture
def broker():
    mock = MagicMock()
    mock.get_verification_tasks = AsyncMock(return_value=[])
    mock.submit_results = AsyncMock(return_value={})
    return mock


def make_engine(broker, **kwargs):
    return VerificationReplayEngine(
        broker,
        provider="user-service",
        provider_version="1.2.4",
        provider_git_sha="def456",
        timeout=5.0,
        **kwargs,
    )


class TestReplayRequest:
    @pytest.mark.asyncio
    async def test_request_forwarded(self):
        request = HTTPRequest(
            method="POST",
            path="/users",
            headers={"host": "mock.local", "x-trace": "t-1"},
            query={"dry_run": "true"},
            body={"name": "Ada"},
        )

        with respx.mock:
            route = respx.post(f"{PROVIDER_URL}/users").mock(
                return_value=Response(201, json={"id": "u-1", "name": "Ada"})
            )
            async with httpx.AsyncClient() as client:
                response = await replay_request(client, f"{PROVIDER_URL}/", request)

            sent = route.calls.last.request

        assert sent.url.params["dry_run"] == "true"
        assert sent.headers["x-trace"] == "t-1"
        assert sent.headers["content-type"] == "application/json"
        assert sent.headers["host"] == "provider.test"
        assert json.loads(sent.content) == {"name": "Ada"}
        assert response.status == 201
        assert response.body == {"id": "u-1", "name": "Ada"}

    @pytest.mark.asyncio
    async def test_non_json_body_kept_as_text(self):
        with respx.mock:
            respx.get(f"{PROVIDER_URL}/health").mock(
                return_value=Response(200, text="ok", headers={"content-type": "text/plain"})
            )
            async with httpx.AsyncClient() as client:
                response = await replay_request(client, PROVIDER_URL, HTTPRequest(method="GET", path="/health"))

        assert response.body == "ok"


class TestVerificationReplayEngine:
    @pytest.mark.asyncio
    async def test_task_results_submitted(self, broker):
        task = make_task(
            make_interaction("int_1", "/users/1", {"id": "1", "name": "Ada"}),
            make_interaction("int_2", "/users/2", {"id": "2", "name": "Bob"}),
        )
        broker.get_verification_tasks.return_value = [task]

        with respx.mock:
            respx.get(f"{PROVIDER_URL}/users/1").mock(
                return_value=Response(200, json={"id": "1", "name": "Ada", "email": "ada@example.com"})
            )
            respx.get(f"{PROVIDER_URL}/users/2").mock(return_value=Response(200, json={"id": "2"}))

            results = await make_engine(broker).verify(PROVIDER_URL)

        assert results.task_ids == ["task-1"]
        assert results.provider_version == "1.2.4"
        assert [r.success for r in results.results] == [True, False]
        assert results.exit_code == 1

        failure = results.failed[0]
        assert failure.interaction_id == "int_2"
        assert failure.error_details.type is MismatchType.STRUCTURE
        assert failure.error_details.field == "name"
        assert failure.actual_response.body == {"id": "2"}

        submitted_task, submitted_results = broker.submit_results.await_args.args
        assert submitted_task is task
        assert [r.interaction_id for r in submitted_results] == ["int_1", "int_2"]
        assert broker.submit_results.await_args.kwargs == {"provider_version": "1.2.4", "provider_git_sha": "def456"}
        assert task.state is TaskState.SUBMITTED

    @pytest.mark.asyncio
    async def test_environment_override(self, broker):
        await make_engine(broker, environment="staging").verify(PROVIDER_URL, environment="production")
        broker.get_verification_tasks.assert_awaited_once_with("user-service", "production")

    @pytest.mark.asyncio
    async def test_hooks_run_in_order(self, broker):
        calls = []
        task = make_task(
            make_interaction("int_1", "/users/1", None),
            make_interaction("int_2", "/orders", None, operation="listOrders"),
        )

        def record_request(request):
            calls.append(f"request {request.url.path}")
            return Response(200)

        async def user_exists():
            calls.append("state getUser")

        def cleanup():
            calls.append("cleanup")

        with respx.mock:
            respx.get(url__startswith=PROVIDER_URL).mock(side_effect=record_request)
            await make_engine(broker).run_task(task, PROVIDER_URL, {"getUser": user_exists}, cleanup)

        assert calls == [
            "state getUser",
            "request /users/1",
            "cleanup",
            "request /orders",
            "cleanup",
        ]

    @pytest.mark.asyncio
    async def test_errors_become_failed_results(self, broker):
        task = make_task(
            make_interaction("int_1", "/users/1", {"id": "1"}),
            make_interaction("int_2", "/users/2", {"id": "2"}),
        )

        def failing_state():
            raise RuntimeError("seed failed")

        with respx.mock:
            respx.get(f"{PROVIDER_URL}/users/1").mock(side_effect=httpx.ConnectError("connection refused"))
            respx.get(f"{PROVIDER_URL}/users/2").mock(return_value=Response(200, json={"id": "2"}))

            results = await make_engine(broker).run_task(task, PROVIDER_URL)
            state_results = await make_engine(broker).run_task(
                make_task(make_interaction("int_3", "/users/2", {"id": "2"})),
                PROVIDER_URL,
                {"getUser": failing_state},
            )

        assert results[0].success is False
        assert results[0].error == "connection refused"
        assert results[1].success is True
        assert state_results[0].error == "seed failed"

    @pytest.mark.asyncio
    async def test_cleanup_failure_does_not_change_result(self, broker):
        task = make_task(make_interaction("int_1", "/users/1", {"id": "1"}))

        def broken_cleanup():
            raise RuntimeError("cleanup failed")

        with respx.mock:
            respx.get(f"{PROVIDER_URL}/users/1").mock(return_value=Response(200, json={"id": "1"}))
            results = await make_engine(broker).run_task(task, PROVIDER_URL, cleanup=broken_cleanup)

        assert results[0].success

    @pytest.mark.asyncio
    async def test_status_mismatch(self, broker):
        task = make_task(make_interaction("int_1", "/users/1", {"id": "1"}))

        with respx.mock:
            respx.get(f"{PROVIDER_URL}/users/1").mock(return_value=Response(404, json={"error": "gone"}))
            results = await make_engine(broker).run_task(task, PROVIDER_URL)

        assert results[0].error == "Status code mismatch: expected 200, got 404"
        assert results[0].error_details.type is MismatchType.STATUS

    @pytest.mark.asyncio
    async def test_submit_failure_leaves_task_processing(self, broker):
        broker.submit_results.side_effect = BrokerError("broker down")
        task = make_task(make_interaction("int_1", "/users/1", None))

        with respx.mock:
            respx.get(f"{PROVIDER_URL}/users/1").mock(return_value=Response(200))
            results = await make_engine(broker).run_task(task, PROVIDER_URL)

        assert len(results) == 1
        assert task.state is TaskState.PROCESSING


class TestProvider:
    @pytest.mark.asyncio
    async def test_identity_from_settings(self, settings, broker):
        provider = Provider(settings=settings, broker=broker)

        assert provider.name == "user-service"
        assert provider.version == "1.2.3"
        assert provider.has_identity

        results = await provider.verify(PROVIDER_URL)

        assert results.results == []
        broker.get_verification_tasks.assert_awaited_once_with("user-service", "test")

    @pytest.mark.asyncio
    async def test_fallback_identity_is_noop(self, tmp_path, broker):
        settings = Settings(service_url="https://broker.example.com")
        provider = Provider(settings=settings, broker=broker, project_file=tmp_path / "pyproject.toml")

        assert not provider.has_identity
        assert provider.name == "unknown-service"
        assert await provider.get_verification_tasks() == []

        results = await provider.verify(PROVIDER_URL)

        assert results.task_ids == []
        assert results.provider_version == "0.0.0"
        broker.get_verification_tasks.assert_not_awaited()
