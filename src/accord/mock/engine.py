"""
Mock response engine.

Given a spec and a set of fixtures, answers requests deterministically:
approved fixtures first, then examples or schema-synthesized values from the
spec. The engine is read-only after construction; the only side effect of
``handle`` is notifying request listeners (recording, fixture collection).
"""

from __future__ import annotations

import inspect
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Optional, Union

import structlog
from graphql import GraphQLError

from accord.core.errors import ValidationError
from accord.detection import (
    RequestDetector,
    default_request_detector,
    detect_spec_type,
    is_sse_request,
    is_websocket_upgrade,
)
from accord.fixtures.models import Fixture, FixtureStatus
from accord.fixtures.prioritizer import prioritize
from accord.mock import graphql as gql
from accord.mock import openapi
from accord.mock.operations import MockResult, Operation, ResponseSource
from accord.mock.schema import validate_instance
from accord.models import HTTPRequest, HTTPResponse, SpecType

logger = structlog.get_logger()

JSON_HEADERS = {"content-type": "application/json"}
SSE_BODY = 'data: {"message": "SSE endpoint active"}\n\n'
BODY_METHODS = ("POST", "PUT", "PATCH")


@dataclass(frozen=True)
class RequestHandledEvent:
    """Emitted after every handled request."""

    operation: Optional[str]
    request: HTTPRequest
    response: HTTPResponse
    duration: float
    spec_type: SpecType
    result: MockResult


RequestListener = Callable[[RequestHandledEvent], Union[Awaitable[None], None]]


def _not_found(request: HTTPRequest) -> MockResult:
    return MockResult(
        status=404,
        headers=dict(JSON_HEADERS),
        body={
            "error": "Not Found",
            "message": f"No handler found for {request.method} {request.path}",
        },
        source=ResponseSource.NOT_FOUND,
    )


def _fixture_response(fixture: Fixture) -> tuple[int, dict[str, str], Any]:
    response = fixture.response if isinstance(fixture.response, dict) else {"body": fixture.response}
    # Some recorders store the GraphQL body directly as the response
    body = response["body"] if "body" in response else response
    status = int(response.get("status") or 200)
    headers = dict(response.get("headers") or JSON_HEADERS)
    return status, headers, body


class MockResponseEngine:
    """Answers requests for one spec from fixtures and spec-derived defaults."""

    def __init__(
        self,
        spec: Any,
        fixtures: Iterable[Fixture] = (),
        *,
        spec_type: Optional[SpecType] = None,
        validate_request: bool = True,
        validate_response: bool = True,
        strict: bool = False,
        detector: RequestDetector = default_request_detector,
    ) -> None:
        self._spec = spec
        self._spec_type = spec_type or detect_spec_type(spec)
        self._validate_request = validate_request
        self._validate_response = validate_response
        self._strict = strict
        self._detector = detector
        self._schema = None
        self._base_paths: list[str] = []

        if self._spec_type == SpecType.GRAPHQL:
            try:
                self._schema = gql.load_schema(spec)
            except (GraphQLError, TypeError, ValueError) as exc:
                raise ValidationError(f"Invalid GraphQL schema: {exc}") from exc
            operations = gql.extract_operations(self._schema)
        elif self._spec_type == SpecType.OPENAPI:
            if not openapi.is_openapi_document(spec):
                raise ValidationError("Spec is not an OpenAPI/Swagger document")
            operations = openapi.extract_operations(spec)
            self._base_paths = openapi.base_paths(spec)
        elif self._spec_type == SpecType.ASYNCAPI:
            operations = []
        else:
            raise ValidationError(f"Unsupported spec type for mocking: {self._spec_type.value}")

        self._operations: tuple[Operation, ...] = tuple(operations)
        self._operations_by_id = {op.id: op for op in self._operations}
        self._fixtures: tuple[Fixture, ...] = tuple(
            f for f in prioritize(fixtures) if f.status is not FixtureStatus.REJECTED
        )
        self._listeners: list[RequestListener] = []

        logger.debug(
            "mock_engine_ready",
            spec_type=self._spec_type.value,
            operations=len(self._operations),
            fixtures=len(self._fixtures),
        )

    @property
    def spec(self) -> Any:
        return self._spec

    @property
    def spec_type(self) -> SpecType:
        return self._spec_type

    @property
    def fixtures(self) -> tuple[Fixture, ...]:
        return self._fixtures

    def get_operations(self) -> list[Operation]:
        return list(self._operations)

    def on_request(self, listener: RequestListener) -> Callable[[], None]:
        """Subscribe to handled requests; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def handle(self, request: HTTPRequest) -> MockResult:
        """Produce the mock response for a request and notify listeners."""
        started = time.perf_counter()
        result = self.respond(request)
        result.duration = (time.perf_counter() - started) * 1000

        event = RequestHandledEvent(
            operation=result.operation,
            request=request,
            response=result.to_response(),
            duration=result.duration,
            spec_type=self._spec_type,
            result=result,
        )
        await self._emit(event)
        return result

    def respond(self, request: HTTPRequest) -> MockResult:
        """Compute the response without notifying listeners."""
        request_type = self._detector(request)
        if request_type == SpecType.ASYNCAPI:
            acknowledged = self._acknowledge(request)
            if acknowledged is not None:
                return acknowledged

        if self._spec_type == SpecType.GRAPHQL:
            return self._respond_graphql(request)
        if self._spec_type == SpecType.OPENAPI:
            return self._respond_openapi(request)
        return _not_found(request)

    async def _emit(self, event: RequestHandledEvent) -> None:
        for listener in list(self._listeners):
            try:
                outcome = listener(event)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as exc:
                logger.warning(
                    "request_listener_failed",
                    operation=event.operation,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )

    def _acknowledge(self, request: HTTPRequest) -> Optional[MockResult]:
        # Path markers alone only count when the spec itself is event-driven
        if is_websocket_upgrade(request):
            return MockResult(
                status=101,
                headers={"upgrade": "websocket", "connection": "Upgrade"},
                source=ResponseSource.ACKNOWLEDGED,
            )
        if is_sse_request(request) or self._spec_type == SpecType.ASYNCAPI:
            return MockResult(
                status=200,
                headers={"content-type": "text/event-stream", "cache-control": "no-cache"},
                body=SSE_BODY,
                source=ResponseSource.ACKNOWLEDGED,
            )
        return None

    def _fixtures_for(self, operation: Operation) -> list[Fixture]:
        names = {operation.id}
        if operation.field_name:
            names.add(operation.field_name)
            # Query fields also answer to REST-style names: Query.user -> getUser
            if operation.kind == "query":
                names.add(f"get{operation.field_name[0].upper()}{operation.field_name[1:]}")
        return [f for f in self._fixtures if f.operation in names]

    @staticmethod
    def _rest_fixture_matches(fixture: Fixture, request: HTTPRequest) -> bool:
        recorded = fixture.request
        if not isinstance(recorded, dict):
            return False
        if str(recorded.get("method") or "").upper() != request.method.upper():
            return False
        if recorded.get("path") != request.path:
            return False
        if request.method.upper() in BODY_METHODS:
            recorded_body = recorded.get("body")
            if request.body is not None and recorded_body is not None and recorded_body != request.body:
                return False
        return True

    def _select_rest_fixture(self, operation: Operation, request: HTTPRequest) -> Optional[Fixture]:
        candidates = self._fixtures_for(operation)
        for fixture in candidates:
            if self._rest_fixture_matches(fixture, request):
                return fixture
        return candidates[0] if candidates else None

    def _respond_openapi(self, request: HTTPRequest) -> MockResult:
        matched = openapi.match_operation(self._operations, request.method, request.path, self._base_paths)
        if matched is None:
            return _not_found(request)

        operation, path_params = matched
        violations: list[str] = []
        if self._validate_request:
            violations = openapi.validate_request(operation, request, path_params, self._spec)
            if violations:
                logger.warning("mock_request_invalid", operation=operation.id, violations=violations)
                if self._strict:
                    return MockResult(
                        status=400,
                        headers=dict(JSON_HEADERS),
                        body={
                            "error": "Bad Request",
                            "message": "Request does not match the spec",
                            "operation": operation.id,
                            "violations": violations,
                        },
                        source=ResponseSource.INVALID_REQUEST,
                        operation=operation.id,
                        request_violations=violations,
                    )

        fixture = self._select_rest_fixture(operation, request)
        if fixture is not None:
            status, headers, body = _fixture_response(fixture)
            response_violations: list[str] = []
            if self._validate_response and body is not None:
                schema = openapi.response_schema(operation, status, self._spec)
                if schema:
                    response_violations = validate_instance(body, schema, self._spec, location="response.body")
                    if response_violations:
                        logger.warning(
                            "mock_fixture_response_invalid",
                            operation=operation.id,
                            fixture_id=fixture.id,
                            violations=response_violations,
                        )
            return MockResult(
                status=status,
                headers=headers,
                body=body,
                source=ResponseSource.FIXTURE,
                operation=operation.id,
                fixture_id=fixture.id,
                request_violations=violations,
                response_violations=response_violations,
            )

        derived = openapi.spec_response(operation, self._spec)
        if derived is not None:
            status, headers, body, source = derived
            return MockResult(
                status=status,
                headers=headers,
                body=body,
                source=source,
                operation=operation.id,
                request_violations=violations,
            )

        return MockResult(
            status=501,
            headers=dict(JSON_HEADERS),
            body={
                "error": "Not Implemented",
                "message": f"No fixture or example available for {operation.id}",
                "operation": operation.id,
            },
            source=ResponseSource.NOT_IMPLEMENTED,
            operation=operation.id,
            request_violations=violations,
        )

    def _respond_graphql(self, request: HTTPRequest) -> MockResult:
        try:
            parsed = gql.parse_request(request)
        except GraphQLError as exc:
            return MockResult(
                status=400,
                headers=dict(JSON_HEADERS),
                body={"errors": [{"message": exc.message}]},
                source=ResponseSource.INVALID_REQUEST,
                request_violations=[exc.message],
            )

        if parsed is None:
            return _not_found(request)

        if parsed.is_introspection:
            return MockResult(
                status=200,
                headers=dict(JSON_HEADERS),
                body=gql.synthesize_response(self._schema, parsed),
                source=ResponseSource.SYNTHESIZED,
                operation="__introspection",
            )

        resolved = gql.resolve_operation(self._operations_by_id, parsed)
        if resolved is None:
            return _not_found(request)
        operation, _ = resolved

        violations: list[str] = []
        if self._validate_request:
            violations = gql.validate_request(self._schema, parsed)
            if violations:
                logger.warning("mock_request_invalid", operation=operation.id, violations=violations)
                if self._strict:
                    return MockResult(
                        status=400,
                        headers=dict(JSON_HEADERS),
                        body={"errors": [{"message": v} for v in violations]},
                        source=ResponseSource.INVALID_REQUEST,
                        operation=operation.id,
                        request_violations=violations,
                    )

        candidates = self._fixtures_for(operation)
        fixture = next((f for f in candidates if gql.variables_match(parsed.variables, f.request)), None)
        fixture = fixture or (candidates[0] if candidates else None)
        if fixture is not None:
            status, headers, body = _fixture_response(fixture)
            return MockResult(
                status=status,
                headers=headers,
                body=body,
                source=ResponseSource.FIXTURE,
                operation=operation.id,
                fixture_id=fixture.id,
                request_violations=violations,
            )

        return MockResult(
            status=200,
            headers=dict(JSON_HEADERS),
            body=gql.synthesize_response(self._schema, parsed),
            source=ResponseSource.SYNTHESIZED,
            operation=operation.id,
            request_violations=violations,
        )
