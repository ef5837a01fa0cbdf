"""
Conversion of locally authored mock data into fixtures.

Local mock data is keyed by operation id, then scenario name:

    {"getUser": {"success": {"status": 200, "body": {...}},
                 "notFound": {"status": 404, "body": {...}}}}
"""

from __future__ import annotations

import re
from typing import Any, Iterable, Optional, Protocol

from accord.fixtures.models import (
    Fixture,
    FixtureCreation,
    FixtureData,
    FixtureSource,
    FixtureStatus,
)
from accord.models import SpecType

SAMPLE_ID = "550e8400-e29b-41d4-a716-446655440000"
MISSING_ID = "non-existent-id"
PREFERRED_SCENARIOS = ("success", "default")
_PARAM_RE = re.compile(r"\{[^}]+\}")
_BODY_METHODS = ("POST", "PUT", "PATCH")


class OperationLike(Protocol):
    id: str
    method: Optional[str]
    path: Optional[str]


def _request_from_spec(path: str, method: str, scenario: str, mock: dict[str, Any]) -> dict[str, Any]:
    method = method.upper()
    placeholder = MISSING_ID if scenario == "notFound" else SAMPLE_ID
    actual_path = _PARAM_RE.sub(placeholder, path)

    body = None
    if method in _BODY_METHODS:
        body = (mock.get("request") or {}).get("body")

    headers = {"content-type": "application/json"} if body is not None else {}
    return {"method": method, "path": actual_path, "headers": headers, "query": {}, "body": body}


def _request_from_name(operation_id: str, scenario: str, mock: dict[str, Any]) -> dict[str, Any]:
    lowered = operation_id.lower()
    method = "GET"
    path = f"/{lowered}"
    body = None

    if lowered.startswith("create"):
        method = "POST"
        path = f"/{lowered[6:]}s"
        body = (mock.get("request") or {}).get("body")
    elif lowered.startswith("update"):
        method = "PUT"
        path = f"/{lowered[6:]}s/{{id}}"
        body = (mock.get("request") or {}).get("body")
    elif lowered.startswith("delete"):
        method = "DELETE"
        path = f"/{lowered[6:]}s/{{id}}"
    elif lowered.startswith("get"):
        entity = lowered[3:]
        path = f"/{entity}" if entity.endswith("s") else f"/{entity}s/{{id}}"
    elif lowered.startswith("list"):
        path = f"/{lowered[4:]}s"

    placeholder = MISSING_ID if scenario == "notFound" else SAMPLE_ID
    path = path.replace("{id}", placeholder)

    headers = {"content-type": "application/json"} if method in ("POST", "PUT") else {}
    return {"method": method, "path": path, "headers": headers, "query": {}, "body": body}


def convert_mock_data_to_fixtures(
    mock_data: dict[str, dict[str, dict[str, Any]]],
    service: str,
    version: str,
    operations: Iterable[OperationLike] = (),
    spec_type: SpecType = SpecType.OPENAPI,
) -> list[Fixture]:
    """
    Turn local mock data into approved manual fixtures.

    ``success``/``default`` scenarios get priority 1, everything else 2, so
    the happy path is served when a request doesn't pin a scenario.
    """
    by_id = {op.id: op for op in operations if op.method and op.path}
    fixtures: list[Fixture] = []

    for operation_id, scenarios in mock_data.items():
        for scenario, mock in scenarios.items():
            op = by_id.get(operation_id)
            if op is not None:
                request = _request_from_spec(op.path or "/", op.method or "GET", scenario, mock)
            else:
                request = _request_from_name(operation_id, scenario, mock)

            fixtures.append(
                Fixture(
                    id=f"local_{len(fixtures) + 1}",
                    service=service,
                    service_version=version,
                    service_versions=[version],
                    spec_type=spec_type,
                    operation=operation_id,
                    status=FixtureStatus.APPROVED,
                    source=FixtureSource.MANUAL,
                    priority=1 if scenario in PREFERRED_SCENARIOS else 2,
                    data=FixtureData(
                        request=request,
                        response={
                            "status": mock.get("status", 200),
                            "headers": mock.get("headers") or {"content-type": "application/json"},
                            "body": mock.get("body"),
                        },
                    ),
                    created_from=FixtureCreation(type="manual", generated_by="local-mock-data"),
                    notes=f"Local mock data for {operation_id} - {scenario}",
                )
            )

    return fixtures
