"""
Types shared by the mock spec handlers and the engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional

from accord.models import HTTPResponse, SpecType


class ResponseSource(Enum):
    """Where a mock response came from."""

    FIXTURE = "fixture"
    EXAMPLE = "example"
    SYNTHESIZED = "synthesized"
    ACKNOWLEDGED = "acknowledged"
    NOT_FOUND = "not_found"
    NOT_IMPLEMENTED = "not_implemented"
    INVALID_REQUEST = "invalid_request"


@dataclass(frozen=True)
class Operation:
    """
    One addressable operation of a spec.

    REST operations carry ``method``/``path``; GraphQL operations carry the
    root ``kind`` (query, mutation, subscription) and ``field_name``.
    """

    id: str
    spec_type: SpecType
    method: Optional[str] = None
    path: Optional[str] = None
    kind: str = "rest"
    field_name: Optional[str] = None
    description: Optional[str] = None
    deprecated: bool = False
    definition: Any = field(default=None, compare=False, hash=False, repr=False)


@dataclass
class MockResult:
    """The response the engine produced plus how it was produced."""

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None
    source: ResponseSource = ResponseSource.SYNTHESIZED
    operation: Optional[str] = None
    fixture_id: Optional[str] = None
    request_violations: List[str] = field(default_factory=list)
    response_violations: List[str] = field(default_factory=list)
    duration: float = 0.0

    @property
    def is_valid_request(self) -> bool:
        return not self.request_violations

    def to_response(self) -> HTTPResponse:
        return HTTPResponse(status=self.status, headers=dict(self.headers), body=self.body)
