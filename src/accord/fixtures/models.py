"""
Models for fixtures.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from accord.models import SpecType, format_timestamp, parse_timestamp, utcnow


class FixtureStatus(Enum):
    """Approval state, set by an external review workflow."""

    APPROVED = "approved"
    PENDING = "pending"
    REJECTED = "rejected"

    @classmethod
    def parse(cls, value: Any) -> FixtureStatus:
        if isinstance(value, cls):
            return value
        if value == "draft":  # legacy broker name for pending
            return cls.PENDING
        return cls(value)


class FixtureSource(Enum):
    """Who produced the fixture."""

    CONSUMER = "consumer"
    PROVIDER = "provider"
    MANUAL = "manual"


@dataclass
class FixtureData:
    """Example request/response pair. ``response`` is required."""

    response: Any
    request: Any = None
    state: Optional[dict[str, Any]] = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"request": self.request, "response": self.response}
        if self.state is not None:
            payload["state"] = self.state
        return payload

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FixtureData:
        return cls(
            response=data.get("response"),
            request=data.get("request"),
            state=data.get("state"),
        )


@dataclass
class FixtureCreation:
    """Provenance of a fixture."""

    type: str = "manual"  # manual, test_output, generated
    generated_by: Optional[str] = None
    test_run: Optional[str] = None
    consumer: Optional[str] = None
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "type": self.type,
            "timestamp": format_timestamp(self.timestamp),
        }
        if self.generated_by:
            payload["generatedBy"] = self.generated_by
        if self.test_run:
            payload["testRun"] = self.test_run
        if self.consumer:
            payload["consumer"] = self.consumer
        return payload

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FixtureCreation:
        return cls(
            type=data.get("type", "manual"),
            generated_by=data.get("generatedBy"),
            test_run=data.get("testRun"),
            consumer=data.get("consumer"),
            timestamp=parse_timestamp(data.get("timestamp")) or utcnow(),
        )


@dataclass
class Fixture:
    """
    A recorded or authored example interaction for one operation.

    Lower ``priority`` is preferred. The content hash is derived on demand
    (see ``accord.fixtures.hashing``) and never stored.
    """

    id: str
    service: str
    service_version: str
    operation: str
    data: FixtureData
    status: FixtureStatus = FixtureStatus.PENDING
    source: FixtureSource = FixtureSource.CONSUMER
    priority: int = 1
    spec_type: SpecType = SpecType.OPENAPI
    service_versions: list[str] = field(default_factory=list)
    created_from: FixtureCreation = field(default_factory=FixtureCreation)
    created_at: datetime = field(default_factory=utcnow)
    notes: Optional[str] = None

    @property
    def request(self) -> Any:
        return self.data.request

    @property
    def response(self) -> Any:
        return self.data.response

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Fixture:
        service_version = data.get("serviceVersion", "")
        return cls(
            id=str(data.get("id", "")),
            service=data.get("service", ""),
            service_version=service_version,
            service_versions=list(data.get("serviceVersions") or [service_version]),
            operation=data.get("operation", ""),
            data=FixtureData.from_dict(data.get("data") or {}),
            status=FixtureStatus.parse(data.get("status", "pending")),
            source=FixtureSource(data.get("source", "consumer")),
            priority=int(data.get("priority", 1)),
            spec_type=SpecType(data.get("specType") or "openapi"),
            created_from=FixtureCreation.from_dict(data.get("createdFrom") or {}),
            created_at=parse_timestamp(data.get("createdAt")) or utcnow(),
            notes=data.get("notes"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "service": self.service,
            "serviceVersion": self.service_version,
            "serviceVersions": self.service_versions,
            "specType": self.spec_type.value,
            "operation": self.operation,
            "status": self.status.value,
            "source": self.source.value,
            "priority": self.priority,
            "data": self.data.to_dict(),
            "createdFrom": self.created_from.to_dict(),
            "createdAt": format_timestamp(self.created_at),
            "notes": self.notes,
        }


@dataclass
class FixtureProposal:
    """A fixture offered to the broker for review."""

    service: str
    service_version: str
    operation: str
    data: FixtureData
    source: FixtureSource = FixtureSource.CONSUMER
    spec_type: SpecType = SpecType.OPENAPI
    created_from: FixtureCreation = field(default_factory=FixtureCreation)
    priority: Optional[int] = None
    notes: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "service": self.service,
            "serviceVersion": self.service_version,
            "specType": self.spec_type.value,
            "operation": self.operation,
            "source": self.source.value,
            "data": self.data.to_dict(),
            "createdFrom": self.created_from.to_dict(),
        }
        if self.priority is not None:
            payload["priority"] = self.priority
        if self.notes:
            payload["notes"] = self.notes
        return payload
