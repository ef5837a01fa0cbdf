"""
Wire models shared by the consumer and provider sides.

The broker speaks camelCase JSON; every model converts with ``from_dict``
and ``to_dict`` so the rest of the code works with snake_case dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class SpecType(str, Enum):
    """Protocol family an API description (and a request) belongs to."""

    OPENAPI = "openapi"
    GRAPHQL = "graphql"
    ASYNCAPI = "asyncapi"
    GRPC = "grpc"
    SOAP = "soap"


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp as sent by the broker."""
    if value is None or isinstance(value, datetime):
        return value
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat().replace("+00:00", "Z")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_header(headers: Optional[dict[str, Any]], name: str) -> str:
    """Case-insensitive header lookup returning an empty string when absent."""
    if not headers:
        return ""
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return "" if value is None else str(value)
    return ""


@dataclass
class HTTPRequest:
    """A request as recorded by the mock and replayed by the provider."""

    method: str
    path: str
    headers: dict[str, str] = field(default_factory=dict)
    query: dict[str, Any] = field(default_factory=dict)
    body: Any = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HTTPRequest:
        return cls(
            method=str(data.get("method") or "GET").upper(),
            path=data.get("path") or "/",
            headers=dict(data.get("headers") or {}),
            query=dict(data.get("query") or {}),
            body=data.get("body"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "method": self.method,
            "path": self.path,
            "headers": self.headers,
            "query": self.query,
            "body": self.body,
        }


@dataclass
class HTTPResponse:
    """A response as served by the mock or returned by the live provider."""

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HTTPResponse:
        return cls(
            status=int(data.get("status", 200)),
            headers=dict(data.get("headers") or {}),
            body=data.get("body"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status, "headers": self.headers, "body": self.body}


@dataclass
class ClientInfo:
    """Identifies the library that recorded an interaction."""

    library: str = "accord"
    version: str = "0.1.0"
    build_id: Optional[str] = None
    commit: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "library": self.library,
            "version": self.version,
            "buildId": self.build_id,
            "commit": self.commit,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ClientInfo:
        return cls(
            library=data.get("library", "accord"),
            version=data.get("version", "0.1.0"),
            build_id=data.get("buildId"),
            commit=data.get("commit"),
        )


@dataclass
class ClientInteraction:
    """
    One observed request/response pair plus the identity that produced it.

    Immutable once recorded; it lives in the recorder buffer until flushed.
    """

    id: str
    service: str
    consumer: str
    consumer_version: str
    provider_version: str
    environment: str
    operation: str
    request: HTTPRequest
    response: HTTPResponse
    timestamp: datetime = field(default_factory=utcnow)
    duration: float = 0.0
    client_info: ClientInfo = field(default_factory=ClientInfo)
    consumer_git_sha: Optional[str] = None
    spec_type: Optional[SpecType] = None
    match_context: Optional[dict[str, Any]] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ClientInteraction:
        spec_type = data.get("specType")
        return cls(
            id=str(data.get("id", "")),
            service=data.get("service") or data.get("provider") or "",
            consumer=data.get("consumer", ""),
            consumer_version=data.get("consumerVersion", ""),
            provider_version=data.get("providerVersion", ""),
            environment=data.get("environment", ""),
            operation=data.get("operation", "unknown"),
            request=HTTPRequest.from_dict(data.get("request") or {}),
            response=HTTPResponse.from_dict(data.get("response") or {}),
            timestamp=parse_timestamp(data.get("timestamp")) or utcnow(),
            duration=float(data.get("duration") or 0),
            client_info=ClientInfo.from_dict(data.get("clientInfo") or {}),
            consumer_git_sha=data.get("consumerGitSha"),
            spec_type=SpecType(spec_type) if spec_type else None,
            match_context=data.get("matchContext"),
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "service": self.service,
            "consumer": self.consumer,
            "consumerVersion": self.consumer_version,
            "providerVersion": self.provider_version,
            "environment": self.environment,
            "operation": self.operation,
            "request": self.request.to_dict(),
            "response": self.response.to_dict(),
            "timestamp": format_timestamp(self.timestamp),
            "duration": self.duration,
            "clientInfo": self.client_info.to_dict(),
        }
        if self.consumer_git_sha:
            payload["consumerGitSha"] = self.consumer_git_sha
        if self.spec_type:
            payload["specType"] = self.spec_type.value
        if self.match_context:
            payload["matchContext"] = self.match_context
        return payload
