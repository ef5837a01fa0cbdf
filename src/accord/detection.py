"""
Request type detection.

Classifies an inbound request into the protocol family it belongs to so the
mock can route it to the right spec handler. Every function here is pure.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from accord.models import HTTPRequest, SpecType, get_header

ASYNC_PATH_MARKERS = ("/ws", "/websocket", "/events", "/stream", "/sse")
_SDL_RE = re.compile(r"^\s*(type\s+(Query|Mutation)\b|schema\s*\{)", re.MULTILINE)


def is_websocket_upgrade(request: HTTPRequest) -> bool:
    upgrade = get_header(request.headers, "upgrade")
    connection = get_header(request.headers, "connection")
    return upgrade == "websocket" or "upgrade" in connection.lower()


def is_sse_request(request: HTTPRequest) -> bool:
    return "text/event-stream" in get_header(request.headers, "accept")


def is_asyncapi_path(path: Optional[str]) -> bool:
    if not path:
        return False
    return any(marker in path for marker in ASYNC_PATH_MARKERS)


def is_graphql_path(path: Optional[str]) -> bool:
    if not path:
        return False
    # "contains" subsumes equality and suffix, kept explicit for readability
    return path == "/graphql" or path.endswith("/graphql") or "graphql" in path


def is_graphql_body(body: object) -> bool:
    return isinstance(body, dict) and ("query" in body or "mutation" in body)


def is_graphql_content_type(request: HTTPRequest) -> bool:
    return "application/graphql" in get_header(request.headers, "content-type")


def is_grpc_request(request: HTTPRequest) -> bool:
    return get_header(request.headers, "content-type") == "application/grpc"


def is_http_request(request: HTTPRequest) -> bool:
    return bool(request.method and request.path)


def detect_request_type(request: HTTPRequest) -> Optional[SpecType]:
    """Detect the protocol family of a request, first match wins."""
    if is_websocket_upgrade(request) or is_sse_request(request) or is_asyncapi_path(request.path):
        return SpecType.ASYNCAPI

    if (
        is_graphql_path(request.path)
        or is_graphql_body(request.body)
        or is_graphql_content_type(request)
    ):
        return SpecType.GRAPHQL

    if is_grpc_request(request):
        return SpecType.GRPC

    if is_http_request(request):
        return SpecType.OPENAPI

    return None


@dataclass(frozen=True)
class RequestDetector:
    """
    Request detector with caller-supplied rules checked before the defaults.

    Path rules are exact matches; content-type rules are substring matches.
    """

    graphql_paths: Sequence[str] = field(default_factory=tuple)
    asyncapi_paths: Sequence[str] = field(default_factory=tuple)
    grpc_content_types: Sequence[str] = field(default_factory=tuple)

    def detect(self, request: HTTPRequest) -> Optional[SpecType]:
        if request.path in self.graphql_paths:
            return SpecType.GRAPHQL

        if request.path in self.asyncapi_paths:
            return SpecType.ASYNCAPI

        content_type = get_header(request.headers, "content-type")
        if any(rule in content_type for rule in self.grpc_content_types):
            return SpecType.GRPC

        return detect_request_type(request)

    __call__ = detect


default_request_detector = RequestDetector()


def detect_spec_type(document: Any, default: SpecType = SpecType.OPENAPI) -> SpecType:
    """Infer the spec type of an API description document."""
    if isinstance(document, str):
        if _SDL_RE.search(document):
            return SpecType.GRAPHQL
        return default

    if isinstance(document, dict):
        if "openapi" in document or "swagger" in document:
            return SpecType.OPENAPI
        if "asyncapi" in document:
            return SpecType.ASYNCAPI
        if isinstance(document.get("schema"), str):
            return SpecType.GRAPHQL

    return default
