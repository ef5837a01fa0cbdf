"""
OpenAPI 3 / Swagger 2 support for the mock engine.

Extracts operations from ``paths``, matches requests against path
templates, validates request parameters and bodies, and derives responses
from examples or schemas when no fixture applies.
"""

from __future__ import annotations

import re
from typing import Any, Iterable, Optional
from urllib.parse import unquote, urlparse

import structlog

from accord.mock.operations import Operation, ResponseSource
from accord.mock.schema import (
    MISSING,
    dereference,
    media_example,
    resolve_ref,
    synthesize,
    validate_instance,
)
from accord.models import HTTPRequest, SpecType, get_header

logger = structlog.get_logger()

HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")
JSON_CONTENT_TYPE = "application/json"

_PARAM_RE = re.compile(r"\{([^}]+)\}")
_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)
_NUMERIC_RE = re.compile(r"^\d+$")
_LONG_ID_RE = re.compile(r"^[a-zA-Z0-9_-]{20,}$")


def is_openapi_document(document: Any) -> bool:
    return isinstance(document, dict) and ("openapi" in document or "swagger" in document)


def generate_operation_id(method: str, path: str) -> str:
    """Id for operations that declare no ``operationId``: ``GET./users/{id}``."""
    return f"{method.upper()}.{path}"


def _deref(node: Any, document: Any) -> Any:
    if isinstance(node, dict) and "$ref" in node:
        try:
            return resolve_ref(document, node["$ref"])
        except KeyError:
            logger.warning("openapi_ref_unresolved", ref=node["$ref"])
            return {}
    return node


def _merge_parameters(shared: Iterable[Any], own: Iterable[Any], document: Any) -> list[dict[str, Any]]:
    merged: dict[tuple[str, str], dict[str, Any]] = {}
    for param in [*shared, *own]:
        param = _deref(param, document)
        if isinstance(param, dict) and param.get("name"):
            merged[(param["name"], param.get("in", "query"))] = param
    return list(merged.values())


def extract_operations(document: dict[str, Any]) -> list[Operation]:
    """All operations in the document, in declaration order."""
    operations: list[Operation] = []

    for path, path_item in (document.get("paths") or {}).items():
        path_item = _deref(path_item, document)
        if not isinstance(path_item, dict):
            continue

        shared = path_item.get("parameters") or []
        for method, definition in path_item.items():
            if method.lower() not in HTTP_METHODS or not isinstance(definition, dict):
                continue

            # "iid" is set by some spec tooling in place of operationId
            operation_id = (
                definition.get("iid")
                or definition.get("operationId")
                or generate_operation_id(method, path)
            )
            resolved = dict(definition)
            resolved["parameters"] = _merge_parameters(shared, definition.get("parameters") or [], document)
            # YAML loads unquoted status codes as ints
            resolved["responses"] = {str(key): value for key, value in (definition.get("responses") or {}).items()}

            operations.append(
                Operation(
                    id=operation_id,
                    spec_type=SpecType.OPENAPI,
                    method=method.upper(),
                    path=path,
                    description=definition.get("summary") or definition.get("description"),
                    deprecated=bool(definition.get("deprecated", False)),
                    definition=resolved,
                )
            )

    return operations


def base_paths(document: dict[str, Any]) -> list[str]:
    """Path prefixes declared by ``servers`` (OpenAPI 3) or ``basePath`` (Swagger 2)."""
    prefixes = []
    for server in document.get("servers") or []:
        url = server.get("url") if isinstance(server, dict) else None
        if url:
            prefixes.append(urlparse(url).path)
    if document.get("basePath"):
        prefixes.append(document["basePath"])

    return [p.rstrip("/") for p in prefixes if p and p.rstrip("/")]


def _template_regex(template: str) -> tuple[re.Pattern[str], list[str]]:
    names: list[str] = []
    pattern = ""
    position = 0
    for match in _PARAM_RE.finditer(template):
        pattern += re.escape(template[position : match.start()]) + "([^/]+)"
        names.append(match.group(1))
        position = match.end()
    pattern += re.escape(template[position:])
    return re.compile(f"^{pattern}$"), names


def match_path(template: str, path: str) -> Optional[dict[str, str]]:
    """Match a concrete path against a ``{param}`` template; returns the params."""
    if template == path:
        return {}

    regex, names = _template_regex(template.rstrip("/") or "/")
    match = regex.match(path.rstrip("/") or "/")
    if not match:
        return None
    return {name: unquote(value) for name, value in zip(names, match.groups())}


def _candidate_paths(path: str, prefixes: Iterable[str]) -> list[str]:
    candidates = [path]
    for prefix in prefixes:
        if path == prefix or path.startswith(prefix + "/"):
            candidates.append(path[len(prefix) :] or "/")
    return candidates


def match_operation(
    operations: Iterable[Operation],
    method: str,
    path: str,
    prefixes: Iterable[str] = (),
) -> Optional[tuple[Operation, dict[str, str]]]:
    """
    Resolve the operation for a request.

    Exact path+method matches win; otherwise the templated match with the
    fewest parameters.
    """
    method = method.upper()
    rest_ops = [op for op in operations if op.method == method and op.path]

    for candidate in _candidate_paths(path, prefixes):
        for op in rest_ops:
            if op.path == candidate:
                return op, {}

        best: Optional[tuple[Operation, dict[str, str]]] = None
        for op in rest_ops:
            params = match_path(op.path or "", candidate)
            if params is None:
                continue
            if best is None or len(params) < len(best[1]):
                best = (op, params)
        if best is not None:
            return best

    return None


def _coerce(value: Any, schema: dict[str, Any]) -> Any:
    """Coerce a raw path/query/header string to the parameter's declared type."""
    if not isinstance(value, str):
        return value

    declared = schema.get("type")
    try:
        if declared == "integer":
            return int(value)
        if declared == "number":
            return float(value)
    except ValueError:
        return value
    if declared == "boolean" and value.lower() in ("true", "false"):
        return value.lower() == "true"
    if declared == "array":
        return value.split(",")
    return value


def _request_body(definition: dict[str, Any], document: Any) -> Optional[dict[str, Any]]:
    body = _deref(definition.get("requestBody"), document)
    if isinstance(body, dict):
        return body

    # Swagger 2 carries the body as an "in: body" parameter
    for param in definition.get("parameters") or []:
        if param.get("in") == "body":
            return {
                "required": bool(param.get("required", False)),
                "content": {JSON_CONTENT_TYPE: {"schema": param.get("schema") or {}}},
            }
    return None


def _pick_media(content: dict[str, Any], content_type: str = "") -> tuple[Optional[dict[str, Any]], str]:
    if not content:
        return None, ""

    base_type = content_type.split(";", 1)[0].strip().lower()
    if base_type and base_type in content:
        return content[base_type], base_type
    if JSON_CONTENT_TYPE in content:
        return content[JSON_CONTENT_TYPE], JSON_CONTENT_TYPE
    for media_type, media in content.items():
        if "json" in media_type:
            return media, media_type
    media_type = next(iter(content))
    return content[media_type], media_type


def validate_request(
    operation: Operation,
    request: HTTPRequest,
    path_params: dict[str, str],
    document: Any,
) -> list[str]:
    """Check required parameters and the body against the operation's schemas."""
    definition = operation.definition or {}
    violations: list[str] = []

    if operation.method and request.method.upper() != operation.method:
        violations.append(f"Method {request.method} not allowed for {operation.id}")

    for param in definition.get("parameters") or []:
        location = param.get("in", "query")
        name = param["name"]
        if location in ("body", "formData", "cookie"):
            continue

        if location == "path":
            value = path_params.get(name)
        elif location == "query":
            value = request.query.get(name)
        else:
            value = get_header(request.headers, name) or None

        required = location == "path" or bool(param.get("required", False))
        if value is None:
            if required:
                violations.append(f"Missing required {location} parameter: {name}")
            continue

        schema = param.get("schema") or {k: v for k, v in param.items() if k in ("type", "format", "enum", "items")}
        schema = dereference(schema, document)
        if schema:
            violations.extend(
                validate_instance(_coerce(value, schema), schema, document, location=f"{location}.{name}")
            )

    body_spec = _request_body(definition, document)
    if body_spec is not None:
        if request.body is None or request.body == "":
            if body_spec.get("required"):
                violations.append("Missing required request body")
        else:
            media, _ = _pick_media(body_spec.get("content") or {}, get_header(request.headers, "content-type"))
            if media and media.get("schema"):
                violations.extend(validate_instance(request.body, media["schema"], document, location="body"))

    return violations


def _response_entry(definition: dict[str, Any], status: int, document: Any) -> Optional[dict[str, Any]]:
    responses = definition.get("responses") or {}
    for key in (str(status), f"{status // 100}XX", f"{status // 100}xx", "default"):
        if key in responses:
            return _deref(responses[key], document)
    return None


def _response_content(response: dict[str, Any]) -> dict[str, Any]:
    if "content" in response:
        return response.get("content") or {}

    # Swagger 2: schema and examples sit on the response itself
    if "schema" in response or "examples" in response:
        media: dict[str, Any] = {}
        if "schema" in response:
            media["schema"] = response["schema"]
        examples = response.get("examples") or {}
        if JSON_CONTENT_TYPE in examples:
            media["example"] = examples[JSON_CONTENT_TYPE]
        return {JSON_CONTENT_TYPE: media}
    return {}


def response_schema(operation: Operation, status: int, document: Any) -> Optional[dict[str, Any]]:
    """Schema declared for a response status, if any."""
    response = _response_entry(operation.definition or {}, status, document)
    if not isinstance(response, dict):
        return None
    media, _ = _pick_media(_response_content(response))
    if not media:
        return None
    return media.get("schema")


def _success_statuses(responses: dict[str, Any]) -> list[tuple[int, str]]:
    explicit = sorted(int(key) for key in map(str, responses) if key.isdigit() and 200 <= int(key) < 300)
    ordered = [(code, str(code)) for code in explicit]
    for key in ("2XX", "2xx"):
        if key in responses:
            ordered.append((200, key))
    if "default" in responses:
        ordered.append((200, "default"))
    return ordered


def spec_response(
    operation: Operation, document: Any
) -> Optional[tuple[int, dict[str, str], Any, ResponseSource]]:
    """
    Derive a success response from the spec: an explicit example when one is
    declared, otherwise a value synthesized from the schema.
    """
    responses = (operation.definition or {}).get("responses") or {}

    for status, key in _success_statuses(responses):
        response = _deref(responses[key], document)
        if not isinstance(response, dict):
            continue

        content = _response_content(response)
        if not content:
            # Declared without a body (e.g. 204)
            return status, {}, None, ResponseSource.EXAMPLE

        media, media_type = _pick_media(content)
        headers = {"content-type": media_type}

        example = media_example(media, document)
        if example is not MISSING:
            return status, headers, example, ResponseSource.EXAMPLE

        synthesized = synthesize((media or {}).get("schema"), document)
        if synthesized is not MISSING:
            return status, headers, synthesized, ResponseSource.SYNTHESIZED

    return None


def extract_operation_from_path(method: str, path: str) -> str:
    """
    Derive an operation name from a concrete request.

    ``GET /orders/550e8400-...`` becomes ``getOrder``; identifier-like
    segments (template params, UUIDs, numbers, long ids) are dropped.
    """
    segments = [s for s in path.rstrip("/").split("/") if s]
    resources = [
        s
        for s in segments
        if not (s.startswith("{") and s.endswith("}"))
        and not _UUID_RE.match(s)
        and not _NUMERIC_RE.match(s)
        and not _LONG_ID_RE.match(s)
    ]

    prefix = method.lower()
    clean = "".join(resources)
    if not clean:
        return prefix

    if clean.endswith("s") and len(clean) > 1:
        clean = clean[:-1]
    return f"{prefix}{clean[0].upper()}{clean[1:]}"
