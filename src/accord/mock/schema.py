"""
JSON Schema helpers for spec-derived mock responses.

Covers the three things the mock needs from an operation's schemas:
explicit examples, a minimal synthesized value when there is no example,
and validation of request/response bodies.
"""

from __future__ import annotations

from typing import Any, Optional

import jsonschema
import structlog

logger = structlog.get_logger()

MAX_DEPTH = 8
SAMPLE_UUID = "550e8400-e29b-41d4-a716-446655440000"

FORMAT_SAMPLES = {
    "date-time": "2024-01-01T00:00:00Z",
    "date": "2024-01-01",
    "time": "00:00:00",
    "uuid": SAMPLE_UUID,
    "email": "user@example.com",
    "uri": "https://example.com",
    "url": "https://example.com",
    "hostname": "example.com",
    "ipv4": "127.0.0.1",
    "ipv6": "::1",
    "byte": "",
    "binary": "",
    "password": "********",
}


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


def resolve_ref(document: Any, ref: str) -> Any:
    """Resolve a local JSON pointer such as ``#/components/schemas/User``."""
    if not ref.startswith("#/"):
        raise KeyError(f"Only local references are supported: {ref}")

    node = document
    for part in ref[2:].split("/"):
        part = part.replace("~1", "/").replace("~0", "~")
        if isinstance(node, dict) and part in node:
            node = node[part]
        elif isinstance(node, list) and part.isdigit() and int(part) < len(node):
            node = node[int(part)]
        else:
            raise KeyError(f"Unresolvable reference: {ref}")
    return node


def dereference(schema: Any, document: Any, depth: int = 0) -> Any:
    """
    Inline local ``$ref``s and translate OpenAPI ``nullable``.

    Recursive schemas are cut off at ``MAX_DEPTH`` with an empty schema.
    """
    if depth > MAX_DEPTH:
        return {}

    if isinstance(schema, list):
        return [dereference(item, document, depth) for item in schema]

    if not isinstance(schema, dict):
        return schema

    if "$ref" in schema:
        try:
            target = resolve_ref(document, schema["$ref"])
        except KeyError as exc:
            logger.warning("schema_ref_unresolved", ref=schema["$ref"], error=str(exc))
            return {}
        return dereference(target, document, depth + 1)

    resolved = {key: dereference(value, document, depth) for key, value in schema.items()}

    if resolved.pop("nullable", False) and "type" in resolved:
        current = resolved["type"]
        types = current if isinstance(current, list) else [current]
        resolved["type"] = [*types, "null"] if "null" not in types else types
        if "enum" in resolved and None not in resolved["enum"]:
            resolved["enum"] = [*resolved["enum"], None]

    return resolved


def media_example(media: Optional[dict[str, Any]], document: Any) -> Any:
    """
    Explicit example for a media-type object, or ``MISSING``.

    Looks at ``example``, then the first entry of ``examples``, then the
    schema's own ``example``.
    """
    if not isinstance(media, dict):
        return MISSING

    if "example" in media:
        return media["example"]

    examples = media.get("examples")
    if isinstance(examples, dict) and examples:
        first = next(iter(examples.values()))
        if isinstance(first, dict) and "$ref" in first:
            try:
                first = resolve_ref(document, first["$ref"])
            except KeyError:
                first = None
        if isinstance(first, dict) and "value" in first:
            return first["value"]

    schema = dereference(media.get("schema"), document)
    if isinstance(schema, dict) and "example" in schema:
        return schema["example"]

    return MISSING


def _merge_all_of(parts: list[Any], document: Any) -> dict[str, Any]:
    merged: dict[str, Any] = {"type": "object", "properties": {}, "required": []}
    for part in parts:
        part = dereference(part, document)
        if not isinstance(part, dict):
            continue
        merged["properties"].update(part.get("properties") or {})
        merged["required"].extend(part.get("required") or [])
        for key, value in part.items():
            if key not in ("properties", "required", "type"):
                merged.setdefault(key, value)
    return merged


def _schema_type(schema: dict[str, Any]) -> Optional[str]:
    declared = schema.get("type")
    if isinstance(declared, list):
        declared = next((t for t in declared if t != "null"), None)
    if declared:
        return declared
    if "properties" in schema:
        return "object"
    if "items" in schema:
        return "array"
    return None


def synthesize(schema: Any, document: Any = None, depth: int = 0) -> Any:
    """Build a minimal value that satisfies ``schema``, or ``MISSING``."""
    if depth > MAX_DEPTH or not isinstance(schema, dict):
        return MISSING

    schema = dereference(schema, document)
    if not isinstance(schema, dict) or not schema:
        return MISSING

    if "example" in schema:
        return schema["example"]
    if "default" in schema:
        return schema["default"]
    if schema.get("enum"):
        return schema["enum"][0]
    if "const" in schema:
        return schema["const"]

    if "allOf" in schema:
        return synthesize(_merge_all_of(schema["allOf"], document), document, depth + 1)
    for key in ("oneOf", "anyOf"):
        if schema.get(key):
            return synthesize(schema[key][0], document, depth + 1)

    schema_type = _schema_type(schema)

    if schema_type == "object":
        value: dict[str, Any] = {}
        for name, prop in (schema.get("properties") or {}).items():
            prop_value = synthesize(prop, document, depth + 1)
            if prop_value is not MISSING:
                value[name] = prop_value
        return value

    if schema_type == "array":
        item = synthesize(schema.get("items"), document, depth + 1)
        return [] if item is MISSING else [item]

    if schema_type == "string":
        fmt = schema.get("format")
        if fmt in FORMAT_SAMPLES:
            return FORMAT_SAMPLES[fmt]
        min_length = int(schema.get("minLength") or 0)
        return "string" if min_length <= 6 else "s" * min_length

    if schema_type in ("integer", "number"):
        base: Any = 0
        if isinstance(schema.get("minimum"), (int, float)):
            base = schema["minimum"]
        elif isinstance(schema.get("exclusiveMinimum"), (int, float)):
            base = schema["exclusiveMinimum"] + 1
        return int(base) if schema_type == "integer" else float(base)

    if schema_type == "boolean":
        return True

    if schema_type == "null":
        return None

    return MISSING


def validate_instance(instance: Any, schema: Any, document: Any = None, location: str = "body") -> list[str]:
    """Validate ``instance`` against an (OpenAPI) schema; returns violation messages."""
    if not isinstance(schema, dict) or not schema:
        return []

    resolved = dereference(schema, document)
    # OpenAPI 3.0 keywords that are not JSON Schema
    for key in ("discriminator", "xml", "externalDocs", "readOnly", "writeOnly", "deprecated"):
        resolved.pop(key, None)

    try:
        validator = jsonschema.Draft7Validator(resolved)
        errors = sorted(validator.iter_errors(instance), key=lambda e: [str(p) for p in e.path])
    except jsonschema.SchemaError as exc:
        logger.warning("schema_invalid", location=location, error=exc.message)
        return []

    violations = []
    for error in errors:
        error_path = ".".join(str(p) for p in error.path)
        where = f"{location}.{error_path}" if error_path else location
        violations.append(f"{where}: {error.message}")
    return violations
