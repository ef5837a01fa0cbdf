"""
Structural comparison of expected (recorded) and actual (replayed) responses.

The comparison is about shape, not values: status codes must be equal, every
field the consumer saw must still be there with the same JSON type, and extra
fields are always allowed. The first problem found is reported.

Types follow JavaScript ``typeof`` semantics since recordings come from
JSON: ``null`` and arrays are both "object".
"""

from __future__ import annotations

import json
from typing import Any, Optional

from accord.models import HTTPResponse
from accord.verification.models import ComparisonOutcome, ErrorDetails, MismatchType

ARRAY_MODES = ("first", "all")


def js_type(value: Any) -> str:
    """JavaScript ``typeof`` of a decoded JSON value."""
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if value is None or isinstance(value, (dict, list, tuple)):
        return "object"
    return "undefined"


def _join(path: Optional[str], key: str) -> str:
    return f"{path}.{key}" if path else key


def _index(path: Optional[str], index: int) -> str:
    return f"{path}[{index}]" if path else f"[{index}]"


def _dump(value: Any) -> str:
    return json.dumps(value, indent=2, default=str)


def validate_json_structure(
    expected: Any,
    actual: Any,
    field_path: Optional[str] = None,
    *,
    array_mode: str = "first",
) -> ComparisonOutcome:
    """
    Check that ``actual`` has at least the structure of ``expected``.

    Only the first element of a non-empty expected array is compared unless
    ``array_mode="all"``, in which case every actual element is checked
    against it.
    """
    expected_type = js_type(expected)
    actual_type = js_type(actual)

    if expected_type != actual_type:
        error = f"Type mismatch: expected {expected_type}, got {actual_type}"
        return ComparisonOutcome.fail(
            MismatchType.STRUCTURE,
            error,
            expected=expected_type,
            actual=actual_type,
            field=field_path,
        )

    if isinstance(expected, (list, tuple)):
        if not isinstance(actual, (list, tuple)):
            return ComparisonOutcome.fail(
                MismatchType.STRUCTURE,
                "Expected array but got non-array",
                expected="array",
                actual="null" if actual is None else actual_type,
                field=field_path,
            )

        if not expected:
            return ComparisonOutcome.ok()

        if not actual:
            return ComparisonOutcome.fail(
                MismatchType.STRUCTURE,
                "Expected non-empty array but got empty array",
                expected="non-empty array",
                actual="empty array",
                field=field_path,
            )

        indexes = range(len(actual)) if array_mode == "all" else range(1)
        for index in indexes:
            outcome = validate_json_structure(
                expected[0],
                actual[index],
                _index(field_path, index),
                array_mode=array_mode,
            )
            if not outcome.success:
                return outcome
        return ComparisonOutcome.ok()

    if isinstance(expected, dict):
        if not isinstance(actual, dict):
            return ComparisonOutcome.fail(
                MismatchType.STRUCTURE,
                "Expected object but got non-object",
                expected="object",
                actual="null" if actual is None else "array",
                field=field_path,
            )

        for key, expected_value in expected.items():
            current_path = _join(field_path, key)
            if key not in actual:
                return ComparisonOutcome(
                    success=False,
                    error=(
                        f"Missing required field: {key}. "
                        f"Expected: {_dump(expected)}, Actual: {_dump(actual)}"
                    ),
                    error_details=ErrorDetails(
                        type=MismatchType.STRUCTURE,
                        message=f"Missing required field: {key}",
                        expected=expected,
                        actual=actual,
                        field=current_path,
                    ),
                )

            outcome = validate_json_structure(
                expected_value,
                actual[key],
                current_path,
                array_mode=array_mode,
            )
            if not outcome.success:
                return ComparisonOutcome(
                    success=False,
                    error=f"Field validation failed for '{key}': {outcome.error}",
                    error_details=outcome.error_details,
                )

    return ComparisonOutcome.ok()


def validate_response_content(expected: Any, actual: Any) -> ComparisonOutcome:
    """Sanity checks on content beyond shape (non-empty lists, id types)."""
    if isinstance(expected, list) and isinstance(actual, list):
        if expected and not actual:
            return ComparisonOutcome.fail(
                MismatchType.CONTENT,
                "Expected non-empty array but got empty array",
                expected=expected,
                actual=actual,
            )
        return ComparisonOutcome.ok()

    if isinstance(expected, dict) and isinstance(actual, dict):
        # Ids may differ between runs (created resources), their types may not
        if expected.get("id") and actual.get("id"):
            expected_type = js_type(expected["id"])
            actual_type = js_type(actual["id"])
            if expected_type != actual_type:
                return ComparisonOutcome.fail(
                    MismatchType.CONTENT,
                    f"ID field type mismatch: expected {expected_type}, got {actual_type}",
                    expected=expected,
                    actual=actual,
                    field="id",
                )

    return ComparisonOutcome.ok()


def _has_body(body: Any) -> bool:
    return body is not None and body != ""


def validate_response(
    expected: HTTPResponse | dict[str, Any],
    actual: HTTPResponse | dict[str, Any],
    *,
    array_mode: str = "first",
) -> ComparisonOutcome:
    """
    Compare an expected response with an actual one.

    Status is checked first, then body structure, then (for 2xx/3xx) content.
    """
    if array_mode not in ARRAY_MODES:
        raise ValueError(f"array_mode must be one of {ARRAY_MODES}, got {array_mode!r}")

    if isinstance(expected, dict):
        expected = HTTPResponse.from_dict(expected)
    if isinstance(actual, dict):
        actual = HTTPResponse.from_dict(actual)

    if expected.status != actual.status:
        return ComparisonOutcome.fail(
            MismatchType.STATUS,
            f"Status code mismatch: expected {expected.status}, got {actual.status}",
            expected=expected.status,
            actual=actual.status,
        )

    if not (_has_body(expected.body) and _has_body(actual.body)):
        return ComparisonOutcome.ok()

    structure = validate_json_structure(expected.body, actual.body, array_mode=array_mode)
    if not structure.success:
        return ComparisonOutcome(
            success=False,
            error=f"Response structure mismatch: {structure.error}",
            error_details=structure.error_details,
        )

    if 200 <= actual.status < 400:
        content = validate_response_content(expected.body, actual.body)
        if not content.success:
            return content

    return ComparisonOutcome.ok()
