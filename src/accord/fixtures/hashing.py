"""
Deterministic content hashes for fixture and interaction deduplication.

Both the consumer (in-session sets) and the broker (duplicate proposals)
rely on these being pure functions of their inputs.
"""

from __future__ import annotations

import dataclasses
import hashlib
import json
import re
from enum import Enum
from typing import Any

_VOLATILE_PATTERNS = [
    re.compile(r"timestamp", re.IGNORECASE),
    re.compile(r"created_?at", re.IGNORECASE),
    re.compile(r"updated_?at", re.IGNORECASE),
    re.compile(r"date", re.IGNORECASE),
    re.compile(r"time", re.IGNORECASE),
    # HTTP headers that vary between test runs
    re.compile(r"^host$", re.IGNORECASE),
    re.compile(r"^user-agent$", re.IGNORECASE),
    re.compile(r"^connection$", re.IGNORECASE),
    re.compile(r"^accept-encoding$", re.IGNORECASE),
    re.compile(r"^content-length$", re.IGNORECASE),
]


def is_volatile_field(key: str) -> bool:
    """Fields excluded from hashing (timestamps, per-run headers)."""
    return any(pattern.search(key) for pattern in _VOLATILE_PATTERNS)


def normalize_for_hashing(data: Any) -> Any:
    """Canonicalize a value: sorted keys, volatile fields dropped."""
    if data is None:
        return None

    if hasattr(data, "to_dict"):
        data = data.to_dict()
    elif dataclasses.is_dataclass(data) and not isinstance(data, type):
        data = dataclasses.asdict(data)

    if isinstance(data, Enum):
        return data.value

    if isinstance(data, (list, tuple)):
        return [normalize_for_hashing(item) for item in data]

    if isinstance(data, dict):
        return {
            key: normalize_for_hashing(data[key])
            for key in sorted(data, key=str)
            if not is_volatile_field(str(key))
        }

    return data


def _digest(payload: dict[str, Any]) -> str:
    text = json.dumps(payload, separators=(",", ":"), sort_keys=True, default=str)
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def fixture_hash(operation: str, data: Any) -> str:
    """Hash of (operation, canonical request, canonical response)."""
    if hasattr(data, "to_dict"):
        data = data.to_dict()
    data = data or {}
    return _digest(
        {
            "operation": operation,
            "request": normalize_for_hashing(data.get("request")),
            "response": normalize_for_hashing(data.get("response")),
        }
    )


def interaction_hash(
    service: str,
    consumer: str,
    consumer_version: str,
    operation: str,
    request: Any,
    response: Any,
) -> str:
    """Hash of an interaction's identity and canonical request/response."""
    return _digest(
        {
            "service": service,
            "consumer": consumer,
            "consumerVersion": consumer_version,
            "operation": operation,
            "request": normalize_for_hashing(request),
            "response": normalize_for_hashing(response),
        }
    )
