"""
In-process cache for fetched specs.

One instance is created by the caller (usually per process) and handed to
every BrokerClient that should share it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

import structlog
from cachetools import TTLCache  # type: ignore[import-untyped]

logger = structlog.get_logger()


@dataclass
class SpecCache:
    """TTL cache of fetched specs keyed by service and version coordinates."""

    maxsize: int = 128
    ttl: int = 300
    _cache: TTLCache = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._cache = TTLCache(maxsize=self.maxsize, ttl=self.ttl)

    @staticmethod
    def key(service: str, provider_version: str, environment: str, branch: str) -> str:
        return f"{service}@{provider_version}:{environment}:{branch}"

    def get(self, key: str) -> Optional[Any]:
        value = self._cache.get(key)
        if value is not None:
            logger.debug("spec_cache_hit", key=key)
        return value

    def set(self, key: str, value: Any) -> None:
        self._cache[key] = value

    def delete(self, key: str) -> None:
        self._cache.pop(key, None)

    def clear(self) -> None:
        self._cache.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._cache

    def __len__(self) -> int:
        return len(self._cache)
