"""Bounded TTL cache for read-only ERP query results.

One instance is owned by the ``QueryEngine`` and shared by every client it
creates. Keys are tenant-scoped, so two tenants never see each other's rows.
"""

import hashlib
import json
import logging
import re
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from erp_engine.observability.metrics import CACHE_EVENTS_TOTAL

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300.0
DEFAULT_MAX_ENTRIES = 500

_WHITESPACE = re.compile(r"\s+")


class _Miss:
    def __repr__(self) -> str:
        return "MISS"


MISS: Any = _Miss()


@dataclass
class CacheEntry:
    key: str
    value: object
    expires_at: float


@dataclass(frozen=True)
class CacheStats:
    hits: int
    misses: int
    size: int
    max_entries: int


def _normalize(value: object) -> object:
    """Canonicalize a key component: strings lower-cased and whitespace-collapsed."""
    if isinstance(value, str):
        return _WHITESPACE.sub(" ", value.strip().lower())
    if isinstance(value, dict):
        return {str(_normalize(k)): _normalize(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [_normalize(v) for v in value]
    if isinstance(value, set | frozenset):
        return sorted((_normalize(v) for v in value), key=repr)
    return value


def make_key(
    tenant_id: str,
    model: str,
    method: str,
    args: object = None,
    kwargs: object = None,
) -> str:
    """Stable hash of a query so semantically equal queries share an entry."""
    parts = _normalize([tenant_id, model, method, args or [], kwargs or {}])
    encoded = json.dumps(parts, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


class QueryCache:
    """In-memory LRU cache with per-entry expiry.

    ``clock`` defaults to ``time.monotonic`` and can be replaced in tests.
    Writes are plain overwrites: when two callers race on the same key the
    last one wins.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._hits = 0
        self._misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Any:
        """Return the cached value, or ``MISS`` when absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return self._miss()
        if entry.expires_at <= self._clock():
            del self._entries[key]
            return self._miss()
        self._entries.move_to_end(key)
        self._hits += 1
        CACHE_EVENTS_TOTAL.labels(event="hit").inc()
        logger.debug("Cache hit for %s", key[:12])
        return entry.value

    def set(self, key: str, value: object, ttl: float | None = None) -> None:
        expires_at = self._clock() + (self.ttl_seconds if ttl is None else ttl)
        self._entries[key] = CacheEntry(key=key, value=value, expires_at=expires_at)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            CACHE_EVENTS_TOTAL.labels(event="eviction").inc()
            logger.debug("Cache evicted %s", evicted[:12])

    def stats(self) -> CacheStats:
        return CacheStats(
            hits=self._hits,
            misses=self._misses,
            size=len(self._entries),
            max_entries=self.max_entries,
        )

    def _miss(self) -> Any:
        self._misses += 1
        CACHE_EVENTS_TOTAL.labels(event="miss").inc()
        return MISS
