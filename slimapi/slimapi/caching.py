"""Result caching primitives.

* ``CacheProvider``: the capability the engine needs from a cache.
* ``MemoryCacheProvider``: an in-process TTL cache.
* ``cache_key``: canonical, order-independent, per-method cache keys.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Mapping, Protocol, runtime_checkable

from slimapi.codec import to_document

log = logging.getLogger(__name__)


@runtime_checkable
class CacheProvider(Protocol):
    """What the engine needs from a cache.

    Consistency is the provider's business: the engine never assumes that
    a ``get`` followed by ``add`` is atomic.
    """

    def get(self, key: str) -> Any:
        """Return the cached value, or ``None`` when absent or expired."""
        ...

    def set(self, key: str, value: Any, expiration: timedelta) -> None:
        """Store *value*, replacing any existing entry."""
        ...

    def add(self, key: str, value: Any, expiration: timedelta) -> bool:
        """Store *value* only if *key* is absent.  Returns True if stored."""
        ...


@dataclass(slots=True, frozen=True)
class CachePolicy:
    """Caching settings of one registered method.

    ``enabled`` turns on automatic caching.  A provider and an expiration
    without ``enabled`` still give the method body manual cache access
    through its invocation context.
    """

    enabled: bool = False
    expiration: timedelta = timedelta(0)
    provider: CacheProvider | None = None
    namespace: str = ""


class MemoryCacheProvider:
    """Thread-safe in-process cache with per-entry expiration.

    Expired entries are dropped when read, and swept from the whole cache
    every *purge_every* writes.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        purge_every: int = 256,
    ) -> None:
        if purge_every < 1:
            raise ValueError("purge_every must be at least 1")
        self._clock = clock
        self._items: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()
        self._purge_every = purge_every
        self._writes = 0

    def _purge(self, now: float) -> int:
        expired = [key for key, (expires, _) in self._items.items() if expires <= now]
        for key in expired:
            del self._items[key]
        return len(expired)

    def _written(self, now: float) -> None:
        self._writes += 1
        if self._writes >= self._purge_every:
            self._writes = 0
            removed = self._purge(now)
            if removed:
                log.debug("purged %d expired cache entries", removed)

    def purge(self) -> int:
        """Drop every expired entry now and return how many were dropped."""
        with self._lock:
            return self._purge(self._clock())

    @property
    def stored(self) -> int:
        """Entries held, expired ones included."""
        with self._lock:
            return len(self._items)

    def _live(self, key: str, now: float) -> tuple[float, Any] | None:
        item = self._items.get(key)
        if item is None:
            return None
        if item[0] <= now:
            del self._items[key]
            return None
        return item

    def get(self, key: str) -> Any:
        with self._lock:
            item = self._live(key, self._clock())
            return None if item is None else item[1]

    def set(self, key: str, value: Any, expiration: timedelta) -> None:
        with self._lock:
            now = self._clock()
            self._items[key] = (now + expiration.total_seconds(), value)
            self._written(now)

    def add(self, key: str, value: Any, expiration: timedelta) -> bool:
        with self._lock:
            now = self._clock()
            if self._live(key, now) is not None:
                return False
            self._items[key] = (now + expiration.total_seconds(), value)
            self._written(now)
            return True

    def remove(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def __len__(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for expires, _ in self._items.values() if expires > now)


def _canonical(value: Any) -> Any:
    doc = to_document(value)
    if isinstance(doc, dict):
        return {str(k): _canonical(v) for k, v in doc.items()}
    if isinstance(doc, list):
        items = [_canonical(v) for v in doc]
        if isinstance(value, (set, frozenset)):
            items.sort(key=lambda v: json.dumps(v, sort_keys=True, default=repr))
        return items
    return doc


def cache_key(namespace: str, method_name: str, args: Mapping[str, Any]) -> str:
    """Derive the cache key of one call.

    Argument names are sorted so that the same call with keys supplied in a
    different order maps to the same key; the method name is part of the
    key so two methods never share entries.
    """
    encoded = json.dumps(
        {name: _canonical(value) for name, value in args.items()},
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=repr,
    )
    digest = hashlib.sha1(encoded.encode("utf-8")).hexdigest()
    return f"{namespace}:{method_name}:{digest}"
