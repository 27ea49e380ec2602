"""Age-bounded in-memory caches with per-request freshness overrides.

A ``FreshnessCache`` holds either one global value (the catalog) or a map of
keyed values (search results, skill details). Every entry is stamped with the
time it was written; whether it may be served is decided per request by a
``CachePolicy``:

- ``force_refresh=True`` is never satisfied by the cache.
- otherwise the entry is usable while ``now - cached_at < not_older_than``,
  falling back to the cache's default TTL when ``not_older_than`` is unset.
- ``not_older_than=math.inf`` accepts any age and marks the request as
  cache-only: callers must not touch the network on a miss.

There is no eviction beyond overwrite-on-refresh.
"""

from __future__ import annotations

import asyncio
import math
import time
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

T = TypeVar("T")
Clock = Callable[[], float]


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    data: T
    cached_at: float


@dataclass(frozen=True)
class CachePolicy:
    not_older_than: float | None = None
    force_refresh: bool = False

    @property
    def cache_only(self) -> bool:
        """True when the caller accepts any age and forbids network access."""
        if self.force_refresh or self.not_older_than is None:
            return False
        return math.isinf(self.not_older_than) and self.not_older_than > 0


DEFAULT_POLICY = CachePolicy()
CACHE_ONLY = CachePolicy(not_older_than=math.inf)
FORCE_REFRESH = CachePolicy(force_refresh=True)


class FreshnessCache(Generic[T]):
    """TTL-governed cache keyed globally (``key=None``) or by string."""

    def __init__(self, default_ttl: float, clock: Clock | None = None):
        self.default_ttl = float(default_ttl)
        self._clock = clock or time.time
        self._global: CacheEntry[T] | None = None
        self._entries: dict[str, CacheEntry[T]] = {}

    def now(self) -> float:
        return self._clock()

    def entry(self, key: str | None = None) -> CacheEntry[T] | None:
        if key is None:
            return self._global
        return self._entries.get(key)

    def read(self, key: str | None = None) -> tuple[T | None, bool]:
        """Return ``(value, found)`` regardless of age."""
        entry = self.entry(key)
        if entry is None:
            return None, False
        return entry.data, True

    def write(self, value: T, key: str | None = None) -> CacheEntry[T]:
        """Replace the entry for ``key`` in a single assignment."""
        return self.restore(CacheEntry(data=value, cached_at=self.now()), key)

    def restore(self, entry: CacheEntry[T], key: str | None = None) -> CacheEntry[T]:
        """Seed an entry that keeps its original timestamp (warm start)."""
        if key is None:
            self._global = entry
        else:
            self._entries[key] = entry
        return entry

    def is_usable(self, entry: CacheEntry[T] | None, policy: CachePolicy | None = None) -> bool:
        policy = policy or DEFAULT_POLICY
        if policy.force_refresh or entry is None:
            return False
        ttl = policy.not_older_than if policy.not_older_than is not None else self.default_ttl
        return self.now() - entry.cached_at < ttl

    def lookup(self, key: str | None = None, policy: CachePolicy | None = None) -> tuple[T | None, bool]:
        """Return ``(value, True)`` only when the entry satisfies ``policy``."""
        entry = self.entry(key)
        if self.is_usable(entry, policy):
            return entry.data, True
        return None, False

    def age(self, key: str | None = None) -> float | None:
        entry = self.entry(key)
        if entry is None:
            return None
        return self.now() - entry.cached_at

    def clear(self) -> None:
        self._global = None
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries) + (1 if self._global is not None else 0)


class SingleFlight:
    """Coalesce concurrent refreshes of one key onto a shared task.

    The first caller for a key starts the task; callers arriving while it is
    running await the same task. The task is shielded so a cancelled waiter
    does not abort the fetch the others depend on.
    """

    def __init__(self) -> None:
        self._inflight: dict[str, asyncio.Task[Any]] = {}

    def in_flight(self, key: str) -> bool:
        return key in self._inflight

    async def run(self, key: str, factory: Callable[[], Coroutine[Any, Any, T]]) -> T:
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.create_task(factory())
            self._inflight[key] = task
            task.add_done_callback(lambda done, key=key: self._forget(key, done))
        return await asyncio.shield(task)

    def _forget(self, key: str, task: asyncio.Task[Any]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        # Mark the exception retrieved; each waiter re-raises its own copy.
        if not task.cancelled():
            task.exception()
