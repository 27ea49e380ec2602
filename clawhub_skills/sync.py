"""Catalog cache refresh, disk snapshot, and periodic sync scheduling."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from clawhub_skills.cache import FORCE_REFRESH, CacheEntry, CachePolicy, Clock, FreshnessCache, SingleFlight
from clawhub_skills.exceptions import RemoteError
from clawhub_skills.hub_client import RemoteCatalogClient
from clawhub_skills.logging import get_logger
from clawhub_skills.models import CatalogEntry

log = get_logger(__name__)

SNAPSHOT_FILENAME = "catalog.json"
_MAX_CATEGORIES = 20

Sleep = Callable[[float], Awaitable[Any]]


@dataclass
class SyncResult:
    added: int
    updated: int


@dataclass
class CatalogStats:
    total: int
    installed: int
    cached_at: float | None
    categories: list[str]


class CatalogSync:
    """Keeps the full registry listing in a freshness cache.

    A refresh walks every page before replacing the cached list in one
    assignment, so readers see either the previous listing or the new one.
    Failed refreshes keep serving whatever was cached before.
    """

    def __init__(
        self,
        client: RemoteCatalogClient,
        snapshot_path: Path | str,
        ttl: float = 60 * 60,
        clock: Clock | None = None,
    ):
        self.client = client
        self.snapshot_path = Path(snapshot_path)
        self.cache: FreshnessCache[list[CatalogEntry]] = FreshnessCache(ttl, clock)
        self._inflight = SingleFlight()

    @property
    def entries(self) -> list[CatalogEntry]:
        data, _ = self.cache.read()
        return list(data or [])

    async def get_catalog(self, policy: CachePolicy | None = None) -> list[CatalogEntry]:
        cached, hit = self.cache.lookup(policy=policy)
        if hit:
            return list(cached)
        if policy is not None and policy.cache_only:
            return []

        try:
            return list(await self._inflight.run("catalog", self._refresh))
        except RemoteError as e:
            stale = self.entries
            log.error("Catalog fetch failed", error=str(e), serving_stale=len(stale))
            return stale

    async def _refresh(self) -> list[CatalogEntry]:
        entries = await self.client.fetch_all_catalog()
        self.cache.write(entries)
        self.save_snapshot()
        log.info("Catalog refreshed", count=len(entries))
        return entries

    async def sync_now(self) -> SyncResult:
        """Force a refresh and report growth and the new total."""
        old_count = len(self.entries)
        await self.get_catalog(FORCE_REFRESH)
        new_count = len(self.entries)
        return SyncResult(added=max(0, new_count - old_count), updated=new_count)

    def save_snapshot(self) -> bool:
        entry = self.cache.entry()
        if entry is None:
            return False
        payload = {
            "data": [item.to_dict() for item in entry.data],
            "cachedAt": entry.cached_at,
        }
        try:
            self.snapshot_path.parent.mkdir(parents=True, exist_ok=True)
            self.snapshot_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError as e:
            log.warning("Could not persist catalog snapshot", path=str(self.snapshot_path), error=str(e))
            return False
        return True

    def warm_start_from_disk(self) -> bool:
        """Seed the cache from the persisted snapshot, keeping its original age."""
        if not self.snapshot_path.exists():
            return False
        try:
            payload = json.loads(self.snapshot_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            log.warning("Ignoring unreadable catalog snapshot", path=str(self.snapshot_path), error=str(e))
            return False
        if not isinstance(payload, dict):
            return False
        data = payload.get("data")
        cached_at = payload.get("cachedAt")
        if not isinstance(data, list) or not isinstance(cached_at, (int, float)) or not cached_at:
            return False

        entries = [CatalogEntry.from_dict(item) for item in data if isinstance(item, dict)]
        self.cache.restore(CacheEntry(data=entries, cached_at=float(cached_at)))
        log.debug("Loaded catalog snapshot", count=len(entries))
        return True

    def stats(self, installed: int = 0) -> CatalogStats:
        categories: list[str] = []
        for entry in self.entries:
            for tag in entry.tags:
                if tag != "latest" and tag not in categories:
                    categories.append(tag)
        cache_entry = self.cache.entry()
        return CatalogStats(
            total=len(self.entries),
            installed=installed,
            cached_at=cache_entry.cached_at if cache_entry else None,
            categories=categories[:_MAX_CATEGORIES],
        )

    async def get_catalog_low_res(self, policy: CachePolicy | None = None) -> list[dict[str, str]]:
        catalog = await self.get_catalog(policy)
        return [{"slug": item.slug, "name": item.display_name} for item in catalog]

    async def get_catalog_med_res(self, policy: CachePolicy | None = None) -> list[dict[str, str]]:
        catalog = await self.get_catalog(policy)
        return [
            {
                "slug": item.slug,
                "name": item.display_name,
                "summary": item.summary or "No description",
            }
            for item in catalog
        ]

    def clear(self) -> None:
        self.cache.clear()


class PeriodicSync:
    """Run a job once after a startup delay, then every ``interval`` seconds.

    ``stop()`` cancels the pending wait (startup or recurring). A job that is
    already running is left to finish; ``wait_idle()`` awaits it.
    """

    def __init__(
        self,
        job: Callable[[], Awaitable[Any]],
        interval: float = 60 * 60,
        startup_delay: float = 5.0,
        sleep: Sleep | None = None,
        name: str = "catalog-sync",
    ):
        self._job = job
        self.interval = float(interval)
        self.startup_delay = float(startup_delay)
        self.name = name
        self._sleep = sleep or asyncio.sleep
        self._task: asyncio.Task[None] | None = None
        self._runs: set[asyncio.Task[None]] = set()
        self.run_count = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> PeriodicSync:
        if not self.running:
            self._task = asyncio.create_task(self._loop())
        return self

    async def _loop(self) -> None:
        await self._sleep(self.startup_delay)
        while True:
            self._launch()
            await self._sleep(self.interval)

    def _launch(self) -> None:
        run = asyncio.create_task(self._run_job())
        self._runs.add(run)
        run.add_done_callback(self._runs.discard)

    async def _run_job(self) -> None:
        self.run_count += 1
        try:
            await self._job()
        except Exception as e:
            log.error("Periodic job failed", job=self.name, error=str(e))

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def wait_idle(self) -> None:
        if self._runs:
            await asyncio.gather(*list(self._runs), return_exceptions=True)
