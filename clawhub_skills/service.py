"""Owned runtime context wiring the registry client, caches, and skill store."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import httpx

from clawhub_skills.cache import Clock
from clawhub_skills.config import Config, get_config
from clawhub_skills.guidance import GuidanceResult, resolve_guidance
from clawhub_skills.hub_client import RemoteCatalogClient
from clawhub_skills.logging import get_logger
from clawhub_skills.registry import HubRegistry
from clawhub_skills.store import LocalSkillStore
from clawhub_skills.sync import SNAPSHOT_FILENAME, CatalogSync, PeriodicSync, Sleep, SyncResult

log = get_logger(__name__)


@dataclass
class ClawHubContext:
    """Single owned value threaded through every operation.

    Built once by ``create()``, brought up by ``initialize()`` and torn down by
    ``shutdown()``; nothing here is a process-wide singleton.
    """

    config: Config
    skills_dir: Path
    client: RemoteCatalogClient
    registry: HubRegistry
    store: LocalSkillStore
    catalog: CatalogSync
    scheduler: PeriodicSync = field(init=False)

    @classmethod
    def create(
        cls,
        config: Config | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Clock | None = None,
        sleep: Sleep | None = None,
    ) -> ClawHubContext:
        cfg = config or get_config()
        skills_dir = cfg.resolved_skills_dir()
        control_dir = cfg.control_dir()

        client = RemoteCatalogClient.from_config(cfg.hub, transport=transport)
        registry = HubRegistry.from_config(client, cfg.cache, clock=clock)
        store = LocalSkillStore(
            skills_dir,
            registry,
            max_package_bytes=cfg.hub.max_package_bytes,
            clock=clock,
        )
        catalog = CatalogSync(
            client,
            control_dir / "cache" / SNAPSHOT_FILENAME,
            ttl=cfg.cache.catalog_ttl_seconds,
            clock=clock,
        )
        ctx = cls(
            config=cfg,
            skills_dir=skills_dir,
            client=client,
            registry=registry,
            store=store,
            catalog=catalog,
        )
        ctx.scheduler = PeriodicSync(
            ctx.run_scheduled_sync,
            interval=cfg.sync.interval_seconds,
            startup_delay=cfg.sync.startup_delay_seconds,
            sleep=sleep,
        )
        return ctx

    async def initialize(self, start_sync: bool = True) -> None:
        log.info("Initializing skill service", skills_dir=str(self.skills_dir))
        self.skills_dir.mkdir(parents=True, exist_ok=True)
        self.catalog.snapshot_path.parent.mkdir(parents=True, exist_ok=True)

        if self.config.skills.auto_load:
            self.store.load_installed_skills()
        self.catalog.warm_start_from_disk()

        if start_sync and self.config.sync.enabled:
            self.scheduler.start()
        log.info(
            "Skill service ready",
            installed=len(self.store.get_loaded_skills()),
            catalog=len(self.catalog.entries),
        )

    async def shutdown(self) -> None:
        log.info("Skill service stopping")
        await self.scheduler.stop()
        await self.scheduler.wait_idle()
        self.store.clear()
        self.catalog.clear()
        self.registry.clear()
        await self.client.aclose()

    async def sync_now(self) -> SyncResult:
        return await self.catalog.sync_now()

    async def run_scheduled_sync(self) -> SyncResult:
        log.debug("Starting catalog sync")
        result = await self.catalog.sync_now()
        stats = self.catalog.stats(installed=len(self.store.get_loaded_skills()))
        log.info("Catalog synced", available=stats.total, installed=stats.installed)
        if result.added > 0:
            log.info("New skills discovered", added=result.added)
        return result

    async def resolve_guidance(self, query: str) -> GuidanceResult:
        return await resolve_guidance(self, query)
