"""Cached access to registry search and skill details."""

from __future__ import annotations

from clawhub_skills.cache import CachePolicy, Clock, FreshnessCache, SingleFlight
from clawhub_skills.config import CacheConfig
from clawhub_skills.exceptions import RemoteError
from clawhub_skills.hub_client import RemoteCatalogClient
from clawhub_skills.logging import get_logger
from clawhub_skills.models import SearchResult, SkillDetail, validate_slug

log = get_logger(__name__)


class HubRegistry:
    """Search and details lookups backed by independent freshness caches.

    A failed refresh serves the previous entry for the same key when there is
    one and re-raises ``RemoteError`` otherwise.
    """

    def __init__(
        self,
        client: RemoteCatalogClient,
        search_ttl: float = 5 * 60,
        details_ttl: float = 30 * 60,
        clock: Clock | None = None,
    ):
        self.client = client
        self.search_cache: FreshnessCache[list[SearchResult]] = FreshnessCache(search_ttl, clock)
        self.details_cache: FreshnessCache[SkillDetail] = FreshnessCache(details_ttl, clock)
        self._inflight = SingleFlight()

    @classmethod
    def from_config(cls, client: RemoteCatalogClient, config: CacheConfig, clock: Clock | None = None) -> HubRegistry:
        return cls(
            client,
            search_ttl=config.search_ttl_seconds,
            details_ttl=config.details_ttl_seconds,
            clock=clock,
        )

    async def search(self, query: str, limit: int = 10, policy: CachePolicy | None = None) -> list[SearchResult]:
        cache_key = f"{query}:{limit}"
        cached, hit = self.search_cache.lookup(cache_key, policy)
        if hit:
            return list(cached)
        if policy is not None and policy.cache_only:
            return []

        async def _refresh() -> list[SearchResult]:
            results = await self.client.search(query, limit)
            self.search_cache.write(results, cache_key)
            return results

        try:
            return list(await self._inflight.run(f"search:{cache_key}", _refresh))
        except RemoteError as e:
            stale, found = self.search_cache.read(cache_key)
            if not found:
                raise
            log.warning("Search failed; serving stale results", query=query, error=str(e))
            return list(stale)

    async def get_skill_details(self, slug: str, policy: CachePolicy | None = None) -> SkillDetail | None:
        safe_slug = validate_slug(slug)
        cached, hit = self.details_cache.lookup(safe_slug, policy)
        if hit:
            return cached
        if policy is not None and policy.cache_only:
            return None

        async def _refresh() -> SkillDetail | None:
            details = await self.client.fetch_detail(safe_slug)
            if details is not None:
                self.details_cache.write(details, safe_slug)
            return details

        try:
            return await self._inflight.run(f"details:{safe_slug}", _refresh)
        except RemoteError as e:
            stale, found = self.details_cache.read(safe_slug)
            if not found:
                raise
            log.warning("Details fetch failed; serving stale entry", slug=safe_slug, error=str(e))
            return stale

    async def download(self, slug: str, version: str, max_bytes: int | None = None) -> bytes:
        return await self.client.download(slug, version, max_bytes=max_bytes)

    def clear(self) -> None:
        self.search_cache.clear()
        self.details_cache.clear()
