import asyncio
import json
from pathlib import Path

import pytest
from conftest import catalog_item

from clawhub_skills.cache import CACHE_ONLY, FORCE_REFRESH
from clawhub_skills.sync import CatalogSync


@pytest.fixture
def snapshot_path(tmp_path: Path) -> Path:
    return tmp_path / ".clawhub" / "cache" / "catalog.json"


@pytest.fixture
def catalog(client, snapshot_path, clock) -> CatalogSync:
    return CatalogSync(client, snapshot_path, ttl=3600, clock=clock)


def slugs(entries):
    return [entry.slug for entry in entries]


@pytest.mark.asyncio
async def test_catalog_is_fetched_once_within_ttl(catalog, hub, clock):
    hub.catalog = [catalog_item(f"s{i}") for i in range(3)]

    assert slugs(await catalog.get_catalog()) == ["s0", "s1", "s2"]
    clock.advance(3599)
    await catalog.get_catalog()
    assert hub.count("catalog") == 2

    clock.advance(1)
    await catalog.get_catalog()
    assert hub.count("catalog") == 4


@pytest.mark.asyncio
async def test_failed_refresh_serves_stale_catalog(catalog, hub):
    hub.catalog = [catalog_item(f"s{i}") for i in range(50)]
    await catalog.get_catalog()
    hub.failing.add("catalog")

    stale = await catalog.get_catalog(FORCE_REFRESH)

    assert len(stale) == 50


@pytest.mark.asyncio
async def test_malformed_listing_serves_stale_catalog(catalog, hub):
    hub.catalog = [catalog_item(f"s{i}") for i in range(3)]
    await catalog.get_catalog()
    hub.catalog_body = {"items": 5}

    stale = await catalog.get_catalog(FORCE_REFRESH)

    assert slugs(stale) == ["s0", "s1", "s2"]


@pytest.mark.asyncio
async def test_failed_refresh_with_empty_cache_returns_empty(catalog, hub):
    hub.failing.add("catalog")

    assert await catalog.get_catalog() == []


@pytest.mark.asyncio
async def test_cache_only_read_on_empty_cache_makes_no_request(catalog, hub):
    hub.catalog = [catalog_item("s0")]

    assert await catalog.get_catalog(CACHE_ONLY) == []
    assert hub.requests == []


@pytest.mark.asyncio
async def test_readers_see_old_catalog_until_walk_completes(catalog, hub):
    hub.catalog = [catalog_item("old-a"), catalog_item("old-b")]
    await catalog.get_catalog()

    hub.catalog = [catalog_item(f"new-{i}") for i in range(5)]
    hub.block_catalog_request = 3
    refresh = asyncio.create_task(catalog.get_catalog(FORCE_REFRESH))
    await asyncio.wait_for(hub.blocked.wait(), timeout=5)

    # First page of the new listing has been fetched but not published.
    assert slugs(await catalog.get_catalog(CACHE_ONLY)) == ["old-a", "old-b"]

    hub.gate.set()
    assert len(await refresh) == 5
    assert slugs(await catalog.get_catalog(CACHE_ONLY))[0] == "new-0"


@pytest.mark.asyncio
async def test_concurrent_forced_refreshes_share_one_walk(catalog, hub):
    hub.catalog = [catalog_item("s0")]
    hub.block_catalog_request = 1

    first = asyncio.create_task(catalog.get_catalog(FORCE_REFRESH))
    second = asyncio.create_task(catalog.get_catalog(FORCE_REFRESH))
    await asyncio.wait_for(hub.blocked.wait(), timeout=5)
    hub.gate.set()

    assert slugs(await first) == slugs(await second) == ["s0"]
    assert hub.count("catalog") == 1


@pytest.mark.asyncio
async def test_sync_now_reports_growth(catalog, hub):
    hub.catalog = [catalog_item(f"s{i}") for i in range(3)]
    first = await catalog.sync_now()
    assert (first.added, first.updated) == (3, 3)

    hub.catalog = [catalog_item(f"s{i}") for i in range(5)]
    grown = await catalog.sync_now()
    assert (grown.added, grown.updated) == (2, 5)

    hub.catalog = [catalog_item("s0")]
    shrunk = await catalog.sync_now()
    assert (shrunk.added, shrunk.updated) == (0, 1)


@pytest.mark.asyncio
async def test_snapshot_warm_start_keeps_original_age(client, catalog, hub, snapshot_path, clock):
    hub.catalog = [catalog_item("s0"), catalog_item("s1")]
    await catalog.get_catalog()

    payload = json.loads(snapshot_path.read_text())
    assert payload["cachedAt"] == clock.now
    assert [item["slug"] for item in payload["data"]] == ["s0", "s1"]

    clock.advance(600)
    restarted = CatalogSync(client, snapshot_path, ttl=3600, clock=clock)
    assert restarted.warm_start_from_disk() is True
    assert restarted.cache.age() == 600

    assert slugs(await restarted.get_catalog()) == ["s0", "s1"]
    assert hub.count("catalog") == 1

    clock.advance(3000)
    await restarted.get_catalog()
    assert hub.count("catalog") == 2


def test_warm_start_ignores_bad_snapshots(catalog, snapshot_path):
    assert catalog.warm_start_from_disk() is False

    snapshot_path.parent.mkdir(parents=True)
    snapshot_path.write_text("[broken")
    assert catalog.warm_start_from_disk() is False

    snapshot_path.write_text(json.dumps({"data": [], "cachedAt": 0}))
    assert catalog.warm_start_from_disk() is False
    assert catalog.entries == []


@pytest.mark.asyncio
async def test_stats_and_views(catalog, hub, clock):
    hub.catalog = [
        catalog_item("pdf", summary="PDF tools", documents="1.0.0"),
        catalog_item("sheets", summary=None, documents="1.0.0", data="1.0.0"),
    ]
    await catalog.get_catalog()

    stats = catalog.stats(installed=1)
    assert stats.total == 2
    assert stats.installed == 1
    assert stats.cached_at == clock.now
    assert stats.categories == ["documents", "data"]

    assert await catalog.get_catalog_low_res(CACHE_ONLY) == [
        {"slug": "pdf", "name": "Pdf"},
        {"slug": "sheets", "name": "Sheets"},
    ]
    med = await catalog.get_catalog_med_res(CACHE_ONLY)
    assert med[1] == {"slug": "sheets", "name": "Sheets", "summary": "No description"}
