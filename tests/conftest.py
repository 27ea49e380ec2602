from __future__ import annotations

import asyncio
import io
import zipfile
from pathlib import Path
from typing import Any

import httpx
import pytest

from clawhub_skills.config import Config
from clawhub_skills.hub_client import RemoteCatalogClient
from clawhub_skills.registry import HubRegistry
from clawhub_skills.service import ClawHubContext

HUB_URL = "https://hub.test"


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeHub:
    """In-memory registry answering the ClawHub HTTP endpoints."""

    def __init__(self) -> None:
        self.catalog: list[dict[str, Any]] = []
        self.search_results: list[dict[str, Any]] = []
        self.details: dict[str, dict[str, Any]] = {}
        self.packages: dict[tuple[str, str], bytes] = {}
        self.failing: set[str] = set()
        self.fail_on_cursor: str | None = None
        # Replacement 200 bodies for the listing and search endpoints.
        self.catalog_body: Any = None
        self.search_body: Any = None
        self.requests: list[tuple[str, dict[str, str]]] = []
        # Hold the Nth catalog request (1-based) until ``gate`` is set.
        self.block_catalog_request: int | None = None
        self.gate = asyncio.Event()
        self.blocked = asyncio.Event()
        self._catalog_requests = 0

    def count(self, endpoint: str) -> int:
        return sum(1 for name, _ in self.requests if name == endpoint)

    def add_skill(
        self,
        slug: str,
        version: str = "1.0.0",
        summary: str = "",
        files: dict[str, str] | None = None,
        owner: dict[str, str] | None = None,
        changelog: str | None = None,
    ) -> None:
        self.details[slug] = {
            "skill": {
                "slug": slug,
                "displayName": slug.replace("-", " ").title(),
                "summary": summary,
                "tags": {"latest": version},
                "stats": {"downloads": 12, "stars": 3, "versions": 1},
                "createdAt": 1_700_000_000_000,
                "updatedAt": 1_700_000_000_000,
            },
            "latestVersion": {"version": version, "createdAt": 1_700_000_000_000, "changelog": changelog},
            "owner": owner,
        }
        if files is not None:
            self.packages[(slug, version)] = make_zip(files)

    async def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        params = dict(request.url.params)

        if path == "/api/v1/skills":
            self.requests.append(("catalog", params))
            self._catalog_requests += 1
            if self.block_catalog_request == self._catalog_requests:
                self.blocked.set()
                await self.gate.wait()
            failing_cursor = self.fail_on_cursor is not None and params.get("cursor") == self.fail_on_cursor
            if "catalog" in self.failing or failing_cursor:
                return httpx.Response(500, json={"error": "boom"})
            if self.catalog_body is not None:
                return httpx.Response(200, json=self.catalog_body)
            start = int(params.get("cursor") or 0)
            limit = int(params["limit"])
            items = self.catalog[start : start + limit]
            next_cursor = str(start + limit) if start + limit < len(self.catalog) else None
            return httpx.Response(200, json={"items": items, "nextCursor": next_cursor})

        if path == "/api/v1/search":
            self.requests.append(("search", params))
            if "search" in self.failing:
                return httpx.Response(503, json={"error": "unavailable"})
            if self.search_body is not None:
                return httpx.Response(200, json=self.search_body)
            return httpx.Response(200, json={"results": self.search_results[: int(params["limit"])]})

        if path == "/api/v1/download":
            self.requests.append(("download", params))
            if "download" in self.failing:
                return httpx.Response(500)
            payload = self.packages.get((params["slug"], params["version"]))
            if payload is None:
                return httpx.Response(404)
            return httpx.Response(200, content=payload)

        if path.startswith("/api/v1/skills/"):
            slug = path.rsplit("/", 1)[-1]
            self.requests.append(("details", {"slug": slug}))
            if "details" in self.failing:
                return httpx.Response(500, json={"error": "boom"})
            if slug not in self.details:
                return httpx.Response(404, json={"error": "not found"})
            return httpx.Response(200, json=self.details[slug])

        return httpx.Response(404)


def make_zip(files: dict[str, str]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, content in files.items():
            archive.writestr(name, content)
    return buffer.getvalue()


def catalog_item(slug: str, version: str = "1.0.0", summary: str | None = None, **tags: str) -> dict[str, Any]:
    return {
        "slug": slug,
        "displayName": slug.replace("-", " ").title(),
        "summary": summary,
        "tags": {"latest": version, **tags},
        "stats": {"downloads": 1, "stars": 0},
        "updatedAt": 1_700_000_000_000,
    }


def write_skill(skills_dir: Path, slug: str, name: str, description: str, body: str = "Do the thing.") -> Path:
    skill_dir = skills_dir / slug
    skill_dir.mkdir(parents=True, exist_ok=True)
    (skill_dir / "SKILL.md").write_text(
        f"---\nname: {name}\ndescription: {description}\n---\n\n{body}\n",
        encoding="utf-8",
    )
    return skill_dir


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def hub() -> FakeHub:
    return FakeHub()


@pytest.fixture
def client(hub: FakeHub) -> RemoteCatalogClient:
    return RemoteCatalogClient(base_url=HUB_URL, page_size=2, transport=httpx.MockTransport(hub.handler))


@pytest.fixture
def registry(client: RemoteCatalogClient, clock: FakeClock) -> HubRegistry:
    return HubRegistry(client, search_ttl=300, details_ttl=1800, clock=clock)


@pytest.fixture
def config(tmp_path: Path) -> Config:
    cfg = Config()
    cfg.skills.dir = str(tmp_path / "skills")
    cfg.hub.registry_url = HUB_URL
    cfg.hub.page_size = 2
    cfg.sync.enabled = False
    return cfg


@pytest.fixture
def context(config: Config, hub: FakeHub, clock: FakeClock) -> ClawHubContext:
    return ClawHubContext.create(config, transport=httpx.MockTransport(hub.handler), clock=clock)
