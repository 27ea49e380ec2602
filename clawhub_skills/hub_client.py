"""HTTP client for the ClawHub skill registry API."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import httpx

from clawhub_skills.config import DEFAULT_REGISTRY_URL, HubConfig
from clawhub_skills.exceptions import OversizedPackageError, RemoteError
from clawhub_skills.logging import get_logger
from clawhub_skills.models import CatalogEntry, SearchResult, SkillDetail, validate_slug

log = get_logger(__name__)


@dataclass
class CatalogPage:
    items: list[CatalogEntry] = field(default_factory=list)
    next_cursor: str | None = None


class RemoteCatalogClient:
    """Thin async wrapper over the registry endpoints.

    Every non-2xx status, transport failure and malformed body surfaces as
    ``RemoteError``; the one exception is a 404 from the details endpoint,
    which means "no such skill" and returns ``None``.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_REGISTRY_URL,
        page_size: int = 100,
        timeout: float = 30.0,
        user_agent: str = "ClawHub Skills/0.1.0",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.page_size = max(1, int(page_size))
        self.client = httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            transport=transport,
            headers={
                "User-Agent": user_agent,
                "Accept": "application/json",
            },
        )

    @classmethod
    def from_config(cls, config: HubConfig, transport: httpx.AsyncBaseTransport | None = None) -> RemoteCatalogClient:
        return cls(
            base_url=config.registry_url,
            page_size=config.page_size,
            timeout=config.timeout_seconds,
            user_agent=config.user_agent,
            transport=transport,
        )

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> httpx.Response:
        url = self._url(path)
        try:
            return await self.client.get(url, params=params)
        except httpx.HTTPError as e:
            raise RemoteError(f"Request failed: {e}", url=url) from e

    @staticmethod
    def _json(response: httpx.Response) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as e:
            raise RemoteError(f"Invalid JSON from registry: {e}", response.status_code, str(response.url)) from e
        if not isinstance(payload, dict):
            raise RemoteError("Unexpected registry payload", response.status_code, str(response.url))
        return payload

    @staticmethod
    def _list_field(response: httpx.Response, payload: dict[str, Any], key: str) -> list[dict[str, Any]]:
        """Object entries of a list field; a missing or null field is empty."""
        value = payload.get(key)
        if value is None:
            return []
        if not isinstance(value, list):
            raise RemoteError(
                f"Unexpected registry payload: {key!r} is not a list", response.status_code, str(response.url)
            )
        return [item for item in value if isinstance(item, dict)]

    async def fetch_catalog_page(self, cursor: str | None = None) -> CatalogPage:
        """Fetch one page of the skill listing."""
        params: dict[str, Any] = {"limit": self.page_size}
        if cursor:
            params["cursor"] = cursor
        response = await self._get("/api/v1/skills", params=params)
        if not response.is_success:
            raise RemoteError(f"Catalog fetch failed: {response.status_code}", response.status_code, str(response.url))

        payload = self._json(response)
        items = [CatalogEntry.from_dict(item) for item in self._list_field(response, payload, "items")]
        next_cursor = payload.get("nextCursor") or None
        return CatalogPage(items=items, next_cursor=str(next_cursor) if next_cursor else None)

    async def fetch_all_catalog(self) -> list[CatalogEntry]:
        """Follow ``nextCursor`` until exhausted and return every entry.

        Any failing page aborts the whole walk; no partial listing is returned.
        """
        entries: list[CatalogEntry] = []
        seen_cursors: set[str] = set()
        cursor: str | None = None
        while True:
            page = await self.fetch_catalog_page(cursor)
            entries.extend(page.items)
            cursor = page.next_cursor
            if not cursor:
                break
            if cursor in seen_cursors:
                raise RemoteError(f"Catalog pagination repeated cursor {cursor!r}")
            seen_cursors.add(cursor)
        log.debug("Fetched catalog", count=len(entries), pages=len(seen_cursors) + 1)
        return entries

    async def search(self, query: str, limit: int = 10) -> list[SearchResult]:
        response = await self._get("/api/v1/search", params={"q": query, "limit": max(1, int(limit))})
        if not response.is_success:
            raise RemoteError(f"Search failed: {response.status_code}", response.status_code, str(response.url))

        payload = self._json(response)
        return [SearchResult.from_dict(item) for item in self._list_field(response, payload, "results")]

    async def fetch_detail(self, slug: str) -> SkillDetail | None:
        safe_slug = validate_slug(slug)
        response = await self._get(f"/api/v1/skills/{safe_slug}")
        if response.status_code == 404:
            return None
        if not response.is_success:
            raise RemoteError(f"Details fetch failed: {response.status_code}", response.status_code, str(response.url))
        return SkillDetail.from_dict(self._json(response))

    async def download(self, slug: str, version: str, max_bytes: int | None = None) -> bytes:
        """Download a package archive.

        With ``max_bytes`` set, the transfer is abandoned as soon as the body
        grows past the limit and ``OversizedPackageError`` is raised.
        """
        safe_slug = validate_slug(slug)
        url = self._url("/api/v1/download")
        params = {"slug": safe_slug, "version": version}
        chunks: list[bytes] = []
        received = 0
        try:
            async with self.client.stream("GET", url, params=params) as response:
                if not response.is_success:
                    raise RemoteError(f"Download failed: {response.status_code}", response.status_code, str(response.url))
                async for chunk in response.aiter_bytes():
                    received += len(chunk)
                    if max_bytes is not None and received > max_bytes:
                        raise OversizedPackageError(received, max_bytes)
                    chunks.append(chunk)
        except httpx.HTTPError as e:
            raise RemoteError(f"Download failed: {e}", url=url) from e
        return b"".join(chunks)

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()
