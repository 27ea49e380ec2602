"""Registry and local skill data types."""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from typing import Any

from clawhub_skills.exceptions import InvalidSlugError

SLUG_PATTERN = re.compile(r"[A-Za-z0-9_-]{1,100}")
LOCAL_VERSION = "local"


def is_valid_slug(slug: Any) -> bool:
    return isinstance(slug, str) and SLUG_PATTERN.fullmatch(slug) is not None


def validate_slug(slug: Any) -> str:
    """Return ``slug`` unchanged or raise ``InvalidSlugError``."""
    if not is_valid_slug(slug):
        raise InvalidSlugError(slug)
    return slug


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _as_float(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _as_tags(value: Any) -> dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {str(key): str(item) for key, item in value.items()}


@dataclass(frozen=True)
class CatalogEntry:
    slug: str
    display_name: str
    summary: str | None
    version: str
    tags: dict[str, str] = field(default_factory=dict)
    downloads: int = 0
    stars: int = 0
    updated_at: float = 0.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CatalogEntry:
        stats = data.get("stats") if isinstance(data.get("stats"), dict) else {}
        version = data.get("version")
        if not version and isinstance(data.get("latestVersion"), dict):
            version = data["latestVersion"].get("version")
        slug = str(data.get("slug", ""))
        return cls(
            slug=slug,
            display_name=str(data.get("displayName") or slug),
            summary=data.get("summary"),
            version=str(version or ""),
            tags=_as_tags(data.get("tags")),
            downloads=_as_int(stats.get("downloads", data.get("downloads"))),
            stars=_as_int(stats.get("stars", data.get("stars"))),
            updated_at=_as_float(data.get("updatedAt")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "slug": self.slug,
            "displayName": self.display_name,
            "summary": self.summary,
            "version": self.version,
            "tags": dict(self.tags),
            "stats": {"downloads": self.downloads, "stars": self.stars},
            "updatedAt": self.updated_at,
        }


@dataclass(frozen=True)
class SearchResult:
    score: float
    slug: str
    display_name: str
    summary: str
    version: str
    updated_at: float = 0.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SearchResult:
        slug = str(data.get("slug", ""))
        return cls(
            score=_as_float(data.get("score")),
            slug=slug,
            display_name=str(data.get("displayName") or slug),
            summary=str(data.get("summary") or ""),
            version=str(data.get("version") or ""),
            updated_at=_as_float(data.get("updatedAt")),
        )


@dataclass(frozen=True)
class SkillStats:
    downloads: int = 0
    stars: int = 0
    version_count: int = 0


@dataclass(frozen=True)
class SkillVersion:
    version: str
    created_at: float = 0.0
    changelog: str | None = None


@dataclass(frozen=True)
class SkillOwner:
    handle: str
    display_name: str


@dataclass(frozen=True)
class SkillDetail:
    slug: str
    display_name: str
    summary: str
    latest_version: SkillVersion
    tags: dict[str, str] = field(default_factory=dict)
    stats: SkillStats = field(default_factory=SkillStats)
    created_at: float = 0.0
    updated_at: float = 0.0
    owner: SkillOwner | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SkillDetail:
        """Build from the registry's ``{skill, latestVersion, owner}`` payload."""
        skill = data.get("skill") if isinstance(data.get("skill"), dict) else {}
        stats = skill.get("stats") if isinstance(skill.get("stats"), dict) else {}
        latest = data.get("latestVersion") if isinstance(data.get("latestVersion"), dict) else {}
        owner_raw = data.get("owner") if isinstance(data.get("owner"), dict) else None
        slug = str(skill.get("slug", ""))
        owner = None
        if owner_raw is not None:
            handle = str(owner_raw.get("handle") or "")
            owner = SkillOwner(handle=handle, display_name=str(owner_raw.get("displayName") or handle))
        return cls(
            slug=slug,
            display_name=str(skill.get("displayName") or slug),
            summary=str(skill.get("summary") or ""),
            latest_version=SkillVersion(
                version=str(latest.get("version") or ""),
                created_at=_as_float(latest.get("createdAt")),
                changelog=latest.get("changelog") or None,
            ),
            tags=_as_tags(skill.get("tags")),
            stats=SkillStats(
                downloads=_as_int(stats.get("downloads")),
                stars=_as_int(stats.get("stars")),
                version_count=_as_int(stats.get("versions")),
            ),
            created_at=_as_float(skill.get("createdAt")),
            updated_at=_as_float(skill.get("updatedAt")),
            owner=owner,
        )


@dataclass
class InstalledSkill:
    """Loaded on-disk state of one installed skill."""

    slug: str
    name: str
    description: str
    version: str = LOCAL_VERSION
    content: str | None = None
    script_names: list[str] = field(default_factory=list)
    reference_names: list[str] = field(default_factory=list)
    loaded_at: float = field(default_factory=time.time, compare=False)


@dataclass(frozen=True)
class LockEntry:
    version: str
    installed_at: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LockEntry | None:
        version = data.get("version") if isinstance(data, dict) else None
        if not version:
            return None
        return cls(version=str(version), installed_at=str(data.get("installedAt") or ""))

    def to_dict(self) -> dict[str, str]:
        return {"version": self.version, "installedAt": self.installed_at}
