"""Installed skill discovery, loading, and installation from the registry."""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections import Counter
from collections.abc import AsyncIterator
from pathlib import Path

from clawhub_skills.archive import extract_archive
from clawhub_skills.cache import Clock
from clawhub_skills.config import CONTROL_DIR_NAME
from clawhub_skills.exceptions import (
    InvalidSlugError,
    LocalIOError,
    OversizedPackageError,
    RemoteError,
    SkillNotFoundError,
)
from clawhub_skills.frontmatter import parse_manifest_header, strip_manifest_header
from clawhub_skills.lockfile import LOCK_FILENAME, LockRecord
from clawhub_skills.logging import get_logger
from clawhub_skills.models import LOCAL_VERSION, InstalledSkill, validate_slug
from clawhub_skills.registry import HubRegistry

log = get_logger(__name__)

MANIFEST_FILENAME = "SKILL.md"
SCRIPTS_DIRNAME = "scripts"
REFERENCES_DIRNAME = "references"
LATEST = "latest"
DEFAULT_MAX_PACKAGE_BYTES = 10 * 1024 * 1024


def _is_hidden(name: str) -> bool:
    return name.startswith(".")


def _list_visible(directory: Path) -> list[str]:
    if not directory.is_dir():
        return []
    return sorted(entry.name for entry in directory.iterdir() if not _is_hidden(entry.name))


class LocalSkillStore:
    """Owns the skills root on disk and the in-memory map of loaded skills.

    Layout::

        <skills_dir>/<slug>/SKILL.md
        <skills_dir>/<slug>/scripts/...
        <skills_dir>/<slug>/references/...
        <skills_dir>/.clawhub/lock.json
    """

    def __init__(
        self,
        skills_dir: Path | str,
        registry: HubRegistry,
        max_package_bytes: int = DEFAULT_MAX_PACKAGE_BYTES,
        lock_path: Path | str | None = None,
        clock: Clock | None = None,
    ):
        self.skills_dir = Path(skills_dir)
        self.registry = registry
        self.max_package_bytes = int(max_package_bytes)
        self.lock = LockRecord(Path(lock_path) if lock_path else self.skills_dir / CONTROL_DIR_NAME / LOCK_FILENAME)
        self._clock = clock or time.time
        self._loaded: dict[str, InstalledSkill] = {}
        self._install_locks: dict[str, asyncio.Lock] = {}
        self._install_users: Counter[str] = Counter()

    def discover_installed(self) -> set[str]:
        """Names of non-hidden subdirectories of the skills root."""
        if not self.skills_dir.is_dir():
            return set()
        return {
            entry.name
            for entry in self.skills_dir.iterdir()
            if entry.is_dir() and not _is_hidden(entry.name)
        }

    def load_skill(self, slug: str) -> InstalledSkill | None:
        """Read one skill from disk and replace its loaded entry.

        Returns ``None`` when the directory has no manifest or it cannot be read.
        """
        safe_slug = validate_slug(slug)
        skill_dir = self.skills_dir / safe_slug
        manifest_path = skill_dir / MANIFEST_FILENAME
        if not manifest_path.is_file():
            return None

        try:
            content = manifest_path.read_text(encoding="utf-8")
            header = parse_manifest_header(content)
            skill = InstalledSkill(
                slug=safe_slug,
                name=header.get("name") or safe_slug,
                description=header.get("description") or "",
                version=self.lock.version_of(safe_slug) or LOCAL_VERSION,
                content=content,
                script_names=_list_visible(skill_dir / SCRIPTS_DIRNAME),
                reference_names=_list_visible(skill_dir / REFERENCES_DIRNAME),
                loaded_at=self._clock(),
            )
        except (OSError, UnicodeDecodeError) as e:
            log.error("Failed to load skill", slug=safe_slug, error=str(e))
            return None

        self._loaded[safe_slug] = skill
        return skill

    def load_installed_skills(self) -> int:
        """Load every discovered skill, skipping ones that fail."""
        loaded = 0
        for name in sorted(self.discover_installed()):
            try:
                if self.load_skill(name) is not None:
                    loaded += 1
            except InvalidSlugError as e:
                log.warning("Skipping skill directory", name=name, error=str(e))
        log.debug("Loaded installed skills", count=loaded)
        return loaded

    @contextlib.asynccontextmanager
    async def _install_lock(self, slug: str) -> AsyncIterator[None]:
        """Serialize installs of one slug; the lock is dropped once nobody waits on it."""
        lock = self._install_locks.setdefault(slug, asyncio.Lock())
        self._install_users[slug] += 1
        try:
            async with lock:
                yield
        finally:
            self._install_users[slug] -= 1
            if not self._install_users[slug]:
                del self._install_users[slug]
                del self._install_locks[slug]

    async def install(self, slug: str, version: str = LATEST) -> bool:
        """Download, unpack, record and load a skill.

        An invalid slug raises ``InvalidSlugError`` before any I/O; every other
        failure is logged and reported as ``False``.
        """
        safe_slug = validate_slug(slug)
        async with self._install_lock(safe_slug):
            log.info("Installing skill", slug=safe_slug, version=version)
            try:
                skill = await self._install_locked(safe_slug, version)
            except Exception as e:
                log.error(
                    "Skill install failed",
                    slug=safe_slug,
                    version=version,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return False
        log.info("Installed skill", slug=safe_slug, version=skill.version)
        return True

    async def _install_locked(self, slug: str, version: str) -> InstalledSkill:
        details = await self.registry.get_skill_details(slug)
        if details is None:
            raise SkillNotFoundError(slug)

        resolved_version = details.latest_version.version if version == LATEST else version
        if not resolved_version:
            raise RemoteError(f'Registry reported no version for "{slug}"')

        payload = await self.registry.download(slug, resolved_version, max_bytes=self.max_package_bytes)
        if len(payload) > self.max_package_bytes:
            raise OversizedPackageError(len(payload), self.max_package_bytes)

        skill_dir = self.skills_dir / slug
        await asyncio.to_thread(extract_archive, payload, skill_dir)
        if not (skill_dir / MANIFEST_FILENAME).is_file():
            raise LocalIOError(skill_dir, f"package has no {MANIFEST_FILENAME}")

        self.lock.record(slug, resolved_version)
        skill = self.load_skill(slug)
        if skill is None:
            raise LocalIOError(skill_dir, "installed skill could not be loaded")
        return skill

    def instructions_for(self, slug: str) -> str | None:
        """Manifest body without its header, or ``None`` if nothing is loaded."""
        skill = self._loaded.get(validate_slug(slug))
        if skill is None or not skill.content:
            return None
        return strip_manifest_header(skill.content) or None

    def get_loaded_skills(self) -> list[InstalledSkill]:
        return list(self._loaded.values())

    def get_loaded_skill(self, slug: str) -> InstalledSkill | None:
        try:
            return self._loaded.get(validate_slug(slug))
        except InvalidSlugError:
            return None

    def is_installed(self, slug: str) -> bool:
        return self.get_loaded_skill(slug) is not None

    def clear(self) -> None:
        self._loaded.clear()
