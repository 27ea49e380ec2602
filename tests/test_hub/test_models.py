import pytest

from clawhub_skills.exceptions import InvalidSlugError
from clawhub_skills.models import CatalogEntry, InstalledSkill, LockEntry, is_valid_slug, validate_slug


@pytest.mark.parametrize("slug", ["agent-browser", "pdf_tools", "A1", "x" * 100])
def test_valid_slugs(slug):
    assert is_valid_slug(slug)
    assert validate_slug(slug) == slug


@pytest.mark.parametrize("slug", ["", "x" * 101, "../evil", "a/b", "a b", "name.md", None, 42])
def test_invalid_slugs(slug):
    assert not is_valid_slug(slug)
    with pytest.raises(InvalidSlugError):
        validate_slug(slug)


def test_catalog_entry_reads_nested_stats_and_latest_version():
    entry = CatalogEntry.from_dict(
        {
            "slug": "pdf",
            "summary": "Work with PDFs",
            "latestVersion": {"version": "3.0.0"},
            "tags": {"latest": "3.0.0", "documents": "3.0.0"},
            "stats": {"downloads": 40, "stars": "7"},
            "updatedAt": 123,
        }
    )

    assert entry.display_name == "pdf"
    assert entry.version == "3.0.0"
    assert entry.downloads == 40
    assert entry.stars == 7
    assert entry.to_dict()["stats"] == {"downloads": 40, "stars": 7}


def test_installed_skill_equality_ignores_load_time():
    first = InstalledSkill(slug="demo", name="Demo", description="", loaded_at=1.0)
    second = InstalledSkill(slug="demo", name="Demo", description="", loaded_at=2.0)

    assert first == second


def test_lock_entry_requires_version():
    assert LockEntry.from_dict({"installedAt": "2026-01-01T00:00:00+00:00"}) is None
    assert LockEntry.from_dict({"version": "1.0.0"}).to_dict() == {"version": "1.0.0", "installedAt": ""}
