import pytest
from conftest import catalog_item, write_skill

from clawhub_skills.models import CatalogEntry
from clawhub_skills.providers import (
    OTHER_CATEGORY,
    catalog_awareness,
    describe_skill,
    extract_requirements,
    extract_triggers,
    group_by_category,
    installed_skills_summary,
    skill_instructions_for_context,
    skills_overview,
)


def seed_catalog(context, *items):
    context.catalog.cache.write([CatalogEntry.from_dict(item) for item in items])


def test_extract_triggers():
    assert extract_triggers("Query balances. Triggers: balance, staking.") == "balance, staking"
    assert extract_triggers("Use when the user asks about PDFs.") == "the user asks about PDFs"
    assert extract_triggers("Plain description") == ""


def test_extract_requirements():
    assert extract_requirements("Requires OPENAI_API_KEY and SERPER_KEY.") == ["OPENAI_API_KEY", "SERPER_KEY"]
    assert extract_requirements("Needs: GITHUB_TOKEN, GH_HOST") == ["GITHUB_TOKEN", "GH_HOST"]
    assert extract_requirements("Requires Node to be installed") == []


def test_group_by_category():
    groups = group_by_category(
        [
            {"slug": "gpt-helper", "name": "GPT Helper", "summary": "Prompt an LLM"},
            {"slug": "mailer", "name": "Mailer", "summary": "Send email"},
            {"slug": "misc", "name": "Misc", "summary": "Odds and ends"},
        ]
    )

    assert groups["AI & Models"] == [{"slug": "gpt-helper", "name": "GPT Helper"}]
    assert groups["Communication"] == [{"slug": "mailer", "name": "Mailer"}]
    assert groups[OTHER_CATEGORY] == [{"slug": "misc", "name": "Misc"}]


def test_installed_summary_without_skills(context):
    result = installed_skills_summary(context)

    assert result.values == {"skillCount": 0}
    assert "None installed" in result.text


def test_installed_summary_lists_skills_with_triggers(context):
    write_skill(context.skills_dir, "babylon", "Babylon", "Staking helper. Triggers: stake, unbond.")
    context.store.load_installed_skills()

    result = installed_skills_summary(context)

    assert result.values["skillCount"] == 1
    assert result.values["installedSkills"] == "babylon"
    assert "- **Babylon** (`babylon`)" in result.text
    assert "[stake, unbond]" in result.text


def test_instructions_for_context_picks_relevant_skill(context):
    write_skill(context.skills_dir, "babylon", "Babylon", "Staking helper for validators.", body="Use the staking API.")
    write_skill(context.skills_dir, "mailer", "Mailer", "Send email messages.", body="Use SMTP.")
    context.store.load_installed_skills()

    result = skill_instructions_for_context(context, "how do I stake on babylon?")

    assert result.values["activeSkill"] == "babylon"
    assert result.text == "## Active Skill: Babylon\n\nUse the staking API."
    assert skill_instructions_for_context(context, "what's the weather").text == ""


def test_instructions_for_context_truncates_long_bodies(context):
    write_skill(context.skills_dir, "babylon", "Babylon", "Staking helper.", body="y" * 5000)
    context.store.load_installed_skills()

    result = skill_instructions_for_context(context, "babylon")

    assert result.text.endswith("y" * 10 + "\n\n...[truncated]")
    assert len(result.text) == len("## Active Skill: Babylon\n\n") + 4000 + len("\n\n...[truncated]")


@pytest.mark.asyncio
async def test_overview_reads_cached_catalog_only(context, hub):
    seed_catalog(context, catalog_item("pdf"), catalog_item("mailer"))
    write_skill(context.skills_dir, "babylon", "Babylon", "Staking helper.")
    context.store.load_installed_skills()

    result = await skills_overview(context)

    assert result.values == {"installedCount": 1, "availableCount": 2}
    assert "Examples: Pdf, Mailer..." in result.text
    assert hub.requests == []


@pytest.mark.asyncio
async def test_catalog_awareness_only_for_capability_questions(context, hub):
    seed_catalog(context, catalog_item("mailer", summary="Send email"), catalog_item("gpt-helper", summary="LLM prompts"))

    assert (await catalog_awareness(context, "send this file")).text == ""

    result = await catalog_awareness(context, "What skills do you have?")
    assert "## Available Skill Categories" in result.text
    assert "- **Communication**: Mailer" in result.text
    assert hub.requests == []


@pytest.mark.asyncio
async def test_catalog_awareness_with_empty_cache(context, hub):
    assert (await catalog_awareness(context, "what can you do")).text == ""
    assert hub.requests == []


@pytest.mark.asyncio
async def test_describe_skill_card(context, hub):
    hub.add_skill(
        "web-search",
        version="3.1.0",
        summary="Search the web. Requires SERPER_API_KEY.",
        owner={"handle": "ana", "displayName": "Ana"},
        changelog="c" * 200,
    )
    env = {"SERPER_API_KEY": "secret"}

    card = await describe_skill(context, "web-search", env_lookup=env.get)

    assert card.values == {"slug": "web-search", "installed": False}
    assert "Version: 3.1.0 | Status: Not installed" in card.text
    assert "Author: Ana (@ana)" in card.text
    assert "- SERPER_API_KEY: set" in card.text
    assert "Changelog: " + "c" * 150 + "..." in card.text
    assert 'Say "install web-search" to use.' in card.text
    assert "Tags:" not in card.text


@pytest.mark.asyncio
async def test_describe_missing_skill(context, hub):
    assert await describe_skill(context, "ghost") is None
