"""Context text builders a host can inject into its prompt.

All catalog reads here are cache-only: building context never waits on the
network.
"""

from __future__ import annotations

import os
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from clawhub_skills.cache import CACHE_ONLY
from clawhub_skills.models import InstalledSkill

if TYPE_CHECKING:
    from clawhub_skills.service import ClawHubContext

_SUMMARY_DESCRIPTION_CHARS = 100
_CONTEXT_INSTRUCTIONS_CHARS = 4000
_CONTEXT_MIN_SCORE = 3
_RECENT_MESSAGES = 5
_CHANGELOG_CHARS = 150

_CAPABILITY_KEYWORDS = ("what can you", "what skills", "capabilities", "what do you know", "help with")
_KEYWORD_STOPWORDS = frozenset({
    "the", "and", "for", "with", "this", "that", "from", "will", "can", "are",
    "use", "when", "how", "what", "your", "you", "our", "has", "have", "been",
})
CATEGORY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "AI & Models": ("ai", "llm", "model", "gpt", "claude", "openai", "anthropic"),
    "Browser & Web": ("browser", "web", "scrape", "chrome", "selenium"),
    "Code & Dev": ("code", "python", "javascript", "typescript", "git", "dev"),
    "Data & Analytics": ("data", "analytics", "csv", "json", "database"),
    "Finance & Trading": ("trading", "finance", "crypto", "market", "prediction"),
    "Communication": ("email", "slack", "discord", "telegram", "chat"),
    "Productivity": ("calendar", "task", "todo", "note", "document"),
}
OTHER_CATEGORY = "Other"
_CATEGORY_PATTERNS = {
    name: re.compile(r"\b(?:" + "|".join(map(re.escape, keywords)) + ")")
    for name, keywords in CATEGORY_KEYWORDS.items()
}

_TRIGGER_RE = re.compile(r"Triggers?:\s*([^.]+)", re.IGNORECASE)
_USE_WHEN_RE = re.compile(r"Use (?:when|for|to)\s+([^.]+)", re.IGNORECASE)
_REQUIREMENT_RE = re.compile(
    r"(?i:requires?|needs?|required)[\s:]+([A-Z_][A-Z0-9_]*\b(?:\s*(?:and|,)\s*[A-Z_][A-Z0-9_]*\b)*)"
)


@dataclass
class ProviderResult:
    text: str = ""
    values: dict[str, Any] = field(default_factory=dict)
    data: dict[str, Any] = field(default_factory=dict)


def truncate(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[: max_chars - 3] + "..."


def extract_triggers(description: str) -> str:
    match = _TRIGGER_RE.search(description) or _USE_WHEN_RE.search(description)
    return match.group(1).strip() if match else ""


def extract_requirements(text: str) -> list[str]:
    """Environment variable names announced as "Requires FOO_KEY and BAR"."""
    found: list[str] = []
    for match in _REQUIREMENT_RE.finditer(text or ""):
        for key in re.split(r"[\s,]+(?:and\s+)?", match.group(1)):
            key = key.strip()
            if key and key.lower() != "and" and key not in found:
                found.append(key)
    return found


def extract_keywords(skill: InstalledSkill) -> list[str]:
    keywords = [word for word in re.split(r"[\s\-_]+", skill.name) if len(word) > 3]
    description = re.sub(r"[^a-z0-9\s]", " ", skill.description.lower())
    keywords.extend(word for word in description.split() if len(word) > 4 and word not in _KEYWORD_STOPWORDS)
    return list(dict.fromkeys(keywords))


def calculate_skill_relevance(skill: InstalledSkill, context: str) -> int:
    context_lower = context.lower()
    score = 0
    if skill.slug.lower() in context_lower:
        score += 10
    if skill.name.lower() in context_lower:
        score += 8
    for keyword in extract_keywords(skill):
        if keyword.lower() in context_lower:
            score += 2
    triggers = extract_triggers(skill.description)
    if triggers:
        for trigger in re.split(r"[,;]", triggers):
            trigger = trigger.strip().lower()
            if trigger and trigger in context_lower:
                score += 3
    return score


def group_by_category(entries: Iterable[dict[str, str]]) -> dict[str, list[dict[str, str]]]:
    categories: dict[str, list[dict[str, str]]] = {}
    for entry in entries:
        text = f"{entry.get('name', '')} {entry.get('summary', '')}".lower()
        category = next(
            (name for name, pattern in _CATEGORY_PATTERNS.items() if pattern.search(text)),
            OTHER_CATEGORY,
        )
        categories.setdefault(category, []).append({"slug": entry["slug"], "name": entry["name"]})
    return categories


async def skills_overview(ctx: ClawHubContext) -> ProviderResult:
    """Counts plus a handful of catalog examples."""
    installed = ctx.store.get_loaded_skills()
    catalog = await ctx.catalog.get_catalog(CACHE_ONLY)
    examples = ", ".join(item.display_name for item in catalog[:5])
    text = (
        f"**Skills:** {len(installed)} installed, {len(catalog)} available on ClawHub\n"
        f"Examples: {examples}...\n"
        "Use GET_SKILL_GUIDANCE to find skills for specific tasks."
    )
    return ProviderResult(
        text=text,
        values={"installedCount": len(installed), "availableCount": len(catalog)},
        data={"installed": [skill.slug for skill in installed], "catalogSize": len(catalog)},
    )


def installed_skills_summary(ctx: ClawHubContext) -> ProviderResult:
    skills = ctx.store.get_loaded_skills()
    if not skills:
        return ProviderResult(
            text="**Skills:** None installed. Use GET_SKILL_GUIDANCE to find and install skills automatically.",
            values={"skillCount": 0},
            data={"skills": []},
        )

    lines = []
    for skill in skills:
        triggers = extract_triggers(skill.description)
        line = f"- **{skill.name}** (`{skill.slug}`): {truncate(skill.description, _SUMMARY_DESCRIPTION_CHARS)}"
        if triggers:
            line += f" [{triggers}]"
        lines.append(line)

    text = f"## Installed Skills ({len(skills)})\n\n" + "\n".join(lines) + "\n\n*More skills available via GET_SKILL_GUIDANCE*"
    return ProviderResult(
        text=text,
        values={"skillCount": len(skills), "installedSkills": ", ".join(skill.slug for skill in skills)},
        data={
            "skills": [
                {"slug": s.slug, "name": s.name, "description": s.description, "version": s.version}
                for s in skills
            ]
        },
    )


def skill_instructions_for_context(
    ctx: ClawHubContext,
    message: str,
    recent_messages: list[str] | None = None,
) -> ProviderResult:
    """Instructions of the installed skill most relevant to the conversation."""
    skills = ctx.store.get_loaded_skills()
    if not skills:
        return ProviderResult()

    recent = " ".join((recent_messages or [])[-_RECENT_MESSAGES:])
    context = f"{message or ''} {recent}".lower()
    scored = sorted(
        ((calculate_skill_relevance(skill, context), skill) for skill in skills),
        key=lambda item: -item[0],
    )
    scored = [(score, skill) for score, skill in scored if score > 0]
    if not scored or scored[0][0] < _CONTEXT_MIN_SCORE:
        return ProviderResult()

    top_score, top_skill = scored[0]
    instructions = ctx.store.instructions_for(top_skill.slug)
    if not instructions:
        return ProviderResult()
    if len(instructions) > _CONTEXT_INSTRUCTIONS_CHARS:
        instructions = instructions[:_CONTEXT_INSTRUCTIONS_CHARS] + "\n\n...[truncated]"

    return ProviderResult(
        text=f"## Active Skill: {top_skill.name}\n\n{instructions}",
        values={"activeSkill": top_skill.slug, "skillName": top_skill.name, "relevanceScore": top_score},
        data={
            "activeSkill": {"slug": top_skill.slug, "name": top_skill.name, "score": top_score},
            "otherMatches": [{"slug": skill.slug, "score": score} for score, skill in scored[1:3]],
        },
    )


async def catalog_awareness(ctx: ClawHubContext, message: str) -> ProviderResult:
    """Category overview of the cached catalog, only for capability questions."""
    text = (message or "").lower()
    if not any(keyword in text for keyword in _CAPABILITY_KEYWORDS):
        return ProviderResult()

    catalog = await ctx.catalog.get_catalog_med_res(CACHE_ONLY)
    if not catalog:
        return ProviderResult()

    categories = group_by_category(catalog)
    lines = []
    for category, skills in list(categories.items())[:8]:
        names = ", ".join(skill["name"] for skill in skills[:3])
        more = f" +{len(skills) - 3} more" if len(skills) > 3 else ""
        lines.append(f"- **{category}**: {names}{more}")

    return ProviderResult(
        text="## Available Skill Categories\n\n" + "\n".join(lines) + "\n\nUse GET_SKILL_GUIDANCE to find and use any skill.",
        data={"categories": categories},
    )


async def describe_skill(
    ctx: ClawHubContext,
    slug: str,
    env_lookup: Callable[[str], str | None] = os.environ.get,
) -> ProviderResult | None:
    """Compact detail card for one registry skill, ``None`` if it does not exist."""
    details = await ctx.registry.get_skill_details(slug)
    if details is None:
        return None
    installed = ctx.store.get_loaded_skill(details.slug or slug)

    lines = [
        f"{details.display_name} ({details.slug})",
        f"Version: {details.latest_version.version} | Status: {'Installed' if installed else 'Not installed'}",
    ]
    if details.owner:
        lines.append(f"Author: {details.owner.display_name} (@{details.owner.handle})")
    lines.append(f"Stats: {details.stats.downloads} downloads, {details.stats.stars} stars")
    text = "\n".join(lines) + f"\n\n{details.summary}\n"

    tags = [tag for tag in details.tags if tag != "latest"]
    if tags:
        text += f"\nTags: {', '.join(tags)}\n"

    requirements = extract_requirements(details.summary)
    if requirements:
        text += "\nRequires:\n"
        for name in requirements:
            text += f"- {name}: {'set' if env_lookup(name) else 'NOT SET'}\n"

    if installed and installed.script_names:
        text += f"\nCommands: {', '.join(installed.script_names)}\n"

    changelog = details.latest_version.changelog
    if changelog:
        suffix = "..." if len(changelog) > _CHANGELOG_CHARS else ""
        text += f"\nChangelog: {changelog[:_CHANGELOG_CHARS]}{suffix}\n"

    if not installed:
        text += f'\nSay "install {details.slug or slug}" to use.'

    return ProviderResult(
        text=text,
        values={"slug": details.slug, "installed": installed is not None},
        data={"skill": details, "installed": installed is not None, "requirements": requirements},
    )
