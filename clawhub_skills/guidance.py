"""Resolve a free-text request to the skill whose instructions answer it.

Resolution compares the best installed skill (a point score from slug, name
and description overlap) with the top registry search hit (relevance on a
0..1 scale). The registry is the default source; an installed skill wins only
when it is a genuine slug or name match and the registry hit, scaled onto the
local point range, does not beat it. A chosen registry skill that is not yet
installed gets installed on the spot.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from clawhub_skills.config import GuidanceConfig
from clawhub_skills.exceptions import RemoteError
from clawhub_skills.logging import get_logger
from clawhub_skills.models import InstalledSkill, SearchResult, is_valid_slug

if TYPE_CHECKING:
    from clawhub_skills.service import ClawHubContext

log = get_logger(__name__)

SOURCE_LOCAL = "local"
SOURCE_INSTALLED = "installed"

STOP_WORDS = frozenset({
    "search", "find", "look", "for", "a", "an", "the", "skill", "skills",
    "please", "can", "you", "help", "me", "with", "how", "to", "do", "i",
    "need", "want", "get", "use", "using", "about", "is", "are", "there",
    "any", "some", "show", "list", "give", "tell", "what", "which",
})
GENERIC_DESCRIPTION_WORDS = frozenset({
    "skill", "agent", "search", "install", "use", "when", "with", "from", "your",
})
TRUNCATION_MARKER = "\n\n...[See full skill for complete instructions]"

_PLATFORM_LOCATION_RE = re.compile(r"\b(on|in|from|at)\s+clawhub\b")
_PLATFORM_NAME_RE = re.compile(r"\bclawhub\s+(registry|platform|site|website|catalog)\b")
_NON_WORD_RE = re.compile(r"[^\w\s-]")


@dataclass
class LocalMatch:
    skill: InstalledSkill
    score: int


@dataclass
class GuidanceResult:
    success: bool
    text: str
    found: bool
    query: str
    source: str | None = None
    skill: dict[str, str] | None = None
    instructions: str | None = None
    installed: bool | None = None
    values: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "text": self.text,
            "values": dict(self.values),
            "data": {
                "found": self.found,
                "query": self.query,
                "source": self.source,
                "skill": self.skill,
                "instructions": self.instructions,
                "installed": self.installed,
            },
        }


def extract_search_terms(query: str) -> str:
    """Drop filler words and "on clawhub" style references from a request."""
    lowered = (query or "").lower()
    cleaned = _PLATFORM_NAME_RE.sub("", _PLATFORM_LOCATION_RE.sub("", lowered))
    words = [
        word
        for word in _NON_WORD_RE.sub(" ", cleaned).split()
        if len(word) > 1 and word not in STOP_WORDS
    ]
    return " ".join(words) or lowered


def score_local_skill(skill: InstalledSkill, query: str, weights: GuidanceConfig) -> int:
    query_lower = query.lower()
    query_words = [word for word in query_lower.split() if len(word) >= weights.min_query_word_length]

    def _mentioned(target: str) -> bool:
        if not target:
            return False
        if target in query_lower:
            return True
        return any(len(word) >= weights.min_fuzzy_word_length and word in target for word in query_words)

    score = 0
    if _mentioned(skill.slug.lower()):
        score += weights.slug_match_points
    if _mentioned(skill.name.lower()):
        score += weights.name_match_points

    for word in skill.description.lower().split():
        if (
            len(word) >= weights.min_description_word_length
            and word not in GENERIC_DESCRIPTION_WORDS
            and word in query_words
        ):
            score += weights.description_word_points
    return score


def find_best_local_match(
    skills: list[InstalledSkill],
    query: str,
    weights: GuidanceConfig,
) -> LocalMatch | None:
    """Highest scoring installed skill; the first one wins ties."""
    best: LocalMatch | None = None
    for skill in skills:
        score = score_local_skill(skill, query, weights)
        if score > 0 and (best is None or score > best.score):
            best = LocalMatch(skill=skill, score=score)
    return best


def choose_source(
    local: LocalMatch | None,
    remote: SearchResult | None,
    weights: GuidanceConfig,
) -> str | None:
    """Return ``"local"``, ``"remote"`` or ``None`` when nothing qualifies."""
    local_strong = local is not None and local.score >= weights.local_strong_threshold
    remote_confident = remote is not None and remote.score >= weights.remote_confidence_floor
    if not local_strong and not remote_confident:
        return None
    if local_strong and (not remote_confident or local.score >= remote.score * weights.remote_score_scale):
        return "local"
    return "remote"


def truncate_instructions(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + TRUNCATION_MARKER


def _success(
    ctx: ClawHubContext,
    skill: InstalledSkill,
    source: str,
    query: str,
) -> GuidanceResult:
    instructions = ctx.store.instructions_for(skill.slug)
    text = f"## {skill.name}\n\n"
    if source == SOURCE_INSTALLED:
        text += "*Skill installed from ClawHub*\n\n"
    text += f"{skill.description}\n\n"
    if instructions:
        text += f"### Instructions\n\n{truncate_instructions(instructions, ctx.config.guidance.max_instructions_chars)}"

    return GuidanceResult(
        success=True,
        text=text,
        found=True,
        query=query,
        source=source,
        skill={"slug": skill.slug, "name": skill.name, "description": skill.description},
        instructions=instructions,
        installed=True,
        values={"activeSkill": skill.slug, "skillName": skill.name, "skillSource": source},
    )


def _no_match(query: str) -> GuidanceResult:
    return GuidanceResult(
        success=True,
        text=f'I couldn\'t find a specific skill for "{query}". I\'ll do my best with my general knowledge.',
        found=False,
        query=query,
    )


async def resolve_guidance(ctx: ClawHubContext, query: str) -> GuidanceResult:
    """Pick, install if needed, and describe the skill that best answers ``query``.

    Never raises: degraded paths come back as results with ``found=False`` or
    ``installed=False``.
    """
    weights = ctx.config.guidance
    text = (query or "").strip()
    if len(text) < weights.min_query_chars:
        return GuidanceResult(success=False, text="Query too short.", found=False, query=text)

    terms = extract_search_terms(text)
    try:
        return await _resolve(ctx, terms, weights)
    except Exception as e:
        log.error("Guidance resolution failed", query=terms, error=str(e), error_type=type(e).__name__)
        return GuidanceResult(
            success=False,
            text=f"I encountered an issue finding skill guidance: {e}",
            found=False,
            query=terms,
        )


async def _resolve(ctx: ClawHubContext, terms: str, weights: GuidanceConfig) -> GuidanceResult:
    log.info("Resolving skill guidance", terms=terms)
    try:
        results = await ctx.registry.search(terms, weights.search_limit)
    except RemoteError as e:
        log.warning("Skill search failed; resolving from installed skills", error=str(e))
        results = []

    local = find_best_local_match(ctx.store.get_loaded_skills(), terms, weights)
    remote = results[0] if results else None
    log.info(
        "Guidance candidates",
        remote=remote.slug if remote else None,
        remote_score=remote.score if remote else 0,
        local=local.skill.slug if local else None,
        local_score=local.score if local else 0,
    )

    source = choose_source(local, remote, weights)
    if source is None:
        return _no_match(terms)
    if source == "local":
        log.info("Using installed skill", slug=local.skill.slug)
        return _success(ctx, local.skill, SOURCE_LOCAL, terms)

    existing = ctx.store.get_loaded_skill(remote.slug)
    if existing is not None:
        return _success(ctx, existing, SOURCE_LOCAL, terms)

    if is_valid_slug(remote.slug):
        installed = await ctx.store.install(remote.slug)
    else:
        log.warning("Registry returned an unusable slug", slug=remote.slug)
        installed = False

    skill = ctx.store.get_loaded_skill(remote.slug) if installed else None
    if skill is None:
        if local is not None:
            return _success(ctx, local.skill, SOURCE_LOCAL, terms)
        return GuidanceResult(
            success=True,
            text=f'Found "{remote.display_name}" skill but couldn\'t install it. I\'ll help with general knowledge.',
            found=True,
            query=terms,
            installed=False,
        )
    return _success(ctx, skill, SOURCE_INSTALLED, terms)
