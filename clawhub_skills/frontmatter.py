"""SKILL.md header handling."""

from __future__ import annotations

import re
from typing import Any

import yaml

_HEADER_RE = re.compile(r"^---\n([\s\S]*?)\n---")
_LEADING_HEADER_RE = re.compile(r"^---[\s\S]*?---\n*")
_FIELDS = ("name", "description")
# Values starting with these need a real YAML parse to read.
_YAML_ONLY_PREFIXES = ("|", ">", '"', "'")


def _normalize_newlines(content: str) -> str:
    return (content or "").replace("\r\n", "\n").replace("\r", "\n")


def _load_yaml(block: str) -> dict[str, Any]:
    try:
        parsed = yaml.safe_load(block)
    except yaml.YAMLError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _line_value(block: str, key: str) -> str | None:
    match = re.search(rf"^{key}:[ \t]*(.+)$", block, re.MULTILINE)
    return match.group(1).strip() if match else None


def parse_manifest_header(content: str) -> dict[str, str]:
    """Return at most ``{"name", "description"}`` from the leading header block.

    A plain ``key: value`` line is taken verbatim, so ``name: yes`` stays
    ``"yes"`` and a ``#`` inside a description is kept. Quoted and block
    scalar values go through YAML.
    """
    match = _HEADER_RE.match(_normalize_newlines(content))
    if not match:
        return {}
    block = match.group(1)
    parsed: dict[str, Any] | None = None
    result: dict[str, str] = {}
    for key in _FIELDS:
        value = _line_value(block, key)
        if value is None or value.startswith(_YAML_ONLY_PREFIXES):
            if parsed is None:
                parsed = _load_yaml(block)
            loaded = parsed.get(key)
            value = loaded.strip() if isinstance(loaded, str) else value
        if value:
            result[key] = value
    return result


def strip_manifest_header(content: str) -> str:
    return _LEADING_HEADER_RE.sub("", _normalize_newlines(content), count=1).strip()
