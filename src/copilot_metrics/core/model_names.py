"""Model display-name normalization.

Maps vendor display names ("Claude Sonnet 4.5", "GPT-4.1") onto the canonical
keys used by the classification table. Claude and Gemini names reorder
family and version; other families are slugged as-is.
"""

import re

_WHITESPACE = re.compile(r"\s+")
_PREFIX_FAMILIES = re.compile(r"^(?:GPT-|Grok\s+|Raptor\s+)", re.IGNORECASE)
_CLAUDE = re.compile(r"^Claude\s+(Haiku|Sonnet|Opus)\s+([0-9]+(?:\.[0-9]+)?)$", re.IGNORECASE)
_GEMINI = re.compile(r"^Gemini\s+([0-9]+(?:\.[0-9]+)?)\s+(Pro|Flash)$", re.IGNORECASE)


def _slug(name: str) -> str:
    return _WHITESPACE.sub("-", name.strip().lower())


def _pad_version(version: str) -> str:
    # "4" -> "4.0"; "4.5" unchanged
    return f"{version}.0" if version.isdigit() else version


def _claude_key(match: re.Match) -> str:
    family = match.group(1).lower()
    version = _pad_version(match.group(2))
    if family == "opus":
        return f"claude-opus-{version}"
    return f"claude-{version}-{family}"


def _gemini_key(match: re.Match) -> str:
    version = _pad_version(match.group(1))
    return f"gemini-{version}-{match.group(2).lower()}"


def normalize_display_name(display_name: str | None) -> str:
    """Canonical table key for a display name. First matching rule wins.

    Examples:
        "GPT-4.1" -> "gpt-4.1"
        "Grok Code Fast 1" -> "grok-code-fast-1"
        "Claude Sonnet 4" -> "claude-4.0-sonnet"
        "Claude Opus 4.1" -> "claude-opus-4.1"
        "Gemini 2 Pro" -> "gemini-2.0-pro"
        "Some New Model" -> "some-new-model"
    """
    name = str(display_name or "").strip()

    if _PREFIX_FAMILIES.match(name):
        return _slug(name)

    claude = _CLAUDE.match(name)
    if claude:
        return _claude_key(claude)

    gemini = _GEMINI.match(name)
    if gemini:
        return _gemini_key(gemini)

    return _slug(name)


def model_display_label(model_key: str) -> str:
    """Short display label for a lowercased model key.

    Examples:
        "unknown" -> "Unknown Model"
        "claude-4.5-sonnet" -> "Claude 4.5 sonnet"
    """
    if model_key == "unknown":
        return "Unknown Model"
    if not model_key:
        return ""
    return model_key[0].upper() + model_key[1:].replace("-", " ")
