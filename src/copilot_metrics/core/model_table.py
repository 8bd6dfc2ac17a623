"""Model classification table: PRU multipliers and premium flags.

Pure computation module with no I/O beyond load_model_table(). The table is
an immutable value handed to the aggregator and the drift checker; nothing
here is process-wide mutable state.

Keep KNOWN_MODELS in sync with the Copilot pricing and entitlement docs.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, NamedTuple


class ModelTableError(ValueError):
    """Raised for a structurally invalid classification table."""


class ModelClassification(NamedTuple):
    """Cost classification for one model key."""

    multiplier: float
    is_premium: bool


@dataclass(frozen=True)
class KnownModel:
    name: str
    multiplier: float
    is_premium: bool


UNKNOWN_MODEL = "unknown"

# Dollar cost applied per Premium Request Unit.
SERVICE_VALUE_RATE = 0.04


# ─── Known Models ─────────────────────────────────────────────────────────────

KNOWN_MODELS: tuple[KnownModel, ...] = (
    # Included models (0 PRUs on paid plans)
    KnownModel("gpt-4.0", 0, False),
    KnownModel("gpt-4.1", 0, False),
    KnownModel("gpt-3.5", 0, False),
    KnownModel("gpt-4o", 0, False),
    KnownModel("gpt-4o-mini", 0, False),
    KnownModel("gpt-4o-latest", 0, False),
    KnownModel("gpt-5-mini", 0, False),
    KnownModel("grok-code-fast", 0, False),
    KnownModel("grok-code-fast-1", 0, False),
    # Premium models
    KnownModel("gpt-5", 1, True),
    KnownModel("gpt-5.0", 1, True),
    KnownModel("gpt-5.1", 1, True),
    KnownModel("gpt-5.0-codex", 1, True),
    KnownModel("gpt-5.1-codex", 1, True),
    KnownModel("gpt-5.1-codex-mini", 0.33, True),
    KnownModel("o3", 1, True),
    KnownModel("o3-mini", 0.33, True),
    KnownModel("o4-mini", 0.33, True),
    KnownModel("claude-3.5-sonnet", 1, True),
    KnownModel("claude-3.7-sonnet", 1, True),
    KnownModel("claude-3.7-sonnet-thought", 1.25, True),
    KnownModel("claude-4.0-sonnet", 1, True),
    KnownModel("claude-4.5-sonnet", 1, True),
    KnownModel("claude-opus-4", 10, True),
    KnownModel("claude-opus-4.1", 10, True),
    KnownModel("claude-haiku-4.5", 0.33, True),
    KnownModel("gemini-2.0-flash", 0.25, True),
    KnownModel("gemini-2.5-pro", 1, True),
    KnownModel("gemini-3.0-pro", 1, True),
    # Unknown usage is billed conservatively as premium
    KnownModel(UNKNOWN_MODEL, 1, True),
)


def normalize_model_key(name: str | None) -> str:
    """Lookup key for a model name: trimmed and lowercased."""
    return str(name or "").strip().lower()


# ─── Model Table ──────────────────────────────────────────────────────────────


class ModelTable:
    """Read-only lookup from lowercased model name to ModelClassification.

    Resolution for multiplier()/is_premium():
      1. exact key match
      2. first table key (table order, excluding "unknown") contained in the name
      3. the "unknown" entry
    classify() only does step 1.
    """

    def __init__(self, entries: Iterable[KnownModel], service_value_rate: float = SERVICE_VALUE_RATE):
        self._entries: tuple[KnownModel, ...] = tuple(entries)
        self.service_value_rate = float(service_value_rate)
        lookup: dict[str, ModelClassification] = {}
        for entry in self._entries:
            key = normalize_model_key(entry.name)
            if not key:
                raise ModelTableError("model table entry with blank name")
            classification = ModelClassification(float(entry.multiplier), bool(entry.is_premium))
            existing = lookup.get(key)
            if existing is not None and existing != classification:
                raise ModelTableError(
                    f"model {key!r} listed with conflicting classifications: {existing} vs {classification}"
                )
            lookup[key] = classification
        self._lookup = lookup

        unknown_count = sum(1 for e in self._entries if normalize_model_key(e.name) == UNKNOWN_MODEL)
        if unknown_count != 1:
            raise ModelTableError(f"model table needs exactly one {UNKNOWN_MODEL!r} entry, found {unknown_count}")
        unknown = lookup[UNKNOWN_MODEL]
        if unknown.multiplier == 0 or not unknown.is_premium:
            raise ModelTableError(f"{UNKNOWN_MODEL!r} entry must be premium with a nonzero multiplier")
        self._unknown = unknown
        # [LAW:one-source-of-truth] Partial matching walks the table in declaration order.
        self._partial_keys = tuple(k for k in lookup if k != UNKNOWN_MODEL)

    @property
    def entries(self) -> tuple[KnownModel, ...]:
        return self._entries

    @property
    def unknown(self) -> ModelClassification:
        return self._unknown

    def __len__(self) -> int:
        return len(self._lookup)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and normalize_model_key(name) in self._lookup

    def classify(self, name: str) -> ModelClassification | None:
        """Exact, case-insensitive lookup. None when the table has no entry."""
        return self._lookup.get(normalize_model_key(name))

    def resolve(self, name: str) -> ModelClassification:
        """Best-effort classification with partial matching and unknown fallback."""
        key = normalize_model_key(name)
        if not key:
            return self._unknown
        direct = self._lookup.get(key)
        if direct is not None:
            return direct
        for candidate in self._partial_keys:
            if candidate in key:
                return self._lookup[candidate]
        return self._unknown

    def multiplier(self, name: str) -> float:
        return self.resolve(name).multiplier

    def is_premium(self, name: str) -> bool:
        return self.resolve(name).is_premium

    def multipliers(self) -> dict[str, float]:
        return {key: c.multiplier for key, c in self._lookup.items()}


DEFAULT_MODEL_TABLE = ModelTable(KNOWN_MODELS)


def _entry_from_json(raw: object, index: int) -> KnownModel:
    if not isinstance(raw, dict):
        raise ModelTableError(f"entry {index}: expected an object")
    name = raw.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ModelTableError(f"entry {index}: missing name")
    multiplier = raw.get("multiplier")
    if isinstance(multiplier, bool) or not isinstance(multiplier, (int, float)):
        raise ModelTableError(f"entry {index} ({name}): multiplier must be a number")
    premium = raw.get("isPremium", raw.get("is_premium"))
    if not isinstance(premium, bool):
        raise ModelTableError(f"entry {index} ({name}): isPremium must be a boolean")
    return KnownModel(name, float(multiplier), premium)


def load_model_table(path: str | Path, service_value_rate: float = SERVICE_VALUE_RATE) -> ModelTable:
    """Load a classification table from JSON.

    Accepts a bare list of {name, multiplier, isPremium} objects or an object
    with a "models" list. OSError and JSONDecodeError propagate to the caller.
    """
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("models")
    if not isinstance(data, list):
        raise ModelTableError(f"{path}: expected a list of models")
    return ModelTable(
        (_entry_from_json(raw, i) for i, raw in enumerate(data)),
        service_value_rate=service_value_rate,
    )
