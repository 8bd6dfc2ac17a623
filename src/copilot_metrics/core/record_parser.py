"""NDJSON decoding and validation of usage records.

Every line is decoded independently: a bad line produces a ParseDiagnostic
and never affects its neighbours. Structural problems (no day, no user id,
old LOC schema) drop the record; bad counter values are coerced to 0.
"""

import json
import logging
import math
from dataclasses import dataclass, field
from typing import Iterable

from copilot_metrics.core.date_filters import parse_day
from copilot_metrics.core.records import (
    COUNTER_FIELDS,
    FeatureTotals,
    IdeTotals,
    LanguageFeatureTotals,
    LanguageModelTotals,
    ModelFeatureTotals,
    PluginVersion,
    UsageRecord,
)

logger = logging.getLogger(__name__)

_DEPRECATED_LOC_FIELDS = ("generated_loc_sum", "accepted_loc_sum")
_TRUE_STRINGS = frozenset({"true", "1"})
_PREVIEW_CHARS = 120


class RecordValidationError(ValueError):
    """A decoded line is not a usable usage record."""


@dataclass(frozen=True)
class ParseDiagnostic:
    line_number: int
    reason: str
    source: str = ""


@dataclass
class ParseResult:
    records: list[UsageRecord] = field(default_factory=list)
    diagnostics: list[ParseDiagnostic] = field(default_factory=list)


# ─── Field Coercion ───────────────────────────────────────────────────────────


def coerce_count(value: object) -> int:
    """Non-negative integer counter; anything unusable becomes 0."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value if value > 0 else 0
    if isinstance(value, float):
        if not math.isfinite(value) or value <= 0:
            return 0
        return int(value)
    if isinstance(value, str):
        try:
            parsed = float(value.strip())
        except ValueError:
            return 0
        return coerce_count(parsed)
    return 0


def coerce_flag(value: object) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return False


def coerce_text(value: object) -> str:
    if isinstance(value, str):
        return value
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value)


def _coerce_user_id(value: object) -> int:
    if isinstance(value, bool):
        raise RecordValidationError("user_id must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    if value is None:
        raise RecordValidationError("missing user_id")
    raise RecordValidationError(f"user_id must be an integer, got {value!r}")


def _counters(raw: dict) -> dict[str, int]:
    return {name: coerce_count(raw.get(name)) for name in COUNTER_FIELDS}


def _entries(raw: dict, key: str) -> list[dict]:
    # [LAW:dataflow-not-control-flow] Non-list breakdowns decode as empty; non-object items are dropped.
    value = raw.get(key)
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _plugin_version(raw: object) -> PluginVersion | None:
    if not isinstance(raw, dict):
        return None
    return PluginVersion(
        sampled_at=coerce_text(raw.get("sampled_at")),
        plugin=coerce_text(raw.get("plugin")),
        plugin_version=coerce_text(raw.get("plugin_version")),
    )


def _has_deprecated_schema(raw: dict) -> bool:
    if any(name in raw for name in _DEPRECATED_LOC_FIELDS):
        return True
    return any(
        name in item
        for item in _entries(raw, "totals_by_feature")
        for name in _DEPRECATED_LOC_FIELDS
    )


# ─── Record Decoding ──────────────────────────────────────────────────────────


def decode_record(raw: object) -> UsageRecord:
    """Build a UsageRecord from one decoded JSON value.

    Raises RecordValidationError when the value cannot be a usage record.
    """
    if not isinstance(raw, dict):
        raise RecordValidationError(f"expected a JSON object, got {type(raw).__name__}")
    if _has_deprecated_schema(raw):
        raise RecordValidationError("deprecated LOC fields (generated_loc_sum/accepted_loc_sum) are not supported")

    day = raw.get("day")
    if not isinstance(day, str) or not day.strip():
        raise RecordValidationError("missing day")
    if parse_day(day) is None:
        raise RecordValidationError(f"unparseable day {day!r}")

    user_id = _coerce_user_id(raw.get("user_id"))
    user_login = coerce_text(raw.get("user_login")) or str(user_id)

    return UsageRecord(
        day=day.strip(),
        user_id=user_id,
        user_login=user_login,
        enterprise_id=coerce_text(raw.get("enterprise_id")),
        report_start_day=coerce_text(raw.get("report_start_day")),
        report_end_day=coerce_text(raw.get("report_end_day")),
        used_chat=coerce_flag(raw.get("used_chat")),
        used_agent=coerce_flag(raw.get("used_agent")),
        used_cli=coerce_flag(raw.get("used_cli")),
        totals_by_ide=tuple(
            IdeTotals(
                ide=coerce_text(item.get("ide")),
                last_known_plugin_version=_plugin_version(item.get("last_known_plugin_version")),
                **_counters(item),
            )
            for item in _entries(raw, "totals_by_ide")
        ),
        totals_by_feature=tuple(
            FeatureTotals(feature=coerce_text(item.get("feature")), **_counters(item))
            for item in _entries(raw, "totals_by_feature")
        ),
        totals_by_language_feature=tuple(
            LanguageFeatureTotals(
                language=coerce_text(item.get("language")),
                feature=coerce_text(item.get("feature")),
                **_counters(item),
            )
            for item in _entries(raw, "totals_by_language_feature")
        ),
        totals_by_language_model=tuple(
            LanguageModelTotals(
                language=coerce_text(item.get("language")),
                model=coerce_text(item.get("model")),
                **_counters(item),
            )
            for item in _entries(raw, "totals_by_language_model")
        ),
        totals_by_model_feature=tuple(
            ModelFeatureTotals(
                model=coerce_text(item.get("model")),
                feature=coerce_text(item.get("feature")),
                **_counters(item),
            )
            for item in _entries(raw, "totals_by_model_feature")
        ),
        **_counters(raw),
    )


def decode_line(line: str | bytes) -> str:
    """Text of one raw line; bytes are decoded as UTF-8 and a leading BOM is dropped."""
    if isinstance(line, bytes):
        try:
            line = line.decode("utf-8")
        except UnicodeDecodeError as e:
            raise RecordValidationError(f"invalid UTF-8 at byte {e.start}") from e
    return line.lstrip("\ufeff")


def parse_line(line: str) -> UsageRecord:
    """Decode one NDJSON line. Raises RecordValidationError on any failure."""
    try:
        raw = json.loads(line)
    except json.JSONDecodeError as e:
        raise RecordValidationError(f"invalid JSON: {e.msg} (column {e.colno})") from e
    except RecursionError as e:
        raise RecordValidationError("JSON nested too deeply") from e
    return decode_record(raw)


def parse_lines(lines: Iterable[str | bytes], source: str = "") -> ParseResult:
    """Decode many lines; blank lines are skipped, bad ones become diagnostics.

    Byte lines are decoded one at a time, so an invalid byte only costs the
    line it sits on.
    """
    result = ParseResult()
    for line_number, line in enumerate(lines, start=1):
        try:
            text = decode_line(line).strip()
            if not text:
                continue
            result.records.append(parse_line(text))
        except RecordValidationError as e:
            diagnostic = ParseDiagnostic(line_number=line_number, reason=str(e), source=source)
            result.diagnostics.append(diagnostic)
            logger.warning(
                "skipping line %s%d: %s (%r)",
                f"{source}:" if source else "",
                line_number,
                diagnostic.reason,
                line[:_PREVIEW_CHARS],
            )
    return result


def parse_text(text: str, source: str = "") -> ParseResult:
    return parse_lines(text.splitlines(), source=source)
