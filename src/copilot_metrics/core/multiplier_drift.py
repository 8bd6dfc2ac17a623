"""Drift check between published model multipliers and the classification table.

The published list ({displayName, paidMultiplier} rows, usually scraped from
the Copilot docs) is normalized to table keys and compared. Zero-cost models
are not required to be listed, so rows without a nonzero paid multiplier are
skipped. Discrepancies are returned as data; the CLI maps them to an exit code.
"""

import json
import math
import re
from dataclasses import dataclass, field
from pathlib import Path

from copilot_metrics.core.model_names import normalize_display_name
from copilot_metrics.core.model_table import ModelTable, normalize_model_key

MULTIPLIER_TOLERANCE = 1e-9
REPORT_TITLE = "# Copilot model multiplier drift detected"

_OPENING_FENCE = re.compile(r"^```[^\n]*\n")
_CLOSING_FENCE = re.compile(r"\n```\s*$")


@dataclass(frozen=True)
class ExtractedModel:
    display_name: str
    paid_multiplier: float | None


@dataclass(frozen=True)
class MissingModel:
    key: str
    display_name: str
    expected: float


@dataclass(frozen=True)
class MismatchedModel:
    key: str
    display_name: str
    expected: float
    actual: float


@dataclass
class DriftReport:
    missing: list[MissingModel] = field(default_factory=list)
    mismatched: list[MismatchedModel] = field(default_factory=list)
    checked: int = 0

    @property
    def ok(self) -> bool:
        return not self.missing and not self.mismatched


# ─── Loading ──────────────────────────────────────────────────────────────────


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` fence, if present."""
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = _CLOSING_FENCE.sub("", _OPENING_FENCE.sub("", stripped, count=1)).strip()
    return stripped


def _to_multiplier(value: object) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def parse_extracted_models(text: str) -> list[ExtractedModel]:
    """Parse {"models": [{displayName, paidMultiplier}, ...]} JSON text.

    Raises json.JSONDecodeError for invalid JSON and ValueError when the
    document is not an object.
    """
    data = json.loads(strip_code_fences(text))
    if not isinstance(data, dict):
        raise ValueError("extracted models must be a JSON object with a 'models' list")
    rows = data.get("models") or []
    if not isinstance(rows, list):
        raise ValueError("'models' must be a list")
    return [
        ExtractedModel(
            display_name=str(row.get("displayName") or ""),
            paid_multiplier=_to_multiplier(row.get("paidMultiplier")),
        )
        for row in rows
        if isinstance(row, dict)
    ]


def load_extracted_models(path: str | Path) -> list[ExtractedModel]:
    return parse_extracted_models(Path(path).read_text(encoding="utf-8"))


# ─── Checking ─────────────────────────────────────────────────────────────────


def check_multipliers(extracted: list[ExtractedModel], table: ModelTable) -> DriftReport:
    """Compare every priced model against the table's exact entries."""
    report = DriftReport()
    for model in extracted:
        expected = model.paid_multiplier
        if not expected:
            continue
        report.checked += 1
        key = normalize_display_name(model.display_name)
        classification = table.classify(normalize_model_key(key))
        if classification is None:
            report.missing.append(MissingModel(key, model.display_name, expected))
        elif abs(classification.multiplier - expected) >= MULTIPLIER_TOLERANCE:
            report.mismatched.append(
                MismatchedModel(key, model.display_name, expected, classification.multiplier)
            )
    return report


def _number(value: float) -> str:
    return f"{value:g}"


def render_report(report: DriftReport, table_source: str) -> str:
    """Markdown report suitable for an automatically filed issue."""
    lines = [
        REPORT_TITLE,
        "",
        "This report was generated by comparing the published GitHub Docs **Model multipliers** "
        f"against `{table_source}`.",
        "",
    ]
    if report.missing:
        lines.append("## Missing premium models (non-zero paid multiplier)")
        lines.append("")
        for missing in report.missing:
            lines.append(
                f'- `{missing.key}` (docs: "{missing.display_name}") '
                f"expected multiplier: **{_number(missing.expected)}**"
            )
        lines.append("")
    if report.mismatched:
        lines.append("## Multiplier mismatches")
        lines.append("")
        for mismatch in report.mismatched:
            lines.append(
                f'- `{mismatch.key}` (docs: "{mismatch.display_name}") '
                f"expected: **{_number(mismatch.expected)}**, config: **{_number(mismatch.actual)}**"
            )
        lines.append("")
    lines.append("## Next steps")
    lines.append(f"- Update the model table (`{table_source}`) to match the docs.")
    lines.append("- If a mapping is incorrect, adjust `normalize_display_name` in `copilot_metrics.core.model_names`.")
    lines.append("")
    return "\n".join(lines)
