"""Diagnostic: does the per-feature LOC breakdown add up to the top-level totals?

The feed reports both independently and they are not guaranteed to agree.
This only reports the gap; aggregation never reconciles the two.
"""

from dataclasses import dataclass, field
from typing import Iterable

from copilot_metrics.core.date_filters import day_sort_key
from copilot_metrics.core.records import UsageRecord

UNKNOWN_FEATURE = "UNKNOWN_FEATURE"


@dataclass(frozen=True)
class FeatureLoc:
    feature: str
    added: int
    deleted: int


@dataclass(frozen=True)
class DayLocDrift:
    day: str
    top_added: int
    top_deleted: int
    features: tuple[FeatureLoc, ...]

    @property
    def feature_added(self) -> int:
        return sum(f.added for f in self.features)

    @property
    def feature_deleted(self) -> int:
        return sum(f.deleted for f in self.features)

    @property
    def added_diff(self) -> int:
        return self.feature_added - self.top_added

    @property
    def deleted_diff(self) -> int:
        return self.feature_deleted - self.top_deleted

    @property
    def matches(self) -> bool:
        return self.added_diff == 0 and self.deleted_diff == 0


@dataclass
class _DayTotals:
    added: int = 0
    deleted: int = 0
    features: dict[str, list[int]] = field(default_factory=dict)


def loc_drift(records: Iterable[UsageRecord]) -> list[DayLocDrift]:
    """Per-day comparison across all users, days ascending, features by name."""
    days: dict[str, _DayTotals] = {}
    for record in records:
        totals = days.setdefault(record.day, _DayTotals())
        totals.added += record.loc_added_sum
        totals.deleted += record.loc_deleted_sum
        for entry in record.totals_by_feature:
            sums = totals.features.setdefault(entry.feature or UNKNOWN_FEATURE, [0, 0])
            sums[0] += entry.loc_added_sum
            sums[1] += entry.loc_deleted_sum

    return [
        DayLocDrift(
            day=day,
            top_added=days[day].added,
            top_deleted=days[day].deleted,
            features=tuple(
                FeatureLoc(name, added, deleted)
                for name, (added, deleted) in sorted(days[day].features.items())
            ),
        )
        for day in sorted(days, key=day_sort_key)
    ]


def format_loc_drift(drift: Iterable[DayLocDrift]) -> str:
    """Plain-text report, one block per day."""
    lines: list[str] = []
    for day in drift:
        lines.append(f"Day: {day.day}")
        lines.append(f"  Top-level (all users): added={day.top_added}, deleted={day.top_deleted}")
        lines.append("  By feature (all users):")
        for feature in day.features:
            lines.append(f"    {feature.feature}: added={feature.added}, deleted={feature.deleted}")
        lines.append(f"  Sum by feature: added={day.feature_added}, deleted={day.feature_deleted}")
        if day.matches:
            lines.append("  OK: totals match top-level values")
        else:
            lines.append("  DRIFT: totals do NOT match top-level values")
            lines.append(f"    Difference: added={day.added_diff}, deleted={day.deleted_diff}")
        lines.append("")
    return "\n".join(lines)
