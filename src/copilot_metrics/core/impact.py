"""Daily lines-of-code impact per feature category.

A user joins a category's daily user set only when that category's feature
entries carry nonzero LOC added or deleted on the record; interactions
alone do not count as impact.
"""

from dataclasses import dataclass, field
from typing import TypedDict

from copilot_metrics.core.date_filters import day_sort_key
from copilot_metrics.core.features import (
    AGENT_FEATURES,
    CHAT_ASK,
    CHAT_EDIT,
    CHAT_INLINE,
    CLI_FEATURES,
    CODE_COMPLETION,
    JOINED_IMPACT_FEATURES,
)
from copilot_metrics.core.records import UsageRecord

# [LAW:one-source-of-truth] Category -> features whose LOC it sums.
IMPACT_CATEGORIES: dict[str, frozenset[str]] = {
    "agent": AGENT_FEATURES,
    "code_completion": frozenset({CODE_COMPLETION}),
    "edit_mode": frozenset({CHAT_EDIT}),
    "inline_mode": frozenset({CHAT_INLINE}),
    "ask_mode": frozenset({CHAT_ASK}),
    "cli": CLI_FEATURES,
    "joined": JOINED_IMPACT_FEATURES,
}


class ImpactRow(TypedDict):
    date: str
    loc_added: int
    loc_deleted: int
    net_change: int
    user_count: int
    total_unique_users: int


@dataclass
class _ImpactDay:
    loc_added: int = 0
    loc_deleted: int = 0
    user_ids: set[int] = field(default_factory=set)


def _empty_days() -> dict[str, dict[str, _ImpactDay]]:
    return {category: {} for category in IMPACT_CATEGORIES}


@dataclass
class ImpactAccumulator:
    """One daily LOC series per category; every record's day gets a row in each."""

    days: dict[str, dict[str, _ImpactDay]] = field(default_factory=_empty_days)
    all_users: set[int] = field(default_factory=set)

    def add_record(self, record: UsageRecord) -> None:
        self.all_users.add(record.user_id)
        for category, features in IMPACT_CATEGORIES.items():
            day = self.days[category].setdefault(record.day, _ImpactDay())
            added = deleted = 0
            active = False
            for entry in record.totals_by_feature:
                if entry.feature not in features:
                    continue
                if entry.loc_added_sum > 0 or entry.loc_deleted_sum > 0:
                    added += entry.loc_added_sum
                    deleted += entry.loc_deleted_sum
                    active = True
            if active:
                day.loc_added += added
                day.loc_deleted += deleted
                day.user_ids.add(record.user_id)

    def merge(self, other: "ImpactAccumulator") -> None:
        self.all_users.update(other.all_users)
        for category, series in other.days.items():
            mine = self.days[category]
            for date, theirs in series.items():
                day = mine.setdefault(date, _ImpactDay())
                day.loc_added += theirs.loc_added
                day.loc_deleted += theirs.loc_deleted
                day.user_ids.update(theirs.user_ids)

    def build(self, category: str) -> list[ImpactRow]:
        total_users = len(self.all_users)
        series = self.days[category]
        return [
            {
                "date": date,
                "loc_added": series[date].loc_added,
                "loc_deleted": series[date].loc_deleted,
                "net_change": series[date].loc_added - series[date].loc_deleted,
                "user_count": len(series[date].user_ids),
                "total_unique_users": total_users,
            }
            for date in sorted(series, key=day_sort_key)
        ]

    def build_all(self) -> dict[str, list[ImpactRow]]:
        return {category: self.build(category) for category in IMPACT_CATEGORIES}
