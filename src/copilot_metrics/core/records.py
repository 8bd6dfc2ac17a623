"""Typed usage records: one per user per day.

Frozen dataclasses with tuple breakdowns so a record can be shared by every
accumulator in an aggregation pass without risk of mutation. Construction
from raw JSON lives in record_parser; these types do no validation.
"""

from dataclasses import dataclass


# ─── Nested Breakdowns ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ActivityCounters:
    """Scalar counters shared by the record and every breakdown entry."""

    user_initiated_interaction_count: int = 0
    code_generation_activity_count: int = 0
    code_acceptance_activity_count: int = 0
    loc_added_sum: int = 0
    loc_deleted_sum: int = 0
    loc_suggested_to_add_sum: int = 0
    loc_suggested_to_delete_sum: int = 0

    @property
    def engagements(self) -> int:
        """Generation + acceptance activity, the ranking metric for top-N stats."""
        return self.code_generation_activity_count + self.code_acceptance_activity_count


COUNTER_FIELDS = (
    "user_initiated_interaction_count",
    "code_generation_activity_count",
    "code_acceptance_activity_count",
    "loc_added_sum",
    "loc_deleted_sum",
    "loc_suggested_to_add_sum",
    "loc_suggested_to_delete_sum",
)


@dataclass(frozen=True)
class PluginVersion:
    sampled_at: str
    plugin: str
    plugin_version: str


@dataclass(frozen=True)
class IdeTotals(ActivityCounters):
    ide: str = ""
    last_known_plugin_version: PluginVersion | None = None


@dataclass(frozen=True)
class FeatureTotals(ActivityCounters):
    feature: str = ""


@dataclass(frozen=True)
class LanguageFeatureTotals(ActivityCounters):
    language: str = ""
    feature: str = ""


@dataclass(frozen=True)
class LanguageModelTotals(ActivityCounters):
    language: str = ""
    model: str = ""


@dataclass(frozen=True)
class ModelFeatureTotals(ActivityCounters):
    model: str = ""
    feature: str = ""


# ─── Usage Record ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class UsageRecord(ActivityCounters):
    """Daily usage for one user.

    Breakdown totals are reported independently by the feed; summing a
    breakdown is not expected to reproduce the record-level counters.
    """

    day: str = ""
    user_id: int = 0
    user_login: str = ""
    enterprise_id: str = ""
    report_start_day: str = ""
    report_end_day: str = ""
    used_chat: bool = False
    used_agent: bool = False
    used_cli: bool = False
    totals_by_ide: tuple[IdeTotals, ...] = ()
    totals_by_feature: tuple[FeatureTotals, ...] = ()
    totals_by_language_feature: tuple[LanguageFeatureTotals, ...] = ()
    totals_by_language_model: tuple[LanguageModelTotals, ...] = ()
    totals_by_model_feature: tuple[ModelFeatureTotals, ...] = ()
