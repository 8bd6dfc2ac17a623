"""Single-pass aggregation of usage records into every derived view.

aggregate() resolves the date window, then walks the records once and feeds
each in-window record to every accumulator. Accumulators are local to the
call; nothing is cached or shared between calls, so the same input and
options always give the same result.

MetricsAccumulator is exposed for callers that shard records: build one per
shard, merge() them, then build().
"""

import logging
from collections.abc import Iterable
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import TypedDict

from copilot_metrics.core.adoption import FeatureAdoption, FeatureAdoptionAccumulator
from copilot_metrics.core.date_filters import (
    day_sort_key,
    parse_day,
    resolve_window,
    validate_date_filter,
)
from copilot_metrics.core.ide_stats import (
    IdeStatsAccumulator,
    IdeStatsRow,
    PluginVersionAccumulator,
    PluginVersionAnalysis,
)
from copilot_metrics.core.impact import ImpactAccumulator, ImpactRow
from copilot_metrics.core.languages import (
    DailyLanguageChart,
    LanguageFeatureImpact,
    LanguageImpactAccumulator,
    LanguageStatsAccumulator,
    LanguageStatsRow,
    is_unknown_language,
)
from copilot_metrics.core.model_table import (
    DEFAULT_MODEL_TABLE,
    UNKNOWN_MODEL,
    ModelTable,
    normalize_model_key,
)
from copilot_metrics.core.model_usage import (
    AgentModeHeatmapRow,
    DailyModelUsageRow,
    DailyPruAnalysisRow,
    ModelBreakdown,
    ModelBreakdownAccumulator,
    ModelFeatureDistributionRow,
    ModelUsageAccumulator,
)
from copilot_metrics.core.records import COUNTER_FIELDS, UsageRecord
from copilot_metrics.core.usage_stats import (
    ChatAccumulator,
    DailyChatRequestsRow,
    DailyChatUsersRow,
    DailyEngagementRow,
    EngagementAccumulator,
    MetricsStats,
    StatsAccumulator,
    UserSummary,
    UserSummaryAccumulator,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AggregationOptions:
    date_filter: str = "all"
    remove_unknown_languages: bool = False

    def __post_init__(self):
        validate_date_filter(self.date_filter)


@dataclass
class AggregatedMetrics:
    """Every derived view produced by one aggregation pass."""

    stats: MetricsStats
    user_summaries: list[UserSummary]
    engagement_data: list[DailyEngagementRow]
    chat_users_data: list[DailyChatUsersRow]
    chat_requests_data: list[DailyChatRequestsRow]
    language_stats: list[LanguageStatsRow]
    model_usage_data: list[DailyModelUsageRow]
    pru_analysis_data: list[DailyPruAnalysisRow]
    agent_mode_heatmap_data: list[AgentModeHeatmapRow]
    model_feature_distribution_data: list[ModelFeatureDistributionRow]
    model_breakdown_data: ModelBreakdown
    feature_adoption_data: FeatureAdoption
    agent_impact_data: list[ImpactRow]
    code_completion_impact_data: list[ImpactRow]
    edit_mode_impact_data: list[ImpactRow]
    inline_mode_impact_data: list[ImpactRow]
    ask_mode_impact_data: list[ImpactRow]
    cli_impact_data: list[ImpactRow]
    joined_impact_data: list[ImpactRow]
    ide_stats: list[IdeStatsRow]
    multi_ide_users_count: int
    total_unique_ide_users: int
    plugin_version_data: PluginVersionAnalysis
    language_feature_impact_data: LanguageFeatureImpact
    daily_language_generations_data: DailyLanguageChart
    daily_language_loc_data: DailyLanguageChart

    def to_dict(self) -> dict:
        return asdict(self)


# ─── Accumulator Bundle ───────────────────────────────────────────────────────


@dataclass
class MetricsAccumulator:
    """All per-view accumulators for one pass (or one shard of a pass)."""

    table: ModelTable = DEFAULT_MODEL_TABLE
    remove_unknown_languages: bool = False
    stats: StatsAccumulator = field(default_factory=StatsAccumulator)
    users: UserSummaryAccumulator = field(default_factory=UserSummaryAccumulator)
    engagement: EngagementAccumulator = field(default_factory=EngagementAccumulator)
    chat: ChatAccumulator = field(default_factory=ChatAccumulator)
    languages: LanguageStatsAccumulator = field(default_factory=LanguageStatsAccumulator)
    language_impact: LanguageImpactAccumulator = field(default_factory=LanguageImpactAccumulator)
    adoption: FeatureAdoptionAccumulator = field(default_factory=FeatureAdoptionAccumulator)
    impact: ImpactAccumulator = field(default_factory=ImpactAccumulator)
    ides: IdeStatsAccumulator = field(default_factory=IdeStatsAccumulator)
    plugins: PluginVersionAccumulator = field(default_factory=PluginVersionAccumulator)
    model_usage: ModelUsageAccumulator = field(init=False)
    model_breakdown: ModelBreakdownAccumulator = field(init=False)

    def __post_init__(self):
        self.model_usage = ModelUsageAccumulator(self.table)
        self.model_breakdown = ModelBreakdownAccumulator(self.table)

    def add_record(self, record: UsageRecord) -> None:
        self.stats.add_record(record)
        self.users.add_record(record)
        self.engagement.add_record(record)
        self.chat.add_record(record)
        self.adoption.add_record(record)
        self.impact.add_record(record)
        self.model_usage.add_record(record)
        self.model_breakdown.add_record(record)

        for ide_entry in record.totals_by_ide:
            self.ides.add_entry(record.user_id, ide_entry)
            self.plugins.add_entry(record.user_login, ide_entry)

        for language_entry in record.totals_by_language_feature:
            self.language_impact.add_impact(language_entry)
            if self.remove_unknown_languages and is_unknown_language(language_entry.language):
                continue
            self.stats.add_language(language_entry.language, language_entry.engagements)
            self.languages.add_entry(record.user_id, language_entry)
            self.language_impact.add_daily(record.day, language_entry)

    def merge(self, other: "MetricsAccumulator") -> None:
        """Fold in an accumulator built over a disjoint set of records."""
        if other.table is not self.table or other.remove_unknown_languages != self.remove_unknown_languages:
            raise ValueError("cannot merge accumulators built with different tables or options")
        self.stats.merge(other.stats)
        self.users.merge(other.users)
        self.engagement.merge(other.engagement)
        self.chat.merge(other.chat)
        self.languages.merge(other.languages)
        self.language_impact.merge(other.language_impact)
        self.adoption.merge(other.adoption)
        self.impact.merge(other.impact)
        self.ides.merge(other.ides)
        self.plugins.merge(other.plugins)
        self.model_usage.merge(other.model_usage)
        self.model_breakdown.merge(other.model_breakdown)

    def build(self) -> AggregatedMetrics:
        impact = self.impact.build_all()
        ides = self.ides.build()
        return AggregatedMetrics(
            stats=self.stats.build(),
            user_summaries=self.users.build(),
            engagement_data=self.engagement.build(),
            chat_users_data=self.chat.build_users(),
            chat_requests_data=self.chat.build_requests(),
            language_stats=self.languages.build(),
            model_usage_data=self.model_usage.build_model_usage(),
            pru_analysis_data=self.model_usage.build_pru_analysis(),
            agent_mode_heatmap_data=self.model_usage.build_agent_heatmap(),
            model_feature_distribution_data=self.model_usage.build_feature_distribution(),
            model_breakdown_data=self.model_breakdown.build(),
            feature_adoption_data=self.adoption.build(),
            agent_impact_data=impact["agent"],
            code_completion_impact_data=impact["code_completion"],
            edit_mode_impact_data=impact["edit_mode"],
            inline_mode_impact_data=impact["inline_mode"],
            ask_mode_impact_data=impact["ask_mode"],
            cli_impact_data=impact["cli"],
            joined_impact_data=impact["joined"],
            ide_stats=ides["ide_stats"],
            multi_ide_users_count=ides["multi_ide_users_count"],
            total_unique_ide_users=ides["total_unique_ide_users"],
            plugin_version_data=self.plugins.build(),
            language_feature_impact_data=self.language_impact.build_feature_impact(),
            daily_language_generations_data=self.language_impact.build_daily_generations(),
            daily_language_loc_data=self.language_impact.build_daily_loc(),
        )


# ─── Entry Points ─────────────────────────────────────────────────────────────


def _checked_records(records: object) -> tuple[UsageRecord, ...]:
    # [LAW:single-enforcer] Caller contract is checked once, before any accumulation.
    if isinstance(records, (str, bytes, bytearray, dict)) or not isinstance(records, Iterable):
        raise TypeError(f"records must be an iterable of UsageRecord, got {type(records).__name__}")
    checked = tuple(records)
    for index, record in enumerate(checked):
        if not isinstance(record, UsageRecord):
            raise TypeError(f"records[{index}] is {type(record).__name__}, expected UsageRecord")
    return checked


def _resolve_options(
    options: AggregationOptions | None,
    date_filter: str | None,
    remove_unknown_languages: bool | None,
) -> AggregationOptions:
    base = options or AggregationOptions()
    return AggregationOptions(
        date_filter=base.date_filter if date_filter is None else date_filter,
        remove_unknown_languages=(
            base.remove_unknown_languages if remove_unknown_languages is None else remove_unknown_languages
        ),
    )


def _in_window(record: UsageRecord, window: tuple[date, date] | None) -> bool:
    if window is None:
        return True
    day = parse_day(record.day)
    return day is not None and window[0] <= day <= window[1]


def select_records(records: Iterable[UsageRecord], date_filter: str = "all") -> list[UsageRecord]:
    """Records inside the date window, in input order."""
    checked = _checked_records(records)
    window = resolve_window(checked, date_filter)
    return [record for record in checked if _in_window(record, window)]


def aggregate(
    records: Iterable[UsageRecord],
    options: AggregationOptions | None = None,
    *,
    table: ModelTable = DEFAULT_MODEL_TABLE,
    date_filter: str | None = None,
    remove_unknown_languages: bool | None = None,
) -> AggregatedMetrics:
    """Aggregate usage records into every derived view.

    Keyword shortcuts override the matching fields of ``options``.
    Raises TypeError when ``records`` is not an iterable of UsageRecord and
    ValueError for an unknown date filter.
    """
    checked = _checked_records(records)
    resolved = _resolve_options(options, date_filter, remove_unknown_languages)
    window = resolve_window(checked, resolved.date_filter)

    accumulator = MetricsAccumulator(table=table, remove_unknown_languages=resolved.remove_unknown_languages)
    for record in checked:
        if _in_window(record, window):
            accumulator.add_record(record)

    result = accumulator.build()
    logger.debug(
        "aggregated %d of %d records (filter=%s window=%s users=%d)",
        result.stats["total_records"],
        len(checked),
        resolved.date_filter,
        f"{window[0]}..{window[1]}" if window else "all",
        result.stats["unique_users"],
    )
    return result


# ─── Per-User Detail ──────────────────────────────────────────────────────────


class PluginSample(TypedDict):
    plugin: str
    plugin_version: str
    sampled_at: str


@dataclass
class UserDetailedMetrics:
    user_id: int
    user_login: str
    total_standard_model_requests: int
    total_premium_model_requests: int
    feature_aggregates: list[dict]
    ide_aggregates: list[dict]
    language_feature_aggregates: list[dict]
    model_feature_aggregates: list[dict]
    plugin_versions: list[PluginSample]
    daily_pru_analysis: list[DailyPruAnalysisRow]
    daily_model_usage: list[DailyModelUsageRow]
    daily_combined_impact: list[ImpactRow]
    daily_agent_impact: list[ImpactRow]
    daily_ask_mode_impact: list[ImpactRow]
    daily_completion_impact: list[ImpactRow]
    daily_cli_impact: list[ImpactRow]
    days: list[UsageRecord]
    report_start_day: str
    report_end_day: str

    def to_dict(self) -> dict:
        return asdict(self)


def _sum_entries(entries: Iterable[object], key_fields: tuple[str, ...]) -> list[dict]:
    """Sum counters of breakdown entries sharing the same key fields."""
    rows: dict[tuple, dict] = {}
    for entry in entries:
        key = tuple(getattr(entry, name) for name in key_fields)
        row = rows.get(key)
        if row is None:
            row = rows[key] = {**dict(zip(key_fields, key)), **dict.fromkeys(COUNTER_FIELDS, 0)}
        for name in COUNTER_FIELDS:
            row[name] += getattr(entry, name)
    return list(rows.values())


def _sample_time(sampled_at: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(sampled_at.replace("Z", "+00:00"))
    except ValueError:
        return datetime.min
    # Compare naive and aware timestamps on the same footing
    return parsed.replace(tzinfo=None)


def _latest_plugin_samples(records: Iterable[UsageRecord]) -> list[PluginSample]:
    latest: dict[tuple[str, str], PluginSample] = {}
    for record in records:
        for ide_entry in record.totals_by_ide:
            plugin = ide_entry.last_known_plugin_version
            if plugin is None:
                continue
            key = (plugin.plugin, plugin.plugin_version)
            seen = latest.get(key)
            if seen is None or _sample_time(plugin.sampled_at) > _sample_time(seen["sampled_at"]):
                latest[key] = {
                    "plugin": plugin.plugin,
                    "plugin_version": plugin.plugin_version,
                    "sampled_at": plugin.sampled_at,
                }
    return sorted(latest.values(), key=lambda s: _sample_time(s["sampled_at"]), reverse=True)


def build_user_details(
    records: Iterable[UsageRecord],
    user_id: int,
    *,
    table: ModelTable = DEFAULT_MODEL_TABLE,
    date_filter: str = "all",
) -> UserDetailedMetrics:
    """Drill-down for one user over the (date-filtered) record set.

    Raises KeyError when no in-window record belongs to ``user_id``.
    """
    in_window = select_records(records, date_filter)
    user_records = sorted(
        (record for record in in_window if record.user_id == user_id),
        key=lambda record: day_sort_key(record.day),
    )
    if not user_records:
        raise KeyError(user_id)

    standard_requests = premium_requests = 0
    for record in user_records:
        for entry in record.totals_by_model_feature:
            key = normalize_model_key(entry.model)
            if not key or key == UNKNOWN_MODEL:
                continue
            if table.multiplier(key) == 0:
                standard_requests += entry.user_initiated_interaction_count
            else:
                premium_requests += entry.user_initiated_interaction_count

    per_user = aggregate(user_records, table=table)
    first = in_window[0]
    return UserDetailedMetrics(
        user_id=user_id,
        user_login=user_records[0].user_login,
        total_standard_model_requests=standard_requests,
        total_premium_model_requests=premium_requests,
        feature_aggregates=_sum_entries(
            (e for r in user_records for e in r.totals_by_feature), ("feature",)
        ),
        ide_aggregates=_sum_entries((e for r in user_records for e in r.totals_by_ide), ("ide",)),
        language_feature_aggregates=_sum_entries(
            (e for r in user_records for e in r.totals_by_language_feature), ("language", "feature")
        ),
        model_feature_aggregates=_sum_entries(
            (e for r in user_records for e in r.totals_by_model_feature), ("model", "feature")
        ),
        plugin_versions=_latest_plugin_samples(user_records),
        daily_pru_analysis=per_user.pru_analysis_data,
        daily_model_usage=per_user.model_usage_data,
        daily_combined_impact=per_user.joined_impact_data,
        daily_agent_impact=per_user.agent_impact_data,
        daily_ask_mode_impact=per_user.ask_mode_impact_data,
        daily_completion_impact=per_user.code_completion_impact_data,
        daily_cli_impact=per_user.cli_impact_data,
        days=user_records,
        report_start_day=first.report_start_day,
        report_end_day=first.report_end_day,
    )
