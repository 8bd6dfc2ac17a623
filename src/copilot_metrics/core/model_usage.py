"""Model usage and Premium Request Unit (PRU) accounting.

PRUs for a model-feature entry are interactions x multiplier(model); the
dollar service value is PRUs x the table's service_value_rate. Sums are kept
unrounded and only rounded to 2 dp when rows are built.

Blank model names are accounted as "unknown" everywhere in this module.
"""

import math
from dataclasses import dataclass, field
from typing import TypedDict

from copilot_metrics.core.date_filters import day_sort_key
from copilot_metrics.core.features import CHAT_AGENT, DISTRIBUTION_KEYS
from copilot_metrics.core.model_names import model_display_label
from copilot_metrics.core.model_table import UNKNOWN_MODEL, ModelTable, normalize_model_key
from copilot_metrics.core.records import UsageRecord

HEATMAP_LEVELS = 5


class DailyModelUsageRow(TypedDict):
    date: str
    pru_models: int
    standard_models: int
    unknown_models: int
    total_prus: float
    service_value: float


class PruModelRow(TypedDict):
    name: str
    requests: int
    prus: float
    is_premium: bool
    multiplier: float


class DailyPruAnalysisRow(TypedDict):
    date: str
    pru_requests: int
    standard_requests: int
    pru_percentage: float
    total_prus: float
    service_value: float
    top_model: str
    top_model_prus: float
    top_model_is_premium: bool
    models: list[PruModelRow]


class AgentModeHeatmapRow(TypedDict):
    date: str
    agent_mode_requests: int
    unique_users: int
    intensity: int
    service_value: float


class ModelFeatureCounts(TypedDict):
    agent_mode: int
    ask_mode: int
    edit_mode: int
    inline_mode: int
    code_completion: int
    code_review: int
    other: int


class ModelFeatureDistributionRow(TypedDict):
    model: str
    model_display_name: str
    multiplier: float
    features: ModelFeatureCounts
    total_interactions: int
    total_prus: float
    service_value: float


class ModelDailyUsage(TypedDict):
    model: str
    total: int
    daily_data: dict[str, int]


class ModelBreakdown(TypedDict):
    premium_models: list[ModelDailyUsage]
    standard_models: list[ModelDailyUsage]
    dates: list[str]
    premium_total: int
    standard_total: int
    unknown_total: int


def model_key(model: str) -> str:
    """Lowercased model key; blank names become "unknown"."""
    return normalize_model_key(model) or UNKNOWN_MODEL


def _round2(value: float) -> float:
    return round(value, 2)


# ─── Accumulator ──────────────────────────────────────────────────────────────


@dataclass
class _DayUsage:
    pru_models: int = 0
    standard_models: int = 0
    unknown_models: int = 0
    total_prus: float = 0.0


@dataclass
class _ModelDay:
    requests: int = 0
    prus: float = 0.0


@dataclass
class _DayPru:
    pru_requests: int = 0
    standard_requests: int = 0
    total_prus: float = 0.0
    models: dict[str, _ModelDay] = field(default_factory=dict)


@dataclass
class _HeatmapDay:
    requests: int = 0
    users: set[int] = field(default_factory=set)
    total_prus: float = 0.0


@dataclass
class _Distribution:
    features: dict[str, int] = field(default_factory=dict)
    total_interactions: int = 0


@dataclass
class ModelUsageAccumulator:
    """Daily model usage, PRU analysis, agent heatmap and model x feature mix."""

    table: ModelTable
    daily_usage: dict[str, _DayUsage] = field(default_factory=dict)
    daily_pru: dict[str, _DayPru] = field(default_factory=dict)
    heatmap: dict[str, _HeatmapDay] = field(default_factory=dict)
    distribution: dict[str, _Distribution] = field(default_factory=dict)

    def add_record(self, record: UsageRecord) -> None:
        day = record.day
        for entry in record.totals_by_model_feature:
            key = model_key(entry.model)
            interactions = entry.user_initiated_interaction_count
            multiplier = self.table.multiplier(key)
            prus = interactions * multiplier

            usage = self.daily_usage.setdefault(day, _DayUsage())
            usage.total_prus += prus
            if key == UNKNOWN_MODEL:
                usage.unknown_models += interactions
            elif multiplier == 0:
                usage.standard_models += interactions
            else:
                usage.pru_models += interactions

            pru = self.daily_pru.setdefault(day, _DayPru())
            pru.total_prus += prus
            if multiplier == 0:
                pru.standard_requests += interactions
            else:
                pru.pru_requests += interactions
            model_day = pru.models.setdefault(key, _ModelDay())
            model_day.requests += interactions
            model_day.prus += prus

            if entry.feature == CHAT_AGENT:
                self.heatmap.setdefault(day, _HeatmapDay()).total_prus += prus

            dist = self.distribution.setdefault(key, _Distribution())
            dist.total_interactions += interactions
            dist.features[entry.feature] = dist.features.get(entry.feature, 0) + interactions

        # Agent requests and users come from the feature breakdown, PRUs from the model breakdown
        for feature in record.totals_by_feature:
            if feature.feature != CHAT_AGENT or feature.user_initiated_interaction_count <= 0:
                continue
            cell = self.heatmap.setdefault(day, _HeatmapDay())
            cell.requests += feature.user_initiated_interaction_count
            cell.users.add(record.user_id)

    def merge(self, other: "ModelUsageAccumulator") -> None:
        for day, theirs in other.daily_usage.items():
            mine = self.daily_usage.setdefault(day, _DayUsage())
            mine.pru_models += theirs.pru_models
            mine.standard_models += theirs.standard_models
            mine.unknown_models += theirs.unknown_models
            mine.total_prus += theirs.total_prus
        for day, theirs_pru in other.daily_pru.items():
            mine_pru = self.daily_pru.setdefault(day, _DayPru())
            mine_pru.pru_requests += theirs_pru.pru_requests
            mine_pru.standard_requests += theirs_pru.standard_requests
            mine_pru.total_prus += theirs_pru.total_prus
            for key, model_day in theirs_pru.models.items():
                target = mine_pru.models.setdefault(key, _ModelDay())
                target.requests += model_day.requests
                target.prus += model_day.prus
        for day, theirs_cell in other.heatmap.items():
            cell = self.heatmap.setdefault(day, _HeatmapDay())
            cell.requests += theirs_cell.requests
            cell.users.update(theirs_cell.users)
            cell.total_prus += theirs_cell.total_prus
        for key, theirs_dist in other.distribution.items():
            dist = self.distribution.setdefault(key, _Distribution())
            dist.total_interactions += theirs_dist.total_interactions
            for feature, count in theirs_dist.features.items():
                dist.features[feature] = dist.features.get(feature, 0) + count

    # ─── Row builders ─────────────────────────────────────────────────────

    def _service_value(self, prus: float) -> float:
        return _round2(prus * self.table.service_value_rate)

    def build_model_usage(self) -> list[DailyModelUsageRow]:
        return [
            {
                "date": day,
                "pru_models": usage.pru_models,
                "standard_models": usage.standard_models,
                "unknown_models": usage.unknown_models,
                "total_prus": _round2(usage.total_prus),
                "service_value": self._service_value(usage.total_prus),
            }
            for day, usage in sorted(self.daily_usage.items(), key=lambda item: day_sort_key(item[0]))
        ]

    def build_pru_analysis(self) -> list[DailyPruAnalysisRow]:
        rows: list[DailyPruAnalysisRow] = []
        for day in sorted(self.daily_pru, key=day_sort_key):
            pru = self.daily_pru[day]
            models: list[PruModelRow] = [
                {
                    "name": key,
                    "requests": model_day.requests,
                    "prus": _round2(model_day.prus),
                    "is_premium": self.table.is_premium(key),
                    "multiplier": self.table.multiplier(key),
                }
                for key, model_day in pru.models.items()
            ]
            models.sort(key=lambda m: (-m["prus"], -m["requests"], m["name"]))
            top = models[0] if models else None
            total_requests = pru.pru_requests + pru.standard_requests
            rows.append(
                {
                    "date": day,
                    "pru_requests": pru.pru_requests,
                    "standard_requests": pru.standard_requests,
                    "pru_percentage": (
                        _round2(pru.pru_requests / total_requests * 100) if total_requests > 0 else 0.0
                    ),
                    "total_prus": _round2(pru.total_prus),
                    "service_value": self._service_value(pru.total_prus),
                    "top_model": top["name"] if top else UNKNOWN_MODEL,
                    "top_model_prus": top["prus"] if top else 0.0,
                    "top_model_is_premium": top["is_premium"] if top else False,
                    "models": models,
                }
            )
        return rows

    def build_agent_heatmap(self) -> list[AgentModeHeatmapRow]:
        max_requests = max([cell.requests for cell in self.heatmap.values()] + [1])
        return [
            {
                "date": day,
                "agent_mode_requests": cell.requests,
                "unique_users": len(cell.users),
                "intensity": math.ceil(cell.requests / max_requests * HEATMAP_LEVELS),
                "service_value": self._service_value(cell.total_prus),
            }
            for day, cell in sorted(self.heatmap.items(), key=lambda item: day_sort_key(item[0]))
        ]

    def build_feature_distribution(self) -> list[ModelFeatureDistributionRow]:
        rows: list[ModelFeatureDistributionRow] = []
        for key, dist in self.distribution.items():
            if dist.total_interactions <= 0:
                continue
            multiplier = self.table.multiplier(key)
            total_prus = dist.total_interactions * multiplier
            counts = {column: 0 for column in DISTRIBUTION_KEYS.values()}
            for feature, column in DISTRIBUTION_KEYS.items():
                counts[column] += dist.features.get(feature, 0)
            known = sum(counts.values())
            features: ModelFeatureCounts = {
                "agent_mode": counts["agent_mode"],
                "ask_mode": counts["ask_mode"],
                "edit_mode": counts["edit_mode"],
                "inline_mode": counts["inline_mode"],
                "code_completion": counts["code_completion"],
                "code_review": counts["code_review"],
                "other": max(0, dist.total_interactions - known),
            }
            rows.append(
                {
                    "model": key,
                    "model_display_name": model_display_label(key),
                    "multiplier": multiplier,
                    "features": features,
                    "total_interactions": dist.total_interactions,
                    "total_prus": _round2(total_prus),
                    "service_value": self._service_value(total_prus),
                }
            )
        rows.sort(key=lambda r: (-r["total_prus"], r["model"]))
        return rows


# ─── Premium vs Standard Breakdown ────────────────────────────────────────────


@dataclass
class _ModelTotals:
    total: int = 0
    daily: dict[str, int] = field(default_factory=dict)

    def add(self, day: str, count: int) -> None:
        self.total += count
        self.daily[day] = self.daily.get(day, 0) + count


@dataclass
class ModelBreakdownAccumulator:
    """Daily requests per model split by exact table classification.

    Models the table does not list (no partial matching here) only add to
    unknown_total.
    """

    table: ModelTable
    premium: dict[str, _ModelTotals] = field(default_factory=dict)
    standard: dict[str, _ModelTotals] = field(default_factory=dict)
    unknown_total: int = 0
    dates: set[str] = field(default_factory=set)

    def add_record(self, record: UsageRecord) -> None:
        for entry in record.totals_by_model_feature:
            count = entry.user_initiated_interaction_count
            if not count:
                continue
            self.dates.add(record.day)
            key = normalize_model_key(entry.model)
            classification = self.table.classify(key)
            if classification is None:
                self.unknown_total += count
                continue
            bucket = self.premium if classification.is_premium else self.standard
            bucket.setdefault(key, _ModelTotals()).add(record.day, count)

    def merge(self, other: "ModelBreakdownAccumulator") -> None:
        for mine, theirs in ((self.premium, other.premium), (self.standard, other.standard)):
            for key, totals in theirs.items():
                target = mine.setdefault(key, _ModelTotals())
                for day, count in totals.daily.items():
                    target.add(day, count)
        self.unknown_total += other.unknown_total
        self.dates.update(other.dates)

    @staticmethod
    def _entries(models: dict[str, _ModelTotals]) -> list[ModelDailyUsage]:
        entries: list[ModelDailyUsage] = [
            {"model": key, "total": totals.total, "daily_data": dict(totals.daily)}
            for key, totals in models.items()
        ]
        entries.sort(key=lambda e: (-e["total"], e["model"]))
        return entries

    def build(self) -> ModelBreakdown:
        premium = self._entries(self.premium)
        standard = self._entries(self.standard)
        return {
            "premium_models": premium,
            "standard_models": standard,
            "dates": sorted(self.dates, key=day_sort_key),
            "premium_total": sum(e["total"] for e in premium),
            "standard_total": sum(e["total"] for e in standard),
            "unknown_total": self.unknown_total,
        }
