"""Language rollups: per-language stats, language x feature LOC impact, daily charts."""

from dataclasses import dataclass, field
from typing import TypedDict

from copilot_metrics.core.date_filters import day_sort_key
from copilot_metrics.core.records import LanguageFeatureTotals
from copilot_metrics.core.usage_stats import ranked

TOP_LANGUAGES = 10


class LanguageStatsRow(TypedDict):
    language: str
    total_generations: int
    total_acceptances: int
    total_engagements: int
    unique_users: int
    loc_added: int
    loc_deleted: int
    loc_suggested_to_add: int
    loc_suggested_to_delete: int


class LanguageFeatureImpactRow(TypedDict):
    language: str
    total: int
    features: dict[str, int]


class LanguageFeatureImpact(TypedDict):
    rows: list[LanguageFeatureImpactRow]
    features: list[str]


class DailyLanguageChart(TypedDict):
    dates: list[str]
    languages: list[str]
    data: dict[str, dict[str, int]]
    totals: dict[str, int]


def is_unknown_language(language: str) -> bool:
    """True for blank names and the literal "unknown" in any case."""
    return not language.strip() or language.strip().lower() == "unknown"


# ─── Language Stats ───────────────────────────────────────────────────────────


@dataclass
class _LanguageTotals:
    generations: int = 0
    acceptances: int = 0
    loc_added: int = 0
    loc_deleted: int = 0
    loc_suggested_to_add: int = 0
    loc_suggested_to_delete: int = 0
    users: set[int] = field(default_factory=set)

    def merge(self, other: "_LanguageTotals") -> None:
        self.generations += other.generations
        self.acceptances += other.acceptances
        self.loc_added += other.loc_added
        self.loc_deleted += other.loc_deleted
        self.loc_suggested_to_add += other.loc_suggested_to_add
        self.loc_suggested_to_delete += other.loc_suggested_to_delete
        self.users.update(other.users)


@dataclass
class LanguageStatsAccumulator:
    languages: dict[str, _LanguageTotals] = field(default_factory=dict)

    def add_entry(self, user_id: int, entry: LanguageFeatureTotals) -> None:
        totals = self.languages.setdefault(entry.language, _LanguageTotals())
        totals.generations += entry.code_generation_activity_count
        totals.acceptances += entry.code_acceptance_activity_count
        totals.loc_added += entry.loc_added_sum
        totals.loc_deleted += entry.loc_deleted_sum
        totals.loc_suggested_to_add += entry.loc_suggested_to_add_sum
        totals.loc_suggested_to_delete += entry.loc_suggested_to_delete_sum
        totals.users.add(user_id)

    def merge(self, other: "LanguageStatsAccumulator") -> None:
        for language, totals in other.languages.items():
            self.languages.setdefault(language, _LanguageTotals()).merge(totals)

    def build(self) -> list[LanguageStatsRow]:
        rows: list[LanguageStatsRow] = [
            {
                "language": language,
                "total_generations": t.generations,
                "total_acceptances": t.acceptances,
                "total_engagements": t.generations + t.acceptances,
                "unique_users": len(t.users),
                "loc_added": t.loc_added,
                "loc_deleted": t.loc_deleted,
                "loc_suggested_to_add": t.loc_suggested_to_add,
                "loc_suggested_to_delete": t.loc_suggested_to_delete,
            }
            for language, t in self.languages.items()
        ]
        rows.sort(key=lambda r: (-r["total_engagements"], r["language"]))
        return rows


# ─── Language x Feature Impact and Daily Charts ───────────────────────────────


@dataclass
class LanguageImpactAccumulator:
    """LOC impact per language and feature, plus daily per-language series.

    The language x feature table always skips unknown and blank languages;
    the daily series take whatever entries the caller feeds them.
    """

    feature_loc: dict[str, dict[str, int]] = field(default_factory=dict)
    daily_generations: dict[str, dict[str, int]] = field(default_factory=dict)
    daily_loc: dict[str, dict[str, int]] = field(default_factory=dict)

    def add_impact(self, entry: LanguageFeatureTotals) -> None:
        if is_unknown_language(entry.language):
            return
        features = self.feature_loc.setdefault(entry.language, {})
        features[entry.feature] = (
            features.get(entry.feature, 0) + entry.loc_added_sum + entry.loc_deleted_sum
        )

    def add_daily(self, day: str, entry: LanguageFeatureTotals) -> None:
        generations = self.daily_generations.setdefault(day, {})
        generations[entry.language] = generations.get(entry.language, 0) + entry.code_generation_activity_count
        loc = self.daily_loc.setdefault(day, {})
        loc[entry.language] = loc.get(entry.language, 0) + entry.loc_added_sum + entry.loc_deleted_sum

    def merge(self, other: "LanguageImpactAccumulator") -> None:
        for mine, theirs in (
            (self.feature_loc, other.feature_loc),
            (self.daily_generations, other.daily_generations),
            (self.daily_loc, other.daily_loc),
        ):
            for outer, counts in theirs.items():
                target = mine.setdefault(outer, {})
                for inner, value in counts.items():
                    target[inner] = target.get(inner, 0) + value

    def build_feature_impact(self) -> LanguageFeatureImpact:
        totals = {language: sum(features.values()) for language, features in self.feature_loc.items()}
        all_features = sorted({f for features in self.feature_loc.values() for f in features})
        rows: list[LanguageFeatureImpactRow] = [
            {
                "language": language,
                "total": totals[language],
                "features": {f: self.feature_loc[language].get(f, 0) for f in all_features},
            }
            for language in ranked(totals, TOP_LANGUAGES)
        ]
        return {"rows": rows, "features": all_features}

    @staticmethod
    def _chart(daily: dict[str, dict[str, int]]) -> DailyLanguageChart:
        totals: dict[str, int] = {}
        for counts in daily.values():
            for language, value in counts.items():
                totals[language] = totals.get(language, 0) + value
        languages = ranked(totals, TOP_LANGUAGES)
        dates = sorted(daily, key=day_sort_key)
        return {
            "dates": dates,
            "languages": languages,
            "data": {day: {lang: daily[day].get(lang, 0) for lang in languages} for day in dates},
            "totals": {lang: totals[lang] for lang in languages},
        }

    def build_daily_generations(self) -> DailyLanguageChart:
        return self._chart(self.daily_generations)

    def build_daily_loc(self) -> DailyLanguageChart:
        return self._chart(self.daily_loc)
