"""IDE rollups and Copilot plugin-version spread."""

from dataclasses import dataclass, field
from typing import TypedDict

from copilot_metrics.core.records import COUNTER_FIELDS, IdeTotals

JETBRAINS_IDE = "intellij"
VSCODE_IDE = "vscode"
VSCODE_CHAT_PLUGIN = "copilot-chat"

# Pre-release builds are left out of the version spread
_JETBRAINS_EXCLUDED_SUFFIXES = ("-nightly",)
_VSCODE_EXCLUDED_SUFFIXES = ("-insider", "-nightly")


class IdeStatsRow(TypedDict):
    ide: str
    unique_users: int
    total_engagements: int
    total_generations: int
    total_acceptances: int
    loc_added: int
    loc_deleted: int
    loc_suggested_to_add: int
    loc_suggested_to_delete: int


class IdeSummary(TypedDict):
    ide_stats: list[IdeStatsRow]
    multi_ide_users_count: int
    total_unique_ide_users: int


class PluginVersionRow(TypedDict):
    version: str
    user_count: int
    usernames: list[str]


class PluginVersionAnalysis(TypedDict):
    jetbrains: list[PluginVersionRow]
    vscode: list[PluginVersionRow]
    total_unique_intellij_users: int
    total_unique_vscode_users: int


# ─── IDE Stats ────────────────────────────────────────────────────────────────


@dataclass
class _IdeTotals:
    users: set[int] = field(default_factory=set)
    counters: dict[str, int] = field(default_factory=lambda: dict.fromkeys(COUNTER_FIELDS, 0))


@dataclass
class IdeStatsAccumulator:
    ides: dict[str, _IdeTotals] = field(default_factory=dict)
    user_ides: dict[int, set[str]] = field(default_factory=dict)

    def add_entry(self, user_id: int, entry: IdeTotals) -> None:
        totals = self.ides.setdefault(entry.ide, _IdeTotals())
        totals.users.add(user_id)
        for name in COUNTER_FIELDS:
            totals.counters[name] += getattr(entry, name)
        self.user_ides.setdefault(user_id, set()).add(entry.ide)

    def merge(self, other: "IdeStatsAccumulator") -> None:
        for ide, theirs in other.ides.items():
            mine = self.ides.setdefault(ide, _IdeTotals())
            mine.users.update(theirs.users)
            for name, value in theirs.counters.items():
                mine.counters[name] += value
        for user_id, ides in other.user_ides.items():
            self.user_ides.setdefault(user_id, set()).update(ides)

    def build(self) -> IdeSummary:
        rows: list[IdeStatsRow] = [
            {
                "ide": ide,
                "unique_users": len(t.users),
                "total_engagements": t.counters["user_initiated_interaction_count"],
                "total_generations": t.counters["code_generation_activity_count"],
                "total_acceptances": t.counters["code_acceptance_activity_count"],
                "loc_added": t.counters["loc_added_sum"],
                "loc_deleted": t.counters["loc_deleted_sum"],
                "loc_suggested_to_add": t.counters["loc_suggested_to_add_sum"],
                "loc_suggested_to_delete": t.counters["loc_suggested_to_delete_sum"],
            }
            for ide, t in self.ides.items()
        ]
        rows.sort(key=lambda r: (-r["unique_users"], r["ide"]))
        return {
            "ide_stats": rows,
            "multi_ide_users_count": sum(1 for ides in self.user_ides.values() if len(ides) > 1),
            "total_unique_ide_users": len(self.user_ides),
        }


# ─── Plugin Versions ──────────────────────────────────────────────────────────


@dataclass
class PluginVersionAccumulator:
    """Distinct user logins per plugin version, JetBrains and VS Code chat only."""

    jetbrains: dict[str, set[str]] = field(default_factory=dict)
    vscode: dict[str, set[str]] = field(default_factory=dict)

    def add_entry(self, user_login: str, entry: IdeTotals) -> None:
        plugin = entry.last_known_plugin_version
        if plugin is None or not plugin.plugin_version:
            return
        version = plugin.plugin_version
        lowered = version.lower()
        if entry.ide == JETBRAINS_IDE and not lowered.endswith(_JETBRAINS_EXCLUDED_SUFFIXES):
            self.jetbrains.setdefault(version, set()).add(user_login)
        if (
            entry.ide == VSCODE_IDE
            and plugin.plugin == VSCODE_CHAT_PLUGIN
            and not lowered.endswith(_VSCODE_EXCLUDED_SUFFIXES)
        ):
            self.vscode.setdefault(version, set()).add(user_login)

    def merge(self, other: "PluginVersionAccumulator") -> None:
        for mine, theirs in ((self.jetbrains, other.jetbrains), (self.vscode, other.vscode)):
            for version, logins in theirs.items():
                mine.setdefault(version, set()).update(logins)

    @staticmethod
    def _rows(versions: dict[str, set[str]]) -> list[PluginVersionRow]:
        rows: list[PluginVersionRow] = [
            {"version": version, "user_count": len(logins), "usernames": sorted(logins)}
            for version, logins in versions.items()
        ]
        rows.sort(key=lambda r: (-r["user_count"], r["version"]))
        return rows

    def build(self) -> PluginVersionAnalysis:
        return {
            "jetbrains": self._rows(self.jetbrains),
            "vscode": self._rows(self.vscode),
            "total_unique_intellij_users": len(set().union(*self.jetbrains.values())),
            "total_unique_vscode_users": len(set().union(*self.vscode.values())),
        }
