"""Per-user and per-day usage accumulators.

Covers the headline stats, per-user summaries, daily engagement and the
daily chat-mode user/request series. Every accumulator is fed one record at
a time and can be merged with another accumulator of the same type built
over a disjoint shard of records.
"""

from dataclasses import dataclass, field
from typing import Mapping, TypedDict

from copilot_metrics.core.date_filters import day_sort_key
from copilot_metrics.core.features import CHAT_MODE_KEYS
from copilot_metrics.core.records import COUNTER_FIELDS, UsageRecord

NOT_AVAILABLE = "N/A"


class TopEngagement(TypedDict):
    name: str
    engagements: int


class TopIde(TypedDict):
    name: str
    entries: int


class MetricsStats(TypedDict):
    unique_users: int
    chat_users: int
    agent_users: int
    cli_users: int
    completion_only_users: int
    report_start_day: str
    report_end_day: str
    total_records: int
    top_language: TopEngagement
    top_ide: TopIde
    top_model: TopEngagement


class UserSummary(TypedDict):
    user_login: str
    user_id: int
    total_user_initiated_interactions: int
    total_code_generation_activities: int
    total_code_acceptance_activities: int
    total_loc_added: int
    total_loc_deleted: int
    total_loc_suggested_to_add: int
    total_loc_suggested_to_delete: int
    days_active: int
    used_chat: bool
    used_agent: bool
    used_cli: bool


class DailyEngagementRow(TypedDict):
    date: str
    active_users: int
    total_users: int
    engagement_percentage: float


class DailyChatUsersRow(TypedDict):
    date: str
    ask_mode_users: int
    agent_mode_users: int
    edit_mode_users: int
    inline_mode_users: int


class DailyChatRequestsRow(TypedDict):
    date: str
    ask_mode_requests: int
    agent_mode_requests: int
    edit_mode_requests: int
    inline_mode_requests: int


# Record counter -> UserSummary total key
USER_TOTAL_KEYS = {
    "user_initiated_interaction_count": "total_user_initiated_interactions",
    "code_generation_activity_count": "total_code_generation_activities",
    "code_acceptance_activity_count": "total_code_acceptance_activities",
    "loc_added_sum": "total_loc_added",
    "loc_deleted_sum": "total_loc_deleted",
    "loc_suggested_to_add_sum": "total_loc_suggested_to_add",
    "loc_suggested_to_delete_sum": "total_loc_suggested_to_delete",
}


def pick_top(values: Mapping[str, int]) -> tuple[str, int] | None:
    """Largest value; ties go to the alphabetically first key."""
    if not values:
        return None
    return min(values.items(), key=lambda item: (-item[1], item[0]))


def ranked(values: Mapping[str, float], limit: int | None = None) -> list[str]:
    """Keys ordered by value descending, then alphabetically."""
    keys = sorted(values, key=lambda key: (-values[key], key))
    return keys if limit is None else keys[:limit]


def percentage(part: int, total: int) -> float:
    return round(part / total * 100, 2) if total > 0 else 0.0


def _add_counts(target: dict[str, int], values: Mapping[str, int]) -> None:
    for key, value in values.items():
        target[key] = target.get(key, 0) + value


# ─── Stats ────────────────────────────────────────────────────────────────────


@dataclass
class _UsageFlags:
    used_chat: bool = False
    used_agent: bool = False
    used_cli: bool = False

    def update(self, used_chat: bool, used_agent: bool, used_cli: bool) -> None:
        self.used_chat = self.used_chat or used_chat
        self.used_agent = self.used_agent or used_agent
        self.used_cli = self.used_cli or used_cli


@dataclass
class StatsAccumulator:
    """Headline counts and top language/IDE/model.

    Languages are added through add_language() so the caller decides which
    language entries count (unknown-language exclusion).
    """

    users: dict[int, _UsageFlags] = field(default_factory=dict)
    language_engagements: dict[str, int] = field(default_factory=dict)
    ide_users: dict[str, set[int]] = field(default_factory=dict)
    model_engagements: dict[str, int] = field(default_factory=dict)
    total_records: int = 0
    report_start_day: str = ""
    report_end_day: str = ""

    def add_record(self, record: UsageRecord) -> None:
        if self.total_records == 0:
            self.report_start_day = record.report_start_day
            self.report_end_day = record.report_end_day
        self.total_records += 1
        self.users.setdefault(record.user_id, _UsageFlags()).update(
            record.used_chat, record.used_agent, record.used_cli
        )
        for ide_total in record.totals_by_ide:
            self.ide_users.setdefault(ide_total.ide, set()).add(record.user_id)
        for model_feature in record.totals_by_model_feature:
            self.model_engagements[model_feature.model] = (
                self.model_engagements.get(model_feature.model, 0) + model_feature.engagements
            )

    def add_language(self, language: str, engagements: int) -> None:
        self.language_engagements[language] = self.language_engagements.get(language, 0) + engagements

    def merge(self, other: "StatsAccumulator") -> None:
        if self.total_records == 0:
            self.report_start_day = other.report_start_day
            self.report_end_day = other.report_end_day
        self.total_records += other.total_records
        for user_id, flags in other.users.items():
            self.users.setdefault(user_id, _UsageFlags()).update(
                flags.used_chat, flags.used_agent, flags.used_cli
            )
        _add_counts(self.language_engagements, other.language_engagements)
        _add_counts(self.model_engagements, other.model_engagements)
        for ide, user_ids in other.ide_users.items():
            self.ide_users.setdefault(ide, set()).update(user_ids)

    def build(self) -> MetricsStats:
        flags = list(self.users.values())
        top_language = pick_top(self.language_engagements)
        top_ide = pick_top({ide: len(user_ids) for ide, user_ids in self.ide_users.items()})
        top_model = pick_top(self.model_engagements)
        return {
            "unique_users": len(self.users),
            "chat_users": sum(1 for f in flags if f.used_chat),
            "agent_users": sum(1 for f in flags if f.used_agent),
            "cli_users": sum(1 for f in flags if f.used_cli),
            "completion_only_users": sum(1 for f in flags if not f.used_chat and not f.used_agent),
            "report_start_day": self.report_start_day,
            "report_end_day": self.report_end_day,
            "total_records": self.total_records,
            "top_language": (
                {"name": top_language[0], "engagements": top_language[1]}
                if top_language
                else {"name": NOT_AVAILABLE, "engagements": 0}
            ),
            "top_ide": (
                {"name": top_ide[0], "entries": top_ide[1]}
                if top_ide
                else {"name": NOT_AVAILABLE, "entries": 0}
            ),
            "top_model": (
                {"name": top_model[0], "engagements": top_model[1]}
                if top_model
                else {"name": NOT_AVAILABLE, "engagements": 0}
            ),
        }


# ─── User Summaries ───────────────────────────────────────────────────────────


@dataclass
class _UserTotals:
    user_login: str
    totals: dict[str, int] = field(default_factory=lambda: dict.fromkeys(COUNTER_FIELDS, 0))
    days: set[str] = field(default_factory=set)
    flags: _UsageFlags = field(default_factory=_UsageFlags)


@dataclass
class UserSummaryAccumulator:
    users: dict[int, _UserTotals] = field(default_factory=dict)

    def add_record(self, record: UsageRecord) -> None:
        totals = self.users.get(record.user_id)
        if totals is None:
            totals = self.users[record.user_id] = _UserTotals(user_login=record.user_login)
        for name in COUNTER_FIELDS:
            totals.totals[name] += getattr(record, name)
        totals.days.add(record.day)
        totals.flags.update(record.used_chat, record.used_agent, record.used_cli)

    def merge(self, other: "UserSummaryAccumulator") -> None:
        for user_id, theirs in other.users.items():
            mine = self.users.get(user_id)
            if mine is None:
                mine = self.users[user_id] = _UserTotals(user_login=theirs.user_login)
            _add_counts(mine.totals, theirs.totals)
            mine.days.update(theirs.days)
            mine.flags.update(theirs.flags.used_chat, theirs.flags.used_agent, theirs.flags.used_cli)

    def build(self) -> list[UserSummary]:
        rows: list[UserSummary] = []
        for user_id, user in self.users.items():
            row: UserSummary = {
                "user_login": user.user_login,
                "user_id": user_id,
                "total_user_initiated_interactions": 0,
                "total_code_generation_activities": 0,
                "total_code_acceptance_activities": 0,
                "total_loc_added": 0,
                "total_loc_deleted": 0,
                "total_loc_suggested_to_add": 0,
                "total_loc_suggested_to_delete": 0,
                "days_active": len(user.days),
                "used_chat": user.flags.used_chat,
                "used_agent": user.flags.used_agent,
                "used_cli": user.flags.used_cli,
            }
            for name, key in USER_TOTAL_KEYS.items():
                row[key] = user.totals[name]
            rows.append(row)
        rows.sort(key=lambda r: (-r["total_user_initiated_interactions"], r["user_id"]))
        return rows


# ─── Daily Engagement ─────────────────────────────────────────────────────────


@dataclass
class EngagementAccumulator:
    daily_users: dict[str, set[int]] = field(default_factory=dict)
    all_users: set[int] = field(default_factory=set)

    def add_record(self, record: UsageRecord) -> None:
        self.daily_users.setdefault(record.day, set()).add(record.user_id)
        self.all_users.add(record.user_id)

    def merge(self, other: "EngagementAccumulator") -> None:
        for day, user_ids in other.daily_users.items():
            self.daily_users.setdefault(day, set()).update(user_ids)
        self.all_users.update(other.all_users)

    def build(self) -> list[DailyEngagementRow]:
        total = len(self.all_users)
        return [
            {
                "date": day,
                "active_users": len(self.daily_users[day]),
                "total_users": total,
                "engagement_percentage": percentage(len(self.daily_users[day]), total),
            }
            for day in sorted(self.daily_users, key=day_sort_key)
        ]


# ─── Daily Chat Modes ─────────────────────────────────────────────────────────


@dataclass
class _ChatDay:
    users: dict[str, set[int]] = field(
        default_factory=lambda: {mode: set() for mode in CHAT_MODE_KEYS.values()}
    )
    requests: dict[str, int] = field(
        default_factory=lambda: dict.fromkeys(CHAT_MODE_KEYS.values(), 0)
    )


@dataclass
class ChatAccumulator:
    """Ask/agent/edit/inline users and requests per day.

    Every record registers its day, so days without chat activity still
    produce a zero row.
    """

    days: dict[str, _ChatDay] = field(default_factory=dict)

    def add_record(self, record: UsageRecord) -> None:
        day = self.days.setdefault(record.day, _ChatDay())
        for feature in record.totals_by_feature:
            mode = CHAT_MODE_KEYS.get(feature.feature)
            if mode is None or feature.user_initiated_interaction_count <= 0:
                continue
            day.users[mode].add(record.user_id)
            day.requests[mode] += feature.user_initiated_interaction_count

    def merge(self, other: "ChatAccumulator") -> None:
        for date, theirs in other.days.items():
            mine = self.days.setdefault(date, _ChatDay())
            for mode, user_ids in theirs.users.items():
                mine.users[mode].update(user_ids)
            _add_counts(mine.requests, theirs.requests)

    def build_users(self) -> list[DailyChatUsersRow]:
        return [
            {
                "date": date,
                "ask_mode_users": len(self.days[date].users["ask_mode"]),
                "agent_mode_users": len(self.days[date].users["agent_mode"]),
                "edit_mode_users": len(self.days[date].users["edit_mode"]),
                "inline_mode_users": len(self.days[date].users["inline_mode"]),
            }
            for date in sorted(self.days, key=day_sort_key)
        ]

    def build_requests(self) -> list[DailyChatRequestsRow]:
        return [
            {
                "date": date,
                "ask_mode_requests": self.days[date].requests["ask_mode"],
                "agent_mode_requests": self.days[date].requests["agent_mode"],
                "edit_mode_requests": self.days[date].requests["edit_mode"],
                "inline_mode_requests": self.days[date].requests["inline_mode"],
            }
            for date in sorted(self.days, key=day_sort_key)
        ]
