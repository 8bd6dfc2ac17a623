"""Feature adoption: distinct users per feature category."""

from dataclasses import dataclass, field
from typing import TypedDict

from copilot_metrics.core.features import (
    AGENT_FEATURES,
    CHAT_ASK,
    CHAT_EDIT,
    CHAT_FEATURES,
    CHAT_INLINE,
    CLI_FEATURES,
    CODE_COMPLETION,
    CODE_REVIEW,
)
from copilot_metrics.core.records import UsageRecord


class FeatureAdoption(TypedDict):
    total_users: int
    completion_users: int
    completion_only_users: int
    chat_users: int
    agent_mode_users: int
    ask_mode_users: int
    edit_mode_users: int
    inline_mode_users: int
    code_review_users: int
    cli_users: int
    advanced_users: int


@dataclass
class FeatureAdoptionAccumulator:
    """Per-user set of features touched.

    A feature entry counts when it has interactions or generations. Users are
    registered on every record so total_users covers everyone in range.
    """

    user_features: dict[int, set[str]] = field(default_factory=dict)

    def add_record(self, record: UsageRecord) -> None:
        features = self.user_features.setdefault(record.user_id, set())
        for entry in record.totals_by_feature:
            if entry.user_initiated_interaction_count > 0 or entry.code_generation_activity_count > 0:
                features.add(entry.feature)

    def merge(self, other: "FeatureAdoptionAccumulator") -> None:
        for user_id, features in other.user_features.items():
            self.user_features.setdefault(user_id, set()).update(features)

    def build(self) -> FeatureAdoption:
        adoption: FeatureAdoption = {
            "total_users": len(self.user_features),
            "completion_users": 0,
            "completion_only_users": 0,
            "chat_users": 0,
            "agent_mode_users": 0,
            "ask_mode_users": 0,
            "edit_mode_users": 0,
            "inline_mode_users": 0,
            "code_review_users": 0,
            "cli_users": 0,
            "advanced_users": 0,
        }
        for features in self.user_features.values():
            chat = not features.isdisjoint(CHAT_FEATURES)
            agent = not features.isdisjoint(AGENT_FEATURES)
            cli = not features.isdisjoint(CLI_FEATURES)
            completion = CODE_COMPLETION in features
            adoption["completion_users"] += completion
            adoption["chat_users"] += chat
            adoption["agent_mode_users"] += agent
            adoption["ask_mode_users"] += CHAT_ASK in features
            adoption["edit_mode_users"] += CHAT_EDIT in features
            adoption["inline_mode_users"] += CHAT_INLINE in features
            adoption["code_review_users"] += CODE_REVIEW in features
            adoption["cli_users"] += cli
            adoption["advanced_users"] += agent or cli
            adoption["completion_only_users"] += completion and not (chat or agent or cli)
        return adoption
