"""Feature names reported by the usage feed and the groupings built on them.

Pure constants module with no dependencies on other copilot_metrics modules.
"""

CODE_COMPLETION = "code_completion"
CHAT_ASK = "chat_panel_ask_mode"
CHAT_AGENT = "chat_panel_agent_mode"
CHAT_EDIT = "chat_panel_edit_mode"
CHAT_UNKNOWN = "chat_panel_unknown_mode"
CHAT_INLINE = "chat_inline"
AGENT_EDIT = "agent_edit"
CODE_REVIEW = "code_review"
CLI_AGENT = "cli_agent"


# [LAW:one-source-of-truth] Feature groupings shared by adoption and impact views.
CHAT_FEATURES = frozenset({CHAT_UNKNOWN, CHAT_ASK, CHAT_AGENT, CHAT_EDIT, CHAT_INLINE})
AGENT_FEATURES = frozenset({CHAT_AGENT, AGENT_EDIT})
CLI_FEATURES = frozenset({CLI_AGENT})

JOINED_IMPACT_FEATURES = frozenset({
    CODE_COMPLETION,
    CHAT_ASK,
    CHAT_EDIT,
    CHAT_INLINE,
    CHAT_AGENT,
    AGENT_EDIT,
})

# Chat sub-modes tracked per day: feature name -> row key prefix
CHAT_MODE_KEYS = {
    CHAT_ASK: "ask_mode",
    CHAT_AGENT: "agent_mode",
    CHAT_EDIT: "edit_mode",
    CHAT_INLINE: "inline_mode",
}

# Model-feature distribution columns; anything else lands in "other"
DISTRIBUTION_KEYS = {
    CHAT_AGENT: "agent_mode",
    CHAT_ASK: "ask_mode",
    CHAT_EDIT: "edit_mode",
    CHAT_INLINE: "inline_mode",
    CODE_COMPLETION: "code_completion",
    CODE_REVIEW: "code_review",
}


FEATURE_LABELS = {
    CHAT_EDIT: "Chat: Edit Mode",
    CHAT_ASK: "Chat: Ask Mode",
    CHAT_AGENT: "Chat: Agent Mode",
    CODE_COMPLETION: "Code Completion",
    CHAT_UNKNOWN: "Chat: Unknown Mode",
    CHAT_INLINE: "Chat: Inline",
    AGENT_EDIT: "Agent Edit",
    CODE_REVIEW: "Code Review",
    CLI_AGENT: "CLI Agent",
}


def feature_label(feature: str) -> str:
    """Human-readable label for a feature name; unknown names pass through."""
    return FEATURE_LABELS.get(feature, feature)
