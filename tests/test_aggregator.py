"""Unit tests for aggregator.py - the single-pass aggregation and its guarantees."""

import json

import pytest

from copilot_metrics.core.aggregator import (
    AggregationOptions,
    MetricsAccumulator,
    aggregate,
    build_user_details,
    select_records,
)
from copilot_metrics.core.model_table import DEFAULT_MODEL_TABLE, KNOWN_MODELS, ModelTable
from copilot_metrics.core.date_filters import DATE_RANGE_FILTERS


def _feature(name, **counters):
    return {"feature": name, **counters}


def _mixed_records(make_record):
    """Three users over several days with chat, agent, completion and CLI usage."""
    return [
        make_record(
            day="2024-01-05",
            user_id=1,
            used_chat=True,
            user_initiated_interaction_count=2,
            totals_by_ide=[{"ide": "vscode", "user_initiated_interaction_count": 2}],
            totals_by_feature=[_feature("chat_panel_ask_mode", user_initiated_interaction_count=2, loc_added_sum=3)],
            totals_by_language_feature=[{
                "language": "python",
                "feature": "chat_panel_ask_mode",
                "code_generation_activity_count": 2,
                "loc_added_sum": 3,
            }],
            totals_by_model_feature=[{"model": "o3", "feature": "chat_panel_ask_mode", "user_initiated_interaction_count": 2}],
        ),
        make_record(
            day="2024-01-22",
            user_id=2,
            used_agent=True,
            user_initiated_interaction_count=6,
            totals_by_ide=[{"ide": "vscode"}, {"ide": "intellij"}],
            totals_by_feature=[_feature("chat_panel_agent_mode", user_initiated_interaction_count=6, loc_added_sum=40, loc_deleted_sum=4)],
            totals_by_language_feature=[{
                "language": "go",
                "feature": "chat_panel_agent_mode",
                "code_generation_activity_count": 6,
                "code_acceptance_activity_count": 1,
                "loc_added_sum": 40,
            }],
            totals_by_model_feature=[{
                "model": "claude-opus-4",
                "feature": "chat_panel_agent_mode",
                "user_initiated_interaction_count": 6,
            }],
        ),
        make_record(
            day="2024-01-27",
            user_id=3,
            used_cli=True,
            totals_by_ide=[{"ide": "intellij"}],
            totals_by_feature=[
                _feature("code_completion", code_generation_activity_count=9, loc_added_sum=12),
                _feature("cli_agent", user_initiated_interaction_count=1, loc_added_sum=5),
            ],
            totals_by_language_feature=[{
                "language": "go",
                "feature": "code_completion",
                "code_generation_activity_count": 9,
                "loc_added_sum": 12,
            }],
            totals_by_model_feature=[{
                "model": "gpt-4.1",
                "feature": "code_completion",
                "code_generation_activity_count": 9,
            }],
        ),
        make_record(
            day="2024-01-28",
            user_id=1,
            used_agent=True,
            user_initiated_interaction_count=1,
            totals_by_feature=[_feature("agent_edit", user_initiated_interaction_count=1, loc_added_sum=2)],
        ),
    ]


# ─── Empty Input Tests ────────────────────────────────────────────────────────


def test_aggregate_empty_input():
    """No records gives zero counts, N/A tops and empty series."""
    result = aggregate([])
    assert result.stats["unique_users"] == 0
    assert result.stats["total_records"] == 0
    assert result.stats["top_language"] == {"name": "N/A", "engagements": 0}
    assert result.stats["top_ide"] == {"name": "N/A", "entries": 0}
    assert result.stats["top_model"] == {"name": "N/A", "engagements": 0}
    assert result.user_summaries == []
    assert result.joined_impact_data == []
    assert result.model_breakdown_data["dates"] == []
    assert result.language_feature_impact_data == {"rows": [], "features": []}
    assert result.daily_language_loc_data == {"dates": [], "languages": [], "data": {}, "totals": {}}
    assert result.plugin_version_data["total_unique_vscode_users"] == 0


# ─── Input Contract Tests ─────────────────────────────────────────────────────


@pytest.mark.parametrize("records", ["abc", b"abc", {"day": "2024-01-01"}, None, 5])
def test_aggregate_rejects_non_record_iterables(records):
    with pytest.raises(TypeError):
        aggregate(records)


def test_aggregate_rejects_raw_dicts_in_list(make_raw):
    """Raw export objects must be parsed before aggregation."""
    with pytest.raises(TypeError, match=r"records\[0\]"):
        aggregate([make_raw()])


def test_aggregate_rejects_unknown_date_filter(make_record):
    with pytest.raises(ValueError):
        aggregate([make_record()], date_filter="last3days")
    with pytest.raises(ValueError):
        AggregationOptions(date_filter="last3days")


def test_aggregate_accepts_generators(make_record):
    records = [make_record(user_id=1), make_record(user_id=2)]
    result = aggregate(record for record in records)
    assert result.stats["unique_users"] == 2


# ─── Properties ───────────────────────────────────────────────────────────────


def test_aggregate_is_idempotent(make_record):
    """Same input and options give identical output; nothing is cached between calls."""
    records = _mixed_records(make_record)
    first = aggregate(records, date_filter="last28days").to_dict()
    aggregate(records[:1])
    second = aggregate(records, date_filter="last28days").to_dict()
    assert first == second


def test_narrower_filters_never_grow_counts(make_record):
    """all >= last28days >= last14days >= last7days for records and users."""
    records = _mixed_records(make_record)
    results = {f: aggregate(records, date_filter=f).stats for f in DATE_RANGE_FILTERS}
    order = ["all", "last28days", "last14days", "last7days"]
    for wider, narrower in zip(order, order[1:]):
        assert results[wider]["total_records"] >= results[narrower]["total_records"]
        assert results[wider]["unique_users"] >= results[narrower]["unique_users"]


def test_date_filter_window(make_record):
    """last7days keeps only records within 7 days of the report end."""
    records = _mixed_records(make_record)
    result = aggregate(records, date_filter="last7days")
    assert result.stats["total_records"] == 3
    assert [row["date"] for row in result.engagement_data] == ["2024-01-22", "2024-01-27", "2024-01-28"]
    assert [r.day for r in select_records(records, "last7days")] == ["2024-01-22", "2024-01-27", "2024-01-28"]


def test_keyword_shortcuts_override_options(make_record):
    records = _mixed_records(make_record)
    options = AggregationOptions(date_filter="last7days")
    assert aggregate(records, options).stats["total_records"] == 3
    assert aggregate(records, options, date_filter="all").stats["total_records"] == 4


def test_unique_users_counts_distinct_ids(make_record):
    records = _mixed_records(make_record)
    result = aggregate(records)
    assert result.stats["unique_users"] == len({r.user_id for r in records}) == 3
    assert result.feature_adoption_data["total_users"] == 3


def test_user_partition_flags(make_record):
    """Flags are OR-ed across a user's days; completion-only means neither chat nor agent."""
    records = [
        make_record(user_id=1, used_chat=True),
        make_record(user_id=2, used_agent=True),
        make_record(user_id=3),
        make_record(user_id=4, used_cli=True),
        make_record(day="2024-01-02", user_id=3, used_chat=True),
    ]
    stats = aggregate(records).stats
    assert stats["chat_users"] == 2
    assert stats["agent_users"] == 1
    assert stats["cli_users"] == 1
    assert stats["completion_only_users"] == 1


def test_merged_shards_match_single_pass(make_record):
    """Accumulators over disjoint shards merge into the single-pass result."""
    records = _mixed_records(make_record)
    left = MetricsAccumulator()
    right = MetricsAccumulator()
    for record in records[:2]:
        left.add_record(record)
    for record in records[2:]:
        right.add_record(record)
    left.merge(right)
    assert left.build().to_dict() == aggregate(records).to_dict()


def test_merge_rejects_mismatched_options():
    with pytest.raises(ValueError):
        MetricsAccumulator().merge(MetricsAccumulator(remove_unknown_languages=True))
    with pytest.raises(ValueError):
        MetricsAccumulator().merge(MetricsAccumulator(table=ModelTable(KNOWN_MODELS)))


def test_to_dict_is_json_serializable(make_record):
    payload = json.dumps(aggregate(_mixed_records(make_record)).to_dict())
    assert '"unique_users": 3' in payload


# ─── Stats Tests ──────────────────────────────────────────────────────────────


def test_stats_report_bounds_and_tops(make_record):
    stats = aggregate(_mixed_records(make_record)).stats
    assert stats["report_start_day"] == "2024-01-01"
    assert stats["report_end_day"] == "2024-01-28"
    # go: 6 + 1 + 9 engagements beats python's 2
    assert stats["top_language"] == {"name": "go", "engagements": 16}
    # intellij and vscode both have 2 users; alphabetical tie-break
    assert stats["top_ide"] == {"name": "intellij", "entries": 2}
    assert stats["top_model"] == {"name": "gpt-4.1", "engagements": 9}


def test_top_model_uses_raw_model_name(make_record):
    record = make_record(totals_by_model_feature=[
        {"model": "GPT-4.1", "feature": "code_completion", "code_acceptance_activity_count": 3},
    ])
    assert aggregate([record]).stats["top_model"] == {"name": "GPT-4.1", "engagements": 3}


def test_unknown_languages_removed(make_record):
    """With the option on, unknown and blank languages vanish from language views."""
    record = make_record(totals_by_language_feature=[
        {"language": "unknown", "feature": "code_completion", "code_generation_activity_count": 4, "loc_added_sum": 1},
        {"language": "", "feature": "code_completion", "code_generation_activity_count": 2},
    ])
    removed = aggregate([record], remove_unknown_languages=True)
    assert removed.language_stats == []
    assert removed.stats["top_language"] == {"name": "N/A", "engagements": 0}
    assert removed.daily_language_generations_data["languages"] == []

    kept = aggregate([record])
    assert [row["language"] for row in kept.language_stats] == ["unknown", ""]
    assert kept.stats["top_language"] == {"name": "unknown", "engagements": 4}
    # The language x feature table never shows unknown languages
    assert kept.language_feature_impact_data["rows"] == []


# ─── Per-User and Daily Series Tests ──────────────────────────────────────────


def test_user_summaries(make_record):
    summaries = aggregate(_mixed_records(make_record)).user_summaries
    assert [s["user_id"] for s in summaries] == [2, 1, 3]
    user1 = summaries[1]
    assert user1["total_user_initiated_interactions"] == 3
    assert user1["days_active"] == 2
    assert user1["used_chat"] is True and user1["used_agent"] is True and user1["used_cli"] is False
    assert user1["user_login"] == "user1"


def test_user_summaries_tie_break_by_user_id(make_record):
    records = [make_record(user_id=9), make_record(user_id=4)]
    assert [s["user_id"] for s in aggregate(records).user_summaries] == [4, 9]


def test_engagement_percentages(make_record):
    records = [
        make_record(day="2024-01-01", user_id=1),
        make_record(day="2024-01-01", user_id=2),
        make_record(day="2024-01-02", user_id=1),
        make_record(day="2024-01-03", user_id=1),
        make_record(day="2024-01-03", user_id=2),
        make_record(day="2024-01-03", user_id=3),
    ]
    rows = aggregate(records).engagement_data
    assert [(r["date"], r["active_users"], r["engagement_percentage"]) for r in rows] == [
        ("2024-01-01", 2, 66.67),
        ("2024-01-02", 1, 33.33),
        ("2024-01-03", 3, 100.0),
    ]
    assert all(r["total_users"] == 3 for r in rows)


def test_chat_requests_for_agent_mode(make_record):
    """Three agent-mode interactions land in the agent column only."""
    record = make_record(totals_by_feature=[_feature("chat_panel_agent_mode", user_initiated_interaction_count=3)])
    result = aggregate([record])
    assert result.chat_requests_data == [{
        "date": "2024-01-01",
        "ask_mode_requests": 0,
        "agent_mode_requests": 3,
        "edit_mode_requests": 0,
        "inline_mode_requests": 0,
    }]
    assert result.chat_users_data == [{
        "date": "2024-01-01",
        "ask_mode_users": 0,
        "agent_mode_users": 1,
        "edit_mode_users": 0,
        "inline_mode_users": 0,
    }]


def test_chat_series_has_row_for_days_without_chat(make_record):
    records = [make_record(day="2024-01-02", totals_by_feature=[_feature("code_completion", code_generation_activity_count=1)])]
    assert aggregate(records).chat_requests_data[0]["date"] == "2024-01-02"
    assert aggregate(records).chat_users_data[0]["ask_mode_users"] == 0


def test_o3_interactions_cost(make_record):
    """Ten o3 interactions are ten PRUs worth $0.40."""
    record = make_record(totals_by_model_feature=[
        {"model": "o3", "feature": "chat_panel_agent_mode", "user_initiated_interaction_count": 10},
    ])
    assert aggregate([record]).model_usage_data == [{
        "date": "2024-01-01",
        "pru_models": 10,
        "standard_models": 0,
        "unknown_models": 0,
        "total_prus": 10.0,
        "service_value": 0.4,
    }]


def test_custom_table_changes_costs(make_record):
    record = make_record(totals_by_model_feature=[
        {"model": "o3", "feature": "chat_panel_ask_mode", "user_initiated_interaction_count": 10},
    ])
    table = ModelTable(KNOWN_MODELS, service_value_rate=0.1)
    assert aggregate([record], table=table).model_usage_data[0]["service_value"] == 1.0
    assert aggregate([record], table=DEFAULT_MODEL_TABLE).model_usage_data[0]["service_value"] == 0.4


# ─── User Detail Tests ────────────────────────────────────────────────────────


def _user_records(make_record):
    return [
        make_record(
            day="2024-01-02",
            user_id=7,
            user_login="octo",
            totals_by_ide=[{
                "ide": "vscode",
                "last_known_plugin_version": {
                    "sampled_at": "2024-01-02T09:00:00Z",
                    "plugin": "copilot-chat",
                    "plugin_version": "0.30.0",
                },
            }],
            totals_by_feature=[_feature("code_completion", loc_added_sum=5)],
            totals_by_model_feature=[
                {"model": "o3", "feature": "chat_panel_agent_mode", "user_initiated_interaction_count": 2},
                {"model": "gpt-4.1", "feature": "chat_inline", "user_initiated_interaction_count": 3},
                {"model": "", "feature": "code_completion", "user_initiated_interaction_count": 4},
                {"model": "unknown", "feature": "code_completion", "user_initiated_interaction_count": 1},
            ],
        ),
        make_record(
            day="2024-01-01",
            user_id=7,
            user_login="octo",
            totals_by_ide=[{
                "ide": "vscode",
                "last_known_plugin_version": {
                    "sampled_at": "2024-01-01T09:00:00Z",
                    "plugin": "copilot-chat",
                    "plugin_version": "0.30.0",
                },
            }],
            totals_by_feature=[_feature("code_completion", loc_added_sum=2)],
        ),
        make_record(day="2024-01-01", user_id=8),
    ]


def test_build_user_details(make_record):
    details = build_user_details(_user_records(make_record), 7)
    assert details.user_login == "octo"
    assert [r.day for r in details.days] == ["2024-01-01", "2024-01-02"]
    # Blank and "unknown" models count toward neither bucket
    assert details.total_standard_model_requests == 3
    assert details.total_premium_model_requests == 2
    assert len(details.feature_aggregates) == 1
    assert details.feature_aggregates[0]["feature"] == "code_completion"
    assert details.feature_aggregates[0]["loc_added_sum"] == 7
    assert details.plugin_versions == [
        {"plugin": "copilot-chat", "plugin_version": "0.30.0", "sampled_at": "2024-01-02T09:00:00Z"},
    ]
    assert details.daily_model_usage == [{
        "date": "2024-01-02",
        "pru_models": 2,
        "standard_models": 3,
        "unknown_models": 5,
        "total_prus": 7.0,
        "service_value": 0.28,
    }]
    assert [row["loc_added"] for row in details.daily_completion_impact] == [2, 5]
    assert details.report_start_day == "2024-01-01"
    json.dumps(details.to_dict())


def test_build_user_details_unknown_user(make_record):
    with pytest.raises(KeyError):
        build_user_details(_user_records(make_record), 999)


def test_build_user_details_respects_date_filter(make_record):
    """Records outside the window do not count, so the user has no detail."""
    with pytest.raises(KeyError):
        build_user_details(_user_records(make_record), 7, date_filter="last7days")
