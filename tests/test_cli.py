"""Tests for the copilot-metrics command line."""

import json

import pytest

from copilot_metrics.cli import EXIT_DRIFT, EXIT_ERROR, EXIT_OK, check_multipliers_main, main
from copilot_metrics.settings import load_settings, save_date_filter, save_setting


def _export(write_ndjson, make_raw):
    return write_ndjson("export.ndjson", [
        make_raw(
            day="2024-01-05",
            user_id=1,
            used_chat=True,
            totals_by_feature=[{"feature": "code_completion", "code_generation_activity_count": 2, "loc_added_sum": 3}],
            totals_by_language_feature=[{"language": "python", "feature": "code_completion", "code_generation_activity_count": 2}],
            totals_by_model_feature=[{"model": "o3", "feature": "chat_panel_ask_mode", "user_initiated_interaction_count": 10}],
        ),
        make_raw(day="2024-01-27", user_id=2, loc_added_sum=4, totals_by_feature=[{"feature": "code_completion", "loc_added_sum": 4}]),
        "{not json",
    ])


# ─── Summary Tests ────────────────────────────────────────────────────────────


def test_summary_json(write_ndjson, make_raw, capsys):
    path = _export(write_ndjson, make_raw)
    assert main(["summary", str(path), "--json"]) == EXIT_OK
    data = json.loads(capsys.readouterr().out)
    assert data["stats"]["unique_users"] == 2
    assert data["stats"]["total_records"] == 2
    assert data["model_usage_data"][0]["service_value"] == 0.4


def test_summary_date_filter(write_ndjson, make_raw, capsys):
    path = _export(write_ndjson, make_raw)
    assert main(["summary", str(path), "--json", "--date-filter", "last7days"]) == EXIT_OK
    assert json.loads(capsys.readouterr().out)["stats"]["total_records"] == 1


def test_summary_uses_saved_date_filter(write_ndjson, make_raw, capsys):
    """The default --date-filter comes from the settings file."""
    save_date_filter("last7days")
    path = _export(write_ndjson, make_raw)
    assert main(["summary", str(path), "--json"]) == EXIT_OK
    assert json.loads(capsys.readouterr().out)["stats"]["total_records"] == 1


def test_summary_table_output(write_ndjson, make_raw, capsys):
    path = _export(write_ndjson, make_raw)
    assert main(["summary", str(path)]) == EXIT_OK
    out = capsys.readouterr().out
    assert "Copilot usage" in out
    assert "Unique users" in out
    assert "python" in out


def test_summary_skips_unreadable_files(write_ndjson, make_raw, tmp_path, capsys):
    path = _export(write_ndjson, make_raw)
    missing = tmp_path / "missing.ndjson"
    assert main(["summary", str(missing), str(path), "--json"]) == EXIT_OK
    assert json.loads(capsys.readouterr().out)["stats"]["unique_users"] == 2


def test_summary_without_records_fails(write_ndjson, tmp_path):
    empty = write_ndjson("empty.ndjson", ["{bad", '{"user_id": 1}'])
    assert main(["summary", str(empty)]) == EXIT_ERROR
    assert main(["summary", str(tmp_path / "missing.ndjson")]) == EXIT_ERROR


def test_summary_with_custom_model_table(write_ndjson, make_raw, tmp_path, capsys):
    path = _export(write_ndjson, make_raw)
    table = tmp_path / "models.json"
    table.write_text(json.dumps([
        {"name": "o3", "multiplier": 2, "isPremium": True},
        {"name": "unknown", "multiplier": 1, "isPremium": True},
    ]), encoding="utf-8")
    assert main(["summary", str(path), "--json", "--model-table", str(table)]) == EXIT_OK
    assert json.loads(capsys.readouterr().out)["model_usage_data"][0]["total_prus"] == 20.0


def test_summary_with_invalid_model_table(write_ndjson, make_raw, tmp_path):
    path = _export(write_ndjson, make_raw)
    table = tmp_path / "models.json"
    table.write_text(json.dumps([{"name": "o3", "multiplier": 2, "isPremium": True}]), encoding="utf-8")
    assert main(["summary", str(path), "--model-table", str(table)]) == EXIT_ERROR


def test_unknown_date_filter_is_a_usage_error(write_ndjson, make_raw):
    path = _export(write_ndjson, make_raw)
    with pytest.raises(SystemExit):
        main(["summary", str(path), "--date-filter", "fortnight"])


def _unknown_language_export(write_ndjson, make_raw):
    return write_ndjson("languages.ndjson", [
        make_raw(user_id=1, totals_by_language_feature=[
            {"language": "python", "feature": "code_completion", "code_generation_activity_count": 2},
            {"language": "unknown", "feature": "code_completion", "code_generation_activity_count": 5},
        ]),
    ])


def _languages(capsys):
    return {row["language"] for row in json.loads(capsys.readouterr().out)["language_stats"]}


def test_saved_remove_unknown_languages_can_be_turned_off(write_ndjson, make_raw, capsys):
    """--no-remove-unknown-languages wins over a saved true setting."""
    save_setting("remove_unknown_languages", True)
    path = _unknown_language_export(write_ndjson, make_raw)
    assert main(["summary", str(path), "--json"]) == EXIT_OK
    assert _languages(capsys) == {"python"}
    assert main(["summary", str(path), "--json", "--no-remove-unknown-languages"]) == EXIT_OK
    assert _languages(capsys) == {"python", "unknown"}


def test_remove_unknown_languages_flag(write_ndjson, make_raw, capsys):
    path = _unknown_language_export(write_ndjson, make_raw)
    assert main(["summary", str(path), "--json", "--remove-unknown-languages"]) == EXIT_OK
    assert _languages(capsys) == {"python"}


# ─── User and LOC Drift Tests ─────────────────────────────────────────────────


def test_user_json(write_ndjson, make_raw, capsys):
    path = _export(write_ndjson, make_raw)
    assert main(["user", str(path), "--user-id", "1", "--json"]) == EXIT_OK
    data = json.loads(capsys.readouterr().out)
    assert data["user_login"] == "user1"
    assert data["total_premium_model_requests"] == 10


def test_user_table_output(write_ndjson, make_raw, capsys):
    path = _export(write_ndjson, make_raw)
    assert main(["user", str(path), "--user-id", "1"]) == EXIT_OK
    out = capsys.readouterr().out
    assert "Code Completion" in out
    assert "Days active: 1" in out


def test_user_not_found(write_ndjson, make_raw):
    path = _export(write_ndjson, make_raw)
    assert main(["user", str(path), "--user-id", "99"]) == EXIT_ERROR


def test_loc_drift_command(write_ndjson, make_raw, capsys):
    path = _export(write_ndjson, make_raw)
    assert main(["loc-drift", str(path)]) == EXIT_OK
    out = capsys.readouterr().out
    assert "Day: 2024-01-05" in out
    assert "DRIFT: totals do NOT match top-level values" in out
    assert "OK: totals match top-level values" in out


# ─── Multiplier Check Tests ───────────────────────────────────────────────────


def _extracted(tmp_path, models):
    path = tmp_path / "extracted.json"
    path.write_text(json.dumps({"models": models}), encoding="utf-8")
    return path


def test_check_multipliers_clean(tmp_path, capsys):
    extracted = _extracted(tmp_path, [
        {"displayName": "Claude Opus 4.1", "paidMultiplier": 10},
        {"displayName": "GPT-4.1", "paidMultiplier": 0},
    ])
    assert check_multipliers_main(["--extracted", str(extracted)]) == EXIT_OK
    assert "## Next steps" in capsys.readouterr().out


def test_check_multipliers_drift_writes_report(tmp_path):
    extracted = _extracted(tmp_path, [{"displayName": "Brand New", "paidMultiplier": 3}])
    report = tmp_path / "reports" / "drift.md"
    assert check_multipliers_main(["--extracted", str(extracted), "--report", str(report)]) == EXIT_DRIFT
    text = report.read_text(encoding="utf-8")
    assert "`brand-new`" in text
    assert "copilot_metrics.core.model_table.KNOWN_MODELS" in text


def test_check_multipliers_subcommand_with_config(tmp_path, capsys):
    extracted = _extracted(tmp_path, [{"displayName": "o3", "paidMultiplier": 1}])
    config = tmp_path / "models.json"
    config.write_text(json.dumps({"models": [
        {"name": "o3", "multiplier": 2, "isPremium": True},
        {"name": "unknown", "multiplier": 1, "isPremium": True},
    ]}), encoding="utf-8")
    code = main(["check-multipliers", "--extracted", str(extracted), "--config", str(config)])
    assert code == EXIT_DRIFT
    out = capsys.readouterr().out
    assert "## Multiplier mismatches" in out
    assert str(config) in out


@pytest.mark.parametrize("content", ["{nope", "[1, 2]"])
def test_check_multipliers_bad_input(tmp_path, content):
    path = tmp_path / "extracted.json"
    path.write_text(content, encoding="utf-8")
    assert check_multipliers_main(["--extracted", str(path)]) == EXIT_ERROR


def test_check_multipliers_missing_file(tmp_path):
    assert check_multipliers_main(["--extracted", str(tmp_path / "nope.json")]) == EXIT_ERROR


# ─── Config Tests ─────────────────────────────────────────────────────────────


def test_config_shows_defaults(capsys):
    """Without options the command only prints; nothing is written."""
    assert main(["config"]) == EXIT_OK
    data = json.loads(capsys.readouterr().out)
    assert data["stored"] == {}
    assert data["effective"] == {"date_filter": "all", "remove_unknown_languages": False, "model_table": None}
    assert data["path"].endswith("settings.json")
    assert load_settings() == {}


def test_config_persists_defaults_for_summary(write_ndjson, make_raw, capsys):
    assert main(["config", "--date-filter", "last7days", "--remove-unknown-languages"]) == EXIT_OK
    assert json.loads(capsys.readouterr().out)["stored"] == {
        "date_filter": "last7days",
        "remove_unknown_languages": True,
    }
    path = _export(write_ndjson, make_raw)
    assert main(["summary", str(path), "--json"]) == EXIT_OK
    assert json.loads(capsys.readouterr().out)["stats"]["total_records"] == 1


def test_config_model_table_set_and_clear(tmp_path, capsys):
    table = tmp_path / "models.json"
    assert main(["config", "--model-table", str(table)]) == EXIT_OK
    assert json.loads(capsys.readouterr().out)["effective"]["model_table"] == str(table)
    assert main(["config", "--model-table", "", "--no-remove-unknown-languages"]) == EXIT_OK
    data = json.loads(capsys.readouterr().out)
    assert data["stored"] == {"remove_unknown_languages": False}
    assert data["effective"]["model_table"] is None


def test_config_rejects_unknown_date_filter():
    with pytest.raises(SystemExit):
        main(["config", "--date-filter", "fortnight"])
    assert load_settings() == {}
