"""Shared fixtures for copilot-metrics tests."""

import json

import pytest

import copilot_metrics.io.logging_setup
from copilot_metrics.core.record_parser import decode_record

_ENV_VARS = (
    "COPILOT_METRICS_LOG_LEVEL",
    "COPILOT_METRICS_LOG_FILE",
    "COPILOT_METRICS_DATE_FILTER",
    "COPILOT_METRICS_MODEL_TABLE",
)


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Point settings at a temp dir, clear env overrides, undo logging setup."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield
    copilot_metrics.io.logging_setup.reset()


def raw_record(day="2024-01-01", user_id=1, **fields) -> dict:
    """Raw export object for one user-day with sensible report bounds."""
    raw = {
        "day": day,
        "user_id": user_id,
        "user_login": f"user{user_id}",
        "enterprise_id": "ent-1",
        "report_start_day": "2024-01-01",
        "report_end_day": "2024-01-28",
    }
    raw.update(fields)
    return raw


@pytest.fixture
def make_raw():
    """Factory: keyword fields -> raw export object."""
    return raw_record


@pytest.fixture
def make_record():
    """Factory: keyword fields -> UsageRecord decoded like an export line."""

    def _make(day="2024-01-01", user_id=1, **fields):
        return decode_record(raw_record(day=day, user_id=user_id, **fields))

    return _make


@pytest.fixture
def write_ndjson(tmp_path):
    """Factory: write raw objects (or literal strings) as an NDJSON file."""

    def _write(name, rows):
        path = tmp_path / name
        lines = [row if isinstance(row, str) else json.dumps(row) for row in rows]
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    return _write
