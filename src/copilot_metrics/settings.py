"""Settings file I/O for copilot-metrics.

Manages a JSON settings file at XDG_CONFIG_HOME/copilot-metrics/settings.json
holding CLI defaults. Environment variables override individual keys.

Import as: import copilot_metrics.settings
"""

import json
import logging
import os
import tempfile
from pathlib import Path

from copilot_metrics.core.date_filters import DATE_RANGE_FILTERS

logger = logging.getLogger(__name__)

DATE_FILTER_ENV = "COPILOT_METRICS_DATE_FILTER"
MODEL_TABLE_ENV = "COPILOT_METRICS_MODEL_TABLE"


def get_config_path() -> Path:
    """Return path to settings file.

    Uses XDG_CONFIG_HOME (default ~/.config) / copilot-metrics / settings.json.
    """
    config_home = os.environ.get("XDG_CONFIG_HOME", os.path.expanduser("~/.config"))
    return Path(config_home) / "copilot-metrics" / "settings.json"


def load_settings() -> dict:
    """Load settings from JSON file. Returns empty dict on missing/corrupt file."""
    path = get_config_path()
    # [LAW:dataflow-not-control-flow] Always attempt read; empty dict is the "no data" value.
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (FileNotFoundError, json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


def save_settings(data: dict) -> None:
    """Atomic write of settings dict to JSON file.

    Creates parent directories if needed. Writes to temp file then renames
    to avoid partial writes on crash.
    """
    path = get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    # Atomic: write temp → rename
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
            f.write("\n")
        os.replace(tmp_path, path)
    except Exception:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def load_setting(key: str, default=None):
    """Load a single setting by key. Returns default if absent."""
    return load_settings().get(key, default)


def save_setting(key: str, value) -> None:
    """Save a single setting by key (merge into existing settings)."""
    data = load_settings()
    data[key] = value
    save_settings(data)


# ─── Typed accessors ──────────────────────────────────────────────────────────


def load_date_filter() -> str:
    """Default date filter; invalid values fall back to "all" with a warning."""
    value = os.environ.get(DATE_FILTER_ENV) or load_setting("date_filter", "all")
    if value not in DATE_RANGE_FILTERS:
        logger.warning(
            "ignoring invalid date_filter setting %r; expected one of %s",
            value,
            ", ".join(DATE_RANGE_FILTERS),
        )
        return "all"
    return value


def save_date_filter(date_filter: str) -> None:
    if date_filter not in DATE_RANGE_FILTERS:
        raise ValueError(f"unknown date filter {date_filter!r}")
    save_setting("date_filter", date_filter)


def load_remove_unknown_languages() -> bool:
    return bool(load_setting("remove_unknown_languages", False))


def load_model_table_path() -> str | None:
    """Path of a custom model table JSON, or None to use the built-in table."""
    value = os.environ.get(MODEL_TABLE_ENV) or load_setting("model_table")
    return str(value) if value else None


def save_remove_unknown_languages(remove: bool) -> None:
    save_setting("remove_unknown_languages", bool(remove))


def save_model_table_path(path: str | None) -> None:
    """Store a custom model table path; an empty path clears it."""
    data = load_settings()
    if path:
        data["model_table"] = str(path)
    else:
        data.pop("model_table", None)
    save_settings(data)


def effective_settings() -> dict:
    """CLI defaults after environment overrides, as the commands will see them."""
    return {
        "date_filter": load_date_filter(),
        "remove_unknown_languages": load_remove_unknown_languages(),
        "model_table": load_model_table_path(),
    }
