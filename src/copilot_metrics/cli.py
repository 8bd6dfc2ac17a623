"""CLI entry point for copilot-metrics."""

import argparse
import json
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table
from rich.text import Text

import copilot_metrics.io.logging_setup
import copilot_metrics.settings
from copilot_metrics.core.aggregator import AggregatedMetrics, UserDetailedMetrics, aggregate, build_user_details
from copilot_metrics.core.date_filters import DATE_RANGE_FILTERS, filtered_date_range
from copilot_metrics.core.features import feature_label
from copilot_metrics.core.loc_drift import format_loc_drift, loc_drift
from copilot_metrics.core.model_table import DEFAULT_MODEL_TABLE, ModelTable, ModelTableError, load_model_table
from copilot_metrics.core.multiplier_drift import check_multipliers, load_extracted_models, render_report
from copilot_metrics.io.metrics_files import MultiFileResult, read_metrics_files

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_DRIFT = 2

BUILTIN_TABLE_SOURCE = "copilot_metrics.core.model_table.KNOWN_MODELS"
TOP_ROWS = 10


# ─── Shared helpers ───────────────────────────────────────────────────────────


def _load_table(path: str | None) -> ModelTable:
    # [LAW:single-enforcer] Table file errors surface here; callers map them to exit codes.
    if not path:
        return DEFAULT_MODEL_TABLE
    return load_model_table(path)


def _read_records(paths: list[str]) -> MultiFileResult | None:
    result = read_metrics_files(paths)
    if result.diagnostics:
        logger.warning("skipped %d malformed line(s)", len(result.diagnostics))
    if not result.records:
        logger.error("no usable records in %s", ", ".join(paths))
        return None
    return result


def _write_json(data: object) -> None:
    json.dump(data, sys.stdout, indent=2)
    sys.stdout.write("\n")


def _money(value: float) -> str:
    return f"${value:,.2f}"


# ─── Summary rendering ────────────────────────────────────────────────────────


def _overview_table(metrics: AggregatedMetrics, date_filter: str) -> Table:
    stats = metrics.stats
    start, end = filtered_date_range(date_filter, stats["report_start_day"], stats["report_end_day"])
    table = Table(title="Copilot usage", show_header=False)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Report range", f"{start} .. {end}" if start or end else "-")
    table.add_row("Records", str(stats["total_records"]))
    table.add_row("Unique users", str(stats["unique_users"]))
    table.add_row("Chat users", str(stats["chat_users"]))
    table.add_row("Agent users", str(stats["agent_users"]))
    table.add_row("CLI users", str(stats["cli_users"]))
    table.add_row("Completion-only users", str(stats["completion_only_users"]))
    table.add_row("Top language", f'{stats["top_language"]["name"]} ({stats["top_language"]["engagements"]})')
    table.add_row("Top IDE", f'{stats["top_ide"]["name"]} ({stats["top_ide"]["entries"]} users)')
    table.add_row("Top model", f'{stats["top_model"]["name"]} ({stats["top_model"]["engagements"]})')
    total_prus = sum(row["total_prus"] for row in metrics.model_usage_data)
    service_value = sum(row["service_value"] for row in metrics.model_usage_data)
    table.add_row("Premium requests (PRUs)", f"{total_prus:,.2f}")
    table.add_row("Service value", _money(service_value))
    return table


def _language_table(metrics: AggregatedMetrics) -> Table:
    table = Table(title="Languages")
    table.add_column("Language")
    table.add_column("Engagements", justify="right")
    table.add_column("Users", justify="right")
    table.add_column("LOC added", justify="right")
    table.add_column("LOC deleted", justify="right")
    for row in metrics.language_stats[:TOP_ROWS]:
        table.add_row(
            row["language"] or "-",
            str(row["total_engagements"]),
            str(row["unique_users"]),
            str(row["loc_added"]),
            str(row["loc_deleted"]),
        )
    return table


def _model_table(metrics: AggregatedMetrics) -> Table:
    table = Table(title="Models")
    table.add_column("Model")
    table.add_column("Multiplier", justify="right")
    table.add_column("Interactions", justify="right")
    table.add_column("PRUs", justify="right")
    table.add_column("Service value", justify="right")
    for row in metrics.model_feature_distribution_data[:TOP_ROWS]:
        name = Text(row["model_display_name"])
        if row["multiplier"] > 0:
            name.stylize("bold")
        table.add_row(
            name,
            f'{row["multiplier"]:g}x',
            str(row["total_interactions"]),
            f'{row["total_prus"]:,.2f}',
            _money(row["service_value"]),
        )
    return table


def _adoption_table(metrics: AggregatedMetrics) -> Table:
    adoption = metrics.feature_adoption_data
    total = adoption["total_users"]
    table = Table(title="Feature adoption")
    table.add_column("Feature")
    table.add_column("Users", justify="right")
    table.add_column("Share", justify="right")
    for label, key in (
        ("Code completion", "completion_users"),
        ("Completion only", "completion_only_users"),
        ("Chat", "chat_users"),
        ("Agent", "agent_mode_users"),
        ("Ask mode", "ask_mode_users"),
        ("Edit mode", "edit_mode_users"),
        ("Inline chat", "inline_mode_users"),
        ("Code review", "code_review_users"),
        ("CLI", "cli_users"),
    ):
        count = adoption[key]
        share = f"{count / total * 100:.1f}%" if total else "-"
        table.add_row(label, str(count), share)
    return table


def render_summary(metrics: AggregatedMetrics, date_filter: str, console: Console) -> None:
    console.print(_overview_table(metrics, date_filter))
    console.print(_language_table(metrics))
    console.print(_model_table(metrics))
    console.print(_adoption_table(metrics))


def render_user_details(details: UserDetailedMetrics, console: Console) -> None:
    table = Table(title=f"{details.user_login} ({details.user_id})")
    table.add_column("Feature")
    table.add_column("Interactions", justify="right")
    table.add_column("Generations", justify="right")
    table.add_column("LOC added", justify="right")
    table.add_column("LOC deleted", justify="right")
    for row in details.feature_aggregates:
        table.add_row(
            feature_label(row["feature"]),
            str(row["user_initiated_interaction_count"]),
            str(row["code_generation_activity_count"]),
            str(row["loc_added_sum"]),
            str(row["loc_deleted_sum"]),
        )
    console.print(table)
    console.print(
        f"Days active: {len(details.days)}  "
        f"Standard requests: {details.total_standard_model_requests}  "
        f"Premium requests: {details.total_premium_model_requests}"
    )


# ─── Commands ─────────────────────────────────────────────────────────────────


def _cmd_summary(args: argparse.Namespace) -> int:
    try:
        table = _load_table(args.model_table)
    except (OSError, json.JSONDecodeError, ModelTableError) as e:
        logger.error("cannot load model table %s: %s", args.model_table, e)
        return EXIT_ERROR
    result = _read_records(args.files)
    if result is None:
        return EXIT_ERROR
    metrics = aggregate(
        result.records,
        table=table,
        date_filter=args.date_filter,
        remove_unknown_languages=args.remove_unknown_languages,
    )
    if args.json:
        _write_json(metrics.to_dict())
    else:
        render_summary(metrics, args.date_filter, Console())
    return EXIT_OK


def _cmd_user(args: argparse.Namespace) -> int:
    try:
        table = _load_table(args.model_table)
    except (OSError, json.JSONDecodeError, ModelTableError) as e:
        logger.error("cannot load model table %s: %s", args.model_table, e)
        return EXIT_ERROR
    result = _read_records(args.files)
    if result is None:
        return EXIT_ERROR
    try:
        details = build_user_details(result.records, args.user_id, table=table, date_filter=args.date_filter)
    except KeyError:
        logger.error("no records for user %s", args.user_id)
        return EXIT_ERROR
    if args.json:
        _write_json(details.to_dict())
    else:
        render_user_details(details, Console())
    return EXIT_OK


def _cmd_loc_drift(args: argparse.Namespace) -> int:
    result = _read_records(args.files)
    if result is None:
        return EXIT_ERROR
    sys.stdout.write(format_loc_drift(loc_drift(result.records)))
    return EXIT_OK


def _cmd_check_multipliers(args: argparse.Namespace) -> int:
    try:
        table = _load_table(args.config)
        extracted = load_extracted_models(args.extracted)
    except (OSError, ValueError) as e:
        # JSONDecodeError and ModelTableError are both ValueErrors
        logger.error("drift check failed: %s", e)
        return EXIT_ERROR

    report = check_multipliers(extracted, table)
    markdown = render_report(report, args.config or BUILTIN_TABLE_SOURCE)
    if args.report:
        report_path = Path(args.report)
        report_path.parent.mkdir(parents=True, exist_ok=True)
        report_path.write_text(markdown, encoding="utf-8")
    else:
        sys.stdout.write(markdown)

    logger.info(
        "checked %d priced models: %d missing, %d mismatched",
        report.checked,
        len(report.missing),
        len(report.mismatched),
    )
    return EXIT_OK if report.ok else EXIT_DRIFT


def _cmd_config(args: argparse.Namespace) -> int:
    """Persist any given defaults, then print the effective settings."""
    if args.date_filter is not None:
        copilot_metrics.settings.save_date_filter(args.date_filter)
    if args.remove_unknown_languages is not None:
        copilot_metrics.settings.save_remove_unknown_languages(args.remove_unknown_languages)
    if args.model_table is not None:
        copilot_metrics.settings.save_model_table_path(args.model_table)
    _write_json({
        "path": str(copilot_metrics.settings.get_config_path()),
        "stored": copilot_metrics.settings.load_settings(),
        "effective": copilot_metrics.settings.effective_settings(),
    })
    return EXIT_OK


# ─── Parsers ──────────────────────────────────────────────────────────────────


def _add_check_multipliers_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--extracted",
        required=True,
        help="JSON file with {\"models\": [{displayName, paidMultiplier}, ...]} (code fences allowed)",
    )
    parser.add_argument("--report", default=None, help="Write the Markdown report here instead of stdout")
    parser.add_argument(
        "--config",
        default=None,
        help="Model table JSON to check (default: the built-in table)",
    )


def _add_record_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("files", nargs="+", help="NDJSON usage export(s)")
    parser.add_argument(
        "--date-filter",
        choices=DATE_RANGE_FILTERS,
        default=copilot_metrics.settings.load_date_filter(),
        help="Relative date window ending at the report end day (default: from settings, else all)",
    )
    parser.add_argument(
        "--model-table",
        default=copilot_metrics.settings.load_model_table_path(),
        help="Model table JSON overriding the built-in classification. Env: COPILOT_METRICS_MODEL_TABLE",
    )
    parser.add_argument("--json", action="store_true", default=False, help="Print the full result as JSON")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="copilot-metrics",
        description="Aggregate GitHub Copilot usage metrics exports",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (default: WARNING). Env: COPILOT_METRICS_LOG_LEVEL",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    summary = subparsers.add_parser("summary", help="Aggregate exports and print a summary")
    _add_record_arguments(summary)
    summary.add_argument(
        "--remove-unknown-languages",
        action=argparse.BooleanOptionalAction,
        default=copilot_metrics.settings.load_remove_unknown_languages(),
        help="Drop 'unknown' and blank languages from language views (default: from settings)",
    )
    summary.set_defaults(handler=_cmd_summary)

    user = subparsers.add_parser("user", help="Drill down into one user's usage")
    _add_record_arguments(user)
    user.add_argument("--user-id", type=int, required=True, help="Numeric user id")
    user.set_defaults(handler=_cmd_user)

    drift = subparsers.add_parser("loc-drift", help="Compare top-level LOC totals with per-feature sums")
    drift.add_argument("files", nargs="+", help="NDJSON usage export(s)")
    drift.set_defaults(handler=_cmd_loc_drift)

    multipliers = subparsers.add_parser(
        "check-multipliers",
        help="Compare published model multipliers with the model table",
    )
    _add_check_multipliers_arguments(multipliers)
    multipliers.set_defaults(handler=_cmd_check_multipliers)

    config = subparsers.add_parser(
        "config",
        help="Save default options to the settings file and show the current values",
    )
    config.add_argument("--date-filter", choices=DATE_RANGE_FILTERS, default=None, help="Default date window")
    config.add_argument(
        "--remove-unknown-languages",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Default for dropping unknown languages in summaries",
    )
    config.add_argument(
        "--model-table",
        default=None,
        help="Default model table JSON; pass an empty string to go back to the built-in table",
    )
    config.set_defaults(handler=_cmd_config)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    # [LAW:single-enforcer] Runtime logger configuration is centralized in io.logging_setup.
    runtime = copilot_metrics.io.logging_setup.configure(level=args.log_level)
    logger.debug("logging configured level=%s file=%s", runtime.level_name, runtime.file_path)
    return args.handler(args)


def check_multipliers_main(argv: list[str] | None = None) -> int:
    """Standalone drift checker: exit 2 on drift, 0 when clean, 1 on bad input."""
    parser = argparse.ArgumentParser(
        prog="check-model-multipliers",
        description="Compare published Copilot model multipliers with the model table",
    )
    _add_check_multipliers_arguments(parser)
    args = parser.parse_args(argv)
    copilot_metrics.io.logging_setup.configure()
    return _cmd_check_multipliers(args)


if __name__ == "__main__":
    sys.exit(main())
