"""Relative date-range filters ("last 7 days", ...) over a record set."""

from datetime import date, datetime, timedelta
from typing import Iterable, Literal, get_args

from copilot_metrics.core.records import UsageRecord

DateRangeFilter = Literal["all", "last7days", "last14days", "last28days"]

DATE_RANGE_FILTERS: tuple[str, ...] = get_args(DateRangeFilter)

# [LAW:dataflow-not-control-flow] Window length is data, not a switch.
DATE_RANGE_DAYS: dict[str, int] = {
    "last7days": 7,
    "last14days": 14,
    "last28days": 28,
}


def parse_day(value: object) -> date | None:
    """Parse an ISO calendar date (or the date part of an ISO datetime)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def day_sort_key(day: str) -> tuple[int, date, str]:
    """Sort key that orders by calendar date; unparseable days sort last."""
    parsed = parse_day(day)
    if parsed is None:
        return (1, date.max, day)
    return (0, parsed, day)


def validate_date_filter(date_filter: str) -> str:
    if date_filter not in DATE_RANGE_FILTERS:
        raise ValueError(
            f"unknown date filter {date_filter!r}; expected one of {', '.join(DATE_RANGE_FILTERS)}"
        )
    return date_filter


def resolve_window(records: Iterable[UsageRecord], date_filter: str) -> tuple[date, date] | None:
    """Inclusive [start, end] window for a filter, or None for "all".

    The end is the latest report_end_day seen; when none parses, the latest
    record day is used instead. An empty record set has no window.
    """
    validate_date_filter(date_filter)
    days = DATE_RANGE_DAYS.get(date_filter)
    if days is None:
        return None

    report_end: date | None = None
    latest_day: date | None = None
    for record in records:
        end = parse_day(record.report_end_day)
        if end is not None and (report_end is None or end > report_end):
            report_end = end
        day = parse_day(record.day)
        if day is not None and (latest_day is None or day > latest_day):
            latest_day = day

    end_date = report_end or latest_day
    if end_date is None:
        return None
    return end_date - timedelta(days=days - 1), end_date


def filtered_date_range(date_filter: str, report_start_day: str, report_end_day: str) -> tuple[str, str]:
    """Display range (start_day, end_day) for a filter applied to a report."""
    validate_date_filter(date_filter)
    days = DATE_RANGE_DAYS.get(date_filter)
    end = parse_day(report_end_day)
    if days is None or end is None:
        return report_start_day, report_end_day
    start = end - timedelta(days=days - 1)
    return start.isoformat(), report_end_day
