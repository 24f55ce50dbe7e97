import calendar
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterator

DATE_FORMAT = "%Y-%m-%d"
PERIODS: "tuple[str, ...]" = ("daily", "weekly", "monthly", "yearly")
DEFAULT_LOOKBACK_DAYS = 30

_DATE_RE = re.compile(r"\d{4}-\d{2}-\d{2}")


@dataclass(frozen=True, slots=True)
class DateRange:
    # both bounds inclusive, YYYY-MM-DD
    start: "str"
    end: "str"


def local_date(timestamp_ms: "int") -> "str":
    """
    calendar date of an epoch-milliseconds timestamp in the local
    time zone.
    """
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime(DATE_FORMAT)


def local_noon_timestamp(day: "str") -> "int":
    """
    epoch milliseconds of local noon on the given date. Noon keeps
    local_date() of the result on the same date across DST shifts.
    """
    noon = datetime.strptime(day, DATE_FORMAT).replace(hour=12)
    return int(noon.timestamp() * 1000)


def parse_date(value: "str") -> "date":
    return datetime.strptime(value, DATE_FORMAT).date()


def is_valid_date(value: "str") -> "bool":
    if not _DATE_RE.fullmatch(value):
        return False
    try:
        parse_date(value)
    except ValueError:
        return False
    return True


def iter_days(start: "str", end: "str") -> "Iterator[str]":
    """
    yields every date from start to end inclusive. Steps whole
    calendar days, so DST transitions never skip or repeat a date.
    """
    current = parse_date(start)
    last = parse_date(end)
    while current <= last:
        yield current.strftime(DATE_FORMAT)
        current += timedelta(days=1)


def days_between(start: "str", end: "str") -> "int":
    return (parse_date(end) - parse_date(start)).days


def period_range(period: "str", today: "date | None" = None) -> "DateRange":
    """
    date range of the current day, week (Sunday to Saturday), month
    or year.
    """
    today = today or date.today()

    if period == "daily":
        start, end = today, today
    elif period == "weekly":
        start = today - timedelta(days=(today.weekday() + 1) % 7)
        end = start + timedelta(days=6)
    elif period == "monthly":
        start = today.replace(day=1)
        end = today.replace(day=calendar.monthrange(today.year, today.month)[1])
    elif period == "yearly":
        start = date(today.year, 1, 1)
        end = date(today.year, 12, 31)
    else:
        raise ValueError(f"unknown period {period!r}, expected one of {', '.join(PERIODS)}")

    return DateRange(start.strftime(DATE_FORMAT), end.strftime(DATE_FORMAT))


def default_range(
    start: "str | None" = None,
    end: "str | None" = None,
    today: "date | None" = None,
) -> "DateRange":
    """
    fills in missing bounds: end defaults to today and start to
    DEFAULT_LOOKBACK_DAYS before end.
    """
    end_date = parse_date(end) if end else (today or date.today())
    start_date = (
        parse_date(start) if start else end_date - timedelta(days=DEFAULT_LOOKBACK_DAYS)
    )
    return DateRange(start_date.strftime(DATE_FORMAT), end_date.strftime(DATE_FORMAT))


def describe_range(start: "str", end: "str") -> "str":
    first = parse_date(start)
    last = parse_date(end)

    if first == last:
        return f"{first:%B} {first.day}, {first.year}"

    if (first.year, first.month) == (last.year, last.month):
        return f"{first:%B} {first.day} - {last.day}, {last.year}"

    if first.year == last.year:
        return f"{first:%b} {first.day} - {last:%b} {last.day}, {last.year}"

    return f"{first:%b} {first.day}, {first.year} - {last:%b} {last.day}, {last.year}"
