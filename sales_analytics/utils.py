import calendar
import math
from datetime import date, datetime, timedelta
from typing import Any
from zoneinfo import ZoneInfo

from . import settings
from .errors import InvalidReportRequest


def local_zone() -> ZoneInfo:
    return ZoneInfo(settings.LOCAL_TIMEZONE)


def to_local_naive(value: datetime) -> datetime:
    """
    Converts a timezone-qualified datetime to the local calendar and drops the
    tzinfo. Naive datetimes are assumed to already be local.
    """
    if value.tzinfo is None:
        return value
    return value.astimezone(local_zone()).replace(tzinfo=None)


def local_now() -> datetime:
    """Current wall-clock time in the local calendar, as a naive datetime."""
    return datetime.now(local_zone()).replace(tzinfo=None)


def local_today() -> date:
    return local_now().date()


def parse_date(value: str | date) -> date:
    """Accepts a `date`, a `datetime` or a 'YYYY-MM-DD' string."""
    if isinstance(value, datetime):
        return to_local_naive(value).date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError as e:
        raise InvalidReportRequest(f"Not a calendar date: {value!r}") from e


def month_bounds(month: str) -> tuple[date, date]:
    """
    Returns the first and last calendar day of a 'YYYY-MM' month.
    e.g., '2024-02' -> (2024-02-01, 2024-02-29)
    """
    try:
        year_str, month_str = str(month).strip().split("-")
        year, month_no = int(year_str), int(month_str)
        last_day = calendar.monthrange(year, month_no)[1]
    except (ValueError, calendar.IllegalMonthError) as e:
        raise InvalidReportRequest(f"Not a 'YYYY-MM' month: {month!r}") from e
    return date(year, month_no, 1), date(year, month_no, last_day)


def lookback(days: int, today: date | None = None) -> tuple[date, date]:
    """The last `days` days up to and including today."""
    end = today or local_today()
    return end - timedelta(days=days), end


def zero(value: Any) -> float:
    """
    The fold used for every optional numeric field: None, NaN and blanks
    count as 0.0. Upstream cost/tax sync may lag behind sales sync, so a
    missing figure is never an error.
    """
    if value is None or value == "":
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return 0.0 if math.isnan(number) else number
