"""
Shared arithmetic and calendar helpers for the analytics services.

Every ratio in the scoring code goes through safe_ratio so a misconfigured
baseline of 0 yields a 0 score instead of an exception.
"""
import calendar
import math
from datetime import date, datetime, timedelta, timezone
from typing import Tuple, Union
from zoneinfo import ZoneInfo

from pulse.constants import Period, get_constants

Number = Union[int, float]


def round_half_up(value: Number, ndigits: int = 0) -> Union[int, float]:
    """
    Round halves towards positive infinity (2.5 -> 3, -30.5 -> -30).

    Python's round() uses banker's rounding, which would make reported
    scores flip between neighbouring integers for .5 inputs.
    """
    if ndigits == 0:
        return int(math.floor(value + 0.5))
    factor = 10 ** ndigits
    return math.floor(value * factor + 0.5) / factor


def safe_ratio(numerator: Number, denominator: Number) -> float:
    if not denominator or denominator <= 0:
        return 0.0
    return numerator / denominator


# =============================================================================
# Clock helpers
# =============================================================================

def utc_now() -> datetime:
    """Default clock for the services: timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def to_naive_utc(moment: datetime) -> datetime:
    """Normalize a datetime for storage (naive UTC columns)."""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def local_today(now: datetime, tz: ZoneInfo) -> date:
    """Calendar day in the workspace timezone for a UTC instant."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(tz).date()


def to_local(stored_utc: datetime, tz: ZoneInfo) -> datetime:
    """Convert a stored naive UTC timestamp to local wall-clock time."""
    if stored_utc.tzinfo is None:
        stored_utc = stored_utc.replace(tzinfo=timezone.utc)
    return stored_utc.astimezone(tz)


def minutes_since_midnight(moment: datetime) -> int:
    return moment.hour * 60 + moment.minute


def format_minutes(minutes: float) -> str:
    """Render minutes since midnight as HH:mm."""
    hours, mins = divmod(round_half_up(minutes), 60)
    return f"{hours:02d}:{mins:02d}"


# =============================================================================
# Period windows
# =============================================================================

def period_window(period: Period, today: date, week_start_day: int = 0) -> Tuple[date, date]:
    """
    Canonical inclusive date window for a period containing `today`.

    - week: 7 days starting on week_start_day (0 = Monday)
    - month: the calendar month
    - quarter: trailing window of QUARTER_LOOKBACK_DAYS ending today
    """
    period = Period(period)
    if period == Period.WEEK:
        start = today - timedelta(days=(today.weekday() - week_start_day) % 7)
        return start, start + timedelta(days=6)
    if period == Period.MONTH:
        last_day = calendar.monthrange(today.year, today.month)[1]
        return today.replace(day=1), today.replace(day=last_day)
    lookback = get_constants().periods.QUARTER_LOOKBACK_DAYS
    return today - timedelta(days=lookback), today
