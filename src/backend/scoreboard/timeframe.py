from __future__ import annotations

from datetime import date, datetime, timedelta
from enum import Enum
from typing import Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


class Timeframe(str, Enum):
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"
    ALL = "all"


# "month" is a fixed 30-day lookback, not a calendar month.
_LOOKBACK_DAYS = {
    Timeframe.TODAY: 0,
    Timeframe.WEEK: 7,
    Timeframe.MONTH: 30,
}


class InvalidTimeframeError(ValueError):
    """Raised for a window name outside ``Timeframe``."""


def parse_timeframe(value: Union[str, Timeframe]) -> Timeframe:
    if isinstance(value, Timeframe):
        return value
    try:
        return Timeframe(value)
    except ValueError as exc:
        allowed = ", ".join(item.value for item in Timeframe)
        raise InvalidTimeframeError(f"Unknown timeframe {value!r}; expected one of: {allowed}") from exc


def _coerce_timezone(name: Optional[str]) -> ZoneInfo:
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def local_today(timezone_name: Optional[str] = None, now: Optional[datetime] = None) -> date:
    """
    Return the calendar date the caller sees in ``timezone_name``.

    Naive ``now`` values are interpreted as already local.
    """

    tz = _coerce_timezone(timezone_name)
    if now is None:
        return datetime.now(tz).date()
    if now.tzinfo is None:
        return now.date()
    return now.astimezone(tz).date()


def resolve_lower_bound(
    timeframe: Union[str, Timeframe],
    reference: Union[date, datetime],
) -> Optional[date]:
    """
    Inclusive lower-bound date for ``timeframe``, or ``None`` when unbounded.

    There is never an upper bound, so forward-dated completions are always
    part of the window.
    """

    window = parse_timeframe(timeframe)
    if window is Timeframe.ALL:
        return None
    reference_date = reference.date() if isinstance(reference, datetime) else reference
    return reference_date - timedelta(days=_LOOKBACK_DAYS[window])
