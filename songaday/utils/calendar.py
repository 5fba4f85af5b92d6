"""Day-of-year arithmetic for the target calendar year"""

from datetime import date, datetime, timezone, tzinfo
from typing import Optional, Tuple


def _resolve(tz: Optional[tzinfo]) -> tzinfo:
    return tz if tz is not None else timezone.utc


def to_millis(moment: datetime) -> int:
    """Convert an aware datetime to epoch milliseconds.

    Naive datetimes are taken to be UTC.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp() * 1000)


def year_bounds(year: int, tz: Optional[tzinfo] = None) -> Tuple[int, int]:
    """First instant of ``year`` and first instant of ``year + 1``.

    Args:
        year: Calendar year
        tz: Timezone the year is observed in (defaults to UTC)

    Returns:
        (start_ms, end_ms) as epoch milliseconds
    """
    tz = _resolve(tz)
    start = datetime(year, 1, 1, tzinfo=tz)
    end = datetime(year + 1, 1, 1, tzinfo=tz)
    return to_millis(start), to_millis(end)


def days_in_year(year: int) -> int:
    """Number of days in ``year``, leap years included."""
    return (date(year + 1, 1, 1) - date(year, 1, 1)).days


def day_of_year(timestamp_ms: int, year: int, tz: Optional[tzinfo] = None) -> int:
    """1-based day of ``year`` that ``timestamp_ms`` falls on.

    Clamped into ``[1, days_in_year(year)]``: timestamps at or after the start
    of the next year map to the last day, timestamps before the year map to 1.
    """
    moment = datetime.fromtimestamp(timestamp_ms / 1000, tz=_resolve(tz))
    if moment.year > year:
        return days_in_year(year)
    if moment.year < year:
        return 1
    return moment.timetuple().tm_yday
