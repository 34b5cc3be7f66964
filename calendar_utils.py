import math
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def clamp_day_of_month(day: int, year: int, month: int) -> int:
    return min(day, days_in_month(year, month))


def month_start(year: int, month: int) -> date:
    return date(year, month, 1)


def month_end(year: int, month: int) -> date:
    return date(year, month, days_in_month(year, month))


def advance_month(month: float, year: int, delta: float) -> tuple[float, int]:
    """Move a (possibly fractional) month position by ``delta`` months.

    The fractional part is preserved, so 12.25 stays in December and only
    crossing 13 rolls the year. Negative deltas borrow from the year.
    """
    position = year * 12 + (month - 1) + delta
    new_year = math.floor(position / 12)
    return position - new_year * 12 + 1, new_year


def month_span(start_month: int, start_year: int, end_month: int, end_year: int) -> int:
    # Inclusive count of whole months; zero or negative when start is after end.
    return (end_year - start_year) * 12 + (end_month - start_month + 1)


def year_range(start_year: int = 2020, today: Optional[date] = None) -> list[int]:
    today = today or local_today()
    return list(range(start_year, today.year + 2))
