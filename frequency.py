"""Recurrence frequencies.

Two separate rules hang off each frequency and they are not expected to agree:

* ``step_months`` is the fractional-month advance used when generating
  occurrence records (a weekly series advances a quarter month per record).
* ``occurrences_in_month`` is the multiplier applied to a recurring income when
  totalling a month (a weekly income counts once per whole week in the month).
"""

from typing import Optional, Union

from calendar_utils import days_in_month
from errors import ValidationError
from models import Frequency

_STEP_MONTHS: dict[Frequency, float] = {
    Frequency.weekly: 0.25,
    Frequency.biweekly: 0.5,
    Frequency.monthly: 1.0,
}

_DAYS_PER_PERIOD: dict[Frequency, int] = {
    Frequency.weekly: 7,
    Frequency.biweekly: 14,
}


def parse_frequency(value: Union[str, Frequency, None]) -> Optional[Frequency]:
    if value is None or value == "":
        return None
    if isinstance(value, Frequency):
        return value
    try:
        return Frequency(str(value).strip().lower())
    except ValueError as exc:
        allowed = ", ".join(f.value for f in Frequency)
        raise ValidationError(
            f"Unknown frequency {value!r}; expected one of: {allowed}"
        ) from exc


def step_months(frequency: Optional[Frequency]) -> Optional[float]:
    """Months to advance per generated record; None for a one-off entry."""
    if frequency is None:
        return None
    return _STEP_MONTHS.get(frequency)


def occurrences_in_month(frequency: Optional[Frequency], year: int, month: int) -> int:
    period_days = _DAYS_PER_PERIOD.get(frequency) if frequency else None
    if period_days is None:
        return 1
    return days_in_month(year, month) // period_days


def monthly_amount(
    amount_cents: int,
    frequency: Optional[Frequency],
    recurring: bool,
    year: int,
    month: int,
) -> int:
    if not recurring:
        return amount_cents
    return amount_cents * occurrences_in_month(frequency, year, month)
