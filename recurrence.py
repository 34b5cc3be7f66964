import math
from datetime import date
from typing import Optional

from calendar_utils import (
    advance_month,
    clamp_day_of_month,
    local_today,
    month_span,
)
from errors import ValidationError
from frequency import parse_frequency, step_months
from models import Frequency
from schemas import ExpenseIn, ExpenseTemplate, IncomeIn, Occurrence, Template


def validate_template(template: Template) -> Optional[Frequency]:
    frequency = parse_frequency(template.frequency)
    if template.recurring and frequency is None:
        raise ValidationError("Frequency is required for recurring entries")
    if (
        template.start_date
        and template.end_date
        and template.start_date > template.end_date
    ):
        raise ValidationError("End date must be after start date")
    if isinstance(template, ExpenseTemplate):
        day = template.due_day_of_month
        if day is not None and not 1 <= day <= 31:
            raise ValidationError("Due day must be between 1 and 31")
    return frequency


def resolve_due_date(
    template: ExpenseTemplate, year: int, month: int
) -> Optional[date]:
    if template.due_day_of_month:
        day = clamp_day_of_month(template.due_day_of_month, year, month)
        return date(year, month, day)
    return template.due_date


def _occurrence(
    template: Template,
    frequency: Optional[Frequency],
    month: int,
    year: int,
    today: date,
    first: bool = False,
) -> Occurrence:
    data = template.model_dump(exclude={"kind"})
    data["frequency"] = frequency.value if frequency else None
    data["month"] = month
    data["year"] = year
    if isinstance(template, ExpenseTemplate):
        due_date = resolve_due_date(template, year, month)
        data["due_date"] = due_date
        if due_date is not None:
            data["is_paid"] = due_date <= today
        elif not first:
            # Only the submitted month inherits the template's paid flag.
            data["is_paid"] = False
        return ExpenseIn(**data)
    return IncomeIn(**data)


def expand(
    template: Template,
    start_month: int,
    start_year: int,
    end_month: Optional[int] = None,
    end_year: Optional[int] = None,
    *,
    today: Optional[date] = None,
) -> list[Occurrence]:
    """Turn a recurring template into one concrete entry per occurrence.

    The start month is always emitted first. After that the month position is
    advanced by the frequency's fractional step, and each step emits a record
    for the floored month until the position passes the end month or the
    number of steps covers the whole-month span. Weekly and biweekly series
    therefore produce several records per month, which is what the monthly
    totals expect.
    """
    frequency = validate_template(template)
    if not 1 <= start_month <= 12:
        raise ValidationError("Start month must be between 1 and 12")
    if end_month is None or end_year is None:
        end_month, end_year = 12, start_year
    if not 1 <= end_month <= 12:
        raise ValidationError("End month must be between 1 and 12")

    today = today or local_today()
    occurrences = [
        _occurrence(template, frequency, start_month, start_year, today, first=True)
    ]

    step = step_months(frequency) if template.recurring else None
    if step is None:
        return occurrences

    total_months = month_span(start_month, start_year, end_month, end_year)
    position, year = advance_month(start_month, start_year, step)
    counter = step
    while counter < total_months:
        if (year, position) > (end_year, end_month):
            break
        occurrences.append(
            _occurrence(template, frequency, math.floor(position), year, today)
        )
        position, year = advance_month(position, year, step)
        counter += step
    return occurrences
