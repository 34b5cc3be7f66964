from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Iterable, Protocol

from frequency import monthly_amount, parse_frequency
from models import ExpenseCategory


class IncomeLike(Protocol):
    amount_cents: int
    recurring: bool
    frequency: object
    month: int
    year: int
    is_paid: bool


class ExpenseLike(Protocol):
    amount_cents: int
    category: ExpenseCategory
    is_paid: bool


CATEGORY_LABELS = {
    ExpenseCategory.fixed: "Fixed",
    ExpenseCategory.variable: "Variable",
    ExpenseCategory.subscription: "Subscriptions",
}


@dataclass(frozen=True)
class SummaryTotals:
    total_income: int = 0
    total_fixed_expenses: int = 0
    total_variable_expenses: int = 0
    total_subscriptions: int = 0
    paid_fixed_expenses: int = 0
    paid_variable_expenses: int = 0
    paid_subscriptions: int = 0
    balance: int = 0

    @property
    def total_expenses(self) -> int:
        return (
            self.total_fixed_expenses
            + self.total_variable_expenses
            + self.total_subscriptions
        )

    def __add__(self, other: SummaryTotals) -> SummaryTotals:
        if not isinstance(other, SummaryTotals):
            return NotImplemented
        return SummaryTotals(
            **{
                f.name: getattr(self, f.name) + getattr(other, f.name)
                for f in fields(self)
            }
        )

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


def income_total(
    income_entries: Iterable[IncomeLike], *, include_pending: bool = True
) -> int:
    total = 0
    for entry in income_entries:
        if not include_pending and not entry.is_paid:
            continue
        total += monthly_amount(
            entry.amount_cents,
            parse_frequency(entry.frequency),
            entry.recurring,
            entry.year,
            entry.month,
        )
    return total


def expense_total(
    expense_entries: Iterable[ExpenseLike],
    category: ExpenseCategory,
    *,
    include_pending: bool = True,
) -> int:
    return sum(
        entry.amount_cents
        for entry in expense_entries
        if entry.category == category and (include_pending or entry.is_paid)
    )


def summarize(
    income_entries: Iterable[IncomeLike],
    expense_entries: Iterable[ExpenseLike],
    *,
    include_pending: bool = True,
) -> SummaryTotals:
    """Roll one month of entries into summary totals.

    ``include_pending`` only affects the headline totals and the balance; the
    ``paid_*`` figures always count settled expenses alone.
    """
    expenses = list(expense_entries)
    total_income = income_total(income_entries, include_pending=include_pending)
    totals = {
        category: expense_total(expenses, category, include_pending=include_pending)
        for category in ExpenseCategory
    }
    paid = {
        category: expense_total(expenses, category, include_pending=False)
        for category in ExpenseCategory
    }
    return SummaryTotals(
        total_income=total_income,
        total_fixed_expenses=totals[ExpenseCategory.fixed],
        total_variable_expenses=totals[ExpenseCategory.variable],
        total_subscriptions=totals[ExpenseCategory.subscription],
        paid_fixed_expenses=paid[ExpenseCategory.fixed],
        paid_variable_expenses=paid[ExpenseCategory.variable],
        paid_subscriptions=paid[ExpenseCategory.subscription],
        balance=total_income - sum(totals.values()),
    )


def expense_breakdown(totals: SummaryTotals) -> list[dict[str, object]]:
    items = [
        (CATEGORY_LABELS[ExpenseCategory.fixed], totals.total_fixed_expenses),
        (CATEGORY_LABELS[ExpenseCategory.variable], totals.total_variable_expenses),
        (CATEGORY_LABELS[ExpenseCategory.subscription], totals.total_subscriptions),
    ]
    return [
        {"name": name, "amount_cents": amount} for name, amount in items if amount > 0
    ]


def pending_expenses(expense_entries: Iterable[ExpenseLike]) -> list[ExpenseLike]:
    return [entry for entry in expense_entries if not entry.is_paid]
