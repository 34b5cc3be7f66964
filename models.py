from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class Frequency(str, Enum):
    weekly = "weekly"
    biweekly = "biweekly"
    monthly = "monthly"
    once = "once"


class ExpenseCategory(str, Enum):
    fixed = "fixed"
    variable = "variable"
    subscription = "subscription"


class EntryKind(str, Enum):
    income = "income"
    expense = "expense"


class RecordKind(str, Enum):
    income = "income"
    expense = "expense"
    transaction = "transaction"
    monthly_summary = "monthly_summary"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class EntryMixin(TimestampMixin):
    """Columns shared by income and expense entries."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    frequency: Mapped[Optional[Frequency]] = mapped_column(SAEnum(Frequency))
    start_date: Mapped[Optional[date]] = mapped_column(Date)
    end_date: Mapped[Optional[date]] = mapped_column(Date)
    is_paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)


class IncomeEntry(Base, EntryMixin):
    __tablename__ = "income_entries"

    kind = EntryKind.income

    source: Mapped[str] = mapped_column(String(120), nullable=False)

    __table_args__ = (
        Index("ix_income_owner_period", "owner_id", "year", "month"),
        CheckConstraint("amount_cents >= 0", name="ck_income_amount_positive"),
        CheckConstraint("month BETWEEN 1 AND 12", name="ck_income_month_range"),
    )


class ExpenseEntry(Base, EntryMixin):
    __tablename__ = "expense_entries"

    kind = EntryKind.expense

    category: Mapped[ExpenseCategory] = mapped_column(
        SAEnum(ExpenseCategory), nullable=False
    )
    subcategory: Mapped[str] = mapped_column(String(120), nullable=False, default="")
    due_date: Mapped[Optional[date]] = mapped_column(Date)
    due_day_of_month: Mapped[Optional[int]] = mapped_column(Integer)
    actual_amount_cents: Mapped[Optional[int]] = mapped_column(Integer)

    __table_args__ = (
        Index("ix_expense_owner_period", "owner_id", "year", "month"),
        Index(
            "ix_expense_owner_category_period", "owner_id", "category", "year", "month"
        ),
        Index(
            "ix_expense_owner_series",
            "owner_id",
            "category",
            "subcategory",
            "recurring",
        ),
        CheckConstraint("amount_cents >= 0", name="ck_expense_amount_positive"),
        CheckConstraint("month BETWEEN 1 AND 12", name="ck_expense_month_range"),
        CheckConstraint(
            "due_day_of_month IS NULL OR due_day_of_month BETWEEN 1 AND 31",
            name="ck_expense_due_day_range",
        ),
    )


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False)
    expense_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("expense_entries.id", ondelete="SET NULL")
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(40), nullable=False)
    subcategory: Mapped[Optional[str]] = mapped_column(String(120))
    date: Mapped[date] = mapped_column(Date, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        Index("ix_transactions_owner_period_date", "owner_id", "year", "month", "date"),
        CheckConstraint("amount_cents >= 0", name="ck_transactions_amount_positive"),
    )


class MonthlySummary(Base, TimestampMixin):
    # One row per (owner_id, year, month), kept by query-then-upsert.
    __tablename__ = "monthly_summaries"
    __table_args__ = (
        Index("ix_summary_owner_period", "owner_id", "year", "month"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    total_income: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_fixed_expenses: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    total_variable_expenses: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    total_subscriptions: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    paid_fixed_expenses: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    paid_variable_expenses: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    paid_subscriptions: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


RECORD_MODELS = {
    RecordKind.income: IncomeEntry,
    RecordKind.expense: ExpenseEntry,
    RecordKind.transaction: Transaction,
    RecordKind.monthly_summary: MonthlySummary,
}
