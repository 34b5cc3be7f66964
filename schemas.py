import datetime as dt
from datetime import date
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from models import EntryKind, ExpenseCategory


class EntryBase(BaseModel):
    amount_cents: int = Field(..., ge=0)
    recurring: bool = False
    # Checked by frequency.parse_frequency so callers get a ValidationError.
    frequency: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_paid: bool = False
    description: Optional[str] = Field(default=None, max_length=500)


class IncomeTemplate(EntryBase):
    kind: Literal[EntryKind.income] = EntryKind.income
    source: str = Field(..., min_length=1, max_length=120)


class ExpenseTemplate(EntryBase):
    kind: Literal[EntryKind.expense] = EntryKind.expense
    category: ExpenseCategory
    subcategory: str = Field(default="", max_length=120)
    due_date: Optional[date] = None
    due_day_of_month: Optional[int] = None
    actual_amount_cents: Optional[int] = Field(default=None, ge=0)


class IncomeIn(IncomeTemplate):
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=1970, le=3000)


class ExpenseIn(ExpenseTemplate):
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=1970, le=3000)


Template = Union[IncomeTemplate, ExpenseTemplate]
Occurrence = Union[IncomeIn, ExpenseIn]


class RecurrencePeriod(BaseModel):
    start_month: int = Field(..., ge=1, le=12)
    start_year: int = Field(..., ge=1970, le=3000)
    end_month: Optional[int] = Field(default=None, ge=1, le=12)
    end_year: Optional[int] = Field(default=None, ge=1970, le=3000)


class RecurringIncomeIn(BaseModel):
    template: IncomeTemplate
    period: RecurrencePeriod


class RecurringExpenseIn(BaseModel):
    template: ExpenseTemplate
    period: RecurrencePeriod


class PaidStatusIn(BaseModel):
    is_paid: bool


class BulkDeleteIn(BaseModel):
    delete_all: bool = False
    from_month: Optional[int] = Field(default=None, ge=1, le=12)
    from_year: Optional[int] = Field(default=None, ge=1970, le=3000)


class TransactionIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount_cents: int = Field(..., ge=0)
    description: str = Field(..., min_length=1, max_length=200)
    category: str = Field(..., min_length=1, max_length=40)
    subcategory: Optional[str] = Field(default=None, max_length=120)
    date: dt.date
    expense_id: Optional[int] = None
    month: Optional[int] = Field(default=None, ge=1, le=12)
    year: Optional[int] = Field(default=None, ge=1970, le=3000)
