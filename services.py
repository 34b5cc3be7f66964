from __future__ import annotations

import logging
from datetime import date
from typing import Any, Optional, Union

from aggregation import SummaryTotals, expense_breakdown, pending_expenses, summarize
from calendar_utils import local_today
from errors import AuthorizationError, MissingIndexError, NotFoundError, ValidationError
from frequency import parse_frequency
from gateway import Gateway, WriteOp
from models import (
    ExpenseCategory,
    ExpenseEntry,
    IncomeEntry,
    MonthlySummary,
    RecordKind,
    Transaction,
)
from recurrence import expand, resolve_due_date, validate_template
from schemas import (
    ExpenseIn,
    ExpenseTemplate,
    IncomeTemplate,
    Occurrence,
    TransactionIn,
)
from series import find_series, partition

logger = logging.getLogger(__name__)


def _plain(value: Any) -> Any:
    return getattr(value, "value", value)


def _check_period(month: int, year: int) -> None:
    if not 1 <= month <= 12:
        raise ValidationError("Month must be between 1 and 12")
    if year < 1970:
        raise ValidationError("Year must be 1970 or later")


def query_with_fallback(
    gateway: Gateway,
    kind: RecordKind,
    owner_id: str,
    filters: dict[str, Any],
    *,
    order_by: Optional[str] = None,
    descending: bool = False,
) -> list[Any]:
    """Run an owner-scoped query, degrading to in-memory filtering once.

    Only a missing-index failure triggers the retry; any other gateway error
    propagates unchanged.
    """
    scoped = {"owner_id": owner_id, **filters}
    try:
        return gateway.query(kind, scoped, order_by=order_by, descending=descending)
    except MissingIndexError as exc:
        logger.warning(
            f"index_fallback: kind={kind.value} filters={sorted(filters)} error={exc}"
        )

    records = gateway.query(kind, {"owner_id": owner_id})
    matched = [
        record
        for record in records
        if all(
            _plain(getattr(record, name)) == _plain(value)
            for name, value in filters.items()
        )
    ]
    if order_by:
        matched.sort(key=lambda record: getattr(record, order_by), reverse=descending)
    return matched


class _EntryService:
    kind: RecordKind
    label: str

    def __init__(self, gateway: Gateway, owner_id: str) -> None:
        self.gateway = gateway
        self.owner_id = owner_id

    def _record_data(self, entry: Occurrence) -> dict[str, Any]:
        data = entry.model_dump(exclude={"kind"})
        data["frequency"] = parse_frequency(entry.frequency)
        data["owner_id"] = self.owner_id
        return data

    def get(self, entry_id: int):
        record = self.gateway.get_by_id(self.kind, entry_id)
        if record is None or record.owner_id != self.owner_id:
            raise NotFoundError(f"{self.label} not found")
        return record

    def _owned(self, entry_id: int, action: str):
        record = self.gateway.get_by_id(self.kind, entry_id)
        if record is None:
            raise NotFoundError(f"{self.label} not found")
        if record.owner_id != self.owner_id:
            raise AuthorizationError(f"Not authorized to {action} this {self.label}")
        return record

    def _prepare(self, data: Occurrence, *, creating: bool = False) -> Occurrence:
        validate_template(data)
        return data

    def create(self, data: Occurrence) -> int:
        data = self._prepare(data, creating=True)
        entry_id = self.gateway.create(self.kind, self._record_data(data))
        logger.info(
            f"entry_created: kind={self.kind.value} id={entry_id} "
            f"period={data.year}-{data.month:02d}"
        )
        return entry_id

    def create_recurring(
        self,
        template: Union[IncomeTemplate, ExpenseTemplate],
        start_month: int,
        start_year: int,
        end_month: Optional[int] = None,
        end_year: Optional[int] = None,
        *,
        today: Optional[date] = None,
    ) -> list[int]:
        occurrences = expand(
            template, start_month, start_year, end_month, end_year, today=today
        )
        ops = [WriteOp.create(self.kind, self._record_data(o)) for o in occurrences]
        created_ids = self.gateway.batch_write(ops)
        logger.info(
            f"recurring_expanded: kind={self.kind.value} "
            f"frequency={template.frequency} occurrences={len(created_ids)}"
        )
        return created_ids

    def update(self, entry_id: int, data: Occurrence) -> None:
        self._owned(entry_id, "update")
        data = self._prepare(data)
        self.gateway.update(self.kind, entry_id, self._record_data(data))

    def set_paid(self, entry_id: int, is_paid: bool) -> None:
        self._owned(entry_id, "update")
        self.gateway.update(self.kind, entry_id, {"is_paid": is_paid})

    def delete(self, entry_id: int) -> None:
        self._owned(entry_id, "delete")
        self.gateway.delete(self.kind, entry_id)
        logger.info(f"entry_deleted: kind={self.kind.value} id={entry_id}")


class IncomeService(_EntryService):
    kind = RecordKind.income
    label = "income record"

    def list_for_month(self, month: int, year: int) -> list[IncomeEntry]:
        _check_period(month, year)
        return query_with_fallback(
            self.gateway,
            self.kind,
            self.owner_id,
            {"year": year, "month": month},
        )


class ExpenseService(_EntryService):
    kind = RecordKind.expense
    label = "expense"

    def __init__(
        self, gateway: Gateway, owner_id: str, today: Optional[date] = None
    ) -> None:
        super().__init__(gateway, owner_id)
        self.today = today

    def _prepare(self, data: ExpenseIn, *, creating: bool = False) -> ExpenseIn:
        validate_template(data)
        due_date = resolve_due_date(data, data.year, data.month)
        if due_date is None:
            return data
        update: dict[str, object] = {"due_date": due_date}
        # Paid status is only derived on creation; later it is user-controlled.
        if creating:
            update["is_paid"] = due_date <= (self.today or local_today())
        return data.model_copy(update=update)

    def create_recurring(self, template: ExpenseTemplate, *args, **kwargs) -> list[int]:
        kwargs.setdefault("today", self.today)
        return super().create_recurring(template, *args, **kwargs)

    def list_for_month(
        self, month: int, year: int, category: Optional[ExpenseCategory] = None
    ) -> list[ExpenseEntry]:
        _check_period(month, year)
        filters: dict[str, Any] = {"year": year, "month": month}
        if category is not None:
            filters["category"] = ExpenseCategory(category)
        return query_with_fallback(self.gateway, self.kind, self.owner_id, filters)

    def bulk_delete_series(
        self,
        representative_id: int,
        delete_all: bool = False,
        from_month: Optional[int] = None,
        from_year: Optional[int] = None,
    ) -> int:
        """Delete a recurring expense series in one atomic batch.

        Without ``delete_all`` only the members on or after
        ``from_month``/``from_year`` are removed. Returns the number deleted.
        """
        representative = self._owned(representative_id, "delete")
        candidates = query_with_fallback(
            self.gateway,
            self.kind,
            self.owner_id,
            {
                "category": representative.category,
                "subcategory": representative.subcategory,
                "recurring": True,
            },
        )
        matches = find_series(representative, candidates)
        selected = partition(matches, delete_all, from_month, from_year)
        if not selected:
            return 0
        self.gateway.batch_write(
            [WriteOp.delete(self.kind, entry.id) for entry in selected]
        )
        logger.info(
            f"series_deleted: representative={representative_id} "
            f"matched={len(matches)} deleted={len(selected)} delete_all={delete_all}"
        )
        return len(selected)


class TransactionService:
    def __init__(self, gateway: Gateway, owner_id: str) -> None:
        self.gateway = gateway
        self.owner_id = owner_id

    def add(self, data: TransactionIn) -> int:
        if data.expense_id is not None:
            ExpenseService(self.gateway, self.owner_id).get(data.expense_id)
        record = data.model_dump()
        record["month"] = data.month or data.date.month
        record["year"] = data.year or data.date.year
        record["owner_id"] = self.owner_id
        return self.gateway.create(RecordKind.transaction, record)

    def list_for_month(
        self, month: int, year: int, category: Optional[str] = None
    ) -> list[Transaction]:
        _check_period(month, year)
        filters: dict[str, Any] = {"year": year, "month": month}
        if category:
            filters["category"] = category
        return query_with_fallback(
            self.gateway,
            RecordKind.transaction,
            self.owner_id,
            filters,
            order_by="date",
            descending=True,
        )

    def delete(self, transaction_id: int) -> None:
        txn = self.gateway.get_by_id(RecordKind.transaction, transaction_id)
        if txn is None:
            raise NotFoundError("Transaction not found")
        if txn.owner_id != self.owner_id:
            raise AuthorizationError("Not authorized to delete this transaction")
        self.gateway.delete(RecordKind.transaction, transaction_id)


class SummaryService:
    def __init__(self, gateway: Gateway, owner_id: str) -> None:
        self.gateway = gateway
        self.owner_id = owner_id
        self.income = IncomeService(gateway, owner_id)
        self.expenses = ExpenseService(gateway, owner_id)

    def lookup(self, month: int, year: int) -> Optional[MonthlySummary]:
        _check_period(month, year)
        rows = self.gateway.query(
            RecordKind.monthly_summary,
            {"owner_id": self.owner_id, "month": month, "year": year},
            limit=1,
        )
        return rows[0] if rows else None

    def compute(
        self, month: int, year: int, *, include_pending: bool = True
    ) -> SummaryTotals:
        return summarize(
            self.income.list_for_month(month, year),
            self.expenses.list_for_month(month, year),
            include_pending=include_pending,
        )

    def compute_and_store(self, month: int, year: int) -> MonthlySummary:
        totals = self.compute(month, year)
        existing = self.lookup(month, year)
        if existing is not None:
            summary_id = existing.id
            self.gateway.update(RecordKind.monthly_summary, summary_id, totals.as_dict())
        else:
            record = {"owner_id": self.owner_id, "month": month, "year": year}
            record.update(totals.as_dict())
            summary_id = self.gateway.create(RecordKind.monthly_summary, record)
        logger.info(
            f"summary_recomputed: owner={self.owner_id} period={year}-{month:02d} "
            f"balance={totals.balance}"
        )
        return self.gateway.get_by_id(RecordKind.monthly_summary, summary_id)

    def get_or_compute(self, month: int, year: int) -> MonthlySummary:
        cached = self.lookup(month, year)
        if cached is not None:
            return cached
        return self.compute_and_store(month, year)

    def dashboard(
        self, month: int, year: int, *, include_pending: bool = True
    ) -> dict[str, object]:
        income_entries = self.income.list_for_month(month, year)
        expense_entries = self.expenses.list_for_month(month, year)
        totals = summarize(
            income_entries, expense_entries, include_pending=include_pending
        )
        pending = pending_expenses(expense_entries)
        return {
            "month": month,
            "year": year,
            "include_pending": include_pending,
            "totals": totals,
            "total_expenses": totals.total_expenses,
            "expense_breakdown": expense_breakdown(totals),
            "pending_expenses": pending,
            "pending_due_cents": sum(entry.amount_cents for entry in pending),
        }
