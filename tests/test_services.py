from datetime import date

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session, sessionmaker

from database import Base
from errors import (
    AuthorizationError,
    GatewayError,
    MissingIndexError,
    NotFoundError,
    ValidationError,
)
from gateway import SqlGateway, WriteOp
from models import ExpenseCategory, ExpenseEntry, IncomeEntry, MonthlySummary, RecordKind
from schemas import ExpenseIn, ExpenseTemplate, IncomeIn, IncomeTemplate, TransactionIn
from services import (
    ExpenseService,
    IncomeService,
    SummaryService,
    TransactionService,
)

TODAY = date(2024, 2, 15)


class IndexlessGateway(SqlGateway):
    """Rejects compound entry queries the way an unindexed document store does."""

    def __init__(self, session: Session) -> None:
        super().__init__(session)
        self.rejected = 0

    def query(self, kind, filters, **kwargs):
        indexed = kind == RecordKind.monthly_summary
        if not indexed and set(filters) - {"owner_id"}:
            self.rejected += 1
            raise MissingIndexError("The query requires an index")
        return super().query(kind, filters, **kwargs)


def make_session() -> Session:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def _streaming(amount_cents: int = 1500) -> ExpenseTemplate:
    return ExpenseTemplate(
        category=ExpenseCategory.subscription,
        subcategory="Streaming",
        amount_cents=amount_cents,
        recurring=True,
        frequency="monthly",
        due_day_of_month=1,
    )


def test_recurring_expense_is_written_in_one_batch() -> None:
    with make_session() as session:
        gateway = SqlGateway(session)
        service = ExpenseService(gateway, "alice", today=TODAY)

        ids = service.create_recurring(_streaming(), 1, 2024, 3, 2024)

        assert len(ids) == 3
        rows = session.scalars(select(ExpenseEntry).order_by(ExpenseEntry.month)).all()
        assert [(r.month, r.due_date) for r in rows] == [
            (1, date(2024, 1, 1)),
            (2, date(2024, 2, 1)),
            (3, date(2024, 3, 1)),
        ]
        assert [r.is_paid for r in rows] == [True, True, False]
        assert {r.owner_id for r in rows} == {"alice"}


def test_invalid_template_writes_nothing() -> None:
    with make_session() as session:
        service = ExpenseService(SqlGateway(session), "alice", today=TODAY)
        template = _streaming().model_copy(update={"frequency": "daily"})

        with pytest.raises(ValidationError):
            service.create_recurring(template, 1, 2024, 3, 2024)

        assert session.scalar(select(func.count(ExpenseEntry.id))) == 0


def test_batch_write_is_all_or_nothing() -> None:
    with make_session() as session:
        gateway = SqlGateway(session)
        good = {"owner_id": "alice", "source": "Job", "amount_cents": 100, "month": 1, "year": 2024}
        bad = dict(good, month=13)

        with pytest.raises(GatewayError):
            gateway.batch_write(
                [WriteOp.create(RecordKind.income, good), WriteOp.create(RecordKind.income, bad)]
            )

        assert gateway.query(RecordKind.income, {"owner_id": "alice"}) == []


def test_single_expense_derives_paid_from_due_day() -> None:
    with make_session() as session:
        service = ExpenseService(SqlGateway(session), "alice", today=date(2024, 3, 10))
        entry_id = service.create(
            ExpenseIn(
                category=ExpenseCategory.fixed,
                subcategory="Rent",
                amount_cents=90_000,
                month=3,
                year=2024,
                due_day_of_month=15,
                is_paid=True,
            )
        )

        entry = service.get(entry_id)
        assert entry.due_date == date(2024, 3, 15)
        assert entry.is_paid is False

        service.set_paid(entry_id, True)
        assert service.get(entry_id).is_paid is True


def test_update_keeps_submitted_paid_status() -> None:
    with make_session() as session:
        service = ExpenseService(SqlGateway(session), "alice", today=date(2024, 3, 20))
        rent = ExpenseIn(
            category=ExpenseCategory.fixed,
            subcategory="Rent",
            amount_cents=90_000,
            month=3,
            year=2024,
            due_day_of_month=15,
        )
        entry_id = service.create(rent)
        assert service.get(entry_id).is_paid is True

        service.set_paid(entry_id, False)
        service.update(
            entry_id,
            rent.model_copy(update={"description": "edited", "is_paid": False}),
        )

        entry = service.get(entry_id)
        assert entry.description == "edited"
        assert entry.due_date == date(2024, 3, 15)
        assert entry.is_paid is False


def test_other_owner_cannot_touch_entries() -> None:
    with make_session() as session:
        gateway = SqlGateway(session)
        entry_id = IncomeService(gateway, "alice").create(
            IncomeIn(source="Salary", amount_cents=300_000, month=1, year=2024)
        )
        mallory = IncomeService(gateway, "mallory")

        with pytest.raises(NotFoundError):
            mallory.get(entry_id)
        with pytest.raises(AuthorizationError):
            mallory.delete(entry_id)
        with pytest.raises(AuthorizationError):
            mallory.set_paid(entry_id, True)
        with pytest.raises(NotFoundError):
            mallory.delete(entry_id + 100)

        assert IncomeService(gateway, "alice").get(entry_id).amount_cents == 300_000


def test_update_replaces_entry_fields() -> None:
    with make_session() as session:
        service = IncomeService(SqlGateway(session), "alice")
        entry_id = service.create(
            IncomeIn(source="Salary", amount_cents=300_000, month=1, year=2024)
        )

        service.update(
            entry_id,
            IncomeIn(source="Bonus", amount_cents=50_000, month=2, year=2024, is_paid=True),
        )

        entry = service.get(entry_id)
        assert (entry.source, entry.amount_cents, entry.month) == ("Bonus", 50_000, 2)
        assert service.list_for_month(1, 2024) == []


def test_bulk_delete_series_from_cutoff() -> None:
    with make_session() as session:
        gateway = SqlGateway(session)
        service = ExpenseService(gateway, "alice", today=TODAY)
        ids = service.create_recurring(_streaming(), 1, 2024, 12, 2024)
        other_ids = service.create_recurring(_streaming(amount_cents=999), 1, 2024, 12, 2024)

        deleted = service.bulk_delete_series(
            ids[0], delete_all=False, from_month=6, from_year=2024
        )

        assert deleted == 7
        remaining = session.scalars(
            select(ExpenseEntry).where(ExpenseEntry.amount_cents == 1500)
        ).all()
        assert sorted(r.month for r in remaining) == [1, 2, 3, 4, 5]
        assert all(service.get(i) for i in other_ids)


def test_bulk_delete_series_delete_all_and_empty_selection() -> None:
    with make_session() as session:
        service = ExpenseService(SqlGateway(session), "alice", today=TODAY)
        ids = service.create_recurring(_streaming(), 1, 2024, 3, 2024)

        assert service.bulk_delete_series(ids[0], from_month=1, from_year=2030) == 0
        assert service.bulk_delete_series(ids[0], delete_all=True) == 3
        assert session.scalar(select(func.count(ExpenseEntry.id))) == 0


def test_bulk_delete_series_requires_ownership() -> None:
    with make_session() as session:
        gateway = SqlGateway(session)
        ids = ExpenseService(gateway, "alice", today=TODAY).create_recurring(
            _streaming(), 1, 2024, 3, 2024
        )

        with pytest.raises(AuthorizationError):
            ExpenseService(gateway, "mallory").bulk_delete_series(ids[0], delete_all=True)


def test_month_queries_fall_back_to_in_memory_filtering() -> None:
    with make_session() as session:
        gateway = IndexlessGateway(session)
        expenses = ExpenseService(gateway, "alice", today=TODAY)
        ids = expenses.create_recurring(_streaming(), 1, 2024, 3, 2024)
        expenses.create(
            ExpenseIn(
                category=ExpenseCategory.fixed,
                subcategory="Rent",
                amount_cents=90_000,
                month=2,
                year=2024,
            )
        )

        february = expenses.list_for_month(2, 2024)
        assert sorted(e.amount_cents for e in february) == [1500, 90_000]
        subscriptions = expenses.list_for_month(2, 2024, ExpenseCategory.subscription)
        assert [e.amount_cents for e in subscriptions] == [1500]
        assert expenses.bulk_delete_series(ids[0], delete_all=True) == 3
        assert gateway.rejected == 3


def test_other_gateway_errors_are_not_retried() -> None:
    class BrokenGateway(SqlGateway):
        def query(self, kind, filters, **kwargs):
            raise GatewayError("store unavailable")

    with make_session() as session:
        with pytest.raises(GatewayError):
            IncomeService(BrokenGateway(session), "alice").list_for_month(1, 2024)


def test_summary_is_cached_until_recomputed() -> None:
    with make_session() as session:
        gateway = SqlGateway(session)
        IncomeService(gateway, "alice").create(
            IncomeIn(source="Salary", amount_cents=300_000, month=1, year=2024, is_paid=True)
        )
        summaries = SummaryService(gateway, "alice")

        first = summaries.get_or_compute(1, 2024)
        assert first.total_income == 300_000
        assert first.balance == 300_000

        ExpenseService(gateway, "alice", today=TODAY).create(
            ExpenseIn(
                category=ExpenseCategory.fixed,
                subcategory="Rent",
                amount_cents=90_000,
                month=1,
                year=2024,
                is_paid=True,
            )
        )
        assert summaries.get_or_compute(1, 2024).total_fixed_expenses == 0

        refreshed = summaries.compute_and_store(1, 2024)
        assert refreshed.id == first.id
        assert refreshed.total_fixed_expenses == 90_000
        assert refreshed.paid_fixed_expenses == 90_000
        assert refreshed.balance == 210_000
        assert session.scalar(select(func.count(MonthlySummary.id))) == 1


def test_summaries_are_scoped_by_owner() -> None:
    with make_session() as session:
        gateway = SqlGateway(session)
        IncomeService(gateway, "alice").create(
            IncomeIn(source="Salary", amount_cents=300_000, month=1, year=2024)
        )

        assert SummaryService(gateway, "bob").get_or_compute(1, 2024).total_income == 0
        assert SummaryService(gateway, "alice").get_or_compute(1, 2024).total_income == 300_000
        assert session.scalar(select(func.count(MonthlySummary.id))) == 2


def test_dashboard_respects_include_pending() -> None:
    with make_session() as session:
        gateway = SqlGateway(session)
        income = IncomeService(gateway, "alice")
        income.create(
            IncomeIn(source="Salary", amount_cents=300_000, month=3, year=2024, is_paid=True)
        )
        income.create_recurring(
            IncomeTemplate(source="Tutoring", amount_cents=5_000, recurring=True, frequency="weekly"),
            3,
            2024,
            3,
            2024,
        )
        ExpenseService(gateway, "alice", today=TODAY).create_recurring(
            _streaming(), 3, 2024, 3, 2024
        )

        summaries = SummaryService(gateway, "alice")
        everything = summaries.dashboard(3, 2024)
        assert everything["totals"].total_income == 300_000 + 4 * 5_000
        assert everything["totals"].total_subscriptions == 1500
        assert everything["pending_due_cents"] == 1500
        assert everything["expense_breakdown"] == [
            {"name": "Subscriptions", "amount_cents": 1500}
        ]

        paid_only = summaries.dashboard(3, 2024, include_pending=False)
        assert paid_only["totals"].total_income == 300_000
        assert paid_only["totals"].total_subscriptions == 0
        assert paid_only["totals"].balance == 300_000


def test_invalid_month_is_rejected_before_querying() -> None:
    with make_session() as session:
        with pytest.raises(ValidationError):
            SummaryService(SqlGateway(session), "alice").get_or_compute(13, 2024)


def test_transactions_default_period_from_date_and_sort_newest_first() -> None:
    with make_session() as session:
        gateway = SqlGateway(session)
        txns = TransactionService(gateway, "alice")
        for day, amount in ((5, 1_200), (20, 3_400), (12, 560)):
            txns.add(
                TransactionIn(
                    amount_cents=amount,
                    description="Groceries",
                    category="variable",
                    date=date(2024, 3, day),
                )
            )
        txns.add(
            TransactionIn(
                amount_cents=999,
                description="Fuel",
                category="fixed",
                date=date(2024, 3, 7),
            )
        )

        march = txns.list_for_month(3, 2024)
        assert [t.date.day for t in march] == [20, 12, 7, 5]
        assert {t.month for t in march} == {3}

        variable = txns.list_for_month(3, 2024, "variable")
        assert [t.amount_cents for t in variable] == [3_400, 560, 1_200]


def test_transactions_fallback_sorts_in_memory() -> None:
    with make_session() as session:
        txns = TransactionService(IndexlessGateway(session), "alice")
        for day in (3, 28, 14):
            txns.add(
                TransactionIn(
                    amount_cents=100,
                    description="Coffee",
                    category="variable",
                    date=date(2024, 5, day),
                )
            )

        assert [t.date.day for t in txns.list_for_month(5, 2024)] == [28, 14, 3]


def test_transaction_linked_expense_must_exist() -> None:
    with make_session() as session:
        txns = TransactionService(SqlGateway(session), "alice")
        with pytest.raises(NotFoundError):
            txns.add(
                TransactionIn(
                    amount_cents=100,
                    description="Coffee",
                    category="variable",
                    date=date(2024, 5, 1),
                    expense_id=42,
                )
            )


def test_transaction_delete_checks_owner() -> None:
    with make_session() as session:
        gateway = SqlGateway(session)
        txn_id = TransactionService(gateway, "alice").add(
            TransactionIn(
                amount_cents=100,
                description="Coffee",
                category="variable",
                date=date(2024, 5, 1),
            )
        )

        with pytest.raises(AuthorizationError):
            TransactionService(gateway, "mallory").delete(txn_id)
        TransactionService(gateway, "alice").delete(txn_id)
        assert gateway.get_by_id(RecordKind.transaction, txn_id) is None


def test_income_rows_carry_parsed_frequency() -> None:
    with make_session() as session:
        service = IncomeService(SqlGateway(session), "alice")
        service.create_recurring(
            IncomeTemplate(source="Salary", amount_cents=1, recurring=True, frequency="Biweekly"),
            1,
            2024,
            1,
            2024,
        )
        row = session.scalars(select(IncomeEntry)).one()
        assert row.frequency.value == "biweekly"
