import logging
import tomllib
from contextlib import contextmanager
from importlib import metadata
from pathlib import Path
from typing import Iterator, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Response
from sqlalchemy.orm import Session

from calendar_utils import local_today, year_range
from database import SessionLocal
from errors import AuthorizationError, GatewayError, NotFoundError
from gateway import Gateway, SqlGateway
from identity import OwnerIdentity, read_identity_token, resolve_owner
from models import ExpenseCategory, ExpenseEntry, IncomeEntry, MonthlySummary, Transaction
from schemas import (
    BulkDeleteIn,
    ExpenseIn,
    IncomeIn,
    PaidStatusIn,
    RecurringExpenseIn,
    RecurringIncomeIn,
    TransactionIn,
)
from services import ExpenseService, IncomeService, SummaryService, TransactionService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="Budget Tracker")


def _load_app_version() -> str:
    try:
        return metadata.version("budget-tracker")
    except metadata.PackageNotFoundError:
        pass
    # Source checkout without an install: read the project file beside this module.
    pyproject = Path(__file__).resolve().parent / "pyproject.toml"
    try:
        with pyproject.open("rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError):
        return "unknown"
    return str(data.get("project", {}).get("version", "unknown"))


APP_VERSION = _load_app_version()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_gateway(db: Session = Depends(get_db)) -> Gateway:
    return SqlGateway(db)


def current_owner(x_identity_token: str = Header(default="")) -> OwnerIdentity:
    try:
        user = read_identity_token(x_identity_token)
    except AuthorizationError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    return resolve_owner(user)


@contextmanager
def http_errors() -> Iterator[None]:
    try:
        yield
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except AuthorizationError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except GatewayError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc


def _period(month: Optional[int], year: Optional[int]) -> tuple[int, int]:
    today = local_today()
    return month or today.month, year or today.year


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def _value(enum_value) -> Optional[str]:
    return enum_value.value if enum_value is not None else None


def _entry_payload(entry) -> dict[str, object]:
    return {
        "id": entry.id,
        "amount_cents": entry.amount_cents,
        "month": entry.month,
        "year": entry.year,
        "recurring": entry.recurring,
        "frequency": _value(entry.frequency),
        "start_date": _iso(entry.start_date),
        "end_date": _iso(entry.end_date),
        "is_paid": entry.is_paid,
        "description": entry.description,
    }


def income_payload(entry: IncomeEntry) -> dict[str, object]:
    payload = _entry_payload(entry)
    payload.update({"kind": "income", "source": entry.source})
    return payload


def expense_payload(entry: ExpenseEntry) -> dict[str, object]:
    payload = _entry_payload(entry)
    payload.update(
        {
            "kind": "expense",
            "category": _value(entry.category),
            "subcategory": entry.subcategory,
            "due_date": _iso(entry.due_date),
            "due_day_of_month": entry.due_day_of_month,
            "actual_amount_cents": entry.actual_amount_cents,
        }
    )
    return payload


def transaction_payload(txn: Transaction) -> dict[str, object]:
    return {
        "id": txn.id,
        "expense_id": txn.expense_id,
        "amount_cents": txn.amount_cents,
        "description": txn.description,
        "category": txn.category,
        "subcategory": txn.subcategory,
        "date": txn.date.isoformat(),
        "month": txn.month,
        "year": txn.year,
    }


def summary_payload(summary: MonthlySummary) -> dict[str, object]:
    return {
        "id": summary.id,
        "month": summary.month,
        "year": summary.year,
        "total_income": summary.total_income,
        "total_fixed_expenses": summary.total_fixed_expenses,
        "total_variable_expenses": summary.total_variable_expenses,
        "total_subscriptions": summary.total_subscriptions,
        "paid_fixed_expenses": summary.paid_fixed_expenses,
        "paid_variable_expenses": summary.paid_variable_expenses,
        "paid_subscriptions": summary.paid_subscriptions,
        "balance": summary.balance,
        "updated_at": _iso(summary.updated_at),
    }


@app.get("/api/health")
def api_health():
    return {"status": "ok", "version": APP_VERSION}


@app.get("/api/identity")
def api_identity(owner: OwnerIdentity = Depends(current_owner)):
    return {
        "owner_id": owner.resolved_owner_id,
        "is_shared_access": owner.is_shared_access,
    }


@app.get("/api/years")
def api_years():
    return {"years": year_range()}


@app.get("/api/income")
def list_income(
    month: Optional[int] = None,
    year: Optional[int] = None,
    gateway: Gateway = Depends(get_gateway),
    owner: OwnerIdentity = Depends(current_owner),
):
    month, year = _period(month, year)
    with http_errors():
        items = IncomeService(gateway, owner.resolved_owner_id).list_for_month(
            month, year
        )
    return {"month": month, "year": year, "items": [income_payload(i) for i in items]}


@app.post("/api/income", status_code=201)
def create_income(
    data: IncomeIn,
    gateway: Gateway = Depends(get_gateway),
    owner: OwnerIdentity = Depends(current_owner),
):
    with http_errors():
        entry_id = IncomeService(gateway, owner.resolved_owner_id).create(data)
    return {"id": entry_id}


@app.post("/api/income/recurring", status_code=201)
def create_recurring_income(
    data: RecurringIncomeIn,
    gateway: Gateway = Depends(get_gateway),
    owner: OwnerIdentity = Depends(current_owner),
):
    period = data.period
    with http_errors():
        ids = IncomeService(gateway, owner.resolved_owner_id).create_recurring(
            data.template,
            period.start_month,
            period.start_year,
            period.end_month,
            period.end_year,
        )
    return {"ids": ids}


@app.put("/api/income/{entry_id}", status_code=204)
def update_income(
    entry_id: int,
    data: IncomeIn,
    gateway: Gateway = Depends(get_gateway),
    owner: OwnerIdentity = Depends(current_owner),
):
    with http_errors():
        IncomeService(gateway, owner.resolved_owner_id).update(entry_id, data)
    return Response(status_code=204)


@app.post("/api/income/{entry_id}/status", status_code=204)
def set_income_status(
    entry_id: int,
    data: PaidStatusIn,
    gateway: Gateway = Depends(get_gateway),
    owner: OwnerIdentity = Depends(current_owner),
):
    with http_errors():
        IncomeService(gateway, owner.resolved_owner_id).set_paid(entry_id, data.is_paid)
    return Response(status_code=204)


@app.delete("/api/income/{entry_id}", status_code=204)
def delete_income(
    entry_id: int,
    gateway: Gateway = Depends(get_gateway),
    owner: OwnerIdentity = Depends(current_owner),
):
    with http_errors():
        IncomeService(gateway, owner.resolved_owner_id).delete(entry_id)
    return Response(status_code=204)


@app.get("/api/expenses")
def list_expenses(
    month: Optional[int] = None,
    year: Optional[int] = None,
    category: Optional[ExpenseCategory] = None,
    gateway: Gateway = Depends(get_gateway),
    owner: OwnerIdentity = Depends(current_owner),
):
    month, year = _period(month, year)
    with http_errors():
        items = ExpenseService(gateway, owner.resolved_owner_id).list_for_month(
            month, year, category
        )
    return {"month": month, "year": year, "items": [expense_payload(i) for i in items]}


@app.post("/api/expenses", status_code=201)
def create_expense(
    data: ExpenseIn,
    gateway: Gateway = Depends(get_gateway),
    owner: OwnerIdentity = Depends(current_owner),
):
    with http_errors():
        entry_id = ExpenseService(gateway, owner.resolved_owner_id).create(data)
    return {"id": entry_id}


@app.post("/api/expenses/recurring", status_code=201)
def create_recurring_expense(
    data: RecurringExpenseIn,
    gateway: Gateway = Depends(get_gateway),
    owner: OwnerIdentity = Depends(current_owner),
):
    period = data.period
    with http_errors():
        ids = ExpenseService(gateway, owner.resolved_owner_id).create_recurring(
            data.template,
            period.start_month,
            period.start_year,
            period.end_month,
            period.end_year,
        )
    return {"ids": ids}


@app.put("/api/expenses/{entry_id}", status_code=204)
def update_expense(
    entry_id: int,
    data: ExpenseIn,
    gateway: Gateway = Depends(get_gateway),
    owner: OwnerIdentity = Depends(current_owner),
):
    with http_errors():
        ExpenseService(gateway, owner.resolved_owner_id).update(entry_id, data)
    return Response(status_code=204)


@app.post("/api/expenses/{entry_id}/status", status_code=204)
def set_expense_status(
    entry_id: int,
    data: PaidStatusIn,
    gateway: Gateway = Depends(get_gateway),
    owner: OwnerIdentity = Depends(current_owner),
):
    with http_errors():
        ExpenseService(gateway, owner.resolved_owner_id).set_paid(
            entry_id, data.is_paid
        )
    return Response(status_code=204)


@app.delete("/api/expenses/{entry_id}", status_code=204)
def delete_expense(
    entry_id: int,
    gateway: Gateway = Depends(get_gateway),
    owner: OwnerIdentity = Depends(current_owner),
):
    with http_errors():
        ExpenseService(gateway, owner.resolved_owner_id).delete(entry_id)
    return Response(status_code=204)


@app.post("/api/expenses/{entry_id}/delete-series")
def delete_expense_series(
    entry_id: int,
    data: BulkDeleteIn,
    gateway: Gateway = Depends(get_gateway),
    owner: OwnerIdentity = Depends(current_owner),
):
    with http_errors():
        deleted = ExpenseService(gateway, owner.resolved_owner_id).bulk_delete_series(
            entry_id, data.delete_all, data.from_month, data.from_year
        )
    logger.info(f"api_delete_series: expense={entry_id} deleted={deleted}")
    return {"deleted": deleted}


@app.get("/api/transactions")
def list_transactions(
    month: Optional[int] = None,
    year: Optional[int] = None,
    category: Optional[str] = None,
    gateway: Gateway = Depends(get_gateway),
    owner: OwnerIdentity = Depends(current_owner),
):
    month, year = _period(month, year)
    with http_errors():
        items = TransactionService(gateway, owner.resolved_owner_id).list_for_month(
            month, year, category
        )
    return {
        "month": month,
        "year": year,
        "items": [transaction_payload(t) for t in items],
    }


@app.post("/api/transactions", status_code=201)
def create_transaction(
    data: TransactionIn,
    gateway: Gateway = Depends(get_gateway),
    owner: OwnerIdentity = Depends(current_owner),
):
    with http_errors():
        txn_id = TransactionService(gateway, owner.resolved_owner_id).add(data)
    return {"id": txn_id}


@app.delete("/api/transactions/{transaction_id}", status_code=204)
def delete_transaction(
    transaction_id: int,
    gateway: Gateway = Depends(get_gateway),
    owner: OwnerIdentity = Depends(current_owner),
):
    with http_errors():
        TransactionService(gateway, owner.resolved_owner_id).delete(transaction_id)
    return Response(status_code=204)


@app.get("/api/summary")
def get_summary(
    month: Optional[int] = None,
    year: Optional[int] = None,
    gateway: Gateway = Depends(get_gateway),
    owner: OwnerIdentity = Depends(current_owner),
):
    month, year = _period(month, year)
    with http_errors():
        summary = SummaryService(gateway, owner.resolved_owner_id).get_or_compute(
            month, year
        )
    return summary_payload(summary)


@app.post("/api/summary/recompute")
def recompute_summary(
    month: Optional[int] = None,
    year: Optional[int] = None,
    gateway: Gateway = Depends(get_gateway),
    owner: OwnerIdentity = Depends(current_owner),
):
    month, year = _period(month, year)
    with http_errors():
        summary = SummaryService(gateway, owner.resolved_owner_id).compute_and_store(
            month, year
        )
    return summary_payload(summary)


@app.get("/api/dashboard")
def api_dashboard(
    month: Optional[int] = None,
    year: Optional[int] = None,
    include_pending: bool = True,
    gateway: Gateway = Depends(get_gateway),
    owner: OwnerIdentity = Depends(current_owner),
):
    month, year = _period(month, year)
    with http_errors():
        data = SummaryService(gateway, owner.resolved_owner_id).dashboard(
            month, year, include_pending=include_pending
        )
    totals = data["totals"]
    return {
        "month": month,
        "year": year,
        "include_pending": include_pending,
        "is_shared_access": owner.is_shared_access,
        "totals": totals.as_dict(),
        "total_expenses": data["total_expenses"],
        "expense_breakdown": data["expense_breakdown"],
        "pending_expenses": [expense_payload(e) for e in data["pending_expenses"]],
        "pending_due_cents": data["pending_due_cents"],
    }


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
