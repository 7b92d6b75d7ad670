import logging
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Response
from sqlalchemy.orm import Session

from budget import CategoryTotal, PriorityTotal, SortOption, StatusFilter
from config import get_settings
from currency import micros_to_rate, quantize_cents, to_foreign
from database import SessionLocal, session_scope
from models import Category, ExpenseItem, IncomeItem, MonthHistory, Priority
from schemas import (
    CategoryIn,
    CategoryRenameIn,
    ExchangeRateIn,
    ExpenseIn,
    ExpenseUpdate,
    FinishMonthIn,
    IncomeIn,
    IncomeUpdate,
    SavingsAdjustmentIn,
    SavingsGoalIn,
)
from services import (
    BudgetService,
    CategoryService,
    ExpenseService,
    HistoryService,
    IncomeService,
    MonthClosingError,
    MonthClosingService,
    SettingsService,
)

logging.basicConfig(level=logging.INFO)

app = FastAPI(title="Money Planner")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@app.on_event("startup")
def startup_event():
    with session_scope() as session:
        CategoryService(session).ensure_defaults()
        SettingsService(session).seed_defaults()


def _http_error(exc: ValueError) -> HTTPException:
    message = str(exc)
    status = 404 if message.endswith("not found") else 400
    return HTTPException(status_code=status, detail=message)


def _category_out(category: Category) -> dict:
    return {
        "id": category.id,
        "name": category.name,
        "icon": category.icon,
        "order": category.order,
        "date_added": category.date_added.isoformat(),
    }


def _income_out(income: IncomeItem) -> dict:
    return {
        "id": income.id,
        "name": income.name,
        "amount_cents": income.amount_cents,
        "is_usd": income.is_usd,
        "date_added": income.date_added.isoformat(),
    }


def _expense_out(expense: ExpenseItem) -> dict:
    return {
        "id": expense.id,
        "name": expense.name,
        "amount_cents": expense.amount_cents,
        "category_name": expense.category_name,
        "is_usd": expense.is_usd,
        "priority": expense.priority.value,
        "is_paid": expense.is_paid,
        "is_savings": expense.is_savings,
        "date_added": expense.date_added.isoformat(),
        "month_history_id": expense.month_history_id,
    }


def _history_out(record: MonthHistory) -> dict:
    return {
        "id": record.id,
        "date": record.date.isoformat(),
        "total_income_cents": record.total_income_cents,
        "total_expenses_cents": record.total_expenses_cents,
        "total_saved_cents": record.total_saved_cents,
        "remaining_cents": record.remaining_cents,
        "exchange_rate": str(micros_to_rate(record.exchange_rate_micros)),
    }


def _breakdown_out(
    categories: list[CategoryTotal], priorities: list[PriorityTotal]
) -> dict:
    return {
        "categories": [
            {"category": c.category, "total_cents": quantize_cents(c.total)}
            for c in categories
        ],
        "priorities": [
            {
                "priority": p.priority.value,
                "label": p.priority.label,
                "short_label": p.priority.short_label,
                "total_cents": quantize_cents(p.total),
            }
            for p in priorities
        ],
    }


@app.get("/api/summary")
def api_summary(db: Session = Depends(get_db)):
    settings = SettingsService(db).load()
    summary = BudgetService(db, settings).summary()
    rate = settings.exchange_rate
    projected = settings.total_accumulated_savings_cents + quantize_cents(
        summary.total_savings
    )
    data = {
        "base_currency": get_settings().base_currency,
        "foreign_currency": get_settings().foreign_currency,
        "exchange_rate": str(rate),
        "total_income_cents": quantize_cents(summary.total_income),
        "total_expenses_cents": quantize_cents(summary.total_expenses),
        "total_savings_cents": quantize_cents(summary.total_savings),
        "total_spent_cents": quantize_cents(summary.total_spent),
        "remaining_cents": quantize_cents(summary.remaining),
        "accumulated_savings_cents": settings.total_accumulated_savings_cents,
        "projected_savings_cents": projected,
        "remaining_foreign_cents": None,
        "projected_savings_foreign_cents": None,
    }
    if rate > 0:
        data["remaining_foreign_cents"] = quantize_cents(
            to_foreign(summary.remaining, rate)
        )
        data["projected_savings_foreign_cents"] = quantize_cents(
            to_foreign(projected, rate)
        )
    return data


@app.get("/api/breakdown")
def api_breakdown(
    priority: Optional[list[Priority]] = Query(None),
    db: Session = Depends(get_db),
):
    service = BudgetService(db)
    return _breakdown_out(
        service.category_breakdown(priority), service.priority_breakdown(priority)
    )


@app.get("/api/settings/exchange-rate")
def api_get_exchange_rate(db: Session = Depends(get_db)):
    return {"rate": str(SettingsService(db).exchange_rate())}


@app.put("/api/settings/exchange-rate")
def api_set_exchange_rate(data: ExchangeRateIn, db: Session = Depends(get_db)):
    rate = SettingsService(db).set_exchange_rate(data.rate)
    return {"rate": str(rate)}


@app.post("/api/savings/deposit")
def api_savings_deposit(data: SavingsAdjustmentIn, db: Session = Depends(get_db)):
    return {"accumulated_savings_cents": SettingsService(db).deposit(data)}


@app.post("/api/savings/withdraw")
def api_savings_withdraw(data: SavingsAdjustmentIn, db: Session = Depends(get_db)):
    return {"accumulated_savings_cents": SettingsService(db).withdraw(data)}


@app.get("/api/categories")
def api_categories(db: Session = Depends(get_db)):
    service = CategoryService(db)
    service.ensure_defaults()
    return [_category_out(c) for c in service.list_all()]


@app.post("/api/categories", status_code=201)
def api_create_category(data: CategoryIn, db: Session = Depends(get_db)):
    try:
        category = CategoryService(db).create(data)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return _category_out(category)


@app.post("/api/categories/restore-defaults")
def api_restore_categories(db: Session = Depends(get_db)):
    service = CategoryService(db)
    service.restore_defaults()
    return [_category_out(c) for c in service.list_all()]


@app.patch("/api/categories/{category_id}")
def api_rename_category(
    category_id: int, data: CategoryRenameIn, db: Session = Depends(get_db)
):
    try:
        category = CategoryService(db).rename(category_id, data.name)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return _category_out(category)


@app.delete("/api/categories/{category_id}", status_code=204)
def api_delete_category(category_id: int, db: Session = Depends(get_db)):
    try:
        CategoryService(db).delete(category_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


@app.get("/api/income")
def api_income(db: Session = Depends(get_db)):
    return [_income_out(i) for i in IncomeService(db).list_all()]


@app.post("/api/income", status_code=201)
def api_create_income(data: IncomeIn, db: Session = Depends(get_db)):
    return _income_out(IncomeService(db).create(data))


@app.patch("/api/income/{income_id}")
def api_update_income(
    income_id: int, data: IncomeUpdate, db: Session = Depends(get_db)
):
    try:
        income = IncomeService(db).update(income_id, data)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return _income_out(income)


@app.delete("/api/income/{income_id}", status_code=204)
def api_delete_income(income_id: int, db: Session = Depends(get_db)):
    try:
        IncomeService(db).delete(income_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


@app.get("/api/expenses")
def api_expenses(
    status: StatusFilter = StatusFilter.all,
    sort: SortOption = SortOption.date_desc,
    db: Session = Depends(get_db),
):
    return [_expense_out(e) for e in ExpenseService(db).view(status, sort)]


@app.post("/api/expenses", status_code=201)
def api_create_expense(data: ExpenseIn, db: Session = Depends(get_db)):
    return _expense_out(ExpenseService(db).create(data))


@app.patch("/api/expenses/{expense_id}")
def api_update_expense(
    expense_id: int, data: ExpenseUpdate, db: Session = Depends(get_db)
):
    try:
        expense = ExpenseService(db).update(expense_id, data)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return _expense_out(expense)


@app.post("/api/expenses/{expense_id}/toggle-paid")
def api_toggle_paid(expense_id: int, db: Session = Depends(get_db)):
    try:
        expense = ExpenseService(db).toggle_paid(expense_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return _expense_out(expense)


@app.delete("/api/expenses/{expense_id}", status_code=204)
def api_delete_expense(expense_id: int, db: Session = Depends(get_db)):
    try:
        ExpenseService(db).delete(expense_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


@app.get("/api/savings-goals")
def api_savings_goals(db: Session = Depends(get_db)):
    return [_expense_out(e) for e in ExpenseService(db).list_savings_goals()]


@app.post("/api/savings-goals", status_code=201)
def api_create_savings_goal(data: SavingsGoalIn, db: Session = Depends(get_db)):
    return _expense_out(ExpenseService(db).create_savings_goal(data))


@app.post("/api/month/finish", status_code=201)
def api_finish_month(data: FinishMonthIn, db: Session = Depends(get_db)):
    try:
        record = MonthClosingService(db).finish_month(data.year, data.month)
    except MonthClosingError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _history_out(record)


@app.get("/api/history")
def api_history(db: Session = Depends(get_db)):
    return [
        {"year": group.year, "records": [_history_out(r) for r in group.records]}
        for group in HistoryService(db).by_year()
    ]


@app.get("/api/history/{history_id}")
def api_history_detail(
    history_id: int,
    priority: Optional[list[Priority]] = Query(None),
    status: StatusFilter = StatusFilter.all,
    db: Session = Depends(get_db),
):
    try:
        breakdown = HistoryService(db).breakdown(history_id, priority, status)
    except ValueError as exc:
        raise _http_error(exc) from exc
    data = _history_out(breakdown.record)
    data.update(_breakdown_out(breakdown.categories, breakdown.priorities))
    data["groups"] = [
        {
            "category": group.category,
            "total_cents": quantize_cents(group.total),
            "items": [_expense_out(e) for e in group.items],
        }
        for group in breakdown.groups
    ]
    return data


@app.delete("/api/history/{history_id}", status_code=204)
def api_delete_history(history_id: int, db: Session = Depends(get_db)):
    try:
        HistoryService(db).delete(history_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


@app.delete("/api/history")
def api_clear_history(db: Session = Depends(get_db)):
    return {"deleted": HistoryService(db).clear()}
