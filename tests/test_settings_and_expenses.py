from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from budget import SortOption, StatusFilter
from database import Base
from models import Priority
from schemas import (
    ExpenseIn,
    ExpenseUpdate,
    IncomeIn,
    IncomeUpdate,
    SavingsAdjustmentIn,
)
from services import BudgetService, ExpenseService, IncomeService, SettingsService


def make_session() -> Session:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return Session(engine)


def test_settings_defaults() -> None:
    with make_session() as session:
        loaded = SettingsService(session).load()
        assert loaded.exchange_rate == Decimal("41.5")
        assert loaded.total_accumulated_savings_cents == 0


def test_exchange_rate_is_persisted() -> None:
    with make_session() as session:
        settings = SettingsService(session)
        assert settings.set_exchange_rate(Decimal("39.875")) == Decimal("39.875")
        assert SettingsService(session).exchange_rate() == Decimal("39.875")


def test_deposit_and_withdraw_convert_at_current_rate() -> None:
    with make_session() as session:
        settings = SettingsService(session)
        settings.set_exchange_rate(Decimal("40"))

        assert settings.deposit(SavingsAdjustmentIn(amount_cents=10_000)) == 10_000
        balance = settings.deposit(SavingsAdjustmentIn(amount_cents=100, is_usd=True))
        assert balance == 14_000

        balance = settings.withdraw(SavingsAdjustmentIn(amount_cents=20_000))
        assert balance == -6_000
        assert settings.load().total_accumulated_savings_cents == -6_000


def test_live_totals_recompute_after_edits() -> None:
    with make_session() as session:
        SettingsService(session).set_exchange_rate(Decimal("40"))
        income = IncomeService(session).create(IncomeIn(amount_cents=100_000))
        expenses = ExpenseService(session)
        rent = expenses.create(
            ExpenseIn(name="Rent", amount_cents=30_000, category_name="Housing")
        )

        assert BudgetService(session).summary().remaining == Decimal("70000")

        IncomeService(session).update(income.id, IncomeUpdate(is_usd=True))
        expenses.update(rent.id, ExpenseUpdate(amount_cents=40_000))

        summary = BudgetService(session).summary()
        assert summary.total_income == Decimal("4000000")
        assert summary.remaining == Decimal("3960000")


def test_summary_uses_passed_settings_object() -> None:
    with make_session() as session:
        IncomeService(session).create(IncomeIn(amount_cents=100, is_usd=True))
        settings = SettingsService(session).load()

        assert BudgetService(session, settings).summary().total_income == Decimal(
            "4150"
        )


def test_expense_view_filters_and_sorts() -> None:
    with make_session() as session:
        SettingsService(session).set_exchange_rate(Decimal("40"))
        expenses = ExpenseService(session)
        bread = expenses.create(
            ExpenseIn(name="Bread", amount_cents=5_000, category_name="Food")
        )
        phone = expenses.create(
            ExpenseIn(
                name="Phone",
                amount_cents=200,
                is_usd=True,
                category_name="Bills",
                is_paid=True,
            )
        )
        gym = expenses.create(
            ExpenseIn(name="Gym", amount_cents=9_000, category_name="Health")
        )
        bread.date_added = datetime(2025, 1, 1)
        phone.date_added = datetime(2025, 1, 2)
        gym.date_added = datetime(2025, 1, 3)
        session.commit()

        by_amount = expenses.view(sort=SortOption.amount_desc)
        assert [e.name for e in by_amount] == ["Gym", "Phone", "Bread"]

        unpaid = expenses.view(status=StatusFilter.unpaid, sort=SortOption.date_asc)
        assert [e.id for e in unpaid] == [bread.id, gym.id]

        expenses.toggle_paid(phone.id)
        paid = expenses.view(status=StatusFilter.paid)
        assert paid == []


def test_savings_goals_are_excluded_from_expense_lists() -> None:
    with make_session() as session:
        expenses = ExpenseService(session)
        expenses.create(ExpenseIn(name="Bread", amount_cents=100, category_name="Food"))
        expenses.create(
            ExpenseIn(name="Vacation", amount_cents=500, category_name="savings")
        )

        assert [e.name for e in expenses.list_active()] == ["Bread"]
        assert [e.name for e in expenses.list_savings_goals()] == ["Vacation"]

        breakdown = BudgetService(session).category_breakdown()
        assert [c.category for c in breakdown] == ["Food"]


def test_live_priority_breakdown() -> None:
    with make_session() as session:
        expenses = ExpenseService(session)
        expenses.create(
            ExpenseIn(amount_cents=100, category_name="Food", priority=Priority.want)
        )
        expenses.create(
            ExpenseIn(
                amount_cents=300, category_name="Food", priority=Priority.neededNow
            )
        )

        result = BudgetService(session).priority_breakdown([Priority.neededNow])

        assert [(p.priority, p.total) for p in result] == [
            (Priority.neededNow, Decimal("300"))
        ]


def test_income_delete_and_missing() -> None:
    with make_session() as session:
        incomes = IncomeService(session)
        salary = incomes.create(IncomeIn(name="Salary", amount_cents=1))
        incomes.delete(salary.id)

        assert incomes.list_all() == []
        with pytest.raises(ValueError, match="not found"):
            incomes.delete(salary.id)


def test_active_expenses_listed_newest_first() -> None:
    with make_session() as session:
        expenses = ExpenseService(session)
        older = expenses.create(ExpenseIn(name="Older", category_name="Food"))
        newer = expenses.create(ExpenseIn(name="Newer", category_name="Food"))
        older.date_added = datetime(2020, 1, 1)
        session.commit()

        assert [e.id for e in expenses.list_active()] == [newer.id, older.id]


def test_seed_defaults_is_idempotent_and_keeps_values() -> None:
    with make_session() as session:
        settings = SettingsService(session)
        settings.seed_defaults()
        settings.set_exchange_rate(Decimal("40"))
        settings.deposit(SavingsAdjustmentIn(amount_cents=5_000))

        settings.seed_defaults()

        loaded = settings.load()
        assert loaded.exchange_rate == Decimal("40")
        assert loaded.total_accumulated_savings_cents == 5_000


def test_settings_row_created_by_another_writer_is_reused(
    tmp_path, monkeypatch: pytest.MonkeyPatch
) -> None:
    engine = create_engine(f"sqlite:///{tmp_path / 'budget.db'}")
    Base.metadata.create_all(engine)

    with Session(engine) as first:
        SettingsService(first).deposit(SavingsAdjustmentIn(amount_cents=1_000))

    with Session(engine) as second:
        # This writer decided the row was missing before the other one committed.
        monkeypatch.setattr(second, "get", lambda *args, **kwargs: None)
        balance = SettingsService(second).deposit(
            SavingsAdjustmentIn(amount_cents=2_500)
        )

    assert balance == 3_500
    engine.dispose()
