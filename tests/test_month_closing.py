from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import services
from budget import StatusFilter
from database import Base
from models import ExpenseItem, MonthHistory, Priority
from schemas import ExpenseIn, IncomeIn, SavingsGoalIn
from services import (
    BudgetService,
    ExpenseService,
    HistoryService,
    IncomeService,
    MonthClosingError,
    MonthClosingService,
    SettingsService,
)


def make_session() -> Session:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return Session(engine)


def seed_example_month(session: Session) -> None:
    SettingsService(session).set_exchange_rate(Decimal("40"))
    incomes = IncomeService(session)
    incomes.create(IncomeIn(name="Salary", amount_cents=200_000))
    incomes.create(IncomeIn(name="Freelance", amount_cents=10_000, is_usd=True))
    expenses = ExpenseService(session)
    expenses.create(
        ExpenseIn(
            name="Rent",
            amount_cents=50_000,
            category_name="Housing",
            priority=Priority.essential,
            is_paid=False,
        )
    )
    expenses.create(
        ExpenseIn(
            name="Headphones",
            amount_cents=5_000,
            category_name="Entertainment",
            is_usd=True,
            priority=Priority.want,
            is_paid=True,
        )
    )
    expenses.create_savings_goal(
        SavingsGoalIn(name="Rainy day", amount_cents=1_000, is_usd=True)
    )


def test_finish_month_archives_worked_example() -> None:
    with make_session() as session:
        seed_example_month(session)
        before = BudgetService(session).summary()

        record = MonthClosingService(session).finish_month(2025, 3)

        assert record.date == date(2025, 3, 1)
        assert record.total_income_cents == 600_000
        assert record.total_expenses_cents == 250_000
        assert record.total_saved_cents == 40_000
        assert record.remaining_cents == 310_000
        assert record.total_income_cents == before.total_income
        assert record.remaining_cents == before.remaining

        expenses = ExpenseService(session)
        assert expenses.list_active() == []
        assert expenses.list_savings_goals() == []
        assert IncomeService(session).list_all() == []
        assert SettingsService(session).accumulated_savings_cents() == 40_000

        archived = session.scalars(
            select(ExpenseItem).where(ExpenseItem.month_history_id == record.id)
        ).all()
        assert sorted(e.name for e in archived) == ["Headphones", "Rainy day", "Rent"]


def test_finish_month_accumulates_savings_across_months() -> None:
    with make_session() as session:
        settings = SettingsService(session)
        expenses = ExpenseService(session)

        expenses.create_savings_goal(SavingsGoalIn(amount_cents=1_500))
        MonthClosingService(session).finish_month(2025, 1)
        expenses.create_savings_goal(SavingsGoalIn(amount_cents=2_500))
        MonthClosingService(session).finish_month(2025, 2)

        assert settings.accumulated_savings_cents() == 4_000


def test_finish_month_on_empty_period_records_zero_totals() -> None:
    with make_session() as session:
        record = MonthClosingService(session).finish_month(2024, 12)

        assert record.date == date(2024, 12, 1)
        assert record.total_income_cents == 0
        assert record.total_expenses_cents == 0
        assert record.total_saved_cents == 0
        assert record.remaining_cents == 0
        assert record.expenses == []
        assert SettingsService(session).accumulated_savings_cents() == 0


def test_finish_month_rejects_invalid_month_without_writing() -> None:
    with make_session() as session:
        seed_example_month(session)

        with pytest.raises(ValueError):
            MonthClosingService(session).finish_month(2025, 13)

        assert len(ExpenseService(session).list_active()) == 2
        assert session.scalars(select(MonthHistory)).all() == []


def test_finish_month_failure_leaves_no_partial_state(monkeypatch) -> None:
    def boom(self, delta_cents):
        raise SQLAlchemyError("store unavailable")

    with make_session() as session:
        seed_example_month(session)
        monkeypatch.setattr(
            services.SettingsService, "add_to_accumulated_savings", boom
        )

        with pytest.raises(MonthClosingError):
            MonthClosingService(session).finish_month(2025, 3)

        monkeypatch.undo()
        expenses = ExpenseService(session)
        assert len(expenses.list_active()) == 2
        assert len(expenses.list_savings_goals()) == 1
        assert len(IncomeService(session).list_all()) == 2
        assert session.scalars(select(MonthHistory)).all() == []
        assert SettingsService(session).accumulated_savings_cents() == 0


def test_archived_totals_do_not_follow_rate_changes() -> None:
    with make_session() as session:
        seed_example_month(session)
        record = MonthClosingService(session).finish_month(2025, 3)

        SettingsService(session).set_exchange_rate(Decimal("45"))
        session.expire_all()
        stored = session.get(MonthHistory, record.id)

        assert stored.total_income_cents == 600_000
        assert stored.total_expenses_cents == 250_000
        assert stored.total_saved_cents == 40_000
        assert stored.remaining_cents == 310_000

        breakdown = HistoryService(session).breakdown(record.id)
        totals = {c.category: c.total for c in breakdown.categories}
        assert totals["Entertainment"] == Decimal("200000")


def test_archived_expenses_are_read_only() -> None:
    with make_session() as session:
        seed_example_month(session)
        rent = ExpenseService(session).list_active()[-1]
        MonthClosingService(session).finish_month(2025, 3)

        with pytest.raises(ValueError, match="read-only"):
            ExpenseService(session).set_paid(rent.id, True)
        with pytest.raises(ValueError, match="read-only"):
            ExpenseService(session).delete(rent.id)


def test_new_period_starts_empty_and_stays_separate() -> None:
    with make_session() as session:
        seed_example_month(session)
        MonthClosingService(session).finish_month(2025, 3)

        ExpenseService(session).create(
            ExpenseIn(name="Groceries", amount_cents=7_000, category_name="Food")
        )
        summary = BudgetService(session).summary()

        assert summary.total_income == 0
        assert summary.total_expenses == Decimal("7000")
        assert summary.remaining == Decimal("-7000")


def test_history_grouped_by_year_and_filtered_breakdown() -> None:
    with make_session() as session:
        seed_example_month(session)
        march = MonthClosingService(session).finish_month(2025, 3)
        MonthClosingService(session).finish_month(2024, 11)
        MonthClosingService(session).finish_month(2025, 1)

        history = HistoryService(session)
        groups = history.by_year()
        assert [g.year for g in groups] == [2025, 2024]
        assert [r.date for r in groups[0].records] == [
            date(2025, 3, 1),
            date(2025, 1, 1),
        ]

        unpaid = history.breakdown(march.id, status=StatusFilter.unpaid)
        assert [(c.category, c.total) for c in unpaid.categories] == [
            ("Housing", Decimal("50000")),
            ("savings", Decimal("40000")),
        ]

        wants = history.breakdown(march.id, priorities=[Priority.want])
        assert [(p.priority, p.total) for p in wants.priorities] == [
            (Priority.want, Decimal("200000"))
        ]
        assert [g.category for g in wants.groups] == ["Entertainment"]


def test_deleting_history_cascades_to_archived_expenses() -> None:
    with make_session() as session:
        seed_example_month(session)
        record = MonthClosingService(session).finish_month(2025, 3)
        MonthClosingService(session).finish_month(2025, 4)

        HistoryService(session).delete(record.id)

        assert session.scalars(select(ExpenseItem)).all() == []
        assert len(HistoryService(session).list_all()) == 1

        assert HistoryService(session).clear() == 1
        assert HistoryService(session).list_all() == []
        # The running balance is independent of stored history.
        assert SettingsService(session).accumulated_savings_cents() == 40_000


def test_history_record_not_found() -> None:
    with make_session() as session:
        with pytest.raises(ValueError, match="not found"):
            HistoryService(session).breakdown(999)
