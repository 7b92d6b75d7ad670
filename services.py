from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from budget import (
    BudgetSummary,
    CategoryGroup,
    CategoryTotal,
    PriorityTotal,
    SortOption,
    StatusFilter,
    YearGroup,
    category_breakdown,
    group_by_category,
    group_history_by_year,
    priority_breakdown,
    process_expenses,
    summarize,
)
from config import get_settings
from currency import (
    micros_to_rate,
    quantize_cents,
    rate_to_micros,
    to_base,
)
from models import (
    SAVINGS_CATEGORY,
    AppSetting,
    Category,
    ExpenseItem,
    IncomeItem,
    MonthHistory,
    Priority,
)
from schemas import (
    CategoryIn,
    ExpenseIn,
    ExpenseUpdate,
    IncomeIn,
    IncomeUpdate,
    SavingsAdjustmentIn,
    SavingsGoalIn,
)

logger = logging.getLogger(__name__)

EXCHANGE_RATE_KEY = "exchange_rate_micros"
ACCUMULATED_SAVINGS_KEY = "total_accumulated_savings_cents"

DEFAULT_CATEGORY_NAMES = {
    "en": ["Food", "Housing", "Transport", "Entertainment", "Health", "Essentials", "Other"],
    "uk": ["Продукти", "Житло", "Транспорт", "Розваги", "Здоров'я", "Основні", "Інше"],
}
FALLBACK_CATEGORY_NAME = {"en": "Other", "uk": "Інше"}


class MonthClosingError(RuntimeError):
    pass


def _locale(locale: Optional[str]) -> str:
    value = (locale or get_settings().locale).lower()
    return value if value in DEFAULT_CATEGORY_NAMES else "en"


def _is_reserved_category(name: str) -> bool:
    return name.strip().lower() == SAVINGS_CATEGORY


@dataclass(frozen=True)
class BudgetSettings:
    exchange_rate: Decimal
    total_accumulated_savings_cents: int


class SettingsService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def _defaults(self) -> dict[str, int]:
        return {
            EXCHANGE_RATE_KEY: rate_to_micros(get_settings().default_exchange_rate),
            ACCUMULATED_SAVINGS_KEY: 0,
        }

    def _read(self, key: str) -> int:
        value = self.session.scalar(
            select(AppSetting.int_value).where(AppSetting.key == key)
        )
        if value is None:
            return self._defaults()[key]
        return int(value)

    def _ensure_row(self, key: str) -> None:
        # Concurrent first writers both land here; the loser's insert is a no-op.
        self.session.execute(
            sqlite_insert(AppSetting)
            .values(key=key, int_value=self._defaults()[key])
            .on_conflict_do_nothing(index_elements=[AppSetting.key])
        )

    def seed_defaults(self) -> None:
        for key in self._defaults():
            self._ensure_row(key)
        self.session.commit()

    def load(self) -> BudgetSettings:
        return BudgetSettings(
            exchange_rate=self.exchange_rate(),
            total_accumulated_savings_cents=self.accumulated_savings_cents(),
        )

    def exchange_rate(self) -> Decimal:
        return micros_to_rate(self._read(EXCHANGE_RATE_KEY))

    def set_exchange_rate(self, rate: Decimal) -> Decimal:
        micros = rate_to_micros(rate)
        self._ensure_row(EXCHANGE_RATE_KEY)
        self.session.execute(
            update(AppSetting)
            .where(AppSetting.key == EXCHANGE_RATE_KEY)
            .values(int_value=micros)
        )
        self.session.commit()
        logger.info(f"exchange_rate_set: micros={micros}")
        return micros_to_rate(micros)

    def accumulated_savings_cents(self) -> int:
        return self._read(ACCUMULATED_SAVINGS_KEY)

    def add_to_accumulated_savings(self, delta_cents: int) -> None:
        # Caller commits.
        self._ensure_row(ACCUMULATED_SAVINGS_KEY)
        self.session.execute(
            update(AppSetting)
            .where(AppSetting.key == ACCUMULATED_SAVINGS_KEY)
            .values(int_value=AppSetting.int_value + delta_cents)
        )

    def _adjust(self, data: SavingsAdjustmentIn, sign: int) -> int:
        amount = quantize_cents(
            to_base(data.amount_cents, data.is_usd, self.exchange_rate())
        )
        self.add_to_accumulated_savings(sign * amount)
        self.session.commit()
        balance = self.accumulated_savings_cents()
        logger.info(
            f"savings_adjusted: delta_cents={sign * amount} balance_cents={balance}"
        )
        return balance

    def deposit(self, data: SavingsAdjustmentIn) -> int:
        return self._adjust(data, 1)

    def withdraw(self, data: SavingsAdjustmentIn) -> int:
        # No clamping: the balance may go negative.
        return self._adjust(data, -1)


class CategoryService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self) -> list[Category]:
        stmt = select(Category).order_by(Category.order, Category.id)
        return list(self.session.scalars(stmt).all())

    def count(self) -> int:
        return int(self.session.scalar(select(func.count(Category.id))) or 0)

    def _insert_defaults(self, locale: Optional[str]) -> list[Category]:
        created = [
            Category(name=name, order=index)
            for index, name in enumerate(DEFAULT_CATEGORY_NAMES[_locale(locale)])
        ]
        self.session.add_all(created)
        self.session.commit()
        return created

    def ensure_defaults(self, locale: Optional[str] = None) -> int:
        if self.count() > 0:
            return 0
        created = self._insert_defaults(locale)
        logger.info(f"categories_seeded: count={len(created)}")
        return len(created)

    def restore_defaults(self, locale: Optional[str] = None) -> list[Category]:
        # Additive: user categories stay and duplicate names are not merged.
        created = self._insert_defaults(locale)
        logger.info(f"categories_restored: count={len(created)}")
        return created

    def get(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category:
            raise ValueError("Category not found")
        return category

    def create(self, data: CategoryIn) -> Category:
        name = data.name.strip()
        if not name:
            raise ValueError("Category name cannot be empty")
        if _is_reserved_category(name):
            raise ValueError(f"'{SAVINGS_CATEGORY}' is a reserved category name")
        order = data.order if data.order is not None else self.count()
        category = Category(name=name, icon=data.icon, order=order)
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def rename(self, category_id: int, name: str) -> Category:
        category = self.get(category_id)
        clean_name = name.strip()
        if not clean_name:
            raise ValueError("Category name cannot be empty")
        if _is_reserved_category(clean_name):
            raise ValueError(f"'{SAVINGS_CATEGORY}' is a reserved category name")
        # Expenses keep the old label.
        category.name = clean_name
        self.session.commit()
        return category

    def delete(self, category_id: int) -> None:
        category = self.get(category_id)
        self.session.delete(category)
        self.session.commit()

    def default_category_name(self, locale: Optional[str] = None) -> str:
        first = self.session.scalar(
            select(Category.name).order_by(Category.order, Category.id).limit(1)
        )
        return first or FALLBACK_CATEGORY_NAME[_locale(locale)]


class IncomeService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self) -> list[IncomeItem]:
        stmt = select(IncomeItem).order_by(IncomeItem.date_added, IncomeItem.id)
        return list(self.session.scalars(stmt).all())

    def get(self, income_id: int) -> IncomeItem:
        income = self.session.get(IncomeItem, income_id)
        if not income:
            raise ValueError("Income not found")
        return income

    def create(self, data: IncomeIn) -> IncomeItem:
        income = IncomeItem(
            name=data.name.strip(), amount_cents=data.amount_cents, is_usd=data.is_usd
        )
        self.session.add(income)
        self.session.commit()
        self.session.refresh(income)
        return income

    def update(self, income_id: int, data: IncomeUpdate) -> IncomeItem:
        income = self.get(income_id)
        for field_name, value in data.model_dump(exclude_unset=True).items():
            if value is None:
                continue
            setattr(income, field_name, value)
        self.session.commit()
        return income

    def delete(self, income_id: int) -> None:
        income = self.get(income_id)
        self.session.delete(income)
        self.session.commit()


class ExpenseService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def _active(self):
        return select(ExpenseItem).where(ExpenseItem.month_history_id.is_(None))

    def list_active(self) -> list[ExpenseItem]:
        stmt = (
            self._active()
            .where(ExpenseItem.category_name != SAVINGS_CATEGORY)
            .order_by(ExpenseItem.date_added.desc(), ExpenseItem.id.desc())
        )
        return list(self.session.scalars(stmt).all())

    def list_savings_goals(self) -> list[ExpenseItem]:
        stmt = (
            self._active()
            .where(ExpenseItem.category_name == SAVINGS_CATEGORY)
            .order_by(ExpenseItem.date_added, ExpenseItem.id)
        )
        return list(self.session.scalars(stmt).all())

    def get(self, expense_id: int) -> ExpenseItem:
        expense = self.session.get(ExpenseItem, expense_id)
        if not expense:
            raise ValueError("Expense not found")
        return expense

    def _get_active(self, expense_id: int) -> ExpenseItem:
        expense = self.get(expense_id)
        if expense.is_archived:
            raise ValueError("Archived expenses are read-only")
        return expense

    def create(self, data: ExpenseIn) -> ExpenseItem:
        category_name = (data.category_name or "").strip()
        if not category_name:
            category_name = CategoryService(self.session).default_category_name()
        expense = ExpenseItem(
            name=data.name.strip(),
            amount_cents=data.amount_cents,
            category_name=category_name,
            is_usd=data.is_usd,
            priority=data.priority,
            is_paid=data.is_paid,
        )
        self.session.add(expense)
        self.session.commit()
        self.session.refresh(expense)
        return expense

    def create_savings_goal(self, data: SavingsGoalIn) -> ExpenseItem:
        return self.create(
            ExpenseIn(
                name=data.name,
                amount_cents=data.amount_cents,
                category_name=SAVINGS_CATEGORY,
                is_usd=data.is_usd,
            )
        )

    def update(self, expense_id: int, data: ExpenseUpdate) -> ExpenseItem:
        expense = self._get_active(expense_id)
        for field_name, value in data.model_dump(exclude_unset=True).items():
            if value is None:
                continue
            if field_name in ("name", "category_name"):
                value = value.strip()
            setattr(expense, field_name, value)
        self.session.commit()
        return expense

    def set_paid(self, expense_id: int, is_paid: bool) -> ExpenseItem:
        expense = self._get_active(expense_id)
        expense.is_paid = is_paid
        self.session.commit()
        return expense

    def toggle_paid(self, expense_id: int) -> ExpenseItem:
        expense = self._get_active(expense_id)
        return self.set_paid(expense_id, not expense.is_paid)

    def delete(self, expense_id: int) -> None:
        expense = self._get_active(expense_id)
        self.session.delete(expense)
        self.session.commit()

    def view(
        self,
        status: StatusFilter = StatusFilter.all,
        sort: SortOption = SortOption.date_desc,
        rate: Optional[Decimal] = None,
    ) -> list[ExpenseItem]:
        if rate is None:
            rate = SettingsService(self.session).exchange_rate()
        return process_expenses(self.list_active(), status, sort, rate)


class BudgetService:
    def __init__(
        self, session: Session, settings: Optional[BudgetSettings] = None
    ) -> None:
        self.session = session
        self.settings = settings or SettingsService(session).load()

    @property
    def rate(self) -> Decimal:
        return self.settings.exchange_rate

    def summary(self) -> BudgetSummary:
        expenses = ExpenseService(self.session)
        return summarize(
            IncomeService(self.session).list_all(),
            expenses.list_active(),
            expenses.list_savings_goals(),
            self.rate,
        )

    def category_breakdown(
        self, priorities: Optional[Iterable[Priority]] = None
    ) -> list[CategoryTotal]:
        return category_breakdown(
            ExpenseService(self.session).list_active(), self.rate, priorities
        )

    def priority_breakdown(
        self, priorities: Optional[Iterable[Priority]] = None
    ) -> list[PriorityTotal]:
        return priority_breakdown(
            ExpenseService(self.session).list_active(), self.rate, priorities
        )


class MonthClosingService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def finish_month(self, year: int, month: int) -> MonthHistory:
        """Archive the current period under the first day of ``year``/``month``.

        Freezes the totals into a new MonthHistory, moves every active expense
        and savings goal under it, adds the period's savings to the running
        balance and deletes all income. Everything is committed together or
        rolled back together.
        """
        period_start = date(year, month, 1)
        settings = SettingsService(self.session)
        try:
            rate = settings.exchange_rate()
            expense_service = ExpenseService(self.session)
            expenses = expense_service.list_active()
            savings_goals = expense_service.list_savings_goals()
            summary = summarize(
                IncomeService(self.session).list_all(),
                expenses,
                savings_goals,
                rate,
            )
            income_cents = quantize_cents(summary.total_income)
            expenses_cents = quantize_cents(summary.total_expenses)
            saved_cents = quantize_cents(summary.total_savings)

            record = MonthHistory(
                date=period_start,
                total_income_cents=income_cents,
                total_expenses_cents=expenses_cents,
                total_saved_cents=saved_cents,
                remaining_cents=income_cents - expenses_cents - saved_cents,
                exchange_rate_micros=rate_to_micros(rate),
            )
            self.session.add(record)
            for item in [*expenses, *savings_goals]:
                item.month_history = record
            self.session.flush()

            settings.add_to_accumulated_savings(saved_cents)
            self.session.execute(delete(IncomeItem))
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception(f"finish_month_failed: period={period_start.isoformat()}")
            raise MonthClosingError(
                f"Failed to finish month {period_start:%Y-%m}"
            ) from exc
        except Exception:
            self.session.rollback()
            raise

        logger.info(
            f"finish_month: period={period_start.isoformat()} "
            f"income_cents={record.total_income_cents} "
            f"expenses_cents={record.total_expenses_cents} "
            f"saved_cents={record.total_saved_cents} "
            f"archived={len(expenses) + len(savings_goals)}"
        )
        return record


@dataclass
class HistoryBreakdown:
    record: MonthHistory
    categories: list[CategoryTotal]
    priorities: list[PriorityTotal]
    groups: list[CategoryGroup]


class HistoryService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self) -> list[MonthHistory]:
        stmt = (
            select(MonthHistory)
            .options(selectinload(MonthHistory.expenses))
            .order_by(MonthHistory.date.desc(), MonthHistory.id.desc())
        )
        return list(self.session.scalars(stmt).all())

    def by_year(self) -> list[YearGroup]:
        return group_history_by_year(self.list_all())

    def get(self, history_id: int) -> MonthHistory:
        record = self.session.get(MonthHistory, history_id)
        if not record:
            raise ValueError("History record not found")
        return record

    def breakdown(
        self,
        history_id: int,
        priorities: Optional[Iterable[Priority]] = None,
        status: StatusFilter = StatusFilter.all,
        rate: Optional[Decimal] = None,
    ) -> HistoryBreakdown:
        record = self.get(history_id)
        if rate is None:
            rate = micros_to_rate(record.exchange_rate_micros)
        if priorities is not None:
            priorities = list(priorities)
        expenses = list(record.expenses)
        return HistoryBreakdown(
            record=record,
            categories=category_breakdown(expenses, rate, priorities, status),
            priorities=priority_breakdown(expenses, rate, priorities, status),
            groups=group_by_category(expenses, rate, priorities, status),
        )

    def delete(self, history_id: int) -> None:
        record = self.get(history_id)
        self.session.delete(record)
        self.session.commit()
        logger.info(f"history_deleted: id={history_id}")

    def clear(self) -> int:
        records = self.list_all()
        for record in records:
            self.session.delete(record)
        self.session.commit()
        logger.info(f"history_cleared: count={len(records)}")
        return len(records)
