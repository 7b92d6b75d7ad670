import datetime as dt
from datetime import datetime
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
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from budget import SAVINGS_CATEGORY, Priority
from database import Base


PRIORITY_ENUM = SAEnum(
    Priority,
    name="priority",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
)


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # No unique constraint: restoring defaults may add duplicate names.
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    icon: Mapped[str] = mapped_column(String(50), nullable=False, default="circle")
    order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    date_added: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    __table_args__ = (Index("ix_categories_order", "order"),)


class IncomeItem(Base):
    __tablename__ = "income_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False, default="")
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_usd: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    date_added: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint("amount_cents >= 0", name="ck_income_amount_positive"),
    )


class MonthHistory(Base):
    __tablename__ = "month_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    total_income_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    total_expenses_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    total_saved_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    remaining_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    exchange_rate_micros: Mapped[int] = mapped_column(Integer, nullable=False)
    closed_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    expenses: Mapped[list["ExpenseItem"]] = relationship(
        "ExpenseItem",
        back_populates="month_history",
        cascade="all, delete-orphan",
        order_by="ExpenseItem.date_added",
    )

    __table_args__ = (Index("ix_month_history_date", "date"),)


class ExpenseItem(Base):
    __tablename__ = "expense_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False, default="")
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Weak reference by label; deleting or renaming a category does not cascade.
    category_name: Mapped[str] = mapped_column(String(100), nullable=False)
    date_added: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    is_usd: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    priority: Mapped[Priority] = mapped_column(
        PRIORITY_ENUM, default=Priority.essential, nullable=False
    )
    is_paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    month_history_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("month_history.id", ondelete="CASCADE")
    )

    month_history: Mapped[Optional["MonthHistory"]] = relationship(
        "MonthHistory", back_populates="expenses"
    )

    @property
    def is_savings(self) -> bool:
        return self.category_name == SAVINGS_CATEGORY

    @property
    def is_archived(self) -> bool:
        return self.month_history_id is not None or self.month_history is not None

    __table_args__ = (
        Index("ix_expense_items_history_category", "month_history_id", "category_name"),
        CheckConstraint("amount_cents >= 0", name="ck_expense_amount_positive"),
    )


class AppSetting(Base):
    __tablename__ = "app_settings"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    int_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )
