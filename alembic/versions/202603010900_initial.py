"""initial budget schema

Revision ID: 202603010900
Revises:
Create Date: 2026-03-01 09:00:00.000000

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "202603010900"
down_revision = None
branch_labels = None
depends_on = None


PRIORITY = sa.Enum("essential", "neededNow", "want", name="priority")


def upgrade() -> None:
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("icon", sa.String(length=50), nullable=False),
        sa.Column("order", sa.Integer(), nullable=False),
        sa.Column("date_added", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_categories_order", "categories", ["order"])

    op.create_table(
        "income_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("is_usd", sa.Boolean(), nullable=False),
        sa.Column("date_added", sa.DateTime(), nullable=False),
        sa.CheckConstraint("amount_cents >= 0", name="ck_income_amount_positive"),
    )

    op.create_table(
        "month_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("total_income_cents", sa.Integer(), nullable=False),
        sa.Column("total_expenses_cents", sa.Integer(), nullable=False),
        sa.Column("total_saved_cents", sa.Integer(), nullable=False),
        sa.Column("remaining_cents", sa.Integer(), nullable=False),
        sa.Column("exchange_rate_micros", sa.Integer(), nullable=False),
        sa.Column("closed_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_month_history_date", "month_history", ["date"])

    op.create_table(
        "expense_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("category_name", sa.String(length=100), nullable=False),
        sa.Column("date_added", sa.DateTime(), nullable=False),
        sa.Column("is_usd", sa.Boolean(), nullable=False),
        sa.Column("priority", PRIORITY, nullable=False),
        sa.Column("is_paid", sa.Boolean(), nullable=False),
        sa.Column(
            "month_history_id",
            sa.Integer(),
            sa.ForeignKey("month_history.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.CheckConstraint("amount_cents >= 0", name="ck_expense_amount_positive"),
    )
    op.create_index(
        "ix_expense_items_history_category",
        "expense_items",
        ["month_history_id", "category_name"],
    )

    op.create_table(
        "app_settings",
        sa.Column("key", sa.String(length=64), primary_key=True),
        sa.Column("int_value", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("app_settings")
    op.drop_index("ix_expense_items_history_category", table_name="expense_items")
    op.drop_table("expense_items")
    op.drop_index("ix_month_history_date", table_name="month_history")
    op.drop_table("month_history")
    op.drop_table("income_items")
    op.drop_index("ix_categories_order", table_name="categories")
    op.drop_table("categories")
