"""Budget arithmetic over plain record collections; no session access."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Iterable, Optional, Sequence

from currency import to_base

if TYPE_CHECKING:
    from models import MonthHistory


SAVINGS_CATEGORY = "savings"


class Priority(str, Enum):
    essential = "essential"
    neededNow = "neededNow"
    want = "want"

    @property
    def label(self) -> str:
        return {
            Priority.essential: "Essential",
            Priority.neededNow: "Needed now",
            Priority.want: "Want",
        }[self]

    @property
    def short_label(self) -> str:
        return {
            Priority.essential: "Essential",
            Priority.neededNow: "Needed",
            Priority.want: "Want",
        }[self]


class StatusFilter(str, Enum):
    all = "all"
    paid = "paid"
    unpaid = "unpaid"


class SortOption(str, Enum):
    date_desc = "date_desc"
    date_asc = "date_asc"
    amount_desc = "amount_desc"
    amount_asc = "amount_asc"


@dataclass(frozen=True)
class BudgetSummary:
    total_income: Decimal
    total_expenses: Decimal
    total_savings: Decimal

    @property
    def total_spent(self) -> Decimal:
        return self.total_expenses + self.total_savings

    @property
    def remaining(self) -> Decimal:
        return self.total_income - self.total_spent


@dataclass(frozen=True)
class CategoryTotal:
    category: str
    total: Decimal


@dataclass(frozen=True)
class PriorityTotal:
    priority: Priority
    total: Decimal


@dataclass
class CategoryGroup:
    category: str
    total: Decimal
    items: list = field(default_factory=list)


@dataclass
class YearGroup:
    year: int
    records: list[MonthHistory] = field(default_factory=list)


def base_amount(item, rate: Decimal) -> Decimal:
    return to_base(item.amount_cents, item.is_usd, rate)


def sum_base(items: Iterable, rate: Decimal) -> Decimal:
    return sum((base_amount(item, rate) for item in items), Decimal(0))


def split_savings(expenses: Iterable) -> tuple[list, list]:
    ordinary: list = []
    savings: list = []
    for item in expenses:
        if item.category_name == SAVINGS_CATEGORY:
            savings.append(item)
        else:
            ordinary.append(item)
    return ordinary, savings


def summarize(
    incomes: Iterable,
    expenses: Iterable,
    savings_goals: Iterable,
    rate: Decimal,
) -> BudgetSummary:
    return BudgetSummary(
        total_income=sum_base(incomes, rate),
        total_expenses=sum_base(expenses, rate),
        total_savings=sum_base(savings_goals, rate),
    )


def filter_by_status(expenses: Iterable, status: StatusFilter) -> list:
    if status == StatusFilter.paid:
        return [item for item in expenses if item.is_paid]
    if status == StatusFilter.unpaid:
        return [item for item in expenses if not item.is_paid]
    return list(expenses)


def filter_by_priority(
    expenses: Iterable, priorities: Optional[Iterable[Priority]] = None
) -> list:
    if priorities is None:
        return list(expenses)
    allowed = {Priority(p) for p in priorities}
    return [item for item in expenses if item.priority in allowed]


def filter_expenses(
    expenses: Iterable,
    priorities: Optional[Iterable[Priority]] = None,
    status: StatusFilter = StatusFilter.all,
) -> list:
    return filter_by_status(filter_by_priority(expenses, priorities), status)


def sort_expenses(expenses: Iterable, option: SortOption, rate: Decimal) -> list:
    # sorted() is stable, including with reverse=True.
    if option == SortOption.date_desc:
        return sorted(expenses, key=lambda item: item.date_added, reverse=True)
    if option == SortOption.date_asc:
        return sorted(expenses, key=lambda item: item.date_added)
    if option == SortOption.amount_desc:
        return sorted(
            expenses, key=lambda item: base_amount(item, rate), reverse=True
        )
    if option == SortOption.amount_asc:
        return sorted(expenses, key=lambda item: base_amount(item, rate))
    raise ValueError(f"Unsupported sort option: {option}")


def process_expenses(
    expenses: Sequence,
    status: StatusFilter,
    option: SortOption,
    rate: Decimal,
) -> list:
    return sort_expenses(filter_by_status(expenses, status), option, rate)


def category_breakdown(
    expenses: Iterable,
    rate: Decimal,
    priorities: Optional[Iterable[Priority]] = None,
    status: StatusFilter = StatusFilter.all,
) -> list[CategoryTotal]:
    totals: dict[str, Decimal] = defaultdict(Decimal)
    for item in filter_expenses(expenses, priorities, status):
        totals[item.category_name] += base_amount(item, rate)
    ordered = sorted(totals.items(), key=lambda pair: (-pair[1], pair[0]))
    return [CategoryTotal(category=name, total=total) for name, total in ordered]


def priority_breakdown(
    expenses: Iterable,
    rate: Decimal,
    priorities: Optional[Iterable[Priority]] = None,
    status: StatusFilter = StatusFilter.all,
) -> list[PriorityTotal]:
    totals: dict[Priority, Decimal] = {}
    for item in filter_expenses(expenses, priorities, status):
        key = Priority(item.priority)
        totals[key] = totals.get(key, Decimal(0)) + base_amount(item, rate)
    # Declaration order of Priority, empty priorities omitted.
    return [
        PriorityTotal(priority=priority, total=totals[priority])
        for priority in Priority
        if priority in totals
    ]


def group_history_by_year(records: Iterable[MonthHistory]) -> list[YearGroup]:
    groups: dict[int, YearGroup] = {}
    for record in sorted(records, key=lambda r: (r.date, r.id or 0), reverse=True):
        year = record.date.year
        if year not in groups:
            groups[year] = YearGroup(year=year)
        groups[year].records.append(record)
    return sorted(groups.values(), key=lambda g: g.year, reverse=True)


def group_by_category(
    expenses: Iterable,
    rate: Decimal,
    priorities: Optional[Iterable[Priority]] = None,
    status: StatusFilter = StatusFilter.all,
) -> list[CategoryGroup]:
    groups: dict[str, CategoryGroup] = {}
    for item in filter_expenses(expenses, priorities, status):
        group = groups.get(item.category_name)
        if group is None:
            group = groups[item.category_name] = CategoryGroup(
                category=item.category_name, total=Decimal(0)
            )
        group.items.append(item)
        group.total += base_amount(item, rate)
    return [groups[name] for name in sorted(groups)]
