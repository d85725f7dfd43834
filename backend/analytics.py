from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import func, select

from backend.db import Store, expenses
from backend.expenses import ExpenseFilter

ZERO = Decimal("0")
CENT = Decimal("0.01")


@dataclass(frozen=True)
class CategoryTotal:
    category: str
    total: Decimal
    count: int
    percentage: float


@dataclass(frozen=True)
class ExpenseAnalytics:
    category_breakdown: list[CategoryTotal]
    total_spent: Decimal


def coerce_decimal(value: Decimal | float | int | str | None) -> Decimal:
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT)


def summarize_categories(rows: list[tuple[str, Decimal, int]]) -> ExpenseAnalytics:
    """Rank (category, total, count) groups by total and attach each group's share of spending."""
    totals = [(category, coerce_decimal(total), int(count)) for category, total, count in rows]
    total_spent = sum((total for _, total, _ in totals), ZERO)
    breakdown = []
    for category, total, count in sorted(totals, key=lambda item: (-item[1], item[0])):
        percentage = float(total / total_spent * 100) if total_spent > 0 else 0.0
        breakdown.append(
            CategoryTotal(category=category, total=total, count=count, percentage=round(percentage, 2))
        )
    return ExpenseAnalytics(category_breakdown=breakdown, total_spent=total_spent)


def expense_analytics(store: Store, user_id: int, expense_filter: ExpenseFilter) -> ExpenseAnalytics:
    conditions = expense_filter.conditions(user_id)
    total_expr = func.coalesce(func.sum(expenses.c.amount), 0).label("total")
    count_expr = func.count(expenses.c.id).label("count")
    stmt = (
        select(expenses.c.category, total_expr, count_expr)
        .where(*conditions)
        .group_by(expenses.c.category)
        .order_by(total_expr.desc(), expenses.c.category)
    )
    with store.begin() as conn:
        rows = conn.execute(stmt).all()
    return summarize_categories([(category, total, count) for category, total, count in rows])
