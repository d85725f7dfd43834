from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date

from sqlalchemy import func, insert, select, update
from sqlalchemy.engine import Connection, RowMapping

from backend.accounts import AccountNotFound, adjust_balance, find_owned_account
from backend.db import Store, accounts, expenses
from backend.errors import FieldError, NotFound, ValidationFailed
from backend.schemas import ExpensePatch, ExpensePayload

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
MAX_PAGE = 1_000_000


class ExpenseNotFound(NotFound):
    message = "Expense not found"


@dataclass(frozen=True)
class ExpenseFilter:
    category: str | None = None
    start_date: date | None = None
    end_date: date | None = None

    def conditions(self, user_id: int) -> list:
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValidationFailed(
                [FieldError("startDate", "Start date must be on or before end date.", location="query")]
            )
        conditions = [expenses.c.user_id == user_id]
        if self.category:
            conditions.append(expenses.c.category == self.category.strip().lower())
        if self.start_date:
            conditions.append(expenses.c.date >= self.start_date)
        if self.end_date:
            conditions.append(expenses.c.date <= self.end_date)
        return conditions


@dataclass(frozen=True)
class ExpensePage:
    rows: list[RowMapping]
    total: int
    total_pages: int
    current_page: int


def _expense_with_account():
    join_stmt = expenses.outerjoin(
        accounts,
        (accounts.c.id == expenses.c.account_id) & (accounts.c.user_id == expenses.c.user_id),
    )
    return select(
        expenses,
        accounts.c.name.label("account_name"),
        accounts.c.type.label("account_type"),
    ).select_from(join_stmt)


def _fetch_expense(conn: Connection, user_id: int, expense_id: int) -> RowMapping | None:
    return conn.execute(
        _expense_with_account().where(expenses.c.id == expense_id, expenses.c.user_id == user_id)
    ).mappings().first()


def list_expenses(
    store: Store,
    user_id: int,
    expense_filter: ExpenseFilter,
    page: int = 1,
    limit: int = 10,
) -> ExpensePage:
    page = min(max(page, 1), MAX_PAGE)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)
    conditions = expense_filter.conditions(user_id)
    with store.begin() as conn:
        rows = conn.execute(
            _expense_with_account()
            .where(*conditions)
            .order_by(expenses.c.date.desc(), expenses.c.id.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        ).mappings().all()
        total = conn.execute(
            select(func.count()).select_from(expenses).where(*conditions)
        ).scalar_one()
    return ExpensePage(
        rows=rows,
        total=total,
        total_pages=math.ceil(total / limit),
        current_page=page,
    )


def create_expense(store: Store, user_id: int, payload: ExpensePayload, today: date) -> RowMapping:
    payload = ExpensePayload.validate_payload(payload, today)
    with store.begin() as conn:
        if not find_owned_account(conn, user_id, payload.account):
            raise AccountNotFound()
        expense_id = conn.execute(
            insert(expenses)
            .values(
                user_id=user_id,
                account_id=payload.account,
                description=payload.description,
                amount=payload.amount,
                category=payload.category,
                date=payload.date,
            )
            .returning(expenses.c.id)
        ).scalar_one()
        adjust_balance(conn, user_id, payload.account, -payload.amount)
        row = _fetch_expense(conn, user_id, expense_id)
    logger.info("Created expense %s against vault %s for user %s", expense_id, payload.account, user_id)
    return row


def update_expense(store: Store, user_id: int, expense_id: int, payload: ExpensePatch) -> RowMapping:
    changes = ExpensePatch.validate_payload(payload)
    with store.begin() as conn:
        current = conn.execute(
            select(expenses).where(expenses.c.id == expense_id, expenses.c.user_id == user_id)
        ).mappings().first()
        if not current:
            raise ExpenseNotFound()

        new_account_id = changes.get("account_id", current["account_id"])
        new_amount = changes.get("amount", current["amount"])
        if new_account_id != current["account_id"] and not find_owned_account(conn, user_id, new_account_id):
            raise AccountNotFound()

        if changes:
            conn.execute(
                update(expenses)
                .where(expenses.c.id == expense_id, expenses.c.user_id == user_id)
                .values(**changes)
            )
        if new_account_id != current["account_id"] or new_amount != current["amount"]:
            if not adjust_balance(conn, user_id, current["account_id"], current["amount"]):
                logger.debug("Vault %s no longer exists; skipped credit for expense %s", current["account_id"], expense_id)
            adjust_balance(conn, user_id, new_account_id, -new_amount)
        row = _fetch_expense(conn, user_id, expense_id)
    return row


def delete_expense(store: Store, user_id: int, expense_id: int) -> None:
    with store.begin() as conn:
        deleted = conn.execute(
            expenses.delete()
            .where(expenses.c.id == expense_id, expenses.c.user_id == user_id)
            .returning(expenses.c.account_id, expenses.c.amount)
        ).mappings().first()
        if not deleted:
            raise ExpenseNotFound()
        if not adjust_balance(conn, user_id, deleted["account_id"], deleted["amount"]):
            logger.debug("Vault %s no longer exists; skipped credit for expense %s", deleted["account_id"], expense_id)
    logger.info("Deleted expense %s for user %s", expense_id, user_id)
