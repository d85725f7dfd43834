from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import insert, select, update
from sqlalchemy.engine import Connection, RowMapping

from backend.db import Store, accounts
from backend.errors import NotFound
from backend.schemas import AccountId, AccountPatch, AccountPayload

logger = logging.getLogger(__name__)

ACCOUNT_COLUMNS = (
    accounts.c.id,
    accounts.c.user_id,
    accounts.c.name,
    accounts.c.type,
    accounts.c.balance,
    accounts.c.currency,
    accounts.c.created_at,
    accounts.c.updated_at,
)


class AccountNotFound(NotFound):
    message = "Account not found"


def list_accounts(store: Store, user_id: int) -> list[RowMapping]:
    with store.begin() as conn:
        result = conn.execute(
            select(*ACCOUNT_COLUMNS)
            .where(accounts.c.user_id == user_id)
            .order_by(accounts.c.created_at.desc(), accounts.c.id.desc())
        )
        rows = result.mappings().all()
    logger.info("Found %d vaults for user %s", len(rows), user_id)
    return rows


def create_account(store: Store, user_id: int, payload: AccountPayload, default_currency: str) -> RowMapping:
    payload = AccountPayload.validate_payload(payload, default_currency)
    stmt = (
        insert(accounts)
        .values(
            user_id=user_id,
            name=payload.name,
            type=payload.type,
            balance=payload.balance,
            currency=payload.currency,
        )
        .returning(*ACCOUNT_COLUMNS)
    )
    with store.begin() as conn:
        row = conn.execute(stmt).mappings().one()
    logger.info("Created vault %s for user %s", row["id"], user_id)
    return row


def update_account(store: Store, user_id: int, account_id: int, payload: AccountPatch) -> RowMapping:
    changes = AccountPatch.validate_payload(payload)
    with store.begin() as conn:
        if not changes:
            row = find_owned_account(conn, user_id, account_id)
        else:
            row = conn.execute(
                update(accounts)
                .where(accounts.c.id == account_id, accounts.c.user_id == user_id)
                .values(**changes)
                .returning(*ACCOUNT_COLUMNS)
            ).mappings().first()
    if not row:
        raise AccountNotFound()
    return row


def delete_account(store: Store, user_id: int, account_id: int) -> None:
    stmt = accounts.delete().where(accounts.c.id == account_id, accounts.c.user_id == user_id)
    with store.begin() as conn:
        result = conn.execute(stmt)
        if result.rowcount == 0:
            raise AccountNotFound()
    logger.info("Deleted vault %s for user %s", account_id, user_id)


def find_owned_account(conn: Connection, user_id: int, account_id: AccountId | int) -> RowMapping | None:
    return conn.execute(
        select(*ACCOUNT_COLUMNS).where(accounts.c.id == account_id, accounts.c.user_id == user_id)
    ).mappings().first()


def adjust_balance(conn: Connection, user_id: int, account_id: int, delta: Decimal) -> bool:
    """Add delta to the account balance in place; False when the account is gone."""
    result = conn.execute(
        update(accounts)
        .where(accounts.c.id == account_id, accounts.c.user_id == user_id)
        .values(balance=accounts.c.balance + delta)
    )
    return result.rowcount > 0
