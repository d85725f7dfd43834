from __future__ import annotations

import datetime as dt
import re
from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any, NewType

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, StrictInt

from backend.config import normalize_currency
from backend.errors import FieldError, ValidationFailed

AccountId = NewType("AccountId", int)

Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]

CENT = Decimal("0.01")
MAX_MONEY = Decimal("9999999999.99")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MAX_PASSWORD_BYTES = 72


class AccountType:
    values = {"checking", "savings", "credit", "cash"}

    @classmethod
    def validate(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in cls.values:
            raise ValueError("Invalid account type.")
        return normalized


class ExpenseCategory:
    values = {"food", "transport", "entertainment", "utilities", "healthcare", "shopping", "other"}

    @classmethod
    def validate(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in cls.values:
            raise ValueError("Invalid expense category.")
        return normalized


def normalize_email(value: str) -> str:
    return value.strip().lower()


def _text(value: str | None, field: str, errors: list[FieldError], min_length: int, message: str) -> str | None:
    cleaned = value.strip() if value is not None else ""
    if len(cleaned) < min_length:
        errors.append(FieldError(field, message))
        return None
    return cleaned


def _choice(value: str | None, field: str, errors: list[FieldError], validator) -> str | None:
    if value is None:
        errors.append(FieldError(field, f"{field.capitalize()} is required."))
        return None
    try:
        return validator(value)
    except ValueError as exc:
        errors.append(FieldError(field, str(exc)))
        return None


def _money(value: Decimal | None, field: str, errors: list[FieldError], *, minimum: Decimal | None = None) -> Decimal | None:
    if value is None:
        errors.append(FieldError(field, f"{field.capitalize()} must be a number."))
        return None
    if minimum is not None and value < minimum:
        errors.append(FieldError(field, f"{field.capitalize()} must be at least {minimum}."))
        return None
    if abs(value) > MAX_MONEY:
        errors.append(FieldError(field, f"{field.capitalize()} is too large."))
        return None
    return value.quantize(CENT)


def _currency(value: str | None, errors: list[FieldError]) -> str | None:
    try:
        return normalize_currency(value or "")
    except ValueError as exc:
        errors.append(FieldError("currency", str(exc)))
        return None


def _account_id(value: int | None, errors: list[FieldError]) -> AccountId | None:
    if value is None or value <= 0:
        errors.append(FieldError("account", "Account must be a valid account id."))
        return None
    return AccountId(value)


def _raise_if_any(errors: list[FieldError]) -> None:
    if errors:
        raise ValidationFailed(errors)


class RegisterPayload(BaseModel):
    name: str | None = None
    email: str | None = None
    password: str | None = None

    @classmethod
    def validate_payload(cls, payload: "RegisterPayload") -> "RegisterPayload":
        errors: list[FieldError] = []
        name = _text(payload.name, "name", errors, 2, "Name must be at least 2 characters.")
        email = normalize_email(payload.email or "")
        if not EMAIL_PATTERN.match(email):
            errors.append(FieldError("email", "A valid email is required."))
        password = payload.password or ""
        if len(password) < 6:
            errors.append(FieldError("password", "Password must be at least 6 characters."))
        elif len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            errors.append(FieldError("password", "Password must be at most 72 bytes."))
        _raise_if_any(errors)
        return cls(name=name, email=email, password=password)


class LoginPayload(BaseModel):
    email: str | None = None
    password: str | None = None

    @classmethod
    def validate_payload(cls, payload: "LoginPayload") -> "LoginPayload":
        errors: list[FieldError] = []
        email = normalize_email(payload.email or "")
        if not EMAIL_PATTERN.match(email):
            errors.append(FieldError("email", "A valid email is required."))
        if payload.password is None:
            errors.append(FieldError("password", "Password is required."))
        _raise_if_any(errors)
        return cls(email=email, password=payload.password)


class AccountPayload(BaseModel):
    name: str | None = None
    type: str | None = None
    balance: Decimal | None = None
    currency: str | None = None

    @classmethod
    def validate_payload(cls, payload: "AccountPayload", default_currency: str) -> "AccountPayload":
        errors: list[FieldError] = []
        name = _text(payload.name, "name", errors, 1, "Account name required.")
        account_type = _choice(payload.type, "type", errors, AccountType.validate)
        balance = Decimal("0.00")
        if payload.balance is not None:
            balance = _money(payload.balance, "balance", errors)
        currency = default_currency
        if payload.currency is not None:
            currency = _currency(payload.currency, errors)
        _raise_if_any(errors)
        return cls(name=name, type=account_type, balance=balance, currency=currency)


class AccountPatch(BaseModel):
    name: str | None = None
    type: str | None = None
    balance: Decimal | None = None
    currency: str | None = None

    @classmethod
    def validate_payload(cls, payload: "AccountPatch") -> dict[str, Any]:
        """Return the column values to change; only fields sent by the client are checked."""
        errors: list[FieldError] = []
        changes: dict[str, Any] = {}
        sent = payload.model_fields_set
        if "name" in sent:
            changes["name"] = _text(payload.name, "name", errors, 1, "Account name required.")
        if "type" in sent:
            changes["type"] = _choice(payload.type, "type", errors, AccountType.validate)
        if "balance" in sent:
            changes["balance"] = _money(payload.balance, "balance", errors)
        if "currency" in sent:
            changes["currency"] = _currency(payload.currency, errors)
        _raise_if_any(errors)
        return changes


class ExpensePayload(BaseModel):
    description: str | None = None
    amount: Decimal | None = None
    category: str | None = None
    account: StrictInt | None = None
    date: dt.date | None = None

    @classmethod
    def validate_payload(cls, payload: "ExpensePayload", today: date) -> "ExpensePayload":
        errors: list[FieldError] = []
        description = _text(payload.description, "description", errors, 1, "Description required.")
        amount = _money(payload.amount, "amount", errors, minimum=Decimal("0"))
        category = _choice(payload.category, "category", errors, ExpenseCategory.validate)
        account_id = _account_id(payload.account, errors)
        _raise_if_any(errors)
        return cls(
            description=description,
            amount=amount,
            category=category,
            account=account_id,
            date=payload.date or today,
        )


class ExpensePatch(BaseModel):
    description: str | None = None
    amount: Decimal | None = None
    category: str | None = None
    account: StrictInt | None = None
    date: dt.date | None = None

    @classmethod
    def validate_payload(cls, payload: "ExpensePatch") -> dict[str, Any]:
        errors: list[FieldError] = []
        changes: dict[str, Any] = {}
        sent = payload.model_fields_set
        if "description" in sent:
            changes["description"] = _text(payload.description, "description", errors, 1, "Description required.")
        if "amount" in sent:
            changes["amount"] = _money(payload.amount, "amount", errors, minimum=Decimal("0"))
        if "category" in sent:
            changes["category"] = _choice(payload.category, "category", errors, ExpenseCategory.validate)
        if "account" in sent:
            changes["account_id"] = _account_id(payload.account, errors)
        if "date" in sent:
            if payload.date is None:
                errors.append(FieldError("date", "Date must be a valid date."))
            changes["date"] = payload.date
        _raise_if_any(errors)
        return changes


class UserResponse(BaseModel):
    id: int
    name: str
    email: str


class AuthResponse(BaseModel):
    token: str
    user: UserResponse


class CurrentUserResponse(BaseModel):
    user: UserResponse


class AccountResponse(BaseModel):
    id: int
    user_id: int
    name: str
    type: str
    balance: Money
    currency: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ExpenseAccountRef(BaseModel):
    id: int
    name: str
    type: str


class ExpenseResponse(BaseModel):
    id: int
    user_id: int
    description: str
    amount: Money
    category: str
    date: date
    account_id: int
    account: ExpenseAccountRef | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ExpensePageResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    expenses: list[ExpenseResponse]
    total_pages: int = Field(alias="totalPages")
    current_page: int = Field(alias="currentPage")


class CategoryBreakdownEntry(BaseModel):
    category: str
    total: Money
    count: int
    percentage: float


class AnalyticsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    category_breakdown: list[CategoryBreakdownEntry] = Field(alias="categoryBreakdown")
    total_spent: Money = Field(alias="totalSpent")


class MessageResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    environment: str
