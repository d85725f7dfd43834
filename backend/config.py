from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta

FALLBACK_CURRENCY = "USD"


def normalize_currency(value: str) -> str:
    normalized = value.strip().upper()
    if len(normalized) != 3 or not normalized.isalpha():
        raise ValueError("Currency must be a 3-letter ISO 4217 code.")
    return normalized


def get_default_currency(raw: str | None) -> str:
    try:
        return normalize_currency(raw or FALLBACK_CURRENCY)
    except ValueError:
        return FALLBACK_CURRENCY


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./financial_noting.db"
    jwt_secret: str = "fallback-secret"
    token_ttl: timedelta = timedelta(days=7)
    frontend_origin: str = "http://localhost:3000"
    environment: str = "development"
    default_currency: str = FALLBACK_CURRENCY
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        try:
            ttl_days = int(os.getenv("JWT_EXPIRES_DAYS", "7"))
        except ValueError:
            ttl_days = 7
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            jwt_secret=os.getenv("JWT_SECRET", cls.jwt_secret),
            token_ttl=timedelta(days=max(ttl_days, 1)),
            frontend_origin=os.getenv("FRONTEND_ORIGIN", cls.frontend_origin),
            environment=os.getenv("APP_ENV", cls.environment),
            default_currency=get_default_currency(os.getenv("DEFAULT_CURRENCY")),
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
        )
