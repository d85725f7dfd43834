from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import insert, select
from sqlalchemy.exc import IntegrityError

from backend.config import Settings
from backend.db import Store, users
from backend.errors import ConflictError, InvalidCredentials, Unauthorized
from backend.schemas import LoginPayload, RegisterPayload
from backend.security import (
    TokenError,
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthenticatedUser:
    id: int
    name: str
    email: str


@dataclass(frozen=True)
class IssuedSession:
    token: str
    user: AuthenticatedUser


def get_store(request: Request) -> Store:
    return request.app.state.store


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def _issue(user: AuthenticatedUser, settings: Settings) -> IssuedSession:
    token = create_access_token(user.id, settings.jwt_secret, settings.token_ttl)
    return IssuedSession(token=token, user=user)


def register_user(store: Store, settings: Settings, payload: RegisterPayload) -> IssuedSession:
    payload = RegisterPayload.validate_payload(payload)
    hashed_password = hash_password(payload.password)

    stmt = (
        insert(users)
        .values(name=payload.name, email=payload.email, hashed_password=hashed_password)
        .returning(users.c.id, users.c.name, users.c.email)
    )
    try:
        with store.begin() as conn:
            existing = conn.execute(select(users.c.id).where(users.c.email == payload.email)).first()
            if existing:
                raise ConflictError()
            row = conn.execute(stmt).mappings().one()
    except IntegrityError as exc:
        raise ConflictError() from exc

    user = AuthenticatedUser(id=row["id"], name=row["name"], email=row["email"])
    logger.info("Registered user %s", user.id)
    return _issue(user, settings)


def login_user(store: Store, settings: Settings, payload: LoginPayload) -> IssuedSession:
    payload = LoginPayload.validate_payload(payload)
    with store.begin() as conn:
        row = conn.execute(select(users).where(users.c.email == payload.email)).mappings().first()

    if not row or not verify_password(payload.password, row["hashed_password"]):
        raise InvalidCredentials()

    return _issue(AuthenticatedUser(id=row["id"], name=row["name"], email=row["email"]), settings)


def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    store: Store = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> AuthenticatedUser:
    if credentials is None or not credentials.credentials:
        raise Unauthorized("No token, authorization denied")
    try:
        user_id = decode_access_token(credentials.credentials, settings.jwt_secret)
    except TokenError as exc:
        logger.debug("Rejected bearer token: %s", exc)
        raise Unauthorized() from exc

    with store.begin() as conn:
        row = conn.execute(
            select(users.c.id, users.c.name, users.c.email).where(users.c.id == user_id)
        ).mappings().first()
    if not row:
        raise Unauthorized()

    user = AuthenticatedUser(id=row["id"], name=row["name"], email=row["email"])
    request.state.user = user
    return user
