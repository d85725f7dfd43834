import logging
from datetime import date, datetime, timezone

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.engine import RowMapping

from backend.accounts import create_account, delete_account, list_accounts, update_account
from backend.analytics import expense_analytics
from backend.auth import (
    AuthenticatedUser,
    IssuedSession,
    get_current_user,
    get_settings,
    get_store,
    login_user,
    register_user,
)
from backend.config import Settings
from backend.db import Store
from backend.errors import install_error_handlers
from backend.expenses import (
    MAX_PAGE,
    MAX_PAGE_SIZE,
    ExpenseFilter,
    create_expense,
    delete_expense,
    list_expenses,
    update_expense,
)
from backend.schemas import (
    AccountPatch,
    AccountPayload,
    AccountResponse,
    AnalyticsResponse,
    AuthResponse,
    CategoryBreakdownEntry,
    CurrentUserResponse,
    ExpenseAccountRef,
    ExpensePageResponse,
    ExpensePatch,
    ExpensePayload,
    ExpenseResponse,
    HealthResponse,
    LoginPayload,
    MessageResponse,
    RegisterPayload,
    UserResponse,
)

logger = logging.getLogger(__name__)

api = APIRouter(prefix="/api")
root = APIRouter()


def _user_response(user: AuthenticatedUser) -> UserResponse:
    return UserResponse(id=user.id, name=user.name, email=user.email)


def _auth_response(session: IssuedSession) -> AuthResponse:
    return AuthResponse(token=session.token, user=_user_response(session.user))


def _account_response(row: RowMapping) -> AccountResponse:
    return AccountResponse(
        id=row["id"],
        user_id=row["user_id"],
        name=row["name"],
        type=row["type"],
        balance=row["balance"],
        currency=row["currency"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _expense_response(row: RowMapping) -> ExpenseResponse:
    account = None
    if row["account_name"] is not None:
        account = ExpenseAccountRef(id=row["account_id"], name=row["account_name"], type=row["account_type"])
    return ExpenseResponse(
        id=row["id"],
        user_id=row["user_id"],
        description=row["description"],
        amount=row["amount"],
        category=row["category"],
        date=row["date"],
        account_id=row["account_id"],
        account=account,
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


@root.get("/")
def welcome() -> dict:
    return {"message": "Welcome to Financial Noting API"}


@root.get("/health", response_model=HealthResponse)
def health(settings: Settings = Depends(get_settings)) -> HealthResponse:
    return HealthResponse(
        status="OK",
        timestamp=datetime.now(timezone.utc),
        environment=settings.environment,
    )


@api.post("/auth/register", response_model=AuthResponse, status_code=201)
def register(
    payload: RegisterPayload,
    store: Store = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> AuthResponse:
    return _auth_response(register_user(store, settings, payload))


@api.post("/auth/login", response_model=AuthResponse)
def login(
    payload: LoginPayload,
    store: Store = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> AuthResponse:
    return _auth_response(login_user(store, settings, payload))


@api.get("/auth/me", response_model=CurrentUserResponse)
def me(user: AuthenticatedUser = Depends(get_current_user)) -> CurrentUserResponse:
    return CurrentUserResponse(user=_user_response(user))


@api.get("/accounts", response_model=list[AccountResponse])
def get_accounts(
    user: AuthenticatedUser = Depends(get_current_user),
    store: Store = Depends(get_store),
) -> list[AccountResponse]:
    return [_account_response(row) for row in list_accounts(store, user.id)]


@api.post("/accounts", response_model=AccountResponse, status_code=201)
def post_account(
    payload: AccountPayload,
    user: AuthenticatedUser = Depends(get_current_user),
    store: Store = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> AccountResponse:
    return _account_response(create_account(store, user.id, payload, settings.default_currency))


@api.put("/accounts/{account_id}", response_model=AccountResponse)
def put_account(
    account_id: int,
    payload: AccountPatch,
    user: AuthenticatedUser = Depends(get_current_user),
    store: Store = Depends(get_store),
) -> AccountResponse:
    return _account_response(update_account(store, user.id, account_id, payload))


@api.delete("/accounts/{account_id}", response_model=MessageResponse)
def remove_account(
    account_id: int,
    user: AuthenticatedUser = Depends(get_current_user),
    store: Store = Depends(get_store),
) -> MessageResponse:
    delete_account(store, user.id, account_id)
    return MessageResponse(message="Account deleted")


@api.get("/expenses", response_model=ExpensePageResponse)
def get_expenses(
    page: int = Query(1, ge=1, le=MAX_PAGE),
    limit: int = Query(10, ge=1, le=MAX_PAGE_SIZE),
    category: str | None = Query(None),
    start_date: date | None = Query(None, alias="startDate"),
    end_date: date | None = Query(None, alias="endDate"),
    user: AuthenticatedUser = Depends(get_current_user),
    store: Store = Depends(get_store),
) -> ExpensePageResponse:
    expense_filter = ExpenseFilter(category=category, start_date=start_date, end_date=end_date)
    result = list_expenses(store, user.id, expense_filter, page=page, limit=limit)
    return ExpensePageResponse(
        expenses=[_expense_response(row) for row in result.rows],
        total_pages=result.total_pages,
        current_page=result.current_page,
    )


@api.post("/expenses", response_model=ExpenseResponse, status_code=201)
def post_expense(
    payload: ExpensePayload,
    user: AuthenticatedUser = Depends(get_current_user),
    store: Store = Depends(get_store),
) -> ExpenseResponse:
    return _expense_response(create_expense(store, user.id, payload, date.today()))


@api.get("/expenses/analytics", response_model=AnalyticsResponse)
def get_expense_analytics(
    start_date: date | None = Query(None, alias="startDate"),
    end_date: date | None = Query(None, alias="endDate"),
    user: AuthenticatedUser = Depends(get_current_user),
    store: Store = Depends(get_store),
) -> AnalyticsResponse:
    result = expense_analytics(store, user.id, ExpenseFilter(start_date=start_date, end_date=end_date))
    return AnalyticsResponse(
        category_breakdown=[
            CategoryBreakdownEntry(
                category=entry.category,
                total=entry.total,
                count=entry.count,
                percentage=entry.percentage,
            )
            for entry in result.category_breakdown
        ],
        total_spent=result.total_spent,
    )


@api.put("/expenses/{expense_id}", response_model=ExpenseResponse)
def put_expense(
    expense_id: int,
    payload: ExpensePatch,
    user: AuthenticatedUser = Depends(get_current_user),
    store: Store = Depends(get_store),
) -> ExpenseResponse:
    return _expense_response(update_expense(store, user.id, expense_id, payload))


@api.delete("/expenses/{expense_id}", response_model=MessageResponse)
def remove_expense(
    expense_id: int,
    user: AuthenticatedUser = Depends(get_current_user),
    store: Store = Depends(get_store),
) -> MessageResponse:
    delete_expense(store, user.id, expense_id)
    return MessageResponse(message="Expense deleted")


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(title="Financial Noting API")
    app.state.settings = settings
    app.state.store = Store(settings.database_url)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_origin],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.info("%s %s", request.method, request.url.path)
        return await call_next(request)

    @app.on_event("startup")
    def open_store() -> None:
        app.state.store.open()

    @app.on_event("shutdown")
    def close_store() -> None:
        app.state.store.close()

    install_error_handlers(app)
    app.include_router(root)
    app.include_router(api)
    return app


app = create_app()
