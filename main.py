import logging
from typing import Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import get_settings
from database import session_scope
from errors import InvalidArgument, NotFound, ServiceError, StoreFailure
from models import TransactionType
from periods import Period, parse_period_bounds, resolve_period, today_local
from schemas import (
    AuthOut,
    BudgetIn,
    BudgetOut,
    CategoryIn,
    CategoryOut,
    CategoryPatch,
    LoginIn,
    RegisterIn,
    TransactionIn,
    TransactionOut,
    TransactionPage,
    TransactionPatch,
    UserOut,
)
from security import bearer_token, issue_token, read_token
from services import (
    AuthService,
    BudgetService,
    CategoryService,
    MetricsService,
    TransactionFilters,
    TransactionService,
)

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Budge API")


def _load_app_version() -> str:
    try:
        import tomllib
    except Exception:
        return "unknown"
    try:
        with open("pyproject.toml", "rb") as f:
            data = tomllib.load(f)
        return str(data.get("project", {}).get("version", "unknown"))
    except Exception:
        return "unknown"


APP_VERSION = _load_app_version()


def get_db():
    with session_scope() as db:
        yield db


def current_user_id(authorization: Optional[str] = Header(default=None)) -> int:
    return read_token(bearer_token(authorization))


@app.exception_handler(ServiceError)
async def service_error_handler(_request: Request, exc: ServiceError):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})


@app.exception_handler(StoreFailure)
async def store_failure_handler(_request: Request, exc: StoreFailure):
    logger.error("store_failure: %s", exc, exc_info=exc.__cause__ or exc)
    return JSONResponse(status_code=500, content={"error": "Internal storage error"})


@app.exception_handler(SQLAlchemyError)
async def sqlalchemy_error_handler(_request: Request, exc: SQLAlchemyError):
    logger.error("store_failure: unhandled database error", exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal storage error"})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(_request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(_request: Request, exc: RequestValidationError):
    messages = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        messages.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return JSONResponse(
        status_code=400, content={"error": "; ".join(messages) or "Invalid request"}
    )


def period_from_request(request: Request) -> Period:
    start, end = parse_period_bounds(
        request.query_params.get("startDate"), request.query_params.get("endDate")
    )
    return resolve_period(today_local(), start, end)


def filters_from_request(request: Request) -> TransactionFilters:
    type_param = request.query_params.get("type")
    category_param = request.query_params.get("category")
    txn_type = None
    if type_param:
        try:
            txn_type = TransactionType(type_param)
        except ValueError:
            txn_type = None
    category_id = None
    if category_param:
        try:
            category_id = int(category_param)
        except ValueError:
            category_id = None
    start, end = parse_period_bounds(
        request.query_params.get("startDate"), request.query_params.get("endDate")
    )
    return TransactionFilters(
        type=txn_type, category_id=category_id, start=start, end=end
    )


def _int_param(request: Request, name: str, default: int) -> int:
    raw = request.query_params.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise InvalidArgument(f"{name} must be an integer") from exc


@app.get("/")
def health():
    return {"status": "ok", "message": "Budge API is running!", "version": APP_VERSION}


# Auth


@app.post("/auth/register", status_code=201)
def register(data: RegisterIn, db: Session = Depends(get_db)):
    user = AuthService(db).register(data)
    logger.info("user_registered: user_id=%s", user.id)
    return AuthOut(
        message="User registered successfully",
        token=issue_token(user.id, user.email, user.name),
        user=UserOut.model_validate(user),
    ).model_dump(mode="json")


@app.post("/auth/login")
def login(data: LoginIn, db: Session = Depends(get_db)):
    try:
        user = AuthService(db).login(data.email, data.password)
    except ServiceError:
        logger.info("login_failed")
        raise
    logger.info("user_logged_in: user_id=%s", user.id)
    return AuthOut(
        message="Login successful",
        token=issue_token(user.id, user.email, user.name),
        user=UserOut.model_validate(user),
    ).model_dump(mode="json")


@app.get("/auth/me")
def me(user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    user = AuthService(db).get_user(user_id)
    return {"user": UserOut.model_validate(user).model_dump(mode="json")}


# Budgets


@app.get("/budgets")
def get_budget(user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    budget = BudgetService(db, user_id).get()
    return {"budget": BudgetOut.model_validate(budget).model_dump(mode="json")}


@app.post("/budgets")
def upsert_budget(
    data: BudgetIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    budget = BudgetService(db, user_id).upsert(data)
    return {"budget": BudgetOut.model_validate(budget).model_dump(mode="json")}


@app.get("/budgets/categories")
def list_categories(
    user_id: int = Depends(current_user_id), db: Session = Depends(get_db)
):
    categories = CategoryService(db, user_id).list_all()
    return [CategoryOut.model_validate(c).model_dump(mode="json") for c in categories]


@app.post("/budgets/categories", status_code=201)
def create_category(
    data: CategoryIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    category = CategoryService(db, user_id).create(data)
    return {
        "message": "Category created successfully",
        "category": CategoryOut.model_validate(category).model_dump(mode="json"),
    }


@app.put("/budgets/categories/{category_id}")
def update_category(
    category_id: int,
    patch: CategoryPatch,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    category = CategoryService(db, user_id).update(category_id, patch)
    return {
        "message": "Category updated successfully",
        "category": CategoryOut.model_validate(category).model_dump(mode="json"),
    }


@app.delete("/budgets/categories/{category_id}")
def delete_category(
    category_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    orphaned = CategoryService(db, user_id).delete(category_id)
    logger.info(
        "category_deleted: user_id=%s category_id=%s orphaned_transactions=%s",
        user_id,
        category_id,
        orphaned,
    )
    return {"message": "Category deleted successfully"}


@app.get("/budgets/summary")
def budget_summary(
    request: Request,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    period = period_from_request(request)
    summary = BudgetService(db, user_id).summary(period)
    return [item.model_dump(mode="json") for item in summary]


@app.get("/budgets/overview")
def budget_overview(
    request: Request,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    period = period_from_request(request)
    overview = BudgetService(db, user_id).overview(period, today_local())
    return overview.model_dump(mode="json")


# Transactions


@app.get("/transactions")
def list_transactions(
    request: Request,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    filters = filters_from_request(request)
    page = _int_param(request, "page", 1)
    limit = _int_param(request, "limit", 20)
    items, pagination = TransactionService(db, user_id).list(filters, page, limit)
    return TransactionPage(
        transactions=[TransactionOut.model_validate(txn) for txn in items],
        pagination=pagination,
    ).model_dump(mode="json")


@app.post("/transactions", status_code=201)
def create_transaction(
    data: TransactionIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    txn = TransactionService(db, user_id).create(data)
    return {
        "message": "Transaction created successfully",
        "transaction": TransactionOut.model_validate(txn).model_dump(mode="json"),
    }


@app.get("/transactions/spending-by-category")
def spending_by_category(
    request: Request,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    period = period_from_request(request)
    spending = MetricsService(db, user_id).spending_by_category(period)
    return [item.model_dump(mode="json") for item in spending]


@app.get("/transactions/{transaction_id}")
def get_transaction(
    transaction_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    txn = TransactionService(db, user_id).get(transaction_id)
    return {"transaction": TransactionOut.model_validate(txn).model_dump(mode="json")}


@app.put("/transactions/{transaction_id}")
def update_transaction(
    transaction_id: int,
    patch: TransactionPatch,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        txn = TransactionService(db, user_id).update(transaction_id, patch)
    except NotFound as exc:
        raise InvalidArgument(str(exc)) from exc
    return {
        "message": "Transaction updated successfully",
        "transaction": TransactionOut.model_validate(txn).model_dump(mode="json"),
    }


@app.delete("/transactions/{transaction_id}")
def delete_transaction(
    transaction_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    TransactionService(db, user_id).delete(transaction_id)
    return {"message": "Transaction deleted successfully"}


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
