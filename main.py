import logging
from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import get_settings
from csrf import CSRF_HEADER, generate_csrf_token, validate_csrf_token
from database import SessionLocal, session_scope
from errors import (
    ConstraintViolation,
    ExpenseValidationError,
    NotFoundError,
    StaleOccurrenceError,
    StorageError,
)
from periods import resolve_period
from recurrence import local_today
from schemas import (
    CategoryIn,
    CategoryOut,
    CategoryTrendOut,
    DashboardOut,
    ExpenseIn,
    ExpenseOut,
    MonthlyCommitmentOut,
    OccurrenceAction,
    PaymentMethodIn,
    PaymentMethodOut,
    ProfileIn,
    ProfileOut,
    RecurringExpenseIn,
    RecurringExpenseOut,
    ReportSummaryOut,
    SpenderTotalOut,
    ToggleIn,
)
from sequencing import LatestRequestGuard
from services import (
    CategoryService,
    ExpenseFilters,
    ExpenseService,
    PaymentMethodService,
    ProfileService,
    RecurringExpenseService,
    ReportService,
    seed_defaults,
)

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Household Expenses")
report_guard = LatestRequestGuard()


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": message})


@app.exception_handler(ExpenseValidationError)
def validation_error_handler(_request: Request, exc: ExpenseValidationError):
    return _error(400, str(exc))


@app.exception_handler(NotFoundError)
def not_found_handler(_request: Request, exc: NotFoundError):
    return _error(404, str(exc))


@app.exception_handler(StaleOccurrenceError)
def stale_occurrence_handler(_request: Request, exc: StaleOccurrenceError):
    return _error(409, str(exc))


@app.exception_handler(ConstraintViolation)
def constraint_handler(_request: Request, exc: ConstraintViolation):
    return _error(409, str(exc))


@app.exception_handler(StorageError)
def storage_error_handler(request: Request, exc: StorageError):
    logger.error(f"request_failed: path={request.url.path} error={exc}")
    return _error(503, str(exc) or "Storage unavailable")


@app.exception_handler(SQLAlchemyError)
def sqlalchemy_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"request_failed: path={request.url.path} error={exc}")
    return _error(503, "Storage unavailable")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def current_user_id(request: Request) -> str:
    user_id = request.headers.get(get_settings().auth_header, "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user_id


def csrf_protected(request: Request, user_id: str = Depends(current_user_id)) -> str:
    token = request.headers.get(CSRF_HEADER, "")
    if not validate_csrf_token(token, user_id):
        raise HTTPException(status_code=403, detail="Invalid CSRF token")
    return user_id


@app.on_event("startup")
def startup_event():
    with session_scope() as session:
        seed_defaults(session)


@app.get("/api/csrf-token")
def api_csrf_token(user_id: str = Depends(current_user_id)):
    return {"csrf_token": generate_csrf_token(user_id)}


@app.get("/api/profile", response_model=ProfileOut)
def get_profile(user_id: str = Depends(current_user_id), db: Session = Depends(get_db)):
    return ProfileService(db, user_id).get_or_create()


@app.put("/api/profile", response_model=ProfileOut)
def update_profile(
    data: ProfileIn,
    user_id: str = Depends(csrf_protected),
    db: Session = Depends(get_db),
):
    return ProfileService(db, user_id).update(data)


@app.get("/api/profile/spenders")
def spender_options(
    user_id: str = Depends(current_user_id), db: Session = Depends(get_db)
):
    return {"spenders": ProfileService(db, user_id).spender_options()}


@app.delete("/api/profile", status_code=204)
def delete_profile(
    user_id: str = Depends(csrf_protected), db: Session = Depends(get_db)
):
    ProfileService(db, user_id).soft_delete()
    return Response(status_code=204)


@app.get("/api/categories", response_model=list[CategoryOut])
def list_categories(
    user_id: str = Depends(current_user_id), db: Session = Depends(get_db)
):
    return CategoryService(db, user_id).list_all()


@app.post("/api/categories", response_model=CategoryOut, status_code=201)
def create_category(
    data: CategoryIn,
    user_id: str = Depends(csrf_protected),
    db: Session = Depends(get_db),
):
    return CategoryService(db, user_id).create(data)


@app.put("/api/categories/{category_id}", response_model=CategoryOut)
def update_category(
    category_id: int,
    data: CategoryIn,
    user_id: str = Depends(csrf_protected),
    db: Session = Depends(get_db),
):
    return CategoryService(db, user_id).update(category_id, data)


@app.get("/api/categories/{category_id}/expense-count")
def category_expense_count(
    category_id: int,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    return {"count": CategoryService(db, user_id).expense_count(category_id)}


@app.delete("/api/categories/{category_id}", status_code=204)
def delete_category(
    category_id: int,
    user_id: str = Depends(csrf_protected),
    db: Session = Depends(get_db),
):
    CategoryService(db, user_id).delete(category_id)
    return Response(status_code=204)


@app.get("/api/payment-methods", response_model=list[PaymentMethodOut])
def list_payment_methods(
    user_id: str = Depends(current_user_id), db: Session = Depends(get_db)
):
    return PaymentMethodService(db, user_id).list_all()


@app.post("/api/payment-methods", response_model=PaymentMethodOut, status_code=201)
def create_payment_method(
    data: PaymentMethodIn,
    user_id: str = Depends(csrf_protected),
    db: Session = Depends(get_db),
):
    return PaymentMethodService(db, user_id).create(data)


@app.delete("/api/payment-methods/{payment_method_id}", status_code=204)
def delete_payment_method(
    payment_method_id: int,
    user_id: str = Depends(csrf_protected),
    db: Session = Depends(get_db),
):
    PaymentMethodService(db, user_id).delete(payment_method_id)
    return Response(status_code=204)


@app.get("/api/expenses", response_model=list[ExpenseOut])
def list_expenses(
    start: Optional[date] = None,
    end: Optional[date] = None,
    category_id: Optional[int] = None,
    spender: Optional[str] = None,
    payment_method_id: Optional[int] = None,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    filters = ExpenseFilters(
        start=start,
        end=end,
        category_id=category_id,
        spender=spender,
        payment_method_id=payment_method_id,
    )
    return ExpenseService(db, user_id).list(filters)


@app.post("/api/expenses", response_model=ExpenseOut, status_code=201)
def create_expense(
    data: ExpenseIn,
    user_id: str = Depends(csrf_protected),
    db: Session = Depends(get_db),
):
    return ExpenseService(db, user_id).create(data)


@app.get("/api/expenses/{expense_id}", response_model=ExpenseOut)
def get_expense(
    expense_id: int,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    return ExpenseService(db, user_id).get(expense_id)


@app.put("/api/expenses/{expense_id}", response_model=ExpenseOut)
def update_expense(
    expense_id: int,
    data: ExpenseIn,
    user_id: str = Depends(csrf_protected),
    db: Session = Depends(get_db),
):
    return ExpenseService(db, user_id).update(expense_id, data)


@app.delete("/api/expenses/{expense_id}", status_code=204)
def delete_expense(
    expense_id: int,
    user_id: str = Depends(csrf_protected),
    db: Session = Depends(get_db),
):
    ExpenseService(db, user_id).delete(expense_id)
    return Response(status_code=204)


@app.get("/api/recurring", response_model=list[RecurringExpenseOut])
def list_recurring(
    user_id: str = Depends(current_user_id), db: Session = Depends(get_db)
):
    return RecurringExpenseService(db, user_id).list()


@app.get("/api/recurring/pending", response_model=list[RecurringExpenseOut])
def pending_recurring(
    today: Optional[date] = None,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    return RecurringExpenseService(db, user_id).pending(today)


@app.get("/api/recurring/commitment", response_model=MonthlyCommitmentOut)
def recurring_commitment(
    user_id: str = Depends(current_user_id), db: Session = Depends(get_db)
):
    return RecurringExpenseService(db, user_id).monthly_commitment()


@app.post("/api/recurring", response_model=RecurringExpenseOut, status_code=201)
def create_recurring(
    data: RecurringExpenseIn,
    user_id: str = Depends(csrf_protected),
    db: Session = Depends(get_db),
):
    return RecurringExpenseService(db, user_id).create(data)


@app.put("/api/recurring/{recurring_id}", response_model=RecurringExpenseOut)
def update_recurring(
    recurring_id: int,
    data: RecurringExpenseIn,
    user_id: str = Depends(csrf_protected),
    db: Session = Depends(get_db),
):
    return RecurringExpenseService(db, user_id).update(recurring_id, data)


@app.delete("/api/recurring/{recurring_id}", status_code=204)
def delete_recurring(
    recurring_id: int,
    user_id: str = Depends(csrf_protected),
    db: Session = Depends(get_db),
):
    RecurringExpenseService(db, user_id).delete(recurring_id)
    return Response(status_code=204)


@app.post("/api/recurring/{recurring_id}/toggle", response_model=RecurringExpenseOut)
def toggle_recurring(
    recurring_id: int,
    data: Optional[ToggleIn] = None,
    user_id: str = Depends(csrf_protected),
    db: Session = Depends(get_db),
):
    service = RecurringExpenseService(db, user_id)
    service.toggle_active(recurring_id, data.is_active if data else None)
    return service.get(recurring_id)


@app.post(
    "/api/recurring/{recurring_id}/confirm", response_model=ExpenseOut, status_code=201
)
def confirm_recurring(
    recurring_id: int,
    data: Optional[OccurrenceAction] = None,
    user_id: str = Depends(csrf_protected),
    db: Session = Depends(get_db),
):
    expected = data.expected_due_date if data else None
    return RecurringExpenseService(db, user_id).confirm(recurring_id, expected)


@app.post("/api/recurring/{recurring_id}/skip", response_model=RecurringExpenseOut)
def skip_recurring(
    recurring_id: int,
    data: Optional[OccurrenceAction] = None,
    user_id: str = Depends(csrf_protected),
    db: Session = Depends(get_db),
):
    service = RecurringExpenseService(db, user_id)
    service.skip(recurring_id, data.expected_due_date if data else None)
    return service.get(recurring_id)


@app.get("/api/recurring/{recurring_id}/occurrences", response_model=list[ExpenseOut])
def recurring_occurrences(
    recurring_id: int,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    return RecurringExpenseService(db, user_id).occurrences(recurring_id)


def _latest_only(user_id: str, view: str, seq: Optional[int], client: str, fetch):
    if seq is None:
        return fetch()
    report_guard.begin(user_id, view, seq, client)
    try:
        result = fetch()
        current = report_guard.is_current(user_id, view, seq, client)
    finally:
        report_guard.finish(user_id, view, seq, client)
    if not current:
        logger.info(
            f"report_discarded: view={view} seq={seq} client={client} user={user_id}"
        )
        raise HTTPException(status_code=409, detail="Stale request")
    return result


@app.get("/api/reports/monthly", response_model=ReportSummaryOut)
def report_monthly(
    month: int,
    year: int,
    seq: Optional[int] = None,
    client: str = "",
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    service = ReportService(db, user_id)
    return _latest_only(
        user_id,
        "monthly",
        seq,
        client,
        lambda: service.fetch_monthly_summary(month, year),
    )


@app.get("/api/reports/range", response_model=ReportSummaryOut)
def report_range(
    period: Optional[str] = "custom",
    start: Optional[str] = None,
    end: Optional[str] = None,
    seq: Optional[int] = None,
    client: str = "",
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        resolved = resolve_period(
            period, start, end, today=date.fromisoformat(local_today())
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    service = ReportService(db, user_id)
    return _latest_only(
        user_id,
        "range",
        seq,
        client,
        lambda: service.fetch_date_range_summary(resolved.start, resolved.end),
    )


@app.get("/api/reports/by-spender", response_model=list[SpenderTotalOut])
def report_by_spender(
    start: Optional[date] = None,
    end: Optional[date] = None,
    seq: Optional[int] = None,
    client: str = "",
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    service = ReportService(db, user_id)
    return _latest_only(
        user_id,
        "by-spender",
        seq,
        client,
        lambda: service.fetch_by_spender(start, end),
    )


@app.get("/api/reports/category-trend", response_model=CategoryTrendOut)
def report_category_trend(
    months: int = 6,
    seq: Optional[int] = None,
    client: str = "",
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    service = ReportService(db, user_id)
    return _latest_only(
        user_id,
        "category-trend",
        seq,
        client,
        lambda: service.fetch_category_trend(months),
    )


@app.get("/api/dashboard", response_model=DashboardOut)
def dashboard(user_id: str = Depends(current_user_id), db: Session = Depends(get_db)):
    return ReportService(db, user_id).dashboard()


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
