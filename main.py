import logging
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from config import get_settings
from database import SessionLocal, init_db, session_scope
from errors import FinanceError, Unauthenticated, ValidationError
from fx_rates import (
    RateTable,
    RateTableStore,
    convert,
    format_amount,
    static_rate_table,
)
from models import TransactionType, User
from periods import Period, resolve_period
from reports import ReportService, future_savings, loan_payment
from scheduler import SchedulerManager
from schemas import (
    AccountIn,
    AccountOut,
    AccountUpdate,
    LoanQuoteOut,
    LoginIn,
    MonthBucketOut,
    PasswordChange,
    ProfileUpdate,
    RegisterIn,
    SavingsProjectionOut,
    SummaryOut,
    TeamIn,
    TeamMemberIn,
    TeamMemberOut,
    TeamOut,
    TransactionIn,
    TransactionOut,
    TransactionUpdate,
    UserOut,
)
from seed import seed_database
from services import (
    AccountService,
    TeamService,
    TransactionFilters,
    TransactionService,
    UserService,
)
from sessions import (
    SESSION_COOKIE,
    issue_session_token,
    read_session_token,
    session_max_age_secs,
)

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Finance Tracker")
app.state.rates = RateTableStore(static_rate_table(settings.base_currency))

scheduler_manager = SchedulerManager(app.state.rates)


@app.on_event("startup")
def startup_event():
    init_db()
    if settings.seed_demo:
        with session_scope() as session:
            seed_database(session)
    scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


@app.exception_handler(FinanceError)
async def finance_error_handler(request: Request, exc: FinanceError):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={
            "message": "Validation failed",
            "errors": jsonable_encoder(exc.errors()),
        },
    )


@app.exception_handler(Exception)
async def internal_error_handler(request: Request, exc: Exception):
    logger.exception(f"internal_error: path={request.url.path}")
    return JSONResponse(status_code=500, content={"message": "Internal server error"})


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def current_user(request: Request, db: Session = Depends(get_db)) -> User:
    user_id = read_session_token(request.cookies.get(SESSION_COOKIE))
    if user_id is None:
        raise Unauthenticated("Not authenticated")
    user = db.get(User, user_id)
    if not user:
        raise Unauthenticated("Not authenticated")
    return user


def rate_table(request: Request) -> RateTable:
    return request.app.state.rates.current


def local_tz() -> ZoneInfo:
    return ZoneInfo(settings.timezone)


def period_from_request(request: Request) -> Period:
    period_slug = request.query_params.get("period")
    start = request.query_params.get("start")
    end = request.query_params.get("end")
    today = datetime.now(local_tz()).date()
    try:
        return resolve_period(period_slug, start, end, today=today)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc


def _login(response: Response, user: User) -> None:
    response.set_cookie(
        SESSION_COOKIE,
        issue_session_token(user.id),
        max_age=session_max_age_secs(),
        httponly=True,
        samesite="lax",
    )


@app.get("/healthz")
def healthz():
    return {"status": "ok"}


# --- auth ------------------------------------------------------------------


@app.post("/api/register", response_model=UserOut, status_code=201)
def register(payload: RegisterIn, response: Response, db: Session = Depends(get_db)):
    user = UserService(db).register(payload)
    _login(response, user)
    return user


@app.post("/api/login", response_model=UserOut)
def login(payload: LoginIn, response: Response, db: Session = Depends(get_db)):
    user = UserService(db).authenticate(payload.username, payload.password)
    _login(response, user)
    return user


@app.post("/api/logout", status_code=204)
def logout():
    response = Response(status_code=204)
    response.delete_cookie(SESSION_COOKIE)
    return response


@app.get("/api/user", response_model=UserOut)
def get_user(user: User = Depends(current_user)):
    return user


@app.put("/api/user/profile", response_model=UserOut)
def update_profile(
    payload: ProfileUpdate,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return UserService(db).update_profile(user.id, payload)


@app.put("/api/user/password")
def change_password(
    payload: PasswordChange,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    UserService(db).change_password(user.id, payload)
    return {"message": "Password updated successfully"}


# --- accounts --------------------------------------------------------------


@app.get("/api/accounts", response_model=list[AccountOut])
def list_accounts(user: User = Depends(current_user), db: Session = Depends(get_db)):
    return AccountService(db, user.id).list_all()


@app.post("/api/accounts", response_model=AccountOut, status_code=201)
def create_account(
    payload: AccountIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return AccountService(db, user.id).create(payload)


@app.get("/api/accounts/{account_id}", response_model=AccountOut)
def get_account(
    account_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return AccountService(db, user.id).get(account_id)


@app.put("/api/accounts/{account_id}", response_model=AccountOut)
def update_account(
    account_id: int,
    payload: AccountUpdate,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return AccountService(db, user.id).update(account_id, payload)


@app.delete("/api/accounts/{account_id}", status_code=204)
def delete_account(
    account_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    AccountService(db, user.id).delete(account_id)
    return Response(status_code=204)


# --- transactions ----------------------------------------------------------


@app.get("/api/transactions", response_model=list[TransactionOut])
def list_transactions(
    account_id: Optional[int] = Query(None, alias="accountId"),
    type: Optional[TransactionType] = Query(None),
    category: Optional[str] = Query(None),
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    filters = TransactionFilters(account_id=account_id, type=type, category=category)
    return TransactionService(db, user.id).list(filters)


@app.post("/api/transactions", response_model=TransactionOut, status_code=201)
def create_transaction(
    payload: TransactionIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return TransactionService(db, user.id).create(payload)


@app.get("/api/transactions/{transaction_id}", response_model=TransactionOut)
def get_transaction(
    transaction_id: int,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return TransactionService(db, user.id).get(transaction_id)


@app.put("/api/transactions/{transaction_id}", response_model=TransactionOut)
def update_transaction(
    transaction_id: int,
    payload: TransactionUpdate,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return TransactionService(db, user.id).update(transaction_id, payload)


@app.delete("/api/transactions/{transaction_id}", status_code=204)
def delete_transaction(
    transaction_id: int,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    TransactionService(db, user.id).delete(transaction_id)
    return Response(status_code=204)


# --- teams -----------------------------------------------------------------


@app.get("/api/teams", response_model=list[TeamOut])
def list_teams(user: User = Depends(current_user), db: Session = Depends(get_db)):
    return TeamService(db, user.id).list_for_user()


@app.post("/api/teams", response_model=TeamOut, status_code=201)
def create_team(
    payload: TeamIn, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return TeamService(db, user.id).create(payload)


@app.get("/api/teams/{team_id}", response_model=TeamOut)
def get_team(
    team_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return TeamService(db, user.id).get(team_id)


@app.get("/api/teams/{team_id}/members", response_model=list[TeamMemberOut])
def list_team_members(
    team_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return TeamService(db, user.id).members(team_id)


@app.post(
    "/api/teams/{team_id}/members", response_model=TeamMemberOut, status_code=201
)
def add_team_member(
    team_id: int,
    payload: TeamMemberIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return TeamService(db, user.id).add_member(team_id, payload)


@app.delete("/api/teams/{team_id}/members/{member_user_id}", status_code=204)
def remove_team_member(
    team_id: int,
    member_user_id: int,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    TeamService(db, user.id).remove_member(team_id, member_user_id)
    return Response(status_code=204)


# --- reports ---------------------------------------------------------------


@app.get("/api/reports/summary", response_model=SummaryOut)
def report_summary(
    request: Request,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    period = period_from_request(request)
    return ReportService(db, user.id, local_tz()).summary(period)


@app.get("/api/reports/monthly", response_model=list[MonthBucketOut])
def report_monthly(
    months: int = Query(6, ge=1, le=24),
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return ReportService(db, user.id, local_tz()).monthly(months)


# --- calculators -----------------------------------------------------------


@app.get("/api/calculators/loan", response_model=LoanQuoteOut)
def loan_calculator(
    amount: float = Query(..., ge=0),
    rate: float = Query(..., ge=0),
    years: int = Query(..., ge=1, le=50),
    user: User = Depends(current_user),
):
    return LoanQuoteOut.model_validate(loan_payment(amount, rate, years))


@app.get("/api/calculators/savings", response_model=SavingsProjectionOut)
def savings_calculator(
    years: int = Query(..., ge=1, le=50),
    rate: float = Query(0, ge=0),
    initial: float = Query(0, ge=0),
    monthly: float = Query(0, ge=0),
    user: User = Depends(current_user),
):
    return SavingsProjectionOut.model_validate(
        future_savings(initial, monthly, rate, years)
    )


# --- currency --------------------------------------------------------------


@app.get("/api/currency")
def currency_rates(
    user: User = Depends(current_user), table: RateTable = Depends(rate_table)
):
    return dict(table.rates)


@app.get("/api/currency/convert")
def currency_convert(
    amount: float,
    from_code: str = Query(..., alias="from"),
    to_code: str = Query(..., alias="to"),
    user: User = Depends(current_user),
    table: RateTable = Depends(rate_table),
):
    from_code, to_code = from_code.upper(), to_code.upper()
    result = convert(table, amount, from_code, to_code)
    return {
        "amount": amount,
        "from": from_code,
        "to": to_code,
        "result": result,
        "formatted": format_amount(result, to_code),
    }


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
