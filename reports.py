"""Aggregations behind the dashboard and the reports page.

The functions at module level are pure: they take an already-scoped list of
transactions and never touch the database. ``ReportService`` does the scoping.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Iterable, Optional, Protocol, Sequence
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.orm import Session

from config import get_settings
from models import Account, Transaction, TransactionType
from periods import Period, add_months, month_end, month_start


class TransactionLike(Protocol):
    amount: float
    category: str
    type: TransactionType
    date: datetime


@dataclass(frozen=True)
class CategoryTotal:
    category: str
    amount: float


@dataclass(frozen=True)
class MonthBucket:
    month: date
    income: float
    expenses: float

    @property
    def label(self) -> str:
        return self.month.strftime("%b")

    @property
    def savings(self) -> float:
        return self.income - self.expenses

    @property
    def savings_rate(self) -> float:
        return savings_rate(self.income, self.expenses)


@dataclass(frozen=True)
class Summary:
    income: float
    expenses: float

    @property
    def net_savings(self) -> float:
        return self.income - self.expenses

    @property
    def savings_rate(self) -> float:
        return savings_rate(self.income, self.expenses)


def local_date(value: datetime | date, tz: Optional[ZoneInfo] = None) -> date:
    """Calendar date of ``value`` in ``tz``; naive datetimes are taken as UTC."""
    if not isinstance(value, datetime):
        return value
    if tz is None:
        return value.date()
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(tz).date()


def sum_by_type(
    transactions: Iterable[TransactionLike], txn_type: TransactionType
) -> float:
    return sum(abs(t.amount) for t in transactions if t.type == txn_type)


def group_by_category(
    transactions: Iterable[TransactionLike],
    txn_type: TransactionType = TransactionType.expense,
) -> list[CategoryTotal]:
    totals: dict[str, float] = {}
    for txn in transactions:
        if txn.type != txn_type:
            continue
        totals[txn.category] = totals.get(txn.category, 0.0) + abs(txn.amount)
    ordered = sorted(totals.items(), key=lambda item: (-item[1], item[0]))
    return [CategoryTotal(category=name, amount=amount) for name, amount in ordered]


def bucket_by_month(
    transactions: Iterable[TransactionLike],
    month_count: int,
    now: datetime | date,
    tz: Optional[ZoneInfo] = None,
) -> list[MonthBucket]:
    """Income and expenses for the trailing ``month_count`` calendar months.

    Buckets run oldest first and end with the month containing ``now``.
    """
    if month_count <= 0:
        return []
    current = month_start(local_date(now, tz))
    months = [add_months(current, -offset) for offset in range(month_count - 1, -1, -1)]
    income = {m: 0.0 for m in months}
    expenses = {m: 0.0 for m in months}
    first, last = months[0], month_end(months[-1])

    for txn in transactions:
        day = local_date(txn.date, tz)
        if day < first or day > last:
            continue
        key = month_start(day)
        if txn.type == TransactionType.income:
            income[key] += abs(txn.amount)
        elif txn.type == TransactionType.expense:
            expenses[key] += abs(txn.amount)

    return [MonthBucket(month=m, income=income[m], expenses=expenses[m]) for m in months]


def savings_rate(income: float, expenses: float) -> float:
    if income > 0:
        return (income - expenses) / income * 100
    return 0.0


def percentage_of_total(value: float, total: float) -> float:
    if total > 0:
        return value / total * 100
    return 0.0


@dataclass(frozen=True)
class LoanQuote:
    principal: float
    months: int
    monthly_payment: float

    @property
    def total_payment(self) -> float:
        return self.monthly_payment * self.months

    @property
    def total_interest(self) -> float:
        return self.total_payment - self.principal


@dataclass(frozen=True)
class SavingsProjection:
    initial_deposit: float
    monthly_contribution: float
    months: int
    future_value: float

    @property
    def total_contributions(self) -> float:
        return self.initial_deposit + self.monthly_contribution * self.months

    @property
    def interest_earned(self) -> float:
        return self.future_value - self.total_contributions


def loan_payment(principal: float, annual_rate: float, years: int) -> LoanQuote:
    """Amortized monthly payment; ``annual_rate`` is a percentage."""
    months = years * 12
    if months <= 0:
        raise ValueError("Loan term must be at least one year")
    monthly_rate = annual_rate / 100 / 12
    if monthly_rate == 0:
        payment = principal / months
    else:
        growth = (1 + monthly_rate) ** months
        payment = principal * monthly_rate * growth / (growth - 1)
    return LoanQuote(principal=principal, months=months, monthly_payment=payment)


def future_savings(
    initial_deposit: float,
    monthly_contribution: float,
    annual_rate: float,
    years: int,
) -> SavingsProjection:
    """Compounded deposit plus the annuity value of monthly contributions."""
    months = years * 12
    if months <= 0:
        raise ValueError("Savings term must be at least one year")
    monthly_rate = annual_rate / 100 / 12
    growth = (1 + monthly_rate) ** months
    if monthly_rate > 0:
        contributions = monthly_contribution * (growth - 1) / monthly_rate
    else:
        contributions = monthly_contribution * months
    return SavingsProjection(
        initial_deposit=initial_deposit,
        monthly_contribution=monthly_contribution,
        months=months,
        future_value=initial_deposit * growth + contributions,
    )


def summarize(transactions: Sequence[TransactionLike]) -> Summary:
    return Summary(
        income=sum_by_type(transactions, TransactionType.income),
        expenses=sum_by_type(transactions, TransactionType.expense),
    )


def total_balance(accounts: Iterable[Account]) -> float:
    return sum(account.balance for account in accounts)


def category_breakdown(
    transactions: Sequence[TransactionLike], txn_type: TransactionType
) -> list[dict[str, object]]:
    groups = group_by_category(transactions, txn_type)
    total = sum(group.amount for group in groups)
    return [
        {
            "category": group.category,
            "amount": group.amount,
            "percentage": percentage_of_total(group.amount, total),
        }
        for group in groups
    ]


class ReportService:
    def __init__(
        self, session: Session, user_id: int, tz: Optional[ZoneInfo] = None
    ) -> None:
        self.session = session
        self.user_id = user_id
        self.tz = tz or ZoneInfo(get_settings().timezone)

    def _transactions(self) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.date.asc(), Transaction.id.asc())
        )
        return self.session.scalars(stmt).all()

    def _accounts(self) -> list[Account]:
        stmt = select(Account).where(Account.user_id == self.user_id)
        return self.session.scalars(stmt).all()

    def transactions_for_period(self, period: Period) -> list[Transaction]:
        return [
            txn
            for txn in self._transactions()
            if period.contains(local_date(txn.date, self.tz))
        ]

    def summary(self, period: Period) -> dict[str, object]:
        txns = self.transactions_for_period(period)
        totals = summarize(txns)
        return {
            "period": period.slug,
            "start": period.start,
            "end": period.end,
            "income": totals.income,
            "expenses": totals.expenses,
            "net_savings": totals.net_savings,
            "savings_rate": totals.savings_rate,
            "total_balance": total_balance(self._accounts()),
            "expense_by_category": category_breakdown(txns, TransactionType.expense),
            "income_by_category": category_breakdown(txns, TransactionType.income),
        }

    def monthly(
        self, month_count: int, now: Optional[datetime] = None
    ) -> list[dict[str, object]]:
        now = now or datetime.now(self.tz)
        buckets = bucket_by_month(self._transactions(), month_count, now, self.tz)
        return [
            {
                "month": bucket.month,
                "label": bucket.label,
                "income": bucket.income,
                "expenses": bucket.expenses,
                "savings": bucket.savings,
                "savings_rate": bucket.savings_rate,
            }
            for bucket in buckets
        ]
