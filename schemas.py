from datetime import date, datetime
from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

from models import AccountType, TeamRole, TransactionType


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CamelOut(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


def _upper_currency(value: str) -> str:
    code = value.strip().upper()
    if len(code) != 3 or not code.isalpha():
        raise ValueError("Currency must be a three letter ISO code")
    return code


CurrencyCode = Annotated[str, AfterValidator(_upper_currency)]


# --- users -----------------------------------------------------------------


class RegisterIn(CamelModel):
    username: str = Field(..., min_length=3, max_length=64)
    password: str = Field(..., min_length=6, max_length=128)
    email: EmailStr
    full_name: str = Field(..., min_length=1, max_length=120)


class LoginIn(CamelModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class ProfileUpdate(CamelModel):
    full_name: str = Field(..., min_length=1, max_length=120)
    email: EmailStr


class PasswordChange(CamelModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6, max_length=128)


class UserOut(CamelOut):
    id: int
    username: str
    email: str
    full_name: str
    avatar: Optional[str] = None
    is_pro: bool
    created_at: datetime


class MemberUserOut(CamelOut):
    id: int
    username: str
    email: str
    full_name: str
    avatar: Optional[str] = None


# --- accounts --------------------------------------------------------------


class AccountIn(CamelModel):
    name: str = Field(..., min_length=1, max_length=120)
    type: AccountType
    account_number: str = Field(..., min_length=1, max_length=64)
    balance: float = 0.0
    currency: CurrencyCode = "USD"
    icon: Optional[str] = Field(default=None, max_length=64)


class AccountUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    type: Optional[AccountType] = None
    account_number: Optional[str] = Field(default=None, min_length=1, max_length=64)
    balance: Optional[float] = None
    currency: Optional[CurrencyCode] = None
    icon: Optional[str] = Field(default=None, max_length=64)


class AccountOut(CamelOut):
    id: int
    user_id: int
    name: str
    type: AccountType
    account_number: str
    balance: float
    currency: str
    icon: Optional[str] = None
    created_at: datetime


# --- transactions ----------------------------------------------------------


class TransactionIn(CamelModel):
    account_id: Optional[int] = None
    amount: float = Field(..., ge=0)
    description: str = Field(..., min_length=1, max_length=200)
    category: str = Field(..., min_length=1, max_length=100)
    type: TransactionType
    date: Optional[datetime] = None
    notes: Optional[str] = None


class TransactionUpdate(CamelModel):
    account_id: Optional[int] = None
    amount: Optional[float] = Field(default=None, ge=0)
    description: Optional[str] = Field(default=None, min_length=1, max_length=200)
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    type: Optional[TransactionType] = None
    date: Optional[datetime] = None
    notes: Optional[str] = None


class TransactionOut(CamelOut):
    id: int
    user_id: int
    account_id: Optional[int] = None
    amount: float
    description: str
    category: str
    type: TransactionType
    date: datetime
    notes: Optional[str] = None


# --- teams -----------------------------------------------------------------


class TeamIn(CamelModel):
    name: str = Field(..., min_length=1, max_length=120)


class TeamMemberIn(CamelModel):
    username: str = Field(..., min_length=1)
    role: TeamRole = TeamRole.member


class TeamOut(CamelOut):
    id: int
    name: str
    owner_id: int
    created_at: datetime


class TeamMemberOut(CamelOut):
    id: int
    team_id: int
    user_id: int
    role: TeamRole
    user: Optional[MemberUserOut] = None


# --- reports and currency --------------------------------------------------


class CategoryTotalOut(CamelModel):
    category: str
    amount: float
    percentage: float


class SummaryOut(CamelModel):
    period: str
    start: date
    end: date
    income: float
    expenses: float
    net_savings: float
    savings_rate: float
    total_balance: float
    expense_by_category: list[CategoryTotalOut]
    income_by_category: list[CategoryTotalOut]


class MonthBucketOut(CamelModel):
    month: date
    label: str
    income: float
    expenses: float
    savings: float
    savings_rate: float


class LoanQuoteOut(CamelOut):
    principal: float
    months: int
    monthly_payment: float
    total_payment: float
    total_interest: float


class SavingsProjectionOut(CamelOut):
    initial_deposit: float
    monthly_contribution: float
    months: int
    future_value: float
    total_contributions: float
    interest_earned: float
