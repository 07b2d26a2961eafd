import datetime as dt
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

from models import Frequency
from money import cents_to_decimal, parse_amount


def _amount_to_cents(data: Any) -> Any:
    if isinstance(data, dict) and "amount" in data and "amount_cents" not in data:
        data = dict(data)
        data["amount_cents"] = parse_amount(str(data.pop("amount")))
    return data


class ProfileIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    family_members: list[str] = Field(default_factory=list)
    currency: str = Field("USD", min_length=3, max_length=3)


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    icon: str = Field(..., min_length=1, max_length=40)
    color: str = Field(..., pattern=r"^#[0-9a-fA-F]{6}$")


class PaymentMethodIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=60)


class ExpenseIn(BaseModel):
    category_id: int
    amount_cents: int = Field(..., gt=0)
    description: Optional[str] = Field(default=None, max_length=500)
    date: dt.date
    spender: str = Field(..., max_length=100)
    payment_method_id: int

    @model_validator(mode="before")
    @classmethod
    def amount_from_display(cls, data: Any) -> Any:
        return _amount_to_cents(data)


class RecurringExpenseIn(BaseModel):
    category_id: int
    amount_cents: int = Field(..., gt=0)
    description: Optional[str] = Field(default=None, max_length=500)
    spender: str = Field(..., max_length=100)
    payment_method_id: int
    frequency: Frequency
    start_date: dt.date
    end_date: Optional[dt.date] = None

    @model_validator(mode="before")
    @classmethod
    def amount_from_display(cls, data: Any) -> Any:
        return _amount_to_cents(data)


class OccurrenceAction(BaseModel):
    expected_due_date: Optional[dt.date] = None


class ToggleIn(BaseModel):
    is_active: Optional[bool] = None


class ProfileOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    family_members: list[str]
    currency: str


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    icon: str
    color: str
    is_default: bool


class PaymentMethodOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    value: str
    is_default: bool


class _Amount(BaseModel):
    amount_cents: int

    @computed_field
    @property
    def amount(self) -> Decimal:
        return cents_to_decimal(self.amount_cents)


class ExpenseOut(_Amount):
    model_config = ConfigDict(from_attributes=True)

    id: int
    description: Optional[str]
    date: str
    spender: str
    recurring_expense_id: Optional[int]
    category: CategoryOut
    payment_method: PaymentMethodOut
    created_at: datetime


class RecurringExpenseOut(_Amount):
    model_config = ConfigDict(from_attributes=True)

    id: int
    description: Optional[str]
    spender: str
    frequency: Frequency
    start_date: str
    end_date: Optional[str]
    is_active: bool
    next_due_date: str
    category: CategoryOut
    payment_method: PaymentMethodOut


class _Total(BaseModel):
    total_cents: int

    @computed_field
    @property
    def total(self) -> Decimal:
        return cents_to_decimal(self.total_cents)


class CategoryTotalOut(_Total):
    model_config = ConfigDict(from_attributes=True)

    name: str
    color: str


class SpenderTotalOut(_Total):
    model_config = ConfigDict(from_attributes=True)

    name: str
    categories: list[CategoryTotalOut]


class ReportSummaryOut(_Total):
    model_config = ConfigDict(from_attributes=True)

    count: int
    category_breakdown: list[CategoryTotalOut]
    spender_breakdown: list[SpenderTotalOut]


class TrendPointOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    month: str
    label: str
    totals: dict[str, int]


class CategoryTrendOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    points: list[TrendPointOut]
    categories: list[CategoryTotalOut]


class DailyTotalOut(BaseModel):
    date: str
    total_cents: int


class DashboardOut(_Total):
    average_daily_cents: int
    count: int
    category_breakdown: list[CategoryTotalOut]
    daily_spending: list[DailyTotalOut]
    recent_expenses: list[ExpenseOut]
    pending_recurring: list[RecurringExpenseOut]


class MonthlyCommitmentOut(BaseModel):
    monthly_total_cents: int
    by_category: list[CategoryTotalOut]
    active_count: int
