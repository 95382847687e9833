import datetime as dt
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models import CategoryPeriod, TransactionType


class RegisterIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1)

    @field_validator("name", "email")
    @classmethod
    def _strip(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class LoginIn(BaseModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str


class AuthOut(BaseModel):
    message: str
    token: str
    user: UserOut


class CategoryIn(BaseModel):
    id: Optional[int] = None
    name: str = Field(..., min_length=1, max_length=100)
    amount_cents: int = Field(..., ge=0)
    period: CategoryPeriod = CategoryPeriod.monthly

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Category name is required")
        return value


class CategoryPatch(BaseModel):
    """Partial category update; only fields present in the payload apply."""

    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, max_length=100)
    amount_cents: Optional[int] = Field(default=None, ge=0)
    period: Optional[CategoryPeriod] = None


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    budget_id: int
    name: str
    amount_cents: int
    period: CategoryPeriod
    created_at: datetime
    updated_at: datetime


class BudgetCategoryEntry(BaseModel):
    """Category entry inside a budget upsert.

    With an `id` it patches that category, so only the fields sent apply.
    Without one it creates a category and needs `name` and `amount_cents`.
    """

    model_config = ConfigDict(extra="forbid")

    id: Optional[int] = None
    name: Optional[str] = Field(default=None, max_length=100)
    amount_cents: Optional[int] = Field(default=None, ge=0)
    period: Optional[CategoryPeriod] = None


class BudgetIn(BaseModel):
    total_amount_cents: int = Field(..., ge=0)
    categories: list[BudgetCategoryEntry] = Field(default_factory=list)


class BudgetOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    total_amount_cents: int
    created_at: datetime
    updated_at: datetime
    categories: list[CategoryOut] = Field(default_factory=list)


class CategorySummary(BaseModel):
    id: int
    name: str
    budgeted_cents: int
    spent_cents: int
    remaining_cents: int
    percentage: float
    over_budget: bool


class SpendingByCategory(BaseModel):
    id: int
    name: str
    amount_cents: int
    limit_cents: int
    percentage: float


class BudgetOverview(BaseModel):
    start: date
    end: date
    total_budget_cents: int
    total_spent_cents: int
    uncategorized_spent_cents: int
    total_income_cents: int
    percent_used: float
    days_remaining: int
    daily_budget_cents: int
    projected_spend_cents: int
    projected_overspend_cents: int
    is_over_budget: bool


class TransactionIn(BaseModel):
    type: TransactionType
    amount_cents: int = Field(..., ge=0)
    description: str = Field(..., min_length=1, max_length=500)
    category_id: Optional[int] = None
    date: dt.date


class TransactionPatch(BaseModel):
    """Partial transaction update.

    ``category_id`` sent explicitly as ``null`` clears the category; leaving
    it out keeps the current one.
    """

    model_config = ConfigDict(extra="forbid")

    type: Optional[TransactionType] = None
    amount_cents: Optional[int] = Field(default=None, ge=0)
    description: Optional[str] = Field(default=None, min_length=1, max_length=500)
    category_id: Optional[int] = None
    date: Optional[dt.date] = None


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    type: TransactionType
    amount_cents: int
    description: str
    category_id: Optional[int]
    category_name: Optional[str] = None
    date: date
    created_at: datetime
    updated_at: datetime


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool


class TransactionPage(BaseModel):
    transactions: list[TransactionOut]
    pagination: Pagination
