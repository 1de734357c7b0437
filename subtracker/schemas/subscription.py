from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field, model_validator


class BillingCycle(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


class Currency(str, Enum):
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    CAD = "CAD"
    AUD = "AUD"
    JPY = "JPY"
    CHF = "CHF"
    SEK = "SEK"
    NOK = "NOK"
    DKK = "DKK"

    @property
    def symbol(self) -> str:
        return _CURRENCY_SYMBOLS[self]


_CURRENCY_SYMBOLS = {
    Currency.USD: "$",
    Currency.CAD: "$",
    Currency.AUD: "$",
    Currency.EUR: "€",
    Currency.GBP: "£",
    Currency.JPY: "¥",
    Currency.CHF: "CHF ",
    Currency.SEK: "kr ",
    Currency.NOK: "kr ",
    Currency.DKK: "kr ",
}


def format_amount(currency: Currency, amount: Decimal | float, suffix: str = "") -> str:
    return f"{currency.symbol}{Decimal(str(amount)):.2f}{suffix}"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"


class Subscription(BaseModel):
    id: int
    user_id: int
    name: str
    cost: Decimal = Field(gt=0)
    currency: Currency
    billing_cycle: BillingCycle
    next_billing_date: date
    category: str | None = None  # deprecated, superseded by category_id
    category_id: int | None = None
    reminder_days_before: int = 3
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None
    cancellation_effective_date: date | None = None
    was_free_trial: bool = False
    last_used_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="after")
    def check_cancellation(self) -> Subscription:
        if self.status is SubscriptionStatus.CANCELLED and self.cancelled_at is None:
            raise ValueError("cancelled subscriptions must carry cancelled_at")
        return self

    @property
    def is_cancelled(self) -> bool:
        return self.status is SubscriptionStatus.CANCELLED

    @property
    def formatted_cost(self) -> str:
        return format_amount(self.currency, self.cost)


class SubscriptionCreate(BaseModel):
    name: str = Field(min_length=1)
    cost: Decimal = Field(gt=0)
    currency: Currency = Currency.USD
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    next_billing_date: date
    category_id: int | None = None
    reminder_days_before: int = Field(default=3, ge=0)


class SubscriptionUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    cost: Decimal | None = Field(default=None, gt=0)
    currency: Currency | None = None
    billing_cycle: BillingCycle | None = None
    next_billing_date: date | None = None
    category_id: int | None = None
    reminder_days_before: int | None = Field(default=None, ge=0)

    def changes_against(self, subscription: Subscription) -> dict:
        """Return only the set fields whose value differs from ``subscription``."""
        changed = {}
        for name, value in self.model_dump(exclude_unset=True).items():
            if getattr(subscription, name) != value:
                changed[name] = value
        return changed


class CurrencyTotal(BaseModel):
    currency: Currency
    total: Decimal
    monthly_equivalent: Decimal

    @property
    def formatted_total(self) -> str:
        return format_amount(self.currency, self.total)

    @property
    def formatted_monthly_equivalent(self) -> str:
        return format_amount(self.currency, self.monthly_equivalent, "/mo")


class SubscriptionListResponse(BaseModel):
    """One page of the subscription list as reported by the backend."""

    items: list[Subscription] = Field(default_factory=list)
    total_count: int = Field(default=0, ge=0)
    offset: int = Field(default=0, ge=0)
    limit: int = Field(default=50, gt=0)
    totals_by_currency: list[CurrencyTotal] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_page_size(self) -> SubscriptionListResponse:
        if len(self.items) > self.limit:
            raise ValueError(f"page holds {len(self.items)} items but limit is {self.limit}")
        return self


ListPage = SubscriptionListResponse


class CancellationRequest(BaseModel):
    reason: str | None = None
    effective_date: date | None = None


class ReactivateRequest(BaseModel):
    next_billing_date: date | None = None


class EstimatedSavings(BaseModel):
    currency: Currency
    monthly_amount: Decimal
    total_saved: Decimal
    months_since_cancellation: int


class CancellationResponse(Subscription):
    estimated_savings: EstimatedSavings | None = None


class CurrencySavings(BaseModel):
    currency: Currency
    monthly_amount: Decimal
    total_saved: Decimal
    months_since_cancellation: float

    @property
    def formatted_monthly_amount(self) -> str:
        return format_amount(self.currency, self.monthly_amount, "/mo")

    @property
    def formatted_total_saved(self) -> str:
        return format_amount(self.currency, self.total_saved)


class SavingsSummaryResponse(BaseModel):
    savings_by_currency: list[CurrencySavings] = Field(default_factory=list)
    cancelled_count: int = 0
