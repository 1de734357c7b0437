from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from subtracker.schemas.subscription import BillingCycle


class SortField(str, Enum):
    NEXT_BILLING_DATE = "next_billing_date"
    NAME = "name"
    COST = "cost"
    CREATED_AT = "created_at"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class StatusFilter(str, Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"
    ALL = "all"


class ListQuery(BaseModel):
    """Sort, filter and pagination parameters of one list request."""

    model_config = ConfigDict(frozen=True)

    sort_by: SortField = SortField.NEXT_BILLING_DATE
    order: SortOrder = SortOrder.ASC
    status: StatusFilter = StatusFilter.ACTIVE
    search: str | None = None
    billing_cycle: BillingCycle | None = None
    cost_min: Decimal | None = Field(default=None, ge=0)
    cost_max: Decimal | None = Field(default=None, ge=0)
    category_id: int | None = None
    offset: int = Field(default=0, ge=0)
    limit: int = Field(default=50, gt=0)

    @field_validator("search")
    @classmethod
    def blank_search_is_unset(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def check_cost_range(self) -> ListQuery:
        if self.cost_min is not None and self.cost_max is not None and self.cost_min > self.cost_max:
            raise ValueError("cost_min must not exceed cost_max")
        return self

    @property
    def has_active_filters(self) -> bool:
        return any(
            value is not None
            for value in (self.search, self.billing_cycle, self.cost_min, self.cost_max, self.category_id)
        )

    def with_changes(self, **changes: Any) -> ListQuery:
        """Return a validated copy with ``changes`` applied."""
        return ListQuery.model_validate({**self.model_dump(), **changes})

    def cleared_filters(self) -> ListQuery:
        return self.with_changes(
            search=None,
            billing_cycle=None,
            cost_min=None,
            cost_max=None,
            category_id=None,
        )

    def to_params(self) -> dict[str, str]:
        params: dict[str, str] = {
            "sort_by": self.sort_by.value,
            "order": self.order.value,
            "limit": str(self.limit),
            "offset": str(self.offset),
            "status": self.status.value,
        }
        if self.category_id is not None:
            params["category_id"] = str(self.category_id)
        if self.search is not None:
            params["search"] = self.search
        if self.billing_cycle is not None:
            params["billing_cycle"] = self.billing_cycle.value
        if self.cost_min is not None:
            params["cost_min"] = str(self.cost_min)
        if self.cost_max is not None:
            params["cost_max"] = str(self.cost_max)
        return params
