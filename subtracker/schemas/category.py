from __future__ import annotations

from pydantic import BaseModel, Field


class Category(BaseModel):
    id: int
    name: str
    icon: str
    color: str
    is_system: bool = False
    display_order: int = 0
    subscription_count: int = 0


class CategoryListResponse(BaseModel):
    items: list[Category] = Field(default_factory=list)
    total_count: int = 0
    custom_count: int = 0
    max_custom_allowed: int = 0
