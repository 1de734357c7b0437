"""Client-side ordering matching the backend's sort_by/order parameters."""
from __future__ import annotations

from typing import Any, Callable, Iterable

from subtracker.schemas.query import SortField, SortOrder
from subtracker.schemas.subscription import Subscription


def subscription_sort_key(field: SortField) -> Callable[[Subscription], Any]:
    if field is SortField.NAME:
        return lambda sub: sub.name.casefold()
    if field is SortField.COST:
        return lambda sub: sub.cost
    if field is SortField.CREATED_AT:
        return lambda sub: sub.created_at
    return lambda sub: sub.next_billing_date


def sort_subscriptions(
    items: Iterable[Subscription],
    field: SortField,
    order: SortOrder,
) -> list[Subscription]:
    """Stable sort; equal keys keep their current relative order in both directions."""
    return sorted(items, key=subscription_sort_key(field), reverse=order is SortOrder.DESC)


def insert_sorted(
    items: list[Subscription],
    item: Subscription,
    field: SortField,
    order: SortOrder,
) -> list[Subscription]:
    return sort_subscriptions([*items, item], field, order)
