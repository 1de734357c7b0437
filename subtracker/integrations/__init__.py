"""External integration adapters."""

from .subscriptions_api import SubscriptionsApiClient

__all__ = [
    "SubscriptionsApiClient",
]
