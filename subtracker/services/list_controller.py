"""
Subscription list lifecycle controller.
Owns the canonical list, the cache snapshot and the pending deletion; UI code
observes it through ``ListState`` snapshots and drives it through intents.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import date
from typing import Any, Awaitable, Callable, TypeVar

from subtracker.config import Settings, get_settings
from subtracker.core.exceptions import (
    ApiError,
    NetworkError,
    NotFoundError,
    ServerError,
    SessionExpiredError,
)
from subtracker.core.logger import configure_logging, get_logger
from subtracker.integrations.subscriptions_api import SubscriptionsApiClient
from subtracker.schemas.category import Category
from subtracker.schemas.query import ListQuery, StatusFilter
from subtracker.schemas.subscription import (
    CancellationRequest,
    CancellationResponse,
    CurrencyTotal,
    SavingsSummaryResponse,
    Subscription,
    SubscriptionCreate,
    SubscriptionListResponse,
    SubscriptionUpdate,
)
from subtracker.services.cache_store import CacheFallbackStore, FileKeyValueStore
from subtracker.services.debounce import Debouncer, Sleep
from subtracker.services.sorting import insert_sorted
from subtracker.services.undo_timer import UndoState, UndoTimer

logger = get_logger(__name__)


@dataclass(frozen=True)
class PendingUndoView:
    subscription: Subscription
    countdown: int
    is_restoring: bool


@dataclass(frozen=True)
class ListState:
    """Read-only view of the controller at one instant."""

    query: ListQuery
    items: tuple[Subscription, ...]
    total_count: int
    totals_by_currency: tuple[CurrencyTotal, ...]
    is_loading: bool
    is_loading_more: bool
    is_offline: bool
    error: str | None
    session_expired: bool
    pending_undo: PendingUndoView | None
    categories: tuple[Category, ...]
    savings_summary: SavingsSummaryResponse | None

    @property
    def has_more(self) -> bool:
        return len(self.items) < self.total_count


@dataclass(frozen=True)
class LoadResult:
    page: SubscriptionListResponse | None
    offline: bool = False
    applied: bool = True


Listener = Callable[[ListState], None]
ResultT = TypeVar("ResultT")


class SubscriptionListController:
    def __init__(
        self,
        api: SubscriptionsApiClient,
        cache: CacheFallbackStore,
        *,
        query: ListQuery | None = None,
        page_limit: int = 50,
        debounce_seconds: float = 0.3,
        undo_window_seconds: int = 10,
        undo_tick_seconds: float = 1.0,
        reload_after_restore: bool = False,
        sleep: Sleep = asyncio.sleep,
    ):
        self.api = api
        self.cache = cache
        self.page_limit = page_limit
        self.reload_after_restore = reload_after_restore
        self._query = (query or ListQuery()).with_changes(offset=0, limit=page_limit)
        self._debouncer = Debouncer(debounce_seconds, sleep=sleep)
        self._undo: UndoTimer[Subscription] = UndoTimer(
            undo_window_seconds,
            tick_seconds=undo_tick_seconds,
            sleep=sleep,
            on_change=self._notify,
            on_expire=self._on_undo_expired,
        )
        self._listeners: list[Listener] = []
        self._generation = 0
        self._pending_search: str | None = None

        self._items: list[Subscription] = []
        self._total_count = 0
        self._totals_by_currency: list[CurrencyTotal] = []
        self._is_loading = False
        self._is_loading_more = False
        self._is_offline = False
        self._error: str | None = None
        self._session_expired = False
        self._categories: list[Category] = []
        self._savings_summary: SavingsSummaryResponse | None = None

    # -- observation ---------------------------------------------------------

    @property
    def query(self) -> ListQuery:
        return self._query

    @property
    def state(self) -> ListState:
        pending = self._undo.pending
        pending_view = None
        if pending is not None:
            pending_view = PendingUndoView(
                subscription=pending.item,
                countdown=pending.countdown,
                is_restoring=self._undo.state is UndoState.RESTORING,
            )
        return ListState(
            query=self._query,
            items=tuple(self._items),
            total_count=self._total_count,
            totals_by_currency=tuple(self._totals_by_currency),
            is_loading=self._is_loading,
            is_loading_more=self._is_loading_more,
            is_offline=self._is_offline,
            error=self._error,
            session_expired=self._session_expired,
            pending_undo=pending_view,
            categories=tuple(self._categories),
            savings_summary=self._savings_summary,
        )

    @property
    def undo_state(self) -> UndoState:
        return self._undo.state

    @property
    def search_pending(self) -> bool:
        return self._debouncer.pending

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; the returned callable unregisters it."""
        self._listeners.append(listener)

        def remove() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return remove

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.state
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as exc:
                logger.exception("State listener failed: %s", exc)

    # -- fetching ------------------------------------------------------------

    async def load(self, reset: bool = True) -> LoadResult:
        if reset:
            self._debouncer.cancel()
            if self._pending_search is not None:
                self._query = self._query.with_changes(search=self._pending_search)
                self._pending_search = None
            self._generation += 1
            self._is_loading = True
            offset = 0
        else:
            self._is_loading_more = True
            offset = len(self._items)
        generation = self._generation
        query = self._query.with_changes(offset=offset, limit=self.page_limit)
        self._error = None
        self._notify()

        try:
            page = await self.api.list_subscriptions(query)
        except (NetworkError, ServerError) as exc:
            if generation != self._generation:
                self._drop_stale(reset)
                return LoadResult(page=None, applied=False)
            self._finish_loading(reset)
            cached = self.cache.load()
            if cached is None:
                self._record_error(exc, "Failed to load subscriptions")
                raise
            logger.warning("Serving cached subscriptions after failed fetch: %s", exc.message)
            self._apply_page(cached, reset=True)
            self._is_offline = True
            self._notify()
            return LoadResult(page=cached, offline=True)
        except ApiError as exc:
            # 401 and other 4xx responses are never served from the cache.
            if generation != self._generation:
                self._drop_stale(reset)
                raise
            self._finish_loading(reset)
            self._record_error(exc)
            raise

        if generation != self._generation:
            logger.debug("Dropping stale subscription page (offset %s)", offset)
            self._drop_stale(reset)
            return LoadResult(page=page, applied=False)

        self._finish_loading(reset)
        self._apply_page(page, reset=reset)
        self._is_offline = False
        self._session_expired = False
        if reset and not query.has_active_filters:
            try:
                self.cache.save(page)
            except OSError as exc:
                logger.warning("Could not write subscription cache: %s", exc)
        self._notify()
        return LoadResult(page=page)

    @property
    def has_more(self) -> bool:
        return self.state.has_more

    async def load_more(self) -> LoadResult | None:
        if self._is_loading or self._is_loading_more or not self.has_more:
            return None
        return await self.load(reset=False)

    async def set_query(self, **changes: Any) -> LoadResult:
        previous_status = self._query.status
        if "search" in changes:
            self._pending_search = None
        self._query = self._query.with_changes(**{**changes, "offset": 0, "limit": self.page_limit})
        result = await self.load(reset=True)
        if self._query.status is StatusFilter.CANCELLED and previous_status is not StatusFilter.CANCELLED:
            await self.load_savings_summary()
        return result

    async def clear_filters(self) -> LoadResult:
        self._pending_search = None
        self._query = self._query.cleared_filters()
        return await self.load(reset=True)

    def on_search_text_changed(self, text: str) -> None:
        """Hold ``text`` until the quiet period ends; the next reset load applies it."""
        self._pending_search = text
        self._debouncer.schedule(lambda: self.load(reset=True))

    async def load_categories(self) -> list[Category]:
        try:
            response = await self.api.list_categories()
        except ApiError as exc:
            logger.warning("Could not load categories: %s", exc.message)
            return self._categories
        self._categories = list(response.items)
        self._notify()
        return self._categories

    async def load_savings_summary(self) -> SavingsSummaryResponse | None:
        try:
            summary = await self.api.get_savings_summary()
        except ApiError as exc:
            logger.warning("Could not load savings summary: %s", exc.message)
            return self._savings_summary
        self._savings_summary = summary
        self._notify()
        return summary

    def _finish_loading(self, reset: bool) -> None:
        if reset:
            self._is_loading = False
        else:
            self._is_loading_more = False

    def _drop_stale(self, reset: bool) -> None:
        # A newer reset load owns is_loading; only a superseded page load is ours to clear.
        if not reset:
            self._is_loading_more = False
            self._notify()

    def _record_error(self, exc: ApiError, fallback: str | None = None) -> None:
        if isinstance(exc, SessionExpiredError):
            self._session_expired = True
            self._error = exc.message
        elif fallback and isinstance(exc, ServerError):
            self._error = fallback
        else:
            self._error = exc.message
        self._notify()

    def _apply_page(self, page: SubscriptionListResponse, *, reset: bool) -> None:
        if reset:
            self._items = list(page.items)
        else:
            held = {sub.id for sub in self._items}
            self._items.extend(sub for sub in page.items if sub.id not in held)
        self._total_count = page.total_count
        self._totals_by_currency = list(page.totals_by_currency)

    # -- delete / undo -------------------------------------------------------

    async def delete(self, subscription: Subscription) -> None:
        try:
            await self.api.delete_subscription(subscription.id)
        except NotFoundError as exc:
            logger.info("Subscription %s was already deleted; reloading", subscription.id)
            self._remove_local(subscription.id)
            self._notify()
            await self.load(reset=True)
            self._error = exc.message
            self._notify()
            return
        except ApiError as exc:
            self._record_error(exc, "Failed to delete subscription")
            raise

        self._remove_local(subscription.id)
        self._undo.start(subscription)
        logger.info("Deleted subscription %s; undo available", subscription.id)

    async def undo(self) -> Subscription | None:
        pending = self._undo.begin_restore()
        try:
            restored = await self.api.restore_subscription(pending.item.id)
        except ApiError as exc:
            self._undo.complete(pending)
            self._record_error(exc, "Failed to restore subscription")
            raise

        if all(sub.id != restored.id for sub in self._items):
            self._items = insert_sorted(self._items, restored, self._query.sort_by, self._query.order)
            self._total_count += 1
        self._undo.complete(pending)
        self._notify()
        logger.info("Restored subscription %s", restored.id)
        if self.reload_after_restore:
            await self.load(reset=True)
        return restored

    def dismiss_undo(self) -> None:
        self._undo.dismiss()

    def _remove_local(self, subscription_id: int) -> None:
        remaining = [sub for sub in self._items if sub.id != subscription_id]
        if len(remaining) != len(self._items):
            self._items = remaining
            self._total_count = max(0, self._total_count - 1)

    def _on_undo_expired(self, subscription: Subscription) -> None:
        logger.debug("Undo window for subscription %s expired", subscription.id)

    # -- other mutations -----------------------------------------------------

    async def create(self, payload: SubscriptionCreate) -> Subscription:
        created = await self._mutate(self.api.create_subscription(payload))
        await self.load(reset=True)
        return created

    async def update(self, subscription: Subscription, payload: SubscriptionUpdate) -> Subscription:
        changes = payload.changes_against(subscription)
        if not changes:
            return subscription
        updated = await self._mutate(
            self.api.update_subscription(
                subscription.id,
                SubscriptionUpdate(**changes),
                if_unmodified_since=subscription.updated_at.isoformat(),
            )
        )
        await self.load(reset=True)
        return updated

    async def cancel(
        self,
        subscription: Subscription,
        *,
        reason: str | None = None,
        effective_date: date | None = None,
    ) -> CancellationResponse:
        request = CancellationRequest(reason=reason or None, effective_date=effective_date)
        response = await self._mutate(self.api.cancel_subscription(subscription.id, request))
        await self.load(reset=True)
        await self.load_savings_summary()
        return response

    async def reactivate(self, subscription: Subscription, next_billing_date: date | None = None) -> Subscription:
        reactivated = await self._mutate(self.api.reactivate_subscription(subscription.id, next_billing_date))
        await self.load(reset=True)
        await self.load_savings_summary()
        return reactivated

    async def _mutate(self, call: Awaitable[ResultT]) -> ResultT:
        try:
            return await call
        except ApiError as exc:
            self._record_error(exc)
            raise

    async def close(self) -> None:
        self._pending_search = None
        await self._debouncer.aclose()
        self._undo.dismiss()
        await self.api.close()


def create_list_controller(access_token: str, settings: Settings | None = None) -> SubscriptionListController:
    """Wire settings, logging, API client and file cache into a controller."""
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    api = SubscriptionsApiClient(
        settings.base_url,
        access_token,
        timeout=settings.api_timeout_seconds,
    )
    cache = CacheFallbackStore(
        FileKeyValueStore(settings.cache_dir),
        ttl_seconds=settings.cache_ttl_seconds,
    )
    return SubscriptionListController(
        api,
        cache,
        page_limit=settings.page_limit,
        debounce_seconds=settings.search_debounce_seconds,
        undo_window_seconds=settings.undo_window_seconds,
        reload_after_restore=settings.reload_after_restore,
    )
