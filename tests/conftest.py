import asyncio
import json
import os
import sys
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

import httpx
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault('APP_ENV', 'test')
os.environ.setdefault('API_BASE_URL', 'http://api.test')

from subtracker.integrations.subscriptions_api import SubscriptionsApiClient
from subtracker.services.cache_store import CacheFallbackStore, MemoryKeyValueStore
from subtracker.services.list_controller import SubscriptionListController

BASE_URL = 'http://api.test'


def subscription_payload(sub_id, name, **overrides):
    created_at = overrides.pop('created_at', '2026-01-01T00:00:00Z')
    payload = {
        'id': sub_id,
        'user_id': 1,
        'name': name,
        'cost': '9.99',
        'currency': 'USD',
        'billing_cycle': 'monthly',
        'next_billing_date': '2026-11-01',
        'category': None,
        'category_id': None,
        'reminder_days_before': 3,
        'created_at': created_at,
        'updated_at': created_at,
        'status': 'active',
        'cancelled_at': None,
        'cancellation_reason': None,
        'cancellation_effective_date': None,
        'was_free_trial': False,
        'last_used_at': None,
    }
    payload.update(overrides)
    return payload


class FakeBackend:
    """In-memory stand-in for the subscription REST API."""

    def __init__(self):
        self.subscriptions = {}
        self.deleted = {}
        self.requests = []
        self.overrides = []
        self.next_id = 1000

    def add(self, sub_id, name, **overrides):
        payload = subscription_payload(sub_id, name, **overrides)
        self.subscriptions[sub_id] = payload
        return payload

    def override(self, func):
        """Register ``func(request)``; a non-None return replaces the default response."""
        self.overrides.append(func)
        return func

    def list_requests(self):
        return [r for r in self.requests if r.method == 'GET' and r.url.path == '/subscriptions']

    def requests_for(self, method, path):
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def api_client(self, token='token-1'):
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
        return SubscriptionsApiClient(BASE_URL, token, http_client=http_client)

    def handler(self, request):
        self.requests.append(request)
        for func in self.overrides:
            response = func(request)
            if response is not None:
                return response

        parts = [p for p in request.url.path.split('/') if p]
        method = request.method
        if parts == ['categories']:
            return httpx.Response(200, json={'items': [], 'total_count': 0, 'custom_count': 0, 'max_custom_allowed': 10})
        if parts == ['subscriptions', 'savings']:
            cancelled = [s for s in self.subscriptions.values() if s['status'] == 'cancelled']
            return httpx.Response(200, json={'savings_by_currency': [], 'cancelled_count': len(cancelled)})
        if parts == ['subscriptions'] and method == 'GET':
            return self._list(request)
        if parts == ['subscriptions'] and method == 'POST':
            data = json.loads(request.content)
            self.next_id += 1
            payload = self.add(self.next_id, data['name'], cost=data['cost'], next_billing_date=data['next_billing_date'])
            return httpx.Response(201, json=payload)
        if len(parts) >= 2 and parts[0] == 'subscriptions':
            sub_id = int(parts[1])
            action = parts[2] if len(parts) > 2 else None
            return self._item(request, sub_id, action)
        return httpx.Response(404, json={'detail': 'Not Found'})

    def _list(self, request):
        params = request.url.params
        items = list(self.subscriptions.values())
        status = params.get('status', 'active')
        if status != 'all':
            items = [s for s in items if s['status'] == status]
        if 'search' in params:
            needle = params['search'].casefold()
            items = [s for s in items if needle in s['name'].casefold()]
        if 'billing_cycle' in params:
            items = [s for s in items if s['billing_cycle'] == params['billing_cycle']]
        sort_by = params.get('sort_by', 'next_billing_date')
        keys = {
            'name': lambda s: s['name'].casefold(),
            'cost': lambda s: Decimal(s['cost']),
            'created_at': lambda s: s['created_at'],
            'next_billing_date': lambda s: s['next_billing_date'],
        }
        items.sort(key=keys[sort_by], reverse=params.get('order') == 'desc')
        offset = int(params.get('offset', 0))
        limit = int(params.get('limit', 50))
        totals = {}
        for sub in items:
            totals[sub['currency']] = totals.get(sub['currency'], Decimal('0')) + Decimal(sub['cost'])
        return httpx.Response(
            200,
            json={
                'items': items[offset:offset + limit],
                'total_count': len(items),
                'offset': offset,
                'limit': limit,
                'totals_by_currency': [
                    {'currency': c, 'total': str(t), 'monthly_equivalent': str(t)} for c, t in totals.items()
                ],
            },
        )

    def _item(self, request, sub_id, action):
        method = request.method
        if action is None and method == 'DELETE':
            if sub_id not in self.subscriptions:
                return httpx.Response(404, json={'detail': 'Subscription not found'})
            self.deleted[sub_id] = self.subscriptions.pop(sub_id)
            return httpx.Response(204)
        if action == 'restore':
            if sub_id in self.subscriptions:
                return httpx.Response(400, json={'detail': 'Subscription is not deleted'})
            if sub_id not in self.deleted:
                return httpx.Response(404, json={'detail': 'Subscription not found'})
            self.subscriptions[sub_id] = self.deleted.pop(sub_id)
            return httpx.Response(200, json=self.subscriptions[sub_id])
        if sub_id not in self.subscriptions:
            return httpx.Response(404, json={'detail': 'Subscription not found'})
        payload = self.subscriptions[sub_id]
        if action is None and method == 'PUT':
            payload.update(json.loads(request.content))
            payload['updated_at'] = datetime.now(timezone.utc).isoformat()
            return httpx.Response(200, json=payload)
        if action == 'cancel':
            payload['status'] = 'cancelled'
            payload['cancelled_at'] = datetime.now(timezone.utc).isoformat()
            return httpx.Response(200, json={**payload, 'estimated_savings': None})
        if action == 'reactivate':
            payload['status'] = 'active'
            payload['cancelled_at'] = None
            return httpx.Response(200, json=payload)
        return httpx.Response(405)


class ManualSleeper:
    """Sleep replacement whose waiters are released one tick at a time."""

    def __init__(self):
        self.waiters = []
        self.delays = []

    async def __call__(self, delay):
        future = asyncio.get_running_loop().create_future()
        self.waiters.append(future)
        self.delays.append(delay)
        try:
            await future
        finally:
            if future in self.waiters:
                self.waiters.remove(future)

    async def settle(self):
        await settle()

    async def advance(self, ticks=1):
        for _ in range(ticks):
            await settle()
            if not self.waiters:
                return
            waiter = self.waiters.pop(0)
            if not waiter.done():
                waiter.set_result(None)
            await settle()


async def settle(rounds=20):
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def payload():
    return subscription_payload


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def sleeper():
    return ManualSleeper()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return CacheFallbackStore(MemoryKeyValueStore(), clock=clock)


@pytest.fixture
def make_controller(backend, cache, sleeper):
    def factory(**kwargs):
        kwargs.setdefault('sleep', sleeper)
        return SubscriptionListController(backend.api_client(), cache, **kwargs)

    return factory
