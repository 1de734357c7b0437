from __future__ import annotations

import pytest

from subtracker.schemas.subscription import SubscriptionListResponse
from subtracker.services.cache_store import (
    CACHE_KEY,
    CacheFallbackStore,
    FileKeyValueStore,
    MemoryKeyValueStore,
)


def _page(payload, *names):
    items = [payload(index + 1, name) for index, name in enumerate(names)]
    return SubscriptionListResponse.model_validate(
        {'items': items, 'total_count': len(items), 'offset': 0, 'limit': 50}
    )


def test_snapshot_servable_until_ttl_edge(cache, clock, payload):
    cache.save(_page(payload, 'Netflix'))

    clock.now += 299
    assert cache.load() is not None

    clock.now += 2
    assert cache.load() is None


def test_stale_snapshot_left_in_place_until_overwritten(cache, clock, payload):
    cache.save(_page(payload, 'Netflix'))
    clock.now += 600

    assert cache.load() is None
    assert cache.snapshot() is not None

    cache.save(_page(payload, 'Spotify', 'Hulu'))
    fresh = cache.load()
    assert [sub.name for sub in fresh.items] == ['Spotify', 'Hulu']


def test_save_overwrites_previous_snapshot(cache, payload):
    cache.save(_page(payload, 'Netflix'))
    cache.save(_page(payload, 'Spotify'))
    assert [sub.name for sub in cache.load().items] == ['Spotify']


def test_unreadable_entry_is_ignored(clock):
    storage = MemoryKeyValueStore()
    storage.put(CACHE_KEY, b'{not json')
    store = CacheFallbackStore(storage, clock=clock)
    assert store.load() is None


def test_file_store_persists_between_instances(tmp_path, clock, payload):
    first = CacheFallbackStore(FileKeyValueStore(tmp_path / 'cache'), clock=clock)
    first.save(_page(payload, 'Netflix', 'Spotify'))

    second = CacheFallbackStore(FileKeyValueStore(tmp_path / 'cache'), clock=clock)
    page = second.load()
    assert page.total_count == 2
    assert [sub.name for sub in page.items] == ['Netflix', 'Spotify']
    assert not list((tmp_path / 'cache').glob('*.tmp'))


def test_file_store_invalidate(tmp_path):
    storage = FileKeyValueStore(tmp_path)
    storage.put('k', b'data')
    assert storage.get('k') == b'data'
    storage.invalidate('k')
    assert storage.get('k') is None
    storage.invalidate('k')


@pytest.mark.parametrize('ttl', [0, 60])
def test_custom_ttl(clock, payload, ttl):
    store = CacheFallbackStore(MemoryKeyValueStore(), ttl_seconds=ttl, clock=clock)
    store.save(_page(payload, 'Netflix'))
    assert store.load() is not None
    clock.now += ttl + 1
    assert store.load() is None
