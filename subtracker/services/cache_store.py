"""TTL-bounded snapshot of the last successful list page."""
from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Protocol

from subtracker.schemas.subscription import SubscriptionListResponse

logger = logging.getLogger(__name__)

CACHE_KEY = "cached_subscriptions"
DEFAULT_TTL_SECONDS = 5 * 60


class KeyValueStore(Protocol):
    def get(self, key: str) -> bytes | None: ...

    def put(self, key: str, data: bytes) -> None: ...

    def invalidate(self, key: str) -> None: ...


class MemoryKeyValueStore:
    def __init__(self) -> None:
        self._data: dict[str, bytes] = {}

    def get(self, key: str) -> bytes | None:
        return self._data.get(key)

    def put(self, key: str, data: bytes) -> None:
        self._data[key] = data

    def invalidate(self, key: str) -> None:
        self._data.pop(key, None)


class FileKeyValueStore:
    """One JSON file per key inside ``cache_dir``."""

    def __init__(self, cache_dir: Path):
        self._cache_dir = cache_dir
        self._cache_dir.mkdir(parents=True, exist_ok=True)

    def get(self, key: str) -> bytes | None:
        path = self._key_to_path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None

    def put(self, key: str, data: bytes) -> None:
        path = self._key_to_path(key)
        fd, tmp_name = tempfile.mkstemp(dir=self._cache_dir, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def invalidate(self, key: str) -> None:
        self._key_to_path(key).unlink(missing_ok=True)

    def _key_to_path(self, key: str) -> Path:
        return self._cache_dir / f"{key}.json"


@dataclass(frozen=True)
class CachedSnapshot:
    page: SubscriptionListResponse
    captured_at: float

    def age(self, now: float) -> float:
        return now - self.captured_at


class CacheFallbackStore:
    """Keeps exactly one page snapshot and serves it while it is fresh.

    Stale snapshots are not purged; ``load`` ignores them until the next
    ``save`` overwrites the entry.
    """

    def __init__(
        self,
        storage: KeyValueStore,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
        key: str = CACHE_KEY,
    ):
        self.storage = storage
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._key = key

    def save(self, page: SubscriptionListResponse) -> CachedSnapshot:
        snapshot = CachedSnapshot(page=page, captured_at=self._clock())
        payload = {
            "captured_at": snapshot.captured_at,
            "page": page.model_dump(mode="json"),
        }
        self.storage.put(self._key, json.dumps(payload).encode("utf-8"))
        logger.debug("Cached %s subscriptions", len(page.items))
        return snapshot

    def snapshot(self) -> CachedSnapshot | None:
        """Return the stored snapshot regardless of its age."""
        raw = self.storage.get(self._key)
        if raw is None:
            return None
        try:
            payload = json.loads(raw)
            return CachedSnapshot(
                page=SubscriptionListResponse.model_validate(payload["page"]),
                captured_at=float(payload["captured_at"]),
            )
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("Ignoring unreadable cache entry %s: %s", self._key, exc)
            return None

    def load(self) -> SubscriptionListResponse | None:
        snapshot = self.snapshot()
        if snapshot is None:
            return None
        if snapshot.age(self._clock()) > self.ttl_seconds:
            logger.info("Cached subscriptions expired (age %.0fs)", snapshot.age(self._clock()))
            return None
        return snapshot.page
