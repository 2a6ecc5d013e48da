# Overview: Per-user cache for read views, invalidated after mutations and expired by TTL.

from __future__ import annotations

import threading
import time
from typing import Any, Callable

from flask import current_app

EXTENSION_KEY = "oms.view_cache"


class UserViewCache:
    """
    Small in-process cache of rendered read views, keyed by acting user.

    Only read endpoints populate it. Any mutation that could stale a user's
    view calls invalidate_user(actor_id); entries cached for other users
    expire after `ttl_seconds`. Once `max_entries` is reached, expired
    entries are purged and then the oldest ones evicted.
    """

    def __init__(self, ttl_seconds: float = 300, max_entries: int = 1000, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        # user_id -> key -> (stored_at, value)
        self._entries: dict[int, dict[str, tuple[float, Any]]] = {}
        self._lock = threading.Lock()

    def _expired(self, stored_at: float, now: float) -> bool:
        return now - stored_at > self.ttl_seconds

    def _size(self) -> int:
        return sum(len(bucket) for bucket in self._entries.values())

    def _make_room(self, now: float) -> None:
        for user_id in list(self._entries):
            bucket = self._entries[user_id]
            for key in [k for k, (stored_at, _) in bucket.items() if self._expired(stored_at, now)]:
                del bucket[key]
            if not bucket:
                del self._entries[user_id]

        overflow = self._size() - self.max_entries + 1
        if overflow <= 0:
            return
        oldest = sorted(
            ((stored_at, user_id, key)
             for user_id, bucket in self._entries.items()
             for key, (stored_at, _) in bucket.items()),
        )[:overflow]
        for _, user_id, key in oldest:
            bucket = self._entries[user_id]
            del bucket[key]
            if not bucket:
                del self._entries[user_id]

    def get_or_set(self, user_id: int, key: str, producer: Callable[[], Any]) -> Any:
        with self._lock:
            bucket = self._entries.get(user_id)
            if bucket is not None and key in bucket:
                stored_at, value = bucket[key]
                if not self._expired(stored_at, self._clock()):
                    return value
                del bucket[key]
        value = producer()
        with self._lock:
            now = self._clock()
            if self._size() >= self.max_entries:
                self._make_room(now)
            self._entries.setdefault(user_id, {})[key] = (now, value)
        return value

    def invalidate_user(self, user_id: int | None) -> None:
        if user_id is None:
            return
        with self._lock:
            self._entries.pop(user_id, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def cached_keys(self, user_id: int) -> set[str]:
        with self._lock:
            now = self._clock()
            bucket = self._entries.get(user_id, {})
            return {key for key, (stored_at, _) in bucket.items() if not self._expired(stored_at, now)}

    def __len__(self) -> int:
        with self._lock:
            return self._size()


def init_cache(app) -> None:
    app.extensions[EXTENSION_KEY] = UserViewCache(
        ttl_seconds=app.config.get("VIEW_CACHE_TTL_SECONDS", 300),
        max_entries=app.config.get("VIEW_CACHE_MAX_ENTRIES", 1000),
    )


def get_view_cache() -> UserViewCache:
    return current_app.extensions[EXTENSION_KEY]
