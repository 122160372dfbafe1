"""Key-value stores for conversation state."""

from __future__ import annotations

import asyncio
import inspect
import time
from collections.abc import Callable
from typing import Protocol, TypeGuard


class KeyValueStore(Protocol):
    """Async key-value storage with per-key TTL."""

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    async def delete(self, key: str) -> None: ...


class SyncKeyValueStore(Protocol):
    """Blocking key-value storage, e.g. a synchronous Redis client wrapper."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    def delete(self, key: str) -> None: ...


def is_async_store(store: KeyValueStore | SyncKeyValueStore) -> TypeGuard[KeyValueStore]:
    return hasattr(store, "set") and inspect.iscoroutinefunction(store.set)


class InMemoryKeyValueStore:
    """In-memory store with expiry on read (not shared across processes)."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}

    async def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._entries[key] = (value, self._clock() + ttl_seconds)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def __len__(self) -> int:
        now = self._clock()
        return sum(1 for _, expires_at in self._entries.values() if expires_at > now)


class AsyncKeyValueStoreAdapter:
    """Adapt a SyncKeyValueStore to KeyValueStore."""

    def __init__(self, store: SyncKeyValueStore) -> None:
        self._store = store

    async def get(self, key: str) -> str | None:
        return await asyncio.to_thread(self._store.get, key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await asyncio.to_thread(self._store.set, key, value, ttl_seconds)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._store.delete, key)


def ensure_async_store(store: KeyValueStore | SyncKeyValueStore) -> KeyValueStore:
    if is_async_store(store):
        return store
    return AsyncKeyValueStoreAdapter(store)  # type: ignore[arg-type]
