"""Conversation state persistence keyed by (user_id, context)."""

from __future__ import annotations

import asyncio
import logging
import weakref
from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime, timezone
from typing import TypeVar

from pydantic import ValidationError

from threadline.core.errors import RequestError, StateManagementError, ThreadlineError
from threadline.core.models import ConversationState
from threadline.core.validation import validate_metadata
from threadline.state.store import KeyValueStore, SyncKeyValueStore, ensure_async_store

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_STATE_TTL_SECONDS = 3600
STATE_KEY_PREFIX = "state"


def _require(value: str | None, name: str) -> str:
    if not isinstance(value, str) or not value:
        raise StateManagementError(f"{name} is required.")
    return value


class ConversationStateManager:
    """Read and write ConversationState records through a KeyValueStore.

    The store offers no compare-and-swap, so ``update_last_response_id`` is a plain
    read-modify-write. Turns on one key should run under ``lock(state_key)``.
    """

    def __init__(
        self,
        store: KeyValueStore | SyncKeyValueStore,
        *,
        ttl_seconds: int = DEFAULT_STATE_TTL_SECONDS,
    ) -> None:
        self._store = ensure_async_store(store)
        self._ttl_seconds = ttl_seconds
        # Held strongly only by turns in flight; idle locks are collected.
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    @staticmethod
    def state_key(user_id: str, context: str) -> str:
        _require(user_id, "user_id")
        _require(context, "context")
        return f"{STATE_KEY_PREFIX}:{user_id}:{context}"

    def lock(self, state_key: str) -> asyncio.Lock:
        _require(state_key, "state_key")
        lock = self._locks.get(state_key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[state_key] = lock
        return lock

    async def _call_store(self, operation: Callable[[], Awaitable[T]], action: str, state_key: str) -> T:
        try:
            return await operation()
        except ThreadlineError:
            raise
        except Exception as exc:
            raise StateManagementError(
                f"Failed to {action} conversation state: {exc}",
                details={"state_key": state_key},
                cause=exc,
            ) from exc

    async def _load(self, state_key: str) -> ConversationState | None:
        raw = await self._call_store(lambda: self._store.get(state_key), "read", state_key)
        if raw is None:
            return None
        try:
            return ConversationState.from_json(raw)
        except ValidationError as exc:
            raise StateManagementError(
                "Stored conversation state is corrupt.",
                details={"state_key": state_key},
                cause=exc,
            ) from exc

    async def _save(self, state_key: str, state: ConversationState) -> None:
        payload = state.to_json()
        await self._call_store(lambda: self._store.set(state_key, payload, self._ttl_seconds), "write", state_key)

    async def find_or_create_conversation_state(
        self,
        user_id: str,
        context: str,
        initial_metadata: Mapping[str, str] | None = None,
    ) -> ConversationState:
        state_key = self.state_key(user_id, context)
        existing = await self._load(state_key)
        if existing is not None:
            logger.debug("Found conversation state %s", state_key)
            return existing

        try:
            metadata = validate_metadata(initial_metadata or {})
        except RequestError as exc:
            raise StateManagementError(exc.message, details=exc.details, cause=exc) from exc

        state = ConversationState(user_id=user_id, context=context, metadata=metadata)
        await self._save(state_key, state)
        logger.info("Created conversation state %s", state_key)
        return state

    async def get_last_response_id(self, state_key: str) -> str | None:
        _require(state_key, "state_key")
        state = await self._load(state_key)
        return state.last_response_id if state is not None else None

    async def update_last_response_id(self, state_key: str, new_response_id: str) -> ConversationState | None:
        _require(state_key, "state_key")
        _require(new_response_id, "new_response_id")
        state = await self._load(state_key)
        if state is None:
            logger.warning("Conversation state %s expired before response %s was recorded", state_key, new_response_id)
            return None

        updated = state.model_copy(
            update={"last_response_id": new_response_id, "updated_at": datetime.now(timezone.utc)}
        )
        await self._save(state_key, updated)
        logger.debug("Conversation state %s now points at %s", state_key, new_response_id)
        return updated

    async def delete_conversation_state(self, state_key: str) -> None:
        _require(state_key, "state_key")
        await self._call_store(lambda: self._store.delete(state_key), "delete", state_key)
        logger.debug("Deleted conversation state %s", state_key)
