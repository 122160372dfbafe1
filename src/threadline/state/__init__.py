"""Conversation state persistence for threadline."""

from threadline.state.manager import DEFAULT_STATE_TTL_SECONDS, ConversationStateManager
from threadline.state.store import (
    AsyncKeyValueStoreAdapter,
    InMemoryKeyValueStore,
    KeyValueStore,
    SyncKeyValueStore,
)

__all__ = [
    "DEFAULT_STATE_TTL_SECONDS",
    "AsyncKeyValueStoreAdapter",
    "ConversationStateManager",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "SyncKeyValueStore",
]
