from __future__ import annotations

import asyncio
import gc
import weakref

import pytest

from threadline import (
    AsyncKeyValueStoreAdapter,
    ConversationState,
    ConversationStateManager,
    ErrorKind,
    InMemoryKeyValueStore,
    StateManagementError,
)

from .fakes import RecordingStore, SyncDictStore


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestInMemoryKeyValueStore:
    @pytest.mark.asyncio
    async def test_ttl_expiry(self):
        clock = FakeClock()
        store = InMemoryKeyValueStore(clock=clock)
        await store.set("k", "v", ttl_seconds=10)
        assert await store.get("k") == "v"
        clock.now += 10
        assert await store.get("k") is None
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_sync_adapter(self):
        backing = SyncDictStore()
        store = AsyncKeyValueStoreAdapter(backing)
        await store.set("k", "v", ttl_seconds=5)
        assert backing.values == {"k": "v"}
        assert await store.get("k") == "v"
        await store.delete("k")
        assert await store.get("k") is None


class TestConversationStateManager:
    def test_state_key(self):
        assert ConversationStateManager.state_key("u1", "chat") == "state:u1:chat"
        with pytest.raises(StateManagementError):
            ConversationStateManager.state_key("", "chat")

    @pytest.mark.asyncio
    async def test_find_or_create_is_idempotent(self):
        store = RecordingStore()
        manager = ConversationStateManager(store, ttl_seconds=60)
        created = await manager.find_or_create_conversation_state("u1", "chat", {"plan": "pro"})
        found = await manager.find_or_create_conversation_state("u1", "chat", {"plan": "other"})

        assert found == created
        assert found.metadata == {"plan": "pro"}
        assert len(store.writes) == 1
        key, value, ttl = store.writes[0]
        assert key == "state:u1:chat"
        assert ttl == 60
        assert ConversationState.from_json(value).user_id == "u1"

    @pytest.mark.asyncio
    async def test_update_and_read_last_response_id(self):
        manager = ConversationStateManager(RecordingStore())
        await manager.find_or_create_conversation_state("u1", "chat")
        key = manager.state_key("u1", "chat")
        assert await manager.get_last_response_id(key) is None

        updated = await manager.update_last_response_id(key, "resp_1")
        assert updated.last_response_id == "resp_1"
        assert updated.updated_at >= updated.created_at
        assert await manager.get_last_response_id(key) == "resp_1"

    @pytest.mark.asyncio
    async def test_update_after_expiry_returns_none(self, caplog):
        clock = FakeClock()
        manager = ConversationStateManager(InMemoryKeyValueStore(clock=clock), ttl_seconds=5)
        await manager.find_or_create_conversation_state("u1", "chat")
        clock.now += 6
        assert await manager.update_last_response_id("state:u1:chat", "resp_1") is None
        assert "expired" in caplog.text

    @pytest.mark.asyncio
    async def test_delete(self):
        store = RecordingStore()
        manager = ConversationStateManager(store)
        await manager.find_or_create_conversation_state("u1", "chat")
        await manager.delete_conversation_state("state:u1:chat")
        assert store.values == {}

    @pytest.mark.asyncio
    async def test_store_failure_wrapped(self):
        store = RecordingStore()
        store.fail_with = ConnectionError("redis down")
        manager = ConversationStateManager(store)
        with pytest.raises(StateManagementError) as exc_info:
            await manager.get_last_response_id("state:u1:chat")
        assert exc_info.value.kind == ErrorKind.STATE
        assert isinstance(exc_info.value.__cause__, ConnectionError)

    @pytest.mark.asyncio
    async def test_missing_arguments(self):
        manager = ConversationStateManager(RecordingStore())
        with pytest.raises(StateManagementError):
            await manager.get_last_response_id("")
        with pytest.raises(StateManagementError):
            await manager.update_last_response_id("state:u1:chat", "")

    @pytest.mark.asyncio
    async def test_invalid_metadata(self):
        manager = ConversationStateManager(RecordingStore())
        with pytest.raises(StateManagementError):
            await manager.find_or_create_conversation_state("u1", "chat", {"bad key": "v"})

    @pytest.mark.asyncio
    async def test_serialized_updates_are_monotonic(self):
        manager = ConversationStateManager(RecordingStore())
        await manager.find_or_create_conversation_state("u1", "chat")
        key = manager.state_key("u1", "chat")
        seen: list[str | None] = []

        async def turn(index: int) -> None:
            async with manager.lock(key):
                seen.append(await manager.get_last_response_id(key))
                await asyncio.sleep(0)
                await manager.update_last_response_id(key, f"resp_{index:02d}")

        await asyncio.gather(*(turn(i) for i in range(10)))

        assert seen == [None] + [f"resp_{i:02d}" for i in range(9)]
        assert await manager.get_last_response_id(key) == "resp_09"

    @pytest.mark.asyncio
    async def test_idle_locks_are_released(self):
        manager = ConversationStateManager(RecordingStore())
        held = manager.lock("state:u1:chat")
        assert manager.lock("state:u1:chat") is held

        released = []
        for index in range(100):
            key = f"state:u{index}:support"
            async with manager.lock(key):
                await manager.find_or_create_conversation_state(f"u{index}", "support")
            released.append(weakref.ref(manager.lock(key)))
            await manager.delete_conversation_state(key)
        gc.collect()

        assert all(ref() is None for ref in released)
        assert manager.lock("state:u1:chat") is held
