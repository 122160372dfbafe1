from __future__ import annotations

import pytest

from threadline import ClientConfig, ResponseClient

from .fakes import FakeTransport, RecordingStore


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def recording_store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
def mock_client(recording_store: RecordingStore) -> ResponseClient:
    return ResponseClient(ClientConfig(), store=recording_store)


@pytest.fixture
def live_client(fake_transport: FakeTransport, recording_store: RecordingStore) -> ResponseClient:
    config = ClientConfig(api_key="sk-test", timeout_seconds=1.0)
    return ResponseClient(config, transport=fake_transport, store=recording_store)
