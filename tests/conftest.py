"""
pytest configuration and shared fixtures.

RecordingTransport stands in for a broker client: it behaves like the
in-memory loopback transport but records every physical call at the moment
the transport carries it out, can be told to fail, and can hold subscribe
acks until the test releases them. Unsubscribes run in background tasks, so
tests await pubsub.close() before asserting on them.
"""

import asyncio
from typing import Any, List, Mapping, Optional, Tuple

import pytest

from trigger_pubsub import InMemoryTransport, PubSubConfig, TriggerPubSub


class RecordingTransport(InMemoryTransport):
    """In-memory transport that records physical calls in order."""

    def __init__(self) -> None:
        super().__init__()
        self.calls: List[Tuple[Any, ...]] = []
        self.subscribe_error: Optional[Exception] = None
        self.unsubscribe_error: Optional[Exception] = None
        self.publish_error: Optional[Exception] = None
        self.hold_subscribe = False
        self._gate: Optional[asyncio.Event] = None

    def count(self, kind: str, topic: Optional[str] = None) -> int:
        return sum(1 for call in self.calls if call[0] == kind and (topic is None or call[1] == topic))

    def kinds(self) -> List[str]:
        return [call[0] for call in self.calls]

    def release(self) -> None:
        """Let held subscribe acks through."""
        self.hold_subscribe = False
        if self._gate is not None:
            self._gate.set()

    async def subscribe(self, topic: str, options: Mapping[str, Any]) -> Any:
        self.calls.append(("subscribe", topic, dict(options)))
        if self.hold_subscribe:
            if self._gate is None:
                self._gate = asyncio.Event()
            await self._gate.wait()
        if self.subscribe_error is not None:
            raise self.subscribe_error
        return await super().subscribe(topic, options)

    async def unsubscribe(self, topic: str) -> None:
        self.calls.append(("unsubscribe", topic))
        if self.unsubscribe_error is not None:
            raise self.unsubscribe_error
        await super().unsubscribe(topic)

    async def publish(self, topic: str, payload: bytes, options: Mapping[str, Any]) -> None:
        self.calls.append(("publish", topic, payload, dict(options)))
        if self.publish_error is not None:
            raise self.publish_error
        await super().publish(topic, payload, options)


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def pubsub(transport: RecordingTransport) -> TriggerPubSub:
    return TriggerPubSub(transport)


@pytest.fixture
def make_pubsub(transport: RecordingTransport):
    """Build a TriggerPubSub over the recording transport with a custom config."""
    def factory(**config: Any) -> TriggerPubSub:
        return TriggerPubSub(transport, PubSubConfig(**config))
    return factory
