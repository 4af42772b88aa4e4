"""Transport boundary: one physical subscription per topic, bytes on the wire."""

from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Tuple

from trigger_pubsub.observability import get_logger

MessageHandler = Callable[[str, bytes], None]


class Transport(Protocol):
    """What the multiplexer needs from a topic-based broker client."""

    async def subscribe(self, topic: str, options: Mapping[str, Any]) -> Any: ...

    async def unsubscribe(self, topic: str) -> Any: ...

    async def publish(self, topic: str, payload: bytes, options: Mapping[str, Any]) -> Any: ...

    def on_message(self, handler: MessageHandler) -> None: ...


class InMemoryTransport:
    """
    Loopback broker: publish delivers synchronously to the message handler
    when the topic is physically subscribed. Acks echo the subscribe options
    together with the topic, the way a broker reports granted parameters.
    """

    def __init__(self) -> None:
        self._subscriptions: Dict[str, Dict[str, Any]] = {}
        self._handler: Optional[MessageHandler] = None
        self._published: List[Tuple[str, bytes, Dict[str, Any]]] = []
        self._logger = get_logger("trigger_pubsub.transport.memory")

    def on_message(self, handler: MessageHandler) -> None:
        self._handler = handler

    async def subscribe(self, topic: str, options: Mapping[str, Any]) -> Dict[str, Any]:
        self._subscriptions[topic] = dict(options)
        self._logger.debug("transport_subscribed", extra={"topic": topic})
        return {**options, "topic": topic}

    async def unsubscribe(self, topic: str) -> None:
        if topic not in self._subscriptions:
            raise KeyError(f"not subscribed to {topic!r}")
        del self._subscriptions[topic]
        self._logger.debug("transport_unsubscribed", extra={"topic": topic})

    async def publish(self, topic: str, payload: bytes, options: Mapping[str, Any]) -> None:
        self._published.append((topic, payload, dict(options)))
        if topic in self._subscriptions and self._handler is not None:
            self._handler(topic, payload)

    @property
    def subscribed_topics(self) -> List[str]:
        return list(self._subscriptions)

    @property
    def published(self) -> List[Tuple[str, bytes, Dict[str, Any]]]:
        """Every (topic, payload, options) published, delivered or not."""
        return list(self._published)
