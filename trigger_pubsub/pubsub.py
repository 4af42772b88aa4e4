"""TriggerPubSub: trigger-based publish/subscribe over a one-subscription-per-topic transport."""

from typing import Any, Mapping, Optional

from trigger_pubsub.config import PubSubConfig
from trigger_pubsub.gateway import TransportGateway
from trigger_pubsub.observability import get_logger
from trigger_pubsub.observability import metrics as m
from trigger_pubsub.registry import SubscriptionRegistry, resolve_options
from trigger_pubsub.resolver import resolve_topic
from trigger_pubsub.subscription import Callback
from trigger_pubsub.transport import InMemoryTransport, Transport


class TriggerPubSub:
    """
    Public API. Subscribers are addressed by trigger; triggers resolve to
    physical topics through config.trigger_transform.

        pubsub = TriggerPubSub(transport)
        sub_id = await pubsub.subscribe("Posts", on_post)
        await pubsub.publish("Posts", {"title": "hello"})
        pubsub.unsubscribe(sub_id)
    """

    def __init__(
        self,
        transport: Optional[Transport] = None,
        config: Optional[PubSubConfig] = None,
    ) -> None:
        self._config = config or PubSubConfig()
        self._codec = self._config.codec()
        self._transport = transport if transport is not None else InMemoryTransport()
        self._gateway = TransportGateway(self._transport)
        self._registry = SubscriptionRegistry(self._gateway, self._codec)
        self._gateway.bind(self._registry.dispatch)
        self._logger = get_logger("trigger_pubsub.pubsub")

    @property
    def config(self) -> PubSubConfig:
        return self._config

    @property
    def registry(self) -> SubscriptionRegistry:
        return self._registry

    @property
    def transport(self) -> Transport:
        return self._transport

    async def subscribe(
        self,
        trigger: str,
        on_message: Callback,
        options: Optional[Mapping[str, Any]] = None,
    ) -> int:
        """Subscribe on_message to trigger; resolves once the topic is physically subscribed."""
        topic = resolve_topic(trigger, options, self._config.trigger_transform)
        return await self._registry.subscribe(
            topic,
            on_message,
            self._config.subscribe_options,
            self._config.on_subscribe_ack,
        )

    def unsubscribe(self, subscription_id: int) -> None:
        """Raises UnknownSubscriptionError if subscription_id is not registered."""
        self._registry.unsubscribe(subscription_id)

    async def publish(
        self,
        trigger: str,
        message: Any,
        options: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """
        Encode message and publish it once on the resolved topic.

        The trigger transform only applies when options are given; without
        options the trigger is published to as-is, so callers may address a
        fully-qualified topic directly. Raises TransportPublishError.
        """
        if options is None:
            topic = trigger
        else:
            topic = resolve_topic(trigger, options, self._config.trigger_transform)
        publish_options = await resolve_options(self._config.publish_options, topic)
        payload = self._codec.encode(message)
        await self._gateway.publish(topic, payload, publish_options)
        self._registry.metrics.increment(m.PUBLISHES)
        self._logger.info(
            "published",
            extra={"trigger": trigger, "topic": topic, "payload_type": type(message).__name__},
        )

    async def close(self) -> None:
        """Wait for outstanding physical unsubscribes and async deliveries."""
        await self._gateway.drain()
