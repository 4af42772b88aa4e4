"""Trigger-based pub-sub multiplexed onto a topic transport (one physical subscription per topic)."""

from trigger_pubsub.codec import JsonCodec, MessageCodec, get_codec
from trigger_pubsub.config import PubSubConfig
from trigger_pubsub.errors import (
    ConfigurationError,
    MessageDecodeError,
    PubSubError,
    TransportError,
    TransportPublishError,
    TransportSubscribeError,
    TransportUnsubscribeError,
    UnknownSubscriptionError,
)
from trigger_pubsub.gateway import TransportGateway
from trigger_pubsub.pubsub import TriggerPubSub
from trigger_pubsub.registry import SubscriptionRegistry
from trigger_pubsub.resolver import resolve_topic
from trigger_pubsub.subscription import Subscription
from trigger_pubsub.topic import TopicState, TopicStatus
from trigger_pubsub.transport import InMemoryTransport, Transport

__all__ = [
    "TriggerPubSub",
    "PubSubConfig",
    "SubscriptionRegistry",
    "TransportGateway",
    "Transport",
    "InMemoryTransport",
    "Subscription",
    "TopicState",
    "TopicStatus",
    "MessageCodec",
    "JsonCodec",
    "get_codec",
    "resolve_topic",
    "PubSubError",
    "UnknownSubscriptionError",
    "TransportError",
    "TransportSubscribeError",
    "TransportUnsubscribeError",
    "TransportPublishError",
    "MessageDecodeError",
    "ConfigurationError",
]
