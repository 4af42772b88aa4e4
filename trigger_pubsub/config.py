"""Configuration for TriggerPubSub: named optional hooks, resolved once at construction."""

import os
from dataclasses import dataclass
from typing import Any, Optional

from trigger_pubsub.codec import UTF8, JsonCodec, MessageCodec, normalize_encoding
from trigger_pubsub.registry import AckHook, OptionsResolver
from trigger_pubsub.resolver import TriggerTransform


@dataclass
class PubSubConfig:
    """
    trigger_transform: (trigger, options) -> topic. Default: the trigger is the topic.
    message_codec: explicit codec; takes precedence over message_encoding.
    message_encoding: byte encoding for the default JSON codec (utf8, base64, hex).
    subscribe_options: (topic) -> options or awaitable options, sent with each
        physical subscribe (e.g. per-topic qos). Default: no options.
    publish_options: (topic) -> options or awaitable options, sent with each
        physical publish. Default: no options.
    on_subscribe_ack: (subscription_id, ack) -> None, called after a physical
        subscribe is acknowledged. Informational only.
    """

    trigger_transform: Optional[TriggerTransform] = None
    message_codec: Optional[MessageCodec] = None
    message_encoding: str = UTF8
    subscribe_options: Optional[OptionsResolver] = None
    publish_options: Optional[OptionsResolver] = None
    on_subscribe_ack: Optional[AckHook] = None

    def __post_init__(self) -> None:
        self.message_encoding = normalize_encoding(self.message_encoding)

    def codec(self) -> MessageCodec:
        """Return the effective codec."""
        if self.message_codec is not None:
            return self.message_codec
        return JsonCodec(self.message_encoding)

    @classmethod
    def from_env(cls, **overrides: Any) -> "PubSubConfig":
        """Build a config from PUBSUB_* environment variables; keyword overrides win."""
        values: dict = {}
        encoding = (os.environ.get("PUBSUB_MESSAGE_ENCODING") or "").strip()
        if encoding:
            values["message_encoding"] = encoding
        values.update(overrides)
        return cls(**values)
