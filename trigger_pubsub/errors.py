"""Error taxonomy for the subscription multiplexer."""

from typing import Any, Optional


class PubSubError(Exception):
    """Base class for all multiplexer errors."""


class UnknownSubscriptionError(PubSubError, KeyError):
    """Raised by unsubscribe when the id is not currently registered."""

    def __init__(self, subscription_id: Any) -> None:
        self.subscription_id = subscription_id
        super().__init__(f'There is no subscription of id "{subscription_id}"')

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return self.args[0]


class TransportError(PubSubError):
    """A transport call failed; the transport's exception is chained as __cause__."""

    action = "call"

    def __init__(self, topic: str, message: Optional[str] = None) -> None:
        self.topic = topic
        super().__init__(message or f"transport {self.action} failed for topic {topic!r}")


class TransportSubscribeError(TransportError):
    action = "subscribe"


class TransportUnsubscribeError(TransportError):
    action = "unsubscribe"


class TransportPublishError(TransportError):
    action = "publish"


class MessageDecodeError(PubSubError):
    """An inbound payload could not be decoded into a message."""


class ConfigurationError(PubSubError, ValueError):
    """Invalid multiplexer configuration (unknown encoding, bad option)."""
