"""Subscription record: one logical subscriber's registration."""

from dataclasses import dataclass
from typing import Any, Callable

Callback = Callable[[Any], Any]


@dataclass(frozen=True)
class Subscription:
    """A logical subscriber; owned by the registry and keyed by id."""

    id: int
    topic: str
    callback: Callback

    def deliver(self, message: Any) -> Any:
        """Invoke the callback; returns whatever it returns (possibly an awaitable)."""
        return self.callback(message)

    def __repr__(self) -> str:
        return f"Subscription(id={self.id!r}, topic={self.topic!r})"
