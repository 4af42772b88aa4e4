"""TopicState: bookkeeping for one physical topic shared by many logical subscribers."""

import asyncio
import enum
from typing import Any, Dict, List


class TopicStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"


class TopicState:
    """
    Subscriber ids attached to a physical topic, plus the physical subscribe state.

    PENDING until the transport acknowledges the physical subscribe, ACTIVE after.
    `ready` resolves with the transport ack (or fails with the subscribe error)
    and is awaited by every subscriber that joined while PENDING. Not
    thread-safe on its own; the registry lock guards every mutation.
    """

    def __init__(self, topic: str, ready: "asyncio.Future[Any]") -> None:
        self._topic = topic
        # dict as an insertion-ordered set: fan-out order is subscribe order
        self._subscriber_ids: Dict[int, None] = {}
        self._status = TopicStatus.PENDING
        self._ready = ready
        self._messages_delivered = 0

    @property
    def topic(self) -> str:
        return self._topic

    @property
    def status(self) -> TopicStatus:
        return self._status

    @property
    def pending(self) -> bool:
        return self._status is TopicStatus.PENDING

    @property
    def ready(self) -> "asyncio.Future[Any]":
        return self._ready

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriber_ids)

    @property
    def messages_delivered(self) -> int:
        return self._messages_delivered

    def activate(self) -> None:
        self._status = TopicStatus.ACTIVE

    def add(self, subscription_id: int) -> None:
        self._subscriber_ids[subscription_id] = None

    def discard(self, subscription_id: int) -> None:
        self._subscriber_ids.pop(subscription_id, None)

    def subscriber_ids(self) -> List[int]:
        """Snapshot of subscriber ids in subscribe order."""
        return list(self._subscriber_ids)

    def record_delivery(self) -> None:
        self._messages_delivered += 1

    def __repr__(self) -> str:
        return (
            f"TopicState(topic={self._topic!r}, status={self._status.value}, "
            f"subscribers={len(self._subscriber_ids)})"
        )
