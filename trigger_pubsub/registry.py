"""Subscription registry: many logical subscriptions multiplexed onto one physical subscription per topic."""

import asyncio
import inspect
import itertools
import threading
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple, Union

from trigger_pubsub.codec import JsonCodec, MessageCodec, RawPayload
from trigger_pubsub.errors import MessageDecodeError, TransportSubscribeError, UnknownSubscriptionError
from trigger_pubsub.gateway import TransportGateway
from trigger_pubsub.observability import Metrics, get_logger
from trigger_pubsub.observability import metrics as m
from trigger_pubsub.subscription import Callback, Subscription
from trigger_pubsub.topic import TopicState

OptionsResolver = Callable[[str], Union[Mapping[str, Any], Awaitable[Mapping[str, Any]]]]
AckHook = Callable[[int, Any], Any]


async def resolve_options(resolver: Optional[OptionsResolver], topic: str) -> Dict[str, Any]:
    """Call a per-topic options resolver that may be sync or async; None means no options."""
    if resolver is None:
        return {}
    options = resolver(topic)
    if inspect.isawaitable(options):
        options = await options
    return dict(options or {})


class SubscriptionRegistry:
    """
    Owns subscription id -> Subscription and topic -> TopicState.

    Every 0->1 and 1->0 decision is taken under one lock together with the
    bookkeeping it implies; the lock is never held across an await or while a
    subscriber callback runs. A topic whose last subscriber leaves before the
    physical subscribe is acknowledged is parked in `_abandoned`: the ack then
    triggers the matching physical unsubscribe, unless a new subscriber revived
    the topic first.
    """

    def __init__(self, gateway: TransportGateway, codec: Optional[MessageCodec] = None) -> None:
        self._gateway = gateway
        self._codec: MessageCodec = codec or JsonCodec()
        self._subscriptions: Dict[int, Subscription] = {}
        self._topics: Dict[str, TopicState] = {}
        self._abandoned: Dict[str, TopicState] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self._metrics = Metrics()
        self._logger = get_logger("trigger_pubsub.registry")

    @property
    def metrics(self) -> Metrics:
        return self._metrics

    # ---- subscribe ----

    async def subscribe(
        self,
        topic: str,
        callback: Callback,
        options_resolver: Optional[OptionsResolver] = None,
        on_ack: Optional[AckHook] = None,
    ) -> int:
        """
        Register callback on topic and return its subscription id.

        The first subscriber of a topic starts the physical subscribe in a
        background task; it and anyone joining while it is in flight wait for
        the same ack. Cancelling a caller withdraws its subscription but never
        the physical subscribe the other subscribers are waiting on.
        If the physical subscribe fails, every subscriber attached to the topic
        is dropped and all of their calls raise TransportSubscribeError.
        """
        loop = asyncio.get_running_loop()
        with self._lock:
            subscription_id = next(self._ids)
            state, first = self._attach(topic, subscription_id, loop)
            self._subscriptions[subscription_id] = Subscription(subscription_id, topic, callback)
            self._update_gauges()
        self._logger.info(
            "subscribed",
            extra={"topic": topic, "subscription_id": subscription_id, "first": first},
        )
        if first:
            self._gateway.schedule(
                self._open_topic(state, subscription_id, options_resolver, on_ack), "subscribe"
            )
        try:
            await asyncio.shield(state.ready)
        except asyncio.CancelledError:
            # the caller never receives the id
            try:
                self.unsubscribe(subscription_id)
            except UnknownSubscriptionError:
                pass
            raise
        return subscription_id

    def _attach(
        self, topic: str, subscription_id: int, loop: asyncio.AbstractEventLoop
    ) -> Tuple[TopicState, bool]:
        state = self._topics.get(topic)
        first = False
        if state is None:
            state = self._abandoned.pop(topic, None)
            if state is None:
                state = TopicState(topic, loop.create_future())
                first = True
            self._topics[topic] = state
        state.add(subscription_id)
        return state, first

    async def _open_topic(
        self,
        state: TopicState,
        subscription_id: int,
        options_resolver: Optional[OptionsResolver],
        on_ack: Optional[AckHook],
    ) -> None:
        topic = state.topic
        try:
            options = await resolve_options(options_resolver, topic)
            self._metrics.increment(m.PHYSICAL_SUBSCRIBES)
            ack = await self._gateway.subscribe(topic, options)
        except asyncio.CancelledError as e:
            self._fail_topic(state, e)
            raise
        except Exception as e:
            self._fail_topic(state, e)
            return

        with self._lock:
            wanted = self._topics.get(topic) is state
            if wanted:
                state.activate()
            else:
                self._abandoned.pop(topic, None)
            notify = wanted and subscription_id in self._subscriptions
        if not wanted:
            # every subscriber left while the subscribe was in flight
            self._logger.info("subscribe_ack_unwanted", extra={"topic": topic})
            self._metrics.increment(m.PHYSICAL_UNSUBSCRIBES)
            self._gateway.unsubscribe(topic)
        state.ready.set_result(ack)
        if notify and on_ack is not None:
            try:
                on_ack(subscription_id, ack)
            except Exception as e:
                self._logger.exception(
                    "subscribe_ack_hook_failed",
                    extra={"topic": topic, "subscription_id": subscription_id, "error": str(e)},
                )

    def _fail_topic(self, state: TopicState, cause: BaseException) -> None:
        topic = state.topic
        with self._lock:
            if self._topics.get(topic) is state:
                del self._topics[topic]
            if self._abandoned.get(topic) is state:
                del self._abandoned[topic]
            dropped = state.subscriber_ids()
            for subscription_id in dropped:
                self._subscriptions.pop(subscription_id, None)
            self._update_gauges()
        self._metrics.increment(m.SUBSCRIBE_FAILURES)
        self._logger.error(
            "subscribe_failed",
            extra={"topic": topic, "dropped": dropped, "error": str(cause)},
        )
        if isinstance(cause, TransportSubscribeError):
            error = cause
        else:
            error = TransportSubscribeError(topic, f"subscribe for topic {topic!r} did not complete")
            error.__cause__ = cause
        state.ready.set_exception(error)
        # already logged above; subscribers still awaiting ready get the error raised
        state.ready.exception()

    # ---- unsubscribe ----

    def unsubscribe(self, subscription_id: int) -> None:
        """Remove a subscription; the last one out of an active topic triggers the physical unsubscribe."""
        with self._lock:
            subscription = self._subscriptions.pop(subscription_id, None)
            if subscription is None:
                raise UnknownSubscriptionError(subscription_id)
            topic = subscription.topic
            state = self._topics[topic]
            state.discard(subscription_id)
            last = state.subscriber_count == 0
            if last:
                del self._topics[topic]
                if state.pending:
                    self._abandoned[topic] = state
            self._update_gauges()
        self._logger.info(
            "unsubscribed",
            extra={"topic": topic, "subscription_id": subscription_id, "last": last},
        )
        if last and not state.pending:
            self._metrics.increment(m.PHYSICAL_UNSUBSCRIBES)
            self._gateway.unsubscribe(topic)

    # ---- dispatch ----

    def dispatch(self, topic: str, raw_payload: RawPayload) -> None:
        """Decode an inbound payload once and hand it to every subscriber of topic."""
        with self._lock:
            state = self._topics.get(topic)
            if state is None:
                subscriptions: List[Subscription] = []
            else:
                subscriptions = [self._subscriptions[i] for i in state.subscriber_ids()]
                state.record_delivery()
        if not subscriptions:
            self._metrics.increment(m.MESSAGES_DROPPED)
            self._logger.debug("dropped_no_subscribers", extra={"topic": topic})
            return

        try:
            message = self._codec.decode(raw_payload)
        except MessageDecodeError as e:
            self._metrics.increment(m.MESSAGES_DROPPED)
            self._logger.error("decode_failed", extra={"topic": topic, "error": str(e)})
            return

        self._metrics.increment(m.MESSAGES_DISPATCHED)
        self._logger.debug(
            "dispatching",
            extra={"topic": topic, "subscriber_count": len(subscriptions)},
        )
        for subscription in subscriptions:
            try:
                result = subscription.deliver(message)
            except Exception as e:
                self._delivery_failed(subscription, e)
                continue
            self._metrics.increment(m.DELIVERIES)
            if inspect.isawaitable(result):
                self._gateway.schedule(self._await_delivery(subscription, result), "deliver")

    async def _await_delivery(self, subscription: Subscription, result: Awaitable[Any]) -> None:
        try:
            await result
        except Exception as e:
            self._delivery_failed(subscription, e)

    def _delivery_failed(self, subscription: Subscription, error: Exception) -> None:
        self._metrics.increment(m.DELIVERY_FAILURES)
        self._logger.error(
            "delivery_failed",
            extra={
                "topic": subscription.topic,
                "subscription_id": subscription.id,
                "error": str(error),
            },
            exc_info=error,
        )

    # ---- introspection ----

    def _update_gauges(self) -> None:
        self._metrics.set_gauge(m.TOPICS, len(self._topics))
        self._metrics.set_gauge(m.SUBSCRIPTIONS, len(self._subscriptions))

    def has_subscription(self, subscription_id: int) -> bool:
        with self._lock:
            return subscription_id in self._subscriptions

    def get_subscription(self, subscription_id: int) -> Optional[Subscription]:
        with self._lock:
            return self._subscriptions.get(subscription_id)

    def topic_count(self) -> int:
        with self._lock:
            return len(self._topics)

    def subscription_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def topics(self) -> Dict[str, Dict[str, Any]]:
        """Return { topic: { subscribers, status, messages } } for stats."""
        with self._lock:
            return {
                topic: {
                    "subscribers": state.subscriber_count,
                    "status": state.status.value,
                    "messages": state.messages_delivered,
                }
                for topic, state in self._topics.items()
            }
