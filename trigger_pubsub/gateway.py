"""Transport gateway: the only place the multiplexer talks to the transport."""

import asyncio
import concurrent.futures
import inspect
import threading
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Set, Union

from trigger_pubsub.errors import (
    TransportPublishError,
    TransportSubscribeError,
    TransportUnsubscribeError,
)
from trigger_pubsub.observability import get_logger
from trigger_pubsub.transport import MessageHandler, Transport

Scheduled = Union["asyncio.Future[Any]", "concurrent.futures.Future[Any]"]


async def _await(awaitable: Awaitable[Any]) -> Any:
    return await awaitable


def _on_loop(future: Scheduled) -> "asyncio.Future[Any]":
    """View a scheduled future as an asyncio future of the running loop."""
    if isinstance(future, concurrent.futures.Future):
        return asyncio.wrap_future(future)
    return future


class TransportGateway:
    """
    Thin façade over a Transport.

    subscribe/publish are awaited by the caller and wrap transport failures in
    the matching TransportError. unsubscribe is fire-and-forget: the transport
    is called immediately and its acknowledgement is awaited in a background
    task whose failure is only logged. A subscribe to a topic whose
    unsubscribe is still outstanding waits for it first, so the transport
    always sees the calls for one topic in the order they were issued.
    """

    def __init__(self, transport: Transport) -> None:
        self._transport = transport
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._tasks: Set[Scheduled] = set()
        self._unsubscribing: Dict[str, Scheduled] = {}
        self._lock = threading.Lock()
        self._logger = get_logger("trigger_pubsub.gateway")

    @property
    def transport(self) -> Transport:
        return self._transport

    def bind(self, handler: MessageHandler) -> None:
        """Route every inbound (topic, payload) from the transport to handler."""
        self._transport.on_message(handler)

    async def subscribe(self, topic: str, options: Mapping[str, Any]) -> Any:
        self._loop = asyncio.get_running_loop()
        with self._lock:
            outstanding = self._unsubscribing.get(topic)
        if outstanding is not None and not outstanding.done():
            await asyncio.wait([_on_loop(outstanding)])
        try:
            ack = await self._transport.subscribe(topic, options)
        except Exception as e:
            raise TransportSubscribeError(topic) from e
        self._logger.info("physical_subscribed", extra={"topic": topic})
        return ack

    def unsubscribe(self, topic: str) -> None:
        try:
            result = self._transport.unsubscribe(topic)
        except Exception as e:
            self._log_unsubscribe_failure(TransportUnsubscribeError(topic), e)
            return
        self._logger.info("physical_unsubscribed", extra={"topic": topic})
        if not inspect.isawaitable(result):
            return
        future = self.schedule(self._confirm_unsubscribe(topic, result), "unsubscribe")
        if future is None:
            return
        with self._lock:
            self._unsubscribing[topic] = future
        future.add_done_callback(lambda done: self._forget_unsubscribe(topic, done))

    def _forget_unsubscribe(self, topic: str, future: Scheduled) -> None:
        with self._lock:
            if self._unsubscribing.get(topic) is future:
                del self._unsubscribing[topic]

    async def _confirm_unsubscribe(self, topic: str, ack: Awaitable[Any]) -> None:
        try:
            await ack
        except Exception as e:
            self._log_unsubscribe_failure(TransportUnsubscribeError(topic), e)

    def _log_unsubscribe_failure(self, error: TransportUnsubscribeError, cause: Exception) -> None:
        self._logger.error(
            "physical_unsubscribe_failed",
            extra={"topic": error.topic, "error": f"{error}: {cause!s}"},
        )

    async def publish(self, topic: str, payload: bytes, options: Mapping[str, Any]) -> Any:
        self._loop = asyncio.get_running_loop()
        try:
            return await self._transport.publish(topic, payload, options)
        except Exception as e:
            raise TransportPublishError(topic) from e

    def schedule(self, awaitable: Awaitable[Any], what: str) -> Optional[Scheduled]:
        """
        Run an awaitable without waiting for it. Uses the running loop, or the
        loop seen by the last subscribe/publish when called from another thread.
        Returns the scheduled future, or None when there is no loop to run on.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is not None:
            future: Scheduled = loop.create_task(_await(awaitable))
        elif self._loop is None or self._loop.is_closed():
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            self._logger.error("no_event_loop", extra={"task": what})
            return None
        else:
            future = asyncio.run_coroutine_threadsafe(_await(awaitable), self._loop)
        with self._lock:
            self._tasks.add(future)
        future.add_done_callback(self._on_done(what))
        return future

    def _on_done(self, what: str) -> Callable[[Any], None]:
        def done(future: Any) -> None:
            with self._lock:
                self._tasks.discard(future)
            if future.cancelled():
                return
            exc = future.exception()
            if exc is not None:
                self._logger.error(
                    "background_task_failed",
                    extra={"task": what, "error": str(exc)},
                    exc_info=exc,
                )
        return done

    async def drain(self) -> None:
        """Wait for every background task, including those scheduled from other threads."""
        while True:
            with self._lock:
                pending = list(self._tasks)
            if not pending:
                return
            await asyncio.gather(*(_on_loop(f) for f in pending), return_exceptions=True)
