"""
This module implements the in-process publish/subscribe bus that every
service in the saga talks through.

Dispatch is synchronous relative to the publisher: `publish` awaits each
handler subscribed at the moment of the call, in subscription order, and only
then returns. Each handler runs in isolation. Whatever it raises is turned
into a `HandlerError`, logged and written to the journal, and the remaining
handlers still run.
"""
import asyncio
import inspect
import itertools
import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional

from .errors import HandlerError
from .journal import MemoryJournal
from .models import JournalEntry
from .protocols import EventBus, Handler, Journal

_subscription_ids = itertools.count(1)


def handler_name(handler: Handler) -> str:
    name = getattr(handler, "__qualname__", None) or getattr(handler, "__name__", None)
    if not name or name.endswith("<lambda>"):
        return "anonymous"
    return name


class Subscription:
    """Handle returned by `subscribe`. `cancel()` removes exactly this registration."""

    def __init__(self, bus: "InProcessEventBus", topic: str, handler: Handler):
        self.id = next(_subscription_ids)
        self.topic = topic
        self.handler = handler
        self._bus = bus

    @property
    def active(self) -> bool:
        return self in self._bus._subscribers.get(self.topic, ())

    def cancel(self) -> None:
        self._bus._remove(self.topic, lambda s: s is self)

    def __repr__(self) -> str:
        return f"Subscription(id={self.id}, topic={self.topic!r}, handler={handler_name(self.handler)})"


class InProcessEventBus(EventBus):
    def __init__(
        self,
        journal: Optional[Journal] = None,
        handler_timeout: Optional[float] = None,
    ):
        self.journal = journal if journal is not None else MemoryJournal()
        self.handler_timeout = handler_timeout
        self.failures: List[HandlerError] = []
        self._subscribers: Dict[str, List[Subscription]] = defaultdict(list)

    def subscribe(self, topic: str, handler: Handler) -> Subscription:
        if not callable(handler):
            raise TypeError(f"Handler for {topic} must be callable")
        subscription = Subscription(self, topic, handler)
        self._subscribers[topic].append(subscription)
        return subscription

    def unsubscribe(self, topic: str, handler: Handler) -> None:
        # Bound methods are re-created on every attribute access, so match by equality.
        self._remove(topic, lambda s: s.handler == handler)

    def _remove(self, topic: str, predicate) -> None:
        if topic not in self._subscribers:
            return
        self._subscribers[topic] = [s for s in self._subscribers[topic] if not predicate(s)]
        if not self._subscribers[topic]:
            del self._subscribers[topic]

    async def publish(self, topic: str, payload: Any = None) -> None:
        # Handlers added or removed while this event is dispatched wait for the next one.
        snapshot = list(self._subscribers.get(topic, ()))
        await self._journal(JournalEntry(topic=topic, kind="published", payload=payload))
        for subscription in snapshot:
            await self._dispatch(subscription, topic, payload)

    async def _dispatch(self, subscription: Subscription, topic: str, payload: Any) -> None:
        name = handler_name(subscription.handler)
        try:
            result = subscription.handler(payload)
            if inspect.isawaitable(result):
                if self.handler_timeout is None:
                    await result
                else:
                    await self._await_with_timeout(result, topic, name, payload)
        except Exception as e:
            await self._handler_failed(HandlerError(topic, name, repr(e)), e, payload)

    async def _await_with_timeout(self, awaitable, topic: str, name: str, payload: Any) -> None:
        # Only an unfinished task counts as timed out. A TimeoutError raised by the
        # handler itself is an ordinary failure.
        task = asyncio.ensure_future(awaitable)
        done, _ = await asyncio.wait({task}, timeout=self.handler_timeout)
        if task in done:
            task.result()
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logging.warning(f"Handler {name} for {topic} failed while being cancelled: {e!r}")
        await self._handler_failed(
            HandlerError(topic, name, f"timed out after {self.handler_timeout}s"),
            asyncio.TimeoutError(f"{name} exceeded {self.handler_timeout}s"),
            payload,
        )

    async def _handler_failed(self, error: HandlerError, cause: BaseException, payload: Any) -> None:
        error.__cause__ = cause
        self.failures.append(error)
        logging.error(str(error), exc_info=cause)
        await self._journal(
            JournalEntry(
                topic=error.topic,
                kind="handler_failed",
                payload=payload,
                handler=error.handler,
                error=repr(cause),
            )
        )

    async def _journal(self, entry: JournalEntry) -> None:
        # A failing sink is reported but never stops delivery.
        try:
            await self.journal.record(entry)
        except Exception as e:
            logging.error(f"Journal write failed for {entry.kind} on {entry.topic}: {e!r}")

    def topics(self) -> List[str]:
        return list(self._subscribers)

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, ()))

    def topic_details(self) -> Dict[str, Dict[str, Any]]:
        return {
            topic: {
                "listener_count": len(subscriptions),
                "listeners": [handler_name(s.handler) for s in subscriptions],
            }
            for topic, subscriptions in self._subscribers.items()
        }
