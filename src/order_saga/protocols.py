"""
This module defines the abstract protocols the services depend on.

Services talk to the bus and the diagnostic journal through these
`Protocol`-based interfaces rather than the concrete classes, so a test can
hand a service any bus-shaped object and the journal backend can change
without touching the bus.
"""
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Union

from .models import JournalEntry

Handler = Callable[[Any], Union[None, Awaitable[None]]]


class Subscription(Protocol):
    topic: str
    handler: Handler

    def cancel(self) -> None:
        ...


class EventBus(Protocol):
    """
    Defines the contract of the publish/subscribe bus.
    `publish` does not return until every handler subscribed at call time
    has run or failed.
    """

    def subscribe(self, topic: str, handler: Handler) -> Subscription:
        ...

    def unsubscribe(self, topic: str, handler: Handler) -> None:
        ...

    async def publish(self, topic: str, payload: Any = None) -> None:
        ...

    def topics(self) -> List[str]:
        ...

    def topic_details(self) -> Dict[str, Dict[str, Any]]:
        ...


class Journal(Protocol):
    """
    Defines the contract for the structured diagnostic sink.
    The bus writes one entry per publish and one per handler failure.
    """

    async def start(self):
        ...

    async def record(self, entry: JournalEntry) -> JournalEntry:
        ...

    async def entries(
        self, topic: Optional[str] = None, kind: Optional[str] = None
    ) -> List[JournalEntry]:
        ...

    async def close(self):
        ...
