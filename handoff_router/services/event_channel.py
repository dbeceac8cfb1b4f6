"""Publish/subscribe channel for one kind of backend event."""

import asyncio
import logging
from typing import Awaitable, Callable, Generic, List, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")

Handler = Callable[[T], Union[None, Awaitable[None]]]


class EventChannel(Generic[T]):
    """Delivers published payloads to every current subscriber.

    ``subscribe`` returns an unsubscribe callable; calling it more than once
    is harmless. Handlers may be plain or coroutine functions and are run in
    subscription order. A failing handler is logged and does not stop
    delivery to the others.
    """

    def __init__(self, name: str):
        self.name = name
        self._handlers: List[Handler] = []

    def subscribe(self, handler: Handler) -> Callable[[], None]:
        self._handlers.append(handler)
        logger.debug(f"Subscribed to {self.name} ({len(self._handlers)} handler(s))")

        def unsubscribe() -> None:
            try:
                self._handlers.remove(handler)
            except ValueError:
                return
            logger.debug(f"Unsubscribed from {self.name} ({len(self._handlers)} handler(s))")

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)

    async def publish(self, payload: T) -> None:
        for handler in list(self._handlers):
            try:
                result = handler(payload)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(f"Handler for {self.name} failed: {e}", exc_info=True)
