"""State change channel between the session and its consumer."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

DEVICES = "devices"
DATA_POINTS = "data_points"
IS_INITIALIZED = "is_initialized"
BODY_SENSOR_LOCATION = "body_sensor_location"
STATE = "state"


@dataclass(frozen=True)
class StateChange:
    """A field of the session changed to ``value``."""

    name: str
    value: Any


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class EventChannel:
    """Hands state changes from producer threads to the consumer's event loop.

    Changes posted on the consumer loop's own thread are queued directly;
    changes posted from any other thread are scheduled onto that loop with
    ``call_soon_threadsafe``, so the queue is only ever touched by one
    thread. Iterating the channel yields changes until it is closed.
    """

    def __init__(self) -> None:
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: asyncio.Queue[StateChange | None] = asyncio.Queue()
        self._closed = False
        self._ended = False

    def attach(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Bind the channel to the consumer loop (the running one by default)."""
        if self._loop is None:
            self._loop = loop or asyncio.get_running_loop()

    @property
    def closed(self) -> bool:
        return self._closed

    def post(self, change: StateChange) -> None:
        """Queue a change for the consumer. Safe to call from any thread."""
        if self._closed:
            logger.debug("Channel closed, dropping %s change", change.name)
            return
        self._enqueue(change)

    def close(self) -> None:
        """Stop the channel; iteration ends once pending changes are read.

        Once a loop is attached the end marker always goes through
        ``call_soon_threadsafe``, so it lands behind changes other threads
        scheduled before the close.
        """
        if self._closed:
            return
        self._closed = True
        loop = self._loop
        if loop is None:
            self._queue.put_nowait(None)
            return
        try:
            loop.call_soon_threadsafe(self._queue.put_nowait, None)
        except RuntimeError:
            # Consumer loop already closed, nothing else will run on it
            self._queue.put_nowait(None)

    def _enqueue(self, item: StateChange) -> None:
        loop = self._loop
        if loop is None or _running_loop() is loop:
            self._queue.put_nowait(item)
            return
        try:
            loop.call_soon_threadsafe(self._queue.put_nowait, item)
        except RuntimeError:
            # Consumer loop already closed
            logger.debug("Consumer loop closed, dropping %s change", item.name)

    async def get(self) -> StateChange | None:
        """Wait for the next change; None once the channel is closed."""
        if self._ended:
            return None
        item = await self._queue.get()
        if item is None:
            self._ended = True
        return item

    def drain(self) -> list[StateChange]:
        """Return all pending changes without waiting."""
        changes = []
        while not self._ended and not self._queue.empty():
            item = self._queue.get_nowait()
            if item is None:
                self._ended = True
                break
            changes.append(item)
        return changes

    def __aiter__(self) -> "EventChannel":
        return self

    async def __anext__(self) -> StateChange:
        change = await self.get()
        if change is None:
            raise StopAsyncIteration
        return change
