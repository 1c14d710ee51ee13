"""Closable async channel used to stream records, errors and progress.

asyncio.Queue has no notion of closing before Python 3.13, so consumers
could never tell "nothing yet" from "nothing ever again". Channel adds a
close marker that every receiver observes once the buffer is drained.

Usage::

    channel: Channel[Record] = Channel()
    await channel.send(record)
    channel.close()

    async for record in channel:
        ...
"""

import asyncio
from collections.abc import AsyncIterator
from typing import Generic, TypeVar

from jobstream.core.errors import ChannelClosedError

T = TypeVar("T")

_CLOSED = object()


class Channel(Generic[T]):
    """Unbounded FIFO with an explicit, single close."""

    def __init__(self, name: str = "channel") -> None:
        self.name = name
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, item: T) -> None:
        self.send_nowait(item)

    def send_nowait(self, item: T) -> None:
        """Enqueue an item. Never blocks: the buffer is unbounded."""
        if self._closed:
            msg = f"send on closed channel '{self.name}'"
            raise ChannelClosedError(msg)
        self._queue.put_nowait(item)

    def close(self) -> None:
        """Close the channel. Never blocks; closing twice is an error."""
        if self._closed:
            msg = f"channel '{self.name}' closed twice"
            raise ChannelClosedError(msg)
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    async def receive(self) -> T:
        """Return the next item, or raise ChannelClosedError once drained."""
        item = await self._queue.get()
        if item is _CLOSED:
            # Put the marker back so other receivers also see the close.
            self._queue.put_nowait(_CLOSED)
            msg = f"channel '{self.name}' is closed"
            raise ChannelClosedError(msg)
        return item  # type: ignore[return-value]

    async def drain(self) -> list[T]:
        """Receive everything until the channel is closed."""
        return [item async for item in self]

    def __aiter__(self) -> AsyncIterator[T]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[T]:
        while True:
            try:
                yield await self.receive()
            except ChannelClosedError:
                return
