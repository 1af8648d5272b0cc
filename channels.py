import asyncio
from collections import deque
from typing import AsyncIterator, Deque, Generic, Optional, TypeVar

T = TypeVar("T")


class ChannelClosedError(Exception):
    pass


class Channel(Generic[T]):
    """Async FIFO between pipeline stages.

    ``close()`` is the only completion signal: readers drain what is left and
    then their ``async for`` ends. With ``capacity`` set, ``send`` waits while
    the channel is full.
    """

    def __init__(self, capacity: Optional[int] = None):
        if capacity is not None and capacity < 1:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._items: Deque[T] = deque()
        self._closed = False
        self._condition = asyncio.Condition()

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._items)

    async def send(self, item: T):
        async with self._condition:
            while (
                not self._closed
                and self.capacity is not None
                and len(self._items) >= self.capacity
            ):
                await self._condition.wait()
            if self._closed:
                raise ChannelClosedError("Cannot send to a closed channel")
            self._items.append(item)
            self._condition.notify_all()

    async def close(self):
        async with self._condition:
            self._closed = True
            self._condition.notify_all()

    async def receive(self) -> T:
        """Next item; raises StopAsyncIteration once closed and drained."""
        async with self._condition:
            while not self._items and not self._closed:
                await self._condition.wait()
            if not self._items:
                raise StopAsyncIteration
            item = self._items.popleft()
            self._condition.notify_all()
            return item

    def __aiter__(self) -> AsyncIterator[T]:
        return self

    async def __anext__(self) -> T:
        return await self.receive()
