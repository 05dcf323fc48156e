import asyncio
from collections import deque
from typing import Deque, List


class LatencySender:
    """Producer handle for a LatencyChannel. Release it exactly once."""

    def __init__(self, channel: "LatencyChannel"):
        self._channel = channel
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    async def put(self, latency_ms: int):
        if self._released:
            raise RuntimeError("sender already released")
        await self._channel._put(latency_ms)

    def clone(self) -> "LatencySender":
        if self._released:
            raise RuntimeError("sender already released")
        return self._channel.sender()

    def release(self):
        if self._released:
            return
        self._released = True
        self._channel._release()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False


class LatencyChannel:
    """
    Many-producer, single-consumer conduit for round-trip samples.
    Closes when the last sender is released; iteration ends once closed and empty.
    """

    def __init__(self):
        self._items: Deque[int] = deque()
        self._changed = asyncio.Event()
        self._senders = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def sender(self) -> LatencySender:
        if self._closed:
            raise RuntimeError("channel closed")
        self._senders += 1
        return LatencySender(self)

    async def _put(self, latency_ms: int):
        self._items.append(latency_ms)
        self._changed.set()

    def _release(self):
        self._senders -= 1
        if self._senders == 0:
            self._closed = True
            self._changed.set()

    async def get(self) -> int:
        while not self._items:
            if self._closed:
                raise StopAsyncIteration
            self._changed.clear()
            await self._changed.wait()
        return self._items.popleft()

    def __aiter__(self):
        return self

    async def __anext__(self) -> int:
        return await self.get()

    async def drain(self) -> List[int]:
        return [latency async for latency in self]
