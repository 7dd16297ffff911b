"""In-process transport pair linked by asyncio queues."""

import asyncio
import logging
from collections.abc import AsyncIterator

from tether.transport.base import Transport

logger = logging.getLogger(__name__)

# Marks the end of a frame stream
_EOF = object()


class MemoryTransport(Transport):
    """One end of an in-process duplex connection.

    Frames sent on one end arrive, in order, on the other. Closing either end
    ends both frame streams, just as a dropped socket would.
    """

    def __init__(self, name: str = "memory") -> None:
        self.name = name
        self._inbox: asyncio.Queue[str | object] = asyncio.Queue()
        self._peer: MemoryTransport | None = None
        self._closed = False

    def link(self, peer: "MemoryTransport") -> None:
        """Connect this end to its peer, in both directions."""
        self._peer = peer
        peer._peer = self

    @property
    def is_open(self) -> bool:
        return not self._closed and self._peer is not None

    async def send(self, frame: str) -> None:
        if self._closed:
            raise ConnectionError("Transport closed")
        if self._peer is None or self._peer._closed:
            raise ConnectionError("Peer disconnected")
        self._peer._inbox.put_nowait(frame)

    def frames(self) -> AsyncIterator[str]:
        return self._frame_iterator()

    async def _frame_iterator(self) -> AsyncIterator[str]:
        while True:
            frame = await self._inbox.get()
            if frame is _EOF:
                return
            yield frame

    async def close(self) -> None:
        if self._closed:
            return
        self._mark_closed()
        if self._peer is not None and not self._peer._closed:
            self._peer._mark_closed()
        logger.debug(f"Closed memory transport {self.name}")

    def _mark_closed(self) -> None:
        self._closed = True
        self._inbox.put_nowait(_EOF)


def create_memory_pair() -> tuple[MemoryTransport, MemoryTransport]:
    """Create two linked transports: (server end, client end)."""
    server = MemoryTransport("server")
    client = MemoryTransport("client")
    server.link(client)
    return server, client
