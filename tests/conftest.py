import asyncio
from collections.abc import AsyncIterator

import pytest

from tether.channel import Channel
from tether.transport.base import Transport
from tether.transport.memory import create_memory_pair


class MockTransport(Transport):
    """Mock transport for testing."""

    def __init__(self):
        self.sent_frames: list[str] = []
        self._incoming_queue: asyncio.Queue[str | bytes | None] = asyncio.Queue()
        self.closed = False
        self.close_calls = 0
        self._should_raise_error = False
        self._should_fail_send = False

    def receive_frame(self, frame: str | bytes) -> None:
        """Simulate receiving a frame from the network."""
        self._incoming_queue.put_nowait(frame)

    def simulate_peer_close(self) -> None:
        """Simulate the peer closing the connection."""
        self._incoming_queue.put_nowait(None)

    def simulate_error(self) -> None:
        """Simulate a connection failure on the read side."""
        self._should_raise_error = True
        self._incoming_queue.put_nowait(None)

    def simulate_send_failure(self) -> None:
        self._should_fail_send = True

    @property
    def is_open(self) -> bool:
        return not self.closed

    async def send(self, frame: str) -> None:
        if self.closed or self._should_fail_send:
            raise ConnectionError("Transport closed")
        self.sent_frames.append(frame)

    async def frames(self) -> AsyncIterator[str | bytes]:
        while True:
            frame = await self._incoming_queue.get()
            if self._should_raise_error:
                raise ConnectionError("Network down")
            if frame is None:
                self.closed = True
                return
            yield frame

    async def close(self) -> None:
        self.close_calls += 1
        if not self.closed:
            self.closed = True
            self._incoming_queue.put_nowait(None)


async def yield_to_event_loop(seconds: float = 0.01) -> None:
    """Let the event loop process pending tasks and callbacks."""
    await asyncio.sleep(seconds)


@pytest.fixture
def yield_loop():
    """Helper to yield to event loop in tests."""
    return yield_to_event_loop


@pytest.fixture
def mock_transport():
    return MockTransport()


@pytest.fixture
async def channel(mock_transport):
    """Open channel over a mock transport, closed after the test."""
    channel = Channel(mock_transport, channel_id="test-channel", close_timeout=0.5)
    await channel.start()
    yield channel
    await channel.close()


@pytest.fixture
async def channel_pair():
    """Two open channels linked in memory: (server side, client side)."""
    server_transport, client_transport = create_memory_pair()
    server = Channel(server_transport, channel_id="server", close_timeout=0.5)
    client = Channel(client_transport, channel_id="client", close_timeout=0.5)
    await server.start()
    await client.start()
    yield server, client
    await server.close()
    await client.close()
