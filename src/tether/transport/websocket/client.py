"""Client-side transport using the websockets library."""

import logging
from collections.abc import AsyncIterator
from typing import Any

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedError
from websockets.protocol import State

from tether.transport.base import Transport

logger = logging.getLogger(__name__)


class WebSocketClientTransport(Transport):
    """Frames over an outbound WebSocket connection.

    Use ``open()`` to dial a URL, or wrap an existing connection.
    """

    def __init__(self, connection: ClientConnection) -> None:
        self._connection = connection

    @classmethod
    async def open(cls, url: str, **connect_kwargs: Any) -> "WebSocketClientTransport":
        """Connect to a server.

        Args:
            url: WebSocket URL, e.g. "ws://127.0.0.1:8000/ws"
            **connect_kwargs: Passed through to websockets' connect()

        Raises:
            ConnectionError: If the connection cannot be established
        """
        logger.info(f"Connecting to {url}")
        try:
            connection = await connect(url, **connect_kwargs)
        except OSError as e:
            raise ConnectionError(f"Failed to connect to {url}: {e}") from e
        return cls(connection)

    @property
    def is_open(self) -> bool:
        return self._connection.state is State.OPEN

    async def send(self, frame: str) -> None:
        try:
            await self._connection.send(frame)
        except ConnectionClosed as e:
            raise ConnectionError(f"Failed to send frame: {e}") from e

    def frames(self) -> AsyncIterator[str | bytes]:
        return self._frame_iterator()

    async def _frame_iterator(self) -> AsyncIterator[str | bytes]:
        # Iteration stops cleanly on a normal close
        try:
            async for frame in self._connection:
                yield frame
        except ConnectionClosedError as e:
            raise ConnectionError(f"WebSocket connection failed: {e}") from e

    async def close(self) -> None:
        await self._connection.close()
