"""Server-side transport over an accepted Starlette WebSocket."""

import logging
from collections.abc import AsyncIterator

from starlette.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from tether.transport.base import Transport

logger = logging.getLogger(__name__)


class StarletteWebSocketTransport(Transport):
    """Frames over one WebSocket accepted by a Starlette endpoint.

    The endpoint must call ``websocket.accept()`` before handing the socket
    over. Text and binary frames are both passed through.
    """

    def __init__(self, websocket: WebSocket) -> None:
        self._websocket = websocket
        self._closed = False

    @property
    def is_open(self) -> bool:
        return (
            not self._closed
            and self._websocket.application_state == WebSocketState.CONNECTED
            and self._websocket.client_state == WebSocketState.CONNECTED
        )

    async def send(self, frame: str) -> None:
        if not self.is_open:
            raise ConnectionError("WebSocket closed")
        try:
            await self._websocket.send_text(frame)
        except (WebSocketDisconnect, RuntimeError) as e:
            self._closed = True
            raise ConnectionError(f"Failed to send frame: {e}") from e

    def frames(self) -> AsyncIterator[str | bytes]:
        return self._frame_iterator()

    async def _frame_iterator(self) -> AsyncIterator[str | bytes]:
        while not self._closed:
            try:
                message = await self._websocket.receive()
            except RuntimeError as e:
                # Raised by Starlette when receiving after a disconnect
                self._closed = True
                raise ConnectionError(f"Failed to receive frame: {e}") from e

            if message["type"] == "websocket.disconnect":
                self._closed = True
                logger.debug(f"WebSocket disconnected: {message.get('code')}")
                return

            if message.get("text") is not None:
                yield message["text"]
            elif message.get("bytes") is not None:
                yield message["bytes"]

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._websocket.application_state != WebSocketState.CONNECTED:
            return
        try:
            await self._websocket.close()
        except RuntimeError as e:
            logger.debug(f"WebSocket already closed: {e}")
