"""WebSocket server that hands each connection to the session registry."""

import asyncio
import logging

import uvicorn
from starlette.applications import Starlette
from starlette.routing import WebSocketRoute
from starlette.websockets import WebSocket

from tether.config import ServerConfig
from tether.registry import SessionRegistry, SessionSetup
from tether.shared.exceptions import ChannelClosedError
from tether.transport.websocket.server import StarletteWebSocketTransport

logger = logging.getLogger(__name__)


def create_app(
    registry: SessionRegistry,
    setup: SessionSetup | None = None,
    path: str = "/ws",
) -> Starlette:
    """Build a Starlette app with one WebSocket route.

    Every accepted connection becomes a session in ``registry``. ``setup`` is
    called with the new session so the application can register handlers.
    The connection is held open until the session's channel closes.
    """

    async def session_endpoint(websocket: WebSocket) -> None:
        await websocket.accept()
        transport = StarletteWebSocketTransport(websocket)

        try:
            session = await registry.on_connect(transport, setup=setup)
        except ChannelClosedError as e:
            logger.debug(f"Connection closed before session start: {e}")
            return

        logger.info(f"Session {session.id} connected")
        await session.channel.wait_closed()
        logger.info(f"Session {session.id} disconnected")

    return Starlette(routes=[WebSocketRoute(path, session_endpoint)])


class TetherServer:
    """Runs the WebSocket app under uvicorn."""

    def __init__(
        self,
        setup: SessionSetup | None = None,
        config: ServerConfig | None = None,
        registry: SessionRegistry | None = None,
    ) -> None:
        self.config = config or ServerConfig()
        self.registry = registry or SessionRegistry()
        self.app = create_app(self.registry, setup, path=self.config.path)
        self._server: uvicorn.Server | None = None
        self._serve_task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._serve_task is not None and not self._serve_task.done()

    async def start(self) -> None:
        """Start serving in a background task.

        Safe to call multiple times - subsequent calls are ignored if running.
        """
        if self.running:
            return

        config = uvicorn.Config(
            app=self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level,
        )
        self._server = uvicorn.Server(config)
        self._serve_task = asyncio.create_task(self._server.serve())
        logger.info(f"WebSocket server started on {self.config.url}")

    async def stop(self) -> None:
        """Close every session, then shut the server down."""
        await self.registry.close_all()

        if self._server is not None:
            self._server.should_exit = True
        if self._serve_task is not None:
            await self._serve_task
            self._serve_task = None
        self._server = None
        logger.info("WebSocket server stopped")
