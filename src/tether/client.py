"""Connect to a tether server from Python.

The client side of a connection is a Session like any other, so the same
``on``/``emit`` API works in both directions.
"""

import logging
from typing import Any

from tether.registry import Session, SessionSetup, create_session, run_setup
from tether.transport.base import Transport
from tether.transport.websocket.client import WebSocketClientTransport

logger = logging.getLogger(__name__)


async def open_session(transport: Transport, setup: SessionSetup | None = None) -> Session:
    """Start a standalone session over an already-open transport.

    The setup hook runs before the channel starts reading.
    """
    session = create_session(transport)
    session.channel.on_close(session.dispatcher.dispose)
    try:
        await run_setup(setup, session)
        await session.channel.start()
    except Exception:
        await session.channel.close()
        raise
    return session


async def connect(
    url: str, setup: SessionSetup | None = None, **connect_kwargs: Any
) -> Session:
    """Dial a tether server and return the open client session.

    Args:
        url: WebSocket URL, e.g. "ws://127.0.0.1:8000/ws"
        setup: Optional hook to register handlers before messages flow
        **connect_kwargs: Passed through to websockets' connect()

    Raises:
        ConnectionError: If the server cannot be reached
    """
    transport = await WebSocketClientTransport.open(url, **connect_kwargs)
    session = await open_session(transport, setup)
    logger.info(f"Connected to {url} as session {session.id}")
    return session
