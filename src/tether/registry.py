"""Process-wide directory of live sessions."""

import inspect
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from tether.channel import Channel
from tether.dispatcher import Dispatcher, Handler, HandlerHandle
from tether.transport.base import Transport

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """One connected peer: its channel and its handlers."""

    id: str
    channel: Channel
    dispatcher: Dispatcher
    created_at: float = field(default_factory=time.time)

    @property
    def closed(self) -> bool:
        return self.channel.closed

    def on(self, message_type: str, callback: Handler) -> HandlerHandle:
        """Register a handler for messages of this type from the peer."""
        return self.dispatcher.on(message_type, callback)

    def off(self, handle: HandlerHandle) -> None:
        self.dispatcher.off(handle)

    async def emit(self, message_type: str, payload: Any = None) -> None:
        """Send a named message to the peer."""
        await self.dispatcher.emit(message_type, payload)

    async def close(self) -> None:
        await self.channel.close()


SessionSetup = Callable[[Session], Awaitable[None] | None]


def create_session(transport: Transport, session_id: str | None = None) -> Session:
    """Wrap a transport in a channel with a bound dispatcher.

    The channel is not started.
    """
    session_id = session_id or str(uuid.uuid4())
    channel = Channel(transport, channel_id=session_id)
    dispatcher = Dispatcher(channel, session_id=session_id)
    return Session(id=session_id, channel=channel, dispatcher=dispatcher)


async def run_setup(setup: SessionSetup | None, session: Session) -> None:
    """Run an application setup hook, sync or async."""
    if setup is None:
        return
    result = setup(session)
    if inspect.isawaitable(result):
        await result


class SessionRegistry:
    """Owns the mapping from session ID to live session.

    A session is added when its connection is accepted and removed as soon as
    its channel closes, at which point its handlers are cleared. Session IDs
    are fresh UUIDs and are never reused.

    Connect and disconnect events may arrive from different threads, so the
    mapping is guarded by a lock. No lock is held while calling into a
    session.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    # ================================
    # Creation
    # ================================

    async def on_connect(
        self, transport: Transport, setup: SessionSetup | None = None
    ) -> Session:
        """Create and register a session for a newly accepted connection.

        The setup hook runs before the channel starts reading, so handlers it
        registers see the very first inbound message.

        Args:
            transport: The accepted connection
            setup: Optional hook to register handlers on the new session

        Returns:
            Session: The registered, open session

        Raises:
            ChannelClosedError: If the connection closed before it could start
        """
        session = create_session(transport)

        with self._lock:
            self._sessions[session.id] = session

        session.channel.on_close(lambda: self._release(session.id))

        try:
            await run_setup(setup, session)
            await session.channel.start()
        except Exception:
            await session.channel.close()
            raise

        logger.debug(f"Created session {session.id}")
        return session

    # ================================
    # Access
    # ================================

    def get(self, session_id: str) -> Session | None:
        """Get a live session.

        Returns None if the session has closed or never existed.
        """
        with self._lock:
            return self._sessions.get(session_id)

    def session_ids(self) -> list[str]:
        with self._lock:
            return list(self._sessions.keys())

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    # ================================
    # Termination
    # ================================

    async def close_session(self, session_id: str) -> bool:
        """Close a session.

        Returns True if the session existed and was closed, False otherwise.
        """
        session = self.get(session_id)
        if session is None:
            return False
        await session.close()
        return True

    async def close_all(self) -> None:
        """Close every live session."""
        with self._lock:
            sessions = list(self._sessions.values())
        for session in sessions:
            await session.close()
        logger.debug(f"Closed {len(sessions)} sessions")

    def _release(self, session_id: str) -> None:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return
        session.dispatcher.dispose()
        logger.debug(f"Terminated session {session_id}")
