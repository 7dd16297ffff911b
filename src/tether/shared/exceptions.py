"""Exception hierarchy for channel, wire and handler errors.

Each failure mode has its own type so callers can tell a closed connection
apart from a malformed frame or a misbehaving application callback.
"""

from __future__ import annotations

from typing import Any


class TetherError(Exception):
    """Base exception for all tether errors."""

    pass


class ChannelClosedError(TetherError, ConnectionError):
    """Raised when sending on a channel that is closing or closed."""

    pass


class ProtocolDecodeError(TetherError, ValueError):
    """Raised when an inbound frame is not a valid wire message.

    The offending frame is kept on the exception so it can be logged before
    the frame is dropped.
    """

    def __init__(self, reason: str, frame: Any = None):
        super().__init__(reason)
        self.reason = reason
        self.frame = frame


class HandlerError(TetherError):
    """Raised when an application handler fails while handling a message.

    The dispatcher wraps the original exception, which is available as
    ``__cause__``, and reports it without interrupting other handlers.
    """

    def __init__(
        self, message_type: str, session_id: str | None, error: BaseException
    ):
        super().__init__(
            f"Handler for '{message_type}' failed in session {session_id}: {error}"
        )
        self.message_type = message_type
        self.session_id = session_id
        self.__cause__ = error
