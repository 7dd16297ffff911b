"""Routes named messages to application handlers.

Handlers are registered per message type and run in registration order.
Registering the same callback twice runs it twice.
"""

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, TypeVar

from tether.channel import Channel
from tether.protocol.message import Message
from tether.shared.exceptions import HandlerError

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Awaitable[Any] | Any]
THandler = TypeVar("THandler", bound=Handler)


@dataclass(eq=False)
class HandlerHandle:
    """Reference to one registration, used to unregister it."""

    message_type: str
    callback: Handler = field(repr=False)


class Dispatcher:
    """Per-session registry of message handlers.

    Inbound messages are routed by ``type`` to every handler registered for
    it. A failing handler is reported as a HandlerError and does not stop the
    handlers after it. Outbound messages go through the bound channel.
    """

    def __init__(self, channel: Channel | None = None, session_id: str | None = None):
        self.session_id = session_id
        self._channel: Channel | None = None
        self._handlers: dict[str, list[HandlerHandle]] = {}
        self._disposed = False
        if channel is not None:
            self.bind(channel)

    @property
    def channel(self) -> Channel | None:
        return self._channel

    @property
    def disposed(self) -> bool:
        return self._disposed

    def bind(self, channel: Channel) -> None:
        """Route the channel's inbound messages through this dispatcher."""
        self._channel = channel
        channel.on_message(self.dispatch)

    # ================================
    # Registration
    # ================================

    def on(self, message_type: str, callback: Handler) -> HandlerHandle:
        """Register a handler for a message type.

        Args:
            message_type: Name of the message, e.g. "send-notice"
            callback: Called with the message payload. May be a coroutine
                function.

        Returns:
            HandlerHandle: Pass to off() to remove this registration.

        Raises:
            ValueError: If message_type is not a non-empty string
        """
        if not isinstance(message_type, str) or not message_type:
            raise ValueError(
                f"Message type must be a non-empty string, got {message_type!r}"
            )

        handle = HandlerHandle(message_type=message_type, callback=callback)
        if self._disposed:
            # The session is gone; the handle is returned but never stored
            logger.debug(
                f"Dispatcher for session {self.session_id} disposed, "
                f"ignoring handler for '{message_type}'"
            )
            return handle

        self._handlers.setdefault(message_type, []).append(handle)
        return handle

    def handler(self, message_type: str) -> Callable[[THandler], THandler]:
        """Decorator form of on()."""

        def decorator(callback: THandler) -> THandler:
            self.on(message_type, callback)
            return callback

        return decorator

    def off(self, handle: HandlerHandle) -> None:
        """Remove one registration. Does nothing if it is already gone."""
        handles = self._handlers.get(handle.message_type)
        if not handles:
            return

        for index, registered in enumerate(handles):
            if registered is handle:
                del handles[index]
                break

        if not handles:
            del self._handlers[handle.message_type]

    def handler_count(self, message_type: str | None = None) -> int:
        """Number of registrations for a type, or in total."""
        if message_type is not None:
            return len(self._handlers.get(message_type, ()))
        return sum(len(handles) for handles in self._handlers.values())

    def dispose(self) -> None:
        """Clear all registrations. Later messages are dropped."""
        self._handlers.clear()
        self._disposed = True

    # ================================
    # Inbound
    # ================================

    async def dispatch(self, message: Message) -> int:
        """Invoke every handler registered for the message's type.

        Handlers run one after another in registration order, each with the
        message payload. Messages with no registered handler are dropped.

        Args:
            message: Inbound message

        Returns:
            int: Number of handlers invoked
        """
        if self._disposed:
            logger.debug(
                f"Dispatcher for session {self.session_id} disposed, "
                f"dropping '{message.type}'"
            )
            return 0

        handles = list(self._handlers.get(message.type, ()))
        if not handles:
            logger.debug(
                f"No handler for '{message.type}' in session {self.session_id}"
            )
            return 0

        for handle in handles:
            try:
                result = handle.callback(message.payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                self._report(HandlerError(message.type, self.session_id, e))

        return len(handles)

    def _report(self, error: HandlerError) -> None:
        logger.error(str(error), exc_info=error.__cause__)

    # ================================
    # Outbound
    # ================================

    async def emit(self, message_type: str, payload: Any = None) -> None:
        """Send a named message to the peer through the bound channel.

        Raises:
            ChannelClosedError: If the channel is closed
            RuntimeError: If no channel is bound
            ValueError: If message_type is empty or the payload is not
                JSON-serializable
        """
        if self._channel is None:
            raise RuntimeError("Cannot emit: dispatcher is not bound to a channel")

        await self._channel.send(Message(type=message_type, payload=payload))
