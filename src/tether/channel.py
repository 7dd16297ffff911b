"""Message channel over a single duplex connection.

Turns a raw frame transport into a stream of typed messages, and owns the
connection lifecycle so the rest of the session can just react to messages
and to the close.
"""

import asyncio
import inspect
import logging
from enum import Enum
from typing import Any, Awaitable, Callable

from tether.protocol.message import Message, decode_message, encode_message
from tether.shared.exceptions import ChannelClosedError, ProtocolDecodeError
from tether.transport.base import Transport

logger = logging.getLogger(__name__)

MessageCallback = Callable[[Message], Awaitable[Any] | Any]
CloseCallback = Callable[[], Awaitable[Any] | Any]


class ChannelState(Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class Channel:
    """Delivers messages to and from exactly one peer.

    Inbound frames are read by a single background task and handed to the
    message callbacks one at a time, so delivery on a channel is FIFO and
    callbacks for the same channel never overlap.

    Lifecycle: CONNECTING -> OPEN -> CLOSING -> CLOSED. Closing is final; a
    new connection needs a new channel.
    """

    def __init__(
        self,
        transport: Transport,
        channel_id: str | None = None,
        close_timeout: float = 5.0,
    ):
        self.transport = transport
        self.channel_id = channel_id
        self.close_timeout = close_timeout
        self._state = ChannelState.CONNECTING
        self._message_callbacks: list[MessageCallback] = []
        self._close_callbacks: list[CloseCallback] = []
        self._read_task: asyncio.Task[None] | None = None
        self._delivering = False
        self._closed_event = asyncio.Event()
        self._callback_tasks: set[asyncio.Task[Any]] = set()

    # ================================
    # State
    # ================================

    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def is_open(self) -> bool:
        """True if messages can be sent and received."""
        return self._state is ChannelState.OPEN

    @property
    def closed(self) -> bool:
        return self._state is ChannelState.CLOSED

    async def wait_closed(self) -> None:
        """Wait until the channel reaches CLOSED."""
        await self._closed_event.wait()

    # ================================
    # Lifecycle
    # ================================

    async def start(self) -> None:
        """Open the channel and start reading inbound frames.

        Safe to call multiple times - subsequent calls are ignored while open.

        Raises:
            ChannelClosedError: If the channel was already closed or the
                transport is not open.
        """
        if self._state is ChannelState.OPEN:
            return
        if self._state is not ChannelState.CONNECTING:
            raise ChannelClosedError(f"Cannot start channel {self.channel_id}: closed")
        if not self.transport.is_open:
            raise ChannelClosedError(
                f"Cannot start channel {self.channel_id}: transport is closed"
            )

        self._state = ChannelState.OPEN
        self._read_task = asyncio.create_task(
            self._read_loop(), name=f"channel_read_{self.channel_id}"
        )
        logger.debug(f"Channel {self.channel_id} open")

    async def close(self) -> None:
        """Gracefully close the channel.

        Sends are refused as soon as this is called. A callback that is already
        running is allowed to finish. Close callbacks fire once the transport
        has shut down.

        Safe to call multiple times.
        """
        if self._state in (ChannelState.CLOSING, ChannelState.CLOSED):
            return

        self._state = ChannelState.CLOSING
        logger.debug(f"Closing channel {self.channel_id}")

        try:
            await self.transport.close()
        except Exception as e:
            logger.warning(f"Error closing transport for {self.channel_id}: {e}")

        task = self._read_task
        if task is None or task.done():
            self._mark_closed()
            return

        # Closing from inside a callback: the read loop finishes on its own.
        if task is asyncio.current_task():
            return

        # An in-flight callback always runs to completion. The timeout only
        # guards against a transport whose frame stream never ends.
        while not task.done():
            _, pending = await asyncio.wait({task}, timeout=self.close_timeout)
            if pending and not self._delivering:
                logger.warning(
                    f"Channel {self.channel_id} read loop did not stop "
                    f"within {self.close_timeout}s, cancelling"
                )
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._mark_closed()

    # ================================
    # Callbacks
    # ================================

    def on_message(self, callback: MessageCallback) -> None:
        """Register a callback for every inbound message, in arrival order."""
        self._message_callbacks.append(callback)

    def on_close(self, callback: CloseCallback) -> None:
        """Register a callback fired exactly once when the channel closes.

        If the channel is already closed the callback fires immediately.
        """
        if self._state is ChannelState.CLOSED:
            self._invoke_close_callback(callback)
            return
        self._close_callbacks.append(callback)

    # ================================
    # Send
    # ================================

    async def send(self, message: Message) -> None:
        """Encode a message and write it as one frame.

        Fire-and-forget: no acknowledgement is implied.

        Args:
            message: Message to send to the peer

        Raises:
            ChannelClosedError: If the channel is not open, or the connection
                was lost during the write. Nothing is written in the first case.
            ValueError: If the payload cannot be encoded as JSON
        """
        if self._state is not ChannelState.OPEN:
            raise ChannelClosedError(
                f"Cannot send '{message.type}': channel {self.channel_id} "
                f"is {self._state.value}"
            )

        frame = encode_message(message)

        try:
            await self.transport.send(frame)
        except ConnectionError as e:
            logger.error(f"Transport error on channel {self.channel_id}: {e}")
            self._abort()
            raise ChannelClosedError(
                f"Connection lost while sending '{message.type}' "
                f"on channel {self.channel_id}: {e}"
            ) from e

    # ================================
    # Receive
    # ================================

    async def _read_loop(self) -> None:
        """Decode and deliver inbound frames until the connection ends.

        Malformed frames are logged and dropped. A failing transport ends the
        loop, which moves the channel straight to CLOSED.
        """
        try:
            async for frame in self.transport.frames():
                if self._state is not ChannelState.OPEN:
                    break

                try:
                    message = decode_message(frame)
                except ProtocolDecodeError as e:
                    logger.warning(
                        f"Dropping malformed frame on channel {self.channel_id}: "
                        f"{e.reason}"
                    )
                    continue

                await self._deliver(message)
                if self._state is not ChannelState.OPEN:
                    break
        except ConnectionError as e:
            logger.error(f"Transport error on channel {self.channel_id}: {e}")
        except Exception as e:
            logger.exception(f"Unexpected error on channel {self.channel_id}: {e}")
        finally:
            self._mark_closed()

    async def _deliver(self, message: Message) -> None:
        self._delivering = True
        try:
            for callback in list(self._message_callbacks):
                try:
                    result = callback(message)
                    if inspect.isawaitable(result):
                        await result
                except Exception as e:
                    logger.exception(
                        f"Message callback failed for '{message.type}' "
                        f"on channel {self.channel_id}: {e}"
                    )
        finally:
            self._delivering = False

    # ================================
    # Close
    # ================================

    def _abort(self) -> None:
        """Force CLOSED after an unrecoverable transport failure.

        A read loop blocked on the dead transport is cancelled, unless it is
        running a callback, in which case it stops once the callback returns.
        """
        self._mark_closed()
        task = self._read_task
        if (
            task is not None
            and not task.done()
            and task is not asyncio.current_task()
            and not self._delivering
        ):
            task.cancel()

    def _mark_closed(self) -> None:
        """Move to CLOSED and fire the close callbacks once."""
        if self._state is ChannelState.CLOSED:
            return

        self._state = ChannelState.CLOSED
        self._closed_event.set()
        logger.debug(f"Channel {self.channel_id} closed")

        callbacks = self._close_callbacks
        self._close_callbacks = []
        for callback in callbacks:
            self._invoke_close_callback(callback)

    def _invoke_close_callback(self, callback: CloseCallback) -> None:
        try:
            result = callback()
        except Exception as e:
            logger.exception(f"Close callback failed on {self.channel_id}: {e}")
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._callback_tasks.add(task)
            task.add_done_callback(self._on_callback_task_done)

    def _on_callback_task_done(self, task: asyncio.Task[Any]) -> None:
        self._callback_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                f"Close callback failed on {self.channel_id}: {task.exception()}"
            )
