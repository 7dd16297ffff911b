from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from types import TracebackType
from typing import Self


class Transport(ABC):
    """Abstract duplex connection to exactly one peer.

    Moves raw text frames without any knowledge of message types or
    handlers. One frame carries one encoded message.

    Transports are bidirectional frame streams:
    - Send frames via send()
    - Receive frames by iterating over frames()

    The iterator ends when the peer closes the connection and raises
    ConnectionError when the connection fails.
    """

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """True if the connection is open and frames can be sent."""

    @abstractmethod
    async def send(self, frame: str) -> None:
        """Write a single frame to the peer.

        Args:
            frame: Encoded message text

        Raises:
            ConnectionError: If the connection is closed or the write failed
        """

    @abstractmethod
    def frames(self) -> AsyncIterator[str | bytes]:
        """Stream of inbound frames in arrival order.

        Yields:
            str | bytes: Each frame received from the peer

        Raises:
            ConnectionError: When the connection fails
            asyncio.CancelledError: When iteration is cancelled
        """

    @abstractmethod
    async def close(self) -> None:
        """Close the connection and end frame iteration."""

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()
        return None
