"""Defines the Transport interface used by DeviceSearcher and strategies."""

from abc import ABC, abstractmethod
from typing import Tuple

from natdiscovery.cancellation.cancellation_scope import CancellationScope
from natdiscovery.transport.datagram import Datagram, Endpoint


class Transport(ABC):
    """Abstract datagram transport spanning one or more local interfaces."""

    @abstractmethod
    async def receive(self, scope: CancellationScope) -> Tuple[str, Datagram]:
        """Waits for the next datagram on any underlying socket.

        Args:
            scope: Cancelling this scope abandons the wait.

        Returns:
            The local address the datagram arrived on, and the datagram.

        Raises:
            OperationCancelledError: If |scope| is cancelled.
        """
        raise NotImplementedError(
            "Transport.receive must be implemented by subclasses."
        )

    @abstractmethod
    async def send(
        self, data: bytes, remote_endpoint: Endpoint, scope: CancellationScope
    ) -> None:
        """Sends |data| to |remote_endpoint| from every underlying socket.

        Raises:
            OperationCancelledError: If |scope| is already cancelled.
        """
        raise NotImplementedError(
            "Transport.send must be implemented by subclasses."
        )

    @abstractmethod
    def dispose(self) -> None:
        """Releases all sockets. Safe to call more than once."""
        raise NotImplementedError(
            "Transport.dispose must be implemented by subclasses."
        )
