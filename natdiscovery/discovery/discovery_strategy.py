"""Defines the per-protocol DiscoveryStrategy interface."""

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Optional

from natdiscovery.cancellation.cancellation_scope import CancellationScope
from natdiscovery.devices.nat_device import NatDevice
from natdiscovery.nat_protocol import NatProtocol
from natdiscovery.transport.datagram import Endpoint
from natdiscovery.transport.transport import Transport


class DiscoveryStrategy(ABC):
    """Encodes searches and decodes responses for one discovery protocol.

    A strategy never tracks devices itself. It reports outcomes through the
    `DiscoveryStrategy.Client` it was constructed with, and sends requests
    through the `Transport` shared with the searcher.
    """

    class Client(ABC):
        """Interface through which a strategy reports back to its searcher."""

        @abstractmethod
        async def raise_device_found(self, device: NatDevice) -> None:
            """Reports a successfully decoded device response.

            Args:
                device: The decoded device. Equal devices are deduplicated.
            """
            raise NotImplementedError(
                "DiscoveryStrategy.Client.raise_device_found"
                " must be implemented by subclasses."
            )

        @abstractmethod
        async def raise_device_unknown(
            self,
            local_address: str,
            remote_endpoint: Endpoint,
            response: str | bytes,
            protocol: NatProtocol,
        ) -> None:
            """Reports a recognized response that did not decode as a device."""
            raise NotImplementedError(
                "DiscoveryStrategy.Client.raise_device_unknown"
                " must be implemented by subclasses."
            )

        @abstractmethod
        def create_attempt_scope(
            self, parent: CancellationScope
        ) -> CancellationScope:
            """Creates the scope for a single search attempt under |parent|.

            The scope is cancelled as soon as any device is found, so a
            strategy waiting to retry the attempt can stop early.
            """
            raise NotImplementedError(
                "DiscoveryStrategy.Client.create_attempt_scope"
                " must be implemented by subclasses."
            )

    @property
    @abstractmethod
    def protocol(self) -> NatProtocol:
        """The discovery protocol this strategy speaks."""

    @abstractmethod
    async def on_message(
        self,
        local_address: str,
        data: bytes,
        remote_endpoint: Endpoint,
        external_event: bool,
        scope: CancellationScope,
    ) -> None:
        """Decodes one inbound datagram and reacts to it.

        Decoded devices go to `Client.raise_device_found`, recognized but
        invalid payloads to `Client.raise_device_unknown`. Unrecognized
        payloads may be ignored.

        Args:
            local_address: Local interface address the datagram arrived on.
            data: The datagram payload.
            remote_endpoint: (host, port) the datagram came from.
            external_event: True if the datagram was handed in by the host
                application rather than read by the searcher's own loop.
                Provenance only; it must not alter deduplication.
            scope: Cancelled when the searcher stops.
        """

    @abstractmethod
    async def search(
        self,
        target_address: Optional[str],
        repeat_interval: Optional[float],
        scope: CancellationScope,
    ) -> None:
        """Sends search requests.

        Args:
            target_address: Address to query directly, or None to use the
                protocol's standard discovery address.
            repeat_interval: Seconds between attempts. If None, exactly one
                attempt is made; otherwise attempts repeat until |scope| is
                cancelled.
            scope: Governs both the sends and the waits between attempts.

        Raises:
            OperationCancelledError: If |scope| is cancelled.
        """


DiscoveryStrategyFactory = Callable[
    [DiscoveryStrategy.Client, Transport], DiscoveryStrategy
]
