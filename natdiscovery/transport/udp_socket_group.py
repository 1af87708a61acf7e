"""UDP transport multiplexing one socket per local IPv4 interface."""

import asyncio
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from natdiscovery.cancellation.cancellation_scope import CancellationScope
from natdiscovery.transport.datagram import Datagram, Endpoint
from natdiscovery.transport.transport import Transport
from natdiscovery.util.ip import get_all_address_strings

_logger = logging.getLogger(__name__)

DEFAULT_MAX_QUEUED_DATAGRAMS = 1024


class _QueueingDatagramProtocol(asyncio.DatagramProtocol):
    """Pushes every datagram received on one socket into a shared queue."""

    def __init__(
        self,
        local_address: str,
        queue: "asyncio.Queue[Tuple[str, Datagram]]",
    ) -> None:
        super().__init__()
        self.__local_address = local_address
        self.__queue = queue

    def datagram_received(self, data: bytes, addr: Tuple[str, int]) -> None:
        try:
            self.__queue.put_nowait(
                (
                    self.__local_address,
                    Datagram(bytes(data), (addr[0], addr[1])),
                )
            )
        except asyncio.QueueFull:
            _logger.debug(
                "Receive queue full; dropping datagram from %s on %s.",
                addr,
                self.__local_address,
            )

    def error_received(self, exc: Exception) -> None:
        _logger.warning(
            "Socket error on local address %s: %s", self.__local_address, exc
        )


class UdpSocketGroup(Transport):
    """A `Transport` backed by one asyncio UDP endpoint per local address.

    Datagrams from all sockets are delivered through a single bounded queue,
    tagged with the local address they arrived on. When `receive()` is called
    with a different scope than the previous call, datagrams queued before
    that call are dropped, so a restarted receive loop only sees fresh ones.
    Sockets are bound lazily, on the first call to `open()`, `receive()` or
    `send()`.
    """

    def __init__(
        self,
        local_addresses: Optional[Iterable[str]] = None,
        port: int = 0,
        max_queued_datagrams: int = DEFAULT_MAX_QUEUED_DATAGRAMS,
    ) -> None:
        """Initializes the UdpSocketGroup.

        Args:
            local_addresses: IPv4 addresses to bind. Defaults to every
                non-loopback interface address on this host.
            port: Local port to bind on every address. 0 picks an
                ephemeral port per socket.
            max_queued_datagrams: Datagrams held while nobody is receiving.
                Further datagrams are dropped until the queue drains.

        Raises:
            ValueError: If |port| or |max_queued_datagrams| is out of range.
        """
        if not 0 <= port <= 65535:
            raise ValueError(f"port must be in [0, 65535], got {port}.")
        if max_queued_datagrams <= 0:
            raise ValueError(
                "max_queued_datagrams must be positive, got "
                f"{max_queued_datagrams}."
            )

        self.__requested_addresses: Optional[List[str]] = (
            list(local_addresses) if local_addresses is not None else None
        )
        self.__port = port
        self.__queue: "asyncio.Queue[Tuple[str, Datagram]]" = asyncio.Queue(
            maxsize=max_queued_datagrams
        )
        self.__receive_scope: Optional[CancellationScope] = None
        self.__endpoints: Dict[str, asyncio.DatagramTransport] = {}
        self.__open_lock = asyncio.Lock()
        self.__opened = False
        self.__disposed = False

    @property
    def local_endpoints(self) -> Dict[str, Endpoint]:
        """Returns the bound (host, port) of each open socket, by address."""
        endpoints: Dict[str, Endpoint] = {}
        for address, transport in self.__endpoints.items():
            sockname = transport.get_extra_info("sockname")
            endpoints[address] = (sockname[0], sockname[1])
        return endpoints

    async def open(self) -> None:
        """Binds all sockets. Idempotent.

        Addresses that fail to bind are logged and skipped.

        Raises:
            RuntimeError: If this group has been disposed.
            OSError: If no socket could be bound.
        """
        async with self.__open_lock:
            self.__raise_if_disposed()
            if self.__opened:
                return

            addresses = self.__requested_addresses
            if addresses is None:
                addresses = get_all_address_strings()

            loop = asyncio.get_running_loop()
            for address in addresses:
                try:
                    transport, _ = await loop.create_datagram_endpoint(
                        lambda address=address: _QueueingDatagramProtocol(
                            address, self.__queue
                        ),
                        local_addr=(address, self.__port),
                    )
                except OSError as e:
                    _logger.warning(
                        "Failed to bind UDP socket on %s:%d: %s",
                        address,
                        self.__port,
                        e,
                    )
                    continue
                self.__endpoints[address] = transport

            if not self.__endpoints:
                raise OSError(
                    f"Unable to bind a UDP socket on any of {addresses}."
                )

            self.__opened = True
            _logger.info(
                "UdpSocketGroup listening on %s", list(self.__endpoints)
            )

    async def receive(self, scope: CancellationScope) -> Tuple[str, Datagram]:
        await self.open()
        if scope is not self.__receive_scope:
            if self.__receive_scope is not None:
                self.__drop_queued_datagrams()
            self.__receive_scope = scope
        return await scope.run(self.__queue.get())

    async def send(
        self, data: bytes, remote_endpoint: Endpoint, scope: CancellationScope
    ) -> None:
        """Sends |data| to |remote_endpoint| from every bound socket.

        Raises:
            OperationCancelledError: If |scope| is already cancelled.
            OSError: If sending failed on every socket.
        """
        scope.raise_if_cancelled()
        await self.open()

        failures: List[OSError] = []
        for address, transport in list(self.__endpoints.items()):
            try:
                transport.sendto(data, remote_endpoint)
            except OSError as e:
                _logger.warning(
                    "Failed to send to %s from %s: %s",
                    remote_endpoint,
                    address,
                    e,
                )
                failures.append(e)

        if failures and len(failures) == len(self.__endpoints):
            raise failures[-1]

    def dispose(self) -> None:
        if self.__disposed:
            return
        self.__disposed = True
        for transport in self.__endpoints.values():
            transport.close()
        self.__endpoints.clear()
        _logger.debug("UdpSocketGroup disposed.")

    def __drop_queued_datagrams(self) -> None:
        dropped = 0
        while not self.__queue.empty():
            self.__queue.get_nowait()
            dropped += 1
        if dropped:
            _logger.debug(
                "Dropped %d datagrams queued before receiving restarted.",
                dropped,
            )

    def __raise_if_disposed(self) -> None:
        if self.__disposed:
            raise RuntimeError("UdpSocketGroup has been disposed.")
