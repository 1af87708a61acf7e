"""In-memory transport, strategy and listener used by natdiscovery tests."""

import asyncio
from typing import Callable, List, Optional, Tuple

from natdiscovery.cancellation.cancellation_scope import CancellationScope
from natdiscovery.devices.nat_device import NatDevice
from natdiscovery.discovery.device_searcher import DeviceSearcher
from natdiscovery.discovery.discovery_strategy import DiscoveryStrategy
from natdiscovery.discovery.unknown_device_event import UnknownDeviceEvent
from natdiscovery.nat_protocol import NatProtocol
from natdiscovery.transport.datagram import Datagram, Endpoint
from natdiscovery.transport.transport import Transport

SSDP_ENDPOINT: Endpoint = ("239.255.255.250", 1900)
DIRECTED_PORT = 5351


async def wait_until(
    predicate: Callable[[], bool], timeout: float = 2.0
) -> None:
    """Polls |predicate| on the running loop until it holds or times out."""

    async def poll() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(poll(), timeout=timeout)


class FakeTransport(Transport):
    """Transport fed by the test through `push()` and `fail_next_receive()`."""

    __test__ = False

    def __init__(self) -> None:
        self.__queue: "asyncio.Queue[Tuple[str, Datagram] | Exception]" = (
            asyncio.Queue()
        )
        self.sent: List[Tuple[bytes, Endpoint]] = []
        self.receive_calls = 0
        self.dispose_calls = 0

    def push(
        self, local_address: str, data: bytes, remote_endpoint: Endpoint
    ) -> None:
        self.__queue.put_nowait(
            (local_address, Datagram(data, remote_endpoint))
        )

    def fail_next_receive(self, error: Exception) -> None:
        self.__queue.put_nowait(error)

    async def receive(self, scope: CancellationScope) -> Tuple[str, Datagram]:
        self.receive_calls += 1
        item = await scope.run(self.__queue.get())
        if isinstance(item, Exception):
            raise item
        return item

    async def send(
        self, data: bytes, remote_endpoint: Endpoint, scope: CancellationScope
    ) -> None:
        scope.raise_if_cancelled()
        self.sent.append((data, remote_endpoint))

    def dispose(self) -> None:
        self.dispose_calls += 1


class FakeDiscoveryStrategy(DiscoveryStrategy):
    """Strategy speaking a toy text protocol.

    `DEVICE <host> <port> [anything]` decodes as a device whose identity is
    (host, port). Payloads starting with `BAD` are reported as unknown.
    Anything else is ignored.
    """

    __test__ = False

    def __init__(
        self,
        client: DiscoveryStrategy.Client,
        transport: Transport,
        protocol: NatProtocol = NatProtocol.UPNP,
    ) -> None:
        self.client = client
        self.transport = transport
        self.__protocol = protocol

        self.messages: List[Tuple[str, bytes, Endpoint, bool]] = []
        self.search_calls: List[
            Tuple[Optional[str], Optional[float], CancellationScope]
        ] = []

        # Raised (once) by the next call to search() / on_message().
        self.search_error: Optional[Exception] = None
        self.on_message_error: Optional[Exception] = None

        # When set, directed searches wait for this gate before sending.
        self.directed_gate: Optional[asyncio.Event] = None

        # When True, continuous searches sleep without observing their scope.
        self.ignore_cancellation = False

    @property
    def protocol(self) -> NatProtocol:
        return self.__protocol

    async def on_message(
        self,
        local_address: str,
        data: bytes,
        remote_endpoint: Endpoint,
        external_event: bool,
        scope: CancellationScope,
    ) -> None:
        self.messages.append(
            (local_address, data, remote_endpoint, external_event)
        )
        if self.on_message_error is not None:
            error, self.on_message_error = self.on_message_error, None
            raise error

        if data.startswith(b"DEVICE "):
            _, host, port = data.decode("ascii").split()[:3]
            await self.client.raise_device_found(
                NatDevice((host, int(port)), self.__protocol)
            )
        elif data.startswith(b"BAD"):
            await self.client.raise_device_unknown(
                local_address,
                remote_endpoint,
                data.decode("ascii"),
                self.__protocol,
            )

    async def search(
        self,
        target_address: Optional[str],
        repeat_interval: Optional[float],
        scope: CancellationScope,
    ) -> None:
        self.search_calls.append((target_address, repeat_interval, scope))
        if self.search_error is not None:
            error, self.search_error = self.search_error, None
            raise error

        if target_address is not None:
            endpoint: Endpoint = (target_address, DIRECTED_PORT)
            if self.directed_gate is not None:
                await scope.run(self.directed_gate.wait())
        else:
            endpoint = SSDP_ENDPOINT

        if self.ignore_cancellation:
            await asyncio.sleep(3600)

        while True:
            attempt_scope = self.client.create_attempt_scope(scope)
            try:
                await self.transport.send(b"SEARCH", endpoint, attempt_scope)
            finally:
                attempt_scope.detach()

            if repeat_interval is None:
                return
            await scope.sleep(repeat_interval)


class RecordingListener(DeviceSearcher.Listener):
    """Records every notification, optionally into a shared log."""

    __test__ = False

    def __init__(self, name: str = "listener", log: Optional[list] = None):
        self.name = name
        self.found: List[NatDevice] = []
        self.unknown: List[UnknownDeviceEvent] = []
        self.__log = log

    async def _on_device_found(self, device: NatDevice) -> None:
        self.found.append(device)
        if self.__log is not None:
            self.__log.append((self.name, "found", device))

    async def _on_unknown_device_found(self, event: UnknownDeviceEvent) -> None:
        self.unknown.append(event)
        if self.__log is not None:
            self.__log.append((self.name, "unknown", event))
