"""End-to-end tests: DeviceSearcher over real UDP sockets on loopback."""

import asyncio
from typing import AsyncIterator, Optional

import pytest
import pytest_asyncio

from natdiscovery.cancellation.cancellation_scope import CancellationScope
from natdiscovery.cancellation.operation_cancelled_error import (
    OperationCancelledError,
)
from natdiscovery.config.searcher_config import SearcherConfig
from natdiscovery.devices.nat_device import NatDevice
from natdiscovery.discovery.device_searcher import DeviceSearcher
from natdiscovery.discovery.discovery_strategy import DiscoveryStrategy
from natdiscovery.nat_protocol import NatProtocol
from natdiscovery.test.discovery_fakes import RecordingListener, wait_until
from natdiscovery.transport.datagram import Endpoint
from natdiscovery.transport.transport import Transport
from natdiscovery.transport.udp_socket_group import UdpSocketGroup

LOOPBACK = "127.0.0.1"


class PingStrategy(DiscoveryStrategy):
    """Sends `PING`; a reply starting with `GATEWAY` is a device."""

    __test__ = False

    def __init__(
        self,
        client: DiscoveryStrategy.Client,
        transport: Transport,
        gateway_endpoint: Endpoint,
    ) -> None:
        self.__client = client
        self.__transport = transport
        self.__gateway_endpoint = gateway_endpoint

    @property
    def protocol(self) -> NatProtocol:
        return NatProtocol.PMP

    async def on_message(
        self,
        local_address: str,
        data: bytes,
        remote_endpoint: Endpoint,
        external_event: bool,
        scope: CancellationScope,
    ) -> None:
        if data.startswith(b"GATEWAY"):
            await self.__client.raise_device_found(
                NatDevice(remote_endpoint, NatProtocol.PMP)
            )
        else:
            await self.__client.raise_device_unknown(
                local_address, remote_endpoint, data, NatProtocol.PMP
            )

    async def search(
        self,
        target_address: Optional[str],
        repeat_interval: Optional[float],
        scope: CancellationScope,
    ) -> None:
        endpoint = (
            (target_address, self.__gateway_endpoint[1])
            if target_address is not None
            else self.__gateway_endpoint
        )
        while True:
            attempt_scope = self.__client.create_attempt_scope(scope)
            try:
                await self.__transport.send(b"PING", endpoint, attempt_scope)
            finally:
                attempt_scope.detach()
            if repeat_interval is None:
                return
            await scope.sleep(repeat_interval)


class FakeGateway:
    """Answers every datagram it receives with |reply|."""

    __test__ = False

    def __init__(self, reply: bytes) -> None:
        self.reply = reply
        self.requests = 0
        self.sockets = UdpSocketGroup([LOOPBACK])
        self.__scope = CancellationScope()
        self.__task: Optional[asyncio.Task[None]] = None

    @property
    def endpoint(self) -> Endpoint:
        return self.sockets.local_endpoints[LOOPBACK]

    async def start(self) -> None:
        await self.sockets.open()
        self.__task = asyncio.create_task(self.__serve())

    async def __serve(self) -> None:
        try:
            while True:
                _, datagram = await self.sockets.receive(self.__scope)
                self.requests += 1
                await self.sockets.send(
                    self.reply, datagram.remote_endpoint, self.__scope
                )
        except OperationCancelledError:
            pass

    async def close(self) -> None:
        self.__scope.cancel()
        if self.__task is not None:
            await self.__task
        self.sockets.dispose()


@pytest_asyncio.fixture
async def gateway() -> AsyncIterator[FakeGateway]:
    g = FakeGateway(b"GATEWAY ready")
    await g.start()
    yield g
    await g.close()


def make_searcher(gateway_endpoint: Endpoint) -> DeviceSearcher:
    return DeviceSearcher(
        UdpSocketGroup([LOOPBACK]),
        lambda client, transport: PingStrategy(
            client, transport, gateway_endpoint
        ),
        config=SearcherConfig(
            search_period_seconds=0.05, stop_timeout_seconds=2.0
        ),
    )


@pytest.mark.asyncio
async def test_continuous_search_finds_gateway_once(
    gateway: FakeGateway,
) -> None:
    searcher = make_searcher(gateway.endpoint)
    listener = RecordingListener()
    searcher.add_listener(listener)
    try:
        search = asyncio.create_task(searcher.search())

        await wait_until(lambda: gateway.requests >= 3, timeout=5.0)
        await wait_until(lambda: len(listener.found) == 1, timeout=5.0)

        assert listener.found[0] == NatDevice(gateway.endpoint, NatProtocol.PMP)
        assert searcher.devices == listener.found
        assert listener.unknown == []

        await searcher.stop()
        await asyncio.wait_for(search, timeout=2.0)
        assert searcher.devices == []
        assert len(listener.found) == 1
    finally:
        await searcher.stop()
        searcher.dispose()


@pytest.mark.asyncio
async def test_directed_search_reports_unrecognized_reply() -> None:
    gateway = FakeGateway(b"SOMETHING ELSE")
    await gateway.start()
    searcher = make_searcher(gateway.endpoint)
    listener = RecordingListener()
    searcher.add_listener(listener)
    try:
        await searcher.search(LOOPBACK)

        await wait_until(lambda: len(listener.unknown) == 1, timeout=5.0)

        event = listener.unknown[0]
        assert event.local_address == LOOPBACK
        assert event.remote_endpoint == gateway.endpoint
        assert event.response == b"SOMETHING ELSE"
        assert event.protocol is NatProtocol.PMP
        assert listener.found == []
    finally:
        await searcher.stop()
        searcher.dispose()
        await gateway.close()
