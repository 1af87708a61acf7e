import asyncio
import logging

import pytest

from natdiscovery.cancellation.cancellation_scope import CancellationScope
from natdiscovery.cancellation.operation_cancelled_error import (
    OperationCancelledError,
)
from natdiscovery.transport.datagram import Datagram
from natdiscovery.test.discovery_fakes import wait_until
from natdiscovery.transport.udp_socket_group import (
    UdpSocketGroup,
    _QueueingDatagramProtocol,
)

LOOPBACK = "127.0.0.1"
# TEST-NET-3 address; never assigned to a local interface.
UNBINDABLE = "203.0.113.77"


@pytest.mark.parametrize("port", [-1, 65536])
def test_invalid_port_rejected(port: int) -> None:
    with pytest.raises(ValueError, match="port must be in"):
        UdpSocketGroup([LOOPBACK], port=port)


def test_invalid_queue_size_rejected() -> None:
    with pytest.raises(ValueError, match="max_queued_datagrams"):
        UdpSocketGroup([LOOPBACK], max_queued_datagrams=0)


@pytest.mark.asyncio
async def test_send_and_receive_over_loopback() -> None:
    sender = UdpSocketGroup([LOOPBACK])
    receiver = UdpSocketGroup([LOOPBACK])
    scope = CancellationScope()
    try:
        await receiver.open()
        await sender.open()
        receiver_endpoint = receiver.local_endpoints[LOOPBACK]
        sender_endpoint = sender.local_endpoints[LOOPBACK]
        assert receiver_endpoint[0] == LOOPBACK
        assert receiver_endpoint[1] != 0

        await sender.send(b"M-SEARCH", receiver_endpoint, scope)
        local_address, datagram = await asyncio.wait_for(
            receiver.receive(scope), timeout=2.0
        )

        assert local_address == LOOPBACK
        assert datagram == Datagram(b"M-SEARCH", sender_endpoint)
    finally:
        sender.dispose()
        receiver.dispose()


@pytest.mark.asyncio
async def test_receive_cancelled_by_scope() -> None:
    group = UdpSocketGroup([LOOPBACK])
    scope = CancellationScope()
    try:
        receiving = asyncio.create_task(group.receive(scope))
        await asyncio.sleep(0.01)

        scope.cancel()

        with pytest.raises(OperationCancelledError):
            await asyncio.wait_for(receiving, timeout=1.0)
    finally:
        group.dispose()


@pytest.mark.asyncio
async def test_send_with_cancelled_scope_raises() -> None:
    group = UdpSocketGroup([LOOPBACK])
    scope = CancellationScope()
    scope.cancel()
    try:
        with pytest.raises(OperationCancelledError):
            await group.send(b"x", (LOOPBACK, 9), scope)
    finally:
        group.dispose()


@pytest.mark.asyncio
async def test_defaults_to_interface_addresses(mocker) -> None:
    get_addresses = mocker.patch(
        "natdiscovery.transport.udp_socket_group.get_all_address_strings",
        return_value=[LOOPBACK],
    )
    group = UdpSocketGroup()
    try:
        await group.open()
        await group.open()
        get_addresses.assert_called_once_with()
        assert list(group.local_endpoints) == [LOOPBACK]
    finally:
        group.dispose()


@pytest.mark.asyncio
async def test_unbindable_address_is_skipped(
    caplog: pytest.LogCaptureFixture,
) -> None:
    caplog.set_level(logging.WARNING)
    group = UdpSocketGroup([UNBINDABLE, LOOPBACK])
    try:
        await group.open()
        assert list(group.local_endpoints) == [LOOPBACK]
        assert any(UNBINDABLE in r.getMessage() for r in caplog.records)
    finally:
        group.dispose()


@pytest.mark.asyncio
async def test_open_fails_when_nothing_binds() -> None:
    group = UdpSocketGroup([UNBINDABLE])
    with pytest.raises(OSError, match="Unable to bind"):
        await group.open()
    group.dispose()


@pytest.mark.asyncio
async def test_send_raises_only_when_every_socket_fails(mocker) -> None:
    group = UdpSocketGroup([LOOPBACK])
    scope = CancellationScope()
    try:
        await group.open()
        endpoint_transport = group._UdpSocketGroup__endpoints[  # type: ignore[attr-defined]
            LOOPBACK
        ]
        mocker.patch.object(
            endpoint_transport, "sendto", side_effect=OSError("unreachable")
        )

        with pytest.raises(OSError, match="unreachable"):
            await group.send(b"x", (LOOPBACK, 9), scope)
    finally:
        group.dispose()


@pytest.mark.asyncio
async def test_dispose_is_idempotent_and_final() -> None:
    group = UdpSocketGroup([LOOPBACK])
    await group.open()

    group.dispose()
    group.dispose()

    assert group.local_endpoints == {}
    with pytest.raises(RuntimeError, match="disposed"):
        await group.open()
    with pytest.raises(RuntimeError, match="disposed"):
        await group.receive(CancellationScope())


@pytest.mark.asyncio
async def test_full_queue_drops_datagrams(
    caplog: pytest.LogCaptureFixture,
) -> None:
    caplog.set_level(logging.DEBUG)
    queue: "asyncio.Queue" = asyncio.Queue(maxsize=1)
    protocol = _QueueingDatagramProtocol(LOOPBACK, queue)

    protocol.datagram_received(b"first", ("10.0.0.1", 1900))
    protocol.datagram_received(b"second", ("10.0.0.1", 1900))

    assert queue.qsize() == 1
    assert queue.get_nowait() == (
        LOOPBACK,
        Datagram(b"first", ("10.0.0.1", 1900)),
    )
    assert any("dropping" in r.getMessage() for r in caplog.records)


@pytest.mark.asyncio
async def test_restarted_receive_drops_stale_datagrams() -> None:
    sender = UdpSocketGroup([LOOPBACK])
    receiver = UdpSocketGroup([LOOPBACK])
    send_scope = CancellationScope()
    try:
        await receiver.open()
        receiver_endpoint = receiver.local_endpoints[LOOPBACK]
        queue = receiver._UdpSocketGroup__queue  # type: ignore[attr-defined]

        first_scope = CancellationScope()
        await sender.send(b"first", receiver_endpoint, send_scope)
        _, datagram = await asyncio.wait_for(
            receiver.receive(first_scope), timeout=2.0
        )
        assert datagram.buffer == b"first"
        first_scope.cancel()

        # Arrives while nobody is receiving.
        await sender.send(b"stale-1", receiver_endpoint, send_scope)
        await sender.send(b"stale-2", receiver_endpoint, send_scope)
        await wait_until(lambda: queue.qsize() == 2)

        second_scope = CancellationScope()
        receiving = asyncio.create_task(receiver.receive(second_scope))
        await asyncio.sleep(0.05)
        await sender.send(b"fresh", receiver_endpoint, send_scope)

        _, datagram = await asyncio.wait_for(receiving, timeout=2.0)
        assert datagram.buffer == b"fresh"
    finally:
        sender.dispose()
        receiver.dispose()


@pytest.mark.asyncio
async def test_same_scope_keeps_queued_datagrams() -> None:
    sender = UdpSocketGroup([LOOPBACK])
    receiver = UdpSocketGroup([LOOPBACK])
    scope = CancellationScope()
    try:
        await receiver.open()
        receiver_endpoint = receiver.local_endpoints[LOOPBACK]
        queue = receiver._UdpSocketGroup__queue  # type: ignore[attr-defined]

        await sender.send(b"one", receiver_endpoint, scope)
        await wait_until(lambda: queue.qsize() == 1)
        _, first = await asyncio.wait_for(receiver.receive(scope), timeout=2.0)

        await sender.send(b"two", receiver_endpoint, scope)
        await sender.send(b"three", receiver_endpoint, scope)
        await wait_until(lambda: queue.qsize() == 2)
        _, second = await asyncio.wait_for(receiver.receive(scope), timeout=2.0)
        _, third = await asyncio.wait_for(receiver.receive(scope), timeout=2.0)

        assert [first.buffer, second.buffer, third.buffer] == [
            b"one",
            b"two",
            b"three",
        ]
    finally:
        sender.dispose()
        receiver.dispose()
