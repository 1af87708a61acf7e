import asyncio
import datetime
import logging
from typing import AsyncIterator, List, Tuple

import pytest
import pytest_asyncio

from natdiscovery.cancellation.cancellation_scope import CancellationScope
from natdiscovery.config.searcher_config import SearcherConfig
from natdiscovery.devices.device_registry import DeviceRegistry
from natdiscovery.devices.nat_device import NatDevice
from natdiscovery.discovery.device_searcher import DeviceSearcher
from natdiscovery.discovery.discovery_strategy import DiscoveryStrategy
from natdiscovery.discovery.unknown_device_event import UnknownDeviceEvent
from natdiscovery.nat_protocol import NatProtocol
from natdiscovery.test.discovery_fakes import (
    DIRECTED_PORT,
    SSDP_ENDPOINT,
    FakeDiscoveryStrategy,
    FakeTransport,
    RecordingListener,
    wait_until,
)

LOCAL_ADDRESS = "192.168.1.20"
GATEWAY_ENDPOINT = ("192.168.1.1", 1900)
LOGGER_NAME = "natdiscovery.discovery.device_searcher"


class SearcherHarness:
    __test__ = False

    def __init__(
        self,
        config: SearcherConfig | None = None,
        registry: DeviceRegistry | None = None,
    ) -> None:
        self.transport = FakeTransport()
        self.strategies: List[FakeDiscoveryStrategy] = []
        self.listener = RecordingListener()

        def factory(
            client: DiscoveryStrategy.Client, transport: FakeTransport
        ) -> FakeDiscoveryStrategy:
            strategy = FakeDiscoveryStrategy(client, transport)
            self.strategies.append(strategy)
            return strategy

        self.searcher = DeviceSearcher(
            self.transport,
            factory,  # type: ignore[arg-type]
            config=config
            or SearcherConfig(
                search_period_seconds=3600, stop_timeout_seconds=2.0
            ),
            registry=registry,
        )
        self.searcher.add_listener(self.listener)

    @property
    def strategy(self) -> FakeDiscoveryStrategy:
        return self.strategies[0]

    @property
    def master_scope(self) -> CancellationScope | None:
        return self.searcher._DeviceSearcher__master_scope  # type: ignore[attr-defined]

    @property
    def listening_task(self) -> "asyncio.Task[None] | None":
        return self.searcher._DeviceSearcher__listening_task  # type: ignore[attr-defined]


@pytest_asyncio.fixture
async def harness() -> AsyncIterator[SearcherHarness]:
    h = SearcherHarness()
    yield h
    await h.searcher.stop()


def error_records(caplog: pytest.LogCaptureFixture) -> List[logging.LogRecord]:
    return [
        r
        for r in caplog.records
        if r.name == LOGGER_NAME and r.levelno >= logging.ERROR
    ]


# --- Construction ---


def test_constructor_rejects_missing_transport() -> None:
    with pytest.raises(ValueError, match="transport cannot be None"):
        DeviceSearcher(None, FakeDiscoveryStrategy)  # type: ignore[arg-type]


def test_constructor_rejects_non_strategy() -> None:
    with pytest.raises(TypeError, match="must return a DiscoveryStrategy"):
        DeviceSearcher(FakeTransport(), lambda client, transport: object())  # type: ignore[arg-type,return-value]


def test_factory_receives_searcher_and_transport() -> None:
    h = SearcherHarness()
    assert h.strategy.client is h.searcher
    assert h.strategy.transport is h.transport


def test_initial_state() -> None:
    h = SearcherHarness()
    assert not h.searcher.listening
    assert h.searcher.protocol is NatProtocol.UPNP
    assert h.searcher.devices == []
    assert h.searcher.config.search_period_seconds == 3600


# --- Listening ---


@pytest.mark.asyncio
async def test_begin_listening_is_idempotent(
    harness: SearcherHarness, mocker
) -> None:
    registry_clear = mocker.spy(
        harness.searcher._DeviceSearcher__registry, "clear"  # type: ignore[attr-defined]
    )

    harness.searcher.begin_listening()
    first_task = harness.listening_task
    first_scope = harness.master_scope

    harness.searcher.begin_listening()

    assert harness.searcher.listening
    assert harness.listening_task is first_task
    assert harness.master_scope is first_scope
    assert registry_clear.call_count == 1


@pytest.mark.asyncio
async def test_begin_listening_does_not_clear_known_devices(
    harness: SearcherHarness,
) -> None:
    harness.searcher.begin_listening()
    await harness.searcher.raise_device_found(
        NatDevice(GATEWAY_ENDPOINT, NatProtocol.UPNP)
    )

    harness.searcher.begin_listening()

    assert len(harness.searcher.devices) == 1


@pytest.mark.asyncio
async def test_listening_loop_feeds_strategy(harness: SearcherHarness) -> None:
    harness.searcher.begin_listening()
    harness.transport.push(LOCAL_ADDRESS, b"DEVICE 192.168.1.1 1900", GATEWAY_ENDPOINT)

    await wait_until(lambda: len(harness.listener.found) == 1)

    assert harness.strategy.messages == [
        (LOCAL_ADDRESS, b"DEVICE 192.168.1.1 1900", GATEWAY_ENDPOINT, False)
    ]
    assert harness.listener.found[0] == NatDevice(GATEWAY_ENDPOINT, NatProtocol.UPNP)


@pytest.mark.asyncio
async def test_listening_exits_on_transport_failure(
    harness: SearcherHarness, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.ERROR, logger=LOGGER_NAME)
    harness.transport.fail_next_receive(OSError("socket gone"))

    harness.searcher.begin_listening()
    task = harness.listening_task
    assert task is not None
    await asyncio.wait_for(asyncio.wait([task]), timeout=2.0)

    assert task.exception() is None
    records = error_records(caplog)
    assert len(records) == 1
    assert "transport failure" in records[0].getMessage()

    # Still considered listening until explicitly stopped.
    assert harness.searcher.listening
    harness.searcher.begin_listening()
    assert harness.listening_task is task

    await harness.searcher.stop()
    harness.searcher.begin_listening()
    assert harness.listening_task is not task
    assert len(error_records(caplog)) == 1


@pytest.mark.asyncio
async def test_listening_continues_after_decode_failure(
    harness: SearcherHarness, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.ERROR, logger=LOGGER_NAME)
    harness.strategy.on_message_error = ValueError("garbled")
    harness.transport.push(LOCAL_ADDRESS, b"DEVICE 10.0.0.1 1900", GATEWAY_ENDPOINT)
    harness.transport.push(LOCAL_ADDRESS, b"DEVICE 10.0.0.2 1900", GATEWAY_ENDPOINT)

    harness.searcher.begin_listening()
    await wait_until(lambda: len(harness.strategy.messages) == 2)
    await wait_until(lambda: len(harness.listener.found) == 1)

    assert harness.listener.found[0].device_endpoint == ("10.0.0.2", 1900)
    assert len(error_records(caplog)) == 1
    assert not harness.listening_task.done()  # type: ignore[union-attr]


# --- External datagrams ---


@pytest.mark.asyncio
async def test_handle_message_received_reports_unknown_device(
    harness: SearcherHarness,
) -> None:
    await harness.searcher.handle_message_received(
        LOCAL_ADDRESS, b"BAD payload", GATEWAY_ENDPOINT
    )

    assert harness.listener.unknown == [
        UnknownDeviceEvent(
            LOCAL_ADDRESS, GATEWAY_ENDPOINT, "BAD payload", NatProtocol.UPNP
        )
    ]
    assert harness.listener.found == []
    assert harness.searcher.devices == []
    assert harness.strategy.messages[0][3] is True


@pytest.mark.asyncio
async def test_handle_message_received_uses_same_dedup(
    harness: SearcherHarness,
) -> None:
    harness.searcher.begin_listening()
    harness.transport.push(LOCAL_ADDRESS, b"DEVICE 10.0.0.1 1900", GATEWAY_ENDPOINT)
    await wait_until(lambda: len(harness.listener.found) == 1)

    await harness.searcher.handle_message_received(
        LOCAL_ADDRESS, b"DEVICE 10.0.0.1 1900 again", GATEWAY_ENDPOINT
    )

    assert len(harness.listener.found) == 1
    assert len(harness.searcher.devices) == 1


@pytest.mark.asyncio
async def test_handle_message_received_propagates_failures(
    harness: SearcherHarness,
) -> None:
    harness.strategy.on_message_error = ValueError("garbled")
    with pytest.raises(ValueError, match="garbled"):
        await harness.searcher.handle_message_received(
            LOCAL_ADDRESS, b"DEVICE 10.0.0.1 1900", GATEWAY_ENDPOINT
        )


# --- Device registry and notifications ---


@pytest.mark.asyncio
async def test_device_found_is_deduplicated() -> None:
    first_seen = datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc)
    refreshed = datetime.datetime(2024, 1, 2, tzinfo=datetime.timezone.utc)
    h = SearcherHarness(registry=DeviceRegistry(clock=lambda: refreshed))

    original = NatDevice(GATEWAY_ENDPOINT, NatProtocol.UPNP, last_seen=first_seen)
    duplicate = NatDevice(GATEWAY_ENDPOINT, NatProtocol.UPNP)

    await h.searcher.raise_device_found(original)
    await h.searcher.raise_device_found(duplicate)

    assert h.listener.found == [original]
    assert h.listener.found[0] is original
    assert h.searcher.devices == [original]
    assert original.last_seen == refreshed


@pytest.mark.asyncio
async def test_device_found_cancels_current_attempt(
    harness: SearcherHarness,
) -> None:
    parent = CancellationScope()
    attempt = harness.searcher.create_attempt_scope(parent)
    assert attempt.parent is parent

    await harness.searcher.raise_device_found(
        NatDevice(GATEWAY_ENDPOINT, NatProtocol.UPNP)
    )

    assert attempt.is_cancelled
    assert not parent.is_cancelled


@pytest.mark.asyncio
async def test_refreshing_known_device_still_cancels_attempt(
    harness: SearcherHarness,
) -> None:
    device = NatDevice(GATEWAY_ENDPOINT, NatProtocol.UPNP)
    await harness.searcher.raise_device_found(device)

    attempt = harness.searcher.create_attempt_scope(CancellationScope())
    await harness.searcher.raise_device_found(
        NatDevice(GATEWAY_ENDPOINT, NatProtocol.UPNP)
    )

    assert attempt.is_cancelled
    assert len(harness.listener.found) == 1


@pytest.mark.asyncio
async def test_new_attempt_scope_cancels_previous_attempt(
    harness: SearcherHarness,
) -> None:
    parent = CancellationScope()
    first = harness.searcher.create_attempt_scope(parent)
    second = harness.searcher.create_attempt_scope(parent)

    assert first.is_cancelled
    assert first.parent is None
    assert not second.is_cancelled
    assert second.parent is parent
    assert not parent.is_cancelled

    await harness.searcher.raise_device_found(
        NatDevice(GATEWAY_ENDPOINT, NatProtocol.UPNP)
    )
    assert second.is_cancelled


@pytest.mark.asyncio
async def test_all_listeners_notified_in_order() -> None:
    log: List[Tuple[str, str, object]] = []
    h = SearcherHarness()
    h.searcher.remove_listener(h.listener)
    first = RecordingListener("first", log)
    second = RecordingListener("second", log)
    h.searcher.add_listener(first)
    h.searcher.add_listener(second)
    h.searcher.add_listener(first)

    device = NatDevice(GATEWAY_ENDPOINT, NatProtocol.PMP)
    await h.searcher.raise_device_found(device)
    await h.searcher.raise_device_unknown(
        LOCAL_ADDRESS, GATEWAY_ENDPOINT, b"\x00\x81", NatProtocol.PMP
    )

    event = UnknownDeviceEvent(
        LOCAL_ADDRESS, GATEWAY_ENDPOINT, b"\x00\x81", NatProtocol.PMP
    )
    assert log == [
        ("first", "found", device),
        ("second", "found", device),
        ("first", "unknown", event),
        ("second", "unknown", event),
    ]


class FailingListener(DeviceSearcher.Listener):
    __test__ = False

    def __init__(self) -> None:
        self.calls = 0

    async def _on_device_found(self, device: NatDevice) -> None:
        self.calls += 1
        raise RuntimeError("listener exploded")

    async def _on_unknown_device_found(self, event: UnknownDeviceEvent) -> None:
        self.calls += 1
        raise RuntimeError("listener exploded")


@pytest.mark.asyncio
async def test_failing_listener_does_not_starve_later_listeners(
    caplog: pytest.LogCaptureFixture,
) -> None:
    caplog.set_level(logging.ERROR, logger=LOGGER_NAME)
    h = SearcherHarness()
    h.searcher.remove_listener(h.listener)
    failing = FailingListener()
    recording = RecordingListener()
    h.searcher.add_listener(failing)
    h.searcher.add_listener(recording)

    device = NatDevice(GATEWAY_ENDPOINT, NatProtocol.UPNP)
    await h.searcher.raise_device_found(device)
    await h.searcher.raise_device_found(
        NatDevice(GATEWAY_ENDPOINT, NatProtocol.UPNP)
    )
    await h.searcher.raise_device_unknown(
        LOCAL_ADDRESS, GATEWAY_ENDPOINT, "junk", NatProtocol.UPNP
    )

    assert failing.calls == 2
    assert recording.found == [device]
    assert len(recording.unknown) == 1
    errors = error_records(caplog)
    assert len(errors) == 2
    assert all("listener exploded" in r.getMessage() for r in errors)


@pytest.mark.asyncio
async def test_failing_listener_does_not_stop_listening(
    harness: SearcherHarness,
) -> None:
    failing = FailingListener()
    harness.searcher.remove_listener(harness.listener)
    harness.searcher.add_listener(failing)
    harness.searcher.add_listener(harness.listener)
    harness.searcher.begin_listening()

    harness.transport.push(
        LOCAL_ADDRESS, b"DEVICE 10.0.0.1 1900", ("10.0.0.1", 1900)
    )
    harness.transport.push(
        LOCAL_ADDRESS, b"DEVICE 10.0.0.2 1900", ("10.0.0.2", 1900)
    )

    await wait_until(lambda: len(harness.listener.found) == 2)
    assert failing.calls == 2
    assert harness.listening


@pytest.mark.asyncio
async def test_removed_listener_not_notified(harness: SearcherHarness) -> None:
    harness.searcher.remove_listener(harness.listener)
    harness.searcher.remove_listener(harness.listener)

    await harness.searcher.raise_device_found(
        NatDevice(GATEWAY_ENDPOINT, NatProtocol.UPNP)
    )

    assert harness.listener.found == []


@pytest.mark.asyncio
async def test_unknown_device_does_not_touch_registry(
    harness: SearcherHarness,
) -> None:
    await harness.searcher.raise_device_unknown(
        LOCAL_ADDRESS, GATEWAY_ENDPOINT, "junk", NatProtocol.UPNP
    )
    await harness.searcher.raise_device_unknown(
        LOCAL_ADDRESS, GATEWAY_ENDPOINT, "junk", NatProtocol.UPNP
    )

    assert len(harness.listener.unknown) == 2
    assert harness.searcher.devices == []


# --- Continuous search ---


@pytest.mark.asyncio
async def test_continuous_search_scenario(harness: SearcherHarness) -> None:
    search = asyncio.create_task(harness.searcher.search())
    await wait_until(lambda: len(harness.strategy.search_calls) == 1)

    target, interval, scope = harness.strategy.search_calls[0]
    assert target is None
    assert interval == 3600
    assert scope.parent is harness.master_scope
    assert harness.searcher.listening
    assert harness.transport.sent == [(b"SEARCH", SSDP_ENDPOINT)]

    harness.transport.push(LOCAL_ADDRESS, b"DEVICE 192.168.1.1 1900 first", GATEWAY_ENDPOINT)
    harness.transport.push(LOCAL_ADDRESS, b"DEVICE 192.168.1.1 1900 second", GATEWAY_ENDPOINT)
    await wait_until(lambda: len(harness.strategy.messages) == 2)
    assert len(harness.listener.found) == 1

    harness.transport.push(LOCAL_ADDRESS, b"DEVICE 192.168.1.254 1900", GATEWAY_ENDPOINT)
    await wait_until(lambda: len(harness.listener.found) == 2)

    assert harness.listener.unknown == []
    assert len(harness.searcher.devices) == 2

    await harness.searcher.stop()
    await asyncio.wait_for(search, timeout=2.0)


@pytest.mark.asyncio
async def test_continuous_search_repeats_at_interval() -> None:
    h = SearcherHarness(
        config=SearcherConfig(search_period_seconds=0.01, stop_timeout_seconds=2.0)
    )
    search = asyncio.create_task(h.searcher.search())

    await wait_until(lambda: len(h.transport.sent) >= 3)

    assert len(h.strategy.search_calls) == 1
    await h.searcher.stop()
    await asyncio.wait_for(search, timeout=2.0)


@pytest.mark.asyncio
async def test_new_continuous_search_replaces_previous(
    harness: SearcherHarness, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.DEBUG, logger=LOGGER_NAME)

    first = asyncio.create_task(harness.searcher.search())
    await wait_until(lambda: len(harness.strategy.search_calls) == 1)
    first_scope = harness.strategy.search_calls[0][2]

    second = asyncio.create_task(harness.searcher.search())
    await wait_until(lambda: len(harness.strategy.search_calls) == 2)
    second_scope = harness.strategy.search_calls[1][2]

    assert first_scope.is_cancelled
    assert second_scope is not first_scope
    assert not second_scope.is_cancelled
    assert second_scope.parent is harness.master_scope

    # The superseded search returns normally and nothing is logged as an error.
    await asyncio.wait_for(first, timeout=2.0)
    assert first.exception() is None
    assert error_records(caplog) == []
    assert any(
        r.getMessage() == "Continuous UPNP search cancelled."
        for r in caplog.records
    )

    await harness.searcher.stop()
    await asyncio.wait_for(second, timeout=2.0)


@pytest.mark.asyncio
async def test_crashed_search_does_not_poison_next_search(
    harness: SearcherHarness, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.ERROR, logger=LOGGER_NAME)
    harness.strategy.search_error = RuntimeError("boom")

    # The crash is contained rather than raised to the caller.
    await harness.searcher.search()
    assert error_records(caplog) == []

    second = asyncio.create_task(harness.searcher.search())
    await wait_until(lambda: len(harness.strategy.search_calls) == 2)

    records = error_records(caplog)
    assert len(records) == 1
    assert "Unhandled exception in search task" in records[0].getMessage()
    assert records[0].exc_info is not None
    assert isinstance(records[0].exc_info[1], RuntimeError)

    await harness.searcher.stop()
    await asyncio.wait_for(second, timeout=2.0)
    assert second.exception() is None
    assert len(error_records(caplog)) == 1


@pytest.mark.asyncio
async def test_search_survives_caller_cancellation(
    harness: SearcherHarness,
) -> None:
    search = asyncio.create_task(harness.searcher.search())
    await wait_until(lambda: len(harness.strategy.search_calls) == 1)
    search_task = harness.searcher._DeviceSearcher__search_task  # type: ignore[attr-defined]

    search.cancel()
    with pytest.raises(asyncio.CancelledError):
        await search

    assert not search_task.done()


# --- Directed search ---


@pytest.mark.asyncio
async def test_directed_search_runs_under_master_scope(
    harness: SearcherHarness,
) -> None:
    await harness.searcher.search("10.0.0.1")

    target, interval, scope = harness.strategy.search_calls[0]
    assert target == "10.0.0.1"
    assert interval is None
    assert scope is harness.master_scope
    assert harness.searcher.listening
    assert harness.transport.sent == [(b"SEARCH", ("10.0.0.1", DIRECTED_PORT))]


@pytest.mark.asyncio
async def test_directed_search_does_not_cancel_continuous_search(
    harness: SearcherHarness,
) -> None:
    continuous = asyncio.create_task(harness.searcher.search())
    await wait_until(lambda: len(harness.strategy.search_calls) == 1)
    continuous_scope = harness.strategy.search_calls[0][2]

    await harness.searcher.search("10.0.0.1")

    assert not continuous_scope.is_cancelled
    assert not continuous.done()

    await harness.searcher.stop()
    await asyncio.wait_for(continuous, timeout=2.0)


@pytest.mark.asyncio
async def test_continuous_search_does_not_cancel_directed_search(
    harness: SearcherHarness,
) -> None:
    gate = asyncio.Event()
    harness.strategy.directed_gate = gate

    directed = asyncio.create_task(harness.searcher.search("10.0.0.1"))
    await wait_until(lambda: len(harness.strategy.search_calls) == 1)
    directed_scope = harness.strategy.search_calls[0][2]

    first = asyncio.create_task(harness.searcher.search())
    await wait_until(lambda: len(harness.strategy.search_calls) == 2)
    second = asyncio.create_task(harness.searcher.search())
    await wait_until(lambda: len(harness.strategy.search_calls) == 3)

    assert not directed_scope.is_cancelled
    assert not directed.done()

    gate.set()
    await asyncio.wait_for(directed, timeout=2.0)
    assert (b"SEARCH", ("10.0.0.1", DIRECTED_PORT)) in harness.transport.sent

    await harness.searcher.stop()
    await asyncio.wait_for(asyncio.gather(first, second), timeout=2.0)


@pytest.mark.asyncio
async def test_directed_search_failure_propagates(
    harness: SearcherHarness,
) -> None:
    harness.strategy.search_error = RuntimeError("unreachable gateway")
    with pytest.raises(RuntimeError, match="unreachable gateway"):
        await harness.searcher.search("10.0.0.1")


@pytest.mark.asyncio
async def test_directed_search_returns_quietly_when_stopped(
    harness: SearcherHarness,
) -> None:
    harness.strategy.directed_gate = asyncio.Event()
    directed = asyncio.create_task(harness.searcher.search("10.0.0.1"))
    await wait_until(lambda: len(harness.strategy.search_calls) == 1)

    await harness.searcher.stop()

    await asyncio.wait_for(directed, timeout=2.0)
    assert directed.exception() is None
    assert harness.transport.sent == []


# --- Stop and dispose ---


@pytest.mark.asyncio
async def test_stop_is_idempotent(harness: SearcherHarness) -> None:
    await harness.searcher.stop()

    search = asyncio.create_task(harness.searcher.search())
    await wait_until(lambda: len(harness.strategy.search_calls) == 1)
    await harness.searcher.raise_device_found(
        NatDevice(GATEWAY_ENDPOINT, NatProtocol.UPNP)
    )

    await harness.searcher.stop()
    assert not harness.searcher.listening
    assert harness.searcher.devices == []
    assert harness.master_scope is None

    await harness.searcher.stop()
    assert not harness.searcher.listening
    assert harness.searcher.devices == []
    await asyncio.wait_for(search, timeout=2.0)


@pytest.mark.asyncio
async def test_stop_cancels_all_scopes(harness: SearcherHarness) -> None:
    search = asyncio.create_task(harness.searcher.search())
    await wait_until(lambda: len(harness.strategy.search_calls) == 1)
    master = harness.master_scope
    overall = harness.strategy.search_calls[0][2]
    listening_task = harness.listening_task

    await harness.searcher.stop()

    assert master is not None and master.is_cancelled
    assert overall.is_cancelled
    assert listening_task is not None and listening_task.done()
    await asyncio.wait_for(search, timeout=2.0)


@pytest.mark.asyncio
async def test_stop_logs_crashed_search_without_raising(
    harness: SearcherHarness, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.ERROR, logger=LOGGER_NAME)
    harness.strategy.search_error = RuntimeError("boom")
    await harness.searcher.search()

    await harness.searcher.stop()

    records = error_records(caplog)
    assert len(records) == 1
    assert "search task" in records[0].getMessage()


@pytest.mark.asyncio
async def test_stop_bounds_wait_for_unresponsive_search(
    caplog: pytest.LogCaptureFixture,
) -> None:
    caplog.set_level(logging.WARNING, logger=LOGGER_NAME)
    h = SearcherHarness(
        config=SearcherConfig(search_period_seconds=3600, stop_timeout_seconds=0.05)
    )
    h.strategy.ignore_cancellation = True
    search = asyncio.create_task(h.searcher.search())
    await wait_until(lambda: len(h.strategy.search_calls) == 1)
    search_task = h.searcher._DeviceSearcher__search_task  # type: ignore[attr-defined]

    await asyncio.wait_for(h.searcher.stop(), timeout=2.0)

    warnings = [
        r
        for r in caplog.records
        if r.levelno == logging.WARNING
        and r.name == LOGGER_NAME
        and "search task" in r.getMessage()
    ]
    assert len(warnings) == 1
    assert "did not finish" in warnings[0].getMessage()
    assert not h.searcher.listening

    await asyncio.wait_for(search, timeout=2.0)
    assert search_task.cancelled()


@pytest.mark.asyncio
async def test_restart_after_stop_clears_registry(
    harness: SearcherHarness,
) -> None:
    harness.searcher.begin_listening()
    await harness.searcher.raise_device_found(
        NatDevice(GATEWAY_ENDPOINT, NatProtocol.UPNP)
    )
    await harness.searcher.stop()

    harness.searcher.begin_listening()
    await harness.searcher.raise_device_found(
        NatDevice(GATEWAY_ENDPOINT, NatProtocol.UPNP)
    )

    # Found again after the restart, so listeners hear about it twice.
    assert len(harness.listener.found) == 2
    assert len(harness.searcher.devices) == 1


def test_dispose_disposes_transport() -> None:
    h = SearcherHarness()
    h.searcher.dispose()
    h.searcher.dispose()
    assert h.transport.dispose_calls == 2
