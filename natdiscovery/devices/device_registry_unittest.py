import datetime
import threading

import pytest

from natdiscovery.devices.device_registry import DeviceRegistry
from natdiscovery.devices.nat_device import NatDevice
from natdiscovery.nat_protocol import NatProtocol

REFRESH_TIME = datetime.datetime(2025, 3, 1, tzinfo=datetime.timezone.utc)


@pytest.fixture
def registry() -> DeviceRegistry:
    return DeviceRegistry(clock=lambda: REFRESH_TIME)


def make_device(host: str = "10.0.0.1") -> NatDevice:
    return NatDevice(
        (host, 1900),
        NatProtocol.UPNP,
        last_seen=datetime.datetime(2020, 1, 1, tzinfo=datetime.timezone.utc),
    )


def test_insert_new_device(registry: DeviceRegistry) -> None:
    device = make_device()

    assert registry.add_or_refresh(device) is True

    assert registry.count() == 1
    assert registry.devices()[0] is device


def test_duplicate_refreshes_canonical_entry(registry: DeviceRegistry) -> None:
    canonical = make_device()
    registry.add_or_refresh(canonical)

    duplicate = make_device()
    assert registry.add_or_refresh(duplicate) is False

    assert registry.count() == 1
    assert registry.devices() == [canonical]
    assert registry.devices()[0] is canonical
    assert canonical.last_seen == REFRESH_TIME


def test_distinct_devices(registry: DeviceRegistry) -> None:
    registry.add_or_refresh(make_device("10.0.0.1"))
    registry.add_or_refresh(make_device("10.0.0.2"))

    assert registry.count() == 2
    assert registry.add_or_refresh(make_device("10.0.0.3")) is True
    assert registry.count() == 3


def test_clear(registry: DeviceRegistry) -> None:
    registry.add_or_refresh(make_device())
    registry.clear()

    assert registry.count() == 0
    assert registry.devices() == []
    assert registry.add_or_refresh(make_device()) is True


def test_devices_returns_snapshot(registry: DeviceRegistry) -> None:
    registry.add_or_refresh(make_device())
    snapshot = registry.devices()
    registry.clear()
    assert len(snapshot) == 1


def test_default_clock_is_utc() -> None:
    registry = DeviceRegistry()
    device = make_device()
    registry.add_or_refresh(device)
    registry.add_or_refresh(make_device())
    assert device.last_seen.year >= 2024
    assert device.last_seen.tzinfo is datetime.timezone.utc


def test_concurrent_inserts_keep_one_entry_per_identity() -> None:
    registry = DeviceRegistry()
    inserted = []
    inserted_lock = threading.Lock()
    barrier = threading.Barrier(8)

    def worker() -> None:
        barrier.wait()
        for i in range(50):
            if registry.add_or_refresh(make_device(f"10.0.0.{i}")):
                with inserted_lock:
                    inserted.append(i)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert registry.count() == 50
    assert sorted(inserted) == list(range(50))
