import dataclasses
import datetime

from natdiscovery.devices.nat_device import NatDevice
from natdiscovery.nat_protocol import NatProtocol


@dataclasses.dataclass(unsafe_hash=True)
class ServiceNatDevice(NatDevice):
    service_type: str


def test_equality_ignores_last_seen() -> None:
    earlier = datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc)
    later = datetime.datetime(2024, 6, 1, tzinfo=datetime.timezone.utc)
    a = NatDevice(("10.0.0.1", 1900), NatProtocol.UPNP, last_seen=earlier)
    b = NatDevice(("10.0.0.1", 1900), NatProtocol.UPNP, last_seen=later)

    assert a == b
    assert hash(a) == hash(b)


def test_identity_fields_distinguish_devices() -> None:
    a = NatDevice(("10.0.0.1", 1900), NatProtocol.UPNP)
    assert a != NatDevice(("10.0.0.2", 1900), NatProtocol.UPNP)
    assert a != NatDevice(("10.0.0.1", 5351), NatProtocol.UPNP)
    assert a != NatDevice(("10.0.0.1", 1900), NatProtocol.PMP)


def test_subclass_identity_fields() -> None:
    wan_ip = ServiceNatDevice(
        ("10.0.0.1", 1900), NatProtocol.UPNP, "WANIPConnection:1"
    )
    wan_ppp = ServiceNatDevice(
        ("10.0.0.1", 1900), NatProtocol.UPNP, "WANPPPConnection:1"
    )

    assert wan_ip != wan_ppp
    assert len({wan_ip, wan_ppp}) == 2
    assert wan_ip != NatDevice(("10.0.0.1", 1900), NatProtocol.UPNP)


def test_default_last_seen_is_aware_utc() -> None:
    device = NatDevice(("10.0.0.1", 1900), NatProtocol.UPNP)
    assert device.last_seen.tzinfo is datetime.timezone.utc


def test_mark_seen() -> None:
    device = NatDevice(("10.0.0.1", 1900), NatProtocol.PMP)
    when = datetime.datetime(2030, 1, 1, tzinfo=datetime.timezone.utc)

    device.mark_seen(when)
    assert device.last_seen == when

    device.mark_seen()
    assert device.last_seen < when
