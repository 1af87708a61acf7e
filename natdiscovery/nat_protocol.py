"""Defines the discovery protocols a searcher may speak."""

from enum import Enum


class NatProtocol(Enum):
    """Identifies a NAT discovery protocol.

    Attributes:
        UPNP: SSDP-style multicast discovery of UPnP internet gateway devices.
        PMP: NAT-PMP gateway announcements and requests.
    """

    UPNP = 0
    PMP = 1
