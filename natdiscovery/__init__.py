"""natdiscovery package for locating NAT gateways on the local network.

This package provides the orchestration needed to listen for device
announcements, run continuous and directed searches through pluggable
discovery protocols, and track the set of gateways found so far.
"""

from natdiscovery.discovery.device_searcher import DeviceSearcher
from natdiscovery.discovery.discovery_strategy import DiscoveryStrategy
from natdiscovery.devices.nat_device import NatDevice
from natdiscovery.nat_protocol import NatProtocol

__all__ = ["DeviceSearcher", "DiscoveryStrategy", "NatDevice", "NatProtocol"]
