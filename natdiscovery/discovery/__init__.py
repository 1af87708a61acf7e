"""Orchestration of NAT device discovery.

This package contains the `DeviceSearcher`, which drives listening and
searching, and the `DiscoveryStrategy` interface implemented once per
discovery protocol.
"""

from natdiscovery.discovery.device_searcher import DeviceSearcher
from natdiscovery.discovery.discovery_strategy import (
    DiscoveryStrategy,
    DiscoveryStrategyFactory,
)
from natdiscovery.discovery.unknown_device_event import UnknownDeviceEvent

__all__ = [
    "DeviceSearcher",
    "DiscoveryStrategy",
    "DiscoveryStrategyFactory",
    "UnknownDeviceEvent",
]
