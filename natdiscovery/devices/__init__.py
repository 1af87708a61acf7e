"""Discovered NAT devices and the registry that deduplicates them."""

from natdiscovery.devices.device_registry import DeviceRegistry
from natdiscovery.devices.nat_device import NatDevice

__all__ = ["DeviceRegistry", "NatDevice"]
