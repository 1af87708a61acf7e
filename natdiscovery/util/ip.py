"""Utilities for enumerating local network interface addresses."""

import ipaddress
import socket

import psutil  # type: ignore[import-untyped]


def get_all_address_strings(include_loopback: bool = False) -> list[str]:
    """Retrieves the IPv4 address strings of all network interfaces.

    Args:
        include_loopback: Whether loopback addresses (127.0.0.0/8) are kept.

    Returns:
        A list of IPv4 address strings, in interface order, without
        duplicates. Empty if no matching addresses are found.
    """
    addresses: list[str] = []
    for _, interface_addresses in psutil.net_if_addrs().items():
        for address in interface_addresses:
            if address.family != socket.AF_INET:
                continue
            if address.address in addresses:
                continue
            if (
                not include_loopback
                and ipaddress.IPv4Address(address.address).is_loopback
            ):
                continue
            addresses.append(address.address)
    return addresses
