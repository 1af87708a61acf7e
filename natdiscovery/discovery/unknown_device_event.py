"""Defines the data reported for responses that are not a known device."""

import dataclasses

from natdiscovery.nat_protocol import NatProtocol
from natdiscovery.transport.datagram import Endpoint


@dataclasses.dataclass(frozen=True)
class UnknownDeviceEvent:
    """A response that a strategy recognized but could not decode.

    Attributes:
        local_address: Local interface address the response arrived on.
        remote_endpoint: (host, port) the response came from.
        response: The raw, undecoded payload.
        protocol: The protocol whose strategy rejected the response.
    """

    local_address: str
    remote_endpoint: Endpoint
    response: str | bytes
    protocol: NatProtocol
