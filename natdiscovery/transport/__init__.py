"""Datagram transports the searcher receives from and strategies send on."""

from natdiscovery.transport.datagram import Datagram, Endpoint
from natdiscovery.transport.transport import Transport
from natdiscovery.transport.udp_socket_group import UdpSocketGroup

__all__ = ["Datagram", "Endpoint", "Transport", "UdpSocketGroup"]
