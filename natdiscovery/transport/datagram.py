"""Defines the Datagram type delivered by a Transport."""

import dataclasses
from typing import Tuple

# (host, port) of a remote or local UDP socket.
Endpoint = Tuple[str, int]


@dataclasses.dataclass(frozen=True)
class Datagram:
    """A single received UDP payload and the endpoint it came from."""

    buffer: bytes
    remote_endpoint: Endpoint
