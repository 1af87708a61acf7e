"""Defines the base NatDevice value type."""

import dataclasses
import datetime
from typing import Optional, Tuple

from natdiscovery.nat_protocol import NatProtocol


def utc_now() -> datetime.datetime:
    """Returns the current time as an aware UTC datetime."""
    return datetime.datetime.now(datetime.timezone.utc)


@dataclasses.dataclass(unsafe_hash=True)
class NatDevice:
    """Represents one discovered NAT gateway.

    Equality and hashing cover the identity fields only. `last_seen` is
    excluded, so two sightings of the same gateway compare equal. Protocol
    specific subclasses add further identity fields (for example a UPnP
    service type) and must also be declared with `unsafe_hash=True`.
    """

    device_endpoint: Tuple[str, int]
    protocol: NatProtocol
    last_seen: datetime.datetime = dataclasses.field(
        default_factory=utc_now, compare=False, kw_only=True
    )

    def mark_seen(self, when: Optional[datetime.datetime] = None) -> None:
        """Updates `last_seen` to |when|, or to now if not given."""
        self.last_seen = when if when is not None else utc_now()
