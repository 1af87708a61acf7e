"""Thread-safe registry of discovered NAT devices, keyed by identity."""

import datetime
import threading
from collections.abc import Callable
from typing import Dict, List, Optional

from natdiscovery.devices.nat_device import NatDevice, utc_now


class DeviceRegistry:
    """A deduplicating map from device identity to the canonical NatDevice.

    At most one entry exists per identity. Lookup-or-insert and the
    `last_seen` refresh happen under a single `threading.Lock`.
    """

    def __init__(
        self, clock: Optional[Callable[[], datetime.datetime]] = None
    ) -> None:
        """Initializes an empty DeviceRegistry.

        Args:
            clock: Source of the current time for `last_seen` refreshes.
                Defaults to the UTC wall clock.
        """
        self.__lock = threading.Lock()
        self.__devices: Dict[NatDevice, NatDevice] = {}
        self.__clock = clock or utc_now

    def add_or_refresh(self, device: NatDevice) -> bool:
        """Inserts |device|, or refreshes the entry with the same identity.

        If an equal device is already present, its `last_seen` is set to the
        current time and |device| itself is discarded. Otherwise |device|
        becomes the canonical entry. This operation is thread-safe.

        Returns:
            True if |device| was newly inserted, False if it was known.
        """
        with self.__lock:
            existing = self.__devices.get(device)
            if existing is not None:
                existing.mark_seen(self.__clock())
                return False
            self.__devices[device] = device
            return True

    def devices(self) -> List[NatDevice]:
        """Returns a snapshot of all canonical entries."""
        with self.__lock:
            return list(self.__devices.values())

    def clear(self) -> None:
        """Removes every entry. Thread-safe."""
        with self.__lock:
            self.__devices.clear()

    def count(self) -> int:
        """Returns the number of known devices. Thread-safe."""
        with self.__lock:
            return len(self.__devices)
