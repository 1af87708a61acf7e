"""Defines Stopable ABC, an interface for objects that can be stopped."""

from abc import ABC, abstractmethod


# pylint: disable=R0903 # Abstract interface for stopable components
class Stopable(ABC):
    """Represents an object with background work that must be stopped.

    Implementations cancel their background tasks, wait for them to finish
    and release per-run state. `stop()` must be safe to call repeatedly.
    """

    @abstractmethod
    async def stop(self) -> None:
        """Asynchronously stops the object and waits for its tasks."""
