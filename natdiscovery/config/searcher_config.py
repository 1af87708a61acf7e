"""Configuration parameters for DeviceSearcher.

This module defines `SearcherConfig`, which encapsulates the timing settings
used by a `DeviceSearcher`: how often a continuous search repeats, and how
long `stop()` waits for background tasks to finish.
"""

from typing import Optional, overload

DEFAULT_SEARCH_PERIOD_SECONDS = 5 * 60.0
DEFAULT_STOP_TIMEOUT_SECONDS = 5.0

# Sentinel distinguishing "not provided" from an explicit None timeout.
_UNSET = object()


class SearcherConfig:
    """Holds configuration parameters for a `DeviceSearcher`.

    Instances can be created either by providing individual parameters or by
    cloning an existing `SearcherConfig`.
    """

    @overload
    def __init__(
        self,
        *,
        search_period_seconds: float = DEFAULT_SEARCH_PERIOD_SECONDS,
        stop_timeout_seconds: float | None = DEFAULT_STOP_TIMEOUT_SECONDS,
    ):
        """Initializes with explicit settings.

        Args:
            search_period_seconds: Interval between repeated attempts of a
                continuous search. Defaults to 5 minutes.
            stop_timeout_seconds: Upper bound on how long `stop()` waits for
                each background task. `None` waits indefinitely.
        """
        ...

    @overload
    def __init__(self, *, other_config: "SearcherConfig"):
        """Initializes by cloning settings from another SearcherConfig.

        Args:
            other_config: An existing `SearcherConfig` to clone. No other
                arguments may be given alongside it.
        """
        ...

    def __init__(
        self,
        *,
        other_config: Optional["SearcherConfig"] = None,
        search_period_seconds: float | None = None,
        stop_timeout_seconds: object = _UNSET,
    ):
        """Initializes the SearcherConfig.

        Raises:
            ValueError: If `other_config` is combined with other arguments,
                or if a duration is not strictly positive.
            TypeError: If a duration is not a number.
        """
        if other_config is not None:
            if (
                search_period_seconds is not None
                or stop_timeout_seconds is not _UNSET
            ):
                raise ValueError(
                    "'other_config' cannot be combined with other arguments."
                )
            SearcherConfig.__init__(
                self,
                search_period_seconds=other_config.search_period_seconds,
                stop_timeout_seconds=other_config.stop_timeout_seconds,
            )
            return

        if search_period_seconds is None:
            search_period_seconds = DEFAULT_SEARCH_PERIOD_SECONDS
        if stop_timeout_seconds is _UNSET:
            stop_timeout_seconds = DEFAULT_STOP_TIMEOUT_SECONDS

        self.__search_period_seconds: float = self.__validate_duration(
            "search_period_seconds", search_period_seconds
        )
        self.__stop_timeout_seconds: float | None = (
            None
            if stop_timeout_seconds is None
            else self.__validate_duration(
                "stop_timeout_seconds", stop_timeout_seconds
            )
        )

    @property
    def search_period_seconds(self) -> float:
        """Interval, in seconds, between attempts of a continuous search."""
        return self.__search_period_seconds

    @property
    def stop_timeout_seconds(self) -> float | None:
        """Bound, in seconds, on `stop()` waiting for each background task.

        Returns:
            The timeout, or `None` if `stop()` waits indefinitely.
        """
        return self.__stop_timeout_seconds

    @staticmethod
    def __validate_duration(name: str, value: object) -> float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TypeError(
                f"{name} must be a number, got {type(value).__name__}."
            )
        if value <= 0:
            raise ValueError(f"{name} must be positive, got {value}.")
        return float(value)
