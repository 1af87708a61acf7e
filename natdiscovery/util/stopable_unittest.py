"""Tests for Stopable."""

import pytest

from natdiscovery.util.stopable import Stopable


class GoodStopable(Stopable):
    async def stop(self) -> None:
        pass


class BadStopable(Stopable):
    pass


def test_good_stopable_instantiation():
    assert isinstance(GoodStopable(), Stopable)


def test_bad_stopable_instantiation():
    with pytest.raises(TypeError):
        BadStopable()  # type: ignore[abstract]


def test_device_searcher_is_stopable():
    from natdiscovery.discovery.device_searcher import DeviceSearcher

    assert issubclass(DeviceSearcher, Stopable)
