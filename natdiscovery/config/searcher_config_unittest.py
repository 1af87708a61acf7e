"""Tests for SearcherConfig."""

import pytest

from natdiscovery.config.searcher_config import (
    DEFAULT_SEARCH_PERIOD_SECONDS,
    DEFAULT_STOP_TIMEOUT_SECONDS,
    SearcherConfig,
)


class TestSearcherConfig:
    """Tests for the SearcherConfig class."""

    def test_defaults(self):
        config = SearcherConfig()
        assert config.search_period_seconds == DEFAULT_SEARCH_PERIOD_SECONDS
        assert config.search_period_seconds == 300.0
        assert config.stop_timeout_seconds == DEFAULT_STOP_TIMEOUT_SECONDS

    def test_explicit_values(self):
        config = SearcherConfig(
            search_period_seconds=0.5, stop_timeout_seconds=2
        )
        assert config.search_period_seconds == 0.5
        assert config.stop_timeout_seconds == 2.0
        assert isinstance(config.stop_timeout_seconds, float)

    def test_unbounded_stop_timeout(self):
        config = SearcherConfig(stop_timeout_seconds=None)
        assert config.stop_timeout_seconds is None

    def test_clone(self):
        original = SearcherConfig(
            search_period_seconds=12.0, stop_timeout_seconds=None
        )
        copied = SearcherConfig(other_config=original)
        assert copied is not original
        assert copied.search_period_seconds == 12.0
        assert copied.stop_timeout_seconds is None

    def test_clone_rejects_extra_arguments(self):
        original = SearcherConfig()
        with pytest.raises(ValueError, match="cannot be combined"):
            SearcherConfig(other_config=original, search_period_seconds=1.0)  # type: ignore[call-overload]

    @pytest.mark.parametrize("value", [0, -1, -0.5])
    def test_non_positive_search_period_rejected(self, value):
        with pytest.raises(ValueError, match="search_period_seconds"):
            SearcherConfig(search_period_seconds=value)

    def test_non_positive_stop_timeout_rejected(self):
        with pytest.raises(ValueError, match="stop_timeout_seconds"):
            SearcherConfig(stop_timeout_seconds=0)

    @pytest.mark.parametrize("value", ["10", True])
    def test_non_numeric_search_period_rejected(self, value):
        with pytest.raises(TypeError, match="search_period_seconds"):
            SearcherConfig(search_period_seconds=value)  # type: ignore[arg-type]
