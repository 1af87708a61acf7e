"""Configuration for DeviceSearcher instances."""

from natdiscovery.config.searcher_config import SearcherConfig

__all__ = ["SearcherConfig"]
