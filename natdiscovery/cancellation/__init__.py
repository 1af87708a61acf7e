"""Hierarchical cancellation contexts used by the searcher and strategies."""

from natdiscovery.cancellation.cancellation_scope import CancellationScope
from natdiscovery.cancellation.operation_cancelled_error import (
    OperationCancelledError,
)

__all__ = ["CancellationScope", "OperationCancelledError"]
