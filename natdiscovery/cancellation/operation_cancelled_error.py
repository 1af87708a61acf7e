"""Defines the error raised when a CancellationScope is cancelled."""


class OperationCancelledError(Exception):
    """Raised by an operation whose `CancellationScope` was cancelled.

    Distinct from `asyncio.CancelledError`: this signals a cancelled scope,
    never the cancellation of the awaiting task itself.
    """
