"""Provides CancellationScope, a hierarchical cancellation context.

A `CancellationScope` is passed explicitly to every asynchronous operation
that should stop when some owner decides so. Scopes form a tree: cancelling
a scope cancels all of its descendants, synchronously and in creation order,
while its parent and siblings are left untouched.

NOTE: `cancel()` and the async helpers must be used from the event loop that
awaits the scope.
"""

import asyncio
import threading
from collections.abc import Awaitable, Callable
from typing import List, Optional, TypeVar

from natdiscovery.cancellation.operation_cancelled_error import (
    OperationCancelledError,
)

ResultT = TypeVar("ResultT")


class CancellationScope:
    """A node in a cancellation tree.

    Operations observe a scope either by polling `is_cancelled` /
    `raise_if_cancelled()`, or by suspending through `wait()`, `sleep()` or
    `run()`, which raise `OperationCancelledError` once the scope fires.
    """

    def __init__(self, parent: Optional["CancellationScope"] = None) -> None:
        """Creates a root scope, or a child linked under |parent|.

        A child created under an already-cancelled parent starts cancelled.

        Args:
            parent: Scope whose cancellation also cancels this one.
        """
        self.__lock = threading.Lock()
        self.__cancelled = False
        self.__cancelled_event = asyncio.Event()
        self.__children: List[CancellationScope] = []
        self.__callbacks: List[Callable[[], None]] = []
        self.__parent: Optional[CancellationScope] = parent

        if parent is not None:
            parent.__attach(self)

    @property
    def is_cancelled(self) -> bool:
        """Returns whether this scope, or any ancestor, has been cancelled."""
        with self.__lock:
            return self.__cancelled

    @property
    def parent(self) -> Optional["CancellationScope"]:
        """Returns the scope this one is linked under, if any."""
        return self.__parent

    def create_child(self) -> "CancellationScope":
        """Returns a new scope cancelled whenever this one is."""
        return CancellationScope(self)

    def cancel(self) -> None:
        """Cancels this scope and every descendant. Idempotent."""
        with self.__lock:
            if self.__cancelled:
                return
            self.__cancelled = True
            children = list(self.__children)
            callbacks = list(self.__callbacks)
            self.__children.clear()
            self.__callbacks.clear()

        self.__cancelled_event.set()
        for child in children:
            child.cancel()
        for callback in callbacks:
            callback()

    def add_cancel_callback(self, callback: Callable[[], None]) -> None:
        """Runs |callback| once this scope is cancelled.

        If the scope is already cancelled, |callback| runs immediately.
        """
        with self.__lock:
            if not self.__cancelled:
                self.__callbacks.append(callback)
                return
        callback()

    def detach(self) -> None:
        """Unlinks this scope from its parent.

        The parent's later cancellation no longer reaches this scope. Used for
        short-lived children of long-lived parents so they do not accumulate.
        """
        parent = self.__parent
        if parent is None:
            return
        parent.__remove(self)
        self.__parent = None

    def raise_if_cancelled(self) -> None:
        """Raises `OperationCancelledError` if this scope has been cancelled."""
        if self.is_cancelled:
            raise OperationCancelledError()

    async def wait(self) -> None:
        """Suspends until this scope is cancelled."""
        await self.__cancelled_event.wait()

    async def sleep(self, delay_seconds: float) -> None:
        """Sleeps for |delay_seconds| unless this scope is cancelled first.

        Raises:
            OperationCancelledError: If the scope is, or becomes, cancelled.
        """
        self.raise_if_cancelled()
        try:
            await asyncio.wait_for(self.wait(), timeout=delay_seconds)
        except asyncio.TimeoutError:
            return
        raise OperationCancelledError()

    async def run(self, awaitable: Awaitable[ResultT]) -> ResultT:
        """Awaits |awaitable|, abandoning it if this scope is cancelled.

        On cancellation the underlying task is cancelled and allowed to
        unwind before `OperationCancelledError` is raised.

        Returns:
            The result of |awaitable|.

        Raises:
            OperationCancelledError: If the scope is cancelled first.
        """
        self.raise_if_cancelled()

        call_task: asyncio.Future[ResultT] = asyncio.ensure_future(awaitable)
        cancel_task = asyncio.ensure_future(self.wait())
        try:
            done, _ = await asyncio.wait(
                [call_task, cancel_task], return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            call_task.cancel()
            raise
        finally:
            cancel_task.cancel()

        if call_task in done:
            return call_task.result()

        call_task.cancel()
        await asyncio.wait([call_task])
        if not call_task.cancelled():
            # Retrieve the outcome so the loop does not report it as unhandled.
            call_task.exception()
        raise OperationCancelledError()

    def __attach(self, child: "CancellationScope") -> None:
        with self.__lock:
            if not self.__cancelled:
                self.__children.append(child)
                return
        child.cancel()

    def __remove(self, child: "CancellationScope") -> None:
        with self.__lock:
            if child in self.__children:
                self.__children.remove(child)
