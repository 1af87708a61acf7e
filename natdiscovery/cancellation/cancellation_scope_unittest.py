"""Tests for CancellationScope."""

import asyncio

import pytest

from natdiscovery.cancellation.cancellation_scope import CancellationScope
from natdiscovery.cancellation.operation_cancelled_error import (
    OperationCancelledError,
)


def test_new_scope_is_not_cancelled() -> None:
    scope = CancellationScope()
    assert not scope.is_cancelled
    assert scope.parent is None
    scope.raise_if_cancelled()


def test_cancel_is_idempotent() -> None:
    scope = CancellationScope()
    scope.cancel()
    scope.cancel()
    assert scope.is_cancelled
    with pytest.raises(OperationCancelledError):
        scope.raise_if_cancelled()


def test_cancelling_parent_cancels_descendants() -> None:
    master = CancellationScope()
    overall = master.create_child()
    attempt = overall.create_child()

    master.cancel()

    assert overall.is_cancelled
    assert attempt.is_cancelled


def test_cancelling_child_leaves_parent_and_siblings() -> None:
    master = CancellationScope()
    overall = master.create_child()
    attempt = overall.create_child()
    sibling = master.create_child()

    attempt.cancel()
    assert not overall.is_cancelled
    assert not master.is_cancelled

    overall.cancel()
    assert not master.is_cancelled
    assert not sibling.is_cancelled


def test_child_of_cancelled_parent_starts_cancelled() -> None:
    parent = CancellationScope()
    parent.cancel()
    assert parent.create_child().is_cancelled


def test_detached_child_ignores_parent() -> None:
    parent = CancellationScope()
    child = parent.create_child()

    child.detach()
    child.detach()
    parent.cancel()

    assert child.parent is None
    assert not child.is_cancelled


def test_cancel_callbacks(mocker) -> None:
    scope = CancellationScope()
    before = mocker.Mock()
    scope.add_cancel_callback(before)
    before.assert_not_called()

    scope.cancel()
    scope.cancel()
    before.assert_called_once_with()

    after = mocker.Mock()
    scope.add_cancel_callback(after)
    after.assert_called_once_with()


def test_parent_cancellation_runs_child_callbacks(mocker) -> None:
    parent = CancellationScope()
    child = parent.create_child()
    callback = mocker.Mock()
    child.add_cancel_callback(callback)

    parent.cancel()

    callback.assert_called_once_with()


@pytest.mark.asyncio
async def test_wait_returns_once_cancelled() -> None:
    parent = CancellationScope()
    child = parent.create_child()
    waiter = asyncio.create_task(child.wait())
    await asyncio.sleep(0)
    assert not waiter.done()

    parent.cancel()

    await asyncio.wait_for(waiter, timeout=1.0)


@pytest.mark.asyncio
async def test_sleep_completes_when_not_cancelled() -> None:
    scope = CancellationScope()
    await scope.sleep(0.01)
    assert not scope.is_cancelled


@pytest.mark.asyncio
async def test_sleep_interrupted_by_cancel() -> None:
    scope = CancellationScope()
    sleeper = asyncio.create_task(scope.sleep(3600))
    await asyncio.sleep(0)

    scope.cancel()

    with pytest.raises(OperationCancelledError):
        await asyncio.wait_for(sleeper, timeout=1.0)


@pytest.mark.asyncio
async def test_sleep_on_cancelled_scope_raises_immediately() -> None:
    scope = CancellationScope()
    scope.cancel()
    with pytest.raises(OperationCancelledError):
        await scope.sleep(3600)


@pytest.mark.asyncio
async def test_run_returns_result() -> None:
    scope = CancellationScope()

    async def compute() -> int:
        await asyncio.sleep(0)
        return 42

    assert await scope.run(compute()) == 42


@pytest.mark.asyncio
async def test_run_propagates_failure() -> None:
    scope = CancellationScope()

    async def fail() -> None:
        raise KeyError("missing")

    with pytest.raises(KeyError):
        await scope.run(fail())


@pytest.mark.asyncio
async def test_run_cancels_inner_work_on_scope_cancel() -> None:
    scope = CancellationScope()
    inner_cancelled = asyncio.Event()

    async def forever() -> None:
        try:
            await asyncio.sleep(3600)
        except asyncio.CancelledError:
            inner_cancelled.set()
            raise

    runner = asyncio.create_task(scope.run(forever()))
    await asyncio.sleep(0.01)

    scope.cancel()

    with pytest.raises(OperationCancelledError):
        await asyncio.wait_for(runner, timeout=1.0)
    assert inner_cancelled.is_set()


@pytest.mark.asyncio
async def test_run_on_cancelled_scope_raises() -> None:
    scope = CancellationScope()
    scope.cancel()
    awaitable = asyncio.sleep(0)
    with pytest.raises(OperationCancelledError):
        await scope.run(awaitable)
    awaitable.close()


@pytest.mark.asyncio
async def test_task_cancellation_is_not_scope_cancellation() -> None:
    scope = CancellationScope()
    runner = asyncio.create_task(scope.run(asyncio.sleep(3600)))
    await asyncio.sleep(0.01)

    runner.cancel()

    with pytest.raises(asyncio.CancelledError):
        await runner
    assert not scope.is_cancelled
