"""Orchestrates listening, searching and deduplication of NAT devices."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import List, Optional, overload

from natdiscovery.cancellation.cancellation_scope import CancellationScope
from natdiscovery.cancellation.operation_cancelled_error import (
    OperationCancelledError,
)
from natdiscovery.config.searcher_config import SearcherConfig
from natdiscovery.devices.device_registry import DeviceRegistry
from natdiscovery.devices.nat_device import NatDevice
from natdiscovery.discovery.discovery_strategy import (
    DiscoveryStrategy,
    DiscoveryStrategyFactory,
)
from natdiscovery.discovery.unknown_device_event import UnknownDeviceEvent
from natdiscovery.nat_protocol import NatProtocol
from natdiscovery.transport.datagram import Endpoint
from natdiscovery.transport.transport import Transport
from natdiscovery.util.stopable import Stopable

_logger = logging.getLogger(__name__)


class DeviceSearcher(DiscoveryStrategy.Client, Stopable):
    """Finds NAT devices using one pluggable `DiscoveryStrategy`.

    Owns a three-level cancellation hierarchy:
    - the master scope, alive while listening; cancelling it stops everything,
    - the overall-search scope, a child of master, one per continuous search,
    - the current-attempt scope, created by the strategy per search attempt
      and cancelled as soon as any device is found.

    Listening runs as a background task that feeds every datagram from the
    `Transport` to the strategy. Discovered devices are deduplicated in a
    `DeviceRegistry`, and `DeviceSearcher.Listener`s are told about each new
    device exactly once.

    NOTE: `begin_listening()`, `search()` and `stop()` must not be called
    concurrently on one instance; callers serialize them. A directed search
    may run while a continuous search is active.
    """

    # pylint: disable=R0903 # Abstract listener interface
    class Listener(ABC):
        """Interface for objects notified of discovery results."""

        @abstractmethod
        async def _on_device_found(self, device: NatDevice) -> None:
            """Called once for every newly discovered device identity.

            Args:
                device: The canonical instance stored by the searcher.
            """
            raise NotImplementedError(
                "DeviceSearcher.Listener._on_device_found"
                " must be implemented by subclasses."
            )

        @abstractmethod
        async def _on_unknown_device_found(
            self, event: UnknownDeviceEvent
        ) -> None:
            """Called for every response that did not decode as a device."""
            raise NotImplementedError(
                "DeviceSearcher.Listener._on_unknown_device_found"
                " must be implemented by subclasses."
            )

    def __init__(
        self,
        transport: Transport,
        strategy_factory: DiscoveryStrategyFactory,
        *,
        config: Optional[SearcherConfig] = None,
        registry: Optional[DeviceRegistry] = None,
    ) -> None:
        """Initializes the DeviceSearcher.

        Args:
            transport: Source of datagrams and sink of search requests.
                Disposed by `dispose()`.
            strategy_factory: Called once with this searcher (as the
                strategy's `Client`) and |transport| to build the strategy.
            config: Timing settings. Defaults to `SearcherConfig()`.
            registry: Registry for discovered devices. A fresh one is created
                if not given.

        Raises:
            ValueError: If |transport| or |strategy_factory| is None.
            TypeError: If the factory does not return a `DiscoveryStrategy`.
        """
        if transport is None:
            raise ValueError("transport cannot be None for DeviceSearcher.")
        if strategy_factory is None:
            raise ValueError(
                "strategy_factory cannot be None for DeviceSearcher."
            )

        self.__transport = transport
        self.__config = config if config is not None else SearcherConfig()
        self.__registry = registry if registry is not None else DeviceRegistry()
        self.__listeners: List[DeviceSearcher.Listener] = []

        strategy = strategy_factory(self, transport)
        if not isinstance(strategy, DiscoveryStrategy):
            raise TypeError(
                "strategy_factory must return a DiscoveryStrategy, got "
                f"{type(strategy).__name__}."
            )
        self.__strategy: DiscoveryStrategy = strategy

        self.__master_scope: Optional[CancellationScope] = None
        self.__overall_search_scope: Optional[CancellationScope] = None
        self.__current_attempt_scope: Optional[CancellationScope] = None

        self.__listening_task: Optional[asyncio.Task[None]] = None
        self.__search_task: Optional[asyncio.Task[None]] = None

    @property
    def listening(self) -> bool:
        """Whether the listening task has been launched and not yet stopped."""
        return self.__listening_task is not None

    @property
    def protocol(self) -> NatProtocol:
        """The discovery protocol this searcher speaks."""
        return self.__strategy.protocol

    @property
    def config(self) -> SearcherConfig:
        return self.__config

    @property
    def devices(self) -> List[NatDevice]:
        """Returns a snapshot of every device found since listening began."""
        return self.__registry.devices()

    def add_listener(self, listener: "DeviceSearcher.Listener") -> None:
        """Registers |listener|. Registering it again is a no-op."""
        if listener is None:
            raise ValueError("listener cannot be None.")
        if listener not in self.__listeners:
            self.__listeners.append(listener)

    def remove_listener(self, listener: "DeviceSearcher.Listener") -> None:
        """Unregisters |listener|, if registered."""
        if listener in self.__listeners:
            self.__listeners.remove(listener)

    def begin_listening(self) -> None:
        """Starts the listening task, unless it is already running.

        Creates a fresh master scope and clears previously found devices.
        Must be called from a running event loop.
        """
        if self.listening:
            return

        if self.__master_scope is not None:
            self.__master_scope.cancel()
        self.__master_scope = CancellationScope()
        self.__registry.clear()

        self.__listening_task = asyncio.create_task(
            self.__listen(self.__master_scope)
        )
        _logger.info("Started listening for %s devices.", self.protocol.name)

    async def __listen(self, scope: CancellationScope) -> None:
        """Feeds received datagrams to the strategy until |scope| ends.

        A failure in the transport ends the loop, and the searcher remains
        `listening` until `stop()`. A failure while decoding one datagram is
        logged and the loop moves on to the next one.
        """
        while not scope.is_cancelled:
            try:
                local_address, datagram = await self.__transport.receive(scope)
            except OperationCancelledError:
                return
            except Exception as e:  # pylint: disable=broad-exception-caught
                _logger.error(
                    "Listening for %s devices stopped after a transport "
                    "failure: %s",
                    self.protocol.name,
                    e,
                    exc_info=True,
                )
                return

            try:
                await self.__strategy.on_message(
                    local_address,
                    datagram.buffer,
                    datagram.remote_endpoint,
                    False,
                    scope,
                )
            except OperationCancelledError:
                return
            except Exception as e:  # pylint: disable=broad-exception-caught
                _logger.error(
                    "Failed to handle datagram from %s on %s: %s",
                    datagram.remote_endpoint,
                    local_address,
                    e,
                    exc_info=True,
                )

    async def handle_message_received(
        self, local_address: str, data: bytes, remote_endpoint: Endpoint
    ) -> None:
        """Hands a datagram received outside this searcher to the strategy.

        Failures raised by the strategy propagate to the caller.

        Args:
            local_address: Local interface address the datagram arrived on.
            data: The datagram payload.
            remote_endpoint: (host, port) the datagram came from.
        """
        scope = (
            self.__master_scope
            if self.__master_scope is not None
            else CancellationScope()
        )
        await self.__strategy.on_message(
            local_address, data, remote_endpoint, True, scope
        )

    @overload
    async def search(self) -> None:
        """Starts a continuous search, replacing any previous one.

        Repeats every `SearcherConfig.search_period_seconds` until the next
        continuous search or `stop()`. Failures are logged, never raised.
        """
        ...

    @overload
    async def search(self, target_address: str) -> None:
        """Runs a single search attempt aimed at |target_address|.

        Independent of any continuous search. Failures other than
        cancellation propagate to the caller.
        """
        ...

    async def search(self, target_address: Optional[str] = None) -> None:
        """Searches for devices. Overloaded: see the two forms above."""
        if target_address is None:
            await self.__search_continuously()
        else:
            await self.__search_directed(target_address)

    async def __search_continuously(self) -> None:
        if self.__overall_search_scope is not None:
            self.__overall_search_scope.cancel()
            self.__overall_search_scope.detach()
            self.__overall_search_scope = None

        previous_task = self.__search_task
        if previous_task is not None:
            await asyncio.wait([previous_task])
            self.__log_task_failure(previous_task, "search")
            self.__search_task = None

        self.begin_listening()
        assert self.__master_scope is not None

        overall_scope = self.__master_scope.create_child()
        overall_scope.add_cancel_callback(
            lambda: _logger.debug(
                "Continuous %s search cancelled.", self.protocol.name
            )
        )
        self.__overall_search_scope = overall_scope

        search_task = asyncio.create_task(
            self.__strategy.search(
                None, self.__config.search_period_seconds, overall_scope
            )
        )
        self.__search_task = search_task

        # Failures stay on the task, to be logged once when it is next joined.
        await asyncio.wait([search_task])

    async def __search_directed(self, target_address: str) -> None:
        self.begin_listening()
        assert self.__master_scope is not None

        try:
            await self.__strategy.search(
                target_address, None, self.__master_scope
            )
        except OperationCancelledError:
            _logger.debug(
                "Directed search of %s cancelled.", target_address
            )

    async def stop(self) -> None:
        """Stops listening and searching, and forgets all found devices.

        Waits up to `SearcherConfig.stop_timeout_seconds` for each background
        task. Task failures are logged, never raised. Idempotent.
        """
        if self.__master_scope is not None:
            _logger.info("Stopping %s searcher...", self.protocol.name)
            self.__master_scope.cancel()

        if self.__listening_task is not None:
            await self.__join_task(self.__listening_task, "listening")
        if self.__search_task is not None:
            await self.__join_task(self.__search_task, "search")

        self.__registry.clear()

        self.__master_scope = None
        self.__overall_search_scope = None
        self.__current_attempt_scope = None
        self.__listening_task = None
        self.__search_task = None

    def dispose(self) -> None:
        """Releases the transport's sockets."""
        self.__transport.dispose()

    async def raise_device_found(self, device: NatDevice) -> None:
        if self.__current_attempt_scope is not None:
            self.__current_attempt_scope.cancel()

        if not self.__registry.add_or_refresh(device):
            _logger.debug("Refreshed known device %s.", device)
            return

        _logger.info(
            "Found new %s device at %s (%d known).",
            device.protocol.name,
            device.device_endpoint,
            self.__registry.count(),
        )
        for listener in list(self.__listeners):
            try:
                # pylint: disable=W0212 # Listener callback
                await listener._on_device_found(device)
            except Exception as e:  # pylint: disable=broad-exception-caught
                _logger.error(
                    "Listener %s failed handling device %s: %s",
                    listener,
                    device.device_endpoint,
                    e,
                    exc_info=True,
                )

    async def raise_device_unknown(
        self,
        local_address: str,
        remote_endpoint: Endpoint,
        response: str | bytes,
        protocol: NatProtocol,
    ) -> None:
        event = UnknownDeviceEvent(
            local_address, remote_endpoint, response, protocol
        )
        _logger.debug(
            "Unrecognized %s response from %s.", protocol.name, remote_endpoint
        )
        for listener in list(self.__listeners):
            try:
                # pylint: disable=W0212 # Listener callback
                await listener._on_unknown_device_found(event)
            except Exception as e:  # pylint: disable=broad-exception-caught
                _logger.error(
                    "Listener %s failed handling response from %s: %s",
                    listener,
                    remote_endpoint,
                    e,
                    exc_info=True,
                )

    def create_attempt_scope(
        self, parent: CancellationScope
    ) -> CancellationScope:
        previous = self.__current_attempt_scope
        if previous is not None:
            previous.cancel()
            previous.detach()

        attempt_scope = parent.create_child()
        self.__current_attempt_scope = attempt_scope
        return attempt_scope

    async def __join_task(self, task: "asyncio.Task[None]", name: str) -> None:
        done, _ = await asyncio.wait(
            [task], timeout=self.__config.stop_timeout_seconds
        )
        if task not in done:
            _logger.warning(
                "The %s task did not finish within %s seconds; cancelling it.",
                name,
                self.__config.stop_timeout_seconds,
            )
            task.cancel()
            return

        self.__log_task_failure(task, name)

    @staticmethod
    def __log_task_failure(task: "asyncio.Task[None]", name: str) -> None:
        if task.cancelled():
            return
        exception = task.exception()
        if exception is None or isinstance(exception, OperationCancelledError):
            return
        _logger.error(
            "Unhandled exception in %s task: %s",
            name,
            exception,
            exc_info=exception,
        )
