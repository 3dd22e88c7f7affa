"""
SyncEngine - wires the dispatcher, reconciler, consensus scheduler and
connection manager into one object.

Each engine owns its own dispatcher, so several engines can run side by
side in one process without sharing listeners.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Callable, Dict, Optional, Union

from ..core.config import SyncSettings, get_config
from .clock import AsyncioClock, Clock
from .connection_manager import (
    ConnectionManager,
    ConnectionManagerConfig,
    ConnectionStatus,
    TransportFactory,
)
from .consensus import ConsensusHandler, ConsensusScheduler, ConsensusSchedulerConfig
from .dispatcher import Handler, Subscription, UpdateDispatcher
from .messages import EventKind
from .models import NetworkState
from .reconciler import StateReconciler
from .simulator import SimulatorConfig

logger = logging.getLogger(__name__)


class SyncEngine:
    """
    Client-side mirror of the network graph, kept current from the update
    stream (or the simulated stream when the server is unreachable).

    Example:
        async with SyncEngine() as engine:
            engine.on_consensus_event(print)
            ...
            print(engine.reconciler.node_count)
    """

    def __init__(
        self,
        settings: Optional[SyncSettings] = None,
        clock: Optional[Clock] = None,
        transport_factory: Optional[TransportFactory] = None,
        connection_config: Optional[ConnectionManagerConfig] = None,
        simulator_config: Optional[SimulatorConfig] = None,
        consensus_config: Optional[ConsensusSchedulerConfig] = None,
    ):
        settings = settings or get_config()
        self.clock = clock or AsyncioClock()

        self.dispatcher = UpdateDispatcher()
        self.reconciler = StateReconciler()
        self.connection = ConnectionManager(
            self.dispatcher,
            config=connection_config or ConnectionManagerConfig.from_settings(settings),
            simulator_config=simulator_config or SimulatorConfig.from_settings(settings),
            transport_factory=transport_factory,
            clock=self.clock,
        )
        self.consensus = ConsensusScheduler(
            config=consensus_config or ConsensusSchedulerConfig.from_settings(settings),
            clock=self.clock,
            sender=self.connection.send,
        )

        # Stored snapshots come from the live network
        self._mirror_source = ConnectionStatus.CONNECTED

        self._subscriptions = self.reconciler.attach(self.dispatcher)
        self._subscriptions.append(self.consensus.attach(self.dispatcher))
        self._subscriptions.append(self.dispatcher.on(EventKind.CONNECT, self._on_source_connected))

    @property
    def status(self) -> ConnectionStatus:
        return self.connection.status

    def get_stats(self) -> Dict[str, Any]:
        """Get statistics of every component."""
        return {
            "connection": self.connection.get_stats(),
            "dispatcher": self.dispatcher.get_stats(),
            "reconciler": self.reconciler.get_stats(),
            "consensus": self.consensus.get_stats(),
        }

    # -------------------------------------------------------------------------
    # LIFECYCLE
    # -------------------------------------------------------------------------

    async def connect(self, address: Optional[str] = None) -> ConnectionStatus:
        return await self.connection.connect(address)

    async def disconnect(self) -> None:
        """Close the connection and stop consensus delivery."""
        self.consensus.disconnect()
        await self.connection.disconnect()

    async def __aenter__(self) -> "SyncEngine":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.disconnect()

    def _on_source_connected(self) -> None:
        """
        Reset the mirror when updates start coming from a different source.

        Runs on the connect announcement, before the new source is asked
        for its first snapshot.
        """
        source = self.connection.status
        if source is self._mirror_source:
            return
        logger.info(
            f"Update source changed ({self._mirror_source.value} -> {source.value}), "
            f"resetting mirror at v{self.reconciler.version}"
        )
        self.reconciler.reset()
        self._mirror_source = source

    # -------------------------------------------------------------------------
    # SUBSCRIPTIONS
    # -------------------------------------------------------------------------

    def on(self, event: Union[EventKind, str], handler: Handler) -> Subscription:
        """Subscribe to a dispatcher event (state, delta, connect, swap, ...)."""
        return self.dispatcher.on(event, handler)

    def on_consensus_event(self, handler: ConsensusHandler) -> Callable[[], None]:
        """Subscribe to paced consensus events."""
        return self.consensus.on_consensus_event(handler)

    # -------------------------------------------------------------------------
    # REQUESTS
    # -------------------------------------------------------------------------

    def request_state(self) -> bool:
        return self.connection.request_state()

    def request_metrics(self) -> bool:
        return self.connection.request_metrics()

    def load_snapshot(self, state: Union[NetworkState, Mapping[str, Any]]) -> bool:
        """
        Bootstrap the mirror from a stored snapshot.

        Goes through the same entrypoint as live full states, so version
        ordering applies: a stored snapshot older than what is already
        mirrored is discarded.
        """
        if isinstance(state, Mapping):
            state = NetworkState.from_dict(state)
        logger.info(f"Loading stored snapshot v{state.version}")
        return self.reconciler.apply_full_state(state)


def create_sync_engine(
    seed: Optional[int] = None,
    settings: Optional[SyncSettings] = None,
    **kwargs: Any,
) -> SyncEngine:
    """
    Create a sync engine from settings.

    Args:
        seed: Seed for the simulated stream, overriding the configured one
        settings: Settings to use instead of the global configuration
        **kwargs: Additional SyncEngine parameters

    Returns:
        Configured SyncEngine
    """
    settings = settings or get_config()
    if seed is not None:
        settings = settings.model_copy(update={"fallback_seed": seed})
    return SyncEngine(settings=settings, **kwargs)
