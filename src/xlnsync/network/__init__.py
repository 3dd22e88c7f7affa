"""
xlnsync network - real-time synchronization of the network graph.

Keeps a client-side mirror of a remote network graph consistent with an
unordered stream of snapshots, deltas, metrics and consensus events, and
keeps it moving from a simulated stream when the server is unreachable.
"""

from xlnsync.network.clock import AsyncioClock, Clock, ManualClock
from xlnsync.network.connection_manager import (
    ConnectionManager,
    ConnectionManagerConfig,
    ConnectionStatus,
)
from xlnsync.network.consensus import ConsensusScheduler, ConsensusSchedulerConfig
from xlnsync.network.dispatcher import Subscription, UpdateDispatcher
from xlnsync.network.engine import SyncEngine, create_sync_engine
from xlnsync.network.messages import (
    EventKind,
    InboundEvent,
    NetworkUpdate,
    OutboundEvent,
    UpdateType,
    decode_frame,
    decode_inbound,
    encode_frame,
)
from xlnsync.network.models import (
    AccountDetails,
    Channel,
    ConsensusEvent,
    ConsensusType,
    CrossChainSwap,
    DepositaryDetails,
    EntityDetails,
    EntityHealth,
    HealthStatus,
    JurisdictionDetails,
    NetworkDelta,
    NetworkLayer,
    NetworkMetrics,
    NetworkNode,
    NetworkState,
    NodeType,
    Position,
    SwapStatus,
)
from xlnsync.network.reconciler import StateReconciler
from xlnsync.network.simulator import SimulatedStreamGenerator, SimulatorConfig
from xlnsync.network.transport import Transport, WebSocketTransport

__all__ = [
    # Clock
    "Clock",
    "AsyncioClock",
    "ManualClock",
    # Connection
    "ConnectionManager",
    "ConnectionManagerConfig",
    "ConnectionStatus",
    "Transport",
    "WebSocketTransport",
    # Delivery
    "UpdateDispatcher",
    "Subscription",
    "ConsensusScheduler",
    "ConsensusSchedulerConfig",
    "StateReconciler",
    "SimulatedStreamGenerator",
    "SimulatorConfig",
    # Engine
    "SyncEngine",
    "create_sync_engine",
    # Messages
    "EventKind",
    "InboundEvent",
    "OutboundEvent",
    "UpdateType",
    "NetworkUpdate",
    "decode_inbound",
    "encode_frame",
    "decode_frame",
    # Models
    "NodeType",
    "NetworkLayer",
    "ConsensusType",
    "HealthStatus",
    "SwapStatus",
    "Position",
    "EntityHealth",
    "JurisdictionDetails",
    "DepositaryDetails",
    "EntityDetails",
    "AccountDetails",
    "NetworkNode",
    "Channel",
    "NetworkMetrics",
    "NetworkState",
    "NetworkDelta",
    "ConsensusEvent",
    "CrossChainSwap",
]
