"""
Simulated Stream Generator - synthetic feed used while no transport is up.

The generator keeps its own synthetic world (jurisdictions, depositaries,
entities, accounts and the channels between them) so every delta and
consensus event it produces references ids that exist. Payloads are built
in wire form and handed to the same sink the transport feeds, so nothing
downstream needs to know whether data is live or simulated.

Given a seed, the sequence of generated payloads is reproducible: all
randomness comes from one ``random.Random`` and all ids are counter-based.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from ..core.exceptions import ConfigException
from .clock import AsyncioClock, Clock, timestamp_ms
from .messages import EventKind, InboundEvent, UpdateType
from .models import (
    Channel,
    ConsensusEvent,
    ConsensusType,
    HealthStatus,
    NetworkDelta,
    NetworkMetrics,
    NetworkNode,
    NetworkState,
    NodeType,
)
from .reconciler import StateReconciler

if TYPE_CHECKING:
    from ..core.config import SyncSettings

logger = logging.getLogger(__name__)

Sink = Callable[[str, Any], Any]

ONE_TOKEN = 10**18

JURISDICTIONS = [
    ("United States", "Common Law"),
    ("European Union", "Civil Law"),
    ("Singapore", "Hybrid System"),
]
DISPUTE_RULES = ["Arbitration Required", "Court System Available", "Smart Contract Enforcement"]
CHAINS = ["Ethereum", "Polygon", "Arbitrum", "Optimism"]
ENTITY_KINDS = ["Exchange", "Lending Pool", "DEX", "Payment Processor", "Bridge"]
HEALTH_WEIGHTS = [
    (HealthStatus.HEALTHY, 0.7),
    (HealthStatus.DEGRADED, 0.2),
    (HealthStatus.UNHEALTHY, 0.1),
]


@dataclass
class SimulatorConfig:
    """Configuration for SimulatedStreamGenerator."""

    tick_interval: float = 2.0

    # Relative probabilities per tick
    metrics_weight: float = 0.3
    delta_weight: float = 0.2
    consensus_weight: float = 0.1
    idle_weight: float = 0.4

    seed: Optional[int] = None

    def __post_init__(self) -> None:
        if self.tick_interval <= 0:
            raise ConfigException("tick_interval must be positive", setting="tick_interval")
        weights = (self.metrics_weight, self.delta_weight, self.consensus_weight, self.idle_weight)
        if any(w < 0 for w in weights):
            raise ConfigException("Fallback weights must be non-negative", setting="weights")
        if sum(weights) <= 0:
            raise ConfigException("At least one fallback weight must be positive", setting="weights")

    @classmethod
    def from_settings(cls, settings: "SyncSettings") -> "SimulatorConfig":
        return cls(
            tick_interval=settings.fallback_tick_interval,
            metrics_weight=settings.fallback_metrics_weight,
            delta_weight=settings.fallback_delta_weight,
            consensus_weight=settings.fallback_consensus_weight,
            idle_weight=settings.fallback_idle_weight,
            seed=settings.fallback_seed,
        )


class SimulatedStreamGenerator:
    """
    Produces synthetic metrics, deltas, consensus events and snapshots.

    Responsible for:
    - The tick task (started and stopped by the connection manager)
    - Weighted choice of what to emit on each tick
    - Keeping its synthetic world consistent with what it has emitted
    """

    def __init__(
        self,
        sink: Sink,
        config: Optional[SimulatorConfig] = None,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize the generator.

        Args:
            sink: Receives (event name, wire payload), e.g.
                ``UpdateDispatcher.dispatch``
            config: Simulator configuration
            clock: Clock used for the tick and for timestamps
        """
        self.sink = sink
        self.config = config or SimulatorConfig()
        self._clock = clock or AsyncioClock()
        self._rng = random.Random(self.config.seed)

        self._world = StateReconciler()
        self._world_version = 0
        self._node_counter = 0
        self._channel_counter = 0
        self._event_counter = 0

        self._task: Optional[asyncio.Task] = None

        self._stats: Dict[str, int] = {
            "ticks": 0,
            "metrics_emitted": 0,
            "deltas_emitted": 0,
            "consensus_emitted": 0,
            "snapshots_emitted": 0,
            "idle_ticks": 0,
        }

    def get_stats(self) -> Dict[str, Any]:
        """Get generator statistics."""
        return {
            **self._stats,
            "running": self.is_running,
            "world_nodes": self._world.node_count,
            "world_channels": self._world.channel_count,
            "world_version": self._world_version,
        }

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    # -------------------------------------------------------------------------
    # LIFECYCLE
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Start the tick task. No-op if already running."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run())
        logger.info(f"Simulated stream started (tick every {self.config.tick_interval}s)")

    def stop(self) -> None:
        """Cancel the tick task. No tick fires after this returns."""
        if self._task is None:
            return
        if not self._task.done():
            self._task.cancel()
            logger.info("Simulated stream stopped")
        self._task = None

    async def _run(self) -> None:
        while True:
            await self._clock.sleep(self.config.tick_interval)
            try:
                self.tick()
            except Exception as e:
                logger.warning(f"Simulated tick failed: {e}", exc_info=True)

    # -------------------------------------------------------------------------
    # EMISSION
    # -------------------------------------------------------------------------

    def tick(self) -> Optional[EventKind]:
        """
        Emit one weighted-random update.

        Returns:
            The kind of event emitted, or None for an idle tick
        """
        self._stats["ticks"] += 1
        self._ensure_world()

        match self._choose():
            case EventKind.METRICS:
                self._emit_update(UpdateType.METRICS, self.generate_metrics())
                self._stats["metrics_emitted"] += 1
                return EventKind.METRICS
            case EventKind.DELTA:
                self._emit_update(UpdateType.DELTA, self.generate_delta())
                self._stats["deltas_emitted"] += 1
                return EventKind.DELTA
            case EventKind.CONSENSUS:
                event = self.generate_consensus_event()
                if event is not None:
                    self.sink(InboundEvent.CONSENSUS_EVENT.value, event.to_dict())
                    self._stats["consensus_emitted"] += 1
                    return EventKind.CONSENSUS

        self._stats["idle_ticks"] += 1
        return None

    def emit_metrics(self) -> NetworkMetrics:
        """Emit a metrics update immediately (answers metrics requests)."""
        metrics = self.generate_metrics()
        self._emit_update(UpdateType.METRICS, metrics)
        self._stats["metrics_emitted"] += 1
        return metrics

    def emit_snapshot(self) -> NetworkState:
        """Emit the synthetic world as a full state (answers state requests)."""
        state = self.snapshot()
        self._emit_update(UpdateType.STATE, state)
        self._stats["snapshots_emitted"] += 1
        return state

    def _emit_update(self, update_type: UpdateType, model: Any) -> None:
        self.sink(
            InboundEvent.NETWORK_UPDATE.value,
            {
                "type": update_type.value,
                "data": model.to_dict(),
                "timestamp": timestamp_ms(self._clock),
            },
        )

    def _choose(self) -> Optional[EventKind]:
        choices = [
            (EventKind.METRICS, self.config.metrics_weight),
            (EventKind.DELTA, self.config.delta_weight),
            (EventKind.CONSENSUS, self.config.consensus_weight),
            (None, self.config.idle_weight),
        ]
        total = sum(weight for _, weight in choices)
        roll = self._rng.random() * total
        cumulative = 0.0
        for kind, weight in choices:
            cumulative += weight
            if roll < cumulative:
                return kind
        return None

    # -------------------------------------------------------------------------
    # GENERATION
    # -------------------------------------------------------------------------

    def snapshot(self) -> NetworkState:
        """The synthetic world as a NetworkState (builds it on first use)."""
        self._ensure_world()
        return NetworkState(
            nodes=tuple(self._world.nodes()),
            channels=tuple(self._world.channels()),
            version=self._world_version,
            metrics=self.generate_metrics(),
            timestamp=timestamp_ms(self._clock),
        )

    def generate_metrics(self) -> NetworkMetrics:
        """Aggregate metrics over the synthetic world."""
        self._ensure_world()
        entities = [n.entity for n in self._world.nodes_by_type(NodeType.ENTITY)]
        accounts = self._world.nodes_by_type(NodeType.ACCOUNT)
        channels = list(self._world.channels())

        health_score = sum(
            1.0 if e.health.status is HealthStatus.HEALTHY
            else 0.5 if e.health.status is HealthStatus.DEGRADED
            else 0.0
            for e in entities
        )
        count = len(entities) or 1

        return NetworkMetrics(
            total_tvl=sum(e.tvl for e in entities),
            total_entities=len(entities),
            total_channels=len(channels),
            total_accounts=len(accounts),
            active_channels=sum(1 for c in channels if c.is_active),
            transaction_volume_24h=self._rng.randrange(1_000_000) * ONE_TOKEN,
            average_tps=sum(e.transaction_rate for e in entities) / count,
            network_health=health_score / count * 100,
        )

    def generate_delta(self) -> NetworkDelta:
        """
        Drift some entity and channel attributes; occasionally add an account.

        The delta is applied to the synthetic world before it is returned.
        """
        self._ensure_world()
        rng = self._rng
        now = timestamp_ms(self._clock)
        entities = self._world.nodes_by_type(NodeType.ENTITY)

        updated_nodes: List[Dict[str, Any]] = []
        for node in entities:
            if rng.random() <= 0.7:
                continue
            entity = node.entity
            tvl_drift = (rng.randrange(10_000) - 5_000) * ONE_TOKEN
            updated_nodes.append({
                "id": node.id,
                "health": self._health(),
                "transactionRate": max(0.0, entity.transaction_rate + (rng.random() - 0.5) * 100),
                "tvl": max(0, entity.tvl + tvl_drift),
            })
        if not updated_nodes and entities:
            node = rng.choice(entities)
            updated_nodes.append({"id": node.id, "transactionRate": float(rng.randrange(1000))})

        updated_channels: List[Dict[str, Any]] = []
        for channel in self._world.channels():
            if rng.random() <= 0.8:
                continue
            drift = (rng.randrange(1000) - 500) * ONE_TOKEN
            updated_channels.append({
                "id": channel.id,
                "available": min(channel.capacity, max(0, channel.available + drift)),
                "isActive": rng.random() > 0.05,
                "lastUpdate": now,
            })

        added_nodes: List[NetworkNode] = []
        added_channels = []
        if entities and rng.random() > 0.9:
            owner = rng.choice(entities)
            account = self._account(owner.id, f"New Account {self._node_counter + 1}")
            added_nodes.append(NetworkNode.from_dict(account))
            added_channels.append(self._channel(account["id"], owner.id, now))

        delta = NetworkDelta(
            added_nodes=tuple(added_nodes),
            updated_nodes=tuple(updated_nodes),
            added_channels=tuple(Channel.from_dict(c) for c in added_channels),
            updated_channels=tuple(updated_channels),
        )
        self._world.apply_delta(delta)
        return delta

    def generate_consensus_event(self) -> Optional[ConsensusEvent]:
        """A consensus round for a random synthetic entity."""
        self._ensure_world()
        entities = self._world.nodes_by_type(NodeType.ENTITY)
        if not entities:
            return None

        rng = self._rng
        node = rng.choice(entities)
        entity = node.entity
        validators = entity.validators[: rng.randint(1, len(entity.validators))]
        proposer_based = entity.consensus_type is ConsensusType.PROPOSER_BASED

        self._event_counter += 1
        return ConsensusEvent(
            id=f"consensus-{self._event_counter}",
            entity_id=node.id,
            type=entity.consensus_type,
            round=rng.randint(1, 1000),
            validators=validators,
            timestamp=timestamp_ms(self._clock),
            duration=500 + rng.random() * 2000,
            success=rng.random() > 0.1,
            proposer=validators[0] if proposer_based else None,
        )

    # -------------------------------------------------------------------------
    # SYNTHETIC WORLD
    # -------------------------------------------------------------------------

    def _ensure_world(self) -> None:
        if self._world_version == 0:
            self._build_world()

    def _build_world(self) -> None:
        rng = self._rng
        now = timestamp_ms(self._clock)
        nodes: List[Dict[str, Any]] = []
        entities: List[Dict[str, Any]] = []
        accounts: List[Dict[str, Any]] = []

        for name, framework in JURISDICTIONS:
            jurisdiction = {
                "id": self._next_node_id("jurisdiction"),
                "type": NodeType.JURISDICTION.value,
                "name": name,
                "layer": "jurisdiction",
                "framework": framework,
                "disputeResolutionRules": list(DISPUTE_RULES),
                "depositaries": [],
            }
            nodes.append(jurisdiction)

            for i in range(rng.randint(2, 4)):
                chain = CHAINS[i % len(CHAINS)]
                depositary = {
                    "id": self._next_node_id("depositary"),
                    "type": NodeType.DEPOSITARY.value,
                    "name": f"{name} {chain} Depositary",
                    "layer": "depositary",
                    "chainId": chain.lower(),
                    "contractAddress": self._address(),
                    "reserves": rng.randrange(1_000_000) * ONE_TOKEN,
                    "entities": [],
                    "lastRootHash": self._hash(),
                    "lastRootHeight": rng.randrange(10_000),
                }
                jurisdiction["depositaries"].append(depositary["id"])
                nodes.append(depositary)

                for j in range(rng.randint(2, 5)):
                    entity = {
                        "id": self._next_node_id("entity"),
                        "type": NodeType.ENTITY.value,
                        "name": f"{ENTITY_KINDS[j % len(ENTITY_KINDS)]} #{j + 1}",
                        "layer": "entity",
                        "depositaryId": depositary["id"],
                        "consensusType": rng.choice(list(ConsensusType)).value,
                        "validators": [self._address() for _ in range(rng.randint(3, 7))],
                        "channels": [],
                        "tvl": rng.randrange(500_000) * ONE_TOKEN,
                        "channelCount": 0,
                        "transactionRate": rng.random() * 1000,
                        "health": self._health(),
                    }
                    depositary["entities"].append(entity["id"])
                    nodes.append(entity)
                    entities.append(entity)

        for entity in entities:
            if rng.random() > 0.5:
                for k in range(rng.randint(1, 5)):
                    account = self._account(entity["id"], f"Account {k + 1}")
                    nodes.append(account)
                    accounts.append(account)

        channels: List[Dict[str, Any]] = []
        for i, left in enumerate(entities):
            for right in entities[i + 1:]:
                if rng.random() > 0.6:
                    channel = self._channel(left["id"], right["id"], now)
                    channels.append(channel)
                    for end in (left, right):
                        end["channels"].append(channel["id"])
                        end["channelCount"] += 1

        for account in accounts:
            if rng.random() > 0.3:
                channel = self._channel(account["id"], account["entityId"], now)
                channels.append(channel)
                account["channels"].append(channel["id"])

        self._world_version = 1
        self._world.apply_full_state(NetworkState.from_dict({
            "nodes": nodes,
            "channels": channels,
            "version": self._world_version,
            "timestamp": now,
        }))
        logger.debug(
            f"Built synthetic world: {len(nodes)} nodes, {len(channels)} channels"
        )

    def _account(self, entity_id: str, name: str) -> Dict[str, Any]:
        rng = self._rng
        return {
            "id": self._next_node_id("account"),
            "type": NodeType.ACCOUNT.value,
            "name": name,
            "layer": "entity",
            "entityId": entity_id,
            "address": self._address(),
            "balance": rng.randrange(10_000) * ONE_TOKEN,
            "creditLimit": rng.randrange(5_000) * ONE_TOKEN,
            "channels": [],
        }

    def _channel(self, source: str, target: str, now: int) -> Dict[str, Any]:
        rng = self._rng
        self._channel_counter += 1
        capacity = rng.randrange(100_000) * ONE_TOKEN
        used = rng.randrange(capacity // ONE_TOKEN + 1) * ONE_TOKEN
        return {
            "id": f"channel-{self._channel_counter}",
            "source": source,
            "target": target,
            "capacity": capacity,
            "available": capacity - used,
            "creditLine": rng.randrange(50_000) * ONE_TOKEN,
            "isActive": rng.random() > 0.1,
            "lastUpdate": now,
        }

    def _health(self) -> Dict[str, Any]:
        rng = self._rng
        roll = rng.random()
        status = HealthStatus.HEALTHY
        cumulative = 0.0
        for candidate, weight in HEALTH_WEIGHTS:
            cumulative += weight
            if roll < cumulative:
                status = candidate
                break
        return {
            "status": status.value,
            "uptime": 0.8 + rng.random() * 0.2,
            "latency": 10 + rng.random() * 100,
            "errorRate": rng.random() * 0.05,
            "consensusParticipation": 0.7 + rng.random() * 0.3,
        }

    def _next_node_id(self, prefix: str) -> str:
        self._node_counter += 1
        return f"{prefix}-{self._node_counter}"

    def _address(self) -> str:
        return f"0x{self._rng.getrandbits(160):040x}"

    def _hash(self) -> str:
        return f"0x{self._rng.getrandbits(256):064x}"
