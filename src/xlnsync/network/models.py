"""
Data model for the mirrored network graph.

NetworkNode: tagged variant (jurisdiction, depositary, entity, account)
    with a common header and a variant-specific payload
Channel: edge between two nodes, carrying capacity and credit
NetworkState: full snapshot (nodes, channels, metrics, version)
NetworkDelta: incremental additions / partial updates / removals
NetworkMetrics: aggregate counters, trusted as received
ConsensusEvent: one round of an entity's agreement process
CrossChainSwap: hash-locked swap between two entities

All models are frozen and use tuples for sequences, so a reference handed
out by the reconciler's read API cannot be used to mutate the graph. Wire
keys are camelCase; big-integer fields travel as decimal strings.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Union

# Fields that carry unsigned 256-bit-range integers on the wire
BIG_INT_FIELDS = frozenset({
    "reserves",
    "tvl",
    "capacity",
    "available",
    "creditLine",
    "balance",
    "creditLimit",
    "totalTvl",
    "transactionVolume24h",
    "amount",
})

MAX_BIG_INT = 2**256 - 1

# Exceptions a from_dict() may raise on a malformed payload
DECODE_ERRORS = (KeyError, ValueError, TypeError)


def parse_big_int(value: Any, field_name: str = "value") -> int:
    """Parse an unsigned 256-bit integer from its wire form.

    Accepts ints and decimal strings (the form big integers are serialized
    in). Integral floats are tolerated for producers that lose precision.

    Raises:
        ValueError: If the value is not an unsigned integer in range
        TypeError: If the value has an unsupported type
    """
    if isinstance(value, bool):
        raise TypeError(f"{field_name}: expected integer, got bool")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        result = int(value.strip())
    elif isinstance(value, float) and value.is_integer():
        result = int(value)
    else:
        raise TypeError(f"{field_name}: expected integer, got {type(value).__name__}")

    if result < 0:
        raise ValueError(f"{field_name} must be unsigned, got {result}")
    if result > MAX_BIG_INT:
        raise ValueError(f"{field_name} exceeds the 256-bit range")
    return result


def normalize_partial(data: Mapping[str, Any]) -> dict[str, Any]:
    """Copy a partial update, parsing any big-integer fields it carries."""
    if not isinstance(data, Mapping):
        raise TypeError(f"Partial update must be an object, got {type(data).__name__}")
    return {
        key: parse_big_int(value, key) if key in BIG_INT_FIELDS else value
        for key, value in data.items()
    }


# =============================================================================
# ENUMERATIONS
# =============================================================================


class NodeType(StrEnum):
    """Variant tag of a network node."""

    JURISDICTION = "jurisdiction"
    DEPOSITARY = "depositary"
    ENTITY = "entity"
    ACCOUNT = "account"


class NetworkLayer(StrEnum):
    """Hierarchical layer a node is displayed on."""

    JURISDICTION = "jurisdiction"
    DEPOSITARY = "depositary"
    ENTITY = "entity"
    CHANNEL = "channel"
    TRANSACTION = "transaction"


class ConsensusType(StrEnum):
    PROPOSER_BASED = "proposer_based"
    GOSSIP_BASED = "gossip_based"


class HealthStatus(StrEnum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class SwapStatus(StrEnum):
    PENDING = "pending"
    LOCKED = "locked"
    REVEALED = "revealed"
    COMPLETED = "completed"
    FAILED = "failed"


# Layer a node lands on when the producer leaves it out
DEFAULT_LAYERS: dict[NodeType, NetworkLayer] = {
    NodeType.JURISDICTION: NetworkLayer.JURISDICTION,
    NodeType.DEPOSITARY: NetworkLayer.DEPOSITARY,
    NodeType.ENTITY: NetworkLayer.ENTITY,
    NodeType.ACCOUNT: NetworkLayer.ENTITY,
}


# =============================================================================
# NODE PAYLOADS
# =============================================================================


@dataclass(frozen=True)
class Position:
    x: float
    y: float

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Position":
        return cls(x=float(data["x"]), y=float(data["y"]))


@dataclass(frozen=True)
class EntityHealth:
    """Health report of an entity's state machine."""

    status: HealthStatus
    uptime: float
    latency: float
    error_rate: float
    consensus_participation: float

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "uptime": self.uptime,
            "latency": self.latency,
            "errorRate": self.error_rate,
            "consensusParticipation": self.consensus_participation,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EntityHealth":
        return cls(
            status=HealthStatus(data["status"]),
            uptime=float(data.get("uptime", 0.0)),
            latency=float(data.get("latency", 0.0)),
            error_rate=float(data.get("errorRate", 0.0)),
            consensus_participation=float(data.get("consensusParticipation", 0.0)),
        )


@dataclass(frozen=True)
class JurisdictionDetails:
    framework: str = ""
    dispute_resolution_rules: tuple[str, ...] = ()
    depositaries: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "framework": self.framework,
            "disputeResolutionRules": list(self.dispute_resolution_rules),
            "depositaries": list(self.depositaries),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "JurisdictionDetails":
        return cls(
            framework=str(data.get("framework", "")),
            dispute_resolution_rules=tuple(data.get("disputeResolutionRules", ())),
            depositaries=tuple(data.get("depositaries", ())),
        )


@dataclass(frozen=True)
class DepositaryDetails:
    """On-chain depositary contract."""

    chain_id: str
    contract_address: str = ""
    reserves: int = 0
    entities: tuple[str, ...] = ()
    last_root_hash: str = ""
    last_root_height: int = 0

    def to_dict(self) -> dict:
        return {
            "chainId": self.chain_id,
            "contractAddress": self.contract_address,
            "reserves": str(self.reserves),
            "entities": list(self.entities),
            "lastRootHash": self.last_root_hash,
            "lastRootHeight": self.last_root_height,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DepositaryDetails":
        return cls(
            chain_id=str(data["chainId"]),
            contract_address=str(data.get("contractAddress", "")),
            reserves=parse_big_int(data.get("reserves", 0), "reserves"),
            entities=tuple(data.get("entities", ())),
            last_root_hash=str(data.get("lastRootHash", "")),
            last_root_height=int(data.get("lastRootHeight", 0)),
        )


@dataclass(frozen=True)
class EntityDetails:
    """Sovereign state machine run by a validator set."""

    depositary_id: str
    consensus_type: ConsensusType
    validators: tuple[str, ...]
    tvl: int
    transaction_rate: float
    health: EntityHealth
    channels: tuple[str, ...] = ()
    channel_count: int = 0

    def to_dict(self) -> dict:
        return {
            "depositaryId": self.depositary_id,
            "consensusType": self.consensus_type.value,
            "validators": list(self.validators),
            "channels": list(self.channels),
            "tvl": str(self.tvl),
            "channelCount": self.channel_count,
            "transactionRate": self.transaction_rate,
            "health": self.health.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EntityDetails":
        channels = tuple(data.get("channels", ()))
        return cls(
            depositary_id=str(data["depositaryId"]),
            consensus_type=ConsensusType(data["consensusType"]),
            validators=tuple(data["validators"]),
            tvl=parse_big_int(data["tvl"], "tvl"),
            transaction_rate=float(data["transactionRate"]),
            health=EntityHealth.from_dict(data["health"]),
            channels=channels,
            channel_count=int(data.get("channelCount", len(channels))),
        )


@dataclass(frozen=True)
class AccountDetails:
    entity_id: str
    address: str = ""
    balance: int = 0
    credit_limit: int = 0
    channels: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "entityId": self.entity_id,
            "address": self.address,
            "balance": str(self.balance),
            "creditLimit": str(self.credit_limit),
            "channels": list(self.channels),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AccountDetails":
        return cls(
            entity_id=str(data["entityId"]),
            address=str(data.get("address", "")),
            balance=parse_big_int(data.get("balance", 0), "balance"),
            credit_limit=parse_big_int(data.get("creditLimit", 0), "creditLimit"),
            channels=tuple(data.get("channels", ())),
        )


NodeDetails = Union[JurisdictionDetails, DepositaryDetails, EntityDetails, AccountDetails]


# =============================================================================
# GRAPH ELEMENTS
# =============================================================================


@dataclass(frozen=True)
class NetworkNode:
    """
    A node of the network graph.

    The header (id, type, name, layer, position) is shared by every variant;
    ``details`` holds the variant payload selected by ``type``. On the wire
    both are flattened into one object.
    """

    id: str
    type: NodeType
    name: str
    layer: NetworkLayer
    details: NodeDetails
    position: Position | None = None

    @property
    def entity(self) -> EntityDetails | None:
        """Entity payload, or None for other variants."""
        return self.details if isinstance(self.details, EntityDetails) else None

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "type": self.type.value,
            "name": self.name,
            "layer": self.layer.value,
            **self.details.to_dict(),
        }
        if self.position is not None:
            data["position"] = self.position.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "NetworkNode":
        node_type = NodeType(data["type"])

        details: NodeDetails
        match node_type:
            case NodeType.JURISDICTION:
                details = JurisdictionDetails.from_dict(data)
            case NodeType.DEPOSITARY:
                details = DepositaryDetails.from_dict(data)
            case NodeType.ENTITY:
                details = EntityDetails.from_dict(data)
            case NodeType.ACCOUNT:
                details = AccountDetails.from_dict(data)

        position = data.get("position")
        layer = data.get("layer")
        return cls(
            id=str(data["id"]),
            type=node_type,
            name=str(data.get("name", "")),
            layer=NetworkLayer(layer) if layer else DEFAULT_LAYERS[node_type],
            details=details,
            position=Position.from_dict(position) if position else None,
        )

    def merge(self, update: Mapping[str, Any]) -> "NetworkNode":
        """Return a copy with the fields of a partial update merged in.

        The merge is shallow: a nested field such as ``health`` is replaced
        as a whole. ``id`` and ``type`` are never changed by an update.
        """
        merged = {**self.to_dict(), **update, "id": self.id, "type": self.type.value}
        return NetworkNode.from_dict(merged)


@dataclass(frozen=True)
class Channel:
    """Payment channel between two nodes."""

    id: str
    source: str
    target: str
    capacity: int
    available: int
    credit_line: int
    is_active: bool
    last_update: float

    def touches(self, node_id: str) -> bool:
        return self.source == node_id or self.target == node_id

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "source": self.source,
            "target": self.target,
            "capacity": str(self.capacity),
            "available": str(self.available),
            "creditLine": str(self.credit_line),
            "isActive": self.is_active,
            "lastUpdate": self.last_update,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Channel":
        return cls(
            id=str(data["id"]),
            source=str(data["source"]),
            target=str(data["target"]),
            capacity=parse_big_int(data["capacity"], "capacity"),
            available=parse_big_int(data["available"], "available"),
            credit_line=parse_big_int(data.get("creditLine", 0), "creditLine"),
            is_active=bool(data.get("isActive", True)),
            last_update=float(data.get("lastUpdate", 0)),
        )

    def merge(self, update: Mapping[str, Any]) -> "Channel":
        """Return a copy with a partial update merged in (``id`` is kept)."""
        return Channel.from_dict({**self.to_dict(), **update, "id": self.id})


@dataclass(frozen=True)
class NetworkMetrics:
    """Network-wide aggregates. Computed by the producer, never locally."""

    total_tvl: int = 0
    total_entities: int = 0
    total_channels: int = 0
    total_accounts: int = 0
    active_channels: int = 0
    transaction_volume_24h: int = 0
    average_tps: float = 0.0
    network_health: float = 0.0  # 0-100

    def to_dict(self) -> dict:
        return {
            "totalTvl": str(self.total_tvl),
            "totalEntities": self.total_entities,
            "totalChannels": self.total_channels,
            "totalAccounts": self.total_accounts,
            "activeChannels": self.active_channels,
            "transactionVolume24h": str(self.transaction_volume_24h),
            "averageTps": self.average_tps,
            "networkHealth": self.network_health,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "NetworkMetrics":
        return cls(
            total_tvl=parse_big_int(data["totalTvl"], "totalTvl"),
            total_entities=int(data["totalEntities"]),
            total_channels=int(data["totalChannels"]),
            total_accounts=int(data["totalAccounts"]),
            active_channels=int(data["activeChannels"]),
            transaction_volume_24h=parse_big_int(
                data["transactionVolume24h"], "transactionVolume24h"
            ),
            average_tps=float(data["averageTps"]),
            network_health=float(data["networkHealth"]),
        )


@dataclass(frozen=True)
class NetworkState:
    """Complete snapshot superseding any prior state."""

    nodes: tuple[NetworkNode, ...]
    channels: tuple[Channel, ...]
    version: int
    metrics: NetworkMetrics = field(default_factory=NetworkMetrics)
    timestamp: float = 0.0

    def to_dict(self) -> dict:
        return {
            "nodes": [node.to_dict() for node in self.nodes],
            "channels": [channel.to_dict() for channel in self.channels],
            "metrics": self.metrics.to_dict(),
            "timestamp": self.timestamp,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "NetworkState":
        metrics = data.get("metrics")
        return cls(
            nodes=tuple(NetworkNode.from_dict(n) for n in data["nodes"]),
            channels=tuple(Channel.from_dict(c) for c in data["channels"]),
            version=int(data["version"]),
            metrics=NetworkMetrics.from_dict(metrics) if metrics else NetworkMetrics(),
            timestamp=float(data.get("timestamp", 0)),
        )


@dataclass(frozen=True)
class NetworkDelta:
    """
    Incremental change against the current state.

    Updates are partial wire-form objects keyed by ``id``; only the fields
    present are merged into the existing entry.
    """

    added_nodes: tuple[NetworkNode, ...] = ()
    updated_nodes: tuple[dict[str, Any], ...] = ()
    removed_nodes: tuple[str, ...] = ()
    added_channels: tuple[Channel, ...] = ()
    updated_channels: tuple[dict[str, Any], ...] = ()
    removed_channels: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (
            self.added_nodes
            or self.updated_nodes
            or self.removed_nodes
            or self.added_channels
            or self.updated_channels
            or self.removed_channels
        )

    def to_dict(self) -> dict:
        data: dict[str, Any] = {}
        if self.added_nodes:
            data["addedNodes"] = [node.to_dict() for node in self.added_nodes]
        if self.updated_nodes:
            data["updatedNodes"] = [_serialize_partial(u) for u in self.updated_nodes]
        if self.removed_nodes:
            data["removedNodes"] = list(self.removed_nodes)
        if self.added_channels:
            data["addedChannels"] = [channel.to_dict() for channel in self.added_channels]
        if self.updated_channels:
            data["updatedChannels"] = [_serialize_partial(u) for u in self.updated_channels]
        if self.removed_channels:
            data["removedChannels"] = list(self.removed_channels)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "NetworkDelta":
        return cls(
            added_nodes=tuple(NetworkNode.from_dict(n) for n in data.get("addedNodes") or ()),
            updated_nodes=tuple(normalize_partial(u) for u in data.get("updatedNodes") or ()),
            removed_nodes=tuple(str(i) for i in data.get("removedNodes") or ()),
            added_channels=tuple(Channel.from_dict(c) for c in data.get("addedChannels") or ()),
            updated_channels=tuple(
                normalize_partial(u) for u in data.get("updatedChannels") or ()
            ),
            removed_channels=tuple(str(i) for i in data.get("removedChannels") or ()),
        )


def _serialize_partial(update: Mapping[str, Any]) -> dict[str, Any]:
    return {
        key: str(value) if key in BIG_INT_FIELDS and isinstance(value, int) else value
        for key, value in update.items()
    }


# =============================================================================
# DOMAIN EVENTS
# =============================================================================


@dataclass(frozen=True)
class ConsensusEvent:
    """
    One round of an entity's consensus.

    For proposer-based rounds the producer guarantees ``proposer`` is one of
    ``validators``; the engine does not check it.
    """

    id: str
    entity_id: str
    type: ConsensusType
    round: int
    validators: tuple[str, ...]
    timestamp: float
    duration: float
    success: bool
    proposer: str | None = None

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "entityId": self.entity_id,
            "type": self.type.value,
            "round": self.round,
            "validators": list(self.validators),
            "timestamp": self.timestamp,
            "duration": self.duration,
            "success": self.success,
        }
        if self.proposer is not None:
            data["proposer"] = self.proposer
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ConsensusEvent":
        return cls(
            id=str(data["id"]),
            entity_id=str(data["entityId"]),
            type=ConsensusType(data["type"]),
            round=int(data["round"]),
            validators=tuple(data.get("validators") or ()),
            timestamp=float(data["timestamp"]),
            duration=float(data.get("duration", 0.0)),
            success=bool(data.get("success", True)),
            proposer=data.get("proposer"),
        )


@dataclass(frozen=True)
class CrossChainSwap:
    """Hash-locked swap between entities on two chains."""

    id: str
    source_chain: str
    target_chain: str
    source_entity: str
    target_entity: str
    amount: int
    hash_lock: str
    status: SwapStatus
    timestamp: float

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sourceChain": self.source_chain,
            "targetChain": self.target_chain,
            "sourceEntity": self.source_entity,
            "targetEntity": self.target_entity,
            "amount": str(self.amount),
            "hashLock": self.hash_lock,
            "status": self.status.value,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CrossChainSwap":
        return cls(
            id=str(data["id"]),
            source_chain=str(data["sourceChain"]),
            target_chain=str(data["targetChain"]),
            source_entity=str(data["sourceEntity"]),
            target_entity=str(data["targetEntity"]),
            amount=parse_big_int(data["amount"], "amount"),
            hash_lock=str(data.get("hashLock", "")),
            status=SwapStatus(data["status"]),
            timestamp=float(data["timestamp"]),
        )
