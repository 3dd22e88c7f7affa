"""
Message taxonomy and wire codec for the network update stream.

Inbound (server -> client):
    network:update   {type: state|delta|metrics, data, timestamp}
    network:metrics  NetworkMetrics
    consensus:event  ConsensusEvent
    swap:event       CrossChainSwap
    swap:update      CrossChainSwap

Outbound (client -> server):
    request:state, request:metrics
    requestConsensusHistory  {entityId, limit}
    subscribeConsensus / unsubscribeConsensus  {entityId}

Frames are JSON text: ``{"event": <name>, "data": <payload>}``. Raw
messages are decoded exactly once, here, into an ``EventKind`` and a typed
model; nothing downstream dispatches on strings.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Union

from ..core.exceptions import MalformedMessageError
from .models import (
    BIG_INT_FIELDS,
    DECODE_ERRORS,
    ConsensusEvent,
    CrossChainSwap,
    NetworkDelta,
    NetworkMetrics,
    NetworkState,
)


class InboundEvent(StrEnum):
    """Event names the server emits."""

    NETWORK_UPDATE = "network:update"
    NETWORK_METRICS = "network:metrics"
    CONSENSUS_EVENT = "consensus:event"
    SWAP_EVENT = "swap:event"
    SWAP_UPDATE = "swap:update"


class OutboundEvent(StrEnum):
    """Event names the client sends."""

    REQUEST_STATE = "request:state"
    REQUEST_METRICS = "request:metrics"
    REQUEST_CONSENSUS_HISTORY = "requestConsensusHistory"
    SUBSCRIBE_CONSENSUS = "subscribeConsensus"
    UNSUBSCRIBE_CONSENSUS = "unsubscribeConsensus"


class UpdateType(StrEnum):
    """Type tag of a ``network:update`` message."""

    STATE = "state"
    DELTA = "delta"
    METRICS = "metrics"


class EventKind(StrEnum):
    """Closed set of typed events published on the dispatcher."""

    STATE = "state"
    DELTA = "delta"
    METRICS = "metrics"
    CONSENSUS = "consensus"
    SWAP = "swap"
    SWAP_UPDATE = "swapUpdate"
    CONNECT = "connect"
    DISCONNECT = "disconnect"
    ERROR = "error"


UpdatePayload = Union[NetworkState, NetworkDelta, NetworkMetrics]


@dataclass(frozen=True)
class NetworkUpdate:
    """The single raw update shape carrying snapshots, deltas and metrics."""

    type: UpdateType
    data: UpdatePayload
    timestamp: float

    @property
    def kind(self) -> EventKind:
        return EventKind(self.type.value)

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "data": self.data.to_dict(),
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "NetworkUpdate":
        """Decode a network update.

        Raises:
            MalformedMessageError: If the tag is unknown or the data is invalid
        """
        if not isinstance(data, Mapping):
            raise MalformedMessageError(
                "Network update must be an object",
                event=InboundEvent.NETWORK_UPDATE,
                payload=data,
            )

        try:
            update_type = UpdateType(data.get("type"))
        except ValueError:
            raise MalformedMessageError(
                f"Unknown update type: {data.get('type')!r}",
                event=InboundEvent.NETWORK_UPDATE,
                payload=data,
            ) from None

        raw = data.get("data")
        try:
            payload: UpdatePayload
            match update_type:
                case UpdateType.STATE:
                    payload = NetworkState.from_dict(raw)
                case UpdateType.DELTA:
                    payload = NetworkDelta.from_dict(raw or {})
                case UpdateType.METRICS:
                    payload = NetworkMetrics.from_dict(raw)
            timestamp = float(data.get("timestamp", 0))
        except DECODE_ERRORS as e:
            raise MalformedMessageError(
                f"Invalid {update_type.value} payload: {e!r}",
                event=InboundEvent.NETWORK_UPDATE,
                payload=raw,
            ) from e

        return cls(type=update_type, data=payload, timestamp=timestamp)


def decode_inbound(event: str, payload: Any) -> tuple[EventKind, Any]:
    """
    Decode one raw inbound message into a typed dispatcher event.

    Args:
        event: Wire event name
        payload: Decoded JSON payload

    Returns:
        (kind, model) pair ready for ``UpdateDispatcher.emit``

    Raises:
        MalformedMessageError: If the event is unknown or the payload invalid
    """
    try:
        inbound = InboundEvent(event)
    except ValueError:
        raise MalformedMessageError(f"Unknown event: {event!r}", event=event) from None

    if inbound is InboundEvent.NETWORK_UPDATE:
        update = NetworkUpdate.from_dict(payload)
        return update.kind, update.data

    try:
        match inbound:
            case InboundEvent.NETWORK_METRICS:
                return EventKind.METRICS, NetworkMetrics.from_dict(payload)
            case InboundEvent.CONSENSUS_EVENT:
                return EventKind.CONSENSUS, ConsensusEvent.from_dict(payload)
            case InboundEvent.SWAP_EVENT:
                return EventKind.SWAP, CrossChainSwap.from_dict(payload)
            case InboundEvent.SWAP_UPDATE:
                return EventKind.SWAP_UPDATE, CrossChainSwap.from_dict(payload)
    except DECODE_ERRORS as e:
        raise MalformedMessageError(
            f"Invalid {inbound.value} payload: {e!r}",
            event=event,
            payload=payload,
        ) from e

    raise MalformedMessageError(f"Unhandled event: {event!r}", event=event)


# =============================================================================
# FRAMING
# =============================================================================


def serialize_big_ints(obj: Any) -> Any:
    """Recursively convert big-integer fields to decimal strings."""
    if isinstance(obj, Mapping):
        return {
            key: str(value)
            if key in BIG_INT_FIELDS and isinstance(value, int) and not isinstance(value, bool)
            else serialize_big_ints(value)
            for key, value in obj.items()
        }
    if isinstance(obj, (list, tuple)):
        return [serialize_big_ints(item) for item in obj]
    return obj


def encode_frame(event: str, payload: Any = None) -> str:
    """Encode one message as a JSON text frame."""
    frame: dict[str, Any] = {"event": str(event)}
    if payload is not None:
        frame["data"] = serialize_big_ints(payload)
    return json.dumps(frame, separators=(",", ":"))


def decode_frame(raw: str | bytes) -> tuple[str, Any]:
    """
    Decode one JSON text frame.

    Returns:
        (event_name, payload); payload is None when the frame has no data

    Raises:
        MalformedMessageError: If the frame is not JSON or has no event name
    """
    try:
        frame = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedMessageError(f"Invalid JSON frame: {e}") from e

    if not isinstance(frame, dict):
        raise MalformedMessageError(
            f"Expected JSON object, got {type(frame).__name__}", payload=frame
        )

    event = frame.get("event")
    if not isinstance(event, str) or not event:
        raise MalformedMessageError("Frame has no event name", payload=frame)

    return event, frame.get("data")
