"""
State Reconciler - owns the canonical mirror of the network graph.

This module manages:
- Wholesale replacement from full states, with version ordering
- Incremental deltas (add / shallow-merge update / cascading removal)
- Referential integrity: every channel endpoint resolves to a node
- A synchronous, side-effect-free read API

No other component holds a mutable reference to the graph. Models are
frozen, so the objects returned by the read API are safe to share.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Dict, Iterator, List, Optional

from ..core.exceptions import IntegrityError, StaleStateError
from .dispatcher import Subscription, UpdateDispatcher
from .messages import EventKind
from .models import (
    DECODE_ERRORS,
    Channel,
    NetworkDelta,
    NetworkLayer,
    NetworkMetrics,
    NetworkNode,
    NetworkState,
    NodeType,
)

logger = logging.getLogger(__name__)


class StateReconciler:
    """
    Applies snapshots and deltas to the in-memory graph.

    ``version`` follows full states only and never decreases. ``revision``
    counts every effective change (snapshot, delta or metrics) so readers
    can cheaply tell whether anything moved.
    """

    def __init__(self) -> None:
        self._nodes: Dict[str, NetworkNode] = {}
        self._channels: Dict[str, Channel] = {}
        self._metrics: Optional[NetworkMetrics] = None
        self._timestamp: float = 0.0
        self._version: int = 0
        self._revision: int = 0

        self._stats: Dict[str, int] = {
            "full_states_applied": 0,
            "stale_states_discarded": 0,
            "deltas_applied": 0,
            "metrics_applied": 0,
            "integrity_violations": 0,
            "unknown_updates_ignored": 0,
            "cascade_removals": 0,
            "resets": 0,
        }

    def get_stats(self) -> Dict[str, Any]:
        """Get reconciler statistics."""
        return {
            **self._stats,
            "nodes": len(self._nodes),
            "channels": len(self._channels),
            "version": self._version,
            "revision": self._revision,
        }

    def attach(self, dispatcher: UpdateDispatcher) -> List[Subscription]:
        """Subscribe to state, delta and metrics events on a dispatcher."""
        return [
            dispatcher.on(EventKind.STATE, self.apply_full_state),
            dispatcher.on(EventKind.DELTA, self.apply_delta),
            dispatcher.on(EventKind.METRICS, self.apply_metrics),
        ]

    # -------------------------------------------------------------------------
    # FULL STATE
    # -------------------------------------------------------------------------

    def apply_full_state(self, state: NetworkState) -> bool:
        """
        Replace the graph with a snapshot.

        A snapshot older than the current version is discarded. Channels
        whose endpoints are not in the snapshot are dropped. This is the
        single entrypoint for every source of full state (live stream,
        fallback generator, rehydrated history).

        Returns:
            True if the snapshot was applied
        """
        try:
            self._check_version(state.version)
        except StaleStateError as e:
            self._stats["stale_states_discarded"] += 1
            logger.warning(f"Discarding full state: {e.message}")
            return False

        nodes: Dict[str, NetworkNode] = {}
        for node in state.nodes:
            if node.id in nodes:
                logger.warning(f"Duplicate node id {node.id} in full state, keeping last")
            nodes[node.id] = node

        channels: Dict[str, Channel] = {}
        for channel in state.channels:
            try:
                self._check_endpoints(channel, nodes)
            except IntegrityError as e:
                self._stats["integrity_violations"] += 1
                logger.warning(f"Dropping channel from full state: {e.message}")
                continue
            if channel.id in channels:
                logger.warning(f"Duplicate channel id {channel.id} in full state, keeping last")
            channels[channel.id] = channel

        self._nodes = nodes
        self._channels = channels
        self._metrics = state.metrics
        self._timestamp = state.timestamp
        self._version = state.version
        self._revision += 1
        self._stats["full_states_applied"] += 1

        logger.debug(
            f"Applied full state v{state.version}: "
            f"{len(nodes)} nodes, {len(channels)} channels"
        )
        return True

    def _check_version(self, incoming: int) -> None:
        if incoming < self._version:
            raise StaleStateError(incoming, self._version)

    @staticmethod
    def _check_endpoints(channel: Channel, nodes: Mapping[str, NetworkNode]) -> None:
        for endpoint in (channel.source, channel.target):
            if endpoint not in nodes:
                raise IntegrityError(
                    f"Channel {channel.id} references unknown node {endpoint}",
                    item_id=channel.id,
                )

    # -------------------------------------------------------------------------
    # DELTA
    # -------------------------------------------------------------------------

    def apply_delta(self, delta: NetworkDelta) -> bool:
        """
        Apply an incremental change.

        Order: added nodes, node updates, node removals (with cascade),
        added channels, channel updates, channel removals. Items that would
        break referential integrity are skipped individually; the rest of
        the delta still applies. Re-applying the same delta changes nothing.

        Returns:
            True if the graph differs from what it was before the delta
        """
        nodes_before = dict(self._nodes)
        channels_before = dict(self._channels)

        for node in delta.added_nodes:
            if node.id in self._nodes:
                logger.debug(f"Added node {node.id} overwrites existing entry")
            self._nodes[node.id] = node

        for update in delta.updated_nodes:
            self._merge_node(update)

        for node_id in delta.removed_nodes:
            self._remove_node(node_id)

        for channel in delta.added_channels:
            try:
                self._check_endpoints(channel, self._nodes)
            except IntegrityError as e:
                self._stats["integrity_violations"] += 1
                logger.warning(f"Ignoring added channel: {e.message}")
                continue
            self._channels[channel.id] = channel

        for update in delta.updated_channels:
            self._merge_channel(update)

        for channel_id in delta.removed_channels:
            self._channels.pop(channel_id, None)

        changed = self._nodes != nodes_before or self._channels != channels_before
        self._stats["deltas_applied"] += 1
        if changed:
            self._revision += 1
        return changed

    def _merge_node(self, update: Mapping[str, Any]) -> None:
        node_id = update.get("id")
        existing = self._nodes.get(node_id) if isinstance(node_id, str) else None
        if existing is None:
            self._stats["unknown_updates_ignored"] += 1
            logger.info(f"Ignoring update for unknown node {node_id!r}")
            return

        try:
            merged = existing.merge(update)
        except DECODE_ERRORS as e:
            logger.warning(f"Ignoring invalid update for node {node_id}: {e!r}")
            return

        self._nodes[node_id] = merged

    def _merge_channel(self, update: Mapping[str, Any]) -> None:
        channel_id = update.get("id")
        existing = self._channels.get(channel_id) if isinstance(channel_id, str) else None
        if existing is None:
            self._stats["unknown_updates_ignored"] += 1
            logger.info(f"Ignoring update for unknown channel {channel_id!r}")
            return

        try:
            merged = existing.merge(update)
            self._check_endpoints(merged, self._nodes)
        except IntegrityError as e:
            self._stats["integrity_violations"] += 1
            logger.warning(f"Ignoring channel update: {e.message}")
            return
        except DECODE_ERRORS as e:
            logger.warning(f"Ignoring invalid update for channel {channel_id}: {e!r}")
            return

        self._channels[channel_id] = merged

    def _remove_node(self, node_id: str) -> None:
        if self._nodes.pop(node_id, None) is None:
            return

        orphaned = [cid for cid, channel in self._channels.items() if channel.touches(node_id)]
        for channel_id in orphaned:
            del self._channels[channel_id]
        if orphaned:
            self._stats["cascade_removals"] += len(orphaned)
            logger.debug(f"Removing node {node_id} cascaded to {len(orphaned)} channel(s)")

    # -------------------------------------------------------------------------
    # METRICS
    # -------------------------------------------------------------------------

    def apply_metrics(self, metrics: NetworkMetrics) -> bool:
        """Store metrics as received. Returns True if they differ from the last."""
        self._stats["metrics_applied"] += 1
        if metrics == self._metrics:
            return False
        self._metrics = metrics
        self._revision += 1
        return True

    def reset(self) -> None:
        """
        Empty the mirror and drop the version baseline.

        Used when the update source changes: versions from the live server
        and from the simulated stream are unrelated, so the next source's
        first snapshot must not be gated on the previous one.
        """
        had_data = bool(self._nodes or self._channels or self._metrics is not None)
        self._nodes = {}
        self._channels = {}
        self._metrics = None
        self._timestamp = 0.0
        self._version = 0
        self._stats["resets"] += 1
        if had_data:
            self._revision += 1
        logger.info("Mirror reset")

    # -------------------------------------------------------------------------
    # READ API
    # -------------------------------------------------------------------------

    @property
    def version(self) -> int:
        return self._version

    @property
    def revision(self) -> int:
        return self._revision

    @property
    def timestamp(self) -> float:
        return self._timestamp

    @property
    def metrics(self) -> Optional[NetworkMetrics]:
        return self._metrics

    @property
    def node_count(self) -> int:
        return len(self._nodes)

    @property
    def channel_count(self) -> int:
        return len(self._channels)

    def get_node(self, node_id: str) -> Optional[NetworkNode]:
        return self._nodes.get(node_id)

    def get_channel(self, channel_id: str) -> Optional[Channel]:
        return self._channels.get(channel_id)

    def nodes(self) -> Iterator[NetworkNode]:
        return iter(list(self._nodes.values()))

    def channels(self) -> Iterator[Channel]:
        return iter(list(self._channels.values()))

    def nodes_by_type(self, node_type: NodeType | str) -> List[NetworkNode]:
        wanted = NodeType(node_type)
        return [node for node in self._nodes.values() if node.type is wanted]

    def nodes_by_layer(self, layer: NetworkLayer | str) -> List[NetworkNode]:
        wanted = NetworkLayer(layer)
        return [node for node in self._nodes.values() if node.layer is wanted]

    def channels_for_node(self, node_id: str) -> List[Channel]:
        return [channel for channel in self._channels.values() if channel.touches(node_id)]

    def snapshot(self) -> NetworkState:
        """Return the current graph as an immutable NetworkState."""
        return NetworkState(
            nodes=tuple(self._nodes.values()),
            channels=tuple(self._channels.values()),
            version=self._version,
            metrics=self._metrics or NetworkMetrics(),
            timestamp=self._timestamp,
        )
