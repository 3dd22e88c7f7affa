"""
Consensus Event Scheduler - serializes and paces consensus event delivery.

Events are queued in arrival order and drained by a single task: pop the
head, notify every observer synchronously in registration order, then
sleep for the pacing interval before the next one. The pacing sleep is the
only suspension point, and it never blocks delta or metrics delivery,
which travel straight through the dispatcher.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Deque, Dict, List, Optional

from .clock import AsyncioClock, Clock
from .dispatcher import Subscription, UpdateDispatcher
from .messages import EventKind, OutboundEvent
from .models import ConsensusEvent

if TYPE_CHECKING:
    from ..core.config import SyncSettings

logger = logging.getLogger(__name__)

ConsensusHandler = Callable[[ConsensusEvent], Any]
Sender = Callable[[str, Any], Any]


@dataclass
class ConsensusSchedulerConfig:
    """Configuration for ConsensusScheduler."""

    pacing_interval: float = 0.5  # seconds between deliveries

    @classmethod
    def from_settings(cls, settings: "SyncSettings") -> "ConsensusSchedulerConfig":
        return cls(pacing_interval=settings.consensus_pacing_interval)


class ConsensusScheduler:
    """
    FIFO queue plus one guarded drain task.

    Guarantees:
    - Delivery order equals arrival order
    - At most one drain runs at a time, so no two events overlap
    - An observer that raises is logged and skipped; the queue keeps moving
    """

    def __init__(
        self,
        config: Optional[ConsensusSchedulerConfig] = None,
        clock: Optional[Clock] = None,
        sender: Optional[Sender] = None,
    ):
        """
        Initialize the ConsensusScheduler.

        Args:
            config: Scheduler configuration
            clock: Clock used for the pacing sleep
            sender: Outbound send function (event name, payload) used for
                history requests and entity subscriptions
        """
        self.config = config or ConsensusSchedulerConfig()
        self._clock = clock or AsyncioClock()
        self._sender = sender

        self._queue: Deque[ConsensusEvent] = deque()
        self._observers: List[ConsensusHandler] = []
        self._drain_task: Optional[asyncio.Task] = None

        self._stats: Dict[str, int] = {
            "events_received": 0,
            "events_delivered": 0,
            "events_discarded": 0,
            "observer_errors": 0,
        }

    def get_stats(self) -> Dict[str, Any]:
        """Get scheduler statistics."""
        return {
            **self._stats,
            "queued": len(self._queue),
            "observers": len(self._observers),
            "draining": self.is_draining,
        }

    @property
    def pending_count(self) -> int:
        return len(self._queue)

    @property
    def is_draining(self) -> bool:
        return self._drain_task is not None and not self._drain_task.done()

    def attach(self, dispatcher: UpdateDispatcher) -> Subscription:
        """Feed consensus events from a dispatcher into the queue."""
        return dispatcher.on(EventKind.CONSENSUS, self.push)

    # -------------------------------------------------------------------------
    # OBSERVERS
    # -------------------------------------------------------------------------

    def on_consensus_event(self, handler: ConsensusHandler) -> Callable[[], None]:
        """
        Register an observer.

        Returns:
            Callable that deregisters this observer
        """
        self._observers.append(handler)

        def unsubscribe() -> None:
            try:
                self._observers.remove(handler)
            except ValueError:
                pass

        return unsubscribe

    # -------------------------------------------------------------------------
    # QUEUE
    # -------------------------------------------------------------------------

    def push(self, event: ConsensusEvent) -> None:
        """Append an event to the queue and make sure a drain is running."""
        self._queue.append(event)
        self._stats["events_received"] += 1
        if not self.is_draining:
            self._drain_task = asyncio.create_task(self._drain())

    async def _drain(self) -> None:
        while self._queue:
            event = self._queue.popleft()
            self._notify(event)
            await self._clock.sleep(self.config.pacing_interval)

    def _notify(self, event: ConsensusEvent) -> None:
        for handler in list(self._observers):
            try:
                handler(event)
            except Exception as e:
                self._stats["observer_errors"] += 1
                logger.warning(
                    f"Consensus observer failed on event {event.id}: {e}",
                    exc_info=True,
                )
        self._stats["events_delivered"] += 1

    # -------------------------------------------------------------------------
    # OUTBOUND REQUESTS
    # -------------------------------------------------------------------------

    def request_history(self, entity_id: str, limit: int = 10) -> bool:
        """Ask the server for the last ``limit`` consensus rounds of an entity."""
        return self._send(
            OutboundEvent.REQUEST_CONSENSUS_HISTORY,
            {"entityId": entity_id, "limit": limit},
        )

    def subscribe_to_entity(self, entity_id: str) -> bool:
        return self._send(OutboundEvent.SUBSCRIBE_CONSENSUS, {"entityId": entity_id})

    def unsubscribe_from_entity(self, entity_id: str) -> bool:
        return self._send(OutboundEvent.UNSUBSCRIBE_CONSENSUS, {"entityId": entity_id})

    def _send(self, event: OutboundEvent, payload: Dict[str, Any]) -> bool:
        if self._sender is None:
            logger.warning(f"No sender configured, dropping {event.value}")
            return False
        return bool(self._sender(event.value, payload))

    # -------------------------------------------------------------------------
    # TEARDOWN
    # -------------------------------------------------------------------------

    def disconnect(self) -> None:
        """Cancel the drain, discard queued events and clear all observers."""
        if self._drain_task is not None and not self._drain_task.done():
            self._drain_task.cancel()
        self._drain_task = None

        if self._queue:
            self._stats["events_discarded"] += len(self._queue)
            logger.debug(f"Discarding {len(self._queue)} queued consensus event(s)")
        self._queue.clear()
        self._observers.clear()
