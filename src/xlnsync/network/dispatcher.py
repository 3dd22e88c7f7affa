"""
Update Dispatcher - typed publish/subscribe bus for the sync engine.

This module manages:
- Handler registration per event kind, with explicit deregistration handles
- Snapshot-based emission (handlers added or removed during an emission
  do not affect that emission)
- Decoding raw transport/fallback messages into typed events
- Announcing connection transitions and triggering the initial state request

Each engine owns its own dispatcher instance; there is no global listener
state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..core.exceptions import MalformedMessageError
from .messages import EventKind, decode_inbound

logger = logging.getLogger(__name__)

Handler = Callable[..., Any]


@dataclass
class Subscription:
    """Handle returned by ``UpdateDispatcher.on``; cancelling deregisters."""

    dispatcher: "UpdateDispatcher"
    event: EventKind
    handler: Handler
    active: bool = field(default=True)

    def cancel(self) -> bool:
        """Remove the handler. Returns False if it was already removed."""
        if not self.active:
            return False
        self.active = False
        return self.dispatcher.off(self.event, self.handler)


class UpdateDispatcher:
    """
    Typed event bus between the transport and the rest of the engine.

    Responsible for:
    - Ordered handler lists per EventKind
    - Isolating handler failures from each other and from the caller
    - Dropping malformed inbound messages with a diagnostic
    """

    def __init__(self, state_requester: Optional[Callable[[], Any]] = None):
        """
        Initialize the UpdateDispatcher.

        Args:
            state_requester: Called right after every ``connect`` announcement
                to ask the active source for a full state
        """
        self._handlers: Dict[EventKind, List[Handler]] = {}
        self._state_requester = state_requester

        self._stats: Dict[str, int] = {
            "messages_dispatched": 0,
            "messages_dropped": 0,
            "events_emitted": 0,
            "handler_errors": 0,
            "connects_announced": 0,
        }

    def get_stats(self) -> Dict[str, Any]:
        """Get dispatcher statistics."""
        return {
            **self._stats,
            "handlers": sum(len(h) for h in self._handlers.values()),
        }

    def bind_state_requester(self, requester: Optional[Callable[[], Any]]) -> None:
        """Set the callable that requests a full state after connect."""
        self._state_requester = requester

    # -------------------------------------------------------------------------
    # SUBSCRIPTION
    # -------------------------------------------------------------------------

    def on(self, event: EventKind | str, handler: Handler) -> Subscription:
        """
        Register a handler for an event kind.

        Registering the same callable twice delivers to it twice.

        Returns:
            Subscription whose ``cancel()`` deregisters the handler
        """
        kind = EventKind(event)
        self._handlers.setdefault(kind, []).append(handler)
        return Subscription(dispatcher=self, event=kind, handler=handler)

    def off(self, event: EventKind | str, handler: Handler) -> bool:
        """Remove every registration of ``handler`` (by identity) for an event."""
        kind = EventKind(event)
        handlers = self._handlers.get(kind)
        if not handlers:
            return False

        remaining = [h for h in handlers if h is not handler]
        if len(remaining) == len(handlers):
            return False

        if remaining:
            self._handlers[kind] = remaining
        else:
            del self._handlers[kind]
        return True

    def handler_count(self, event: EventKind | str) -> int:
        return len(self._handlers.get(EventKind(event), ()))

    def clear(self) -> None:
        """Remove all handlers for all events."""
        self._handlers.clear()

    # -------------------------------------------------------------------------
    # EMISSION
    # -------------------------------------------------------------------------

    def emit(self, event: EventKind | str, *args: Any) -> int:
        """
        Deliver an event to the handlers registered at the moment of the call.

        A handler that raises is logged and skipped; the remaining handlers
        still run.

        Returns:
            Number of handlers that completed without raising
        """
        kind = EventKind(event)
        handlers = list(self._handlers.get(kind, ()))
        self._stats["events_emitted"] += 1

        delivered = 0
        for handler in handlers:
            try:
                handler(*args)
                delivered += 1
            except Exception as e:
                self._stats["handler_errors"] += 1
                logger.warning(
                    f"Handler {getattr(handler, '__qualname__', handler)!s} "
                    f"failed on '{kind.value}': {e}",
                    exc_info=True,
                )
        return delivered

    def dispatch(self, event: str, payload: Any = None) -> bool:
        """
        Decode a raw inbound message and emit the resulting typed event.

        Unknown event names, unknown update tags and undecodable payloads
        are dropped with a diagnostic rather than raised.

        Returns:
            True if the message was decoded and emitted
        """
        try:
            kind, model = decode_inbound(event, payload)
        except MalformedMessageError as e:
            self._stats["messages_dropped"] += 1
            logger.warning(f"Dropping message: {e.message}", extra={"event": event})
            return False

        self._stats["messages_dispatched"] += 1
        self.emit(kind, model)
        return True

    def announce_connected(self) -> None:
        """
        Emit ``connect`` and request an initial full state.

        Called once per transition into CONNECTED or FALLBACK_SIMULATED.
        """
        self._stats["connects_announced"] += 1
        self.emit(EventKind.CONNECT)

        if self._state_requester is None:
            return
        try:
            self._state_requester()
        except Exception as e:
            logger.warning(f"Initial state request failed: {e}")
