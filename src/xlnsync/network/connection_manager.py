"""
Connection Manager - owns the transport lifecycle for the sync engine.

This module manages:
- The connection state machine (disconnected, connecting, connected,
  fallback_simulated)
- Bounded retries with a fixed delay, then fallback to the simulated stream
- Reconnection after a server-initiated close
- The receive loop feeding the dispatcher and the single outbound writer
- Lifecycle events (connect, disconnect, error) on the dispatcher

All timers and loops are tasks owned by this class; ``disconnect()``
cancels every one of them before it first yields.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Tuple

from ..core.exceptions import TransportError
from ..core.logging import session_context
from .clock import AsyncioClock, Clock
from .dispatcher import UpdateDispatcher
from .messages import EventKind, OutboundEvent
from .simulator import SimulatedStreamGenerator, SimulatorConfig
from .transport import Transport, WebSocketTransport

if TYPE_CHECKING:
    from ..core.config import SyncSettings

logger = logging.getLogger(__name__)

TransportFactory = Callable[[], Transport]


class ConnectionStatus(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FALLBACK_SIMULATED = "fallback_simulated"


@dataclass
class ConnectionManagerConfig:
    """Configuration for ConnectionManager."""

    server_url: str = "ws://localhost:4001/ws"

    # Retries after the first failed attempt, before falling back
    reconnection_attempts: int = 5
    reconnection_delay: float = 1.0  # seconds, fixed (no backoff)

    connect_timeout: float = 10.0
    heartbeat_interval: float = 30.0

    @classmethod
    def from_settings(cls, settings: "SyncSettings") -> "ConnectionManagerConfig":
        return cls(
            server_url=settings.server_url,
            reconnection_attempts=settings.reconnection_attempts,
            reconnection_delay=settings.reconnection_delay,
            connect_timeout=settings.connect_timeout,
            heartbeat_interval=settings.heartbeat_interval,
        )


class ConnectionManager:
    """
    Keeps the engine fed, from the real transport or the simulated stream.

    Handles:
    - Connection establishment, retries and fallback
    - Receive loop and ordered outbound writes
    - Intentional vs. server-initiated closure
    - Answering state and metrics requests from whichever source is active
    """

    def __init__(
        self,
        dispatcher: UpdateDispatcher,
        config: Optional[ConnectionManagerConfig] = None,
        simulator_config: Optional[SimulatorConfig] = None,
        transport_factory: Optional[TransportFactory] = None,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize the ConnectionManager.

        Args:
            dispatcher: Receives decoded frames and lifecycle events
            config: Connection configuration
            simulator_config: Configuration of the fallback generator
            transport_factory: Builds a fresh transport per attempt
            clock: Clock used for retry delays and the fallback tick
        """
        self.dispatcher = dispatcher
        self.config = config or ConnectionManagerConfig()
        self._clock = clock or AsyncioClock()
        self._transport_factory = transport_factory or self._default_transport

        self.simulator = SimulatedStreamGenerator(
            sink=dispatcher.dispatch,
            config=simulator_config,
            clock=self._clock,
        )
        dispatcher.bind_state_requester(self.request_state)

        self._status = ConnectionStatus.DISCONNECTED
        self._address: Optional[str] = None
        self._transport: Optional[Transport] = None
        self._closing = False

        self._connect_task: Optional[asyncio.Task] = None
        self._receive_task: Optional[asyncio.Task] = None
        self._writer_task: Optional[asyncio.Task] = None
        self._outbox: asyncio.Queue[Tuple[str, Any]] = asyncio.Queue()

        self._stats: Dict[str, int] = {
            "connection_attempts": 0,
            "connections_established": 0,
            "connections_failed": 0,
            "connections_lost": 0,
            "fallbacks_entered": 0,
            "messages_received": 0,
            "messages_sent": 0,
            "sends_dropped": 0,
        }

    def _default_transport(self) -> Transport:
        return WebSocketTransport(heartbeat=self.config.heartbeat_interval)

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def is_connected(self) -> bool:
        """True only while the real transport is up."""
        return self._status is ConnectionStatus.CONNECTED

    @property
    def address(self) -> Optional[str]:
        return self._address

    def get_stats(self) -> Dict[str, Any]:
        """Get connection statistics."""
        return {
            **self._stats,
            "status": self._status.value,
            "address": self._address,
            "pending_sends": self._outbox.qsize(),
            "simulator": self.simulator.get_stats(),
        }

    def _set_status(self, status: ConnectionStatus) -> None:
        if status is not self._status:
            logger.debug(
                f"Connection status {self._status.value} -> {status.value}",
                extra={"status": status.value},
            )
            self._status = status

    # -------------------------------------------------------------------------
    # CONNECT
    # -------------------------------------------------------------------------

    async def connect(self, address: Optional[str] = None) -> ConnectionStatus:
        """
        Connect to the update server, falling back to the simulated stream.

        Never raises on transport failure. Calling it while connected is a
        no-op; calling it in fallback stops the generator and retries the
        real transport.

        Returns:
            The resulting status (CONNECTED or FALLBACK_SIMULATED, or
            DISCONNECTED if ``disconnect()`` interrupted the attempt)
        """
        if self._status is ConnectionStatus.CONNECTED:
            return self._status

        # An attempt (or a reconnect after a server close) is already running
        if self._connect_task is not None and not self._connect_task.done():
            return await self._await_connect_task()

        if self._status is ConnectionStatus.FALLBACK_SIMULATED:
            logger.info("Leaving simulated fallback to retry the transport")
            self.simulator.stop()

        self._address = address or self._address or self.config.server_url
        self._closing = False
        self._set_status(ConnectionStatus.CONNECTING)
        self._connect_task = asyncio.create_task(self._establish(initial_delay=False))
        return await self._await_connect_task()

    async def _await_connect_task(self) -> ConnectionStatus:
        task = self._connect_task
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            if not (self._closing and task.cancelled()):
                raise
        return self._status

    async def _establish(self, initial_delay: bool) -> None:
        """Run the bounded retry policy; fall back when it is exhausted."""
        total = 1 + self.config.reconnection_attempts

        for attempt in range(1, total + 1):
            if initial_delay or attempt > 1:
                await self._clock.sleep(self.config.reconnection_delay)

            self._set_status(ConnectionStatus.CONNECTING)
            self._stats["connection_attempts"] += 1
            transport = self._transport_factory()

            try:
                await asyncio.wait_for(
                    transport.open(self._address),
                    timeout=self.config.connect_timeout,
                )
            except asyncio.CancelledError:
                await transport.close()
                raise
            except Exception as e:
                self._stats["connections_failed"] += 1
                await transport.close()

                error = e if isinstance(e, TransportError) else TransportError(
                    f"Connection attempt failed: {e!r}", address=self._address
                )
                logger.warning(
                    f"Connection attempt {attempt}/{total} to {self._address} failed: "
                    f"{error.message}"
                )
                self.dispatcher.emit(EventKind.ERROR, error)
                continue

            self._on_open(transport)
            return

        self._enter_fallback()

    def _on_open(self, transport: Transport) -> None:
        self._transport = transport
        self._set_status(ConnectionStatus.CONNECTED)
        self._stats["connections_established"] += 1
        logger.info(f"Connected to {self._address}")

        self._writer_task = asyncio.create_task(self._write_loop(transport))
        self._receive_task = asyncio.create_task(self._receive_loop(transport))
        self.dispatcher.announce_connected()

    def _enter_fallback(self) -> None:
        self._set_status(ConnectionStatus.FALLBACK_SIMULATED)
        self._stats["fallbacks_entered"] += 1
        logger.warning(
            f"Could not reach {self._address} after "
            f"{1 + self.config.reconnection_attempts} attempt(s), using simulated stream"
        )
        self.simulator.start()
        self.dispatcher.announce_connected()

    # -------------------------------------------------------------------------
    # RECEIVE / SEND
    # -------------------------------------------------------------------------

    async def _receive_loop(self, transport: Transport) -> None:
        """Feed inbound frames to the dispatcher until the socket closes."""
        with session_context(self._address) as session:
            logger.debug(f"Receive loop started (session {session.id})")
            try:
                async for event, data in transport.receive():
                    self._stats["messages_received"] += 1
                    self.dispatcher.dispatch(event, data)
            except TransportError as e:
                logger.warning(f"Transport error: {e.message}")
                self.dispatcher.emit(EventKind.ERROR, e)
            except Exception as e:
                logger.warning(f"Receive loop error: {e}", exc_info=True)
                self.dispatcher.emit(
                    EventKind.ERROR, TransportError(str(e), address=self._address)
                )

        if self._closing or transport is not self._transport:
            return
        await self._handle_connection_lost(transport)

    async def _write_loop(self, transport: Transport) -> None:
        while True:
            event, payload = await self._outbox.get()
            try:
                await transport.send(event, payload)
                self._stats["messages_sent"] += 1
            except TransportError as e:
                self._stats["sends_dropped"] += 1
                logger.warning(f"Dropping outbound {event}: {e.message}")

    def send(self, event: str, payload: Any = None) -> bool:
        """
        Queue an outbound message for the writer task.

        Only accepted while CONNECTED; otherwise logs a warning and drops it.

        Returns:
            True if the message was queued
        """
        name = str(event)
        if self._status is not ConnectionStatus.CONNECTED:
            self._stats["sends_dropped"] += 1
            logger.warning(
                f"Not connected ({self._status.value}), dropping outbound {name}",
                extra={"status": self._status.value, "event": name},
            )
            return False
        self._outbox.put_nowait((name, payload))
        return True

    def request_state(self) -> bool:
        """Ask the active source for a full state."""
        match self._status:
            case ConnectionStatus.CONNECTED:
                return self.send(OutboundEvent.REQUEST_STATE)
            case ConnectionStatus.FALLBACK_SIMULATED:
                self.simulator.emit_snapshot()
                return True
        logger.debug(f"No source to request state from ({self._status.value})")
        return False

    def request_metrics(self) -> bool:
        """Ask the active source for current metrics."""
        match self._status:
            case ConnectionStatus.CONNECTED:
                return self.send(OutboundEvent.REQUEST_METRICS)
            case ConnectionStatus.FALLBACK_SIMULATED:
                self.simulator.emit_metrics()
                return True
        logger.debug(f"No source to request metrics from ({self._status.value})")
        return False

    # -------------------------------------------------------------------------
    # CLOSE
    # -------------------------------------------------------------------------

    async def _handle_connection_lost(self, transport: Transport) -> None:
        """Server-initiated close: announce it, then reconnect or fall back."""
        self._stats["connections_lost"] += 1
        logger.warning(f"Connection to {self._address} lost")

        self._cancel(self._writer_task)
        self._writer_task = None
        self._receive_task = None
        self._transport = None
        self._reset_outbox()
        self._set_status(ConnectionStatus.DISCONNECTED)

        await transport.close()
        if self._closing:
            return

        self.dispatcher.emit(EventKind.DISCONNECT)
        self._connect_task = asyncio.create_task(self._establish(initial_delay=True))

    async def disconnect(self) -> None:
        """
        Close intentionally. No reconnection or fallback follows.

        Every task and the fallback generator are cancelled before the
        first await, so nothing they schedule can fire afterwards.
        """
        self._closing = True
        previous = self._status

        current = asyncio.current_task()
        tasks = [
            task
            for task in (self._connect_task, self._receive_task, self._writer_task)
            if task is not None and task is not current and not task.done()
        ]
        for task in tasks:
            task.cancel()
        self._connect_task = self._receive_task = self._writer_task = None

        self.simulator.stop()
        transport, self._transport = self._transport, None
        self._reset_outbox()
        self._set_status(ConnectionStatus.DISCONNECTED)

        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if transport is not None:
            await transport.close()

        if previous is not ConnectionStatus.DISCONNECTED:
            logger.info("Disconnected")
            self.dispatcher.emit(EventKind.DISCONNECT)

    def _reset_outbox(self) -> None:
        dropped = self._outbox.qsize()
        if dropped:
            self._stats["sends_dropped"] += dropped
            logger.debug(f"Discarding {dropped} unsent message(s)")
        self._outbox = asyncio.Queue()

    @staticmethod
    def _cancel(task: Optional[asyncio.Task]) -> None:
        if task is not None and not task.done():
            task.cancel()
