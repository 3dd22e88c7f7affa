"""
Transport - framed bidirectional channel to the network update server.

The connection manager only talks to the ``Transport`` protocol, so tests
can drive it with an in-memory double. ``WebSocketTransport`` is the real
implementation on top of an aiohttp client session: one JSON text frame per
message, ``{"event": <name>, "data": <payload>}``.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Optional, Protocol, Tuple

import aiohttp
from aiohttp import WSMsgType

from ..core.exceptions import MalformedMessageError, TransportError
from .messages import decode_frame, encode_frame

logger = logging.getLogger(__name__)

Frame = Tuple[str, Any]


class Transport(Protocol):
    """What the connection manager needs from a transport."""

    @property
    def closed(self) -> bool: ...

    async def open(self, address: str) -> None:
        """Open the channel. Raises TransportError on failure."""
        ...

    async def send(self, event: str, payload: Any = None) -> None:
        """Write one message. Raises TransportError on failure."""
        ...

    def receive(self) -> AsyncIterator[Frame]:
        """Yield decoded (event, payload) frames until the peer closes."""
        ...

    async def close(self) -> None: ...


class WebSocketTransport:
    """aiohttp WebSocket client speaking JSON event frames."""

    def __init__(self, heartbeat: Optional[float] = 30.0):
        self.heartbeat = heartbeat
        self.address: Optional[str] = None
        self._session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None

    @property
    def closed(self) -> bool:
        return self._ws is None or self._ws.closed

    async def open(self, address: str) -> None:
        self.address = address
        session = aiohttp.ClientSession()
        try:
            ws = await session.ws_connect(address, heartbeat=self.heartbeat)
        except (aiohttp.ClientError, OSError) as e:
            await session.close()
            raise TransportError(f"Failed to connect to {address}: {e}", address=address) from e
        except BaseException:
            await session.close()
            raise

        self._session = session
        self._ws = ws
        logger.info(f"WebSocket open to {address}")

    async def send(self, event: str, payload: Any = None) -> None:
        if self._ws is None or self._ws.closed:
            raise TransportError("WebSocket is not open", address=self.address)
        try:
            await self._ws.send_str(encode_frame(event, payload))
        except (aiohttp.ClientError, ConnectionResetError) as e:
            raise TransportError(f"Failed to send {event}: {e}", address=self.address) from e

    async def receive(self) -> AsyncIterator[Frame]:
        if self._ws is None:
            raise TransportError("WebSocket is not open", address=self.address)

        async for msg in self._ws:
            if msg.type in (WSMsgType.TEXT, WSMsgType.BINARY):
                try:
                    frame = decode_frame(msg.data)
                except MalformedMessageError as e:
                    logger.warning(f"Skipping frame: {e.message}")
                    continue
                yield frame
            elif msg.type == WSMsgType.ERROR:
                raise TransportError(
                    f"WebSocket error: {self._ws.exception()}", address=self.address
                )
            elif msg.type in (WSMsgType.CLOSE, WSMsgType.CLOSED):
                break

    async def close(self) -> None:
        ws, self._ws = self._ws, None
        session, self._session = self._session, None

        if ws is not None and not ws.closed:
            try:
                await ws.close()
            except (aiohttp.ClientError, OSError) as e:
                logger.debug(f"Error closing WebSocket: {e}")
        if session is not None:
            await session.close()
