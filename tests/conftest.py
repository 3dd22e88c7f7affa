"""Global test fixtures for the xlnsync test suite."""

from __future__ import annotations

import asyncio
import os
from typing import Any

import pytest

from xlnsync.core.config import clear_config_cache
from xlnsync.core.exceptions import TransportError

# ============================================================================
# Environment
# ============================================================================


@pytest.fixture
def clean_env(monkeypatch):
    """Remove all XLNSYNC_ environment variables."""
    for key in list(os.environ.keys()):
        if key.startswith("XLNSYNC_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture(autouse=True)
def reset_config():
    """Never let one test's settings leak into another."""
    clear_config_cache()
    yield
    clear_config_cache()


# ============================================================================
# Wire-form factories
# ============================================================================


def _health(status: str = "healthy") -> dict[str, Any]:
    return {
        "status": status,
        "uptime": 0.99,
        "latency": 12.5,
        "errorRate": 0.01,
        "consensusParticipation": 0.95,
    }


@pytest.fixture
def entity_factory():
    """Build wire-form entity nodes."""

    def factory(node_id: str = "A", **overrides: Any) -> dict[str, Any]:
        data = {
            "id": node_id,
            "type": "entity",
            "name": f"Entity {node_id}",
            "layer": "entity",
            "depositaryId": "dep-1",
            "consensusType": "proposer_based",
            "validators": ["v1", "v2", "v3"],
            "channels": [],
            "tvl": "1000000000000000000000",
            "channelCount": 0,
            "transactionRate": 10.0,
            "health": _health(),
        }
        data.update(overrides)
        return data

    return factory


@pytest.fixture
def channel_factory():
    """Build wire-form channels."""

    def factory(
        channel_id: str = "c1", source: str = "A", target: str = "B", **overrides: Any
    ) -> dict[str, Any]:
        data = {
            "id": channel_id,
            "source": source,
            "target": target,
            "capacity": "5000",
            "available": "3000",
            "creditLine": "100",
            "isActive": True,
            "lastUpdate": 1700000000000,
        }
        data.update(overrides)
        return data

    return factory


@pytest.fixture
def metrics_dict() -> dict[str, Any]:
    return {
        "totalTvl": "2000000000000000000000",
        "totalEntities": 2,
        "totalChannels": 1,
        "totalAccounts": 0,
        "activeChannels": 1,
        "transactionVolume24h": "123456789012345678901234567890",
        "averageTps": 12.5,
        "networkHealth": 97.0,
    }


@pytest.fixture
def state_factory(entity_factory, channel_factory, metrics_dict):
    """Build wire-form full states with two entities and one channel."""

    def factory(version: int = 1, **overrides: Any) -> dict[str, Any]:
        data = {
            "nodes": [entity_factory("A"), entity_factory("B")],
            "channels": [channel_factory("c1", "A", "B")],
            "metrics": metrics_dict,
            "timestamp": 1700000000000,
            "version": version,
        }
        data.update(overrides)
        return data

    return factory


@pytest.fixture
def consensus_factory():
    """Build wire-form consensus events."""

    def factory(event_id: str = "e1", **overrides: Any) -> dict[str, Any]:
        data = {
            "id": event_id,
            "entityId": "A",
            "type": "proposer_based",
            "round": 1,
            "validators": ["v1", "v2"],
            "proposer": "v1",
            "timestamp": 1700000000000,
            "duration": 800.0,
            "success": True,
        }
        data.update(overrides)
        return data

    return factory


# ============================================================================
# In-memory transport
# ============================================================================


class FakeTransport:
    """Transport double: frames are fed by the test, sends are recorded."""

    def __init__(self, fail: Exception | None = None, hang: bool = False):
        self.fail = fail
        self.hang = hang
        self.address: str | None = None
        self.sent: list[tuple[str, Any]] = []
        self.close_calls = 0
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    async def open(self, address: str) -> None:
        if self.hang:
            await asyncio.Event().wait()
        if self.fail is not None:
            raise self.fail
        self.address = address
        self._closed = False

    async def send(self, event: str, payload: Any = None) -> None:
        if self._closed:
            raise TransportError("closed")
        self.sent.append((event, payload))

    async def receive(self):
        while True:
            item = await self._inbox.get()
            if item is None:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    async def close(self) -> None:
        self._closed = True
        self.close_calls += 1

    def feed(self, event: str, data: Any = None) -> None:
        self._inbox.put_nowait((event, data))

    def server_close(self) -> None:
        self._inbox.put_nowait(None)

    def server_error(self, message: str = "reset by peer") -> None:
        self._inbox.put_nowait(TransportError(message))


class FakeNetwork:
    """Transport factory; the first ``failures`` transports refuse to open."""

    def __init__(self, failures: int = 0, hang: bool = False):
        self.failures = failures
        self.hang = hang
        self.transports: list[FakeTransport] = []

    def __call__(self) -> FakeTransport:
        fail = TransportError("connection refused") if len(self.transports) < self.failures else None
        transport = FakeTransport(fail=fail, hang=self.hang)
        self.transports.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.transports[-1]


@pytest.fixture
def fake_network():
    """Build a FakeNetwork transport factory."""
    return FakeNetwork

