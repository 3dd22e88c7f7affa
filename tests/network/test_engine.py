"""
Tests for SyncEngine wiring.

Tests cover:
- Mirror populated from the live transport and from the simulated stream
- Consensus events delivered through the paced scheduler
- Stored snapshot bootstrap
- Lifecycle (async context manager, teardown)
- create_sync_engine factory
"""

from __future__ import annotations

import asyncio

import pytest

from xlnsync.core.config import get_config
from xlnsync.network.clock import ManualClock
from xlnsync.network.connection_manager import ConnectionManagerConfig, ConnectionStatus
from xlnsync.network.engine import SyncEngine, create_sync_engine
from xlnsync.network.messages import EventKind
from xlnsync.network.models import NetworkState, NodeType
from xlnsync.network.simulator import SimulatorConfig


async def settle(rounds: int = 20) -> None:
    """Give scheduled tasks a chance to run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
async def make_engine():
    engines = []

    def factory(network, attempts=0, seed=5):
        engine = SyncEngine(
            clock=ManualClock(start=1_700_000_000.0),
            transport_factory=network,
            connection_config=ConnectionManagerConfig(
                server_url="ws://test/ws",
                reconnection_attempts=attempts,
                reconnection_delay=1.0,
            ),
            simulator_config=SimulatorConfig(seed=seed),
        )
        engines.append(engine)
        return engine

    yield factory

    for engine in engines:
        await engine.disconnect()


class TestLiveStream:

    @pytest.mark.asyncio
    async def test_state_frame_populates_mirror(self, make_engine, fake_network, state_factory):
        network = fake_network()
        engine = make_engine(network)

        assert await engine.connect() is ConnectionStatus.CONNECTED
        network.last.feed("network:update", {"type": "state", "data": state_factory(3)})
        await settle()

        assert engine.reconciler.version == 3
        assert engine.reconciler.node_count == 2
        assert engine.reconciler.channel_count == 1

    @pytest.mark.asyncio
    async def test_consensus_frames_paced_to_observers(
        self, make_engine, fake_network, consensus_factory
    ):
        network = fake_network()
        engine = make_engine(network)
        received = []
        engine.on_consensus_event(lambda e: received.append(e.id))
        await engine.connect()

        for event_id in ("e1", "e2", "e3"):
            network.last.feed("consensus:event", consensus_factory(event_id))
        await settle(50)

        assert received == ["e1", "e2", "e3"]

    @pytest.mark.asyncio
    async def test_consensus_requests_use_transport(self, make_engine, fake_network):
        network = fake_network()
        engine = make_engine(network)
        await engine.connect()

        engine.consensus.subscribe_to_entity("A")
        await settle()

        assert ("subscribeConsensus", {"entityId": "A"}) in network.last.sent

    @pytest.mark.asyncio
    async def test_request_metrics(self, make_engine, fake_network):
        network = fake_network()
        engine = make_engine(network)
        await engine.connect()

        assert engine.request_metrics() is True
        assert engine.request_state() is True
        await settle()

        assert [event for event, _ in network.last.sent] == [
            "request:state",
            "request:metrics",
            "request:state",
        ]


class TestFallbackStream:

    @pytest.mark.asyncio
    async def test_fallback_populates_mirror(self, make_engine, fake_network):
        engine = make_engine(fake_network(failures=100))

        assert await engine.connect() is ConnectionStatus.FALLBACK_SIMULATED

        world = engine.connection.simulator.snapshot()
        assert engine.reconciler.node_count == len(world.nodes)
        assert engine.reconciler.metrics is not None
        assert any(n.type is NodeType.JURISDICTION for n in engine.reconciler.nodes())

    @pytest.mark.asyncio
    async def test_mirror_tracks_simulated_world(self, make_engine, fake_network):
        engine = make_engine(fake_network(failures=100))
        await engine.connect()
        await settle(100)

        world = engine.connection.simulator.snapshot()
        assert {n.id for n in engine.reconciler.nodes()} == {n.id for n in world.nodes}
        assert engine.get_stats()["reconciler"]["integrity_violations"] == 0

    @pytest.mark.asyncio
    async def test_events_subscription(self, make_engine, fake_network):
        engine = make_engine(fake_network(failures=100))
        connects = []
        engine.on(EventKind.CONNECT, lambda: connects.append(True))

        await engine.connect()

        assert connects == [True]


class TestSourceSwitch:
    """The mirror follows whichever source is feeding it."""

    @pytest.mark.asyncio
    async def test_live_then_fallback_shows_simulated_world(
        self, make_engine, fake_network, state_factory
    ):
        network = fake_network()
        engine = make_engine(network, attempts=1)
        await engine.connect()
        network.last.feed("network:update", {"type": "state", "data": state_factory(10)})
        await settle()
        assert engine.reconciler.version == 10

        network.failures = 100
        network.last.server_close()
        await settle(100)

        assert engine.status is ConnectionStatus.FALLBACK_SIMULATED
        world = engine.connection.simulator.snapshot()
        assert {n.id for n in engine.reconciler.nodes()} == {n.id for n in world.nodes}
        assert engine.reconciler.get_node("A") is None
        assert engine.reconciler.version == world.version

        stats = engine.get_stats()["reconciler"]
        assert stats["stale_states_discarded"] == 0
        assert stats["unknown_updates_ignored"] == 0
        assert stats["integrity_violations"] == 0
        assert stats["resets"] == 1

    @pytest.mark.asyncio
    async def test_fallback_twice_then_live_shows_real_data(
        self, make_engine, fake_network, state_factory
    ):
        network = fake_network(failures=100)
        engine = make_engine(network, attempts=0)

        assert await engine.connect() is ConnectionStatus.FALLBACK_SIMULATED
        await settle(50)
        assert await engine.connect() is ConnectionStatus.FALLBACK_SIMULATED
        await settle(50)

        network.failures = 0
        assert await engine.connect() is ConnectionStatus.CONNECTED
        assert engine.reconciler.node_count == 0

        network.last.feed("network:update", {"type": "state", "data": state_factory(3)})
        await settle()

        assert engine.reconciler.version == 3
        assert engine.reconciler.get_node("A") is not None
        assert engine.reconciler.node_count == 2
        assert engine.get_stats()["reconciler"]["stale_states_discarded"] == 0

    @pytest.mark.asyncio
    async def test_live_reconnect_keeps_mirror(self, make_engine, fake_network, state_factory):
        network = fake_network()
        engine = make_engine(network, attempts=1)
        await engine.connect()
        network.last.feed("network:update", {"type": "state", "data": state_factory(5)})
        await settle()

        network.last.server_close()
        await settle(50)

        assert engine.status is ConnectionStatus.CONNECTED
        assert engine.reconciler.version == 5
        assert engine.get_stats()["reconciler"]["resets"] == 0

    @pytest.mark.asyncio
    async def test_stored_snapshot_replaced_by_fallback(
        self, make_engine, fake_network, state_factory
    ):
        engine = make_engine(fake_network(failures=100))
        engine.load_snapshot(state_factory(7))

        await engine.connect()

        assert engine.reconciler.get_node("A") is None
        assert engine.reconciler.version == 1


class TestSnapshot:

    def test_load_snapshot_from_mapping(self, state_factory):
        engine = SyncEngine(clock=ManualClock())

        assert engine.load_snapshot(state_factory(4)) is True
        assert engine.reconciler.version == 4
        assert engine.reconciler.get_node("A") is not None

    def test_load_snapshot_model(self, state_factory):
        engine = SyncEngine(clock=ManualClock())
        assert engine.load_snapshot(NetworkState.from_dict(state_factory(2))) is True

    def test_stale_snapshot_discarded(self, state_factory):
        engine = SyncEngine(clock=ManualClock())
        engine.load_snapshot(state_factory(5))

        assert engine.load_snapshot(state_factory(3)) is False
        assert engine.reconciler.version == 5


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_context_manager(self, fake_network):
        network = fake_network()
        engine = SyncEngine(clock=ManualClock(), transport_factory=network)

        async with engine:
            assert engine.status is ConnectionStatus.CONNECTED

        assert engine.status is ConnectionStatus.DISCONNECTED
        assert network.last.close_calls == 1

    @pytest.mark.asyncio
    async def test_disconnect_stops_consensus(self, make_engine, fake_network, consensus_factory):
        network = fake_network()
        engine = make_engine(network)
        received = []
        engine.on_consensus_event(lambda e: received.append(e.id))
        await engine.connect()

        await engine.disconnect()
        engine.dispatcher.dispatch("consensus:event", consensus_factory("late"))
        await settle()

        assert received == []

    def test_stats_sections(self):
        engine = SyncEngine(clock=ManualClock())
        assert set(engine.get_stats()) == {"connection", "dispatcher", "reconciler", "consensus"}

    def test_engines_are_isolated(self, state_factory):
        first = SyncEngine(clock=ManualClock())
        second = SyncEngine(clock=ManualClock())

        first.load_snapshot(state_factory(1))

        assert second.reconciler.node_count == 0


class TestFactory:

    def test_defaults_from_settings(self, clean_env):
        engine = create_sync_engine()
        assert engine.connection.config.server_url == get_config().server_url

    def test_seed_override(self, clean_env):
        engine = create_sync_engine(seed=11)
        assert engine.connection.simulator.config.seed == 11

    def test_env_configures_engine(self, clean_env, monkeypatch):
        monkeypatch.setenv("XLNSYNC_SERVER_URL", "ws://env:9/ws")
        monkeypatch.setenv("XLNSYNC_RECONNECTION_ATTEMPTS", "2")

        engine = create_sync_engine()

        assert engine.connection.config.server_url == "ws://env:9/ws"
        assert engine.connection.config.reconnection_attempts == 2

    def test_kwargs_forwarded(self, clean_env):
        clock = ManualClock()
        engine = create_sync_engine(clock=clock)
        assert engine.clock is clock
