#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""
xlnsync CLI - Watch the network update stream.

Commands:
  xlnsync watch               Mirror the live network (or the simulated
                              stream if the server is unreachable)
  xlnsync simulate            Print the simulated stream as JSON frames
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from typing import Any

from pydantic import ValidationError

from ..core.config import get_config
from ..core.exceptions import ConfigException
from ..core.logging import configure_logging
from ..network.clock import ManualClock
from ..network.engine import SyncEngine, create_sync_engine
from ..network.messages import encode_frame
from ..network.models import ConsensusEvent
from ..network.simulator import SimulatedStreamGenerator, SimulatorConfig

logger = logging.getLogger(__name__)


def engine_summary(engine: SyncEngine, consensus_events: int = 0) -> dict[str, Any]:
    """Snapshot of what the engine currently mirrors."""
    reconciler = engine.reconciler
    metrics = reconciler.metrics
    return {
        "status": engine.status.value,
        "nodes": reconciler.node_count,
        "channels": reconciler.channel_count,
        "version": reconciler.version,
        "revision": reconciler.revision,
        "consensus_events": consensus_events,
        "metrics": metrics.to_dict() if metrics is not None else None,
    }


def config_error_message(error: ConfigException | ValidationError) -> str:
    """Short description of a settings problem."""
    if isinstance(error, ValidationError):
        return "; ".join(
            f"{'.'.join(str(part) for part in item['loc']) or 'settings'}: {item['msg']}"
            for item in error.errors()
        )
    return error.message


def format_summary(summary: dict[str, Any]) -> str:
    """One status line for human-readable output."""
    return (
        f"[{summary['status']}] "
        f"v{summary['version']} (rev {summary['revision']}) | "
        f"{summary['nodes']} nodes | {summary['channels']} channels | "
        f"{summary['consensus_events']} consensus events"
    )


# ============================================================================
# WATCH
# ============================================================================

def cmd_watch(args: argparse.Namespace) -> int:
    """Connect and print the mirrored graph as it changes."""

    async def run_watch() -> int:
        try:
            engine = create_sync_engine(seed=args.seed)
        except (ConfigException, ValidationError) as e:
            print(f"❌ Invalid configuration: {config_error_message(e)}", file=sys.stderr)
            return 1

        consensus_events = 0

        def count(event: ConsensusEvent) -> None:
            nonlocal consensus_events
            consensus_events += 1

        engine.on_consensus_event(count)

        status = await engine.connect(args.url)
        if not args.json:
            print(f"📡 {status.value}")

        elapsed = 0.0
        try:
            while args.duration is None or elapsed < args.duration:
                step = args.interval
                if args.duration is not None:
                    step = min(step, args.duration - elapsed)
                await asyncio.sleep(step)
                elapsed += step
                if not args.json:
                    print(format_summary(engine_summary(engine, consensus_events)))
        finally:
            summary = engine_summary(engine, consensus_events)
            await engine.disconnect()

        if args.json:
            print(json.dumps(summary, indent=2))
        return 0

    try:
        return asyncio.run(run_watch())
    except KeyboardInterrupt:
        return 130


# ============================================================================
# SIMULATE
# ============================================================================

def cmd_simulate(args: argparse.Namespace) -> int:
    """Print a snapshot followed by the simulated stream, one frame per line."""
    try:
        config = SimulatorConfig.from_settings(get_config())
        if args.seed is not None:
            config = dataclasses.replace(config, seed=args.seed)
    except (ConfigException, ValidationError) as e:
        print(f"❌ Invalid configuration: {config_error_message(e)}", file=sys.stderr)
        return 1

    clock = ManualClock(start=args.start_time)

    def emit(event: str, payload: Any) -> None:
        print(encode_frame(event, payload))

    generator = SimulatedStreamGenerator(sink=emit, config=config, clock=clock)

    if not args.no_snapshot:
        generator.emit_snapshot()
    for _ in range(args.ticks):
        clock.advance(config.tick_interval)
        generator.tick()

    logger.debug(f"Simulation finished: {generator.get_stats()}")
    return 0


def app() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog='xlnsync',
        description='Real-time network graph synchronization',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  xlnsync watch                           Mirror the configured server
  xlnsync watch --url ws://host:4001/ws   Mirror a specific server
  xlnsync watch --duration 30 --json      Watch for 30s, print a JSON summary
  xlnsync simulate --seed 7 --ticks 20    Reproducible synthetic stream
        """
    )
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')

    subparsers = parser.add_subparsers(dest='command', required=True)

    # watch
    watch_parser = subparsers.add_parser('watch', help='Mirror the network update stream')
    watch_parser.add_argument('--url', '-u', help='WebSocket URL (default: XLNSYNC_SERVER_URL)')
    watch_parser.add_argument('--duration', '-d', type=float, default=None,
                              help='Stop after this many seconds (default: run until interrupted)')
    watch_parser.add_argument('--interval', '-i', type=float, default=2.0,
                              help='Seconds between status lines')
    watch_parser.add_argument('--seed', type=int, default=None,
                              help='Seed for the simulated fallback stream')
    watch_parser.add_argument('--json', action='store_true', help='Print a JSON summary on exit')

    # simulate
    sim_parser = subparsers.add_parser('simulate', help='Print the simulated stream as JSON frames')
    sim_parser.add_argument('--seed', type=int, default=None, help='Random seed')
    sim_parser.add_argument('--ticks', '-n', type=int, default=10, help='Number of ticks')
    sim_parser.add_argument('--start-time', type=float, default=0.0,
                            help='Clock start (epoch seconds) used for timestamps')
    sim_parser.add_argument('--no-snapshot', action='store_true',
                            help='Skip the initial full-state frame')

    return parser


def main() -> int:
    """Main entry point."""
    parser = app()
    args = parser.parse_args()

    configure_logging(level="DEBUG" if args.verbose else None)

    commands = {
        'watch': cmd_watch,
        'simulate': cmd_simulate,
    }

    handler = commands.get(args.command)
    if handler:
        return handler(args)

    parser.print_help()
    return 1


if __name__ == '__main__':
    sys.exit(main())
