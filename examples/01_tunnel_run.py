#!/usr/bin/env python3
"""Example: Five robots through a tunnel

Runs the reference fleet (five robots crossing a 10 x 10 map between two
walls) for a few hundred ticks, saves the run log, and replays it to report
per-channel record counts and the closest approach between any two robots.

Usage:
    python examples/01_tunnel_run.py [output.bag]

Requirements:
    pip install fleet-sync
"""
from __future__ import annotations

import logging
import sys

import fleet_sync
from fleet_sync import FleetConfig, NpzRunLogStore, RunLogReplay, build_scheduler


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s — %(message)s")
    print(f"fleet-sync version: {fleet_sync.__version__}")

    output = sys.argv[1] if len(sys.argv) > 1 else "tunnel.bag"
    config = FleetConfig(file=output, rate=1000.0)
    store = NpzRunLogStore(config.file)
    scheduler = build_scheduler(config, persistence=store)

    scheduler.start()
    try:
        ticks = scheduler.run(max_ticks=300)
    finally:
        scheduler.stop()

    print(f"\nRan {ticks} ticks, logical time {scheduler.time:.2f}s")
    print(f"Planning failures: {scheduler.failures or 'none'}")

    replay = RunLogReplay(store.load())
    print(f"\nRun log {store.path}:")
    for summary in replay.summary():
        print(f"  {summary.name:<14} {summary.n_records:>5} records over {summary.duration:.2f}s")

    positions = replay.agent_positions()
    print("\nFinal positions:")
    for robot, (x, y) in zip(config.agents, positions[-1]):
        print(f"  {robot.name}: ({x:.2f}, {y:.2f})")
    print(f"\nMinimum separation: {replay.min_separation():.3f}")


if __name__ == "__main__":
    main()
