"""Benchmark: replan tick throughput — ticks per second by fleet size.

Times ReplanScheduler.tick() (snapshot, plan every robot, emit telemetry)
for fleets of increasing size laid out on parallel lanes, sequentially and
with a planning thread pool.
"""
from __future__ import annotations

import json
import sys
import time
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from fleet_sync.config import AgentSpec, FleetConfig
from fleet_sync.coordination.fleet import build_scheduler

_TICKS: int = 200
_FLEET_SIZES: tuple[int, ...] = (2, 5, 10, 20)


def _lane_config(n_agents: int, workers: int) -> FleetConfig:
    spacing = 10.0 / max(n_agents - 1, 1)
    agents = [
        AgentSpec(name=f"r{i}", start=[0.0, -5.0 + i * spacing], goal=[10.0, -5.0 + i * spacing])
        for i in range(n_agents)
    ]
    return FleetConfig(
        agents=agents,
        static_obstacles=[],
        robot_half_extent=min(0.5, spacing / 4.0),
        workers=workers,
        record=True,
    )


def bench_tick_throughput(n_agents: int, workers: int = 1) -> dict[str, object]:
    """Benchmark ``_TICKS`` ticks of an *n_agents* fleet.

    Returns
    -------
    dict with keys: operation, agents, workers, iterations, total_seconds,
    ops_per_second, avg_latency_ms, p99_latency_ms.
    """
    scheduler = build_scheduler(_lane_config(n_agents, workers))
    scheduler.start()
    latencies: list[float] = []
    start = time.perf_counter()
    for _ in range(_TICKS):
        tick_start = time.perf_counter()
        scheduler.tick()
        latencies.append(time.perf_counter() - tick_start)
    total = time.perf_counter() - start
    scheduler.stop()

    latencies.sort()
    p99 = latencies[min(int(len(latencies) * 0.99), len(latencies) - 1)]
    result: dict[str, object] = {
        "operation": "tick_throughput",
        "agents": n_agents,
        "workers": workers,
        "iterations": _TICKS,
        "total_seconds": round(total, 4),
        "ops_per_second": round(_TICKS / total, 1),
        "avg_latency_ms": round(total / _TICKS * 1000, 4),
        "p99_latency_ms": round(p99 * 1000, 4),
    }
    print(
        f"[bench_tick_throughput] agents={n_agents:>3} workers={workers}: "
        f"{result['ops_per_second']:,.0f} ticks/sec  "
        f"avg {result['avg_latency_ms']:.4f} ms  p99 {result['p99_latency_ms']:.4f} ms"
    )
    return result


def run_benchmark() -> list[dict[str, object]]:
    """Entry point returning one result dict per fleet size and worker count."""
    return [
        bench_tick_throughput(n_agents, workers)
        for n_agents in _FLEET_SIZES
        for workers in (1, 4)
    ]


if __name__ == "__main__":
    results = run_benchmark()
    results_dir = Path(__file__).parent / "results"
    results_dir.mkdir(exist_ok=True)
    output_path = results_dir / "tick_throughput_baseline.json"
    with open(output_path, "w", encoding="utf-8") as fh:
        json.dump(results, fh, indent=2)
    print(f"Results saved to {output_path}")
