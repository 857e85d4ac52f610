#!/usr/bin/env python3
"""Example: Plugging a custom agent into the scheduler

Any object satisfying the ``Agent`` protocol can join a fleet.  This example
defines a robot that drives straight at a fixed speed and gives up (raising
``PlanningInfeasibleError``) whenever another agent's predicted footprint
is in its way, then records a short run with an in-memory telemetry sink.

Usage:
    python examples/02_custom_agent.py

Requirements:
    pip install fleet-sync
"""
from __future__ import annotations

import numpy as np

from fleet_sync import (
    Agent,
    AgentState,
    DynamicObstacle,
    PlanningInfeasibleError,
    Polyhedron,
    Primitive,
    RecordingMultiplexer,
    ReplanScheduler,
)


class StraightLineRobot:
    """Drives along +x at constant speed, stopping if the lane ahead is taken."""

    def __init__(self, agent_id: str, start: tuple[float, float], speed: float = 1.0) -> None:
        self.agent_id = agent_id
        self.shape = Polyhedron.centered_box(0.4)
        self.position = np.array(start, dtype=np.float64)
        self._speed = speed
        self._primitive: Primitive | None = None
        self._history: list[np.ndarray] = []

    def state(self, time: float) -> AgentState:
        if self._primitive is None:
            return AgentState(self.position.copy(), np.zeros(2))
        return self._primitive.evaluate(time)

    def plan(self, obstacles, time: float) -> None:  # type: ignore[no-untyped-def]
        self.position = self.state(time).position
        self._history.append(self.position.copy())
        ahead = self.position + np.array([self._speed * 0.5, 0.0])
        if any(o.collides(ahead, time + 0.5, 0.0) for o in obstacles):
            self._primitive = Primitive.hold(self.position, time, 1.0)
            raise PlanningInfeasibleError(self.agent_id, time, "lane blocked")
        self._primitive = Primitive(
            start_time=time,
            duration=1.0,
            origin=tuple(self.position.tolist()),
            velocity=(self._speed, 0.0),
        )

    def history(self) -> list[np.ndarray]:
        return [p.copy() for p in self._history]

    def trajectory_segments(self) -> list[Primitive]:
        return [self._primitive] if self._primitive is not None else []

    def predicted_obstacle(self, time: float, horizon: float):  # type: ignore[no-untyped-def]
        if self._primitive is None:
            return None
        return DynamicObstacle(
            owner_id=self.agent_id,
            shape=self.shape,
            time=time,
            sample_dt=0.1,
            trajectory=self._primitive.sample(time, horizon, 0.1),
            plan_time=self._primitive.start_time,
        )


def main() -> None:
    # The slow robot sits in the fast robot's lane.
    fleet = [
        StraightLineRobot("fast", (0.0, 0.0), speed=2.0),
        StraightLineRobot("slow", (3.0, 0.0), speed=0.2),
        StraightLineRobot("side", (0.0, 3.0), speed=1.0),
    ]
    assert all(isinstance(robot, Agent) for robot in fleet)

    recorder = RecordingMultiplexer()
    scheduler = ReplanScheduler(fleet, update_t=0.05, rate_hz=200.0, recorder=recorder)
    scheduler.run(max_ticks=60)
    log = scheduler.stop()

    print(f"Ticks: {scheduler.tick_count}, failures: {scheduler.failures}")
    if log is not None:
        final = log["/states"][-1].points  # type: ignore[union-attr]
        for robot, point in zip(fleet, final):
            print(f"  {robot.agent_id}: x={point[0]:.2f}")


if __name__ == "__main__":
    main()
