"""PrimitiveRobot — reference agent with a greedy primitive planner.

Each call to :meth:`PrimitiveRobot.plan` commits the robot's state at the
requested time, then scores every control input in the discretized set and
keeps the collision-free primitive that gets closest to the goal.  The
search is deliberately simple and can stall in local minima; real
deployments plug their own planner in behind the :class:`Agent` protocol.
"""
from __future__ import annotations

import logging
from typing import Sequence

import numpy as np
from numpy.typing import NDArray

from fleet_sync.agents.base import (
    AgentState,
    KinematicLimits,
    ObstacleSet,
    PlanningInfeasibleError,
)
from fleet_sync.agents.primitive import Primitive
from fleet_sync.geometry.obstacles import DynamicObstacle
from fleet_sync.geometry.polyhedron import Polyhedron

logger = logging.getLogger(__name__)


class PrimitiveRobot:
    """Point-mass robot planning constant-velocity primitives.

    Parameters
    ----------
    agent_id:
        Unique robot name.
    shape:
        Footprint centred at the origin; this is what other robots avoid.
    start, goal:
        Start and goal positions.
    limits:
        Velocity/acceleration bounds.
    controls:
        ``(m, dim)`` array of candidate velocity commands.
    dt:
        Duration of every planned primitive.
    map_bounds:
        Optional workspace region; primitives leaving it are rejected.
    goal_tolerance:
        Distance at which the goal counts as reached.
    sample_dt:
        Time spacing of collision checks and predicted trajectories.
    collision_margin:
        Radius of the robot as seen by its own collision checks.  Other
        robots already appear with their full footprint, so the default
        treats this robot as a point.
    """

    def __init__(
        self,
        agent_id: str,
        shape: Polyhedron,
        start: Sequence[float],
        goal: Sequence[float],
        limits: KinematicLimits,
        controls: NDArray[np.float64],
        dt: float = 1.0,
        map_bounds: Polyhedron | None = None,
        goal_tolerance: float = 0.05,
        sample_dt: float = 0.1,
        collision_margin: float = 0.0,
    ) -> None:
        if dt <= 0.0:
            raise ValueError(f"dt must be positive, got {dt}.")
        self._agent_id = agent_id
        self._shape = shape
        self._start = np.asarray(start, dtype=np.float64)
        self._goal = np.asarray(goal, dtype=np.float64)
        self._limits = limits
        self._controls = np.asarray(controls, dtype=np.float64)
        self._dt = dt
        self._map_bounds = map_bounds
        self._goal_tolerance = goal_tolerance
        self._sample_dt = min(sample_dt, dt)
        self._margin = collision_margin

        self._position = self._start.copy()
        self._velocity = np.zeros_like(self._start)
        self._primitive: Primitive | None = None
        self._history: list[NDArray[np.float64]] = []

    # ------------------------------------------------------------------
    # Agent protocol
    # ------------------------------------------------------------------

    @property
    def agent_id(self) -> str:
        return self._agent_id

    @property
    def shape(self) -> Polyhedron:
        return self._shape

    @property
    def position(self) -> NDArray[np.float64]:
        return self._position.copy()

    @property
    def goal(self) -> NDArray[np.float64]:
        return self._goal.copy()

    @property
    def reached_goal(self) -> bool:
        return bool(np.linalg.norm(self._position - self._goal) <= self._goal_tolerance)

    def state(self, time: float) -> AgentState:
        if self._primitive is None:
            return AgentState(position=self._position.copy(), velocity=self._velocity.copy())
        return self._primitive.evaluate(time)

    def history(self) -> list[NDArray[np.float64]]:
        return [p.copy() for p in self._history]

    def trajectory_segments(self) -> list[Primitive]:
        return [self._primitive] if self._primitive is not None else []

    def predicted_obstacle(self, time: float, horizon: float) -> DynamicObstacle | None:
        if self._primitive is None:
            return None
        return DynamicObstacle(
            owner_id=self._agent_id,
            shape=self._shape,
            time=time,
            sample_dt=self._sample_dt,
            trajectory=self._primitive.sample(time, horizon, self._sample_dt),
            plan_time=self._primitive.start_time,
        )

    def plan(self, obstacles: ObstacleSet, time: float) -> None:
        current = self.state(time)
        self._position = current.position
        self._velocity = current.velocity
        self._history.append(self._position.copy())

        if self.reached_goal:
            self._primitive = Primitive.hold(self._position, time, self._dt)
            return

        best: Primitive | None = None
        best_cost = np.inf
        for control in self._controls:
            if not self._limits.admits(control, self._velocity, self._dt):
                continue
            candidate = Primitive(
                start_time=time,
                duration=self._dt,
                origin=tuple(float(v) for v in self._position),
                velocity=tuple(float(v) for v in control),
            )
            samples = candidate.sample(time, self._dt, self._sample_dt)
            if not self._is_free(samples, time, obstacles):
                continue
            cost = float(np.min(np.linalg.norm(samples - self._goal, axis=1)))
            cost += 1e-3 * float(np.linalg.norm(control))
            # Strict comparison keeps the first of equal-cost controls.
            if cost < best_cost:
                best, best_cost = candidate, cost

        if best is None:
            self._primitive = Primitive.hold(self._position, time, self._dt)
            raise PlanningInfeasibleError(
                self._agent_id, time, f"all {len(self._controls)} controls rejected"
            )
        self._primitive = best
        logger.debug(
            "%s planned at t=%.3f velocity=%s cost=%.4f",
            self._agent_id,
            time,
            best.velocity,
            best_cost,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _is_free(
        self,
        samples: NDArray[np.float64],
        time: float,
        obstacles: ObstacleSet,
    ) -> bool:
        for k, point in enumerate(samples):
            t = time + k * self._sample_dt
            if self._map_bounds is not None and not self._map_bounds.contains(point):
                return False
            for obstacle in obstacles:
                if obstacle.collides(point, t, self._margin):
                    return False
        return True

    def __repr__(self) -> str:
        return (
            f"PrimitiveRobot(agent_id={self._agent_id!r}, "
            f"position={self._position.tolist()}, goal={self._goal.tolist()})"
        )
