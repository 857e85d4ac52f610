"""Obstacle snapshot builder — the barrier half of the replan protocol.

For one logical time the builder gives every agent the same frozen picture
of the rest of the fleet: agent ``i`` sees a dynamic obstacle for every
``j != i`` plus all static obstacles.  Construction is two-phase:

1. evaluate each agent's predicted obstacle exactly once, from its pre-tick
   state;
2. assemble each agent's view from those phase-1 results.

No agent is planned in between, so nobody's view can contain another
agent's post-tick state, and the result does not depend on iteration order.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Sequence

from fleet_sync.agents.base import Agent
from fleet_sync.geometry.obstacles import DynamicObstacle, StaticObstacle
from fleet_sync.geometry.polyhedron import Polyhedron

logger = logging.getLogger(__name__)

ObstacleView = tuple["DynamicObstacle | StaticObstacle", ...]


@dataclass(frozen=True)
class FleetSnapshot:
    """Per-agent obstacle views valid for exactly one tick.

    Attributes
    ----------
    time:
        Logical time every view was evaluated at.
    views:
        Agent index → obstacles that agent must avoid.
    dynamic:
        Agent index → that agent's own dynamic obstacle (what the others see).
    visualization:
        One footprint per agent followed by every static shape.  Derived for
        telemetry only; planners never read it.
    fallbacks:
        Indices of agents whose obstacle came from the stationary fallback.
    """

    time: float
    views: Mapping[int, ObstacleView]
    dynamic: Mapping[int, DynamicObstacle]
    visualization: tuple[Polyhedron, ...] = ()
    fallbacks: frozenset[int] = field(default_factory=frozenset)

    def __getitem__(self, index: int) -> ObstacleView:
        return self.views[index]

    def __len__(self) -> int:
        return len(self.views)


def _dynamic_obstacle(
    agent: Agent,
    time: float,
    horizon: float,
    sample_dt: float,
) -> tuple[DynamicObstacle, bool]:
    obstacle = agent.predicted_obstacle(time, horizon)
    if obstacle is not None:
        return obstacle, False
    # No plan yet: hold the last known position for the whole horizon.
    return (
        DynamicObstacle.stationary(
            owner_id=agent.agent_id,
            shape=agent.shape,
            position=agent.position,
            time=time,
            horizon=horizon,
            sample_dt=sample_dt,
            plan_time=float("-inf"),
        ),
        True,
    )


def build_snapshot(
    agents: Sequence[Agent],
    static_obstacles: Sequence[StaticObstacle],
    time: float,
    horizon: float = 1.0,
    fallback_sample_dt: float = 0.1,
) -> FleetSnapshot:
    """Build every agent's obstacle view for *time* from the current fleet state.

    Parameters
    ----------
    agents:
        The fleet, borrowed read-only.
    static_obstacles:
        Obstacles shared by every view.
    time:
        Logical time of the tick.
    horizon:
        Prediction horizon requested from each agent.
    fallback_sample_dt:
        Sample spacing of the stationary fallback obstacle.

    Returns
    -------
    FleetSnapshot
    """
    statics = tuple(static_obstacles)

    dynamic: dict[int, DynamicObstacle] = {}
    fallbacks: set[int] = set()
    for index, agent in enumerate(agents):
        obstacle, used_fallback = _dynamic_obstacle(agent, time, horizon, fallback_sample_dt)
        dynamic[index] = obstacle
        if used_fallback:
            fallbacks.add(index)
            logger.debug(
                "Agent %s has no plan at t=%.3f; using stationary obstacle",
                agent.agent_id,
                time,
            )

    views: dict[int, ObstacleView] = {}
    for index in range(len(agents)):
        others = tuple(dynamic[j] for j in range(len(agents)) if j != index)
        views[index] = others + statics

    visualization = tuple(dynamic[i].footprint(time) for i in range(len(agents))) + tuple(
        obstacle.shape for obstacle in statics
    )

    return FleetSnapshot(
        time=time,
        views=MappingProxyType(views),
        dynamic=MappingProxyType(dynamic),
        visualization=visualization,
        fallbacks=frozenset(fallbacks),
    )
