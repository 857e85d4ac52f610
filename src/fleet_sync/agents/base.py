"""Agent contract for the coordination loop.

The coordination core never looks inside an agent's planner.  Anything that
satisfies the :class:`Agent` protocol can join a fleet: the scheduler only
asks it to plan against a frozen obstacle set, to report its state, and to
predict where it will be so other agents can avoid it.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, NamedTuple, Protocol, Sequence, runtime_checkable

import numpy as np
from numpy.typing import NDArray
from pydantic import BaseModel

from fleet_sync.geometry.obstacles import DynamicObstacle, StaticObstacle
from fleet_sync.geometry.polyhedron import Polyhedron

if TYPE_CHECKING:
    from fleet_sync.agents.primitive import Primitive


class PlanningInfeasibleError(RuntimeError):
    """Raised by :meth:`Agent.plan` when no trajectory fits the snapshot."""

    def __init__(self, agent_id: str, time: float, reason: str = "") -> None:
        self.agent_id = agent_id
        self.time = time
        self.reason = reason
        message = f"Agent {agent_id!r} found no feasible trajectory at t={time:.3f}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class AgentState(NamedTuple):
    """Kinematic state of an agent at one instant.

    Attributes
    ----------
    position:
        Position vector.
    velocity:
        Velocity vector, derived from the active primitive.
    """

    position: NDArray[np.float64]
    velocity: NDArray[np.float64]


class KinematicLimits(BaseModel):
    """Velocity and acceleration bounds.

    A negative bound means the quantity is unconstrained.
    """

    model_config = {"frozen": True}

    v_max: float = -1.0
    a_max: float = -1.0

    @property
    def velocity_constrained(self) -> bool:
        return self.v_max > 0.0

    @property
    def acceleration_constrained(self) -> bool:
        return self.a_max > 0.0

    def admits(
        self,
        velocity: NDArray[np.float64],
        previous_velocity: NDArray[np.float64],
        dt: float,
    ) -> bool:
        """Return True if switching to *velocity* respects both bounds."""
        if self.velocity_constrained and np.max(np.abs(velocity)) > self.v_max + 1e-9:
            return False
        if self.acceleration_constrained:
            change = np.max(np.abs(velocity - previous_velocity))
            if change > self.a_max * dt + 1e-9:
                return False
        return True


ObstacleSet = Sequence["StaticObstacle | DynamicObstacle"]


@runtime_checkable
class Agent(Protocol):
    """Structural protocol every fleet member must satisfy."""

    @property
    def agent_id(self) -> str:
        """Unique identity within the fleet."""
        ...

    @property
    def shape(self) -> Polyhedron:
        """Footprint centred at the origin."""
        ...

    @property
    def position(self) -> NDArray[np.float64]:
        """Last committed position (start position before the first plan)."""
        ...

    def plan(self, obstacles: ObstacleSet, time: float) -> None:
        """Commit the state at *time*, then replan against *obstacles*.

        Raises
        ------
        PlanningInfeasibleError
            If no trajectory avoids the given obstacles.
        """
        ...

    def state(self, time: float) -> AgentState:
        """Evaluate the current plan at *time*."""
        ...

    def history(self) -> list[NDArray[np.float64]]:
        """Positions committed so far, oldest first."""
        ...

    def trajectory_segments(self) -> "list[Primitive]":
        """Primitives produced by the latest plan."""
        ...

    def predicted_obstacle(self, time: float, horizon: float) -> DynamicObstacle | None:
        """Predicted footprint sweep from *time* over *horizon*.

        Returns ``None`` when the agent has no plan yet.
        """
        ...
