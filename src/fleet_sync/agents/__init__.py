"""Agent contract, motion primitives, and the reference robot."""
from __future__ import annotations

from fleet_sync.agents.base import (
    Agent,
    AgentState,
    KinematicLimits,
    PlanningInfeasibleError,
)
from fleet_sync.agents.primitive import Primitive, build_control_set
from fleet_sync.agents.robot import PrimitiveRobot

__all__ = [
    "Agent",
    "AgentState",
    "KinematicLimits",
    "PlanningInfeasibleError",
    "Primitive",
    "build_control_set",
    "PrimitiveRobot",
]
