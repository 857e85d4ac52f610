"""fleet-sync — barrier-synchronised replanning for multi-agent fleets.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Quick-start example
-------------------
>>> import fleet_sync as fs
>>> fs.__version__
'0.1.0'

Subpackages
-----------
agents:
    Agent protocol, motion primitives, and the reference PrimitiveRobot.
geometry:
    Half-space polyhedra and static/dynamic obstacle variants.
coordination:
    Snapshot barrier, fixed-rate replan scheduler, and fleet factory.
recording:
    Telemetry records, channel multiplexer, run-log store, and replay.
"""
from __future__ import annotations

__version__: str = "0.1.0"

# -- Agents ---------------------------------------------------------------
from fleet_sync.agents import (
    Agent,
    AgentState,
    KinematicLimits,
    PlanningInfeasibleError,
    Primitive,
    PrimitiveRobot,
    build_control_set,
)

# -- Config ---------------------------------------------------------------
from fleet_sync.config import AgentSpec, FleetConfig, StaticObstacleSpec, load_config, save_config

# -- Coordination ---------------------------------------------------------
from fleet_sync.coordination import (
    ChannelNames,
    FleetSnapshot,
    RateLimiter,
    ReplanScheduler,
    SchedulerState,
    SchedulerStateError,
    TickReport,
    build_fleet,
    build_scheduler,
    build_snapshot,
    build_static_obstacles,
)

# -- Geometry -------------------------------------------------------------
from fleet_sync.geometry import DynamicObstacle, Hyperplane, Obstacle, Polyhedron, StaticObstacle

# -- Recording ------------------------------------------------------------
from fleet_sync.recording import (
    ChannelOrderError,
    NpzRunLogStore,
    PersistenceSink,
    RecordingError,
    RecordingMultiplexer,
    RunLog,
    RunLogReplay,
    TelemetrySink,
    recording_session,
)

__all__: list[str] = [
    "__version__",
    # agents
    "Agent",
    "AgentState",
    "KinematicLimits",
    "PlanningInfeasibleError",
    "Primitive",
    "PrimitiveRobot",
    "build_control_set",
    # config
    "AgentSpec",
    "FleetConfig",
    "StaticObstacleSpec",
    "load_config",
    "save_config",
    # coordination
    "FleetSnapshot",
    "build_snapshot",
    "RateLimiter",
    "ReplanScheduler",
    "SchedulerState",
    "SchedulerStateError",
    "ChannelNames",
    "TickReport",
    "build_fleet",
    "build_static_obstacles",
    "build_scheduler",
    # geometry
    "Hyperplane",
    "Polyhedron",
    "Obstacle",
    "StaticObstacle",
    "DynamicObstacle",
    # recording
    "RecordingMultiplexer",
    "RecordingError",
    "ChannelOrderError",
    "TelemetrySink",
    "PersistenceSink",
    "recording_session",
    "RunLog",
    "NpzRunLogStore",
    "RunLogReplay",
]
