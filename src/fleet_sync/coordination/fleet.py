"""Build a fleet, its static obstacles, and a scheduler from configuration.

Fleets of any size are constructed in a loop from the configured agent
specs; every robot shares the fleet-wide footprint, control set, timestep
and map bounds, with optional per-agent limit overrides.
"""
from __future__ import annotations

import logging

from fleet_sync.agents.base import KinematicLimits
from fleet_sync.agents.primitive import build_control_set
from fleet_sync.agents.robot import PrimitiveRobot
from fleet_sync.config import FleetConfig
from fleet_sync.coordination.scheduler import ChannelNames, ReplanScheduler
from fleet_sync.geometry.obstacles import StaticObstacle
from fleet_sync.geometry.polyhedron import Polyhedron
from fleet_sync.recording.multiplexer import PersistenceSink, RecordingMultiplexer

logger = logging.getLogger(__name__)


def build_fleet(config: FleetConfig) -> list[PrimitiveRobot]:
    """One :class:`PrimitiveRobot` per entry of ``config.agents``."""
    controls = build_control_set(config.u, config.num)
    shape = Polyhedron.centered_box(config.robot_half_extent)
    bounds = Polyhedron.box(config.map_lower, config.map_upper)
    robots: list[PrimitiveRobot] = []
    for spec in config.agents:
        limits = KinematicLimits(
            v_max=config.v_max if spec.v_max is None else spec.v_max,
            a_max=config.a_max if spec.a_max is None else spec.a_max,
        )
        robots.append(
            PrimitiveRobot(
                agent_id=spec.name,
                shape=shape,
                start=spec.start,
                goal=spec.goal,
                limits=limits,
                controls=controls,
                dt=config.dt,
                map_bounds=bounds,
            )
        )
    logger.debug("Built fleet of %d robots with %d controls each", len(robots), len(controls))
    return robots


def build_static_obstacles(config: FleetConfig) -> list[StaticObstacle]:
    return [
        StaticObstacle(name=spec.name, shape=Polyhedron.box(spec.lower, spec.upper))
        for spec in config.static_obstacles
    ]


def build_scheduler(
    config: FleetConfig,
    persistence: PersistenceSink | None = None,
) -> ReplanScheduler:
    """Wire fleet, obstacles, recorder and persistence into a scheduler.

    A :class:`RecordingMultiplexer`, bounded by
    ``config.max_records_per_channel``, is attached only when
    ``config.record`` is true; otherwise telemetry is discarded and
    *persistence* is ignored.
    """
    recorder = (
        RecordingMultiplexer(max_records_per_channel=config.max_records_per_channel)
        if config.record
        else None
    )
    return ReplanScheduler(
        build_fleet(config),
        build_static_obstacles(config),
        update_t=config.update_t,
        rate_hz=config.rate,
        horizon=config.horizon,
        initial_stagger=config.initial_stagger,
        channels=ChannelNames(
            states=config.states_name,
            polyhedrons=config.polys_name,
            paths=config.paths_name,
            primitives=config.prs_name,
        ),
        frame_id=config.frame_id,
        obstacle_shrink=config.obstacle_shrink,
        recorder=recorder,
        persistence=persistence if config.record else None,
        workers=config.workers,
    )
