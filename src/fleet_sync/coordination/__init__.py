"""Snapshot barrier, fixed-rate replan scheduler, and fleet factory."""
from __future__ import annotations

from fleet_sync.coordination.fleet import build_fleet, build_scheduler, build_static_obstacles
from fleet_sync.coordination.rate import RateLimiter
from fleet_sync.coordination.scheduler import (
    ChannelNames,
    ReplanScheduler,
    SchedulerState,
    SchedulerStateError,
    TickReport,
)
from fleet_sync.coordination.snapshot import FleetSnapshot, build_snapshot

__all__ = [
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
]
