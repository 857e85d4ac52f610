"""FleetConfig — run configuration loaded from YAML.

Every option has a documented default and missing keys silently take it,
so an empty file (or no file at all) describes the reference run: five
robots crossing a 10 x 10 map through a narrow tunnel between two walls.
Unknown keys are ignored.

Example
-------
.. code-block:: yaml

    file: tunnel.bag
    update_t: 0.02
    v_max: 1.5
    agents:
      - {name: a, start: [0, -1], goal: [10, -1]}
      - {name: b, start: [0, 1], goal: [10, 1]}
"""
from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class AgentSpec(BaseModel):
    """Start/goal (and optional limit overrides) of one fleet member.

    Attributes
    ----------
    name:
        Unique agent name.
    start, goal:
        Planar positions.
    v_max, a_max:
        Per-agent overrides; ``None`` inherits the fleet-wide value.
    """

    name: str
    start: list[float]
    goal: list[float]
    v_max: float | None = None
    a_max: float | None = None


class StaticObstacleSpec(BaseModel):
    """Axis-aligned box obstacle given by its corners."""

    name: str = ""
    lower: list[float]
    upper: list[float]


def _tunnel_agents() -> list[AgentSpec]:
    return [
        AgentSpec(name=f"robot{i + 1}", start=[0.0, y], goal=[10.0, y])
        for i, y in enumerate([-5.0, -2.5, 0.0, 2.5, 5.0])
    ]


def _tunnel_walls() -> list[StaticObstacleSpec]:
    return [
        StaticObstacleSpec(name="wall_north", lower=[4.0, 0.2], upper=[6.0, 5.5]),
        StaticObstacleSpec(name="wall_south", lower=[4.0, -5.5], upper=[6.0, -0.2]),
    ]


class FleetConfig(BaseModel):
    """All recognised run options with their defaults."""

    model_config = {"extra": "ignore"}

    # Output
    file: str = "sim.bag"
    record: bool = True
    max_records_per_channel: int | None = Field(default=None, ge=1)
    states_name: str = "/states"
    polys_name: str = "/polyhedrons"
    paths_name: str = "/paths"
    prs_name: str = "/prs"
    frame_id: str = "map"

    # Map
    origin_x: float = 0.0
    origin_y: float = -5.0
    range_x: float = 10.0
    range_y: float = 10.0

    # Kinematics and control discretization
    v_max: float = -1.0
    a_max: float = -1.0
    u: float = 1.0
    num: int = Field(default=1, ge=1)
    dt: float = Field(default=1.0, gt=0.0)

    # Loop timing
    update_t: float = Field(default=0.01, gt=0.0)
    rate: float = Field(default=100.0, gt=0.0)
    initial_stagger: float = Field(default=0.01, ge=0.0)
    horizon: float = Field(default=1.0, gt=0.0)
    workers: int = Field(default=1, ge=1)

    # Geometry
    robot_half_extent: float = Field(default=0.5, gt=0.0)
    obstacle_shrink: float = 0.25

    agents: list[AgentSpec] = Field(default_factory=_tunnel_agents)
    static_obstacles: list[StaticObstacleSpec] = Field(default_factory=_tunnel_walls)

    @property
    def channel_names(self) -> dict[str, str]:
        """Channel role → channel name."""
        return {
            "states": self.states_name,
            "polyhedrons": self.polys_name,
            "paths": self.paths_name,
            "primitives": self.prs_name,
        }

    @property
    def map_lower(self) -> list[float]:
        return [self.origin_x, self.origin_y]

    @property
    def map_upper(self) -> list[float]:
        return [self.origin_x + self.range_x, self.origin_y + self.range_y]


def load_config(path: str | Path | None = None) -> FleetConfig:
    """Load a :class:`FleetConfig` from a YAML file.

    Parameters
    ----------
    path:
        YAML file.  ``None`` returns the defaults.

    Raises
    ------
    FileNotFoundError
        If *path* does not exist.
    """
    if path is None:
        return FleetConfig()
    source = Path(path)
    if not source.exists():
        raise FileNotFoundError(f"Config file not found at {source}.")
    with source.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {source} must contain a mapping, got {type(data).__name__}.")
    config = FleetConfig.model_validate(data)
    defaulted = sorted(set(FleetConfig.model_fields) - set(data))
    if defaulted:
        logger.debug("Options left at defaults: %s", ", ".join(defaulted))
    logger.info("Loaded config from %s (%d agents)", source, len(config.agents))
    return config


def save_config(config: FleetConfig, path: str | Path) -> Path:
    """Write *config* to *path* as YAML and return the path."""
    destination = Path(path)
    destination.parent.mkdir(parents=True, exist_ok=True)
    with destination.open("w", encoding="utf-8") as f:
        yaml.safe_dump(config.model_dump(), f, default_flow_style=False, sort_keys=False)
    logger.info("Saved config to %s", destination)
    return destination
