"""Obstacle variants seen by a planning agent.

* :class:`StaticObstacle` — fixed geometry in world coordinates, zero velocity.
* :class:`DynamicObstacle` — another agent's footprint swept along its
  predicted trajectory over a bounded horizon, evaluated at one logical time.

Dynamic obstacles are rebuilt on every tick and never retained; their
trajectory arrays are read-only so a snapshot cannot be mutated after the
barrier.
"""
from __future__ import annotations

from typing import Annotated, Literal, Union

import numpy as np
from numpy.typing import NDArray
from pydantic import BaseModel, Field, field_validator

from fleet_sync.geometry.polyhedron import Polyhedron


class StaticObstacle(BaseModel):
    """Fixed obstacle.

    Attributes
    ----------
    name:
        Identifier used in logs and telemetry.
    shape:
        Geometry in world coordinates.
    """

    model_config = {"frozen": True}

    kind: Literal["static"] = "static"
    name: str = ""
    shape: Polyhedron

    def footprint(self, time: float) -> Polyhedron:  # noqa: ARG002
        return self.shape

    def collides(self, position: NDArray[np.float64], time: float, margin: float) -> bool:  # noqa: ARG002
        """Return True if a body at *position* with radius *margin* touches the obstacle."""
        return self.shape.contains(position, margin=margin)


class DynamicObstacle(BaseModel):
    """Obstacle derived from another agent's predicted motion.

    Attributes
    ----------
    owner_id:
        Identity of the agent this obstacle represents.
    shape:
        Owner footprint centred at the origin.
    time:
        Logical time at which the prediction was evaluated.
    sample_dt:
        Spacing of the samples in :attr:`trajectory`.
    trajectory:
        Predicted positions, ``trajectory[k]`` at ``time + k * sample_dt``.
    plan_time:
        Logical time of the owner's plan this prediction came from;
        ``-inf`` when the owner has not planned yet.
    """

    model_config = {"arbitrary_types_allowed": True, "frozen": True}

    kind: Literal["dynamic"] = "dynamic"
    owner_id: str
    shape: Polyhedron
    time: float
    sample_dt: float = Field(gt=0.0)
    trajectory: NDArray[np.float64]
    plan_time: float

    @field_validator("trajectory", mode="before")
    @classmethod
    def _as_readonly(cls, value: object) -> NDArray[np.float64]:
        arr = np.array(value, dtype=np.float64)
        if arr.ndim != 2 or arr.shape[0] == 0:
            raise ValueError(f"trajectory must be a non-empty (n, dim) array, got {arr.shape}.")
        arr.flags.writeable = False
        return arr

    @property
    def horizon(self) -> float:
        return (self.trajectory.shape[0] - 1) * self.sample_dt

    def position_at(self, time: float) -> NDArray[np.float64]:
        """Linearly interpolate the predicted position, clamped to the horizon."""
        s = (time - self.time) / self.sample_dt
        last = self.trajectory.shape[0] - 1
        if s <= 0.0:
            return self.trajectory[0].copy()
        if s >= last:
            return self.trajectory[last].copy()
        k = int(np.floor(s))
        frac = s - k
        return (1.0 - frac) * self.trajectory[k] + frac * self.trajectory[k + 1]

    def footprint(self, time: float) -> Polyhedron:
        return self.shape.translate(self.position_at(time))

    def collides(self, position: NDArray[np.float64], time: float, margin: float) -> bool:
        # Same as footprint(time).contains(...) without building a translated shape.
        offset = np.asarray(position, dtype=np.float64) - self.position_at(time)
        return self.shape.contains(offset, margin=margin)

    @classmethod
    def stationary(
        cls,
        owner_id: str,
        shape: Polyhedron,
        position: NDArray[np.float64],
        time: float,
        horizon: float,
        sample_dt: float,
        plan_time: float,
    ) -> "DynamicObstacle":
        """Obstacle that holds *position* for the whole horizon."""
        n_samples = max(int(round(horizon / sample_dt)), 0) + 1
        trajectory = np.tile(np.asarray(position, dtype=np.float64), (n_samples, 1))
        return cls(
            owner_id=owner_id,
            shape=shape,
            time=time,
            sample_dt=sample_dt,
            trajectory=trajectory,
            plan_time=plan_time,
        )


Obstacle = Annotated[Union[StaticObstacle, DynamicObstacle], Field(discriminator="kind")]
"""Tagged union of the two obstacle variants."""
