"""Motion primitives and control-input discretization."""
from __future__ import annotations

import itertools

import numpy as np
from numpy.typing import NDArray
from pydantic import BaseModel, Field

from fleet_sync.agents.base import AgentState


def build_control_set(u: float, num: int, dim: int = 2) -> NDArray[np.float64]:
    """Grid of control samples in ``[-u, u]`` with step ``u / num`` per axis.

    Parameters
    ----------
    u:
        Control magnitude bound.
    num:
        Number of steps between 0 and ``u``.  Must be at least 1.
    dim:
        Number of axes.

    Returns
    -------
    NDArray
        ``((2 * num + 1) ** dim, dim)`` array, first axis varying slowest.
    """
    if num < 1:
        raise ValueError(f"num must be >= 1, got {num}.")
    if u < 0.0:
        raise ValueError(f"u must be non-negative, got {u}.")
    axis = np.linspace(-u, u, 2 * num + 1)
    return np.array(list(itertools.product(axis, repeat=dim)), dtype=np.float64)


class Primitive(BaseModel):
    """Constant-velocity motion segment.

    Attributes
    ----------
    start_time:
        Logical time at which the segment begins.
    duration:
        Segment length in seconds.
    origin:
        Position at ``start_time``.
    velocity:
        Constant velocity over the segment.  The agent is at rest after the
        segment ends.
    """

    model_config = {"frozen": True}

    start_time: float
    duration: float = Field(gt=0.0)
    origin: tuple[float, ...]
    velocity: tuple[float, ...]

    @property
    def end_time(self) -> float:
        return self.start_time + self.duration

    def evaluate(self, time: float) -> AgentState:
        """State at *time*, clamped to the segment's span."""
        elapsed = min(max(time - self.start_time, 0.0), self.duration)
        origin = np.array(self.origin, dtype=np.float64)
        velocity = np.array(self.velocity, dtype=np.float64)
        position = origin + velocity * elapsed
        if time - self.start_time >= self.duration:
            velocity = np.zeros_like(velocity)
        return AgentState(position=position, velocity=velocity)

    def sample(self, time: float, horizon: float, sample_dt: float) -> NDArray[np.float64]:
        """Positions at ``time + k * sample_dt`` for ``k = 0 .. horizon / sample_dt``."""
        n_samples = max(int(round(horizon / sample_dt)), 0) + 1
        return np.stack(
            [self.evaluate(time + k * sample_dt).position for k in range(n_samples)],
            axis=0,
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "start_time": self.start_time,
            "duration": self.duration,
            "origin": list(self.origin),
            "velocity": list(self.velocity),
        }

    @classmethod
    def hold(cls, position: NDArray[np.float64], time: float, duration: float) -> "Primitive":
        """Zero-velocity segment that keeps *position*."""
        return cls(
            start_time=time,
            duration=duration,
            origin=tuple(float(v) for v in position),
            velocity=tuple(0.0 for _ in position),
        )
