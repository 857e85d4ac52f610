"""Shared fixtures: a scripted stub agent and a controllable clock."""
from __future__ import annotations

from typing import Callable, Sequence

import numpy as np
import pytest
from numpy.typing import NDArray

from fleet_sync.agents.base import AgentState, PlanningInfeasibleError
from fleet_sync.agents.primitive import Primitive
from fleet_sync.geometry.obstacles import DynamicObstacle
from fleet_sync.geometry.polyhedron import Polyhedron


class FakeClock:
    """Monotonic clock whose ``sleep`` only advances the reading."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class StubAgent:
    """Constant-velocity agent that records every plan call.

    ``fail_on_calls`` lists 1-based plan-call numbers that raise
    :class:`PlanningInfeasibleError` without touching the agent's state.
    ``work`` is invoked on every plan call (e.g. to advance a fake clock).
    """

    def __init__(
        self,
        agent_id: str,
        start: Sequence[float],
        velocity: Sequence[float] = (1.0, 0.0),
        fail_on_calls: Sequence[int] = (),
        work: Callable[[], None] | None = None,
    ) -> None:
        self._agent_id = agent_id
        self._shape = Polyhedron.centered_box(0.5)
        self._position = np.asarray(start, dtype=np.float64)
        self._velocity = np.asarray(velocity, dtype=np.float64)
        self._plan_time: float | None = None
        self._history: list[NDArray[np.float64]] = []
        self._fail_on_calls = set(fail_on_calls)
        self._work = work
        self.calls: list[tuple[float, tuple[object, ...]]] = []

    @property
    def agent_id(self) -> str:
        return self._agent_id

    @property
    def shape(self) -> Polyhedron:
        return self._shape

    @property
    def position(self) -> NDArray[np.float64]:
        return self._position.copy()

    def plan(self, obstacles: Sequence[object], time: float) -> None:
        self.calls.append((time, tuple(obstacles)))
        if self._work is not None:
            self._work()
        if len(self.calls) in self._fail_on_calls:
            raise PlanningInfeasibleError(self._agent_id, time, "scripted failure")
        self._position = self.state(time).position
        self._plan_time = time
        self._history.append(self._position.copy())

    def state(self, time: float) -> AgentState:
        if self._plan_time is None:
            return AgentState(self._position.copy(), np.zeros(2))
        return AgentState(
            self._position + self._velocity * (time - self._plan_time),
            self._velocity.copy(),
        )

    def history(self) -> list[NDArray[np.float64]]:
        return [p.copy() for p in self._history]

    def trajectory_segments(self) -> list[Primitive]:
        if self._plan_time is None:
            return []
        return [
            Primitive(
                start_time=self._plan_time,
                duration=1.0,
                origin=tuple(self._position.tolist()),
                velocity=tuple(self._velocity.tolist()),
            )
        ]

    def predicted_obstacle(self, time: float, horizon: float) -> DynamicObstacle | None:
        if self._plan_time is None:
            return None
        samples = [self.state(time + k * 0.1).position for k in range(int(round(horizon / 0.1)) + 1)]
        return DynamicObstacle(
            owner_id=self._agent_id,
            shape=self._shape,
            time=time,
            sample_dt=0.1,
            trajectory=np.stack(samples),
            plan_time=self._plan_time,
        )


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_agents() -> Callable[..., list[StubAgent]]:
    """Factory: ``make_agents(n, **kwargs)`` stub agents on separate lanes."""

    def _make(n: int, **kwargs: object) -> list[StubAgent]:
        return [
            StubAgent(f"agent{i}", start=(0.0, 2.0 * i), **kwargs)  # type: ignore[arg-type]
            for i in range(n)
        ]

    return _make


@pytest.fixture
def stub_agent_cls() -> type[StubAgent]:
    return StubAgent
