"""ReplanScheduler — fixed-rate snapshot-then-plan loop for a fleet.

Lifecycle::

    IDLE --start()--> RUNNING --stop()--> DRAINING --> STOPPED

Every tick of the RUNNING state performs, in order:

1. advance logical time by ``update_t``;
2. build one :class:`~fleet_sync.coordination.snapshot.FleetSnapshot` for
   the whole fleet from pre-tick state (the barrier);
3. plan every agent against its frozen view, sequentially or in a thread
   pool, and join;
4. emit positions, obstacle geometry, path increments, and primitives to
   every telemetry sink, stamped ``run_start + time``.

Each paths record carries only the points every agent committed since the
previous record; concatenating the channel yields the full path history.

:meth:`ReplanScheduler.run` repeats ticks at a fixed wall-clock rate until a
stop is requested.  A slow tick delays the next one; no tick is skipped, so
recorded logical times are exactly ``update_t, 2 * update_t, ...``.

Planning failures are agent-local: the failing agent holds its last
committed position, that position is still emitted, and the rest of the
fleet proceeds.

:meth:`ReplanScheduler.tick` and :meth:`ReplanScheduler.stop` are
serialised, so ``stop`` called from another thread waits for the running
tick to finish.  Calling ``stop`` from inside a sink or agent deadlocks;
use :meth:`ReplanScheduler.request_stop` there.
"""
from __future__ import annotations

import logging
import threading
import time as _time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Sequence

import numpy as np
from numpy.typing import NDArray

from fleet_sync.agents.base import Agent, ObstacleSet, PlanningInfeasibleError
from fleet_sync.coordination.rate import RateLimiter
from fleet_sync.coordination.snapshot import FleetSnapshot, build_snapshot
from fleet_sync.geometry.obstacles import StaticObstacle
from fleet_sync.recording.messages import (
    Header,
    PathArrayRecord,
    PointCloudRecord,
    PolyhedronArrayRecord,
    PrimitiveArrayRecord,
    to_xyz,
)
from fleet_sync.recording.multiplexer import (
    PersistenceSink,
    RecordingMultiplexer,
    TelemetrySink,
)
from fleet_sync.recording.runlog import RunLog

logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    """Lifecycle state of a :class:`ReplanScheduler`."""

    IDLE = "idle"
    RUNNING = "running"
    DRAINING = "draining"
    STOPPED = "stopped"


class SchedulerStateError(RuntimeError):
    """Raised when an operation is not allowed in the current state."""


@dataclass(frozen=True)
class ChannelNames:
    """Names of the four telemetry channels."""

    states: str = "/states"
    polyhedrons: str = "/polyhedrons"
    paths: str = "/paths"
    primitives: str = "/prs"


@dataclass
class TickReport:
    """What happened during one tick.

    Attributes
    ----------
    tick:
        One-based tick index.
    time:
        Logical time of the tick.
    stamp:
        Stamp written on the tick's telemetry.
    failed:
        Agents whose plan call failed this tick.
    fallbacks:
        Agents represented by the stationary fallback obstacle.
    wall_seconds:
        Wall-clock duration of the tick's work.
    """

    tick: int
    time: float
    stamp: float
    failed: list[str] = field(default_factory=list)
    fallbacks: list[str] = field(default_factory=list)
    wall_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return not self.failed


class ReplanScheduler:
    """Drive a fleet through barrier-synchronised replanning ticks.

    Parameters
    ----------
    agents:
        The fleet.  The scheduler owns their state while running.
    static_obstacles:
        Obstacles shared by every agent's view.
    update_t:
        Logical time increment per tick.
    rate_hz:
        Wall-clock tick rate used by :meth:`run`.
    horizon:
        Prediction horizon of dynamic obstacles.
    initial_stagger:
        Agent ``i`` makes its initial plan at logical time
        ``i * initial_stagger`` so the first snapshot has no ties.
    channels:
        Telemetry channel names.
    frame_id:
        Frame tag on every record.
    obstacle_shrink:
        Inward offset applied to obstacle geometry before it is emitted.
    sinks:
        Telemetry sinks receiving every record.
    recorder:
        Optional multiplexer; receives every record and is flushed by
        :meth:`stop`.
    persistence:
        Optional sink the flushed run log is written to.
    workers:
        Planning threads per tick; ``1`` plans sequentially.
    clock, sleep, wall_time:
        Time sources, injectable for tests.

    Usage
    -----
    ::

        scheduler = ReplanScheduler(robots, walls, recorder=RecordingMultiplexer(),
                                    persistence=NpzRunLogStore("sim.bag"))
        scheduler.start()
        try:
            scheduler.run()
        finally:
            scheduler.stop()
    """

    def __init__(
        self,
        agents: Sequence[Agent],
        static_obstacles: Sequence[StaticObstacle] = (),
        *,
        update_t: float = 0.01,
        rate_hz: float = 100.0,
        horizon: float = 1.0,
        initial_stagger: float = 0.01,
        channels: ChannelNames | None = None,
        frame_id: str = "map",
        obstacle_shrink: float = 0.25,
        sinks: Sequence[TelemetrySink] = (),
        recorder: RecordingMultiplexer | None = None,
        persistence: PersistenceSink | None = None,
        workers: int = 1,
        clock: Callable[[], float] = _time.monotonic,
        sleep: Callable[[float], None] = _time.sleep,
        wall_time: Callable[[], float] = _time.time,
    ) -> None:
        if update_t <= 0.0:
            raise ValueError(f"update_t must be positive, got {update_t}.")
        if workers < 1:
            raise ValueError(f"workers must be >= 1, got {workers}.")
        ids = [agent.agent_id for agent in agents]
        if len(set(ids)) != len(ids):
            raise ValueError(f"Agent ids must be unique, got {ids}.")

        self._agents: tuple[Agent, ...] = tuple(agents)
        self._statics: tuple[StaticObstacle, ...] = tuple(static_obstacles)
        self._update_t = update_t
        self._rate_hz = rate_hz
        self._horizon = horizon
        self._initial_stagger = initial_stagger
        self._channels = channels or ChannelNames()
        self._frame_id = frame_id
        self._shrink = obstacle_shrink
        self._recorder = recorder
        self._persistence = persistence
        self._sinks: list[TelemetrySink] = list(sinks)
        if recorder is not None:
            self._sinks.append(recorder)
        self._workers = workers
        self._clock = clock
        self._sleep = sleep
        self._wall_time = wall_time

        self._state = SchedulerState.IDLE
        self._stop_event = threading.Event()
        self._tick_lock = threading.Lock()
        self._executor: ThreadPoolExecutor | None = None
        self._tick = 0
        self._run_start = 0.0
        self._last_known: list[NDArray[np.float64]] = [a.position for a in self._agents]
        self._path_emitted: list[int] = [0] * len(self._agents)
        self._failures: Counter[str] = Counter()
        self._failures_lock = threading.Lock()
        self._last_snapshot: FleetSnapshot | None = None
        self._log: RunLog | None = None

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def agents(self) -> tuple[Agent, ...]:
        return self._agents

    @property
    def tick_count(self) -> int:
        return self._tick

    @property
    def time(self) -> float:
        """Logical time of the most recent tick (0.0 before the first)."""
        return self._tick * self._update_t

    @property
    def run_start(self) -> float:
        return self._run_start

    @property
    def failures(self) -> dict[str, int]:
        """Planning failures per agent id over the whole run."""
        return dict(self._failures)

    @property
    def last_snapshot(self) -> FleetSnapshot | None:
        return self._last_snapshot

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Compute every agent's initial plan and enter RUNNING.

        Raises
        ------
        SchedulerStateError
            If the scheduler is not IDLE.
        """
        self._require(SchedulerState.IDLE, "start")
        self._run_start = self._wall_time()
        if self._workers > 1:
            self._executor = ThreadPoolExecutor(
                max_workers=self._workers, thread_name_prefix="fleet-plan"
            )
        for index, agent in enumerate(self._agents):
            initial_time = index * self._initial_stagger
            if self._plan_one(index, agent, self._statics, initial_time):
                self._last_known[index] = agent.state(initial_time).position
            else:
                self._last_known[index] = self._held_position(index)
        self._state = SchedulerState.RUNNING
        logger.info(
            "Scheduler started: %d agents, %d static obstacles, update_t=%.4f, rate=%.1f Hz",
            len(self._agents),
            len(self._statics),
            self._update_t,
            self._rate_hz,
        )

    def request_stop(self) -> None:
        """Ask :meth:`run` to return after the current tick.  Thread-safe."""
        self._stop_event.set()

    def tick(self) -> TickReport:
        """Run one barrier-plan-emit cycle.

        Raises
        ------
        SchedulerStateError
            If the scheduler is not RUNNING.
        """
        with self._tick_lock:
            return self._tick_locked()

    def _tick_locked(self) -> TickReport:
        self._require(SchedulerState.RUNNING, "tick")
        started = self._clock()
        self._tick += 1
        now = self._tick * self._update_t
        stamp = self._run_start + now

        snapshot = build_snapshot(self._agents, self._statics, now, self._horizon)
        self._last_snapshot = snapshot

        succeeded = self._plan_all(snapshot, now)
        failed: list[str] = []
        for index, ok in enumerate(succeeded):
            if ok:
                self._last_known[index] = self._agents[index].state(now).position
            else:
                self._last_known[index] = self._held_position(index)
                failed.append(self._agents[index].agent_id)

        self._emit(snapshot, stamp)

        report = TickReport(
            tick=self._tick,
            time=now,
            stamp=stamp,
            failed=failed,
            fallbacks=[self._agents[i].agent_id for i in sorted(snapshot.fallbacks)],
            wall_seconds=self._clock() - started,
        )
        logger.debug(
            "Tick %d t=%.3f failed=%s wall=%.4fs",
            report.tick,
            report.time,
            report.failed,
            report.wall_seconds,
        )
        return report

    def run(self, max_ticks: int | None = None) -> int:
        """Tick at the configured rate until stopped or *max_ticks* reached.

        Starts the scheduler first if it is still IDLE.  The stop request is
        only checked between ticks.

        Returns
        -------
        int
            Number of ticks executed by this call.
        """
        if self._state is SchedulerState.IDLE:
            self.start()
        self._require(SchedulerState.RUNNING, "run")
        limiter = RateLimiter(self._rate_hz, clock=self._clock, sleep=self._sleep)
        executed = 0
        while max_ticks is None or executed < max_ticks:
            # stop() sets the event before taking the lock, so a stop that
            # raced the previous tick is seen here.
            with self._tick_lock:
                if self._stop_event.is_set():
                    break
                self._tick_locked()
            executed += 1
            limiter.sleep()
        if limiter.overruns:
            logger.info(
                "%d of %d ticks overran the %.4fs period and were delayed",
                limiter.overruns,
                executed,
                limiter.period,
            )
        return executed

    def stop(self) -> RunLog | None:
        """Drain: flush the recorder, persist the log, release resources.

        Calling ``stop`` again returns the same log.  When a tick is in
        progress on another thread, ``stop`` waits for it to complete and no
        further tick starts.

        Returns
        -------
        RunLog | None
            The flushed log, or ``None`` when recording is disabled.

        Raises
        ------
        RecordingError
            If the persistence sink cannot write the log.
        """
        self._stop_event.set()
        with self._tick_lock:
            return self._drain()

    def _drain(self) -> RunLog | None:
        if self._state is SchedulerState.STOPPED:
            return self._log
        self._state = SchedulerState.DRAINING
        try:
            if self._recorder is not None:
                self._log = self._recorder.flush(self._metadata())
                if self._persistence is not None:
                    self._persistence.write(self._log)
            elif self._persistence is not None:
                logger.warning("Persistence sink configured without a recorder; nothing to write")
        finally:
            if self._executor is not None:
                self._executor.shutdown(wait=True)
                self._executor = None
            self._state = SchedulerState.STOPPED
            logger.info(
                "Scheduler stopped after %d ticks (t=%.3f), failures=%s",
                self._tick,
                self.time,
                dict(self._failures),
            )
        return self._log

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def _plan_all(self, snapshot: FleetSnapshot, now: float) -> list[bool]:
        if self._executor is None:
            return [
                self._plan_one(index, agent, snapshot[index], now)
                for index, agent in enumerate(self._agents)
            ]
        futures = [
            self._executor.submit(self._plan_one, index, agent, snapshot[index], now)
            for index, agent in enumerate(self._agents)
        ]
        return [future.result() for future in futures]

    def _plan_one(self, index: int, agent: Agent, obstacles: ObstacleSet, now: float) -> bool:
        try:
            agent.plan(obstacles, now)
        except PlanningInfeasibleError as exc:
            self._count_failure(agent.agent_id)
            logger.warning("Holding last state of agent %d: %s", index, exc)
            return False
        except Exception as exc:  # noqa: BLE001
            self._count_failure(agent.agent_id)
            logger.exception("Agent %s raised while planning at t=%.3f: %s", agent.agent_id, now, exc)
            return False
        return True

    # ------------------------------------------------------------------
    # Telemetry
    # ------------------------------------------------------------------

    def _emit(self, snapshot: FleetSnapshot, stamp: float) -> None:
        header = Header(stamp=stamp, frame_id=self._frame_id)

        cloud = PointCloudRecord(
            header=header,
            points=[to_xyz(position.tolist()) for position in self._last_known],
        )
        polys = PolyhedronArrayRecord(
            header=header,
            polyhedrons=[poly.shrink(self._shrink).to_dict() for poly in snapshot.visualization],
        )
        increments: list[list[list[float]]] = []
        for index, agent in enumerate(self._agents):
            history = agent.history()
            increments.append([to_xyz(p.tolist()) for p in history[self._path_emitted[index]:]])
            self._path_emitted[index] = len(history)
        paths = PathArrayRecord(header=header, paths=increments)
        primitives = PrimitiveArrayRecord(
            header=header,
            primitives=[
                {"agent_id": agent.agent_id, **primitive.to_dict()}
                for agent in self._agents
                for primitive in agent.trajectory_segments()
            ],
        )

        for sink in self._sinks:
            sink.emit(self._channels.states, stamp, cloud)
            sink.emit(self._channels.polyhedrons, stamp, polys)
            sink.emit(self._channels.paths, stamp, paths)
            sink.emit(self._channels.primitives, stamp, primitives)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _held_position(self, index: int) -> NDArray[np.float64]:
        """Position a failed agent holds: its own committed position if readable."""
        agent = self._agents[index]
        try:
            return np.asarray(agent.position, dtype=np.float64)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Could not read position of agent %s (%s); reusing the previous one",
                agent.agent_id,
                exc,
            )
            return self._last_known[index]

    def _count_failure(self, agent_id: str) -> None:
        with self._failures_lock:
            self._failures[agent_id] += 1

    def _metadata(self) -> dict[str, object]:
        return {
            "agents": [agent.agent_id for agent in self._agents],
            "ticks": self._tick,
            "update_t": self._update_t,
            "rate_hz": self._rate_hz,
            "run_start": self._run_start,
            "frame_id": self._frame_id,
            "failures": dict(self._failures),
        }

    def _require(self, expected: SchedulerState, operation: str) -> None:
        if self._state is not expected:
            raise SchedulerStateError(
                f"Cannot {operation}() while {self._state.value}; expected {expected.value}."
            )

    def __repr__(self) -> str:
        return (
            f"ReplanScheduler(agents={len(self._agents)}, state={self._state.value}, "
            f"tick={self._tick}, time={self.time:.3f})"
        )
