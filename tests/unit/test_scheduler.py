"""Unit tests for ReplanScheduler.

Covers:
- constructor validation
- lifecycle: IDLE -> RUNNING -> DRAINING -> STOPPED, illegal transitions
- initial plans at staggered times against static obstacles only
- logical time advances by exactly update_t per tick
- barrier: every view is built from pre-tick plans evaluated at the tick time
- thread-pool planning matches sequential planning
- stop requests, idempotent stop, stop from another thread during a tick,
  disabled recording, persistence failure
- telemetry: channel names, emit order, record contents, run metadata
"""
from __future__ import annotations

import threading
from typing import Callable
from unittest.mock import MagicMock

import pytest

from fleet_sync.coordination.scheduler import (
    ChannelNames,
    ReplanScheduler,
    SchedulerState,
    SchedulerStateError,
    TickReport,
)
from fleet_sync.geometry.obstacles import DynamicObstacle, StaticObstacle
from fleet_sync.geometry.polyhedron import Polyhedron
from fleet_sync.recording.multiplexer import RecordingError, RecordingMultiplexer
from fleet_sync.recording.runlog import RunLog


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class ListSink:
    """Telemetry sink that keeps every emitted record in order."""

    def __init__(self, on_emit: Callable[[int], None] | None = None) -> None:
        self.items: list[tuple[str, float, object]] = []
        self._on_emit = on_emit

    def emit(self, channel: str, timestamp: float, record: object) -> None:
        self.items.append((channel, timestamp, record))
        if self._on_emit is not None:
            self._on_emit(len(self.items))


class BrokenStore:
    def write(self, log: RunLog) -> None:
        raise RecordingError("disk full")


def _scheduler(agents, fake_clock, **kwargs) -> ReplanScheduler:  # type: ignore[no-untyped-def]
    return ReplanScheduler(
        agents,
        kwargs.pop("statics", ()),
        clock=fake_clock,
        sleep=fake_clock.sleep,
        wall_time=lambda: 50.0,
        **kwargs,
    )


def _wall() -> StaticObstacle:
    return StaticObstacle(name="wall", shape=Polyhedron.box([4.0, -1.0], [5.0, 1.0]))


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


class TestConstruction:
    def test_rejects_non_positive_update_t(self, make_agents, fake_clock) -> None:
        with pytest.raises(ValueError, match="update_t"):
            _scheduler(make_agents(2), fake_clock, update_t=0.0)

    def test_rejects_zero_workers(self, make_agents, fake_clock) -> None:
        with pytest.raises(ValueError, match="workers"):
            _scheduler(make_agents(2), fake_clock, workers=0)

    def test_rejects_duplicate_ids(self, stub_agent_cls, fake_clock) -> None:
        agents = [stub_agent_cls("same", (0.0, 0.0)), stub_agent_cls("same", (0.0, 2.0))]
        with pytest.raises(ValueError, match="unique"):
            _scheduler(agents, fake_clock)

    def test_initial_state(self, make_agents, fake_clock) -> None:
        scheduler = _scheduler(make_agents(2), fake_clock)
        assert scheduler.state is SchedulerState.IDLE
        assert scheduler.tick_count == 0
        assert scheduler.time == 0.0
        assert scheduler.last_snapshot is None
        assert not scheduler.stop_requested
        assert "ReplanScheduler" in repr(scheduler)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    def test_tick_before_start_raises(self, make_agents, fake_clock) -> None:
        scheduler = _scheduler(make_agents(2), fake_clock)
        with pytest.raises(SchedulerStateError, match="tick"):
            scheduler.tick()

    def test_start_twice_raises(self, make_agents, fake_clock) -> None:
        scheduler = _scheduler(make_agents(2), fake_clock)
        scheduler.start()
        with pytest.raises(SchedulerStateError, match="start"):
            scheduler.start()

    def test_full_lifecycle(self, make_agents, fake_clock) -> None:
        scheduler = _scheduler(make_agents(2), fake_clock, recorder=RecordingMultiplexer())
        scheduler.start()
        assert scheduler.state is SchedulerState.RUNNING
        assert scheduler.run_start == 50.0
        scheduler.tick()
        log = scheduler.stop()
        assert scheduler.state is SchedulerState.STOPPED
        assert isinstance(log, RunLog)

    def test_tick_after_stop_raises(self, make_agents, fake_clock) -> None:
        scheduler = _scheduler(make_agents(2), fake_clock)
        scheduler.start()
        scheduler.stop()
        with pytest.raises(SchedulerStateError):
            scheduler.tick()
        with pytest.raises(SchedulerStateError):
            scheduler.run(max_ticks=1)

    def test_stop_is_idempotent(self, make_agents, fake_clock) -> None:
        scheduler = _scheduler(make_agents(2), fake_clock, recorder=RecordingMultiplexer())
        scheduler.run(max_ticks=2)
        first = scheduler.stop()
        second = scheduler.stop()
        assert first is second

    def test_stop_from_idle(self, make_agents, fake_clock) -> None:
        scheduler = _scheduler(make_agents(2), fake_clock, recorder=RecordingMultiplexer())
        log = scheduler.stop()
        assert scheduler.state is SchedulerState.STOPPED
        assert log is not None
        assert log.total_records == 0

    def test_run_starts_automatically(self, make_agents, fake_clock) -> None:
        scheduler = _scheduler(make_agents(2), fake_clock)
        assert scheduler.run(max_ticks=3) == 3
        assert scheduler.state is SchedulerState.RUNNING
        assert scheduler.tick_count == 3

    def test_stop_from_another_thread_waits_for_tick(self, stub_agent_cls) -> None:
        entered = threading.Event()
        release = threading.Event()
        calls: list[int] = []

        def block_first_tick() -> None:
            calls.append(1)
            if len(calls) == 2:  # call 1 is the initial plan
                entered.set()
                release.wait(5.0)

        agent = stub_agent_cls("a", (0.0, 0.0), work=block_first_tick)
        scheduler = ReplanScheduler(
            [agent], recorder=RecordingMultiplexer(), rate_hz=1000.0, wall_time=lambda: 0.0
        )
        scheduler.start()
        errors: list[BaseException] = []
        result: dict[str, object] = {}

        def drive() -> None:
            try:
                scheduler.run()
            except Exception as exc:  # noqa: BLE001
                errors.append(exc)

        runner = threading.Thread(target=drive)
        runner.start()
        assert entered.wait(5.0)
        stopper = threading.Thread(target=lambda: result.setdefault("log", scheduler.stop()))
        stopper.start()
        stopper.join(0.2)
        assert stopper.is_alive()
        assert scheduler.state is SchedulerState.RUNNING

        release.set()
        runner.join(5.0)
        stopper.join(5.0)
        assert errors == []
        assert scheduler.state is SchedulerState.STOPPED
        assert scheduler.tick_count == 1
        log = result["log"]
        assert isinstance(log, RunLog)
        assert all(len(log[name]) == 1 for name in log.names)

    def test_request_stop_ends_run_after_current_tick(self, make_agents, fake_clock) -> None:
        holder: dict[str, ReplanScheduler] = {}

        def stop_on_third_tick(n_items: int) -> None:
            if n_items == 12:
                holder["s"].request_stop()

        sink = ListSink(on_emit=stop_on_third_tick)
        scheduler = _scheduler(make_agents(2), fake_clock, sinks=[sink])
        holder["s"] = scheduler
        assert scheduler.run() == 3
        assert scheduler.stop_requested
        assert len(sink.items) == 12


# ---------------------------------------------------------------------------
# Timing and initial plans
# ---------------------------------------------------------------------------


class TestTiming:
    def test_initial_plans_are_staggered(self, make_agents, fake_clock) -> None:
        agents = make_agents(4)
        scheduler = _scheduler(agents, fake_clock, statics=[_wall()], initial_stagger=0.01)
        scheduler.start()
        for index, agent in enumerate(agents):
            time, obstacles = agent.calls[0]
            assert time == pytest.approx(index * 0.01)
            assert len(obstacles) == 1
            assert isinstance(obstacles[0], StaticObstacle)

    def test_logical_time_is_tick_times_update_t(self, make_agents, fake_clock) -> None:
        scheduler = _scheduler(make_agents(2), fake_clock, update_t=0.05)
        scheduler.start()
        reports = [scheduler.tick() for _ in range(40)]
        for k, report in enumerate(reports, start=1):
            assert isinstance(report, TickReport)
            assert report.tick == k
            assert report.time == pytest.approx(k * 0.05)
            assert report.stamp == pytest.approx(50.0 + k * 0.05)
        assert scheduler.time == pytest.approx(2.0)

    def test_every_agent_planned_once_per_tick(self, make_agents, fake_clock) -> None:
        agents = make_agents(3)
        scheduler = _scheduler(agents, fake_clock)
        scheduler.run(max_ticks=7)
        for agent in agents:
            assert [t for t, _ in agent.calls[1:]] == pytest.approx(
                [k * 0.01 for k in range(1, 8)]
            )
            assert len(agent.history()) == 8


# ---------------------------------------------------------------------------
# Barrier
# ---------------------------------------------------------------------------


class TestBarrier:
    def test_views_hold_only_pre_tick_plans(self, make_agents, fake_clock) -> None:
        agents = make_agents(4)
        scheduler = _scheduler(agents, fake_clock, initial_stagger=0.0)
        scheduler.run(max_ticks=10)
        for agent in agents:
            for time, obstacles in agent.calls[1:]:
                for obstacle in obstacles:
                    assert isinstance(obstacle, DynamicObstacle)
                    assert obstacle.time == pytest.approx(time)
                    assert obstacle.plan_time <= time - 0.01 + 1e-9

    def test_failed_initial_plan_uses_fallback(self, stub_agent_cls, fake_clock) -> None:
        agents = [
            stub_agent_cls("a", (0.0, 0.0)),
            stub_agent_cls("b", (0.0, 3.0), fail_on_calls=(1,)),
        ]
        scheduler = _scheduler(agents, fake_clock)
        scheduler.start()
        report = scheduler.tick()
        assert report.fallbacks == ["b"]
        assert report.success
        seen_by_a = agents[0].calls[1][1][0]
        assert seen_by_a.owner_id == "b"
        assert seen_by_a.plan_time == float("-inf")
        assert scheduler.tick().fallbacks == []

    def test_last_snapshot_matches_tick(self, make_agents, fake_clock) -> None:
        scheduler = _scheduler(make_agents(3), fake_clock)
        scheduler.start()
        scheduler.tick()
        scheduler.tick()
        snapshot = scheduler.last_snapshot
        assert snapshot is not None
        assert snapshot.time == pytest.approx(0.02)
        assert len(snapshot) == 3

    def test_thread_pool_matches_sequential(self, make_agents, fake_clock) -> None:
        sequential = RecordingMultiplexer()
        pooled = RecordingMultiplexer()
        a = _scheduler(make_agents(6), fake_clock, recorder=sequential)
        b = _scheduler(make_agents(6), fake_clock, recorder=pooled, workers=3)
        a.run(max_ticks=10)
        b.run(max_ticks=10)
        a.stop()
        b.stop()
        for channel in ("/states", "/paths"):
            assert sequential.records(channel) == pooled.records(channel)


# ---------------------------------------------------------------------------
# Failures and shutdown
# ---------------------------------------------------------------------------


class TestShutdown:
    def test_recording_disabled_returns_none(self, make_agents, fake_clock) -> None:
        scheduler = _scheduler(make_agents(2), fake_clock)
        scheduler.run(max_ticks=2)
        assert scheduler.stop() is None

    def test_persistence_receives_flushed_log_once(self, make_agents, fake_clock) -> None:
        store = MagicMock(spec=["write"])
        scheduler = _scheduler(
            make_agents(2), fake_clock, recorder=RecordingMultiplexer(), persistence=store
        )
        scheduler.run(max_ticks=3)
        log = scheduler.stop()
        scheduler.stop()
        store.write.assert_called_once_with(log)

    def test_persistence_failure_raises_and_stops(self, make_agents, fake_clock) -> None:
        scheduler = _scheduler(
            make_agents(2),
            fake_clock,
            recorder=RecordingMultiplexer(),
            persistence=BrokenStore(),
            workers=2,
        )
        scheduler.run(max_ticks=2)
        with pytest.raises(RecordingError, match="disk full"):
            scheduler.stop()
        assert scheduler.state is SchedulerState.STOPPED

    def test_failures_are_counted(self, stub_agent_cls, fake_clock) -> None:
        agents = [
            stub_agent_cls("a", (0.0, 0.0), fail_on_calls=(2, 3)),
            stub_agent_cls("b", (0.0, 3.0)),
        ]
        scheduler = _scheduler(agents, fake_clock, recorder=RecordingMultiplexer())
        scheduler.run(max_ticks=4)
        assert scheduler.failures == {"a": 2}
        log = scheduler.stop()
        assert log is not None
        assert log.metadata["failures"] == {"a": 2}

    def test_run_metadata(self, make_agents, fake_clock) -> None:
        scheduler = _scheduler(make_agents(2), fake_clock, recorder=RecordingMultiplexer())
        scheduler.run(max_ticks=3)
        log = scheduler.stop()
        assert log is not None
        assert log.metadata["agents"] == ["agent0", "agent1"]
        assert log.metadata["ticks"] == 3
        assert log.metadata["run_start"] == 50.0


# ---------------------------------------------------------------------------
# Telemetry
# ---------------------------------------------------------------------------


class TestTelemetry:
    def test_emit_order_per_tick(self, make_agents, fake_clock) -> None:
        sink = ListSink()
        scheduler = _scheduler(make_agents(2), fake_clock, sinks=[sink])
        scheduler.run(max_ticks=2)
        channels = [channel for channel, _, _ in sink.items]
        assert channels == ["/states", "/polyhedrons", "/paths", "/prs"] * 2

    def test_custom_channel_names_and_frame(self, make_agents, fake_clock) -> None:
        names = ChannelNames(states="/s", polyhedrons="/o", paths="/p", primitives="/m")
        recorder = RecordingMultiplexer()
        scheduler = _scheduler(
            make_agents(2), fake_clock, channels=names, frame_id="world", recorder=recorder
        )
        scheduler.run(max_ticks=1)
        assert recorder.channel_names == ["/s", "/o", "/p", "/m"]
        assert recorder.records("/s")[0].header.frame_id == "world"

    def test_record_contents(self, make_agents, fake_clock) -> None:
        recorder = RecordingMultiplexer()
        scheduler = _scheduler(
            make_agents(3), fake_clock, statics=[_wall()], recorder=recorder
        )
        scheduler.run(max_ticks=1)
        cloud = recorder.records("/states")[0]
        polys = recorder.records("/polyhedrons")[0]
        paths = recorder.records("/paths")[0]
        prims = recorder.records("/prs")[0]
        assert len(cloud.points) == 3  # type: ignore[union-attr]
        assert all(len(p) == 3 and p[2] == 0.0 for p in cloud.points)  # type: ignore[union-attr]
        assert len(polys.polyhedrons) == 4  # type: ignore[union-attr]
        assert [len(path) for path in paths.paths] == [2, 2, 2]  # type: ignore[union-attr]
        assert [p["agent_id"] for p in prims.primitives] == [  # type: ignore[union-attr]
            "agent0",
            "agent1",
            "agent2",
        ]

    def test_emitted_obstacles_are_shrunk(self, make_agents, fake_clock) -> None:
        recorder = RecordingMultiplexer()
        scheduler = _scheduler(
            make_agents(1), fake_clock, statics=[_wall()], recorder=recorder, obstacle_shrink=0.25
        )
        scheduler.run(max_ticks=1)
        wall = Polyhedron.from_dict(recorder.records("/polyhedrons")[0].polyhedrons[1])  # type: ignore[union-attr]
        assert wall.contains([4.5, 0.0])
        assert not wall.contains([4.1, 0.0])

    def test_sinks_and_recorder_both_receive(self, make_agents, fake_clock) -> None:
        sink = ListSink()
        recorder = RecordingMultiplexer()
        scheduler = _scheduler(make_agents(2), fake_clock, sinks=[sink], recorder=recorder)
        scheduler.run(max_ticks=3)
        assert len(sink.items) == len(recorder) == 12
