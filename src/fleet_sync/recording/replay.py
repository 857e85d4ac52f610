"""RunLogReplay — iterate and analyse a recorded run offline.

Channels are independent, so each can be replayed on its own; the merged
iterator interleaves all channels by stamp for a single time-ordered pass.
Analysis helpers work on the positions channel to reconstruct where every
agent was at every tick.
"""
from __future__ import annotations

import heapq
import logging
from dataclasses import dataclass
from typing import Iterator

import numpy as np
from numpy.typing import NDArray

from fleet_sync.recording.messages import PathArrayRecord, PointCloudRecord, TelemetryRecord
from fleet_sync.recording.runlog import RunLog

logger = logging.getLogger(__name__)


@dataclass
class ChannelSummary:
    """Record count and stamp span of one channel."""

    name: str
    n_records: int
    first_stamp: float = float("nan")
    last_stamp: float = float("nan")

    @property
    def duration(self) -> float:
        return self.last_stamp - self.first_stamp if self.n_records else 0.0


class RunLogReplay:
    """Read-side view over a :class:`RunLog`.

    Parameters
    ----------
    log:
        The run log to replay.
    positions_channel:
        Name of the channel carrying agent position clouds.
    paths_channel:
        Name of the channel carrying per-tick path increments.

    Usage
    -----
    ::

        log = NpzRunLogStore("sim.bag").load()
        replay = RunLogReplay(log)
        for channel, record in replay.iter_merged():
            ...
        print(replay.min_separation())
    """

    def __init__(
        self,
        log: RunLog,
        positions_channel: str = "/states",
        paths_channel: str = "/paths",
    ) -> None:
        self._log = log
        self._positions_channel = positions_channel
        self._paths_channel = paths_channel

    @property
    def log(self) -> RunLog:
        return self._log

    def iter_channel(self, channel: str) -> Iterator[TelemetryRecord]:
        """Records of *channel* in recorded order."""
        if channel not in self._log:
            raise KeyError(f"Channel {channel!r} not in run log; available: {self._log.names}")
        return iter(self._log[channel])

    def iter_merged(self) -> Iterator[tuple[str, TelemetryRecord]]:
        """All records of all channels by stamp; ties keep channel order."""
        streams = [self._keyed(rank, name) for rank, name in enumerate(self._log.names)]
        for _, _, _, name, record in heapq.merge(*streams, key=lambda item: item[:3]):
            yield name, record

    def _keyed(
        self, rank: int, name: str
    ) -> Iterator[tuple[float, int, int, str, TelemetryRecord]]:
        for i, (stamp, record) in enumerate(self._log.stamped(name)):
            yield stamp, rank, i, name, record

    def summary(self) -> list[ChannelSummary]:
        result: list[ChannelSummary] = []
        for name in self._log.names:
            stamps = self._log.stamps(name)
            if stamps:
                result.append(ChannelSummary(name, len(stamps), stamps[0], stamps[-1]))
            else:
                result.append(ChannelSummary(name, 0))
        return result

    def agent_positions(self) -> NDArray[np.float64]:
        """``(ticks, agents, 2)`` array of planar positions.

        Raises
        ------
        ValueError
            If the fleet size changes between ticks.
        """
        if self._positions_channel not in self._log:
            logger.warning("Run log has no %s channel", self._positions_channel)
            return np.zeros((0, 0, 2), dtype=np.float64)
        frames: list[NDArray[np.float64]] = []
        for record in self._log[self._positions_channel]:
            if not isinstance(record, PointCloudRecord):
                continue
            points = np.array(record.points, dtype=np.float64).reshape(-1, 3)
            frames.append(points[:, :2])
        if not frames:
            return np.zeros((0, 0, 2), dtype=np.float64)
        sizes = {frame.shape[0] for frame in frames}
        if len(sizes) != 1:
            raise ValueError(f"Fleet size varies across ticks: {sorted(sizes)}")
        return np.stack(frames, axis=0)

    def agent_paths(self) -> list[NDArray[np.float64]]:
        """Full committed path of every agent, one ``(points, 2)`` array each.

        Each paths record holds only the points committed since the previous
        tick, so the full path is the concatenation over all records.
        """
        if self._paths_channel not in self._log:
            logger.warning("Run log has no %s channel", self._paths_channel)
            return []
        pieces: list[list[list[float]]] = []
        for record in self._log[self._paths_channel]:
            if not isinstance(record, PathArrayRecord):
                continue
            if len(pieces) < len(record.paths):
                pieces.extend([] for _ in range(len(record.paths) - len(pieces)))
            for index, increment in enumerate(record.paths):
                pieces[index].extend(increment)
        return [
            np.array(points, dtype=np.float64).reshape(-1, 3)[:, :2] for points in pieces
        ]

    def min_separation(self) -> float:
        """Smallest distance between any two agents at any recorded tick.

        ``inf`` when fewer than two agents were recorded.
        """
        positions = self.agent_positions()
        if positions.ndim != 3 or positions.shape[1] < 2:
            return float("inf")
        diff = positions[:, :, None, :] - positions[:, None, :, :]
        dist = np.linalg.norm(diff, axis=-1)
        n_agents = positions.shape[1]
        dist[:, np.arange(n_agents), np.arange(n_agents)] = np.inf
        return float(np.min(dist))

    def __repr__(self) -> str:
        return f"RunLogReplay(log={self._log!r})"
