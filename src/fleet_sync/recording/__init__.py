"""Telemetry records, per-channel recording, run-log persistence, and replay."""
from __future__ import annotations

from fleet_sync.recording.messages import (
    Header,
    PathArrayRecord,
    PointCloudRecord,
    PolyhedronArrayRecord,
    PrimitiveArrayRecord,
    TelemetryRecord,
)
from fleet_sync.recording.multiplexer import (
    ChannelOrderError,
    PersistenceSink,
    RecordingError,
    RecordingMultiplexer,
    TelemetrySink,
    recording_session,
)
from fleet_sync.recording.replay import ChannelSummary, RunLogReplay
from fleet_sync.recording.runlog import RunLog
from fleet_sync.recording.store import NpzRunLogStore

__all__ = [
    "Header",
    "PointCloudRecord",
    "PolyhedronArrayRecord",
    "PathArrayRecord",
    "PrimitiveArrayRecord",
    "TelemetryRecord",
    "RecordingMultiplexer",
    "RecordingError",
    "ChannelOrderError",
    "TelemetrySink",
    "PersistenceSink",
    "recording_session",
    "RunLog",
    "NpzRunLogStore",
    "RunLogReplay",
    "ChannelSummary",
]
