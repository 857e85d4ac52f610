"""RecordingMultiplexer — buffer telemetry per channel and flush it once.

The multiplexer is the in-process half of run recording: the scheduler
emits every telemetry record into it under a channel name, and at shutdown
:meth:`RecordingMultiplexer.flush` materialises a :class:`RunLog` that a
persistence sink writes to disk in one atomic step.

Two narrow interfaces decouple the coordination loop from any transport or
file format:

* :class:`TelemetrySink` — ``emit(channel, timestamp, record)``
* :class:`PersistenceSink` — ``write(log)``; raises :class:`RecordingError`
  when the log cannot be persisted.
"""
from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Mapping, Protocol, runtime_checkable

from fleet_sync.recording.messages import TelemetryRecord
from fleet_sync.recording.runlog import RunLog

logger = logging.getLogger(__name__)


class RecordingError(RuntimeError):
    """Raised when a run cannot be recorded or persisted."""


class ChannelOrderError(RecordingError):
    """Raised when a record's timestamp precedes the channel's last one."""


@runtime_checkable
class TelemetrySink(Protocol):
    """Receives every record the scheduler emits."""

    def emit(self, channel: str, timestamp: float, record: TelemetryRecord) -> None:
        ...


@runtime_checkable
class PersistenceSink(Protocol):
    """Writes a flushed run log somewhere durable."""

    def write(self, log: RunLog) -> None:
        ...


class RecordingMultiplexer:
    """Per-channel ordered buffers of telemetry records.

    Parameters
    ----------
    max_records_per_channel:
        If set, a channel stops accepting records once it holds this many
        (existing records are preserved, one warning is logged per channel).

    Usage
    -----
    ::

        recorder = RecordingMultiplexer()
        recorder.record("/states", stamp, cloud)
        log = recorder.flush()
        NpzRunLogStore("sim.bag").write(log)
    """

    def __init__(self, max_records_per_channel: int | None = None) -> None:
        if max_records_per_channel is not None and max_records_per_channel < 1:
            raise ValueError(
                f"max_records_per_channel must be >= 1, got {max_records_per_channel}."
            )
        self._max_records = max_records_per_channel
        self._channels: dict[str, list[TelemetryRecord]] = {}
        self._stamps: dict[str, list[float]] = {}
        self._last_stamp: dict[str, float] = {}
        self._dropped: dict[str, int] = {}
        self._flushed: RunLog | None = None

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record(self, channel: str, timestamp: float, item: TelemetryRecord) -> None:
        """Append *item* to *channel* under *timestamp*.

        The stamp is stored alongside the record and is what the flushed
        log reports; the record's own header is not consulted.

        Raises
        ------
        ChannelOrderError
            If *timestamp* is lower than the channel's previous timestamp.
        RecordingError
            If the multiplexer has already been flushed.
        """
        if self._flushed is not None:
            raise RecordingError(
                f"Cannot record on {channel!r}: the run log has already been flushed."
            )
        last = self._last_stamp.get(channel)
        if last is not None and timestamp < last:
            raise ChannelOrderError(
                f"Channel {channel!r}: timestamp {timestamp:.6f} precedes "
                f"previous timestamp {last:.6f}."
            )
        buffer = self._channels.setdefault(channel, [])
        if self._max_records is not None and len(buffer) >= self._max_records:
            if channel not in self._dropped:
                logger.warning(
                    "Channel %s reached %d records; further records are dropped",
                    channel,
                    self._max_records,
                )
            self._dropped[channel] = self._dropped.get(channel, 0) + 1
            return
        buffer.append(item)
        self._stamps.setdefault(channel, []).append(timestamp)
        self._last_stamp[channel] = timestamp

    def emit(self, channel: str, timestamp: float, record: TelemetryRecord) -> None:
        """:class:`TelemetrySink` entry point; same as :meth:`record`."""
        self.record(channel, timestamp, record)

    # ------------------------------------------------------------------
    # Flushing
    # ------------------------------------------------------------------

    def flush(self, metadata: Mapping[str, object] | None = None) -> RunLog:
        """Materialise everything recorded so far as a :class:`RunLog`.

        A second call returns the log produced by the first; *metadata*
        passed on later calls is ignored.
        """
        if self._flushed is not None:
            logger.debug("flush() called again; returning the existing run log")
            return self._flushed
        meta: dict[str, object] = dict(metadata or {})
        if self._dropped:
            meta["dropped_records"] = dict(self._dropped)
        self._flushed = RunLog(
            channels=self._channels, metadata=meta, channel_stamps=self._stamps
        )
        logger.info(
            "Flushed %d records across %d channels",
            self._flushed.total_records,
            len(self._flushed),
        )
        return self._flushed

    @property
    def flushed(self) -> bool:
        return self._flushed is not None

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    @property
    def channel_names(self) -> list[str]:
        return list(self._channels)

    def records(self, channel: str) -> list[TelemetryRecord]:
        """Copy of the records buffered on *channel* (empty if unknown)."""
        return list(self._channels.get(channel, []))

    def stamps(self, channel: str) -> list[float]:
        """Copy of the stamps recorded on *channel* (empty if unknown)."""
        return list(self._stamps.get(channel, []))

    def __len__(self) -> int:
        return sum(len(buffer) for buffer in self._channels.values())

    def __repr__(self) -> str:
        return (
            f"RecordingMultiplexer(channels={len(self._channels)}, records={len(self)}, "
            f"max_records_per_channel={self._max_records})"
        )


@contextmanager
def recording_session(
    sink: PersistenceSink,
    max_records_per_channel: int | None = None,
) -> Iterator[RecordingMultiplexer]:
    """Scoped write handle: yield a multiplexer, persist it on exit.

    The log is written even when the body raises, so a crashed run still
    leaves its telemetry behind; a persistence failure then propagates as
    :class:`RecordingError`.
    """
    recorder = RecordingMultiplexer(max_records_per_channel=max_records_per_channel)
    try:
        yield recorder
    finally:
        sink.write(recorder.flush())
