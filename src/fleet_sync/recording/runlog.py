"""RunLog — the flushed, immutable collection of all channels for one run."""
from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterator, Mapping

from fleet_sync.recording.messages import TelemetryRecord


@dataclass(frozen=True)
class RunLog:
    """Channel name → timestamp-ordered records.

    Attributes
    ----------
    channels:
        Read-only mapping; channel order is first-record order.
    metadata:
        Free-form annotations (fleet size, tick count, rates, ...).
    channel_stamps:
        Timestamp each record was recorded under, parallel to
        :attr:`channels`.  When omitted, the records' header stamps are used.

    Raises
    ------
    ValueError
        If a channel's stamps do not match its records one to one or
        decrease.
    """

    channels: Mapping[str, tuple[TelemetryRecord, ...]]
    metadata: Mapping[str, object] = field(default_factory=dict)
    channel_stamps: Mapping[str, tuple[float, ...]] | None = None

    def __post_init__(self) -> None:
        frozen = {name: tuple(records) for name, records in self.channels.items()}
        if self.channel_stamps is None:
            stamps = {
                name: tuple(record.header.stamp for record in records)
                for name, records in frozen.items()
            }
        else:
            stamps = {
                name: tuple(float(s) for s in self.channel_stamps.get(name, ()))
                for name in frozen
            }
        for name, records in frozen.items():
            if len(stamps[name]) != len(records):
                raise ValueError(
                    f"Channel {name!r} has {len(records)} records but {len(stamps[name])} stamps."
                )
            if any(b < a for a, b in zip(stamps[name], stamps[name][1:])):
                raise ValueError(f"Channel {name!r} has decreasing stamps.")
        object.__setattr__(self, "channels", MappingProxyType(frozen))
        object.__setattr__(self, "channel_stamps", MappingProxyType(stamps))
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @property
    def names(self) -> list[str]:
        return list(self.channels)

    @property
    def total_records(self) -> int:
        return sum(len(records) for records in self.channels.values())

    def stamps(self, channel: str) -> list[float]:
        """Recorded stamps of *channel* in recorded order."""
        return list(self.channel_stamps[channel])  # type: ignore[index]

    def stamped(self, channel: str) -> Iterator[tuple[float, TelemetryRecord]]:
        """``(stamp, record)`` pairs of *channel* in recorded order."""
        return zip(self.channel_stamps[channel], self.channels[channel])  # type: ignore[index]

    def __getitem__(self, channel: str) -> tuple[TelemetryRecord, ...]:
        return self.channels[channel]

    def __contains__(self, channel: object) -> bool:
        return channel in self.channels

    def __iter__(self) -> Iterator[str]:
        return iter(self.channels)

    def __len__(self) -> int:
        return len(self.channels)

    def __repr__(self) -> str:
        return f"RunLog(channels={len(self.channels)}, records={self.total_records})"
