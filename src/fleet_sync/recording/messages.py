"""Typed telemetry records emitted once per tick on each channel.

Every record carries a :class:`Header` with the logical-time-derived stamp
(run start + logical time) and a frame tag.  Payloads are plain lists so
records serialise to JSON without custom encoders.
"""
from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter


class Header(BaseModel):
    """Stamp and coordinate frame of one record."""

    model_config = {"frozen": True}

    stamp: float
    frame_id: str = "map"


class PointCloudRecord(BaseModel):
    """Positions of every agent at the current tick (z = 0 for planar fleets)."""

    model_config = {"frozen": True}

    kind: Literal["point_cloud"] = "point_cloud"
    header: Header
    points: list[list[float]] = Field(default_factory=list)


class PolyhedronArrayRecord(BaseModel):
    """Obstacle geometry for the current tick.

    Each polyhedron is a list of ``{"point": [...], "normal": [...]}`` planes.
    """

    model_config = {"frozen": True}

    kind: Literal["polyhedron_array"] = "polyhedron_array"
    header: Header
    polyhedrons: list[list[dict[str, list[float]]]] = Field(default_factory=list)


class PathArrayRecord(BaseModel):
    """Path points every agent committed since the previous record.

    ``paths[i]`` belongs to the i-th agent; concatenating ``paths[i]`` over
    the channel in order gives that agent's full path history.
    """

    model_config = {"frozen": True}

    kind: Literal["path_array"] = "path_array"
    header: Header
    paths: list[list[list[float]]] = Field(default_factory=list)


class PrimitiveArrayRecord(BaseModel):
    """Motion primitives of all agents for the current tick."""

    model_config = {"frozen": True}

    kind: Literal["primitive_array"] = "primitive_array"
    header: Header
    primitives: list[dict[str, object]] = Field(default_factory=list)


TelemetryRecord = Annotated[
    Union[PointCloudRecord, PolyhedronArrayRecord, PathArrayRecord, PrimitiveArrayRecord],
    Field(discriminator="kind"),
]

_RECORD_ADAPTER: TypeAdapter[TelemetryRecord] = TypeAdapter(TelemetryRecord)


def record_to_json(record: BaseModel) -> str:
    """Serialise any telemetry record to a JSON string."""
    return record.model_dump_json()


def record_from_json(data: str) -> TelemetryRecord:
    """Restore a telemetry record, dispatching on its ``kind`` tag."""
    return _RECORD_ADAPTER.validate_json(data)


def to_xyz(point: "list[float] | tuple[float, ...]") -> list[float]:
    """Pad a planar point with ``z = 0``; 3-D points pass through."""
    values = [float(v) for v in point]
    if len(values) == 2:
        values.append(0.0)
    return values
