"""Half-space polyhedra used for agent footprints and obstacle geometry.

A :class:`Polyhedron` is the intersection of half-spaces, each described by
a :class:`Hyperplane` (a point on the plane and its outward normal).  Only
the handful of operations the coordination loop needs are provided:
containment tests, translation, and shrinking/inflating along the normals.
Full polyhedral math is left to a dedicated geometry library.
"""
from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from pydantic import BaseModel, field_validator


def _readonly(values: object) -> NDArray[np.float64]:
    arr = np.array(values, dtype=np.float64)
    arr.flags.writeable = False
    return arr


class Hyperplane(BaseModel):
    """One bounding plane of a polyhedron.

    Attributes
    ----------
    point:
        Any point lying on the plane.
    normal:
        Outward unit normal.  Points ``x`` with ``normal·(x - point) <= 0``
        are on the inside.
    """

    model_config = {"arbitrary_types_allowed": True, "frozen": True}

    point: NDArray[np.float64]
    normal: NDArray[np.float64]

    @field_validator("point", "normal", mode="before")
    @classmethod
    def _as_array(cls, value: object) -> NDArray[np.float64]:
        return _readonly(value)

    def signed_distance(self, x: NDArray[np.float64]) -> float:
        """Distance of *x* from the plane, positive outside."""
        return float(np.dot(self.normal, np.asarray(x, dtype=np.float64) - self.point))

    def to_dict(self) -> dict[str, list[float]]:
        return {"point": self.point.tolist(), "normal": self.normal.tolist()}


class Polyhedron(BaseModel):
    """Convex region given as an intersection of half-spaces."""

    model_config = {"frozen": True}

    planes: tuple[Hyperplane, ...]

    @classmethod
    def box(
        cls,
        lower: "list[float] | NDArray[np.float64]",
        upper: "list[float] | NDArray[np.float64]",
    ) -> "Polyhedron":
        """Build an axis-aligned box from its lower and upper corners."""
        lo = np.asarray(lower, dtype=np.float64)
        hi = np.asarray(upper, dtype=np.float64)
        if lo.shape != hi.shape:
            raise ValueError(
                f"Box corners must have equal dimension, got {lo.shape} and {hi.shape}."
            )
        if np.any(lo > hi):
            raise ValueError(f"Box lower corner {lo.tolist()} exceeds upper {hi.tolist()}.")
        center = (lo + hi) / 2.0
        planes: list[Hyperplane] = []
        for axis in range(lo.shape[0]):
            unit = np.zeros_like(lo)
            unit[axis] = 1.0
            low_point = center.copy()
            low_point[axis] = lo[axis]
            high_point = center.copy()
            high_point[axis] = hi[axis]
            planes.append(Hyperplane(point=low_point, normal=-unit))
            planes.append(Hyperplane(point=high_point, normal=unit))
        return cls(planes=tuple(planes))

    @classmethod
    def centered_box(cls, half_extent: float, dim: int = 2) -> "Polyhedron":
        """Square (or cube) footprint centred at the origin."""
        half = np.full(dim, half_extent, dtype=np.float64)
        return cls.box(-half, half)

    @property
    def dim(self) -> int:
        return int(self.planes[0].point.shape[0]) if self.planes else 0

    def contains(self, x: "list[float] | NDArray[np.float64]", margin: float = 0.0) -> bool:
        """Return True if *x* lies inside the polyhedron inflated by *margin*."""
        return all(plane.signed_distance(np.asarray(x)) <= margin for plane in self.planes)

    def translate(self, offset: "list[float] | NDArray[np.float64]") -> "Polyhedron":
        delta = np.asarray(offset, dtype=np.float64)
        return Polyhedron(
            planes=tuple(
                Hyperplane(point=plane.point + delta, normal=plane.normal)
                for plane in self.planes
            )
        )

    def shrink(self, distance: float) -> "Polyhedron":
        """Move every plane inward by *distance* (negative inflates)."""
        return Polyhedron(
            planes=tuple(
                Hyperplane(point=plane.point - plane.normal * distance, normal=plane.normal)
                for plane in self.planes
            )
        )

    def to_dict(self) -> list[dict[str, list[float]]]:
        return [plane.to_dict() for plane in self.planes]

    @classmethod
    def from_dict(cls, data: list[dict[str, list[float]]]) -> "Polyhedron":
        return cls(
            planes=tuple(
                Hyperplane(point=item["point"], normal=item["normal"]) for item in data
            )
        )

    def __len__(self) -> int:
        return len(self.planes)
