"""Footprint geometry and obstacle variants."""
from __future__ import annotations

from fleet_sync.geometry.obstacles import DynamicObstacle, Obstacle, StaticObstacle
from fleet_sync.geometry.polyhedron import Hyperplane, Polyhedron

__all__ = [
    "Hyperplane",
    "Polyhedron",
    "Obstacle",
    "StaticObstacle",
    "DynamicObstacle",
]
