"""
Copyright 2025 AUMOVIO. All rights reserved.
"""
from dataclasses import dataclass
from typing import List, Sequence

import numpy as np


@dataclass(frozen=True)
class PathPoint:
    x: float = 0.0
    y: float = 0.0
    theta: float = 0.0
    kappa: float = 0.0
    dkappa: float = 0.0
    ddkappa: float = 0.0
    s: float = 0.0


_FIELDS = ("x", "y", "theta", "kappa", "dkappa", "ddkappa")


def get_polyline_arc_length(points: np.ndarray) -> np.ndarray:
    """Calculate cumulative distance from the start for each vertex in a sequence."""
    steps = points[1:] - points[:-1]
    segment_lengths = np.hypot(steps[:, 0], steps[:, 1])
    total_lengths = np.insert(np.cumsum(segment_lengths), 0, 0.0)
    return total_lengths


class DiscretizedPath(object):
    '''
    A path sampled along its arc length providing pose, curvature and curvature derivatives
    '''
    def __init__(self, points: Sequence[PathPoint]):
        if len(points) < 1:
            raise ValueError("a path needs at least one point.")
        self.points: List[PathPoint] = list(points)
        self.s = np.array([p.s for p in self.points], dtype=float)
        if np.any(np.diff(self.s) < 0):
            raise ValueError("path points must be ordered by arc length.")
        self._table = {name: np.array([getattr(p, name) for p in self.points], dtype=float) for name in _FIELDS}

    @classmethod
    def from_xy(cls, x: Sequence[float], y: Sequence[float]) -> "DiscretizedPath":
        """Build a path from a polyline, deriving heading and curvature by finite differences."""
        xy = np.column_stack((np.asarray(x, dtype=float), np.asarray(y, dtype=float)))
        if xy.shape[0] < 3:
            raise ValueError("at least three points are needed to derive curvature.")
        s = get_polyline_arc_length(xy)
        dx = np.gradient(xy[:, 0], s)
        dy = np.gradient(xy[:, 1], s)
        # fix angle jump
        theta = np.unwrap(np.arctan2(dy, dx))
        kappa = np.gradient(theta, s)
        dkappa = np.gradient(kappa, s)
        ddkappa = np.gradient(dkappa, s)
        points = [
            PathPoint(x=xy[i, 0], y=xy[i, 1], theta=theta[i], kappa=kappa[i], dkappa=dkappa[i], ddkappa=ddkappa[i], s=s[i])
            for i in range(xy.shape[0])
        ]
        return cls(points)

    @classmethod
    def straight(cls, length: float, resolution: float = 0.5, heading: float = 0.0) -> "DiscretizedPath":
        num = max(2, int(np.ceil(length / resolution)) + 1)
        s = np.linspace(0.0, length, num)
        points = [PathPoint(x=si * np.cos(heading), y=si * np.sin(heading), theta=heading, s=si) for si in s]
        return cls(points)

    @classmethod
    def arc(cls, radius: float, length: float, resolution: float = 0.5) -> "DiscretizedPath":
        """Circular arc of constant curvature 1/radius turning left from the origin."""
        if radius <= 0:
            raise ValueError("radius must be positive.")
        num = max(2, int(np.ceil(length / resolution)) + 1)
        s = np.linspace(0.0, length, num)
        theta = s / radius
        points = [
            PathPoint(x=radius * np.sin(t), y=radius * (1.0 - np.cos(t)), theta=t, kappa=1.0 / radius, s=si)
            for si, t in zip(s, theta)
        ]
        return cls(points)

    def __len__(self):
        return len(self.points)

    def front(self) -> PathPoint:
        return self.points[0]

    def back(self) -> PathPoint:
        return self.points[-1]

    def get_length(self) -> float:
        return self.s[-1] - self.s[0]

    def evaluate(self, path_s: float) -> PathPoint:
        """Linearly interpolate the path at arc length `path_s`, clamping to the first/last point outside the path."""
        if path_s <= self.s[0]:
            return self.points[0]
        if path_s >= self.s[-1]:
            return self.points[-1]
        values = {name: float(np.interp(path_s, self.s, table)) for name, table in self._table.items()}
        return PathPoint(s=float(path_s), **values)

