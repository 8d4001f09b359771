"""
Copyright 2025 AUMOVIO. All rights reserved.
"""
from typing import List, Sequence, Tuple

import numpy as np


class SpeedLimit:
    """
    Piecewise-constant speed limit along the arc length.

    Points `(s, v)` are kept sorted by `s`. A query returns the limit of the
    first point at or beyond the queried arc length, and the last limit for
    queries past the final point.
    """
    def __init__(self, speed_limit_points: Sequence[Tuple[float, float]] = ()):
        self.speed_limit_points: List[Tuple[float, float]] = []
        for s, v in speed_limit_points:
            self.append_speed_limit(s, v)

    @classmethod
    def constant(cls, limit: float, length: float = 200.0) -> "SpeedLimit":
        return cls([(0.0, limit), (length, limit)])

    def append_speed_limit(self, s: float, v: float) -> None:
        if self.speed_limit_points and s < self.speed_limit_points[-1][0]:
            raise ValueError("speed limit points must be appended in increasing arc length.")
        if v < 0:
            raise ValueError("speed limit must be non-negative.")
        self.speed_limit_points.append((float(s), float(v)))

    def __len__(self):
        return len(self.speed_limit_points)

    def get_speed_limit_by_s(self, s: float) -> float:
        if not self.speed_limit_points:
            raise ValueError("speed limit is empty.")
        s_table = np.array([p[0] for p in self.speed_limit_points])
        index = int(np.searchsorted(s_table, s, side="left"))
        if index == len(self.speed_limit_points):
            index -= 1
        return self.speed_limit_points[index][1]

    def __call__(self, s: float) -> float:
        return self.get_speed_limit_by_s(s)
