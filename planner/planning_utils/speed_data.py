"""
Copyright 2025 AUMOVIO. All rights reserved.
"""
import logging
from dataclasses import dataclass

import numpy as np

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SpeedPoint:
    s: float
    t: float
    v: float
    a: float
    da: float


class SpeedData(list):
    """Caller-owned, time-ordered container of speed profile points."""

    def append_speed_point(self, s: float, t: float, v: float, a: float, da: float) -> None:
        if self and t < self[-1].t:
            raise ValueError(f"speed points must be appended in time order; got t={t} after t={self[-1].t}")
        self.append(SpeedPoint(float(s), float(t), float(v), float(a), float(da)))

    def total_time(self) -> float:
        return self[-1].t - self[0].t if self else 0.0

    def total_length(self) -> float:
        return self[-1].s - self[0].s if self else 0.0

    def as_array(self) -> np.ndarray:
        """Return an array of shape (len, 5) with columns [s, t, v, a, da]."""
        return np.array([[p.s, p.t, p.v, p.a, p.da] for p in self], dtype=float).reshape(-1, 5)


def fill_enough_speed_points(speed_data: SpeedData, total_time: float = 3.0, time_unit: float = 0.1) -> SpeedData:
    """
    Pad a short profile with stationary points until it covers `total_time`.

    The padding keeps the last distance and appends zero speed, acceleration
    and jerk every `time_unit` seconds.
    """
    if not speed_data:
        return speed_data
    last_point = speed_data[-1]
    if last_point.t >= total_time:
        return speed_data
    num_padded = 0
    t = last_point.t + time_unit
    while t < total_time:
        speed_data.append_speed_point(last_point.s, t, 0.0, 0.0, 0.0)
        t += time_unit
        num_padded += 1
    logger.debug(f"Padded speed profile with {num_padded} stationary points up to {total_time:.2f} s")
    return speed_data
