"""
Copyright 2025 AUMOVIO. All rights reserved.
"""
import bisect
from typing import List, Sequence

import casadi as ca
import numpy as np


class ConstantJerkSegment:
    """
    One segment of a 1-D curve with constant third derivative.

    Starting from (p0, v0, a0) the segment evaluates at local parameter t as
        p(t) = p0 + v0 t + a0 t^2 / 2 + j t^3 / 6
        v(t) = v0 + a0 t + j t^2 / 2
        a(t) = a0 + j t
        j(t) = j
    Evaluation is not restricted to [0, length] so that the outermost
    segments of a curve extrapolate.
    """
    def __init__(self, p0: float, v0: float, a0: float, jerk: float, length: float):
        if length <= 0:
            raise ValueError("segment length must be positive.")
        self.p0 = p0
        self.v0 = v0
        self.a0 = a0
        self.jerk = jerk
        self.length = length
        self.p1 = self.evaluate(0, length)
        self.v1 = self.evaluate(1, length)
        self.a1 = self.evaluate(2, length)

    def evaluate(self, order: int, t):
        if order == 0:
            return self.p0 + self.v0 * t + 0.5 * self.a0 * t * t + self.jerk * t * t * t / 6.0
        if order == 1:
            return self.v0 + self.a0 * t + 0.5 * self.jerk * t * t
        if order == 2:
            return self.a0 + self.jerk * t
        if order == 3:
            return self.jerk + 0.0 * t
        return 0.0 * t

    def __repr__(self):
        return f"{self.__class__.__name__}(p0={self.p0}, v0={self.v0}, a0={self.a0}, jerk={self.jerk}, length={self.length})"


class PiecewiseJerkCurve:
    """
    Continuously evaluable 1-D curve built from consecutive constant-jerk segments.

    The curve is anchored at domain coordinate `start` with value, first and
    second derivative. Segments are appended in order and each one continues
    from the end state of its predecessor, so value, slope and curvature are
    continuous and only the jerk jumps at the knots.
    """
    def __init__(self, value: float, d_value: float, dd_value: float, start: float = 0.0):
        self.anchor = (float(value), float(d_value), float(dd_value))
        self.start = float(start)
        self.segments: List[ConstantJerkSegment] = []
        # domain coordinate at which each segment begins, plus the end of the last one
        self.params: List[float] = [self.start]

    @classmethod
    def from_knots(cls, x: Sequence[float], dx: Sequence[float], ddx: Sequence[float], spacing: float, start: float = 0.0) -> "PiecewiseJerkCurve":
        """
        Reconstruct a curve from discretely solved knot sequences on a uniform grid.

        The constant jerk of segment i is back-computed from consecutive second
        derivatives, `j_i = (ddx_i - ddx_{i-1}) / spacing`, which is exact for a
        genuine piecewise-constant-jerk solution.
        """
        curve = cls(x[0], dx[0], ddx[0], start=start)
        for i in range(1, len(ddx)):
            curve.append_segment((ddx[i] - ddx[i - 1]) / spacing, spacing)
        return curve

    def append_segment(self, jerk: float, length: float) -> None:
        if self.segments:
            last = self.segments[-1]
            p0, v0, a0 = last.p1, last.v1, last.a1
        else:
            p0, v0, a0 = self.anchor
        self.segments.append(ConstantJerkSegment(p0, v0, a0, float(jerk), float(length)))
        self.params.append(self.params[-1] + float(length))

    @property
    def end(self) -> float:
        return self.params[-1]

    def __len__(self):
        return len(self.segments)

    def _anchor_segment(self) -> ConstantJerkSegment:
        # a curve without segments is the quadratic through its anchor
        return ConstantJerkSegment(*self.anchor, 0.0, 1.0)

    def evaluate(self, order: int, param: float) -> float:
        """Evaluate the `order`-th derivative (0..3) at domain coordinate `param`."""
        if not self.segments:
            return self._anchor_segment().evaluate(order, param - self.start)

        index = bisect.bisect_left(self.params, param)
        if index == 0:
            return self.segments[0].evaluate(order, param - self.start)
        if index == len(self.params):
            return self.segments[-1].evaluate(order, param - self.params[-2])
        return self.segments[index - 1].evaluate(order, param - self.params[index - 1])

    def evaluate_many(self, order: int, params: Sequence[float]) -> np.ndarray:
        return np.array([self.evaluate(order, p) for p in params], dtype=float)

    def get_function(self, fname: str = "curve", order: int = 0) -> ca.Function:
        """
        Returns CasADi function curve(param) -> value of the same piecewise polynomial.

        The segment is selected with a chain of `if_else` switches, the first
        and last segment extrapolate outside of the covered extent exactly like
        `evaluate`.
        """
        param = ca.SX.sym("param")
        if not self.segments:
            expr = self._anchor_segment().evaluate(order, param - self.start)
            return ca.Function(fname, [param], [expr], ["param"], ["value"])

        expr = self.segments[-1].evaluate(order, param - self.params[-2])
        for index in range(len(self.segments) - 2, -1, -1):
            segment_expr = self.segments[index].evaluate(order, param - self.params[index])
            expr = ca.if_else(param <= self.params[index + 1], segment_expr, expr)
        return ca.Function(fname, [param], [expr], ["param"], ["value"])

    def __repr__(self):
        return f"{self.__class__.__name__}(anchor={self.anchor}, start={self.start}, segments={len(self.segments)}, end={self.end})"
