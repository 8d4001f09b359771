"""
Copyright 2025 AUMOVIO. All rights reserved.
"""
import logging
from typing import Optional, Sequence, Tuple

import numpy as np

from planner.planning_model.PiecewiseJerkQP import PiecewiseJerkQP
from planner.planning_utils.path import DiscretizedPath
from planner.planning_utils.piecewise_jerk_curve import PiecewiseJerkCurve
from planner.planning_utils.speed_limit import SpeedLimit
from planner.planning_utils.types import FailureReason, StageOutcome

logger = logging.getLogger(__name__)


def sample_path_curvature(path: DiscretizedPath, delta_s: float) -> Tuple[np.ndarray, np.ndarray]:
    """
    Sample the path curvature every `delta_s` from the path start.

    The loop runs while `s < s_end + delta_s`, i.e. it includes the end of the
    path and may overshoot it by up to one step; samples past the end take the
    curvature of the last path point.

    Returns
    -------
    tuple
        Curvature samples and the initial state `(kappa, dkappa, ddkappa)` of
        the first path point.
    """
    kappa = []
    path_s = path.front().s
    while path_s < path.back().s + delta_s:
        kappa.append(path.evaluate(path_s).kappa)
        path_s += delta_s
    init_point = path.front()
    return np.array(kappa, dtype=float), np.array([init_point.kappa, init_point.dkappa, init_point.ddkappa], dtype=float)


def sample_speed_limit(speed_limit: SpeedLimit, delta_s: float, num_samples: int) -> Tuple[np.ndarray, np.ndarray]:
    """Sample the speed limit on a fixed grid starting at s=0; the initial state is (limit(0), 0, 0)."""
    speed_ref = np.array([speed_limit.get_speed_limit_by_s(i * delta_s) for i in range(num_samples)], dtype=float)
    return speed_ref, np.array([speed_ref[0], 0.0, 0.0], dtype=float)


class CurveSmoother:
    """
    Fit a piecewise-jerk curve to uniformly sampled 1-D data.

    A `PiecewiseJerkQP` tracks the samples under smoothness weights and box
    bounds, then the solved knot sequences are turned into a continuously
    evaluable `PiecewiseJerkCurve`. Path curvature and speed limit are both
    smoothed by instances of this class that only differ in configuration.
    """
    def __init__(self, name: str, cfg: dict, failure_reason: FailureReason, solver: Optional[dict] = None, verbose: bool = False):
        self.name = name
        self.failure_reason = failure_reason
        self.delta_s = float(cfg["delta_s"])
        if self.delta_s <= 0:
            raise ValueError(f"{name}: delta_s must be positive.")
        self.x_bounds = tuple(cfg["x_bounds"])
        self.dx_bounds = tuple(cfg["dx_bounds"])
        self.ddx_bounds = tuple(cfg["ddx_bounds"])
        self.dddx_bounds = tuple(cfg["dddx_bounds"])
        self.weights = dict(cfg["weights"])
        self.weight_ref = cfg["weight_ref"]
        self.max_iter = cfg.get("max_iter")
        self.num_samples = int(cfg["num_samples"]) if cfg.get("num_samples") is not None else None
        self.solver = solver
        self.verbose = verbose

    def __str__(self):
        return f"{self.__class__.__name__}({self.name}, delta_s={self.delta_s}, max_iter={self.max_iter})"

    def smooth(self, samples: Sequence[float], init_state: Sequence[float], start: float = 0.0) -> StageOutcome:
        """
        Smooth `samples` placed every `delta_s` from `start`.

        Returns
        -------
        StageOutcome
            On success the payload is the reconstructed `PiecewiseJerkCurve`;
            on failure the reason configured for this smoother.
        """
        samples = np.asarray(samples, dtype=float)
        if samples.shape[0] < 2:
            logger.warning(f"Smoothing {self.name} failed: need at least two samples, got {samples.shape[0]}")
            return StageOutcome.failure(self.failure_reason)

        problem = PiecewiseJerkQP(samples.shape[0], self.delta_s, init_state, solver=self.solver)
        problem.set_x_bounds(*self.x_bounds)
        problem.set_dx_bounds(*self.dx_bounds)
        problem.set_ddx_bounds(*self.ddx_bounds)
        problem.set_dddx_bound(*self.dddx_bounds)
        problem.set_weights(self.weights)
        problem.set_x_ref(self.weight_ref, samples)

        if not problem.optimize(self.max_iter):
            logger.warning(f"Smoothing {self.name} failed")
            return StageOutcome.failure(self.failure_reason)

        curve = PiecewiseJerkCurve.from_knots(problem.opt_x, problem.opt_dx, problem.opt_ddx, self.delta_s, start=start)
        if self.verbose: logger.info(f"Smoothing {self.name} with {samples.shape[0]} samples... DONE!")
        return StageOutcome.success(curve)


def build_curvature_smoother(cfg: dict, solver: Optional[dict] = None, verbose: bool = False) -> CurveSmoother:
    return CurveSmoother("path curvature", cfg, FailureReason.CURVATURE_SMOOTHING_FAILED, solver=solver, verbose=verbose)


def build_speed_limit_smoother(cfg: dict, solver: Optional[dict] = None, verbose: bool = False) -> CurveSmoother:
    return CurveSmoother("speed limit", cfg, FailureReason.SPEED_LIMIT_SMOOTHING_FAILED, solver=solver, verbose=verbose)
