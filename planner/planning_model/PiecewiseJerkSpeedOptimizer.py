"""
Copyright 2025 AUMOVIO. All rights reserved.
"""
#!/usr/bin/env python
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from common_utils.time_tracking import timeit, track_time
from planner.planning_model.config import DEFAULT_CONFIG, merge_config
from planner.planning_model.PiecewiseJerkQP import PiecewiseJerkQP
from planner.planning_model.PiecewiseJerkSpeedNLP import PiecewiseJerkSpeedNLP
from planner.planning_utils.curve_smoother import (
    build_curvature_smoother,
    build_speed_limit_smoother,
    sample_path_curvature,
    sample_speed_limit,
)
from planner.planning_utils.path import DiscretizedPath
from planner.planning_utils.piecewise_jerk_curve import PiecewiseJerkCurve
from planner.planning_utils.speed_data import SpeedData, fill_enough_speed_points
from planner.planning_utils.speed_limit import SpeedLimit
from planner.planning_utils.types import (
    FailureReason,
    InitialState,
    KinematicLimits,
    StageOutcome,
    StageResult,
    TimeDiscretization,
)

logger = logging.getLogger(__name__)


@dataclass
class SpeedOptimizationContext:
    """Everything one `process` call works on; never shared between calls."""
    discretization: TimeDiscretization
    init_state: InitialState
    limits: KinematicLimits
    total_length: float
    path: DiscretizedPath
    speed_limit: SpeedLimit
    s_bounds: np.ndarray
    soft_s_bounds: np.ndarray
    ref_s_list: np.ndarray
    warm_start: StageResult = field(default_factory=StageResult)
    smoothed_path_curvature: Optional[PiecewiseJerkCurve] = None
    smoothed_speed_limit: Optional[PiecewiseJerkCurve] = None
    stage_durations: Dict[str, float] = field(default_factory=dict)
    nlp_stats: Dict[str, object] = field(default_factory=dict)


@dataclass
class ProcessResult:
    """Outcome of `process`; unpacks as `ok, speed_data`."""
    ok: bool
    speed_data: SpeedData
    reason: Optional[FailureReason] = None
    stage_durations: Dict[str, float] = field(default_factory=dict)
    context: Optional[SpeedOptimizationContext] = field(default=None, repr=False)

    def __iter__(self):
        return iter((self.ok, self.speed_data))

    def __bool__(self):
        return self.ok


class PiecewiseJerkSpeedOptimizer:
    """
    Longitudinal speed optimizer along a fixed path.

    The pipeline runs, short-circuiting on the first failure:

    1. a piecewise-jerk QP smoothing the reference distance inside the hard
       distance bounds, which also serves as warm start,
    2. QP smoothing of the sampled path curvature into a piecewise-jerk curve,
    3. QP smoothing of the sampled speed limit into a piecewise-jerk curve,
    4. nonlinear refinement with IPOPT using the warm start and both curves,
    5. assembly of the speed profile into the caller's `SpeedData`.

    The optimizer only keeps configuration, so one instance can serve any
    number of calls; everything produced during a call lives in a
    `SpeedOptimizationContext`.
    """
    def __init__(self, constraints=None, reference=None, weights=None, smoothing=None, solver=None, output=None, verbose=False):
        self.config = merge_config(DEFAULT_CONFIG, {
            key: value for key, value in {
                "constraints": constraints,
                "reference": reference,
                "weights": weights,
                "smoothing": smoothing,
                "solver": solver,
                "output": output,
            }.items() if value is not None
        })
        self.verbose = verbose
        if self.verbose: logger.info(f"Initialize {self.__class__.__name__}...")
        self._set_constraints(self.config["constraints"])
        self._set_reference(self.config["reference"])
        self._set_weights(self.config["weights"])
        self._set_optimization_solver(self.config["solver"])
        self._set_smoothers(self.config["smoothing"])
        self._set_output(self.config["output"])
        if self.verbose: logger.info(f"Initialize {self.__class__.__name__}... DONE!")

    def __str__(self):
        return f"{self.__class__!s} with configuration {self.config}"

    def _set_constraints(self, cfg):
        self.constraints_cfg = cfg
        self.min_path_length = cfg["min_path_length"]

    def _set_reference(self, cfg):
        self.v_ref = cfg["v_ref"]

    def _set_weights(self, cfg):
        self.qp_weights = cfg["qp"]
        self.nlp_weights = cfg["nlp"]

    def _set_optimization_solver(self, cfg):
        self.qp_solver_opts = {"plugin": cfg["qp"]["plugin"], "options": cfg["qp"]["options"]}
        self.qp_max_iter = cfg["qp"]["max_iter"]
        self.nlp_solver_opts = cfg["nlp"]["options"]
        self.speed_limit_mode = cfg["speed_limit_mode"]

    def _set_smoothers(self, cfg):
        self.curvature_smoother = build_curvature_smoother(cfg["curvature"], solver=self.qp_solver_opts, verbose=self.verbose)
        self.speed_limit_smoother = build_speed_limit_smoother(cfg["speed_limit"], solver=self.qp_solver_opts, verbose=self.verbose)

    def _set_output(self, cfg):
        self.output_cfg = cfg

    # ---------------- pipeline ----------------

    @timeit
    def process(self,
                s_bounds: Sequence[Tuple[float, float]],
                soft_s_bounds: Sequence[Tuple[float, float]],
                ref_s_list: Sequence[float],
                speed_limit: SpeedLimit,
                dt: float,
                path: DiscretizedPath,
                init_v: float,
                init_a: float,
                speed_data: Optional[SpeedData] = None) -> ProcessResult:
        """
        Optimize the speed profile for one planning cycle.

        Parameters
        ----------
        s_bounds : sequence of (float, float)
            Hard lower/upper distance bound per knot; upper values are clipped
            to the path length.
        soft_s_bounds : sequence of (float, float)
            Preferred distance bounds per knot, same length as `s_bounds`.
        ref_s_list : sequence of float
            Reference distance per knot.
        speed_limit : SpeedLimit
            Arc length to maximum speed lookup.
        dt : float
            Time between two knots.
        path : DiscretizedPath
            Path the profile is planned along.
        init_v, init_a : float
            Current speed and acceleration of the vehicle.
        speed_data : SpeedData, optional
            Caller-owned container receiving the profile; it is cleared first.

        Returns
        -------
        ProcessResult
            Unpacks as `(ok, speed_data)`. On failure `speed_data` is empty and
            `reason` tells which stage failed.
        """
        if speed_data is None:
            speed_data = SpeedData()

        outcome = self.build_context(s_bounds, soft_s_bounds, ref_s_list, speed_limit, dt, path, init_v, init_a)
        if not outcome.ok:
            speed_data.clear()
            return ProcessResult(False, speed_data, outcome.reason)
        context = outcome.payload

        stages = [
            ("speed qp optimization", self.optimize_by_qp),
            ("path curvature smoothing for nlp optimization", self.smooth_path_curvature),
            ("speed limit smoothing for nlp optimization", self.smooth_speed_limit),
            ("speed nlp optimization", self.optimize_by_nlp),
        ]
        for name, stage in stages:
            with track_time(name, context.stage_durations):
                outcome = stage(context)
            if not outcome.ok:
                speed_data.clear()
                return ProcessResult(False, speed_data, outcome.reason, context.stage_durations, context)

        self.assemble_speed_data(context, speed_data)
        return ProcessResult(True, speed_data, None, context.stage_durations, context)

    def build_context(self, s_bounds, soft_s_bounds, ref_s_list, speed_limit, dt, path, init_v, init_a) -> StageOutcome:
        """Validate the inputs and derive the per-call context before any solver runs."""
        if len(s_bounds) != len(soft_s_bounds):
            logger.warning(f"Hard and soft distance bounds differ in length: {len(s_bounds)} vs {len(soft_s_bounds)}")
            return StageOutcome.failure(FailureReason.LENGTH_MISMATCH)
        if len(ref_s_list) != len(s_bounds):
            logger.warning(f"Reference distance and bounds differ in length: {len(ref_s_list)} vs {len(s_bounds)}")
            return StageOutcome.failure(FailureReason.LENGTH_MISMATCH)

        try:
            discretization = TimeDiscretization(dt=float(dt), num_knots=len(s_bounds))
        except ValueError as e:
            logger.warning(f"Invalid time discretization: {e}")
            return StageOutcome.failure(FailureReason.INVALID_DISCRETIZATION)

        total_length = path.get_length()
        if abs(total_length) < self.min_path_length:
            logger.error("Path length is 0!")
            return StageOutcome.failure(FailureReason.DEGENERATE_PATH)

        n = discretization.num_knots
        hard_bounds = np.asarray(s_bounds, dtype=float).reshape(n, 2).copy()
        hard_bounds[:, 1] = np.minimum(hard_bounds[:, 1], total_length)

        context = SpeedOptimizationContext(
            discretization=discretization,
            init_state=InitialState(s=0.0, v=float(init_v), a=float(init_a)),
            limits=KinematicLimits.from_config(self.constraints_cfg, float(init_v)),
            total_length=total_length,
            path=path,
            speed_limit=speed_limit,
            s_bounds=hard_bounds,
            soft_s_bounds=np.asarray(soft_s_bounds, dtype=float).reshape(n, 2).copy(),
            ref_s_list=np.asarray(ref_s_list, dtype=float),
        )
        return StageOutcome.success(context)

    def optimize_by_qp(self, context: SpeedOptimizationContext) -> StageOutcome:
        """Smooth the reference distance under the hard bounds; the result is the warm start of the NLP."""
        limits = context.limits
        problem = PiecewiseJerkQP(context.discretization.num_knots, context.discretization.dt,
                                  context.init_state.as_array(), solver=self.qp_solver_opts)
        problem.set_dx_bounds(0.0, limits.v_max)
        problem.set_ddx_bounds(limits.a_min, limits.a_max)
        problem.set_dddx_bound(limits.j_min, limits.j_max)
        problem.set_x_bounds(context.s_bounds)
        problem.set_weights(self.qp_weights)
        problem.set_x_ref(self.qp_weights["x_ref"], context.ref_s_list)

        if not problem.optimize(self.qp_max_iter):
            logger.warning("Speed Optimization by Quadratic Programming failed")
            return StageOutcome.failure(FailureReason.QP_INFEASIBLE)

        context.warm_start = StageResult(problem.opt_x, problem.opt_dx, problem.opt_ddx)
        return StageOutcome.success(context.warm_start)

    def smooth_path_curvature(self, context: SpeedOptimizationContext) -> StageOutcome:
        """Smooth the path curvature into a curve over the distance travelled from the path front."""
        kappa, init_state = sample_path_curvature(context.path, self.curvature_smoother.delta_s)
        # knot distances start at 0 on the path front, so the curve does too
        outcome = self.curvature_smoother.smooth(kappa, init_state)
        if outcome.ok:
            context.smoothed_path_curvature = outcome.payload
        return outcome

    def smooth_speed_limit(self, context: SpeedOptimizationContext) -> StageOutcome:
        speed_ref, init_state = sample_speed_limit(context.speed_limit, self.speed_limit_smoother.delta_s, self.speed_limit_smoother.num_samples)
        outcome = self.speed_limit_smoother.smooth(speed_ref, init_state)
        if outcome.ok:
            context.smoothed_speed_limit = outcome.payload
        return outcome

    def optimize_by_nlp(self, context: SpeedOptimizationContext) -> StageOutcome:
        """
        Refine the warm start with the nonlinear program.

        The solver engine is owned by the problem for the duration of the
        `with` block only; results are copied into `context.warm_start`
        before it is released.
        """
        warm_start = context.warm_start
        n = context.discretization.num_knots
        if not warm_start.is_valid() or len(warm_start) != n:
            logger.warning("Piecewise jerk speed nonlinear optimizer warm start invalid!")
            return StageOutcome.failure(FailureReason.INVALID_WARM_START)

        w = self.nlp_weights
        with PiecewiseJerkSpeedNLP(context.init_state, context.discretization.dt, n, context.total_length,
                                   context.limits, solver=self.nlp_solver_opts, verbose=self.verbose) as problem:
            problem.set_safety_bounds(context.s_bounds)
            problem.set_soft_safety_bounds(context.soft_s_bounds)
            problem.set_curvature_curve(context.smoothed_path_curvature)
            problem.set_speed_limit_curve(context.smoothed_speed_limit)
            problem.set_speed_limit_mode(self.speed_limit_mode)
            problem.set_warm_start(warm_start)

            problem.set_reference_spatial_distance(warm_start.distance)
            problem.set_w_reference_spatial_distance(w["ref_s"])
            problem.set_reference_speed(self.v_ref)
            problem.set_w_reference_speed(w["ref_v"])
            problem.set_w_overall_a(w["overall_a"])
            problem.set_w_overall_j(w["overall_j"])
            problem.set_w_overall_centripetal_acc(w["overall_centripetal_acc"])
            problem.set_w_speed_limit(w["speed_limit"])
            problem.set_w_soft_s_bound(w["soft_s_bound"])

            try:
                problem.setup_NLP()
            except RuntimeError as e:
                logger.warning(f"Piecewise jerk speed nonlinear optimizer failed during initialization: {e}")
                return StageOutcome.failure(FailureReason.NLP_INIT_FAILED)

            if not problem.solve():
                logger.warning("Piecewise jerk speed nonlinear optimizer failed!")
                return StageOutcome.failure(FailureReason.NLP_NON_CONVERGENT)

            problem.get_optimization_results(warm_start)
            context.nlp_stats = {
                "return_status": problem.return_status,
                "iter_count": problem.iteration_count,
                "objective": problem.objective,
            }
        logger.debug(f"NLP statistics: {context.nlp_stats}")
        return StageOutcome.success(warm_start)

    def assemble_speed_data(self, context: SpeedOptimizationContext, speed_data: SpeedData) -> SpeedData:
        """
        Write the refined knots into `speed_data`.

        The first knot is the fixed initial state and always emitted. After
        it, emission stops at the first knot with negative speed: knots after
        a computed stop are numerically unreliable and are dropped.
        Optionally the profile is padded with stationary points afterwards.
        """
        speed_data.clear()
        dt = context.discretization.dt
        distance = context.warm_start.distance
        velocity = context.warm_start.velocity
        acceleration = context.warm_start.acceleration
        speed_data.append_speed_point(distance[0], 0.0, velocity[0], acceleration[0], 0.0)
        for k in range(1, context.discretization.num_knots):
            if velocity[k] < 0.0:
                break
            jerk = (acceleration[k] - acceleration[k - 1]) / dt
            speed_data.append_speed_point(distance[k], dt * k, velocity[k], acceleration[k], jerk)

        if self.output_cfg["fill_enough_points"]:
            fill_enough_speed_points(speed_data, self.output_cfg["total_time"], self.output_cfg["time_unit"])
        return speed_data
