"""
Copyright 2025 AUMOVIO. All rights reserved.
"""
#!/usr/bin/env python
import logging
from typing import Optional, Sequence, Tuple

import casadi as ca
import numpy as np

from planner.planning_model.config import merge_solver_options
from planner.planning_utils.dynamic_model import TripleIntegrator
from planner.planning_utils.piecewise_jerk_curve import PiecewiseJerkCurve
from planner.planning_utils.types import InitialState, KinematicLimits, StageResult

logger = logging.getLogger(__name__)

ACCEPTED_RETURN_STATUS = ("Solve_Succeeded", "Solved_To_Acceptable_Level")
DEFAULT_IPOPT_OPTIONS = {"ipopt": {"max_iter": 1000, "print_level": 0, "sb": "yes"}, "print_time": False}


class PiecewiseJerkSpeedNLP:
    """
    Nonlinear refinement of a piecewise-jerk speed profile along a fixed path.

    Decision variables are distance, speed and acceleration at every knot. The
    objective tracks a reference distance sequence and a cruise speed,
    penalizes acceleration and jerk, and penalizes the centripetal
    acceleration `v^2 * kappa(s)` where `kappa` is the smoothed path curvature
    evaluated at the planned distance. The latter product makes the problem
    nonlinear, so it is handed to IPOPT.

    The instance is meant to be used as a context manager: the solver engine
    only lives inside the `with` block and is released on exit.
    """
    def __init__(self, init_state: InitialState, delta_t: float, num_of_knots: int, total_length: float,
                 limits: KinematicLimits, solver: Optional[dict] = None, verbose: bool = False):
        if num_of_knots < 2:
            raise ValueError("num_of_knots must be at least 2.")
        self.init_state = init_state
        self.delta_t = float(delta_t)
        self.num_of_knots = int(num_of_knots)
        self.total_length = float(total_length)
        self.limits = limits
        self.dynamics = TripleIntegrator(step=self.delta_t)
        self.optimization_solver_opts = merge_solver_options(DEFAULT_IPOPT_OPTIONS, solver)
        self.verbose = verbose

        n = self.num_of_knots
        self.safety_bounds = np.tile([0.0, self.total_length], (n, 1))
        self.soft_safety_bounds = None
        self.curvature_curve: Optional[PiecewiseJerkCurve] = None
        self.speed_limit_curve: Optional[PiecewiseJerkCurve] = None
        self.speed_limit_mode = "soft"
        self.warm_start: Optional[StageResult] = None

        self.s_ref = np.zeros(n)
        self.w_ref_s = 0.0
        self.v_ref = 0.0
        self.w_ref_v = 0.0
        self.w_overall_a = 0.0
        self.w_overall_j = 0.0
        self.w_overall_centripetal_acc = 0.0
        self.w_speed_limit = 0.0
        self.w_soft_s_bound = 0.0

        self.solver = None
        self.nlp_prob = None
        self.decision_variables = {}
        self.cost = 0
        self.g = None
        self.lbg, self.ubg = None, None
        self.lbx, self.ubx = None, None
        self._opt = None
        self._stats = {}
        self._objective = None

    def __str__(self):
        return f"{self.__class__!s} with {self.num_of_knots} knots, dt {self.delta_t}, length {self.total_length} and limits {self.limits}"

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.release()
        return False

    # ---------------- configuration ----------------

    def _check_knots(self, values, name):
        values = np.asarray(values, dtype=float)
        if values.shape[0] != self.num_of_knots:
            raise ValueError(f"{name} must have {self.num_of_knots} entries; got {values.shape[0]}")
        return values

    def set_safety_bounds(self, safety_bounds: Sequence[Tuple[float, float]]):
        self.safety_bounds = self._check_knots(safety_bounds, "safety bounds").reshape(self.num_of_knots, 2)

    def set_soft_safety_bounds(self, soft_safety_bounds: Sequence[Tuple[float, float]]):
        self.soft_safety_bounds = self._check_knots(soft_safety_bounds, "soft safety bounds").reshape(self.num_of_knots, 2)

    def set_curvature_curve(self, curve: PiecewiseJerkCurve):
        self.curvature_curve = curve

    def set_speed_limit_curve(self, curve: PiecewiseJerkCurve):
        self.speed_limit_curve = curve

    def set_speed_limit_mode(self, mode: str):
        if mode not in ("soft", "hard"):
            raise ValueError(f"Unknown speed limit mode '{mode}'.")
        self.speed_limit_mode = mode

    def set_warm_start(self, warm_start: StageResult):
        if not warm_start.is_valid() or len(warm_start) != self.num_of_knots:
            raise ValueError("warm start sequences must be present, non-empty and of knot length.")
        self.warm_start = warm_start

    def set_reference_spatial_distance(self, s_ref: Sequence[float]):
        self.s_ref = self._check_knots(s_ref, "reference distance")

    def set_w_reference_spatial_distance(self, w_ref_s: float):
        self.w_ref_s = float(w_ref_s)

    def set_reference_speed(self, v_ref: float):
        self.v_ref = float(v_ref)

    def set_w_reference_speed(self, w_ref_v: float):
        self.w_ref_v = float(w_ref_v)

    def set_w_overall_a(self, w_overall_a: float):
        self.w_overall_a = float(w_overall_a)

    def set_w_overall_j(self, w_overall_j: float):
        self.w_overall_j = float(w_overall_j)

    def set_w_overall_centripetal_acc(self, w_overall_centripetal_acc: float):
        self.w_overall_centripetal_acc = float(w_overall_centripetal_acc)

    def set_w_speed_limit(self, w_speed_limit: float):
        self.w_speed_limit = float(w_speed_limit)

    def set_w_soft_s_bound(self, w_soft_s_bound: float):
        self.w_soft_s_bound = float(w_soft_s_bound)

    # ---------------- problem assembly ----------------

    def setup_NLP(self):
        """
        Assemble the nonlinear program and create the IPOPT solver.

        Raises
        ------
        RuntimeError
            If the solver engine cannot be initialized.
        """
        self.init_decision_variables()
        self.init_costs()
        self.init_box_constraints()
        self.init_nonlinear_constraints()
        self.init_ipopt_solver()

    def init_decision_variables(self):
        n = self.num_of_knots
        decision_variables = {}
        decision_variables["S"] = ca.MX.sym("S", n)
        decision_variables["V"] = ca.MX.sym("V", n)
        decision_variables["A"] = ca.MX.sym("A", n)
        self.decision_variables = decision_variables

        concat_order = ["S", "V", "A"]
        self.opt_variables = ca.vertcat(*[decision_variables[key] for key in concat_order])

    def init_costs(self):
        """
        Assemble the objective as an independently weighted sum of

        - distance tracking error against the reference distance sequence,
        - speed tracking error against the constant reference speed,
        - overall acceleration and overall jerk,
        - centripetal acceleration `(v_k^2 * kappa(s_k))^2`,
        - soft speed-limit excess and soft safety-bound violation, if enabled.
        """
        S, V, A = self.decision_variables["S"], self.decision_variables["V"], self.decision_variables["A"]

        cost = self.w_ref_s * ca.sumsqr(S - ca.DM(self.s_ref))
        cost += self.w_ref_v * ca.sumsqr(V - self.v_ref)
        cost += self.w_overall_a * ca.sumsqr(A)
        _, _, jerks = self.dynamics.knot_defects(S, V, A)
        cost += self.w_overall_j * ca.sumsqr(jerks)

        if self.curvature_curve is not None and self.w_overall_centripetal_acc > 0:
            kappa = self.curvature_curve.get_function("kappa")
            for k in range(self.num_of_knots):
                a_lat = V[k] * V[k] * kappa(S[k])
                cost += self.w_overall_centripetal_acc * a_lat * a_lat

        if self.speed_limit_curve is not None and self.speed_limit_mode == "soft" and self.w_speed_limit > 0:
            speed_limit = self.speed_limit_curve.get_function("speed_limit")
            for k in range(self.num_of_knots):
                excess = ca.fmax(0.0, V[k] - speed_limit(S[k]))
                cost += self.w_speed_limit * excess * excess

        if self.soft_safety_bounds is not None and self.w_soft_s_bound > 0:
            lower = ca.DM(self.soft_safety_bounds[:, 0])
            upper = ca.DM(self.soft_safety_bounds[:, 1])
            cost += self.w_soft_s_bound * ca.sumsqr(ca.fmax(0.0, lower - S))
            cost += self.w_soft_s_bound * ca.sumsqr(ca.fmax(0.0, S - upper))

        self.cost = cost

    def init_box_constraints(self):
        """
        Bound distance by the safety corridor, speed by [0, v_max] and
        acceleration by [a_min, a_max]; the first knot is pinned to the
        initial state.
        """
        n = self.num_of_knots
        lbx = {
            "S": self.safety_bounds[:, 0].copy(),
            "V": np.full(n, 0.0),
            "A": np.full(n, self.limits.a_min),
        }
        ubx = {
            "S": self.safety_bounds[:, 1].copy(),
            "V": np.full(n, self.limits.v_max),
            "A": np.full(n, self.limits.a_max),
        }
        for key, value in zip(("S", "V", "A"), (self.init_state.s, self.init_state.v, self.init_state.a)):
            lbx[key][0] = value
            ubx[key][0] = value

        self.box_constraints_lbx = lbx
        self.box_constraints_ubx = ubx
        self.lbx = np.concatenate([lbx[key] for key in ("S", "V", "A")])
        self.ubx = np.concatenate([ubx[key] for key in ("S", "V", "A")])

    def init_nonlinear_constraints(self):
        """
        Collect piecewise-jerk continuity equalities, jerk bounds, monotone
        distance and, in hard speed-limit mode, `v_k <= limit(s_k)`.
        """
        S, V, A = self.decision_variables["S"], self.decision_variables["V"], self.decision_variables["A"]
        n = self.num_of_knots
        g_dict, lbg_dict, ubg_dict = {}, {}, {}

        s_defects, v_defects, jerks = self.dynamics.knot_defects(S, V, A)
        g_dict["dynamics_eq"] = ca.vertcat(s_defects, v_defects)
        lbg_dict["dynamics_eq"] = np.zeros(2 * (n - 1))
        ubg_dict["dynamics_eq"] = np.zeros(2 * (n - 1))

        g_dict["jerk_ineq"] = jerks
        lbg_dict["jerk_ineq"] = np.full(n - 1, self.limits.j_min)
        ubg_dict["jerk_ineq"] = np.full(n - 1, self.limits.j_max)

        g_dict["monotone_ineq"] = S[1:n] - S[0:n - 1]
        lbg_dict["monotone_ineq"] = np.zeros(n - 1)
        ubg_dict["monotone_ineq"] = np.full(n - 1, np.inf)

        concat_order = ["dynamics_eq", "jerk_ineq", "monotone_ineq"]
        if self.speed_limit_curve is not None and self.speed_limit_mode == "hard":
            speed_limit = self.speed_limit_curve.get_function("speed_limit")
            g_dict["speed_limit_ineq"] = ca.vertcat(*[V[k] - speed_limit(S[k]) for k in range(n)])
            lbg_dict["speed_limit_ineq"] = np.full(n, -np.inf)
            ubg_dict["speed_limit_ineq"] = np.zeros(n)
            concat_order.append("speed_limit_ineq")

        self.g = ca.vertcat(*[g_dict[key] for key in concat_order])
        self.lbg = np.concatenate([lbg_dict[key] for key in concat_order])
        self.ubg = np.concatenate([ubg_dict[key] for key in concat_order])

    def init_ipopt_solver(self):
        self.nlp_prob = {"f": self.cost, "x": self.opt_variables, "g": self.g}
        self.solver = ca.nlpsol("solver", "ipopt", self.nlp_prob, self.optimization_solver_opts)
        if self.verbose: logger.info(f"Initialize {self.__class__.__name__} optimization solver ... DONE!")

    def build_initial_values(self):
        if self.warm_start is None:
            n = self.num_of_knots
            return np.concatenate((np.full(n, self.init_state.s), np.full(n, self.init_state.v), np.full(n, self.init_state.a)))
        ws = self.warm_start
        return np.concatenate((np.asarray(ws.distance, dtype=float), np.asarray(ws.velocity, dtype=float), np.asarray(ws.acceleration, dtype=float)))

    # ---------------- solving ----------------

    def solve(self) -> bool:
        """
        Run IPOPT from the warm start.

        Returns
        -------
        bool
            True for `Solve_Succeeded` and `Solved_To_Acceptable_Level`,
            False for any other terminal status.
        """
        if self.solver is None:
            raise RuntimeError("setup_NLP must be called before solve.")
        self._opt = None
        try:
            res = self.solver(x0=self.build_initial_values(), lbx=self.lbx, ubx=self.ubx, lbg=self.lbg, ubg=self.ubg)
        except RuntimeError as e:
            logger.warning(f"{self.__class__.__name__}: NLP engine raised {e}")
            return False

        self._stats = self.solver.stats()
        self._objective = float(res["f"])
        status = self._stats.get("return_status")
        if status not in ACCEPTED_RETURN_STATUS:
            logger.warning(f"Piecewise jerk speed nonlinear optimizer failed with status {status}")
            return False

        logger.debug(f"*** The problem solved in {self.iteration_count} iterations!")
        logger.debug(f"*** The final value of the objective function is {self._objective}.")
        self._opt = res["x"].full().ravel()
        return True

    def get_optimization_results(self, result: StageResult) -> StageResult:
        """Overwrite `result` in place with the solved distance, speed and acceleration."""
        if self._opt is None:
            raise RuntimeError("NLP has not been solved successfully.")
        n = self.num_of_knots
        result.distance = self._opt[0:n].copy()
        result.velocity = self._opt[n:2 * n].copy()
        result.acceleration = self._opt[2 * n:3 * n].copy()
        return result

    def release(self):
        """Drop the solver engine and the symbolic problem it owns."""
        self.solver = None
        self.nlp_prob = None

    @property
    def return_status(self) -> Optional[str]:
        return self._stats.get("return_status")

    @property
    def iteration_count(self) -> Optional[int]:
        return self._stats.get("iter_count")

    @property
    def objective(self) -> Optional[float]:
        return self._objective
