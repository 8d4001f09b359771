"""
Copyright 2025 AUMOVIO. All rights reserved.
"""
#!/usr/bin/env python
import logging
from typing import Optional, Sequence, Tuple, Union

import casadi as ca
import numpy as np

from planner.planning_model.config import merge_solver_options
from planner.planning_utils.dynamic_model import TripleIntegrator

logger = logging.getLogger(__name__)

Bounds = Sequence[Tuple[float, float]]


class PiecewiseJerkQP:
    """
    Convex smoothing problem over a piecewise-jerk triple integrator.

    The decision vector stacks the knot values of the smoothed signal and its
    first two derivatives, `z = [x_0..x_{n-1}, dx_0..dx_{n-1}, ddx_0..ddx_{n-1}]`.
    The jerk between two knots is implied by the second derivatives, so the
    problem stays a QP with linear continuity constraints:

        min  sum_k  w_x x_k^2 + w_ref (x_k - ref_k)^2 + w_dx dx_k^2 + w_ddx ddx_k^2
           + sum_k  w_dddx ((ddx_{k+1} - ddx_k) / h)^2
        s.t. piecewise-jerk continuity between consecutive knots,
             x_lb_k <= x_k <= x_ub_k, dx/ddx/dddx within global bounds,
             (x_0, dx_0, ddx_0) = initial state.

    The same recipe smooths the longitudinal reference trajectory (x = s) and
    arc-length sampled signals such as path curvature or the speed limit.
    """
    def __init__(self, num_of_knots: int, delta: float, x_init: Sequence[float], solver: Optional[dict] = None):
        if num_of_knots < 2:
            raise ValueError("num_of_knots must be at least 2.")
        if len(x_init) != 3:
            raise ValueError("x_init must be length 3: [x, dx, ddx].")
        self.num_of_knots = int(num_of_knots)
        self.delta = float(delta)
        self.x_init = np.asarray(x_init, dtype=float)
        self.dynamics = TripleIntegrator(step=self.delta)
        self.solver_cfg = {"plugin": "osqp", "options": {}} | (solver or {})

        inf = np.inf
        self.x_bounds = np.tile([-inf, inf], (self.num_of_knots, 1))
        self.dx_bounds = (-inf, inf)
        self.ddx_bounds = (-inf, inf)
        self.dddx_bounds = (-inf, inf)

        self.weight_x = 0.0
        self.weight_dx = 0.0
        self.weight_ddx = 0.0
        self.weight_dddx = 0.0
        self.weight_x_ref = 0.0
        self.x_ref = np.zeros(self.num_of_knots)

        self._opt_x = None
        self._opt_dx = None
        self._opt_ddx = None
        self.stats = {}

    def __str__(self):
        return f"{self.__class__!s} with {self.num_of_knots} knots, step {self.delta} and initial state {self.x_init}"

    # ---------------- configuration ----------------

    def set_x_bounds(self, x_lower: Union[float, Bounds], x_upper: Optional[float] = None):
        """
        Bound the smoothed signal, either globally (`set_x_bounds(lb, ub)`) or
        per knot (`set_x_bounds([(lb_0, ub_0), ...])`).
        """
        if x_upper is None:
            bounds = np.asarray(x_lower, dtype=float)
            if bounds.shape != (self.num_of_knots, 2):
                raise ValueError(f"x bounds must have shape ({self.num_of_knots}, 2); got {bounds.shape}")
            self.x_bounds = bounds.copy()
        else:
            self.x_bounds = np.tile([float(x_lower), float(x_upper)], (self.num_of_knots, 1))

    def set_dx_bounds(self, dx_lower: float, dx_upper: float):
        self.dx_bounds = (float(dx_lower), float(dx_upper))

    def set_ddx_bounds(self, ddx_lower: float, ddx_upper: float):
        self.ddx_bounds = (float(ddx_lower), float(ddx_upper))

    def set_dddx_bound(self, dddx_lower: float, dddx_upper: float):
        self.dddx_bounds = (float(dddx_lower), float(dddx_upper))

    def set_weight_x(self, weight_x: float):
        self.weight_x = float(weight_x)

    def set_weight_dx(self, weight_dx: float):
        self.weight_dx = float(weight_dx)

    def set_weight_ddx(self, weight_ddx: float):
        self.weight_ddx = float(weight_ddx)

    def set_weight_dddx(self, weight_dddx: float):
        self.weight_dddx = float(weight_dddx)

    def set_weights(self, weights: dict):
        """Set all smoothness weights from a mapping with keys x, dx, ddx, dddx."""
        self.set_weight_x(weights["x"])
        self.set_weight_dx(weights["dx"])
        self.set_weight_ddx(weights["ddx"])
        self.set_weight_dddx(weights["dddx"])

    def set_x_ref(self, weight_x_ref: float, x_ref: Sequence[float]):
        x_ref = np.asarray(x_ref, dtype=float)
        if x_ref.shape != (self.num_of_knots,):
            raise ValueError(f"x_ref must have length {self.num_of_knots}; got {x_ref.shape}")
        self.weight_x_ref = float(weight_x_ref)
        self.x_ref = x_ref

    # ---------------- problem assembly ----------------

    def build_problem(self):
        """
        Assemble the symbolic QP.

        Returns
        -------
        tuple
            qp : dict
                CasADi QP description with keys `x`, `f`, `g`.
            lbg, ubg : numpy.ndarray
                Bounds of the stacked continuity and jerk constraints.
        """
        n = self.num_of_knots
        z = ca.SX.sym("z", 3 * n)
        x, dx, ddx = z[0:n], z[n:2 * n], z[2 * n:3 * n]

        cost = self.weight_x * ca.sumsqr(x)
        cost += self.weight_x_ref * ca.sumsqr(x - ca.DM(self.x_ref))
        cost += self.weight_dx * ca.sumsqr(dx)
        cost += self.weight_ddx * ca.sumsqr(ddx)

        x_defects, dx_defects, jerks = self.dynamics.knot_defects(x, dx, ddx)
        cost += self.weight_dddx * ca.sumsqr(jerks)

        g = ca.vertcat(x_defects, dx_defects, jerks)
        lbg = np.concatenate((np.zeros(2 * (n - 1)), np.full(n - 1, self.dddx_bounds[0])))
        ubg = np.concatenate((np.zeros(2 * (n - 1)), np.full(n - 1, self.dddx_bounds[1])))

        return {"x": z, "f": cost, "g": g}, lbg, ubg

    def build_box_constraints(self):
        n = self.num_of_knots
        lbx = np.concatenate((self.x_bounds[:, 0], np.full(n, self.dx_bounds[0]), np.full(n, self.ddx_bounds[0])))
        ubx = np.concatenate((self.x_bounds[:, 1], np.full(n, self.dx_bounds[1]), np.full(n, self.ddx_bounds[1])))
        # initial state is fixed regardless of the configured bounds
        for i, value in enumerate(self.x_init):
            lbx[i * n] = value
            ubx[i * n] = value
        return lbx, ubx

    def build_initial_guess(self):
        n = self.num_of_knots
        x0 = self.x_ref if self.weight_x_ref > 0 else np.full(n, self.x_init[0])
        x0 = np.clip(x0, self.x_bounds[:, 0], self.x_bounds[:, 1])
        return np.concatenate((x0, np.full(n, self.x_init[1]), np.full(n, self.x_init[2])))

    def _solver_options(self, max_iter: Optional[int]):
        plugin = self.solver_cfg["plugin"]
        opts = {"error_on_fail": False}
        if plugin == "osqp":
            osqp_opts = {"verbose": False, "polish": True}
            if max_iter is not None:
                osqp_opts["max_iter"] = int(max_iter)
            opts["osqp"] = osqp_opts
        elif plugin == "qpoases":
            opts["printLevel"] = "none"
            if max_iter is not None:
                opts["nWSR"] = int(max_iter)
        return merge_solver_options(opts, self.solver_cfg["options"])

    def optimize(self, max_iter: Optional[int] = None) -> bool:
        """
        Solve the QP.

        Parameters
        ----------
        max_iter : int, optional
            Iteration cap of the QP engine. Stopping at the cap without
            convergence counts as failure.

        Returns
        -------
        bool
            True if the engine reports success; the solved sequences are then
            available through `opt_x`, `opt_dx` and `opt_ddx`.
        """
        self._opt_x = self._opt_dx = self._opt_ddx = None
        qp, lbg, ubg = self.build_problem()
        lbx, ubx = self.build_box_constraints()
        if np.any(lbx > ubx):
            logger.warning(f"{self.__class__.__name__}: inconsistent box constraints, problem is infeasible")
            return False

        try:
            solver = ca.qpsol("piecewise_jerk_qp", self.solver_cfg["plugin"], qp, self._solver_options(max_iter))
            res = solver(x0=self.build_initial_guess(), lbx=lbx, ubx=ubx, lbg=lbg, ubg=ubg)
        except RuntimeError as e:
            logger.warning(f"{self.__class__.__name__}: QP engine raised {e}")
            return False

        self.stats = solver.stats()
        logger.debug(f"{self.__class__.__name__} finished with status {self.stats.get('return_status')}")
        if not self.stats.get("success", False):
            return False

        z = res["x"].full().ravel()
        if not np.all(np.isfinite(z)):
            return False
        n = self.num_of_knots
        self._opt_x = z[0:n]
        self._opt_dx = z[n:2 * n]
        self._opt_ddx = z[2 * n:3 * n]
        return True

    # ---------------- results ----------------

    def _result(self, values):
        if values is None:
            raise RuntimeError("QP has not been solved successfully.")
        return values.copy()

    @property
    def opt_x(self) -> np.ndarray:
        return self._result(self._opt_x)

    @property
    def opt_dx(self) -> np.ndarray:
        return self._result(self._opt_dx)

    @property
    def opt_ddx(self) -> np.ndarray:
        return self._result(self._opt_ddx)
