"""
Copyright 2025 AUMOVIO. All rights reserved.
"""

import casadi as ca
from typing import Optional

class TripleIntegrator:
    """
    Discrete triple integrator with piecewise-constant jerk in casadi.

    States (3):  [x, dx, ddx]
    Controls (1):[dddx]
    Dynamics over one step h with jerk held constant:
        x_next   = x + dx * h + ddx * h^2 / 2 + dddx * h^3 / 6
        dx_next  = dx + ddx * h + dddx * h^2 / 2
        ddx_next = ddx + dddx * h

    Substituting dddx = (ddx_next - ddx) / h gives the knot form used by the
    optimizers, where only x, dx and ddx are decision variables:
        x_next  = x + dx * h + ddx * h^2 / 3 + ddx_next * h^2 / 6
        dx_next = dx + (ddx + ddx_next) * h / 2
    """
    def __init__(self, step: float):
        if step <= 0:
            raise ValueError("step must be positive.")
        self.step = step
        self.states = self.init_state_symbols()
        self.controls = self.init_control_symbols()
        self.rhs = self.init_rhs()

    def init_state_symbols(self) -> ca.SX:
        x   = ca.SX.sym('x')
        dx  = ca.SX.sym('dx')
        ddx = ca.SX.sym('ddx')
        states = ca.vertcat(x, dx, ddx)
        return states

    def init_control_symbols(self) -> ca.SX:
        dddx = ca.SX.sym('dddx')
        return dddx

    def init_rhs(self) -> ca.SX:
        x, dx, ddx = [self.states[i] for i in range(3)]
        j = self.controls
        h = self.step

        rhs = ca.vertcat(
            x + dx * h + ddx * h**2 / 2.0 + j * h**3 / 6.0,  # x_next
            dx + ddx * h + j * h**2 / 2.0,                    # dx_next
            ddx + j * h,                                      # ddx_next
        )
        return rhs

    def get_f(self, fname: Optional[str]="f", sname: Optional[str]="input_state", cname: Optional[str]="control_input", rhsname: Optional[str]="next_state") -> ca.Function:
        """
        Returns CasADi function f(states, controls) -> next state with named I/O.
        """
        f = ca.Function(
            fname,
            [self.states, self.controls],
            [self.rhs],
            [sname, cname],
            [rhsname]
        )
        return f

    def jerk(self, ddx, ddx_next):
        return (ddx_next - ddx) / self.step

    def knot_defects(self, x, dx, ddx):
        """
        Continuity defects between consecutive knots of stacked sequences.

        Parameters
        ----------
        x, dx, ddx : casadi.SX or casadi.MX
            Column vectors of equal length n holding the knot values.

        Returns
        -------
        tuple of casadi expressions
            Position and velocity defects (each of length n-1) that vanish when
            the knots are connected by piecewise-constant jerk, and the jerks
            themselves.
        """
        f = self.get_f()
        n = x.shape[0]
        x_defects, dx_defects, jerks = [], [], []
        for k in range(n - 1):
            j_k = self.jerk(ddx[k], ddx[k + 1])
            next_state = f(ca.vertcat(x[k], dx[k], ddx[k]), j_k)
            x_defects.append(x[k + 1] - next_state[0])
            dx_defects.append(dx[k + 1] - next_state[1])
            jerks.append(j_k)
        return ca.vertcat(*x_defects), ca.vertcat(*dx_defects), ca.vertcat(*jerks)
