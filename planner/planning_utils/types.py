"""
Copyright 2025 AUMOVIO. All rights reserved.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import numpy as np


class FailureReason(str, Enum):
    """Classified cause of a failed speed optimization stage."""
    LENGTH_MISMATCH = "length-mismatch"
    DEGENERATE_PATH = "degenerate-path"
    INVALID_DISCRETIZATION = "invalid-discretization"
    QP_INFEASIBLE = "qp-infeasible"
    CURVATURE_SMOOTHING_FAILED = "curvature-smoothing-failed"
    SPEED_LIMIT_SMOOTHING_FAILED = "speed-limit-smoothing-failed"
    INVALID_WARM_START = "invalid-warm-start"
    NLP_INIT_FAILED = "nlp-init-failed"
    NLP_NON_CONVERGENT = "nlp-non-convergent"


@dataclass(frozen=True)
class TimeDiscretization:
    dt: float
    num_knots: int

    def __post_init__(self):
        if self.dt <= 0:
            raise ValueError("dt must be positive.")
        if self.num_knots < 2:
            raise ValueError("num_knots must be at least 2.")

    @property
    def total_time(self) -> float:
        return self.dt * (self.num_knots - 1)


@dataclass(frozen=True)
class InitialState:
    """Boundary condition (s, v, a) shared by every stage; s is always 0 at the planning start."""
    s: float = 0.0
    v: float = 0.0
    a: float = 0.0

    def as_array(self) -> np.ndarray:
        return np.array([self.s, self.v, self.a], dtype=float)


@dataclass(frozen=True)
class KinematicLimits:
    v_max: float
    a_min: float
    a_max: float
    j_min: float
    j_max: float

    @classmethod
    def from_config(cls, cfg: dict, init_v: float) -> "KinematicLimits":
        # keep an overspeeding vehicle feasible at the first knot
        return cls(
            v_max=max(cfg["v_max_floor"], init_v),
            a_min=cfg["a_min"],
            a_max=cfg["a_max"],
            j_min=cfg["j_min"],
            j_max=cfg["j_max"],
        )


@dataclass
class StageResult:
    """Per-knot distance, velocity and acceleration of one optimization stage."""
    distance: Optional[np.ndarray] = None
    velocity: Optional[np.ndarray] = None
    acceleration: Optional[np.ndarray] = None

    def is_valid(self) -> bool:
        sequences = (self.distance, self.velocity, self.acceleration)
        if any(seq is None for seq in sequences):
            return False
        sizes = {len(seq) for seq in sequences}
        return len(sizes) == 1 and sizes.pop() > 0

    def __len__(self):
        return 0 if self.distance is None else len(self.distance)


@dataclass
class StageOutcome:
    ok: bool
    reason: Optional[FailureReason] = None
    payload: object = field(default=None, repr=False)

    @classmethod
    def success(cls, payload=None) -> "StageOutcome":
        return cls(True, None, payload)

    @classmethod
    def failure(cls, reason: FailureReason) -> "StageOutcome":
        return cls(False, reason, None)
