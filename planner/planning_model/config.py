"""
Copyright 2025 AUMOVIO. All rights reserved.
"""
from copy import deepcopy

from omegaconf import DictConfig, OmegaConf
from omegaconf.errors import OmegaConfBaseException

# kinematic limits of the longitudinal motion
DEFAULT_CONSTRAINTS = {
    "v_max_floor": 15.0,  # v_max = max(v_max_floor, init_v)
    "a_min": -3.0,
    "a_max": 2.0,
    "j_min": -4.0,
    "j_max": 2.0,
    "min_path_length": 1e-7,
}

# cruise speed tracked by the nonlinear refinement
DEFAULT_REFERENCE = {
    "v_ref": 5.0,
}

DEFAULT_WEIGHTS = {
    "qp": {"x": 0.0, "dx": 0.0, "ddx": 1.0, "dddx": 1.0, "x_ref": 1.0},
    "nlp": {
        "ref_s": 10.0,
        "ref_v": 5.0,
        "overall_a": 2.0,
        "overall_j": 3.0,
        "overall_centripetal_acc": 1000.0,
        "speed_limit": 100.0,
        "soft_s_bound": 0.0,
    },
}

DEFAULT_SMOOTHING = {
    "curvature": {
        "delta_s": 0.5,
        "x_bounds": [-1.0, 1.0],
        "dx_bounds": [-10.0, 10.0],
        "ddx_bounds": [-10.0, 10.0],
        "dddx_bounds": [-10.0, 10.0],
        "weights": {"x": 0.0, "dx": 10.0, "ddx": 10.0, "dddx": 10.0},
        "weight_ref": 10.0,
        "max_iter": 1000,
    },
    "speed_limit": {
        "delta_s": 2.0,
        "num_samples": 100,
        "x_bounds": [0.0, 50.0],
        "dx_bounds": [-10.0, 10.0],
        "ddx_bounds": [-10.0, 10.0],
        "dddx_bounds": [-10.0, 10.0],
        "weights": {"x": 0.0, "dx": 10.0, "ddx": 10.0, "dddx": 10.0},
        "weight_ref": 10.0,
        "max_iter": 4000,
    },
}

DEFAULT_SOLVER = {
    # reference smoothing runs without an iteration cap of its own
    "qp": {"plugin": "osqp", "options": {}, "max_iter": None},
    "nlp": {"options": {"ipopt": {"max_iter": 1000, "print_level": 0, "sb": "yes"}, "print_time": False}},
    "speed_limit_mode": "soft",
}

DEFAULT_OUTPUT = {
    "fill_enough_points": False,
    "total_time": 3.0,
    "time_unit": 0.1,
}

DEFAULT_CONFIG = {
    "constraints": DEFAULT_CONSTRAINTS,
    "reference": DEFAULT_REFERENCE,
    "weights": DEFAULT_WEIGHTS,
    "smoothing": DEFAULT_SMOOTHING,
    "solver": DEFAULT_SOLVER,
    "output": DEFAULT_OUTPUT,
}


def merge_solver_options(default: dict, override: dict = None) -> dict:
    """Merge casadi plugin options; nested plugin sections such as `ipopt` or `osqp` are merged key by key."""
    merged = deepcopy(default)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merged[key] | deepcopy(value)
        else:
            merged[key] = deepcopy(value)
    return merged


def _unlock_solver_options(node: DictConfig) -> None:
    # solver options are passed through to casadi unchecked
    for key in node.keys():
        child = node[key]
        if not isinstance(child, DictConfig):
            continue
        if key == "options":
            OmegaConf.set_struct(child, False)
        else:
            _unlock_solver_options(child)


def merge_config(default: dict, override: dict = None) -> dict:
    """Merge `override` over `default` in OmegaConf struct mode; unknown keys are rejected."""
    merged = OmegaConf.create(default)
    OmegaConf.set_struct(merged, True)
    _unlock_solver_options(merged)
    try:
        merged = OmegaConf.merge(merged, override or {})
    except OmegaConfBaseException as e:
        raise ValueError(f"Invalid configuration: {e}") from e
    return OmegaConf.to_container(merged, resolve=True)
