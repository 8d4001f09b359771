from pathlib import Path

import pytest
from omegaconf import OmegaConf

from planner.planning_model.config import DEFAULT_CONFIG, merge_config, merge_solver_options
from planner.planning_utils.types import KinematicLimits, StageResult, TimeDiscretization


def test_merge_config_overrides_nested_values() -> None:
    cfg = merge_config(DEFAULT_CONFIG, {"weights": {"nlp": {"ref_v": 1.0}}})

    assert cfg["weights"]["nlp"]["ref_v"] == 1.0
    assert cfg["weights"]["nlp"]["ref_s"] == DEFAULT_CONFIG["weights"]["nlp"]["ref_s"]
    # defaults stay untouched
    assert DEFAULT_CONFIG["weights"]["nlp"]["ref_v"] == 5.0


def test_merge_config_rejects_unknown_keys() -> None:
    with pytest.raises(ValueError):
        merge_config(DEFAULT_CONFIG, {"weights": {"nlp": {"unknown": 1.0}}})
    with pytest.raises(ValueError):
        merge_config(DEFAULT_CONFIG, {"planner": 1})


def test_merge_config_returns_plain_containers() -> None:
    cfg = merge_config(DEFAULT_CONFIG)

    assert cfg == DEFAULT_CONFIG
    assert type(cfg["smoothing"]["curvature"]["x_bounds"]) is list
    assert cfg["solver"]["qp"]["max_iter"] is None


def test_entry_point_config_only_overrides_defaults() -> None:
    cfg = OmegaConf.load(Path(__file__).resolve().parents[1] / "configs" / "speed_optimizer.yaml")
    optimizer_cfg = OmegaConf.to_container(cfg.optimizer, resolve=True)

    assert set(optimizer_cfg) <= set(DEFAULT_CONFIG)
    assert merge_config(DEFAULT_CONFIG, optimizer_cfg) == DEFAULT_CONFIG


def test_solver_options_merge_plugin_sections() -> None:
    cfg = merge_config(DEFAULT_CONFIG, {"solver": {"nlp": {"options": {"ipopt": {"max_iter": 50}, "expand": True}}}})

    options = cfg["solver"]["nlp"]["options"]
    assert options["ipopt"] == {"max_iter": 50, "print_level": 0, "sb": "yes"}
    assert options["expand"] is True
    assert merge_solver_options({"a": 1}, None) == {"a": 1}


def test_kinematic_limits_keep_initial_speed_feasible() -> None:
    limits = KinematicLimits.from_config(DEFAULT_CONFIG["constraints"], init_v=20.0)

    assert limits.v_max == 20.0
    assert KinematicLimits.from_config(DEFAULT_CONFIG["constraints"], init_v=2.0).v_max == 15.0


def test_time_discretization_validation() -> None:
    assert TimeDiscretization(dt=0.5, num_knots=5).total_time == pytest.approx(2.0)
    with pytest.raises(ValueError):
        TimeDiscretization(dt=0.0, num_knots=5)
    with pytest.raises(ValueError):
        TimeDiscretization(dt=0.5, num_knots=1)


def test_stage_result_validity() -> None:
    assert not StageResult().is_valid()
    assert not StageResult([0.0], [0.0, 1.0], [0.0]).is_valid()
    assert not StageResult([], [], []).is_valid()
    assert StageResult([0.0], [1.0], [0.0]).is_valid()
