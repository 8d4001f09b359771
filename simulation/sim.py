"""
Copyright 2025 AUMOVIO. All rights reserved.
"""

import sys
import os
basepath = os.path.dirname(os.path.dirname(__file__))
if not basepath in sys.path:
    sys.path.insert(0, basepath)
    print(f"sys PATH now includes: '{basepath}'")

import hydra
import numpy as np
from omegaconf import DictConfig, OmegaConf

import logging 
logger = logging.getLogger(__name__)

from planner.planning_model.PiecewiseJerkSpeedOptimizer import PiecewiseJerkSpeedOptimizer
from planner.planning_utils.path import DiscretizedPath
from planner.planning_utils.speed_data import SpeedData
from planner.planning_utils.speed_limit import SpeedLimit


def build_scenario(cfg: DictConfig):
    """Create path, speed limit and per-knot distance bounds/reference of a synthetic scenario."""
    if cfg.path == "straight":
        path = DiscretizedPath.straight(cfg.length, resolution=cfg.resolution)
    elif cfg.path == "arc":
        path = DiscretizedPath.arc(cfg.radius, cfg.length, resolution=cfg.resolution)
    else:
        raise ValueError(f"Unknown scenario path '{cfg.path}'.")

    t = cfg.dt * np.arange(cfg.num_knots)
    s_bounds = [(0.0, cfg.length) for _ in t]
    s_bounds[0] = (0.0, 0.0)
    ref_s_list = np.minimum(cfg.cruise_speed * t, cfg.length).tolist()
    speed_limit = SpeedLimit.constant(cfg.speed_limit, length=max(200.0, cfg.length))
    return path, speed_limit, s_bounds, ref_s_list


def plot_result(cfg: DictConfig, result, s_bounds, v_max) -> None:
    import matplotlib.pyplot as plt
    from simulation.utils.vis_utils import plot_path_curvature, plot_speed_over_distance, plot_speed_profile

    context = result.context
    fig = plt.figure(figsize=(12, 10))
    grid = fig.add_gridspec(4, 2)
    profile_axes = [fig.add_subplot(grid[i, 0]) for i in range(4)]
    plot_speed_profile(profile_axes, result.speed_data, s_bounds=s_bounds, dt=cfg.scenario.dt, v_max=v_max)
    plot_path_curvature(fig.add_subplot(grid[0:2, 1]), context.path)
    plot_speed_over_distance(fig.add_subplot(grid[2:4, 1]), result.speed_data, context.speed_limit, context.smoothed_speed_limit)
    fig.tight_layout()
    if cfg.output_dir:
        os.makedirs(cfg.output_dir, exist_ok=True)
        fig_path = os.path.join(cfg.output_dir, f"speed_profile_{cfg.scenario.path}.png")
        fig.savefig(fig_path)
        logger.info(f"Saved figure to {fig_path}")
    else:
        plt.show()


@hydra.main(version_base=None, config_path="../configs", config_name="speed_optimizer")
def run(cfg: DictConfig) -> None:
    optimizer_cfg = OmegaConf.to_container(cfg.optimizer, resolve=True)
    optimizer = PiecewiseJerkSpeedOptimizer(**optimizer_cfg, verbose=cfg.verbose)
    path, speed_limit, s_bounds, ref_s_list = build_scenario(cfg.scenario)

    speed_data = SpeedData()
    result = optimizer.process(s_bounds, s_bounds, ref_s_list, speed_limit, cfg.scenario.dt, path,
                               cfg.scenario.init_v, cfg.scenario.init_a, speed_data)
    for name, duration in result.stage_durations.items():
        logger.info(f"{name}: {duration:.3f} ms")
    if not result.ok:
        logger.error(f"Speed optimization failed: {result.reason.value}")
        return

    for point in speed_data:
        logger.info(f"t={point.t:5.2f}  s={point.s:7.3f}  v={point.v:6.3f}  a={point.a:6.3f}  da={point.da:6.3f}")

    if cfg.plot and result.context is not None:
        plot_result(cfg, result, s_bounds, result.context.limits.v_max)

    
if __name__ == '__main__':
    run()
