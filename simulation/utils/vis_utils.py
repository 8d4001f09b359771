"""
Copyright 2025 AUMOVIO. All rights reserved.
"""
from typing import Optional, Sequence, Tuple

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.collections import LineCollection

from planner.planning_utils.path import DiscretizedPath
from planner.planning_utils.piecewise_jerk_curve import PiecewiseJerkCurve
from planner.planning_utils.speed_data import SpeedData
from planner.planning_utils.speed_limit import SpeedLimit


def plot_path_curvature(
    ax: plt.Axes,
    path: DiscretizedPath,
    cmap: str = "spring",
    linewidth: int = 3,
    alpha: float = 0.8,
    zorder: int = 100,
    label: str = None,
) -> None:
    """Draw the path in the plane, colored by its curvature."""
    xy = np.array([[p.x, p.y] for p in path.points])
    kappa = np.array([p.kappa for p in path.points])
    segments = np.concatenate([xy[:-1, None], xy[1:, None]], axis=1)
    vmin, vmax = kappa.min(), kappa.max()
    if np.isclose(vmin, vmax):
        vmin, vmax = vmin - 1e-3, vmax + 1e-3
    gradient = LineCollection(
        segments,
        cmap=cmap,
        norm=plt.Normalize(vmin, vmax),
        zorder=zorder,
        alpha=alpha,
        label=label,
    )
    gradient.set_array(kappa[:-1])
    gradient.set_linewidth(linewidth)
    ax.add_collection(gradient)
    ax.autoscale()
    ax.axis("equal")
    plt.colorbar(gradient, ax=ax, label="kappa [1/m]")


def plot_smoothed_curve(
    ax: plt.Axes,
    curve: PiecewiseJerkCurve,
    samples: Optional[Tuple[np.ndarray, np.ndarray]] = None,
    num_points: int = 200,
    color: str = "tab:blue",
    label: str = None,
) -> None:
    """Plot a smoothed curve over its covered extent, optionally on top of the raw samples."""
    params = np.linspace(curve.start, curve.end, num_points)
    ax.plot(params, curve.evaluate_many(0, params), color=color, linewidth=2, label=label)
    if samples is not None:
        ax.scatter(samples[0], samples[1], s=8, color="dimgrey", alpha=0.6, zorder=1, label="samples")


def plot_speed_profile(
    axes: Sequence[plt.Axes],
    speed_data: SpeedData,
    s_bounds: Optional[np.ndarray] = None,
    dt: Optional[float] = None,
    v_max: Optional[float] = None,
    color: str = "tab:orange",
    label: str = None,
) -> None:
    """Plot distance, speed, acceleration and jerk over time on four axes."""
    data = speed_data.as_array()
    t = data[:, 1]
    titles = ("s [m]", "v [m/s]", "a [m/s^2]", "j [m/s^3]")
    columns = (0, 2, 3, 4)
    for ax, title, column in zip(axes, titles, columns):
        ax.plot(t, data[:, column], color=color, marker=".", label=label)
        ax.set_ylabel(title)
        ax.grid(True, alpha=0.3)

    if s_bounds is not None and dt is not None:
        s_bounds = np.asarray(s_bounds, dtype=float)
        t_bounds = dt * np.arange(s_bounds.shape[0])
        axes[0].fill_between(t_bounds, s_bounds[:, 0], s_bounds[:, 1], color="silver", alpha=0.4, label="s bounds")
    if v_max is not None:
        axes[1].axhline(v_max, color="k", linestyle="--", linewidth=1, label="v max")
    axes[-1].set_xlabel("t [s]")


def plot_speed_over_distance(
    ax: plt.Axes,
    speed_data: SpeedData,
    speed_limit: Optional[SpeedLimit] = None,
    smoothed_speed_limit: Optional[PiecewiseJerkCurve] = None,
) -> None:
    """Compare the planned speed along the path with the (smoothed) speed limit."""
    data = speed_data.as_array()
    ax.plot(data[:, 0], data[:, 2], color="tab:orange", marker=".", label="planned speed")
    s_max = max(data[-1, 0], 1.0) if data.shape[0] else 1.0
    s = np.linspace(0.0, s_max, 100)
    if speed_limit is not None:
        ax.step(s, [speed_limit(si) for si in s], where="post", color="k", linestyle="--", label="speed limit")
    if smoothed_speed_limit is not None:
        ax.plot(s, smoothed_speed_limit.evaluate_many(0, s), color="tab:blue", label="smoothed speed limit")
    ax.set_xlabel("s [m]")
    ax.set_ylabel("v [m/s]")
    ax.grid(True, alpha=0.3)
    ax.legend()
