from pathlib import Path
import sys

import pytest

# Allow running tests without installing the package in editable mode.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from planner.planning_utils.path import DiscretizedPath
from planner.planning_utils.speed_limit import SpeedLimit


@pytest.fixture
def straight_path() -> DiscretizedPath:
    return DiscretizedPath.straight(20.0, resolution=0.5)


@pytest.fixture
def constant_speed_limit() -> SpeedLimit:
    return SpeedLimit.constant(10.0)


@pytest.fixture
def five_knot_scenario(straight_path, constant_speed_limit):
    """Five knots at dt=0.5 on a 20 m straight path starting at 2 m/s."""
    s_bounds = [(0.0, 0.0), (0.0, 5.0), (0.0, 10.0), (0.0, 15.0), (0.0, 20.0)]
    return {
        "s_bounds": s_bounds,
        "soft_s_bounds": list(s_bounds),
        "ref_s_list": [0.0, 2.0, 4.0, 6.0, 8.0],
        "speed_limit": constant_speed_limit,
        "dt": 0.5,
        "path": straight_path,
        "init_v": 2.0,
        "init_a": 0.0,
    }
