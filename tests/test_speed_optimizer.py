import casadi as ca
import numpy as np
import pytest

from planner.planning_model.PiecewiseJerkSpeedNLP import PiecewiseJerkSpeedNLP
from planner.planning_model.PiecewiseJerkSpeedOptimizer import PiecewiseJerkSpeedOptimizer, ProcessResult
from planner.planning_utils.path import DiscretizedPath, PathPoint
from planner.planning_utils.speed_data import SpeedData
from planner.planning_utils.speed_limit import SpeedLimit
from planner.planning_utils.types import FailureReason, StageResult


def _stale_speed_data() -> SpeedData:
    speed_data = SpeedData()
    speed_data.append_speed_point(1.0, 0.0, 1.0, 0.0, 0.0)
    return speed_data


def test_five_knot_scenario(five_knot_scenario) -> None:
    optimizer = PiecewiseJerkSpeedOptimizer()
    speed_data = _stale_speed_data()

    result = optimizer.process(**five_knot_scenario, speed_data=speed_data)

    ok, profile = result
    assert ok and result.reason is None
    assert profile is speed_data
    assert len(profile) == 5
    first = profile[0]
    assert (first.s, first.t, first.v, first.a, first.da) == pytest.approx((0.0, 0.0, 2.0, 0.0, 0.0), abs=1e-6)

    data = profile.as_array()
    np.testing.assert_allclose(data[:, 1], 0.5 * np.arange(5))
    assert np.all(np.diff(data[:, 0]) >= -1e-6)
    bounds = np.array(five_knot_scenario["s_bounds"])
    assert np.all(data[:, 0] >= bounds[:, 0] - 1e-6)
    assert np.all(data[:, 0] <= bounds[:, 1] + 1e-6)
    assert np.all(data[:, 2] >= -1e-6) and np.all(data[:, 2] <= 15.0 + 1e-6)
    assert np.all(data[:, 3] >= -3.0 - 1e-6) and np.all(data[:, 3] <= 2.0 + 1e-6)
    # jerk is the backward difference of consecutive accelerations
    np.testing.assert_allclose(data[1:, 4], np.diff(data[:, 3]) / 0.5, atol=1e-9)

    assert set(result.stage_durations) == {
        "speed qp optimization",
        "path curvature smoothing for nlp optimization",
        "speed limit smoothing for nlp optimization",
        "speed nlp optimization",
    }
    assert all(duration >= 0.0 for duration in result.stage_durations.values())


def test_optimizer_is_reusable(five_knot_scenario) -> None:
    optimizer = PiecewiseJerkSpeedOptimizer()

    first = optimizer.process(**five_knot_scenario).speed_data.as_array()
    second = optimizer.process(**five_knot_scenario).speed_data.as_array()

    np.testing.assert_allclose(first, second, atol=1e-9)


def test_curved_path_is_driven_slower_than_straight() -> None:
    optimizer = PiecewiseJerkSpeedOptimizer()
    n, dt = 9, 0.5
    s_bounds = [(0.0, 40.0)] * n
    s_bounds[0] = (0.0, 0.0)
    ref_s_list = [min(8.0 * dt * k, 40.0) for k in range(n)]
    kwargs = dict(s_bounds=s_bounds, soft_s_bounds=s_bounds, ref_s_list=ref_s_list, dt=dt, init_v=8.0, init_a=0.0)

    ok_straight, straight = optimizer.process(path=DiscretizedPath.straight(40.0), speed_limit=SpeedLimit.constant(15.0), **kwargs)
    ok_curved, curved = optimizer.process(path=DiscretizedPath.arc(10.0, 40.0), speed_limit=SpeedLimit.constant(15.0), **kwargs)

    assert ok_straight and ok_curved
    assert curved[-1].v < straight[-1].v


def test_hard_bounds_are_clipped_to_path_length(five_knot_scenario) -> None:
    optimizer = PiecewiseJerkSpeedOptimizer()
    scenario = dict(five_knot_scenario, s_bounds=[(0.0, 0.0)] + [(0.0, 100.0)] * 4)

    outcome = optimizer.build_context(**scenario)

    assert outcome.ok
    np.testing.assert_allclose(outcome.payload.s_bounds[:, 1], [0.0, 20.0, 20.0, 20.0, 20.0])
    # caller input is not modified
    assert scenario["s_bounds"][1] == (0.0, 100.0)


@pytest.mark.parametrize(
    "override, reason",
    [
        ({"soft_s_bounds": [(0.0, 20.0)] * 4}, FailureReason.LENGTH_MISMATCH),
        ({"ref_s_list": [0.0, 1.0]}, FailureReason.LENGTH_MISMATCH),
        ({"dt": 0.0}, FailureReason.INVALID_DISCRETIZATION),
        ({"path": DiscretizedPath([PathPoint(s=0.0)])}, FailureReason.DEGENERATE_PATH),
    ],
)
def test_invalid_inputs_fail_before_solving(five_knot_scenario, monkeypatch, override, reason) -> None:
    def _no_solver(*args, **kwargs):
        raise AssertionError("no stage may run on invalid inputs")

    optimizer = PiecewiseJerkSpeedOptimizer()
    monkeypatch.setattr(optimizer, "optimize_by_qp", _no_solver)
    speed_data = _stale_speed_data()

    result = optimizer.process(**dict(five_knot_scenario, **override), speed_data=speed_data)

    assert isinstance(result, ProcessResult)
    assert not result.ok and not result
    assert result.reason == reason
    assert len(speed_data) == 0


def test_unreachable_bounds_fail_in_reference_smoothing(five_knot_scenario) -> None:
    optimizer = PiecewiseJerkSpeedOptimizer()
    s_bounds = [(0.0, 0.0), (10.0, 10.0), (10.0, 20.0), (10.0, 20.0), (10.0, 20.0)]

    result = optimizer.process(**dict(five_knot_scenario, s_bounds=s_bounds, soft_s_bounds=s_bounds))

    assert not result.ok
    assert result.reason == FailureReason.QP_INFEASIBLE
    assert list(result.stage_durations) == ["speed qp optimization"]


def test_non_convergent_nlp_reports_reason(five_knot_scenario, monkeypatch) -> None:
    monkeypatch.setattr(PiecewiseJerkSpeedNLP, "solve", lambda self: False)
    speed_data = _stale_speed_data()

    result = PiecewiseJerkSpeedOptimizer().process(**five_knot_scenario, speed_data=speed_data)

    ok, profile = result
    assert not ok
    assert result.reason == FailureReason.NLP_NON_CONVERGENT
    assert len(profile) == 0
    assert list(result.stage_durations)[-1] == "speed nlp optimization"


def test_nlp_setup_failure_reports_reason(five_knot_scenario, monkeypatch) -> None:
    def _broken_setup(self):
        raise RuntimeError("ipopt plugin unavailable")

    monkeypatch.setattr(PiecewiseJerkSpeedNLP, "setup_NLP", _broken_setup)

    result = PiecewiseJerkSpeedOptimizer().process(**five_knot_scenario)

    assert result.reason == FailureReason.NLP_INIT_FAILED


@pytest.mark.parametrize(
    "warm_start",
    [
        StageResult(),
        StageResult(distance=np.zeros(5), velocity=np.zeros(5), acceleration=np.zeros(4)),
        StageResult(distance=np.zeros(0), velocity=np.zeros(0), acceleration=np.zeros(0)),
        StageResult(distance=np.zeros(4), velocity=np.zeros(4), acceleration=np.zeros(4)),
    ],
    ids=["missing", "unequal-length", "empty", "wrong-knot-count"],
)
def test_invalid_warm_start_never_builds_solver(five_knot_scenario, monkeypatch, warm_start) -> None:
    def _nlpsol(*args, **kwargs):
        raise AssertionError("the NLP engine must not be built for an invalid warm start")

    monkeypatch.setattr(ca, "nlpsol", _nlpsol)
    optimizer = PiecewiseJerkSpeedOptimizer()
    context = optimizer.build_context(**five_knot_scenario).payload
    context.warm_start = warm_start

    outcome = optimizer.optimize_by_nlp(context)

    assert not outcome.ok
    assert outcome.reason == FailureReason.INVALID_WARM_START


def test_assembly_stops_at_negative_speed(five_knot_scenario) -> None:
    optimizer = PiecewiseJerkSpeedOptimizer()
    context = optimizer.build_context(**five_knot_scenario).payload
    context.warm_start = StageResult(
        distance=np.array([0.0, 0.8, 1.0, 1.0, 1.0]),
        velocity=np.array([2.0, 1.0, -0.1, 1.0, 2.0]),
        acceleration=np.array([0.0, -2.0, -2.0, 0.0, 0.0]),
    )

    speed_data = optimizer.assemble_speed_data(context, _stale_speed_data())

    assert len(speed_data) == 2
    assert speed_data[1].t == pytest.approx(0.5)
    assert speed_data[1].da == pytest.approx(-4.0)


def test_assembly_pads_when_enabled(five_knot_scenario) -> None:
    optimizer = PiecewiseJerkSpeedOptimizer(output={"fill_enough_points": True})
    context = optimizer.build_context(**five_knot_scenario).payload
    context.warm_start = StageResult(
        distance=np.array([0.0, 0.8, 1.0, 1.0, 1.0]),
        velocity=np.array([2.0, 1.0, 0.0, 0.0, 0.0]),
        acceleration=np.array([0.0, -2.0, -2.0, 0.0, 0.0]),
    )

    speed_data = optimizer.assemble_speed_data(context, SpeedData())

    assert len(speed_data) > 5
    assert speed_data[-1].t >= 2.9 - 1e-9
    assert all(p.v == 0.0 and p.s == pytest.approx(1.0) for p in speed_data[5:])


def test_unknown_configuration_is_rejected() -> None:
    with pytest.raises(ValueError):
        PiecewiseJerkSpeedOptimizer(weights={"nlp": {"centripetal": 1.0}})


def _bend_path(offset: float) -> DiscretizedPath:
    # 20 m starting at arc length `offset`: curvature 0.2 for the first 10 m, straight afterwards
    s = offset + 0.5 * np.arange(41)
    return DiscretizedPath([PathPoint(x=si, kappa=0.2 if si < offset + 10.0 else 0.0, s=si) for si in s])


def test_curvature_curve_is_indexed_by_distance_from_path_front(five_knot_scenario) -> None:
    optimizer = PiecewiseJerkSpeedOptimizer()
    path = _bend_path(10.0)
    context = optimizer.build_context(**dict(five_knot_scenario, path=path)).payload

    outcome = optimizer.smooth_path_curvature(context)

    assert outcome.ok
    assert context.total_length == pytest.approx(20.0)
    curve = context.smoothed_path_curvature
    assert curve.start == pytest.approx(0.0)
    for distance in (0.0, 2.0, 18.0):
        expected = path.evaluate(path.front().s + distance).kappa
        assert curve.evaluate(0, distance) == pytest.approx(expected, abs=0.05)


def test_path_offset_does_not_change_profile(five_knot_scenario) -> None:
    optimizer = PiecewiseJerkSpeedOptimizer()

    ok_origin, origin = optimizer.process(**dict(five_knot_scenario, path=_bend_path(0.0)))
    ok_shifted, shifted = optimizer.process(**dict(five_knot_scenario, path=_bend_path(100.0)))

    assert ok_origin and ok_shifted
    np.testing.assert_allclose(shifted.as_array(), origin.as_array(), atol=1e-5)


def test_reference_smoothing_has_no_iteration_cap_by_default() -> None:
    assert PiecewiseJerkSpeedOptimizer().qp_max_iter is None
    assert PiecewiseJerkSpeedOptimizer(solver={"qp": {"max_iter": 50}}).qp_max_iter == 50
