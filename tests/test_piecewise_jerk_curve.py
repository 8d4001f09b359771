import casadi as ca
import numpy as np
import pytest

from planner.planning_utils.piecewise_jerk_curve import ConstantJerkSegment, PiecewiseJerkCurve


def _two_segment_curve() -> PiecewiseJerkCurve:
    # p(0)=0, v(0)=1, a(0)=0 then jerk +6 for 1 and -6 for 1
    curve = PiecewiseJerkCurve(0.0, 1.0, 0.0)
    curve.append_segment(6.0, 1.0)
    curve.append_segment(-6.0, 1.0)
    return curve


def test_segments_continue_from_predecessor() -> None:
    curve = _two_segment_curve()

    assert curve.params == [0.0, 1.0, 2.0]
    assert len(curve) == 2
    assert curve.end - curve.start == pytest.approx(2.0)
    # end state of the first segment is the start of the second
    assert curve.evaluate(0, 1.0) == pytest.approx(2.0)
    assert curve.evaluate(1, 1.0) == pytest.approx(4.0)
    assert curve.evaluate(2, 1.0) == pytest.approx(6.0)
    assert curve.evaluate(0, 2.0) == pytest.approx(8.0)
    assert curve.evaluate(1, 2.0) == pytest.approx(7.0)
    assert curve.evaluate(2, 2.0) == pytest.approx(0.0)


def test_evaluate_inside_and_outside_extent() -> None:
    curve = _two_segment_curve()

    assert curve.evaluate(0, 1.5) == pytest.approx(4.625)
    assert curve.evaluate(3, 1.5) == pytest.approx(-6.0)
    # before the start the first segment extrapolates
    assert curve.evaluate(0, -1.0) == pytest.approx(-2.0)
    # past the end the last segment extrapolates
    assert curve.evaluate(0, 2.5) == pytest.approx(11.375)
    np.testing.assert_allclose(curve.evaluate_many(0, [0.0, 1.5]), [0.0, 4.625])


def test_from_knots_reproduces_curve() -> None:
    curve = PiecewiseJerkCurve.from_knots([0.0, 2.0, 8.0], [1.0, 4.0, 7.0], [0.0, 6.0, 0.0], spacing=1.0)

    assert [s.jerk for s in curve.segments] == pytest.approx([6.0, -6.0])
    assert curve.evaluate(0, 1.5) == pytest.approx(4.625)
    assert curve.evaluate(2, 2.0) == pytest.approx(0.0)


def test_from_knots_with_offset_start() -> None:
    curve = PiecewiseJerkCurve.from_knots([0.0, 2.0, 8.0], [1.0, 4.0, 7.0], [0.0, 6.0, 0.0], spacing=1.0, start=10.0)

    assert curve.start == pytest.approx(10.0)
    assert curve.end == pytest.approx(12.0)
    assert curve.evaluate(0, 11.5) == pytest.approx(4.625)


def test_casadi_function_matches_numeric_evaluation() -> None:
    curve = _two_segment_curve()
    f = curve.get_function("value")
    df = curve.get_function("slope", order=1)

    for param in (-1.0, 0.0, 0.5, 1.0, 1.5, 2.0, 2.5):
        assert float(f(param)) == pytest.approx(curve.evaluate(0, param))
        assert float(df(param)) == pytest.approx(curve.evaluate(1, param))


def test_casadi_function_accepts_symbolic_argument() -> None:
    curve = _two_segment_curve()
    f = curve.get_function("value")
    s = ca.MX.sym("s")
    g = ca.Function("g", [s], [2.0 * f(s)])

    assert float(g(1.5)) == pytest.approx(9.25)


def test_curve_without_segments_uses_anchor() -> None:
    curve = PiecewiseJerkCurve(1.0, 2.0, 2.0)

    assert curve.evaluate(0, 1.0) == pytest.approx(4.0)
    assert float(curve.get_function("anchor")(1.0)) == pytest.approx(4.0)


def test_segment_requires_positive_length() -> None:
    with pytest.raises(ValueError):
        ConstantJerkSegment(0.0, 0.0, 0.0, 1.0, 0.0)


def test_second_derivative_matches_every_knot() -> None:
    ddx = [0.3, -1.2, 2.5, 0.0, -0.7, 1.1]
    x = [0.0] * len(ddx)
    dx = [1.0] * len(ddx)
    start, spacing = 3.0, 0.5

    curve = PiecewiseJerkCurve.from_knots(x, dx, ddx, spacing=spacing, start=start)

    assert len(curve) == len(ddx) - 1
    for i, expected in enumerate(ddx):
        assert curve.evaluate(2, start + i * spacing) == pytest.approx(expected, abs=1e-9)
