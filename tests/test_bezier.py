"""Test module for BezierCurve in hpgeom.bezier

The tests are run using pytest.
These tests ensure that evaluation, derivatives, bounding boxes and
subdivision of BezierCurve remain correct for lines, quadratics, cubics and
higher degrees. svgpathtools serves as an independent float64 reference.
"""

import numpy as np
import pytest
from svgpathtools import CubicBezier, QuadraticBezier

from hpgeom.bezier import BezierCurve, _bernstein_roots
from hpgeom.common import InvalidCurveError, InvalidParameterError
from hpgeom.geom import GeomMath
from hpgeom.numeric import DEFAULT_PRECISION, Precision

PREC = DEFAULT_PRECISION

LINE = [(0, 0), (3, 4)]
QUAD = [(0, 0), (50, 100), (100, 0)]
CUBIC = [(0, 0), (30, 100), (70, 100), (100, 0)]
S_CUBIC = [(10, 20), (80, -40), ("-15.5", 90), (60, "33.25")]
QUARTIC = [(0, 0), (1, 4), (2, -4), (3, 4), (4, 0)]
QUINTIC = [(0, 0), (1, 3), (2, -1), (3, 5), (4, -2), (5, 1)]

TINY = PREC.scalar("1e-70")


def close(p, q, tol=TINY):
    """True if two Point2D are within tol."""
    return GeomMath.distance(PREC, p, q) < tol


def to_complex(points):
    """Control points as complex numbers for svgpathtools."""
    return [complex(float(PREC.scalar(x)), float(PREC.scalar(y))) for x, y in points]


###############################################################################
# Construction Tests
###############################################################################


class TestConstruction:
    """Test construction, validation and the value object protocol."""

    def test_degree_and_points(self):
        """Degree is the number of control points minus one."""
        curve = BezierCurve(CUBIC)
        assert curve.degree == 3
        assert len(curve) == 4
        assert curve.start == (0, 0)
        assert curve.end == (100, 0)
        assert isinstance(curve.points, tuple)

    def test_accepts_mixed_number_types(self):
        """Control points may be ints, floats, strings or Scalars."""
        curve = BezierCurve([(0, "0.5"), (1.5, PREC.scalar(2))])
        assert curve.points == ((0, PREC.scalar("0.5")), (PREC.scalar("1.5"), 2))

    def test_too_few_points_raise(self):
        """Fewer than 2 control points is an InvalidCurveError."""
        with pytest.raises(InvalidCurveError):
            BezierCurve([(0, 0)])
        with pytest.raises(InvalidCurveError):
            BezierCurve([])

    def test_malformed_points_raise(self):
        """Malformed control points are an InvalidCurveError."""
        with pytest.raises(InvalidCurveError):
            BezierCurve([(0, 0), (1, 2, 3)])
        with pytest.raises(InvalidCurveError):
            BezierCurve([(0, 0), ("x", 1)])
        with pytest.raises(InvalidCurveError):
            BezierCurve("0,0 1,1")
        with pytest.raises(InvalidCurveError):
            BezierCurve(None)

    def test_invalid_curve_error_is_value_error(self):
        """Caller errors derive from ValueError."""
        with pytest.raises(ValueError):
            BezierCurve([(0, 0)])

    def test_coerce(self):
        """coerce returns the same object at the same precision and converts otherwise."""
        curve = BezierCurve(CUBIC)
        assert BezierCurve.coerce(curve, PREC) is curve
        converted = BezierCurve.coerce(curve, Precision(30))
        assert converted.precision == Precision(30)
        assert converted.points == curve.points
        assert BezierCurve.coerce(CUBIC) == curve

    def test_equality_and_hash(self):
        """Curves compare by control points and precision."""
        assert BezierCurve(CUBIC) == BezierCurve(CUBIC)
        assert hash(BezierCurve(CUBIC)) == hash(BezierCurve(CUBIC))
        assert BezierCurve(CUBIC) != BezierCurve(QUAD)
        assert BezierCurve(CUBIC) != BezierCurve(CUBIC, Precision(30))

    def test_iteration_and_indexing(self):
        """Curves iterate over and index their control points."""
        curve = BezierCurve(QUAD)
        assert list(curve) == list(curve.points)
        assert curve[1] == (50, 100)
        assert "degree=2" in repr(curve)


###############################################################################
# Evaluation Tests
###############################################################################


class TestPoint:
    """Test point evaluation."""

    @pytest.mark.parametrize("points", [LINE, QUAD, CUBIC, S_CUBIC, QUARTIC, QUINTIC])
    def test_endpoints_exact(self, points):
        """B(0) is the first and B(1) the last control point, exactly."""
        curve = BezierCurve(points)
        assert curve.point(0) == curve.start
        assert curve.point(1) == curve.end

    def test_parameter_is_clamped(self):
        """Parameters outside [0, 1] are clamped."""
        curve = BezierCurve(S_CUBIC)
        assert curve.point(-0.5) == curve.start
        assert curve.point("1.5") == curve.end
        assert curve.derivative(2) == curve.derivative(1)

    def test_line_midpoint(self):
        """The midpoint of a line segment."""
        assert BezierCurve(LINE).point("0.5") == (PREC.scalar("1.5"), 2)

    def test_cubic_symmetric_apex(self):
        """The symmetric arch reaches y = 75 at t = 0.5."""
        assert BezierCurve(CUBIC).point("0.5") == (50, 75)

    def test_every_reduction_pass_is_applied(self):
        """de Casteljau runs all degree passes for quadratics and quartics."""
        quad = BezierCurve([(0, 0), (1, 2), (2, 0)])
        assert quad.point("0.5") == (1, 1)
        left, right = quad.split("0.5")
        assert left.points == ((0, 0), (PREC.scalar("0.5"), 1), (1, 1))
        assert right.points == ((1, 1), (PREC.scalar("1.5"), 1), (2, 0))
        # Bernstein weights (1, 4, 6, 4, 1) / 16 at t = 0.5
        quartic = BezierCurve(QUARTIC)
        assert quartic.point("0.5") == (2, PREC.scalar("0.5"))
        assert quartic.derivative("0.5", 3) == quartic.hodograph().derivative("0.5", 2)

    @pytest.mark.parametrize("t", [0.1, 0.25, 0.5, 0.77, 0.9])
    def test_cubic_matches_svgpathtools(self, t):
        """de Casteljau agrees with svgpathtools to float64 accuracy."""
        curve = BezierCurve(S_CUBIC)
        reference = CubicBezier(*to_complex(S_CUBIC)).point(t)
        x, y = curve.point(t)
        assert float(x) == pytest.approx(reference.real, abs=1e-9)
        assert float(y) == pytest.approx(reference.imag, abs=1e-9)

    def test_quadratic_matches_svgpathtools(self):
        """Quadratic evaluation agrees with svgpathtools."""
        reference = QuadraticBezier(*to_complex(QUAD)).point(0.3)
        x, y = BezierCurve(QUAD).point(0.3)
        assert float(x) == pytest.approx(reference.real, abs=1e-9)
        assert float(y) == pytest.approx(reference.imag, abs=1e-9)

    @pytest.mark.parametrize("points", [LINE, QUAD, S_CUBIC, QUARTIC, QUINTIC])
    def test_bernstein_matches_casteljau(self, points):
        """Horner evaluation of the power basis agrees with de Casteljau."""
        curve = BezierCurve(points)
        for t in ("0.1", "0.3333", "0.5", "0.9"):
            assert close(curve.point(t), curve.point_bernstein(t), PREC.scalar("1e-60"))


###############################################################################
# Derivative Tests
###############################################################################


class TestDerivatives:
    """Test derivatives, tangents, normals and curvature."""

    def test_hodograph_points(self):
        """The hodograph of a cubic has control points 3 * (P[i+1] - P[i])."""
        curve = BezierCurve(CUBIC)
        assert curve.derivative_points(1) == ((90, 300), (120, 0), (90, -300))
        assert curve.hodograph() == BezierCurve([(90, 300), (120, 0), (90, -300)])
        assert curve.derivative_points(2) == ((60, -600), (-60, -600))
        assert curve.derivative_points(3) == ((-120, 0),)

    def test_hodograph_of_line_raises(self):
        """A line's hodograph is a constant, not a curve."""
        with pytest.raises(InvalidCurveError):
            BezierCurve(LINE).hodograph()

    def test_order_above_degree_is_zero(self):
        """Derivatives above the degree vanish."""
        assert BezierCurve(CUBIC).derivative("0.3", 4) == (0, 0)
        assert BezierCurve(LINE).derivative("0.3", 2) == (0, 0)
        assert BezierCurve(LINE).derivative("0.3", 1) == (3, 4)

    def test_invalid_order_raises(self):
        """Orders below 1 are rejected."""
        with pytest.raises(InvalidParameterError):
            BezierCurve(CUBIC).derivative("0.5", 0)

    @pytest.mark.parametrize("t", [0.0, 0.2, 0.5, 0.8, 1.0])
    def test_derivative_matches_svgpathtools(self, t):
        """First and second derivatives agree with svgpathtools."""
        curve = BezierCurve(S_CUBIC)
        reference = CubicBezier(*to_complex(S_CUBIC))
        for order in (1, 2):
            x, y = curve.derivative(t, order)
            expected = reference.derivative(t, n=order)
            assert float(x) == pytest.approx(expected.real, abs=1e-7)
            assert float(y) == pytest.approx(expected.imag, abs=1e-7)

    def test_tangent_and_normal_are_unit_and_perpendicular(self):
        """Tangent and normal are unit vectors at right angles."""
        curve = BezierCurve(S_CUBIC)
        tangent = curve.tangent("0.4")
        normal = curve.normal("0.4")
        assert abs(GeomMath.norm(PREC, tangent) - 1) < TINY
        assert abs(GeomMath.norm(PREC, normal) - 1) < TINY
        assert abs(GeomMath.dot(tangent, normal)) < TINY
        assert normal == (-tangent[1], tangent[0])

    def test_tangent_of_line(self):
        """The tangent of the 3-4-5 line is (0.6, 0.8)."""
        tangent = BezierCurve(LINE).tangent("0.5")
        assert close(tangent, PREC.point(("0.6", "0.8")))

    def test_tangent_at_cusp_uses_second_derivative(self):
        """At a cusp the tangent falls back to the second derivative."""
        cusp = BezierCurve([(0, 0), (2, 2), (0, 2), (2, 0)])
        assert cusp.derivative("0.5") == (0, 0)
        assert close(cusp.tangent("0.5"), (0, -1))

    def test_tangent_of_degenerate_curve(self):
        """A curve collapsed to one point has tangent (1, 0)."""
        assert BezierCurve([(5, 5), (5, 5), (5, 5)]).tangent("0.5") == (1, 0)

    def test_curvature_of_parabola(self):
        """y = x^2 has curvature 2 and radius 0.5 at its apex."""
        parabola = BezierCurve([(-1, 1), (0, -1), (1, 1)])
        assert abs(parabola.curvature("0.5") - 2) < TINY
        assert abs(parabola.radius_of_curvature("0.5") - PREC.scalar("0.5")) < TINY

    def test_curvature_sign(self):
        """Curvature is negative when the curve turns clockwise."""
        assert BezierCurve(CUBIC).curvature("0.5") < 0
        assert BezierCurve([(0, 0), (50, -100), (100, 0)]).curvature("0.5") > 0

    def test_curvature_zero_for_line_and_cusp(self):
        """Lines and cusps have zero curvature and infinite radius."""
        assert BezierCurve(LINE).curvature("0.3") == 0
        assert BezierCurve(LINE).radius_of_curvature("0.3") == PREC.inf
        assert BezierCurve([(0, 0), (2, 2), (0, 2), (2, 0)]).curvature("0.5") == 0


###############################################################################
# Bounding Box Tests
###############################################################################


class TestBoundingBox:
    """Test the exact bounding box."""

    def test_symmetric_cubic(self):
        """The arch reaches exactly y = 75."""
        box = BezierCurve(CUBIC).bounding_box()
        assert box.extent == (0, 0, 100, 75)

    def test_quadratic(self):
        """A quadratic arch reaches half its control point height."""
        box = BezierCurve(QUAD).bounding_box()
        assert box.ymax == 50
        assert box.xmin == 0
        assert box.xmax == 100

    def test_line(self):
        """A line's box is spanned by its end points."""
        assert BezierCurve([(3, 4), (-1, 2)]).bounding_box().extent == (-1, 2, 3, 4)

    def test_cubic_matches_svgpathtools(self):
        """The exact box agrees with svgpathtools' bbox."""
        xmin, xmax, ymin, ymax = CubicBezier(*to_complex(S_CUBIC)).bbox()
        box = BezierCurve(S_CUBIC).bounding_box()
        assert float(box.xmin) == pytest.approx(xmin, abs=1e-9)
        assert float(box.xmax) == pytest.approx(xmax, abs=1e-9)
        assert float(box.ymin) == pytest.approx(ymin, abs=1e-9)
        assert float(box.ymax) == pytest.approx(ymax, abs=1e-9)

    def test_box_is_inside_hull_box(self):
        """The exact box is contained in the control point box."""
        curve = BezierCurve(S_CUBIC)
        box = curve.bounding_box()
        hull = curve.hull_box()
        assert hull.xmin <= box.xmin and box.xmax <= hull.xmax
        assert hull.ymin <= box.ymin and box.ymax <= hull.ymax
        assert box != hull

    @pytest.mark.parametrize("points", [QUARTIC, QUINTIC])
    def test_higher_degree_extrema(self, points):
        """Higher degree boxes contain dense samples and touch the curve at hodograph roots."""
        curve = BezierCurve(points)
        box = curve.bounding_box()
        samples = curve.to_numpy(2000)
        assert samples[:, 1].max() <= float(box.ymax) + 1e-12
        assert samples[:, 1].min() >= float(box.ymin) - 1e-12
        assert float(box.ymax) - samples[:, 1].max() < 1e-4
        assert samples[:, 1].min() - float(box.ymin) < 1e-4
        for t in curve.extrema_parameters()[1:-1]:
            dx, dy = curve.derivative(t)
            assert min(abs(dx), abs(dy)) < PREC.scalar("1e-40")

    @pytest.mark.parametrize("points", [QUARTIC, QUINTIC])
    def test_extrema_are_distinct(self, points):
        """Extremum parameters are strictly increasing, with no near-duplicates."""
        params = BezierCurve(points).extrema_parameters()
        assert params[0] == 0
        assert params[-1] == 1
        for a, b in zip(params, params[1:]):
            assert b - a > PREC.scalar("1e-10")

    def test_root_on_subdivision_boundary_is_exact(self):
        """A hodograph root at t = 0.5 gives the exact box edge."""
        curve = BezierCurve([(0, 0), (1, 0), (2, 10), (3, 0), (4, 0)])
        assert curve.extrema_parameters() == [0, PREC.scalar("0.5"), 1]
        # 6 * 0.5^4 * 10
        assert curve.bounding_box().extent == (0, 0, 4, PREC.scalar("3.75"))
        assert PREC.scalar("0.5") in BezierCurve(QUARTIC).extrema_parameters()

    def test_double_root_is_reported_once(self):
        """(3t - 1)^2 in cubic Bernstein form has one root at 1/3."""
        roots = _bernstein_roots(PREC, [PREC.scalar(c) for c in (1, -1, 0, 4)])
        assert len(roots) == 1
        assert abs(roots[0] - PREC.scalar(1) / 3) < PREC.scalar("1e-19")

    def test_near_root_without_sign_change_is_dropped(self):
        """Lifting (3t - 1)^2 by 1e-30 leaves no root, although coefficients keep changing sign."""
        lift = PREC.scalar("1e-30")
        assert _bernstein_roots(PREC, [PREC.scalar(c) + lift for c in (1, -1, 0, 4)]) == []


###############################################################################
# Subdivision Tests
###############################################################################


class TestSubdivision:
    """Test split, halve and crop."""

    @pytest.mark.parametrize("t", ["0.1", "0.5", "0.731"])
    def test_split_continuity(self, t):
        """Both halves meet at B(t) and keep the degree."""
        curve = BezierCurve(S_CUBIC)
        left, right = curve.split(t)
        assert left.degree == right.degree == 3
        assert left.start == curve.start
        assert right.end == curve.end
        assert left.end == right.start
        assert close(left.end, curve.point(t))

    def test_split_reproduces_curve(self):
        """The halves trace the original curve."""
        curve = BezierCurve(QUINTIC)
        t = PREC.scalar("0.3")
        left, right = curve.split(t)
        for s in ("0.2", "0.6", "0.9"):
            s = PREC.scalar(s)
            assert close(left.point(s), curve.point(s * t), PREC.scalar("1e-60"))
            assert close(right.point(s), curve.point(t + s * (1 - t)), PREC.scalar("1e-60"))

    def test_split_out_of_range_raises(self):
        """Split parameters must lie in [0, 1]."""
        with pytest.raises(InvalidParameterError):
            BezierCurve(CUBIC).split("1.01")
        with pytest.raises(InvalidParameterError):
            BezierCurve(CUBIC).split(-0.1)

    def test_split_at_bounds(self):
        """Splitting at 0 yields a degenerate left half."""
        left, right = BezierCurve(CUBIC).split(0)
        assert all(p == (0, 0) for p in left)
        assert right == BezierCurve(CUBIC)

    def test_halve(self):
        """halve splits at 0.5."""
        curve = BezierCurve(CUBIC)
        assert curve.halve() == curve.split("0.5")

    @pytest.mark.parametrize("t0,t1", [("0", "0.4"), ("0.2", "0.7"), ("0.6", "1")])
    def test_crop_endpoints(self, t0, t1):
        """The cropped curve starts at B(t0) and ends at B(t1)."""
        curve = BezierCurve(S_CUBIC)
        cropped = curve.crop(t0, t1)
        assert cropped.start == curve.point(t0)
        assert cropped.end == curve.point(t1)
        mid = (PREC.scalar(t0) + PREC.scalar(t1)) / 2
        assert close(cropped.point("0.5"), curve.point(mid), PREC.scalar("1e-60"))

    def test_crop_invalid_raises(self):
        """t0 must be smaller than t1 and both inside [0, 1]."""
        curve = BezierCurve(CUBIC)
        with pytest.raises(InvalidParameterError):
            curve.crop("0.5", "0.5")
        with pytest.raises(InvalidParameterError):
            curve.crop("0.7", "0.2")
        with pytest.raises(InvalidParameterError):
            curve.crop("-0.1", "0.5")

    def test_curves_are_not_mutated(self):
        """Subdivision returns new curves and leaves the original untouched."""
        curve = BezierCurve(CUBIC)
        before = curve.points
        curve.split("0.3")
        curve.crop("0.1", "0.2")
        assert curve.points == before


###############################################################################
# Polynomial and degree change Tests
###############################################################################


class TestPolynomial:
    """Test power basis conversion and degree changes."""

    def test_parabola_coefficients(self):
        """y = x^2 written as a quadratic Bezier."""
        xs, ys = BezierCurve([(-1, 1), (0, -1), (1, 1)]).to_polynomial()
        assert xs == (-1, 2, 0)
        assert ys == (1, -4, 4)

    @pytest.mark.parametrize("points", [LINE, QUAD, S_CUBIC, QUINTIC])
    def test_round_trip(self, points):
        """from_polynomial inverts to_polynomial."""
        curve = BezierCurve(points)
        rebuilt = BezierCurve.from_polynomial(*curve.to_polynomial())
        for p, q in zip(curve, rebuilt):
            assert close(p, q, PREC.scalar("1e-60"))

    def test_from_polynomial_validation(self):
        """Coefficient lists must match in length and have at least 2 entries."""
        with pytest.raises(InvalidCurveError):
            BezierCurve.from_polynomial([1, 2], [1, 2, 3])
        with pytest.raises(InvalidCurveError):
            BezierCurve.from_polynomial([1], [1])

    def test_elevate_keeps_shape(self):
        """Degree elevation adds a control point and keeps every curve point."""
        curve = BezierCurve(S_CUBIC)
        elevated = curve.elevate()
        assert elevated.degree == 4
        for t in ("0.1", "0.5", "0.8"):
            assert close(curve.point(t), elevated.point(t), PREC.scalar("1e-60"))

    def test_reduce_degree(self):
        """An elevated curve reduces back; a genuine cubic does not."""
        curve = BezierCurve(S_CUBIC)
        reduced = curve.elevate().reduce_degree()
        assert reduced is not None
        assert reduced.degree == 3
        for p, q in zip(reduced, curve):
            assert close(p, q, PREC.scalar("1e-60"))
        assert curve.reduce_degree() is None
        assert BezierCurve(LINE).reduce_degree() is None


###############################################################################
# Lengths and straightness Tests
###############################################################################


class TestStraightness:
    """Test chord, control polygon and straightness helpers."""

    def test_chord_and_polygon_length(self):
        """Chord and control polygon lengths of simple curves."""
        assert BezierCurve(LINE).chord_length() == 5
        assert BezierCurve(LINE).control_polygon_length() == 5
        assert BezierCurve([(0, 0), (0, 3), (4, 3)]).control_polygon_length() == 7

    def test_collinear_cubic_has_zero_deviation(self):
        """Exactly collinear control points deviate zero from the chord."""
        curve = BezierCurve([(0, 0), (1, 1), (2, 2), (3, 3)])
        assert curve.chord_deviation() == 0
        assert curve.is_straight()

    def test_collinear_cubic_general_direction(self):
        """Collinear control points in any direction deviate only by rounding."""
        curve = BezierCurve([(0, 0), ("1.5", 2), (3, 4), (6, 8)])
        assert curve.chord_deviation() < TINY
        assert curve.is_straight()

    def test_curved_cubic_is_not_straight(self):
        """The arch deviates by its control point height."""
        curve = BezierCurve(CUBIC)
        assert curve.chord_deviation() == 100
        assert not curve.is_straight()
        assert curve.is_straight(tolerance=100)

    def test_closed_chord_uses_distance_from_start(self):
        """A curve ending at its start measures distance from the start point."""
        loop = BezierCurve([(0, 0), (0, 10), (10, 10), (0, 0)])
        assert loop.chord_deviation() == GeomMath.distance(PREC, (0, 0), PREC.point((10, 10)))


###############################################################################
# Display boundary Tests
###############################################################################


class TestToNumpy:
    """Test the float64 polyline export."""

    def test_shape_and_endpoints(self):
        """steps + 1 rows of (x, y) with exact end points."""
        polyline = BezierCurve(CUBIC).to_numpy(10)
        assert polyline.shape == (11, 2)
        assert polyline.dtype == np.float64
        assert np.allclose(polyline[0], [0.0, 0.0])
        assert np.allclose(polyline[-1], [100.0, 0.0])
        assert np.allclose(polyline[5], [50.0, 75.0])

    def test_matches_svgpathtools(self):
        """Polyline samples agree with svgpathtools."""
        polyline = BezierCurve(S_CUBIC).to_numpy(8)
        reference = CubicBezier(*to_complex(S_CUBIC))
        expected = np.array([[reference.point(i / 8).real, reference.point(i / 8).imag] for i in range(9)])
        assert np.allclose(polyline, expected, atol=1e-9)

    def test_invalid_steps(self):
        """At least one step is required."""
        with pytest.raises(InvalidParameterError):
            BezierCurve(CUBIC).to_numpy(0)
