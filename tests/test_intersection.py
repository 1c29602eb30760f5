"""Test module for hpgeom.intersection

The tests are run using pytest.
These tests ensure that line/line, curve/line, curve/curve, self and path
intersections are found, refined and verified. shapely and numpy serve as
independent float64 references.
"""

import logging

import numpy as np
import pytest
from shapely.geometry import LineString

from hpgeom.bezier import BezierCurve
from hpgeom.common import IntersectionStatus, InvalidCurveError, InvalidInputError
from hpgeom.geom import GeomMath
from hpgeom.intersection import (
    DEFAULT_INTERSECTION_OPTIONS,
    FAST_INTERSECTION_OPTIONS,
    IntersectionEngine,
    IntersectionOptions,
)
from hpgeom.numeric import DEFAULT_PRECISION, Precision
from hpgeom.results import IntersectionRecord

PREC = Precision(40)
OPTIONS = IntersectionOptions(precision=PREC, tolerance="1e-20")
ENGINE = IntersectionEngine(OPTIONS)
DEFAULT_ENGINE = IntersectionEngine()

ARCH = [(0, 0), ("0.5", 2), ("1.5", 2), (2, 0)]
HORIZONTAL = [(-1, 1), (3, 1)]
CURVE1 = [(0, 0), (1, 2), (2, 2), (3, 0)]
CURVE2 = [(0, 1), (1, -1), (2, 3), (3, 1)]
LOOP = [(0, 0), (150, 100), (-50, 100), (100, 0)]
V_PATH = [[(0, 0), (2, 2)], [(2, 2), (4, 0)]]
BOW_TIE = [[(0, 0), (2, 2)], [(2, 2), (2, 0)], [(2, 0), (0, 2)]]
TRIANGLE = [[(0, 0), (4, 0)], [(4, 0), (2, 3)], [(2, 3), (0, 0)]]


def s(value):
    """Scalar at the test precision."""
    return PREC.scalar(value)


def gap(curve1, curve2, record):
    """Distance between B1(t1) and B2(t2) of a record."""
    a = BezierCurve(curve1, PREC)
    b = BezierCurve(curve2, PREC)
    return GeomMath.distance(PREC, a.point(record.t1), b.point(record.t2))


###############################################################################
# Options Tests
###############################################################################


class TestIntersectionOptions:
    """Test the frozen options and their presets."""

    def test_defaults(self):
        """Default options use 80 digits and a 1e-30 tolerance."""
        assert DEFAULT_INTERSECTION_OPTIONS.precision == DEFAULT_PRECISION
        assert DEFAULT_INTERSECTION_OPTIONS.tolerance == "1e-30"
        assert DEFAULT_INTERSECTION_OPTIONS.max_depth == 50
        assert FAST_INTERSECTION_OPTIONS.precision.digits == 40

    def test_dict_round_trip(self):
        """to_dict / from_dict round trip."""
        assert IntersectionOptions.from_dict(OPTIONS.to_dict()) == OPTIONS
        assert IntersectionOptions.from_dict({}) == DEFAULT_INTERSECTION_OPTIONS

    def test_invalid_values(self):
        """Non-positive values raise InvalidInputError."""
        with pytest.raises(InvalidInputError):
            IntersectionOptions(tolerance="0")
        with pytest.raises(InvalidInputError):
            IntersectionOptions(max_depth=0)
        with pytest.raises(InvalidInputError):
            IntersectionOptions(verify_factor=True)
        with pytest.raises(InvalidInputError):
            IntersectionOptions(min_separation="-0.01")

    def test_too_fine_tolerance_warns(self, caplog):
        """A tolerance below the precision floor logs a warning."""
        with caplog.at_level(logging.WARNING, logger="hpgeom.numeric"):
            IntersectionOptions(precision=Precision(20))
        assert "finer than" in caplog.text


###############################################################################
# Line / line Tests
###############################################################################


class TestLineLine:
    """Test the closed form line/line intersection."""

    def test_crossing_diagonals(self):
        """The diagonals of the square meet exactly at (1, 1)."""
        records = DEFAULT_ENGINE.line_line([(0, 0), (2, 2)], [(0, 2), (2, 0)])
        assert len(records) == 1
        record = records[0]
        assert record.t1 == DEFAULT_PRECISION.scalar("0.5")
        assert record.t2 == DEFAULT_PRECISION.scalar("0.5")
        assert record.point == (1, 1)
        assert record.status is IntersectionStatus.EXACT
        assert record.error == 0

    def test_matches_shapely(self):
        """The crossing point agrees with shapely."""
        line1 = [(0, 0), (7, 3)]
        line2 = [(1, 5), (6, -2)]
        expected = LineString(line1).intersection(LineString(line2))
        records = ENGINE.line_line(line1, line2)
        assert len(records) == 1
        assert float(records[0].point[0]) == pytest.approx(expected.x, abs=1e-12)
        assert float(records[0].point[1]) == pytest.approx(expected.y, abs=1e-12)
        assert records[0].t1 == s("0.5")

    def test_parallel_and_coincident(self):
        """Parallel and coincident segments report no intersection."""
        assert ENGINE.line_line([(0, 0), (100, 0)], [(0, 5), (100, 5)]) == []
        assert ENGINE.line_line([(0, 0), (10, 0)], [(5, 0), (15, 0)]) == []

    def test_outside_segments(self):
        """Lines crossing outside the segment ranges report nothing."""
        assert ENGINE.line_line([(0, 0), (1, 1)], [(3, 0), (4, -1)]) == []

    def test_shared_end_point(self):
        """Touching end points count as an intersection at t1 = 1, t2 = 0."""
        records = ENGINE.line_line([(0, 0), (1, 1)], [(1, 1), (2, 0)])
        assert len(records) == 1
        assert records[0].t1 == 1
        assert records[0].t2 == 0

    def test_requires_lines(self):
        """A curve with more than 2 control points is rejected."""
        with pytest.raises(InvalidCurveError):
            ENGINE.line_line(ARCH, HORIZONTAL)

    def test_verify(self):
        """The closed form passes its verification at full precision."""
        check = DEFAULT_ENGINE.verify_line_line([(0, 0), (7, 3)], [(1, 5), (6, -2)])
        assert check.valid, check.errors
        assert check.details["count"] == 1


###############################################################################
# Curve / line Tests
###############################################################################


class TestCurveLine:
    """Test the sampled sign change curve/line intersection."""

    def test_arch_crosses_horizontal_twice(self):
        """6t(1 - t) = 1 has the roots (1 +- 1/sqrt(3)) / 2."""
        records = ENGINE.curve_line(ARCH, HORIZONTAL)
        assert len(records) == 2
        expected = sorted(np.roots([-6, 6, -1]).real)
        for record, root in zip(records, expected):
            assert float(record.t1) == pytest.approx(root, abs=1e-12)
            assert record.status is IntersectionStatus.REFINED
            assert abs(record.point[1] - 1) < s("1e-20")
            assert abs(record.t2 - (record.point[0] + 1) / 4) < s("1e-20")

    def test_tangent_touch_at_sample(self):
        """A touch exactly at a sample parameter is reported as EXACT."""
        records = ENGINE.curve_line([(0, 0), (1, 2), (2, 0)], HORIZONTAL)
        assert len(records) == 1
        assert records[0].t1 == s("0.5")
        assert records[0].status is IntersectionStatus.EXACT

    def test_line_range_is_respected(self):
        """Only crossings inside the line segment are kept."""
        records = ENGINE.curve_line(ARCH, [(-1, 1), (1, 1)])
        assert len(records) == 1
        assert records[0].t1 < s("0.5")

    def test_miss(self):
        """A line above the curve reports nothing."""
        assert ENGINE.curve_line(ARCH, [(-1, 5), (3, 5)]) == []

    def test_degenerate_line(self):
        """A zero-length line reports nothing."""
        assert ENGINE.curve_line(ARCH, [(1, 1), (1, 1)]) == []

    def test_requires_line(self):
        """The second argument must be a 2-point segment."""
        with pytest.raises(InvalidCurveError):
            ENGINE.curve_line(ARCH, CURVE1)

    def test_verify(self):
        """Found intersections pass the curve/line verification."""
        check = ENGINE.verify_curve_line(ARCH, HORIZONTAL)
        assert check.valid, check.errors
        assert check.details["count"] == 2


###############################################################################
# Curve / curve Tests
###############################################################################


class TestCurveCurve:
    """Test subdivision plus Newton curve/curve intersection."""

    def test_two_crossings(self):
        """Both curves have x = 3t, so t1 = t2 at the roots of 12t(1 - t)^2 = 1."""
        records = ENGINE.curve_curve(CURVE1, CURVE2)
        assert len(records) == 2
        expected = sorted(r.real for r in np.roots([12, -24, 12, -1]) if abs(r.imag) < 1e-12 and 0 < r.real < 1)
        for record, root in zip(records, expected):
            assert float(record.t1) == pytest.approx(root, abs=1e-12)
            assert abs(record.t1 - record.t2) < s("1e-19")
            assert record.status is IntersectionStatus.REFINED
            assert gap(CURVE1, CURVE2, record) < s("1e-18")

    def test_disjoint(self):
        """Curves with disjoint bounding boxes do not intersect."""
        records = ENGINE.curve_curve(
            [(0, 0), (30, 100), (70, 100), (100, 0)], [(200, 0), (230, 100), (270, 100), (300, 0)]
        )
        assert records == []

    def test_mixed_degrees(self):
        """A quadratic crosses the second cubic twice."""
        quad = [(0, 0), ("1.5", 3), (3, 0)]
        records = ENGINE.curve_curve(quad, CURVE2)
        assert len(records) == 2
        for record in records:
            assert gap(quad, CURVE2, record) < s("1e-18")

    def test_max_depth_fallback_is_approximate(self):
        """Refinement failing at max depth yields low-confidence records."""
        engine = IntersectionEngine(
            IntersectionOptions(precision=PREC, tolerance="1e-20", max_depth=3, max_newton_iterations=1)
        )
        records = engine.curve_curve(CURVE1, CURVE2)
        assert records
        assert all(r.status is IntersectionStatus.APPROXIMATE for r in records)
        assert not any(r.converged for r in records)

    def test_verify(self):
        """Found intersections pass the curve/curve verification."""
        check = ENGINE.verify_curve_curve(CURVE1, CURVE2)
        assert check.valid, check.errors
        assert len(check.details["perturbation"]) == 2

    def test_verify_rejects_wrong_record(self):
        """A record at the wrong parameters fails verification."""
        bogus = IntersectionRecord(s("0.5"), s("0.5"), PREC.point(("1.5", "1.5")))
        check = ENGINE.verify_curve_curve(CURVE1, CURVE2, [bogus])
        assert not check.valid


###############################################################################
# Self-intersection Tests
###############################################################################


class TestSelfIntersection:
    """Test self-intersections of single curves."""

    def test_loop(self):
        """The loop crosses itself at t = (7 -+ sqrt(21)) / 14."""
        records = ENGINE.self_intersections(LOOP)
        assert len(records) == 1
        record = records[0]
        root = PREC.sqrt(s(21))
        assert abs(record.t1 - (7 - root) / 14) < s("1e-15")
        assert abs(record.t2 - (7 + root) / 14) < s("1e-15")
        assert record.t1 < record.t2
        assert record.status is IntersectionStatus.REFINED
        assert gap(LOOP, LOOP, record) < s("1e-18")

    def test_no_loop(self):
        """A simple arch has no self-intersection."""
        assert ENGINE.self_intersections([(0, 0), (30, 100), (70, 100), (100, 0)]) == []

    def test_needs_four_points(self):
        """Lines and quadratics cannot cross themselves."""
        assert ENGINE.self_intersections([(0, 0), (50, 100), (100, 0)]) == []
        assert ENGINE.self_intersections([(0, 0), (1, 1)]) == []

    def test_verify(self):
        """The loop passes the self-intersection verification."""
        check = ENGINE.verify_self_intersection(LOOP)
        assert check.valid, check.errors
        assert check.details["count"] == 1

    def test_verify_rejects_unordered_record(self):
        """Records need t1 < t2 with the minimum separation."""
        bogus = IntersectionRecord(s("0.5"), s("0.5"), BezierCurve(LOOP, PREC).point("0.5"))
        assert not ENGINE.verify_self_intersection(LOOP, [bogus]).valid


###############################################################################
# Path Tests
###############################################################################


class TestPaths:
    """Test path/path and path self-intersections."""

    def test_path_path(self):
        """The V crosses y = 1 once on each segment."""
        records = ENGINE.path_path(V_PATH, [HORIZONTAL])
        assert len(records) == 2
        assert [(r.segment1, r.segment2) for r in records] == [(0, 0), (1, 0)]
        assert records[0].point == (1, 1)
        assert records[1].point == (3, 1)

    def test_path_path_mixed_segments(self):
        """A line segment against a curve segment keeps the parameter order."""
        records = ENGINE.path_path([HORIZONTAL], [ARCH])
        assert len(records) == 2
        for record in records:
            assert gap(HORIZONTAL, ARCH, record) < s("1e-18")
        assert ENGINE.verify_path_path([HORIZONTAL], [ARCH], records).valid

    def test_path_self_bow_tie(self):
        """The open bow tie crosses itself between its first and last segment."""
        records = ENGINE.path_self(BOW_TIE)
        assert len(records) == 1
        assert (records[0].segment1, records[0].segment2) == (0, 2)
        assert records[0].point == (1, 1)

    def test_path_self_closed_triangle(self):
        """A closed path does not report the shared start/end point."""
        assert ENGINE.path_self(TRIANGLE) == []

    def test_path_self_forced_open(self):
        """Treated as open, the first and last segment touch at the start point."""
        records = ENGINE.path_self(TRIANGLE, closed=False)
        assert len(records) == 1
        assert (records[0].segment1, records[0].segment2) == (0, 2)

    def test_path_self_looped_segment(self):
        """A looped cubic segment is reported against itself."""
        records = ENGINE.path_self([LOOP])
        assert len(records) == 1
        assert (records[0].segment1, records[0].segment2) == (0, 0)

    def test_verify_path_self_flags_adjacent(self):
        """Adjacent segment pairs are not valid self-intersections."""
        record = IntersectionRecord(s(1), s(0), PREC.point((2, 2))).with_segments(0, 1)
        check = ENGINE.verify_path_self(BOW_TIE, [record])
        assert not check.valid
        assert ENGINE.verify_path_self(BOW_TIE).valid

    def test_verify_path_path_invalid_index(self):
        """Segment indices outside the paths fail verification."""
        record = IntersectionRecord(s(0), s(0), PREC.point((0, 0))).with_segments(5, 0)
        assert not ENGINE.verify_path_path(V_PATH, [HORIZONTAL], [record]).valid

    def test_empty_path(self):
        """Empty paths raise InvalidInputError."""
        with pytest.raises(InvalidInputError):
            ENGINE.path_path([], [HORIZONTAL])


###############################################################################
# Self test
###############################################################################


class TestSelfTest:
    """Test the built-in canonical cases."""

    def test_self_test_passes(self):
        """Every canonical case passes at the default precision."""
        report = DEFAULT_ENGINE.self_test()
        assert report.valid, report.summary()
        assert len(report) == 8

    def test_fast_preset_self_test(self):
        """The fast preset passes the canonical cases too."""
        report = IntersectionEngine(FAST_INTERSECTION_OPTIONS).self_test()
        assert report.valid, report.summary()
