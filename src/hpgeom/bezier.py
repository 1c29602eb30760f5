"""Bezier curve evaluation and subdivision in arbitrary precision.

``BezierCurve`` is an immutable value object holding normalized control
points and the Precision they were converted at. It supports any degree
>= 1; every transformation (split, crop, elevate, ...) returns new curves.
"""

from __future__ import annotations

import logging
from math import comb
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np
from mpmath import mpf
from numpy.typing import NDArray

from hpgeom.common import (
    CurveLike,
    InvalidCurveError,
    InvalidInputError,
    InvalidParameterError,
    Point2D,
    ScalarLike,
)
from hpgeom.consts import (
    QUADRATIC_LEADING_EPS,
    ROOT_MAX_DEPTH,
    ROOT_NEWTON_ITERATIONS,
    ROOT_WIDTH,
    TANGENT_EPS,
)
from hpgeom.geom import BBox, GeomMath
from hpgeom.numeric import DEFAULT_PRECISION, Precision

logger = logging.getLogger(__name__)


###############################################################################
# Scalar Bernstein helpers
###############################################################################


def _casteljau_scalar(coefficients: Sequence[mpf], t: mpf) -> mpf:
    """Evaluate a 1D Bernstein polynomial with de Casteljau."""
    values = list(coefficients)
    mt = 1 - t
    for _ in range(1, len(values)):
        values = [mt * values[i] + t * values[i + 1] for i in range(len(values) - 1)]
    return values[0]


def _halve_scalar(coefficients: Sequence[mpf]) -> Tuple[List[mpf], List[mpf]]:
    """Split a 1D Bernstein polynomial at 0.5 into left and right coefficients."""
    values = list(coefficients)
    left = [values[0]]
    right = [values[-1]]
    for _ in range(1, len(coefficients)):
        values = [(values[i] + values[i + 1]) / 2 for i in range(len(values) - 1)]
        left.append(values[0])
        right.append(values[-1])
    right.reverse()
    return left, right


def _bernstein_roots(precision: Precision, coefficients: Sequence[mpf]) -> List[mpf]:
    """Real roots in [0, 1] of a 1D Bernstein polynomial of any degree.

    Degrees 1 and 2 are solved in closed form. Higher degrees are isolated by
    subdivision (variation diminishing property: no sign change in the
    coefficients means no root inside the window) and polished by Newton
    iterations. A coefficient that is exactly zero at a window end makes that
    end an exact root. Polished candidates whose window does not change sign
    and whose residual is not near zero are dropped, and roots closer than
    the isolation width are merged.
    """
    ctx = precision.ctx
    degree = len(coefficients) - 1
    if degree < 1 or all(c == 0 for c in coefficients):
        return []

    roots: List[mpf] = []
    if degree == 1:
        d0, d1 = coefficients
        if d0 != d1:
            t = d0 / (d0 - d1)
            if 0 <= t <= 1:
                roots.append(t)
        return roots

    if degree == 2:
        d0, d1, d2 = coefficients
        a = d0 - 2 * d1 + d2
        b = 2 * (d1 - d0)
        c = d0
        if ctx.fabs(a) < precision.scalar(QUADRATIC_LEADING_EPS):
            if b != 0:
                roots.append(-c / b)
        else:
            discriminant = b * b - 4 * a * c
            if discriminant == 0:
                roots.append(-b / (2 * a))
            elif discriminant > 0:
                root = ctx.sqrt(discriminant)
                roots.append((-b + root) / (2 * a))
                roots.append((-b - root) / (2 * a))
        return sorted(t for t in roots if 0 <= t <= 1)

    width_limit = precision.scalar(ROOT_WIDTH)
    scale = max(ctx.fabs(c) for c in coefficients)
    residual_limit = scale * ctx.mpf(10) ** (-(precision.digits // 2))
    derivative = [degree * (coefficients[i + 1] - coefficients[i]) for i in range(degree)]
    stack = [(list(coefficients), precision.zero, precision.one, 0)]
    while stack:
        coeffs, lo, hi, depth = stack.pop()
        if coeffs[0] == 0:
            roots.append(lo)
        if coeffs[-1] == 0:
            roots.append(hi)
        if not (any(c > 0 for c in coeffs) and any(c < 0 for c in coeffs)):
            continue
        if hi - lo < width_limit or depth >= ROOT_MAX_DEPTH:
            t = _polish_root(coefficients, derivative, (lo + hi) / 2, lo, hi)
            if coeffs[0] * coeffs[-1] < 0 or ctx.fabs(_casteljau_scalar(coefficients, t)) <= residual_limit:
                roots.append(t)
            else:
                logger.debug("bernstein roots: no root in window [%s, %s]", lo, hi)
            continue
        left, right = _halve_scalar(coeffs)
        mid = (lo + hi) / 2
        stack.append((right, mid, hi, depth + 1))
        stack.append((left, lo, mid, depth + 1))
    return _merge_roots(ctx, coefficients, roots, width_limit)


def _polish_root(
    coefficients: Sequence[mpf], derivative: Sequence[mpf], t: mpf, lo: mpf, hi: mpf
) -> mpf:
    """Refine a bracketed root with Newton steps clamped into [lo, hi]."""
    for _ in range(ROOT_NEWTON_ITERATIONS):
        slope = _casteljau_scalar(derivative, t)
        if slope == 0:
            break
        t_new = min(max(t - _casteljau_scalar(coefficients, t) / slope, lo), hi)
        if t_new == t:
            break
        t = t_new
    return t


def _merge_roots(ctx, coefficients: Sequence[mpf], roots: List[mpf], width: mpf) -> List[mpf]:
    """Sorted roots; of two roots closer than ``width`` the one with the smaller residual is kept."""
    merged: List[mpf] = []
    for t in sorted(roots):
        if merged and t - merged[-1] < width:
            if ctx.fabs(_casteljau_scalar(coefficients, t)) < ctx.fabs(_casteljau_scalar(coefficients, merged[-1])):
                merged[-1] = t
            continue
        merged.append(t)
    return merged


###############################################################################
# BezierCurve
###############################################################################
class BezierCurve:
    """Immutable Bezier curve of any degree >= 1 with Scalar control points.

    Evaluation operations (point, derivative, tangent, normal, curvature)
    clamp their parameter into [0, 1]. Split and crop require a parameter
    inside [0, 1] and raise InvalidParameterError otherwise.
    """

    __slots__ = ("_points", "_precision", "_derivatives")

    def __init__(self, points: Sequence[Sequence[ScalarLike]], precision: Precision = DEFAULT_PRECISION):
        """Initialize the curve from control points.

        Args:
            points: Ordered control points as (x, y) pairs of numbers, decimal strings
                or Scalars.
            precision: Working precision of all computations on this curve.

        Raises:
            InvalidCurveError: if fewer than 2 control points are given or a point is malformed.
        """
        if isinstance(points, (str, bytes)) or not hasattr(points, "__len__"):
            raise InvalidCurveError(f"Control points must be a sequence of (x, y) pairs, got {points!r}")
        if len(points) < 2:
            raise InvalidCurveError(f"A Bezier curve needs at least 2 control points, got {len(points)}")
        try:
            normalized = precision.points(points)
        except InvalidInputError as exc:
            raise InvalidCurveError(f"Malformed control point: {exc}") from exc
        self._points: Tuple[Point2D, ...] = normalized
        self._precision = precision
        self._derivatives: Dict[int, Tuple[Point2D, ...]] = {}

    @classmethod
    def coerce(cls, curve: CurveLike, precision: Precision = DEFAULT_PRECISION) -> BezierCurve:
        """Return ``curve`` as a BezierCurve at ``precision`` (no copy if it already is one)."""
        if isinstance(curve, BezierCurve):
            if curve.precision == precision:
                return curve
            return cls(curve.points, precision)
        return cls(curve, precision)

    @classmethod
    def from_polynomial(
        cls,
        x_coefficients: Sequence[ScalarLike],
        y_coefficients: Sequence[ScalarLike],
        precision: Precision = DEFAULT_PRECISION,
    ) -> BezierCurve:
        """Create a curve from power-basis coefficients (lowest order first).

        B(t) = sum_j c_j t^j  is converted with  P_i = sum_{j<=i} C(i, j) / C(n, j) * c_j.

        Raises:
            InvalidCurveError: if the coefficient lists differ in length or have fewer than 2 entries.
        """
        if len(x_coefficients) != len(y_coefficients):
            raise InvalidCurveError(
                f"Coefficient lists differ in length: {len(x_coefficients)} vs {len(y_coefficients)}"
            )
        if len(x_coefficients) < 2:
            raise InvalidCurveError(f"A Bezier curve needs at least 2 coefficients, got {len(x_coefficients)}")
        ctx = precision.ctx
        xs = [precision.scalar(c) for c in x_coefficients]
        ys = [precision.scalar(c) for c in y_coefficients]
        degree = len(xs) - 1
        points = []
        for i in range(degree + 1):
            x = precision.zero
            y = precision.zero
            for j in range(i + 1):
                factor = ctx.mpf(comb(i, j)) / comb(degree, j)
                x += factor * xs[j]
                y += factor * ys[j]
            points.append((x, y))
        return cls(points, precision)

    ###########################################################################
    # Value object protocol
    ###########################################################################

    @property
    def points(self) -> Tuple[Point2D, ...]:
        """Tuple[Point2D, ...]: the control points."""
        return self._points

    @property
    def precision(self) -> Precision:
        """Precision: working precision of the curve."""
        return self._precision

    @property
    def degree(self) -> int:
        """int: number of control points minus one."""
        return len(self._points) - 1

    @property
    def start(self) -> Point2D:
        """Point2D: the first control point."""
        return self._points[0]

    @property
    def end(self) -> Point2D:
        """Point2D: the last control point."""
        return self._points[-1]

    def __len__(self) -> int:
        return len(self._points)

    def __iter__(self) -> Iterator[Point2D]:
        return iter(self._points)

    def __getitem__(self, index: int) -> Point2D:
        return self._points[index]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BezierCurve):
            return NotImplemented
        return self._points == other._points and self._precision == other._precision

    def __hash__(self) -> int:
        return hash((self._points, self._precision))

    def __repr__(self) -> str:
        coords = ", ".join(f"({self._precision.format(x, 15)}, {self._precision.format(y, 15)})" for x, y in self)
        return f"BezierCurve(degree={self.degree}, points=[{coords}], digits={self._precision.digits})"

    ###########################################################################
    # Parameters
    ###########################################################################

    def _param(self, t: ScalarLike) -> mpf:
        """Normalize t and clamp it into [0, 1]."""
        value = self._precision.scalar(t)
        if value < 0:
            return self._precision.zero
        if value > 1:
            return self._precision.one
        return value

    def _strict_param(self, t: ScalarLike, operation: str) -> mpf:
        """Normalize t and require it to lie in [0, 1]."""
        value = self._precision.scalar(t)
        if value < 0 or value > 1:
            raise InvalidParameterError(f"{operation}: parameter t={t} is outside [0, 1]")
        return value

    ###########################################################################
    # Evaluation
    ###########################################################################

    @staticmethod
    def _casteljau(points: Sequence[Point2D], t: mpf) -> Point2D:
        pts = list(points)
        mt = 1 - t
        for _ in range(1, len(pts)):
            pts = [
                (mt * pts[i][0] + t * pts[i + 1][0], mt * pts[i][1] + t * pts[i + 1][1])
                for i in range(len(pts) - 1)
            ]
        return pts[0]

    def point(self, t: ScalarLike) -> Point2D:
        """
        Evaluate the curve at t with de Casteljau's algorithm.

        Args:
            t: Curve parameter, clamped into [0, 1].

        Returns:
            Point2D: the point B(t); exactly the first/last control point at t=0/t=1.
        """
        t = self._param(t)
        if t == 0:
            return self._points[0]
        if t == 1:
            return self._points[-1]
        return self._casteljau(self._points, t)

    def point_bernstein(self, t: ScalarLike) -> Point2D:
        """Evaluate the curve at t via its power-basis form and Horner's scheme.

        Independent of ``point`` and used to cross-check it.
        """
        t = self._param(t)
        xs, ys = self.to_polynomial()
        x = xs[-1]
        y = ys[-1]
        for j in range(len(xs) - 2, -1, -1):
            x = x * t + xs[j]
            y = y * t + ys[j]
        return (x, y)

    def to_polynomial(self) -> Tuple[Tuple[mpf, ...], Tuple[mpf, ...]]:
        """Power-basis coefficients (lowest order first) for x(t) and y(t).

        c_j = C(n, j) * sum_{i<=j} (-1)^(j-i) C(j, i) P_i
        """
        n = self.degree
        xs = []
        ys = []
        for j in range(n + 1):
            x = self._precision.zero
            y = self._precision.zero
            for i in range(j + 1):
                factor = comb(j, i) * (-1 if (j - i) % 2 else 1)
                x += factor * self._points[i][0]
                y += factor * self._points[i][1]
            xs.append(comb(n, j) * x)
            ys.append(comb(n, j) * y)
        return tuple(xs), tuple(ys)

    ###########################################################################
    # Derivatives
    ###########################################################################

    def derivative_points(self, order: int = 1) -> Tuple[Point2D, ...]:
        """
        Control points of the order-th derivative curve (repeated hodograph).

        A degree-n curve's derivative has control points n * (P[i+1] - P[i]).
        For order > degree a single zero point is returned.

        Raises:
            InvalidParameterError: if order is not an int >= 1.
        """
        if isinstance(order, bool) or not isinstance(order, int) or order < 1:
            raise InvalidParameterError(f"Derivative order must be an int >= 1, got {order!r}")
        if order > self.degree:
            return ((self._precision.zero, self._precision.zero),)
        cached = self._derivatives.get(order)
        if cached is not None:
            return cached
        points = self._points if order == 1 else self.derivative_points(order - 1)
        m = len(points) - 1
        result = tuple(
            (m * (points[i + 1][0] - points[i][0]), m * (points[i + 1][1] - points[i][1])) for i in range(m)
        )
        self._derivatives[order] = result
        return result

    def hodograph(self) -> BezierCurve:
        """The first derivative as a curve of one lower degree.

        Raises:
            InvalidCurveError: for a line, whose hodograph is a single constant point.
        """
        if self.degree < 2:
            raise InvalidCurveError("The hodograph of a line segment is a constant, not a curve")
        return BezierCurve(self.derivative_points(1), self._precision)

    def derivative(self, t: ScalarLike, order: int = 1) -> Point2D:
        """
        Evaluate the order-th derivative vector at t.

        Args:
            t: Curve parameter, clamped into [0, 1].
            order: Derivative order >= 1; orders above the degree give (0, 0).

        Returns:
            Point2D: the derivative vector
        """
        t = self._param(t)
        points = self.derivative_points(order)
        if len(points) == 1:
            return points[0]
        return self._casteljau(points, t)

    def tangent(self, t: ScalarLike) -> Point2D:
        """Unit tangent at t.

        At a cusp (vanishing first derivative) the second derivative gives the
        direction, then the chord, then (1, 0) for a fully degenerate curve.
        """
        prec = self._precision
        eps = prec.scalar(TANGENT_EPS)
        t = self._param(t)
        direction = self.derivative(t, 1)
        length = GeomMath.norm(prec, direction)
        if length < eps:
            direction = self.derivative(t, 2)
            length = GeomMath.norm(prec, direction)
        if length < eps:
            direction = GeomMath.sub(self.end, self.start)
            length = GeomMath.norm(prec, direction)
        if length < eps:
            logger.debug("tangent: degenerate curve, using (1, 0)")
            return (prec.one, prec.zero)
        return (direction[0] / length, direction[1] / length)

    def normal(self, t: ScalarLike) -> Point2D:
        """Unit normal at t: the tangent rotated by +90 degrees."""
        return GeomMath.perpendicular(self.tangent(t))

    def curvature(self, t: ScalarLike) -> mpf:
        """
        Signed curvature k = (x'y'' - y'x'') / (x'^2 + y'^2)^1.5 at t.

        Returns zero where the first derivative vanishes.
        """
        prec = self._precision
        t = self._param(t)
        d1 = self.derivative(t, 1)
        speed_squared = GeomMath.norm_squared(d1)
        if prec.sqrt(speed_squared) < prec.scalar(TANGENT_EPS):
            return prec.zero
        d2 = self.derivative(t, 2)
        return GeomMath.cross(d1, d2) / (speed_squared * prec.sqrt(speed_squared))

    def radius_of_curvature(self, t: ScalarLike) -> mpf:
        """1 / |k| at t, positive infinity where the curvature is zero."""
        k = self.curvature(t)
        if k == 0:
            return self._precision.inf
        return 1 / self._precision.fabs(k)

    ###########################################################################
    # Bounding boxes
    ###########################################################################

    def extrema_parameters(self) -> List[mpf]:
        """Sorted distinct parameters of t=0, t=1 and every axis extremum in between."""
        hodo = self.derivative_points(1)
        params = [self._precision.zero, self._precision.one]
        if self.degree >= 2:
            params.extend(_bernstein_roots(self._precision, [p[0] for p in hodo]))
            params.extend(_bernstein_roots(self._precision, [p[1] for p in hodo]))
        distinct: List[mpf] = []
        for t in sorted(params):
            if not distinct or t != distinct[-1]:
                distinct.append(t)
        return distinct

    def bounding_box(self) -> BBox:
        """Exact axis-aligned bounding box from the real roots of the hodograph."""
        return BBox.from_points(self.point(t) for t in self.extrema_parameters())

    def hull_box(self) -> BBox:
        """Box of the control points; always contains the curve (convex hull property)."""
        return BBox.from_points(self._points)

    ###########################################################################
    # Subdivision
    ###########################################################################

    def _split_points(self, t: mpf) -> Tuple[Tuple[Point2D, ...], Tuple[Point2D, ...]]:
        pts = list(self._points)
        mt = 1 - t
        left = [pts[0]]
        right = [pts[-1]]
        for _ in range(1, len(pts)):
            pts = [
                (mt * pts[i][0] + t * pts[i + 1][0], mt * pts[i][1] + t * pts[i + 1][1])
                for i in range(len(pts) - 1)
            ]
            left.append(pts[0])
            right.append(pts[-1])
        right.reverse()
        return tuple(left), tuple(right)

    def split(self, t: ScalarLike) -> Tuple[BezierCurve, BezierCurve]:
        """
        Split the curve at t with de Casteljau subdivision.

        Args:
            t: Split parameter in [0, 1].

        Returns:
            Tuple[BezierCurve, BezierCurve]: left (0..t) and right (t..1) curves of the same
            degree; the left end point and the right start point are the same point B(t).

        Raises:
            InvalidParameterError: if t is outside [0, 1].
        """
        t = self._strict_param(t, "split")
        left, right = self._split_points(t)
        return BezierCurve(left, self._precision), BezierCurve(right, self._precision)

    def halve(self) -> Tuple[BezierCurve, BezierCurve]:
        """Split the curve at t=0.5."""
        return self.split(self._precision.scalar("0.5"))

    def crop(self, t0: ScalarLike, t1: ScalarLike) -> BezierCurve:
        """
        Extract the sub-curve between t0 and t1.

        The curve is split at t1, the left part is split again at t0 / t1 and
        the right part of that is returned. The end points are set to
        ``point(t0)`` and ``point(t1)``.

        Raises:
            InvalidParameterError: if a parameter is outside [0, 1] or t0 >= t1.
        """
        t0 = self._strict_param(t0, "crop")
        t1 = self._strict_param(t1, "crop")
        if t0 >= t1:
            raise InvalidParameterError(f"crop: t0={t0} must be smaller than t1={t1}")
        left, _ = self._split_points(t1)
        if t0 == 0:
            points = list(left)
        else:
            _, right = BezierCurve(left, self._precision)._split_points(t0 / t1)
            points = list(right)
        points[0] = self.point(t0)
        points[-1] = self.point(t1)
        return BezierCurve(points, self._precision)

    ###########################################################################
    # Lengths and straightness
    ###########################################################################

    def chord_length(self) -> mpf:
        """Distance between the first and the last control point."""
        return GeomMath.distance(self._precision, self.start, self.end)

    def control_polygon_length(self) -> mpf:
        """Sum of the lengths of the control polygon edges (upper bound of the arc length)."""
        return GeomMath.polyline_length(self._precision, self._points)

    def chord_deviation(self, samples: int = 16) -> mpf:
        """
        Maximum distance of the interior control points and of sampled curve points from the chord line.

        For a degenerate chord (start == end) the distance from the start point is used.

        Args:
            samples: Number of sub-intervals for the curve samples.

        Raises:
            InvalidParameterError: if samples < 1.
        """
        if samples < 1:
            raise InvalidParameterError(f"chord_deviation: samples must be >= 1, got {samples}")
        prec = self._precision
        chord = GeomMath.sub(self.end, self.start)
        chord_len = GeomMath.norm(prec, chord)
        candidates = list(self._points[1:-1])
        candidates.extend(self.point(prec.scalar(i) / samples) for i in range(1, samples))
        deviation = prec.zero
        for p in candidates:
            offset = GeomMath.sub(p, self.start)
            if chord_len == 0:
                distance = GeomMath.norm(prec, offset)
            else:
                distance = prec.fabs(GeomMath.cross(chord, offset)) / chord_len
            if distance > deviation:
                deviation = distance
        return deviation

    def is_straight(self, tolerance: ScalarLike = "1e-40", samples: int = 16) -> bool:
        """Return True if the curve deviates from its chord line by at most ``tolerance``."""
        return self.chord_deviation(samples) <= self._precision.scalar(tolerance)

    ###########################################################################
    # Degree change
    ###########################################################################

    def elevate(self) -> BezierCurve:
        """Exact degree elevation by one: same curve, one more control point."""
        n1 = self.degree + 1
        pts = self._points
        points = [pts[0]]
        for i in range(1, n1):
            a = self._precision.scalar(i) / n1
            points.append(
                (a * pts[i - 1][0] + (1 - a) * pts[i][0], a * pts[i - 1][1] + (1 - a) * pts[i][1])
            )
        points.append(pts[-1])
        return BezierCurve(points, self._precision)

    def reduce_degree(self, tolerance: ScalarLike = "1e-40", samples: int = 16) -> Optional[BezierCurve]:
        """
        Exact degree reduction by one.

        The candidate is built by inverting degree elevation from the start and
        accepted only if it reproduces this curve at sampled parameters within
        ``tolerance``.

        Returns:
            Optional[BezierCurve]: the lower-degree curve, or None if the curve is not reducible
        """
        n = self.degree
        if n < 2:
            return None
        prec = self._precision
        tol = prec.scalar(tolerance)
        pts = self._points
        reduced = [pts[0]]
        for i in range(1, n - 1):
            prev = reduced[-1]
            reduced.append(((n * pts[i][0] - i * prev[0]) / (n - i), (n * pts[i][1] - i * prev[1]) / (n - i)))
        reduced.append(pts[-1])
        candidate = BezierCurve(reduced, prec)
        for i in range(samples + 1):
            t = prec.scalar(i) / samples
            if GeomMath.distance(prec, candidate.point(t), self.point(t)) > tol:
                return None
        return candidate

    ###########################################################################
    # Display boundary
    ###########################################################################

    def to_numpy(self, steps: int = 64) -> NDArray[np.float64]:
        """
        Polygonize the curve into float64 points for display consumers.

        Args:
            steps: Number of segments; the result has steps + 1 rows.

        Returns:
            NDArray[np.float64]: array of shape (steps + 1, 2)
        """
        if steps < 1:
            raise InvalidParameterError(f"to_numpy: steps must be >= 1, got {steps}")
        result = np.empty((steps + 1, 2), dtype=np.float64)
        for i in range(steps + 1):
            x, y = self.point(self._precision.scalar(i) / steps)
            result[i, 0] = float(x)
            result[i, 1] = float(y)
        return result
