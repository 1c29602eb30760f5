"""Intersections of lines, Bezier curves and paths in arbitrary precision.

Line/line intersections are solved in closed form, curve/line intersections
by sampling the signed distance and bisecting sign changes, curve/curve
intersections by bounding-box subdivision followed by 2D Newton-Raphson and
self-intersections by bisecting the parameter domain and intersecting the
cropped halves. Every kind has a matching verification routine.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from mpmath import mpf

from hpgeom.bezier import BezierCurve
from hpgeom.common import (
    CurveLike,
    IntersectionStatus,
    InvalidCurveError,
    InvalidInputError,
    PathLike,
    ScalarLike,
)
from hpgeom.consts import (
    DEDUP_FACTOR,
    FAST_DIGITS,
    INTERSECTION_TOLERANCE,
    MAX_BISECTION_ITERATIONS,
    MAX_DEPTH,
    MAX_NEWTON_ITERATIONS,
    MIN_SEPARATION,
    PARALLEL_THRESHOLD,
    SAMPLES_PER_DEGREE,
    SELF_MAX_DEPTH,
    SELF_NUDGE,
    SINGULARITY_THRESHOLD,
    SUBDIVISION_TOLERANCE,
    VERIFY_CURVE_LINE_TOLERANCE,
    VERIFY_FACTOR,
    VERIFY_LINE_LINE_TOLERANCE,
    VERIFY_PERTURBATION,
)
from hpgeom.geom import GeomMath
from hpgeom.numeric import DEFAULT_PRECISION, Precision
from hpgeom.path import BezierPath
from hpgeom.results import CheckResult, IntersectionRecord, VerificationReport

logger = logging.getLogger(__name__)

# Curve pieces of a subdivision work item: (piece, t_start, t_end)
_Window = Tuple[BezierCurve, mpf, mpf]


###############################################################################
# IntersectionOptions
###############################################################################


@dataclass(frozen=True)
class IntersectionOptions:
    """Configuration of the intersection engine.

    Attributes:
        precision: Working precision of all Scalars.
        tolerance: Newton/bisection convergence threshold (distance or step).
        subdivision_tolerance: Parameter window width at which subdivision hands over to Newton.
        max_depth: Maximum curve/curve subdivision depth.
        self_max_depth: Maximum bisection depth of the self-intersection search.
        min_separation: Minimum parameter distance between the two sides of a self-intersection.
        samples_per_degree: Curve/line samples per unit of curve degree.
        max_newton_iterations: Iteration budget of every Newton refinement.
        max_bisection_iterations: Iteration budget of the curve/line bisection.
        parallel_threshold: |cross(d1, d2)| below which two lines count as parallel.
        singularity_threshold: |det J| below which a Newton step is not taken.
        verify_factor: Accepted distance of two evaluated points is tolerance * verify_factor.
        dedup_factor: Records closer than tolerance * dedup_factor (at least
            subdivision_tolerance) in both parameters are merged.
        self_nudge: Parameter step pushing t1 and t2 apart on a singular self-intersection Jacobian.
    """

    precision: Precision = DEFAULT_PRECISION
    tolerance: ScalarLike = INTERSECTION_TOLERANCE
    subdivision_tolerance: ScalarLike = SUBDIVISION_TOLERANCE
    max_depth: int = MAX_DEPTH
    self_max_depth: int = SELF_MAX_DEPTH
    min_separation: ScalarLike = MIN_SEPARATION
    samples_per_degree: int = SAMPLES_PER_DEGREE
    max_newton_iterations: int = MAX_NEWTON_ITERATIONS
    max_bisection_iterations: int = MAX_BISECTION_ITERATIONS
    parallel_threshold: ScalarLike = PARALLEL_THRESHOLD
    singularity_threshold: ScalarLike = SINGULARITY_THRESHOLD
    verify_factor: int = VERIFY_FACTOR
    dedup_factor: int = DEDUP_FACTOR
    self_nudge: ScalarLike = SELF_NUDGE

    _INT_FIELDS = (
        "max_depth",
        "self_max_depth",
        "samples_per_degree",
        "max_newton_iterations",
        "max_bisection_iterations",
        "verify_factor",
        "dedup_factor",
    )
    _SCALAR_FIELDS = (
        "tolerance",
        "subdivision_tolerance",
        "min_separation",
        "parallel_threshold",
        "singularity_threshold",
        "self_nudge",
    )

    def __post_init__(self) -> None:
        if not isinstance(self.precision, Precision):
            raise InvalidInputError(f"precision must be a Precision, got {self.precision!r}")
        for name in self._INT_FIELDS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise InvalidInputError(f"{name} must be an int >= 1, got {value!r}")
        for name in self._SCALAR_FIELDS:
            if self.precision.scalar(getattr(self, name)) <= 0:
                raise InvalidInputError(f"{name} must be positive, got {getattr(self, name)!r}")
        self.precision.check_tolerance(self.precision.scalar(self.tolerance), "tolerance")

    def to_dict(self) -> dict:
        """Convert options to a dictionary for serialization."""
        data = {"digits": self.precision.digits}
        for name in self._INT_FIELDS:
            data[name] = getattr(self, name)
        for name in self._SCALAR_FIELDS:
            data[name] = str(getattr(self, name))
        return data

    @classmethod
    def from_dict(cls, data: dict) -> IntersectionOptions:
        """Create IntersectionOptions from a dictionary; missing keys keep their defaults."""
        kwargs = {name: data[name] for name in cls._INT_FIELDS + cls._SCALAR_FIELDS if name in data}
        return cls(precision=Precision(data.get("digits", DEFAULT_PRECISION.digits)), **kwargs)


DEFAULT_INTERSECTION_OPTIONS = IntersectionOptions()

FAST_INTERSECTION_OPTIONS = IntersectionOptions(
    precision=Precision(FAST_DIGITS),
    tolerance="1e-15",
    subdivision_tolerance="1e-5",
    max_depth=40,
    self_max_depth=20,
    parallel_threshold="1e-30",
    singularity_threshold="1e-25",
)


###############################################################################
# IntersectionEngine
###############################################################################


class IntersectionEngine:
    """Line, curve, self and path intersections with their verification checks."""

    def __init__(self, options: IntersectionOptions = DEFAULT_INTERSECTION_OPTIONS):
        self.options = options
        prec = options.precision
        self.precision = prec
        self._tol = prec.scalar(options.tolerance)
        self._subdivision_tol = prec.scalar(options.subdivision_tolerance)
        self._min_separation = prec.scalar(options.min_separation)
        self._parallel = prec.scalar(options.parallel_threshold)
        self._singular = prec.scalar(options.singularity_threshold)
        self._nudge = prec.scalar(options.self_nudge)
        self._verify_tol = self._tol * options.verify_factor
        self._dedup_tol = max(self._tol * options.dedup_factor, self._subdivision_tol)

    ###########################################################################
    # Helpers
    ###########################################################################

    def _curve(self, curve: CurveLike) -> BezierCurve:
        return BezierCurve.coerce(curve, self.precision)

    def _line(self, line: CurveLike, operation: str) -> BezierCurve:
        bezier = self._curve(line)
        if bezier.degree != 1:
            raise InvalidCurveError(f"{operation}: expected a line with 2 control points, got {len(bezier)}")
        return bezier

    def _clamp(self, t: mpf) -> mpf:
        if t < 0:
            return self.precision.zero
        if t > 1:
            return self.precision.one
        return t

    @staticmethod
    def _dedup(records: Iterable[IntersectionRecord], tolerance: mpf) -> List[IntersectionRecord]:
        """Merge records closer than ``tolerance`` in both parameters; converged records win."""
        ordered = sorted(records, key=lambda r: (r.status is IntersectionStatus.APPROXIMATE, r.t1, r.t2))
        kept: List[IntersectionRecord] = []
        for record in ordered:
            if any(abs(record.t1 - k.t1) < tolerance and abs(record.t2 - k.t2) < tolerance for k in kept):
                continue
            kept.append(record)
        return sorted(kept, key=lambda r: (r.t1, r.t2))

    def _newton_pair(
        self, curve1: BezierCurve, curve2: BezierCurve, t1: mpf, t2: mpf
    ) -> Optional[Tuple[mpf, mpf, mpf]]:
        """
        Solve B1(t1) - B2(t2) = (0, 0) by 2D Newton-Raphson.

        Parameters are clamped into [0, 1] after every step.

        Returns:
            Optional[Tuple[mpf, mpf, mpf]]: (t1, t2, distance) on convergence, None for a
            singular Jacobian or if the final distance exceeds the verification tolerance
        """
        prec = self.precision
        for _ in range(self.options.max_newton_iterations):
            p1 = curve1.point(t1)
            p2 = curve2.point(t2)
            fx = p1[0] - p2[0]
            fy = p1[1] - p2[1]
            if prec.sqrt(fx * fx + fy * fy) < self._tol:
                break
            dx1, dy1 = curve1.derivative(t1)
            dx2, dy2 = curve2.derivative(t2)
            det = dx2 * dy1 - dx1 * dy2
            if prec.fabs(det) < self._singular:
                logger.debug("curve_curve: singular Jacobian at t1=%s t2=%s", prec.format(t1), prec.format(t2))
                return None
            dt1 = (dy2 * fx - dx2 * fy) / det
            dt2 = (dy1 * fx - dx1 * fy) / det
            t1 = self._clamp(t1 + dt1)
            t2 = self._clamp(t2 + dt2)
            if prec.fabs(dt1) < self._tol and prec.fabs(dt2) < self._tol:
                break
        error = GeomMath.distance(prec, curve1.point(t1), curve2.point(t2))
        if error >= self._verify_tol:
            return None
        return t1, t2, error

    def _record(
        self, curve1: BezierCurve, curve2: BezierCurve, t1: mpf, t2: mpf, status: IntersectionStatus
    ) -> IntersectionRecord:
        p1 = curve1.point(t1)
        p2 = curve2.point(t2)
        point = ((p1[0] + p2[0]) / 2, (p1[1] + p2[1]) / 2)
        return IntersectionRecord(t1, t2, point, GeomMath.distance(self.precision, p1, p2), status)

    ###########################################################################
    # Line / line
    ###########################################################################

    def line_line(self, line1: CurveLike, line2: CurveLike) -> List[IntersectionRecord]:
        """
        Intersection of two line segments in closed form.

        Parallel (and coincident, overlapping) segments report no intersection.

        Args:
            line1: First segment, 2 control points.
            line2: Second segment, 2 control points.

        Returns:
            List[IntersectionRecord]: zero or one EXACT record

        Raises:
            InvalidCurveError: if an argument is not a 2-point segment.
        """
        a = self._line(line1, "line_line")
        b = self._line(line2, "line_line")
        (x1, y1), (x2, y2) = a.points
        (x3, y3), (x4, y4) = b.points
        dx1 = x2 - x1
        dy1 = y2 - y1
        dx2 = x4 - x3
        dy2 = y4 - y3
        denom = dx1 * dy2 - dy1 * dx2
        if self.precision.fabs(denom) < self._parallel:
            logger.debug("line_line: parallel segments")
            return []
        dx13 = x1 - x3
        dy13 = y1 - y3
        t1 = (dx2 * dy13 - dy2 * dx13) / denom
        t2 = (dx1 * dy13 - dy1 * dx13) / denom
        if not (0 <= t1 <= 1 and 0 <= t2 <= 1):
            return []
        p1 = (x1 + t1 * dx1, y1 + t1 * dy1)
        p2 = (x3 + t2 * dx2, y3 + t2 * dy2)
        error = GeomMath.distance(self.precision, p1, p2)
        return [IntersectionRecord(t1, t2, p1, error, IntersectionStatus.EXACT)]

    ###########################################################################
    # Curve / line
    ###########################################################################

    def curve_line(self, curve: CurveLike, line: CurveLike) -> List[IntersectionRecord]:
        """
        Intersections of a Bezier curve with a line segment.

        The signed distance of the curve from the line is sampled at
        degree * samples_per_degree + 1 parameters; every sign change is
        refined by bisection. Tangential touches without a sign change are
        only found when a sample hits them exactly.

        Returns:
            List[IntersectionRecord]: records with t1 on the curve and t2 on the line

        Raises:
            InvalidCurveError: for a malformed curve or a line without exactly 2 points.
        """
        prec = self.precision
        bezier = self._curve(curve)
        segment = self._line(line, "curve_line")
        origin, target = segment.points
        ldx = target[0] - origin[0]
        ldy = target[1] - origin[1]
        line_length = prec.sqrt(ldx * ldx + ldy * ldy)
        if line_length == 0:
            logger.debug("curve_line: degenerate line")
            return []

        def distance(t: mpf) -> mpf:
            p = bezier.point(t)
            return (ldx * (p[1] - origin[1]) - ldy * (p[0] - origin[0])) / line_length

        residual_limit = self._tol / 100
        width_limit = self._tol / 1000
        samples = bezier.degree * self.options.samples_per_degree
        params = [prec.scalar(i) / samples for i in range(samples + 1)]
        values = [distance(t) for t in params]

        roots: List[Tuple[mpf, IntersectionStatus]] = []
        for t, value in zip(params, values):
            if value == 0:
                roots.append((t, IntersectionStatus.EXACT))
        for i in range(samples):
            f_lo = values[i]
            if f_lo * values[i + 1] >= 0:
                continue
            lo = params[i]
            hi = params[i + 1]
            mid = (lo + hi) / 2
            status = IntersectionStatus.APPROXIMATE
            for _ in range(self.options.max_bisection_iterations):
                mid = (lo + hi) / 2
                f_mid = distance(mid)
                if prec.fabs(f_mid) < residual_limit or hi - lo < width_limit:
                    status = IntersectionStatus.REFINED
                    break
                if (f_mid < 0) == (f_lo < 0):
                    lo = mid
                    f_lo = f_mid
                else:
                    hi = mid
            roots.append((mid, status))

        records = []
        for t, status in roots:
            p = bezier.point(t)
            if prec.fabs(ldx) > prec.fabs(ldy):
                t_line = (p[0] - origin[0]) / ldx
            else:
                t_line = (p[1] - origin[1]) / ldy
            if t_line < -self._verify_tol or t_line > 1 + self._verify_tol:
                continue
            t_line = self._clamp(t_line)
            q = (origin[0] + t_line * ldx, origin[1] + t_line * ldy)
            error = GeomMath.distance(prec, p, q)
            if error >= self._verify_tol:
                continue
            records.append(IntersectionRecord(t, t_line, p, error, status))
        return self._dedup(records, self._dedup_tol)

    ###########################################################################
    # Curve / curve
    ###########################################################################

    def curve_curve(self, curve1: CurveLike, curve2: CurveLike) -> List[IntersectionRecord]:
        """
        Intersections of two Bezier curves by recursive subdivision.

        The exact bounding boxes reject disjoint curves; during subdivision the
        control-point boxes of the pieces prune pairs. The piece with the larger
        parameter window is halved until both windows are narrower than
        ``subdivision_tolerance``; then 2D Newton-Raphson refines the window
        midpoints on the full curves. A branch with a singular Jacobian is
        abandoned. At ``max_depth`` a failed refinement yields an APPROXIMATE
        record at the window midpoints.

        Returns:
            List[IntersectionRecord]: deduplicated records sorted by t1
        """
        return self._curve_curve(self._curve(curve1), self._curve(curve2), self.options.max_depth)

    def _curve_curve(self, curve1: BezierCurve, curve2: BezierCurve, max_depth: int) -> List[IntersectionRecord]:
        if not curve1.bounding_box().overlaps(curve2.bounding_box()):
            return []
        prec = self.precision
        records: List[IntersectionRecord] = []
        stack: List[Tuple[_Window, _Window, int]] = [
            ((curve1, prec.zero, prec.one), (curve2, prec.zero, prec.one), 0)
        ]
        while stack:
            (a, a0, a1), (b, b0, b1), depth = stack.pop()
            if depth > 0 and not a.hull_box().overlaps(b.hull_box()):
                continue
            wa = a1 - a0
            wb = b1 - b0
            at_max_depth = depth >= max_depth
            if at_max_depth or (wa < self._subdivision_tol and wb < self._subdivision_tol):
                t1 = (a0 + a1) / 2
                t2 = (b0 + b1) / 2
                solution = self._newton_pair(curve1, curve2, t1, t2)
                if solution is not None:
                    records.append(self._record(curve1, curve2, solution[0], solution[1], IntersectionStatus.REFINED))
                elif at_max_depth:
                    logger.debug("curve_curve: max depth %d reached, keeping window midpoint", max_depth)
                    records.append(self._record(curve1, curve2, t1, t2, IntersectionStatus.APPROXIMATE))
                continue
            if wa >= wb:
                left, right = a.halve()
                mid = (a0 + a1) / 2
                stack.append(((right, mid, a1), (b, b0, b1), depth + 1))
                stack.append(((left, a0, mid), (b, b0, b1), depth + 1))
            else:
                left, right = b.halve()
                mid = (b0 + b1) / 2
                stack.append(((a, a0, a1), (right, mid, b1), depth + 1))
                stack.append(((a, a0, a1), (left, b0, mid), depth + 1))
        return self._dedup(records, self._dedup_tol)

    ###########################################################################
    # Self-intersection
    ###########################################################################

    def self_intersections(self, curve: CurveLike) -> List[IntersectionRecord]:
        """
        Self-intersections of a curve with at least 4 control points.

        The parameter domain is bisected; every range wider than twice the
        minimum separation is cropped into halves which are intersected with
        ``curve_curve``. Found pairs are mapped back to the full curve and
        kept if they are at least ``min_separation`` apart. Candidates are
        merged with min_separation / 10 and refined on the full curve. A
        candidate whose refinement fails is kept as APPROXIMATE.

        Returns:
            List[IntersectionRecord]: records with t1 < t2, sorted by t1
        """
        bezier = self._curve(curve)
        if len(bezier) < 4:
            return []
        prec = self.precision
        min_sep = self._min_separation
        max_depth = self.options.self_max_depth

        candidates: List[IntersectionRecord] = []
        stack = [(prec.zero, prec.one, 0)]
        while stack:
            t_min, t_max, depth = stack.pop()
            span = t_max - t_min
            if span < min_sep or depth > max_depth:
                continue
            mid = (t_min + t_max) / 2
            if span > 2 * min_sep:
                left = bezier.crop(t_min, mid)
                right = bezier.crop(mid, t_max)
                for record in self._curve_curve(left, right, max(max_depth - depth, 1)):
                    u1 = t_min + record.t1 * (mid - t_min)
                    u2 = mid + record.t2 * (t_max - mid)
                    if prec.fabs(u2 - u1) > min_sep:
                        candidates.append(
                            IntersectionRecord(min(u1, u2), max(u1, u2), record.point, record.error, record.status)
                        )
            stack.append((mid, t_max, depth + 1))
            stack.append((t_min, mid, depth + 1))

        merged = self._dedup(candidates, min_sep / 10)
        results = []
        for candidate in merged:
            refined = self._refine_self(bezier, candidate.t1, candidate.t2)
            if refined is None:
                logger.debug("self_intersections: refinement failed at t1=%s t2=%s", candidate.t1, candidate.t2)
                results.append(
                    self._record(bezier, bezier, candidate.t1, candidate.t2, IntersectionStatus.APPROXIMATE)
                )
            else:
                results.append(self._record(bezier, bezier, refined[0], refined[1], IntersectionStatus.REFINED))
        return self._dedup(results, min_sep / 10)

    def _refine_self(self, curve: BezierCurve, t1: mpf, t2: mpf) -> Optional[Tuple[mpf, mpf, mpf]]:
        """Newton-Raphson on B(t1) - B(t2) = 0 keeping t2 - t1 >= min_separation."""
        prec = self.precision
        min_sep = self._min_separation
        for _ in range(self.options.max_newton_iterations):
            p1 = curve.point(t1)
            p2 = curve.point(t2)
            fx = p1[0] - p2[0]
            fy = p1[1] - p2[1]
            if prec.sqrt(fx * fx + fy * fy) < self._tol:
                break
            dx1, dy1 = curve.derivative(t1)
            dx2, dy2 = curve.derivative(t2)
            det = dx2 * dy1 - dx1 * dy2
            if prec.fabs(det) < self._singular:
                logger.debug("self_intersections: singular Jacobian, nudging t1/t2 apart")
                t1 = self._clamp(t1 - self._nudge)
                t2 = self._clamp(t2 + self._nudge)
                continue
            dt1 = (dy2 * fx - dx2 * fy) / det
            dt2 = (dy1 * fx - dx1 * fy) / det
            t1 = self._clamp(t1 + dt1)
            t2 = self._clamp(t2 + dt2)
            if t1 > t2:
                t1, t2 = t2, t1
            if t2 - t1 < min_sep:
                center = (t1 + t2) / 2
                t1 = self._clamp(center - min_sep / 2)
                t2 = self._clamp(center + min_sep / 2)
            if prec.fabs(dt1) < self._tol and prec.fabs(dt2) < self._tol:
                break
        error = GeomMath.distance(prec, curve.point(t1), curve.point(t2))
        if error >= self._verify_tol or t2 - t1 < min_sep:
            return None
        return t1, t2, error

    ###########################################################################
    # Paths
    ###########################################################################

    def _segment_pair(self, a: BezierCurve, b: BezierCurve) -> List[IntersectionRecord]:
        """Intersect two path segments with the cheapest applicable method."""
        if a.degree == 1 and b.degree == 1:
            return self.line_line(a, b)
        if b.degree == 1:
            return self.curve_line(a, b)
        if a.degree == 1:
            return [
                IntersectionRecord(r.t2, r.t1, r.point, r.error, r.status) for r in self.curve_line(b, a)
            ]
        return self.curve_curve(a, b)

    def path_path(self, path1: PathLike, path2: PathLike) -> List[IntersectionRecord]:
        """
        Intersections between every segment pair of two paths.

        Returns:
            List[IntersectionRecord]: records tagged with segment1 / segment2

        Raises:
            InvalidInputError: for an empty path.
        """
        first = BezierPath.coerce(path1, self.precision)
        second = BezierPath.coerce(path2, self.precision)
        records = []
        for i, a in enumerate(first):
            for j, b in enumerate(second):
                records.extend(r.with_segments(i, j) for r in self._segment_pair(a, b))
        return records

    def path_self(self, path: PathLike, closed: Optional[bool] = None) -> List[IntersectionRecord]:
        """
        Self-intersections of a path.

        Every segment is searched for self-intersections and every pair of
        non-adjacent segments (j >= i + 2) is intersected. For a closed path
        the first and the last segment are adjacent as well.

        Args:
            path: The path.
            closed: Treat the path as closed; None infers it from the first start
                point coinciding with the last end point.

        Raises:
            InvalidInputError: for an empty path.
        """
        bezier_path = BezierPath.coerce(path, self.precision)
        if closed is None:
            closed = bezier_path.is_closed()
        count = len(bezier_path)
        records = []
        for i, segment in enumerate(bezier_path):
            records.extend(r.with_segments(i, i) for r in self.self_intersections(segment))
        for i in range(count):
            for j in range(i + 2, count):
                if closed and i == 0 and j == count - 1:
                    continue
                records.extend(r.with_segments(i, j) for r in self._segment_pair(bezier_path[i], bezier_path[j]))
        return records

    ###########################################################################
    # Verification
    ###########################################################################

    def _tolerance(self, tolerance: Optional[ScalarLike]) -> mpf:
        return self._verify_tol if tolerance is None else self.precision.scalar(tolerance)

    def _check_limit(self, threshold: str, tolerance: Optional[ScalarLike]) -> mpf:
        """Explicit ``tolerance``, else ``threshold`` scaled up for engines coarser than the default."""
        prec = self.precision
        if tolerance is not None:
            return prec.scalar(tolerance)
        return prec.scalar(threshold) * max(prec.one, self._tol / prec.scalar(INTERSECTION_TOLERANCE))

    def verify_intersection(
        self,
        curve1: CurveLike,
        curve2: CurveLike,
        record: IntersectionRecord,
        tolerance: Optional[ScalarLike] = None,
    ) -> CheckResult:
        """B1(t1) and B2(t2) of one record coincide within ``tolerance``."""
        a = self._curve(curve1)
        b = self._curve(curve2)
        distance = GeomMath.distance(self.precision, a.point(record.t1), b.point(record.t2))
        limit = self._tolerance(tolerance)
        valid = distance < limit
        errors = () if valid else (f"points differ by {self.precision.format(distance, 5)} at t1={record.t1}",)
        return CheckResult("intersection", valid, {"distance": distance, "tolerance": limit}, errors)

    def verify_line_line(
        self,
        line1: CurveLike,
        line2: CurveLike,
        records: Optional[Sequence[IntersectionRecord]] = None,
        tolerance: Optional[ScalarLike] = None,
    ) -> CheckResult:
        """Parametric, algebraic (distance to both lines) and cross product errors of each record."""
        prec = self.precision
        a = self._line(line1, "verify_line_line")
        b = self._line(line2, "verify_line_line")
        if records is None:
            records = self.line_line(a, b)
        limit = self._check_limit(VERIFY_LINE_LINE_TOLERANCE, tolerance)
        errors = []
        worst = prec.zero
        for record in records:
            p1 = a.point(record.t1)
            p2 = b.point(record.t2)
            parametric = GeomMath.distance(prec, p1, p2)
            algebraic = max(self._line_distance(a, record.point), self._line_distance(b, record.point))
            cross = prec.fabs(
                GeomMath.cross(GeomMath.sub(a.end, a.start), GeomMath.sub(record.point, a.start))
            ) + prec.fabs(GeomMath.cross(GeomMath.sub(b.end, b.start), GeomMath.sub(record.point, b.start)))
            worst = max(worst, parametric, algebraic, cross)
            if not (0 <= record.t1 <= 1 and 0 <= record.t2 <= 1):
                errors.append(f"parameters out of range: t1={record.t1} t2={record.t2}")
            if parametric >= limit or algebraic >= limit or cross >= limit:
                errors.append(
                    f"errors too large at t1={record.t1}: parametric={prec.format(parametric, 5)} "
                    f"algebraic={prec.format(algebraic, 5)} cross={prec.format(cross, 5)}"
                )
        return CheckResult("line_line", not errors, {"count": len(records), "max_error": worst}, tuple(errors))

    def _line_distance(self, line: BezierCurve, point: Sequence[mpf]) -> mpf:
        direction = GeomMath.sub(line.end, line.start)
        length = GeomMath.norm(self.precision, direction)
        offset = GeomMath.sub(point, line.start)
        if length == 0:
            return GeomMath.norm(self.precision, offset)
        return self.precision.fabs(GeomMath.cross(direction, offset)) / length

    def verify_curve_line(
        self,
        curve: CurveLike,
        line: CurveLike,
        records: Optional[Sequence[IntersectionRecord]] = None,
        tolerance: Optional[ScalarLike] = None,
    ) -> CheckResult:
        """Curve point error, line point error, signed distance and point mismatch of each record."""
        prec = self.precision
        bezier = self._curve(curve)
        segment = self._line(line, "verify_curve_line")
        if records is None:
            records = self.curve_line(bezier, segment)
        limit = self._check_limit(VERIFY_CURVE_LINE_TOLERANCE, tolerance)
        errors = []
        worst = prec.zero
        for record in records:
            on_curve = bezier.point(record.t1)
            on_line = segment.point(record.t2)
            curve_error = GeomMath.distance(prec, on_curve, record.point)
            line_error = GeomMath.distance(prec, on_line, record.point)
            signed = self._line_distance(segment, on_curve)
            mismatch = GeomMath.distance(prec, on_curve, on_line)
            worst = max(worst, curve_error, line_error, signed, mismatch)
            if not (0 <= record.t1 <= 1 and 0 <= record.t2 <= 1):
                errors.append(f"parameters out of range: t1={record.t1} t2={record.t2}")
            if max(curve_error, line_error, signed, mismatch) >= limit:
                errors.append(
                    f"errors too large at t1={record.t1}: curve={prec.format(curve_error, 5)} "
                    f"line={prec.format(line_error, 5)} distance={prec.format(signed, 5)} "
                    f"mismatch={prec.format(mismatch, 5)}"
                )
        return CheckResult("curve_line", not errors, {"count": len(records), "max_error": worst}, tuple(errors))

    def verify_curve_curve(
        self,
        curve1: CurveLike,
        curve2: CurveLike,
        records: Optional[Sequence[IntersectionRecord]] = None,
        tolerance: Optional[ScalarLike] = None,
    ) -> CheckResult:
        """
        Distance, reported point error and parameter range of each record.

        The distances after perturbing t1 by +/-0.001 are reported in the
        details ("perturbation") without affecting validity.
        """
        prec = self.precision
        a = self._curve(curve1)
        b = self._curve(curve2)
        if records is None:
            records = self.curve_curve(a, b)
        limit = self._tolerance(tolerance)
        step = prec.scalar(VERIFY_PERTURBATION)
        errors = []
        worst = prec.zero
        perturbation = []
        for record in records:
            p1 = a.point(record.t1)
            p2 = b.point(record.t2)
            distance = GeomMath.distance(prec, p1, p2)
            point_error = GeomMath.distance(prec, p1, record.point)
            worst = max(worst, distance, point_error)
            if not (0 <= record.t1 <= 1 and 0 <= record.t2 <= 1):
                errors.append(f"parameters out of range: t1={record.t1} t2={record.t2}")
            if distance >= limit or point_error >= limit:
                errors.append(
                    f"errors too large at t1={record.t1}: distance={prec.format(distance, 5)} "
                    f"point={prec.format(point_error, 5)}"
                )
            perturbation.append(
                tuple(GeomMath.distance(prec, a.point(self._clamp(record.t1 + d)), p2) for d in (-step, step))
            )
        return CheckResult(
            "curve_curve",
            not errors,
            {"count": len(records), "max_error": worst, "perturbation": perturbation},
            tuple(errors),
        )

    def verify_self_intersection(
        self,
        curve: CurveLike,
        records: Optional[Sequence[IntersectionRecord]] = None,
        tolerance: Optional[ScalarLike] = None,
    ) -> CheckResult:
        """
        Distance, separation, parameter range, t1 < t2 and a stable crossing for each record.

        A crossing is stable if moving both parameters by +/-self_nudge moves
        the two curve points farther apart than they are at the intersection.
        """
        prec = self.precision
        bezier = self._curve(curve)
        if records is None:
            records = self.self_intersections(bezier)
        limit = self._tolerance(tolerance)
        h = self._nudge
        errors = []
        for record in records:
            p1 = bezier.point(record.t1)
            p2 = bezier.point(record.t2)
            distance = GeomMath.distance(prec, p1, p2)
            if distance >= limit:
                errors.append(f"points differ by {prec.format(distance, 5)} at t1={record.t1} t2={record.t2}")
            if record.t2 - record.t1 < self._min_separation:
                errors.append(f"separation {prec.format(record.t2 - record.t1, 5)} below minimum")
            if not (0 <= record.t1 <= 1 and 0 <= record.t2 <= 1):
                errors.append(f"parameters out of range: t1={record.t1} t2={record.t2}")
            if not record.t1 < record.t2:
                errors.append(f"t1={record.t1} is not smaller than t2={record.t2}")
            for d1, d2 in ((-h, -h), (h, h), (-h, h), (h, -h)):
                q1 = bezier.point(self._clamp(record.t1 + d1))
                q2 = bezier.point(self._clamp(record.t2 + d2))
                if GeomMath.distance(prec, q1, q2) <= distance:
                    errors.append(f"no stable crossing at t1={record.t1} t2={record.t2}")
                    break
        return CheckResult("self_intersection", not errors, {"count": len(records)}, tuple(errors))

    def verify_path_path(
        self,
        path1: PathLike,
        path2: PathLike,
        records: Optional[Sequence[IntersectionRecord]] = None,
        tolerance: Optional[ScalarLike] = None,
    ) -> CheckResult:
        """Per-record point check on the tagged segments; invalid segment indices count as failures."""
        first = BezierPath.coerce(path1, self.precision)
        second = BezierPath.coerce(path2, self.precision)
        if records is None:
            records = self.path_path(first, second)
        errors = []
        for record in records:
            if not self._valid_index(record.segment1, first) or not self._valid_index(record.segment2, second):
                errors.append(f"invalid segment indices {record.segment1}, {record.segment2}")
                continue
            check = self.verify_intersection(first[record.segment1], second[record.segment2], record, tolerance)
            errors.extend(check.errors)
        return CheckResult("path_path", not errors, {"count": len(records)}, tuple(errors))

    def verify_path_self(
        self,
        path: PathLike,
        records: Optional[Sequence[IntersectionRecord]] = None,
        closed: Optional[bool] = None,
        tolerance: Optional[ScalarLike] = None,
    ) -> CheckResult:
        """Per-record check of a path self-intersection; adjacent segment pairs count as failures."""
        bezier_path = BezierPath.coerce(path, self.precision)
        if closed is None:
            closed = bezier_path.is_closed()
        if records is None:
            records = self.path_self(bezier_path, closed)
        count = len(bezier_path)
        errors = []
        for record in records:
            i, j = record.segment1, record.segment2
            if not self._valid_index(i, bezier_path) or not self._valid_index(j, bezier_path):
                errors.append(f"invalid segment indices {i}, {j}")
                continue
            if i == j:
                check = self.verify_self_intersection(bezier_path[i], [record], tolerance)
            else:
                if abs(i - j) == 1 or (closed and {i, j} == {0, count - 1}):
                    errors.append(f"adjacent segments {i} and {j} reported")
                    continue
                check = self.verify_intersection(bezier_path[i], bezier_path[j], record, tolerance)
            errors.extend(check.errors)
        return CheckResult("path_self", not errors, {"count": len(records)}, tuple(errors))

    @staticmethod
    def _valid_index(index: Optional[int], path: BezierPath) -> bool:
        return isinstance(index, int) and 0 <= index < len(path)

    ###########################################################################
    # Self test
    ###########################################################################

    def self_test(self) -> VerificationReport:
        """
        Exercise every intersection operation on canonical cases with known results.

        A case raising InvalidInputError or ArithmeticError is recorded as a
        failed check; the remaining cases still run.
        """
        cases: List[Tuple[str, Callable[[], CheckResult]]] = [
            ("line_line_crossing", self._case_line_line_crossing),
            ("line_line_parallel", self._case_line_line_parallel),
            ("curve_line", self._case_curve_line),
            ("curve_curve", self._case_curve_curve),
            ("curve_curve_disjoint", self._case_curve_curve_disjoint),
            ("self_intersection", self._case_self_intersection),
            ("path_path", self._case_path_path),
            ("path_self", self._case_path_self),
        ]
        checks = []
        errors = []
        for name, case in cases:
            try:
                result = case()
            except (InvalidInputError, ArithmeticError) as exc:
                errors.append(f"{name}: {exc}")
                result = CheckResult(name, False, {}, (str(exc),))
            if not result.valid:
                logger.warning("self_test: %s failed: %s", name, "; ".join(result.errors))
            checks.append(result)
        return VerificationReport("intersection", tuple(checks), tuple(errors))

    @staticmethod
    def _expect(
        name: str, records: Sequence[IntersectionRecord], verification: Optional[CheckResult], count: int, exact: bool
    ) -> CheckResult:
        errors = []
        if exact and len(records) != count:
            errors.append(f"expected {count} intersections, found {len(records)}")
        if not exact and len(records) < count:
            errors.append(f"expected at least {count} intersections, found {len(records)}")
        if verification is not None:
            errors.extend(verification.errors)
        return CheckResult(name, not errors, {"count": len(records)}, tuple(errors))

    def _case_line_line_crossing(self) -> CheckResult:
        line1 = [(0, 0), (2, 2)]
        line2 = [(0, 2), (2, 0)]
        records = self.line_line(line1, line2)
        result = self._expect("line_line_crossing", records, self.verify_line_line(line1, line2, records), 1, True)
        if records and (records[0].t1 != self.precision.scalar("0.5") or records[0].point != (1, 1)):
            return CheckResult(result.name, False, result.details, result.errors + ("expected (1, 1) at t=0.5",))
        return result

    def _case_line_line_parallel(self) -> CheckResult:
        records = self.line_line([(0, 0), (100, 0)], [(0, 5), (100, 5)])
        return self._expect("line_line_parallel", records, None, 0, True)

    def _case_curve_line(self) -> CheckResult:
        curve = [(0, 0), ("0.5", 2), ("1.5", 2), (2, 0)]
        line = [(-1, 1), (3, 1)]
        records = self.curve_line(curve, line)
        return self._expect("curve_line", records, self.verify_curve_line(curve, line, records), 2, True)

    def _case_curve_curve(self) -> CheckResult:
        curve1 = [(0, 0), (1, 2), (2, 2), (3, 0)]
        curve2 = [(0, 1), (1, -1), (2, 3), (3, 1)]
        records = self.curve_curve(curve1, curve2)
        return self._expect("curve_curve", records, self.verify_curve_curve(curve1, curve2, records), 2, True)

    def _case_curve_curve_disjoint(self) -> CheckResult:
        records = self.curve_curve(
            [(0, 0), (30, 100), (70, 100), (100, 0)], [(200, 0), (230, 100), (270, 100), (300, 0)]
        )
        return self._expect("curve_curve_disjoint", records, None, 0, True)

    def _case_self_intersection(self) -> CheckResult:
        curve = [(0, 0), (150, 100), (-50, 100), (100, 0)]
        records = self.self_intersections(curve)
        return self._expect(
            "self_intersection", records, self.verify_self_intersection(curve, records), 1, False
        )

    def _case_path_path(self) -> CheckResult:
        path1 = [[(0, 0), (2, 2)], [(2, 2), (4, 0)]]
        path2 = [[(0, 1), (4, 1)]]
        records = self.path_path(path1, path2)
        return self._expect("path_path", records, self.verify_path_path(path1, path2, records), 2, True)

    def _case_path_self(self) -> CheckResult:
        bow_tie = [[(0, 0), (2, 2)], [(2, 2), (2, 0)], [(2, 0), (0, 2)]]
        records = self.path_self(bow_tie)
        result = self._expect("path_self", records, self.verify_path_self(bow_tie, records), 1, True)
        triangle = [[(0, 0), (4, 0)], [(4, 0), (2, 3)], [(2, 3), (0, 0)]]
        closed_records = self.path_self(triangle)
        if closed_records:
            return CheckResult(
                result.name, False, result.details, result.errors + ("closed triangle reported intersections",)
            )
        return result
