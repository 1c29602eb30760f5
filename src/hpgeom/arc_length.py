"""Arc length of Bezier curves and paths by adaptive Gauss-Legendre quadrature.

The length of a curve is the integral of its speed |B'(t)|. Each interval is
integrated with the 5- and 10-point Gauss-Legendre rules; if the two
estimates disagree by more than the interval's tolerance budget the interval
is halved and each half gets half the budget. Intervals are processed from an
explicit work stack bounded by ``max_depth``.
"""

from __future__ import annotations

import logging
from bisect import bisect_right
from dataclasses import dataclass
from typing import List, Optional, Tuple

from mpmath import mpf

from hpgeom.bezier import BezierCurve
from hpgeom.common import CurveLike, InvalidInputError, InvalidParameterError, PathLike, ScalarLike
from hpgeom.consts import (
    ARC_MAX_DEPTH,
    ARC_MIN_DEPTH,
    ARC_TOLERANCE,
    CUSP_SPEED_EPS,
    FAST_DIGITS,
    INVERSE_MAX_ITERATIONS,
    INVERSE_TOLERANCE,
    TABLE_SAMPLES,
    VERIFY_ADDITIVITY_TOLERANCE,
    VERIFY_INVERSE_TOLERANCE,
    VERIFY_SUBDIVISION_TOLERANCE,
    VERIFY_SUBDIVISIONS,
    VERIFY_TABLE_TOLERANCE,
)
from hpgeom.geom import GeomMath
from hpgeom.numeric import DEFAULT_PRECISION, Precision
from hpgeom.path import BezierPath
from hpgeom.quadrature import integrate
from hpgeom.results import CheckResult, InverseArcLengthResult, PathLocation, VerificationReport

logger = logging.getLogger(__name__)

_LOW_ORDER = 5
_HIGH_ORDER = 10


###############################################################################
# ArcLengthOptions
###############################################################################


@dataclass(frozen=True)
class ArcLengthOptions:
    """Configuration of the arc-length engine.

    Attributes:
        precision: Working precision of all Scalars.
        tolerance: Total error budget of one quadrature call.
        max_depth: Maximum bisection depth of the adaptive quadrature.
        min_depth: Intervals are always bisected down to this depth.
        max_iterations: Iteration budget of the inverse solver.
        inverse_tolerance: Convergence threshold of the inverse solver (|f| or step size).
    """

    precision: Precision = DEFAULT_PRECISION
    tolerance: ScalarLike = ARC_TOLERANCE
    max_depth: int = ARC_MAX_DEPTH
    min_depth: int = ARC_MIN_DEPTH
    max_iterations: int = INVERSE_MAX_ITERATIONS
    inverse_tolerance: ScalarLike = INVERSE_TOLERANCE

    def __post_init__(self) -> None:
        if not isinstance(self.precision, Precision):
            raise InvalidInputError(f"precision must be a Precision, got {self.precision!r}")
        for name in ("max_depth", "min_depth", "max_iterations"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise InvalidInputError(f"{name} must be a non-negative int, got {value!r}")
        if self.max_iterations < 1:
            raise InvalidInputError(f"max_iterations must be >= 1, got {self.max_iterations}")
        if self.min_depth > self.max_depth:
            raise InvalidInputError(f"min_depth {self.min_depth} exceeds max_depth {self.max_depth}")
        for name in ("tolerance", "inverse_tolerance"):
            value = self.precision.scalar(getattr(self, name))
            if value <= 0:
                raise InvalidInputError(f"{name} must be positive, got {getattr(self, name)!r}")
            self.precision.check_tolerance(value, name)

    def to_dict(self) -> dict:
        """Convert options to a dictionary for serialization."""
        return {
            "digits": self.precision.digits,
            "tolerance": str(self.tolerance),
            "max_depth": self.max_depth,
            "min_depth": self.min_depth,
            "max_iterations": self.max_iterations,
            "inverse_tolerance": str(self.inverse_tolerance),
        }

    @classmethod
    def from_dict(cls, data: dict) -> ArcLengthOptions:
        """Create ArcLengthOptions from a dictionary."""
        return cls(
            precision=Precision(data.get("digits", DEFAULT_PRECISION.digits)),
            tolerance=data.get("tolerance", ARC_TOLERANCE),
            max_depth=data.get("max_depth", ARC_MAX_DEPTH),
            min_depth=data.get("min_depth", ARC_MIN_DEPTH),
            max_iterations=data.get("max_iterations", INVERSE_MAX_ITERATIONS),
            inverse_tolerance=data.get("inverse_tolerance", INVERSE_TOLERANCE),
        )


DEFAULT_ARC_LENGTH_OPTIONS = ArcLengthOptions()

FAST_ARC_LENGTH_OPTIONS = ArcLengthOptions(
    precision=Precision(FAST_DIGITS),
    tolerance="1e-15",
    max_depth=30,
    min_depth=2,
    max_iterations=50,
    inverse_tolerance="1e-15",
)


###############################################################################
# ArcLengthTable
###############################################################################


class ArcLengthTable:
    """Precomputed (t, cumulative length) samples of one curve.

    Created by ``ArcLengthEngine.create_table``; read-only afterwards.
    """

    __slots__ = ("_engine", "_curve", "_entries", "_lengths")

    def __init__(self, engine: ArcLengthEngine, curve: BezierCurve, entries: Tuple[Tuple[mpf, mpf], ...]):
        self._engine = engine
        self._curve = curve
        self._entries = entries
        self._lengths = [length for _, length in entries]

    @property
    def curve(self) -> BezierCurve:
        """BezierCurve: the tabulated curve."""
        return self._curve

    @property
    def entries(self) -> Tuple[Tuple[mpf, mpf], ...]:
        """Tuple[Tuple[mpf, mpf], ...]: (t, cumulative length) samples from (0, 0) to (1, total)."""
        return self._entries

    @property
    def samples(self) -> int:
        """int: number of sampled intervals."""
        return len(self._entries) - 1

    @property
    def total_length(self) -> mpf:
        """mpf: cumulative length at t=1."""
        return self._entries[-1][1]

    def __len__(self) -> int:
        return len(self._entries)

    def lookup_t(self, length: ScalarLike) -> mpf:
        """
        Approximate parameter at ``length`` by binary search and linear interpolation.

        Args:
            length: Target length from the curve start (>= 0).

        Returns:
            mpf: the interpolated parameter (0 for length 0, 1 beyond the total length)

        Raises:
            InvalidParameterError: if length is negative.
        """
        precision = self._curve.precision
        target = precision.scalar(length)
        if target < 0:
            raise InvalidParameterError(f"lookup_t: length must be >= 0, got {length}")
        if target == 0:
            return precision.zero
        if target >= self.total_length:
            return precision.one
        index = bisect_right(self._lengths, target) - 1
        t_lo, s_lo = self._entries[index]
        t_hi, s_hi = self._entries[index + 1]
        if s_hi == s_lo:
            return t_lo
        return t_lo + (target - s_lo) / (s_hi - s_lo) * (t_hi - t_lo)

    def lookup_t_refined(self, length: ScalarLike) -> InverseArcLengthResult:
        """Exact inverse arc length, seeded with ``lookup_t``."""
        return self._engine.inverse_arc_length(self._curve, length, initial_t=self.lookup_t(length))


###############################################################################
# ArcLengthEngine
###############################################################################


class ArcLengthEngine:
    """Arc length, inverse arc length, lookup tables and their verification checks."""

    def __init__(self, options: ArcLengthOptions = DEFAULT_ARC_LENGTH_OPTIONS):
        self.options = options
        self.precision = options.precision
        self._tolerance = self.precision.scalar(options.tolerance)
        self._inverse_tolerance = self.precision.scalar(options.inverse_tolerance)
        self._cusp_speed = self.precision.scalar(CUSP_SPEED_EPS)

    def _curve(self, curve: CurveLike) -> BezierCurve:
        return BezierCurve.coerce(curve, self.precision)

    def _clamped(self, t: ScalarLike) -> mpf:
        value = self.precision.scalar(t)
        return min(max(value, self.precision.zero), self.precision.one)

    def _check_limit(self, threshold: str, tolerance: mpf, default: str) -> mpf:
        """Verification threshold, widened by the factor ``tolerance`` is coarser than ``default``."""
        prec = self.precision
        return prec.scalar(threshold) * max(prec.one, tolerance / prec.scalar(default))

    def _length(self, length: ScalarLike, operation: str) -> mpf:
        value = self.precision.scalar(length)
        if value < 0:
            raise InvalidParameterError(f"{operation}: target length must be >= 0, got {length}")
        return value

    ###########################################################################
    # Arc length
    ###########################################################################

    def speed(self, curve: CurveLike, t: ScalarLike) -> mpf:
        """|B'(t)|, the integrand of the arc length."""
        d = self._curve(curve).derivative(t, 1)
        return self.precision.sqrt(d[0] * d[0] + d[1] * d[1])

    def arc_length(
        self,
        curve: CurveLike,
        t0: ScalarLike = 0,
        t1: ScalarLike = 1,
        tolerance: Optional[ScalarLike] = None,
    ) -> mpf:
        """
        Arc length of the curve between t0 and t1.

        Args:
            curve: BezierCurve or control points.
            t0: Start parameter (clamped into [0, 1]).
            t1: End parameter (clamped into [0, 1]); t0 > t1 is swapped.
            tolerance: Error budget, defaults to ``options.tolerance``.

        Returns:
            mpf: the (non-negative) length

        Raises:
            InvalidCurveError: for fewer than 2 control points.
        """
        bezier = self._curve(curve)
        a = self._clamped(t0)
        b = self._clamped(t1)
        if a > b:
            a, b = b, a
        if a == b:
            return self.precision.zero
        budget = self._tolerance if tolerance is None else self.precision.scalar(tolerance)
        min_depth = self.options.min_depth
        max_depth = self.options.max_depth

        hodograph = bezier.derivative_points(1)
        if len(hodograph) == 1:
            # a line has constant speed
            return GeomMath.norm(self.precision, hodograph[0]) * (b - a)

        def speed(t: mpf) -> mpf:
            d = bezier.derivative(t, 1)
            return self.precision.sqrt(d[0] * d[0] + d[1] * d[1])

        total = self.precision.zero
        depth_limited = 0
        stack: List[Tuple[mpf, mpf, mpf, int]] = [(a, b, budget, 0)]
        while stack:
            lo, hi, tol, depth = stack.pop()
            low = integrate(speed, lo, hi, _LOW_ORDER, self.precision)
            high = integrate(speed, lo, hi, _HIGH_ORDER, self.precision)
            if depth >= min_depth and (self.precision.fabs(high - low) < tol or depth >= max_depth):
                if depth >= max_depth:
                    depth_limited += 1
                total += high
                continue
            mid = (lo + hi) / 2
            stack.append((mid, hi, tol / 2, depth + 1))
            stack.append((lo, mid, tol / 2, depth + 1))
        if depth_limited:
            logger.debug("arc_length: %d intervals accepted at max_depth %d", depth_limited, max_depth)
        return total

    def inverse_arc_length(
        self,
        curve: CurveLike,
        length: ScalarLike,
        initial_t: Optional[ScalarLike] = None,
    ) -> InverseArcLengthResult:
        """
        Find t with arc_length(0, t) = length by Newton-Raphson.

        f(t) = arc_length(0, t) - length and f'(t) = speed(t). Where the speed
        vanishes (cusp) a bisection half-step replaces the Newton step. A step
        leaving [0, 1] halves the distance to the nearest bound instead.

        Args:
            curve: BezierCurve or control points.
            length: Target length (>= 0).
            initial_t: Optional starting guess; defaults to length / total length.

        Returns:
            InverseArcLengthResult: t, length at t, iterations and the converged flag

        Raises:
            InvalidParameterError: if length is negative.
        """
        bezier = self._curve(curve)
        prec = self.precision
        target = self._length(length, "inverse_arc_length")
        if target == 0:
            return InverseArcLengthResult(prec.zero, prec.zero, 0, True)
        total = self.arc_length(bezier)
        if target >= total:
            return InverseArcLengthResult(prec.one, total, 0, True)

        t = self._clamped(initial_t) if initial_t is not None else target / total
        tol = self._inverse_tolerance
        for iteration in range(1, self.options.max_iterations + 1):
            current = self.arc_length(bezier, 0, t)
            f = current - target
            if prec.fabs(f) < tol:
                return InverseArcLengthResult(t, current, iteration, True)
            speed = self.speed(bezier, t)
            if speed < self._cusp_speed:
                logger.debug("inverse_arc_length: speed %s at t=%s, bisection step", prec.format(speed, 5), t)
                t = t + (1 - t) / 2 if f < 0 else t / 2
                continue
            delta = f / speed
            t_new = t - delta
            if t_new < 0:
                t_new = t / 2
            elif t_new > 1:
                t_new = t + (1 - t) / 2
            t = t_new
            if prec.fabs(delta) < tol:
                return InverseArcLengthResult(t, self.arc_length(bezier, 0, t), iteration, True)
        logger.debug("inverse_arc_length: no convergence after %d iterations", self.options.max_iterations)
        return InverseArcLengthResult(t, self.arc_length(bezier, 0, t), self.options.max_iterations, False)

    ###########################################################################
    # Paths
    ###########################################################################

    def path_arc_length(self, path: PathLike) -> mpf:
        """Sum of the segment lengths of a path.

        Raises:
            InvalidInputError: for an empty path.
        """
        bezier_path = BezierPath.coerce(path, self.precision)
        total = self.precision.zero
        for segment in bezier_path:
            total += self.arc_length(segment)
        return total

    def path_inverse_arc_length(self, path: PathLike, length: ScalarLike) -> PathLocation:
        """
        Locate the point at ``length`` from the path start.

        Returns:
            PathLocation: segment index, local t and the path length at that point; beyond
            the path end the last segment at t=1 with the total length

        Raises:
            InvalidInputError: for an empty path.
            InvalidParameterError: if length is negative.
        """
        bezier_path = BezierPath.coerce(path, self.precision)
        target = self._length(length, "path_inverse_arc_length")
        accumulated = self.precision.zero
        for index, segment in enumerate(bezier_path):
            segment_length = self.arc_length(segment)
            if accumulated + segment_length >= target:
                local = self.inverse_arc_length(segment, target - accumulated)
                return PathLocation(index, local.t, accumulated + local.length, local.converged)
            accumulated += segment_length
        return PathLocation(len(bezier_path) - 1, self.precision.one, accumulated)

    ###########################################################################
    # Lookup table
    ###########################################################################

    def create_table(self, curve: CurveLike, samples: int = TABLE_SAMPLES) -> ArcLengthTable:
        """
        Tabulate cumulative arc length at ``samples`` + 1 equally spaced parameters.

        Each interval is integrated with the adaptive quadrature, not a chord.

        Raises:
            InvalidParameterError: if samples < 2.
        """
        if isinstance(samples, bool) or not isinstance(samples, int) or samples < 2:
            raise InvalidParameterError(f"create_table: samples must be an int >= 2, got {samples!r}")
        bezier = self._curve(curve)
        prec = self.precision
        entries = [(prec.zero, prec.zero)]
        cumulative = prec.zero
        previous = prec.zero
        for i in range(1, samples + 1):
            t = prec.one if i == samples else prec.scalar(i) / samples
            cumulative += self.arc_length(bezier, previous, t)
            entries.append((t, cumulative))
            previous = t
        return ArcLengthTable(self, bezier, tuple(entries))

    ###########################################################################
    # Verification
    ###########################################################################

    def verify_bounds(self, curve: CurveLike) -> CheckResult:
        """chord length <= arc length <= control polygon length."""
        bezier = self._curve(curve)
        chord = bezier.chord_length()
        length = self.arc_length(bezier)
        polygon = bezier.control_polygon_length()
        slack = self._tolerance
        errors = []
        if chord > length + slack:
            errors.append(f"chord {chord} exceeds arc length {length}")
        if length > polygon + slack:
            errors.append(f"arc length {length} exceeds control polygon length {polygon}")
        return CheckResult(
            "bounds",
            not errors,
            {"chord_length": chord, "arc_length": length, "polygon_length": polygon},
            tuple(errors),
        )

    def verify_by_subdivision(
        self,
        curve: CurveLike,
        subdivisions: int = VERIFY_SUBDIVISIONS,
        tolerance: ScalarLike = VERIFY_SUBDIVISION_TOLERANCE,
    ) -> CheckResult:
        """
        Compare the quadrature with a dense chord sum.

        The chord sum never exceeds the arc length; the relative difference has
        to stay below ``tolerance``.
        """
        if subdivisions < 1:
            raise InvalidParameterError(f"verify_by_subdivision: subdivisions must be >= 1, got {subdivisions}")
        bezier = self._curve(curve)
        prec = self.precision
        points = [bezier.point(prec.scalar(i) / subdivisions) for i in range(subdivisions + 1)]
        chord_sum = GeomMath.polyline_length(prec, points)
        length = self.arc_length(bezier)
        relative = (length - chord_sum) / length if length > 0 else prec.fabs(chord_sum)
        errors = []
        if chord_sum > length + self._tolerance:
            errors.append(f"chord sum {chord_sum} exceeds arc length {length}")
        if prec.fabs(relative) >= prec.scalar(tolerance):
            errors.append(f"relative difference {prec.format(relative, 5)} exceeds {tolerance}")
        return CheckResult(
            "subdivision",
            not errors,
            {"arc_length": length, "chord_sum": chord_sum, "relative_difference": relative},
            tuple(errors),
        )

    def verify_additivity(self, curve: CurveLike, t: ScalarLike = "0.5") -> CheckResult:
        """
        arc_length(0, t) + arc_length(t, 1) == arc_length(0, 1).

        Raises:
            InvalidParameterError: if t is outside [0, 1].
        """
        prec = self.precision
        split = prec.scalar(t)
        if split < 0 or split > 1:
            raise InvalidParameterError(f"verify_additivity: t={t} is outside [0, 1]")
        bezier = self._curve(curve)
        left = self.arc_length(bezier, 0, split)
        right = self.arc_length(bezier, split, 1)
        total = self.arc_length(bezier)
        error = prec.fabs(left + right - total)
        valid = error < self._check_limit(VERIFY_ADDITIVITY_TOLERANCE, self._tolerance, ARC_TOLERANCE)
        errors = () if valid else (f"additivity error {prec.format(error, 5)} at t={t}",)
        return CheckResult(
            "additivity", valid, {"left": left, "right": right, "total": total, "error": error}, errors
        )

    def verify_inverse(self, curve: CurveLike, length: ScalarLike) -> CheckResult:
        """arc_length(0, inverse_arc_length(length).t) reproduces ``length`` and the solver converged."""
        prec = self.precision
        bezier = self._curve(curve)
        target = self._length(length, "verify_inverse")
        result = self.inverse_arc_length(bezier, target)
        actual = self.arc_length(bezier, 0, result.t)
        expected = min(target, self.arc_length(bezier))
        error = prec.fabs(actual - expected)
        errors = []
        if not result.converged:
            errors.append(f"inverse solver did not converge after {result.iterations} iterations")
        if error >= self._check_limit(VERIFY_INVERSE_TOLERANCE, self._inverse_tolerance, INVERSE_TOLERANCE):
            errors.append(f"round trip error {prec.format(error, 5)}")
        return CheckResult(
            "inverse",
            not errors,
            {"t": result.t, "target": target, "actual": actual, "error": error, "iterations": result.iterations},
            tuple(errors),
        )

    def verify_table(self, curve: CurveLike, samples: int = 50) -> CheckResult:
        """
        Table consistency: monotonic lengths, (0, 0) and (1, total) boundary entries,
        total matching the direct computation and lookup_t round trips.
        """
        prec = self.precision
        bezier = self._curve(curve)
        table = self.create_table(bezier, samples)
        entries = table.entries
        errors = []
        for (t_a, s_a), (t_b, s_b) in zip(entries, entries[1:]):
            if t_b <= t_a or s_b < s_a:
                errors.append(f"table not monotonic between t={t_a} and t={t_b}")
                break
        if entries[0][0] != 0 or entries[0][1] != 0:
            errors.append("first table entry is not (0, 0)")
        if entries[-1][0] != 1:
            errors.append("last table entry is not at t=1")
        direct = self.arc_length(bezier)
        total_error = prec.fabs(table.total_length - direct)
        if total_error >= self._check_limit(VERIFY_TABLE_TOLERANCE, self._tolerance, ARC_TOLERANCE):
            errors.append(f"table total differs from direct length by {prec.format(total_error, 5)}")
        lookup_limit = 2 * direct / samples
        lookup_error = prec.zero
        for fraction in ("0.25", "0.5", "0.75"):
            target = direct * prec.scalar(fraction)
            actual = self.arc_length(bezier, 0, table.lookup_t(target))
            lookup_error = max(lookup_error, prec.fabs(actual - target))
        if lookup_error > lookup_limit:
            errors.append(f"lookup_t error {prec.format(lookup_error, 5)} exceeds {prec.format(lookup_limit, 5)}")
        return CheckResult(
            "table",
            not errors,
            {"samples": samples, "total_error": total_error, "lookup_error": lookup_error},
            tuple(errors),
        )

    def verify_all(self, curve: CurveLike) -> VerificationReport:
        """Run every arc-length check; a check that raises is reported instead of aborting the run."""
        bezier = self._curve(curve)
        total = self.arc_length(bezier)
        runs = (
            ("bounds", lambda: self.verify_bounds(bezier)),
            ("subdivision", lambda: self.verify_by_subdivision(bezier)),
            ("additivity", lambda: self.verify_additivity(bezier, "0.5")),
            ("inverse", lambda: self.verify_inverse(bezier, total / 2)),
            ("table", lambda: self.verify_table(bezier, 20)),
        )
        checks = []
        errors = []
        for name, run in runs:
            try:
                checks.append(run())
            except (InvalidInputError, ArithmeticError) as exc:
                errors.append(f"{name}: {exc}")
                checks.append(CheckResult(name, False, {}, (str(exc),)))
        return VerificationReport("arc_length", tuple(checks), tuple(errors))
