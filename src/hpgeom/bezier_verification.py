"""Self-verification checks for BezierCurve operations.

Each check recomputes a result by an independent route (a second
evaluation algorithm, finite differences, sampling) and compares the two at
the curve's precision.
"""

from __future__ import annotations

from typing import Callable, List, Tuple

from mpmath import mpf

from hpgeom.bezier import BezierCurve
from hpgeom.common import CurveLike, InvalidInputError, PointLike, ScalarLike
from hpgeom.consts import (
    MAX_NEWTON_ITERATIONS,
    VERIFY_BBOX_TOLERANCE,
    VERIFY_CURVATURE_STEP,
    VERIFY_CURVATURE_TOLERANCE,
    VERIFY_DERIVATIVE_STEP,
    VERIFY_DERIVATIVE_TOLERANCE,
    VERIFY_ON_CURVE_TOLERANCE,
    VERIFY_POINT_TOLERANCE,
    VERIFY_SPLIT_TOLERANCE,
)
from hpgeom.geom import GeomMath
from hpgeom.numeric import DEFAULT_PRECISION, Precision
from hpgeom.results import CheckResult, VerificationReport

_SUB_SAMPLES = ("0.25", "0.5", "0.75")


def _check(name: str, errors: List[str], **details) -> CheckResult:
    return CheckResult(name, not errors, details, tuple(errors))


###############################################################################
# Evaluation
###############################################################################


def verify_point(
    curve: CurveLike,
    t: ScalarLike = "0.5",
    tolerance: ScalarLike = VERIFY_POINT_TOLERANCE,
    precision: Precision = DEFAULT_PRECISION,
) -> CheckResult:
    """de Casteljau and Horner (power basis) evaluation agree at t."""
    bezier = BezierCurve.coerce(curve, precision)
    prec = bezier.precision
    error = GeomMath.distance(prec, bezier.point(t), bezier.point_bernstein(t))
    errors = []
    if error >= prec.scalar(tolerance):
        errors.append(f"de Casteljau and Horner differ by {prec.format(error, 5)} at t={t}")
    return _check("point", errors, error=error)


def verify_polynomial(
    curve: CurveLike,
    tolerance: ScalarLike = VERIFY_SPLIT_TOLERANCE,
    precision: Precision = DEFAULT_PRECISION,
) -> CheckResult:
    """to_polynomial followed by from_polynomial reproduces the control points."""
    bezier = BezierCurve.coerce(curve, precision)
    prec = bezier.precision
    xs, ys = bezier.to_polynomial()
    rebuilt = BezierCurve.from_polynomial(xs, ys, prec)
    error = max(GeomMath.distance(prec, p, q) for p, q in zip(bezier, rebuilt))
    errors = []
    if error >= prec.scalar(tolerance):
        errors.append(f"polynomial round trip moves control points by {prec.format(error, 5)}")
    return _check("polynomial", errors, error=error)


###############################################################################
# Subdivision
###############################################################################


def verify_split(
    curve: CurveLike,
    t: ScalarLike = "0.5",
    tolerance: ScalarLike = VERIFY_SPLIT_TOLERANCE,
    precision: Precision = DEFAULT_PRECISION,
) -> CheckResult:
    """
    Both halves meet at B(t) and reproduce the original curve at sampled parameters.

    left(s) == B(s * t) and right(s) == B(t + s * (1 - t)) for s in 0.25, 0.5, 0.75.
    """
    bezier = BezierCurve.coerce(curve, precision)
    prec = bezier.precision
    t = prec.scalar(t)
    limit = prec.scalar(tolerance)
    left, right = bezier.split(t)
    at_t = bezier.point(t)
    errors = []
    continuity = max(GeomMath.distance(prec, left.end, at_t), GeomMath.distance(prec, right.start, at_t))
    if continuity >= limit:
        errors.append(f"halves do not meet at B(t): {prec.format(continuity, 5)}")
    worst = prec.zero
    for text in _SUB_SAMPLES:
        s = prec.scalar(text)
        worst = max(
            worst,
            GeomMath.distance(prec, left.point(s), bezier.point(s * t)),
            GeomMath.distance(prec, right.point(s), bezier.point(t + s * (1 - t))),
        )
    if worst >= limit:
        errors.append(f"halves deviate from the curve by {prec.format(worst, 5)}")
    return _check("split", errors, continuity_error=continuity, sample_error=worst)


def verify_crop(
    curve: CurveLike,
    t0: ScalarLike = "0.25",
    t1: ScalarLike = "0.75",
    tolerance: ScalarLike = VERIFY_SPLIT_TOLERANCE,
    precision: Precision = DEFAULT_PRECISION,
) -> CheckResult:
    """The cropped curve starts at B(t0), ends at B(t1) and passes B((t0 + t1) / 2) at its middle."""
    bezier = BezierCurve.coerce(curve, precision)
    prec = bezier.precision
    t0 = prec.scalar(t0)
    t1 = prec.scalar(t1)
    cropped = bezier.crop(t0, t1)
    start_error = GeomMath.distance(prec, cropped.start, bezier.point(t0))
    end_error = GeomMath.distance(prec, cropped.end, bezier.point(t1))
    mid_error = GeomMath.distance(prec, cropped.point(prec.scalar("0.5")), bezier.point((t0 + t1) / 2))
    limit = prec.scalar(tolerance)
    errors = []
    if start_error >= limit:
        errors.append(f"start differs from B(t0) by {prec.format(start_error, 5)}")
    if end_error >= limit:
        errors.append(f"end differs from B(t1) by {prec.format(end_error, 5)}")
    if mid_error >= limit:
        errors.append(f"midpoint differs by {prec.format(mid_error, 5)}")
    return _check("crop", errors, start_error=start_error, end_error=end_error, mid_error=mid_error)


###############################################################################
# Differential geometry
###############################################################################


def verify_derivative(
    curve: CurveLike,
    t: ScalarLike = "0.5",
    step: ScalarLike = VERIFY_DERIVATIVE_STEP,
    tolerance: ScalarLike = VERIFY_DERIVATIVE_TOLERANCE,
    precision: Precision = DEFAULT_PRECISION,
) -> CheckResult:
    """The hodograph derivative matches a central finite difference (relative error)."""
    bezier = BezierCurve.coerce(curve, precision)
    prec = bezier.precision
    h = prec.scalar(step)
    t = min(max(prec.scalar(t), h), 1 - h)
    ahead = bezier.point(t + h)
    behind = bezier.point(t - h)
    numeric = ((ahead[0] - behind[0]) / (2 * h), (ahead[1] - behind[1]) / (2 * h))
    exact = bezier.derivative(t)
    scale = max(prec.one, GeomMath.norm(prec, exact))
    error = GeomMath.distance(prec, numeric, exact) / scale
    errors = []
    if error >= prec.scalar(tolerance):
        errors.append(f"derivative differs from finite difference by {prec.format(error, 5)} at t={t}")
    return _check("derivative", errors, error=error)


def verify_tangent_normal(
    curve: CurveLike,
    t: ScalarLike = "0.5",
    tolerance: ScalarLike = VERIFY_SPLIT_TOLERANCE,
    precision: Precision = DEFAULT_PRECISION,
) -> CheckResult:
    """Tangent and normal are unit length, perpendicular, and the tangent follows B'(t)."""
    bezier = BezierCurve.coerce(curve, precision)
    prec = bezier.precision
    limit = prec.scalar(tolerance)
    tangent = bezier.tangent(t)
    normal = bezier.normal(t)
    derivative = bezier.derivative(t)
    tangent_error = prec.fabs(GeomMath.norm(prec, tangent) - 1)
    normal_error = prec.fabs(GeomMath.norm(prec, normal) - 1)
    perpendicular_error = prec.fabs(GeomMath.dot(tangent, normal))
    errors = []
    if tangent_error >= limit:
        errors.append(f"tangent is not unit length: {prec.format(tangent_error, 5)}")
    if normal_error >= limit:
        errors.append(f"normal is not unit length: {prec.format(normal_error, 5)}")
    if perpendicular_error >= limit:
        errors.append(f"tangent and normal are not perpendicular: {prec.format(perpendicular_error, 5)}")
    speed = GeomMath.norm(prec, derivative)
    alignment_error = prec.zero
    if speed > 0:
        alignment_error = prec.fabs(GeomMath.cross(tangent, derivative)) / speed
        if alignment_error >= limit or GeomMath.dot(tangent, derivative) <= 0:
            errors.append(f"tangent does not follow the derivative: {prec.format(alignment_error, 5)}")
    return _check(
        "tangent_normal",
        errors,
        tangent_error=tangent_error,
        normal_error=normal_error,
        perpendicular_error=perpendicular_error,
        alignment_error=alignment_error,
    )


def verify_curvature(
    curve: CurveLike,
    t: ScalarLike = "0.5",
    step: ScalarLike = VERIFY_CURVATURE_STEP,
    tolerance: ScalarLike = VERIFY_CURVATURE_TOLERANCE,
    precision: Precision = DEFAULT_PRECISION,
) -> CheckResult:
    """Curvature from the hodographs matches one from second-order finite differences."""
    bezier = BezierCurve.coerce(curve, precision)
    prec = bezier.precision
    h = prec.scalar(step)
    t = min(max(prec.scalar(t), h), 1 - h)
    ahead = bezier.point(t + h)
    here = bezier.point(t)
    behind = bezier.point(t - h)
    d1 = ((ahead[0] - behind[0]) / (2 * h), (ahead[1] - behind[1]) / (2 * h))
    d2 = ((ahead[0] - 2 * here[0] + behind[0]) / (h * h), (ahead[1] - 2 * here[1] + behind[1]) / (h * h))
    speed_squared = GeomMath.norm_squared(d1)
    exact = bezier.curvature(t)
    if speed_squared == 0:
        numeric = prec.zero
    else:
        numeric = GeomMath.cross(d1, d2) / (speed_squared * prec.sqrt(speed_squared))
    error = prec.fabs(numeric - exact) / max(prec.one, prec.fabs(exact))
    errors = []
    if error >= prec.scalar(tolerance):
        errors.append(f"curvature differs from finite difference by {prec.format(error, 5)} at t={t}")
    return _check("curvature", errors, curvature=exact, finite_difference=numeric, error=error)


###############################################################################
# Bounding box and point location
###############################################################################


def verify_bounding_box(
    curve: CurveLike,
    samples: int = 100,
    tolerance: ScalarLike = VERIFY_BBOX_TOLERANCE,
    precision: Precision = DEFAULT_PRECISION,
) -> CheckResult:
    """Sampled points lie inside the exact box and every edge of the box is reached by the curve."""
    bezier = BezierCurve.coerce(curve, precision)
    prec = bezier.precision
    limit = prec.scalar(tolerance)
    box = bezier.bounding_box()
    errors = []
    outside = 0
    for i in range(samples + 1):
        if not box.contains(bezier.point(prec.scalar(i) / samples), limit):
            outside += 1
    if outside:
        errors.append(f"{outside} sampled points lie outside the bounding box")
    extremes = [bezier.point(t) for t in bezier.extrema_parameters()]
    edges = {
        "xmin": min(prec.fabs(p[0] - box.xmin) for p in extremes),
        "xmax": min(prec.fabs(p[0] - box.xmax) for p in extremes),
        "ymin": min(prec.fabs(p[1] - box.ymin) for p in extremes),
        "ymax": min(prec.fabs(p[1] - box.ymax) for p in extremes),
    }
    for edge, gap in edges.items():
        if gap >= limit:
            errors.append(f"{edge} is not reached by the curve (gap {prec.format(gap, 5)})")
    return _check("bounding_box", errors, outside=outside, box=box)


def closest_parameter(curve: BezierCurve, point: PointLike, samples: int = 100) -> Tuple[mpf, mpf]:
    """
    Parameter of the curve point closest to ``point``.

    The best of ``samples`` + 1 samples is refined by Newton iterations on
    g(t) = (B(t) - P) . B'(t).

    Returns:
        Tuple[mpf, mpf]: (t, distance)
    """
    prec = curve.precision
    target = prec.point(point)
    best_t = prec.zero
    best_distance = GeomMath.distance(prec, curve.start, target)
    for i in range(1, samples + 1):
        t = prec.scalar(i) / samples
        distance = GeomMath.distance(prec, curve.point(t), target)
        if distance < best_distance:
            best_t = t
            best_distance = distance
    t = best_t
    for _ in range(MAX_NEWTON_ITERATIONS):
        offset = GeomMath.sub(curve.point(t), target)
        d1 = curve.derivative(t, 1)
        d2 = curve.derivative(t, 2)
        slope = GeomMath.norm_squared(d1) + GeomMath.dot(offset, d2)
        if slope == 0:
            break
        t_new = min(max(t - GeomMath.dot(offset, d1) / slope, prec.zero), prec.one)
        if t_new == t:
            break
        t = t_new
    distance = GeomMath.distance(prec, curve.point(t), target)
    if distance > best_distance:
        return best_t, best_distance
    return t, distance


def verify_point_on_curve(
    curve: CurveLike,
    point: PointLike,
    tolerance: ScalarLike = VERIFY_ON_CURVE_TOLERANCE,
    precision: Precision = DEFAULT_PRECISION,
) -> CheckResult:
    """``point`` lies on the curve within ``tolerance``."""
    bezier = BezierCurve.coerce(curve, precision)
    prec = bezier.precision
    t, distance = closest_parameter(bezier, point)
    errors = []
    if distance >= prec.scalar(tolerance):
        errors.append(f"point is {prec.format(distance, 5)} away from the curve (closest t={prec.format(t)})")
    return _check("point_on_curve", errors, t=t, distance=distance)


###############################################################################
# All checks
###############################################################################


def verify_all_curve_functions(curve: CurveLike, precision: Precision = DEFAULT_PRECISION) -> VerificationReport:
    """Run every curve check; a check that raises is reported instead of aborting the run."""
    bezier = BezierCurve.coerce(curve, precision)
    runs: List[Tuple[str, Callable[[], CheckResult]]] = [
        ("point", lambda: verify_point(bezier, "0.3", precision=bezier.precision)),
        ("polynomial", lambda: verify_polynomial(bezier, precision=bezier.precision)),
        ("split", lambda: verify_split(bezier, "0.4", precision=bezier.precision)),
        ("crop", lambda: verify_crop(bezier, "0.2", "0.7", precision=bezier.precision)),
        ("derivative", lambda: verify_derivative(bezier, "0.3", precision=bezier.precision)),
        ("tangent_normal", lambda: verify_tangent_normal(bezier, "0.3", precision=bezier.precision)),
        ("curvature", lambda: verify_curvature(bezier, "0.3", precision=bezier.precision)),
        ("bounding_box", lambda: verify_bounding_box(bezier, precision=bezier.precision)),
        (
            "point_on_curve",
            lambda: verify_point_on_curve(bezier, bezier.point("0.3"), precision=bezier.precision),
        ),
    ]
    checks = []
    errors = []
    for name, run in runs:
        try:
            checks.append(run())
        except (InvalidInputError, ArithmeticError) as exc:
            errors.append(f"{name}: {exc}")
            checks.append(CheckResult(name, False, {}, (str(exc),)))
    return VerificationReport("bezier", tuple(checks), tuple(errors))
