"""Arbitrary-precision Bezier curve geometry: evaluation, arc length and intersections."""

import logging

from hpgeom.arc_length import (
    DEFAULT_ARC_LENGTH_OPTIONS,
    FAST_ARC_LENGTH_OPTIONS,
    ArcLengthEngine,
    ArcLengthOptions,
    ArcLengthTable,
)
from hpgeom.bezier import BezierCurve
from hpgeom.common import (
    IntersectionStatus,
    InvalidCurveError,
    InvalidInputError,
    InvalidParameterError,
)
from hpgeom.geom import BBox, GeomMath
from hpgeom.intersection import (
    DEFAULT_INTERSECTION_OPTIONS,
    FAST_INTERSECTION_OPTIONS,
    IntersectionEngine,
    IntersectionOptions,
)
from hpgeom.numeric import DEFAULT_PRECISION, FAST_PRECISION, Precision
from hpgeom.path import BezierPath
from hpgeom.results import (
    CheckResult,
    IntersectionRecord,
    InverseArcLengthResult,
    PathLocation,
    VerificationReport,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "ArcLengthEngine",
    "ArcLengthOptions",
    "ArcLengthTable",
    "BBox",
    "BezierCurve",
    "BezierPath",
    "CheckResult",
    "DEFAULT_ARC_LENGTH_OPTIONS",
    "DEFAULT_INTERSECTION_OPTIONS",
    "DEFAULT_PRECISION",
    "FAST_ARC_LENGTH_OPTIONS",
    "FAST_INTERSECTION_OPTIONS",
    "FAST_PRECISION",
    "GeomMath",
    "IntersectionEngine",
    "IntersectionOptions",
    "IntersectionRecord",
    "IntersectionStatus",
    "InvalidCurveError",
    "InvalidInputError",
    "InvalidParameterError",
    "InverseArcLengthResult",
    "PathLocation",
    "Precision",
    "VerificationReport",
]
