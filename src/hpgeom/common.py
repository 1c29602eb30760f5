"""Central module containing types, enums and the error taxonomy for high-precision geometry."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum, auto
from typing import TYPE_CHECKING, Sequence, Tuple, Union

from mpmath import mpf

if TYPE_CHECKING:
    from hpgeom.bezier import BezierCurve
    from hpgeom.path import BezierPath

###############################################################################
# Types
###############################################################################

# Scalar: multiprecision float bound to an MPContext, see hpgeom.numeric.Precision
Scalar = mpf

# Values accepted at the API boundary and normalized to Scalar immediately
ScalarLike = Union[int, float, str, Decimal, mpf]

Point2D = Tuple[mpf, mpf]
PointLike = Union[Sequence[ScalarLike], Tuple[ScalarLike, ScalarLike]]

CurveLike = Union["BezierCurve", Sequence[PointLike]]
PathLike = Union["BezierPath", Sequence[CurveLike]]


###############################################################################
# Errors
###############################################################################


class InvalidInputError(ValueError):
    """Structural precondition violated by the caller (never recovered internally)."""


class InvalidCurveError(InvalidInputError):
    """Curve with fewer than two control points or malformed control points."""


class InvalidParameterError(InvalidInputError):
    """Required parameter outside its valid range (t, target length, sample count, ...)."""


###############################################################################
# Enums
###############################################################################


class IntersectionStatus(Enum):
    """Confidence of an intersection record.

    EXACT: closed-form solution or an exact hit while sampling.
    REFINED: Newton-Raphson or bisection met the requested tolerance.
    APPROXIMATE: subdivision hit its depth bound (or refinement failed) and the
        record holds the midpoint of the remaining parameter windows. Inspect
        ``error`` before relying on it.
    """

    EXACT = auto()
    REFINED = auto()
    APPROXIMATE = auto()
