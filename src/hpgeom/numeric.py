"""Arbitrary-precision Scalar handling.

All geometry arithmetic runs on mpmath multiprecision floats. Each
``Precision`` owns a private ``mpmath.ctx_mp.MPContext`` so the working
precision is an explicit value threaded through every call instead of the
process-wide ``mpmath.mp`` setting.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache
from typing import Iterable, Optional, Tuple

from mpmath import mpf
from mpmath.ctx_mp import MPContext

from hpgeom.common import InvalidInputError, Point2D, PointLike, ScalarLike
from hpgeom.consts import DEFAULT_DIGITS, FAST_DIGITS, MIN_DIGITS

logger = logging.getLogger(__name__)


@lru_cache(maxsize=None)
def _context(digits: int) -> MPContext:
    """Return the shared MPContext for the given number of significant digits.

    Contexts are created once and never re-configured afterwards, so sharing
    them between threads is safe.
    """
    ctx = MPContext()
    ctx.dps = digits
    return ctx


###############################################################################
# Precision
###############################################################################


@dataclass(frozen=True)
class Precision:
    """Working precision for all Scalar arithmetic.

    Attributes:
        digits: Number of significant decimal digits (>= 10).
    """

    digits: int = DEFAULT_DIGITS

    def __post_init__(self) -> None:
        if isinstance(self.digits, bool) or not isinstance(self.digits, int):
            raise InvalidInputError(f"Precision digits must be an int, got {self.digits!r}")
        if self.digits < MIN_DIGITS:
            raise InvalidInputError(f"Precision digits must be >= {MIN_DIGITS}, got {self.digits}")

    @property
    def ctx(self) -> MPContext:
        """MPContext: the context whose arithmetic runs at ``digits`` significant digits."""
        return _context(self.digits)

    @property
    def zero(self) -> mpf:
        """Scalar zero."""
        return self.ctx.mpf(0)

    @property
    def one(self) -> mpf:
        """Scalar one."""
        return self.ctx.mpf(1)

    @property
    def inf(self) -> mpf:
        """Scalar positive infinity."""
        return self.ctx.inf

    @property
    def epsilon(self) -> mpf:
        """Smallest meaningful relative difference, 10^-digits."""
        return self.ctx.mpf(10) ** (-self.digits)

    @property
    def tolerance_floor(self) -> mpf:
        """Finest tolerance the precision can honour, 10^(2-digits)."""
        return self.ctx.mpf(10) ** (2 - self.digits)

    def scalar(self, value: ScalarLike) -> mpf:
        """Normalize a caller supplied number to a Scalar at this precision.

        Args:
            value: int, float, decimal string, ``decimal.Decimal`` or an mpmath ``mpf``
                (from any context; it is rounded to this precision).

        Returns:
            mpf: the finite Scalar value

        Raises:
            InvalidInputError: for bool, None, unsupported types, unparsable strings or
                non-finite values.
        """
        if isinstance(value, bool) or value is None:
            raise InvalidInputError(f"Expected a number, got {value!r}")
        if isinstance(value, Decimal):
            value = str(value)
        if isinstance(value, str):
            text = value.strip()
            if not text:
                raise InvalidInputError("Expected a number, got an empty string")
            try:
                result = self.ctx.mpf(text)
            except ValueError as exc:
                raise InvalidInputError(f"Cannot convert {value!r} to a number") from exc
        elif isinstance(value, (int, float)) or hasattr(value, "_mpf_"):
            result = self.ctx.mpf(value)
        else:
            raise InvalidInputError(f"Unsupported number type {type(value).__name__}: {value!r}")
        if self.ctx.isinf(result) or self.ctx.isnan(result):
            raise InvalidInputError(f"Expected a finite number, got {value!r}")
        return result

    def point(self, value: PointLike) -> Point2D:
        """Normalize an (x, y) pair to a Point2D.

        Raises:
            InvalidInputError: if the value is not a pair of numbers.
        """
        if isinstance(value, (str, bytes)) or not hasattr(value, "__len__"):
            raise InvalidInputError(f"Expected an (x, y) pair, got {value!r}")
        if len(value) != 2:
            raise InvalidInputError(f"Expected an (x, y) pair, got {len(value)} values: {value!r}")
        return (self.scalar(value[0]), self.scalar(value[1]))

    def points(self, values: Iterable[PointLike]) -> Tuple[Point2D, ...]:
        """Normalize a sequence of (x, y) pairs."""
        return tuple(self.point(value) for value in values)

    def sqrt(self, value: mpf) -> mpf:
        """Square root at this precision."""
        return self.ctx.sqrt(value)

    def fabs(self, value: mpf) -> mpf:
        """Absolute value at this precision."""
        return self.ctx.fabs(value)

    def is_zero(self, value: mpf, eps: Optional[mpf] = None) -> bool:
        """Return True if ``|value|`` is below ``eps`` (exact zero test without eps)."""
        if eps is None:
            return value == 0
        return self.ctx.fabs(value) < eps

    def check_tolerance(self, tolerance: mpf, name: str = "tolerance") -> None:
        """Log a warning if ``tolerance`` is finer than this precision can honour."""
        if tolerance < self.tolerance_floor:
            logger.warning(
                "%s %s is finer than 1e%d supported by %d digits; results rely on depth/iteration bounds",
                name,
                self.ctx.nstr(tolerance, 5),
                2 - self.digits,
                self.digits,
            )

    @staticmethod
    def to_float(value: mpf) -> float:
        """Downcast a Scalar to float64 (display boundary only)."""
        return float(value)

    def format(self, value: mpf, digits: int = 20) -> str:
        """Format a Scalar with ``digits`` significant digits."""
        return self.ctx.nstr(value, digits)

    def to_dict(self) -> dict:
        """Convert the precision to a dictionary for serialization."""
        return {"digits": self.digits}

    @classmethod
    def from_dict(cls, data: dict) -> Precision:
        """Create a Precision from a dictionary."""
        return cls(digits=data.get("digits", DEFAULT_DIGITS))


DEFAULT_PRECISION = Precision(DEFAULT_DIGITS)
FAST_PRECISION = Precision(FAST_DIGITS)
