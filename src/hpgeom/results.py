"""Immutable result records shared by the arc-length and intersection engines."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional, Tuple

from mpmath import mpf

from hpgeom.common import IntersectionStatus, Point2D


###############################################################################
# Arc length
###############################################################################


@dataclass(frozen=True)
class InverseArcLengthResult:
    """Result of solving arc_length(0, t) = length for t.

    Attributes:
        t: Parameter found (in [0, 1]).
        length: Arc length from 0 to ``t`` as evaluated at the final iterate.
        iterations: Number of Newton/bisection iterations performed.
        converged: False if the iteration budget ran out before the tolerance was met.
    """

    t: mpf
    length: mpf
    iterations: int
    converged: bool

    def to_dict(self) -> dict:
        """Convert the result to a dictionary."""
        return {
            "t": str(self.t),
            "length": str(self.length),
            "iterations": self.iterations,
            "converged": self.converged,
        }


@dataclass(frozen=True)
class PathLocation:
    """Position along a path: segment index, local parameter and length from the path start."""

    segment_index: int
    t: mpf
    length: mpf
    converged: bool = True

    def to_dict(self) -> dict:
        """Convert the location to a dictionary."""
        return {
            "segment_index": self.segment_index,
            "t": str(self.t),
            "length": str(self.length),
            "converged": self.converged,
        }


###############################################################################
# Intersections
###############################################################################


@dataclass(frozen=True)
class IntersectionRecord:
    """
    One intersection between two curves/lines, or between two parts of one curve.

    Attributes:
        t1: Parameter on the first curve (the smaller one for self-intersections).
        t2: Parameter on the second curve (the larger one for self-intersections).
        point: The intersection point.
        error: Distance between B1(t1) and B2(t2), if computed.
        status: EXACT, REFINED or APPROXIMATE.
        segment1: Segment index on the first path (path operations only).
        segment2: Segment index on the second path (path operations only).
    """

    t1: mpf
    t2: mpf
    point: Point2D
    error: Optional[mpf] = None
    status: IntersectionStatus = IntersectionStatus.REFINED
    segment1: Optional[int] = None
    segment2: Optional[int] = None

    @property
    def converged(self) -> bool:
        """bool: False only for the low-confidence APPROXIMATE fallback."""
        return self.status is not IntersectionStatus.APPROXIMATE

    def with_segments(self, segment1: int, segment2: int) -> IntersectionRecord:
        """Return a copy tagged with path segment indices."""
        return IntersectionRecord(self.t1, self.t2, self.point, self.error, self.status, segment1, segment2)

    def to_dict(self) -> dict:
        """Convert the record to a dictionary of decimal strings."""
        data = {
            "t1": str(self.t1),
            "t2": str(self.t2),
            "point": (str(self.point[0]), str(self.point[1])),
            "error": None if self.error is None else str(self.error),
            "status": self.status.name,
        }
        if self.segment1 is not None:
            data["segment1"] = self.segment1
            data["segment2"] = self.segment2
        return data


###############################################################################
# Verification
###############################################################################


@dataclass(frozen=True)
class CheckResult:
    """Outcome of one verification check.

    Attributes:
        name: Name of the check.
        valid: True if every condition of the check holds.
        details: Measured quantities (errors, bounds, counts).
        errors: Human readable descriptions of failed conditions.
    """

    name: str
    valid: bool
    details: Dict[str, Any] = field(default_factory=dict)
    errors: Tuple[str, ...] = ()


@dataclass(frozen=True)
class VerificationReport:
    """Collection of check results; ``valid`` only if every check passed."""

    name: str
    checks: Tuple[CheckResult, ...]
    errors: Tuple[str, ...] = ()

    @property
    def valid(self) -> bool:
        """bool: True if every check passed and no check raised."""
        return not self.errors and all(check.valid for check in self.checks)

    @property
    def failed(self) -> Tuple[CheckResult, ...]:
        """Tuple[CheckResult, ...]: the checks that did not pass."""
        return tuple(check for check in self.checks if not check.valid)

    def __getitem__(self, name: str) -> CheckResult:
        for check in self.checks:
            if check.name == name:
                return check
        raise KeyError(name)

    def __iter__(self) -> Iterator[CheckResult]:
        return iter(self.checks)

    def __len__(self) -> int:
        return len(self.checks)

    def summary(self) -> str:
        """One line per check with PASS/FAIL."""
        lines = [f"{self.name}: {'PASS' if self.valid else 'FAIL'}"]
        for check in self.checks:
            lines.append(f"  {'PASS' if check.valid else 'FAIL'} {check.name}")
            for error in check.errors:
                lines.append(f"       {error}")
        for error in self.errors:
            lines.append(f"  ERROR {error}")
        return "\n".join(lines)
