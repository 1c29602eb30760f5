"""Paths made of Bezier curve segments"""

from __future__ import annotations

from typing import Iterator, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray

from hpgeom.bezier import BezierCurve
from hpgeom.common import CurveLike, InvalidInputError, PathLike, Point2D, ScalarLike
from hpgeom.geom import BBox, GeomMath
from hpgeom.numeric import DEFAULT_PRECISION, Precision


###############################################################################
# BezierPath
###############################################################################
class BezierPath:
    """Immutable ordered sequence of Bezier segments joined end to start.

    Segment i and i + 1 are treated as adjacent; for a closed path the last
    and the first segment are adjacent as well.
    """

    __slots__ = ("_segments", "_precision")

    def __init__(self, segments: Sequence[CurveLike], precision: Precision = DEFAULT_PRECISION):
        """Initialize the path.

        Args:
            segments: BezierCurve objects or control-point sequences.
            precision: Working precision; segments are converted to it.

        Raises:
            InvalidInputError: if no segments are given.
            InvalidCurveError: if a segment has fewer than 2 control points.
        """
        if isinstance(segments, (str, bytes)) or not hasattr(segments, "__len__"):
            raise InvalidInputError(f"A path must be a sequence of segments, got {segments!r}")
        if len(segments) == 0:
            raise InvalidInputError("A path needs at least one segment")
        self._segments: Tuple[BezierCurve, ...] = tuple(BezierCurve.coerce(s, precision) for s in segments)
        self._precision = precision

    @classmethod
    def coerce(cls, path: PathLike, precision: Precision = DEFAULT_PRECISION) -> BezierPath:
        """Return ``path`` as a BezierPath at ``precision`` (no copy if it already is one)."""
        if isinstance(path, BezierPath) and path.precision == precision:
            return path
        return cls(path, precision)

    @property
    def segments(self) -> Tuple[BezierCurve, ...]:
        """Tuple[BezierCurve, ...]: the segments."""
        return self._segments

    @property
    def precision(self) -> Precision:
        """Precision: working precision of the path."""
        return self._precision

    @property
    def start(self) -> Point2D:
        """Point2D: start point of the first segment."""
        return self._segments[0].start

    @property
    def end(self) -> Point2D:
        """Point2D: end point of the last segment."""
        return self._segments[-1].end

    def __len__(self) -> int:
        return len(self._segments)

    def __iter__(self) -> Iterator[BezierCurve]:
        return iter(self._segments)

    def __getitem__(self, index: int) -> BezierCurve:
        return self._segments[index]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BezierPath):
            return NotImplemented
        return self._segments == other._segments

    def __hash__(self) -> int:
        return hash(self._segments)

    def __repr__(self) -> str:
        return f"BezierPath(segments={len(self)}, digits={self._precision.digits})"

    def is_closed(self, tolerance: ScalarLike = 0) -> bool:
        """Return True if the path ends where it starts (within ``tolerance``)."""
        return GeomMath.distance(self._precision, self.start, self.end) <= self._precision.scalar(tolerance)

    def is_connected(self, tolerance: ScalarLike = 0) -> bool:
        """Return True if every segment starts where the previous one ends (within ``tolerance``)."""
        tol = self._precision.scalar(tolerance)
        return all(
            GeomMath.distance(self._precision, a.end, b.start) <= tol
            for a, b in zip(self._segments, self._segments[1:])
        )

    def bounding_box(self) -> BBox:
        """Exact bounding box of all segments."""
        box = self._segments[0].bounding_box()
        for segment in self._segments[1:]:
            box = box.union(segment.bounding_box())
        return box

    def to_numpy(self, steps_per_segment: int = 64) -> NDArray[np.float64]:
        """Polygonize all segments into one float64 polyline of shape (n, 2).

        The first sample of every following segment is dropped, it repeats
        the previous end point on connected paths.
        """
        parts = [self._segments[0].to_numpy(steps_per_segment)]
        for segment in self._segments[1:]:
            parts.append(segment.to_numpy(steps_per_segment)[1:])
        return np.concatenate(parts, axis=0)
