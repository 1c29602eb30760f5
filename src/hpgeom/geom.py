"""Handling 2D geometry over arbitrary-precision Scalars"""

from __future__ import annotations

from typing import Iterable, Tuple

from mpmath import mpf

from hpgeom.common import InvalidInputError, Point2D
from hpgeom.numeric import Precision


###############################################################################
# GeomMath
###############################################################################
class GeomMath:
    """Class to provide static vector helpers on Point2D tuples.

    All helpers stay in Scalar arithmetic; the precision is carried by the
    operands' MPContext, only square roots need an explicit Precision.
    """

    @staticmethod
    def add(a: Point2D, b: Point2D) -> Point2D:
        """Return a + b."""
        return (a[0] + b[0], a[1] + b[1])

    @staticmethod
    def sub(a: Point2D, b: Point2D) -> Point2D:
        """Return a - b."""
        return (a[0] - b[0], a[1] - b[1])

    @staticmethod
    def scale(a: Point2D, factor: mpf) -> Point2D:
        """Return factor * a."""
        return (a[0] * factor, a[1] * factor)

    @staticmethod
    def lerp(a: Point2D, b: Point2D, t: mpf) -> Point2D:
        """Linear interpolation (1 - t) * a + t * b."""
        return (a[0] + (b[0] - a[0]) * t, a[1] + (b[1] - a[1]) * t)

    @staticmethod
    def dot(a: Point2D, b: Point2D) -> mpf:
        """Dot product."""
        return a[0] * b[0] + a[1] * b[1]

    @staticmethod
    def cross(a: Point2D, b: Point2D) -> mpf:
        """z-component of the cross product (a.x * b.y - a.y * b.x)."""
        return a[0] * b[1] - a[1] * b[0]

    @staticmethod
    def norm_squared(a: Point2D) -> mpf:
        """Squared Euclidean length."""
        return a[0] * a[0] + a[1] * a[1]

    @staticmethod
    def norm(precision: Precision, a: Point2D) -> mpf:
        """Euclidean length."""
        return precision.sqrt(a[0] * a[0] + a[1] * a[1])

    @staticmethod
    def distance(precision: Precision, a: Point2D, b: Point2D) -> mpf:
        """Euclidean distance between two points."""
        dx = a[0] - b[0]
        dy = a[1] - b[1]
        return precision.sqrt(dx * dx + dy * dy)

    @staticmethod
    def perpendicular(a: Point2D) -> Point2D:
        """Vector rotated by +90 degrees: (-y, x)."""
        return (-a[1], a[0])

    @staticmethod
    def polyline_length(precision: Precision, points: Iterable[Point2D]) -> mpf:
        """Sum of the Euclidean lengths of consecutive point pairs."""
        total = precision.zero
        previous = None
        for point in points:
            if previous is not None:
                total += GeomMath.distance(precision, previous, point)
            previous = point
        return total


###############################################################################
# BBox
###############################################################################
class BBox:
    """
    Axis-aligned bounding box with Scalar coordinates.

    The box is normalized on construction so that xmin <= xmax and ymin <= ymax.

    Attributes:
        xmin (mpf): The minimum x-coordinate.
        ymin (mpf): The minimum y-coordinate.
        xmax (mpf): The maximum x-coordinate.
        ymax (mpf): The maximum y-coordinate.
    """

    __slots__ = ("_xmin", "_ymin", "_xmax", "_ymax")

    def __init__(self, xmin: mpf, ymin: mpf, xmax: mpf, ymax: mpf):
        if xmin > xmax:
            xmin, xmax = xmax, xmin
        if ymin > ymax:
            ymin, ymax = ymax, ymin
        self._xmin = xmin
        self._ymin = ymin
        self._xmax = xmax
        self._ymax = ymax

    @classmethod
    def from_points(cls, points: Iterable[Point2D]) -> BBox:
        """Smallest box containing all given points.

        Raises:
            InvalidInputError: if no points are given.
        """
        iterator = iter(points)
        try:
            first = next(iterator)
        except StopIteration as exc:
            raise InvalidInputError("Cannot build a bounding box from zero points") from exc
        xmin = xmax = first[0]
        ymin = ymax = first[1]
        for x, y in iterator:
            if x < xmin:
                xmin = x
            elif x > xmax:
                xmax = x
            if y < ymin:
                ymin = y
            elif y > ymax:
                ymax = y
        return cls(xmin, ymin, xmax, ymax)

    @property
    def xmin(self) -> mpf:
        """mpf: The minimum x-coordinate."""
        return self._xmin

    @property
    def ymin(self) -> mpf:
        """mpf: The minimum y-coordinate."""
        return self._ymin

    @property
    def xmax(self) -> mpf:
        """mpf: The maximum x-coordinate."""
        return self._xmax

    @property
    def ymax(self) -> mpf:
        """mpf: The maximum y-coordinate."""
        return self._ymax

    @property
    def extent(self) -> Tuple[mpf, mpf, mpf, mpf]:
        """The extent of the box as Tuple (xmin, ymin, xmax, ymax)."""
        return self._xmin, self._ymin, self._xmax, self._ymax

    @property
    def width(self) -> mpf:
        """mpf: The width of the box."""
        return self._xmax - self._xmin

    @property
    def height(self) -> mpf:
        """mpf: The height of the box."""
        return self._ymax - self._ymin

    @property
    def centroid(self) -> Point2D:
        """The centre of the box as (x, y)."""
        return (self._xmin + self._xmax) / 2, (self._ymin + self._ymax) / 2

    def overlaps(self, other: BBox, margin: mpf = 0) -> bool:
        """Return True if the boxes intersect or touch (optionally grown by ``margin``)."""
        return not (
            self._xmax + margin < other._xmin
            or other._xmax + margin < self._xmin
            or self._ymax + margin < other._ymin
            or other._ymax + margin < self._ymin
        )

    def contains(self, point: Point2D, margin: mpf = 0) -> bool:
        """Return True if the point lies inside the box grown by ``margin``."""
        return (
            self._xmin - margin <= point[0] <= self._xmax + margin
            and self._ymin - margin <= point[1] <= self._ymax + margin
        )

    def union(self, other: BBox) -> BBox:
        """Smallest box containing both boxes."""
        return BBox(
            min(self._xmin, other._xmin),
            min(self._ymin, other._ymin),
            max(self._xmax, other._xmax),
            max(self._ymax, other._ymax),
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BBox):
            return NotImplemented
        return self.extent == other.extent

    def __hash__(self) -> int:
        return hash(self.extent)

    def __repr__(self) -> str:
        return f"BBox(xmin={self.xmin}, ymin={self.ymin}, xmax={self.xmax}, ymax={self.ymax})"

    def to_dict(self) -> dict:
        """Convert the box to a dictionary of decimal strings."""
        return {
            "xmin": str(self.xmin),
            "ymin": str(self.ymin),
            "xmax": str(self.xmax),
            "ymax": str(self.ymax),
        }

    @classmethod
    def from_dict(cls, data: dict, precision: Precision) -> BBox:
        """Create a BBox from a dictionary, converting values at ``precision``."""
        return cls(
            xmin=precision.scalar(data.get("xmin", 0)),
            ymin=precision.scalar(data.get("ymin", 0)),
            xmax=precision.scalar(data.get("xmax", 0)),
            ymax=precision.scalar(data.get("ymax", 0)),
        )
