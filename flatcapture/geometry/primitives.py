"""Geometry primitives shared by detection, fallback synthesis and warping.

All points use the detector's convention: origin at the bottom-left corner of
the image, y growing upwards. Conversion to numpy row/column order happens only
inside the warp renderer.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)

# Cross products below this magnitude are treated as collinear (in px^2)
_COLLINEAR_EPSILON = 1e-6


@dataclass(frozen=True)
class Point:
    """A 2D point. Normalized points live in [0, 1]^2, pixel points in image units."""

    x: float
    y: float


@dataclass(frozen=True)
class Size:
    """Width and height of an image or region, in pixels."""

    width: float
    height: float


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle; origin is the bottom-left corner (y-up)."""

    x: float
    y: float
    width: float
    height: float

    @property
    def size(self) -> Size:
        return Size(self.width, self.height)

    def translated_to_origin(self) -> "Rect":
        """Return the same rectangle moved so its origin is (0, 0)."""
        return Rect(0.0, 0.0, self.width, self.height)


@dataclass(frozen=True)
class Quadrilateral:
    """Four ordered corners describing a document boundary."""

    top_left: Point
    top_right: Point
    bottom_left: Point
    bottom_right: Point

    def ring(self) -> Tuple[Point, Point, Point, Point]:
        """Corners in traversal order TL -> TR -> BR -> BL."""
        return (self.top_left, self.top_right, self.bottom_right, self.bottom_left)

    def as_array(self) -> np.ndarray:
        """Corners as a (4, 2) float32 array ordered [TL, TR, BR, BL]."""
        return np.array([[p.x, p.y] for p in self.ring()], dtype=np.float32)

    def area(self) -> float:
        """Absolute polygon area via the shoelace formula.

        The lobes of a self-intersecting quad cancel, so this is not a
        degeneracy test.
        """
        pts = self.ring()
        total = 0.0
        for i in range(4):
            p, q = pts[i], pts[(i + 1) % 4]
            total += p.x * q.y - q.x * p.y
        return abs(total) / 2.0

    def bounding_rect(self) -> Rect:
        xs = [p.x for p in self.ring()]
        ys = [p.y for p in self.ring()]
        return Rect(min(xs), min(ys), max(xs) - min(xs), max(ys) - min(ys))

    def scaled(self, extent: Size) -> "Quadrilateral":
        """Scale normalized corners to pixel corners."""
        return Quadrilateral(
            top_left=scale(self.top_left, extent),
            top_right=scale(self.top_right, extent),
            bottom_left=scale(self.bottom_left, extent),
            bottom_right=scale(self.bottom_right, extent),
        )

    def is_degenerate(self) -> bool:
        """True when any three corners are collinear or coincide.

        Every zero-area quad that is not self-intersecting fails this test.
        """
        pts = self.ring()
        for skip in range(4):
            a, b, c = [pts[i] for i in range(4) if i != skip]
            cross = (b.x - a.x) * (c.y - a.y) - (b.y - a.y) * (c.x - a.x)
            if abs(cross) <= _COLLINEAR_EPSILON:
                return True

        return False


def scale(point: Point, extent: Size) -> Point:
    """Scale a normalized point by the image extent. No rounding is applied."""
    return Point(point.x * extent.width, point.y * extent.height)


def inset(rect: Rect, dx: float, dy: float) -> Optional[Rect]:
    """Shrink a rectangle by dx on the left and right, dy on the top and bottom.

    Returns:
        The inset rectangle, or None when nothing with positive area remains.
    """
    width = rect.width - 2 * dx
    height = rect.height - 2 * dy

    if width <= 0 or height <= 0:
        logger.debug(f"Inset of {rect} by ({dx}, {dy}) leaves no area")
        return None

    return Rect(rect.x + dx, rect.y + dy, width, height)
