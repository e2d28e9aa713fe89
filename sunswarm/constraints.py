# sunswarm/constraints.py
"""
CONSTRAINTS: Feasibility Predicates over 2D Design Points
=========================================================

PURPOSE:
--------
A constraint answers one question: "can this 2D point be accepted as a valid
design position?" The optimizer asks it before spending an (expensive)
fitness evaluation on a candidate.

    constraint.contains(x, y) -> bool

Every implementation here is a STRICT interior test: a point lying exactly
on the boundary is rejected.

AVAILABLE BOUNDS:
-----------------
- RectangularBound: axis-aligned rectangle given by center and extents
- CircularBound:    disc given by center and radius
- PolygonalBound:   simple polygon given by its vertices (ray casting)
"""

from typing import List, Protocol, Sequence, Tuple, runtime_checkable

import numpy as np

from .geometry import Rectangle


@runtime_checkable
class Constraint(Protocol):
    """Anything with a ``contains(x, y)`` feasibility test."""

    def contains(self, x: float, y: float) -> bool:
        ...


class RectangularBound:
    """
    Rectangular feasibility window.

    Parameters:
    -----------
    cx, cy : float
        Center of the window
    width, height : float
        Extents of the window

    Example:
    --------
    >>> bound = RectangularBound(0.0, 0.0, 4.0, 2.0)
    >>> bound.contains(1.9, 0.9)
    True
    >>> bound.contains(2.0, 0.0)   # on the edge
    False
    """

    def __init__(self, cx: float, cy: float, width: float, height: float):
        self.rectangle = Rectangle.from_center(cx, cy, width, height)

    def contains(self, x: float, y: float) -> bool:
        return self.rectangle.contains(x, y)

    def __repr__(self) -> str:
        cx, cy = self.rectangle.center
        return (f"RectangularBound(cx={cx:g}, cy={cy:g}, "
                f"width={self.rectangle.width:g}, height={self.rectangle.height:g})")


class CircularBound:
    """Disc of the given radius; the circle itself is excluded."""

    def __init__(self, cx: float, cy: float, radius: float):
        if radius < 0:
            raise ValueError(f"radius must be non-negative, got {radius}")
        self.cx = cx
        self.cy = cy
        self.radius = radius

    def contains(self, x: float, y: float) -> bool:
        dx = x - self.cx
        dy = y - self.cy
        return dx * dx + dy * dy < self.radius * self.radius

    def __repr__(self) -> str:
        return f"CircularBound(cx={self.cx:g}, cy={self.cy:g}, radius={self.radius:g})"


class PolygonalBound:
    """
    Simple polygon given by its vertices in order (either winding).

    Uses the even-odd ray casting rule. Points on an edge are treated as
    outside so the test stays conservative like the other bounds.
    """

    def __init__(self, vertices: Sequence[Tuple[float, float]]):
        if len(vertices) < 3:
            raise ValueError(f"a polygon needs at least 3 vertices, got {len(vertices)}")
        self.vertices: List[Tuple[float, float]] = [(float(vx), float(vy)) for vx, vy in vertices]

    def bounds(self) -> Rectangle:
        """Axis-aligned bounding rectangle of the polygon."""
        xs = np.array([v[0] for v in self.vertices])
        ys = np.array([v[1] for v in self.vertices])
        return Rectangle(xs.min(), ys.min(), xs.max() - xs.min(), ys.max() - ys.min())

    def _on_edge(self, x: float, y: float, tol: float = 1e-12) -> bool:
        n = len(self.vertices)
        for i in range(n):
            x1, y1 = self.vertices[i]
            x2, y2 = self.vertices[(i + 1) % n]
            cross = (x2 - x1) * (y - y1) - (y2 - y1) * (x - x1)
            if abs(cross) > tol:
                continue
            if min(x1, x2) - tol <= x <= max(x1, x2) + tol and min(y1, y2) - tol <= y <= max(y1, y2) + tol:
                return True
        return False

    def contains(self, x: float, y: float) -> bool:
        if self._on_edge(x, y):
            return False
        inside = False
        n = len(self.vertices)
        j = n - 1
        for i in range(n):
            xi, yi = self.vertices[i]
            xj, yj = self.vertices[j]
            if (yi > y) != (yj > y):
                x_cross = (xj - xi) * (y - yi) / (yj - yi) + xi
                if x < x_cross:
                    inside = not inside
            j = i
        return inside

    def __repr__(self) -> str:
        return f"PolygonalBound({len(self.vertices)} vertices)"
