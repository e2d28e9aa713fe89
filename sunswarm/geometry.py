# sunswarm/geometry.py
"""Axis-aligned rectangle used to bound feasible design points."""

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class Rectangle:
    """
    Axis-aligned rectangle given by its lower-left corner and extents.

    Attributes:
    -----------
    x, y : float
        Lower-left corner
    width, height : float
        Extents along x and y (must be >= 0)
    """
    x: float
    y: float
    width: float
    height: float

    def __post_init__(self):
        if self.width < 0:
            raise ValueError(f"width must be non-negative, got {self.width}")
        if self.height < 0:
            raise ValueError(f"height must be non-negative, got {self.height}")

    @classmethod
    def from_center(cls, cx: float, cy: float, width: float, height: float) -> "Rectangle":
        return cls(cx - 0.5 * width, cy - 0.5 * height, width, height)

    @property
    def min_x(self) -> float:
        return self.x

    @property
    def max_x(self) -> float:
        return self.x + self.width

    @property
    def min_y(self) -> float:
        return self.y

    @property
    def max_y(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x + 0.5 * self.width, self.y + 0.5 * self.height)

    def contains(self, x: float, y: float) -> bool:
        """
        Strict interior test. Points on the boundary are NOT contained,
        so a candidate sitting exactly on an edge is rejected.
        """
        return self.min_x < x < self.max_x and self.min_y < y < self.max_y
