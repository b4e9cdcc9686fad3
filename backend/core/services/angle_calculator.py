"""
Angle Calculator Service

Planar geometry used by the swing metrics and the phase segmenter.
All angles are returned in degrees.

This is pure mathematics - no external dependencies except numpy.
"""

import math
from typing import Optional, Sequence, Tuple, Union

import numpy as np

from ..domain.pose import Keypoint

Point = Tuple[float, float]
PointLike = Union[Keypoint, Point]


def _xy(point: PointLike) -> np.ndarray:
    if isinstance(point, Keypoint):
        return np.array([point.x, point.y], dtype=float)
    return np.array([point[0], point[1]], dtype=float)


class AngleCalculator:
    """
    Calculates biomechanical angles from keypoints.

    Points may be Keypoint objects or plain (x, y) tuples in image
    coordinates (y grows downward). Every method returns None instead
    of raising when the geometry is degenerate (zero-length vectors).

    All methods are static - no state needed.
    """

    # -------------------------------------------------------------------------
    # Core Angle Calculations
    # -------------------------------------------------------------------------

    @staticmethod
    def angle_between_vectors(v1: Sequence[float], v2: Sequence[float]) -> Optional[float]:
        """
        Unsigned angle between two 2D vectors.

        Returns:
            Angle in degrees (0-180), or None if either vector has zero length
        """
        a = np.asarray(v1, dtype=float)
        b = np.asarray(v2, dtype=float)
        norm = np.linalg.norm(a) * np.linalg.norm(b)
        if norm == 0:
            return None

        # Clamp to valid range (handles floating point errors)
        cos_angle = np.clip(np.dot(a, b) / norm, -1.0, 1.0)
        return float(np.degrees(np.arccos(cos_angle)))

    @staticmethod
    def angle_from_vertical(bottom: PointLike, top: PointLike) -> Optional[float]:
        """
        Signed lean of the segment bottom -> top away from vertical.

        Returns:
            Degrees in (-180, 180]; 0 = straight up, positive = leaning
            toward +x. None if the points coincide.
        """
        dx, dy = _xy(top) - _xy(bottom)
        if dx == 0 and dy == 0:
            return None
        # Image y grows downward, so "up" is -y
        return float(math.degrees(math.atan2(dx, -dy)))

    @staticmethod
    def angle_from_horizontal(p1: PointLike, p2: PointLike) -> Optional[float]:
        """
        Tilt of the line p1 -> p2 relative to horizontal.

        Returns:
            Degrees in [0, 90]; 0 = level line. None if the points coincide.
        """
        dx, dy = _xy(p2) - _xy(p1)
        if dx == 0 and dy == 0:
            return None
        angle = abs(math.degrees(math.atan2(dy, dx)))
        return float(min(angle, 180.0 - angle))

    @staticmethod
    def trajectory_angle(start: PointLike, end: PointLike) -> Optional[float]:
        """
        Direction of travel from start to end.

        Returns:
            Degrees above the horizontal (positive = moving upward in the
            scene), measured against the direction of horizontal travel.
            None if the point did not move.
        """
        dx, dy = _xy(end) - _xy(start)
        if dx == 0 and dy == 0:
            return None
        return float(math.degrees(math.atan2(-dy, abs(dx))))

    # -------------------------------------------------------------------------
    # Utility Methods
    # -------------------------------------------------------------------------

    @staticmethod
    def calculate_distance(p1: Optional[PointLike], p2: Optional[PointLike]) -> Optional[float]:
        """Calculate 2D distance between two points."""
        if p1 is None or p2 is None:
            return None
        return float(np.linalg.norm(_xy(p1) - _xy(p2)))

    @staticmethod
    def calculate_midpoint(
        p1: Optional[PointLike],
        p2: Optional[PointLike]
    ) -> Optional[Point]:
        """Calculate midpoint between two points."""
        if p1 is None or p2 is None:
            return None
        mid = (_xy(p1) + _xy(p2)) / 2
        return (float(mid[0]), float(mid[1]))

    @staticmethod
    def centroid(points: Sequence[PointLike]) -> Optional[Point]:
        """Average position of one or more points."""
        if not points:
            return None
        mean = np.mean([_xy(p) for p in points], axis=0)
        return (float(mean[0]), float(mean[1]))
