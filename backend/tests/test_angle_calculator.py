"""Tests for the planar geometry helpers."""

import pytest

from core.domain import BodyPart, Keypoint
from core.services import AngleCalculator


def test_angle_between_vectors():
    assert AngleCalculator.angle_between_vectors([1, 0], [0, 2]) == pytest.approx(90.0)
    assert AngleCalculator.angle_between_vectors([1, 0], [-3, 0]) == pytest.approx(180.0)
    assert AngleCalculator.angle_between_vectors([0, 0], [1, 1]) is None


def test_angle_from_vertical_is_signed():
    assert AngleCalculator.angle_from_vertical((0, 10), (0, 0)) == pytest.approx(0.0)
    assert AngleCalculator.angle_from_vertical((0, 5), (5, 0)) == pytest.approx(45.0)
    assert AngleCalculator.angle_from_vertical((5, 5), (0, 0)) == pytest.approx(-45.0)
    assert AngleCalculator.angle_from_vertical((1, 1), (1, 1)) is None


def test_angle_from_horizontal_ignores_direction():
    assert AngleCalculator.angle_from_horizontal((0, 0), (10, -10)) == pytest.approx(45.0)
    assert AngleCalculator.angle_from_horizontal((0, 0), (-10, 0)) == pytest.approx(0.0)


def test_trajectory_angle_positive_when_moving_up():
    assert AngleCalculator.trajectory_angle((10, 10), (0, 0)) == pytest.approx(45.0)
    assert AngleCalculator.trajectory_angle((0, 0), (10, 10)) == pytest.approx(-45.0)
    assert AngleCalculator.trajectory_angle((2, 2), (2, 2)) is None


def test_distance_accepts_keypoints_and_tuples():
    nose = Keypoint(BodyPart.NOSE, 3.0, 4.0, 0.9)

    assert AngleCalculator.calculate_distance((0, 0), nose) == pytest.approx(5.0)
    assert AngleCalculator.calculate_distance(nose, None) is None


def test_midpoint_and_centroid():
    assert AngleCalculator.calculate_midpoint((0, 0), (4, 2)) == (2.0, 1.0)
    assert AngleCalculator.calculate_midpoint(None, (4, 2)) is None
    assert AngleCalculator.centroid([(0, 0), (6, 0), (0, 3)]) == pytest.approx((2.0, 1.0))
    assert AngleCalculator.centroid([]) is None
