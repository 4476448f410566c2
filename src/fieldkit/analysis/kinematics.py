"""Kinematic formulas shared by the jump, VBT and report code.

This module is pure logic with NO I/O and NO OpenCV imports.
"""

from __future__ import annotations

import math

from fieldkit.core.types import Landmark, LandmarkIndex, Pose

GRAVITY = 9.81  # m/s^2


def flight_time_to_height(flight_time_ms: float, gravity: float = GRAVITY) -> float:
    """Jump height from flight time, assuming takeoff and landing at the same height.

    h = g * t^2 / 8, with t in seconds.

    Args:
        flight_time_ms: Takeoff to landing in milliseconds
        gravity: Gravitational acceleration in m/s^2

    Returns:
        Jump height in centimeters
    """
    t = flight_time_ms / 1000.0
    return gravity * t * t / 8.0 * 100.0


def reactive_strength_index(flight_time_ms: float, contact_time_ms: float | None) -> float | None:
    """Flight time over ground contact time.

    Returns:
        RSI, or None when there is no positive contact time
    """
    if not contact_time_ms or contact_time_ms <= 0:
        return None
    return flight_time_ms / contact_time_ms


def instantaneous_velocity(dy: float, dt: float, scale: float = 1.0) -> float:
    """Velocity from a displacement over a time step.

    Args:
        dy: Displacement (normalized units)
        dt: Time step in seconds
        scale: Factor mapping normalized units/s to m/s

    Returns:
        Signed velocity (negative for upward image motion), 0.0 when dt is
        not positive
    """
    if dt <= 0:
        return 0.0
    return dy / dt * scale


def joint_angle(
    a: tuple[float, float],
    b: tuple[float, float],
    c: tuple[float, float],
) -> float:
    """Angle ABC in degrees, in [0, 180].

    Args:
        a: First point (e.g. hip)
        b: Vertex (e.g. knee)
        c: Third point (e.g. ankle)
    """
    radians = math.atan2(c[1] - b[1], c[0] - b[0]) - math.atan2(a[1] - b[1], a[0] - b[0])
    angle = abs(math.degrees(radians))
    if angle > 180.0:
        angle = 360.0 - angle
    return angle


def knee_angle(pose: Pose, min_visibility: float = 0.5) -> float | None:
    """Right knee angle from hip, knee and ankle landmarks.

    Returns:
        Angle in degrees, or None if any landmark is missing or not visible
    """
    points: list[Landmark] = []
    for index in (LandmarkIndex.RIGHT_HIP, LandmarkIndex.RIGHT_KNEE, LandmarkIndex.RIGHT_ANKLE):
        landmark = pose.get_landmark(index)
        if landmark is None or landmark.visibility <= min_visibility:
            return None
        points.append(landmark)

    hip, knee, ankle = points
    return joint_angle((hip.x, hip.y), (knee.x, knee.y), (ankle.x, ankle.y))


def velocity_loss_percent(first: float, last: float) -> float:
    """Drop from the first to the last rep's velocity, as a percentage of the first."""
    if first <= 0:
        return 0.0
    return (first - last) / first * 100.0


def percent_change(first: float, last: float) -> float:
    """Last value relative to the first, in percent (positive = increase)."""
    if first == 0:
        return 0.0
    return last / first * 100.0 - 100.0
