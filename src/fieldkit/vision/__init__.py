"""Computer vision operations: marker tracking, calibration, filtering, and overlay.

The MediaPipe pose landmarker lives in `fieldkit.vision.pose` and is
imported only when pose estimation is enabled.
"""

from fieldkit.vision.calibration import BaselineEstimator, ColorCalibrator
from fieldkit.vision.filters import SmoothingFilter
from fieldkit.vision.overlay import OverlayRenderer
from fieldkit.vision.tracking import FrameTracker, TrackingParams, track

__all__ = [
    "FrameTracker",
    "TrackingParams",
    "track",
    "ColorCalibrator",
    "BaselineEstimator",
    "SmoothingFilter",
    "OverlayRenderer",
]
