"""Core infrastructure: config, types, exceptions, and logging."""

from fieldkit.core.config import Settings, get_settings
from fieldkit.core.exceptions import (
    CalibrationError,
    CameraAcquisitionError,
    FieldkitError,
    InsufficientDataError,
    NumericalDegeneracyError,
    PoseEstimationError,
    SessionStateError,
    TrackingError,
    VideoStreamError,
)
from fieldkit.core.logging import get_logger, setup_logging
from fieldkit.core.types import (
    ROI,
    ColorRange,
    Frame,
    JumpData,
    JumpMode,
    LiveSnapshot,
    PhysicsPhase,
    RepData,
    RepPhase,
    Session,
    TestResult,
    ThresholdMethod,
    ThresholdResult,
    TrackingSample,
    TrackingStrategy,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Types
    "ROI",
    "ColorRange",
    "Frame",
    "TrackingSample",
    "TrackingStrategy",
    "JumpMode",
    "PhysicsPhase",
    "RepPhase",
    "JumpData",
    "RepData",
    "Session",
    "LiveSnapshot",
    "ThresholdMethod",
    "ThresholdResult",
    "TestResult",
    # Exceptions
    "FieldkitError",
    "CameraAcquisitionError",
    "VideoStreamError",
    "CalibrationError",
    "TrackingError",
    "SessionStateError",
    "InsufficientDataError",
    "NumericalDegeneracyError",
    "PoseEstimationError",
    # Logging
    "setup_logging",
    "get_logger",
]
