"""Custom exceptions for Fieldkit."""


class FieldkitError(Exception):
    """Base exception for all Fieldkit errors."""

    pass


class CameraAcquisitionError(FieldkitError):
    """Camera could not be opened or permission was denied."""

    def __init__(self, message: str = "Failed to acquire camera") -> None:
        self.message = message
        super().__init__(self.message)


class VideoStreamError(FieldkitError):
    """Error while reading frames from an open source."""

    def __init__(self, message: str = "Video stream error") -> None:
        self.message = message
        super().__init__(self.message)


class CalibrationError(FieldkitError):
    """Calibration process failed or invalid calibration data."""

    def __init__(self, message: str = "Calibration failed") -> None:
        self.message = message
        super().__init__(self.message)


class TrackingError(FieldkitError):
    """Tracker was given an unusable region or parameters."""

    def __init__(self, message: str = "Invalid tracking configuration") -> None:
        self.message = message
        super().__init__(self.message)


class SessionStateError(FieldkitError):
    """Session started twice or on a camera that is already in use."""

    def __init__(self, message: str = "Invalid session state") -> None:
        self.message = message
        super().__init__(self.message)


class InsufficientDataError(FieldkitError):
    """Not enough valid step-test rows to compute thresholds."""

    def __init__(
        self,
        message: str = (
            "Insufficient data. Please enter at least 2 complete rows "
            "with valid numbers (Min, HR, Lac)."
        ),
    ) -> None:
        self.message = message
        super().__init__(self.message)


class NumericalDegeneracyError(FieldkitError):
    """Curve fit is singular or otherwise numerically unusable."""

    def __init__(self, message: str = "Degenerate numerical problem") -> None:
        self.message = message
        super().__init__(self.message)


class PoseEstimationError(FieldkitError):
    """Pose estimation failed or returned invalid data."""

    def __init__(self, message: str = "Pose estimation failed") -> None:
        self.message = message
        super().__init__(self.message)
