"""Core data types and structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto

import numpy as np
from numpy.typing import NDArray


class TrackingStrategy(str, Enum):
    """Pixel-scan strategies available to the tracker."""

    COLOR = "color"
    BRIGHTNESS = "brightness"
    MOTION = "motion"
    LOWEST_MOTION = "lowest_motion"
    EDGE = "edge"


class JumpMode(str, Enum):
    """Jump test variants."""

    CMJ = "cmj"
    RSI = "rsi"


class ThresholdMethod(str, Enum):
    """Lactate threshold detection methods."""

    FIXED = "fixed"
    BASELINE = "baseline"
    DMAX = "dmax"


@dataclass(frozen=True, slots=True)
class TrackingSample:
    """Tracked marker position for one frame.

    Coordinates are normalized [0, 1] relative to the full frame, not the ROI.
    """

    x: float
    y: float
    confidence: float

    def to_pixel(self, width: int, height: int) -> tuple[int, int]:
        """Convert normalized coordinates to pixel coordinates."""
        return int(self.x * width), int(self.y * height)


@dataclass(frozen=True, slots=True)
class ROI:
    """Pixel rectangle within a frame that the tracker analyses."""

    x: int
    y: int
    w: int
    h: int

    @classmethod
    def full(cls, width: int, height: int) -> ROI:
        """ROI covering the whole frame."""
        return cls(0, 0, width, height)

    @classmethod
    def from_fractions(
        cls,
        fx: float,
        fy: float,
        fw: float,
        fh: float,
        width: int,
        height: int,
    ) -> ROI:
        """Build an ROI from fractions of the frame size."""
        return cls(
            int(fx * width),
            int(fy * height),
            int(fw * width),
            int(fh * height),
        ).clamp(width, height)

    @classmethod
    def centered_square(cls, fraction: float, width: int, height: int) -> ROI:
        """Centered square whose side is a fraction of the shorter frame side."""
        side = int(min(width, height) * fraction)
        return cls((width - side) // 2, (height - side) // 2, side, side)

    def clamp(self, width: int, height: int) -> ROI:
        """Intersect with the frame bounds."""
        x0 = min(max(self.x, 0), width)
        y0 = min(max(self.y, 0), height)
        x1 = min(max(self.x + self.w, 0), width)
        y1 = min(max(self.y + self.h, 0), height)
        return ROI(x0, y0, x1 - x0, y1 - y0)

    @property
    def is_empty(self) -> bool:
        """True when the rectangle has no area."""
        return self.w <= 0 or self.h <= 0

    def crop(self, image: NDArray[np.uint8]) -> NDArray[np.uint8]:
        """View of the image pixels inside this ROI."""
        return image[self.y : self.y + self.h, self.x : self.x + self.w]


@dataclass(frozen=True, slots=True)
class ColorRange:
    """HSV bounds on the OpenCV scale (hue 0-180, saturation/value 0-255)."""

    h_min: float
    h_max: float
    s_min: float
    s_max: float
    v_min: float
    v_max: float

    def to_dict(self) -> dict[str, float]:
        """Serialize to a plain dict."""
        return {
            "h_min": self.h_min,
            "h_max": self.h_max,
            "s_min": self.s_min,
            "s_max": self.s_max,
            "v_min": self.v_min,
            "v_max": self.v_max,
        }

    @classmethod
    def from_dict(cls, data: dict[str, float]) -> ColorRange:
        """Deserialize from a plain dict."""
        return cls(
            h_min=float(data["h_min"]),
            h_max=float(data["h_max"]),
            s_min=float(data["s_min"]),
            s_max=float(data["s_max"]),
            v_min=float(data["v_min"]),
            v_max=float(data["v_max"]),
        )


COLOR_PRESETS: dict[str, ColorRange] = {
    "white": ColorRange(0, 180, 0, 40, 180, 255),
    "green": ColorRange(35, 85, 60, 255, 60, 255),
    "orange": ColorRange(5, 25, 100, 255, 100, 255),
}


@dataclass(slots=True)
class Frame:
    """A video frame with metadata.

    Attributes:
        image: RGB or RGBA image array
        timestamp: Frame timestamp in seconds (monotonic, session relative)
        index: Frame sequence number
    """

    image: NDArray[np.uint8]
    timestamp: float
    index: int

    @property
    def width(self) -> int:
        """Frame width in pixels."""
        return int(self.image.shape[1])

    @property
    def height(self) -> int:
        """Frame height in pixels."""
        return int(self.image.shape[0])

    @property
    def dimensions(self) -> tuple[int, int]:
        """Frame dimensions as (width, height)."""
        return self.width, self.height


@dataclass(frozen=True, slots=True)
class Landmark:
    """A single body landmark with normalized coordinates and visibility."""

    x: float
    y: float
    z: float
    visibility: float

    def to_pixel(self, width: int, height: int) -> tuple[int, int]:
        """Convert normalized coordinates to pixel coordinates."""
        return int(self.x * width), int(self.y * height)


class LandmarkIndex(Enum):
    """MediaPipe pose landmark indices used for the knee angle."""

    LEFT_HIP = 23
    RIGHT_HIP = 24
    LEFT_KNEE = 25
    RIGHT_KNEE = 26
    LEFT_ANKLE = 27
    RIGHT_ANKLE = 28


@dataclass(slots=True)
class Pose:
    """Landmarks reported by the pose service for one frame."""

    landmarks: dict[int, Landmark]
    timestamp: float
    frame_idx: int

    def get_landmark(self, index: LandmarkIndex) -> Landmark | None:
        """Get a specific landmark by its enum index."""
        return self.landmarks.get(index.value)


class PhysicsPhase(Enum):
    """States in the jump test state machine."""

    BASELINE = auto()
    GROUND = auto()
    FLIGHT = auto()


class RepPhase(Enum):
    """States in the VBT rep detector."""

    IDLE = auto()
    MOVING = auto()


@dataclass(frozen=True, slots=True)
class JumpData:
    """A completed, accepted jump.

    Attributes:
        height_cm: Jump height from flight time
        flight_time_ms: Takeoff to landing
        contact_time_ms: Ground contact before takeoff (0 when not measured)
        timestamp: Wall clock at landing, epoch milliseconds
        rsi: Reactive strength index when a valid contact time exists
    """

    height_cm: float
    flight_time_ms: float
    contact_time_ms: float
    timestamp: float
    rsi: float | None = None


@dataclass(frozen=True, slots=True)
class RepData:
    """A completed VBT repetition."""

    peak_velocity: float
    avg_velocity: float
    duration_s: float
    timestamp: float


@dataclass(slots=True)
class Session:
    """Finished tracking session handed to the reporting layer.

    Attributes:
        mode: Test mode ("cmj", "rsi" or "vbt")
        athlete_name: Athlete label
        date: ISO-8601 date/time the session ended
        events: Jumps or reps in completion order
    """

    mode: str
    athlete_name: str
    date: str
    events: list[JumpData | RepData] = field(default_factory=list)

    @property
    def event_count(self) -> int:
        """Number of recorded events."""
        return len(self.events)


@dataclass(frozen=True, slots=True)
class LiveSnapshot:
    """Low-frequency copy of live state for display."""

    phase: str
    value: float
    flight_time_ms: float
    contact_time_ms: float
    count: int
    confidence: float
    fps: float
    knee_angle: float | None = None


@dataclass(frozen=True, slots=True)
class InputRow:
    """Raw step-test row as typed by the user."""

    min: str
    sec: str
    hr: str
    lac: str


@dataclass(frozen=True, slots=True)
class ProcessedPoint:
    """Parsed step-test sample. Pace is decimal minutes per km."""

    pace_decimal: float
    hr: int
    lac: float


@dataclass(frozen=True, slots=True)
class ThresholdResult:
    """Pace, heart rate and lactate at a threshold."""

    pace_decimal: float
    hr: int
    lac: float


@dataclass(frozen=True, slots=True)
class PaceHr:
    """Pace and heart rate pair from an earlier test."""

    pace_decimal: float
    hr: int


@dataclass(frozen=True, slots=True)
class PreviousResultData:
    """Thresholds from a previous test, carried for comparison."""

    date: str
    aerobic: PaceHr
    anaerobic: PaceHr


@dataclass(frozen=True, slots=True)
class TestResult:
    """Threshold engine output."""

    __test__ = False

    athlete_name: str
    test_date: str
    method: ThresholdMethod
    points: list[ProcessedPoint]
    aerobic: ThresholdResult
    anaerobic: ThresholdResult
    min_hr: int
    max_hr: int
    max_lac: float
    previous: PreviousResultData | None = None
