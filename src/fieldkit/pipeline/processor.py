"""Per-frame pipeline: track -> physics -> event, plus the optional pose pass."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import numpy as np

from fieldkit.analysis.jump import JumpPhysics
from fieldkit.analysis.kinematics import knee_angle
from fieldkit.analysis.vbt import RepDetector
from fieldkit.core.config import JumpDetectionSettings, Settings, get_settings
from fieldkit.core.logging import get_logger
from fieldkit.core.types import (
    COLOR_PRESETS,
    Frame,
    JumpData,
    JumpMode,
    LiveSnapshot,
    Pose,
    RepData,
    TrackingSample,
)
from fieldkit.vision.overlay import OverlayRenderer
from fieldkit.vision.tracking import FrameTracker, TrackingParams

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = get_logger(__name__)

MODES = ("cmj", "rsi", "vbt")


class PoseService(Protocol):
    """Pose estimator used for the knee angle readout."""

    def estimate(self, frame: Frame) -> Pose | None: ...

    def close(self) -> None: ...


@dataclass
class ProcessedFrame:
    """Result of processing a single frame."""

    frame: Frame
    sample: TrackingSample | None
    event: JumpData | RepData | None
    phase: str
    set_complete: bool = False
    pose: Pose | None = None
    knee_angle: float | None = None


class FrameProcessor:
    """Runs one frame through tracking and the mode's event detector.

    Coordinates:
    - Marker tracking (FrameTracker)
    - Jump physics (cmj, rsi) or rep detection (vbt)
    - Optional pose estimation for the knee angle

    process_frame is called from the frame loop only. snapshot() may be
    called from the UI timer thread; both take the same lock so the
    snapshot never sees a half-applied frame.
    """

    def __init__(
        self,
        mode: str = "cmj",
        settings: Settings | None = None,
        tracker: FrameTracker | None = None,
        pose_service: PoseService | None = None,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize processor.

        Args:
            mode: "cmj", "rsi" or "vbt"
            settings: Application settings (uses defaults if None)
            tracker: Marker tracker (built from settings if None)
            pose_service: Optional pose estimator
            wall_clock: Seconds since the epoch, stamped on events
        """
        if mode not in MODES:
            raise ValueError(f"Unknown mode {mode!r}, expected one of {MODES}")

        self.mode = mode
        self.settings = settings or get_settings()
        tracking = self.settings.tracking

        self.tracker = tracker or FrameTracker(
            TrackingParams.from_settings(tracking, COLOR_PRESETS[tracking.color_preset]),
            roi_fractions=(tracking.roi_x, tracking.roi_y, tracking.roi_w, tracking.roi_h),
        )
        self._pose_service = pose_service
        self._overlay = OverlayRenderer(self.settings.ui)

        self._detector: JumpPhysics | RepDetector
        if mode == "vbt":
            self._detector = RepDetector(self.settings.vbt, tracking.min_confidence, wall_clock)
        else:
            jump_settings = self.settings.jump
            if jump_settings.mode != JumpMode(mode):
                jump_settings = JumpDetectionSettings.for_mode(mode)
            self._detector = JumpPhysics(jump_settings, tracking.min_confidence, wall_clock)

        self._lock = threading.Lock()
        self._events: list[JumpData | RepData] = []
        self._last_confidence = 0.0
        self._knee_angle: float | None = None

    @property
    def jump_physics(self) -> JumpPhysics | None:
        """Jump state machine (jump modes only)."""
        return self._detector if isinstance(self._detector, JumpPhysics) else None

    @property
    def rep_detector(self) -> RepDetector | None:
        """Rep detector (vbt mode only)."""
        return self._detector if isinstance(self._detector, RepDetector) else None

    @property
    def auto_stop_ms(self) -> float | None:
        """Silence after the last jump that ends the session (jump modes only)."""
        if isinstance(self._detector, JumpPhysics):
            return self._detector.settings.auto_stop_ms
        return None

    @property
    def events(self) -> list[JumpData | RepData]:
        """Recorded events in completion order."""
        with self._lock:
            return list(self._events)

    @property
    def event_count(self) -> int:
        """Number of recorded events."""
        with self._lock:
            return len(self._events)

    @property
    def phase(self) -> str:
        """Current detector phase name."""
        return self._detector.phase.name

    def process_frame(self, frame: Frame) -> ProcessedFrame:
        """Process a single frame through the pipeline.

        Args:
            frame: Input video frame

        Returns:
            ProcessedFrame with the sample, any completed event and the phase
        """
        sample = self.tracker.track(frame)

        pose = None
        angle = None
        if self._pose_service is not None:
            pose = self._pose_service.estimate(frame)
            if pose is not None:
                angle = knee_angle(pose, self.settings.pose.min_visibility)

        with self._lock:
            detector = self._detector
            event: JumpData | RepData | None = detector.update(sample, frame.timestamp)
            set_complete = isinstance(detector, RepDetector) and detector.set_complete

            if event is not None:
                self._events.append(event)
            if sample is not None:
                self._last_confidence = sample.confidence
            if angle is not None:
                self._knee_angle = angle

            phase = self.phase

        return ProcessedFrame(
            frame=frame,
            sample=sample,
            event=event,
            phase=phase,
            set_complete=set_complete,
            pose=pose,
            knee_angle=angle,
        )

    def snapshot(self, fps: float = 0.0) -> LiveSnapshot:
        """Copy live state for display. Never mutates detector state."""
        with self._lock:
            detector = self._detector
            if isinstance(detector, JumpPhysics):
                state = detector.state
                last = detector.last_jump
                return LiveSnapshot(
                    phase=state.phase.name,
                    value=state.last_height_cm,
                    flight_time_ms=state.last_flight_ms,
                    contact_time_ms=last.contact_time_ms if last is not None else 0.0,
                    count=len(self._events),
                    confidence=self._last_confidence,
                    fps=fps,
                    knee_angle=self._knee_angle,
                )

            return LiveSnapshot(
                phase=detector.phase.name,
                value=detector.current_velocity,
                flight_time_ms=0.0,
                contact_time_ms=0.0,
                count=len(self._events),
                confidence=self._last_confidence,
                fps=fps,
                knee_angle=self._knee_angle,
            )

    def render(self, processed: ProcessedFrame) -> NDArray[np.uint8]:
        """Draw the preview overlay for a processed frame."""
        baseline_y = None
        threshold = 0.0
        if isinstance(self._detector, JumpPhysics):
            baseline_y = self._detector.baseline_y
            threshold = self._detector.settings.threshold

        return self._overlay.render(
            processed.frame,
            roi=self.tracker.roi_for(processed.frame),
            sample=processed.sample,
            baseline_y=baseline_y,
            threshold=threshold,
            pose=processed.pose,
            phase=processed.phase,
        )

    def shutdown(self) -> None:
        """Release the pose service."""
        if self._pose_service is not None:
            self._pose_service.close()
            logger.info("Pose service closed")
