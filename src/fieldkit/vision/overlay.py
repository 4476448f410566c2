"""Preview overlays: ROI, tracked marker, baseline and leg skeleton.

Frames are RGB, so every colour below is (R, G, B).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import cv2
import numpy as np

from fieldkit.core.config import UISettings
from fieldkit.core.types import ROI, Frame, LandmarkIndex, PhysicsPhase, Pose, TrackingSample

if TYPE_CHECKING:
    from numpy.typing import NDArray

# Leg chain used for the knee angle
LEG_CONNECTIONS = [
    (LandmarkIndex.LEFT_HIP.value, LandmarkIndex.RIGHT_HIP.value),
    (LandmarkIndex.LEFT_HIP.value, LandmarkIndex.LEFT_KNEE.value),
    (LandmarkIndex.LEFT_KNEE.value, LandmarkIndex.LEFT_ANKLE.value),
    (LandmarkIndex.RIGHT_HIP.value, LandmarkIndex.RIGHT_KNEE.value),
    (LandmarkIndex.RIGHT_KNEE.value, LandmarkIndex.RIGHT_ANKLE.value),
]

COLOR_ROI = (255, 255, 0)  # Yellow
COLOR_MARKER = (0, 255, 0)  # Green
COLOR_BASELINE = (255, 0, 255)  # Magenta
COLOR_SKELETON = (0, 0, 255)  # Blue
COLOR_LANDMARK = (255, 255, 255)
COLOR_TEXT = (255, 255, 255)
COLOR_TEXT_BG = (0, 0, 0)

PHASE_COLORS = {
    PhysicsPhase.BASELINE.name: (128, 128, 128),
    PhysicsPhase.GROUND.name: (255, 255, 255),
    PhysicsPhase.FLIGHT.name: (0, 255, 0),
    "IDLE": (128, 128, 128),
    "MOVING": (0, 255, 0),
}

MARKER_RADIUS = 10


class OverlayRenderer:
    """Draws tracking state on a copy of the frame."""

    def __init__(self, settings: UISettings | None = None) -> None:
        """Initialize renderer with settings.

        Args:
            settings: UI/display settings (uses defaults if None)
        """
        self.settings = settings or UISettings()

    def draw_roi(
        self,
        image: NDArray[np.uint8],
        roi: ROI,
        color: tuple[int, int, int] = COLOR_ROI,
    ) -> NDArray[np.uint8]:
        """Outline the tracking region in place."""
        cv2.rectangle(image, (roi.x, roi.y), (roi.x + roi.w - 1, roi.y + roi.h - 1), color, 2)
        return image

    def draw_marker(
        self,
        image: NDArray[np.uint8],
        sample: TrackingSample,
        color: tuple[int, int, int] = COLOR_MARKER,
    ) -> NDArray[np.uint8]:
        """Filled dot at the tracked position, in place."""
        height, width = image.shape[:2]
        cv2.circle(image, sample.to_pixel(width, height), MARKER_RADIUS, color, -1)
        return image

    def draw_baseline(
        self,
        image: NDArray[np.uint8],
        baseline_y: float,
        threshold: float = 0.0,
        color: tuple[int, int, int] = COLOR_BASELINE,
    ) -> NDArray[np.uint8]:
        """Horizontal baseline, plus the takeoff trigger line when threshold > 0."""
        height, width = image.shape[:2]
        y = int(baseline_y * height)
        cv2.line(image, (0, y), (width - 1, y), color, 1)

        if threshold > 0:
            trigger = int((baseline_y - threshold) * height)
            cv2.line(image, (0, trigger), (width - 1, trigger), color, 1, cv2.LINE_4)

        return image

    def draw_skeleton(
        self,
        image: NDArray[np.uint8],
        pose: Pose,
        min_visibility: float = 0.5,
    ) -> NDArray[np.uint8]:
        """Draw the leg skeleton in place."""
        height, width = image.shape[:2]

        for start_idx, end_idx in LEG_CONNECTIONS:
            start_lm = pose.landmarks.get(start_idx)
            end_lm = pose.landmarks.get(end_idx)
            if start_lm is None or end_lm is None:
                continue
            if start_lm.visibility < min_visibility or end_lm.visibility < min_visibility:
                continue

            cv2.line(
                image,
                start_lm.to_pixel(width, height),
                end_lm.to_pixel(width, height),
                COLOR_SKELETON,
                2,
            )

        for idx in {i for pair in LEG_CONNECTIONS for i in pair}:
            landmark = pose.landmarks.get(idx)
            if landmark is not None and landmark.visibility >= min_visibility:
                cv2.circle(image, landmark.to_pixel(width, height), 3, COLOR_LANDMARK, -1)

        return image

    def draw_phase_indicator(self, image: NDArray[np.uint8], phase: str) -> NDArray[np.uint8]:
        """Phase label in the top-right corner, in place."""
        width = image.shape[1]
        font = cv2.FONT_HERSHEY_SIMPLEX
        text = phase
        (text_w, text_h), _ = cv2.getTextSize(text, font, 0.8, 2)

        x = width - text_w - 20
        y = 40
        cv2.rectangle(image, (x - 5, y - text_h - 5), (x + text_w + 5, y + 5), COLOR_TEXT_BG, -1)
        cv2.putText(image, text, (x, y), font, 0.8, PHASE_COLORS.get(phase, COLOR_TEXT), 2)

        return image

    def render(
        self,
        frame: Frame,
        roi: ROI | None = None,
        sample: TrackingSample | None = None,
        baseline_y: float | None = None,
        threshold: float = 0.0,
        pose: Pose | None = None,
        phase: str | None = None,
    ) -> NDArray[np.uint8]:
        """Render every enabled overlay onto an RGB copy of the frame.

        Returns:
            New 3-channel RGB image
        """
        image = np.ascontiguousarray(frame.image[..., :3]).copy()

        if self.settings.show_roi and roi is not None:
            self.draw_roi(image, roi)
        if self.settings.show_baseline and baseline_y is not None:
            self.draw_baseline(image, baseline_y, threshold)
        if sample is not None:
            self.draw_marker(image, sample)
        if self.settings.show_skeleton and pose is not None:
            self.draw_skeleton(image, pose)
        if phase is not None:
            self.draw_phase_indicator(image, phase)

        return image
