"""Per-frame marker tracking by pixel scanning.

Every strategy looks at a rectangular ROI of an RGB(A) frame and returns a
TrackingSample normalized to the full frame, or None when nothing usable
was found. Strategies form a closed set selected through TrackingParams;
`track` dispatches on it.

Colour, brightness and motion scans sample every `stride`-th pixel in
row-major order of the ROI (stride 4 = every 16th byte of RGBA), trading a
little centroid precision for a per-frame cost low enough for 60 Hz.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable
from dataclasses import dataclass

import cv2
import numpy as np
from numpy.typing import NDArray

from fieldkit.core.config import TrackingSettings
from fieldkit.core.exceptions import TrackingError
from fieldkit.core.logging import get_logger
from fieldkit.core.types import (
    COLOR_PRESETS,
    ROI,
    ColorRange,
    Frame,
    TrackingSample,
    TrackingStrategy,
)
from fieldkit.vision.color import in_range, rgb_to_hsv

logger = get_logger(__name__)

# Match counts at which confidence saturates at 1.0
COLOR_FULL_CONFIDENCE = 500
BRIGHTNESS_FULL_CONFIDENCE = 200
MOTION_FULL_CONFIDENCE = 300
LOWEST_ROW_FULL_CONFIDENCE = 100
EDGE_FULL_CONFIDENCE = 200

MOTION_STRATEGIES = frozenset({TrackingStrategy.MOTION, TrackingStrategy.LOWEST_MOTION})

_CHANNELS = {"r": 0, "g": 1, "b": 2}


@dataclass(frozen=True)
class TrackingParams:
    """Strategy selector plus the knobs each strategy reads."""

    strategy: TrackingStrategy = TrackingStrategy.BRIGHTNESS
    color_range: ColorRange | None = None
    stride: int = 4
    min_blob_size: int = 50
    brightness_channel: str = "brightness"
    brightness_threshold: float = 200.0
    min_bright_pixels: int = 10
    motion_threshold: float = 25.0
    min_motion_pixels: int = 30
    lowest_motion_threshold: float = 20.0
    lowest_motion_stride: int = 2
    min_row_motion_pixels: int = 10
    edge_threshold: float = 50.0
    min_edge_pixels: int = 30

    @classmethod
    def from_settings(
        cls,
        settings: TrackingSettings,
        color_range: ColorRange | None = None,
    ) -> TrackingParams:
        """Build params from settings, defaulting the colour to the preset."""
        return cls(
            strategy=settings.strategy,
            color_range=color_range or COLOR_PRESETS[settings.color_preset],
            stride=settings.stride,
            min_blob_size=settings.min_blob_size,
            brightness_channel=settings.brightness_channel,
            brightness_threshold=settings.brightness_threshold,
            min_bright_pixels=settings.min_bright_pixels,
            motion_threshold=settings.motion_threshold,
            min_motion_pixels=settings.min_motion_pixels,
            lowest_motion_threshold=settings.lowest_motion_threshold,
            lowest_motion_stride=settings.lowest_motion_stride,
            min_row_motion_pixels=settings.min_row_motion_pixels,
            edge_threshold=settings.edge_threshold,
            min_edge_pixels=settings.min_edge_pixels,
        )


def _sample_pixels(
    pixels: NDArray[np.uint8], stride: int
) -> tuple[NDArray[np.uint8], NDArray[np.intp]]:
    """Every `stride`-th pixel of the ROI in row-major order, with flat indices."""
    flat = pixels.reshape(-1, pixels.shape[-1])
    indices = np.arange(0, flat.shape[0], stride)
    return flat[indices], indices


def _centroid(
    indices: NDArray[np.intp],
    roi: ROI,
    frame_width: int,
    frame_height: int,
    full_confidence: int,
) -> TrackingSample:
    """Normalized centroid of the given flat ROI pixel indices."""
    xs = indices % roi.w
    ys = indices // roi.w
    count = len(indices)

    return TrackingSample(
        x=(roi.x + float(xs.mean())) / frame_width,
        y=(roi.y + float(ys.mean())) / frame_height,
        confidence=min(count / full_confidence, 1.0),
    )


def _frame_diff(
    current: NDArray[np.uint8], previous: NDArray[np.uint8]
) -> NDArray[np.float32]:
    """Mean absolute RGB difference per pixel."""
    diff = np.abs(current[..., :3].astype(np.int16) - previous[..., :3].astype(np.int16))
    return diff.mean(axis=-1, dtype=np.float32)


def _same_shape(current: NDArray[np.uint8], previous: NDArray[np.uint8] | None) -> bool:
    return previous is not None and previous.shape == current.shape


def track_by_color(
    pixels: NDArray[np.uint8],
    roi: ROI,
    frame_width: int,
    frame_height: int,
    params: TrackingParams,
    previous: NDArray[np.uint8] | None = None,
) -> TrackingSample | None:
    """Centroid of pixels whose HSV falls inside the colour range."""
    if params.color_range is None:
        raise TrackingError("Colour tracking needs a colour range")

    sampled, indices = _sample_pixels(pixels, params.stride)
    mask = in_range(rgb_to_hsv(sampled), params.color_range)
    matched = indices[mask]

    if len(matched) < params.min_blob_size:
        return None

    return _centroid(matched, roi, frame_width, frame_height, COLOR_FULL_CONFIDENCE)


def track_brightest_point(
    pixels: NDArray[np.uint8],
    roi: ROI,
    frame_width: int,
    frame_height: int,
    params: TrackingParams,
    previous: NDArray[np.uint8] | None = None,
) -> TrackingSample | None:
    """Centroid of pixels brighter than a threshold on one channel or on average."""
    sampled, indices = _sample_pixels(pixels, params.stride)

    if params.brightness_channel == "brightness":
        values = sampled[:, :3].mean(axis=1, dtype=np.float32)
    elif params.brightness_channel in _CHANNELS:
        values = sampled[:, _CHANNELS[params.brightness_channel]]
    else:
        raise TrackingError(f"Unknown brightness channel: {params.brightness_channel}")

    matched = indices[values > params.brightness_threshold]

    if len(matched) < params.min_bright_pixels:
        return None

    return _centroid(matched, roi, frame_width, frame_height, BRIGHTNESS_FULL_CONFIDENCE)


def track_motion(
    pixels: NDArray[np.uint8],
    roi: ROI,
    frame_width: int,
    frame_height: int,
    params: TrackingParams,
    previous: NDArray[np.uint8] | None = None,
) -> TrackingSample | None:
    """Centroid of pixels that changed since the previous frame."""
    if previous is None or not _same_shape(pixels, previous):
        return None

    current, indices = _sample_pixels(pixels, params.stride)
    prior, _ = _sample_pixels(previous, params.stride)
    matched = indices[_frame_diff(current, prior) > params.motion_threshold]

    if len(matched) < params.min_motion_pixels:
        return None

    return _centroid(matched, roi, frame_width, frame_height, MOTION_FULL_CONFIDENCE)


def track_lowest_point(
    pixels: NDArray[np.uint8],
    roi: ROI,
    frame_width: int,
    frame_height: int,
    params: TrackingParams,
    previous: NDArray[np.uint8] | None = None,
) -> TrackingSample | None:
    """Lowest ROI row with enough moving pixels, at the mean x of its motion.

    Used for takeoff detection when a whole silhouette moves rather than a
    marker: the feet are the lowest moving row.
    """
    if previous is None or not _same_shape(pixels, previous):
        return None

    current, indices = _sample_pixels(pixels, params.lowest_motion_stride)
    prior, _ = _sample_pixels(previous, params.lowest_motion_stride)

    motion = np.zeros(roi.w * roi.h, dtype=bool)
    motion[indices] = _frame_diff(current, prior) > params.lowest_motion_threshold
    motion_map = motion.reshape(roi.h, roi.w)

    row_counts = motion_map.sum(axis=1)
    rows = np.flatnonzero(row_counts > params.min_row_motion_pixels)
    if len(rows) == 0:
        return None

    lowest_y = int(rows[-1])
    row_xs = np.flatnonzero(motion_map[lowest_y])
    count = len(row_xs)

    return TrackingSample(
        x=(roi.x + float(row_xs.mean())) / frame_width,
        y=(roi.y + lowest_y) / frame_height,
        confidence=min(count / LOWEST_ROW_FULL_CONFIDENCE, 1.0),
    )


def detect_circle(
    pixels: NDArray[np.uint8],
    roi: ROI,
    frame_width: int,
    frame_height: int,
    params: TrackingParams,
    previous: NDArray[np.uint8] | None = None,
) -> TrackingSample | None:
    """Centroid of strong Sobel edges, for round markers on plain backgrounds."""
    if roi.w < 3 or roi.h < 3:
        return None

    gray = pixels[..., :3].mean(axis=2, dtype=np.float32)
    grad_x = cv2.Sobel(gray, cv2.CV_32F, 1, 0, ksize=3)
    grad_y = cv2.Sobel(gray, cv2.CV_32F, 0, 1, ksize=3)
    magnitude = cv2.magnitude(grad_x, grad_y)

    # Border pixels have no full 3x3 neighbourhood
    ys, xs = np.nonzero(magnitude[1:-1, 1:-1] > params.edge_threshold)
    count = len(xs)

    if count < params.min_edge_pixels:
        return None

    return TrackingSample(
        x=(roi.x + 1 + float(xs.mean())) / frame_width,
        y=(roi.y + 1 + float(ys.mean())) / frame_height,
        confidence=min(count / EDGE_FULL_CONFIDENCE, 1.0),
    )


StrategyFn = Callable[..., TrackingSample | None]

_STRATEGIES: dict[TrackingStrategy, StrategyFn] = {
    TrackingStrategy.COLOR: track_by_color,
    TrackingStrategy.BRIGHTNESS: track_brightest_point,
    TrackingStrategy.MOTION: track_motion,
    TrackingStrategy.LOWEST_MOTION: track_lowest_point,
    TrackingStrategy.EDGE: detect_circle,
}


def track(
    image: NDArray[np.uint8],
    roi: ROI,
    params: TrackingParams,
    previous: NDArray[np.uint8] | None = None,
) -> TrackingSample | None:
    """Run the configured strategy on one frame.

    Args:
        image: Full RGB(A) frame
        roi: Region to scan (clamped to the frame)
        params: Strategy and its parameters
        previous: Previous frame's ROI pixels (motion strategies only)

    Returns:
        TrackingSample normalized to the full frame, or None on a miss

    Raises:
        TrackingError: If the ROI is empty or the params are unusable
    """
    frame_height, frame_width = image.shape[:2]
    region = roi.clamp(frame_width, frame_height)
    if region.is_empty:
        raise TrackingError(f"ROI {roi} lies outside the {frame_width}x{frame_height} frame")

    strategy = _STRATEGIES[params.strategy]
    return strategy(region.crop(image), region, frame_width, frame_height, params, previous)


def create_mask(
    image: NDArray[np.uint8],
    roi: ROI,
    color_range: ColorRange,
) -> NDArray[np.uint8]:
    """Dense 0/255 mask of colour-range matches inside the ROI (for preview)."""
    frame_height, frame_width = image.shape[:2]
    region = roi.clamp(frame_width, frame_height)
    hsv = rgb_to_hsv(region.crop(image))
    return np.where(in_range(hsv, color_range), 255, 0).astype(np.uint8)


class FrameTracker:
    """Stateful tracker used by the frame loop.

    Owns the previous ROI buffer for motion strategies and replaces it on
    every frame, so memory stays at one ROI regardless of session length.
    """

    def __init__(
        self,
        params: TrackingParams | None = None,
        roi: ROI | None = None,
        roi_fractions: tuple[float, float, float, float] = (0.0, 0.0, 1.0, 1.0),
        roi_factory: Callable[[int, int], ROI] | None = None,
    ) -> None:
        """Initialize tracker.

        Args:
            params: Strategy parameters (brightness defaults if None)
            roi: Fixed pixel ROI; overrides everything else
            roi_fractions: ROI as (x, y, w, h) fractions of each frame
            roi_factory: Builds the ROI from (width, height); overrides roi_fractions
        """
        self.params = params or TrackingParams()
        self._roi = roi
        self._roi_fractions = roi_fractions
        self._roi_factory = roi_factory
        self._previous: NDArray[np.uint8] | None = None

    @property
    def strategy(self) -> TrackingStrategy:
        """Active tracking strategy."""
        return self.params.strategy

    def roi_for(self, frame: Frame) -> ROI:
        """ROI applied to a frame of this size."""
        if self._roi is not None:
            return self._roi.clamp(frame.width, frame.height)
        if self._roi_factory is not None:
            return self._roi_factory(frame.width, frame.height).clamp(frame.width, frame.height)
        return ROI.from_fractions(*self._roi_fractions, frame.width, frame.height)

    def set_roi(self, roi: ROI) -> None:
        """Use a fixed pixel ROI from now on."""
        self._roi = roi
        self._previous = None

    def set_color_range(self, color_range: ColorRange) -> None:
        """Swap the colour range (e.g. after click-to-calibrate)."""
        self.params = dataclasses.replace(self.params, color_range=color_range)
        logger.info("Tracking colour range set to %s", color_range)

    def reset(self) -> None:
        """Drop the previous-frame buffer."""
        self._previous = None

    def track(self, frame: Frame) -> TrackingSample | None:
        """Track the marker in a frame.

        Args:
            frame: Current frame

        Returns:
            TrackingSample or None on a miss
        """
        roi = self.roi_for(frame)
        sample = track(frame.image, roi, self.params, self._previous)

        if self.params.strategy in MOTION_STRATEGIES:
            self._previous = roi.crop(frame.image).copy()

        return sample
