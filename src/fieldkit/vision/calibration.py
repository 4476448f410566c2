"""Marker calibration: click-to-calibrate colour ranges and rest baselines."""

from __future__ import annotations

import json
import time
from collections.abc import Iterable
from pathlib import Path

import numpy as np
from numpy.typing import NDArray

from fieldkit.core.exceptions import CalibrationError
from fieldkit.core.logging import get_logger
from fieldkit.core.types import COLOR_PRESETS, ColorRange, TrackingSample
from fieldkit.vision.color import HUE_MAX, SAT_MAX, VAL_MAX, rgb_to_hsv

logger = get_logger(__name__)

# Empirical widening around the sampled colour
HUE_TOLERANCE = 15.0
SAT_TOLERANCE = 60.0
VAL_TOLERANCE = 60.0

DEFAULT_SAMPLE_RADIUS = 10
DEFAULT_BASELINE_WINDOW = 30
DEFAULT_MIN_CONFIDENCE = 0.3


def calibrate_from_sample(
    image: NDArray[np.uint8],
    x: int,
    y: int,
    sample_radius: int = DEFAULT_SAMPLE_RADIUS,
) -> ColorRange:
    """Derive a colour range from the pixels around a clicked point.

    Averages HSV over the 2r x 2r square starting at (x - r, y - r), clipped
    to the frame, and widens it by fixed tolerances. The square is placed
    before clipping, so a click off the frame is never moved onto it.

    Args:
        image: RGB(A) frame
        x: Click x in pixels
        y: Click y in pixels
        sample_radius: Half the side of the sampled square

    Returns:
        ColorRange centred on the sampled colour

    Raises:
        CalibrationError: If the sample square has no pixels inside the frame
    """
    height, width = image.shape[:2]
    x0 = max(0, x - sample_radius)
    y0 = max(0, y - sample_radius)
    x1 = min(width, x + sample_radius)
    y1 = min(height, y + sample_radius)

    if x1 <= x0 or y1 <= y0:
        raise CalibrationError(f"Sample point ({x}, {y}) is outside the {width}x{height} frame")

    hsv = rgb_to_hsv(image[y0:y1, x0:x1])
    avg_h, avg_s, avg_v = (float(c) for c in hsv.reshape(-1, 3).mean(axis=0, dtype=np.float64))

    return ColorRange(
        h_min=max(0.0, avg_h - HUE_TOLERANCE),
        h_max=min(HUE_MAX, avg_h + HUE_TOLERANCE),
        s_min=max(0.0, avg_s - SAT_TOLERANCE),
        s_max=min(SAT_MAX, avg_s + SAT_TOLERANCE),
        v_min=max(0.0, avg_v - VAL_TOLERANCE),
        v_max=min(VAL_MAX, avg_v + VAL_TOLERANCE),
    )


def establish_baseline(
    samples: Iterable[TrackingSample | None],
    window_size: int = DEFAULT_BASELINE_WINDOW,
    min_confidence: float = DEFAULT_MIN_CONFIDENCE,
) -> float | None:
    """Average y of the first `window_size` valid samples.

    Args:
        samples: Samples in arrival order (None = tracking miss)
        window_size: Number of valid samples to average
        min_confidence: Samples below this count as misses

    Returns:
        Baseline y, or None if fewer than window_size valid samples
    """
    estimator = BaselineEstimator(window_size, min_confidence)
    for sample in samples:
        baseline = estimator.add(sample)
        if baseline is not None:
            return baseline
    return None


class BaselineEstimator:
    """Incremental rest-position estimate over a fixed warm-up window.

    Completes exactly once; later samples are ignored.
    """

    def __init__(
        self,
        window_size: int = DEFAULT_BASELINE_WINDOW,
        min_confidence: float = DEFAULT_MIN_CONFIDENCE,
    ) -> None:
        if window_size < 1:
            raise CalibrationError("Baseline window must hold at least one sample")
        self.window_size = window_size
        self.min_confidence = min_confidence
        self._values: list[float] = []
        self._baseline: float | None = None

    @property
    def baseline(self) -> float | None:
        """Established baseline, or None while still collecting."""
        return self._baseline

    @property
    def is_complete(self) -> bool:
        """True once the baseline has been established."""
        return self._baseline is not None

    @property
    def progress(self) -> float:
        """Fraction of the warm-up window collected."""
        return len(self._values) / self.window_size

    def add(self, sample: TrackingSample | None) -> float | None:
        """Feed one sample.

        Returns:
            The baseline on the sample that completes the window, else None
        """
        if self._baseline is not None:
            return None
        if sample is None or sample.confidence < self.min_confidence:
            return None

        self._values.append(sample.y)
        if len(self._values) < self.window_size:
            return None

        self._baseline = sum(self._values) / len(self._values)
        self._values.clear()
        logger.info("Baseline established at y=%.4f", self._baseline)
        return self._baseline

    def reset(self) -> None:
        """Start collecting again."""
        self._values.clear()
        self._baseline = None


class ColorCalibrator:
    """Holds the active colour range and persists it as a JSON profile."""

    def __init__(self, color_range: ColorRange | None = None) -> None:
        self._current: ColorRange | None = color_range
        self._calibrated_at: float | None = None

    @property
    def current_range(self) -> ColorRange | None:
        """Active colour range."""
        return self._current

    @property
    def is_calibrated(self) -> bool:
        """Check if a colour range is active."""
        return self._current is not None

    def use_preset(self, name: str) -> ColorRange:
        """Activate one of the built-in presets.

        Raises:
            CalibrationError: If the preset name is unknown
        """
        try:
            preset = COLOR_PRESETS[name]
        except KeyError as e:
            raise CalibrationError(f"Unknown colour preset: {name}") from e

        self._current = preset
        self._calibrated_at = time.time()
        logger.info("Using colour preset '%s'", name)
        return preset

    def calibrate_from_click(
        self,
        image: NDArray[np.uint8],
        x: int,
        y: int,
        sample_radius: int = DEFAULT_SAMPLE_RADIUS,
    ) -> ColorRange:
        """Calibrate from a clicked point and make it the active range."""
        color_range = calibrate_from_sample(image, x, y, sample_radius)
        self._current = color_range
        self._calibrated_at = time.time()
        logger.info(
            "Colour calibrated at (%d, %d): H %.0f-%.0f S %.0f-%.0f V %.0f-%.0f",
            x,
            y,
            color_range.h_min,
            color_range.h_max,
            color_range.s_min,
            color_range.s_max,
            color_range.v_min,
            color_range.v_max,
        )
        return color_range

    def save_profile(self, path: Path) -> None:
        """Save the active colour range to a JSON file.

        Raises:
            CalibrationError: If no range is active
        """
        if self._current is None:
            raise CalibrationError("No colour range to save")

        data = {
            "color_range": self._current.to_dict(),
            "timestamp": self._calibrated_at,
        }

        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(data, f, indent=2)

        logger.info("Saved colour profile to %s", path)

    def load_profile(self, path: Path) -> ColorRange:
        """Load a colour range from a JSON file and activate it.

        Raises:
            CalibrationError: If the file is missing or malformed
        """
        try:
            with open(path) as f:
                data = json.load(f)

            color_range = ColorRange.from_dict(data["color_range"])
            self._current = color_range
            self._calibrated_at = data.get("timestamp")
            logger.info("Loaded colour profile from %s", path)

            return color_range

        except (OSError, ValueError, KeyError, TypeError) as e:
            raise CalibrationError(f"Failed to load profile: {e}") from e
