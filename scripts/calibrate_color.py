#!/usr/bin/env python3
"""Standalone colour calibration for marker tracking.

Run this before a session to build a colour profile for the COLOR
strategy. Two methods:
- Click: click the marker in the live preview to sample its colour
- Preset: save one of the built-in presets without a camera

The saved profile is loaded with `fieldkit jump --profile PATH`.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

import cv2
import numpy as np

from fieldkit.capture.stream import CameraSource, VideoFileSource
from fieldkit.core.config import get_settings
from fieldkit.core.exceptions import CalibrationError, FieldkitError
from fieldkit.core.logging import get_logger, setup_logging
from fieldkit.core.types import COLOR_PRESETS, ROI
from fieldkit.vision.calibration import ColorCalibrator
from fieldkit.vision.tracking import create_mask

logger = get_logger(__name__)

DEFAULT_PROFILE_PATH = Path("color_profile.json")
WINDOW_NAME = "Colour Calibration"


def calibrate_by_click(
    calibrator: ColorCalibrator,
    source: CameraSource | VideoFileSource,
    sample_radius: int,
) -> bool:
    """Interactive click-to-calibrate loop.

    Args:
        calibrator: Calibrator that receives the sampled range
        source: Frame source to preview
        sample_radius: Half side of the sampled square

    Returns:
        True if a colour was sampled and accepted with 's'
    """
    logger.info("Click the marker to sample it; 's' to save, 'q' to cancel")
    latest: dict[str, np.ndarray] = {}

    def on_mouse(event: int, x: int, y: int, flags: int, param: object) -> None:
        if event != cv2.EVENT_LBUTTONDOWN or "image" not in latest:
            return
        try:
            calibrator.calibrate_from_click(latest["image"], x, y, sample_radius)
        except CalibrationError as e:
            logger.warning("Sample rejected: %s", e)

    cv2.namedWindow(WINDOW_NAME, cv2.WINDOW_AUTOSIZE)
    cv2.setMouseCallback(WINDOW_NAME, on_mouse)

    try:
        with source:
            for frame in source.frames():
                image = frame.image[..., :3]
                latest["image"] = image
                preview = cv2.cvtColor(image, cv2.COLOR_RGB2BGR)

                color_range = calibrator.current_range
                if color_range is not None:
                    mask = create_mask(image, ROI.full(frame.width, frame.height), color_range)
                    matched = int(np.count_nonzero(mask))
                    preview[mask > 0] = (0, 255, 0)
                    status = f"Matched pixels: {matched}"
                else:
                    status = "Click the marker"

                cv2.putText(
                    preview,
                    status,
                    (20, 40),
                    cv2.FONT_HERSHEY_SIMPLEX,
                    1.0,
                    (255, 255, 255),
                    2,
                )
                cv2.imshow(WINDOW_NAME, preview)

                key = cv2.waitKey(1) & 0xFF
                if key == ord("q"):
                    logger.info("Calibration cancelled")
                    return False
                if key == ord("s") and calibrator.is_calibrated:
                    return True
    finally:
        cv2.destroyAllWindows()

    return False


def main() -> int:
    """Run colour calibration."""
    parser = argparse.ArgumentParser(description="Calibrate the marker colour range")
    parser.add_argument(
        "--method",
        choices=["click", "preset"],
        default="click",
        help="Calibration method (default: click)",
    )
    parser.add_argument(
        "--preset",
        choices=sorted(COLOR_PRESETS),
        help="Preset to save (preset method) or to start from (click method)",
    )
    parser.add_argument(
        "--radius",
        type=int,
        default=10,
        help="Sample square half side in pixels",
    )
    parser.add_argument("--video", help="Use a recorded video instead of the camera")
    parser.add_argument(
        "--output",
        type=Path,
        default=DEFAULT_PROFILE_PATH,
        help="Output path for the colour profile",
    )

    args = parser.parse_args()

    settings = get_settings()
    setup_logging(settings.logging.level)

    calibrator = ColorCalibrator()

    try:
        if args.method == "preset":
            if args.preset is None:
                logger.error("--preset required for preset calibration")
                return 1
            calibrator.use_preset(args.preset)
            calibrator.save_profile(args.output)
            return 0

        if args.preset:
            calibrator.use_preset(args.preset)

        source = VideoFileSource(args.video) if args.video else CameraSource(settings.camera)
        if calibrate_by_click(calibrator, source, args.radius):
            calibrator.save_profile(args.output)
            return 0
        return 1

    except FieldkitError as e:
        logger.error("Calibration error: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
