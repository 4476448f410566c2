"""Colour space helpers shared by the tracker and calibration."""

from __future__ import annotations

import cv2
import numpy as np
from numpy.typing import NDArray

from fieldkit.core.types import ColorRange

HUE_MAX = 180.0
SAT_MAX = 255.0
VAL_MAX = 255.0


def rgb_to_hsv(pixels: NDArray[np.uint8]) -> NDArray[np.float32]:
    """Convert RGB(A) pixels to HSV on the OpenCV 8-bit scale.

    The conversion runs in float so hue keeps sub-degree precision
    (cv2's uint8 path rounds hue to whole units).

    Args:
        pixels: Array of shape (..., 3) or (..., 4), RGB channel order

    Returns:
        Float array of shape (..., 3) with H in [0, 180), S and V in [0, 255]
    """
    rgb = np.asarray(pixels)[..., :3]
    shape = rgb.shape
    flat = rgb.reshape(-1, 1, 3).astype(np.float32) / 255.0

    hsv = cv2.cvtColor(flat, cv2.COLOR_RGB2HSV).reshape(shape)
    hsv[..., 0] /= 2.0
    hsv[..., 1] *= SAT_MAX
    hsv[..., 2] *= VAL_MAX
    return hsv


def in_range(hsv: NDArray[np.float32], color_range: ColorRange) -> NDArray[np.bool_]:
    """Boolean mask of HSV pixels inside an inclusive colour range."""
    h = hsv[..., 0]
    s = hsv[..., 1]
    v = hsv[..., 2]
    return (
        (h >= color_range.h_min)
        & (h <= color_range.h_max)
        & (s >= color_range.s_min)
        & (s <= color_range.s_max)
        & (v >= color_range.v_min)
        & (v <= color_range.v_max)
    )
