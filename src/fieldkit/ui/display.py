"""OpenCV window management for the live preview."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING

import cv2
import numpy as np

from fieldkit.core.config import UISettings
from fieldkit.core.logging import get_logger

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = get_logger(__name__)


class KeyAction(Enum):
    """Actions triggered by keyboard input."""

    NONE = auto()
    QUIT = auto()
    SAVE_PROFILE = auto()
    TOGGLE_ROI = auto()
    TOGGLE_SKELETON = auto()


# Key mappings (ASCII codes)
KEY_BINDINGS: dict[int, KeyAction] = {
    ord("q"): KeyAction.QUIT,
    ord("Q"): KeyAction.QUIT,
    27: KeyAction.QUIT,  # ESC
    ord("s"): KeyAction.SAVE_PROFILE,
    ord("S"): KeyAction.SAVE_PROFILE,
    ord("o"): KeyAction.TOGGLE_ROI,
    ord("k"): KeyAction.TOGGLE_SKELETON,
}


@dataclass
class WindowState:
    """Current state of the display window."""

    is_open: bool = False
    width: int = 1280
    height: int = 720
    frame_width: int = 0
    frame_height: int = 0


class DisplayWindow:
    """OpenCV preview window with key polling and click callbacks.

    Images passed in are RGB and converted to BGR for imshow. Click
    positions are reported in source frame pixels, not window pixels.
    """

    WINDOW_NAME = "Fieldkit"

    def __init__(self, settings: UISettings | None = None) -> None:
        """Initialize display window.

        Args:
            settings: UI settings (uses defaults if None)
        """
        self.settings = settings or UISettings()
        self._state = WindowState(
            width=self.settings.display_width,
            height=self.settings.display_height,
        )
        self._on_click: Callable[[int, int], None] | None = None

    @property
    def is_open(self) -> bool:
        """Check if window is open."""
        return self._state.is_open

    def open(self) -> None:
        """Create and show the display window."""
        cv2.namedWindow(self.WINDOW_NAME, cv2.WINDOW_NORMAL)
        cv2.resizeWindow(self.WINDOW_NAME, self._state.width, self._state.height)
        cv2.setMouseCallback(self.WINDOW_NAME, self._handle_mouse)
        self._state.is_open = True
        logger.info("Display window opened (%dx%d)", self._state.width, self._state.height)

    def close(self) -> None:
        """Close and destroy the display window."""
        if self._state.is_open:
            cv2.destroyWindow(self.WINDOW_NAME)
            self._state.is_open = False
            logger.info("Display window closed")

    def on_click(self, callback: Callable[[int, int], None] | None) -> None:
        """Register a left-click handler receiving frame pixel coordinates."""
        self._on_click = callback

    def _handle_mouse(self, event: int, x: int, y: int, flags: int, param: object) -> None:
        if event != cv2.EVENT_LBUTTONDOWN or self._on_click is None:
            return
        fx, fy = self.window_to_frame(x, y)
        self._on_click(fx, fy)

    def window_to_frame(self, x: int, y: int) -> tuple[int, int]:
        """Map window pixel coordinates back to the last shown frame."""
        if self._state.frame_width <= 0 or self._state.frame_height <= 0:
            return x, y
        return (
            int(x * self._state.frame_width / self._state.width),
            int(y * self._state.frame_height / self._state.height),
        )

    def show_frame(self, image: NDArray[np.uint8]) -> None:
        """Display an RGB frame in the window.

        Args:
            image: RGB image array to display
        """
        if not self._state.is_open:
            self.open()

        h, w = image.shape[:2]
        self._state.frame_width = w
        self._state.frame_height = h

        bgr = cv2.cvtColor(image, cv2.COLOR_RGB2BGR)
        if w != self._state.width or h != self._state.height:
            bgr = cv2.resize(bgr, (self._state.width, self._state.height))
        cv2.imshow(self.WINDOW_NAME, bgr)

    def poll_key(self, wait_ms: int = 1) -> KeyAction:
        """Poll for keyboard input.

        Args:
            wait_ms: Milliseconds to wait for key (1 for non-blocking)

        Returns:
            KeyAction corresponding to pressed key
        """
        key = cv2.waitKey(wait_ms) & 0xFF
        if key == 255:  # No key pressed
            return KeyAction.NONE
        return KEY_BINDINGS.get(key, KeyAction.NONE)

    def __enter__(self) -> DisplayWindow:
        self.open()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        self.close()
