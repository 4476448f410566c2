"""Heads-up display for the live snapshot and the event history."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import cv2
import numpy as np

from fieldkit.core.config import UISettings
from fieldkit.core.types import JumpData, LiveSnapshot, RepData

if TYPE_CHECKING:
    from numpy.typing import NDArray


@dataclass
class HUDLayout:
    """Layout configuration for HUD elements."""

    # Metrics panel (top-left)
    metrics_x: int = 20
    metrics_y: int = 40
    metrics_line_height: int = 35

    # Event history (bottom)
    history_height: int = 80
    history_bar_width: int = 40
    history_bar_gap: int = 10

    # Colors (RGB)
    color_text: tuple[int, int, int] = (255, 255, 255)
    color_bg: tuple[int, int, int] = (0, 0, 0)
    color_accent: tuple[int, int, int] = (0, 255, 255)
    color_success: tuple[int, int, int] = (0, 255, 0)
    color_warning: tuple[int, int, int] = (255, 165, 0)


def format_snapshot(snapshot: LiveSnapshot, mode: str) -> list[str]:
    """Text lines for the metrics panel."""
    if mode == "vbt":
        lines = [
            f"Reps: {snapshot.count}",
            f"Velocity: {snapshot.value:.2f} m/s",
        ]
    else:
        lines = [
            f"Jumps: {snapshot.count}",
            f"Height: {snapshot.value:.1f} cm",
            f"Flight: {snapshot.flight_time_ms:.0f} ms",
        ]
        if mode == "rsi":
            lines.append(f"Contact: {snapshot.contact_time_ms:.0f} ms")

    if snapshot.knee_angle is not None:
        lines.append(f"Knee: {snapshot.knee_angle:.0f} deg")

    return lines


class HUDRenderer:
    """Renders the live snapshot, event history and status bar.

    The snapshot is replaced by the UI refresh thread and read by the
    drawing thread; assignment of the reference is the only shared write.
    """

    def __init__(
        self,
        mode: str,
        settings: UISettings | None = None,
        layout: HUDLayout | None = None,
    ) -> None:
        """Initialize HUD renderer.

        Args:
            mode: "cmj", "rsi" or "vbt"
            settings: UI settings
            layout: HUD layout configuration
        """
        self.mode = mode
        self.settings = settings or UISettings()
        self.layout = layout or HUDLayout()
        self.snapshot: LiveSnapshot | None = None

    def update(self, snapshot: LiveSnapshot) -> None:
        """Store the latest snapshot (UI refresh callback)."""
        self.snapshot = snapshot

    def render_metrics_panel(self, image: NDArray[np.uint8], snapshot: LiveSnapshot) -> None:
        """Draw the snapshot lines in place."""
        font = cv2.FONT_HERSHEY_SIMPLEX
        x = self.layout.metrics_x
        y = self.layout.metrics_y

        line_h = self.layout.metrics_line_height

        for i, text in enumerate(format_snapshot(snapshot, self.mode)):
            self._draw_text_with_bg(image, text, (x, y + i * line_h), font, 0.8, 2)

    def render_history(
        self,
        image: NDArray[np.uint8],
        events: list[JumpData | RepData],
        max_display: int = 10,
    ) -> None:
        """Bar chart of recent jump heights or rep peak velocities, in place."""
        if not events:
            return

        h, w = image.shape[:2]
        recent = events[-max_display:]
        values = [e.height_cm if isinstance(e, JumpData) else e.peak_velocity for e in recent]
        best = max(values)
        if best <= 0:
            return

        bar_w = self.layout.history_bar_width
        gap = self.layout.history_bar_gap
        chart_h = self.layout.history_height
        chart_y = h - chart_h - 20
        total_w = len(recent) * (bar_w + gap)
        chart_x = (w - total_w) // 2

        cv2.rectangle(
            image,
            (chart_x - 10, chart_y - 10),
            (chart_x + total_w + 10, h - 10),
            self.layout.color_bg,
            -1,
        )

        font = cv2.FONT_HERSHEY_SIMPLEX
        label_format = "{:.2f}" if self.mode == "vbt" else "{:.0f}"
        for i, value in enumerate(values):
            bar_x = chart_x + i * (bar_w + gap)
            bar_height = int(value / best * (chart_h - 20))
            bar_y = chart_y + chart_h - bar_height - 10
            color = self.layout.color_success if value == best else self.layout.color_accent

            cv2.rectangle(image, (bar_x, bar_y), (bar_x + bar_w, chart_y + chart_h - 10), color, -1)

            label = label_format.format(value)
            (label_w, _), _ = cv2.getTextSize(label, font, 0.4, 1)
            cv2.putText(
                image,
                label,
                (bar_x + (bar_w - label_w) // 2, bar_y - 5),
                font,
                0.4,
                self.layout.color_text,
                1,
            )

    def render_status_bar(self, image: NDArray[np.uint8], snapshot: LiveSnapshot) -> None:
        """FPS and tracking confidence along the bottom edge, in place."""
        h = image.shape[0]
        font = cv2.FONT_HERSHEY_SIMPLEX
        conf_color = (
            self.layout.color_success if snapshot.confidence >= 0.3 else self.layout.color_warning
        )
        items = [
            (f"FPS: {snapshot.fps:.0f}", self.layout.color_text),
            (f"CONF: {snapshot.confidence:.2f}", conf_color),
            (snapshot.phase, self.layout.color_accent),
        ]

        x = 20
        for text, color in items:
            cv2.putText(image, text, (x, h - 25), font, 0.5, color, 1)
            (text_w, _), _ = cv2.getTextSize(text, font, 0.5, 1)
            x += text_w + 30

    def _draw_text_with_bg(
        self,
        image: NDArray[np.uint8],
        text: str,
        position: tuple[int, int],
        font: int,
        font_scale: float,
        thickness: int,
    ) -> None:
        (text_w, text_h), _ = cv2.getTextSize(text, font, font_scale, thickness)
        x, y = position
        padding = 5

        cv2.rectangle(
            image,
            (x - padding, y - text_h - padding),
            (x + text_w + padding, y + padding),
            self.layout.color_bg,
            -1,
        )
        cv2.putText(image, text, position, font, font_scale, self.layout.color_text, thickness)

    def render(
        self,
        image: NDArray[np.uint8],
        events: list[JumpData | RepData] | None = None,
    ) -> NDArray[np.uint8]:
        """Render the full HUD onto a copy of the image.

        Args:
            image: RGB image (usually the overlay output)
            events: Recorded events for the history chart

        Returns:
            Image with HUD
        """
        result = image.copy()
        snapshot = self.snapshot
        if snapshot is not None:
            self.render_metrics_panel(result, snapshot)
            self.render_status_bar(result, snapshot)
        if events:
            self.render_history(result, events)
        return result
