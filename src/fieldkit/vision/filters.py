"""Smoothing for the tracked marker position."""

from __future__ import annotations

from collections import deque


class SmoothingFilter:
    """Moving average over the last `window_size` positions.

    A window of 1 passes values through unchanged.
    """

    def __init__(self, window_size: int = 3) -> None:
        """Initialize smoothing filter.

        Args:
            window_size: Number of samples in sliding window
        """
        if window_size < 1:
            raise ValueError("window_size must be at least 1")
        self.window_size = window_size
        self._buffer: deque[float] = deque(maxlen=window_size)

    @property
    def is_ready(self) -> bool:
        """Check if buffer is full."""
        return len(self._buffer) >= self.window_size

    @property
    def value(self) -> float | None:
        """Current smoothed value, or None before the first sample."""
        if not self._buffer:
            return None
        return sum(self._buffer) / len(self._buffer)

    def reset(self) -> None:
        """Clear filter buffer."""
        self._buffer.clear()

    def update(self, value: float) -> float:
        """Add value and return smoothed result.

        Args:
            value: New measurement

        Returns:
            Smoothed value (moving average)
        """
        self._buffer.append(value)
        return sum(self._buffer) / len(self._buffer)
