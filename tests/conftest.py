"""Pytest fixtures for Fieldkit tests."""

from __future__ import annotations

from collections.abc import Callable, Iterator

import numpy as np
import pytest

from fieldkit.core.config import (
    JumpDetectionSettings,
    SessionSettings,
    Settings,
    VbtSettings,
)
from fieldkit.core.exceptions import CameraAcquisitionError
from fieldkit.core.types import (
    Frame,
    InputRow,
    JumpData,
    JumpMode,
    Landmark,
    LandmarkIndex,
    Pose,
    RepData,
    TrackingSample,
)

FRAME_SIZE = 100
SAMPLE_RATE_HZ = 100.0

SampleSequence = list[tuple[TrackingSample | None, float]]


class FakeSource:
    """In-memory FrameSource that replays a fixed list of frames."""

    def __init__(self, frames: list[Frame], key: str = "fake:0", fail_open: bool = False) -> None:
        self._frames = frames
        self._key = key
        self._fail_open = fail_open
        self.opened = False
        self.closed = False
        self.yielded = 0

    @property
    def device_key(self) -> str:
        return self._key

    def open(self) -> None:
        if self._fail_open:
            raise CameraAcquisitionError("Permission denied")
        self.opened = True

    def close(self) -> None:
        self.closed = True

    def frames(self) -> Iterator[Frame]:
        for frame in self._frames:
            self.yielded += 1
            yield frame


def block_image(
    top: int,
    left: int,
    size: int = 10,
    color: tuple[int, int, int] = (255, 255, 255),
    frame_size: int = FRAME_SIZE,
) -> np.ndarray:
    """Black RGB image with one filled square."""
    image = np.zeros((frame_size, frame_size, 3), dtype=np.uint8)
    image[top : top + size, left : left + size] = color
    return image


def marker_frames(tops: list[int], rate_hz: float = SAMPLE_RATE_HZ) -> list[Frame]:
    """Frames with a white 10x10 marker whose top row follows `tops`."""
    return [
        Frame(image=block_image(top, 45), timestamp=i / rate_hz, index=i)
        for i, top in enumerate(tops)
    ]


def samples_from_ys(ys: list[float | None], rate_hz: float = SAMPLE_RATE_HZ) -> SampleSequence:
    """(sample, t) pairs at a fixed rate; None entries are tracking misses."""
    return [
        (TrackingSample(x=0.5, y=y, confidence=1.0) if y is not None else None, i / rate_hz)
        for i, y in enumerate(ys)
    ]


@pytest.fixture
def make_samples() -> Callable[..., SampleSequence]:
    """Factory for (sample, t) sequences from a list of y values."""
    return samples_from_ys


@pytest.fixture
def make_image() -> Callable[..., np.ndarray]:
    """Factory for black frames with one filled square."""
    return block_image


@pytest.fixture
def make_source() -> Callable[..., FakeSource]:
    """Factory for in-memory frame sources."""
    return FakeSource


@pytest.fixture
def fixed_clock() -> Callable[[], float]:
    """Wall clock frozen at 1000 s after the epoch."""
    return lambda: 1000.0


@pytest.fixture
def settings() -> Settings:
    """Default application settings."""
    return Settings()


@pytest.fixture
def cmj_settings() -> JumpDetectionSettings:
    """CMJ preset."""
    return JumpDetectionSettings.for_mode(JumpMode.CMJ)


@pytest.fixture
def rsi_settings() -> JumpDetectionSettings:
    """RSI preset with the CMJ trigger distance, so both share the same fixtures."""
    return JumpDetectionSettings.for_mode(JumpMode.RSI, threshold=0.025)


@pytest.fixture
def vbt_settings() -> VbtSettings:
    """Default VBT settings."""
    return VbtSettings()


@pytest.fixture
def session_settings() -> SessionSettings:
    """Session settings with a fast UI refresh."""
    return SessionSettings(ui_refresh_ms=10.0, athlete_name="Test Athlete")


@pytest.fixture
def single_jump_samples() -> SampleSequence:
    """30 rest samples at y=0.5, a 400 ms flight at y=0.45, then rest.

    With the 3-sample smoother both takeoff and landing are seen one
    sample late, so the measured flight is exactly 40 samples.
    """
    ys: list[float | None] = [0.5] * 30 + [0.45] * 40 + [0.5] * 30
    return samples_from_ys(ys)


@pytest.fixture
def double_jump_samples() -> SampleSequence:
    """Two 400 ms flights separated by 200 ms of ground contact."""
    ys: list[float | None] = [0.5] * 30 + [0.45] * 40 + [0.5] * 20 + [0.45] * 40 + [0.5] * 30
    return samples_from_ys(ys)


@pytest.fixture
def short_hop_samples() -> SampleSequence:
    """A 50 ms hop, below the CMJ minimum flight time."""
    ys: list[float | None] = [0.5] * 30 + [0.45] * 5 + [0.5] * 30
    return samples_from_ys(ys)


@pytest.fixture
def single_rep_samples() -> SampleSequence:
    """20 Hz: 1 s at rest, a 0.2 rise over 10 samples, then 5 s holding still."""
    ys: list[float | None] = [0.5] * 20
    ys += [0.5 - 0.02 * (i + 1) for i in range(10)]
    ys += [0.3] * 100
    return samples_from_ys(ys, rate_hz=20.0)


@pytest.fixture
def jump_session_frames() -> list[Frame]:
    """Marker frames for one 400 ms jump (marker moves up 5 px)."""
    return marker_frames([45] * 30 + [40] * 40 + [45] * 40)


@pytest.fixture
def step_test_rows() -> list[InputRow]:
    """Eight-stage running step test, slowest stage first."""
    return [
        InputRow(min="6", sec="00", hr="130", lac="1.0"),
        InputRow(min="5", sec="45", hr="138", lac="1.1"),
        InputRow(min="5", sec="30", hr="145", lac="1.4"),
        InputRow(min="5", sec="15", hr="152", lac="1.8"),
        InputRow(min="5", sec="00", hr="160", lac="2.5"),
        InputRow(min="4", sec="45", hr="168", lac="3.4"),
        InputRow(min="4", sec="30", hr="175", lac="5.0"),
        InputRow(min="4", sec="15", hr="182", lac="7.5"),
    ]


@pytest.fixture
def sample_jumps() -> list[JumpData]:
    """Two RSI jumps, the second 10% higher."""
    return [
        JumpData(height_cm=40.0, flight_time_ms=571.0, contact_time_ms=250.0, timestamp=1.0),
        JumpData(height_cm=44.0, flight_time_ms=599.0, contact_time_ms=250.0, timestamp=2.0),
    ]


@pytest.fixture
def sample_reps() -> list[RepData]:
    """Three reps with falling velocity."""
    return [
        RepData(peak_velocity=1.0, avg_velocity=0.6, duration_s=0.8, timestamp=1.0),
        RepData(peak_velocity=0.9, avg_velocity=0.55, duration_s=0.9, timestamp=2.0),
        RepData(peak_velocity=0.75, avg_velocity=0.45, duration_s=1.1, timestamp=3.0),
    ]


@pytest.fixture
def right_angle_pose() -> Pose:
    """Pose with the right knee bent at 90 degrees."""
    landmarks = {
        LandmarkIndex.RIGHT_HIP.value: Landmark(x=0.5, y=0.4, z=0.0, visibility=0.9),
        LandmarkIndex.RIGHT_KNEE.value: Landmark(x=0.5, y=0.6, z=0.0, visibility=0.9),
        LandmarkIndex.RIGHT_ANKLE.value: Landmark(x=0.7, y=0.6, z=0.0, visibility=0.9),
    }
    return Pose(landmarks=landmarks, timestamp=0.0, frame_idx=0)
