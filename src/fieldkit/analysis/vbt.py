"""Velocity-based-training rep detection.

Velocity is the displacement across a short rolling window divided by its
duration, scaled by `velocity_scale`. No distance calibration is done, so
the m/s readout is an approximation.
"""

from __future__ import annotations

import time
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from fieldkit.analysis.kinematics import instantaneous_velocity
from fieldkit.core.config import VbtSettings
from fieldkit.core.logging import get_logger
from fieldkit.core.types import RepData, RepPhase, TrackingSample
from fieldkit.vision.calibration import DEFAULT_MIN_CONFIDENCE

logger = get_logger(__name__)


@dataclass
class RepState:
    """Hot-path state, mutated only by RepDetector.update."""

    phase: RepPhase = RepPhase.IDLE
    rep_start: float = 0.0
    last_movement: float | None = None
    velocities: list[float] = field(default_factory=list)
    peak: float = 0.0
    current_velocity: float = 0.0
    set_complete: bool = False
    reps: list[RepData] = field(default_factory=list)


class RepDetector:
    """IDLE <-> MOVING rep detector with set-level silence timeout.

    A rep starts on the first windowed displacement above the movement
    threshold and ends after `rep_end_gap_s` without movement. The set is
    complete after `silence_s` without movement once at least one rep exists.
    """

    def __init__(
        self,
        settings: VbtSettings | None = None,
        min_confidence: float = DEFAULT_MIN_CONFIDENCE,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings or VbtSettings()
        self.min_confidence = min_confidence
        self._wall_clock = wall_clock
        self._window: deque[tuple[float, float]] = deque(maxlen=self.settings.window_size)
        self._state = RepState()

    @property
    def phase(self) -> RepPhase:
        """Current phase."""
        return self._state.phase

    @property
    def current_velocity(self) -> float:
        """Latest moving velocity (m/s)."""
        return self._state.current_velocity

    @property
    def peak_velocity(self) -> float:
        """Peak velocity of the rep in progress (m/s)."""
        return self._state.peak

    @property
    def reps(self) -> list[RepData]:
        """Completed reps in order."""
        return list(self._state.reps)

    @property
    def set_complete(self) -> bool:
        """True once the silence timeout has ended the set."""
        return self._state.set_complete

    def reset(self) -> None:
        """Discard all state."""
        self._window.clear()
        self._state = RepState()

    def update(self, sample: TrackingSample | None, t: float) -> RepData | None:
        """Feed one tracked sample.

        Args:
            sample: Marker position, or None on a tracking miss
            t: Frame timestamp in seconds (monotonic)

        Returns:
            RepData when a rep just closed, None otherwise
        """
        if sample is None or sample.confidence < self.min_confidence:
            return None

        state = self._state
        if state.last_movement is None:
            state.last_movement = t

        self._window.append((sample.y, t))
        rep: RepData | None = None

        if len(self._window) >= self.settings.min_window_samples:
            first_y, first_t = self._window[0]
            dy = abs(sample.y - first_y)
            dt = t - first_t

            if dt > 0:
                velocity = instantaneous_velocity(dy, dt, self.settings.velocity_scale)
                if dy > self.settings.movement_threshold:
                    self._on_movement(velocity, t)
                elif (
                    state.phase == RepPhase.MOVING
                    and t - state.last_movement > self.settings.rep_end_gap_s
                ):
                    rep = self._finish_rep(t)

        if (
            not state.set_complete
            and state.reps
            and t - state.last_movement > self.settings.silence_s
        ):
            state.set_complete = True
            logger.info("Set complete after %d reps", len(state.reps))

        return rep

    def _on_movement(self, velocity: float, t: float) -> None:
        state = self._state
        if state.phase == RepPhase.IDLE:
            state.phase = RepPhase.MOVING
            state.rep_start = t
            state.velocities = []
            state.peak = 0.0

        state.velocities.append(velocity)
        state.peak = max(state.peak, velocity)
        state.current_velocity = velocity
        state.last_movement = t

    def _finish_rep(self, t: float) -> RepData | None:
        state = self._state
        state.phase = RepPhase.IDLE
        if not state.velocities:
            return None

        rep = RepData(
            peak_velocity=state.peak,
            avg_velocity=sum(state.velocities) / len(state.velocities),
            duration_s=t - state.rep_start,
            timestamp=self._wall_clock() * 1000.0,
        )
        state.reps.append(rep)
        state.velocities = []
        state.peak = 0.0

        logger.info(
            "Rep #%d: peak %.2f m/s, avg %.2f m/s",
            len(state.reps),
            rep.peak_velocity,
            rep.avg_velocity,
        )
        return rep


def detect_reps_batch(
    samples: Iterable[tuple[TrackingSample | None, float]],
    settings: VbtSettings | None = None,
) -> list[RepData]:
    """Run the rep detector over a recorded sample sequence."""
    detector = RepDetector(settings)
    reps: list[RepData] = []

    for sample, t in samples:
        rep = detector.update(sample, t)
        if rep is not None:
            reps.append(rep)

    return reps
