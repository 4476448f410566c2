"""Jump test state machine.

Consumes (sample, timestamp) pairs for one tracked marker and emits a
JumpData each time a flight passes the validity filters. Tracking misses
never advance the machine.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from fieldkit.analysis.kinematics import flight_time_to_height, reactive_strength_index
from fieldkit.core.config import JumpDetectionSettings
from fieldkit.core.logging import get_logger
from fieldkit.core.types import JumpData, JumpMode, PhysicsPhase, TrackingSample
from fieldkit.vision.calibration import DEFAULT_MIN_CONFIDENCE, BaselineEstimator
from fieldkit.vision.filters import SmoothingFilter

logger = get_logger(__name__)


@dataclass
class PhysicsState:
    """Hot-path state, mutated only by JumpPhysics.update."""

    phase: PhysicsPhase = PhysicsPhase.BASELINE
    baseline_y: float | None = None
    takeoff_time: float | None = None
    landing_time: float | None = None
    contact_time_ms: float = 0.0
    last_flight_ms: float = 0.0
    last_height_cm: float = 0.0
    jumps: list[JumpData] = field(default_factory=list)


class JumpPhysics:
    """BASELINE -> GROUND <-> FLIGHT classifier for CMJ and RSI tests.

    Transitions:
        BASELINE -> GROUND: `baseline_window` valid samples averaged
        GROUND -> FLIGHT: Smoothed y rises above baseline - threshold
        FLIGHT -> GROUND: Smoothed y falls back below it

    Image y grows downward, so "rises" means y decreases.
    """

    def __init__(
        self,
        settings: JumpDetectionSettings | None = None,
        min_confidence: float = DEFAULT_MIN_CONFIDENCE,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize physics.

        Args:
            settings: Detection parameters (CMJ preset if None)
            min_confidence: Samples below this are treated as misses
            wall_clock: Seconds since the epoch, stamped on accepted jumps
        """
        self.settings = settings or JumpDetectionSettings.for_mode(JumpMode.CMJ)
        self.min_confidence = min_confidence
        self._wall_clock = wall_clock
        self._state = PhysicsState()
        self._baseline = BaselineEstimator(self.settings.baseline_window, min_confidence)
        self._smoother = SmoothingFilter(self.settings.smoothing_window)

    @property
    def phase(self) -> PhysicsPhase:
        """Current phase."""
        return self._state.phase

    @property
    def baseline_y(self) -> float | None:
        """Rest position, None until established."""
        return self._state.baseline_y

    @property
    def baseline_progress(self) -> float:
        """Fraction of the baseline window collected."""
        return 1.0 if self._state.baseline_y is not None else self._baseline.progress

    @property
    def last_jump(self) -> JumpData | None:
        """Most recent accepted jump."""
        return self._state.jumps[-1] if self._state.jumps else None

    @property
    def jumps(self) -> list[JumpData]:
        """Accepted jumps in completion order."""
        return list(self._state.jumps)

    @property
    def state(self) -> PhysicsState:
        """Live state record (read only for callers)."""
        return self._state

    def reset(self) -> None:
        """Discard all state, including the baseline."""
        self._state = PhysicsState()
        self._baseline.reset()
        self._smoother.reset()

    def update(self, sample: TrackingSample | None, t: float) -> JumpData | None:
        """Feed one tracked sample.

        Args:
            sample: Marker position, or None on a tracking miss
            t: Frame timestamp in seconds (monotonic)

        Returns:
            JumpData when a valid flight just ended, None otherwise
        """
        if sample is None or sample.confidence < self.min_confidence:
            return None

        state = self._state

        if state.phase == PhysicsPhase.BASELINE or state.baseline_y is None:
            baseline = self._baseline.add(sample)
            self._smoother.update(sample.y)
            if baseline is not None:
                state.baseline_y = baseline
                state.phase = PhysicsPhase.GROUND
            return None

        y = self._smoother.update(sample.y)
        trigger = state.baseline_y - self.settings.threshold

        if state.phase == PhysicsPhase.GROUND:
            if y < trigger:
                self._take_off(t)
            return None

        if y > trigger:
            return self._land(t)
        return None

    def _take_off(self, t: float) -> None:
        state = self._state
        state.phase = PhysicsPhase.FLIGHT
        state.takeoff_time = t
        state.contact_time_ms = 0.0

        if self.settings.mode != JumpMode.RSI or state.landing_time is None:
            return

        contact_ms = (t - state.landing_time) * 1000.0
        if self.settings.min_contact_ms <= contact_ms <= self.settings.max_contact_ms:
            state.contact_time_ms = contact_ms
        else:
            logger.debug("Contact time %.0f ms out of range, discarded", contact_ms)

    def _land(self, t: float) -> JumpData | None:
        state = self._state
        state.phase = PhysicsPhase.GROUND
        state.landing_time = t
        if state.takeoff_time is None:
            return None

        flight_ms = (t - state.takeoff_time) * 1000.0
        if not self.settings.min_flight_ms <= flight_ms <= self.settings.max_flight_ms:
            logger.debug("Flight time %.0f ms out of range, discarded", flight_ms)
            return None

        height = flight_time_to_height(flight_ms, self.settings.gravity)
        jump = JumpData(
            height_cm=height,
            flight_time_ms=flight_ms,
            contact_time_ms=state.contact_time_ms,
            timestamp=self._wall_clock() * 1000.0,
            rsi=reactive_strength_index(flight_ms, state.contact_time_ms),
        )
        state.last_flight_ms = flight_ms
        state.last_height_cm = height
        state.jumps.append(jump)

        logger.info(
            "Jump #%d: %.1f cm, flight %.0f ms, contact %.0f ms",
            len(state.jumps),
            height,
            flight_ms,
            state.contact_time_ms,
        )
        return jump


def detect_jumps_batch(
    samples: Iterable[tuple[TrackingSample | None, float]],
    settings: JumpDetectionSettings | None = None,
) -> list[JumpData]:
    """Run the state machine over a recorded sample sequence.

    Args:
        samples: (sample, timestamp seconds) pairs in order
        settings: Detection parameters

    Returns:
        All accepted jumps
    """
    physics = JumpPhysics(settings)
    jumps: list[JumpData] = []

    for sample, t in samples:
        jump = physics.update(sample, t)
        if jump is not None:
            jumps.append(jump)

    return jumps
