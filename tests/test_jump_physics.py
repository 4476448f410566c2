"""Tests for the jump test state machine."""

from __future__ import annotations

import pytest

from fieldkit.analysis.jump import JumpPhysics, detect_jumps_batch
from fieldkit.core.config import JumpDetectionSettings
from fieldkit.core.types import JumpMode, PhysicsPhase, TrackingSample


def _feed(physics: JumpPhysics, samples) -> list:
    jumps = []
    for sample, t in samples:
        jump = physics.update(sample, t)
        if jump is not None:
            jumps.append(jump)
    return jumps


class TestBaseline:
    """Tests for the baseline phase."""

    def test_starts_in_baseline(self) -> None:
        """New physics should be collecting the baseline."""
        physics = JumpPhysics()

        assert physics.phase == PhysicsPhase.BASELINE
        assert physics.baseline_y is None
        assert physics.baseline_progress == 0.0

    def test_baseline_then_ground(self, cmj_settings: JumpDetectionSettings, make_samples) -> None:
        """30 valid samples should establish the baseline."""
        physics = JumpPhysics(cmj_settings)

        _feed(physics, make_samples([0.5] * 29))
        assert physics.phase == PhysicsPhase.BASELINE
        assert physics.baseline_progress == pytest.approx(29 / 30)

        _feed(physics, make_samples([0.5]))
        assert physics.phase == PhysicsPhase.GROUND
        assert physics.baseline_y == pytest.approx(0.5)
        assert physics.baseline_progress == 1.0

    def test_misses_do_not_count(self, cmj_settings: JumpDetectionSettings) -> None:
        """None and low-confidence samples never advance the machine."""
        physics = JumpPhysics(cmj_settings, min_confidence=0.3)

        for i in range(40):
            physics.update(None, i / 100)
            physics.update(TrackingSample(x=0.5, y=0.5, confidence=0.1), i / 100)

        assert physics.phase == PhysicsPhase.BASELINE
        assert physics.baseline_progress == 0.0


class TestCmj:
    """Tests for countermovement jumps."""

    def test_single_jump(self, cmj_settings, single_jump_samples, fixed_clock) -> None:
        """A 400 ms flight should give one jump of 19.62 cm."""
        physics = JumpPhysics(cmj_settings, wall_clock=fixed_clock)

        jumps = _feed(physics, single_jump_samples)

        assert len(jumps) == 1
        jump = jumps[0]
        assert jump.flight_time_ms == pytest.approx(400.0)
        assert jump.height_cm == pytest.approx(19.62)
        assert jump.contact_time_ms == 0.0
        assert jump.rsi is None
        assert jump.timestamp == pytest.approx(1_000_000.0)
        assert physics.phase == PhysicsPhase.GROUND
        assert physics.last_jump == jump

    def test_takeoff_enters_flight(self, cmj_settings, single_jump_samples) -> None:
        """Phase should be FLIGHT while the marker is up."""
        physics = JumpPhysics(cmj_settings)

        _feed(physics, single_jump_samples[:50])

        assert physics.phase == PhysicsPhase.FLIGHT
        assert physics.state.takeoff_time == pytest.approx(0.31)

    def test_short_hop_rejected(self, cmj_settings, short_hop_samples) -> None:
        """Flights under the minimum are discarded but still land."""
        physics = JumpPhysics(cmj_settings)

        jumps = _feed(physics, short_hop_samples)

        assert jumps == []
        assert physics.phase == PhysicsPhase.GROUND
        assert physics.state.landing_time is not None

    def test_long_flight_rejected(self, make_samples) -> None:
        """Flights over the maximum are discarded."""
        settings = JumpDetectionSettings.for_mode(JumpMode.CMJ, max_flight_ms=300.0)
        physics = JumpPhysics(settings)

        jumps = _feed(physics, make_samples([0.5] * 30 + [0.45] * 40 + [0.5] * 10))

        assert jumps == []

    def test_no_contact_time_in_cmj(self, cmj_settings, double_jump_samples) -> None:
        """CMJ never measures ground contact."""
        jumps = _feed(JumpPhysics(cmj_settings), double_jump_samples)

        assert len(jumps) == 2
        assert all(j.contact_time_ms == 0.0 for j in jumps)

    def test_misses_during_flight(self, cmj_settings, make_samples) -> None:
        """Tracking gaps in the air should not end the flight."""
        ys = [0.5] * 30 + [0.45] * 10 + [None] * 20 + [0.45] * 10 + [0.5] * 10
        physics = JumpPhysics(cmj_settings)

        jumps = _feed(physics, make_samples(ys))

        assert len(jumps) == 1
        assert jumps[0].flight_time_ms == pytest.approx(400.0)

    def test_small_sway_is_not_a_jump(self, cmj_settings, make_samples) -> None:
        """Movement inside the threshold band stays on the ground."""
        ys = [0.5] * 30 + [0.49, 0.51] * 50
        physics = JumpPhysics(cmj_settings)

        assert _feed(physics, make_samples(ys)) == []
        assert physics.phase == PhysicsPhase.GROUND

    def test_reset(self, cmj_settings, single_jump_samples) -> None:
        """Reset should discard jumps and the baseline."""
        physics = JumpPhysics(cmj_settings)
        _feed(physics, single_jump_samples)

        physics.reset()

        assert physics.phase == PhysicsPhase.BASELINE
        assert physics.jumps == []
        assert physics.baseline_y is None


class TestRsi:
    """Tests for reactive jumps."""

    def test_contact_time_between_jumps(self, rsi_settings, double_jump_samples) -> None:
        """Second jump should carry the 200 ms contact and its RSI."""
        jumps = _feed(JumpPhysics(rsi_settings), double_jump_samples)

        assert len(jumps) == 2
        assert jumps[0].contact_time_ms == 0.0
        assert jumps[0].rsi is None
        assert jumps[1].contact_time_ms == pytest.approx(200.0)
        assert jumps[1].rsi == pytest.approx(2.0)

    def test_long_contact_discarded(self, make_samples) -> None:
        """Contact over the maximum is not reported."""
        settings = JumpDetectionSettings.for_mode(
            JumpMode.RSI, threshold=0.025, max_contact_ms=150.0
        )
        ys = [0.5] * 30 + [0.45] * 40 + [0.5] * 20 + [0.45] * 40 + [0.5] * 10

        jumps = _feed(JumpPhysics(settings), make_samples(ys))

        assert len(jumps) == 2
        assert jumps[1].contact_time_ms == 0.0
        assert jumps[1].rsi is None

    def test_rejected_flight_still_sets_landing(self, rsi_settings, make_samples) -> None:
        """Contact is measured from the last landing, even a rejected one."""
        # 50 ms hop (below the 80 ms RSI minimum), 200 ms contact, real jump
        ys = [0.5] * 30 + [0.45] * 5 + [0.5] * 20 + [0.45] * 40 + [0.5] * 10
        physics = JumpPhysics(rsi_settings)

        jumps = _feed(physics, make_samples(ys))

        assert len(jumps) == 1
        assert jumps[0].contact_time_ms == pytest.approx(200.0)


class TestBatch:
    """Tests for offline detection."""

    def test_detect_jumps_batch(self, cmj_settings, double_jump_samples) -> None:
        """Batch helper should match the live machine."""
        jumps = detect_jumps_batch(double_jump_samples, cmj_settings)

        assert len(jumps) == 2
        assert jumps[0].height_cm == pytest.approx(19.62)

    def test_mode_presets(self) -> None:
        """Presets should set mode-specific thresholds."""
        cmj = JumpDetectionSettings.for_mode("cmj")
        rsi = JumpDetectionSettings.for_mode("rsi")

        assert cmj.threshold == pytest.approx(0.025)
        assert rsi.threshold == pytest.approx(0.015)
        assert rsi.max_flight_ms == pytest.approx(1000.0)
        assert rsi.mode == JumpMode.RSI
