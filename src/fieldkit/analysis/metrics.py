"""Session summaries and JSON export.

This module is pure logic apart from the JSON file helpers.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from enum import Enum
from pathlib import Path

from fieldkit.analysis.kinematics import percent_change, velocity_loss_percent
from fieldkit.core.types import JumpData, JumpMode, RepData, Session

# Height variation (percent, first to last jump) limits
GOOD_VARIATION_PCT = 8.0
MODERATE_VARIATION_PCT = 15.0

# Velocity drop (percent, first to last rep) limits
MODERATE_FATIGUE_PCT = 10.0
POOR_FATIGUE_PCT = 20.0


class Consistency(str, Enum):
    """Jump-to-jump consistency rating."""

    GOOD = "good"
    MODERATE = "moderate"
    POOR = "poor"


class Fatigue(str, Enum):
    """Fatigue rating of a VBT set from its velocity drop."""

    GOOD = "good"
    MODERATE = "moderate"
    POOR = "poor"


@dataclass
class JumpSessionSummary:
    """Summary statistics for a jump session."""

    total_jumps: int
    best_jump: JumpData
    avg_height_cm: float
    avg_flight_time_ms: float
    avg_contact_time_ms: float
    avg_rsi: float | None
    height_variation_pct: float
    consistency: Consistency


@dataclass
class VbtSessionSummary:
    """Summary statistics for a VBT set."""

    total_reps: int
    best_rep: RepData
    avg_peak_velocity: float
    avg_velocity: float
    velocity_drop_pct: float
    fatigue: Fatigue


def rate_consistency(height_variation_pct: float) -> Consistency:
    """Rate a first-to-last height variation."""
    spread = abs(height_variation_pct)
    if spread > MODERATE_VARIATION_PCT:
        return Consistency.POOR
    if spread > GOOD_VARIATION_PCT:
        return Consistency.MODERATE
    return Consistency.GOOD


def rate_fatigue(velocity_drop_pct: float) -> Fatigue:
    """Rate a first-to-last velocity drop (a gain rates as good)."""
    if velocity_drop_pct > POOR_FATIGUE_PCT:
        return Fatigue.POOR
    if velocity_drop_pct > MODERATE_FATIGUE_PCT:
        return Fatigue.MODERATE
    return Fatigue.GOOD


def summarize_jumps(
    jumps: list[JumpData],
    mode: JumpMode | str = JumpMode.CMJ,
) -> JumpSessionSummary | None:
    """Summarize a jump session.

    Args:
        jumps: Accepted jumps in order
        mode: Test mode; average RSI is reported for RSI sessions only

    Returns:
        Summary, or None if there are no jumps
    """
    if not jumps:
        return None

    count = len(jumps)
    avg_flight = sum(j.flight_time_ms for j in jumps) / count
    avg_contact = sum(j.contact_time_ms for j in jumps) / count
    avg_rsi = avg_flight / avg_contact if mode == JumpMode.RSI and avg_contact > 0 else None
    variation = percent_change(jumps[0].height_cm, jumps[-1].height_cm) if count > 1 else 0.0

    return JumpSessionSummary(
        total_jumps=count,
        best_jump=max(jumps, key=lambda j: j.height_cm),
        avg_height_cm=sum(j.height_cm for j in jumps) / count,
        avg_flight_time_ms=avg_flight,
        avg_contact_time_ms=avg_contact,
        avg_rsi=avg_rsi,
        height_variation_pct=variation,
        consistency=rate_consistency(variation),
    )


def summarize_reps(reps: list[RepData]) -> VbtSessionSummary | None:
    """Summarize a VBT set, or None if there are no reps."""
    if not reps:
        return None

    count = len(reps)
    drop = 0.0
    if count > 1:
        drop = velocity_loss_percent(reps[0].peak_velocity, reps[-1].peak_velocity)

    return VbtSessionSummary(
        total_reps=count,
        best_rep=max(reps, key=lambda r: r.peak_velocity),
        avg_peak_velocity=sum(r.peak_velocity for r in reps) / count,
        avg_velocity=sum(r.avg_velocity for r in reps) / count,
        velocity_drop_pct=drop,
        fatigue=rate_fatigue(drop),
    )


def summarize_session(session: Session) -> JumpSessionSummary | VbtSessionSummary | None:
    """Summarize a session of either kind."""
    if session.mode == "vbt":
        return summarize_reps([e for e in session.events if isinstance(e, RepData)])
    return summarize_jumps([e for e in session.events if isinstance(e, JumpData)], session.mode)


def session_to_dict(session: Session) -> dict[str, object]:
    """Plain-dict form of a session with its summary."""
    summary = summarize_session(session)

    return {
        "mode": session.mode,
        "athlete_name": session.athlete_name,
        "date": session.date,
        "event_count": session.event_count,
        "summary": asdict(summary) if summary is not None else None,
        "events": [asdict(e) for e in session.events],
    }


def export_session(session: Session, path: Path) -> None:
    """Export a session to a JSON file.

    Args:
        session: Finished session
        path: Output file path
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(session_to_dict(session), f, indent=2)


def import_session(path: Path) -> Session:
    """Load a session written by export_session.

    Args:
        path: Input file path

    Returns:
        Reconstructed Session (summary is recomputed on demand)
    """
    with open(path) as f:
        data = json.load(f)

    mode = data["mode"]
    event_type = RepData if mode == "vbt" else JumpData
    events: list[JumpData | RepData] = [event_type(**e) for e in data.get("events", [])]

    return Session(
        mode=mode,
        athlete_name=data.get("athlete_name", ""),
        date=data.get("date", ""),
        events=events,
    )
