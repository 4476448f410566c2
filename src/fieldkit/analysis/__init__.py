"""Analysis logic: jump physics, rep detection, thresholds, and metrics.

Everything here operates on typed dataclasses and returns results;
nothing reads cameras or draws.
"""

from fieldkit.analysis.jump import JumpPhysics, detect_jumps_batch
from fieldkit.analysis.kinematics import flight_time_to_height, reactive_strength_index
from fieldkit.analysis.metrics import export_session, summarize_session
from fieldkit.analysis.threshold import calculate_test_results, format_pace, training_zones
from fieldkit.analysis.vbt import RepDetector, detect_reps_batch

__all__ = [
    "JumpPhysics",
    "RepDetector",
    "detect_jumps_batch",
    "detect_reps_batch",
    "flight_time_to_height",
    "reactive_strength_index",
    "calculate_test_results",
    "format_pace",
    "training_zones",
    "summarize_session",
    "export_session",
]
