"""Command-line entry point: jump, vbt and threshold tests."""

from __future__ import annotations

import argparse
import csv
import json
import os
import sys
from collections.abc import Callable
from dataclasses import asdict
from functools import partial
from pathlib import Path
from typing import Any

from fieldkit.analysis.metrics import (
    JumpSessionSummary,
    VbtSessionSummary,
    export_session,
    summarize_session,
)
from fieldkit.analysis.threshold import (
    calculate_test_results,
    compare_with_previous,
    format_pace,
    parse_pace,
    training_zones,
)
from fieldkit.capture.stream import CameraSource, FrameSource, VideoFileSource
from fieldkit.core.config import Settings, get_settings
from fieldkit.core.exceptions import (
    CalibrationError,
    CameraAcquisitionError,
    FieldkitError,
    VideoStreamError,
)
from fieldkit.core.logging import get_logger, setup_logging
from fieldkit.core.types import (
    COLOR_PRESETS,
    ROI,
    InputRow,
    PaceHr,
    PreviousResultData,
    Session,
    TestResult,
    ThresholdMethod,
    TrackingStrategy,
)
from fieldkit.pipeline.processor import FrameProcessor, PoseService, ProcessedFrame
from fieldkit.pipeline.session import TrackingSession
from fieldkit.ui.display import DisplayWindow, KeyAction
from fieldkit.ui.hud import HUDRenderer
from fieldkit.vision.calibration import ColorCalibrator
from fieldkit.vision.tracking import FrameTracker, TrackingParams

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_CAMERA = 1
EXIT_FIELDKIT = 2
EXIT_UNEXPECTED = 3

_ROI_FIELDS = {"roi_x", "roi_y", "roi_w", "roi_h"}

# Centre strip for jump markers, centred square for bar markers
JUMP_STRIP = (0.4, 0.0, 0.2, 1.0)
VBT_SQUARE_FRACTION = 0.4

DEFAULT_PROFILE = Path("color_profile.json")


def _apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """Fold tracking CLI flags into a copy of the settings.

    The UI section is always copied: display key toggles mutate it, and the
    input may be the cached get_settings() instance.
    """
    settings = settings.model_copy(update={"ui": settings.ui.model_copy()})
    update: dict[str, object] = {}
    if args.strategy:
        update["strategy"] = TrackingStrategy(args.strategy)
    if args.preset:
        update["color_preset"] = args.preset
    if update:
        settings = settings.model_copy(
            update={"tracking": settings.tracking.model_copy(update=update)}
        )
    if args.pose:
        settings = settings.model_copy(
            update={"pose": settings.pose.model_copy(update={"enabled": True})}
        )
    return settings


def _build_tracker(settings: Settings, mode: str, calibrator: ColorCalibrator) -> FrameTracker:
    tracking = settings.tracking
    params = TrackingParams.from_settings(tracking, calibrator.current_range)

    if _ROI_FIELDS & tracking.model_fields_set:
        return FrameTracker(
            params,
            roi_fractions=(tracking.roi_x, tracking.roi_y, tracking.roi_w, tracking.roi_h),
        )
    if mode == "vbt":
        return FrameTracker(params, roi_factory=partial(ROI.centered_square, VBT_SQUARE_FRACTION))
    return FrameTracker(params, roi_fractions=JUMP_STRIP)


def _build_source(settings: Settings, video: str | None) -> FrameSource:
    if video:
        return VideoFileSource(video)
    return CameraSource(settings.camera)


def _build_pose_service(settings: Settings) -> PoseService | None:
    if not settings.pose.enabled:
        return None
    from fieldkit.vision.pose import PoseLandmarker

    return PoseLandmarker(settings.pose)


def _print_session(session: Session) -> None:
    summary = summarize_session(session)
    print(f"{session.athlete_name} - {session.mode.upper()} - {session.date}")

    if isinstance(summary, JumpSessionSummary):
        print(f"  Jumps:          {summary.total_jumps}")
        print(f"  Best:           {summary.best_jump.height_cm:.1f} cm")
        print(f"  Average:        {summary.avg_height_cm:.1f} cm")
        print(f"  Avg flight:     {summary.avg_flight_time_ms:.0f} ms")
        if session.mode == "rsi":
            print(f"  Avg contact:    {summary.avg_contact_time_ms:.0f} ms")
            rsi = f"{summary.avg_rsi:.2f}" if summary.avg_rsi is not None else "--"
            print(f"  Avg RSI:        {rsi}")
        print(
            f"  Consistency:    {summary.consistency.value} "
            f"({summary.height_variation_pct:+.1f}%)"
        )
    elif isinstance(summary, VbtSessionSummary):
        print(f"  Reps:           {summary.total_reps}")
        print(f"  Best peak:      {summary.best_rep.peak_velocity:.2f} m/s")
        print(f"  Avg peak:       {summary.avg_peak_velocity:.2f} m/s")
        print(f"  Avg velocity:   {summary.avg_velocity:.2f} m/s")
        print(
            f"  Fatigue:        {summary.fatigue.value} "
            f"(velocity drop {summary.velocity_drop_pct:.1f}%)"
        )


def run_tracking_session(args: argparse.Namespace, mode: str) -> int:
    """Run a live (or recorded) jump or VBT session.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    settings = _apply_overrides(get_settings(), args)
    ui_settings = settings.ui
    setup_logging(settings.logging.level, settings.logging.file)
    logger.info("Starting %s session", mode.upper())

    calibrator = ColorCalibrator(COLOR_PRESETS[settings.tracking.color_preset])
    profile_path = Path(args.profile) if args.profile else DEFAULT_PROFILE
    display: DisplayWindow | None = None
    completed: list[Session] = []

    try:
        if args.profile:
            calibrator.load_profile(profile_path)

        tracker = _build_tracker(settings, mode, calibrator)
        processor = FrameProcessor(
            mode,
            settings,
            tracker=tracker,
            pose_service=_build_pose_service(settings),
        )
        hud = HUDRenderer(mode, ui_settings)

        frame_hook: Callable[[ProcessedFrame], None] | None = None
        if not args.no_display:
            window = DisplayWindow(ui_settings)
            display = window
            latest: dict[str, ProcessedFrame] = {}

            def calibrate_click(x: int, y: int) -> None:
                processed = latest.get("frame")
                if processed is None:
                    return
                try:
                    color_range = calibrator.calibrate_from_click(processed.frame.image, x, y)
                except CalibrationError as e:
                    logger.warning("Calibration failed: %s", e)
                    return
                tracker.set_color_range(color_range)

            window.on_click(calibrate_click)

            def show(processed: ProcessedFrame) -> None:
                latest["frame"] = processed
                window.show_frame(hud.render(processor.render(processed), processor.events))

                action = window.poll_key(wait_ms=1)
                if action == KeyAction.QUIT:
                    session.request_stop()
                elif action == KeyAction.SAVE_PROFILE:
                    calibrator.save_profile(profile_path)
                elif action == KeyAction.TOGGLE_ROI:
                    ui_settings.show_roi = not ui_settings.show_roi
                elif action == KeyAction.TOGGLE_SKELETON:
                    ui_settings.show_skeleton = not ui_settings.show_skeleton

            frame_hook = show

        session = TrackingSession(
            _build_source(settings, args.video),
            processor,
            athlete_name=args.athlete,
            settings=settings.session,
            on_complete=completed.append,
            on_snapshot=hud.update,
            on_frame=frame_hook,
        )
        session.run()

        if not completed:
            logger.info("Session ended without events")
            return EXIT_OK

        _print_session(completed[0])
        if args.export:
            export_session(completed[0], Path(args.export))
            logger.info("Session exported to %s", args.export)

        return EXIT_OK

    except (CameraAcquisitionError, VideoStreamError) as e:
        logger.error("Camera error: %s", e)
        return EXIT_CAMERA

    except FieldkitError as e:
        logger.error("Tracking error: %s", e)
        return EXIT_FIELDKIT

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return EXIT_OK

    except Exception as e:
        logger.exception("Unexpected error: %s", e)
        return EXIT_UNEXPECTED

    finally:
        if display is not None:
            display.close()


def read_rows(path: Path) -> list[InputRow]:
    """Read step-test rows from a CSV with min, sec, hr and lac columns."""
    with open(path, newline="") as f:
        reader = csv.DictReader(f)
        return [
            InputRow(
                min=row.get("min") or "",
                sec=row.get("sec") or "",
                hr=row.get("hr") or "",
                lac=row.get("lac") or "",
            )
            for row in reader
        ]


def read_previous(path: Path) -> PreviousResultData:
    """Load a previous result: {"date", "aerobic": {"pace", "hr"}, "anaerobic": {...}}.

    Paces may be "m:ss" strings or decimal minutes.
    """
    with open(path) as f:
        data = json.load(f)

    def pace_hr(entry: dict[str, Any]) -> PaceHr:
        return PaceHr(pace_decimal=parse_pace(str(entry["pace"])), hr=int(float(entry["hr"])))

    return PreviousResultData(
        date=str(data.get("date", "")),
        aerobic=pace_hr(data["aerobic"]),
        anaerobic=pace_hr(data["anaerobic"]),
    )


def _print_test_result(result: TestResult) -> None:
    print(f"{result.athlete_name} - {result.test_date} - method: {result.method.value}")

    for label, threshold, prev in (
        ("Aerobic", result.aerobic, result.previous.aerobic if result.previous else None),
        ("Anaerobic", result.anaerobic, result.previous.anaerobic if result.previous else None),
    ):
        line = (
            f"  {label:<10} {format_pace(threshold.pace_decimal)} /km  "
            f"{threshold.hr} bpm  {threshold.lac:.1f} mmol/L"
        )
        if prev is not None:
            change = compare_with_previous(threshold.pace_decimal, prev.pace_decimal)
            line += f"  ({change:+.1f}% vs {format_pace(prev.pace_decimal)})"
        print(line)

    for zone in training_zones(result):
        hr_range = f"{zone.hr_min or ''}-{zone.hr_max or ''}"
        high = f"-{zone.workout_hr_max}" if zone.workout_hr_max is not None else "+"
        print(
            f"  {zone.name}: HR {hr_range:<9} workout {format_pace(zone.workout_pace)} /km "
            f"@ {zone.workout_hr_min}{high} bpm"
        )


def run_threshold(args: argparse.Namespace) -> int:
    """Compute lactate thresholds from a CSV of step-test rows.

    Returns:
        Exit code
    """
    settings = get_settings()
    setup_logging(settings.logging.level, settings.logging.file)

    try:
        rows = read_rows(Path(args.rows))
        previous = read_previous(Path(args.previous)) if args.previous else None
        method = ThresholdMethod(args.method) if args.method else settings.threshold.method

        result = calculate_test_results(
            args.athlete or settings.session.athlete_name,
            args.date,
            rows,
            method,
            previous,
            settings.threshold,
        )
        _print_test_result(result)

        if args.export:
            export_path = Path(args.export)
            export_path.parent.mkdir(parents=True, exist_ok=True)
            with open(export_path, "w") as f:
                json.dump(asdict(result), f, indent=2)
            logger.info("Result exported to %s", export_path)

        return EXIT_OK

    except FieldkitError as e:
        logger.error("Threshold error: %s", e)
        return EXIT_FIELDKIT

    except (OSError, ValueError, KeyError) as e:
        logger.error("Cannot read input: %s", e)
        return EXIT_FIELDKIT


def build_parser() -> argparse.ArgumentParser:
    """Argument parser for all subcommands."""
    parser = argparse.ArgumentParser(
        prog="fieldkit",
        description="Fieldkit - camera-based jump, VBT and lactate threshold tests",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    def add_tracking_options(p: argparse.ArgumentParser) -> None:
        p.add_argument("--video", help="Analyse a recorded video instead of the camera")
        p.add_argument(
            "--strategy",
            choices=[s.value for s in TrackingStrategy],
            help="Marker tracking strategy",
        )
        p.add_argument("--preset", choices=sorted(COLOR_PRESETS), help="Marker colour preset")
        p.add_argument("--profile", help="Colour profile JSON to load (and save with 's')")
        p.add_argument("--athlete", help="Athlete name for the report")
        p.add_argument("--export", help="Write the finished session to this JSON file")
        p.add_argument("--pose", action="store_true", help="Enable the knee angle readout")
        p.add_argument("--no-display", action="store_true", help="Run without a preview window")

    jump = sub.add_parser("jump", help="Countermovement or reactive jump test")
    jump.add_argument("--mode", choices=["cmj", "rsi"], default="cmj")
    add_tracking_options(jump)

    vbt = sub.add_parser("vbt", help="Velocity-based training set")
    add_tracking_options(vbt)

    threshold = sub.add_parser("threshold", help="Lactate thresholds from step-test rows")
    threshold.add_argument("rows", help="CSV with min, sec, hr, lac columns")
    threshold.add_argument("--method", choices=[m.value for m in ThresholdMethod])
    threshold.add_argument("--athlete", help="Athlete name")
    threshold.add_argument("--date", default="", help="Test date")
    threshold.add_argument("--previous", help="Previous result JSON for comparison")
    threshold.add_argument("--export", help="Write the result to this JSON file")

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    if args.debug:
        os.environ["LOG_LEVEL"] = "DEBUG"
        get_settings.cache_clear()

    if args.command == "threshold":
        exit_code = run_threshold(args)
    elif args.command == "vbt":
        exit_code = run_tracking_session(args, "vbt")
    else:
        exit_code = run_tracking_session(args, args.mode)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
