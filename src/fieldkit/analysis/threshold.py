"""Lactate step-test threshold engine.

Turns typed step-test rows (pace, heart rate, blood lactate) into aerobic
and anaerobic thresholds with one of three methods:

- FIXED: interpolate pace/HR at 2.0 and 4.0 mmol/L
- BASELINE: interpolate at the lowest lactate + 0.5 and + 1.5
- DMAX: cubic fit of lactate against pace; the anaerobic threshold is the
  curve point farthest from the chord joining the first and last samples

This module is pure logic with NO I/O and NO OpenCV imports.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from fieldkit.core.config import ThresholdSettings
from fieldkit.core.exceptions import InsufficientDataError, NumericalDegeneracyError
from fieldkit.core.logging import get_logger
from fieldkit.core.types import (
    InputRow,
    PreviousResultData,
    ProcessedPoint,
    TestResult,
    ThresholdMethod,
    ThresholdResult,
)

logger = get_logger(__name__)

# Pace changes smaller than this (percent) are reported as no change
COMPARISON_EPSILON = 0.1


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _parse_number(text: str | None) -> float | None:
    """Parse a decimal typed with either ',' or '.' as separator."""
    if text is None:
        return None
    try:
        value = float(text.strip().replace(",", ".", 1))
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def format_pace(pace_decimal: float) -> str:
    """Format decimal minutes per km as m:ss.

    >>> format_pace(4.5)
    '4:30'
    """
    mins = math.floor(pace_decimal)
    secs = _round_half_up((pace_decimal - mins) * 60)
    if secs == 60:
        return f"{mins + 1}:00"
    return f"{mins}:{secs:02d}"


def parse_pace(text: str) -> float:
    """Parse 'm:ss' (or a plain decimal) into decimal minutes.

    Raises:
        ValueError: If the text is not a pace
    """
    if ":" in text:
        mins_text, secs_text = text.split(":", 1)
        mins = _parse_number(mins_text)
        secs = _parse_number(secs_text) if secs_text.strip() else 0.0
        if mins is None or secs is None or not 0 <= secs < 60:
            raise ValueError(f"Invalid pace: {text!r}")
        return mins + secs / 60.0

    value = _parse_number(text)
    if value is None:
        raise ValueError(f"Invalid pace: {text!r}")
    return value


def parse_input_rows(rows: Iterable[InputRow]) -> list[ProcessedPoint]:
    """Parse typed rows into points sorted by pace, slowest first.

    Rows missing minutes, heart rate or lactate are dropped. Seconds
    default to 0. Heart rate is truncated to an integer.
    """
    points: list[ProcessedPoint] = []

    for row in rows:
        mins = _parse_number(row.min)
        hr = _parse_number(row.hr)
        lac = _parse_number(row.lac)
        if mins is None or hr is None or lac is None:
            continue

        secs = _parse_number(row.sec) or 0.0
        points.append(ProcessedPoint(pace_decimal=mins + secs / 60.0, hr=int(hr), lac=lac))

    points.sort(key=lambda p: p.pace_decimal, reverse=True)
    return points


def interpolate_threshold(points: Sequence[ProcessedPoint], target_lac: float) -> ThresholdResult:
    """Linear interpolation of pace and HR at a target lactate.

    Walks consecutive points for the first bracket with
    p1.lac <= target <= p2.lac. If no bracket contains the target, the last
    point is returned when its lactate is below the target, else the first.

    Args:
        points: Points sorted slowest first
        target_lac: Lactate (mmol/L) to locate

    Returns:
        Threshold at the target lactate (or at the clamped point)
    """
    for p1, p2 in zip(points, points[1:]):
        if not p1.lac <= target_lac <= p2.lac:
            continue

        lac_range = p2.lac - p1.lac
        if lac_range == 0 or target_lac == p1.lac:
            return ThresholdResult(pace_decimal=p1.pace_decimal, hr=p1.hr, lac=target_lac)
        if target_lac == p2.lac:
            return ThresholdResult(pace_decimal=p2.pace_decimal, hr=p2.hr, lac=target_lac)

        fraction = (target_lac - p1.lac) / lac_range
        pace = p1.pace_decimal + (p2.pace_decimal - p1.pace_decimal) * fraction
        hr = p1.hr + (p2.hr - p1.hr) * fraction
        return ThresholdResult(pace_decimal=pace, hr=_round_half_up(hr), lac=target_lac)

    last = points[-1]
    if last.lac < target_lac:
        return ThresholdResult(pace_decimal=last.pace_decimal, hr=last.hr, lac=last.lac)

    first = points[0]
    return ThresholdResult(pace_decimal=first.pace_decimal, hr=first.hr, lac=first.lac)


def interpolate_hr_at_pace(points: Sequence[ProcessedPoint], pace: float) -> int:
    """Heart rate at a pace, interpolated between the surrounding points.

    Falls back to the last (fastest) point's HR when no segment contains it.
    """
    for p1, p2 in zip(points, points[1:]):
        if p2.pace_decimal <= pace <= p1.pace_decimal:
            pace_range = p1.pace_decimal - p2.pace_decimal
            if pace_range == 0:
                return p1.hr
            fraction = (p1.pace_decimal - pace) / pace_range
            return _round_half_up(p1.hr + (p2.hr - p1.hr) * fraction)

    return points[-1].hr


def solve_gaussian(a: NDArray[np.float64], b: NDArray[np.float64]) -> NDArray[np.float64]:
    """Solve a x = b by Gaussian elimination with partial pivoting.

    Args:
        a: Square coefficient matrix (not modified)
        b: Right-hand side

    Returns:
        Solution vector

    Raises:
        NumericalDegeneracyError: If a pivot is zero or the result is not finite
    """
    m = np.array(a, dtype=np.float64)
    rhs = np.array(b, dtype=np.float64)
    n = m.shape[0]
    tolerance = np.finfo(np.float64).eps * n * float(np.abs(m).max(initial=0.0))

    for i in range(n):
        pivot_row = i + int(np.argmax(np.abs(m[i:, i])))
        if abs(m[pivot_row, i]) <= tolerance:
            raise NumericalDegeneracyError(f"Singular matrix (zero pivot in column {i})")

        if pivot_row != i:
            m[[i, pivot_row]] = m[[pivot_row, i]]
            rhs[[i, pivot_row]] = rhs[[pivot_row, i]]

        factors = m[i + 1 :, i] / m[i, i]
        m[i + 1 :, i:] -= np.outer(factors, m[i, i:])
        rhs[i + 1 :] -= factors * rhs[i]

    x = np.zeros(n, dtype=np.float64)
    for i in range(n - 1, -1, -1):
        x[i] = (rhs[i] - m[i, i + 1 :] @ x[i + 1 :]) / m[i, i]

    if not np.all(np.isfinite(x)):
        raise NumericalDegeneracyError("Non-finite solution")

    return x


def polyfit(x: Sequence[float], y: Sequence[float], degree: int) -> NDArray[np.float64]:
    """Least-squares polynomial fit through the normal equations.

    Returns:
        Coefficients, lowest power first

    Raises:
        NumericalDegeneracyError: If the normal equations are singular
    """
    xs = np.asarray(x, dtype=np.float64)
    ys = np.asarray(y, dtype=np.float64)
    n = degree + 1

    powers = xs[:, None] ** np.arange(2 * n - 1)
    moments = powers.sum(axis=0)
    lhs = np.array([[moments[i + j] for j in range(n)] for i in range(n)])
    rhs = np.array([float((ys * powers[:, i]).sum()) for i in range(n)])

    return solve_gaussian(lhs, rhs)


def polyval(
    coeffs: Sequence[float] | NDArray[np.float64],
    x: float | NDArray[np.float64],
) -> float | NDArray[np.float64]:
    """Evaluate a lowest-power-first polynomial at x (scalar or array)."""
    values = np.asarray(x, dtype=np.float64)
    result = np.zeros_like(values)
    for power, c in enumerate(coeffs):
        result = result + c * values**power
    return float(result) if result.ndim == 0 else result


def fixed_thresholds(
    points: Sequence[ProcessedPoint],
    settings: ThresholdSettings | None = None,
) -> tuple[ThresholdResult, ThresholdResult]:
    """Aerobic/anaerobic thresholds at fixed lactate levels."""
    settings = settings or ThresholdSettings()
    return (
        interpolate_threshold(points, settings.fixed_aerobic_lac),
        interpolate_threshold(points, settings.fixed_anaerobic_lac),
    )


def baseline_thresholds(
    points: Sequence[ProcessedPoint],
    settings: ThresholdSettings | None = None,
) -> tuple[ThresholdResult, ThresholdResult]:
    """Thresholds at offsets above the lowest measured lactate."""
    settings = settings or ThresholdSettings()
    min_lac = min(p.lac for p in points)
    return (
        interpolate_threshold(points, min_lac + settings.baseline_aerobic_offset),
        interpolate_threshold(points, min_lac + settings.baseline_anaerobic_offset),
    )


def dmax_thresholds(
    points: Sequence[ProcessedPoint],
    settings: ThresholdSettings | None = None,
) -> tuple[ThresholdResult, ThresholdResult]:
    """Dmax anaerobic threshold with a baseline-offset aerobic threshold.

    Raises:
        InsufficientDataError: If there are too few points for the fit
        NumericalDegeneracyError: If the chord or the fit is degenerate
    """
    settings = settings or ThresholdSettings()
    if len(points) < settings.dmax_min_points:
        raise InsufficientDataError(
            f"Dmax needs at least {settings.dmax_min_points} points, got {len(points)}"
        )

    # Ascending pace for the fit
    x = [p.pace_decimal for p in reversed(points)]
    y = [p.lac for p in reversed(points)]

    start_x, start_y = x[0], y[0]
    end_x, end_y = x[-1], y[-1]
    dx = end_x - start_x
    dy = end_y - start_y
    chord = math.hypot(dx, dy)
    if chord == 0:
        raise NumericalDegeneracyError("Dmax chord has zero length")

    coeffs = polyfit(x, y, settings.dmax_degree)

    xs = start_x + np.arange(settings.dmax_steps + 1) * (dx / settings.dmax_steps)
    ys = polyval(coeffs, xs)
    distances = np.abs(dy * xs - dx * ys + end_x * start_y - end_y * start_x) / chord

    best = int(np.argmax(distances))
    ana_pace = float(xs[best])
    ana_lac = float(ys[best])
    if not (math.isfinite(ana_pace) and math.isfinite(ana_lac)):
        raise NumericalDegeneracyError("Dmax produced a non-finite point")

    anaerobic = ThresholdResult(
        pace_decimal=ana_pace,
        hr=interpolate_hr_at_pace(points, ana_pace),
        lac=round(ana_lac, 2),
    )
    min_lac = min(p.lac for p in points)
    aerobic = interpolate_threshold(points, min_lac + settings.baseline_aerobic_offset)

    return aerobic, anaerobic


def calculate_test_results(
    athlete_name: str,
    test_date: str,
    rows: Iterable[InputRow],
    method: ThresholdMethod | str = ThresholdMethod.FIXED,
    previous: PreviousResultData | None = None,
    settings: ThresholdSettings | None = None,
) -> TestResult:
    """Compute thresholds for a step test.

    Args:
        athlete_name: Athlete label
        test_date: Test date as typed
        rows: Raw input rows
        method: Threshold method
        previous: Earlier result to carry for comparison
        settings: Engine parameters

    Returns:
        TestResult. A Dmax request that cannot be computed falls back to
        the baseline method and reports BASELINE.

    Raises:
        InsufficientDataError: If fewer than 2 rows parse
    """
    settings = settings or ThresholdSettings()
    method = ThresholdMethod(method)
    points = parse_input_rows(rows)

    if len(points) < 2:
        raise InsufficientDataError()

    if method == ThresholdMethod.DMAX:
        try:
            aerobic, anaerobic = dmax_thresholds(points, settings)
        except (InsufficientDataError, NumericalDegeneracyError) as e:
            logger.warning("Dmax unavailable (%s), using baseline method", e.message)
            method = ThresholdMethod.BASELINE
            aerobic, anaerobic = baseline_thresholds(points, settings)
    elif method == ThresholdMethod.BASELINE:
        aerobic, anaerobic = baseline_thresholds(points, settings)
    else:
        aerobic, anaerobic = fixed_thresholds(points, settings)

    hrs = [p.hr for p in points]
    lacs = [p.lac for p in points]

    return TestResult(
        athlete_name=athlete_name,
        test_date=test_date,
        method=method,
        points=points,
        aerobic=aerobic,
        anaerobic=anaerobic,
        min_hr=min(hrs),
        max_hr=max(hrs),
        max_lac=max(lacs),
        previous=previous,
    )


def compare_with_previous(current_pace: float, previous_pace: float) -> float:
    """Pace improvement over a previous test, in percent.

    Positive means faster. Changes under COMPARISON_EPSILON are reported as 0.
    """
    if previous_pace == 0:
        return 0.0
    percent = (previous_pace - current_pace) / previous_pace * 100.0
    return 0.0 if abs(percent) < COMPARISON_EPSILON else percent


@dataclass(frozen=True, slots=True)
class TrainingZone:
    """Intensity zone derived from the two thresholds.

    Bounds are None where the zone is open-ended. Pace is min/km, so the
    "slowest" bound is the larger number.

    Attributes:
        name: Zone label (Z1, Z2, Z3)
        hr_min: Lower HR bound
        hr_max: Upper HR bound
        pace_slowest: Slowest pace in the zone
        pace_fastest: Fastest pace in the zone
        workout_pace: Suggested session pace
        workout_hr_min: Suggested session HR floor
        workout_hr_max: Suggested session HR ceiling
    """

    name: str
    hr_min: int | None
    hr_max: int | None
    pace_slowest: float | None
    pace_fastest: float | None
    workout_pace: float
    workout_hr_min: int
    workout_hr_max: int | None


def training_zones(result: TestResult) -> list[TrainingZone]:
    """Three-zone model: below aerobic, between thresholds, above anaerobic."""
    aer = result.aerobic
    ana = result.anaerobic

    return [
        TrainingZone(
            name="Z1",
            hr_min=None,
            hr_max=aer.hr,
            pace_slowest=None,
            pace_fastest=aer.pace_decimal,
            workout_pace=aer.pace_decimal + 0.75,
            workout_hr_min=aer.hr - 20,
            workout_hr_max=aer.hr - 10,
        ),
        TrainingZone(
            name="Z2",
            hr_min=aer.hr,
            hr_max=ana.hr,
            pace_slowest=aer.pace_decimal,
            pace_fastest=ana.pace_decimal,
            workout_pace=ana.pace_decimal + 0.15,
            workout_hr_min=ana.hr - 8,
            workout_hr_max=ana.hr - 3,
        ),
        TrainingZone(
            name="Z3",
            hr_min=ana.hr,
            hr_max=None,
            pace_slowest=ana.pace_decimal,
            pace_fastest=None,
            workout_pace=ana.pace_decimal - 0.25,
            workout_hr_min=ana.hr + 2,
            workout_hr_max=None,
        ),
    ]
