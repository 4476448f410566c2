"""Tests for the lactate threshold engine."""

from __future__ import annotations

import numpy as np
import pytest

from fieldkit.analysis.threshold import (
    calculate_test_results,
    compare_with_previous,
    dmax_thresholds,
    format_pace,
    interpolate_hr_at_pace,
    interpolate_threshold,
    parse_input_rows,
    parse_pace,
    polyfit,
    polyval,
    solve_gaussian,
    training_zones,
)
from fieldkit.core.exceptions import InsufficientDataError, NumericalDegeneracyError
from fieldkit.core.types import (
    InputRow,
    PaceHr,
    PreviousResultData,
    ProcessedPoint,
    ThresholdMethod,
)


class TestPace:
    """Tests for pace formatting and parsing."""

    @pytest.mark.parametrize(
        ("pace", "text"),
        [(4.5, "4:30"), (5.0, "5:00"), (4.25, "4:15"), (4.999, "5:00"), (3.2, "3:12")],
    )
    def test_format_pace(self, pace: float, text: str) -> None:
        """Decimal minutes should format as m:ss, carrying 60 s into the minute."""
        assert format_pace(pace) == text

    def test_parse_pace(self) -> None:
        """m:ss and decimal forms should both parse."""
        assert parse_pace("4:30") == pytest.approx(4.5)
        assert parse_pace("5:") == pytest.approx(5.0)
        assert parse_pace("4,5") == pytest.approx(4.5)

    @pytest.mark.parametrize("text", ["", "abc", "4:75", "x:30"])
    def test_parse_pace_invalid(self, text: str) -> None:
        """Malformed paces should raise ValueError."""
        with pytest.raises(ValueError):
            parse_pace(text)


class TestParseInputRows:
    """Tests for step-test row parsing."""

    def test_sorted_slowest_first(self) -> None:
        """Points should come out in descending pace."""
        rows = [
            InputRow(min="4", sec="30", hr="170", lac="4.0"),
            InputRow(min="6", sec="0", hr="130", lac="1.0"),
        ]

        points = parse_input_rows(rows)

        assert [p.pace_decimal for p in points] == pytest.approx([6.0, 4.5])

    def test_comma_decimal_and_truncated_hr(self) -> None:
        """Comma separators parse and heart rate is truncated."""
        points = parse_input_rows([InputRow(min="5", sec="", hr="152.9", lac="1,5")])

        assert points == [ProcessedPoint(pace_decimal=5.0, hr=152, lac=1.5)]

    def test_incomplete_rows_dropped(self) -> None:
        """Rows missing minutes, HR or lactate are skipped."""
        rows = [
            InputRow(min="", sec="30", hr="150", lac="2.0"),
            InputRow(min="5", sec="0", hr="", lac="2.0"),
            InputRow(min="5", sec="0", hr="150", lac="n/a"),
            InputRow(min="5", sec="0", hr="150", lac="inf"),
            InputRow(min="4", sec="0", hr="170", lac="4.0"),
        ]

        points = parse_input_rows(rows)

        assert len(points) == 1
        assert points[0].hr == 170


class TestInterpolation:
    """Tests for threshold interpolation."""

    @pytest.fixture
    def points(self, step_test_rows) -> list[ProcessedPoint]:
        return parse_input_rows(step_test_rows)

    def test_between_points(self, points) -> None:
        """2.0 mmol/L lies between the 5:15 and 5:00 stages."""
        result = interpolate_threshold(points, 2.0)

        assert result.pace_decimal == pytest.approx(5.25 - 0.25 * (0.2 / 0.7))
        assert result.hr == 154
        assert result.lac == 2.0

    def test_exact_match_uses_stage(self, points) -> None:
        """A target equal to a stage lactate returns that stage."""
        result = interpolate_threshold(points, 2.5)

        assert result.pace_decimal == pytest.approx(5.0)
        assert result.hr == 160

    def test_hr_rounds_half_up(self) -> None:
        """Interpolated heart rate rounds .5 upwards."""
        points = [
            ProcessedPoint(pace_decimal=6.0, hr=150, lac=1.0),
            ProcessedPoint(pace_decimal=5.0, hr=151, lac=3.0),
        ]

        assert interpolate_threshold(points, 2.0).hr == 151

    def test_above_all_clamps_to_fastest(self, points) -> None:
        """A target above every lactate returns the last point."""
        result = interpolate_threshold(points, 10.0)

        assert result.pace_decimal == pytest.approx(4.25)
        assert result.lac == 7.5

    def test_below_all_clamps_to_slowest(self, points) -> None:
        """A target below every lactate returns the first point."""
        result = interpolate_threshold(points, 0.5)

        assert result.pace_decimal == pytest.approx(6.0)
        assert result.lac == 1.0

    def test_hr_at_pace(self, points) -> None:
        """HR should interpolate along pace."""
        assert interpolate_hr_at_pace(points, 5.125) == 156
        assert interpolate_hr_at_pace(points, 3.0) == 182


class TestLinearAlgebra:
    """Tests for the Gaussian solver and polynomial helpers."""

    def test_solve_with_pivoting(self) -> None:
        """A zero leading diagonal needs a row swap."""
        a = np.array([[0.0, 2.0, 1.0], [1.0, 1.0, 0.0], [3.0, 0.0, 1.0]])
        b = np.array([5.0, 3.0, 6.0])

        x = solve_gaussian(a, b)

        np.testing.assert_allclose(x, np.linalg.solve(a, b))

    def test_solver_does_not_modify_inputs(self) -> None:
        """Inputs should be left untouched."""
        a = np.array([[0.0, 1.0], [1.0, 1.0]])
        b = np.array([1.0, 2.0])

        solve_gaussian(a, b)

        np.testing.assert_array_equal(a, [[0.0, 1.0], [1.0, 1.0]])
        np.testing.assert_array_equal(b, [1.0, 2.0])

    def test_singular_matrix(self) -> None:
        """Linearly dependent rows should raise NumericalDegeneracyError."""
        a = np.array([[1.0, 2.0], [2.0, 4.0]])

        with pytest.raises(NumericalDegeneracyError):
            solve_gaussian(a, np.array([1.0, 2.0]))

    def test_polyfit_matches_numpy(self) -> None:
        """Least-squares fit should agree with numpy (which is highest power first)."""
        rng = np.random.default_rng(7)
        x = np.linspace(4.0, 6.0, 8)
        y = 30.0 - 11.0 * x + 1.1 * x**2 + rng.normal(0.0, 0.05, x.size)

        coeffs = polyfit(x, y, 2)

        np.testing.assert_allclose(coeffs, np.polyfit(x, y, 2)[::-1], rtol=1e-5)

    def test_polyfit_exact_quadratic(self) -> None:
        """An exact quadratic should be recovered."""
        x = [1.0, 2.0, 3.0, 4.0, 5.0]
        y = [2 + 3 * v - v * v for v in x]

        np.testing.assert_allclose(polyfit(x, y, 2), [2.0, 3.0, -1.0], atol=1e-8)

    def test_polyfit_degenerate(self) -> None:
        """Repeated x values cannot support a cubic."""
        with pytest.raises(NumericalDegeneracyError):
            polyfit([0.0, 0.0, 0.0, 0.0], [1.0, 2.0, 3.0, 4.0], 3)

    def test_polyval_scalar_and_array(self) -> None:
        """Scalars evaluate to float, arrays to arrays."""
        value = polyval([1.0, 2.0, 3.0], 2.0)

        assert isinstance(value, float)
        assert value == pytest.approx(17.0)
        np.testing.assert_allclose(polyval([1.0, 2.0, 3.0], np.array([0.0, 1.0])), [1.0, 6.0])


class TestMethods:
    """Tests for fixed, baseline and Dmax thresholds."""

    def test_fixed(self, step_test_rows) -> None:
        """Fixed method interpolates at 2 and 4 mmol/L."""
        result = calculate_test_results("Ana", "2024-05-01", step_test_rows)

        assert result.method == ThresholdMethod.FIXED
        assert 5.0 < result.aerobic.pace_decimal < 5.5
        assert 4.5 < result.anaerobic.pace_decimal < 4.75
        assert result.aerobic.hr == 154
        assert result.anaerobic.hr == 171
        assert result.min_hr == 130
        assert result.max_hr == 182
        assert result.max_lac == 7.5

    def test_baseline(self, step_test_rows) -> None:
        """Baseline method offsets from the lowest lactate."""
        result = calculate_test_results("Ana", "", step_test_rows, ThresholdMethod.BASELINE)

        assert result.aerobic.lac == pytest.approx(1.5)
        assert result.aerobic.pace_decimal == pytest.approx(5.4375)
        assert result.aerobic.hr == 147
        assert result.anaerobic.pace_decimal == pytest.approx(5.0)

    def test_dmax(self, step_test_rows) -> None:
        """Dmax should place the anaerobic threshold inside the tested range."""
        result = calculate_test_results("Ana", "", step_test_rows, "dmax")

        assert result.method == ThresholdMethod.DMAX
        assert 4.25 < result.anaerobic.pace_decimal < 6.0
        assert 1.0 < result.anaerobic.lac < 7.5
        assert result.anaerobic.lac == round(result.anaerobic.lac, 2)
        assert result.aerobic.pace_decimal == pytest.approx(5.4375)

    def test_dmax_too_few_points_falls_back(self, step_test_rows) -> None:
        """Dmax with three points should fall back to the baseline method."""
        result = calculate_test_results("Ana", "", step_test_rows[:3], ThresholdMethod.DMAX)

        assert result.method == ThresholdMethod.BASELINE

    def test_dmax_direct_raises(self, step_test_rows) -> None:
        """The Dmax function itself reports missing data."""
        points = parse_input_rows(step_test_rows[:3])

        with pytest.raises(InsufficientDataError):
            dmax_thresholds(points)

    def test_dmax_zero_chord(self) -> None:
        """Identical first and last samples give a degenerate chord."""
        points = [
            ProcessedPoint(pace_decimal=5.0, hr=150, lac=2.0),
            ProcessedPoint(pace_decimal=5.0, hr=151, lac=2.0),
            ProcessedPoint(pace_decimal=5.0, hr=152, lac=2.0),
            ProcessedPoint(pace_decimal=5.0, hr=153, lac=2.0),
        ]

        with pytest.raises(NumericalDegeneracyError):
            dmax_thresholds(points)

    def test_insufficient_rows(self) -> None:
        """Fewer than two valid rows is an error."""
        rows = [
            InputRow(min="5", sec="0", hr="150", lac="2.0"),
            InputRow(min="", sec="", hr="", lac=""),
        ]

        with pytest.raises(InsufficientDataError):
            calculate_test_results("Ana", "", rows)

    def test_previous_result_carried(self, step_test_rows) -> None:
        """Previous data should be attached unchanged."""
        previous = PreviousResultData(
            date="2024-01-01",
            aerobic=PaceHr(pace_decimal=5.5, hr=150),
            anaerobic=PaceHr(pace_decimal=4.9, hr=168),
        )

        result = calculate_test_results("Ana", "", step_test_rows, previous=previous)

        assert result.previous == previous


class TestFieldTestScenario:
    """End-to-end run on a full eight-stage field test."""

    @pytest.fixture
    def field_rows(self) -> list[InputRow]:
        return [
            InputRow(min="7", sec="00", hr="125", lac="1.1"),
            InputRow(min="6", sec="30", hr="132", lac="1.2"),
            InputRow(min="6", sec="00", hr="139", lac="1.4"),
            InputRow(min="5", sec="30", hr="148", lac="1.7"),
            InputRow(min="5", sec="00", hr="158", lac="2.4"),
            InputRow(min="4", sec="45", hr="166", lac="3.5"),
            InputRow(min="4", sec="30", hr="174", lac="5.8"),
            InputRow(min="4", sec="15", hr="181", lac="8.4"),
        ]

    def test_fixed_thresholds_inside_brackets(self, field_rows) -> None:
        """2.0 and 4.0 mmol/L fall strictly between the straddling stages."""
        result = calculate_test_results("Ana", "2024-05-01", field_rows, "fixed")

        assert result.method == ThresholdMethod.FIXED
        assert 5.0 < result.aerobic.pace_decimal < 5.5
        assert result.aerobic.pace_decimal == pytest.approx(5.5 - 0.5 * 0.3 / 0.7)
        assert result.aerobic.hr == 152
        assert 4.5 < result.anaerobic.pace_decimal < 4.75
        assert result.anaerobic.pace_decimal == pytest.approx(4.75 - 0.25 * 0.5 / 2.3)
        assert result.anaerobic.hr == 168
        assert result.min_hr == 125
        assert result.max_hr == 181
        assert result.max_lac == pytest.approx(8.4)

    def test_dmax_is_interior(self, field_rows) -> None:
        """On an accelerating curve Dmax never picks an end stage."""
        result = calculate_test_results("Ana", "2024-05-01", field_rows, "dmax")

        assert result.method == ThresholdMethod.DMAX
        assert 4.25 < result.anaerobic.pace_decimal < 7.0


class TestComparisonAndZones:
    """Tests for progress comparison and training zones."""

    def test_faster_is_positive(self) -> None:
        """A lower pace than before is an improvement."""
        assert compare_with_previous(5.0, 5.2) == pytest.approx(0.2 / 5.2 * 100)

    def test_tiny_change_is_zero(self) -> None:
        """Changes under 0.1 percent are reported as no change."""
        assert compare_with_previous(5.0, 5.001) == 0.0

    def test_zones_follow_thresholds(self, step_test_rows) -> None:
        """Zones should be bounded by the two thresholds."""
        result = calculate_test_results("Ana", "", step_test_rows)

        z1, z2, z3 = training_zones(result)

        assert z1.hr_max == result.aerobic.hr
        assert z1.workout_pace == pytest.approx(result.aerobic.pace_decimal + 0.75)
        assert z2.hr_min == result.aerobic.hr
        assert z2.hr_max == result.anaerobic.hr
        assert z2.workout_hr_max == result.anaerobic.hr - 3
        assert z3.hr_min == result.anaerobic.hr
        assert z3.workout_pace == pytest.approx(result.anaerobic.pace_decimal - 0.25)
        assert z3.workout_hr_max is None
