"""Tests for marker tracking strategies."""

from __future__ import annotations

import numpy as np
import pytest

from fieldkit.core.config import TrackingSettings
from fieldkit.core.exceptions import TrackingError
from fieldkit.core.types import COLOR_PRESETS, ROI, Frame, TrackingStrategy
from fieldkit.vision.color import rgb_to_hsv
from fieldkit.vision.tracking import FrameTracker, TrackingParams, create_mask, track


class TestColorConversion:
    """Tests for RGB to HSV on the OpenCV scale."""

    def test_pure_green(self) -> None:
        """Pure green should map to hue 60 with full saturation and value."""
        hsv = rgb_to_hsv(np.array([[[0, 255, 0]]], dtype=np.uint8))

        assert hsv[0, 0, 0] == pytest.approx(60.0, abs=0.1)
        assert hsv[0, 0, 1] == pytest.approx(255.0, abs=0.1)
        assert hsv[0, 0, 2] == pytest.approx(255.0, abs=0.1)

    def test_alpha_channel_ignored(self) -> None:
        """RGBA input should convert like RGB."""
        rgba = np.array([[[255, 0, 0, 7]]], dtype=np.uint8)

        hsv = rgb_to_hsv(rgba)

        assert hsv.shape == (1, 1, 3)
        assert hsv[0, 0, 0] == pytest.approx(0.0, abs=0.1)


class TestBrightnessTracking:
    """Tests for the brightest-point strategy."""

    def test_centroid_of_bright_block(self, make_image) -> None:
        """Should return the block centroid normalized to the frame."""
        image = make_image(top=40, left=60)
        params = TrackingParams(strategy=TrackingStrategy.BRIGHTNESS, stride=1)

        sample = track(image, ROI.full(100, 100), params)

        assert sample is not None
        assert sample.x == pytest.approx(0.645)
        assert sample.y == pytest.approx(0.445)
        assert sample.confidence == pytest.approx(0.5)

    def test_coordinates_relative_to_full_frame(self, make_image) -> None:
        """An offset ROI should not shift the reported position."""
        image = make_image(top=40, left=60)
        params = TrackingParams(strategy=TrackingStrategy.BRIGHTNESS, stride=1)

        sample = track(image, ROI(50, 30, 50, 40), params)

        assert sample is not None
        assert sample.x == pytest.approx(0.645)
        assert sample.y == pytest.approx(0.445)

    def test_stride_samples_fewer_pixels(self, make_image) -> None:
        """Stride 4 should see every fourth pixel of each row."""
        image = make_image(top=40, left=60)
        params = TrackingParams(strategy=TrackingStrategy.BRIGHTNESS, stride=4)

        sample = track(image, ROI.full(100, 100), params)

        assert sample is not None
        # Columns 60, 64, 68 on each of the 10 rows
        assert sample.x == pytest.approx(0.64)
        assert sample.confidence == pytest.approx(30 / 200)

    def test_dark_frame_is_a_miss(self) -> None:
        """No bright pixels should give None."""
        image = np.zeros((100, 100, 3), dtype=np.uint8)

        assert track(image, ROI.full(100, 100), TrackingParams()) is None

    def test_single_channel(self, make_image) -> None:
        """A red block should be found on the red channel only."""
        image = make_image(top=10, left=10, color=(255, 0, 0))

        red = TrackingParams(brightness_channel="r", stride=1)
        green = TrackingParams(brightness_channel="g", stride=1)

        assert track(image, ROI.full(100, 100), red) is not None
        assert track(image, ROI.full(100, 100), green) is None

    def test_rgba_frame(self, make_image) -> None:
        """Four-channel frames should track like RGB frames."""
        rgb = make_image(top=40, left=60)
        rgba = np.dstack([rgb, np.full((100, 100), 255, dtype=np.uint8)])
        params = TrackingParams(stride=1)

        sample = track(rgba, ROI.full(100, 100), params)

        assert sample is not None
        assert sample.y == pytest.approx(0.445)


class TestColorTracking:
    """Tests for the HSV colour strategy."""

    def test_green_marker_with_preset(self, make_image) -> None:
        """The green preset should locate a pure green block."""
        image = make_image(top=20, left=30, color=(0, 255, 0))
        params = TrackingParams(
            strategy=TrackingStrategy.COLOR,
            color_range=COLOR_PRESETS["green"],
            stride=1,
        )

        sample = track(image, ROI.full(100, 100), params)

        assert sample is not None
        assert sample.x == pytest.approx(0.345)
        assert sample.y == pytest.approx(0.245)
        assert sample.confidence == pytest.approx(100 / 500)

    def test_blob_below_minimum_is_a_miss(self, make_image) -> None:
        """Fewer matches than min_blob_size should give None."""
        image = make_image(top=20, left=30, size=5, color=(0, 255, 0))
        params = TrackingParams(
            strategy=TrackingStrategy.COLOR,
            color_range=COLOR_PRESETS["green"],
            stride=1,
        )

        assert track(image, ROI.full(100, 100), params) is None

    def test_blob_at_minimum_is_tracked(self) -> None:
        """Exactly min_blob_size matches is enough for a sample."""
        image = np.zeros((100, 100, 3), dtype=np.uint8)
        image[20:25, 30:40] = (0, 255, 0)
        params = TrackingParams(
            strategy=TrackingStrategy.COLOR,
            color_range=COLOR_PRESETS["green"],
            stride=1,
        )

        sample = track(image, ROI.full(100, 100), params)

        assert sample is not None
        assert sample.confidence == pytest.approx(50 / 500)

    def test_confidence_grows_with_matches_up_to_cap(self) -> None:
        """More matching pixels never lower confidence, which caps at 1.0."""
        params = TrackingParams(
            strategy=TrackingStrategy.COLOR,
            color_range=COLOR_PRESETS["green"],
            stride=1,
        )
        confidences = []
        for count in (50, 51, 100, 250, 499, 500, 501, 800, 1600):
            image = np.zeros((40, 40, 3), dtype=np.uint8)
            image.reshape(-1, 3)[:count] = (0, 255, 0)
            sample = track(image, ROI.full(40, 40), params)
            assert sample is not None
            confidences.append(sample.confidence)

        assert confidences == sorted(confidences)
        assert confidences[-1] == 1.0
        assert confidences[5] == pytest.approx(1.0)

    def test_requires_color_range(self, make_image) -> None:
        """Colour tracking without a range is a configuration error."""
        params = TrackingParams(strategy=TrackingStrategy.COLOR, color_range=None)

        with pytest.raises(TrackingError):
            track(make_image(top=0, left=0), ROI.full(100, 100), params)

    def test_create_mask(self, make_image) -> None:
        """Preview mask should mark exactly the matching pixels."""
        image = make_image(top=20, left=30, color=(0, 255, 0))

        mask = create_mask(image, ROI.full(100, 100), COLOR_PRESETS["green"])

        assert mask.dtype == np.uint8
        assert int(np.count_nonzero(mask)) == 100
        assert mask[25, 35] == 255


class TestMotionTracking:
    """Tests for the frame-difference strategies."""

    def test_first_frame_is_a_miss(self, make_image) -> None:
        """Motion needs a previous frame."""
        tracker = FrameTracker(TrackingParams(strategy=TrackingStrategy.MOTION, stride=1))
        frame = Frame(image=make_image(top=40, left=40), timestamp=0.0, index=0)

        assert tracker.track(frame) is None

    def test_detects_appearing_block(self, make_image) -> None:
        """Pixels that changed since the last frame should be tracked."""
        tracker = FrameTracker(TrackingParams(strategy=TrackingStrategy.MOTION, stride=1))
        dark = Frame(image=np.zeros((100, 100, 3), dtype=np.uint8), timestamp=0.0, index=0)
        lit = Frame(image=make_image(top=40, left=60), timestamp=0.01, index=1)

        tracker.track(dark)
        sample = tracker.track(lit)

        assert sample is not None
        assert sample.x == pytest.approx(0.645)
        assert sample.y == pytest.approx(0.445)

    def test_static_scene_is_a_miss(self, make_image) -> None:
        """Identical frames have no motion."""
        tracker = FrameTracker(TrackingParams(strategy=TrackingStrategy.MOTION, stride=1))
        image = make_image(top=40, left=60)

        tracker.track(Frame(image=image, timestamp=0.0, index=0))
        assert tracker.track(Frame(image=image.copy(), timestamp=0.01, index=1)) is None

    def test_lowest_moving_row(self, make_image) -> None:
        """Lowest-motion should report the bottom row of the moving region."""
        tracker = FrameTracker(TrackingParams(strategy=TrackingStrategy.LOWEST_MOTION))
        dark = Frame(image=np.zeros((100, 100, 3), dtype=np.uint8), timestamp=0.0, index=0)
        image = np.zeros((100, 100, 3), dtype=np.uint8)
        image[40:50, 40:80] = 255

        tracker.track(dark)
        sample = tracker.track(Frame(image=image, timestamp=0.01, index=1))

        assert sample is not None
        assert sample.y == pytest.approx(0.49)
        # Stride 2 samples even columns 40..78
        assert sample.x == pytest.approx(0.59)

    def test_reset_drops_previous_frame(self, make_image) -> None:
        """After reset the next frame has nothing to compare against."""
        tracker = FrameTracker(TrackingParams(strategy=TrackingStrategy.MOTION, stride=1))
        tracker.track(Frame(image=np.zeros((100, 100, 3), dtype=np.uint8), timestamp=0.0, index=0))

        tracker.reset()

        lit = Frame(image=make_image(top=40, left=60), timestamp=0.01, index=1)
        assert tracker.track(lit) is None


class TestEdgeTracking:
    """Tests for the Sobel edge strategy."""

    def test_square_outline_centroid(self) -> None:
        """Edges of a centred square should average to its centre."""
        image = np.zeros((100, 100, 3), dtype=np.uint8)
        image[40:60, 40:60] = 255
        params = TrackingParams(strategy=TrackingStrategy.EDGE)

        sample = track(image, ROI.full(100, 100), params)

        assert sample is not None
        assert sample.x == pytest.approx(0.495, abs=0.01)
        assert sample.y == pytest.approx(0.495, abs=0.01)

    def test_flat_image_is_a_miss(self) -> None:
        """A uniform image has no edges."""
        image = np.full((100, 100, 3), 128, dtype=np.uint8)
        params = TrackingParams(strategy=TrackingStrategy.EDGE)

        assert track(image, ROI.full(100, 100), params) is None


class TestFrameTracker:
    """Tests for ROI handling in the stateful tracker."""

    def test_roi_outside_frame_raises(self, make_image) -> None:
        """An ROI with no overlap should be rejected."""
        with pytest.raises(TrackingError):
            track(make_image(top=0, left=0), ROI(200, 200, 10, 10), TrackingParams())

    def test_roi_from_fractions(self) -> None:
        """Fractional ROI should scale with the frame."""
        tracker = FrameTracker(roi_fractions=(0.4, 0.0, 0.2, 1.0))
        frame = Frame(image=np.zeros((720, 1280, 3), dtype=np.uint8), timestamp=0.0, index=0)

        assert tracker.roi_for(frame) == ROI(512, 0, 256, 720)

    def test_roi_factory(self) -> None:
        """A factory ROI should be built from the frame size."""
        tracker = FrameTracker(roi_factory=lambda w, h: ROI.centered_square(0.4, w, h))
        frame = Frame(image=np.zeros((720, 1280, 3), dtype=np.uint8), timestamp=0.0, index=0)

        assert tracker.roi_for(frame) == ROI(496, 216, 288, 288)

    def test_fixed_roi_wins(self) -> None:
        """set_roi should override fractions."""
        tracker = FrameTracker(roi_fractions=(0.4, 0.0, 0.2, 1.0))
        frame = Frame(image=np.zeros((100, 100, 3), dtype=np.uint8), timestamp=0.0, index=0)

        tracker.set_roi(ROI(10, 10, 20, 20))

        assert tracker.roi_for(frame) == ROI(10, 10, 20, 20)

    def test_params_from_settings(self) -> None:
        """Settings should map onto params with the preset colour range."""
        settings = TrackingSettings(strategy=TrackingStrategy.COLOR, color_preset="orange")

        params = TrackingParams.from_settings(settings)

        assert params.strategy == TrackingStrategy.COLOR
        assert params.color_range == COLOR_PRESETS["orange"]
        assert params.stride == settings.stride

    def test_set_color_range(self) -> None:
        """Swapping the colour range should keep the other params."""
        tracker = FrameTracker(TrackingParams(strategy=TrackingStrategy.COLOR, stride=2))

        tracker.set_color_range(COLOR_PRESETS["white"])

        assert tracker.params.color_range == COLOR_PRESETS["white"]
        assert tracker.params.stride == 2
