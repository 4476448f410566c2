"""Application configuration via Pydantic Settings."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from fieldkit.core.types import JumpMode, ThresholdMethod, TrackingStrategy


class CameraSettings(BaseSettings):
    """Camera capture settings."""

    model_config = SettingsConfigDict(env_prefix="CAMERA_")

    device: int = 0
    width: int = 1280
    height: int = 720
    fps: int = 60


class TrackingSettings(BaseSettings):
    """Marker tracking strategy and per-strategy parameters."""

    model_config = SettingsConfigDict(env_prefix="TRACK_")

    strategy: TrackingStrategy = TrackingStrategy.BRIGHTNESS
    color_preset: Literal["white", "green", "orange"] = "green"
    stride: int = Field(default=4, ge=1)
    min_confidence: float = 0.3

    # COLOR
    min_blob_size: int = 50
    # BRIGHTNESS
    brightness_channel: Literal["r", "g", "b", "brightness"] = "brightness"
    brightness_threshold: float = 200.0
    min_bright_pixels: int = 10
    # MOTION
    motion_threshold: float = 25.0
    min_motion_pixels: int = 30
    # LOWEST_MOTION
    lowest_motion_threshold: float = 20.0
    lowest_motion_stride: int = Field(default=2, ge=1)
    min_row_motion_pixels: int = 10
    # EDGE
    edge_threshold: float = 50.0
    min_edge_pixels: int = 30

    # Region of interest as fractions of the frame
    roi_x: float = 0.0
    roi_y: float = 0.0
    roi_w: float = 1.0
    roi_h: float = 1.0


_JUMP_MODE_PRESETS: dict[JumpMode, dict[str, float]] = {
    JumpMode.CMJ: {
        "threshold": 0.025,
        "min_flight_ms": 100.0,
        "max_flight_ms": 1500.0,
        "auto_stop_ms": 5000.0,
    },
    JumpMode.RSI: {
        "threshold": 0.015,
        "min_flight_ms": 80.0,
        "max_flight_ms": 1000.0,
        "min_contact_ms": 50.0,
        "max_contact_ms": 3000.0,
        "auto_stop_ms": 3000.0,
    },
}


class JumpDetectionSettings(BaseSettings):
    """Jump test state machine parameters."""

    model_config = SettingsConfigDict(env_prefix="JUMP_")

    mode: JumpMode = JumpMode.CMJ
    threshold: float = 0.025
    baseline_window: int = 30
    smoothing_window: int = Field(default=3, ge=1)
    min_flight_ms: float = 100.0
    max_flight_ms: float = 1500.0
    min_contact_ms: float = 50.0
    max_contact_ms: float = 3000.0
    auto_stop_ms: float = 5000.0
    gravity: float = 9.81

    @classmethod
    def for_mode(cls, mode: JumpMode | str, **overrides: float) -> JumpDetectionSettings:
        """Build settings from the preset for a jump mode.

        Args:
            mode: CMJ or RSI
            **overrides: Field values that replace the preset

        Returns:
            Settings with the mode preset applied
        """
        jump_mode = JumpMode(mode)
        values: dict[str, object] = dict(_JUMP_MODE_PRESETS[jump_mode])
        values.update(overrides)
        return cls(mode=jump_mode, **values)


class VbtSettings(BaseSettings):
    """Velocity-based-training rep detection parameters."""

    model_config = SettingsConfigDict(env_prefix="VBT_")

    window_size: int = 10
    min_window_samples: int = 6
    movement_threshold: float = 0.003
    # No distance calibration is done; this maps normalized units/s to m/s
    velocity_scale: float = 2.5
    rep_end_gap_s: float = 0.5
    silence_s: float = 3.5


class ThresholdSettings(BaseSettings):
    """Lactate threshold engine parameters."""

    model_config = SettingsConfigDict(env_prefix="THRESHOLD_")

    method: ThresholdMethod = ThresholdMethod.FIXED
    fixed_aerobic_lac: float = 2.0
    fixed_anaerobic_lac: float = 4.0
    baseline_aerobic_offset: float = 0.5
    baseline_anaerobic_offset: float = 1.5
    dmax_degree: int = 3
    dmax_steps: int = 500
    dmax_min_points: int = 4


class SessionSettings(BaseSettings):
    """Session lifecycle and timer settings."""

    model_config = SettingsConfigDict(env_prefix="SESSION_")

    ui_refresh_ms: float = 500.0
    athlete_name: str = "Athlete"


class PoseSettings(BaseSettings):
    """MediaPipe pose landmarker settings (optional knee angle)."""

    model_config = SettingsConfigDict(env_prefix="POSE_")

    enabled: bool = False
    landmarker_variant: Literal["lite", "full", "heavy"] = "lite"
    min_detection_confidence: float = 0.5
    min_tracking_confidence: float = 0.5
    min_visibility: float = 0.5


class UISettings(BaseSettings):
    """Display and overlay settings."""

    model_config = SettingsConfigDict(env_prefix="")

    display_width: int = Field(default=1280, alias="DISPLAY_WIDTH")
    display_height: int = Field(default=720, alias="DISPLAY_HEIGHT")
    show_roi: bool = Field(default=True, alias="SHOW_ROI")
    show_baseline: bool = Field(default=True, alias="SHOW_BASELINE")
    show_skeleton: bool = Field(default=True, alias="SHOW_SKELETON")


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: str = "INFO"
    file: str | None = None


class Settings(BaseSettings):
    """Root settings aggregating all configuration sections."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    camera: CameraSettings = Field(default_factory=CameraSettings)
    tracking: TrackingSettings = Field(default_factory=TrackingSettings)
    jump: JumpDetectionSettings = Field(default_factory=JumpDetectionSettings)
    vbt: VbtSettings = Field(default_factory=VbtSettings)
    threshold: ThresholdSettings = Field(default_factory=ThresholdSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    pose: PoseSettings = Field(default_factory=PoseSettings)
    ui: UISettings = Field(default_factory=UISettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings instance."""
    return Settings()
