"""Optional pose landmarker (MediaPipe Tasks API) used for the knee angle readout.

Marker tracking never depends on this module; the frame processor accepts
any object with an `estimate(frame) -> Pose | None` method.
"""

from __future__ import annotations

import urllib.request
from pathlib import Path

import mediapipe as mp
import numpy as np
from mediapipe.tasks import python
from mediapipe.tasks.python import vision

from fieldkit.core.config import PoseSettings
from fieldkit.core.exceptions import PoseEstimationError
from fieldkit.core.logging import get_logger
from fieldkit.core.types import Frame, Landmark, Pose

logger = get_logger(__name__)

MODEL_URL_TEMPLATE = (
    "https://storage.googleapis.com/mediapipe-models/pose_landmarker/"
    "pose_landmarker_{variant}/float16/latest/pose_landmarker_{variant}.task"
)
MODEL_DIR = Path.home() / ".cache" / "fieldkit" / "models"


def _download_model(variant: str) -> Path:
    """Download the pose landmarker model if not present.

    Raises:
        PoseEstimationError: If download fails
    """
    model_path = MODEL_DIR / f"pose_landmarker_{variant}.task"
    if model_path.exists():
        return model_path

    logger.info("Downloading MediaPipe pose landmarker (%s)...", variant)
    MODEL_DIR.mkdir(parents=True, exist_ok=True)

    try:
        urllib.request.urlretrieve(MODEL_URL_TEMPLATE.format(variant=variant), model_path)
        logger.info("Model downloaded to %s", model_path)
        return model_path
    except OSError as e:
        raise PoseEstimationError(f"Failed to download model: {e}") from e


class PoseLandmarker:
    """Wrapper around MediaPipe's PoseLandmarker in VIDEO mode.

    Converts MediaPipe results to Pose/Landmark so nothing downstream
    touches MediaPipe types.
    """

    def __init__(self, settings: PoseSettings | None = None) -> None:
        self.settings = settings or PoseSettings()
        self._landmarker: vision.PoseLandmarker | None = None
        self._last_timestamp_ms = -1

    @property
    def is_initialized(self) -> bool:
        """Check if the model is loaded."""
        return self._landmarker is not None

    def initialize(self) -> None:
        """Load the pose model.

        Raises:
            PoseEstimationError: If the model fails to load
        """
        model_path = _download_model(self.settings.landmarker_variant)

        try:
            options = vision.PoseLandmarkerOptions(
                base_options=python.BaseOptions(model_asset_path=str(model_path)),
                running_mode=vision.RunningMode.VIDEO,
                num_poses=1,
                min_pose_detection_confidence=self.settings.min_detection_confidence,
                min_pose_presence_confidence=self.settings.min_tracking_confidence,
                min_tracking_confidence=self.settings.min_tracking_confidence,
            )
            self._landmarker = vision.PoseLandmarker.create_from_options(options)
        except (RuntimeError, ValueError) as e:
            raise PoseEstimationError(f"Failed to initialize MediaPipe: {e}") from e

        logger.info("MediaPipe PoseLandmarker initialized (%s)", self.settings.landmarker_variant)

    def close(self) -> None:
        """Release MediaPipe resources."""
        if self._landmarker is not None:
            self._landmarker.close()
            self._landmarker = None

    def estimate(self, frame: Frame) -> Pose | None:
        """Run pose estimation on an RGB(A) frame.

        Returns:
            Pose with landmarks, or None if no person was found

        Raises:
            PoseEstimationError: If inference fails
        """
        if self._landmarker is None:
            self.initialize()
        landmarker = self._landmarker
        if landmarker is None:
            raise PoseEstimationError("Pose landmarker is not initialized")

        # VIDEO mode rejects non-increasing timestamps
        timestamp_ms = max(int(frame.timestamp * 1000), self._last_timestamp_ms + 1)
        self._last_timestamp_ms = timestamp_ms

        rgb = np.ascontiguousarray(frame.image[..., :3])
        mp_image = mp.Image(image_format=mp.ImageFormat.SRGB, data=rgb)

        try:
            results = landmarker.detect_for_video(mp_image, timestamp_ms)
        except (RuntimeError, ValueError) as e:
            raise PoseEstimationError(f"Estimation failed: {e}") from e

        if not results.pose_landmarks:
            return None

        landmarks = {
            idx: Landmark(
                x=float(lm.x),
                y=float(lm.y),
                z=float(lm.z),
                visibility=float(lm.visibility if lm.visibility is not None else 1.0),
            )
            for idx, lm in enumerate(results.pose_landmarks[0])
        }
        return Pose(landmarks=landmarks, timestamp=frame.timestamp, frame_idx=frame.index)

    def __enter__(self) -> PoseLandmarker:
        self.initialize()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        self.close()
