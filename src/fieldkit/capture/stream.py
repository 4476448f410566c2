"""Frame sources: live camera and recorded video.

Every source yields RGB Frame objects whose timestamps are monotonic
seconds since the source was opened. The tracking session accepts any
object that satisfies FrameSource, which is how tests feed synthetic
frames.
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from pathlib import Path
from typing import Protocol, runtime_checkable

import cv2

from fieldkit.core.config import CameraSettings
from fieldkit.core.exceptions import CameraAcquisitionError, VideoStreamError
from fieldkit.core.logging import get_logger
from fieldkit.core.types import Frame

logger = get_logger(__name__)


@runtime_checkable
class FrameSource(Protocol):
    """Anything the tracking session can pull frames from."""

    @property
    def device_key(self) -> str:
        """Identifier of the underlying device; one session per key."""
        ...

    def open(self) -> None: ...

    def close(self) -> None: ...

    def frames(self) -> Iterator[Frame]: ...


class CameraSource:
    """Live camera via cv2.VideoCapture.

    Acquisition is attempted once; failure raises CameraAcquisitionError
    and the caller decides whether to retry.
    """

    def __init__(self, settings: CameraSettings | None = None) -> None:
        """Initialize camera source.

        Args:
            settings: Device index and requested capture format
        """
        self.settings = settings or CameraSettings()
        self._capture: cv2.VideoCapture | None = None
        self._start_time: float | None = None
        self._frame_idx = 0

    @property
    def device_key(self) -> str:
        """Camera identifier."""
        return f"camera:{self.settings.device}"

    @property
    def is_open(self) -> bool:
        """Check if the camera is acquired."""
        return self._capture is not None

    @property
    def frame_count(self) -> int:
        """Number of frames captured so far."""
        return self._frame_idx

    def open(self) -> None:
        """Acquire the camera.

        Raises:
            CameraAcquisitionError: If the device cannot be opened
        """
        if self._capture is not None:
            return

        capture = cv2.VideoCapture(self.settings.device)
        if not capture.isOpened():
            capture.release()
            raise CameraAcquisitionError(f"Cannot open camera device {self.settings.device}")

        capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.settings.width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.settings.height)
        capture.set(cv2.CAP_PROP_FPS, self.settings.fps)

        self._capture = capture
        self._start_time = time.monotonic()
        self._frame_idx = 0
        logger.info(
            "Camera %d opened at %dx%d",
            self.settings.device,
            int(capture.get(cv2.CAP_PROP_FRAME_WIDTH)),
            int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT)),
        )

    def close(self) -> None:
        """Release the camera."""
        if self._capture is None:
            return
        self._capture.release()
        self._capture = None
        logger.info("Camera released (captured %d frames)", self._frame_idx)

    def frames(self) -> Iterator[Frame]:
        """Yield frames until closed.

        Raises:
            VideoStreamError: If the camera stops delivering frames
        """
        if self._capture is None:
            self.open()

        while self._capture is not None:
            ok, bgr = self._capture.read()
            if not ok or bgr is None:
                raise VideoStreamError(f"Camera {self.settings.device} stopped delivering frames")

            frame = Frame(
                image=cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB),
                timestamp=time.monotonic() - (self._start_time or 0.0),
                index=self._frame_idx,
            )
            self._frame_idx += 1
            yield frame

    def __enter__(self) -> CameraSource:
        self.open()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        self.close()


class VideoFileSource:
    """Recorded video, timestamped by the container clock.

    Frames come out as fast as they decode, so offline analysis is not
    limited to real time.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._capture: cv2.VideoCapture | None = None
        self._fps = 0.0
        self._frame_idx = 0

    @property
    def device_key(self) -> str:
        """File identifier."""
        return f"file:{self.path.resolve()}"

    @property
    def fps(self) -> float:
        """Container frame rate (0 if unknown)."""
        return self._fps

    def open(self) -> None:
        """Open the file.

        Raises:
            CameraAcquisitionError: If the file is missing or cannot be decoded
        """
        if self._capture is not None:
            return
        if not self.path.exists():
            raise CameraAcquisitionError(f"Video file not found: {self.path}")

        capture = cv2.VideoCapture(str(self.path))
        if not capture.isOpened():
            capture.release()
            raise CameraAcquisitionError(f"Cannot decode video file: {self.path}")

        self._capture = capture
        self._fps = float(capture.get(cv2.CAP_PROP_FPS) or 0.0)
        self._frame_idx = 0
        logger.info("Opened %s (%.1f fps)", self.path.name, self._fps)

    def close(self) -> None:
        """Release the file."""
        if self._capture is not None:
            self._capture.release()
            self._capture = None

    def _timestamp(self, capture: cv2.VideoCapture) -> float:
        if self._fps > 0:
            return self._frame_idx / self._fps
        return float(capture.get(cv2.CAP_PROP_POS_MSEC)) / 1000.0

    def frames(self) -> Iterator[Frame]:
        """Yield frames until the end of the file or close()."""
        if self._capture is None:
            self.open()

        while self._capture is not None:
            timestamp = self._timestamp(self._capture)
            ok, bgr = self._capture.read()
            if not ok or bgr is None:
                logger.info("End of %s after %d frames", self.path.name, self._frame_idx)
                return

            frame = Frame(
                image=cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB),
                timestamp=timestamp,
                index=self._frame_idx,
            )
            self._frame_idx += 1
            yield frame

    def __enter__(self) -> VideoFileSource:
        self.open()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        self.close()
