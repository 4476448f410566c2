"""Frame acquisition from cameras and video files."""

from fieldkit.capture.stream import CameraSource, FrameSource, VideoFileSource

__all__ = ["CameraSource", "VideoFileSource", "FrameSource"]
