"""Frame processing pipeline orchestration."""

from fieldkit.pipeline.processor import FrameProcessor, ProcessedFrame
from fieldkit.pipeline.session import TrackingSession

__all__ = ["FrameProcessor", "ProcessedFrame", "TrackingSession"]
