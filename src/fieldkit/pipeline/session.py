"""Tracking session lifecycle: frame loop, timers, and the session hand-off.

Threads:
    frame loop      caller's thread, runs TrackingSession.run()
    UI refresh      reads a LiveSnapshot every `ui_refresh_ms`
    auto-stop       threading.Timer re-armed on every accepted jump

Timers never touch the camera or detector state; they only read snapshots
or set the stop flag, which the loop checks before every frame.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from datetime import datetime

from fieldkit.capture.stream import FrameSource
from fieldkit.core.config import SessionSettings
from fieldkit.core.exceptions import SessionStateError
from fieldkit.core.logging import get_logger
from fieldkit.core.types import JumpData, LiveSnapshot, Session
from fieldkit.pipeline.processor import FrameProcessor, ProcessedFrame

logger = get_logger(__name__)

_active_devices: set[str] = set()
_devices_lock = threading.Lock()


def _claim_device(key: str) -> None:
    with _devices_lock:
        if key in _active_devices:
            raise SessionStateError(f"A tracking session is already active on {key}")
        _active_devices.add(key)


def _release_device(key: str) -> None:
    with _devices_lock:
        _active_devices.discard(key)


class FpsCounter:
    """Frame counter incremented by the loop and drained by the UI timer."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._frames = 0
        self._since = clock()

    def tick(self) -> None:
        """Count one processed frame."""
        with self._lock:
            self._frames += 1

    def read_and_reset(self) -> float:
        """Frames per second since the previous read."""
        with self._lock:
            now = self._clock()
            elapsed = now - self._since
            fps = self._frames / elapsed if elapsed > 0 else 0.0
            self._frames = 0
            self._since = now
            return fps


class AutoStopTimer:
    """Restartable one-shot timer; firing only invokes the callback."""

    def __init__(self, callback: Callable[[], None]) -> None:
        self._callback = callback
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None

    @property
    def is_armed(self) -> bool:
        """True while a countdown is pending."""
        with self._lock:
            return self._timer is not None and self._timer.is_alive()

    def arm(self, delay_s: float) -> None:
        """Start the countdown, cancelling any pending one."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(delay_s, self._callback)
            self._timer.daemon = True
            self._timer.start()

    def cancel(self) -> None:
        """Cancel any pending countdown."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None


class TrackingSession:
    """One live test: owns the frame source for its lifetime.

    The session ends on stop(), on the auto-stop timer (jump modes), on a
    completed VBT set, or when the source runs out of frames. On end the
    source is released, timers are cancelled and, if any events were
    recorded, `on_complete` receives the Session exactly once.
    """

    def __init__(
        self,
        source: FrameSource,
        processor: FrameProcessor,
        athlete_name: str | None = None,
        settings: SessionSettings | None = None,
        on_complete: Callable[[Session], None] | None = None,
        on_snapshot: Callable[[LiveSnapshot], None] | None = None,
        on_frame: Callable[[ProcessedFrame], None] | None = None,
    ) -> None:
        """Initialize session.

        Args:
            source: Camera, video file or any FrameSource
            processor: Per-frame pipeline for the test mode
            athlete_name: Label for the report (settings default if None)
            settings: Timer settings
            on_complete: Receives the finished Session
            on_snapshot: Receives a LiveSnapshot on every UI refresh
            on_frame: Receives every processed frame (preview hook)
        """
        self.source = source
        self.processor = processor
        self.settings = settings or SessionSettings()
        self.athlete_name = athlete_name or self.settings.athlete_name
        self.on_complete = on_complete
        self.on_snapshot = on_snapshot
        self.on_frame = on_frame

        self.fps = FpsCounter()
        self._stop_requested = threading.Event()
        self._ui_stop = threading.Event()
        self._ui_thread: threading.Thread | None = None
        self._auto_stop = AutoStopTimer(self.request_stop)

        self._state_lock = threading.Lock()
        self._started = False
        self._running = False
        self._finalized = False
        self._result: Session | None = None

    @property
    def is_running(self) -> bool:
        """True while the frame loop is active."""
        return self._running

    @property
    def stop_requested(self) -> bool:
        """True once a stop has been requested."""
        return self._stop_requested.is_set()

    @property
    def result(self) -> Session | None:
        """Finished session, set after finalization if events were recorded."""
        return self._result

    def start(self) -> None:
        """Acquire the source and start the UI refresh timer.

        Raises:
            SessionStateError: If already started or the device is in use
            CameraAcquisitionError: If the source cannot be opened
        """
        with self._state_lock:
            if self._started:
                raise SessionStateError("Session already started")
            _claim_device(self.source.device_key)
            try:
                self.source.open()
            except Exception:
                _release_device(self.source.device_key)
                raise
            self._started = True

        if self.on_snapshot is not None:
            self._ui_thread = threading.Thread(
                target=self._ui_loop, name="fieldkit-ui-refresh", daemon=True
            )
            self._ui_thread.start()

        logger.info("Session started (%s, %s)", self.processor.mode, self.source.device_key)

    def run(self) -> Session | None:
        """Run the frame loop until the session ends.

        Returns:
            The finished Session, or None if nothing was recorded
        """
        if not self._started:
            self.start()
        if self._finalized:
            return self._result

        self._running = True
        try:
            for frame in self.source.frames():
                if self._stop_requested.is_set():
                    break

                processed = self.processor.process_frame(frame)
                self.fps.tick()

                if isinstance(processed.event, JumpData):
                    self._arm_auto_stop()
                if processed.set_complete:
                    self.request_stop()
                if self.on_frame is not None:
                    self.on_frame(processed)
        finally:
            self._running = False
            self._finalize()

        return self._result

    def request_stop(self) -> None:
        """Ask the frame loop to end before its next frame. Safe from any thread."""
        if not self._stop_requested.is_set():
            logger.info("Stop requested")
        self._stop_requested.set()

    def stop(self) -> None:
        """End the session. Idempotent.

        If the loop is running it finalizes on its way out; otherwise the
        session is finalized here.
        """
        self.request_stop()
        self._auto_stop.cancel()
        if not self._running:
            self._finalize()

    def _arm_auto_stop(self) -> None:
        delay_ms = self.processor.auto_stop_ms
        if delay_ms is not None and delay_ms > 0:
            self._auto_stop.arm(delay_ms / 1000.0)

    def _ui_loop(self) -> None:
        interval = self.settings.ui_refresh_ms / 1000.0
        while not self._ui_stop.wait(interval):
            snapshot = self.processor.snapshot(self.fps.read_and_reset())
            if self.on_snapshot is not None:
                self.on_snapshot(snapshot)

    def _finalize(self) -> None:
        with self._state_lock:
            if self._finalized or not self._started:
                return
            self._finalized = True

        self._auto_stop.cancel()
        self._ui_stop.set()
        if self._ui_thread is not None and self._ui_thread is not threading.current_thread():
            self._ui_thread.join()

        try:
            self.source.close()
        finally:
            _release_device(self.source.device_key)
            self.processor.shutdown()

        events = self.processor.events
        logger.info("Session ended with %d events", len(events))
        if not events:
            return

        self._result = Session(
            mode=self.processor.mode,
            athlete_name=self.athlete_name,
            date=datetime.now().isoformat(timespec="seconds"),
            events=events,
        )
        if self.on_complete is not None:
            self.on_complete(self._result)

    def __enter__(self) -> TrackingSession:
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        self.stop()
