"""Threaded frame feeding for the anomaly detector."""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass

from sls_detector.core.analytics.pipeline import AnomalyDetector
from sls_detector.core.config.settings import DetectorSettings, build_detector
from sls_detector.core.types import DepthFrame, DetectionResult, PointCloud, Skeleton

logger = logging.getLogger(__name__)


@dataclass
class _PendingFrame:
    frame: DepthFrame
    point_cloud: PointCloud | None
    skeletons: list[Skeleton] | None


class DetectionEngine:
    """Feeds frames to an `AnomalyDetector` on a worker thread.

    Back-pressure policy is drop-oldest with a single pending slot:
    - `submit()` never blocks
    - a frame still waiting when a newer one arrives is discarded and counted
      in `dropped_frames`
    - the detector always works on the most recent frame available
    """

    def __init__(self, detector: AnomalyDetector, idle_timeout: float = 0.5) -> None:
        self.detector = detector
        self.idle_timeout = float(idle_timeout)
        self.running = False
        self.last_error: str | None = None
        self.processed_frames = 0
        self.dropped_frames = 0
        self._pending: _PendingFrame | None = None
        self._latest_result: DetectionResult | None = None
        self._lock = threading.Lock()
        self._frame_event = threading.Event()
        self._idle_event = threading.Event()
        self._idle_event.set()
        self._thread: threading.Thread | None = None
        self._avg_processing_ms = 0.0
        self._proc_alpha = 0.1
        self._processed_times: deque[float] = deque(maxlen=30)

    @classmethod
    def from_settings(cls, settings: DetectorSettings) -> DetectionEngine:
        """Create an engine around a detector built from `settings`."""

        return cls(build_detector(settings), idle_timeout=settings.engine_idle_timeout)

    def start(self) -> None:
        """Start the processing thread.

        Safe to call multiple times; calls while running are ignored. A restart
        is refused while the previous loop is still finishing a frame.
        """

        if self.running:
            return
        if self._thread is not None and self._thread.is_alive():
            self.last_error = "Previous processing loop is still running"
            logger.error(self.last_error)
            return
        self.running = True
        self.last_error = None
        self._thread = threading.Thread(target=self._process_loop, name="sls-detection", daemon=True)
        self._thread.start()
        logger.info("Detection engine started")

    def stop(self, timeout: float = 2.0) -> None:
        """Stop the processing thread and discard any frame still pending."""

        was_running = self.running
        self.running = False
        self._frame_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if not self._thread.is_alive():
                self._thread = None
        with self._lock:
            if self._pending is not None:
                self._pending = None
                self.dropped_frames += 1
            # A loop still inside process_frame signals idle when it finishes.
            if self._thread is None:
                self._idle_event.set()
        if was_running:
            logger.info(
                "Detection engine stopped (processed=%d dropped=%d)",
                self.processed_frames,
                self.dropped_frames,
            )

    def submit(
        self,
        frame: DepthFrame,
        point_cloud: PointCloud | None = None,
        skeletons: list[Skeleton] | None = None,
    ) -> bool:
        """Queue a frame for processing.

        Returns False when the frame displaced an older pending frame.
        """

        with self._lock:
            displaced = self._pending is not None
            if displaced:
                self.dropped_frames += 1
            self._pending = _PendingFrame(frame, point_cloud, skeletons)
            self._idle_event.clear()
        self._frame_event.set()
        return not displaced

    def latest_result(self) -> DetectionResult | None:
        with self._lock:
            return self._latest_result

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until no frame is pending or in flight."""

        return self._idle_event.wait(timeout)

    def stats(self) -> dict[str, float]:
        with self._lock:
            times = list(self._processed_times)
            processed_fps = 0.0
            if len(times) >= 2 and times[-1] > times[0]:
                processed_fps = (len(times) - 1) / (times[-1] - times[0])
            return {
                "processed_frames": float(self.processed_frames),
                "dropped_frames": float(self.dropped_frames),
                "avg_processing_ms": self._avg_processing_ms,
                "processed_fps": processed_fps,
            }

    def _take_pending(self) -> _PendingFrame | None:
        with self._lock:
            pending, self._pending = self._pending, None
            return pending

    def _process_loop(self) -> None:
        logger.debug("Process loop started")
        while self.running:
            if not self._frame_event.wait(self.idle_timeout):
                continue
            self._frame_event.clear()
            pending = self._take_pending()
            if pending is None:
                continue
            started = time.perf_counter()
            try:
                result = self.detector.process_frame(pending.frame, pending.point_cloud, pending.skeletons)
            except Exception as exc:
                self.last_error = f"Frame processing failed: {exc}"
                logger.exception(self.last_error)
                result = None
            finished = time.perf_counter()
            with self._lock:
                if result is not None:
                    self._latest_result = result
                    self.processed_frames += 1
                    self._processed_times.append(finished)
                    elapsed_ms = (finished - started) * 1000.0
                    if self._avg_processing_ms == 0.0:
                        self._avg_processing_ms = elapsed_ms
                    else:
                        self._avg_processing_ms = (
                            1.0 - self._proc_alpha
                        ) * self._avg_processing_ms + self._proc_alpha * elapsed_ms
                if self._pending is None:
                    self._idle_event.set()
        logger.debug("Process loop stopped")
