import threading

import numpy as np

from sls_detector.core.analytics.pipeline import AnomalyDetector
from sls_detector.core.config.settings import DetectorSettings
from sls_detector.core.types import DepthFrame, DetectionResult
from sls_detector.services.engine import DetectionEngine


def _frame(value=2000, shape=(48, 64)):
    arr = np.full(shape, value, dtype=np.uint16)
    return DepthFrame(depth_data=arr, width=shape[1], height=shape[0])


def test_pending_frame_is_replaced_by_newer_one():
    engine = DetectionEngine(AnomalyDetector(), idle_timeout=0.05)
    assert engine.submit(_frame(1000)) is True
    assert engine.submit(_frame(2000)) is False
    assert engine.dropped_frames == 1

    engine.start()
    try:
        assert engine.wait_idle(2.0)
        assert engine.processed_frames == 1
        result = engine.latest_result()
        assert result is not None
        assert result.frame_number == 1
        # Only the newest frame reached the detector.
        assert engine.detector.background.sample(0, 0) == 2000.0
    finally:
        engine.stop()
    assert engine.running is False


def test_engine_reports_processing_error_and_keeps_running():
    engine = DetectionEngine(AnomalyDetector(), idle_timeout=0.05)
    engine.start()
    try:
        engine.submit(_frame())
        assert engine.wait_idle(2.0)

        engine.submit(_frame(shape=(24, 32)))
        assert engine.wait_idle(2.0)
        assert engine.last_error is not None
        assert engine.processed_frames == 1

        engine.submit(_frame())
        assert engine.wait_idle(2.0)
        assert engine.processed_frames == 2
        assert engine.latest_result().frame_number == 2
    finally:
        engine.stop()


def test_stats():
    engine = DetectionEngine(AnomalyDetector(), idle_timeout=0.05)
    assert engine.stats()["processed_frames"] == 0.0
    engine.start()
    try:
        for _ in range(3):
            engine.submit(_frame())
            assert engine.wait_idle(2.0)
        stats = engine.stats()
        assert stats["processed_frames"] == 3.0
        assert stats["dropped_frames"] == 0.0
        assert stats["avg_processing_ms"] > 0.0
        assert stats["processed_fps"] >= 0.0
    finally:
        engine.stop()


def test_from_settings():
    settings = DetectorSettings(engine_idle_timeout=0.2, frame_history=5)
    engine = DetectionEngine.from_settings(settings)
    assert engine.idle_timeout == 0.2
    assert engine.detector.store.frame_capacity == 5
    engine.stop()  # no-op when not started


class _BlockingDetector:
    """Detector stand-in that holds each frame until released."""

    def __init__(self):
        self.entered = threading.Event()
        self.release = threading.Event()
        self.calls = 0

    def process_frame(self, frame, point_cloud=None, skeletons=None):
        self.calls += 1
        self.entered.set()
        self.release.wait(5.0)
        return DetectionResult(detections=[], confidence=0.0, frame_number=self.calls, timestamp=0.0)


def test_stop_discards_pending_frame_and_unblocks_waiters():
    engine = DetectionEngine(AnomalyDetector(), idle_timeout=0.05)
    engine.submit(_frame())
    engine.stop()
    assert engine.wait_idle(1.0)
    assert engine.dropped_frames == 1
    assert engine.processed_frames == 0


def test_stop_while_running_discards_pending_frame():
    detector = _BlockingDetector()
    engine = DetectionEngine(detector, idle_timeout=0.05)
    engine.start()
    engine.submit(_frame())
    assert detector.entered.wait(2.0)
    engine.submit(_frame())

    engine.stop(timeout=0.05)
    assert engine.dropped_frames == 1
    detector.release.set()
    assert engine.wait_idle(2.0)
    assert detector.calls == 1


def test_restart_is_refused_while_previous_loop_is_busy():
    detector = _BlockingDetector()
    engine = DetectionEngine(detector, idle_timeout=0.05)
    engine.start()
    engine.submit(_frame())
    assert detector.entered.wait(2.0)

    engine.stop(timeout=0.05)
    engine.start()
    assert engine.running is False
    assert engine.last_error is not None

    detector.release.set()
    assert engine.wait_idle(2.0)
    engine._thread.join(2.0)
    engine.start()
    try:
        assert engine.running is True
        assert engine.last_error is None
    finally:
        engine.stop()
