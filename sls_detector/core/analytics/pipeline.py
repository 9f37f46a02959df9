"""Per-frame anomaly detection orchestration.

`AnomalyDetector` owns the background model, frame/detection history and the
individual analyzers, runs them on each incoming frame, filters and merges the
results, and notifies subscribers about significant detections.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from sls_detector.core.analytics.merge import DetectionFilterMerger
from sls_detector.core.analytics.regions import RegionAnomalyAnalyzer
from sls_detector.core.analytics.shadow import ShadowFigureDetector
from sls_detector.core.analytics.skeletal import SkeletalAnomalyAnalyzer
from sls_detector.core.analytics.temporal import TemporalAnomalyAnalyzer
from sls_detector.core.analytics.volumetric import VolumetricClusterer
from sls_detector.core.background import BackgroundModel
from sls_detector.core.frame_store import FrameStore
from sls_detector.core.thresholds import DetectionThresholds
from sls_detector.core.types import (
    DepthFrame,
    DetectionResult,
    NoiseProfile,
    PointCloud,
    SLSDetection,
    Skeleton,
    clamp_confidence,
)

logger = logging.getLogger(__name__)

ANOMALY_DETECTED = "anomaly-detected"

AnomalyListener = Callable[[SLSDetection], Any]


class AnomalyDetector:
    """Stateful frame-sequential anomaly detector.

    Not thread-safe: `process_frame` must run to completion before the next
    call. Listeners are invoked synchronously, in subscription order, from
    inside `process_frame`; an exception raised by a listener propagates to the
    caller.
    """

    def __init__(
        self,
        thresholds: DetectionThresholds | None = None,
        *,
        store: FrameStore | None = None,
        regions: RegionAnomalyAnalyzer | None = None,
        volumetric: VolumetricClusterer | None = None,
        skeletal: SkeletalAnomalyAnalyzer | None = None,
        temporal: TemporalAnomalyAnalyzer | None = None,
        shadow: ShadowFigureDetector | None = None,
        merger: DetectionFilterMerger | None = None,
    ) -> None:
        self.thresholds = thresholds or DetectionThresholds()
        self.store = store or FrameStore()
        self.regions = regions or RegionAnomalyAnalyzer()
        self.volumetric = volumetric or VolumetricClusterer()
        self.skeletal = skeletal or SkeletalAnomalyAnalyzer()
        self.temporal = temporal or TemporalAnomalyAnalyzer()
        self.shadow = shadow or ShadowFigureDetector()
        self.merger = merger or DetectionFilterMerger()
        self.background: BackgroundModel | None = None
        self.frame_count = 0
        self._listeners: list[AnomalyListener] = []

    @property
    def noise_profile(self) -> NoiseProfile | None:
        return self.background.noise if self.background is not None else None

    def subscribe(self, listener: AnomalyListener) -> Callable[[], None]:
        """Register a listener for `anomaly-detected`; returns an unsubscribe callable."""

        self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: AnomalyListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def process_frame(
        self,
        frame: DepthFrame,
        point_cloud: PointCloud | None = None,
        skeletons: list[Skeleton] | None = None,
        *,
        profile: bool = False,
    ) -> DetectionResult:
        """Analyze one frame and return the merged detections.

        Args:
            frame: Depth frame from the capture layer (required).
            point_cloud: Optional cloud derived from the same frame.
            skeletons: Optional tracked skeletons for the same frame.
            profile: When True, `DetectionResult.profile` holds per-stage timings (ms).
        """

        if self.background is not None:
            self.background.check_compatible(frame)

        timings: dict[str, float] = {}
        t_start = time.perf_counter()

        def _mark(stage: str, since: float) -> float:
            now = time.perf_counter()
            if profile:
                timings[f"{stage}_ms"] = (now - since) * 1000.0
            return now

        self.frame_count += 1
        fn = self.frame_count
        thresholds = self.thresholds

        if self.background is None:
            self.background = BackgroundModel.from_frame(frame)
            logger.debug("Background model initialized (spatial noise %.2f mm)", self.background.noise.spatial)
        else:
            self.background.update(frame)
        self.store.push_frame(frame)
        t = _mark("background", t_start)

        candidates: list[SLSDetection] = []
        candidates.extend(self.regions.analyze(frame, self.background, thresholds, fn))
        t = _mark("regions", t)

        if point_cloud is not None:
            candidates.extend(self.volumetric.analyze(point_cloud, thresholds, fn))
        t = _mark("volumetric", t)

        if skeletons:
            candidates.extend(self.skeletal.analyze(skeletons, fn))
        t = _mark("skeletal", t)

        if self.store.frame_count >= self.temporal.required_frames:
            candidates.extend(self.temporal.analyze(self.store.last_frames(3), fn))
        t = _mark("temporal", t)

        candidates.extend(self.shadow.analyze(frame, fn))
        t = _mark("shadow", t)

        merged = self.merger.run(candidates, thresholds, fn)
        t = _mark("merge", t)

        self.store.extend_detections(merged)
        confidence = (
            clamp_confidence(sum(d.confidence for d in merged) / len(merged)) if merged else 0.0
        )

        if merged:
            logger.debug(
                "Frame %d: %d candidate(s) -> %d detection(s), confidence %.2f",
                fn,
                len(candidates),
                len(merged),
                confidence,
            )

        for detection in merged:
            if detection.confidence > thresholds.anomaly_intensity:
                self._emit(detection)

        if profile:
            timings["total_ms"] = (time.perf_counter() - t_start) * 1000.0

        return DetectionResult(
            detections=merged,
            confidence=confidence,
            frame_number=fn,
            timestamp=time.time(),
            profile=timings if profile else None,
        )

    def _emit(self, detection: SLSDetection) -> None:
        for listener in list(self._listeners):
            listener(detection)

    def get_detection_history(self) -> list[SLSDetection]:
        return self.store.detections()

    def get_thresholds(self) -> DetectionThresholds:
        # DetectionThresholds is immutable.
        return self.thresholds

    def update_thresholds(self, **changes: float) -> DetectionThresholds:
        """Apply threshold changes (clamped); effective from the next frame."""

        self.thresholds = self.thresholds.updated(**changes)
        logger.info("Detection thresholds updated: %s", self.thresholds.to_dict())
        return self.thresholds

    def reset(self) -> None:
        """Drop all accumulated state; the next frame re-seeds the background."""

        self.background = None
        self.store.clear()
        self.frame_count = 0
        logger.info("Anomaly detector reset")

    def dispose(self) -> None:
        self.reset()
        self._listeners.clear()
