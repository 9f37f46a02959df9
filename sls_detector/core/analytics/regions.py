"""Grid-based comparison of a depth frame against the background model.

The frame is split into fixed-size square regions. Per-region statistics are
computed for all cells at once with `np.ufunc.reduceat`, then each cell with
enough deviating pixels is classified and scored.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from sls_detector.core.background import BackgroundModel
from sls_detector.core.geometry import pixel_to_3d
from sls_detector.core.thresholds import DetectionThresholds
from sls_detector.core.types import (
    AnomalyKind,
    BoundingBox3D,
    DepthAnomaly,
    DepthFrame,
    DetectionType,
    SLSDetection,
    Vector3,
    clamp_confidence,
    new_detection_id,
)


@dataclass(frozen=True)
class RegionConfig:
    """Grid geometry and classification limits for region analysis."""

    region_size: int = 32
    min_pixels: int = 10
    distortion_diff: float = 200.0  # mm, mean deviation
    distortion_range: float = 100.0  # mm, depth spread inside the region
    offset: float = 100.0  # mm, nearer/farther than background center
    volumetric_range: float = 50.0  # mm
    confidence_scale: float = 500.0  # mm of mean deviation for confidence 1.0


@dataclass(frozen=True)
class RegionStats:
    """Aggregates over the qualifying pixels of one region."""

    x: int
    y: int
    w: int
    h: int
    count: int
    avg_depth: float
    avg_diff: float
    min_depth: float
    max_depth: float

    @property
    def depth_range(self) -> float:
        return self.max_depth - self.min_depth

    @property
    def center(self) -> tuple[float, float]:
        return self.x + self.w / 2.0, self.y + self.h / 2.0


def _block_reduce(arr: np.ndarray, ufunc: np.ufunc, rows: np.ndarray, cols: np.ndarray) -> np.ndarray:
    return ufunc.reduceat(ufunc.reduceat(arr, rows, axis=0), cols, axis=1)


class RegionAnomalyAnalyzer:
    """Classify per-region depth deviations as void / mass / distortion / unknown."""

    def __init__(self, config: RegionConfig | None = None) -> None:
        self.config = config or RegionConfig()

    def region_stats(
        self, frame: DepthFrame, background: BackgroundModel, min_depth_change: float
    ) -> list[RegionStats]:
        """Return stats for every region with at least `min_pixels` qualifying pixels."""

        size = int(self.config.region_size)
        depth = frame.depth.astype(np.float64)
        bg = background.baseline
        diff = np.abs(depth - bg)
        qualifying = (depth > 0) & (bg > 0) & (diff > float(min_depth_change))

        rows = np.arange(0, frame.height, size)
        cols = np.arange(0, frame.width, size)
        count = _block_reduce(qualifying.astype(np.int64), np.add, rows, cols)
        depth_sum = _block_reduce(np.where(qualifying, depth, 0.0), np.add, rows, cols)
        diff_sum = _block_reduce(np.where(qualifying, diff, 0.0), np.add, rows, cols)
        depth_min = _block_reduce(np.where(qualifying, depth, np.inf), np.minimum, rows, cols)
        depth_max = _block_reduce(np.where(qualifying, depth, -np.inf), np.maximum, rows, cols)

        stats: list[RegionStats] = []
        for j, i in zip(*np.nonzero(count >= self.config.min_pixels)):
            n = int(count[j, i])
            x0 = int(cols[i])
            y0 = int(rows[j])
            stats.append(
                RegionStats(
                    x=x0,
                    y=y0,
                    w=min(size, frame.width - x0),
                    h=min(size, frame.height - y0),
                    count=n,
                    avg_depth=float(depth_sum[j, i]) / n,
                    avg_diff=float(diff_sum[j, i]) / n,
                    min_depth=float(depth_min[j, i]),
                    max_depth=float(depth_max[j, i]),
                )
            )
        return stats

    def classify(self, stats: RegionStats, background: BackgroundModel) -> AnomalyKind:
        cfg = self.config
        if stats.avg_diff > cfg.distortion_diff and stats.depth_range > cfg.distortion_range:
            return AnomalyKind.DISTORTION
        cx, cy = stats.center
        expected = background.sample(int(cx), int(cy))
        if stats.avg_depth < expected - cfg.offset:
            # Something is closer than the background.
            return AnomalyKind.MASS
        if stats.avg_depth > expected + cfg.offset:
            return AnomalyKind.VOID
        return AnomalyKind.UNKNOWN

    def analyze(
        self,
        frame: DepthFrame,
        background: BackgroundModel,
        thresholds: DetectionThresholds,
        frame_number: int,
    ) -> list[SLSDetection]:
        detections: list[SLSDetection] = []
        for stats in self.region_stats(frame, background, thresholds.min_depth_change):
            confidence = clamp_confidence(stats.avg_diff / self.config.confidence_scale)
            if confidence < thresholds.anomaly_intensity:
                continue
            kind = self.classify(stats, background)
            cx, cy = stats.center
            position = pixel_to_3d(cx, cy, stats.avg_depth, frame.width, frame.height)
            size = Vector3(float(stats.w), float(stats.h), stats.depth_range)
            region = BoundingBox3D.from_corners(
                Vector3(position.x - stats.w / 2.0, position.y - stats.h / 2.0, stats.min_depth),
                Vector3(position.x + stats.w / 2.0, position.y + stats.h / 2.0, stats.max_depth),
            )
            detections.append(
                SLSDetection(
                    id=new_detection_id("anomaly"),
                    type=DetectionType.ANOMALY,
                    confidence=confidence,
                    frame_number=frame_number,
                    position=position,
                    size=size,
                    description=f"{kind.value} anomaly detected with {round(confidence * 100)}% confidence",
                    payload=DepthAnomaly(
                        kind=kind,
                        region=region,
                        depth_deviation=stats.avg_diff,
                        volumetric=stats.depth_range > self.config.volumetric_range,
                        intensity=confidence,
                    ),
                )
            )
        return detections
