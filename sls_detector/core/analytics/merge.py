"""Threshold filtering and proximity merging of per-frame detections."""

from __future__ import annotations

import time
from dataclasses import dataclass

import numpy as np

from sls_detector.core.geometry import single_link_groups
from sls_detector.core.thresholds import DetectionThresholds
from sls_detector.core.types import SLSDetection, Vector3, clamp_confidence, new_detection_id

# `size` mixes units (pixels for region detections, mm for clusters); this
# factor is the calibration the minimum-volume threshold is tuned against.
SIZE_TO_CUBIC_METERS = 1e-6


@dataclass(frozen=True)
class MergeConfig:
    """Distance below which detections are merged."""

    merge_distance: float = 200.0  # mm


class DetectionFilterMerger:
    """Drop weak or undersized detections and merge nearby ones."""

    def __init__(self, config: MergeConfig | None = None) -> None:
        self.config = config or MergeConfig()

    def filter(self, detections: list[SLSDetection], thresholds: DetectionThresholds) -> list[SLSDetection]:
        """Drop low-confidence detections and those whose implied volume is too small."""

        kept: list[SLSDetection] = []
        for det in detections:
            if det.confidence < thresholds.anomaly_intensity:
                continue
            if det.size is not None:
                volume = det.size.x * det.size.y * det.size.z * SIZE_TO_CUBIC_METERS
                if volume < thresholds.min_volume_size:
                    continue
            kept.append(det)
        return kept

    def merge(self, detections: list[SLSDetection], frame_number: int) -> list[SLSDetection]:
        """Collapse transitively nearby detections into one detection per group."""

        if len(detections) < 2:
            return list(detections)
        positions = np.array([d.position.as_array() for d in detections], dtype=np.float64)
        merged: list[SLSDetection] = []
        for group in single_link_groups(positions, self.config.merge_distance):
            if len(group) == 1:
                merged.append(detections[group[0]])
            else:
                merged.append(self._merge_group([detections[i] for i in group], positions[group], frame_number))
        return merged

    def run(
        self, detections: list[SLSDetection], thresholds: DetectionThresholds, frame_number: int
    ) -> list[SLSDetection]:
        return self.merge(self.filter(detections, thresholds), frame_number)

    @staticmethod
    def _merge_group(group: list[SLSDetection], positions: np.ndarray, frame_number: int) -> SLSDetection:
        first = group[0]
        return SLSDetection(
            id=new_detection_id("merged"),
            type=first.type,
            confidence=clamp_confidence(sum(d.confidence for d in group) / len(group)),
            frame_number=frame_number,
            position=Vector3.from_array(positions.mean(axis=0)),
            description=f"Merged detection from {len(group)} sources",
            timestamp=time.time(),
            payload=first.payload,
            merged_from=tuple(d.id for d in group),
        )
