"""Three-frame change detection.

Targets sudden appearance/disappearance: a large jump between the two older
frames followed by a stable reading in the newest one. Continuous motion keeps
changing and therefore does not match.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from sls_detector.core.geometry import pixel_to_3d
from sls_detector.core.types import (
    DepthFrame,
    DetectionType,
    SLSDetection,
    TemporalChange,
    clamp_confidence,
    new_detection_id,
)


@dataclass(frozen=True)
class TemporalConfig:
    """Sampling stride and jump/settle limits for three-frame comparison."""

    stride: int = 16
    jump: float = 200.0  # mm, change between old and middle frames
    settle: float = 50.0  # mm, change between middle and newest frames
    confidence_scale: float = 500.0


class TemporalAnomalyAnalyzer:
    """Find pixels that jumped and then held still across the last three frames."""

    required_frames = 3

    def __init__(self, config: TemporalConfig | None = None) -> None:
        self.config = config or TemporalConfig()

    def rapid_changes(
        self, old: DepthFrame, mid: DepthFrame, new: DepthFrame
    ) -> list[tuple[int, int, float, float]]:
        """Return `(x, y, mid_depth, change12)` for every sampled rapid-then-stable pixel."""

        if not (old.shape == mid.shape == new.shape):
            return []
        s = int(self.config.stride)
        d1 = old.depth[::s, ::s].astype(np.float64)
        d2 = mid.depth[::s, ::s].astype(np.float64)
        d3 = new.depth[::s, ::s].astype(np.float64)
        valid = (d1 > 0) & (d2 > 0) & (d3 > 0)
        change12 = np.abs(d2 - d1)
        change23 = np.abs(d3 - d2)
        hits = valid & (change12 > self.config.jump) & (change23 < self.config.settle)
        return [
            (int(i) * s, int(j) * s, float(d2[j, i]), float(change12[j, i]))
            for j, i in zip(*np.nonzero(hits))
        ]

    def analyze(self, frames: list[DepthFrame], frame_number: int) -> list[SLSDetection]:
        if len(frames) < self.required_frames:
            return []
        old, mid, new = frames[-3:]
        detections: list[SLSDetection] = []
        for x, y, depth, magnitude in self.rapid_changes(old, mid, new):
            detections.append(
                SLSDetection(
                    id=new_detection_id("temporal"),
                    type=DetectionType.DISTORTION,
                    confidence=clamp_confidence(magnitude / self.config.confidence_scale),
                    frame_number=frame_number,
                    position=pixel_to_3d(x, y, depth, mid.width, mid.height),
                    description=f"Temporal distortion: rapid depth change of {magnitude:.0f}mm",
                    payload=TemporalChange(pixel=(x, y), magnitude=magnitude),
                )
            )
        return detections
