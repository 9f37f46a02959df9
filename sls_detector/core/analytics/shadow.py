"""Shadow-figure detection from depth silhouettes.

Silhouette extraction is pluggable. `NullSilhouetteExtractor` (the default)
finds nothing, which keeps the SHADOW path an explicit extension point;
`DepthEdgeSilhouetteExtractor` is an opt-in OpenCV implementation that segments
regions enclosed by depth discontinuities.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import cv2
import numpy as np

from sls_detector.core.geometry import pixel_to_3d
from sls_detector.core.types import (
    DepthFrame,
    DetectionType,
    ShadowSilhouette,
    SLSDetection,
    clamp_confidence,
    new_detection_id,
)


@dataclass
class Silhouette:
    """Pixel set of one candidate figure."""

    points: np.ndarray  # shape: (N, 2) -> x, y
    width: int
    height: int
    confidence: float


class SilhouetteExtractor(Protocol):
    def extract(self, frame: DepthFrame) -> list[Silhouette]:
        """Return silhouettes found in `frame`."""


class NullSilhouetteExtractor:
    """Extractor that never finds anything."""

    def extract(self, frame: DepthFrame) -> list[Silhouette]:
        return []


@dataclass(frozen=True)
class DepthEdgeConfig:
    """Edge strength, component area limits and contrast scale for silhouettes."""

    discontinuity: float = 100.0  # mm step between neighboring pixels
    min_area: int = 50  # px
    max_area_fraction: float = 0.25
    ring_px: int = 3
    contrast_scale: float = 500.0  # mm of figure/surround contrast for confidence 1.0


class DepthEdgeSilhouetteExtractor:
    """Segment connected regions bounded by depth discontinuities.

    Edges are pixels whose Sobel gradient magnitude exceeds the response of a
    `discontinuity`-sized step. The remaining valid pixels are split into
    8-connected components; components that are too small or large enough to be
    the scene background are ignored. Confidence is the contrast between the
    component and the ring of pixels around it.
    """

    def __init__(self, config: DepthEdgeConfig | None = None) -> None:
        self.config = config or DepthEdgeConfig()

    def extract(self, frame: DepthFrame) -> list[Silhouette]:
        cfg = self.config
        depth = frame.depth.astype(np.float32)
        valid = depth > 0
        gx = cv2.Sobel(depth, cv2.CV_32F, 1, 0, ksize=3)
        gy = cv2.Sobel(depth, cv2.CV_32F, 0, 1, ksize=3)
        magnitude = cv2.magnitude(gx, gy)
        # A 3x3 Sobel answers a unit step with a response of 4.
        mask = (valid & (magnitude <= 4.0 * cfg.discontinuity)).astype(np.uint8)

        num, labels, stats, _ = cv2.connectedComponentsWithStats(mask, connectivity=8)
        max_area = cfg.max_area_fraction * frame.width * frame.height
        kernel = np.ones((2 * cfg.ring_px + 1, 2 * cfg.ring_px + 1), dtype=np.uint8)

        silhouettes: list[Silhouette] = []
        for i in range(1, num):  # 0 is the edge/invalid label
            area = int(stats[i, cv2.CC_STAT_AREA])
            if area < cfg.min_area or area > max_area:
                continue
            component = labels == i
            ring = cv2.dilate(component.astype(np.uint8), kernel).astype(bool) & ~component & valid
            inside = float(depth[component].mean())
            surround = float(np.median(depth[ring])) if ring.any() else inside
            ys, xs = np.nonzero(component)
            silhouettes.append(
                Silhouette(
                    points=np.stack([xs, ys], axis=1),
                    width=int(stats[i, cv2.CC_STAT_WIDTH]),
                    height=int(stats[i, cv2.CC_STAT_HEIGHT]),
                    confidence=clamp_confidence(abs(surround - inside) / cfg.contrast_scale),
                )
            )
        return silhouettes


class ShadowFigureDetector:
    """Keep humanoid-proportioned silhouettes and report them as SHADOW detections."""

    def __init__(
        self,
        extractor: SilhouetteExtractor | None = None,
        min_aspect: float = 3.0,
        max_aspect: float = 8.0,
    ) -> None:
        self.extractor: SilhouetteExtractor = extractor or NullSilhouetteExtractor()
        self.min_aspect = float(min_aspect)
        self.max_aspect = float(max_aspect)

    def is_humanoid(self, silhouette: Silhouette) -> bool:
        if silhouette.width <= 0:
            return False
        aspect = silhouette.height / silhouette.width
        return self.min_aspect <= aspect <= self.max_aspect

    def analyze(self, frame: DepthFrame, frame_number: int) -> list[SLSDetection]:
        detections: list[SLSDetection] = []
        for silhouette in self.extractor.extract(frame):
            if len(silhouette.points) == 0 or not self.is_humanoid(silhouette):
                continue
            pts = np.asarray(silhouette.points, dtype=np.int64)
            cx, cy = pts.mean(axis=0)
            samples = frame.depth[pts[:, 1], pts[:, 0]]
            samples = samples[samples > 0]
            avg_depth = float(samples.mean()) if samples.size else 0.0
            detections.append(
                SLSDetection(
                    id=new_detection_id("shadow"),
                    type=DetectionType.SHADOW,
                    confidence=silhouette.confidence,
                    frame_number=frame_number,
                    position=pixel_to_3d(float(cx), float(cy), avg_depth, frame.width, frame.height),
                    description=f"Shadow figure detected: {silhouette.width}x{silhouette.height} pixels",
                    payload=ShadowSilhouette(
                        width=silhouette.width,
                        height=silhouette.height,
                        aspect_ratio=silhouette.height / silhouette.width,
                    ),
                )
            )
        return detections
