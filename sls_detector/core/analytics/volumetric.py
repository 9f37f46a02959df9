"""Point-cloud clustering for volumetric "manifestation" candidates.

Clustering is a single-link flood fill (DBSCAN without a core-point rule):
points closer than `eps` are connected and any connected group with more than
`min_cluster_points` members is kept. Neighbor queries are exact and the flood
fill is O(n²) over the cloud.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from sls_detector.core.geometry import single_link_groups
from sls_detector.core.thresholds import DetectionThresholds
from sls_detector.core.types import (
    BoundingBox3D,
    DetectionType,
    PointCloud,
    SLSDetection,
    Vector3,
    VolumetricCluster,
    clamp_confidence,
    new_detection_id,
)

MM3_PER_M3 = 1e9

# (volume upper bound in m³, density above which anomalous, density below which anomalous)
DENSITY_BANDS: tuple[tuple[float, float, float], ...] = (
    (0.01, 5000.0, 100.0),
    (0.1, 2000.0, 50.0),
    (float("inf"), 1000.0, 10.0),
)


@dataclass(frozen=True)
class ClusterConfig:
    """Neighbor radius, cluster size floor and confidence scale."""

    eps: float = 100.0  # mm
    min_cluster_points: int = 50  # a cluster must have strictly more points
    confidence_density: float = 1000.0  # points / m³ for confidence 1.0


@dataclass(frozen=True)
class ClusterEvaluation:
    """Geometry and verdict for one retained cluster."""

    center: Vector3
    bounds: BoundingBox3D
    point_count: int
    volume: float  # m³
    density: float  # points / m³, 0 for degenerate clusters
    anomalous: bool


def is_anomalous_density(density: float, volume: float) -> bool:
    for max_volume, high, low in DENSITY_BANDS:
        if volume < max_volume:
            return density > high or density < low
    return False


class VolumetricClusterer:
    """Cluster point clouds and flag clusters with anomalous density."""

    def __init__(self, config: ClusterConfig | None = None) -> None:
        self.config = config or ClusterConfig()

    def cluster(self, point_cloud: PointCloud) -> list[np.ndarray]:
        """Return the `(k, 3)` point arrays of every retained cluster."""

        xyz = point_cloud.xyz.astype(np.float64)
        groups = single_link_groups(xyz, self.config.eps)
        return [xyz[g] for g in groups if len(g) > self.config.min_cluster_points]

    def evaluate(self, point_cloud: PointCloud, thresholds: DetectionThresholds) -> list[ClusterEvaluation]:
        evaluations: list[ClusterEvaluation] = []
        for points in self.cluster(point_cloud):
            bounds = BoundingBox3D.from_points(points)
            volume = bounds.volume_mm3 / MM3_PER_M3
            if volume <= 0.0 or volume < thresholds.min_volume_size:
                density = 0.0
                anomalous = False
            else:
                density = float(points.shape[0]) / volume
                anomalous = is_anomalous_density(density, volume)
            evaluations.append(
                ClusterEvaluation(
                    center=Vector3.from_array(points.mean(axis=0)),
                    bounds=bounds,
                    point_count=int(points.shape[0]),
                    volume=volume,
                    density=density,
                    anomalous=anomalous,
                )
            )
        return evaluations

    def analyze(
        self, point_cloud: PointCloud, thresholds: DetectionThresholds, frame_number: int
    ) -> list[SLSDetection]:
        detections: list[SLSDetection] = []
        for ev in self.evaluate(point_cloud, thresholds):
            if not ev.anomalous:
                continue
            detections.append(
                SLSDetection(
                    id=new_detection_id("volumetric"),
                    type=DetectionType.MANIFESTATION,
                    confidence=clamp_confidence(ev.density / self.config.confidence_density),
                    frame_number=frame_number,
                    position=ev.center,
                    size=ev.bounds.size,
                    description=f"Volumetric manifestation detected: {ev.volume:.3f} m³",
                    payload=VolumetricCluster(
                        bounds=ev.bounds,
                        volume=ev.volume,
                        density=ev.density,
                        point_count=ev.point_count,
                    ),
                )
            )
        return detections
