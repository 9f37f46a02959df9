"""Skeleton completeness and bone-length checks."""

from __future__ import annotations

from dataclasses import dataclass

from sls_detector.core.types import (
    DetectionType,
    SkeletonFinding,
    Skeleton,
    SLSDetection,
    clamp_confidence,
    new_detection_id,
)


@dataclass(frozen=True)
class SkeletalConfig:
    """Completeness band and plausible bone lengths."""

    partial_min: float = 0.3  # exclusive
    partial_max: float = 0.7  # exclusive
    max_bone_length: float = 1000.0  # mm
    min_bone_length: float = 50.0  # mm
    anomaly_confidence: float = 0.8


class SkeletalAnomalyAnalyzer:
    """Flag partially tracked figures and physically implausible bone lengths."""

    def __init__(self, config: SkeletalConfig | None = None) -> None:
        self.config = config or SkeletalConfig()

    def anomalous_joints(self, skeleton: Skeleton) -> list[str]:
        """Describe adjacent tracked joint pairs that are too far apart or too close."""

        findings: list[str] = []
        for a, b in zip(skeleton.joints, skeleton.joints[1:]):
            if not a.tracked or not b.tracked:
                continue
            distance = a.position.distance_to(b.position)
            if distance > self.config.max_bone_length:
                findings.append(f"Stretched limb: {a.name} to {b.name}")
            if distance < self.config.min_bone_length:
                findings.append(f"Compressed limb: {a.name} to {b.name}")
        return findings

    def analyze(self, skeletons: list[Skeleton], frame_number: int) -> list[SLSDetection]:
        cfg = self.config
        detections: list[SLSDetection] = []
        for skeleton in skeletons:
            anchor = skeleton.anchor
            if anchor is None or not skeleton.joints:
                continue
            tracked = sum(1 for j in skeleton.joints if j.tracked)
            completeness = tracked / len(skeleton.joints)

            if cfg.partial_min < completeness < cfg.partial_max:
                detections.append(
                    SLSDetection(
                        id=new_detection_id(f"skeletal_{skeleton.id}"),
                        type=DetectionType.FIGURE,
                        confidence=clamp_confidence(skeleton.confidence),
                        frame_number=frame_number,
                        position=anchor,
                        description=f"Partial figure detected: {round(completeness * 100)}% complete",
                        payload=SkeletonFinding(skeleton=skeleton, completeness=completeness),
                    )
                )

            pairs = self.anomalous_joints(skeleton)
            if pairs:
                detections.append(
                    SLSDetection(
                        id=new_detection_id(f"skeletal_anomaly_{skeleton.id}"),
                        type=DetectionType.SKELETAL,
                        confidence=cfg.anomaly_confidence,
                        frame_number=frame_number,
                        position=anchor,
                        description=f"Anomalous skeletal configuration: {', '.join(pairs)}",
                        payload=SkeletonFinding(
                            skeleton=skeleton,
                            completeness=completeness,
                            anomalous_pairs=tuple(pairs),
                        ),
                    )
                )
        return detections
