"""Shared type definitions for the depth anomaly pipeline.

Frames, point clouds and skeletons come from the capture layer; detections and
their per-kind payloads are produced by the analyzers. Input containers validate
their buffer shapes on construction so analyzers never index out of bounds.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Union

import numpy as np


class FrameValidationError(ValueError):
    """Raised when a caller-supplied buffer violates its shape contract."""


class DetectionType(str, Enum):
    ANOMALY = "anomaly"
    MANIFESTATION = "manifestation"
    FIGURE = "figure"
    SKELETAL = "skeletal"
    DISTORTION = "distortion"
    SHADOW = "shadow"


class AnomalyKind(str, Enum):
    VOID = "void"
    MASS = "mass"
    DISTORTION = "distortion"
    UNKNOWN = "unknown"


class JointType(str, Enum):
    HEAD = "head"
    NECK = "neck"
    SHOULDER_LEFT = "shoulder_left"
    SHOULDER_RIGHT = "shoulder_right"
    ELBOW_LEFT = "elbow_left"
    ELBOW_RIGHT = "elbow_right"
    WRIST_LEFT = "wrist_left"
    WRIST_RIGHT = "wrist_right"
    HAND_LEFT = "hand_left"
    HAND_RIGHT = "hand_right"
    SPINE_SHOULDER = "spine_shoulder"
    SPINE_MID = "spine_mid"
    SPINE_BASE = "spine_base"
    HIP_LEFT = "hip_left"
    HIP_RIGHT = "hip_right"
    KNEE_LEFT = "knee_left"
    KNEE_RIGHT = "knee_right"
    ANKLE_LEFT = "ankle_left"
    ANKLE_RIGHT = "ankle_right"
    FOOT_LEFT = "foot_left"
    FOOT_RIGHT = "foot_right"


@dataclass(frozen=True)
class Vector3:
    """A point or extent in sensor-local millimeters."""

    x: float
    y: float
    z: float

    def distance_to(self, other: Vector3) -> float:
        dx = other.x - self.x
        dy = other.y - self.y
        dz = other.z - self.z
        return float((dx * dx + dy * dy + dz * dz) ** 0.5)

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z], dtype=np.float64)

    @classmethod
    def from_array(cls, arr: np.ndarray) -> Vector3:
        return cls(float(arr[0]), float(arr[1]), float(arr[2]))


@dataclass(frozen=True)
class BoundingBox3D:
    """Axis-aligned 3D box; `min <= max` componentwise."""

    min: Vector3
    max: Vector3
    center: Vector3
    size: Vector3

    @classmethod
    def from_corners(cls, a: Vector3, b: Vector3) -> BoundingBox3D:
        """Build a box from two opposite corners given in any order."""

        lo = Vector3(min(a.x, b.x), min(a.y, b.y), min(a.z, b.z))
        hi = Vector3(max(a.x, b.x), max(a.y, b.y), max(a.z, b.z))
        return cls(
            min=lo,
            max=hi,
            center=Vector3((lo.x + hi.x) / 2, (lo.y + hi.y) / 2, (lo.z + hi.z) / 2),
            size=Vector3(hi.x - lo.x, hi.y - lo.y, hi.z - lo.z),
        )

    @classmethod
    def from_points(cls, points: np.ndarray) -> BoundingBox3D:
        """Bounding box of an `(n, 3)` array of points (n >= 1)."""

        lo = points.min(axis=0)
        hi = points.max(axis=0)
        return cls.from_corners(Vector3.from_array(lo), Vector3.from_array(hi))

    @property
    def volume_mm3(self) -> float:
        return self.size.x * self.size.y * self.size.z


@dataclass
class DepthFrame:
    """One depth image; `0` marks pixels without a reading."""

    depth_data: np.ndarray
    width: int
    height: int
    timestamp: float = 0.0
    frame_number: int = 0
    min_depth: int = 0
    max_depth: int = 0

    def __post_init__(self) -> None:
        if int(self.width) <= 0 or int(self.height) <= 0:
            raise FrameValidationError(
                f"frame dimensions must be positive, got {self.width}x{self.height}"
            )
        data = np.asarray(self.depth_data)
        if data.size != int(self.width) * int(self.height):
            raise FrameValidationError(
                f"depth_data has {data.size} samples, expected "
                f"{self.width}x{self.height}={int(self.width) * int(self.height)}"
            )
        self.width = int(self.width)
        self.height = int(self.height)
        self.depth_data = data.reshape(self.height, self.width)

    @property
    def shape(self) -> tuple[int, int]:
        return self.height, self.width

    @property
    def depth(self) -> np.ndarray:
        """Depth readings as a `(height, width)` array."""

        return self.depth_data


@dataclass
class PointCloud:
    """Unordered XYZ points in millimeters."""

    points: np.ndarray
    timestamp: float = 0.0
    frame_number: int = 0
    sensor_id: str = ""

    def __post_init__(self) -> None:
        pts = np.asarray(self.points, dtype=np.float32)
        if pts.size % 3 != 0:
            raise FrameValidationError(
                f"point cloud has {pts.size} values, which is not a multiple of 3"
            )
        self.points = pts.reshape(-1)

    @property
    def xyz(self) -> np.ndarray:
        """Points as an `(n, 3)` array."""

        return self.points.reshape(-1, 3)

    def __len__(self) -> int:
        return self.points.size // 3


@dataclass
class Joint:
    type: JointType | str
    position: Vector3
    tracked: bool = True
    confidence: float = 1.0

    @property
    def name(self) -> str:
        return self.type.value if isinstance(self.type, JointType) else str(self.type)


@dataclass
class Skeleton:
    id: int
    joints: list[Joint]
    confidence: float
    center_of_mass: Vector3 | None = None
    tracked: bool = True
    timestamp: float = 0.0

    @property
    def anchor(self) -> Vector3 | None:
        """Center of mass when known, else the first joint position."""

        if self.center_of_mass is not None:
            return self.center_of_mass
        if self.joints:
            return self.joints[0].position
        return None


@dataclass
class NoiseProfile:
    spatial: float
    temporal: float = 0.0
    pattern: str = "gaussian"


# Detection payloads, one per detection kind.


@dataclass(frozen=True)
class DepthAnomaly:
    kind: AnomalyKind
    region: BoundingBox3D
    depth_deviation: float
    volumetric: bool
    intensity: float


@dataclass(frozen=True)
class VolumetricCluster:
    bounds: BoundingBox3D
    volume: float  # m³
    density: float  # points / m³
    point_count: int


@dataclass(frozen=True)
class SkeletonFinding:
    skeleton: Skeleton
    completeness: float
    anomalous_pairs: tuple[str, ...] = ()


@dataclass(frozen=True)
class TemporalChange:
    pixel: tuple[int, int]
    magnitude: float  # mm


@dataclass(frozen=True)
class ShadowSilhouette:
    width: int
    height: int
    aspect_ratio: float


DetectionPayload = Union[DepthAnomaly, VolumetricCluster, SkeletonFinding, TemporalChange, ShadowSilhouette]


def clamp_confidence(value: float) -> float:
    """Clamp a score into `[0, 1]` (NaN maps to 0)."""

    v = float(value)
    if not v >= 0.0:
        return 0.0
    return 1.0 if v > 1.0 else v


def new_detection_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


@dataclass
class SLSDetection:
    """A single scored detection produced by one of the analyzers."""

    id: str
    type: DetectionType
    confidence: float
    frame_number: int
    position: Vector3
    description: str
    timestamp: float = field(default_factory=time.time)
    size: Vector3 | None = None
    payload: DetectionPayload | None = None
    merged_from: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        self.confidence = clamp_confidence(self.confidence)

    @property
    def anomaly(self) -> DepthAnomaly | None:
        return self.payload if isinstance(self.payload, DepthAnomaly) else None

    @property
    def skeleton(self) -> Skeleton | None:
        if isinstance(self.payload, SkeletonFinding):
            return self.payload.skeleton
        return None


@dataclass
class DetectionResult:
    """Everything `AnomalyDetector.process_frame` found in one frame."""

    detections: list[SLSDetection]
    confidence: float
    frame_number: int
    timestamp: float
    profile: dict[str, float] | None = None
