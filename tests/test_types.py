import math

import numpy as np
import pytest

from sls_detector.core.types import (
    BoundingBox3D,
    DepthFrame,
    DetectionType,
    FrameValidationError,
    Joint,
    JointType,
    PointCloud,
    Skeleton,
    SLSDetection,
    Vector3,
    clamp_confidence,
    new_detection_id,
)


def test_depth_frame_is_reshaped():
    frame = DepthFrame(depth_data=np.arange(12, dtype=np.uint16), width=4, height=3)
    assert frame.shape == (3, 4)
    assert frame.depth[2, 3] == 11


def test_depth_frame_rejects_bad_buffers():
    with pytest.raises(FrameValidationError):
        DepthFrame(depth_data=np.zeros(11, dtype=np.uint16), width=4, height=3)
    with pytest.raises(FrameValidationError):
        DepthFrame(depth_data=np.zeros(0, dtype=np.uint16), width=0, height=3)
    # Still a ValueError for callers that do not know the subclass.
    with pytest.raises(ValueError):
        DepthFrame(depth_data=np.zeros(5, dtype=np.uint16), width=2, height=2)


def test_point_cloud_layout():
    cloud = PointCloud(points=np.arange(9))
    assert len(cloud) == 3
    assert cloud.xyz.shape == (3, 3)
    assert cloud.points.dtype == np.float32
    with pytest.raises(FrameValidationError):
        PointCloud(points=np.zeros(7))


def test_bounding_box_orders_corners():
    box = BoundingBox3D.from_corners(Vector3(10, 0, 5), Vector3(0, 20, 1))
    assert box.min == Vector3(0, 0, 1)
    assert box.max == Vector3(10, 20, 5)
    assert box.center == Vector3(5, 10, 3)
    assert box.volume_mm3 == 10 * 20 * 4


def test_bounding_box_from_points():
    box = BoundingBox3D.from_points(np.array([[0, 0, 0], [1, 2, 3], [-1, 5, 1]], dtype=float))
    assert box.size == Vector3(2.0, 5.0, 3.0)


def test_vector_distance():
    assert Vector3(0, 0, 0).distance_to(Vector3(3, 4, 0)) == 5.0


def test_clamp_confidence():
    assert clamp_confidence(-0.5) == 0.0
    assert clamp_confidence(1.7) == 1.0
    assert clamp_confidence(0.25) == 0.25
    assert clamp_confidence(math.nan) == 0.0


def test_detection_confidence_is_clamped():
    det = SLSDetection(
        id=new_detection_id("anomaly"),
        type=DetectionType.ANOMALY,
        confidence=3.0,
        frame_number=1,
        position=Vector3(0, 0, 0),
        description="x",
    )
    assert det.confidence == 1.0
    assert det.id.startswith("anomaly_")
    assert det.anomaly is None
    assert det.skeleton is None


def test_joint_names_and_skeleton_anchor():
    joints = [Joint(type=JointType.HEAD, position=Vector3(1, 2, 3)), Joint(type="tail", position=Vector3(0, 0, 0))]
    assert [j.name for j in joints] == ["head", "tail"]
    assert Skeleton(id=1, joints=joints, confidence=1.0).anchor == Vector3(1, 2, 3)
    assert Skeleton(id=2, joints=[], confidence=1.0).anchor is None
