import numpy as np
import pytest

from sls_detector.core.analytics.pipeline import AnomalyDetector
from sls_detector.core.thresholds import DetectionThresholds
from sls_detector.core.types import (
    AnomalyKind,
    DepthFrame,
    DetectionType,
    FrameValidationError,
    Joint,
    JointType,
    PointCloud,
    Skeleton,
    Vector3,
)


def _frame(depth):
    arr = np.asarray(depth, dtype=np.uint16)
    return DepthFrame(depth_data=arr, width=arr.shape[1], height=arr.shape[0])


def _flat(value=2000, shape=(480, 640)):
    return np.full(shape, value, dtype=np.uint16)


def _mass_frame():
    depth = _flat()
    depth[0:40, 0:40] = 1700
    return depth


def _corner_blocks_frame():
    depth = _flat()
    for y, x in [(0, 0), (0, 608), (448, 0), (448, 608)]:
        depth[y : y + 32, x : x + 32] = 1700
    return depth


def test_first_frame_seeds_background():
    detector = AnomalyDetector()
    result = detector.process_frame(_frame(_flat()))

    assert result.detections == []
    assert result.confidence == 0.0
    assert result.frame_number == 1
    assert detector.background is not None
    assert detector.noise_profile is not None
    assert detector.noise_profile.spatial == 0.0


def test_nearer_block_yields_one_merged_mass_detection():
    detector = AnomalyDetector(DetectionThresholds(min_volume_size=0.0))
    detector.process_frame(_frame(_flat()))
    result = detector.process_frame(_frame(_mass_frame()))

    (det,) = result.detections
    assert det.type == DetectionType.ANOMALY
    assert det.anomaly.kind == AnomalyKind.MASS
    assert det.confidence >= 0.5
    assert len(det.merged_from) == 4
    assert result.confidence == pytest.approx(det.confidence)
    assert result.frame_number == 2


def test_flat_region_detections_are_filtered_by_default_volume():
    detector = AnomalyDetector()
    detector.process_frame(_frame(_flat()))
    assert detector.process_frame(_frame(_mass_frame())).detections == []


def test_confidences_stay_in_unit_interval():
    rng = np.random.default_rng(0)
    detector = AnomalyDetector(DetectionThresholds(min_volume_size=0.0, anomaly_intensity=0.0))
    for _ in range(5):
        result = detector.process_frame(_frame(rng.integers(500, 4000, size=(48, 64))))
        assert 0.0 <= result.confidence <= 1.0
        for det in result.detections:
            assert 0.0 <= det.confidence <= 1.0


def test_listeners_receive_significant_detections():
    detector = AnomalyDetector(DetectionThresholds(min_volume_size=0.0))
    events = []
    unsubscribe = detector.subscribe(events.append)

    detector.process_frame(_frame(_flat()))
    result = detector.process_frame(_frame(_mass_frame()))
    assert events == result.detections

    unsubscribe()
    detector.reset()
    detector.process_frame(_frame(_flat()))
    detector.process_frame(_frame(_mass_frame()))
    assert len(events) == 1


def test_listener_errors_propagate():
    detector = AnomalyDetector(DetectionThresholds(min_volume_size=0.0))

    def boom(detection):
        raise RuntimeError("listener failed")

    detector.subscribe(boom)
    detector.process_frame(_frame(_flat()))
    with pytest.raises(RuntimeError):
        detector.process_frame(_frame(_mass_frame()))


def test_update_thresholds_clamps_and_rejects_unknown_names():
    detector = AnomalyDetector()
    assert detector.update_thresholds(anomaly_intensity=1.1).anomaly_intensity == 1.0
    assert detector.get_thresholds().anomaly_intensity == 1.0
    with pytest.raises(ValueError):
        detector.update_thresholds(sensitivity=0.5)


def test_reset_matches_a_fresh_detector():
    sequence = [_flat(), _mass_frame(), _mass_frame(), _flat()]
    thresholds = DetectionThresholds(min_volume_size=0.0)

    used = AnomalyDetector(thresholds)
    for depth in [_flat(1000), _mass_frame(), _flat(3000)]:
        used.process_frame(_frame(depth))
    used.reset()
    assert used.frame_count == 0
    assert used.get_detection_history() == []

    fresh = AnomalyDetector(thresholds)
    for depth in sequence:
        a = used.process_frame(_frame(depth))
        b = fresh.process_frame(_frame(depth))
        assert a.frame_number == b.frame_number
        assert [(d.type, d.confidence, d.position) for d in a.detections] == [
            (d.type, d.confidence, d.position) for d in b.detections
        ]


def test_detection_history_is_capped():
    detector = AnomalyDetector(DetectionThresholds(min_volume_size=0.0))
    detector.process_frame(_frame(_flat()))
    last = None
    for _ in range(30):
        last = detector.process_frame(_frame(_corner_blocks_frame()))
        assert len(last.detections) >= 4

    history = detector.get_detection_history()
    assert len(history) == 100
    assert history[-1] is last.detections[-1]


def test_resolution_change_is_rejected():
    detector = AnomalyDetector()
    detector.process_frame(_frame(_flat()))
    with pytest.raises(FrameValidationError):
        detector.process_frame(_frame(_flat(shape=(240, 320))))
    assert detector.frame_count == 1

    detector.reset()
    assert detector.process_frame(_frame(_flat(shape=(240, 320)))).frame_number == 1


def test_skeletons_are_analyzed():
    joints = [
        Joint(type=JointType.HEAD, position=Vector3(0.0, 0.0, 2000.0)),
        Joint(type=JointType.NECK, position=Vector3(0.0, 1500.0, 2000.0)),
    ]
    skeleton = Skeleton(id=4, joints=joints, confidence=0.9)
    result = AnomalyDetector().process_frame(_frame(_flat()), skeletons=[skeleton])

    (det,) = result.detections
    assert det.type == DetectionType.SKELETAL
    assert det.skeleton is skeleton


def test_point_clouds_are_analyzed():
    axis = np.arange(4) * 20.0
    xs, ys, zs = np.meshgrid(axis, axis, axis + 2000.0, indexing="ij")
    cloud = PointCloud(points=np.stack([xs.ravel(), ys.ravel(), zs.ravel()], axis=1))
    detector = AnomalyDetector(DetectionThresholds(min_volume_size=0.0001))

    (det,) = detector.process_frame(_frame(_flat()), point_cloud=cloud).detections
    assert det.type == DetectionType.MANIFESTATION


def test_profile_timings():
    detector = AnomalyDetector()
    assert detector.process_frame(_frame(_flat())).profile is None

    result = detector.process_frame(_frame(_flat()), profile=True)
    for key in ("background_ms", "regions_ms", "volumetric_ms", "skeletal_ms", "temporal_ms", "shadow_ms", "merge_ms", "total_ms"):
        assert result.profile[key] >= 0.0


def test_dispose_drops_state_and_listeners():
    detector = AnomalyDetector(DetectionThresholds(min_volume_size=0.0))
    events = []
    detector.subscribe(events.append)
    detector.process_frame(_frame(_flat()))
    detector.dispose()

    assert detector.frame_count == 0
    detector.process_frame(_frame(_flat()))
    detector.process_frame(_frame(_mass_frame()))
    assert events == []


def test_reused_capture_buffer_still_yields_temporal_changes():
    buffer = np.empty((64, 64), dtype=np.uint16)
    detector = AnomalyDetector()
    result = None
    for value in (2000, 1600, 1610):
        buffer[:] = value
        result = detector.process_frame(_frame(buffer))

    # 64x64 sampled at a 16 px stride -> 16 pixels, far enough apart not to merge.
    assert len(result.detections) == 16
    assert {d.type for d in result.detections} == {DetectionType.DISTORTION}
