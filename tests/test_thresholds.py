import dataclasses

import pytest

from sls_detector.core.thresholds import DetectionThresholds


def test_defaults():
    t = DetectionThresholds()
    assert t.min_depth_change == 50.0
    assert t.min_volume_size == 0.001
    assert t.motion_threshold == 0.5
    assert t.skeleton_confidence == 0.6
    assert t.anomaly_intensity == 0.3
    assert t.noise_reduction == 0.5


def test_values_are_clamped():
    t = DetectionThresholds(anomaly_intensity=1.1, noise_reduction=-0.2, min_depth_change=-5, min_volume_size=3.0)
    assert t.anomaly_intensity == 1.0
    assert t.noise_reduction == 0.0
    assert t.min_depth_change == 0.0
    # Physical quantities have no upper bound.
    assert t.min_volume_size == 3.0


def test_nan_is_rejected():
    with pytest.raises(ValueError):
        DetectionThresholds(anomaly_intensity=float("nan"))


def test_updated_returns_a_new_instance():
    t = DetectionThresholds()
    t2 = t.updated(skeleton_confidence=2.0, min_depth_change=80)
    assert t2.skeleton_confidence == 1.0
    assert t2.min_depth_change == 80.0
    assert t.min_depth_change == 50.0


def test_updated_rejects_unknown_names():
    with pytest.raises(ValueError, match="sensitivity"):
        DetectionThresholds().updated(sensitivity=0.1)


def test_thresholds_are_immutable():
    with pytest.raises(dataclasses.FrozenInstanceError):
        DetectionThresholds().anomaly_intensity = 0.9


def test_to_dict():
    assert DetectionThresholds().to_dict()["anomaly_intensity"] == 0.3
