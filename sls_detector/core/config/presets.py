"""Named threshold presets."""

from __future__ import annotations

from typing import Any


# Threshold presets. Each preset is a partial patch applied on top of the
# configured thresholds.
#
# Notes:
# - anomaly_intensity is the global confidence cutoff (filtering + events)
# - min_depth_change gates which pixels count as deviating from the background
# - min_volume_size discards detections whose implied volume is too small


PRESETS: dict[str, dict[str, Any]] = {
    # Investigation mode: report weak deviations, expect more noise.
    "sensitive": {
        "min_depth_change": 30.0,
        "min_volume_size": 0.0005,
        "anomaly_intensity": 0.2,
    },
    # Defaults.
    "balanced": {
        "min_depth_change": 50.0,
        "min_volume_size": 0.001,
        "anomaly_intensity": 0.3,
    },
    # Noisy sensors / busy rooms: only strong, large deviations.
    "strict": {
        "min_depth_change": 80.0,
        "min_volume_size": 0.005,
        "anomaly_intensity": 0.5,
    },
}


PRESET_LABELS: dict[str, str] = {
    "sensitive": "Sensitive",
    "balanced": "Balanced",
    "strict": "Strict",
}


def list_presets() -> list[dict[str, Any]]:
    return [
        {
            "id": preset_id,
            "label": PRESET_LABELS.get(preset_id, preset_id),
            "thresholds": PRESETS[preset_id],
        }
        for preset_id in PRESETS.keys()
    ]


def preset_patch(preset_id: str) -> dict[str, Any]:
    if preset_id not in PRESETS:
        raise KeyError(preset_id)
    return dict(PRESETS[preset_id])
