"""Tunable detection thresholds.

Runtime updates never fail on out-of-domain numbers: unit-interval knobs are
clamped into `[0, 1]` and physical quantities are clamped to be non-negative.
Unknown names are rejected.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields, replace
from typing import Any

UNIT_INTERVAL_FIELDS = frozenset({"skeleton_confidence", "anomaly_intensity", "noise_reduction"})


@dataclass(frozen=True)
class DetectionThresholds:
    min_depth_change: float = 50.0  # mm
    min_volume_size: float = 0.001  # m³
    motion_threshold: float = 0.5  # m/s
    skeleton_confidence: float = 0.6
    anomaly_intensity: float = 0.3
    noise_reduction: float = 0.5

    def __post_init__(self) -> None:
        for f in fields(self):
            object.__setattr__(self, f.name, _clamp_field(f.name, getattr(self, f.name)))

    def updated(self, **changes: Any) -> DetectionThresholds:
        """Return a copy with `changes` applied (and clamped)."""

        known = {f.name for f in fields(self)}
        unknown = sorted(set(changes) - known)
        if unknown:
            raise ValueError(f"unknown threshold(s): {', '.join(unknown)}")
        return replace(self, **changes)

    def to_dict(self) -> dict[str, float]:
        return asdict(self)


def _clamp_field(name: str, value: Any) -> float:
    v = float(value)
    if v != v:  # NaN
        raise ValueError(f"threshold {name} must be a number")
    if name in UNIT_INTERVAL_FIELDS:
        return max(0.0, min(1.0, v))
    return max(0.0, v)
