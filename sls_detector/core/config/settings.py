"""Detector configuration.

Settings are loaded from YAML defaults and overridden by environment variables
prefixed with `SLS_`.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sls_detector.core.analytics.pipeline import AnomalyDetector
from sls_detector.core.analytics.shadow import (
    DepthEdgeSilhouetteExtractor,
    NullSilhouetteExtractor,
    ShadowFigureDetector,
    SilhouetteExtractor,
)
from sls_detector.core.config.presets import preset_patch
from sls_detector.core.frame_store import FrameStore
from sls_detector.core.thresholds import DetectionThresholds


class DetectorSettings(BaseSettings):
    """Runtime configuration loaded from YAML defaults and `SLS_` env overrides."""

    # Detection thresholds
    min_depth_change: float = 50.0
    min_volume_size: float = 0.001
    motion_threshold: float = 0.5
    skeleton_confidence: float = 0.6
    anomaly_intensity: float = 0.3
    noise_reduction: float = 0.5
    # Optional named preset applied on top of the thresholds above.
    preset: str | None = None

    # History sizes
    frame_history: int = 30
    detection_history: int = 100

    # "none" keeps SHADOW detections disabled; "depth_edges" enables the OpenCV extractor.
    shadow_extractor: str = Field("none", description="none|depth_edges")

    # Feeding engine
    engine_idle_timeout: float = 0.5

    model_config = SettingsConfigDict(env_prefix="SLS_", validate_assignment=True)

    @field_validator("min_depth_change", "min_volume_size", "motion_threshold")
    @classmethod
    def _validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("value must be >= 0")
        return float(v)

    @field_validator("skeleton_confidence", "anomaly_intensity", "noise_reduction")
    @classmethod
    def _validate_unit_interval(cls, v: float) -> float:
        if not 0.0 <= float(v) <= 1.0:
            raise ValueError("value must be in [0, 1]")
        return float(v)

    @field_validator("preset")
    @classmethod
    def _validate_preset(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v2 = str(v).strip().lower()
        if v2 in {"", "none"}:
            return None
        try:
            preset_patch(v2)
        except KeyError:
            raise ValueError(f"unknown preset: {v}") from None
        return v2

    @field_validator("frame_history")
    @classmethod
    def _validate_frame_history(cls, v: int) -> int:
        # Temporal analysis needs three frames.
        if int(v) < 3:
            raise ValueError("frame_history must be >= 3")
        return int(v)

    @field_validator("detection_history")
    @classmethod
    def _validate_detection_history(cls, v: int) -> int:
        if int(v) < 1:
            raise ValueError("detection_history must be >= 1")
        return int(v)

    @field_validator("shadow_extractor")
    @classmethod
    def _validate_shadow_extractor(cls, v: str) -> str:
        v2 = str(v).strip().lower()
        if v2 not in {"none", "depth_edges"}:
            raise ValueError("shadow_extractor must be none|depth_edges")
        return v2

    @field_validator("engine_idle_timeout")
    @classmethod
    def _validate_engine_idle_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("engine_idle_timeout must be > 0")
        return float(v)


def settings_to_dict(settings: DetectorSettings) -> dict[str, Any]:
    return settings.model_dump()


def _config_path() -> Path:
    """Return the YAML configuration path (defaults to config/detector.config.yml)."""

    return Path(os.getenv("SLS_CONFIG", "config/detector.config.yml"))


def load_settings() -> DetectorSettings:
    """Load settings from YAML and environment variables.

    YAML provides defaults; environment variables override.
    """

    data: dict[str, Any] = {}
    path = _config_path()
    if path.exists():
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

    env_settings = DetectorSettings()
    env_overrides: dict[str, Any] = {
        name: getattr(env_settings, name) for name in env_settings.model_fields_set
    }

    merged = {**data, **env_overrides}
    return DetectorSettings(**merged)


def thresholds_from_settings(settings: DetectorSettings) -> DetectionThresholds:
    """Build thresholds from settings, applying the preset (if any) last."""

    thresholds = DetectionThresholds(
        min_depth_change=settings.min_depth_change,
        min_volume_size=settings.min_volume_size,
        motion_threshold=settings.motion_threshold,
        skeleton_confidence=settings.skeleton_confidence,
        anomaly_intensity=settings.anomaly_intensity,
        noise_reduction=settings.noise_reduction,
    )
    if settings.preset:
        thresholds = thresholds.updated(**preset_patch(settings.preset))
    return thresholds


def extractor_from_settings(settings: DetectorSettings) -> SilhouetteExtractor:
    if settings.shadow_extractor == "depth_edges":
        return DepthEdgeSilhouetteExtractor()
    return NullSilhouetteExtractor()


def build_detector(settings: DetectorSettings | None = None) -> AnomalyDetector:
    """Create a detector wired from `settings` (loaded from disk/env when omitted)."""

    settings = settings or load_settings()
    return AnomalyDetector(
        thresholds_from_settings(settings),
        store=FrameStore(settings.frame_history, settings.detection_history),
        shadow=ShadowFigureDetector(extractor_from_settings(settings)),
    )
