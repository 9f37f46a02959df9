"""Adaptive per-pixel background depth model.

The baseline is seeded from the first frame and then follows the scene with an
exponential moving average. Pixels without a reading never move the baseline.
"""

from __future__ import annotations

import numpy as np

from sls_detector.core.types import DepthFrame, FrameValidationError, NoiseProfile

LEARNING_RATE = 0.01


def estimate_noise_profile(frame: DepthFrame) -> NoiseProfile:
    """Estimate spatial noise as the RMS deviation from the horizontal neighbor mean.

    Only row-interior pixels whose own reading and both horizontal neighbors are
    valid contribute; missing readings are excluded rather than treated as zero.
    """

    d = frame.depth.astype(np.float64)
    if d.shape[1] < 3:
        return NoiseProfile(spatial=0.0)
    left, mid, right = d[:, :-2], d[:, 1:-1], d[:, 2:]
    valid = (left > 0) & (mid > 0) & (right > 0)
    count = int(valid.sum())
    if count == 0:
        return NoiseProfile(spatial=0.0)
    dev = np.abs(mid - (left + right) / 2.0)[valid]
    return NoiseProfile(spatial=float(np.sqrt(np.mean(dev * dev))))


class BackgroundModel:
    """Expected depth per pixel, kept in float to avoid rounding stalls."""

    def __init__(self, baseline: np.ndarray, noise: NoiseProfile, learning_rate: float = LEARNING_RATE) -> None:
        self.baseline = baseline
        self.noise = noise
        self.learning_rate = float(learning_rate)

    @classmethod
    def from_frame(cls, frame: DepthFrame, learning_rate: float = LEARNING_RATE) -> BackgroundModel:
        """Seed a model by cloning the frame's depth buffer."""

        baseline = frame.depth.astype(np.float64, copy=True)
        return cls(baseline, estimate_noise_profile(frame), learning_rate)

    @property
    def shape(self) -> tuple[int, int]:
        return int(self.baseline.shape[0]), int(self.baseline.shape[1])

    def check_compatible(self, frame: DepthFrame) -> None:
        if frame.shape != self.shape:
            raise FrameValidationError(
                f"frame is {frame.width}x{frame.height} but the background model is "
                f"{self.shape[1]}x{self.shape[0]}; reset() the detector after a resolution change"
            )

    def update(self, frame: DepthFrame) -> None:
        """Blend a new frame into the baseline, skipping pixels with no reading."""

        self.check_compatible(frame)
        current = frame.depth
        valid = current > 0
        a = self.learning_rate
        self.baseline[valid] = self.baseline[valid] * (1.0 - a) + current[valid].astype(np.float64) * a

    def sample(self, x: int, y: int) -> float:
        return float(self.baseline[y, x])
