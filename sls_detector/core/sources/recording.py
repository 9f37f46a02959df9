"""Depth recordings stored as `.npz` archives.

An archive holds `depth` with shape `(N, H, W)` (uint16 millimeters, `0` = no
reading) and, optionally, `timestamps` with shape `(N,)` in seconds.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from pathlib import Path

import numpy as np

from sls_detector.core.types import DepthFrame, FrameValidationError

logger = logging.getLogger(__name__)


def frame_from_array(depth: np.ndarray, frame_number: int = 0, timestamp: float = 0.0) -> DepthFrame:
    """Wrap a `(H, W)` depth image as a `DepthFrame`, filling in its depth range."""

    arr = np.asarray(depth, dtype=np.uint16)
    if arr.ndim != 2:
        raise FrameValidationError(f"depth image must be 2-D, got shape {arr.shape}")
    valid = arr[arr > 0]
    return DepthFrame(
        depth_data=arr,
        width=int(arr.shape[1]),
        height=int(arr.shape[0]),
        timestamp=float(timestamp),
        frame_number=int(frame_number),
        min_depth=int(valid.min()) if valid.size else 0,
        max_depth=int(valid.max()) if valid.size else 0,
    )


def load_recording(path: str | Path) -> Iterator[DepthFrame]:
    """Yield the frames of a recording in order."""

    with np.load(Path(path)) as archive:
        if "depth" not in archive:
            raise FrameValidationError(f"{path}: archive has no 'depth' array")
        depth = archive["depth"]
        timestamps = archive["timestamps"] if "timestamps" in archive else None
    if depth.ndim != 3:
        raise FrameValidationError(f"{path}: 'depth' must be (N, H, W), got shape {depth.shape}")
    if timestamps is not None and len(timestamps) != len(depth):
        raise FrameValidationError(
            f"{path}: {len(timestamps)} timestamps for {len(depth)} frames"
        )
    logger.info("Loaded recording %s (%d frames, %dx%d)", path, depth.shape[0], depth.shape[2], depth.shape[1])
    for i, image in enumerate(depth):
        ts = float(timestamps[i]) if timestamps is not None else 0.0
        yield frame_from_array(image, frame_number=i + 1, timestamp=ts)


def save_recording(path: str | Path, frames: Iterable[DepthFrame]) -> int:
    """Write frames to an `.npz` recording; returns the number of frames written."""

    frames = list(frames)
    if not frames:
        raise ValueError("cannot save an empty recording")
    shape = frames[0].shape
    for f in frames:
        if f.shape != shape:
            raise FrameValidationError("all frames of a recording must share one resolution")
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    np.savez_compressed(
        out,
        depth=np.stack([f.depth.astype(np.uint16) for f in frames]),
        timestamps=np.array([f.timestamp for f in frames], dtype=np.float64),
    )
    return len(frames)
