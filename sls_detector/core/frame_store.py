"""Bounded history of recent frames and past detections."""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable
from dataclasses import replace

import numpy as np

from sls_detector.core.types import DepthFrame, SLSDetection

FRAME_CAPACITY = 30
DETECTION_CAPACITY = 100


class FrameStore:
    """FIFO ring buffers; the oldest entry is evicted once a buffer is full."""

    def __init__(
        self,
        frame_capacity: int = FRAME_CAPACITY,
        detection_capacity: int = DETECTION_CAPACITY,
    ) -> None:
        self._frames: deque[DepthFrame] = deque(maxlen=frame_capacity)
        self._detections: deque[SLSDetection] = deque(maxlen=detection_capacity)

    @property
    def frame_capacity(self) -> int:
        return int(self._frames.maxlen or 0)

    @property
    def detection_capacity(self) -> int:
        return int(self._detections.maxlen or 0)

    def push_frame(self, frame: DepthFrame) -> None:
        """Store a snapshot of `frame`; capture layers may reuse their buffers."""

        self._frames.append(replace(frame, depth_data=np.array(frame.depth, copy=True)))

    def last_frames(self, n: int) -> list[DepthFrame]:
        """Return up to `n` most recent frames, oldest first."""

        if n <= 0:
            return []
        return list(self._frames)[-n:]

    def frames(self) -> list[DepthFrame]:
        return list(self._frames)

    def extend_detections(self, detections: Iterable[SLSDetection]) -> None:
        self._detections.extend(detections)

    def detections(self) -> list[SLSDetection]:
        """Detection history in chronological order (copy)."""

        return list(self._detections)

    @property
    def frame_count(self) -> int:
        return len(self._frames)

    def clear(self) -> None:
        self._frames.clear()
        self._detections.clear()
