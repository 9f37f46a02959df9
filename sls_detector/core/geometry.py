"""Sensor projection and distance-based grouping helpers."""

from __future__ import annotations

import math

import numpy as np

from sls_detector.core.types import Vector3

# Typical structured-light sensor field of view.
FOV_HORIZONTAL_DEG = 60.0
FOV_VERTICAL_DEG = 45.0

_TAN_HALF_FOV_H = math.tan(math.radians(FOV_HORIZONTAL_DEG) / 2.0)
_TAN_HALF_FOV_V = math.tan(math.radians(FOV_VERTICAL_DEG) / 2.0)


def pixel_to_3d(x: float, y: float, depth: float, width: int, height: int) -> Vector3:
    """Project a pixel + depth reading into sensor space (pinhole approximation).

    The optical axis passes through the frame center; x/y are scaled by depth
    and the half-FOV tangent so that the frame edges map to the FOV boundary.
    """

    half_w = float(width) / 2.0
    half_h = float(height) / 2.0
    nx = (float(x) - half_w) / half_w
    ny = (float(y) - half_h) / half_h
    d = float(depth)
    return Vector3(nx * d * _TAN_HALF_FOV_H, ny * d * _TAN_HALF_FOV_V, d)


def single_link_groups(points: np.ndarray, eps: float) -> list[list[int]]:
    """Group indices of an `(n, 3)` array transitively linked by distance `< eps`.

    Flood fill: each expanded point scans every still-unvisited point, so the
    cost is O(n) per expansion and O(n²) overall, with O(n) memory. Groups come
    out in order of their lowest index with sorted members, so the grouping is
    deterministic for a given input order.
    """

    pts = np.asarray(points, dtype=np.float64)
    n = int(pts.shape[0])
    if n == 0:
        return []
    eps_sq = float(eps) * float(eps)
    unvisited = np.ones(n, dtype=bool)
    groups: list[list[int]] = []
    for seed in range(n):
        if not unvisited[seed]:
            continue
        unvisited[seed] = False
        stack = [seed]
        members: list[int] = []
        while stack:
            idx = stack.pop()
            members.append(idx)
            candidates = np.flatnonzero(unvisited)
            if candidates.size == 0:
                continue
            delta = pts[candidates] - pts[idx]
            near = candidates[np.einsum("ij,ij->i", delta, delta) < eps_sq]
            unvisited[near] = False
            stack.extend(int(j) for j in near)
        groups.append(sorted(members))
    return groups
