"""Stereo matching of keypoints between rectified left and right images."""

from __future__ import annotations

import math
import sys
from typing import Optional, Sequence

import numpy as np

from .keypoints import KeyPoint

TH_HIGH = 100
TH_LOW = 50

_WINDOW = 5
_SEARCH = 5


def descriptor_distance(a, b) -> int:
    """Hamming distance between two binary descriptors."""
    first = np.asarray(a, dtype=np.uint8).ravel()
    second = np.asarray(b, dtype=np.uint8).ravel()
    if first.shape != second.shape:
        raise ValueError("descriptors differ in length")
    return int(np.unpackbits(np.bitwise_xor(first, second)).sum())


def _round(value: float) -> int:
    if value >= 0:
        return math.floor(value + 0.5)
    return -math.floor(-value + 0.5)


def _patch(image: np.ndarray, row: int, col: int) -> Optional[np.ndarray]:
    r0, c0 = row - _WINDOW, col - _WINDOW
    r1, c1 = row + _WINDOW + 1, col + _WINDOW + 1
    if r0 < 0 or c0 < 0 or r1 > image.shape[0] or c1 > image.shape[1]:
        return None
    patch = image[r0:r1, c0:c1].astype(np.float32)
    return patch - patch[_WINDOW, _WINDOW]


def _subpixel_match(
    kp_left: KeyPoint,
    u_right0: float,
    pyramid_left: Sequence[np.ndarray],
    pyramid_right: Sequence[np.ndarray],
    scale_factors: Sequence[float],
) -> Optional[tuple[int, float]]:
    octave = kp_left.octave
    scale = scale_factors[octave]
    inverse = 1.0 / scale
    scaled_ul = _round(kp_left.x * inverse)
    scaled_vl = _round(kp_left.y * inverse)
    scaled_ur0 = _round(u_right0 * inverse)

    left_image = np.asarray(pyramid_left[octave])
    right_image = np.asarray(pyramid_right[octave])
    left_patch = _patch(left_image, scaled_vl, scaled_ul)
    if left_patch is None:
        return None

    ini_u = scaled_ur0 + _SEARCH - _WINDOW
    end_u = scaled_ur0 + _SEARCH + _WINDOW + 1
    if ini_u < 0 or end_u >= right_image.shape[1]:
        return None

    best_cost = sys.maxsize
    best_increment = 0
    costs = []
    for increment in range(-_SEARCH, _SEARCH + 1):
        right_patch = _patch(right_image, scaled_vl, scaled_ur0 + increment)
        if right_patch is None:
            return None
        cost = float(np.abs(left_patch - right_patch).sum())
        if cost < best_cost:
            best_cost = int(cost)
            best_increment = increment
        costs.append(cost)

    if best_increment in (-_SEARCH, _SEARCH):
        return None

    centre = _SEARCH + best_increment
    d1, d2, d3 = costs[centre - 1], costs[centre], costs[centre + 1]
    denominator = 2.0 * (d1 + d3 - 2.0 * d2)
    if denominator == 0:
        return None
    delta = (d1 - d3) / denominator
    if delta < -1 or delta > 1:
        return None
    return best_cost, scale * (scaled_ur0 + best_increment + delta)


def compute_stereo_matches(
    keys_left: Sequence[KeyPoint],
    keys_right: Sequence[KeyPoint],
    descriptors_left,
    descriptors_right,
    pyramid_left: Sequence[np.ndarray],
    pyramid_right: Sequence[np.ndarray],
    scale_factors: Sequence[float],
    bf: float,
    baseline: float,
) -> tuple[list[float], list[float]]:
    """Match left keypoints along epipolar rows of the right image.

    Returns ``(u_right, depth)``, one entry per left keypoint, with ``-1`` where
    no reliable match was found. Matches whose correlation cost is far above
    the median are discarded.
    """
    n = len(keys_left)
    u_right = [-1.0] * n
    depth = [-1.0] * n
    if n == 0:
        return u_right, depth

    n_rows = np.asarray(pyramid_left[0]).shape[0]
    row_index: list[list[int]] = [[] for _ in range(n_rows)]
    for index_r, kp in enumerate(keys_right):
        radius = 2.0 * scale_factors[kp.octave]
        for yi in range(math.floor(kp.y - radius), math.ceil(kp.y + radius) + 1):
            if 0 <= yi < n_rows:
                row_index[yi].append(index_r)

    min_d = 0.0
    max_d = bf / baseline
    threshold = (TH_HIGH + TH_LOW) // 2

    scored: list[tuple[int, int]] = []
    for index_l, kp_l in enumerate(keys_left):
        row = int(kp_l.y)
        if not 0 <= row < n_rows:
            continue
        candidates = row_index[row]
        if not candidates:
            continue
        min_u = kp_l.x - max_d
        max_u = kp_l.x - min_d
        if max_u < 0:
            continue

        best_dist = TH_HIGH
        best_r = 0
        for index_r in candidates:
            kp_r = keys_right[index_r]
            if kp_r.octave < kp_l.octave - 1 or kp_r.octave > kp_l.octave + 1:
                continue
            if min_u <= kp_r.x <= max_u:
                dist = descriptor_distance(
                    descriptors_left[index_l], descriptors_right[index_r]
                )
                if dist < best_dist:
                    best_dist = dist
                    best_r = index_r

        if best_dist >= threshold:
            continue
        match = _subpixel_match(
            kp_l, keys_right[best_r].x, pyramid_left, pyramid_right, scale_factors
        )
        if match is None:
            continue
        cost, best_u = match
        disparity = kp_l.x - best_u
        if min_d <= disparity < max_d:
            if disparity <= 0:
                disparity = 0.01
                best_u = kp_l.x - 0.01
            depth[index_l] = bf / disparity
            u_right[index_l] = best_u
            scored.append((cost, index_l))

    if not scored:
        return u_right, depth

    scored.sort()
    median = scored[len(scored) // 2][0]
    limit = 1.5 * 1.4 * median
    for cost, index_l in reversed(scored):
        if cost < limit:
            break
        u_right[index_l] = -1.0
        depth[index_l] = -1.0
    return u_right, depth