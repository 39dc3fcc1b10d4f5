"""Two-view geometry: normalisation, homography, fundamental matrix, triangulation."""

from __future__ import annotations

import math
from typing import Sequence

import numpy as np

COS_PARALLAX_LIMIT = 0.99998


def _xy(point) -> tuple[float, float]:
    if hasattr(point, "x") and hasattr(point, "y"):
        return float(point.x), float(point.y)
    x, y = point
    return float(x), float(y)


def _as_xy_array(points) -> np.ndarray:
    return np.array([_xy(p) for p in points], dtype=np.float64).reshape(-1, 2)


def _paired(points1, points2) -> tuple[np.ndarray, np.ndarray]:
    p1 = _as_xy_array(points1)
    p2 = _as_xy_array(points2)
    if len(p1) != len(p2):
        raise ValueError("point lists differ in length")
    if len(p1) == 0:
        raise ValueError("no points given")
    return p1, p2


def normalize(points) -> tuple[np.ndarray, np.ndarray]:
    """Centre points and scale them to unit mean absolute deviation per axis.

    Returns the normalised ``N x 2`` points and the 3x3 transform ``T`` that
    maps homogeneous input points onto them.
    """
    xy = _as_xy_array(points)
    if len(xy) == 0:
        raise ValueError("no points to normalise")
    mean = xy.mean(axis=0)
    centred = xy - mean
    deviation = np.abs(centred).mean(axis=0)
    if np.any(deviation == 0):
        raise ValueError("points have no spread along an axis")
    scale = 1.0 / deviation
    normalized = centred * scale
    transform = np.eye(3)
    transform[0, 0] = scale[0]
    transform[1, 1] = scale[1]
    transform[0, 2] = -mean[0] * scale[0]
    transform[1, 2] = -mean[1] * scale[1]
    return normalized, transform


def compute_h21(points1, points2) -> np.ndarray:
    """Homography mapping points of view 1 onto view 2 (DLT, up to scale)."""
    p1, p2 = _paired(points1, points2)
    rows = []
    for (u1, v1), (u2, v2) in zip(p1, p2):
        rows.append([0.0, 0.0, 0.0, -u1, -v1, -1.0, v2 * u1, v2 * v1, v2])
        rows.append([u1, v1, 1.0, 0.0, 0.0, 0.0, -u2 * u1, -u2 * v1, -u2])
    _, _, vt = np.linalg.svd(np.array(rows), full_matrices=True)
    return vt[8].reshape(3, 3)


def compute_f21(points1, points2) -> np.ndarray:
    """Fundamental matrix with ``x2^T F x1 = 0`` by the eight-point method, rank 2."""
    p1, p2 = _paired(points1, points2)
    rows = [
        [u2 * u1, u2 * v1, u2, v2 * u1, v2 * v1, v2, u1, v1, 1.0]
        for (u1, v1), (u2, v2) in zip(p1, p2)
    ]
    _, _, vt = np.linalg.svd(np.array(rows), full_matrices=True)
    f_pre = vt[8].reshape(3, 3)
    u, w, vt = np.linalg.svd(f_pre, full_matrices=True)
    w[2] = 0.0
    return u @ np.diag(w) @ vt


def triangulate(point1, point2, projection1, projection2) -> np.ndarray:
    """Linear triangulation of one correspondence from two 3x4 projections."""
    x1, y1 = _xy(point1)
    x2, y2 = _xy(point2)
    P1 = np.asarray(projection1, dtype=np.float64)
    P2 = np.asarray(projection2, dtype=np.float64)
    A = np.vstack(
        [
            x1 * P1[2] - P1[0],
            y1 * P1[2] - P1[1],
            x2 * P2[2] - P2[0],
            y2 * P2[2] - P2[1],
        ]
    )
    _, _, vt = np.linalg.svd(A, full_matrices=True)
    homogeneous = vt[3]
    with np.errstate(divide="ignore", invalid="ignore"):
        return homogeneous[:3] / homogeneous[3]


def decompose_essential(essential) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """The two rotations and the unit translation encoded by an essential matrix."""
    u, _, vt = np.linalg.svd(np.asarray(essential, dtype=np.float64))
    t = u[:, 2] / np.linalg.norm(u[:, 2])
    W = np.array([[0.0, -1.0, 0.0], [1.0, 0.0, 0.0], [0.0, 0.0, 1.0]])
    r1 = u @ W @ vt
    if np.linalg.det(r1) < 0:
        r1 = -r1
    r2 = u @ W.T @ vt
    if np.linalg.det(r2) < 0:
        r2 = -r2
    return r1, r2, t


def _square_error(point: np.ndarray, keypoint, fx, fy, cx, cy) -> float:
    inv_z = 1.0 / point[2]
    x, y = _xy(keypoint)
    px = fx * point[0] * inv_z + cx
    py = fy * point[1] * inv_z + cy
    return (px - x) ** 2 + (py - y) ** 2


def check_rt(
    rotation,
    translation,
    keys1: Sequence,
    keys2: Sequence,
    matches: Sequence[tuple[int, int]],
    inliers: Sequence[bool],
    K,
    th2: float,
) -> tuple[int, np.ndarray, list[bool], float]:
    """Triangulate inlier matches under a motion hypothesis and count good points.

    Returns ``(n_good, points3d, good, parallax)``: the number of points in
    front of both cameras with reprojection error within ``th2``, their
    positions indexed by the first view's keypoints, which of them have enough
    parallax, and the parallax in degrees.
    """
    R = np.asarray(rotation, dtype=np.float64)
    t = np.asarray(translation, dtype=np.float64).reshape(3)
    Km = np.asarray(K, dtype=np.float64)
    fx, fy, cx, cy = Km[0, 0], Km[1, 1], Km[0, 2], Km[1, 2]

    good = [False] * len(keys1)
    points3d = np.zeros((len(keys1), 3))
    P1 = np.zeros((3, 4))
    P1[:, :3] = Km
    P2 = Km @ np.hstack([R, t.reshape(3, 1)])
    O1 = np.zeros(3)
    O2 = -R.T @ t

    cos_values: list[float] = []
    n_good = 0
    with np.errstate(divide="ignore", invalid="ignore"):
        for (i1, i2), is_inlier in zip(matches, inliers, strict=True):
            if not is_inlier:
                continue
            kp1 = keys1[i1]
            kp2 = keys2[i2]
            p_c1 = triangulate(kp1, kp2, P1, P2)
            if not np.all(np.isfinite(p_c1)):
                good[i1] = False
                continue
            normal1 = p_c1 - O1
            normal2 = p_c1 - O2
            cos_parallax = float(
                normal1 @ normal2 / (np.linalg.norm(normal1) * np.linalg.norm(normal2))
            )
            if p_c1[2] <= 0 and cos_parallax < COS_PARALLAX_LIMIT:
                continue
            p_c2 = R @ p_c1 + t
            if p_c2[2] <= 0 and cos_parallax < COS_PARALLAX_LIMIT:
                continue
            if _square_error(p_c1, kp1, fx, fy, cx, cy) > th2:
                continue
            if _square_error(p_c2, kp2, fx, fy, cx, cy) > th2:
                continue
            cos_values.append(cos_parallax)
            points3d[i1] = p_c1
            n_good += 1
            if cos_parallax < COS_PARALLAX_LIMIT:
                good[i1] = True

    if n_good > 0:
        cos_values.sort()
        chosen = cos_values[min(50, len(cos_values) - 1)]
        parallax = math.degrees(math.acos(max(-1.0, min(1.0, chosen))))
    else:
        parallax = 0.0
    return n_good, points3d, good, parallax