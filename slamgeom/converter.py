"""Conversions between descriptor matrices, poses, vectors and quaternions."""

from __future__ import annotations

from typing import Iterable

import numpy as np


def to_descriptor_list(descriptors: np.ndarray) -> list[np.ndarray]:
    """Split a descriptor matrix into a list of its rows."""
    matrix = np.asarray(descriptors)
    return [row for row in matrix]


def to_non_movable_descriptor_list(
    descriptors: np.ndarray, moved_indices: Iterable[int]
) -> list[np.ndarray]:
    """Rows of the descriptor matrix whose index is not among ``moved_indices``."""
    moved = set(moved_indices)
    matrix = np.asarray(descriptors)
    return [row for index, row in enumerate(matrix) if index not in moved]


def _require_shape(array: np.ndarray, rows: int, cols: int, name: str) -> None:
    if array.ndim != 2 or array.shape[0] < rows or array.shape[1] < cols:
        raise ValueError(f"{name} must be at least {rows}x{cols}, got {array.shape}")


def split_pose(transform: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Split a homogeneous transform into its rotation and translation."""
    matrix = np.asarray(transform, dtype=np.float64)
    _require_shape(matrix, 3, 4, "transform")
    return matrix[:3, :3].copy(), matrix[:3, 3].copy()


def se3_matrix(rotation: np.ndarray, translation: Iterable[float]) -> np.ndarray:
    """Build a 4x4 single-precision homogeneous transform from R and t."""
    rot = np.asarray(rotation, dtype=np.float64)
    _require_shape(rot, 3, 3, "rotation")
    trans = np.asarray(list(translation), dtype=np.float64).ravel()
    if trans.size < 3:
        raise ValueError("translation needs three components")
    matrix = np.eye(4, dtype=np.float32)
    matrix[:3, :3] = rot[:3, :3]
    matrix[:3, 3] = trans[:3]
    return matrix


def sim3_matrix(
    rotation: np.ndarray, translation: Iterable[float], scale: float
) -> np.ndarray:
    """Build a 4x4 transform whose upper block is the scaled rotation."""
    rot = np.asarray(rotation, dtype=np.float64)
    return se3_matrix(scale * rot, translation)


def to_vector3(values: Iterable[float]) -> np.ndarray:
    """The first three entries as a double-precision 3-vector."""
    vector = np.asarray(values, dtype=np.float64).ravel()
    if vector.size < 3:
        raise ValueError("need at least three values")
    return vector[:3].copy()


def to_matrix3(matrix: np.ndarray) -> np.ndarray:
    """The upper-left 3x3 block as a double-precision matrix."""
    m = np.asarray(matrix, dtype=np.float64)
    _require_shape(m, 3, 3, "matrix")
    return m[:3, :3].copy()


def to_quaternion(matrix: np.ndarray) -> list[float]:
    """Unit quaternion ``[x, y, z, w]`` of a rotation matrix."""
    m = to_matrix3(matrix)
    trace = m[0, 0] + m[1, 1] + m[2, 2]
    q = [0.0, 0.0, 0.0]
    if trace > 0.0:
        t = np.sqrt(trace + 1.0)
        w = 0.5 * t
        t = 0.5 / t
        q = [
            (m[2, 1] - m[1, 2]) * t,
            (m[0, 2] - m[2, 0]) * t,
            (m[1, 0] - m[0, 1]) * t,
        ]
    else:
        i = 0
        if m[1, 1] > m[0, 0]:
            i = 1
        if m[2, 2] > m[i, i]:
            i = 2
        j = (i + 1) % 3
        k = (j + 1) % 3
        t = np.sqrt(m[i, i] - m[j, j] - m[k, k] + 1.0)
        q[i] = 0.5 * t
        t = 0.5 / t
        w = (m[k, j] - m[j, k]) * t
        q[j] = (m[j, i] + m[i, j]) * t
        q[k] = (m[k, i] + m[i, k]) * t
    return [float(np.float32(v)) for v in (*q, w)]