"""A camera frame: undistorted keypoints, a search grid, depth and pose."""

from __future__ import annotations

import itertools
import math
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from .keypoints import KeyPoint

GRID_ROWS = 48
GRID_COLS = 64
_UNDISTORT_ITERATIONS = 5


@dataclass(frozen=True)
class ImageBounds:
    """The undistorted image extent used to place keypoints into grid cells."""

    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @property
    def grid_width_inv(self) -> float:
        return GRID_COLS / (self.max_x - self.min_x)

    @property
    def grid_height_inv(self) -> float:
        return GRID_ROWS / (self.max_y - self.min_y)


def undistort_points(points, K, dist_coef) -> np.ndarray:
    """Remove lens distortion from pixel points, keeping the same camera matrix.

    ``dist_coef`` holds ``k1, k2, p1, p2`` and optionally ``k3`` or
    ``k3, k4, k5, k6``.
    """
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    Km = np.asarray(K, dtype=np.float64)
    coeffs = np.asarray(dist_coef, dtype=np.float64).ravel()
    if coeffs.size not in (4, 5, 8):
        raise ValueError("distortion needs 4, 5 or 8 coefficients")
    k = np.zeros(8)
    k[: coeffs.size] = coeffs
    k1, k2, p1, p2, k3, k4, k5, k6 = k
    fx, fy, cx, cy = Km[0, 0], Km[1, 1], Km[0, 2], Km[1, 2]
    x0 = (pts[:, 0] - cx) / fx
    y0 = (pts[:, 1] - cy) / fy
    x, y = x0.copy(), y0.copy()
    for _ in range(_UNDISTORT_ITERATIONS):
        r2 = x * x + y * y
        icdist = (1 + ((k6 * r2 + k5) * r2 + k4) * r2) / (
            1 + ((k3 * r2 + k2) * r2 + k1) * r2
        )
        dx = 2 * p1 * x * y + p2 * (r2 + 2 * x * x)
        dy = p1 * (r2 + 2 * y * y) + 2 * p2 * x * y
        x = (x0 - dx) * icdist
        y = (y0 - dy) * icdist
    return np.column_stack([x * fx + cx, y * fy + cy])


def compute_image_bounds(width, height, K, dist_coef) -> ImageBounds:
    """Bounds of the image after undistortion of its corners."""
    coeffs = np.asarray(dist_coef, dtype=np.float64).ravel()
    if coeffs.size and coeffs[0] != 0.0:
        corners = np.array(
            [[0.0, 0.0], [width, 0.0], [0.0, height], [width, height]], dtype=np.float64
        )
        c = undistort_points(corners, K, coeffs)
        return ImageBounds(
            min_x=float(min(c[0, 0], c[2, 0])),
            min_y=float(min(c[0, 1], c[1, 1])),
            max_x=float(max(c[1, 0], c[3, 0])),
            max_y=float(max(c[2, 1], c[3, 1])),
        )
    return ImageBounds(0.0, 0.0, float(width), float(height))


def _round_half_away(value: float) -> int:
    if value >= 0:
        return math.floor(value + 0.5)
    return -math.floor(-value + 0.5)


class Frame:
    """Keypoints of one image with their grid, stereo information and pose."""

    _ids = itertools.count()

    def __init__(
        self,
        keypoints: Sequence[KeyPoint],
        descriptors,
        K,
        dist_coef,
        bf,
        th_depth,
        timestamp,
        bounds: ImageBounds,
    ):
        self.id = next(Frame._ids)
        self.keys = list(keypoints)
        self.descriptors = np.asarray(descriptors)
        if self.keys and self.descriptors.shape[0] != len(self.keys):
            raise ValueError("one descriptor per keypoint is required")
        self.K = np.array(K, dtype=np.float64)
        self.dist_coef = np.array(dist_coef, dtype=np.float64).ravel()
        self.bf = float(bf)
        self.th_depth = float(th_depth)
        self.timestamp = float(timestamp)
        self.bounds = bounds
        self.fx, self.fy = self.K[0, 0], self.K[1, 1]
        self.cx, self.cy = self.K[0, 2], self.K[1, 2]
        self.baseline = self.bf / self.fx

        n = len(self.keys)
        self.keys_un = self._undistorted_keys()
        self.u_right = [-1.0] * n
        self.depth = [-1.0] * n
        self.map_points: list = [None] * n
        self.outliers = [False] * n

        self.Tcw: Optional[np.ndarray] = None
        self.Rcw: Optional[np.ndarray] = None
        self.tcw: Optional[np.ndarray] = None
        self.Rwc: Optional[np.ndarray] = None
        self.Ow: Optional[np.ndarray] = None

        self.grid: list[list[list[int]]] = [
            [[] for _ in range(GRID_ROWS)] for _ in range(GRID_COLS)
        ]
        for index, kp in enumerate(self.keys_un):
            cell = self.pos_in_grid(kp)
            if cell is not None:
                self.grid[cell[0]][cell[1]].append(index)

    def __len__(self) -> int:
        return len(self.keys)

    def _undistorted_keys(self) -> list[KeyPoint]:
        if not self.keys or self.dist_coef.size == 0 or self.dist_coef[0] == 0.0:
            return list(self.keys)
        pts = undistort_points([kp.pt for kp in self.keys], self.K, self.dist_coef)
        return [kp.moved_to(x, y) for kp, (x, y) in zip(self.keys, pts)]

    def set_pose(self, Tcw) -> None:
        """Set the world-to-camera transform and derive rotation and centre."""
        T = np.array(Tcw, dtype=np.float64)
        if T.shape[0] < 3 or T.shape[1] < 4:
            raise ValueError("pose must be at least 3x4")
        self.Tcw = T
        self.Rcw = T[:3, :3].copy()
        self.Rwc = self.Rcw.T
        self.tcw = T[:3, 3].copy()
        self.Ow = -self.Rcw.T @ self.tcw

    def pos_in_grid(self, keypoint) -> Optional[tuple[int, int]]:
        """Grid cell ``(column, row)`` of a keypoint, or ``None`` outside the grid."""
        pos_x = _round_half_away((keypoint.x - self.bounds.min_x) * self.bounds.grid_width_inv)
        pos_y = _round_half_away((keypoint.y - self.bounds.min_y) * self.bounds.grid_height_inv)
        if pos_x < 0 or pos_x >= GRID_COLS or pos_y < 0 or pos_y >= GRID_ROWS:
            return None
        return pos_x, pos_y

    def features_in_area(self, x, y, r, min_level=-1, max_level=-1) -> list[int]:
        """Indices of undistorted keypoints within a square of half-side ``r``."""
        b = self.bounds
        min_cell_x = max(0, math.floor((x - b.min_x - r) * b.grid_width_inv))
        if min_cell_x >= GRID_COLS:
            return []
        max_cell_x = min(GRID_COLS - 1, math.ceil((x - b.min_x + r) * b.grid_width_inv))
        if max_cell_x < 0:
            return []
        min_cell_y = max(0, math.floor((y - b.min_y - r) * b.grid_height_inv))
        if min_cell_y >= GRID_ROWS:
            return []
        max_cell_y = min(GRID_ROWS - 1, math.ceil((y - b.min_y + r) * b.grid_height_inv))
        if max_cell_y < 0:
            return []

        check_levels = min_level > 0 or max_level >= 0
        found = []
        for column in self.grid[min_cell_x : max_cell_x + 1]:
            for cell in column[min_cell_y : max_cell_y + 1]:
                for index in cell:
                    kp = self.keys_un[index]
                    if check_levels:
                        if kp.octave < min_level:
                            continue
                        if max_level >= 0 and kp.octave > max_level:
                            continue
                    if abs(kp.x - x) < r and abs(kp.y - y) < r:
                        found.append(index)
        return found

    def compute_stereo_from_rgbd(self, depth) -> None:
        """Fill depth and virtual right coordinate from a registered depth image."""
        image = np.asarray(depth, dtype=np.float64)
        n = len(self.keys)
        self.u_right = [-1.0] * n
        self.depth = [-1.0] * n
        for index, (kp, kp_un) in enumerate(zip(self.keys, self.keys_un)):
            d = float(image[int(kp.y), int(kp.x)])
            if d > 0:
                self.depth[index] = d
                self.u_right[index] = kp_un.x - self.bf / d

    def unproject_stereo(self, index) -> Optional[np.ndarray]:
        """World position of a keypoint with known depth, or ``None`` without one."""
        if self.Rwc is None or self.Ow is None:
            raise RuntimeError("frame pose has not been set")
        z = self.depth[index]
        if z <= 0:
            return None
        kp = self.keys_un[index]
        x = (kp.x - self.cx) * z / self.fx
        y = (kp.y - self.cy) * z / self.fy
        return self.Rwc @ np.array([x, y, z]) + self.Ow