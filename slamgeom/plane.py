"""Planes fitted to map points for placing virtual objects, and helpers for the AR view."""

from __future__ import annotations

import math
from typing import Optional, Sequence

import numpy as np

_EPS = 1e-4
_MIN_POINTS = 50
_MIN_OBSERVATIONS = 5
_UP = np.array([0.0, 1.0, 0.0])


def exp_so3(x: float, y: float, z: float) -> np.ndarray:
    """Rotation matrix of the rotation vector ``(x, y, z)``."""
    identity = np.eye(3)
    d2 = x * x + y * y + z * z
    d = math.sqrt(d2)
    W = np.array([[0.0, -z, y], [z, 0.0, -x], [-y, x, 0.0]])
    if d < _EPS:
        return identity + W + 0.5 * W @ W
    return identity + W * math.sin(d) / d + W @ W * (1.0 - math.cos(d)) / d2


def gl_matrix(transform) -> Optional[list[float]]:
    """Column-major 16-element matrix of a 3x4 or 4x4 transform, ``None`` if empty."""
    if transform is None:
        return None
    T = np.asarray(transform, dtype=np.float64)
    if T.size == 0:
        return None
    if T.ndim != 2 or T.shape[0] < 3 or T.shape[1] < 4:
        raise ValueError(f"transform must be at least 3x4, got {T.shape}")
    values: list[float] = []
    for column in range(4):
        values.extend(float(v) for v in T[:3, column])
        values.append(1.0 if column == 3 else 0.0)
    return values


def status_text(
    status: int, localization_mode: bool
) -> Optional[tuple[str, tuple[int, int, int]]]:
    """Text and RGB colour shown for a tracking status, or ``None`` for others."""
    prefix = "LOCALIZATION" if localization_mode else "SLAM"
    if status == 1:
        return "SLAM NOT INITIALIZED", (255, 0, 0)
    if status == 2:
        return f"{prefix} ON", (0, 255, 0)
    if status == 3:
        return f"{prefix} LOST", (255, 0, 0)
    return None


def _position(point) -> np.ndarray:
    position = getattr(point, "position", point)
    if callable(position):
        position = position()
    vector = np.asarray(position, dtype=np.float64).ravel()
    if vector.size < 3:
        raise ValueError("a point needs three coordinates")
    return vector[:3]


def _observations(point) -> Optional[int]:
    count = getattr(point, "observations", None)
    if callable(count):
        count = count()
    return count


def _is_bad(point) -> bool:
    flag = getattr(point, "is_bad", False)
    if callable(flag):
        flag = flag()
    return bool(flag)


def _random_rang(rng: Optional[np.random.Generator]) -> float:
    generator = rng if rng is not None else np.random.default_rng()
    return -3.14 / 2 + float(generator.random()) * 3.14


def _align_up(normal: np.ndarray, rang: float) -> np.ndarray:
    """Rotation taking the y axis onto ``normal``, spun by ``rang`` about y."""
    v = np.cross(_UP, normal)
    sa = float(np.linalg.norm(v))
    ca = float(_UP @ normal)
    angle = math.atan2(sa, ca)
    if sa > 0.0:
        rotation_vector = v * angle / sa
    elif ca >= 0.0:
        rotation_vector = np.zeros(3)
    else:
        rotation_vector = np.array([math.pi, 0.0, 0.0])
    spin = _UP * rang
    return exp_so3(*rotation_vector) @ exp_so3(*spin)


class Plane:
    """A plane through map points with a frame whose y axis is its normal.

    Points may be plain coordinates or objects with a ``position`` and
    optionally ``observations`` and ``is_bad``; positions are read again on
    every :meth:`recompute`.
    """

    def __init__(self, points: Sequence, Tcw, rang: Optional[float] = None):
        if Tcw is None:
            raise ValueError("a camera pose is required")
        self.points = list(points)
        self.Tcw = np.array(Tcw, dtype=np.float64)
        self.rang = _random_rang(None) if rang is None else float(rang)
        self.XC: Optional[np.ndarray] = None
        self.n = np.zeros(3)
        self.o = np.zeros(3)
        self.Tpw = np.eye(4)
        self.gl_tpw: list[float] = gl_matrix(self.Tpw)
        self.recompute()

    @classmethod
    def from_normal(cls, normal, origin, rang: Optional[float] = None) -> "Plane":
        """A plane with a given normal through a given origin."""
        plane = cls.__new__(cls)
        plane.points = []
        plane.Tcw = None
        plane.XC = None
        plane.rang = _random_rang(None) if rang is None else float(rang)
        plane._set_frame(
            np.asarray(normal, dtype=np.float64).ravel()[:3],
            np.asarray(origin, dtype=np.float64).ravel()[:3],
        )
        return plane

    def _set_frame(self, normal: np.ndarray, origin: np.ndarray) -> None:
        self.n = normal.copy()
        self.o = origin.copy()
        Tpw = np.eye(4)
        Tpw[:3, :3] = _align_up(self.n, self.rang)
        Tpw[:3, 3] = self.o
        self.Tpw = Tpw
        self.gl_tpw = gl_matrix(Tpw)

    def recompute(self) -> None:
        """Fit the plane again to all points that are not bad."""
        if self.Tcw is None:
            raise ValueError("plane was not built from points")
        positions = [_position(p) for p in self.points if not _is_bad(p)]
        if not positions:
            raise ValueError("no usable points to fit a plane")
        xyz = np.array(positions)
        A = np.column_stack([xyz, np.ones(len(xyz))])
        _, _, vt = np.linalg.svd(A, full_matrices=True)
        a, b, c = vt[3, :3]
        origin = xyz.mean(axis=0)
        f = 1.0 / math.sqrt(a * a + b * b + c * c)

        if self.XC is None:
            R = self.Tcw[:3, :3]
            t = self.Tcw[:3, 3]
            camera_centre = -R.T @ t
            self.XC = camera_centre - origin

        if self.XC @ np.array([a, b, c]) > 0:
            a, b, c = -a, -b, -c
        self._set_frame(np.array([a, b, c]) * f, origin)


def detect_plane(
    Tcw,
    points: Sequence,
    iterations: int = 50,
    rng: Optional[np.random.Generator] = None,
) -> Optional[Plane]:
    """Fit a plane by RANSAC to well-observed points, or ``None`` with too few.

    ``None`` entries are skipped, as are points observed five times or fewer.
    """
    generator = rng if rng is not None else np.random.default_rng()
    chosen = []
    positions = []
    for point in points:
        if point is None:
            continue
        count = _observations(point)
        if count is not None and count <= _MIN_OBSERVATIONS:
            continue
        chosen.append(point)
        positions.append(_position(point))

    n = len(positions)
    if n < _MIN_POINTS:
        return None
    xyz = np.array(positions)
    homogeneous = np.column_stack([xyz, np.ones(n)])

    best_dist = 1e10
    best_distances: Optional[np.ndarray] = None
    nth = max(int(0.2 * n), 20)
    for _ in range(iterations):
        sample = generator.choice(n, 3, replace=False)
        _, _, vt = np.linalg.svd(homogeneous[sample], full_matrices=True)
        plane = vt[3]
        f = 1.0 / float(np.linalg.norm(plane))
        distances = np.abs(homogeneous @ plane) * f
        median = float(np.sort(distances)[nth])
        if median < best_dist:
            best_dist = median
            best_distances = distances

    if best_distances is None:
        return None
    threshold = 1.4 * best_dist
    inliers = [p for p, d in zip(chosen, best_distances) if d < threshold]
    return Plane(inliers, Tcw, _random_rang(generator))