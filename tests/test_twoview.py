import numpy as np
import pytest

from slamgeom.keypoints import KeyPoint
from slamgeom.twoview import (
    check_rt,
    compute_f21,
    compute_h21,
    decompose_essential,
    normalize,
    triangulate,
)

K = np.array([[500.0, 0.0, 320.0], [0.0, 500.0, 240.0], [0.0, 0.0, 1.0]])


def _rot_y(angle):
    c, s = np.cos(angle), np.sin(angle)
    return np.array([[c, 0.0, s], [0.0, 1.0, 0.0], [-s, 0.0, c]])


def _skew(v):
    return np.array([[0.0, -v[2], v[1]], [v[2], 0.0, -v[0]], [-v[1], v[0], 0.0]])


def _project(X):
    p = K @ X
    return p[:2] / p[2]


@pytest.fixture
def scene():
    rng = np.random.default_rng(7)
    points = np.column_stack(
        [rng.uniform(-1, 1, 20), rng.uniform(-1, 1, 20), rng.uniform(4, 8, 20)]
    )
    R = _rot_y(0.1)
    t = np.array([-1.0, 0.0, 0.0])
    keys1 = [KeyPoint(*map(float, _project(X))) for X in points]
    keys2 = [KeyPoint(*map(float, _project(R @ X + t))) for X in points]
    return points, R, t, keys1, keys2


def test_normalize_zero_mean_unit_deviation(scene):
    _, _, _, keys1, _ = scene
    normalized, T = normalize(keys1)
    assert np.allclose(normalized.mean(axis=0), 0.0, atol=1e-9)
    assert np.allclose(np.abs(normalized).mean(axis=0), 1.0)
    homogeneous = np.array([[k.x, k.y, 1.0] for k in keys1]).T
    mapped = (T @ homogeneous)[:2].T
    assert np.allclose(mapped, normalized)


def test_normalize_accepts_pairs():
    normalized, _ = normalize([(0.0, 0.0), (2.0, 4.0)])
    assert np.allclose(normalized, [[-1.0, -1.0], [1.0, 1.0]])


def test_normalize_empty_raises():
    with pytest.raises(ValueError):
        normalize([])


def test_compute_h21_recovers_homography():
    H = np.array([[1.2, 0.1, 5.0], [0.05, 0.9, -3.0], [0.001, 0.002, 1.0]])
    p1 = np.array(
        [[10, 20], [80, 15], [50, 60], [5, 90], [70, 85], [30, 40], [95, 55], [60, 5]],
        dtype=float,
    )
    hom = (H @ np.column_stack([p1, np.ones(len(p1))]).T).T
    p2 = hom[:, :2] / hom[:, 2:]
    estimate = compute_h21(p1, p2)
    assert np.allclose(estimate / estimate[2, 2], H, atol=1e-6)


def test_compute_h21_length_mismatch():
    with pytest.raises(ValueError):
        compute_h21([(0, 0), (1, 1)], [(0, 0)])


def test_compute_f21_satisfies_epipolar_constraint(scene):
    _, _, _, keys1, keys2 = scene
    n1, _ = normalize(keys1)
    n2, _ = normalize(keys2)
    F = compute_f21(n1[:8], n2[:8])
    h1 = np.column_stack([n1, np.ones(len(n1))])
    h2 = np.column_stack([n2, np.ones(len(n2))])
    residuals = np.einsum("ij,jk,ik->i", h2, F, h1)
    assert np.max(np.abs(residuals)) < 1e-6
    assert np.linalg.svd(F, compute_uv=False)[2] < 1e-9


def test_triangulate_recovers_point():
    R = _rot_y(0.1)
    t = np.array([-1.0, 0.0, 0.0])
    P1 = K @ np.hstack([np.eye(3), np.zeros((3, 1))])
    P2 = K @ np.hstack([R, t.reshape(3, 1)])
    X = np.array([0.3, -0.2, 5.0])
    x1 = _project(X)
    x2 = _project(R @ X + t)
    assert np.allclose(triangulate(tuple(x1), tuple(x2), P1, P2), X, atol=1e-6)


def test_decompose_essential_contains_true_motion():
    R = _rot_y(0.2)
    t = np.array([0.5, 0.1, -0.2])
    r1, r2, t_est = decompose_essential(_skew(t) @ R)
    assert np.isclose(np.linalg.det(r1), 1.0)
    assert np.isclose(np.linalg.det(r2), 1.0)
    assert np.allclose(r1, R, atol=1e-6) or np.allclose(r2, R, atol=1e-6)
    assert np.isclose(abs(t_est @ (t / np.linalg.norm(t))), 1.0)


def test_check_rt_true_motion(scene):
    points, R, t, keys1, keys2 = scene
    matches = [(i, i) for i in range(len(keys1))]
    n_good, points3d, good, parallax = check_rt(
        R, t, keys1, keys2, matches, [True] * len(matches), K, 4.0
    )
    assert n_good == len(keys1)
    assert all(good)
    assert np.allclose(points3d, points, atol=1e-6)
    assert 0.0 < parallax < 90.0


def test_check_rt_wrong_translation_has_fewer_points(scene):
    _, R, t, keys1, keys2 = scene
    matches = [(i, i) for i in range(len(keys1))]
    n_good, _, _, _ = check_rt(
        R, -t, keys1, keys2, matches, [True] * len(matches), K, 4.0
    )
    assert n_good < len(keys1)


def test_check_rt_skips_outliers(scene):
    _, R, t, keys1, keys2 = scene
    matches = [(i, i) for i in range(len(keys1))]
    inliers = [i >= 5 for i in range(len(matches))]
    n_good, points3d, good, _ = check_rt(R, t, keys1, keys2, matches, inliers, K, 4.0)
    assert n_good == len(keys1) - 5
    assert good[:5] == [False] * 5
    assert np.all(points3d[:5] == 0.0)


def test_check_rt_no_inliers_zero_parallax(scene):
    _, R, t, keys1, keys2 = scene
    matches = [(i, i) for i in range(len(keys1))]
    n_good, _, good, parallax = check_rt(
        R, t, keys1, keys2, matches, [False] * len(matches), K, 4.0
    )
    assert n_good == 0
    assert parallax == 0.0
    assert not any(good)