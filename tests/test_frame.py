import numpy as np
import pytest

from slamgeom.frame import (
    GRID_COLS,
    GRID_ROWS,
    Frame,
    ImageBounds,
    compute_image_bounds,
    undistort_points,
)
from slamgeom.keypoints import KeyPoint

K = np.array([[500.0, 0.0, 320.0], [0.0, 500.0, 240.0], [0.0, 0.0, 1.0]])
NO_DIST = np.zeros(4)
DIST = np.array([-0.1, 0.02, 0.001, -0.0005])


def _distort(points, dist):
    k1, k2, p1, p2 = dist
    x = (points[:, 0] - K[0, 2]) / K[0, 0]
    y = (points[:, 1] - K[1, 2]) / K[1, 1]
    r2 = x * x + y * y
    radial = 1 + k1 * r2 + k2 * r2 * r2
    xd = x * radial + 2 * p1 * x * y + p2 * (r2 + 2 * x * x)
    yd = y * radial + p1 * (r2 + 2 * y * y) + 2 * p2 * x * y
    return np.column_stack([xd * K[0, 0] + K[0, 2], yd * K[1, 1] + K[1, 2]])


def _frame(keys, dist=NO_DIST):
    bounds = compute_image_bounds(640, 480, K, dist)
    descriptors = np.zeros((len(keys), 32), dtype=np.uint8)
    return Frame(keys, descriptors, K, dist, 40.0, 35.0, 0.0, bounds)


def test_bounds_without_distortion_are_image_size():
    assert compute_image_bounds(640, 480, K, NO_DIST) == ImageBounds(0.0, 0.0, 640.0, 480.0)


def test_bounds_with_distortion_follow_undistorted_corners():
    bounds = compute_image_bounds(640, 480, K, DIST)
    corners = undistort_points([[0, 0], [640, 0], [0, 480], [640, 480]], K, DIST)
    assert bounds.min_x == pytest.approx(min(corners[0, 0], corners[2, 0]))
    assert bounds.max_y == pytest.approx(max(corners[2, 1], corners[3, 1]))
    assert bounds.min_x < 0 and bounds.max_x > 640


def test_undistort_with_zero_coefficients_is_identity():
    pts = np.array([[10.0, 20.0], [320.0, 240.0], [600.0, 470.0]])
    np.testing.assert_allclose(undistort_points(pts, K, NO_DIST), pts)


def test_undistort_inverts_distortion():
    pts = np.array([[50.0, 60.0], [320.0, 240.0], [600.0, 400.0], [200.0, 300.0]])
    np.testing.assert_allclose(undistort_points(_distort(pts, DIST), K, DIST), pts, atol=0.05)


def test_undistort_rejects_bad_coefficient_count():
    with pytest.raises(ValueError):
        undistort_points([[1.0, 2.0]], K, [0.1, 0.2, 0.3])


def test_frame_ids_increase():
    first = _frame([KeyPoint(1.0, 1.0)])
    second = _frame([KeyPoint(1.0, 1.0)])
    assert second.id == first.id + 1


def test_descriptor_count_must_match():
    bounds = compute_image_bounds(640, 480, K, NO_DIST)
    with pytest.raises(ValueError):
        Frame([KeyPoint(1.0, 1.0)], np.zeros((2, 32)), K, NO_DIST, 40.0, 35.0, 0.0, bounds)


def test_keypoints_are_stored_in_their_grid_cell():
    keys = [KeyPoint(float(x), float(y)) for x, y in [(5, 5), (100, 200), (639, 479), (320, 10)]]
    frame = _frame(keys)
    for index, kp in enumerate(keys):
        cell = frame.pos_in_grid(kp)
        assert index in frame.grid[cell[0]][cell[1]]
    assert sum(len(c) for col in frame.grid for c in col) == len(keys)
    assert len(frame.grid) == GRID_COLS and len(frame.grid[0]) == GRID_ROWS


def test_pos_in_grid_outside_is_none():
    frame = _frame([KeyPoint(10.0, 10.0)])
    assert frame.pos_in_grid(KeyPoint(-50.0, 10.0)) is None
    assert frame.pos_in_grid(KeyPoint(10.0, 2000.0)) is None


def test_distortion_moves_undistorted_keys():
    keys = [KeyPoint(600.0, 400.0)]
    frame = _frame(keys, DIST)
    expected = undistort_points([[600.0, 400.0]], K, DIST)[0]
    assert frame.keys_un[0].x == pytest.approx(expected[0])
    assert frame.keys[0].x == 600.0


def test_features_in_area():
    keys = [KeyPoint(100.0, 100.0), KeyPoint(103.0, 100.0), KeyPoint(200.0, 200.0)]
    frame = _frame(keys)
    assert sorted(frame.features_in_area(100.0, 100.0, 5.0)) == [0, 1]
    assert frame.features_in_area(400.0, 400.0, 5.0) == []


def test_features_in_area_level_filter():
    keys = [KeyPoint(100.0, 100.0, octave=0), KeyPoint(102.0, 101.0, octave=2)]
    frame = _frame(keys)
    assert frame.features_in_area(100.0, 100.0, 5.0, 1, -1) == [1]
    assert frame.features_in_area(100.0, 100.0, 5.0, 0, 1) == [0]


def test_compute_stereo_from_rgbd():
    keys = [KeyPoint(10.0, 20.0), KeyPoint(30.0, 40.0)]
    frame = _frame(keys)
    depth = np.zeros((480, 640), dtype=np.float32)
    depth[20, 10] = 2.0
    frame.compute_stereo_from_rgbd(depth)
    assert frame.depth == [2.0, -1.0]
    assert frame.u_right[0] == pytest.approx(10.0 - 40.0 / 2.0)
    assert frame.u_right[1] == -1.0


def test_set_pose_camera_centre():
    frame = _frame([KeyPoint(1.0, 1.0)])
    c, s = np.cos(0.3), np.sin(0.3)
    T = np.eye(4)
    T[:3, :3] = [[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]]
    T[:3, 3] = [1.0, 2.0, 3.0]
    frame.set_pose(T)
    np.testing.assert_allclose(frame.Rcw @ frame.Ow + frame.tcw, np.zeros(3), atol=1e-12)
    np.testing.assert_allclose(frame.Rwc, frame.Rcw.T)


def test_unproject_stereo_reprojects_to_keypoint():
    keys = [KeyPoint(150.0, 300.0)]
    frame = _frame(keys)
    frame.depth = [4.0]
    T = np.eye(4)
    T[:3, 3] = [0.5, -0.2, 1.0]
    frame.set_pose(T)
    world = frame.unproject_stereo(0)
    cam = frame.Rcw @ world + frame.tcw
    uv = K @ cam
    np.testing.assert_allclose(uv[:2] / uv[2], [150.0, 300.0], atol=1e-9)
    assert cam[2] == pytest.approx(4.0)


def test_unproject_without_depth_is_none():
    frame = _frame([KeyPoint(150.0, 300.0)])
    frame.set_pose(np.eye(4))
    assert frame.unproject_stereo(0) is None


def test_unproject_without_pose_raises():
    frame = _frame([KeyPoint(150.0, 300.0)])
    frame.depth = [2.0]
    with pytest.raises(RuntimeError):
        frame.unproject_stereo(0)