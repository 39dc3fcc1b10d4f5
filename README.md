# slamgeom

Geometry and bookkeeping for feature-based visual SLAM, built on NumPy.

## What is in it

- **`slamgeom.initializer`**: `Initializer` takes the keypoints of a reference view and the camera matrix `K`. Its `initialize(current_keys, matches12)` method draws eight-point sample sets from a generator seeded with 0. It then runs RANSAC for a homography (`find_homography`) and for a fundamental matrix (`find_fundamental`), scores each with `check_homography` / `check_fundamental` and picks a model by the ratio of the two scores. It recovers the motion with `reconstruct_h` or `reconstruct_f`. The result is a `Reconstruction` (rotation, translation, 3D points, triangulated flags), or `None` when no reliable reconstruction is found. Fewer than eight matches raise `ValueError`.
- **`slamgeom.twoview`** holds the two-view primitives:
  - `normalize`
  - `compute_h21` (DLT homography)
  - `compute_f21` (eight-point fundamental matrix, rank 2)
  - `triangulate`
  - `decompose_essential`
  - `check_rt`, which counts the points in front of both cameras within a reprojection threshold and reports the parallax in degrees.
- **`slamgeom.frame`**:
  - `Frame` holds keypoints and their descriptors. It undistorts the keypoints and assigns them to a 64×48 grid.
  - Its methods are `pos_in_grid`, `features_in_area`, `set_pose`, `compute_stereo_from_rgbd` (depth and virtual right coordinate from a depth image) and `unproject_stereo` (world point of a keypoint with depth).
  - `undistort_points` handles 4, 5 or 8 radial-tangential coefficients.
  - `compute_image_bounds` returns the `ImageBounds` of the undistorted image.
- **`slamgeom.stereo`**:
  - `compute_stereo_matches` matches left keypoints along rows of the right image by Hamming distance (`descriptor_distance`). It refines each match to sub-pixel accuracy with an L1 patch search and a parabola fit.
  - Matches whose cost is far above the median are discarded.
  - It returns the right coordinate and the depth per keypoint, with `-1` where there is no match.
- **`slamgeom.keypoints`**: `KeyPoint` is a frozen dataclass that carries an octave, a semantic `label` and a `movable` flag. `assign_labels` reads the labels from a label image at the rounded, clamped keypoint positions.
- **`slamgeom.converter`**:
  - `se3_matrix`, `sim3_matrix` and `split_pose` build and split transforms.
  - `to_vector3`, `to_matrix3` and `to_quaternion` (returns `[x, y, z, w]`) convert vectors and rotations.
  - `to_descriptor_list` and `to_non_movable_descriptor_list` split a descriptor matrix into rows; the second leaves out the given indices.
- **`slamgeom.drawer`**:
  - `TrackingState` names the tracker states.
  - `classify_matches` splits tracked keypoints into map matches and visual-odometry matches.
  - `keypoint_colour` gives a BGR colour: red for movable keypoints, green otherwise.
  - `text_info` builds the status line text.
- **`slamgeom.plane`**:
  - `detect_plane` runs RANSAC over map points observed more than five times and returns a `Plane`. It returns `None` when fewer than 50 points qualify.
  - `Plane.recompute` refits the plane to its points.
  - `Plane.from_normal` builds a plane from a normal and an origin.
  - `exp_so3`, `gl_matrix` (column-major 16 values) and `status_text` are helpers for an AR view.
- **`slamgeom.datasets`** and **`slamgeom.sequences`** load dataset file lists into a `Sequence` of image paths with timestamps in seconds:
  - EuRoC: `load_euroc_mono`, `load_euroc_stereo`
  - TUM: `load_tum_mono`, `load_tum_rgbd`
  - KITTI: `load_kitti_mono`, `load_kitti_stereo`, `kitti_labels`

  `frame_wait` gives the time to the next frame. `tracking_statistics` gives the median and mean of tracking times.

## What it does not do

The package does not detect features or compute descriptors. A `Frame` is given keypoints and descriptors that were found elsewhere. It reads no image files: the loaders only return paths. It does not draw or display anything; the drawing helpers return colours, text and matrices. There is no tracking, mapping or loop-closing pipeline, no bag-of-words vocabulary and no command-line program.

## Installation

```
pip install .
```

With the test requirements:

```
pip install .[test]
```

## Example

```python
import numpy as np
from slamgeom.converter import se3_matrix, to_quaternion
from slamgeom.datasets import tracking_statistics

T = se3_matrix(np.eye(3), [0.1, 0.0, 0.5])
print(to_quaternion(T[:3, :3]))          # [0.0, 0.0, 0.0, 1.0]
print(tracking_statistics([0.03, 0.01, 0.02]))  # (0.02, 0.02)
```

## Running the tests

```
pytest
```