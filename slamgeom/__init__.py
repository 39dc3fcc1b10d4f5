"""Two-view initialisation, frames, stereo matching, plane detection and dataset loading for visual SLAM."""

__version__ = "0.1.0"

__all__ = [
    "converter",
    "datasets",
    "drawer",
    "frame",
    "initializer",
    "keypoints",
    "plane",
    "sequences",
    "stereo",
    "twoview",
]