"""Image sequences of the KITTI and TUM RGB-D datasets."""

from __future__ import annotations

import os
from typing import Iterator, Union

from .datasets import Sequence

PathLike = Union[str, "os.PathLike[str]"]

_KITTI_LEFT = "image_0"
_KITTI_RIGHT = "image_1"
_LABEL_LEFT = "image_2"
_LABEL_RIGHT = "image_3"


def _lines(path: PathLike) -> Iterator[str]:
    with open(path, encoding="utf-8") as handle:
        for line in handle:
            text = line.rstrip("\n")
            if text:
                yield text


def _number(token: str, line: str) -> float:
    try:
        return float(token)
    except ValueError:
        raise ValueError(f"bad timestamp in line {line!r}") from None


def _kitti_times(folder: str) -> list[float]:
    timestamps = []
    for line in _lines(f"{folder}/times.txt"):
        tokens = line.split()
        if not tokens:
            continue
        timestamps.append(_number(tokens[0], line))
    return timestamps


def _numbered(prefix: str, count: int) -> list[str]:
    return [f"{prefix}/{index:06d}.png" for index in range(count)]


def load_kitti_mono(sequence_path: PathLike) -> Sequence:
    """Read ``times.txt`` of a KITTI sequence and name its left images."""
    folder = os.fspath(sequence_path)
    timestamps = _kitti_times(folder)
    images = _numbered(f"{folder}/{_KITTI_LEFT}", len(timestamps))
    return Sequence(images, timestamps)


def load_kitti_stereo(sequence_path: PathLike) -> Sequence:
    """Read ``times.txt`` of a KITTI sequence and name its left and right images."""
    folder = os.fspath(sequence_path)
    timestamps = _kitti_times(folder)
    left = _numbered(f"{folder}/{_KITTI_LEFT}", len(timestamps))
    right = _numbered(f"{folder}/{_KITTI_RIGHT}", len(timestamps))
    return Sequence(left, timestamps, right)


def kitti_labels(
    label_path: PathLike, count: int, stereo: bool = False
) -> tuple[list[str], list[str]]:
    """Paths of the label images for ``count`` frames as ``(left, right)``.

    The right list is empty unless ``stereo`` is set.
    """
    if count < 0:
        raise ValueError("label count cannot be negative")
    folder = os.fspath(label_path)
    left = _numbered(f"{folder}/{_LABEL_LEFT}", count)
    right = _numbered(f"{folder}/{_LABEL_RIGHT}", count) if stereo else []
    return left, right


def load_tum_rgbd(association_path: PathLike) -> tuple[Sequence, list[str]]:
    """Read a TUM association file of colour and depth images.

    Each line holds a timestamp, a colour image name, a second timestamp and a
    depth image name. Returns the colour sequence, timed by the first column,
    and the depth image names, both relative to the sequence folder.
    """
    rgb = []
    depth = []
    timestamps = []
    for line in _lines(association_path):
        tokens = line.split()
        if len(tokens) < 4:
            raise ValueError(f"expected two timestamps and two images in {line!r}")
        timestamps.append(_number(tokens[0], line))
        rgb.append(tokens[1])
        depth.append(tokens[3])
    if not rgb:
        raise ValueError("no images found in association file")
    return Sequence(rgb, timestamps), depth