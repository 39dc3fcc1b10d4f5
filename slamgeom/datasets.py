"""Image sequences of the EuRoC and TUM datasets and tracking-time statistics."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Iterator, Sequence as SequenceType, Union

PathLike = Union[str, "os.PathLike[str]"]

_NANOSECONDS = 1e9
_TUM_HEADER_LINES = 3


@dataclass(frozen=True)
class Sequence:
    """Image paths of a recorded sequence with one timestamp, in seconds, per image.

    Stereo sequences also carry the right images, one per left image.
    """

    images: list[str]
    timestamps: list[float]
    right_images: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if len(self.images) != len(self.timestamps):
            raise ValueError("one timestamp per image is required")
        if self.right_images and len(self.right_images) != len(self.images):
            raise ValueError("different number of left and right images")

    def __len__(self) -> int:
        return len(self.images)

    def __iter__(self) -> Iterator[tuple[str, float]]:
        return iter(zip(self.images, self.timestamps))

    @property
    def is_stereo(self) -> bool:
        """Whether the sequence has right images."""
        return bool(self.right_images)


def _content_lines(path: PathLike, skip: int = 0) -> Iterator[str]:
    with open(path, encoding="utf-8") as handle:
        for number, line in enumerate(handle):
            if number < skip:
                continue
            text = line.rstrip("\n")
            if text:
                yield text


def _leading_number(line: str) -> float:
    tokens = line.split()
    if not tokens:
        raise ValueError(f"no timestamp in line {line!r}")
    try:
        return float(tokens[0])
    except ValueError:
        raise ValueError(f"bad timestamp in line {line!r}") from None


def load_euroc_mono(image_path: PathLike, times_path: PathLike) -> Sequence:
    """Read a EuRoC times file; each line names an image and its time in nanoseconds."""
    folder = os.fspath(image_path)
    images = []
    timestamps = []
    for line in _content_lines(times_path):
        images.append(f"{folder}/{line}.png")
        timestamps.append(_leading_number(line) / _NANOSECONDS)
    return Sequence(images, timestamps)


def load_euroc_stereo(
    left_path: PathLike, right_path: PathLike, times_path: PathLike
) -> Sequence:
    """Read a EuRoC times file for a stereo pair of image folders."""
    left_folder = os.fspath(left_path)
    right_folder = os.fspath(right_path)
    left = []
    right = []
    timestamps = []
    for line in _content_lines(times_path):
        left.append(f"{left_folder}/{line}.png")
        right.append(f"{right_folder}/{line}.png")
        timestamps.append(_leading_number(line) / _NANOSECONDS)
    return Sequence(left, timestamps, right)


def load_tum_mono(sequence_path: PathLike) -> Sequence:
    """Read ``rgb.txt`` of a TUM sequence, skipping its three header lines."""
    folder = os.fspath(sequence_path)
    images = []
    timestamps = []
    for line in _content_lines(f"{folder}/rgb.txt", skip=_TUM_HEADER_LINES):
        tokens = line.split()
        if len(tokens) < 2:
            raise ValueError(f"expected a timestamp and an image name in {line!r}")
        timestamps.append(_leading_number(line))
        images.append(f"{folder}/{tokens[1]}")
    return Sequence(images, timestamps)


def frame_wait(timestamps: SequenceType[float], index: int) -> float:
    """Time between a frame and the next one, or the previous one for the last frame."""
    count = len(timestamps)
    if not 0 <= index < count:
        raise IndexError("frame index out of range")
    if index < count - 1:
        return timestamps[index + 1] - timestamps[index]
    if index > 0:
        return timestamps[index] - timestamps[index - 1]
    return 0.0


def tracking_statistics(times: SequenceType[float]) -> tuple[float, float]:
    """Median and mean of per-frame tracking times."""
    ordered = sorted(times)
    if not ordered:
        raise ValueError("no tracking times given")
    median = ordered[len(ordered) // 2]
    mean = sum(ordered) / len(ordered)
    return median, mean