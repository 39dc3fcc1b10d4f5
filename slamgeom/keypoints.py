"""Labelled image keypoints and assignment of semantic labels to them."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable

import numpy as np


@dataclass(frozen=True)
class KeyPoint:
    """An image keypoint carrying a semantic label and a movability flag."""

    x: float
    y: float
    octave: int = 0
    size: float = 0.0
    angle: float = -1.0
    response: float = 0.0
    label: int = -1
    movable: bool = False

    @property
    def pt(self) -> tuple[float, float]:
        """The keypoint position as an ``(x, y)`` pair."""
        return (self.x, self.y)

    def with_label(self, label: int) -> "KeyPoint":
        """Return a copy of this keypoint carrying ``label``."""
        return replace(self, label=int(label))

    def moved_to(self, x: float, y: float) -> "KeyPoint":
        """Return a copy of this keypoint at a new position."""
        return replace(self, x=float(x), y=float(y))


def _clamp_coordinate(value: int, low: float, high: float) -> int:
    if value > high:
        return int(high)
    if value < low:
        return int(low)
    return value


def assign_labels(
    keypoints: Iterable[KeyPoint],
    label_image: np.ndarray,
    min_x: float,
    min_y: float,
    max_x: float,
    max_y: float,
) -> list[KeyPoint]:
    """Label each keypoint with the value of the label image at its rounded position.

    Positions are rounded to the nearest pixel and clamped to the given bounds.
    The keypoints passed in are left unchanged; labelled copies are returned.
    """
    labels = np.asarray(label_image)
    if labels.ndim < 2:
        raise ValueError("label image must be at least two-dimensional")
    labelled = []
    for kp in keypoints:
        x = _clamp_coordinate(int(kp.x + 0.5), min_x, max_x)
        y = _clamp_coordinate(int(kp.y + 0.5), min_y, max_y)
        value = labels[y, x]
        if np.ndim(value) > 0:
            value = np.asarray(value).ravel()[0]
        labelled.append(kp.with_label(int(value)))
    return labelled