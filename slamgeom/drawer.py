"""Tracking states and the data the frame view displays."""

from __future__ import annotations

from enum import IntEnum
from typing import Optional, Sequence

from .keypoints import KeyPoint


class TrackingState(IntEnum):
    """States the tracker reports."""

    SYSTEM_NOT_READY = -1
    NO_IMAGES_YET = 0
    NOT_INITIALIZED = 1
    OK = 2
    LOST = 3


def classify_matches(
    observations: Sequence[Optional[int]], outliers: Sequence[bool]
) -> tuple[list[bool], list[bool]]:
    """Split tracked keypoints into map matches and visual-odometry matches.

    ``observations`` holds, per keypoint, the observation count of its map
    point or ``None`` when it has none. Returns ``(in_map, visual_odometry)``.
    """
    if len(observations) != len(outliers):
        raise ValueError("observations and outliers differ in length")
    in_map = []
    visual_odometry = []
    for count, outlier in zip(observations, outliers):
        tracked = count is not None and not outlier
        in_map.append(tracked and count > 0)
        visual_odometry.append(tracked and count <= 0)
    return in_map, visual_odometry


def keypoint_colour(keypoint: KeyPoint) -> tuple[int, int, int]:
    """BGR colour of a tracked keypoint: red when movable, green otherwise."""
    if keypoint.movable:
        return (0, 0, 255)
    return (0, 255, 0)


def text_info(
    state: int,
    only_tracking: bool,
    keyframes: int,
    map_points: int,
    tracked: int,
    tracked_vo: int,
) -> str:
    """The status line shown below the frame for a tracking state."""
    state = TrackingState(state)
    if state is TrackingState.NO_IMAGES_YET:
        return " WAITING FOR IMAGES"
    if state is TrackingState.NOT_INITIALIZED:
        return " TRYING TO INITIALIZE "
    if state is TrackingState.LOST:
        return " TRACK LOST. TRYING TO RELOCALIZE "
    if state is TrackingState.SYSTEM_NOT_READY:
        return " LOADING ORB VOCABULARY. PLEASE WAIT..."
    mode = "LOCALIZATION | " if only_tracking else "SLAM MODE |  "
    text = f"{mode}KFs: {keyframes}, MPs: {map_points}, Matches: {tracked}"
    if tracked_vo > 0:
        text += f", + VO matches: {tracked_vo}"
    return text