"""Grip aperture (palm openness) measurement from fingertip landmarks."""

import logging
from typing import Optional, Sequence

import numpy as np

from experiment.constants import (
    CLOSED_DISTANCE, OPEN_DISTANCE, LANDMARK_INDEX_TIP, LANDMARK_THUMB_TIP
)

logger = logging.getLogger(__name__)


def euclidean_distance(a: Sequence[float], b: Sequence[float]) -> float:
    """Distance between two 3D points."""
    return float(np.linalg.norm(np.asarray(a, dtype=float) - np.asarray(b, dtype=float)))


def openness_from_distance(distance: float,
                           closed_distance: float = CLOSED_DISTANCE,
                           open_distance: float = OPEN_DISTANCE) -> float:
    """
    Map an index/thumb fingertip distance to an openness percentage.

    Distances at or below closed_distance map to 0, at or above
    open_distance to 100, linear in between.
    """
    fraction = (distance - closed_distance) / (open_distance - closed_distance)
    return float(np.clip(fraction, 0.0, 1.0) * 100.0)


class ApertureMeter:
    """Computes palm openness (0-100%) from a pose source."""

    def __init__(self, closed_distance: float = CLOSED_DISTANCE,
                 open_distance: float = OPEN_DISTANCE):
        """
        Initialize the aperture meter.

        Args:
            closed_distance: Fingertip distance (m) considered fully closed
            open_distance: Fingertip distance (m) considered fully open
        """
        self.closed_distance = closed_distance
        self.open_distance = open_distance

    def openness(self, index_tip: Optional[Sequence[float]],
                 thumb_tip: Optional[Sequence[float]]) -> float:
        """Openness percentage, or 0 if either fingertip is unavailable."""
        if index_tip is None or thumb_tip is None:
            return 0.0

        distance = euclidean_distance(index_tip, thumb_tip)
        percent = openness_from_distance(distance, self.closed_distance, self.open_distance)
        logger.debug("Palm openness (index/thumb): %.2f%%", percent)
        return percent

    def measure(self, pose_source) -> float:
        """Read both fingertips from a pose source and return the openness."""
        return self.openness(
            pose_source.get_landmark(LANDMARK_INDEX_TIP),
            pose_source.get_landmark(LANDMARK_THUMB_TIP),
        )
