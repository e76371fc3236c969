"""Fingertip contact zones and one-shot grip evaluation."""

import logging
from dataclasses import dataclass, field
from typing import FrozenSet, Hashable, Optional, Sequence, Set

from experiment.constants import (
    FINGERTIP_TAG, MIN_GRIP_FRACTION, LANDMARK_INDEX_TIP, LANDMARK_THUMB_TIP
)
from .aperture import euclidean_distance
from .grasp_signal import GraspState

logger = logging.getLogger(__name__)


class GripZone:
    """A contact zone on a target that tracks which fingertip colliders are inside it."""

    def __init__(self, name: str, tag: str = FINGERTIP_TAG):
        self.name = name
        self.tag = tag
        self._touching: Set[Hashable] = set()

    def on_enter(self, collider: Hashable, tag: str):
        if tag == self.tag:
            self._touching.add(collider)

    def on_exit(self, collider: Hashable, tag: str):
        if tag == self.tag:
            self._touching.discard(collider)

    @property
    def touching(self) -> FrozenSet[Hashable]:
        """All fingertip colliders currently inside this zone."""
        return frozenset(self._touching)

    @property
    def is_touched(self) -> bool:
        return bool(self._touching)

    def contains(self, collider: Hashable) -> bool:
        return collider in self._touching


@dataclass(frozen=True)
class GripResult:
    """Outcome of evaluating one grasp against the target's zones."""
    touched_zones: int
    total_zones: int
    fraction: float
    passed: bool
    used_tips: FrozenSet[Hashable] = field(default_factory=frozenset)


class GripEvaluator:
    """Evaluates the grip once per grasp, when the hand starts selecting."""

    def __init__(self, zones: Sequence[GripZone], fingertips: Sequence[Hashable] = (),
                 min_grip_fraction: float = MIN_GRIP_FRACTION):
        """
        Initialize the evaluator.

        Args:
            zones: Contact zones belonging to the target
            fingertips: Fingertip colliders to report as used or unused
            min_grip_fraction: Fraction of touched zones needed to pass
        """
        self.zones = list(zones)
        self.fingertips = list(fingertips)
        self.min_grip_fraction = min_grip_fraction
        self._has_evaluated = False
        self.last_result: Optional[GripResult] = None

    def reset(self):
        """Forget the previous grasp so the next one is evaluated."""
        self._has_evaluated = False
        self.last_result = None

    def evaluate(self) -> GripResult:
        total = len(self.zones)
        touched = sum(1 for zone in self.zones if zone.is_touched)
        fraction = touched / total if total > 0 else 0.0
        passed = fraction >= self.min_grip_fraction
        used = frozenset(
            tip for tip in self.fingertips
            if any(zone.contains(tip) for zone in self.zones)
        )

        logger.info("[GripEvaluator] %d/%d zones (%.0f%%) -> %s",
                    touched, total, fraction * 100, "PASS" if passed else "FAIL")
        return GripResult(touched, total, fraction, passed, used)

    def update(self, grasp_state: Optional[str]) -> Optional[GripResult]:
        """
        Feed the current grasp state.

        Returns:
            A GripResult on the transition into selecting, otherwise None
        """
        if grasp_state is None:
            return None

        if not self._has_evaluated and grasp_state == GraspState.SELECTING:
            self._has_evaluated = True
            self.last_result = self.evaluate()
            return self.last_result

        if self._has_evaluated and grasp_state != GraspState.SELECTING:
            self._has_evaluated = False
        return None


class ProximityContacts:
    """
    Feeds a GripZone from a pose source, for hosts without a collision system.

    A fingertip landmark is inside the zone while it lies within radius
    meters of the zone center.
    """

    def __init__(self, zone: GripZone, center: Sequence[float], radius: float,
                 fingertips: Sequence[str] = (LANDMARK_INDEX_TIP, LANDMARK_THUMB_TIP)):
        self.zone = zone
        self.center = tuple(center)
        self.radius = radius
        self.fingertips = tuple(fingertips)

    def update(self, pose_source):
        for tip in self.fingertips:
            position = pose_source.get_landmark(tip)
            if position is not None and euclidean_distance(position, self.center) <= self.radius:
                self.zone.on_enter(tip, self.zone.tag)
            else:
                self.zone.on_exit(tip, self.zone.tag)
