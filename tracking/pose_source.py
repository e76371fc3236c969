"""Hand pose sources supplying named landmark positions in meters."""

import logging
import threading
import time
from typing import Dict, Iterable, List, Optional, Tuple

from experiment.constants import (
    CLOSED_DISTANCE, OPEN_DISTANCE, GRASP_HAND,
    LANDMARK_INDEX_TIP, LANDMARK_THUMB_TIP, LANDMARK_WRIST
)

logger = logging.getLogger(__name__)

try:
    import leap
    LEAP_AVAILABLE = True
except ImportError:
    leap = None
    LEAP_AVAILABLE = False

Position = Tuple[float, float, float]

MM_PER_METER = 1000.0


class PoseSource:
    """Supplies 3D positions of named hand landmarks, or None when unavailable."""

    def get_landmark(self, name: str) -> Optional[Position]:
        raise NotImplementedError

    def missing_landmarks(self, names: Iterable[str]) -> List[str]:
        """Return the landmarks from names that are currently unavailable."""
        return [name for name in names if self.get_landmark(name) is None]


class SimulatedPoseSource(PoseSource):
    """Pose source driven by code or keyboard input, for testing without hardware."""

    def __init__(self, wrist: Position = (0.0, 0.0, 0.0),
                 index_tip: Position = (0.0, 0.1, 0.0),
                 openness: float = 0.0,
                 closed_distance: float = CLOSED_DISTANCE,
                 open_distance: float = OPEN_DISTANCE):
        """
        Initialize the simulated hand.

        Args:
            wrist: Initial wrist position (meters)
            index_tip: Initial index fingertip position (meters)
            openness: Initial openness percentage
            closed_distance: Fingertip gap (m) placed for 0% openness
            open_distance: Fingertip gap (m) placed for 100% openness
        """
        self.closed_distance = closed_distance
        self.open_distance = open_distance
        self.landmarks: Dict[str, Optional[Position]] = {
            LANDMARK_WRIST: tuple(wrist),
            LANDMARK_INDEX_TIP: tuple(index_tip),
            LANDMARK_THUMB_TIP: None,
        }
        self.hand_visible = True
        self.openness = 0.0
        self.set_openness(openness)

    def get_landmark(self, name: str) -> Optional[Position]:
        if not self.hand_visible:
            return None
        return self.landmarks.get(name)

    def set_landmark(self, name: str, position: Optional[Position]):
        """Set (or clear with None) a single landmark."""
        self.landmarks[name] = tuple(position) if position is not None else None

    def set_hand_visible(self, visible: bool):
        """Simulate the tracker losing or regaining the hand."""
        self.hand_visible = visible

    def set_openness(self, percent: float):
        """Place the thumb tip so the fingertip gap matches the given openness."""
        self.openness = max(0.0, min(100.0, percent))
        index_tip = self.landmarks.get(LANDMARK_INDEX_TIP)
        if index_tip is None:
            return
        gap = (self.closed_distance +
               (self.open_distance - self.closed_distance) * self.openness / 100.0)
        self.landmarks[LANDMARK_THUMB_TIP] = (index_tip[0] + gap, index_tip[1], index_tip[2])

    def move_hand(self, dx: float = 0.0, dy: float = 0.0, dz: float = 0.0):
        """Translate every known landmark by the given offset (meters)."""
        for name, position in self.landmarks.items():
            if position is not None:
                self.landmarks[name] = (position[0] + dx, position[1] + dy, position[2] + dz)


if LEAP_AVAILABLE:
    class LeapListener(leap.Listener):
        """Listener for Leap Motion events."""

        def __init__(self, controller):
            self.controller = controller

        def on_connection_event(self, event):
            self.controller._on_connected()

        def on_device_event(self, event):
            self.controller._on_device(event)

        def on_tracking_event(self, event):
            self.controller._on_tracking(event)


class LeapController:
    """Interface to a Leap Motion device using the official bindings."""

    def __init__(self):
        self.connection = None
        self.listener = None
        self.connected = False
        self.has_device = False
        self._context_manager = None

        # Latest per-hand data, written from the tracking thread
        self.hands_data: Dict[str, Optional[Dict]] = {'left': None, 'right': None}
        self._lock = threading.Lock()
        self.last_frame_id = 0
        self.last_update_time = 0.0

        if LEAP_AVAILABLE:
            self._init_leap()
        else:
            logger.warning("Leap Motion bindings not found; hand data will be unavailable.")

    def _init_leap(self):
        """Open the Leap Motion connection."""
        try:
            self.listener = LeapListener(self)
            self.connection = leap.Connection()
            self.connection.add_listener(self.listener)
            self._context_manager = self.connection.open()
            self._context_manager.__enter__()
            self.connection.set_tracking_mode(leap.TrackingMode.Desktop)
            logger.info("Leap Motion connection opened.")
        except Exception as e:
            logger.error("Failed to connect to Leap Motion: %s", e)
            self._context_manager = None

    @property
    def available(self) -> bool:
        return LEAP_AVAILABLE and self._context_manager is not None

    def _on_connected(self):
        self.connected = True
        logger.info("Leap Motion connected.")

    def _on_device(self, event):
        self.has_device = True
        logger.info("Leap Motion device detected.")

    def _on_tracking(self, event):
        with self._lock:
            self.last_frame_id = event.tracking_frame_id
            self.last_update_time = time.time()
            self._process_frame(event)

    def _process_frame(self, event):
        """Extract fingertip, wrist and grab data for each visible hand."""
        new_hands = {'left': None, 'right': None}

        for hand in event.hands:
            hand_type = 'left' if str(hand.type) == "HandType.Left" else 'right'
            thumb_tip = hand.digits[0].distal.next_joint
            index_tip = hand.digits[1].distal.next_joint
            wrist = hand.arm.next_joint

            new_hands[hand_type] = {
                LANDMARK_THUMB_TIP: _to_meters(thumb_tip),
                LANDMARK_INDEX_TIP: _to_meters(index_tip),
                LANDMARK_WRIST: _to_meters(wrist),
                'grab_strength': hand.grab_strength,
                'pinch_strength': hand.pinch_strength,
            }

        self.hands_data = new_hands

    def get_hand(self, hand_type: str) -> Optional[Dict]:
        """Latest data for one hand, or None if it is not tracked."""
        with self._lock:
            return self.hands_data.get(hand_type)

    def has_recent_data(self, max_age: float = 0.5) -> bool:
        return (time.time() - self.last_update_time) < max_age

    def cleanup(self):
        """Close the Leap Motion connection."""
        if self._context_manager:
            try:
                self._context_manager.__exit__(None, None, None)
            except Exception as e:
                logger.warning("Error closing Leap Motion connection: %s", e)
            self._context_manager = None


def _to_meters(vector) -> Position:
    return (vector.x / MM_PER_METER, vector.y / MM_PER_METER, vector.z / MM_PER_METER)


class LeapPoseSource(PoseSource):
    """Landmarks of one hand tracked by a Leap Motion device."""

    def __init__(self, controller: LeapController, hand_type: str = GRASP_HAND):
        self.controller = controller
        self.hand_type = hand_type

    def get_landmark(self, name: str) -> Optional[Position]:
        hand = self.controller.get_hand(self.hand_type)
        if hand is None:
            return None
        return hand.get(name)
