"""Grasp state signals for the designated hand."""

from typing import Dict, Optional

from experiment.constants import GRAB_SELECT_STRENGTH, GRAB_HOVER_STRENGTH


class GraspState:
    """Enumeration of grasp states reported by the host environment."""
    IDLE = 'idle'
    HOVERING = 'hovering'
    SELECTING = 'selecting'


class GraspSignal:
    """
    Reports the grasp state of a hand.

    state() returns one of the GraspState values, or None when the signal
    for that hand is not bound (a misconfiguration, not a tracking dropout).
    """

    def state(self, hand: str) -> Optional[str]:
        raise NotImplementedError


class SimulatedGraspSignal(GraspSignal):
    """Grasp signal driven by code or keyboard input."""

    def __init__(self, hands=('left', 'right')):
        self.states: Dict[str, str] = {hand: GraspState.IDLE for hand in hands}

    def state(self, hand: str) -> Optional[str]:
        return self.states.get(hand)

    def set_state(self, hand: str, state: str):
        self.states[hand] = state

    def unbind(self, hand: str):
        """Simulate the interactor for a hand disappearing."""
        self.states.pop(hand, None)


class LeapGraspSignal(GraspSignal):
    """Derives grasp state from the Leap Motion grab strength."""

    def __init__(self, controller,
                 select_strength: float = GRAB_SELECT_STRENGTH,
                 hover_strength: float = GRAB_HOVER_STRENGTH):
        """
        Initialize the signal.

        Args:
            controller: LeapController supplying per-hand grab strength
            select_strength: Grab strength at or above which the hand is selecting
            hover_strength: Grab strength at or above which the hand is hovering
        """
        self.controller = controller
        self.select_strength = select_strength
        self.hover_strength = hover_strength

    def state(self, hand: str) -> Optional[str]:
        if not self.controller.available:
            return None

        hand_data = self.controller.get_hand(hand)
        if hand_data is None:
            return GraspState.IDLE

        strength = hand_data.get('grab_strength', 0.0)
        if strength >= self.select_strength:
            return GraspState.SELECTING
        if strength >= self.hover_strength:
            return GraspState.HOVERING
        return GraspState.IDLE
