#!/usr/bin/env python3
"""
Hand Metrics - a reach-and-grasp motor skill experiment.

The participant is prompted, in random order, to reach for and grasp each
target object. For every trial the time to grab, the maximum grip aperture
and the wrist-to-target distances are recorded and appended to a CSV log.
Without a Leap Motion device the hand is simulated from the keyboard.
"""

import argparse
import logging
import os
import sys
from typing import List

import pygame

from experiment.constants import WINDOW_WIDTH, WINDOW_HEIGHT, FPS, APP_TITLE, GRIP_ZONE_RADIUS
from experiment.config import ExperimentConfig, TargetSpec, load_config
from experiment.errors import HandMetricsError, PersistenceError
from experiment.session_controller import SessionController
from experiment.targets import RandomShuffler, TargetRegistry
from tracking.pose_source import SimulatedPoseSource, LeapController, LeapPoseSource, LEAP_AVAILABLE
from tracking.grasp_signal import GraspState, SimulatedGraspSignal, LeapGraspSignal
from tracking.grip_zone import GripZone, GripEvaluator, ProximityContacts
from tracking.metrics_store import MetricsStore, CsvLogDestination, SessionCsvLogDestination
from ui.presentation import PygamePresentation

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = os.path.join('config', 'experiment.json')

# Keyboard simulation steps
OPENNESS_STEP = 10.0  # percent per key press
HAND_STEP = 0.02  # meters per key press


def default_config() -> ExperimentConfig:
    """Built-in configuration used when no config file is available."""
    return ExperimentConfig(targets=[
        TargetSpec('TennisBall', (0.10, 0.05, 0.40)),
        TargetSpec('Bottle', (-0.15, 0.10, 0.45)),
        TargetSpec('Phone', (0.25, 0.02, 0.35)),
        TargetSpec('Table', (0.0, 0.0, 0.40)),
    ]).validate()


def setup_logging(log_file: str, verbose: bool = False):
    """Log to a file and to the console."""
    directory = os.path.dirname(log_file)
    if directory:
        os.makedirs(directory, exist_ok=True)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
        handlers=[
            logging.FileHandler(log_file, mode='a'),
            logging.StreamHandler(sys.stdout),
        ]
    )


class HandMetricsApp:
    """Host application that owns the tick loop."""

    def __init__(self, config: ExperimentConfig, use_leap: bool = False, seed: int = None,
                 per_session_files: bool = False):
        """
        Initialize the application.

        Args:
            config: Validated experiment configuration
            use_leap: Read the hand from a Leap Motion device
            seed: Seed for the trial order (random if None)
            per_session_files: Write each session to its own CSV instead of one cumulative log
        """
        pygame.init()
        self.screen = pygame.display.set_mode((WINDOW_WIDTH, WINDOW_HEIGHT))
        pygame.display.set_caption(APP_TITLE)
        self.clock = pygame.time.Clock()
        self.config = config

        # Hand tracking
        self.leap_controller = None
        if use_leap and LEAP_AVAILABLE:
            self.leap_controller = LeapController()
            self.pose_source = LeapPoseSource(self.leap_controller, config.grasp_hand)
            self.grasp_signal = LeapGraspSignal(self.leap_controller)
        else:
            if use_leap:
                print("Leap Motion SDK not found. Running in simulation mode.")
            self.pose_source = SimulatedPoseSource(
                closed_distance=config.closed_distance,
                open_distance=config.open_distance,
            )
            self.grasp_signal = SimulatedGraspSignal()

        # Persistence
        if per_session_files:
            directory = os.path.dirname(config.log_path) or '.'
            destination = SessionCsvLogDestination(directory)
        else:
            destination = CsvLogDestination(config.log_path)
        self.metrics_store = MetricsStore(destination)

        # One fingertip contact zone around each target
        self.contacts: List[ProximityContacts] = []
        grip_evaluators = {}
        for target in TargetRegistry.from_config(config).trial_targets():
            zone = GripZone(target.id)
            contacts = ProximityContacts(zone, target.position, GRIP_ZONE_RADIUS)
            self.contacts.append(contacts)
            grip_evaluators[target.id] = GripEvaluator([zone], fingertips=contacts.fingertips)

        self.presentation = PygamePresentation(self.screen)
        self.controller = SessionController(
            config,
            self.pose_source,
            self.grasp_signal,
            self.presentation,
            metrics_store=self.metrics_store,
            shuffler=RandomShuffler(seed),
            on_reload=self._on_reload,
            grip_evaluators=grip_evaluators,
        )

        self.reload_pending = False
        self.running = True

    @property
    def simulated(self) -> bool:
        return isinstance(self.pose_source, SimulatedPoseSource)

    def _on_reload(self):
        self.reload_pending = True

    def run(self):
        """Main loop."""
        self.controller.start()

        while self.running:
            dt = self.clock.tick(FPS) / 1000.0

            self._handle_events()
            self._update(dt)

            self.presentation.draw(self._hud_lines())
            pygame.display.flip()

        self._cleanup()

    def _handle_events(self):
        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                self.running = False
            elif event.type == pygame.KEYDOWN:
                self._handle_keydown(event)
            elif event.type == pygame.KEYUP:
                self._handle_keyup(event)

    def _handle_keydown(self, event):
        if event.key == pygame.K_ESCAPE:
            self.running = False
        elif event.key == pygame.K_r:
            self.controller.request_restart()

        if not self.simulated:
            return

        hand = self.config.grasp_hand
        if event.key == pygame.K_SPACE:
            self.grasp_signal.set_state(hand, GraspState.SELECTING)
        elif event.key == pygame.K_h:
            current = self.grasp_signal.state(hand)
            new_state = GraspState.IDLE if current == GraspState.HOVERING else GraspState.HOVERING
            self.grasp_signal.set_state(hand, new_state)
        elif event.key == pygame.K_UP:
            self.pose_source.set_openness(self.pose_source.openness + OPENNESS_STEP)
        elif event.key == pygame.K_DOWN:
            self.pose_source.set_openness(self.pose_source.openness - OPENNESS_STEP)
        elif event.key == pygame.K_LEFT:
            self.pose_source.move_hand(dx=-HAND_STEP)
        elif event.key == pygame.K_RIGHT:
            self.pose_source.move_hand(dx=HAND_STEP)
        elif event.key == pygame.K_w:
            self.pose_source.move_hand(dz=HAND_STEP)
        elif event.key == pygame.K_s:
            self.pose_source.move_hand(dz=-HAND_STEP)
        elif event.key == pygame.K_v:
            self.pose_source.set_hand_visible(not self.pose_source.hand_visible)

    def _handle_keyup(self, event):
        if self.simulated and event.key == pygame.K_SPACE:
            self.grasp_signal.set_state(self.config.grasp_hand, GraspState.IDLE)

    def _update(self, dt: float):
        for contacts in self.contacts:
            contacts.update(self.pose_source)

        try:
            self.controller.tick(dt)
        except PersistenceError as e:
            logger.error("Could not save results: %s", e)
            print(f"Error saving results: {e} (press R to retry)")

        if self.reload_pending:
            self.reload_pending = False
            self.controller.start()

    def _hud_lines(self) -> List[str]:
        session = self.controller.session
        lines = [f"Session: {self.controller.state}"]
        if session is not None:
            target = session.sequencer.current_target
            lines.append(
                f"Trial {min(session.current_index + 1, len(session.trial_order))}/"
                f"{len(session.trial_order)}  "
                f"Target: {target.id if target else '-'}  "
                f"Phase: {session.sequencer.phase}"
            )
            grip = self.controller.grip_results.get(target.id) if target else None
            if grip is not None:
                lines.append(f"Grip: {grip.touched_zones}/{grip.total_zones} zones "
                             f"{'PASS' if grip.passed else 'FAIL'}")
        if self.simulated:
            lines.append(
                f"Openness: {self.pose_source.openness:.0f}%  "
                f"Grasp: {self.grasp_signal.state(self.config.grasp_hand)}  "
                f"Hand visible: {self.pose_source.hand_visible}"
            )
        return lines

    def _cleanup(self):
        """Persist any unfinished session and release resources."""
        try:
            self.controller.shutdown()
        except PersistenceError as e:
            logger.error("Could not save results on exit: %s", e)

        if self.leap_controller is not None:
            self.leap_controller.cleanup()
        pygame.quit()


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description=APP_TITLE)
    parser.add_argument('--config', default=None,
                        help=f"JSON configuration file (default: {DEFAULT_CONFIG_PATH} if present)")
    parser.add_argument('--leap', action='store_true', help="Use a Leap Motion device")
    parser.add_argument('--seed', type=int, default=None, help="Seed for the trial order")
    parser.add_argument('--per-session-files', action='store_true',
                        help="Write each session to its own CSV file")
    parser.add_argument('--log-file', default=os.path.join('data', 'hand_metrics.log'),
                        help="Diagnostic log file")
    parser.add_argument('--verbose', action='store_true', help="Log openness readings")
    return parser.parse_args(argv)


def main(argv=None):
    """Entry point for the experiment."""
    args = parse_args(argv)
    setup_logging(args.log_file, args.verbose)

    print("=" * 50)
    print(f"  {APP_TITLE}")
    print("=" * 50)
    print()
    print("Controls:")
    print("  - R: Restart session (saves results)")
    print("  - Escape: Quit (saves unfinished session)")
    print()
    print("Simulation Mode Keys (when Leap Motion not used):")
    print("  Space (hold): Grasp     H: Toggle hover")
    print("  Up/Down: Open/close hand     Left/Right/W/S: Move hand")
    print("  V: Toggle hand tracking dropout")
    print()

    try:
        if args.config:
            config = load_config(args.config)
        elif os.path.exists(DEFAULT_CONFIG_PATH):
            config = load_config(DEFAULT_CONFIG_PATH)
        else:
            config = default_config()
    except HandMetricsError as e:
        print(f"Configuration error: {e}")
        return 1

    app = HandMetricsApp(config, use_leap=args.leap, seed=args.seed,
                         per_session_files=args.per_session_files)
    app.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
