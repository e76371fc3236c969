"""Tick-driven state machine that runs each reach-and-grasp trial."""

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from tracking.aperture import ApertureMeter, euclidean_distance
from tracking.grasp_signal import GraspState
from tracking.metrics_store import TrialRecord
from .config import ExperimentConfig
from .constants import LANDMARK_WRIST, TIME_EPSILON
from .targets import Target

logger = logging.getLogger(__name__)


class TrialPhase:
    """Enumeration of sequencer phases."""
    IDLE = 'idle'
    COUNTDOWN = 'countdown'
    SAMPLING = 'sampling'
    RELEASE_WAIT = 'release_wait'
    SETTLE = 'settle'
    FINISHED = 'finished'
    ABORTED = 'aborted'
    CANCELLED = 'cancelled'


TERMINAL_PHASES = (TrialPhase.FINISHED, TrialPhase.ABORTED, TrialPhase.CANCELLED)


class TrialProgress:
    """Metrics being gathered for the trial in progress."""

    def __init__(self, target: Target):
        self.target = target
        self.initial_openness = 0.0
        self.initial_distance = 0.0
        self.max_openness = 0.0
        self.distance_at_threshold = 0.0
        self.threshold_recorded = False
        self.time_to_grab = 0.0

    def to_record(self) -> TrialRecord:
        return TrialRecord(
            target_id=self.target.id,
            time_to_grab=self.time_to_grab,
            max_openness=self.max_openness,
            initial_openness=self.initial_openness,
            initial_distance=self.initial_distance,
            distance_at_threshold=self.distance_at_threshold,
        )


class TrialSequencer:
    """Drives the ordered trials through countdown, sampling, release and settle phases."""

    def __init__(self, trial_order: Sequence[Target], config: ExperimentConfig,
                 pose_source, grasp_signal, presentation, metrics_store,
                 aperture_meter: Optional[ApertureMeter] = None):
        """
        Initialize the sequencer.

        Args:
            trial_order: Targets in the order they will be prompted
            config: Validated experiment configuration
            pose_source: PoseSource for fingertip and wrist landmarks
            grasp_signal: GraspSignal for the designated hand
            presentation: PresentationSink for prompt text and background
            metrics_store: MetricsStore that receives completed records
            aperture_meter: Openness calculator (built from config if omitted)
        """
        self.trial_order: Tuple[Target, ...] = tuple(trial_order)
        self.config = config
        self.pose_source = pose_source
        self.grasp_signal = grasp_signal
        self.presentation = presentation
        self.metrics_store = metrics_store
        self.aperture = aperture_meter or ApertureMeter(
            config.closed_distance, config.open_distance
        )

        self.phase = TrialPhase.IDLE
        self.current_index = 0
        self.completed_trials = 0
        self.progress: Optional[TrialProgress] = None

        # Phase timing
        self.phase_elapsed = 0.0
        self.release_timer = 0.0
        self._prompts: List[Tuple[str, float]] = []
        self._prompt_index = 0

        self._events = self._new_events()

    @property
    def current_target(self) -> Optional[Target]:
        if self.current_index < len(self.trial_order):
            return self.trial_order[self.current_index]
        return None

    @property
    def is_done(self) -> bool:
        return self.phase in TERMINAL_PHASES

    def _new_events(self) -> Dict:
        return {
            'phase_changed': None,
            'prompt': None,
            'record': None,
            'release_timeout': False,
            'finished': False,
            'aborted': False,
        }

    def start(self) -> Dict:
        """Begin the first trial."""
        self._events = self._new_events()
        self.current_index = 0
        self.completed_trials = 0

        if not self.trial_order:
            self._set_phase(TrialPhase.FINISHED)
            self._events['finished'] = True
        else:
            self._begin_trial()
        return self._events

    def cancel(self):
        """Stop without producing further records."""
        if not self.is_done:
            self._set_phase(TrialPhase.CANCELLED)

    def tick(self, dt: float) -> Dict:
        """
        Advance the current trial by one host time step.

        Args:
            dt: Seconds elapsed since the previous tick

        Returns:
            Dictionary describing what happened during this tick
        """
        self._events = self._new_events()

        if self.phase == TrialPhase.COUNTDOWN:
            self._update_countdown(dt)
        elif self.phase == TrialPhase.SAMPLING:
            self._update_sampling(dt)
        elif self.phase == TrialPhase.RELEASE_WAIT:
            self._update_release_wait(dt)
        elif self.phase == TrialPhase.SETTLE:
            self._update_settle(dt)

        return self._events

    def _set_phase(self, phase: str):
        self.phase = phase
        self._events['phase_changed'] = phase

    def _show_prompt(self, text: str):
        self.presentation.show_text(text)
        self._events['prompt'] = text

    # ------------------------------------------------------------------
    # Countdown
    # ------------------------------------------------------------------
    def _begin_trial(self):
        target = self.trial_order[self.current_index]
        self.progress = TrialProgress(target)
        self.phase_elapsed = 0.0

        step = self.config.countdown_step_duration
        self._prompts = [
            (text, step * (i + 1)) for i, text in enumerate(self.config.countdown_steps)
        ]
        self._prompts.append((self.config.prompt_text(target.id), self.config.countdown_duration))
        self._prompt_index = 0

        self._set_phase(TrialPhase.COUNTDOWN)
        self.presentation.set_background(self.config.countdown_background_alpha)
        self._show_prompt(self._prompts[0][0])

    def _update_countdown(self, dt: float):
        self.phase_elapsed += dt

        while (self._prompt_index < len(self._prompts) - 1 and
               self.phase_elapsed >= self._prompts[self._prompt_index][1] - TIME_EPSILON):
            self._prompt_index += 1
            self._show_prompt(self._prompts[self._prompt_index][0])

        if self.phase_elapsed >= self.config.countdown_duration - TIME_EPSILON:
            self._show_prompt("")
            self.presentation.set_background(0.0)
            self._enter_sampling()

    # ------------------------------------------------------------------
    # Sampling (armed, waiting for the grasp)
    # ------------------------------------------------------------------
    def _grasp_state(self) -> Optional[str]:
        if self.grasp_signal is None:
            return None
        return self.grasp_signal.state(self.config.grasp_hand)

    def _wrist_distance(self, target: Target) -> Optional[float]:
        wrist = self.pose_source.get_landmark(LANDMARK_WRIST)
        if wrist is None:
            return None
        return euclidean_distance(wrist, target.position)

    def _enter_sampling(self):
        state = self._grasp_state()
        if state is None:
            self._abort()
            return

        progress = self.progress
        progress.initial_openness = self.aperture.measure(self.pose_source)
        distance = self._wrist_distance(progress.target)
        progress.initial_distance = distance if distance is not None else 0.0
        progress.max_openness = progress.initial_openness

        self.phase_elapsed = 0.0
        self._set_phase(TrialPhase.SAMPLING)
        self._sample_step(state)

    def _update_sampling(self, dt: float):
        self.phase_elapsed += dt
        state = self._grasp_state()
        if state is None:
            self._abort()
            return
        self._sample_step(state)

    def _sample_step(self, state: str):
        if state == GraspState.SELECTING:
            self._register_grasp()
            return

        progress = self.progress
        openness = self.aperture.measure(self.pose_source)
        if openness > progress.max_openness:
            progress.max_openness = openness

        if not progress.threshold_recorded and openness >= self.config.openness_threshold:
            distance = self._wrist_distance(progress.target)
            if distance is not None:
                progress.distance_at_threshold = distance
                progress.threshold_recorded = True
                logger.debug("[%s] Openness crossed %.0f%% at %.2f m",
                             progress.target.id, self.config.openness_threshold, distance)

    def _register_grasp(self):
        progress = self.progress
        progress.time_to_grab = self.phase_elapsed
        logger.info(
            "[%s] Cycle metrics: initial distance %.2f m, distance at %.0f%% openness %.2f m, "
            "time to grab %.2f s, max palm openness %.1f%%",
            progress.target.id, progress.initial_distance, self.config.openness_threshold,
            progress.distance_at_threshold, progress.time_to_grab, progress.max_openness
        )
        self.release_timer = 0.0
        self._set_phase(TrialPhase.RELEASE_WAIT)

    # ------------------------------------------------------------------
    # Release wait and settle
    # ------------------------------------------------------------------
    def _update_release_wait(self, dt: float):
        self.release_timer += dt
        if self._grasp_state() != GraspState.SELECTING:
            self._complete_trial()
        elif self.release_timer >= self.config.release_timeout - TIME_EPSILON:
            logger.warning("Timeout waiting for release of %s. Continuing to next trial.",
                           self.progress.target.id)
            self._events['release_timeout'] = True
            self._complete_trial()

    def _complete_trial(self):
        record = self.progress.to_record()
        self.metrics_store.add_record(record)
        self.completed_trials += 1
        self._events['record'] = record

        self.phase_elapsed = 0.0
        self._set_phase(TrialPhase.SETTLE)

    def _update_settle(self, dt: float):
        self.phase_elapsed += dt
        if self.phase_elapsed < self.config.settle_duration - TIME_EPSILON:
            return

        self.current_index += 1
        if self.current_index < len(self.trial_order):
            self._begin_trial()
        else:
            self._set_phase(TrialPhase.FINISHED)
            self._events['finished'] = True

    def _abort(self):
        target = self.progress.target.id if self.progress else None
        logger.error(
            "Grasp signal for the %s hand is not bound; aborting session at trial %d (%s)",
            self.config.grasp_hand, self.current_index + 1, target
        )
        self._set_phase(TrialPhase.ABORTED)
        self._events['aborted'] = True
