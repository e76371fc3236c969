"""Session orchestration: trial ordering, completion, restart and flush bookkeeping."""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from tracking.grip_zone import GripEvaluator, GripResult
from tracking.metrics_store import MetricsStore, CsvLogDestination, TrialRecord
from .config import ExperimentConfig
from .constants import REQUIRED_LANDMARKS
from .errors import ConfigurationError
from .targets import Target, TargetRegistry, RandomShuffler
from .trial_sequencer import TrialSequencer, TrialPhase

logger = logging.getLogger(__name__)

# Phases in which a grasp belongs to the current target
GRIP_PHASES = (TrialPhase.SAMPLING, TrialPhase.RELEASE_WAIT)


class SessionState:
    """Enumeration of session states."""
    IDLE = 'idle'
    RUNNING = 'running'
    COMPLETED = 'completed'
    ABORTED = 'aborted'
    UNSAVED = 'unsaved'  # ended, but the flush failed; restart retries it
    ENDED = 'ended'  # restarted or shut down; waiting for a new start()


@dataclass
class Session:
    """One run through every target, from start() until flush."""
    trial_order: Tuple[Target, ...]
    sequencer: TrialSequencer
    store: MetricsStore
    experiment_id: Optional[str] = None

    @property
    def current_index(self) -> int:
        return self.sequencer.current_index

    @property
    def records(self) -> Tuple[TrialRecord, ...]:
        return self.store.records

    def unrecorded_targets(self) -> Tuple[Target, ...]:
        return self.trial_order[len(self.store):]


class SessionController:
    """Top-level orchestration of an experiment session."""

    def __init__(self, config: ExperimentConfig, pose_source, grasp_signal, presentation,
                 metrics_store: Optional[MetricsStore] = None, shuffler=None,
                 on_reload: Optional[Callable[[], None]] = None,
                 grip_evaluators: Optional[Dict[str, GripEvaluator]] = None):
        """
        Initialize the controller.

        Args:
            config: Experiment configuration (validated here)
            pose_source: PoseSource for hand landmarks
            grasp_signal: GraspSignal for the designated hand
            presentation: PresentationSink for text, background and object visibility
            metrics_store: Store for trial records (CSV log at config.log_path if omitted)
            shuffler: Object with shuffle(sequence) -> permuted list
            on_reload: Called after a restart so the host can reload the scene
            grip_evaluators: Optional GripEvaluator per target id, fed the grasp
                state while that target's trial is armed

        Raises:
            ConfigurationError: If the config is invalid or a collaborator is missing
        """
        self.config = config.validate()
        if pose_source is None:
            raise ConfigurationError("A pose source is required")
        if grasp_signal is None:
            raise ConfigurationError("A grasp signal for the designated hand is required")
        if presentation is None:
            raise ConfigurationError("A presentation sink is required")

        self.pose_source = pose_source
        self.grasp_signal = grasp_signal
        self.presentation = presentation
        if metrics_store is None:
            metrics_store = MetricsStore(CsvLogDestination(config.log_path))
        self.metrics_store = metrics_store
        self.shuffler = shuffler or RandomShuffler()
        self.on_reload = on_reload
        self.grip_evaluators: Dict[str, GripEvaluator] = dict(grip_evaluators or {})
        self.grip_results: Dict[str, GripResult] = {}

        self.registry = TargetRegistry.from_config(config)
        self.state = SessionState.IDLE
        self.session: Optional[Session] = None
        self.flushed = False
        self._restart_requested = False

    @property
    def trial_order(self) -> Tuple[Target, ...]:
        return self.session.trial_order if self.session else ()

    def start(self) -> Session:
        """
        Draw the trial order and begin the first trial.

        A previous session that was never flushed is padded and flushed first.

        Raises:
            ConfigurationError: If the shuffler does not return a permutation
            PersistenceError: If the previous session could not be saved
        """
        targets = self.registry.trial_targets()
        trial_order = tuple(self.shuffler.shuffle(targets))
        if sorted(t.id for t in trial_order) != sorted(t.id for t in targets):
            raise ConfigurationError("Shuffler must return a permutation of the targets")

        if self.session is not None and not self.flushed:
            logger.warning("Starting a new session before the previous one was saved; "
                           "saving it now.")
            self._finalize()

        self.metrics_store.clear()
        self.flushed = False
        self._restart_requested = False
        self.grip_results = {}
        for evaluator in self.grip_evaluators.values():
            evaluator.reset()

        sequencer = TrialSequencer(
            trial_order, self.config, self.pose_source, self.grasp_signal,
            self.presentation, self.metrics_store
        )
        self.session = Session(trial_order, sequencer, self.metrics_store)

        self._set_objects_active(True)
        self._check_landmarks()

        logger.info("Session started with %d trials: %s",
                    len(trial_order), ", ".join(t.id for t in trial_order))
        self.state = SessionState.RUNNING
        events = sequencer.start()
        if events['finished']:
            self._complete()
        return self.session

    def _check_landmarks(self):
        missing = self.pose_source.missing_landmarks(REQUIRED_LANDMARKS)
        found = len(REQUIRED_LANDMARKS) - len(missing)
        if missing:
            logger.warning("Pose source found %d/%d landmarks; missing: %s",
                           found, len(REQUIRED_LANDMARKS), ", ".join(missing))
        else:
            logger.info("Pose source found %d/%d landmarks", found, len(REQUIRED_LANDMARKS))

    def tick(self, dt: float) -> Dict:
        """
        Advance the session by one host time step.

        Raises:
            PersistenceError: If the session completed on this tick and the flush failed
        """
        if self._restart_requested:
            self.restart()
            return {'restarted': True}

        if self.state != SessionState.RUNNING:
            return {}

        events = self.session.sequencer.tick(dt)
        self._update_grip()
        if events['aborted']:
            self.state = SessionState.ABORTED
            logger.error("Session aborted after %d of %d trials; restart to save padded results.",
                         len(self.metrics_store), len(self.session.trial_order))
        elif events['finished']:
            self._complete()
        return events

    def _update_grip(self):
        sequencer = self.session.sequencer
        if sequencer.phase not in GRIP_PHASES:
            return
        target = sequencer.current_target
        evaluator = self.grip_evaluators.get(target.id)
        if evaluator is None:
            return

        result = evaluator.update(self.grasp_signal.state(self.config.grasp_hand))
        if result is not None:
            self.grip_results[target.id] = result

    def _complete(self):
        self.state = SessionState.COMPLETED
        self._set_objects_active(False)
        self.flush()

        self.presentation.set_background(self.config.results_background_alpha)
        self.presentation.show_text(self.metrics_store.summary_text())

    def _set_objects_active(self, active: bool):
        for name in self.registry.scene_object_names():
            self.presentation.set_object_active(name, active)

    def flush(self) -> Optional[str]:
        """
        Persist the session's records once.

        Returns:
            The experiment ID, or None if this session was already flushed

        Raises:
            PersistenceError: If the log could not be written (the session stays unflushed)
        """
        if self.session is None:
            return None
        if self.flushed:
            logger.info("Session already flushed; skipping write.")
            return None

        experiment_id = self.metrics_store.flush()
        self.flushed = True
        self.session.experiment_id = experiment_id
        return experiment_id

    def pad_unrecorded(self) -> int:
        """Add a zero record for every trial without one. Returns the number added."""
        if self.session is None:
            return 0
        missing = self.session.unrecorded_targets()
        for target in missing:
            self.metrics_store.add_record(TrialRecord.zero(target.id))
        if missing:
            logger.info("Padded %d unrecorded trials: %s",
                        len(missing), ", ".join(t.id for t in missing))
        return len(missing)

    def _finalize(self):
        """Stop the sequencer and make sure every trial is persisted exactly once."""
        if self.session is None:
            return
        self.session.sequencer.cancel()
        if not self.flushed:
            self.pad_unrecorded()
            self.state = SessionState.UNSAVED
            self.flush()

    def request_restart(self):
        """Ask for a restart to be performed at the start of the next tick."""
        self._restart_requested = True

    def restart(self):
        """
        End the session from any phase, persist it if needed and signal a reload.

        Raises:
            PersistenceError: If the flush failed; the reload is not signalled
        """
        self._restart_requested = False
        self._finalize()
        self.state = SessionState.ENDED

        self._set_objects_active(True)
        if self.on_reload is not None:
            self.on_reload()
        logger.info("Session restart requested; reloading.")

    def shutdown(self):
        """Persist an unfinished session when the host closes."""
        self._restart_requested = False
        self._finalize()
        self.state = SessionState.ENDED
