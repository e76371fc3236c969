"""
Experiment module containing configuration, targets and trial sequencing.

The sequencer and session controller depend on the tracking package and are
imported from their modules directly:

    from experiment.session_controller import SessionController
    from experiment.trial_sequencer import TrialSequencer, TrialPhase
"""

from .constants import *
from .errors import HandMetricsError, ConfigurationError, PersistenceError
from .config import ExperimentConfig, TargetSpec, load_config, config_from_dict
from .targets import Target, TargetRegistry, RandomShuffler
