"""Hand tracking integration: pose sources, grasp signals, aperture and metrics storage."""

from .aperture import ApertureMeter, euclidean_distance, openness_from_distance
from .pose_source import PoseSource, SimulatedPoseSource, LeapController, LeapPoseSource
from .grasp_signal import GraspState, GraspSignal, SimulatedGraspSignal, LeapGraspSignal
from .metrics_store import TrialRecord, MetricsStore, CsvLogDestination, SessionCsvLogDestination
from .grip_zone import GripZone, GripEvaluator, GripResult, ProximityContacts
