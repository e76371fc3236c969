"""Experiment constants and default configuration settings."""

# Window settings (host application)
WINDOW_WIDTH = 1280
WINDOW_HEIGHT = 720
FPS = 60
APP_TITLE = "Hand Metrics - Reach and Grasp"

# Countdown settings
COUNTDOWN_STEPS = ("3", "2", "1")
COUNTDOWN_STEP_DURATION = 1.0  # seconds per countdown number
PROMPT_DURATION = 2.5  # seconds the "Pick up the X!" prompt stays visible
PROMPT_TEMPLATE = "Pick up the {name}!"
COUNTDOWN_BACKGROUND_ALPHA = 0.7
RESULTS_BACKGROUND_ALPHA = 0.7

# Aperture settings (index/thumb fingertip distance in meters)
CLOSED_DISTANCE = 0.02
OPEN_DISTANCE = 0.15
OPENNESS_THRESHOLD = 30.0  # percent

# Trial timing
RELEASE_TIMEOUT = 2.0  # seconds to wait for the grasp to be released
SETTLE_DURATION = 1.0  # pause after each trial

# Floating point slack for accumulated tick durations
TIME_EPSILON = 1e-9

# Hand settings
GRASP_HAND = 'right'
HAND_TYPES = ('left', 'right')

# Pose landmarks
LANDMARK_INDEX_TIP = 'index_tip'
LANDMARK_THUMB_TIP = 'thumb_tip'
LANDMARK_WRIST = 'wrist'
REQUIRED_LANDMARKS = (LANDMARK_INDEX_TIP, LANDMARK_THUMB_TIP, LANDMARK_WRIST)

# Scene objects that are not grasp targets
HELPER_OBJECT_NAMES = ('Table', 'Plane')

# Persistence
LOG_PATH = 'hand_metrics.csv'
EXPERIMENT_ID_FORMAT = '%Y-%m-%d_%H-%M-%S'
LOG_HEADER = (
    'ExperimentID',
    'ObjectName',
    'TotalTime_s',
    'MaxOpenness_pct',
    'InitialDistance_m',
    'DistancePalmOpened_m',
)

# Leap grab strength thresholds for grasp state
GRAB_SELECT_STRENGTH = 0.8
GRAB_HOVER_STRENGTH = 0.3

# Touch zone settings
FINGERTIP_TAG = 'FingerTip'
MIN_GRIP_FRACTION = 0.01
GRIP_ZONE_RADIUS = 0.05  # meters around a target counted as contact
