"""Shared fixtures and fakes for the hand metrics tests."""

from datetime import datetime

import pytest

from experiment.config import ExperimentConfig, TargetSpec
from experiment.errors import PersistenceError
from experiment.session_controller import SessionController
from tracking.grasp_signal import SimulatedGraspSignal
from tracking.metrics_store import MetricsStore, CsvLogDestination
from tracking.pose_source import SimulatedPoseSource

# 1/16 s is exact in binary, so accumulated tick time has no rounding drift
DT = 0.0625


class RecordingPresentation:
    """Presentation sink that remembers every call."""

    def __init__(self):
        self.texts = []
        self.backgrounds = []
        self.objects = {}
        self.visibility_calls = []

    def show_text(self, text):
        self.texts.append(text)

    def set_background(self, alpha):
        self.backgrounds.append(alpha)

    def set_object_active(self, name, active):
        self.objects[name] = active
        self.visibility_calls.append((name, active))


class ScriptedShuffler:
    """Returns targets in a fixed order of ids."""

    def __init__(self, order):
        self.order = list(order)

    def shuffle(self, items):
        by_id = {item.id: item for item in items}
        return [by_id[target_id] for target_id in self.order]


class FailingDestination:
    def __init__(self):
        self.attempts = 0

    def write(self, experiment_id, header, rows):
        self.attempts += 1
        raise PersistenceError("disk full", "unwritable.csv")


class FixedClock:
    def __init__(self, *moments):
        self.moments = list(moments) or [datetime(2025, 1, 1, 12, 0, 0)]

    def __call__(self):
        if len(self.moments) > 1:
            return self.moments.pop(0)
        return self.moments[0]


def tick_until(driver, predicate, dt=DT, limit=10000):
    """Tick a controller or sequencer until predicate() holds. Returns the tick count."""
    for count in range(1, limit + 1):
        driver.tick(dt)
        if predicate():
            return count
    raise AssertionError("condition not reached within tick limit")


def read_lines(path):
    with open(path, 'r', encoding='utf-8') as f:
        return f.read().splitlines()


@pytest.fixture
def log_path(tmp_path):
    return str(tmp_path / 'logs' / 'hand_metrics.csv')


@pytest.fixture
def config(log_path):
    return ExperimentConfig(
        targets=[
            TargetSpec('A', (0.0, 0.5, 0.0)),
            TargetSpec('B', (0.5, 0.0, 0.0)),
            TargetSpec('C', (0.0, 0.0, 0.5)),
            TargetSpec('Table', (0.0, -0.2, 0.0)),
        ],
        log_path=log_path,
    )


@pytest.fixture
def pose():
    return SimulatedPoseSource(wrist=(0.0, 0.0, 0.0), index_tip=(0.0, 0.1, 0.0), openness=10.0)


@pytest.fixture
def grasp():
    return SimulatedGraspSignal()


@pytest.fixture
def presentation():
    return RecordingPresentation()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def store(log_path, clock):
    return MetricsStore(CsvLogDestination(log_path), clock=clock)


@pytest.fixture
def reloads():
    return []


@pytest.fixture
def make_controller(config, pose, grasp, presentation, store, reloads):
    def _make(order=('B', 'A', 'C'), **overrides):
        kwargs = dict(
            metrics_store=store,
            shuffler=ScriptedShuffler(order),
            on_reload=lambda: reloads.append(True),
        )
        kwargs.update(overrides)
        return SessionController(config, pose, grasp, presentation, **kwargs)
    return _make
