"""Experiment configuration loaded once at startup."""

import json
import os
from dataclasses import dataclass, field, fields
from typing import Dict, List, Tuple

from .constants import (
    COUNTDOWN_STEPS, COUNTDOWN_STEP_DURATION, PROMPT_DURATION, PROMPT_TEMPLATE,
    COUNTDOWN_BACKGROUND_ALPHA, RESULTS_BACKGROUND_ALPHA,
    CLOSED_DISTANCE, OPEN_DISTANCE, OPENNESS_THRESHOLD,
    RELEASE_TIMEOUT, SETTLE_DURATION, GRASP_HAND, HAND_TYPES,
    HELPER_OBJECT_NAMES, LOG_PATH
)
from .errors import ConfigurationError


@dataclass(frozen=True)
class TargetSpec:
    """A named scene object and its position in the tracking frame (meters)."""
    name: str
    position: Tuple[float, float, float] = (0.0, 0.0, 0.0)


@dataclass
class ExperimentConfig:
    """Container for experiment parameters."""

    targets: List[TargetSpec] = field(default_factory=list)
    helper_object_names: Tuple[str, ...] = HELPER_OBJECT_NAMES

    # Countdown
    countdown_steps: Tuple[str, ...] = COUNTDOWN_STEPS
    countdown_step_duration: float = COUNTDOWN_STEP_DURATION
    prompt_duration: float = PROMPT_DURATION
    prompt_template: str = PROMPT_TEMPLATE
    countdown_background_alpha: float = COUNTDOWN_BACKGROUND_ALPHA
    results_background_alpha: float = RESULTS_BACKGROUND_ALPHA

    # Aperture
    closed_distance: float = CLOSED_DISTANCE
    open_distance: float = OPEN_DISTANCE
    openness_threshold: float = OPENNESS_THRESHOLD

    # Trial timing
    release_timeout: float = RELEASE_TIMEOUT
    settle_duration: float = SETTLE_DURATION

    grasp_hand: str = GRASP_HAND
    log_path: str = LOG_PATH

    @property
    def countdown_duration(self) -> float:
        """Total time from the first countdown number until the prompt clears."""
        return len(self.countdown_steps) * self.countdown_step_duration + self.prompt_duration

    def prompt_text(self, target_name: str) -> str:
        return self.prompt_template.format(name=target_name)

    def trial_target_names(self) -> List[str]:
        """Names of configured targets that are not helper objects."""
        return [t.name for t in self.targets if t.name not in self.helper_object_names]

    def validate(self) -> 'ExperimentConfig':
        """
        Check the configuration for consistency.

        Returns:
            self, so the call can be chained

        Raises:
            ConfigurationError: If any value is out of range
        """
        if not 0 <= self.closed_distance < self.open_distance:
            raise ConfigurationError(
                f"closed_distance ({self.closed_distance}) must be >= 0 and below "
                f"open_distance ({self.open_distance})"
            )
        if not 0.0 <= self.openness_threshold <= 100.0:
            raise ConfigurationError(
                f"openness_threshold must be within [0, 100], got {self.openness_threshold}"
            )
        if self.countdown_step_duration <= 0 or self.prompt_duration <= 0:
            raise ConfigurationError("Countdown and prompt durations must be positive")
        if self.release_timeout <= 0:
            raise ConfigurationError("release_timeout must be positive")
        if self.settle_duration < 0:
            raise ConfigurationError("settle_duration must not be negative")
        if self.grasp_hand not in HAND_TYPES:
            raise ConfigurationError(
                f"grasp_hand must be one of {HAND_TYPES}, got {self.grasp_hand!r}"
            )
        if not self.log_path:
            raise ConfigurationError("log_path must not be empty")

        names = [t.name for t in self.targets]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ConfigurationError(f"Duplicate target names: {', '.join(duplicates)}")
        if not self.trial_target_names():
            raise ConfigurationError("At least one non-helper target must be configured")

        return self


def _parse_targets(raw_targets: List) -> List[TargetSpec]:
    """Accept either {"name": ..., "position": [...]} entries or bare names."""
    targets = []
    for entry in raw_targets:
        if isinstance(entry, str):
            targets.append(TargetSpec(name=entry))
            continue
        try:
            position = tuple(float(v) for v in entry.get('position', (0.0, 0.0, 0.0)))
            name = entry['name']
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid target entry {entry!r}: {e}") from e
        if len(position) != 3:
            raise ConfigurationError(f"Target {name!r} position must have 3 components")
        targets.append(TargetSpec(name=name, position=position))
    return targets


def config_from_dict(data: Dict) -> ExperimentConfig:
    """Build and validate an ExperimentConfig from a plain dictionary."""
    known = {f.name for f in fields(ExperimentConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(f"Unknown configuration keys: {', '.join(unknown)}")

    values = dict(data)
    values['targets'] = _parse_targets(values.get('targets', []))
    for key in ('helper_object_names', 'countdown_steps'):
        if key in values:
            values[key] = tuple(values[key])

    return ExperimentConfig(**values).validate()


def load_config(path: str) -> ExperimentConfig:
    """
    Load the experiment configuration from a JSON file.

    Args:
        path: Path to the JSON configuration file

    Returns:
        A validated ExperimentConfig

    Raises:
        ConfigurationError: If the file is missing, malformed or invalid
    """
    if not os.path.exists(path):
        raise ConfigurationError(f"Configuration file not found: {path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (json.JSONDecodeError, IOError) as e:
        raise ConfigurationError(f"Failed to read configuration {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration root must be an object: {path}")

    return config_from_dict(data)
