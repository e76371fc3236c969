"""Registry of grasp targets built once at session setup."""

import random
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from .config import ExperimentConfig
from .errors import ConfigurationError


@dataclass(frozen=True)
class Target:
    """One object the participant is asked to grasp."""
    id: str
    position: Tuple[float, float, float]


class TargetRegistry:
    """Targets indexed by identifier, plus the helper objects that share the scene."""

    def __init__(self, targets: Sequence[Target], helper_names: Sequence[str] = ()):
        self._targets: Dict[str, Target] = {}
        for target in targets:
            if target.id in self._targets:
                raise ConfigurationError(f"Duplicate target id: {target.id}")
            self._targets[target.id] = target
        self.helper_names = tuple(helper_names)

    @classmethod
    def from_config(cls, config: ExperimentConfig) -> 'TargetRegistry':
        targets = [
            Target(id=spec.name, position=tuple(spec.position))
            for spec in config.targets
        ]
        return cls(targets, config.helper_object_names)

    def get(self, target_id: str) -> Optional[Target]:
        return self._targets.get(target_id)

    def __contains__(self, target_id: str) -> bool:
        return target_id in self._targets

    def __len__(self) -> int:
        return len(self._targets)

    def trial_targets(self) -> List[Target]:
        """Targets in configured order, excluding helper objects."""
        return [t for t in self._targets.values() if t.id not in self.helper_names]

    def scene_object_names(self) -> List[str]:
        """Every object whose visibility the session controls."""
        names = list(self._targets)
        names.extend(n for n in self.helper_names if n not in self._targets)
        return names


class RandomShuffler:
    """Draws a uniformly random permutation (Fisher-Yates via random.shuffle)."""

    def __init__(self, seed: Optional[int] = None):
        self._rng = random.Random(seed)

    def shuffle(self, items: Sequence) -> List:
        permuted = list(items)
        self._rng.shuffle(permuted)
        return permuted
