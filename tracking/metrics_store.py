"""Trial record storage and append-only CSV persistence."""

import csv
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Sequence, Tuple

from experiment.constants import EXPERIMENT_ID_FORMAT, LOG_HEADER, LOG_PATH
from experiment.errors import PersistenceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrialRecord:
    """Metrics captured for a single grasp trial."""
    target_id: str

    # Timing
    time_to_grab: float  # seconds from prompt end to grasp onset

    # Aperture
    max_openness: float  # percent, seeded with initial_openness
    initial_openness: float  # percent at prompt end

    # Wrist-to-target distances (meters)
    initial_distance: float
    distance_at_threshold: float

    padded: bool = False

    @classmethod
    def zero(cls, target_id: str) -> 'TrialRecord':
        """Placeholder record for a trial that never completed."""
        return cls(
            target_id=target_id,
            time_to_grab=0.0,
            max_openness=0.0,
            initial_openness=0.0,
            initial_distance=0.0,
            distance_at_threshold=0.0,
            padded=True,
        )

    def to_row(self, experiment_id: str) -> List[str]:
        """Format the record as a log row."""
        return [
            experiment_id,
            self.target_id,
            f"{self.time_to_grab:.2f}",
            f"{self.max_openness:.1f}",
            f"{self.initial_distance:.2f}",
            f"{self.distance_at_threshold:.2f}",
        ]


class CsvLogDestination:
    """Cumulative CSV log shared by every session (append-only, never truncated)."""

    def __init__(self, path: str):
        self.path = path

    def target_path(self, experiment_id: str) -> str:
        return self.path

    def write(self, experiment_id: str, header: Sequence[str], rows: Sequence[Sequence[str]]) -> str:
        """
        Append rows to the log, writing the header only for a new file.

        Returns:
            The path that was written

        Raises:
            PersistenceError: If the file could not be written
        """
        path = self.target_path(experiment_id)
        try:
            directory = os.path.dirname(path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            write_header = not os.path.exists(path) or os.path.getsize(path) == 0

            with open(path, 'a', newline='', encoding='utf-8') as f:
                writer = csv.writer(f)
                if write_header:
                    writer.writerow(header)
                writer.writerows(rows)
        except OSError as e:
            raise PersistenceError(f"Could not write metrics log {path}: {e}", path) from e

        return path


class SessionCsvLogDestination(CsvLogDestination):
    """Writes each flush to its own file named after the experiment ID."""

    def __init__(self, directory: str, prefix: str = "hand_metrics"):
        super().__init__(directory)
        self.directory = directory
        self.prefix = prefix

    def target_path(self, experiment_id: str) -> str:
        return os.path.join(self.directory, f"{self.prefix}_{experiment_id}.csv")


class MetricsStore:
    """Accumulates trial records for a session and flushes them to a log destination."""

    def __init__(self, destination=None, clock: Callable[[], datetime] = datetime.now):
        """
        Initialize the store.

        Args:
            destination: Object with write(experiment_id, header, rows); a
                CsvLogDestination for the default path when omitted
            clock: Returns the current time, used for experiment IDs
        """
        self.destination = destination if destination is not None else CsvLogDestination(LOG_PATH)
        self.clock = clock
        self._records: List[TrialRecord] = []

    @property
    def records(self) -> Tuple[TrialRecord, ...]:
        return tuple(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def add_record(self, record: TrialRecord):
        self._records.append(record)

    def clear(self):
        self._records = []

    def new_experiment_id(self) -> str:
        return self.clock().strftime(EXPERIMENT_ID_FORMAT)

    def flush(self) -> str:
        """
        Write every held record to the destination in one batch.

        The store does not deduplicate; callers guard against repeated flushes.

        Returns:
            The experiment ID shared by all rows of this flush

        Raises:
            PersistenceError: If the destination could not be written
        """
        experiment_id = self.new_experiment_id()
        rows = [record.to_row(experiment_id) for record in self._records]
        path = self.destination.write(experiment_id, LOG_HEADER, rows)
        logger.info("Flushed %d trial records to %s (experiment %s)",
                    len(rows), path, experiment_id)
        return experiment_id

    def summary_text(self) -> str:
        """Human-readable results, one block per record."""
        blocks = []
        for record in self._records:
            blocks.append(
                f"{record.target_id}:\n"
                f"Total Time(s): {record.time_to_grab:.2f}, "
                f"Max Openness(%): {record.max_openness:.1f}, "
                f"Initial Distance(m): {record.initial_distance:.2f}, "
                f"Distance at 30% Openness: {record.distance_at_threshold:.2f}"
            )
        return "\n\n".join(blocks)

    def find(self, target_id: str) -> Optional[TrialRecord]:
        for record in self._records:
            if record.target_id == target_id:
                return record
        return None
