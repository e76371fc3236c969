"""Offline access to the hand metrics log."""

from .log_reader import (
    load_metrics_log,
    list_experiments,
    experiment_rows,
    NUMERIC_COLUMNS,
)

__all__ = [
    'load_metrics_log',
    'list_experiments',
    'experiment_rows',
    'NUMERIC_COLUMNS',
]
