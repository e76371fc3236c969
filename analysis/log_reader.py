"""
Reader for the cumulative hand metrics log.

Loads the append-only CSV written by MetricsStore so offline tooling can
work with it. No statistics are computed here.

Usage:
    from analysis.log_reader import load_metrics_log, list_experiments

    df = load_metrics_log('hand_metrics.csv')
    for experiment_id in list_experiments('hand_metrics.csv'):
        print(experiment_rows(df, experiment_id))
"""

import os
from typing import List

import pandas as pd

from experiment.constants import LOG_HEADER

NUMERIC_COLUMNS = LOG_HEADER[2:]


def load_metrics_log(path: str) -> pd.DataFrame:
    """
    Load the metrics log into a DataFrame.

    Args:
        path: Path to the CSV log

    Returns:
        DataFrame with the log columns; ExperimentID and ObjectName as strings
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Metrics log not found: {path}")

    df = pd.read_csv(path, dtype={'ExperimentID': str, 'ObjectName': str})
    missing = [col for col in LOG_HEADER if col not in df.columns]
    if missing:
        raise ValueError(f"Metrics log {path} is missing columns: {', '.join(missing)}")

    for col in NUMERIC_COLUMNS:
        df[col] = pd.to_numeric(df[col], errors='coerce')
    return df


def list_experiments(path: str) -> List[str]:
    """Distinct experiment IDs in the order they were first written."""
    df = load_metrics_log(path)
    return list(dict.fromkeys(df['ExperimentID']))


def experiment_rows(df: pd.DataFrame, experiment_id: str) -> pd.DataFrame:
    """Rows written by one flush."""
    return df[df['ExperimentID'] == experiment_id].reset_index(drop=True)
