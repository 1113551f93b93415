#!/usr/bin/env python3
"""
Per-stage quality reports.

Data stages summarize the table they wrote (rows, subjects, trial balance,
missing cells, repeated trials, looking-time range); fitting stages record
a few facts about their fits. Either way the numbers end up in
``data_work/quality/<stage>_quality_<timestamp>.csv``.

Usage
-----
    from stages._qa_utils import qa_for_stage, QAMetrics, generate_qa_report

    qa_for_stage('s01_clean', clean, additional_metrics={'rows_dropped': 12})

    metrics = QAMetrics().add('n_specifications', 4)
    generate_qa_report('s03_estimation', metrics)
"""
from __future__ import annotations

import operator
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Union

import pandas as pd

# Add parent for config import
sys.path.insert(0, str(Path(__file__).parent.parent))

from config import ENABLE_QA_REPORTS, QA_REPORTS_DIR, QA_THRESHOLDS, GROUP_FACTOR

# Columns identifying one trial; a repeat means the same trial was loaded twice
TRIAL_KEY = ['subject_id', 'trial_number', 'trial_type']

# (metric, threshold key, violated-when, label)
THRESHOLD_RULES = [
    ('missing_pct', 'max_missing_pct', operator.gt, 'Missing cells (%)'),
    ('n_rows', 'min_row_count', operator.lt, 'Row count'),
    ('repeated_trial_pct', 'max_duplicate_pct', operator.gt, 'Repeated trials (%)'),
    ('n_subjects', 'min_subject_count', operator.lt, 'Subject count'),
]


class QAMetrics:
    """
    Ordered name -> value mapping for one stage's report.

    ``add`` returns the instance so calls can be chained.
    """

    def __init__(self):
        self._metrics: dict[str, Any] = {}

    def add(self, name: str, value: Any) -> 'QAMetrics':
        self._metrics[name] = value
        return self

    def update(self, values: Optional[dict]) -> 'QAMetrics':
        for name, value in (values or {}).items():
            self.add(name, value)
        return self

    def to_dict(self) -> dict[str, Any]:
        return dict(self._metrics)

    def __len__(self) -> int:
        return len(self._metrics)

    def __repr__(self) -> str:
        return f"QAMetrics({self._metrics})"


def _as_dict(metrics: Union[QAMetrics, dict]) -> dict:
    return metrics.to_dict() if isinstance(metrics, QAMetrics) else dict(metrics)


def compute_dataframe_metrics(df: pd.DataFrame, group: str = GROUP_FACTOR) -> QAMetrics:
    """
    Summarize an observation table.

    Parameters
    ----------
    df : pd.DataFrame
        Raw, clean or analysis table
    group : str
        Subject column

    Returns
    -------
    QAMetrics
        n_rows, n_columns, missing_cells, missing_pct, and, when the
        columns exist, repeated trials, subject counts, trials per
        subject, trials per trial type and the looking-time range
    """
    n_rows = len(df)
    missing = int(df.isna().sum().sum())

    metrics = QAMetrics()
    metrics.add('n_rows', n_rows)
    metrics.add('n_columns', len(df.columns))
    metrics.add('missing_cells', missing)
    metrics.add('missing_pct', round(100 * missing / df.size, 2) if df.size else 0.0)

    if all(c in df.columns for c in TRIAL_KEY):
        repeats = int(df.duplicated(subset=TRIAL_KEY).sum())
        metrics.add('repeated_trials', repeats)
        metrics.add('repeated_trial_pct', round(100 * repeats / n_rows, 2) if n_rows else 0.0)

    if group in df.columns:
        trials = df.groupby(group, observed=True).size()
        metrics.add('n_subjects', int(trials.size))
        if trials.size:
            metrics.add('min_trials_per_subject', int(trials.min()))
            metrics.add('max_trials_per_subject', int(trials.max()))

    if 'trial_type' in df.columns:
        for level, n in df['trial_type'].astype(str).value_counts().sort_index().items():
            metrics.add(f'n_{level}_trials', int(n))

    if 'looking_time' in df.columns:
        lt = pd.to_numeric(df['looking_time'], errors='coerce').dropna()
        if len(lt):
            metrics.add('looking_time_min', round(float(lt.min()), 3))
            metrics.add('looking_time_max', round(float(lt.max()), 3))
            metrics.add('non_positive_looking_times', int((lt <= 0).sum()))

    return metrics


def check_thresholds(
    metrics: Union[QAMetrics, dict],
    thresholds: Optional[dict] = None,
) -> list[str]:
    """
    Compare metrics with QA_THRESHOLDS.

    Returns one message per violated rule; metrics or thresholds that are
    absent are not checked.
    """
    thresholds = QA_THRESHOLDS if thresholds is None else thresholds
    values = _as_dict(metrics)

    messages = []
    for metric, key, violated, label in THRESHOLD_RULES:
        if metric in values and key in thresholds and violated(values[metric], thresholds[key]):
            messages.append(f"{label} = {values[metric]} violates {key} = {thresholds[key]}")

    if values.get('non_positive_looking_times'):
        messages.append(
            f"{values['non_positive_looking_times']} non-positive looking time(s); "
            "the log response is undefined for them"
        )
    return messages


def print_qa_summary(metrics: Union[QAMetrics, dict], stage_name: str = '') -> None:
    """Print metrics one per line under a 'QA Summary' header."""
    print(f"\nQA Summary: {stage_name}" if stage_name else "\nQA Summary")
    print("-" * 40)
    for key, value in _as_dict(metrics).items():
        shown = f"{value:,}" if isinstance(value, (int, float)) and not isinstance(value, bool) else value
        print(f"  {key}: {shown}")


def generate_qa_report(
    stage_name: str,
    metrics: Union[QAMetrics, dict],
    output_dir: Optional[Path] = None,
    include_timestamp: bool = True,
) -> Optional[Path]:
    """
    Write ``metrics`` as a long CSV (metric, value, stage, timestamp).

    Parameters
    ----------
    stage_name : str
        e.g. 's01_clean'
    metrics : QAMetrics or dict
        Values to record
    output_dir : Path, optional
        Defaults to QA_REPORTS_DIR
    include_timestamp : bool
        Append the run time to the file name

    Returns
    -------
    Path or None
        Report path, None when ENABLE_QA_REPORTS is off
    """
    if not ENABLE_QA_REPORTS:
        return None

    output_dir = Path(output_dir) if output_dir is not None else QA_REPORTS_DIR
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    suffix = f'_{timestamp}' if include_timestamp else ''
    report_path = output_dir / f'{stage_name}_quality{suffix}.csv'

    pd.DataFrame(
        [{'metric': k, 'value': v, 'stage': stage_name, 'timestamp': timestamp}
         for k, v in _as_dict(metrics).items()]
    ).to_csv(report_path, index=False)

    print(f"QA report saved: {report_path}")
    return report_path


def qa_for_stage(
    stage_name: str,
    df: pd.DataFrame,
    additional_metrics: Optional[dict] = None,
    output_file: Optional[str] = None,
) -> Optional[Path]:
    """
    Summarize, check, print and write the report for a data stage.

    Returns
    -------
    Path or None
        Report path
    """
    metrics = compute_dataframe_metrics(df)
    if output_file:
        metrics.add('output_file', str(output_file))
    metrics.update(additional_metrics)

    messages = check_thresholds(metrics)
    if messages:
        print(f"\nQA Warnings for {stage_name}:")
        for message in messages:
            print(f"  WARNING: {message}")

    print_qa_summary(metrics, stage_name)
    return generate_qa_report(stage_name, metrics)
