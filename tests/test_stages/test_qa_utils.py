#!/usr/bin/env python3
"""
Tests for src/stages/_qa_utils.py

Tests cover:
- Table metrics (compute_dataframe_metrics)
- Threshold checks
- Report files and the data-stage workflow (qa_for_stage)
"""
from __future__ import annotations

import pytest
import pandas as pd
from pathlib import Path
import sys

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent / 'src'))

from stages._qa_utils import (
    QAMetrics,
    check_thresholds,
    compute_dataframe_metrics,
    generate_qa_report,
    qa_for_stage,
)


class TestQAMetrics:
    """Tests for the QAMetrics container."""

    def test_chaining_keeps_order(self):
        metrics = QAMetrics().add('n_rows', 3).add('n_subjects', 2)

        assert list(metrics.to_dict()) == ['n_rows', 'n_subjects']
        assert len(metrics) == 2

    def test_update_ignores_none(self):
        assert len(QAMetrics().update(None)) == 0


class TestComputeMetrics:
    """Tests for compute_dataframe_metrics."""

    def test_observation_table(self, observations):
        metrics = compute_dataframe_metrics(observations).to_dict()

        assert metrics['n_rows'] == 8
        assert metrics['missing_cells'] == 1
        assert metrics['n_subjects'] == 6
        assert metrics['min_trials_per_subject'] == 1
        assert metrics['max_trials_per_subject'] == 2
        assert metrics['n_IDS_trials'] == 5
        assert metrics['n_ADS_trials'] == 3
        assert metrics['looking_time_max'] == 9.0
        assert metrics['non_positive_looking_times'] == 0

    def test_repeated_trials(self, observations):
        doubled = pd.concat([observations, observations.iloc[:1]], ignore_index=True)

        metrics = compute_dataframe_metrics(doubled).to_dict()

        assert metrics['repeated_trials'] == 1

    def test_empty_table(self, observations):
        metrics = compute_dataframe_metrics(observations.iloc[0:0]).to_dict()

        assert metrics['n_rows'] == 0
        assert metrics['missing_pct'] == 0.0
        assert metrics['n_subjects'] == 0
        assert 'looking_time_min' not in metrics


class TestThresholds:
    """Tests for check_thresholds."""

    def test_within_limits(self):
        metrics = {'n_rows': 500, 'missing_pct': 0.0, 'n_subjects': 60}

        assert check_thresholds(metrics) == []

    def test_too_few_subjects(self):
        messages = check_thresholds({'n_subjects': 3}, {'min_subject_count': 20})

        assert messages == ['Subject count = 3 violates min_subject_count = 20']

    def test_missing_threshold_skipped(self):
        assert check_thresholds({'n_rows': 1}, {}) == []

    def test_non_positive_looking_time(self):
        messages = check_thresholds({'non_positive_looking_times': 2}, {})

        assert 'log response is undefined' in messages[0]


class TestReports:
    """Tests for generate_qa_report and qa_for_stage."""

    def test_report_file(self, temp_dir):
        path = generate_qa_report('s03_estimation', {'n_specifications': 4},
                                  output_dir=temp_dir, include_timestamp=False)

        report = pd.read_csv(path)
        assert path.name == 's03_estimation_quality.csv'
        assert report.loc[0, 'metric'] == 'n_specifications'
        assert report.loc[0, 'stage'] == 's03_estimation'

    def test_disabled(self, temp_dir, monkeypatch):
        import stages._qa_utils as qa
        monkeypatch.setattr(qa, 'ENABLE_QA_REPORTS', False)

        assert generate_qa_report('s00_ingest', {'n_rows': 1}, output_dir=temp_dir) is None
        assert list(temp_dir.iterdir()) == []

    def test_qa_for_stage(self, observations, isolated_outputs, capsys):
        path = qa_for_stage('s01_clean', observations,
                            additional_metrics={'rows_dropped': 4}, output_file='x.parquet')
        out = capsys.readouterr().out

        report = pd.read_csv(path).set_index('metric')['value']
        assert path.parent == isolated_outputs['quality']
        assert report['rows_dropped'] == '4'
        assert report['output_file'] == 'x.parquet'
        assert 'QA Warnings for s01_clean' in out
        assert 'Subject count = 6' in out
