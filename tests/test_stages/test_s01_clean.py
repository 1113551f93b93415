#!/usr/bin/env python3
"""
Tests for src/stages/s01_clean.py

Tests cover:
- Procedure and language-group restriction (filter_observations)
- Missing-row exclusion (drop_incomplete)
- Level restriction and ordering (restrict_levels)
- Full cleaning pipeline and its idempotence (clean_observations)
- Per-subject trial counts (trial_balance)
"""
from __future__ import annotations

from pathlib import Path
import sys

import pytest
import pandas as pd
import numpy as np

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent / 'src'))

from config import AGE_GROUP_ORDER, CANONICAL_COLUMNS, TRIAL_TYPE_LEVELS
from stages.s01_clean import (
    filter_observations,
    drop_incomplete,
    restrict_levels,
    clean_observations,
    trial_balance,
)


# ============================================================
# FILTER TESTS
# ============================================================

class TestFilterObservations:
    """Tests for the filter_observations function."""

    def test_keeps_matching_rows(self, observations):
        """Test that every kept row satisfies both predicates."""
        out = filter_observations(observations)

        assert (out['method'] == 'singlescreen').all()
        assert out['language_group'].astype(bool).all()
        assert len(out) == 6

    def test_missing_flag_is_excluded(self, observations):
        """Test that a missing language-group flag does not match."""
        df = observations.copy()
        df.loc[0, 'language_group'] = pd.NA

        out = filter_observations(df)

        assert 0 not in out.index

    def test_other_predicate_values(self, observations):
        """Test filtering on a different procedure."""
        out = filter_observations(observations, method='eyetracking')

        assert out['subject_id'].tolist() == ['s3']

    def test_returns_new_frame(self, observations):
        """Test that the input table is not modified."""
        before = observations.copy()

        filter_observations(observations)

        pd.testing.assert_frame_equal(observations, before)


class TestDropIncomplete:
    """Tests for the drop_incomplete function."""

    def test_drops_rows_with_missing_values(self, observations):
        """Test that rows with any missing canonical value are dropped."""
        out = drop_incomplete(observations)

        assert not out[CANONICAL_COLUMNS].isna().any().any()
        assert len(out) == len(observations) - 1

    def test_subset_of_columns(self):
        """Test that only the listed columns are checked."""
        df = pd.DataFrame({'a': [1.0, np.nan], 'b': [np.nan, 2.0]})

        assert len(drop_incomplete(df, columns=['a'])) == 1

    def test_keeps_subjects_with_fewer_trials(self, observations):
        """Test that a subject losing one trial keeps their other trials."""
        out = drop_incomplete(observations)

        assert (out['subject_id'] == 's4').sum() == 1


class TestRestrictLevels:
    """Tests for the restrict_levels function."""

    def test_drops_unmodelled_age_group(self, observations):
        """Test that ages outside the four bands are removed."""
        out = restrict_levels(observations)

        assert '15-18 mo' not in set(out['age_group'].astype(str))

    def test_age_group_is_ordered_categorical(self, observations):
        """Test the ordered categorical in the configured order."""
        out = restrict_levels(observations)

        assert isinstance(out['age_group'].dtype, pd.CategoricalDtype)
        assert out['age_group'].cat.ordered
        assert list(out['age_group'].cat.categories) == AGE_GROUP_ORDER

    def test_drops_unknown_trial_type(self, observations):
        """Test that trial types other than the modelled two are removed."""
        df = observations.copy()
        df.loc[0, 'trial_type'] = 'training'

        out = restrict_levels(df)

        assert set(out['trial_type']) <= set(TRIAL_TYPE_LEVELS)


# ============================================================
# CLEAN TESTS
# ============================================================

class TestCleanObservations:
    """Tests for the clean_observations function."""

    def test_invariants_hold(self, observations):
        """Test predicates, completeness and level restriction together."""
        out = clean_observations(observations)

        assert (out['method'] == 'singlescreen').all()
        assert out['language_group'].astype(bool).all()
        assert not out[CANONICAL_COLUMNS].isna().any().any()
        assert set(out['trial_type']) <= set(TRIAL_TYPE_LEVELS)
        assert set(out['age_group'].astype(str)) <= set(AGE_GROUP_ORDER)

    def test_expected_rows(self, observations):
        """Test which rows survive each rule."""
        out = clean_observations(observations)

        # s2: wrong language group; s3: wrong procedure; s4 trial 1: missing
        # looking time; s6: age outside the bands
        assert sorted(out['subject_id'].tolist()) == ['s1', 's1', 's4', 's5']

    def test_fresh_index(self, observations):
        """Test that the index is reset."""
        out = clean_observations(observations)

        assert list(out.index) == list(range(len(out)))

    def test_idempotent(self, observations):
        """Test that cleaning a cleaned table changes nothing."""
        once = clean_observations(observations)
        twice = clean_observations(once)

        pd.testing.assert_frame_equal(once, twice)

    def test_empty_input(self, observations):
        """Test that an empty table stays empty without errors."""
        out = clean_observations(observations.iloc[0:0])

        assert out.empty

    def test_verbose_reports_drops(self, observations, capsys):
        """Test the per-rule drop counts."""
        clean_observations(observations, verbose=True)

        captured = capsys.readouterr().out
        assert 'Dropped 2 rows outside' in captured
        assert 'Dropped 1 rows with missing values' in captured
        assert 'Dropped 1 rows with unmodelled levels' in captured


class TestTrialBalance:
    """Tests for the trial_balance function."""

    def test_counts_per_subject(self, observations):
        counts = trial_balance(clean_observations(observations))

        assert counts['s1'] == 2
        assert counts['s4'] == 1


# ============================================================
# MAIN TESTS
# ============================================================

class TestMain:
    """Tests for the stage entry point."""

    def test_round_trip(self, observations, isolated_outputs, monkeypatch):
        """Test reading the raw table and writing the clean one."""
        import stages.s01_clean as s01

        raw_path = isolated_outputs['data_work'] / 'data_raw.parquet'
        clean_path = isolated_outputs['data_work'] / 'data_clean.parquet'
        observations.to_parquet(raw_path, index=False)
        monkeypatch.setattr(s01, 'RAW_PATH', raw_path)
        monkeypatch.setattr(s01, 'CLEAN_PATH', clean_path)

        out = s01.main(verbose=False)

        assert clean_path.exists()
        assert len(pd.read_parquet(clean_path)) == len(out) == 4

    def test_missing_input_exits(self, isolated_outputs, monkeypatch):
        import stages.s01_clean as s01

        monkeypatch.setattr(s01, 'RAW_PATH', isolated_outputs['data_work'] / 'absent.parquet')

        with pytest.raises(SystemExit):
            s01.main()
