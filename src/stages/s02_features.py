#!/usr/bin/env python3
"""
Stage 02: Feature Construction

Purpose: Add the derived predictors and response used by the models.

This stage handles:
- centered_age: age in months minus the sample mean
- log_looking_time: natural log of looking time
- stimulus_indicator: 1 for the reference trial type, 0 otherwise

Input Files
-----------
- data_work/data_clean.parquet

Output Files
------------
- data_work/analysis.parquet

Usage
-----
    python src/pipeline.py build_features
"""
from __future__ import annotations

import sys
from pathlib import Path

# Add parent directory for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import numpy as np
import pandas as pd

from config import (
    STIMULUS_REFERENCE_LEVEL,
    TRIAL_TYPE_LEVELS,
    CLEAN_PATH,
    ANALYSIS_PATH,
)
from utils.helpers import load_data, save_data
from stages._qa_utils import qa_for_stage


DERIVED_COLUMNS = ['centered_age', 'log_looking_time', 'stimulus_indicator']


class NonPositiveResponseError(ValueError):
    """Looking times must be strictly positive before the log transform."""


# ============================================================
# TRANSFORMS
# ============================================================

def center(values: pd.Series) -> pd.Series:
    """Subtract the mean."""
    return values.astype(float) - values.astype(float).mean()


def log_response(values: pd.Series) -> pd.Series:
    """
    Natural log of a strictly positive series.

    Raises
    ------
    NonPositiveResponseError
        If any value is missing, zero or negative
    """
    values = values.astype(float)
    bad = values.isna() | (values <= 0)
    if bad.any():
        examples = values[bad].head(5).tolist()
        raise NonPositiveResponseError(
            f"{int(bad.sum())} looking time(s) are missing or not positive: {examples}"
        )
    return np.log(values)


def stimulus_dummy(
    values: pd.Series,
    reference: str = STIMULUS_REFERENCE_LEVEL,
    levels: list[str] = TRIAL_TYPE_LEVELS,
) -> pd.Series:
    """
    Treatment-code a two-level trial type.

    Raises
    ------
    ValueError
        If a value outside ``levels`` is present
    """
    unknown = set(values.astype(str)) - set(levels)
    if unknown:
        raise ValueError(f"Unknown trial type(s): {sorted(unknown)}; expected {levels}")
    return (values.astype(str) == reference).astype(int)


def add_features(df: pd.DataFrame) -> pd.DataFrame:
    """
    Return a new table with the derived columns added.

    Pure and deterministic; applying it to its own output changes nothing.

    Parameters
    ----------
    df : pd.DataFrame
        Cleaned observation table

    Returns
    -------
    pd.DataFrame
        Copy of ``df`` with DERIVED_COLUMNS
    """
    out = df.copy()
    out['centered_age'] = center(out['age_months'])
    out['log_looking_time'] = log_response(out['looking_time'])
    out['stimulus_indicator'] = stimulus_dummy(out['trial_type'])
    return out


# ============================================================
# MAIN ENTRY POINT
# ============================================================

def main(verbose: bool = True):
    """Execute feature construction."""
    print("=" * 60)
    print("Stage 02: Feature Construction")
    print("=" * 60)

    print(f"\n  Loading: {CLEAN_PATH.name}")
    if not CLEAN_PATH.exists():
        print(f"  ERROR: Input file not found: {CLEAN_PATH}")
        print("  Run 'clean_data' stage first.")
        sys.exit(1)

    df = load_data(CLEAN_PATH)
    print(f"    -> {len(df):,} rows")

    try:
        analysis = add_features(df)
    except ValueError as e:
        print(f"\n  ERROR: {e}")
        sys.exit(1)

    print(f"\n  Saving to: {ANALYSIS_PATH}")
    save_data(analysis, ANALYSIS_PATH)

    print("\n" + "-" * 60)
    print("SUMMARY")
    print("-" * 60)
    print(f"  Mean age (months): {df['age_months'].mean():.3f}")
    print(f"  Centered age range: [{analysis['centered_age'].min():.3f}, "
          f"{analysis['centered_age'].max():.3f}]")
    print(f"  Log looking time: mean {analysis['log_looking_time'].mean():.3f}, "
          f"sd {analysis['log_looking_time'].std():.3f}")
    print(f"  {STIMULUS_REFERENCE_LEVEL} trials (indicator = 1): "
          f"{int(analysis['stimulus_indicator'].sum()):,} of {len(analysis):,}")

    if verbose:
        print("\n  Derived columns:")
        for col in DERIVED_COLUMNS:
            print(f"    - {col}: {analysis[col].dtype}")

    qa_for_stage('s02_features', analysis, output_file=str(ANALYSIS_PATH))

    print("\n" + "=" * 60)
    print("Stage 02 complete.")
    print("=" * 60)

    return analysis


if __name__ == '__main__':
    main()
