#!/usr/bin/env python3
"""
Stage 01: Sample Restriction and Cleaning

Purpose: Restrict the observation table to the analysed sample.

This stage handles:
- Keeping single-screen, North American English sessions
- Dropping rows with a missing value in any canonical column
- Restricting age groups and trial types to the modelled levels

Missing trials are excluded row by row; subjects with fewer usable trials
stay in the sample. The mixed model handles the resulting unbalanced
trial counts, which is why no subject-level completeness filter is applied
here.

Input Files
-----------
- data_work/data_raw.parquet

Output Files
------------
- data_work/data_clean.parquet

Usage
-----
    python src/pipeline.py clean_data
"""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

# Add parent directory for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import pandas as pd

from config import (
    FILTER_METHOD,
    FILTER_LANGUAGE_GROUP,
    CANONICAL_COLUMNS,
    AGE_GROUP_ORDER,
    TRIAL_TYPE_LEVELS,
    RAW_PATH,
    CLEAN_PATH,
)
from utils.helpers import load_data, save_data
from stages._qa_utils import qa_for_stage


# ============================================================
# FILTERS
# ============================================================

def filter_observations(
    df: pd.DataFrame,
    method: str = FILTER_METHOD,
    language_group: bool = FILTER_LANGUAGE_GROUP,
) -> pd.DataFrame:
    """
    Keep rows matching the procedure and the language-group flag.

    Parameters
    ----------
    df : pd.DataFrame
        Observation table
    method : str
        Procedure identifier to keep
    language_group : bool
        Language-group flag to keep

    Returns
    -------
    pd.DataFrame
        New table with matching rows
    """
    mask = (df['method'] == method) & (df['language_group'] == language_group)
    # Comparisons against missing values yield <NA>; treat them as no match
    mask = mask.fillna(False).astype(bool)
    return df.loc[mask].copy()


def drop_incomplete(
    df: pd.DataFrame,
    columns: Optional[list[str]] = None,
) -> pd.DataFrame:
    """
    Drop rows with a missing value in any of ``columns``.

    Rows are excluded, never imputed.
    """
    columns = columns or [c for c in CANONICAL_COLUMNS if c in df.columns]
    return df.dropna(subset=columns).copy()


def restrict_levels(df: pd.DataFrame) -> pd.DataFrame:
    """
    Keep the four age bands and two trial types.

    ``age_group`` becomes an ordered categorical in AGE_GROUP_ORDER.
    """
    keep = df['age_group'].isin(AGE_GROUP_ORDER) & df['trial_type'].isin(TRIAL_TYPE_LEVELS)
    out = df.loc[keep.fillna(False).astype(bool)].copy()
    out['age_group'] = pd.Categorical(
        out['age_group'].astype(str),
        categories=AGE_GROUP_ORDER,
        ordered=True,
    )
    return out


def clean_observations(
    df: pd.DataFrame,
    method: str = FILTER_METHOD,
    language_group: bool = FILTER_LANGUAGE_GROUP,
    verbose: bool = False,
) -> pd.DataFrame:
    """
    Apply the sample restriction, missing-row exclusion and level checks.

    Running this on its own output returns an equal table.

    Parameters
    ----------
    df : pd.DataFrame
        Observation table
    method : str
        Procedure identifier to keep
    language_group : bool
        Language-group flag to keep
    verbose : bool
        Print rows dropped per rule

    Returns
    -------
    pd.DataFrame
        Cleaned table with a fresh index
    """
    n_start = len(df)
    out = filter_observations(df, method=method, language_group=language_group)
    n_filtered = len(out)
    out = drop_incomplete(out)
    n_complete = len(out)
    out = restrict_levels(out)

    if verbose:
        print(f"    Dropped {n_start - n_filtered:,} rows outside method='{method}', "
              f"language_group={language_group}")
        print(f"    Dropped {n_filtered - n_complete:,} rows with missing values")
        print(f"    Dropped {n_complete - len(out):,} rows with unmodelled levels")

    return out.reset_index(drop=True)


def trial_balance(df: pd.DataFrame, group: str = 'subject_id') -> pd.Series:
    """Number of usable trials per subject."""
    return df.groupby(group, observed=True).size()


# ============================================================
# MAIN ENTRY POINT
# ============================================================

def main(verbose: bool = True):
    """Execute the cleaning stage."""
    print("=" * 60)
    print("Stage 01: Sample Restriction and Cleaning")
    print("=" * 60)

    print(f"\n  Loading: {RAW_PATH.name}")
    if not RAW_PATH.exists():
        print(f"  ERROR: Input file not found: {RAW_PATH}")
        print("  Run 'ingest_data' stage first.")
        sys.exit(1)

    df = load_data(RAW_PATH)
    print(f"    -> {len(df):,} rows")

    print("\n  Cleaning...")
    clean = clean_observations(df, verbose=verbose)

    print(f"\n  Saving to: {CLEAN_PATH}")
    save_data(clean, CLEAN_PATH)

    trials = trial_balance(clean)

    print("\n" + "-" * 60)
    print("SUMMARY")
    print("-" * 60)
    print(f"  Rows kept: {len(clean):,} of {len(df):,}")
    print(f"  Subjects: {clean['subject_id'].nunique():,}")
    if len(trials):
        print(f"  Trials per subject: min {trials.min()}, median {int(trials.median())}, "
              f"max {trials.max()}")
        print(f"  Subjects with unequal trial counts: {(trials != trials.max()).sum():,}")

    if verbose and len(clean):
        print("\n  Rows by age group:")
        for group, n in clean['age_group'].value_counts(sort=False).items():
            print(f"    - {group}: {n:,}")

    qa_for_stage(
        's01_clean',
        clean,
        additional_metrics={'rows_dropped': len(df) - len(clean)},
        output_file=str(CLEAN_PATH),
    )

    print("\n" + "=" * 60)
    print("Stage 01 complete.")
    print("=" * 60)

    return clean


if __name__ == '__main__':
    main()
