#!/usr/bin/env python3
"""
Stage 00: Data Ingestion

Purpose: Download the trial-level looking-time data and standardize it.

This stage handles:
- Fetching the published CSV over HTTP (or reading a local copy)
- Parsing the delimited text into a DataFrame
- Selecting and renaming the columns used downstream
- Type coercion of the language-group flag and numeric columns

Input Files
-----------
- DATASET_URL (config), or a local CSV passed with --source

Output Files
------------
- data_work/data_raw.parquet

Usage
-----
    python src/pipeline.py ingest_data
    python src/pipeline.py ingest_data --source data_raw/03_data_trial_main.csv
"""
from __future__ import annotations

import csv
import io
import sys
from pathlib import Path
from typing import Optional, Union
from urllib.error import URLError
from urllib.request import Request, urlopen

# Add parent directory for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import pandas as pd

from config import (
    DATASET_URL,
    FETCH_TIMEOUT,
    RAW_COLUMN_MAP,
    CANONICAL_COLUMNS,
    RAW_PATH,
)
from utils.helpers import ensure_dir, save_data
from stages._qa_utils import qa_for_stage


# ============================================================
# CONFIGURATION
# ============================================================

USER_AGENT = 'looking-time-mixed-models/0.1 (+python urllib)'

# Values accepted as the boolean language-group flag
TRUE_VALUES = {'true', 't', '1', 'yes'}
FALSE_VALUES = {'false', 'f', '0', 'no'}


class FetchError(RuntimeError):
    """The dataset could not be downloaded."""


class ParseError(ValueError):
    """The downloaded bytes are not a usable table."""


# ============================================================
# DATA LOADING
# ============================================================

def fetch_dataset(url: str = DATASET_URL, timeout: int = FETCH_TIMEOUT) -> bytes:
    """
    Download the dataset.

    Parameters
    ----------
    url : str
        Dataset location
    timeout : int
        Seconds before giving up

    Returns
    -------
    bytes
        Raw file contents

    Raises
    ------
    FetchError
        On any network or transport failure; nothing is returned partially
    """
    req = Request(url, headers={'User-Agent': USER_AGENT})
    try:
        with urlopen(req, timeout=timeout) as response:
            return response.read()
    except (URLError, TimeoutError, OSError) as e:
        raise FetchError(f"Failed to fetch {url}: {e}") from e


def _check_field_counts(text: str) -> None:
    """Raise ParseError on the first record whose field count differs from the header."""
    records = csv.reader(io.StringIO(text))
    header = next(records, None)
    if header is None:
        return
    for record in records:
        if record and len(record) != len(header):
            raise ParseError(
                f"Malformed dataset: line {records.line_num} has {len(record)} "
                f"field(s), header has {len(header)}"
            )


def parse_dataset(raw: Union[bytes, str]) -> pd.DataFrame:
    """
    Parse delimited text into a DataFrame.

    Raises
    ------
    ParseError
        If the content is empty, malformed, or lacks a required raw column
    """
    if isinstance(raw, bytes):
        try:
            raw = raw.decode('utf-8')
        except UnicodeDecodeError as e:
            raise ParseError(f"Dataset is not valid UTF-8: {e}") from e

    try:
        df = pd.read_csv(io.StringIO(raw), low_memory=False)
    except pd.errors.EmptyDataError as e:
        raise ParseError("Dataset is empty") from e
    except pd.errors.ParserError as e:
        raise ParseError(f"Malformed dataset: {e}") from e

    _check_field_counts(raw)

    missing = [c for c in RAW_COLUMN_MAP if c not in df.columns]
    if missing:
        raise ParseError(f"Dataset is missing required columns: {missing}")

    return df


def _to_flag(value) -> Optional[bool]:
    """Coerce a TRUE/FALSE cell to bool; anything else becomes missing."""
    if isinstance(value, bool):
        return value
    if pd.isna(value):
        return None
    text = str(value).strip().lower()
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    return None


def _to_numeric(series: pd.Series) -> pd.Series:
    """
    Convert a column to numbers.

    Cells that were already missing stay missing; any other cell that does
    not parse as a number raises ParseError.
    """
    values = pd.to_numeric(series, errors='coerce')
    bad = values.isna() & series.notna()
    if bad.any():
        row = int(bad.to_numpy().argmax())
        raise ParseError(
            f"Non-numeric value in '{series.name}' at row {row}: {series[bad].iloc[0]!r}"
        )
    return values


def standardize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """
    Select the raw columns used downstream and give them canonical names.

    Parameters
    ----------
    df : pd.DataFrame
        Parsed raw table

    Returns
    -------
    pd.DataFrame
        New table with CANONICAL_COLUMNS only

    Raises
    ------
    ParseError
        If a numeric column holds a value that is neither missing nor a number
    """
    out = df[list(RAW_COLUMN_MAP)].rename(columns=RAW_COLUMN_MAP)

    out['subject_id'] = out['subject_id'].astype('string')
    out['laboratory_id'] = out['laboratory_id'].astype('string')
    out['method'] = out['method'].astype('string').str.strip()
    out['trial_type'] = out['trial_type'].astype('string').str.strip()
    out['age_group'] = out['age_group'].astype('string').str.strip()
    out['language_group'] = out['language_group'].map(_to_flag).astype('boolean')
    out['age_months'] = _to_numeric(out['age_months']).astype(float)
    out['looking_time'] = _to_numeric(out['looking_time']).astype(float)
    out['trial_number'] = _to_numeric(out['trial_number']).astype('Int64')

    return out[CANONICAL_COLUMNS].reset_index(drop=True)


def load_observations(
    url: str = DATASET_URL,
    source: Optional[Union[str, Path]] = None,
) -> pd.DataFrame:
    """
    Fetch (or read), parse and standardize the observation table.

    Parameters
    ----------
    url : str
        Dataset location, used when ``source`` is None
    source : str or Path, optional
        Local CSV to read instead of downloading

    Returns
    -------
    pd.DataFrame
        Standardized observation table
    """
    if source is not None:
        path = Path(source)
        try:
            raw = path.read_bytes()
        except OSError as e:
            raise FetchError(f"Failed to read {path}: {e}") from e
    else:
        raw = fetch_dataset(url)

    return standardize_columns(parse_dataset(raw))


# ============================================================
# MAIN ENTRY POINT
# ============================================================

def main(
    source: Optional[Union[str, Path]] = None,
    url: str = DATASET_URL,
    verbose: bool = True,
):
    """
    Execute data ingestion.

    Parameters
    ----------
    source : str or Path, optional
        Local CSV instead of the remote dataset
    url : str
        Remote dataset location
    verbose : bool
        Print detailed output
    """
    print("=" * 60)
    print("Stage 00: Data Ingestion")
    print("=" * 60)

    print(f"\n  Source: {source or url}")
    try:
        df = load_observations(url=url, source=source)
    except (FetchError, ParseError) as e:
        print(f"\n  ERROR: {e}")
        sys.exit(1)

    print(f"    -> {len(df):,} rows, {len(df.columns)} columns")

    ensure_dir(RAW_PATH.parent)
    print(f"\n  Saving to: {RAW_PATH}")
    save_data(df, RAW_PATH)

    print("\n" + "-" * 60)
    print("SUMMARY")
    print("-" * 60)
    print(f"  Rows: {len(df):,}")
    print(f"  Subjects: {df['subject_id'].nunique():,}")
    print(f"  Labs: {df['laboratory_id'].nunique():,}")
    print(f"  Output: {RAW_PATH}")

    if verbose:
        print("\n  Columns:")
        for col in df.columns:
            print(f"    - {col}: {df[col].dtype} ({df[col].isna().sum():,} missing)")

    qa_for_stage('s00_ingest', df, output_file=str(RAW_PATH))

    print("\n" + "=" * 60)
    print("Stage 00 complete.")
    print("=" * 60)

    return df


if __name__ == '__main__':
    main()
