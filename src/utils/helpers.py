#!/usr/bin/env python3
"""
Common utility functions for the looking-time pipeline.

This module provides shared helper functions used across multiple stages.
"""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Union

import pandas as pd

# Add parent directory for config import
sys.path.insert(0, str(Path(__file__).parent.parent))

from config import (
    PROJECT_ROOT,
    FIGURES_DIR,
    TABLE_DECIMALS,
    get_data_dir,
)


def ensure_dir(path: Path) -> Path:
    """Ensure a directory exists, creating it if necessary."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_project_root() -> Path:
    """Get the project root directory."""
    return PROJECT_ROOT


def get_figures_dir() -> Path:
    """Get the manuscript figures directory."""
    return FIGURES_DIR


# ============================================================
# DATA I/O
# ============================================================

def load_data(path: Union[str, Path]) -> pd.DataFrame:
    """
    Load a table from parquet or CSV based on the file suffix.

    Parameters
    ----------
    path : str or Path
        File to load

    Returns
    -------
    pd.DataFrame
        Loaded data
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Data file not found: {path}")

    suffix = path.suffix.lower()
    if suffix == '.parquet':
        return pd.read_parquet(path)
    elif suffix in ('.csv', '.gz'):
        return pd.read_csv(path)
    raise ValueError(f"Unsupported file format: {path.suffix}")


def save_data(df: pd.DataFrame, path: Union[str, Path]) -> Path:
    """Save a table as parquet or CSV based on the file suffix."""
    path = Path(path)
    ensure_dir(path.parent)
    if path.suffix.lower() == '.parquet':
        df.to_parquet(path, index=False)
    else:
        df.to_csv(path, index=False)
    return path


def save_diagnostic(df: pd.DataFrame, name: str) -> Path:
    """Write a diagnostic CSV to data_work/diagnostics/."""
    path = ensure_dir(get_data_dir('diagnostics')) / f'{name}.csv'
    df.to_csv(path, index=False)
    return path


def load_diagnostic(name: str) -> pd.DataFrame:
    """Load a diagnostic CSV by name (without .csv extension)."""
    path = get_data_dir('diagnostics') / f'{name}.csv'
    if not path.exists():
        raise FileNotFoundError(f"Diagnostic file not found: {path}")
    return pd.read_csv(path)


# ============================================================
# FORMATTING
# ============================================================

def format_pvalue(p: float, threshold: float = 0.001) -> str:
    """Format p-value for display."""
    if p < threshold:
        return f"<{threshold}"
    return f"{p:.3f}"


def format_ci(lo: float, hi: float, decimals: int = 3) -> str:
    """Format confidence interval as [lo, hi]."""
    return f"[{lo:.{decimals}f}, {hi:.{decimals}f}]"


def add_significance_stars(p: float) -> str:
    """Add significance stars based on p-value."""
    if p < 0.001:
        return "***"
    elif p < 0.01:
        return "**"
    elif p < 0.05:
        return "*"
    return ""


def coefficient_table(result, decimals: int = TABLE_DECIMALS) -> pd.DataFrame:
    """
    Build the display table for a fitted model.

    Works for both frequentist and Bayesian results; each result type
    knows its own columns through ``to_frame``.

    Parameters
    ----------
    result : FitResult or PosteriorResult
        Fitted model
    decimals : int
        Rounding for numeric columns

    Returns
    -------
    pd.DataFrame
        One row per parameter, numeric columns rounded
    """
    return result.to_frame(decimals=decimals)


def print_table(df: pd.DataFrame, title: str = '', indent: int = 2) -> None:
    """Print a DataFrame as an indented plain-text table."""
    pad = ' ' * indent
    if title:
        print(f"\n{pad}{title}")
        print(pad + "-" * max(len(title), 40))
    for line in df.to_string(index=False).splitlines():
        print(f"{pad}{line}")
