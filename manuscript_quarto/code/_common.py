"""
Common utilities for manuscript table and figure rendering.
Loads pipeline outputs (analysis table, diagnostics, saved fits) for the
tutorial chapters.
"""

import sys
from pathlib import Path

import pandas as pd
from IPython.display import Markdown, display


def _find_project_root() -> Path:
    """Find project root by looking for characteristic files."""
    current = Path(__file__).resolve()
    for parent in current.parents:
        if (parent / 'src').exists() and (parent / 'manuscript_quarto').exists():
            return parent
    # Fallback: assume manuscript_quarto is one level down from root
    return Path(__file__).parent.parent.parent


# Project paths
PROJECT_ROOT = _find_project_root()
sys.path.insert(0, str(PROJECT_ROOT / 'src'))

from config import ANALYSIS_PATH, DIAGNOSTICS_DIR, FIGURES_DIR, TABLE_DECIMALS, fit_path  # noqa: E402
from utils.cache import FitCache  # noqa: E402
from utils.helpers import load_data  # noqa: E402


def show_table(df: pd.DataFrame, decimals: int = TABLE_DECIMALS) -> None:
    """Display a DataFrame as a rendered markdown table.

    Works in both HTML and PDF output formats.
    """
    display(Markdown(df.round(decimals).to_markdown(index=False)))


def data_available() -> bool:
    """Check if the analysis table exists for manuscript rendering."""
    return ANALYSIS_PATH.exists()


def load_analysis() -> pd.DataFrame:
    """Load the analysis table written by build_features."""
    return load_data(ANALYSIS_PATH)


def load_diagnostic(name: str, required: bool = True) -> pd.DataFrame:
    """Load a diagnostic CSV file by name (without .csv extension).

    Parameters
    ----------
    name : str
        Name of the diagnostic file, e.g. 'freq_log_default'
    required : bool
        If True, raise error when file missing. If False, return empty DataFrame.
    """
    path = DIAGNOSTICS_DIR / f"{name}.csv"
    if not path.exists():
        if required:
            raise FileNotFoundError(
                f"Diagnostic file not found: {path}\n"
                f"Run the pipeline first: python src/pipeline.py run_estimation --all"
            )
        return pd.DataFrame()
    return pd.read_csv(path)


def load_fit(spec_name: str):
    """Load a saved Bayesian fit, or None if it has not been run."""
    found, result = FitCache(fit_path(spec_name)).get()
    return result if found else None


def cell_means(df: pd.DataFrame, response: str = 'looking_time') -> pd.DataFrame:
    """Mean response by age group and trial type, one column per trial type."""
    return (
        df.groupby(['age_group', 'trial_type'], observed=True)[response]
        .mean()
        .unstack('trial_type')
        .reset_index()
    )


def figure_path(name: str) -> Path:
    """Path of a generated figure."""
    return FIGURES_DIR / name
