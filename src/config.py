#!/usr/bin/env python3
"""
Configuration constants for the looking-time mixed models pipeline.

This module centralizes paths, dataset settings, sample restrictions,
modeling defaults and sampler settings.

Usage
-----
    from config import PROJECT_ROOT, DATA_WORK_DIR, DATASET_URL

    # Or import specific sections
    from config import (
        # Paths
        DATA_WORK_DIR,
        FITS_DIR,
        FIGURES_DIR,

        # Sample restriction
        FILTER_METHOD,
        FILTER_LANGUAGE_GROUP,

        # Sampler settings
        BAYES_WARMUP,
        BAYES_ITER,
        BAYES_CHAINS,
    )
"""
from __future__ import annotations

from pathlib import Path


# =============================================================================
# PATHS
# =============================================================================

def _find_project_root() -> Path:
    """Find project root by looking for characteristic directories."""
    current = Path(__file__).resolve()
    for parent in current.parents:
        if (parent / 'src').exists() and (parent / 'manuscript_quarto').exists():
            return parent
    # Fallback: use parent of src/
    return Path(__file__).resolve().parent.parent


PROJECT_ROOT = _find_project_root()

# Data directories
DATA_RAW_DIR = PROJECT_ROOT / 'data_raw'
DATA_WORK_DIR = PROJECT_ROOT / 'data_work'
DIAGNOSTICS_DIR = DATA_WORK_DIR / 'diagnostics'
FITS_DIR = DATA_WORK_DIR / 'fits'

# Output directories
MANUSCRIPT_DIR = PROJECT_ROOT / 'manuscript_quarto'
FIGURES_DIR = MANUSCRIPT_DIR / 'figures'


# =============================================================================
# DATASET
# =============================================================================

# ManyBabies 1 trial-level data, processed release
DATASET_URL = (
    'https://raw.githubusercontent.com/manybabies/mb1-analysis-public/'
    'master/processed_data/03_data_trial_main.csv'
)

# Seconds before the download is abandoned
FETCH_TIMEOUT = 60

# Raw column name -> canonical column name
RAW_COLUMN_MAP = {
    'subid_unique': 'subject_id',
    'lab': 'laboratory_id',
    'method': 'method',
    'nae': 'language_group',
    'age_mo': 'age_months',
    'age_group': 'age_group',
    'trial_num': 'trial_number',
    'trial_type': 'trial_type',
    'looking_time': 'looking_time',
}

CANONICAL_COLUMNS = list(RAW_COLUMN_MAP.values())


# =============================================================================
# SAMPLE RESTRICTION
# =============================================================================

# Single-screen procedure, North American English learners only
FILTER_METHOD = 'singlescreen'
FILTER_LANGUAGE_GROUP = True

AGE_GROUP_ORDER = ['3-6 mo', '6-9 mo', '9-12 mo', '12-15 mo']
TRIAL_TYPE_LEVELS = ['IDS', 'ADS']

# Level coded as 1 in stimulus_indicator
STIMULUS_REFERENCE_LEVEL = 'IDS'


# =============================================================================
# MODELING
# =============================================================================

SPECIFICATIONS_FILE = PROJECT_ROOT / 'specifications.yml'
DEFAULT_SPECIFICATION = 'log_informative'

# Default engine for run_estimation
ANALYSIS_ENGINE = 'frequentist'

# Fixed-effect terms and grouping factor shared by all tutorial models
FIXED_EFFECTS = [
    'centered_age',
    'stimulus_indicator',
    'centered_age:stimulus_indicator',
]
GROUP_FACTOR = 'subject_id'

CONFIDENCE_LEVEL = 0.95
CREDIBLE_INTERVAL = 0.95

# Rounding for printed tables
TABLE_DECIMALS = 3


# =============================================================================
# SAMPLER SETTINGS
# =============================================================================

# Total iterations per chain include warmup
BAYES_WARMUP = 2000
BAYES_ITER = 4000
BAYES_CHAINS = 4
BAYES_CORES = 4
BAYES_THREADS = 2
BAYES_SEED = 123
BAYES_TARGET_ACCEPT = 0.99

# R-hat above this is reported as non-convergence
RHAT_THRESHOLD = 1.01


# =============================================================================
# QUALITY ASSURANCE
# =============================================================================

# Enable per-stage QA report generation
ENABLE_QA_REPORTS = True

# Output directory for QA reports
QA_REPORTS_DIR = DATA_WORK_DIR / 'quality'

QA_THRESHOLDS = {
    'max_missing_pct': 5.0,       # Warn if >5% missing values
    'min_row_count': 10,          # Warn if fewer than 10 rows
    'max_duplicate_pct': 1.0,     # Warn if >1% repeated trials
    'min_subject_count': 20,      # Warn if fewer than 20 subjects
}


# =============================================================================
# CACHING SETTINGS
# =============================================================================

# Reuse saved Bayesian fits when the fit file exists
CACHE_ENABLED = True


# =============================================================================
# FILE NAMING CONVENTIONS
# =============================================================================

RAW_FILE = 'data_raw.parquet'
CLEAN_FILE = 'data_clean.parquet'
ANALYSIS_FILE = 'analysis.parquet'

RAW_PATH = DATA_WORK_DIR / RAW_FILE
CLEAN_PATH = DATA_WORK_DIR / CLEAN_FILE
ANALYSIS_PATH = DATA_WORK_DIR / ANALYSIS_FILE


def fit_path(spec_name: str) -> Path:
    """Fixed cache file for the Bayesian fit of a specification."""
    return FITS_DIR / f'{spec_name}.pkl'


# =============================================================================
# VALIDATION
# =============================================================================

def validate_config() -> bool:
    """
    Validate configuration settings.

    Returns
    -------
    bool
        True if all validations pass

    Raises
    ------
    ValueError
        If any configuration is invalid
    """
    errors = []

    if not PROJECT_ROOT.exists():
        errors.append(f"PROJECT_ROOT does not exist: {PROJECT_ROOT}")

    if STIMULUS_REFERENCE_LEVEL not in TRIAL_TYPE_LEVELS:
        errors.append(
            f"STIMULUS_REFERENCE_LEVEL must be one of {TRIAL_TYPE_LEVELS}: "
            f"{STIMULUS_REFERENCE_LEVEL}"
        )

    if len(TRIAL_TYPE_LEVELS) != 2:
        errors.append(f"TRIAL_TYPE_LEVELS must have two levels: {TRIAL_TYPE_LEVELS}")

    if BAYES_ITER <= BAYES_WARMUP:
        errors.append(
            f"BAYES_ITER ({BAYES_ITER}) must exceed BAYES_WARMUP ({BAYES_WARMUP})"
        )

    if not 0 < BAYES_TARGET_ACCEPT < 1:
        errors.append(f"BAYES_TARGET_ACCEPT must be between 0 and 1: {BAYES_TARGET_ACCEPT}")

    if not 0 < CREDIBLE_INTERVAL < 1:
        errors.append(f"CREDIBLE_INTERVAL must be between 0 and 1: {CREDIBLE_INTERVAL}")

    if errors:
        raise ValueError("Configuration errors:\n" + "\n".join(f"  - {e}" for e in errors))

    return True


def ensure_directories() -> None:
    """Create required directories if they don't exist."""
    for path in [DATA_RAW_DIR, DATA_WORK_DIR, DIAGNOSTICS_DIR, FITS_DIR, FIGURES_DIR, QA_REPORTS_DIR]:
        path.mkdir(parents=True, exist_ok=True)


# =============================================================================
# CONVENIENCE EXPORTS
# =============================================================================

def get_project_root() -> Path:
    """Get project root directory (compatibility wrapper)."""
    return PROJECT_ROOT


def get_data_dir(subdir: str = 'work') -> Path:
    """Get data directory (compatibility wrapper)."""
    if subdir == 'raw':
        return DATA_RAW_DIR
    elif subdir == 'work':
        return DATA_WORK_DIR
    elif subdir == 'diagnostics':
        return DIAGNOSTICS_DIR
    elif subdir == 'fits':
        return FITS_DIR
    else:
        return PROJECT_ROOT / f'data_{subdir}'


# =============================================================================
# MODULE INITIALIZATION
# =============================================================================

if __name__ == '__main__':
    print("Looking-Time Pipeline Configuration")
    print("=" * 50)
    print(f"PROJECT_ROOT:      {PROJECT_ROOT}")
    print(f"DATA_WORK_DIR:     {DATA_WORK_DIR}")
    print(f"FITS_DIR:          {FITS_DIR}")
    print(f"FIGURES_DIR:       {FIGURES_DIR}")
    print(f"DATASET_URL:       {DATASET_URL}")
    print()
    print(f"FILTER_METHOD:          {FILTER_METHOD}")
    print(f"FILTER_LANGUAGE_GROUP:  {FILTER_LANGUAGE_GROUP}")
    print()
    print("Validating configuration...")
    try:
        validate_config()
        print("Configuration valid.")
    except ValueError as e:
        print(f"Configuration invalid:\n{e}")
