#!/usr/bin/env python3
"""
Shared pytest fixtures for the test suite.

This module provides common fixtures used across test modules including:
- Temporary directories and data locations
- Raw CSV text in the published column layout
- Standardized, cleaned and analysis-ready observation tables
- Model specifications
"""
from __future__ import annotations

import sys
from pathlib import Path

# Add src directory to Python path for test imports
_project_root = Path(__file__).parent.parent
_src_path = _project_root / 'src'
if str(_src_path) not in sys.path:
    sys.path.insert(0, str(_src_path))

import pytest
import pandas as pd
import numpy as np
import tempfile
import shutil


AGE_BANDS = [('3-6 mo', 3.0, 6.0), ('6-9 mo', 6.0, 9.0),
             ('9-12 mo', 9.0, 12.0), ('12-15 mo', 12.0, 15.0)]


# ============================================================
# PATH FIXTURES
# ============================================================

@pytest.fixture
def project_root() -> Path:
    """Get the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def temp_dir():
    """Create a temporary directory that is cleaned up after tests."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def temp_data_dir(temp_dir):
    """Create a temporary data directory structure."""
    data_work = temp_dir / 'data_work'
    data_raw = temp_dir / 'data_raw'
    diagnostics = data_work / 'diagnostics'
    fits = data_work / 'fits'
    quality = data_work / 'quality'
    figures = temp_dir / 'manuscript_quarto' / 'figures'

    for path in (data_work, data_raw, diagnostics, fits, quality, figures):
        path.mkdir(parents=True)

    return {
        'root': temp_dir,
        'data_work': data_work,
        'data_raw': data_raw,
        'diagnostics': diagnostics,
        'fits': fits,
        'quality': quality,
        'figures': figures,
    }


@pytest.fixture
def isolated_outputs(temp_data_dir, monkeypatch):
    """Send diagnostics, QA reports and saved fits to a temp directory."""
    import config
    import utils.helpers
    import stages._qa_utils

    monkeypatch.setattr(config, 'DIAGNOSTICS_DIR', temp_data_dir['diagnostics'])
    monkeypatch.setattr(config, 'FITS_DIR', temp_data_dir['fits'])
    monkeypatch.setattr(config, 'DATA_WORK_DIR', temp_data_dir['data_work'])
    monkeypatch.setattr(stages._qa_utils, 'QA_REPORTS_DIR', temp_data_dir['quality'])
    monkeypatch.setattr(utils.helpers, 'FIGURES_DIR', temp_data_dir['figures'])
    return temp_data_dir


# ============================================================
# DATA FIXTURES
# ============================================================

@pytest.fixture
def raw_csv_text() -> str:
    """A small CSV in the published column layout, with one unused column."""
    return (
        "subid_unique,lab,method,nae,age_mo,age_group,trial_num,trial_type,looking_time,stimulus\n"
        "lab1:s1,lab1,singlescreen,TRUE,4.5,3-6 mo,1,IDS,8.2,ids1.wav\n"
        "lab1:s1,lab1,singlescreen,TRUE,4.5,3-6 mo,2,ADS,6.1,ads1.wav\n"
        "lab1:s2,lab1,singlescreen,FALSE,7.0,6-9 mo,1,IDS,9.0,ids1.wav\n"
        "lab2:s3,lab2,eyetracking,TRUE,10.2,9-12 mo,1,ADS,5.5,ads1.wav\n"
        "lab2:s4,lab2,singlescreen,TRUE,13.1,12-15 mo,1,IDS,,ids1.wav\n"
        "lab2:s4,lab2,singlescreen,TRUE,13.1,12-15 mo,2,ADS,4.4,ads1.wav\n"
    )


@pytest.fixture
def observations() -> pd.DataFrame:
    """Standardized observation table with rows each cleaning rule removes."""
    df = pd.DataFrame({
        'subject_id': ['s1', 's1', 's2', 's3', 's4', 's4', 's5', 's6'],
        'laboratory_id': ['lab1', 'lab1', 'lab1', 'lab2', 'lab2', 'lab2', 'lab3', 'lab3'],
        'method': ['singlescreen', 'singlescreen', 'singlescreen', 'eyetracking',
                   'singlescreen', 'singlescreen', 'singlescreen', 'singlescreen'],
        'language_group': [True, True, False, True, True, True, True, True],
        'age_months': [4.5, 4.5, 7.0, 10.2, 13.1, 13.1, 8.0, 16.5],
        'age_group': ['3-6 mo', '3-6 mo', '6-9 mo', '9-12 mo',
                      '12-15 mo', '12-15 mo', '6-9 mo', '15-18 mo'],
        'trial_number': [1, 2, 1, 1, 1, 2, 1, 1],
        'trial_type': ['IDS', 'ADS', 'IDS', 'ADS', 'IDS', 'ADS', 'IDS', 'IDS'],
        'looking_time': [8.2, 6.1, 9.0, 5.5, np.nan, 4.4, 7.7, 3.3],
    })
    df['language_group'] = df['language_group'].astype('boolean')
    df['trial_number'] = df['trial_number'].astype('Int64')
    return df


@pytest.fixture
def four_row_scenario() -> pd.DataFrame:
    """Two subjects x two trial types; one trial has no looking time."""
    df = pd.DataFrame({
        'subject_id': ['a', 'a', 'b', 'b'],
        'laboratory_id': ['lab1'] * 4,
        'method': ['singlescreen'] * 4,
        'language_group': [True, True, True, True],
        'age_months': [4.0, 4.0, 10.0, 10.0],
        'age_group': ['3-6 mo', '3-6 mo', '9-12 mo', '9-12 mo'],
        'trial_number': [1, 2, 1, 2],
        'trial_type': ['IDS', 'ADS', 'IDS', 'ADS'],
        'looking_time': [8.0, 6.0, np.nan, 5.0],
    })
    df['language_group'] = df['language_group'].astype('boolean')
    df['trial_number'] = df['trial_number'].astype('Int64')
    return df


def _simulate_trials(n_subjects: int, trials_per_type: int, seed: int) -> pd.DataFrame:
    """Simulated single-screen sessions with subject-level intercepts."""
    rng = np.random.default_rng(seed)
    rows = []
    for i in range(n_subjects):
        band, lo, hi = AGE_BANDS[i % len(AGE_BANDS)]
        age = rng.uniform(lo, hi)
        u = rng.normal(0.0, 0.3)
        trial = 1
        for trial_type in ('IDS', 'ADS') * trials_per_type:
            ids = 1.0 if trial_type == 'IDS' else 0.0
            log_lt = 2.0 + 0.02 * (age - 9.0) + 0.15 * ids + u + rng.normal(0.0, 0.4)
            rows.append({
                'subject_id': f's{i:03d}',
                'laboratory_id': f'lab{i % 5}',
                'method': 'singlescreen',
                'language_group': True,
                'age_months': age,
                'age_group': band,
                'trial_number': trial,
                'trial_type': trial_type,
                'looking_time': float(np.exp(log_lt)),
            })
            trial += 1
    df = pd.DataFrame(rows)
    df['language_group'] = df['language_group'].astype('boolean')
    df['trial_number'] = df['trial_number'].astype('Int64')
    return df


@pytest.fixture
def simulated_observations() -> pd.DataFrame:
    """Cleaned-looking table of 40 subjects with 8 trials each."""
    return _simulate_trials(n_subjects=40, trials_per_type=4, seed=42)


@pytest.fixture
def analysis_df(simulated_observations) -> pd.DataFrame:
    """Analysis-ready table with derived columns."""
    from stages.s02_features import add_features
    return add_features(simulated_observations)


# ============================================================
# SPECIFICATION FIXTURES
# ============================================================

@pytest.fixture
def specifications_yaml(temp_dir) -> Path:
    """A specifications file with one default and one informative entry."""
    path = temp_dir / 'specifications.yml'
    path.write_text(
        "log_default:\n"
        "  description: Log looking time, default priors\n"
        "  response: log_looking_time\n"
        "\n"
        "log_informative:\n"
        "  response: log_looking_time\n"
        "  priors:\n"
        "    Intercept: normal(2, 0.5)\n"
        "    b: normal(0, 0.5)\n"
        "    sigma: normal(0, 1)\n"
        "    sd: normal(0, 1)\n"
    )
    return path


@pytest.fixture
def log_spec():
    """Log-response specification with default priors."""
    from analysis.specifications import build_model_spec
    return build_model_spec(name='log_default', response='log_looking_time')


@pytest.fixture
def informative_spec():
    """Log-response specification with a proper prior on every class."""
    from analysis.specifications import build_model_spec
    return build_model_spec(
        name='log_informative',
        response='log_looking_time',
        priors={
            'Intercept': 'normal(2, 0.5)',
            'b': 'normal(0, 0.5)',
            'sigma': 'normal(0, 1)',
            'sd': 'normal(0, 1)',
        },
    )


# ============================================================
# SAMPLER FIXTURES
# ============================================================

def fake_inference_data(model, sampler, sample_prior: bool = True):
    """
    Draws shaped like a real fit of ``model``, without running NUTS.

    Posterior values are independent normals; there are no divergences.
    """
    import arviz as az

    rng = np.random.default_rng(0)
    chains, draws = sampler.chains, sampler.draws
    terms = list(model.coords['term'])
    n_obs = len(model.coords['obs_id'])
    response = model.observed_RVs[0].name
    sd_name = next(name for name in model.named_vars if name.startswith('sd_'))

    posterior = {
        'Intercept': rng.normal(2.0, 0.05, (chains, draws)),
        'b': rng.normal(0.1, 0.05, (chains, draws, len(terms))),
        sd_name: np.abs(rng.normal(0.3, 0.03, (chains, draws))),
        'sigma': np.abs(rng.normal(0.4, 0.02, (chains, draws))),
    }
    groups = {
        'posterior': posterior,
        'posterior_predictive': {response: rng.normal(2.0, 0.5, (chains, draws, n_obs))},
        'observed_data': {response: rng.normal(2.0, 0.5, n_obs)},
        'sample_stats': {'diverging': np.zeros((chains, draws), dtype=bool)},
    }
    if sample_prior:
        groups['prior_predictive'] = {response: rng.normal(2.0, 1.0, (1, 100, n_obs))}

    return az.from_dict(
        **groups,
        coords={'term': terms, 'obs_id': np.arange(n_obs)},
        dims={'b': ['term'], response: ['obs_id']},
    )


@pytest.fixture
def fake_sampler(monkeypatch):
    """
    Replace NUTS with fake_inference_data and count the calls.

    Returns a dict whose 'calls' entry is incremented per sampler run.
    """
    from analysis.engines.bayesian_engine import BayesianEngine

    counter = {'calls': 0}

    def _sample(self, model, sampler, sample_prior=True):
        counter['calls'] += 1
        return fake_inference_data(model, sampler, sample_prior)

    monkeypatch.setattr(BayesianEngine, '_sample', _sample)
    return counter


@pytest.fixture
def small_sampler():
    """Cheap sampler settings for tests."""
    from analysis.engines.bayesian_engine import SamplerConfig
    return SamplerConfig(warmup=50, iter=150, chains=2, cores=1, progressbar=False)


@pytest.fixture
def fake_idata():
    """The fake_inference_data builder, for tests that edit the draws."""
    return fake_inference_data
