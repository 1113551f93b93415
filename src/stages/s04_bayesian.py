#!/usr/bin/env python3
"""
Stage 04: Bayesian Estimation

Purpose: Fit the random-intercept mixed model by MCMC.

This stage handles:
- Loading a model specification (with or without priors)
- Sampling the posterior with the Bayesian engine (PyMC NUTS)
- Reusing a saved fit when its file already exists
- Printing the posterior summary table and sampler warnings

Input Files
-----------
- data_work/analysis.parquet
- specifications.yml

Output Files
------------
- data_work/fits/<spec>.pkl (+ .meta.json)
- data_work/diagnostics/bayes_<spec>.csv

Usage
-----
    python src/pipeline.py run_bayesian --specification log_informative
    python src/pipeline.py run_bayesian -s log_informative --refit
"""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

# Add parent directory for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import pandas as pd

from config import (
    ANALYSIS_PATH,
    CREDIBLE_INTERVAL,
    DEFAULT_SPECIFICATION,
    TABLE_DECIMALS,
    fit_path,
)
from analysis import PosteriorResult, fit_specification, get_specification
from analysis.engines.bayesian_engine import SamplerConfig
from analysis.specifications import ModelSpec, describe_specification
from utils.helpers import load_data, save_diagnostic, print_table
from stages._qa_utils import generate_qa_report, QAMetrics


# ============================================================
# ESTIMATION
# ============================================================

def fit_bayesian(
    df: pd.DataFrame,
    spec: ModelSpec,
    sampler: Optional[SamplerConfig] = None,
    refit: bool = False,
) -> PosteriorResult:
    """
    Fit one specification with the Bayesian engine.

    Parameters
    ----------
    df : pd.DataFrame
        Analysis table
    spec : ModelSpec
        Specification to fit
    sampler : SamplerConfig, optional
        Sampler settings (default: config values, fit file under data_work/fits)
    refit : bool
        Sample again even if the fit file exists

    Returns
    -------
    PosteriorResult
        Posterior draws and diagnostics
    """
    sampler = sampler or SamplerConfig(file=fit_path(spec.name))
    return fit_specification(df, spec, engine='bayesian', sampler=sampler, refit=refit)


def posterior_table(
    result: PosteriorResult,
    decimals: int = TABLE_DECIMALS,
    prob: float = CREDIBLE_INTERVAL,
) -> pd.DataFrame:
    """Posterior summary with the credible-interval coverage from config."""
    return result.to_frame(decimals=decimals, prob=prob)


def report_result(result: PosteriorResult, decimals: int = TABLE_DECIMALS) -> None:
    """Print priors, the posterior summary and sampler warnings."""
    print("\n  Priors:")
    for coef_class, prior in result.priors.items():
        print(f"    {coef_class:<10} {prior}")

    print_table(posterior_table(result, decimals), title='Posterior summary')

    print(f"\n  Draws: {result.n_chains} chains x {result.n_draws} post-warmup")
    for term in result.terms:
        print(f"  P({term} > 0) = {result.probability_positive(term):.3f}")
    for w in result.warnings:
        print(f"  WARNING: {w}")


# ============================================================
# MAIN ENTRY POINT
# ============================================================

def main(
    specification: str = DEFAULT_SPECIFICATION,
    refit: bool = False,
    verbose: bool = True,
):
    """
    Execute Bayesian estimation.

    Parameters
    ----------
    specification : str
        Specification name to run
    refit : bool
        Discard a saved fit and sample again
    verbose : bool
        Print detailed output
    """
    print("=" * 60)
    print("Stage 04: Bayesian Estimation")
    print("=" * 60)

    print(f"\n  Loading: {ANALYSIS_PATH.name}")
    if not ANALYSIS_PATH.exists():
        print(f"  ERROR: Input file not found: {ANALYSIS_PATH}")
        print("  Run 'build_features' stage first.")
        sys.exit(1)

    df = load_data(ANALYSIS_PATH)
    print(f"    -> {len(df):,} rows")

    try:
        spec = get_specification(specification)
    except KeyError as e:
        print(f"\n  ERROR: {e}")
        sys.exit(1)

    print(f"\n  {spec.name}:")
    if spec.description:
        print(f"    {spec.description}")
    if verbose:
        print(f"    {describe_specification(spec)}")

    sampler = SamplerConfig(file=fit_path(spec.name))
    print(f"    Fit file: {sampler.file}")
    print(f"    Sampler: {sampler.chains} chains, {sampler.warmup} warmup, "
          f"{sampler.iter} iter, target_accept={sampler.target_accept}, seed={sampler.seed}")

    try:
        result = fit_bayesian(df, spec, sampler=sampler, refit=refit)
    except (ValueError, KeyError) as e:
        print(f"\n  ERROR: {e}")
        sys.exit(1)

    report_result(result)

    table = posterior_table(result, decimals=6)
    table.insert(0, 'specification', result.specification)
    out_path = save_diagnostic(table, f'bayes_{result.specification}')
    print(f"\n  Saved: {out_path}")

    metrics = QAMetrics()
    metrics.add('specification', result.specification)
    metrics.add('n_obs', result.n_obs)
    metrics.add('n_groups', result.n_groups)
    metrics.add('n_chains', result.n_chains)
    metrics.add('n_draws', result.n_draws)
    metrics.add('n_warnings', len(result.warnings))
    metrics.add('sampling_time_sec', round(result.execution_time_seconds, 1))
    generate_qa_report('s04_bayesian', metrics)

    print("\n" + "=" * 60)
    print("Stage 04 complete.")
    print("=" * 60)

    return result


if __name__ == '__main__':
    main()
