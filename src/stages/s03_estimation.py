#!/usr/bin/env python3
"""
Stage 03: Frequentist Estimation

Purpose: Fit the random-intercept mixed model by REML.

This stage handles:
- Loading a model specification from specifications.yml
- Fitting it with the frequentist engine (statsmodels MixedLM)
- Printing the coefficient and variance-component tables
- Exporting results to diagnostics

Input Files
-----------
- data_work/analysis.parquet
- specifications.yml

Output Files
------------
- data_work/diagnostics/freq_<spec>.csv
- data_work/diagnostics/freq_<spec>.json

Usage
-----
    python src/pipeline.py run_estimation --specification log_default
    python src/pipeline.py run_estimation --all
"""
from __future__ import annotations

import sys
from pathlib import Path

# Add parent directory for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import pandas as pd

from config import ANALYSIS_PATH, CONFIDENCE_LEVEL, DEFAULT_SPECIFICATION, TABLE_DECIMALS
from analysis import FitResult, fit_specification, get_specification, load_specifications
from analysis.specifications import ModelSpec, describe_specification
from utils.helpers import (
    get_data_dir,
    load_data,
    save_diagnostic,
    ensure_dir,
    coefficient_table,
    print_table,
)
from stages._qa_utils import generate_qa_report, QAMetrics


# ============================================================
# ESTIMATION
# ============================================================

def fit_frequentist(
    df: pd.DataFrame,
    spec: ModelSpec,
    confidence_level: float = CONFIDENCE_LEVEL,
) -> FitResult:
    """
    Fit one specification with the frequentist engine.

    Parameters
    ----------
    df : pd.DataFrame
        Analysis table
    spec : ModelSpec
        Specification to fit
    confidence_level : float
        Coverage of the reported intervals

    Returns
    -------
    FitResult
        Estimation results
    """
    return fit_specification(df, spec, engine='frequentist', alpha=1 - confidence_level)


def report_result(result: FitResult, decimals: int = TABLE_DECIMALS) -> None:
    """Print fixed effects, variance components and any warnings."""
    print_table(coefficient_table(result, decimals), title='Fixed effects')
    print_table(result.variance_components(decimals), title='Random effects')
    print(f"\n  N = {result.n_obs:,} trials, {result.n_groups:,} subjects, "
          f"logLik = {result.log_likelihood:.{decimals}f}")
    for w in result.warnings:
        print(f"  WARNING: {w}")


def save_result(result: FitResult) -> Path:
    """Write the coefficient table (CSV) and the full result (JSON)."""
    diag_dir = ensure_dir(get_data_dir('diagnostics'))
    table = coefficient_table(result, decimals=6)
    table.insert(0, 'specification', result.specification)
    save_diagnostic(table, f'freq_{result.specification}')
    json_path = diag_dir / f'freq_{result.specification}.json'
    result.to_json(json_path)
    return json_path


# ============================================================
# MAIN ENTRY POINT
# ============================================================

def main(
    specification: str = DEFAULT_SPECIFICATION,
    run_all: bool = False,
    verbose: bool = True,
):
    """
    Execute frequentist estimation.

    Parameters
    ----------
    specification : str
        Specification name to run
    run_all : bool
        Run every specification in specifications.yml
    verbose : bool
        Print detailed output
    """
    print("=" * 60)
    print("Stage 03: Frequentist Estimation")
    print("=" * 60)

    print(f"\n  Loading: {ANALYSIS_PATH.name}")
    if not ANALYSIS_PATH.exists():
        print(f"  ERROR: Input file not found: {ANALYSIS_PATH}")
        print("  Run 'build_features' stage first.")
        sys.exit(1)

    df = load_data(ANALYSIS_PATH)
    print(f"    -> {len(df):,} rows")

    if run_all:
        specs = list(load_specifications().values())
    else:
        try:
            specs = [get_specification(specification)]
        except KeyError as e:
            print(f"\n  ERROR: {e}")
            sys.exit(1)

    results = []
    print(f"\n  Running {len(specs)} specification(s)...")

    for spec in specs:
        print(f"\n  {spec.name}:")
        if spec.description:
            print(f"    {spec.description}")
        if verbose:
            print(f"    {describe_specification(spec)}")
        if spec.has_priors:
            print("    (priors ignored by the frequentist engine)")

        try:
            result = fit_frequentist(df, spec)
        except (ValueError, KeyError) as e:
            print(f"    ERROR: {e}")
            continue

        results.append(result)
        report_result(result)
        save_result(result)

    print("\n" + "-" * 60)
    print("ESTIMATION SUMMARY")
    print("-" * 60)
    print(f"  Specifications run: {len(results)}")
    if results:
        print(f"\n  {'Specification':<20} {'Term':<34} {'Coef':>10}")
        print("  " + "-" * 66)
        for r in results:
            for term in r.terms:
                print(f"  {r.specification:<20} {term:<34} {r.format_coefficient(term):>10}")

    metrics = QAMetrics()
    metrics.add('n_specifications', len(results))
    if results:
        metrics.add('n_obs', results[0].n_obs)
        metrics.add('n_groups', results[0].n_groups)
        metrics.add('n_not_converged', sum(1 for r in results if not r.converged))
    generate_qa_report('s03_estimation', metrics)

    print("\n" + "=" * 60)
    print("Stage 03 complete.")
    print("=" * 60)

    return results


if __name__ == '__main__':
    main()
