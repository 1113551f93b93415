#!/usr/bin/env python3
"""
Stage 05: Figure Generation

Purpose: Generate the tutorial figures.

This stage handles:
- Looking time against age, by trial type and age group
- Posterior densities of the population-level parameters
- Posterior (and, with proper priors, prior) predictive checks
- Frequentist vs Bayesian coefficient comparison

Input Files
-----------
- data_work/analysis.parquet
- data_work/fits/<spec>.pkl
- data_work/diagnostics/freq_<spec>.csv, bayes_<spec>.csv

Output Files
------------
- manuscript_quarto/figures/*.png

Usage
-----
    python src/pipeline.py make_figures
    python src/pipeline.py make_figures --specification log_default
"""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

# Add parent directory for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import pandas as pd
import numpy as np
import matplotlib.pyplot as plt

from config import (
    ANALYSIS_PATH,
    AGE_GROUP_ORDER,
    CREDIBLE_INTERVAL,
    DEFAULT_SPECIFICATION,
    TRIAL_TYPE_LEVELS,
    fit_path,
)
from analysis import PosteriorResult
from utils.cache import FitCache
from utils.helpers import (
    get_figures_dir,
    load_data,
    load_diagnostic,
    ensure_dir,
)
from utils.figure_style import (
    apply_style,
    get_color_palette,
    save_figure,
    annotate_panel,
)
from stages._qa_utils import generate_qa_report, QAMetrics


# ============================================================
# CONFIGURATION
# ============================================================

LOWESS_FRAC = 0.75
PPC_DRAWS = 100


# ============================================================
# FIGURE FUNCTIONS
# ============================================================

def plot_looking_time_by_age(
    df: pd.DataFrame,
    output_path: Path,
    response: str = 'looking_time',
) -> Optional[Path]:
    """
    Scatter of looking time against age with a LOWESS trend per trial type.

    One panel per age group.

    Parameters
    ----------
    df : pd.DataFrame
        Cleaned or analysis table
    output_path : Path
        Output path for figure
    response : str
        Column on the y axis

    Returns
    -------
    Path or None
        Path to saved figure, None if the table is empty
    """
    from statsmodels.nonparametric.smoothers_lowess import lowess

    if df.empty:
        print("  Warning: No rows, skipping looking-time plot")
        return None

    groups = [g for g in AGE_GROUP_ORDER if (df['age_group'].astype(str) == g).any()]
    colors = dict(zip(TRIAL_TYPE_LEVELS, get_color_palette('trial_type')))

    fig, axes = plt.subplots(1, len(groups), figsize=(3.2 * len(groups), 3.6),
                             sharey=True, squeeze=False)

    for ax, group in zip(axes[0], groups):
        panel = df[df['age_group'].astype(str) == group]
        for trial_type in TRIAL_TYPE_LEVELS:
            sub = panel[panel['trial_type'].astype(str) == trial_type]
            if sub.empty:
                continue
            x = sub['age_months'].to_numpy(dtype=float)
            y = sub[response].to_numpy(dtype=float)
            ax.scatter(x, y, s=6, alpha=0.25, color=colors[trial_type])
            if np.unique(x).size > 2:
                trend = lowess(y, x, frac=LOWESS_FRAC)
                ax.plot(trend[:, 0], trend[:, 1], color=colors[trial_type],
                        linewidth=1.5, label=trial_type)
        ax.set_xlabel('Age (months)')
        annotate_panel(ax, group)

    axes[0][0].set_ylabel(response.replace('_', ' ').capitalize())
    handles, labels = axes[0][0].get_legend_handles_labels()
    if handles:
        axes[0][-1].legend(handles, labels, title='Trial type', loc='upper right')

    plt.tight_layout()
    save_figure(fig, output_path, formats=['png'])
    plt.close(fig)

    return output_path


def plot_posterior_densities(
    result: PosteriorResult,
    output_path: Path,
    hdi_prob: float = CREDIBLE_INTERVAL,
) -> Path:
    """
    Posterior densities with the mean and a credible interval.

    Parameters
    ----------
    result : PosteriorResult
        Bayesian fit
    output_path : Path
        Output path for figure
    hdi_prob : float
        Interval coverage

    Returns
    -------
    Path
        Path to saved figure
    """
    import arviz as az

    var_names = ['Intercept', 'b', result.sd_name, 'sigma']
    axes = az.plot_posterior(
        result.idata,
        var_names=var_names,
        hdi_prob=hdi_prob,
        point_estimate='mean',
        ref_val=None,
        textsize=9,
    )
    fig = np.ravel(axes)[0].figure
    fig.suptitle(f'Posterior densities: {result.specification}')

    save_figure(fig, output_path, formats=['png'])
    plt.close(fig)

    return output_path


def plot_predictive_check(
    result: PosteriorResult,
    output_path: Path,
    group: str = 'posterior',
    num_pp_samples: int = PPC_DRAWS,
) -> Optional[Path]:
    """
    Overlay predictive draws on the observed response density.

    Parameters
    ----------
    result : PosteriorResult
        Bayesian fit
    output_path : Path
        Output path for figure
    group : str
        'posterior' or 'prior'
    num_pp_samples : int
        Predictive draws to overlay

    Returns
    -------
    Path or None
        Path to saved figure, None if the fit has no draws for ``group``
    """
    import arviz as az

    if group not in ('posterior', 'prior'):
        raise ValueError(f"group must be 'posterior' or 'prior': {group}")

    if f'{group}_predictive' not in result.idata.groups():
        print(f"  Warning: No {group} predictive draws in {result.specification}, skipping")
        return None

    ax = az.plot_ppc(
        result.idata,
        group=group,
        var_names=[result.response],
        num_pp_samples=num_pp_samples,
        random_seed=result.sampler.get('seed'),
    )
    fig = np.ravel(ax)[0].figure
    fig.suptitle(f'{group.capitalize()} predictive check: {result.specification}')

    save_figure(fig, output_path, formats=['png'])
    plt.close(fig)

    return output_path


def comparison_frame(freq: pd.DataFrame, bayes: pd.DataFrame) -> pd.DataFrame:
    """
    Align frequentist and Bayesian estimates term by term.

    Parameters
    ----------
    freq : pd.DataFrame
        Frequentist table (term, estimate, ci_lower, ci_upper)
    bayes : pd.DataFrame
        Posterior table (parameter, Estimate, l-XX% CI, u-XX% CI)

    Returns
    -------
    pd.DataFrame
        Long table: term, engine, estimate, lower, upper
    """
    lower = next(c for c in bayes.columns if c.startswith('l-'))
    upper = next(c for c in bayes.columns if c.startswith('u-'))

    f = freq[['term', 'estimate', 'ci_lower', 'ci_upper']].copy()
    f.columns = ['term', 'estimate', 'lower', 'upper']
    f['engine'] = 'frequentist'

    b = bayes[bayes['parameter'].isin(f['term'])][['parameter', 'Estimate', lower, upper]].copy()
    b.columns = ['term', 'estimate', 'lower', 'upper']
    b['engine'] = 'bayesian'

    return pd.concat([f, b], ignore_index=True)[['term', 'engine', 'estimate', 'lower', 'upper']]


def plot_coefficient_comparison(
    freq: pd.DataFrame,
    bayes: pd.DataFrame,
    output_path: Path,
) -> Path:
    """
    Plot frequentist and Bayesian estimates with their intervals.

    Parameters
    ----------
    freq : pd.DataFrame
        Frequentist coefficient table
    bayes : pd.DataFrame
        Posterior summary table
    output_path : Path
        Output path for figure

    Returns
    -------
    Path
        Path to saved figure
    """
    table = comparison_frame(freq, bayes)
    terms = list(dict.fromkeys(table['term']))
    colors = get_color_palette('engine')

    fig, ax = plt.subplots(figsize=(7, 0.8 * len(terms) + 1.5))

    for i, (engine, offset) in enumerate([('frequentist', -0.12), ('bayesian', 0.12)]):
        sub = table[table['engine'] == engine].set_index('term')
        y = [terms.index(t) + offset for t in sub.index]
        ax.errorbar(
            sub['estimate'], y,
            xerr=[sub['estimate'] - sub['lower'], sub['upper'] - sub['estimate']],
            fmt='o', capsize=3, color=colors[i], label=engine.capitalize(),
        )

    ax.axvline(0, color='gray', linestyle='--', linewidth=1)
    ax.set_yticks(range(len(terms)))
    ax.set_yticklabels(terms)
    ax.invert_yaxis()
    ax.set_xlabel('Estimate (95% interval)')
    ax.legend(loc='best')

    plt.tight_layout()
    save_figure(fig, output_path, formats=['png'])
    plt.close(fig)

    return output_path


# ============================================================
# MAIN ENTRY POINT
# ============================================================

def main(specification: str = DEFAULT_SPECIFICATION, verbose: bool = True):
    """
    Generate all figures for a specification.

    Figures whose inputs are missing are skipped with a message.
    """
    print("=" * 60)
    print("Stage 05: Figure Generation")
    print("=" * 60)

    apply_style()
    fig_dir = ensure_dir(get_figures_dir())
    print(f"\n  Output directory: {fig_dir}")

    generated = []

    # Descriptive plot
    if ANALYSIS_PATH.exists():
        df = load_data(ANALYSIS_PATH)
        print(f"\n  Loaded {len(df):,} rows from {ANALYSIS_PATH.name}")
        print("\n  Creating looking-time plot...")
        path = plot_looking_time_by_age(df, fig_dir / 'looking_time_by_age.png')
        if path:
            generated.append(path)
    else:
        print(f"\n  Skipping data plots: {ANALYSIS_PATH} not found")

    # Posterior plots
    found, result = FitCache(fit_path(specification)).get()
    if found:
        print(f"\n  Creating posterior plots for {specification}...")
        generated.append(plot_posterior_densities(
            result, fig_dir / f'posterior_{specification}.png'))
        for group in ('posterior', 'prior'):
            path = plot_predictive_check(
                result, fig_dir / f'{group}_predictive_{specification}.png', group=group)
            if path:
                generated.append(path)
    else:
        print(f"\n  Skipping posterior plots: no saved fit for {specification}")
        print("  Run 'run_bayesian' first.")

    # Comparison plot
    try:
        freq = load_diagnostic(f'freq_{specification}')
        bayes = load_diagnostic(f'bayes_{specification}')
        print("\n  Creating coefficient comparison...")
        generated.append(plot_coefficient_comparison(
            freq, bayes, fig_dir / f'coefficients_{specification}.png'))
    except FileNotFoundError as e:
        print(f"\n  Skipping coefficient comparison: {e}")

    print("\n" + "-" * 60)
    print("FIGURES GENERATED")
    print("-" * 60)
    for path in generated:
        print(f"  {Path(path).name}")

    metrics = QAMetrics()
    metrics.add('specification', specification)
    metrics.add('n_figures', len(generated))
    generate_qa_report('s05_figures', metrics)

    print("\n" + "=" * 60)
    print("Stage 05 complete.")
    print("=" * 60)

    return generated


if __name__ == '__main__':
    main()
