#!/usr/bin/env python3
"""
Module: pipeline.py
Purpose: Main orchestration CLI for the looking-time mixed-model pipeline.

This module provides a command-line interface to execute individual stages
of the analysis pipeline. Each stage reads the previous stage's output from
data_work/ and writes its own.

Commands
--------
# Data Processing
ingest_data : Download (or read) and standardize the trial-level data
    Options: --source
    Output: data_work/data_raw.parquet
clean_data : Restrict the sample and drop incomplete rows
    Output: data_work/data_clean.parquet
build_features : Add centered age, log looking time, stimulus indicator
    Output: data_work/analysis.parquet

# Analysis
run_estimation : Fit a specification by REML (statsmodels)
    Options: --specification, --all
run_bayesian : Fit a specification by MCMC (PyMC)
    Options: --specification, --refit
    Output: data_work/fits/<spec>.pkl

# Figures
make_figures : Generate tutorial figures
    Options: --specification
    Output: manuscript_quarto/figures/*.png

# Housekeeping
list_specs : List model specifications in specifications.yml
clear_fits : Delete saved Bayesian fits

Usage
-----
    python src/pipeline.py ingest_data
    python src/pipeline.py run_bayesian --specification log_informative

Notes
-----
Requires activation of project virtual environment before running.
"""
from __future__ import annotations

import os
import sys
import argparse
from typing import Optional

from config import DEFAULT_SPECIFICATION


def ensure_env():
    """Verify virtual environment is activated."""
    venv = os.getenv('VIRTUAL_ENV')
    if not venv or not venv.endswith('/.venv'):
        print(
            'ERROR: Please activate project .venv (source .venv/bin/activate) before running.',
            file=sys.stderr
        )
        sys.exit(1)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    p = argparse.ArgumentParser(
        description='Infant Looking-Time Mixed-Model Pipeline',
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    sub = p.add_subparsers(dest='cmd', required=True)

    # Data Processing Commands
    p_ingest = sub.add_parser('ingest_data', help='Download and standardize the dataset')
    p_ingest.add_argument(
        '--source',
        default=None,
        help='Local CSV to read instead of downloading'
    )
    sub.add_parser('clean_data', help='Restrict the sample and drop incomplete rows')
    sub.add_parser('build_features', help='Add derived model columns')

    # Estimation Commands
    p_est = sub.add_parser('run_estimation', help='Frequentist mixed-model fit')
    p_est.add_argument(
        '--specification', '-s',
        default=DEFAULT_SPECIFICATION,
        help=f'Specification name (default: {DEFAULT_SPECIFICATION})'
    )
    p_est.add_argument(
        '--all',
        action='store_true',
        dest='run_all',
        help='Fit every specification in specifications.yml'
    )

    p_bayes = sub.add_parser('run_bayesian', help='Bayesian mixed-model fit')
    p_bayes.add_argument(
        '--specification', '-s',
        default=DEFAULT_SPECIFICATION,
        help=f'Specification name (default: {DEFAULT_SPECIFICATION})'
    )
    p_bayes.add_argument(
        '--refit',
        action='store_true',
        help='Ignore a saved fit and sample again'
    )

    # Figure Commands
    p_fig = sub.add_parser('make_figures', help='Generate tutorial figures')
    p_fig.add_argument(
        '--specification', '-s',
        default=DEFAULT_SPECIFICATION,
        help=f'Specification whose fit is plotted (default: {DEFAULT_SPECIFICATION})'
    )

    # Housekeeping Commands
    sub.add_parser('list_specs', help='List model specifications')
    sub.add_parser('clear_fits', help='Delete saved Bayesian fits')

    return p.parse_args(argv)


def main(argv: Optional[list[str]] = None):
    """Main entry point."""
    ensure_env()
    args = parse_args(argv)

    if args.cmd == 'ingest_data':
        from stages import s00_ingest
        s00_ingest.main(source=args.source)

    elif args.cmd == 'clean_data':
        from stages import s01_clean
        s01_clean.main()

    elif args.cmd == 'build_features':
        from stages import s02_features
        s02_features.main()

    elif args.cmd == 'run_estimation':
        from stages import s03_estimation
        s03_estimation.main(
            specification=args.specification,
            run_all=args.run_all
        )

    elif args.cmd == 'run_bayesian':
        from stages import s04_bayesian
        s04_bayesian.main(
            specification=args.specification,
            refit=args.refit
        )

    elif args.cmd == 'make_figures':
        from stages import s05_figures
        s05_figures.main(specification=args.specification)

    elif args.cmd == 'list_specs':
        list_specs()

    elif args.cmd == 'clear_fits':
        from utils.cache import clear_fit_caches
        n = clear_fit_caches()
        print(f"Removed {n} saved fit(s).")


def list_specs() -> None:
    """Print every specification with its response and priors."""
    from analysis import load_specifications
    from analysis.specifications import describe_specification
    from utils.cache import list_fit_caches

    specs = load_specifications()
    saved = list_fit_caches()

    print("\nModel specifications")
    print("=" * 60)
    for name, spec in specs.items():
        marker = ' [fit saved]' if name in saved else ''
        print(f"\n  {name}{marker}")
        if spec.description:
            print(f"    {spec.description}")
        print(f"    {describe_specification(spec)}")


if __name__ == '__main__':
    main()
