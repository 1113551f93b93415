"""
Base Protocol and Types for Analysis Engines.

Defines the interface that all model-fitting engines implement and the
result containers they return.

Usage
-----
    from analysis.base import AnalysisEngine, FitResult, PosteriorResult

    class MyEngine(BaseAnalysisEngine):
        @property
        def name(self) -> str:
            return 'my_engine'

        def fit(self, df, spec, **kwargs) -> FitResult:
            ...
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Optional, Protocol, runtime_checkable

import numpy as np
import pandas as pd


class FitConvergenceWarning(UserWarning):
    """A fitter reported convergence problems; results may be unreliable."""


# ============================================================
# FREQUENTIST RESULT
# ============================================================

@dataclass
class FitResult:
    """
    Container for a point-estimate mixed-model fit.

    Attributes
    ----------
    specification : str
        Name of the specification that was fitted
    response : str
        Response column
    n_obs : int
        Number of observations
    n_groups : int
        Number of grouping units (subjects)
    coefficients : dict[str, float]
        Fixed-effect estimates by term
    std_errors : dict[str, float]
        Standard errors by term
    z_stats : dict[str, float]
        Wald z statistics by term
    p_values : dict[str, float]
        P-values by term
    ci_lower : dict[str, float]
        Lower confidence bounds by term
    ci_upper : dict[str, float]
        Upper confidence bounds by term
    group_variance : float
        Random-intercept variance
    residual_variance : float
        Residual variance
    log_likelihood : float
        (Restricted) log-likelihood at the optimum
    converged : bool
        Whether the optimizer reported convergence
    warnings : list[str]
        Warnings raised during fitting
    engine : str
        Name of the engine that produced this result
    engine_version : str
        Version of the engine/package
    execution_time_seconds : float
        Time taken for fitting
    """

    specification: str
    response: str
    n_obs: int
    n_groups: int = 0
    coefficients: dict = field(default_factory=dict)
    std_errors: dict = field(default_factory=dict)
    z_stats: dict = field(default_factory=dict)
    p_values: dict = field(default_factory=dict)
    ci_lower: dict = field(default_factory=dict)
    ci_upper: dict = field(default_factory=dict)
    group_variance: float = 0.0
    residual_variance: float = 0.0
    log_likelihood: float = 0.0
    converged: bool = True
    warnings: list = field(default_factory=list)
    engine: str = 'unknown'
    engine_version: str = 'unknown'
    execution_time_seconds: float = 0.0

    @property
    def terms(self) -> list[str]:
        return list(self.coefficients)

    def get_coefficient(self, term: str) -> Optional[float]:
        """Get coefficient for a term, or None if not found."""
        return self.coefficients.get(term)

    def is_significant(self, term: str, level: float = 0.05) -> bool:
        """Check if coefficient is significant at given level."""
        p = self.p_values.get(term)
        return p is not None and p < level

    def format_coefficient(self, term: str, decimals: int = 3) -> str:
        """Format coefficient with significance stars and SE."""
        coef = self.coefficients.get(term)
        se = self.std_errors.get(term)
        p = self.p_values.get(term)

        if coef is None:
            return ''

        stars = ''
        if p is not None:
            if p < 0.001:
                stars = '***'
            elif p < 0.01:
                stars = '**'
            elif p < 0.05:
                stars = '*'

        if se is not None:
            return f"{coef:.{decimals}f}{stars} ({se:.{decimals}f})"
        return f"{coef:.{decimals}f}{stars}"

    def to_frame(self, decimals: int = 3) -> pd.DataFrame:
        """Coefficient table, one row per fixed-effect term."""
        rows = [
            {
                'term': term,
                'estimate': self.coefficients[term],
                'std_error': self.std_errors.get(term, np.nan),
                'z': self.z_stats.get(term, np.nan),
                'p_value': self.p_values.get(term, np.nan),
                'ci_lower': self.ci_lower.get(term, np.nan),
                'ci_upper': self.ci_upper.get(term, np.nan),
            }
            for term in self.terms
        ]
        return pd.DataFrame(rows).round(decimals)

    def variance_components(self, decimals: int = 3) -> pd.DataFrame:
        """Random-intercept and residual variance as a table."""
        return pd.DataFrame([
            {'component': 'subject intercept', 'variance': self.group_variance,
             'sd': float(np.sqrt(self.group_variance))},
            {'component': 'residual', 'variance': self.residual_variance,
             'sd': float(np.sqrt(self.residual_variance))},
        ]).round(decimals)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return asdict(self)

    def to_json(self, path: Path) -> None:
        """Write result to JSON file."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2, default=str)

    @classmethod
    def from_json(cls, path: Path) -> 'FitResult':
        """Load result from JSON file."""
        with open(path) as f:
            data = json.load(f)
        return cls(**data)

    @classmethod
    def from_dict(cls, data: dict) -> 'FitResult':
        """Create from dictionary."""
        return cls(**data)


# ============================================================
# BAYESIAN RESULT
# ============================================================

@dataclass
class PosteriorResult:
    """
    Container for an MCMC fit.

    Attributes
    ----------
    specification : str
        Name of the specification that was fitted
    response : str
        Response column
    idata : arviz.InferenceData
        Posterior draws plus prior, predictive and observed groups
    terms : list[str]
        Fixed-effect term tags, in the order of the ``b`` coordinate
    group : str
        Grouping factor name
    n_obs : int
        Number of observations
    n_groups : int
        Number of grouping units
    priors : dict[str, str]
        Coefficient class -> prior actually used
    sampler : dict
        Sampler configuration used
    warnings : list[str]
        Sampler diagnostics worth reporting
    engine : str
        Name of the engine that produced this result
    engine_version : str
        Version of the engine/package
    execution_time_seconds : float
        Time taken for sampling
    """

    specification: str
    response: str
    idata: Any
    terms: list = field(default_factory=list)
    group: str = 'subject_id'
    n_obs: int = 0
    n_groups: int = 0
    priors: dict = field(default_factory=dict)
    sampler: dict = field(default_factory=dict)
    warnings: list = field(default_factory=list)
    engine: str = 'unknown'
    engine_version: str = 'unknown'
    execution_time_seconds: float = 0.0

    @property
    def sd_name(self) -> str:
        return f'sd_{self.group}'

    @property
    def n_chains(self) -> int:
        return int(self.idata.posterior.sizes['chain'])

    @property
    def n_draws(self) -> int:
        return int(self.idata.posterior.sizes['draw'])

    def parameter_labels(self) -> list[tuple[str, str, dict]]:
        """(label, variable, selection) for every population-level parameter."""
        labels = [('Intercept', 'Intercept', {})]
        labels += [(term, 'b', {'term': term}) for term in self.terms]
        labels.append((f'sd({self.group})', self.sd_name, {}))
        labels.append(('sigma', 'sigma', {}))
        return labels

    def draws(self, label: str) -> np.ndarray:
        """
        Flattened posterior draws (all chains) for one parameter.

        Parameters
        ----------
        label : str
            'Intercept', a term tag, 'sigma' or 'sd(<group>)'
        """
        for name, var, sel in self.parameter_labels():
            if name == label:
                values = self.idata.posterior[var]
                if sel:
                    values = values.sel(sel)
                return np.asarray(values).reshape(-1)
        available = ', '.join(name for name, _, _ in self.parameter_labels())
        raise KeyError(f"Unknown parameter: '{label}'. Available: {available}")

    def to_frame(self, decimals: int = 3, prob: float = 0.95) -> pd.DataFrame:
        """
        Posterior summary table.

        Estimate is the posterior mean, Est.Error the posterior SD, and the
        interval is the equal-tailed ``prob`` interval. R-hat and effective
        sample sizes come from arviz.
        """
        import arviz as az

        lo_q, hi_q = (1 - prob) / 2, 1 - (1 - prob) / 2
        pct = int(round(prob * 100))

        rows = []
        for label, var, sel in self.parameter_labels():
            values = self.idata.posterior[var]
            if sel:
                values = values.sel(sel)
            flat = np.asarray(values).reshape(-1)
            rows.append({
                'parameter': label,
                'Estimate': float(np.mean(flat)),
                'Est.Error': float(np.std(flat, ddof=1)) if flat.size > 1 else np.nan,
                f'l-{pct}% CI': float(np.quantile(flat, lo_q)),
                f'u-{pct}% CI': float(np.quantile(flat, hi_q)),
                'Rhat': _scalar(az.rhat(values.to_dataset(name=var))[var]),
                'Bulk_ESS': _scalar(az.ess(values.to_dataset(name=var), method='bulk')[var]),
                'Tail_ESS': _scalar(az.ess(values.to_dataset(name=var), method='tail')[var]),
            })
        return pd.DataFrame(rows).round(decimals)

    def probability_positive(self, label: str) -> float:
        """Posterior probability that a parameter exceeds zero."""
        return float(np.mean(self.draws(label) > 0))


def _scalar(value) -> float:
    try:
        return float(np.asarray(value))
    except (TypeError, ValueError):
        return float('nan')


# ============================================================
# ENGINE INTERFACE
# ============================================================

@runtime_checkable
class AnalysisEngine(Protocol):
    """
    Protocol defining the interface for model-fitting engines.

    Attributes
    ----------
    name : str
        Engine identifier (e.g., 'frequentist', 'bayesian')

    Methods
    -------
    validate_installation()
        Check if the engine's libraries are importable.
    fit(df, spec, **kwargs)
        Fit one specification to an analysis table.
    fit_batch(df, specs, **kwargs)
        Fit several specifications.
    """

    @property
    def name(self) -> str:
        """Return the engine identifier."""
        ...

    @property
    def version(self) -> str:
        """Return the engine/package version."""
        ...

    def validate_installation(self) -> tuple[bool, str]:
        """
        Check if the engine is properly configured and available.

        Returns
        -------
        tuple[bool, str]
            (is_available, message) - True if usable, with status message
        """
        ...

    def fit(self, df: pd.DataFrame, spec, **kwargs):
        """
        Fit a specification.

        Parameters
        ----------
        df : pd.DataFrame
            Analysis table with derived columns
        spec : ModelSpec
            What to fit

        Returns
        -------
        FitResult or PosteriorResult
            Engine-specific result container
        """
        ...

    def fit_batch(self, df: pd.DataFrame, specs: list, **kwargs) -> list:
        """Fit several specifications."""
        ...


class BaseAnalysisEngine:
    """
    Base implementation with common functionality for analysis engines.

    Concrete engines should inherit from this class.
    """

    def __init__(self):
        """Initialize base engine."""
        pass

    @property
    def name(self) -> str:
        """Return engine name (must be overridden)."""
        raise NotImplementedError

    @property
    def version(self) -> str:
        """Return engine version (must be overridden)."""
        raise NotImplementedError

    def validate_installation(self) -> tuple[bool, str]:
        """Validate installation (must be overridden)."""
        raise NotImplementedError

    def fit(self, df: pd.DataFrame, spec, **kwargs):
        """Fit a specification (must be overridden)."""
        raise NotImplementedError

    def fit_batch(self, df: pd.DataFrame, specs: list, **kwargs) -> list:
        """
        Fit specifications one after another.

        Failures are reported and skipped so that one bad specification
        does not hide the others.
        """
        results = []
        for spec in specs:
            try:
                results.append(self.fit(df, spec, **kwargs))
            except (ValueError, KeyError, np.linalg.LinAlgError) as e:
                print(f"  ERROR in {spec.name}: {e}")
        return results

    @staticmethod
    def _model_frame(df: pd.DataFrame, spec) -> pd.DataFrame:
        """Columns the model needs; rows with missing values are rejected."""
        missing = [c for c in spec.variables if c not in df.columns]
        if missing:
            raise KeyError(f"Missing columns for '{spec.name}': {missing}")

        frame = df[spec.variables]
        if frame.isna().any().any():
            raise ValueError(
                f"Analysis table has missing values in {spec.variables}; "
                "run the clean stage first"
            )
        if len(frame) == 0:
            raise ValueError("No observations to fit")
        return frame.reset_index(drop=True)
