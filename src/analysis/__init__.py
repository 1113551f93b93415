"""
Analysis Engine Package.

Provides a common interface for fitting the tutorial's mixed-effects models
with a frequentist engine (statsmodels MixedLM) and a Bayesian engine
(PyMC NUTS).

Usage
-----
    from analysis import get_engine, get_specification

    spec = get_specification('log_informative')

    # Frequentist fit
    result = get_engine('frequentist').fit(df, spec)

    # Bayesian fit
    posterior = get_engine('bayesian').fit(df, spec, sampler=SamplerConfig())

    # List available engines
    engines = list_engines()
    # {'bayesian': True, 'frequentist': True}
"""
from __future__ import annotations

from .base import (
    AnalysisEngine,
    BaseAnalysisEngine,
    FitConvergenceWarning,
    FitResult,
    PosteriorResult,
)
from .factory import fit_specification, get_engine, list_engines, register_engine
from .specifications import (
    ModelSpec,
    Prior,
    build_model_spec,
    load_specifications,
    get_specification,
    list_specifications,
    validate_specification,
)

__all__ = [
    # Base classes and types
    'AnalysisEngine',
    'BaseAnalysisEngine',
    'FitConvergenceWarning',
    'FitResult',
    'PosteriorResult',
    # Factory functions
    'fit_specification',
    'get_engine',
    'list_engines',
    'register_engine',
    # Specification utilities
    'ModelSpec',
    'Prior',
    'build_model_spec',
    'load_specifications',
    'get_specification',
    'list_specifications',
    'validate_specification',
]
