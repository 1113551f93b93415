"""
Analysis Engine Implementations.

Available Engines
-----------------
- frequentist: statsmodels MixedLM, REML point estimates (default)
- bayesian: PyMC NUTS sampler with arviz summaries

Engines are automatically registered via the @register_engine decorator
when this package is imported.
"""
from __future__ import annotations

# Import engines to trigger registration
from . import frequentist_engine
from . import bayesian_engine
