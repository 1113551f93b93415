"""
Engine registry for the mixed-model fitters.

Two engines ship with the project: 'frequentist' (statsmodels MixedLM)
and 'bayesian' (PyMC NUTS). Both register themselves with
``@register_engine`` when ``analysis.engines`` is imported; the registry
loads that package on first use.

Usage
-----
    from analysis.factory import get_engine, fit_specification

    engine = get_engine()                  # config.ANALYSIS_ENGINE
    result = get_engine('bayesian').fit(df, spec, sampler=sampler)

    # One call from a specification name to a result
    result = fit_specification(df, 'log_default', engine='frequentist')
"""
from __future__ import annotations

import sys
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Union

if TYPE_CHECKING:
    import pandas as pd
    from .base import AnalysisEngine
    from .specifications import ModelSpec

# Engine name -> engine class
_engine_registry: dict[str, type] = {}


def register_engine(name: str):
    """
    Class decorator adding an engine to the registry under ``name``.

    Registering a name twice replaces the earlier class.
    """
    def decorator(cls):
        _engine_registry[name] = cls
        return cls
    return decorator


def get_engine(name: Optional[str] = None, **kwargs) -> 'AnalysisEngine':
    """
    Instantiate a registered engine.

    Parameters
    ----------
    name : str, optional
        'frequentist' or 'bayesian'; defaults to config.ANALYSIS_ENGINE
    **kwargs
        Engine constructor arguments (e.g. ``reml=False``,
        ``rhat_threshold=1.05``)

    Raises
    ------
    ValueError
        If no engine is registered under ``name``
    """
    _ensure_engines_loaded()

    name = (name or _get_default_engine()).lower()
    if name not in _engine_registry:
        raise ValueError(
            f"Unknown engine: '{name}'. Available engines: "
            f"{', '.join(sorted(_engine_registry))}"
        )
    return _engine_registry[name](**kwargs)


def fit_specification(
    df: 'pd.DataFrame',
    spec: Union[str, 'ModelSpec'],
    engine: Optional[str] = None,
    **kwargs,
):
    """
    Fit a specification, given by name or as a ModelSpec.

    Extra keyword arguments go to the engine's ``fit`` (``alpha`` for the
    frequentist engine; ``sampler`` and ``refit`` for the Bayesian one).

    Returns
    -------
    FitResult or PosteriorResult
    """
    if isinstance(spec, str):
        from .specifications import get_specification
        spec = get_specification(spec)
    return get_engine(engine).fit(df, spec, **kwargs)


def list_engines() -> dict[str, bool]:
    """Registered engine names mapped to whether their libraries import."""
    _ensure_engines_loaded()

    status = {}
    for name in sorted(_engine_registry):
        try:
            status[name], _ = _engine_registry[name]().validate_installation()
        except ImportError:
            status[name] = False
    return status


def get_engine_info(name: str) -> dict:
    """
    Availability report for one engine.

    Returns
    -------
    dict
        Keys 'name', 'available', 'version' and 'message'
    """
    _ensure_engines_loaded()

    info = {'name': name, 'available': False, 'version': 'N/A'}
    if name not in _engine_registry:
        info['message'] = f"Unknown engine: {name}"
        return info

    try:
        engine = _engine_registry[name]()
        info['available'], info['message'] = engine.validate_installation()
        if info['available']:
            info['version'] = engine.version
    except ImportError as e:
        info['message'] = str(e)
    return info


def _get_default_engine() -> str:
    sys.path.insert(0, str(Path(__file__).parent.parent))
    import config
    return config.ANALYSIS_ENGINE


def _ensure_engines_loaded() -> None:
    if not _engine_registry:
        from . import engines  # noqa: F401
