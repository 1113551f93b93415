"""
Bayesian Mixed-Model Engine.

Fits the random-intercept model with PyMC's NUTS sampler:

    y_i   ~ Normal(Intercept + X_i b + r[subject_i], sigma)
    r     = sd * z,  z ~ Normal(0, 1)

Priors come from the specification; classes without one get data-scaled
defaults (Student-t on the intercept, flat on slopes, half Student-t on the
scales). A finished fit can be stored at a fixed file path and is then
loaded instead of resampled.

Usage
-----
    from analysis import get_engine
    from analysis.engines.bayesian_engine import SamplerConfig

    engine = get_engine('bayesian')
    result = engine.fit(df, spec, sampler=SamplerConfig(file=fit_path(spec.name)))
"""
from __future__ import annotations

import sys
import time
import warnings
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional, Union

import numpy as np
import pandas as pd
from scipy import stats

from ..base import BaseAnalysisEngine, FitConvergenceWarning, PosteriorResult
from ..factory import register_engine
from ..specifications import PRIOR_CLASSES, ModelSpec, Prior, design_matrix

# Add src/ for config and utils imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from config import (
    BAYES_WARMUP,
    BAYES_ITER,
    BAYES_CHAINS,
    BAYES_CORES,
    BAYES_THREADS,
    BAYES_SEED,
    BAYES_TARGET_ACCEPT,
    RHAT_THRESHOLD,
)
from utils.cache import FitCache

# Prior predictive draws when every prior can be sampled forward
PRIOR_PREDICTIVE_DRAWS = 500


@dataclass
class SamplerConfig:
    """
    Sampler settings.

    Attributes
    ----------
    warmup : int
        Tuning iterations per chain
    iter : int
        Total iterations per chain, warmup included
    chains : int
        Independent chains
    cores : int
        Chains run in parallel
    threads : int
        Recorded with the fit; PyMC has no within-chain threading
    seed : int, optional
        Random seed; fixes the draws when set
    target_accept : float
        NUTS target acceptance rate (step-size adaptation)
    file : str or Path, optional
        Fit cache path; an existing file short-circuits sampling
    progressbar : bool
        Show PyMC's progress bar
    """

    warmup: int = BAYES_WARMUP
    iter: int = BAYES_ITER
    chains: int = BAYES_CHAINS
    cores: int = BAYES_CORES
    threads: int = BAYES_THREADS
    seed: Optional[int] = BAYES_SEED
    target_accept: float = BAYES_TARGET_ACCEPT
    file: Optional[Union[str, Path]] = None
    progressbar: bool = True

    def __post_init__(self):
        if self.iter <= self.warmup:
            raise ValueError(f"iter ({self.iter}) must exceed warmup ({self.warmup})")
        if self.chains < 1 or self.cores < 1:
            raise ValueError("chains and cores must be positive")
        if not 0 < self.target_accept < 1:
            raise ValueError(f"target_accept must be in (0, 1): {self.target_accept}")

    @property
    def draws(self) -> int:
        """Post-warmup draws per chain."""
        return self.iter - self.warmup

    def to_dict(self) -> dict:
        data = asdict(self)
        data['file'] = str(self.file) if self.file is not None else None
        return data


def default_priors(y: np.ndarray) -> dict[str, Optional[Prior]]:
    """
    Data-scaled default priors.

    The scale is the normal-consistent MAD of the response, floored at 2.5.
    ``b`` maps to None, meaning a flat prior.
    """
    scale = max(round(float(stats.median_abs_deviation(y, scale='normal')), 1), 2.5)
    location = round(float(np.median(y)), 1)
    return {
        'Intercept': Prior('student_t', {'nu': 3.0, 'mu': location, 'sigma': scale}),
        'b': None,
        'sigma': Prior('half_student_t', {'nu': 3.0, 'sigma': scale}),
        'sd': Prior('half_student_t', {'nu': 3.0, 'sigma': scale}),
    }


def resolve_priors(y: np.ndarray, spec: ModelSpec) -> dict[str, Optional[Prior]]:
    """Spec priors with defaults filled in for the classes it leaves out."""
    resolved = default_priors(y)
    for coef_class in PRIOR_CLASSES:
        if spec.prior_for(coef_class) is not None:
            resolved[coef_class] = spec.prior_for(coef_class)
    return resolved


def _prior_variable(name: str, prior: Prior, positive: bool = False, dims=None):
    """
    Create a PyMC random variable for a prior inside the current model.

    Symmetric families on a scale parameter are truncated at zero: the
    half-distribution when centred at zero, an explicit truncation
    otherwise.
    """
    import pymc as pm

    p = prior.params
    family = prior.family

    if family == 'half_normal':
        return pm.HalfNormal(name, sigma=p['sigma'], dims=dims)
    if family == 'half_student_t':
        return pm.HalfStudentT(name, nu=p['nu'], sigma=p['sigma'], dims=dims)
    if family == 'half_cauchy':
        return pm.HalfCauchy(name, beta=p['beta'], dims=dims)
    if family == 'exponential':
        return pm.Exponential(name, lam=p['lam'], dims=dims)

    if family == 'normal':
        if not positive:
            return pm.Normal(name, mu=p['mu'], sigma=p['sigma'], dims=dims)
        if p['mu'] == 0:
            return pm.HalfNormal(name, sigma=p['sigma'], dims=dims)
        base = pm.Normal.dist(mu=p['mu'], sigma=p['sigma'])
    elif family == 'student_t':
        if not positive:
            return pm.StudentT(name, nu=p['nu'], mu=p['mu'], sigma=p['sigma'], dims=dims)
        if p['mu'] == 0:
            return pm.HalfStudentT(name, nu=p['nu'], sigma=p['sigma'], dims=dims)
        base = pm.StudentT.dist(nu=p['nu'], mu=p['mu'], sigma=p['sigma'])
    elif family == 'cauchy':
        if not positive:
            return pm.Cauchy(name, alpha=p['alpha'], beta=p['beta'], dims=dims)
        if p['alpha'] == 0:
            return pm.HalfCauchy(name, beta=p['beta'], dims=dims)
        base = pm.Cauchy.dist(alpha=p['alpha'], beta=p['beta'])
    else:
        raise ValueError(f"Unsupported prior family: '{family}'")

    return pm.Truncated(name, base, lower=0, dims=dims)


def supports_prior_predictive(priors: dict[str, Optional[Prior]]) -> bool:
    """
    True when every prior can be sampled forward.

    A flat prior has no forward draws, and PyMC cannot forward-sample a
    Student-t truncated at zero (a scale prior centred away from zero).
    """
    if any(p is None for p in priors.values()):
        return False
    for coef_class in ('sigma', 'sd'):
        prior = priors[coef_class]
        if prior.family == 'student_t' and prior.params['mu'] != 0:
            return False
    return True


@register_engine('bayesian')
class BayesianEngine(BaseAnalysisEngine):
    """
    PyMC NUTS estimation engine.

    Features
    --------
    - Non-centered random intercepts
    - Priors per coefficient class with data-scaled defaults
    - Prior and posterior predictive draws stored with the fit
    - Fixed-path fit cache
    """

    def __init__(self, rhat_threshold: float = RHAT_THRESHOLD):
        super().__init__()
        self.rhat_threshold = rhat_threshold

    @property
    def name(self) -> str:
        return 'bayesian'

    @property
    def version(self) -> str:
        import pymc
        return f"pymc {pymc.__version__}"

    def validate_installation(self) -> tuple[bool, str]:
        """Check that PyMC and arviz are importable."""
        try:
            import arviz
            import pymc
            return True, f"Bayesian engine ready (pymc {pymc.__version__}, arviz {arviz.__version__})"
        except ImportError as e:
            return False, f"Missing dependency: {e}"

    # ------------------------------------------------------------------
    # Model
    # ------------------------------------------------------------------

    def build_model(self, df: pd.DataFrame, spec: ModelSpec):
        """
        Build the PyMC model for a specification.

        Returns
        -------
        pymc.Model
            Model with variables Intercept, b (dim 'term'),
            sd_<group>, z_<group>, r_<group>, sigma and the observed response
        """
        import pymc as pm

        frame = self._model_frame(df, spec)
        y = frame[spec.response].to_numpy(dtype=float)
        X = design_matrix(frame, spec)
        group_idx, group_levels = pd.factorize(frame[spec.group], sort=True)
        priors = resolve_priors(y, spec)

        coords = {
            'term': list(spec.fixed_effects),
            spec.group: [str(g) for g in group_levels],
            'obs_id': np.arange(len(y)),
        }

        with pm.Model(coords=coords) as model:
            intercept = _prior_variable('Intercept', priors['Intercept'])
            if priors['b'] is None:
                b = pm.Flat('b', dims='term')
            else:
                b = _prior_variable('b', priors['b'], dims='term')

            sd = _prior_variable(f'sd_{spec.group}', priors['sd'], positive=True)
            z = pm.Normal(f'z_{spec.group}', mu=0.0, sigma=1.0, dims=spec.group)
            r = pm.Deterministic(f'r_{spec.group}', sd * z, dims=spec.group)

            sigma = _prior_variable('sigma', priors['sigma'], positive=True)

            mu = intercept + pm.math.dot(X, b) + r[group_idx]
            pm.Normal(spec.response, mu=mu, sigma=sigma, observed=y, dims='obs_id')

        return model

    # ------------------------------------------------------------------
    # Fitting
    # ------------------------------------------------------------------

    def fit(
        self,
        df: pd.DataFrame,
        spec: ModelSpec,
        sampler: Optional[SamplerConfig] = None,
        refit: bool = False,
        verbose: bool = True,
        **kwargs,
    ) -> PosteriorResult:
        """
        Fit one specification, or load it from the sampler's fit file.

        Parameters
        ----------
        df : pd.DataFrame
            Analysis table with derived columns
        spec : ModelSpec
            What to fit
        sampler : SamplerConfig, optional
            Sampler settings (default: config values, no fit file)
        refit : bool
            Discard an existing fit file and sample again
        verbose : bool
            Print cache messages

        Returns
        -------
        PosteriorResult
            Posterior draws and diagnostics
        """
        sampler = sampler or SamplerConfig()

        if sampler.file is None:
            return self._fit_uncached(df, spec, sampler)

        cache = FitCache(sampler.file)
        if refit:
            cache.invalidate()
        return cache.get_or_compute(
            lambda: self._fit_uncached(df, spec, sampler),
            verbose=verbose,
        )

    def _fit_uncached(
        self,
        df: pd.DataFrame,
        spec: ModelSpec,
        sampler: SamplerConfig,
    ) -> PosteriorResult:
        start_time = time.time()

        frame = self._model_frame(df, spec)
        y = frame[spec.response].to_numpy(dtype=float)
        priors = resolve_priors(y, spec)
        model = self.build_model(frame, spec)

        sample_prior = supports_prior_predictive(priors)
        idata = self._sample(model, sampler, sample_prior=sample_prior)

        fit_warnings = self._diagnose(idata, spec)
        for message in fit_warnings:
            warnings.warn(f"{spec.name}: {message}", FitConvergenceWarning, stacklevel=2)

        return PosteriorResult(
            specification=spec.name,
            response=spec.response,
            idata=idata,
            terms=list(spec.fixed_effects),
            group=spec.group,
            n_obs=len(frame),
            n_groups=int(frame[spec.group].nunique()),
            priors={k: (str(v) if v is not None else 'flat') for k, v in priors.items()},
            sampler=sampler.to_dict(),
            warnings=fit_warnings,
            engine=self.name,
            engine_version=self.version,
            execution_time_seconds=time.time() - start_time,
        )

    def _sample(self, model, sampler: SamplerConfig, sample_prior: bool = True):
        """Run NUTS plus predictive sampling; returns arviz InferenceData."""
        import pymc as pm

        with model:
            idata = pm.sample(
                draws=sampler.draws,
                tune=sampler.warmup,
                chains=sampler.chains,
                cores=sampler.cores,
                target_accept=sampler.target_accept,
                random_seed=sampler.seed,
                progressbar=sampler.progressbar,
            )
            if sample_prior:
                idata.extend(
                    pm.sample_prior_predictive(PRIOR_PREDICTIVE_DRAWS, random_seed=sampler.seed)
                )
            pm.sample_posterior_predictive(
                idata,
                random_seed=sampler.seed,
                extend_inferencedata=True,
                progressbar=sampler.progressbar,
            )
        return idata

    def _diagnose(self, idata, spec: ModelSpec) -> list[str]:
        """Divergences and R-hat problems as readable messages."""
        import arviz as az

        messages = []

        if hasattr(idata, 'sample_stats') and 'diverging' in idata.sample_stats:
            n_div = int(idata.sample_stats['diverging'].sum())
            if n_div > 0:
                messages.append(
                    f"{n_div} divergent transition(s) after warmup; "
                    "consider a higher target_accept"
                )

        if idata.posterior.sizes.get('chain', 1) > 1:
            var_names = ['Intercept', 'b', f'sd_{spec.group}', 'sigma']
            rhat = az.rhat(idata, var_names=var_names)
            worst = max(float(rhat[v].max()) for v in var_names)
            if worst > self.rhat_threshold:
                messages.append(
                    f"max R-hat {worst:.3f} exceeds {self.rhat_threshold}; chains have not mixed"
                )

        return messages
