"""
Frequentist Mixed-Model Engine.

Fits a linear mixed model with a random intercept per subject using
statsmodels MixedLM (REML). This is the point-estimate counterpart of the
Bayesian engine and the default for ``run_estimation``.

Usage
-----
    from analysis import get_engine

    engine = get_engine('frequentist')
    result = engine.fit(df, spec)
"""
from __future__ import annotations

import time
import warnings
from typing import Optional

import numpy as np
import pandas as pd

from ..base import BaseAnalysisEngine, FitConvergenceWarning, FitResult
from ..factory import register_engine
from ..specifications import ModelSpec, spec_to_formula


@register_engine('frequentist')
class FrequentistEngine(BaseAnalysisEngine):
    """
    statsmodels MixedLM estimation engine.

    Features
    --------
    - Random intercept for the ModelSpec grouping factor
    - REML (default) or ML estimation
    - Convergence and singular-covariance warnings captured onto the result
      instead of aborting; other warnings are passed on unchanged
    """

    def __init__(self, reml: bool = True, method: Optional[list[str]] = None):
        super().__init__()
        self.reml = reml
        # None keeps statsmodels' own optimizer order
        self.method = method

    @property
    def name(self) -> str:
        return 'frequentist'

    @property
    def version(self) -> str:
        import statsmodels
        return f"statsmodels {statsmodels.__version__}"

    def validate_installation(self) -> tuple[bool, str]:
        """Check that statsmodels is importable."""
        try:
            import statsmodels
            return True, f"Frequentist engine ready (statsmodels {statsmodels.__version__})"
        except ImportError as e:
            return False, f"Missing dependency: {e}"

    def fit(
        self,
        df: pd.DataFrame,
        spec: ModelSpec,
        alpha: float = 0.05,
        **kwargs,
    ) -> FitResult:
        """
        Fit one specification.

        Priors on the ModelSpec are ignored; they only apply to the Bayesian
        engine.

        Parameters
        ----------
        df : pd.DataFrame
            Analysis table with derived columns
        spec : ModelSpec
            What to fit
        alpha : float
            1 - confidence level for the intervals

        Returns
        -------
        FitResult
            Fixed-effect estimates and variance components
        """
        import statsmodels.formula.api as smf
        from statsmodels.tools.sm_exceptions import ConvergenceWarning, SingularMatrixWarning

        # Diagnostics that belong on the result; other warnings pass through
        fit_categories = (ConvergenceWarning, SingularMatrixWarning)

        start_time = time.time()
        frame = self._model_frame(df, spec)

        model = smf.mixedlm(
            spec_to_formula(spec),
            data=frame,
            groups=frame[spec.group],
        )

        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter('always')
            if self.method is None:
                fitted = model.fit(reml=self.reml)
            else:
                fitted = model.fit(reml=self.reml, method=self.method)

        fit_warnings = []
        for w in caught:
            if issubclass(w.category, fit_categories):
                fit_warnings.append(str(w.message))
            else:
                warnings.showwarning(w.message, w.category, w.filename, w.lineno)
        if not fitted.converged:
            fit_warnings.append("MixedLM optimizer did not converge")
        for message in fit_warnings:
            warnings.warn(f"{spec.name}: {message}", FitConvergenceWarning, stacklevel=2)

        fe = fitted.fe_params
        terms = list(fe.index)
        conf = fitted.conf_int(alpha=alpha).loc[terms]

        return FitResult(
            specification=spec.name,
            response=spec.response,
            n_obs=int(fitted.nobs),
            n_groups=int(frame[spec.group].nunique()),
            coefficients={t: float(fe[t]) for t in terms},
            std_errors={t: float(fitted.bse_fe[t]) for t in terms},
            z_stats={t: float(fitted.tvalues[t]) for t in terms},
            p_values={t: float(fitted.pvalues[t]) for t in terms},
            ci_lower={t: float(conf.loc[t, 0]) for t in terms},
            ci_upper={t: float(conf.loc[t, 1]) for t in terms},
            group_variance=float(np.asarray(fitted.cov_re)[0, 0]),
            residual_variance=float(fitted.scale),
            log_likelihood=float(fitted.llf),
            converged=bool(fitted.converged),
            warnings=fit_warnings,
            engine=self.name,
            engine_version=self.version,
            execution_time_seconds=time.time() - start_time,
        )
