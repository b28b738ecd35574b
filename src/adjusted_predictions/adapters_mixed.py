"""Mixed-effects model adapters.

Implements the ``ModelAdapter`` protocol for models with random
effects:

* :class:`MixedLMAdapter` — linear mixed models (``MixedLM``)

      y = Xβ + Zu + ε,   u ~ N(0, Σ),   ε ~ N(0, σ²I)

  ``type="fe"`` gives population-level predictions ``Xβ`` with
  delta-method confidence intervals.  ``type="re"`` keeps the same
  point prediction but widens the interval to a *prediction*
  interval for a new observation of an unspecified group:

      Var = x'V_β x + z'Σz + σ²

  where ``z`` is the random-effect design row (intercept and any
  random slopes) at the grid point.

* :class:`BayesMixedGLMAdapter` — variational Bayes mixed GLMs
  (``BinomialBayesMixedGLM``, ``PoissonBayesMixedGLM``).  The
  approximate posterior of the fixed effects is Gaussian with
  independent components ``N(fe_mean, fe_sd²)``; predictions are the
  posterior median of ``g⁻¹(Xβ)`` and intervals are posterior
  quantiles.

Variance components declared through ``vc_formula`` are not part of
``Σ`` and do not enter the prediction interval.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, final

import numpy as np

from ._design import (
    ModelTerms,
    build_exog,
    build_named_columns,
    describe_model,
    exog_names,
)
from .adapters import (
    GridDesign,
    PredictionFrame,
    PredictionRequest,
    _cov_params,
    _LinearPredictorMixin,
    _sm_model,
)
from .exceptions import PredictionFailureError
from .links import IDENTITY, Link, link_from_statsmodels
from .uncertainty import check_covariance, delta_method_se, draws_interval

logger = logging.getLogger(__name__)

# ------------------------------------------------------------------ #
# Random-effect design helpers
# ------------------------------------------------------------------ #

_DEFAULT_GROUP_NAME = "Group"


def _re_names(sm_model: Any) -> list[str]:
    names = getattr(sm_model.data, "exog_re_names", None)
    if names is None:
        names = getattr(sm_model, "exog_re_names", None)
    if names is None:
        return [_DEFAULT_GROUP_NAME] * int(sm_model.k_re)
    return list(names)


def _fe_names(sm_model: Any) -> list[str]:
    return exog_names(sm_model)[: int(sm_model.k_fe)]


def _random_effects_exog(
    sm_model: Any,
    rows: Any,
    X: np.ndarray,
    group_names: tuple[str, ...],
) -> np.ndarray:
    """Random-effect design ``Z`` at *rows*.

    Columns named after the grouping variable (statsmodels renames
    the random intercept that way) are intercepts; random slopes are
    matched by name against the fixed-effect design or the rows.
    """
    names = _re_names(sm_model)
    intercepts = {_DEFAULT_GROUP_NAME, *group_names}
    resolved = ["Intercept" if name in intercepts else name for name in names]
    Z = build_named_columns(resolved, rows, _fe_names(sm_model), X)
    if Z is None:
        msg = (
            "Cannot rebuild the random-effects design at new rows: columns "
            f"{names} are neither the group intercept, fixed-effect columns, "
            "nor numeric predictors."
        )
        raise PredictionFailureError(msg)
    return Z


# ------------------------------------------------------------------ #
# MixedLMAdapter
# ------------------------------------------------------------------ #


@final
@dataclass(frozen=True)
class MixedLMAdapter(_LinearPredictorMixin):
    """Linear mixed models fitted with ``MixedLM`` / ``smf.mixedlm``."""

    @property
    def name(self) -> str:
        return "mixed"

    @property
    def supported_types(self) -> tuple[str, ...]:
        return ("fe", "re")

    def matches(self, results: Any) -> bool:
        from statsmodels.regression.mixed_linear_model import MixedLM

        return isinstance(_sm_model(results), MixedLM)

    def enumerate_terms(self, results: Any) -> ModelTerms:
        sm_model = results.model
        model_terms = describe_model(sm_model, names=_fe_names(sm_model))
        groups = tuple(
            name
            for name in _re_names(sm_model)
            if name in model_terms.frame.columns and name not in model_terms.predictors
        )
        return replace(model_terms, random=groups)

    def extract_vcov(self, results: Any) -> np.ndarray:
        k_fe = int(results.model.k_fe)
        return _cov_params(results)[:k_fe, :k_fe]

    def link_inverse(self, results: Any) -> Link:  # noqa: ARG002
        return IDENTITY

    def validate_request(self, results, model_terms, term_names, type) -> None:  # noqa: ARG002
        return None

    def predict(self, results: Any, design: GridDesign, request: PredictionRequest) -> PredictionFrame:
        sm_model = results.model
        X = build_exog(sm_model, design.rows, _fe_names(sm_model))
        params = np.asarray(results.fe_params, dtype=float)
        V = check_covariance(self.extract_vcov(results), params.shape[0])
        if request.type == "fe":
            return self._linear_frame(X, params, V, IDENTITY, design, request)

        random = self.enumerate_terms(results).random
        Z = design.average_rows(_random_effects_exog(sm_model, design.rows, X, random))
        X = design.average_rows(X)
        cov_re = np.asarray(results.cov_re, dtype=float)
        if cov_re.shape != (Z.shape[1], Z.shape[1]):
            msg = (
                f"Random-effects covariance has shape {cov_re.shape} but the "
                f"random-effects design has {Z.shape[1]} columns."
            )
            raise PredictionFailureError(msg)

        predicted = X @ params
        se_fixed = delta_method_se(X, V)
        re_variance = np.einsum("ij,jk,ik->i", Z, cov_re, Z)
        sd = np.sqrt(se_fixed**2 + np.clip(re_variance, 0.0, None) + float(results.scale))
        logger.debug(
            "Prediction interval: %d random-effect column(s), residual variance %.4g",
            Z.shape[1],
            float(results.scale),
        )
        return PredictionFrame.from_vectors(
            predicted,
            sd,
            predicted - request.z * sd,
            predicted + request.z * sd,
            interval="prediction",
            method="delta",
        )


# ------------------------------------------------------------------ #
# BayesMixedGLMAdapter
# ------------------------------------------------------------------ #


@final
@dataclass(frozen=True)
class BayesMixedGLMAdapter:
    """Variational Bayes mixed GLMs (binomial and Poisson)."""

    @property
    def name(self) -> str:
        return "bayes"

    @property
    def supported_types(self) -> tuple[str, ...]:
        return ("fe",)

    def matches(self, results: Any) -> bool:
        from statsmodels.genmod.bayes_mixed_glm import (
            BinomialBayesMixedGLM,
            PoissonBayesMixedGLM,
        )

        return isinstance(_sm_model(results), (BinomialBayesMixedGLM, PoissonBayesMixedGLM))

    @staticmethod
    def _names(sm_model: Any) -> list[str]:
        names = getattr(sm_model, "fep_names", None)
        if names is None:
            names = exog_names(sm_model)[: int(sm_model.k_fep)]
        return list(names)

    def enumerate_terms(self, results: Any) -> ModelTerms:
        return describe_model(results.model, names=self._names(results.model))

    def extract_vcov(self, results: Any) -> np.ndarray:
        return np.diag(np.asarray(results.fe_sd, dtype=float) ** 2)

    def link_inverse(self, results: Any) -> Link:
        return link_from_statsmodels(results.model.family.link)

    def validate_request(self, results, model_terms, term_names, type) -> None:  # noqa: ARG002
        return None

    def predict(self, results: Any, design: GridDesign, request: PredictionRequest) -> PredictionFrame:
        sm_model = results.model
        X = design.link_rows(build_exog(sm_model, design.rows, self._names(sm_model)))
        mean = np.asarray(results.fe_mean, dtype=float)
        sd = np.asarray(results.fe_sd, dtype=float)
        link = self.link_inverse(results)

        beta = request.rng.normal(mean, sd, size=(request.n_sims, mean.shape[0]))
        draws = design.response_average(link.inverse(X @ beta.T)).T
        predicted = np.median(draws, axis=0)
        se, low, high = draws_interval(draws, predicted, request.ci_level)
        logger.debug("Posterior predictions: %d draws of %d fixed effects", request.n_sims, mean.shape[0])
        return PredictionFrame.from_vectors(predicted, se, low, high, method="posterior", draws=draws)


from .adapters import register_adapter  # noqa: E402

register_adapter("mixed", MixedLMAdapter)
register_adapter("bayes", BayesMixedGLMAdapter)
