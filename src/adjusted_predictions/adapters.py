"""Model-family adapters for adjusted predictions.

Each supported statsmodels model class is wrapped by an adapter that
implements the :class:`ModelAdapter` protocol.  The adapter knows how
to read the model's predictors, build its design matrix at new rows,
pick the parameter covariance, and turn ``(X, β, V)`` into
predictions with uncertainty bounds.  The prediction engine never
inspects the model object itself: it talks only to the adapter.

Supported families (tag → model classes → prediction types):

=================  ==========================================  ======================
``linear``         OLS, WLS, GLS, GLSAR                        ``fe``
``glm``            GLM with any family/link                    ``fe``
``discrete``       Logit, Probit, Poisson, NegativeBinomial,   ``fe``
                   NegativeBinomialP, GeneralizedPoisson
``zero_inflated``  ZeroInflatedPoisson, ZeroInflated-          ``fe``, ``fe.zi``,
                   NegativeBinomialP, ZeroInflated-            ``zi.prob``
                   GeneralizedPoisson
``hurdle``         HurdleCountModel (Poisson or negative       ``fe``, ``fe.zi``,
                   binomial parts)                             ``zi.prob``
``ordinal``        OrderedModel                                ``fe``
``multinomial``    MNLogit                                     ``fe``
``cox``            PHReg                                       ``fe``, ``surv``,
                                                               ``cumhaz``
=================  ==========================================  ======================

Mixed-effects adapters (``mixed``, ``bayes``) live in
:mod:`.adapters_mixed` and register themselves on import.

Adapters are stateless: a fresh instance is created per request by
:func:`resolve_adapter`.  New families are added with
:func:`register_adapter`; adapters registered later take precedence
when several match the same model.

All prediction functions handed to the compute backend are written as
``fn(params, xp)`` so the same code path is differentiated by finite
differences (NumPy) or autodiff (JAX).
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field, replace
from types import ModuleType
from typing import Any, Protocol, runtime_checkable

import numpy as np
import pandas as pd
import patsy
from typing_extensions import Self

from ._backends import BackendProtocol, PredictionFunction, resolve_backend
from ._design import (
    ModelTerms,
    build_exog,
    build_named_columns,
    categorical_levels,
    describe_model,
    exog_names,
    formula_design,
    referenced_columns,
    response_name,
)
from .exceptions import (
    InvalidTermsError,
    PredictionFailureError,
    UnsupportedModelError,
)
from .links import (
    IDENTITY,
    LOG,
    LOGIT,
    PROBIT,
    Link,
    link_by_name,
    link_from_statsmodels,
    special_functions,
)
from .uncertainty import (
    check_covariance,
    delta_method_se,
    draws_interval,
    jacobian_se,
    link_interval,
    response_interval,
    simulate_parameters,
)

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------ #
# Request / design / output containers
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class GridDesign:
    """Evaluation rows of a reference grid, as seen by an adapter.

    Attributes:
        rows: Frame the model is evaluated at.  Equal to the grid
            itself unless the margin averages over extra rows.
        n_points: Number of grid points (result rows per response
            level).
        row_index: Grid point of each row of *rows*, or ``None`` when
            rows and grid points coincide.
        averaging: ``"link"`` (average design rows before the inverse
            link), ``"response"`` (average predictions) or ``None``.
        term_names: Focal term names in positional order.
    """

    rows: pd.DataFrame = field(repr=False)
    n_points: int
    row_index: np.ndarray | None = field(default=None, repr=False)
    averaging: str | None = None
    term_names: tuple[str, ...] = ()

    def averaging_matrix(self) -> np.ndarray:
        """Matrix ``A`` of shape ``(n_points, len(rows))`` with equal weights.

        ``A @ values`` averages per-row values within each grid point.
        """
        if self.row_index is None:
            return np.eye(self.n_points)
        A = np.zeros((self.n_points, len(self.rows)))
        A[self.row_index, np.arange(len(self.rows))] = 1.0
        return A / A.sum(axis=1, keepdims=True)

    def link_rows(self, values: np.ndarray) -> np.ndarray:
        """Average *values* per grid point when averaging on the link scale."""
        if self.averaging == "link":
            return self.averaging_matrix() @ values
        return values

    def response_average(self, values: Any, xp: ModuleType = np) -> Any:
        """Average *values* per grid point when averaging on the response scale."""
        if self.averaging == "response":
            return xp.asarray(self.averaging_matrix()) @ values
        return values

    def average_rows(self, values: np.ndarray) -> np.ndarray:
        """Average *values* per grid point for either averaging mode."""
        if self.averaging is None:
            return values
        return self.averaging_matrix() @ values


@dataclass(frozen=True)
class PredictionRequest:
    """Per-call options an adapter needs to compute predictions.

    Attributes:
        type: Prediction type (``"fe"``, ``"re"``, ``"fe.zi"``, ...).
        ci_level: Confidence level in ``(0, 1)``.
        z: Two-sided normal critical value for *ci_level*.
        n_sims: Number of simulation or posterior draws.
        rng: Random generator for simulation-based intervals.
        backend: Compute backend used for Jacobians.
    """

    type: str
    ci_level: float
    z: float
    n_sims: int
    rng: np.random.Generator = field(repr=False)
    backend: BackendProtocol = field(repr=False)


@dataclass(frozen=True)
class PredictionFrame:
    """Raw predictions returned by an adapter.

    Every array has shape ``(L, n_points)`` where ``L`` is the number
    of response levels (1 for single-response models).

    Attributes:
        predicted: Point predictions on the response scale.
        std_error: Standard errors (link scale for the link-scale
            delta method, response scale otherwise).
        conf_low: Lower interval bounds.
        conf_high: Upper interval bounds.
        response_levels: Labels of the response levels, or ``None``
            for a single-response model.
        interval: ``"confidence"`` or ``"prediction"``.
        method: Uncertainty path (``"delta"``, ``"jacobian"``,
            ``"simulation"``, ``"posterior"``).
        gradient: Rows ``G`` such that ``G V G'`` is the covariance of
            the predictions on the scale of *std_error*; ``None`` for
            simulation-based paths.
        vcov: Parameter covariance matching *gradient*.
        draws: Simulated predictions ``(S, L·n_points)``, if any.
    """

    predicted: np.ndarray
    std_error: np.ndarray
    conf_low: np.ndarray
    conf_high: np.ndarray
    response_levels: tuple[str, ...] | None = None
    interval: str = "confidence"
    method: str = "delta"
    gradient: np.ndarray | None = field(default=None, repr=False)
    vcov: np.ndarray | None = field(default=None, repr=False)
    draws: np.ndarray | None = field(default=None, repr=False)

    @classmethod
    def from_vectors(
        cls,
        predicted: np.ndarray,
        std_error: np.ndarray,
        conf_low: np.ndarray,
        conf_high: np.ndarray,
        *,
        n_levels: int = 1,
        **kwargs: Any,
    ) -> Self:
        """Build a frame from level-major flat vectors of length ``L·g``."""

        def shape(values: np.ndarray) -> np.ndarray:
            return np.asarray(values, dtype=float).reshape(n_levels, -1)

        return cls(
            predicted=shape(predicted),
            std_error=shape(std_error),
            conf_low=shape(conf_low),
            conf_high=shape(conf_high),
            **kwargs,
        )


# ------------------------------------------------------------------ #
# ModelAdapter protocol
# ------------------------------------------------------------------ #


@runtime_checkable
class ModelAdapter(Protocol):
    """Interface that every model-family adapter must implement.

    Attributes:
        name: Family tag (e.g. ``"glm"``, ``"zero_inflated"``).
        supported_types: Prediction types the adapter offers; the
            first one is the default.
    """

    @property
    def name(self) -> str: ...

    @property
    def supported_types(self) -> tuple[str, ...]: ...

    def matches(self, results: Any) -> bool:
        """Whether this adapter handles the fitted *results* object."""
        ...

    def enumerate_terms(self, results: Any) -> ModelTerms:
        """Describe the predictors of the fitted model."""
        ...

    def extract_vcov(self, results: Any) -> np.ndarray:
        """Covariance of the parameters the predictions depend on."""
        ...

    def link_inverse(self, results: Any) -> Link:
        """Inverse link of the model's mean (conditional) component."""
        ...

    def validate_request(self, results: Any, model_terms: ModelTerms, term_names: tuple[str, ...], type: str) -> None:
        """Reject term/type combinations the family cannot predict."""
        ...

    def predict(self, results: Any, design: GridDesign, request: PredictionRequest) -> PredictionFrame:
        """Predictions and intervals at the rows of *design*."""
        ...


# ------------------------------------------------------------------ #
# Shared helpers
# ------------------------------------------------------------------ #


def _sm_model(results: Any) -> Any:
    return getattr(results, "model", None)


def _params(results: Any) -> np.ndarray:
    return np.asarray(results.params, dtype=float).ravel()


def _cov_params(results: Any) -> np.ndarray:
    try:
        V = results.cov_params()
    except (ValueError, np.linalg.LinAlgError, AttributeError) as exc:
        msg = f"Could not obtain the parameter covariance matrix: {exc}"
        raise PredictionFailureError(msg) from exc
    return np.asarray(V, dtype=float)


class _LinearPredictorMixin:
    """Predictions from a single linear predictor ``η = Xβ``.

    Handles the three averaging modes of a grid design:

    * none or link averaging: delta method on ``η``, bounds mapped
      through the inverse link;
    * response averaging: the averaged mean ``A·g⁻¹(Xβ)`` is
      differentiated by the compute backend.
    """

    def _jacobian_frame(
        self,
        fn: PredictionFunction,
        params: np.ndarray,
        V: np.ndarray,
        request: PredictionRequest,
        *,
        support: tuple[float, float],
        autodiff: bool = True,
        response_levels: tuple[str, ...] | None = None,
    ) -> PredictionFrame:
        backend = request.backend if autodiff else resolve_backend("numpy")
        predicted = np.asarray(fn(params, np), dtype=float).ravel()
        J = backend.jacobian(fn, params)
        se = jacobian_se(J, V, backend.quadratic_form)
        lower, upper = support
        predicted = np.clip(predicted, lower, upper)
        low, high = response_interval(predicted, se, request.z, support)
        logger.debug("Jacobian delta method via %s backend: J shape %s", backend.name, J.shape)
        return PredictionFrame.from_vectors(
            predicted,
            se,
            low,
            high,
            n_levels=1 if response_levels is None else len(response_levels),
            response_levels=response_levels,
            method="jacobian",
            gradient=J,
            vcov=V,
        )

    def _linear_frame(
        self,
        X: np.ndarray,
        params: np.ndarray,
        V: np.ndarray,
        link: Link,
        design: GridDesign,
        request: PredictionRequest,
    ) -> PredictionFrame:
        if design.averaging == "response":

            def fn(p, xp):
                eta = xp.asarray(X) @ p
                return design.response_average(link.inverse(eta, xp), xp)

            return self._jacobian_frame(
                fn, params, V, request, support=link.support, autodiff=link.autodiff
            )

        X = design.link_rows(X)
        eta = X @ params
        se = delta_method_se(X, V)
        predicted, low, high = link_interval(eta, se, request.z, link.inverse)
        return PredictionFrame.from_vectors(
            predicted, se, low, high, method="delta", gradient=X, vcov=V
        )


# ------------------------------------------------------------------ #
# LinearAdapter
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class LinearAdapter(_LinearPredictorMixin):
    """Least-squares regressions (``OLS``, ``WLS``, ``GLS``, ``GLSAR``).

    Predictions are ``Xβ`` with delta-method standard errors
    ``sqrt(x' V x)`` and ``t``-free normal bounds.
    """

    @property
    def name(self) -> str:
        return "linear"

    @property
    def supported_types(self) -> tuple[str, ...]:
        return ("fe",)

    def matches(self, results: Any) -> bool:
        from statsmodels.regression.linear_model import RegressionModel

        return isinstance(_sm_model(results), RegressionModel)

    def enumerate_terms(self, results: Any) -> ModelTerms:
        return describe_model(results.model)

    def extract_vcov(self, results: Any) -> np.ndarray:
        return _cov_params(results)

    def link_inverse(self, results: Any) -> Link:  # noqa: ARG002
        return IDENTITY

    def validate_request(self, results, model_terms, term_names, type) -> None:  # noqa: ARG002
        return None

    def predict(self, results: Any, design: GridDesign, request: PredictionRequest) -> PredictionFrame:
        X = build_exog(results.model, design.rows)
        k = X.shape[1]
        V = check_covariance(self.extract_vcov(results)[:k, :k])
        return self._linear_frame(X, _params(results)[:k], V, self.link_inverse(results), design, request)


# ------------------------------------------------------------------ #
# GLMAdapter
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class GLMAdapter(LinearAdapter):
    """Generalised linear models (``sm.GLM`` / ``smf.glm``).

    The link is read from ``model.family.link``; links without a
    generic array rendition are differentiated numerically.
    """

    @property
    def name(self) -> str:
        return "glm"

    def matches(self, results: Any) -> bool:
        from statsmodels.genmod.generalized_linear_model import GLM

        return isinstance(_sm_model(results), GLM)

    def link_inverse(self, results: Any) -> Link:
        return link_from_statsmodels(results.model.family.link)


# ------------------------------------------------------------------ #
# DiscreteAdapter
# ------------------------------------------------------------------ #


def _is_truncated_or_hurdle(sm_model: Any) -> bool:
    return type(sm_model).__module__.endswith("truncated_model")


@dataclass(frozen=True)
class DiscreteAdapter(LinearAdapter):
    """Binary and count models from ``statsmodels.discrete``.

    ``Logit`` and ``Probit`` predict probabilities; ``Poisson``,
    ``NegativeBinomial``, ``NegativeBinomialP`` and
    ``GeneralizedPoisson`` predict the count mean ``exp(Xβ)``.  Extra
    dispersion parameters (``alpha``) are dropped from ``β`` and ``V``.
    """

    @property
    def name(self) -> str:
        return "discrete"

    def matches(self, results: Any) -> bool:
        from statsmodels.discrete.count_model import GenericZeroInflated
        from statsmodels.discrete.discrete_model import (
            BinaryModel,
            CountModel,
            MultinomialModel,
        )

        sm_model = _sm_model(results)
        if not isinstance(sm_model, (BinaryModel, CountModel)):
            return False
        if isinstance(sm_model, (MultinomialModel, GenericZeroInflated)):
            return False
        return not _is_truncated_or_hurdle(sm_model)

    def link_inverse(self, results: Any) -> Link:
        from statsmodels.discrete.discrete_model import BinaryModel, Probit

        sm_model = results.model
        if isinstance(sm_model, Probit):
            return PROBIT
        if isinstance(sm_model, BinaryModel):
            return LOGIT
        return LOG


# ------------------------------------------------------------------ #
# ZeroInflatedAdapter
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class ZeroInflatedAdapter(_LinearPredictorMixin):
    """Zero-inflated count models (``statsmodels.discrete.count_model``).

    The parameter vector is laid out as ``[γ (inflation), β (count),
    α (dispersion, if any)]``.  Prediction types:

    * ``"fe"`` — conditional count mean ``exp(Xβ)``;
    * ``"zi.prob"`` — probability of a structural zero ``π(Zγ)``;
    * ``"fe.zi"`` — unconditional mean ``exp(Xβ)·(1 − π(Zγ))`` with
      simulation-based intervals from ``N(θ̂, V)``.
    """

    @property
    def name(self) -> str:
        return "zero_inflated"

    @property
    def supported_types(self) -> tuple[str, ...]:
        return ("fe", "fe.zi", "zi.prob")

    def matches(self, results: Any) -> bool:
        from statsmodels.discrete.count_model import GenericZeroInflated

        return isinstance(_sm_model(results), GenericZeroInflated)

    # ---- Parameter layout ------------------------------------------

    @staticmethod
    def _k_inflate(sm_model: Any) -> int:
        return int(sm_model.k_inflate)

    @staticmethod
    def _k_count(sm_model: Any) -> int:
        return int(np.asarray(sm_model.exog).shape[1])

    def _count_names(self, sm_model: Any) -> list[str]:
        k_infl = self._k_inflate(sm_model)
        return exog_names(sm_model)[k_infl : k_infl + self._k_count(sm_model)]

    @staticmethod
    def _inflation_names(sm_model: Any) -> list[str]:
        return list(sm_model.model_infl.exog_names)

    # ---- Protocol --------------------------------------------------

    def enumerate_terms(self, results: Any) -> ModelTerms:
        sm_model = results.model
        model_terms = describe_model(sm_model, names=self._count_names(sm_model))
        frame = model_terms.frame
        infl: list[str] = []
        if not getattr(sm_model, "_no_exog_infl", False):
            codes = list(self._inflation_names(sm_model))
            info = self._inflation_design_info(sm_model)
            if info is not None:
                codes.extend(factor.name() for factor in info.factor_infos)
            infl = referenced_columns(codes, frame, exclude=(model_terms.response,))
        predictors = list(model_terms.predictors)
        predictors.extend(name for name in infl if name not in predictors)
        return replace(
            model_terms,
            predictors=tuple(predictors),
            categorical=categorical_levels(sm_model, frame, predictors),
            zero_inflation=tuple(infl),
        )

    def extract_vcov(self, results: Any) -> np.ndarray:
        return _cov_params(results)

    def link_inverse(self, results: Any) -> Link:  # noqa: ARG002
        return LOG

    def inflation_link(self, results: Any) -> Link:
        return link_by_name(getattr(results.model, "infl", "logit"))

    def validate_request(self, results, model_terms, term_names, type) -> None:  # noqa: ARG002
        return None

    # ---- Designs ---------------------------------------------------

    @staticmethod
    def _inflation_design_info(sm_model: Any) -> Any | None:
        infl_data = sm_model.model_infl.data
        info = formula_design(infl_data)
        if info is None:
            info = formula_design(getattr(infl_data, "orig_exog", None))
        return info

    def _inflation_exog(self, sm_model: Any, rows: pd.DataFrame, X: np.ndarray) -> np.ndarray:
        if getattr(sm_model, "_no_exog_infl", False):
            return np.ones((len(rows), 1))
        info = self._inflation_design_info(sm_model)
        if info is not None:
            try:
                (matrix,) = patsy.build_design_matrices([info], rows, NA_action="raise")
            except (patsy.PatsyError, KeyError, ValueError, TypeError) as exc:
                msg = f"Could not build the zero-inflation design for the reference grid: {exc}"
                raise PredictionFailureError(msg) from exc
            return np.asarray(matrix, dtype=float)
        Z = build_named_columns(self._inflation_names(sm_model), rows, self._count_names(sm_model), X)
        if Z is None:
            msg = (
                "Cannot rebuild the zero-inflation design at new rows: its "
                f"columns {self._inflation_names(sm_model)} are neither intercepts, "
                "count-model columns, nor numeric predictors."
            )
            raise PredictionFailureError(msg)
        return Z

    # ---- Prediction ------------------------------------------------

    def predict(self, results: Any, design: GridDesign, request: PredictionRequest) -> PredictionFrame:
        sm_model = results.model
        k_infl = self._k_inflate(sm_model)
        k_count = self._k_count(sm_model)
        params = _params(results)
        V = check_covariance(self.extract_vcov(results))
        X = build_exog(sm_model, design.rows, self._count_names(sm_model))
        count = slice(k_infl, k_infl + k_count)
        infl = slice(0, k_infl)
        infl_link = self.inflation_link(results)

        if request.type == "fe":
            return self._linear_frame(X, params[count], V[count, count], LOG, design, request)

        Z = self._inflation_exog(sm_model, design.rows, X)
        if request.type == "zi.prob":
            return self._linear_frame(Z, params[infl], V[infl, infl], infl_link, design, request)

        # "fe.zi": simulate the joint (γ, β) block.
        joint = slice(0, k_infl + k_count)
        X_eval = design.link_rows(X)
        Z_eval = design.link_rows(Z)

        def unconditional_mean(theta: np.ndarray) -> np.ndarray:
            # theta: (S, k_infl + k_count) → (S, n_points)
            mu = np.exp(X_eval @ theta[:, k_infl:].T)
            pi = infl_link.inverse(Z_eval @ theta[:, :k_infl].T)
            return design.response_average(mu * (1.0 - pi)).T

        predicted = unconditional_mean(params[joint][None, :])[0]
        theta = simulate_parameters(params[joint], V[joint, joint], request.n_sims, request.rng)
        draws = unconditional_mean(theta)
        se, low, high = draws_interval(draws, predicted, request.ci_level)
        logger.debug("Zero-inflated mean: %d simulation draws", request.n_sims)
        return PredictionFrame.from_vectors(
            predicted, se, low, high, method="simulation", draws=draws
        )


# ------------------------------------------------------------------ #
# HurdleAdapter
# ------------------------------------------------------------------ #


def _is_negbin(component: Any) -> bool:
    from statsmodels.discrete.discrete_model import NegativeBinomialP

    return isinstance(component.model_main, NegativeBinomialP)


def _zero_count_probability(component: Any, mu: Any, alpha: Any, xp: ModuleType = np) -> Any:
    """``P(y = 0)`` of a hurdle component's untruncated count distribution.

    *component* is ``model1`` (zero hurdle) or ``model2`` (truncated
    count part) of a ``HurdleCountModel``; its ``model_main`` is a
    ``Poisson`` or a ``NegativeBinomialP`` with dispersion *alpha*.
    """
    if _is_negbin(component):
        p = component.model_main.parameterization
        return (1.0 + alpha * mu ** (p - 1)) ** (-1.0 / alpha)
    return xp.exp(-mu)


@dataclass(frozen=True)
class HurdleAdapter(_LinearPredictorMixin):
    """Hurdle count models (``HurdleCountModel``).

    A zero hurdle decides between ``y = 0`` and ``y > 0``; positive
    counts follow a zero-truncated Poisson or negative binomial.  Both
    parts share the design ``X`` and the parameter vector is laid out
    as ``[γ (zero part), α₁, β (count part), α₂]`` with the
    dispersions present only for negative-binomial components.

    * ``"fe"`` — untruncated count mean ``exp(Xβ)``;
    * ``"zi.prob"`` — probability of a zero ``P(y = 0) = p₀(exp(Xγ))``;
    * ``"fe.zi"`` — response mean
      ``(1 − p₀(exp(Xγ))) · exp(Xβ) / (1 − q₀(exp(Xβ)))`` with
      simulation-based intervals from the joint ``N((γ, β), V)``;
      dispersions are held at their estimates.
    """

    @property
    def name(self) -> str:
        return "hurdle"

    @property
    def supported_types(self) -> tuple[str, ...]:
        return ("fe", "fe.zi", "zi.prob")

    def matches(self, results: Any) -> bool:
        from statsmodels.discrete.truncated_model import HurdleCountModel

        return isinstance(_sm_model(results), HurdleCountModel)

    # ---- Parameter layout ------------------------------------------

    @staticmethod
    def _blocks(sm_model: Any) -> tuple[slice, slice]:
        """Slices of the zero-part and count-part parameters (with dispersions)."""
        k_exog = int(np.asarray(sm_model.exog).shape[1])
        k_zero = k_exog + int(_is_negbin(sm_model.model1))
        k_count = k_exog + int(_is_negbin(sm_model.model2))
        return slice(0, k_zero), slice(k_zero, k_zero + k_count)

    @staticmethod
    def _design_names(sm_model: Any) -> list[str]:
        # Fitting overwrites ``exog_names`` with the stacked parameter names.
        orig_exog = getattr(sm_model.data, "orig_exog", None)
        if isinstance(orig_exog, pd.DataFrame):
            return [str(name) for name in orig_exog.columns]
        return list(sm_model.model2.exog_names)

    # ---- Protocol --------------------------------------------------

    def enumerate_terms(self, results: Any) -> ModelTerms:
        model_terms = describe_model(results.model, names=self._design_names(results.model))
        return replace(model_terms, zero_inflation=model_terms.predictors)

    def extract_vcov(self, results: Any) -> np.ndarray:
        return _cov_params(results)

    def link_inverse(self, results: Any) -> Link:  # noqa: ARG002
        return LOG

    def validate_request(self, results, model_terms, term_names, type) -> None:  # noqa: ARG002
        return None

    # ---- Prediction ------------------------------------------------

    def predict(self, results: Any, design: GridDesign, request: PredictionRequest) -> PredictionFrame:
        sm_model = results.model
        X = build_exog(sm_model, design.rows, self._design_names(sm_model))
        k = X.shape[1]
        zero, count = self._blocks(sm_model)
        params = _params(results)
        V = check_covariance(self.extract_vcov(results), params.shape[0])
        gamma = np.arange(zero.start, zero.start + k)
        beta = np.arange(count.start, count.start + k)

        if request.type == "fe":
            return self._linear_frame(X, params[beta], V[np.ix_(beta, beta)], LOG, design, request)

        X_eval = design.link_rows(X)
        zero_params = params[zero]

        if request.type == "zi.prob":

            def prob_zero(p, xp):
                mu = xp.exp(xp.asarray(X_eval) @ p[:k])
                return design.response_average(_zero_count_probability(sm_model.model1, mu, p[-1], xp), xp)

            return self._jacobian_frame(
                prob_zero,
                zero_params,
                V[zero, zero],
                request,
                support=(0.0, 1.0),
                autodiff=False,
            )

        # "fe.zi": simulate (γ, β) jointly; dispersions stay fixed.
        joint = np.concatenate([gamma, beta])

        alpha_zero = params[zero][-1]
        alpha_count = params[count][-1]

        def response_mean(theta: np.ndarray) -> np.ndarray:
            # theta: (S, 2k) → (S, n_points)
            mu_zero = np.exp(X_eval @ theta[:, :k].T)
            mu_count = np.exp(X_eval @ theta[:, k:].T)
            p_zero = _zero_count_probability(sm_model.model1, mu_zero, alpha_zero)
            q_zero = _zero_count_probability(sm_model.model2, mu_count, alpha_count)
            return design.response_average((1.0 - p_zero) * mu_count / (1.0 - q_zero)).T

        predicted = response_mean(params[joint][None, :])[0]
        theta = simulate_parameters(params[joint], V[np.ix_(joint, joint)], request.n_sims, request.rng)
        draws = response_mean(theta)
        se, low, high = draws_interval(draws, predicted, request.ci_level)
        logger.debug("Hurdle mean: %d simulation draws", request.n_sims)
        return PredictionFrame.from_vectors(
            predicted, se, low, high, method="simulation", draws=draws
        )


# ------------------------------------------------------------------ #
# OrdinalAdapter
# ------------------------------------------------------------------ #


def _ordinal_cdf(distr: Any) -> tuple[Any, bool]:
    """``cdf(values, xp)`` for the latent distribution and its autodiff flag."""
    name = getattr(distr, "name", "")
    if name == "logistic":
        return (lambda v, xp: special_functions(xp).expit(v)), True
    if name == "norm":
        return (lambda v, xp: special_functions(xp).ndtr(v)), True
    return (lambda v, xp: distr.cdf(np.asarray(v))), False  # noqa: ARG005


@dataclass(frozen=True)
class OrdinalAdapter(_LinearPredictorMixin):
    """Cumulative-link ordinal models (``OrderedModel``).

    ``P(y = j | x) = F(θ_j − x'β) − F(θ_{j−1} − x'β)`` with the
    thresholds recovered from statsmodels' increment parametrisation
    ``θ_1, log(θ_2 − θ_1), ...``.  One prediction per response level;
    uncertainty by the Jacobian delta method.
    """

    @property
    def name(self) -> str:
        return "ordinal"

    @property
    def supported_types(self) -> tuple[str, ...]:
        return ("fe",)

    def matches(self, results: Any) -> bool:
        from statsmodels.miscmodels.ordinal_model import OrderedModel

        return isinstance(_sm_model(results), OrderedModel)

    @staticmethod
    def _design_names(sm_model: Any) -> list[str]:
        return exog_names(sm_model)[: np.asarray(sm_model.exog).shape[1]]

    def enumerate_terms(self, results: Any) -> ModelTerms:
        return describe_model(results.model, names=self._design_names(results.model))

    def extract_vcov(self, results: Any) -> np.ndarray:
        return _cov_params(results)

    def link_inverse(self, results: Any) -> Link:
        cdf, autodiff = _ordinal_cdf(results.model.distr)
        return Link(getattr(results.model.distr, "name", "ordinal"), cdf, (0.0, 1.0), autodiff)

    def validate_request(self, results, model_terms, term_names, type) -> None:  # noqa: ARG002
        return None

    def predict(self, results: Any, design: GridDesign, request: PredictionRequest) -> PredictionFrame:
        sm_model = results.model
        X = design.link_rows(build_exog(sm_model, design.rows, self._design_names(sm_model)))
        k = X.shape[1]
        levels = tuple(str(label) for label in sm_model.labels)
        cdf = self.link_inverse(results)

        def fn(p, xp):
            beta = p[:k]
            raw = p[k:]
            cuts = xp.cumsum(xp.concatenate([raw[:1], xp.exp(raw[1:])]))
            eta = xp.asarray(X) @ beta
            inner = cdf.inverse(cuts[None, :] - eta[:, None], xp)
            n = inner.shape[0]
            cumulative = xp.concatenate([xp.zeros((n, 1)), inner, xp.ones((n, 1))], axis=1)
            probs = cumulative[:, 1:] - cumulative[:, :-1]
            return xp.ravel(design.response_average(probs, xp).T)

        V = check_covariance(self.extract_vcov(results))
        return self._jacobian_frame(
            fn,
            _params(results),
            V,
            request,
            support=(0.0, 1.0),
            autodiff=cdf.autodiff,
            response_levels=levels,
        )


# ------------------------------------------------------------------ #
# MultinomialAdapter
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class MultinomialAdapter(_LinearPredictorMixin):
    """Multinomial logit (``MNLogit``).

    ``params`` has one column per non-reference outcome; statsmodels
    flattens it column by column (Fortran order) for ``cov_params``.
    Probabilities are the softmax of ``[0, Xβ_1, ..., Xβ_{J−1}]``.
    """

    @property
    def name(self) -> str:
        return "multinomial"

    @property
    def supported_types(self) -> tuple[str, ...]:
        return ("fe",)

    def matches(self, results: Any) -> bool:
        from statsmodels.discrete.discrete_model import MultinomialModel

        return isinstance(_sm_model(results), MultinomialModel)

    def enumerate_terms(self, results: Any) -> ModelTerms:
        return describe_model(results.model)

    def extract_vcov(self, results: Any) -> np.ndarray:
        return _cov_params(results)

    def link_inverse(self, results: Any) -> Link:  # noqa: ARG002
        return LOGIT

    def validate_request(self, results, model_terms, term_names, type) -> None:  # noqa: ARG002
        return None

    @staticmethod
    def _response_levels(sm_model: Any, n_levels: int) -> tuple[str, ...]:
        names = getattr(sm_model, "_ynames_map", None) or {}
        return tuple(str(names.get(j, j)) for j in range(n_levels))

    def predict(self, results: Any, design: GridDesign, request: PredictionRequest) -> PredictionFrame:
        sm_model = results.model
        X = design.link_rows(build_exog(sm_model, design.rows))
        k = X.shape[1]
        n_levels = int(sm_model.J)
        params = np.asarray(results.params, dtype=float).reshape(k, n_levels - 1).ravel(order="F")

        def fn(p, xp):
            B = xp.reshape(p, (n_levels - 1, k)).T
            eta = xp.asarray(X) @ B
            logits = xp.concatenate([xp.zeros((eta.shape[0], 1)), eta], axis=1)
            logits = logits - xp.max(logits, axis=1, keepdims=True)
            expd = xp.exp(logits)
            probs = expd / xp.sum(expd, axis=1, keepdims=True)
            return xp.ravel(design.response_average(probs, xp).T)

        V = check_covariance(self.extract_vcov(results), params.shape[0])
        return self._jacobian_frame(
            fn,
            params,
            V,
            request,
            support=(0.0, 1.0),
            response_levels=self._response_levels(sm_model, n_levels),
        )


# ------------------------------------------------------------------ #
# CoxAdapter
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class CoxAdapter(_LinearPredictorMixin):
    """Cox proportional-hazards regression (``PHReg``).

    * ``"fe"`` — hazard ratio ``exp(x'β)`` against ``x = 0``;
    * ``"cumhaz"`` — ``H₀(t)·exp(x'β)``;
    * ``"surv"`` — ``exp(−H₀(t)·exp(x'β))``.

    ``H₀`` is the Breslow baseline cumulative hazard, evaluated as a
    right-continuous step function at the time term's values.
    Intervals reflect the uncertainty of ``x'β`` only.
    """

    @property
    def name(self) -> str:
        return "cox"

    @property
    def supported_types(self) -> tuple[str, ...]:
        return ("fe", "surv", "cumhaz")

    def matches(self, results: Any) -> bool:
        from statsmodels.duration.hazard_regression import PHReg

        return isinstance(_sm_model(results), PHReg)

    def enumerate_terms(self, results: Any) -> ModelTerms:
        sm_model = results.model
        model_terms = describe_model(sm_model)
        time_name = model_terms.response
        frame = model_terms.frame
        if time_name not in frame.columns:
            frame = frame.assign(**{time_name: np.asarray(sm_model.endog, dtype=float)})
        return replace(model_terms, frame=frame, survival_time=time_name)

    def extract_vcov(self, results: Any) -> np.ndarray:
        return _cov_params(results)

    def link_inverse(self, results: Any) -> Link:  # noqa: ARG002
        return LOG

    def validate_request(self, results, model_terms, term_names, type) -> None:  # noqa: ARG002
        time_name = model_terms.survival_time
        if type == "fe" and time_name in term_names:
            msg = (
                f"Time variable {time_name!r} can only be a focal term for "
                "type='surv' or type='cumhaz'."
            )
            raise InvalidTermsError(msg)
        if type in ("surv", "cumhaz") and time_name not in term_names:
            msg = f"type={type!r} requires the time variable {time_name!r} among the terms."
            raise InvalidTermsError(msg)

    @staticmethod
    def _baseline(results: Any, times: np.ndarray) -> np.ndarray:
        strata = results.baseline_cumulative_hazard
        if len(strata) > 1:
            warnings.warn(
                f"Model has {len(strata)} strata; survival predictions use the "
                "baseline hazard of the first stratum.",
                UserWarning,
                stacklevel=4,
            )
        event_times, cumhaz = np.asarray(strata[0][0]), np.asarray(strata[0][1])
        idx = np.searchsorted(event_times, times, side="right") - 1
        return np.where(idx >= 0, cumhaz[np.clip(idx, 0, None)], 0.0)

    def predict(self, results: Any, design: GridDesign, request: PredictionRequest) -> PredictionFrame:
        sm_model = results.model
        X = build_exog(sm_model, design.rows)
        k = X.shape[1]
        params = _params(results)[:k]
        V = check_covariance(self.extract_vcov(results)[:k, :k])
        if request.type == "fe":
            return self._linear_frame(X, params, V, LOG, design, request)

        time_name = _time_term(sm_model, design)
        times = np.asarray(design.rows[time_name], dtype=float)
        H0 = self._baseline(results, times)
        # Focal time is constant within a grid point, so averaging is exact.
        H0_eval = H0 if design.averaging == "response" else design.link_rows(H0)

        if request.type == "cumhaz":
            link = Link("cumhaz", lambda eta, xp: xp.asarray(H0_eval) * xp.exp(eta), (0.0, np.inf))
        else:
            link = Link("surv", lambda eta, xp: xp.exp(-xp.asarray(H0_eval) * xp.exp(eta)), (0.0, 1.0))
        return self._linear_frame(X, params, V, link, design, request)


def _time_term(sm_model: Any, design: GridDesign) -> str:
    name = response_name(sm_model)
    if name not in design.term_names:
        msg = f"Time variable {name!r} is not among the focal terms."
        raise InvalidTermsError(msg)
    return name


# ------------------------------------------------------------------ #
# Adapter registry
# ------------------------------------------------------------------ #

_ADAPTERS: dict[str, type] = {}
"""Registry mapping family tags to concrete ModelAdapter classes."""


def register_adapter(name: str, cls: type) -> None:
    """Register a concrete ``ModelAdapter`` class under *name*.

    Re-registering an existing tag replaces the adapter and moves it
    to the front of the resolution order.

    Args:
        name: Family tag (e.g. ``"glm"``, ``"mixed"``).
        cls: A class implementing the ``ModelAdapter`` protocol.

    Raises:
        TypeError: If *cls* does not satisfy the ``ModelAdapter``
            protocol.
    """
    # runtime_checkable protocols with non-method members do not
    # support issubclass(); use isinstance() on a sentinel instance.
    try:
        instance = cls()
    except Exception:  # noqa: BLE001
        msg = f"{cls!r} could not be instantiated for protocol check."
        raise TypeError(msg) from None
    if not isinstance(instance, ModelAdapter):
        msg = f"{cls!r} does not implement the ModelAdapter protocol."
        raise TypeError(msg)
    _ADAPTERS.pop(name, None)
    _ADAPTERS[name] = cls


def registered_adapters() -> list[str]:
    """Family tags in resolution order (latest registration first)."""
    return list(reversed(_ADAPTERS))


def resolve_adapter(results: Any) -> ModelAdapter:
    """Return an adapter instance for a fitted statsmodels *results* object.

    Adapters are tried from the most recently registered to the
    first; the first whose :meth:`~ModelAdapter.matches` accepts the
    model wins.

    Raises:
        UnsupportedModelError: If *results* is not a fitted model or
            no registered adapter handles its model class.
    """
    if _sm_model(results) is None or not hasattr(results, "params"):
        msg = (
            f"Expected a fitted statsmodels results object, got "
            f"{type(results).__name__}.  Call .fit() on the model first."
        )
        raise UnsupportedModelError(msg)
    for name in registered_adapters():
        adapter: ModelAdapter = _ADAPTERS[name]()
        if adapter.matches(results):
            logger.debug("Resolved adapter %r for %s", name, type(results.model).__name__)
            return adapter
    available = ", ".join(registered_adapters()) or "(none registered)"
    msg = (
        f"Unsupported model class {type(results.model).__name__}.  "
        f"Registered adapters: {available}."
    )
    raise UnsupportedModelError(msg)


register_adapter("linear", LinearAdapter)
register_adapter("glm", GLMAdapter)
register_adapter("discrete", DiscreteAdapter)
register_adapter("zero_inflated", ZeroInflatedAdapter)
register_adapter("hurdle", HurdleAdapter)
register_adapter("ordinal", OrdinalAdapter)
register_adapter("multinomial", MultinomialAdapter)
register_adapter("cox", CoxAdapter)
