"""Adjusted predictions and marginal means for fitted statsmodels models.

An *adjusted prediction* is the model's expected response at chosen
values of one to four focal predictors, with every other predictor
held at a representative value or averaged over.  Plotting those
predictions against the first focal term (optionally split by the
others) is the most direct way to read a regression model on the
scale of the response, where coefficients of non-linear models,
interactions and splines are hard to interpret.

Three ingredients define a prediction table:

1. **Reference grid** — the Cartesian product of the focal terms'
   representative values.  Continuous terms default to an evenly
   spaced range over the observed data; categorical terms to their
   observed levels.

2. **Margin** — what happens to the non-focal predictors:

   * ``"mean_reference"`` holds continuous predictors at their mean
     (or median) and factors at their reference level;
   * ``"mean_mode"`` uses the most frequent level instead;
   * ``"marginal_means"`` averages the design over all level
     combinations of the non-focal factors (estimated marginal
     means);
   * ``"empirical"`` imposes each grid point on every observed row
     and averages the predictions (counterfactual predictions).

3. **Uncertainty** — parameter uncertainty is propagated with the
   delta method on the link scale and mapped through the inverse
   link, so intervals respect the response's range:

       η̂ = x'β̂,   SE(η̂) = sqrt(x'Vx),   [g⁻¹(η̂ − z·SE), g⁻¹(η̂ + z·SE)]

   Predictions that are non-linear in β (category probabilities,
   response-scale averages) use the gradient of the prediction
   function; the zero-inflated mean and Bayesian posteriors use
   simulation.

Example::

    import statsmodels.formula.api as smf
    from adjusted_predictions import predict_response

    fit = smf.logit("y ~ age * C(sex) + income", data=df).fit()
    result = predict_response(fit, ["age", "sex"])
    result.table   # x, predicted, std.error, conf.low, conf.high, group, ...
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import numpy as np
import pandas as pd

from ._compat import DataFrameLike
from ._context import PredictionContext
from ._results import PredictionResult
from ._typing import TermsLike
from .engine import PredictionEngine
from .grid import ReferenceGrid


def predict_response(
    model: Any,
    terms: TermsLike,
    *,
    type: str = "fe",
    ci_level: float = 0.95,
    margin: str = "mean_reference",
    typical: str | None = None,
    condition: Mapping[str, Any] | None = None,
    n_values: int | None = None,
    n_sims: int | None = None,
    seed: int | np.random.Generator | None = None,
    data: DataFrameLike | None = None,
    backend: str | None = None,
) -> PredictionResult:
    """Adjusted predictions of a fitted model at representative values.

    Args:
        model: A fitted statsmodels results object (the return value
            of ``.fit()``).
        terms: One to four focal terms, e.g. ``"x"``,
            ``["x [1, 5, 10]", "group"]`` or ``{"x": [1, 2], "g": None}``.
            The first term is the ``x`` axis; the others become
            ``group``, ``facet`` and ``panel``.
        type: Prediction type.  ``"fe"`` (fixed effects) for every
            model; ``"re"`` for linear mixed models (prediction
            interval including random-effect and residual variance);
            ``"fe.zi"`` and ``"zi.prob"`` for zero-inflated and hurdle models;
            ``"surv"`` and ``"cumhaz"`` for Cox models.
        ci_level: Confidence level of the bounds, in ``(0, 1)``.
        margin: ``"mean_reference"``, ``"mean_mode"``,
            ``"marginal_means"`` or ``"empirical"``.
        typical: ``"mean"`` or ``"median"`` for continuous non-focal
            predictors.  Defaults to the ``typical`` option.
        condition: Values to hold specific non-focal predictors at,
            overriding the margin's rule.
        n_values: Number of values for automatic continuous ranges.
            Defaults to the ``n_values`` option (25).
        n_sims: Number of draws for simulation-based intervals.
            Defaults to the ``n_sims`` option (1000).
        seed: Seed or generator for simulation-based intervals.
        data: Frame (pandas or Polars) used instead of the model's
            estimation data for representative and typical values.
        backend: ``"numpy"`` or ``"jax"`` for Jacobians; defaults to
            the configured backend.

    Returns:
        A :class:`~adjusted_predictions.PredictionResult`.

    Raises:
        UnsupportedModelError: If no adapter handles *model*.
        InvalidTermsError: If *terms* is malformed or names unknown
            predictors.
        PredictionFailureError: If the design matrix or the
            predictions cannot be computed.
        SingularCovarianceError: If the parameter covariance cannot
            propagate uncertainty.
        ValueError: For invalid ``type``, ``margin``, ``ci_level`` or
            ``typical``.
    """
    engine = PredictionEngine(
        model,
        terms,
        type=type,
        ci_level=ci_level,
        margin=margin,
        typical=typical,
        condition=condition,
        n_values=n_values,
        n_sims=n_sims,
        seed=seed,
        data=data,
        backend=backend,
        ctx=PredictionContext(),
    )
    return engine.run()


def marginal_means(model: Any, terms: TermsLike, **kwargs: Any) -> PredictionResult:
    """Estimated marginal means: predictions averaged over non-focal factors.

    Equivalent to ``predict_response(model, terms,
    margin="marginal_means", **kwargs)``.

    Raises:
        ValueError: If a different ``margin`` is passed.
    """
    margin = kwargs.pop("margin", "marginal_means")
    if margin != "marginal_means":
        msg = f"marginal_means() always uses margin='marginal_means', got {margin!r}."
        raise ValueError(msg)
    return predict_response(model, terms, margin="marginal_means", **kwargs)


def build_reference_grid(
    model: Any,
    terms: TermsLike,
    *,
    type: str = "fe",
    margin: str = "mean_reference",
    typical: str | None = None,
    condition: Mapping[str, Any] | None = None,
    n_values: int | None = None,
    data: DataFrameLike | None = None,
) -> ReferenceGrid:
    """Reference grid that :func:`predict_response` would predict at.

    Accepts the grid-related arguments of :func:`predict_response`;
    nothing is predicted.
    """
    engine = PredictionEngine(
        model,
        terms,
        type=type,
        margin=margin,
        typical=typical,
        condition=condition,
        n_values=n_values,
        data=data,
    )
    return engine.grid


def prediction_vcov(result: PredictionResult) -> pd.DataFrame:
    """Covariance matrix of the predictions in *result*.

    For link-scale delta-method results this is ``X V X'`` of the
    linear predictors (matching ``std.error``); for Jacobian results
    it is ``J V J'`` on the response scale.  Rows and columns follow
    the table's row order.

    Raises:
        ValueError: If *result* came from a simulation or posterior
            path, or from a prediction interval.
    """
    ctx = result.context
    if ctx is None or ctx.gradient is None or ctx.vcov is None:
        msg = (
            f"Covariance of predictions is only available for delta-method "
            f"confidence intervals; this result used the {result.method!r} path "
            f"with a {result.interval} interval."
        )
        raise ValueError(msg)
    G = np.asarray(ctx.gradient, dtype=float)
    vcov = G @ np.asarray(ctx.vcov, dtype=float) @ G.T
    return pd.DataFrame(vcov, index=result.table.index, columns=result.table.index)
