"""Uncertainty propagation for adjusted predictions.

Three routes lead from the parameter covariance ``V`` to an interval
around each prediction:

1. **Delta method on the link scale.**  The linear predictor
   ``η = x'β`` is linear in the parameters, so its variance is exactly
   ``x' V x``.  Normal bounds ``η ± z·SE`` are computed on the link
   scale and mapped through the inverse link.  Because the inverse
   link is monotone, the bounds stay ordered around the prediction
   (after sorting for decreasing transforms).

2. **Delta method with a Jacobian.**  For predictions that are
   non-linear in the parameters (probabilities of ordinal or
   multinomial models, response-scale averages), the gradient rows
   ``J = ∂f/∂β`` replace ``x`` and normal bounds are formed on the
   response scale.

3. **Simulation.**  When no convenient closed form exists (the
   zero-inflated mean ``exp(x'β)·(1 − π)``), parameter vectors are
   drawn from ``N(β̂, V)`` and the interval is read off the quantiles
   of the simulated predictions.  Posterior draws of Bayesian models
   use the same quantile rule.

All routes validate the covariance first: a matrix with non-finite
entries, or a projection that yields a negative variance, raises
:class:`~adjusted_predictions.exceptions.SingularCovarianceError`.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import numpy as np
from scipy import stats

from .exceptions import SingularCovarianceError

logger = logging.getLogger(__name__)

_NEGATIVE_TOLERANCE = 1e-10
"""Relative tolerance below zero before a variance counts as negative.

Round-off in ``x' V x`` can produce tiny negative values for rows
that lie in (or near) the null space of a rank-deficient ``V``; those
are clipped to zero rather than reported as errors.
"""


def critical_value(ci_level: float) -> float:
    """Two-sided standard-normal quantile for *ci_level* (1.96 at 95%).

    Raises:
        ValueError: If *ci_level* is not strictly between 0 and 1.
    """
    if not 0.0 < ci_level < 1.0:
        msg = f"ci_level must be strictly between 0 and 1, got {ci_level!r}."
        raise ValueError(msg)
    return float(stats.norm.ppf((1.0 + ci_level) / 2.0))


def check_covariance(V: Any, k: int | None = None) -> np.ndarray:
    """Validate a parameter covariance matrix.

    Args:
        V: Covariance matrix (array or DataFrame).
        k: Expected dimension, if known.

    Returns:
        ``V`` as a float ndarray.

    Raises:
        SingularCovarianceError: If ``V`` is not square, has the wrong
            dimension, or contains non-finite entries.
    """
    V = np.asarray(V, dtype=float)
    if V.ndim != 2 or V.shape[0] != V.shape[1]:
        msg = f"Covariance matrix must be square, got shape {V.shape}."
        raise SingularCovarianceError(msg)
    if k is not None and V.shape[0] != k:
        msg = f"Covariance matrix has dimension {V.shape[0]}, expected {k}."
        raise SingularCovarianceError(msg)
    if not np.all(np.isfinite(V)):
        msg = (
            "Parameter covariance matrix contains non-finite entries; the "
            "model's Hessian is likely singular (perfect separation, "
            "collinear predictors, or a non-converged fit)."
        )
        raise SingularCovarianceError(msg)
    return V


def _finalise_variance(variance: np.ndarray, V: np.ndarray) -> np.ndarray:
    scale = max(float(np.max(np.abs(np.diag(V)))), 1.0)
    if not np.all(np.isfinite(variance)) or np.any(variance < -_NEGATIVE_TOLERANCE * scale):
        msg = (
            "Delta-method projection produced a negative or non-finite "
            "variance; the parameter covariance matrix is not positive "
            "semi-definite."
        )
        raise SingularCovarianceError(msg)
    return np.sqrt(np.clip(variance, 0.0, None))


def delta_method_se(X: np.ndarray, V: np.ndarray) -> np.ndarray:
    """Standard errors ``sqrt(diag(X V X'))`` of the linear predictor.

    Args:
        X: Design (or gradient) rows of shape ``(m, k)``.
        V: Parameter covariance of shape ``(k, k)``.

    Returns:
        Standard errors of shape ``(m,)``.
    """
    X = np.atleast_2d(np.asarray(X, dtype=float))
    V = check_covariance(V, X.shape[1])
    return _finalise_variance(np.einsum("ij,jk,ik->i", X, V, X), V)


def jacobian_se(J: np.ndarray, V: np.ndarray, quadratic_form: Callable[..., np.ndarray]) -> np.ndarray:
    """Standard errors from gradient rows via a backend quadratic form."""
    J = np.atleast_2d(np.asarray(J, dtype=float))
    V = check_covariance(V, J.shape[1])
    return _finalise_variance(np.asarray(quadratic_form(J, V)), V)


def link_interval(
    eta: np.ndarray,
    se: np.ndarray,
    z: float,
    inverse: Callable[[np.ndarray], np.ndarray],
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Back-transform ``η`` and its normal bounds through *inverse*.

    Returns:
        ``(predicted, conf_low, conf_high)`` on the response scale.
        Bounds are sorted per row so decreasing transforms (inverse
        links, survival probabilities) still give ``low ≤ high``.
    """
    predicted = np.asarray(inverse(eta), dtype=float)
    a = np.asarray(inverse(eta - z * se), dtype=float)
    b = np.asarray(inverse(eta + z * se), dtype=float)
    return predicted, np.minimum(a, b), np.maximum(a, b)


def response_interval(
    predicted: np.ndarray,
    se: np.ndarray,
    z: float,
    support: tuple[float, float] = (-np.inf, np.inf),
) -> tuple[np.ndarray, np.ndarray]:
    """Normal bounds on the response scale, clipped to *support*."""
    lower, upper = support
    return (
        np.clip(predicted - z * se, lower, upper),
        np.clip(predicted + z * se, lower, upper),
    )


def simulate_parameters(
    params: np.ndarray,
    V: np.ndarray,
    n_sims: int,
    rng: np.random.Generator,
) -> np.ndarray:
    """Draw ``n_sims`` parameter vectors from ``N(params, V)``.

    Returns:
        Draws of shape ``(n_sims, k)``.

    Raises:
        SingularCovarianceError: If ``V`` is not a valid covariance.
    """
    params = np.asarray(params, dtype=float)
    V = check_covariance(V, params.shape[0])
    try:
        return rng.multivariate_normal(params, V, size=n_sims, check_valid="raise")
    except (ValueError, np.linalg.LinAlgError) as exc:
        msg = f"Cannot simulate from the parameter covariance matrix: {exc}"
        raise SingularCovarianceError(msg) from exc


def draws_interval(
    draws: np.ndarray,
    predicted: np.ndarray,
    ci_level: float,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Quantile interval of simulated predictions.

    Args:
        draws: Simulated predictions of shape ``(S, m)``.
        predicted: Point predictions of shape ``(m,)``.
        ci_level: Confidence level.

    Returns:
        ``(std_error, conf_low, conf_high)``, each ``(m,)``.  The
        bounds are widened, if needed, to contain *predicted*.
    """
    alpha = (1.0 - ci_level) / 2.0
    low, high = np.quantile(draws, [alpha, 1.0 - alpha], axis=0)
    std_error = np.std(draws, axis=0, ddof=1)
    return std_error, np.minimum(low, predicted), np.maximum(high, predicted)


def resolve_rng(seed: int | np.random.Generator | None) -> np.random.Generator:
    """Return a NumPy generator for *seed* (passes generators through)."""
    if isinstance(seed, np.random.Generator):
        return seed
    return np.random.default_rng(seed)
